"""Environment settings for the migration tool."""

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator

from .errors import ConfigurationError
from .extractors.base import SourceReader
from .extractors.file_extractor import JSONExportExtractor
from .extractors.supabase_extractor import SupabaseExtractor
from .loaders.base import TargetStore
from .loaders.mysql_loader import MySQLTarget
from .loaders.sqlite_loader import SQLiteTarget
from .models.migration import ExistingRowPolicy, MigrationConfig

logger = logging.getLogger(__name__)

# Setting name -> environment variables, first match wins
ENV_VARS: Dict[str, tuple] = {
    "supabase_url": ("SUPABASE_URL",),
    "supabase_key": ("SUPABASE_SERVICE_KEY", "SUPABASE_ANON_KEY"),
    "source_timeout": ("SOURCE_TIMEOUT",),
    "source_max_retries": ("SOURCE_MAX_RETRIES",),
    "target_backend": ("TARGET_BACKEND",),
    "sqlite_path": ("SQLITE_PATH",),
    "mysql_host": ("MYSQL_HOST", "DB_HOST"),
    "mysql_port": ("MYSQL_PORT", "DB_PORT"),
    "mysql_user": ("MYSQL_USER", "DB_USER"),
    "mysql_password": ("MYSQL_PASSWORD", "DB_PASSWORD"),
    "mysql_database": ("MYSQL_DATABASE", "DB_NAME"),
    "batch_size": ("BATCH_SIZE",),
    "batch_delay_ms": ("BATCH_DELAY_MS",),
    "log_level": ("LOG_LEVEL",),
    "existing_rows": ("EXISTING_ROWS",),
}


class Settings(BaseModel):
    """Connection and run settings read from the environment."""
    supabase_url: str = ""
    supabase_key: str = ""
    source_timeout: float = 30.0
    source_max_retries: int = 0

    target_backend: str = "mysql"
    sqlite_path: str = "migration.db"
    mysql_host: str = "localhost"
    mysql_port: int = 3306
    mysql_user: str = "root"
    mysql_password: str = ""
    mysql_database: str = "grievance_portal"

    batch_size: int = 1000
    batch_delay_ms: int = 200
    log_level: str = "INFO"
    existing_rows: ExistingRowPolicy = ExistingRowPolicy.SKIP

    @field_validator("target_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("mysql", "sqlite"):
            raise ValueError("must be 'mysql' or 'sqlite'")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {value}")
        return value

    @field_validator("batch_size", "mysql_port")
    @classmethod
    def _check_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("batch_delay_ms", "source_max_retries")
    @classmethod
    def _check_not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("existing_rows", mode="before")
    @classmethod
    def _lower_policy(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Loads a ``.env`` file first when reading the process environment.

        Raises:
            ConfigurationError: If a value fails validation
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        values: Dict[str, Any] = {}
        for name, variables in ENV_VARS.items():
            for variable in variables:
                if environ.get(variable):
                    values[name] = environ[variable]
                    break

        try:
            return cls(**values)
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            raise ConfigurationError(
                f"Invalid settings: {'; '.join(problems)}", {"errors": problems}
            ) from e

    def missing(self, require_source: bool = True) -> List[str]:
        """Names of required environment variables that are not set."""
        missing = []
        if require_source:
            if not self.supabase_url:
                missing.append("SUPABASE_URL")
            if not self.supabase_key:
                missing.append("SUPABASE_SERVICE_KEY")
        if self.target_backend == "mysql":
            if not self.mysql_host:
                missing.append("MYSQL_HOST")
            if not self.mysql_database:
                missing.append("MYSQL_DATABASE")
        return missing

    def validate_required(self, require_source: bool = True) -> None:
        """
        Raises:
            ConfigurationError: Listing every missing variable
        """
        missing = self.missing(require_source)
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                {"missing": missing},
            )

    def build_source(self, source_dir: Optional[str] = None) -> SourceReader:
        """Create the source reader; a directory selects JSON exports."""
        if source_dir:
            return JSONExportExtractor(source_dir)
        return SupabaseExtractor(
            url=self.supabase_url,
            api_key=self.supabase_key,
            timeout=self.source_timeout,
            max_retries=self.source_max_retries,
        )

    def build_target(self) -> TargetStore:
        if self.target_backend == "sqlite":
            return SQLiteTarget(self.sqlite_path)
        return MySQLTarget(
            host=self.mysql_host,
            port=self.mysql_port,
            user=self.mysql_user,
            password=self.mysql_password,
            database=self.mysql_database,
        )

    def migration_config(self, **overrides) -> MigrationConfig:
        """Run options from these settings, with explicit overrides applied."""
        options = {
            "batch_size": self.batch_size,
            "batch_delay": self.batch_delay_ms / 1000.0,
            "existing_rows": self.existing_rows,
        }
        options.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return MigrationConfig(**options)
        except ValueError as e:
            raise ConfigurationError(f"Invalid run options: {e}") from e

    def redacted(self) -> Dict[str, Any]:
        """Settings for display, with secrets masked."""
        data = self.model_dump(mode="json")
        for key in ("supabase_key", "mysql_password"):
            if data.get(key):
                data[key] = "***"
        return data
