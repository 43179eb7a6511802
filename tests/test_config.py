"""Tests for environment settings."""

from unittest.mock import patch

import pytest

from store_migrate.config import Settings
from store_migrate.errors import ConfigurationError
from store_migrate.extractors.file_extractor import JSONExportExtractor
from store_migrate.extractors.supabase_extractor import SupabaseExtractor
from store_migrate.loaders.mysql_loader import MySQLTarget
from store_migrate.loaders.sqlite_loader import SQLiteTarget
from store_migrate.models.migration import ExistingRowPolicy


class TestFromEnv:
    """Reading and validating variables"""

    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.batch_size == 1000
        assert settings.batch_delay_ms == 200
        assert settings.target_backend == "mysql"
        assert settings.mysql_port == 3306
        assert settings.existing_rows == ExistingRowPolicy.SKIP

    def test_values_parsed(self):
        settings = Settings.from_env({
            "SUPABASE_URL": "https://demo.supabase.co",
            "SUPABASE_SERVICE_KEY": "service",
            "MYSQL_PORT": "3307",
            "BATCH_SIZE": "250",
            "LOG_LEVEL": "debug",
            "EXISTING_ROWS": "REPORT",
        })
        assert settings.mysql_port == 3307
        assert settings.batch_size == 250
        assert settings.log_level == "DEBUG"
        assert settings.existing_rows == ExistingRowPolicy.REPORT

    def test_alternate_names(self):
        settings = Settings.from_env({
            "SUPABASE_ANON_KEY": "anon",
            "DB_HOST": "db.internal",
            "DB_USER": "portal",
            "DB_PASSWORD": "secret",
            "DB_NAME": "grievances",
        })
        assert settings.supabase_key == "anon"
        assert settings.mysql_host == "db.internal"
        assert settings.mysql_user == "portal"
        assert settings.mysql_password == "secret"
        assert settings.mysql_database == "grievances"

    def test_primary_names_win(self):
        settings = Settings.from_env({
            "SUPABASE_SERVICE_KEY": "service",
            "SUPABASE_ANON_KEY": "anon",
            "MYSQL_HOST": "primary",
            "DB_HOST": "fallback",
        })
        assert settings.supabase_key == "service"
        assert settings.mysql_host == "primary"

    @pytest.mark.parametrize("env", [
        {"BATCH_SIZE": "0"},
        {"BATCH_SIZE": "lots"},
        {"TARGET_BACKEND": "postgres"},
        {"LOG_LEVEL": "chatty"},
        {"EXISTING_ROWS": "overwrite"},
        {"BATCH_DELAY_MS": "-1"},
    ])
    def test_invalid_values(self, env):
        with pytest.raises(ConfigurationError):
            Settings.from_env(env)

    def test_loads_dotenv_for_process_environment(self, monkeypatch):
        monkeypatch.setenv("BATCH_SIZE", "42")
        with patch("store_migrate.config.load_dotenv") as load_dotenv:
            settings = Settings.from_env()
        load_dotenv.assert_called_once()
        assert settings.batch_size == 42


class TestRequired:
    """Missing variables"""

    def test_missing_source(self):
        settings = Settings.from_env({})
        assert settings.missing() == ["SUPABASE_URL", "SUPABASE_SERVICE_KEY"]
        with pytest.raises(ConfigurationError) as exc_info:
            settings.validate_required()
        assert exc_info.value.details["missing"] == ["SUPABASE_URL", "SUPABASE_SERVICE_KEY"]

    def test_source_not_required_for_exports(self):
        Settings.from_env({}).validate_required(require_source=False)


class TestBuilders:
    """Stores and run options built from settings"""

    def test_build_supabase_source(self):
        settings = Settings.from_env({"SUPABASE_URL": "https://x.supabase.co", "SUPABASE_SERVICE_KEY": "k"})
        source = settings.build_source()
        assert isinstance(source, SupabaseExtractor)
        assert source.url == "https://x.supabase.co"

    def test_build_export_source(self, tmp_path):
        assert isinstance(Settings().build_source(str(tmp_path)), JSONExportExtractor)

    def test_build_targets(self, tmp_path):
        assert isinstance(Settings().build_target(), MySQLTarget)
        sqlite = Settings(target_backend="sqlite", sqlite_path=str(tmp_path / "t.db")).build_target()
        assert isinstance(sqlite, SQLiteTarget)

    def test_migration_config(self):
        config = Settings(batch_size=500, batch_delay_ms=250).migration_config(dry_run=True, only=None)
        assert config.batch_size == 500
        assert config.batch_delay == 0.25
        assert config.dry_run
        assert config.only == []

    def test_overrides(self):
        config = Settings().migration_config(batch_size=10, existing_rows="report")
        assert config.batch_size == 10
        assert config.existing_rows == ExistingRowPolicy.REPORT

    def test_invalid_override(self):
        with pytest.raises(ConfigurationError):
            Settings().migration_config(batch_size=-5)

    def test_redacted(self):
        data = Settings(supabase_key="secret", mysql_password="pw").redacted()
        assert data["supabase_key"] == "***"
        assert data["mysql_password"] == "***"
