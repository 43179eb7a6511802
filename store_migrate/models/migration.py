"""Migration execution models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class EntityStatus(str, Enum):
    """Lifecycle of one entity type during a run."""
    NOT_STARTED = "not_started"
    FETCHING = "fetching"
    TRANSFORMING = "transforming"
    WRITING = "writing"
    COMPLETED = "completed"
    ABORTED = "aborted"


class ExistingRowPolicy(str, Enum):
    """How rows already present in the target are surfaced."""
    SKIP = "skip"  # Counted, never reported
    REPORT = "report"  # Logged and shown as a separate category


@dataclass
class MigrationProgress:
    """Mutable progress of a single entity type, owned by the orchestrator."""
    entity: str
    offset: int = 0
    migrated_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    fallback_count: int = 0
    total_count: int = 0
    batches: int = 0
    status: EntityStatus = EntityStatus.NOT_STARTED

    def to_result(self) -> "TypeResult":
        """Freeze the progress into a report entry."""
        return TypeResult(
            migrated=self.migrated_count,
            errors=self.error_count,
            total=self.total_count,
            skipped=self.skipped_count,
            fallbacks=self.fallback_count,
            status=self.status,
        )


@dataclass(frozen=True)
class TypeResult:
    """Outcome of migrating one entity type."""
    migrated: int
    errors: int
    total: int
    skipped: int = 0
    fallbacks: int = 0
    status: EntityStatus = EntityStatus.COMPLETED

    @property
    def attempted(self) -> int:
        return self.migrated + self.errors + self.skipped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "migrated": self.migrated,
            "errors": self.errors,
            "total": self.total,
            "skipped": self.skipped,
            "fallbacks": self.fallbacks,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class MigrationReport:
    """Aggregate, write-once result of a migration run."""
    per_type: Mapping[str, TypeResult]
    duration_seconds: float
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    dry_run: bool = False
    aborted_at: Optional[str] = None  # Entity type that was running when the run aborted

    @property
    def total_migrated(self) -> int:
        return sum(r.migrated for r in self.per_type.values())

    @property
    def total_errors(self) -> int:
        return sum(r.errors for r in self.per_type.values())

    @property
    def success(self) -> bool:
        """True when the run completed without row level errors."""
        return self.aborted_at is None and self.total_errors == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "per_type": {name: r.to_dict() for name, r in self.per_type.items()},
            "duration_seconds": self.duration_seconds,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "dry_run": self.dry_run,
            "aborted_at": self.aborted_at,
            "total_migrated": self.total_migrated,
            "total_errors": self.total_errors,
        }


@dataclass
class MigrationConfig:
    """Run options for a migration."""
    batch_size: int = 1000
    batch_delay: float = 0.2  # Seconds between batches
    dry_run: bool = False
    existing_rows: ExistingRowPolicy = ExistingRowPolicy.SKIP
    only: List[str] = field(default_factory=list)  # Restrict to these types and their dependencies
    output_dir: str = "./migration_reports"
    save_report: bool = False
    large_table_threshold: int = 10000

    def __post_init__(self):
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.batch_delay < 0:
            raise ValueError("batch_delay must not be negative")
        self.existing_rows = ExistingRowPolicy(self.existing_rows)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "batch_size": self.batch_size,
            "batch_delay": self.batch_delay,
            "dry_run": self.dry_run,
            "existing_rows": self.existing_rows.value,
            "only": self.only,
            "output_dir": self.output_dir,
            "save_report": self.save_report,
            "large_table_threshold": self.large_table_threshold,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        """Create from dictionary representation."""
        return cls(
            batch_size=data.get("batch_size", 1000),
            batch_delay=data.get("batch_delay", 0.2),
            dry_run=data.get("dry_run", False),
            existing_rows=ExistingRowPolicy(data.get("existing_rows", "skip")),
            only=list(data.get("only", [])),
            output_dir=data.get("output_dir", "./migration_reports"),
            save_report=data.get("save_report", False),
            large_table_threshold=data.get("large_table_threshold", 10000),
        )
