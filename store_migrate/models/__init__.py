"""Data models for the migration pipeline."""

from .entity import (
    CanonicalRow,
    EntityTypeSpec,
    EnumDomain,
    ForeignKey,
    RawRecord,
)
from .migration import (
    EntityStatus,
    ExistingRowPolicy,
    MigrationConfig,
    MigrationProgress,
    MigrationReport,
    TypeResult,
)
from .record import (
    EnumFallback,
    RowError,
    TransformResult,
)
from .verification import (
    CountMismatch,
    InvalidBooleanField,
    InvalidStructuredField,
    MissingRequiredField,
    MissingTable,
    OrphanedReference,
    VerificationFinding,
    VerificationReport,
)

__all__ = [
    "CanonicalRow",
    "EntityTypeSpec",
    "EnumDomain",
    "ForeignKey",
    "RawRecord",
    "EntityStatus",
    "ExistingRowPolicy",
    "MigrationConfig",
    "MigrationProgress",
    "MigrationReport",
    "TypeResult",
    "EnumFallback",
    "RowError",
    "TransformResult",
    "CountMismatch",
    "InvalidBooleanField",
    "InvalidStructuredField",
    "MissingRequiredField",
    "MissingTable",
    "OrphanedReference",
    "VerificationFinding",
    "VerificationReport",
]
