"""Error hierarchy for the migration pipeline."""

from typing import Any, Dict, List, Optional


class MigrationError(Exception):
    """Base class for all migration errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(MigrationError):
    """Raised when settings or entity declarations are invalid."""


class ConnectivityError(MigrationError):
    """Raised when the source or target store cannot be reached."""

    def __init__(self, message: str, store: str, operation: str = ""):
        super().__init__(message, {"store": store, "operation": operation})
        self.store = store
        self.operation = operation


class CyclicDependencyError(MigrationError):
    """Raised when entity dependencies cannot be ordered."""

    def __init__(self, cycle: List[str]):
        super().__init__(
            f"Cyclic dependency between entity types: {' -> '.join(cycle)}",
            {"cycle": cycle},
        )
        self.cycle = cycle


class StatementError(MigrationError):
    """Raised when the target store rejects a single statement."""


class RowTransformError(MigrationError):
    """Raised when a single source record cannot be coerced."""

    def __init__(self, message: str, entity_type: str, record_id: Any = None,
                 payload: Optional[Dict[str, Any]] = None):
        super().__init__(message, {"entity_type": entity_type, "record_id": record_id})
        self.entity_type = entity_type
        self.record_id = record_id
        self.payload = payload


class RowWriteError(MigrationError):
    """Raised when the target rejects the insertion of a single row."""

    def __init__(self, message: str, table: str, key: Any = None,
                 payload: Optional[Dict[str, Any]] = None):
        super().__init__(message, {"table": table, "key": key})
        self.table = table
        self.key = key
        self.payload = payload


class MigrationAbortedError(MigrationError):
    """
    Raised when a fatal error stops a run part way through.

    Carries the partial report so callers can show what completed
    before the abort point.
    """

    def __init__(self, entity_type: str, cause: Exception, report: Any = None):
        super().__init__(
            f"Migration aborted while processing {entity_type}: {cause}",
            {"entity_type": entity_type},
        )
        self.entity_type = entity_type
        self.cause = cause
        self.report = report
