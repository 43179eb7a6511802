"""Record-level models for migration data."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .entity import CanonicalRow


@dataclass(frozen=True)
class EnumFallback:
    """One application of an enum fallback during a transform."""
    field: str
    original: Any
    fallback: str


@dataclass
class TransformResult:
    """A canonical row plus the lenient coercions applied to produce it."""
    row: CanonicalRow
    fallbacks: List[EnumFallback] = field(default_factory=list)
    dropped_fields: List[str] = field(default_factory=list)


@dataclass
class RowError:
    """A row that failed to transform or to insert."""
    table: str
    key: Optional[Any]
    error: str
    stage: str = "write"  # transform, write
    payload: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "table": self.table,
            "key": self.key,
            "error": self.error,
            "stage": self.stage,
            "payload": self.payload,
        }
