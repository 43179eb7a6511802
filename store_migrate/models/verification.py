"""Verification findings and reports."""

from collections import Counter
from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Dict, Tuple


@dataclass(frozen=True)
class VerificationFinding:
    """A structured, non-fatal observation about the migrated data."""
    kind: ClassVar[str] = "finding"

    def describe(self) -> str:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind
        return data


@dataclass(frozen=True)
class CountMismatch(VerificationFinding):
    kind: ClassVar[str] = "count_mismatch"
    type: str
    source_count: int
    target_count: int

    def describe(self) -> str:
        return f"{self.type}: source has {self.source_count} records, target has {self.target_count}"


@dataclass(frozen=True)
class MissingRequiredField(VerificationFinding):
    kind: ClassVar[str] = "missing_required_field"
    table: str
    field: str
    count: int

    def describe(self) -> str:
        return f"{self.table}.{self.field}: {self.count} NULL/empty values found"


@dataclass(frozen=True)
class OrphanedReference(VerificationFinding):
    kind: ClassVar[str] = "orphaned_reference"
    table: str
    field: str
    referenced_table: str
    count: int

    def describe(self) -> str:
        return f"{self.table}.{self.field} -> {self.referenced_table}: {self.count} orphaned references"


@dataclass(frozen=True)
class InvalidStructuredField(VerificationFinding):
    kind: ClassVar[str] = "invalid_structured_field"
    table: str
    field: str
    count: int

    def describe(self) -> str:
        return f"{self.table}.{self.field}: {self.count} invalid JSON values"


@dataclass(frozen=True)
class InvalidBooleanField(VerificationFinding):
    kind: ClassVar[str] = "invalid_boolean_field"
    table: str
    field: str
    count: int

    def describe(self) -> str:
        return f"{self.table}.{self.field}: {self.count} invalid boolean values"


@dataclass(frozen=True)
class MissingTable(VerificationFinding):
    kind: ClassVar[str] = "missing_table"
    table: str

    def describe(self) -> str:
        return f"{self.table}: table not found in target"


@dataclass(frozen=True)
class VerificationReport:
    """Ordered findings; an empty sequence means a clean migration."""
    findings: Tuple[VerificationFinding, ...] = ()
    tables_checked: int = 0
    duration_seconds: float = 0.0

    @property
    def count(self) -> int:
        return len(self.findings)

    @property
    def clean(self) -> bool:
        return not self.findings

    @property
    def summary(self) -> Dict[str, int]:
        """Number of findings per kind."""
        return dict(Counter(f.kind for f in self.findings))

    def of_kind(self, finding_type: type) -> Tuple[VerificationFinding, ...]:
        return tuple(f for f in self.findings if isinstance(f, finding_type))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "findings": [f.to_dict() for f in self.findings],
            "count": self.count,
            "summary": self.summary,
            "tables_checked": self.tables_checked,
            "duration_seconds": self.duration_seconds,
        }
