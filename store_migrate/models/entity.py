"""Entity type declarations for the migration pipeline."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple

RawRecord = Dict[str, Any]
CanonicalRow = Dict[str, Any]


@dataclass(frozen=True)
class EnumDomain:
    """Constrained value domain with a documented fallback."""
    values: FrozenSet[str]
    fallback: str

    def __post_init__(self):
        if self.fallback not in self.values:
            raise ValueError(f"Fallback {self.fallback!r} is not part of the domain")

    def to_dict(self) -> Dict[str, Any]:
        return {"values": sorted(self.values), "fallback": self.fallback}


@dataclass(frozen=True)
class ForeignKey:
    """Reference from a field to another entity type."""
    field: str
    referenced_type: str
    referenced_field: str = "id"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "referenced_type": self.referenced_type,
            "referenced_field": self.referenced_field,
        }


@dataclass(frozen=True)
class EntityTypeSpec:
    """
    Declaration of one entity type migrated as a unit.

    Specs are defined once at process start and never mutated. The
    dependency set is the union of explicit dependencies and the
    entity types named by ``references``.
    """
    name: str
    source_collection: str
    target_table: str
    dependencies: FrozenSet[str] = frozenset()
    columns: Tuple[str, ...] = ()  # Target schema; empty means use the target's columns
    primary_key: str = "id"
    order_by: str = "created_at"
    enums: Mapping[str, EnumDomain] = field(default_factory=dict)
    references: Tuple[ForeignKey, ...] = ()
    required_fields: Tuple[str, ...] = ()
    json_fields: Tuple[str, ...] = ()
    boolean_fields: Tuple[str, ...] = ()
    prepare: Optional[Callable[[RawRecord], RawRecord]] = None  # Pure pre-transform hook

    def __post_init__(self):
        implied = {ref.referenced_type for ref in self.references}
        object.__setattr__(self, "dependencies", frozenset(self.dependencies) | implied)
        object.__setattr__(self, "columns", tuple(self.columns))

    @property
    def all_dependencies(self) -> FrozenSet[str]:
        """Dependencies excluding self references."""
        return frozenset(d for d in self.dependencies if d != self.name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "source_collection": self.source_collection,
            "target_table": self.target_table,
            "dependencies": sorted(self.dependencies),
            "columns": list(self.columns),
            "primary_key": self.primary_key,
            "order_by": self.order_by,
            "enums": {k: v.to_dict() for k, v in self.enums.items()},
            "references": [r.to_dict() for r in self.references],
            "required_fields": list(self.required_fields),
            "json_fields": list(self.json_fields),
            "boolean_fields": list(self.boolean_fields),
        }
