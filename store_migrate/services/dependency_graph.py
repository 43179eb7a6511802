"""Dependency ordering of entity types."""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from ..errors import ConfigurationError, CyclicDependencyError
from ..models.entity import EntityTypeSpec

logger = logging.getLogger(__name__)


class DependencyGraph:
    """
    Static partial order of entity types.

    A parent type always precedes every type that references it. Types
    with no ordering constraint between them keep their declaration
    order, so repeated runs migrate tables in the same sequence.
    """

    def __init__(self, specs: Sequence[EntityTypeSpec]):
        self._specs: Dict[str, EntityTypeSpec] = {}
        for spec in specs:
            if spec.name in self._specs:
                raise ConfigurationError(f"Duplicate entity type: {spec.name}")
            self._specs[spec.name] = spec

        for spec in self._specs.values():
            unknown = spec.all_dependencies - set(self._specs)
            if unknown:
                raise ConfigurationError(
                    f"{spec.name} depends on unknown entity types: {', '.join(sorted(unknown))}",
                    {"entity_type": spec.name, "unknown": sorted(unknown)},
                )

        self._order = self._compute_order()

    @property
    def names(self) -> List[str]:
        return [spec.name for spec in self._order]

    def order(self) -> List[EntityTypeSpec]:
        """Return the specs in dependency order."""
        return list(self._order)

    def position(self, name: str) -> int:
        return self.names.index(name)

    def closure(self, names: Iterable[str]) -> List[EntityTypeSpec]:
        """Return the named types plus everything they depend on, in order."""
        wanted = set()
        stack = list(names)
        while stack:
            name = stack.pop()
            if name not in self._specs:
                raise ConfigurationError(f"Unknown entity type: {name}")
            if name in wanted:
                continue
            wanted.add(name)
            stack.extend(self._specs[name].all_dependencies)
        return [spec for spec in self._order if spec.name in wanted]

    def _compute_order(self) -> List[EntityTypeSpec]:
        # Kahn's algorithm, always releasing the earliest declared ready spec
        declared = list(self._specs)
        remaining = {name: set(self._specs[name].all_dependencies) for name in declared}
        ordered: List[EntityTypeSpec] = []

        while remaining:
            ready = next((name for name in declared if name in remaining and not remaining[name]), None)
            if ready is None:
                raise CyclicDependencyError(self._find_cycle(remaining))

            ordered.append(self._specs[ready])
            del remaining[ready]
            for deps in remaining.values():
                deps.discard(ready)

        logger.debug(f"Dependency order: {[s.name for s in ordered]}")
        return ordered

    def _find_cycle(self, remaining: Dict[str, set]) -> List[str]:
        """Walk unresolved dependencies until a name repeats."""
        start = next(iter(remaining))
        path: List[str] = []
        seen: Dict[str, int] = {}
        current: Optional[str] = start

        while current is not None and current not in seen:
            seen[current] = len(path)
            path.append(current)
            pending = sorted(remaining.get(current, ()))
            current = pending[0] if pending else None

        if current is None:
            return path
        return path[seen[current]:] + [current]


def order(specs: Sequence[EntityTypeSpec]) -> List[EntityTypeSpec]:
    """Topologically order entity specs, parents first."""
    return DependencyGraph(specs).order()
