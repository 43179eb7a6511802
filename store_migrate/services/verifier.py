"""Post-migration integrity verification."""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .catalog import EntityCatalog
from .dependency_graph import DependencyGraph
from ..errors import ConnectivityError, StatementError
from ..extractors.base import SourceReader
from ..loaders.base import TargetStore
from ..models.entity import EntityTypeSpec
from ..models.verification import (
    CountMismatch,
    InvalidBooleanField,
    InvalidStructuredField,
    MissingRequiredField,
    MissingTable,
    OrphanedReference,
    VerificationFinding,
    VerificationReport,
)

logger = logging.getLogger(__name__)

FieldRef = Tuple[str, str]  # (table, field)
ForeignKeyRef = Tuple[str, str, str, str]  # (table, field, referenced_table, referenced_field)


@dataclass
class VerificationRules:
    """Configured checks, expressed against target table names."""
    required_fields: List[FieldRef] = field(default_factory=list)
    foreign_keys: List[ForeignKeyRef] = field(default_factory=list)
    structured_fields: List[FieldRef] = field(default_factory=list)
    boolean_fields: List[FieldRef] = field(default_factory=list)

    @classmethod
    def from_specs(cls, specs: Sequence[EntityTypeSpec]) -> "VerificationRules":
        """Derive the rules from entity declarations, keeping the given order."""
        tables = {spec.name: spec.target_table for spec in specs}
        rules = cls()
        for spec in specs:
            table = spec.target_table
            rules.required_fields.extend((table, f) for f in spec.required_fields)
            for ref in spec.references:
                if ref.referenced_type not in tables:
                    continue
                rules.foreign_keys.append(
                    (table, ref.field, tables[ref.referenced_type], ref.referenced_field)
                )
            rules.structured_fields.extend((table, f) for f in spec.json_fields)
            rules.boolean_fields.extend((table, f) for f in spec.boolean_fields)
        return rules

    def to_dict(self) -> Dict[str, Any]:
        return {
            "required_fields": [list(r) for r in self.required_fields],
            "foreign_keys": [list(r) for r in self.foreign_keys],
            "structured_fields": [list(r) for r in self.structured_fields],
            "boolean_fields": [list(r) for r in self.boolean_fields],
        }


class IntegrityVerifier:
    """
    Read-only checks over the target store after a migration.

    Checks run in a fixed order: count reconciliation, required-field
    completeness, orphaned references (in dependency order), structured
    field validity and boolean field validity. A table missing from the
    target yields one ``MissingTable`` finding and its other checks are
    skipped. A check the target cannot run is logged and skipped;
    connectivity failures propagate.
    """

    def __init__(
        self,
        target: TargetStore,
        specs: Union[EntityCatalog, Sequence[EntityTypeSpec]],
        source: Optional[SourceReader] = None,
        rules: Optional[VerificationRules] = None,
        page_size: int = 1000,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the verifier.

        Args:
            target: Connected target store
            specs: Catalog or specs to verify
            source: Source reader for count reconciliation; None skips it
            rules: Explicit rules; derived from the specs when omitted
            page_size: Rows fetched per query when validating JSON
            logger: Logger for progress output
        """
        if isinstance(specs, EntityCatalog):
            ordered = specs.ordered()
        else:
            ordered = DependencyGraph(list(specs)).order()
        self.target = target
        self.specs: List[EntityTypeSpec] = ordered
        self.source = source
        self.rules = rules or VerificationRules.from_specs(ordered)
        self.page_size = page_size
        self.logger = logger or logging.getLogger(__name__)
        self._missing: Set[str] = set()

    def verify(self) -> VerificationReport:
        """Run every check and return the findings."""
        start = time.monotonic()
        findings: List[VerificationFinding] = []

        self.logger.info("Verifying migrated data...")
        existing = set(self.target.list_tables())
        self._missing = set()

        for spec in self.specs:
            if spec.target_table not in existing and spec.target_table not in self._missing:
                self._missing.add(spec.target_table)
                findings.append(MissingTable(table=spec.target_table))
                self.logger.warning(f"{spec.target_table}: table not found in target")

        findings.extend(self._check_counts())
        findings.extend(self._check_required_fields())
        findings.extend(self._check_foreign_keys())
        findings.extend(self._check_structured_fields())
        findings.extend(self._check_boolean_fields())

        tables_checked = len({spec.target_table for spec in self.specs} - self._missing)
        report = VerificationReport(
            findings=tuple(findings),
            tables_checked=tables_checked,
            duration_seconds=round(time.monotonic() - start, 3),
        )

        if report.clean:
            self.logger.info(f"Verification passed: {tables_checked} tables, no findings")
        else:
            self.logger.warning(f"Verification found {report.count} issue(s): {report.summary}")
        return report

    def _skip(self, *tables: str) -> bool:
        return any(t in self._missing for t in tables)

    def _count(self, statement: str, description: str) -> Optional[int]:
        try:
            return int(self.target.scalar(statement) or 0)
        except StatementError as e:
            self.logger.warning(f"Could not verify {description}: {e.message}")
            return None

    def _check_counts(self) -> Iterable[VerificationFinding]:
        if self.source is None:
            return []

        findings = []
        for spec in self.specs:
            if self._skip(spec.target_table):
                continue

            try:
                source_count = self.source.count(spec.source_collection)
            except ConnectivityError as e:
                self.logger.warning(f"Could not count source {spec.source_collection}: {e.message}")
                continue

            target_count = self._count(
                f"SELECT COUNT(*) AS count FROM {self.target.quote(spec.target_table)}",
                f"row count of {spec.target_table}",
            )
            if target_count is None:
                continue

            if source_count != target_count:
                findings.append(CountMismatch(spec.name, source_count, target_count))
                self.logger.warning(
                    f"{spec.name}: source has {source_count} records, target has {target_count}"
                )
            else:
                self.logger.info(f"{spec.name}: {target_count} records match")
        return findings

    def _check_required_fields(self) -> Iterable[VerificationFinding]:
        q = self.target.quote
        findings = []
        for table, name in self.rules.required_fields:
            if self._skip(table):
                continue
            count = self._count(
                f"SELECT COUNT(*) AS count FROM {q(table)} WHERE {q(name)} IS NULL OR {q(name)} = ''",
                f"{table}.{name}",
            )
            if count:
                findings.append(MissingRequiredField(table, name, count))
                self.logger.warning(f"{table}.{name}: {count} NULL/empty values found")
        return findings

    def _check_foreign_keys(self) -> Iterable[VerificationFinding]:
        q = self.target.quote
        findings = []
        for table, name, referenced_table, referenced_field in self.rules.foreign_keys:
            if self._skip(table, referenced_table):
                continue
            count = self._count(
                f"SELECT COUNT(*) AS count FROM {q(table)} t1 "
                f"LEFT JOIN {q(referenced_table)} t2 ON t1.{q(name)} = t2.{q(referenced_field)} "
                f"WHERE t1.{q(name)} IS NOT NULL AND t2.{q(referenced_field)} IS NULL",
                f"{table}.{name} -> {referenced_table}.{referenced_field}",
            )
            if count:
                findings.append(OrphanedReference(table, name, referenced_table, count))
                self.logger.warning(f"{table}.{name} -> {referenced_table}: {count} orphaned references")
        return findings

    def _check_structured_fields(self) -> Iterable[VerificationFinding]:
        findings = []
        for table, name in self.rules.structured_fields:
            if self._skip(table):
                continue
            try:
                count = self._count_invalid_json(table, name)
            except StatementError as e:
                self.logger.warning(f"Could not verify JSON field {table}.{name}: {e.message}")
                continue
            if count:
                findings.append(InvalidStructuredField(table, name, count))
                self.logger.warning(f"{table}.{name}: {count} invalid JSON values")
        return findings

    def _count_invalid_json(self, table: str, name: str) -> int:
        q = self.target.quote
        p = self.target.placeholder
        statement = (
            f"SELECT {q(name)} AS value FROM {q(table)} WHERE {q(name)} IS NOT NULL "
            f"ORDER BY {q(name)} LIMIT {p} OFFSET {p}"
        )
        invalid = 0
        offset = 0
        while True:
            rows = self.target.query(statement, (self.page_size, offset))
            for row in rows:
                if not _is_json(row["value"]):
                    invalid += 1
            if len(rows) < self.page_size:
                return invalid
            offset += len(rows)

    def _check_boolean_fields(self) -> Iterable[VerificationFinding]:
        q = self.target.quote
        findings = []
        for table, name in self.rules.boolean_fields:
            if self._skip(table):
                continue
            count = self._count(
                f"SELECT COUNT(*) AS count FROM {q(table)} WHERE {q(name)} NOT IN (0, 1)",
                f"boolean field {table}.{name}",
            )
            if count:
                findings.append(InvalidBooleanField(table, name, count))
                self.logger.warning(f"{table}.{name}: {count} invalid boolean values")
        return findings


def _is_json(value: Any) -> bool:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if not isinstance(value, str):
        return True
    try:
        json.loads(value)
    except ValueError:
        return False
    return True
