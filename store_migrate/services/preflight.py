"""Pre-flight checks run before a migration."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from .catalog import EntityCatalog
from ..errors import ConnectivityError, StatementError
from ..extractors.base import SourceReader
from ..loaders.base import TargetStore
from ..models.entity import EntityTypeSpec

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    """Outcome of one pre-flight check."""
    name: str
    passed: bool
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "passed": self.passed, "message": self.message}


@dataclass
class PreflightReport:
    """Checks plus the warnings and errors they raised."""
    checks: List[CheckResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    source_counts: Dict[str, int] = field(default_factory=dict)
    target_counts: Dict[str, int] = field(default_factory=dict)
    database_size_mb: Optional[float] = None

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "checks": [c.to_dict() for c in self.checks],
            "warnings": self.warnings,
            "errors": self.errors,
            "source_counts": self.source_counts,
            "target_counts": self.target_counts,
            "database_size_mb": self.database_size_mb,
        }


class PreflightChecker:
    """
    Checks that both stores are reachable and the target is ready.

    Nothing here writes to either store.
    """

    def __init__(
        self,
        source: SourceReader,
        target: TargetStore,
        specs: Union[EntityCatalog, Sequence[EntityTypeSpec]],
        settings_errors: Optional[List[str]] = None,
        large_table_threshold: int = 10000,
        logger: Optional[logging.Logger] = None
    ):
        self.source = source
        self.target = target
        self.specs = specs.ordered() if isinstance(specs, EntityCatalog) else list(specs)
        self.settings_errors = settings_errors or []
        self.large_table_threshold = large_table_threshold
        self.logger = logger or logging.getLogger(__name__)

    def run_all(self) -> PreflightReport:
        """Run every check; later checks are skipped when a store is unreachable."""
        report = PreflightReport()

        self._check_settings(report)
        source_ok = self._check_source(report)
        target_ok = self._check_target(report)

        if target_ok:
            self._check_tables(report)
            self._check_size(report)

        if report.ok:
            self.logger.info(f"Pre-flight checks passed with {len(report.warnings)} warning(s)")
        else:
            self.logger.error(f"Pre-flight checks failed: {len(report.errors)} error(s)")
        if not source_ok or not target_ok:
            self.logger.error("Fix connectivity before migrating")
        return report

    def _record(self, report: PreflightReport, name: str, passed: bool, message: str = "") -> None:
        report.checks.append(CheckResult(name=name, passed=passed, message=message))

    def _check_settings(self, report: PreflightReport) -> None:
        problems = list(self.settings_errors) + self.source.validate_source()
        for problem in problems:
            report.errors.append(problem)
        self._record(report, "settings", not problems, "; ".join(problems))

    def _check_source(self, report: PreflightReport) -> bool:
        for spec in self.specs:
            try:
                count = self.source.ping(spec.source_collection)
            except ConnectivityError as e:
                report.errors.append(f"Source {spec.source_collection}: {e.message}")
                self._record(report, "source_connectivity", False, e.message)
                return False

            report.source_counts[spec.name] = count
            self.logger.info(f"{spec.source_collection}: {count} records")
            if count > self.large_table_threshold:
                report.warnings.append(
                    f"{spec.source_collection} has {count} records; migration may take a while"
                )

        total = sum(report.source_counts.values())
        self._record(report, "source_connectivity", True, f"{total} records in {len(self.specs)} collections")
        return True

    def _check_target(self, report: PreflightReport) -> bool:
        try:
            self.target.ping()
        except ConnectivityError as e:
            report.errors.append(f"Target: {e.message}")
            self._record(report, "target_connectivity", False, e.message)
            return False
        self._record(report, "target_connectivity", True)
        return True

    def _check_tables(self, report: PreflightReport) -> None:
        existing = set(self.target.list_tables())
        expected = {spec.target_table for spec in self.specs}

        missing = sorted(expected - existing)
        for table in missing:
            report.errors.append(f"Table {table} does not exist in target")
        self._record(report, "expected_tables", not missing, ", ".join(missing))

        for table in sorted(existing - expected):
            report.warnings.append(f"Unexpected table in target: {table}")

        populated = []
        for spec in self.specs:
            if spec.target_table not in existing:
                continue
            try:
                rows = self.target.count_rows(spec.target_table)
            except StatementError as e:
                report.warnings.append(f"Could not count {spec.target_table}: {e.message}")
                continue
            report.target_counts[spec.name] = rows
            if rows > 0:
                populated.append(spec.target_table)
                report.warnings.append(
                    f"{spec.target_table} already has {rows} rows; existing rows will be skipped"
                )
        self._record(report, "existing_data", not populated, ", ".join(populated))

    def _check_size(self, report: PreflightReport) -> None:
        try:
            report.database_size_mb = self.target.database_size_mb()
        except StatementError as e:
            self.logger.warning(f"Could not read database size: {e.message}")
            return
        if report.database_size_mb is not None:
            self.logger.info(f"Target database size: {report.database_size_mb} MB")
