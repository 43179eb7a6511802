"""Migration orchestrator - drives every entity type from source to target."""

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

from .errors import ConnectivityError, MigrationAbortedError, RowTransformError
from .extractors.base import SourceReader
from .loaders.base import TargetStore
from .loaders.writer import TargetWriter
from .models.entity import EntityTypeSpec
from .models.migration import (
    EntityStatus,
    MigrationConfig,
    MigrationProgress,
    MigrationReport,
    TypeResult,
)
from .models.record import RowError
from .services.catalog import EntityCatalog
from .services.transformer import TransformRegistry

logger = logging.getLogger(__name__)


class MigrationOrchestrator:
    """
    Runs a migration over every entity type, parents first.

    Each type moves through fetch, transform and write for one page at a
    time until the source returns an empty page. Row level failures are
    counted and the run carries on. A connectivity failure aborts the
    whole run with the report of what completed so far.

    Referential checks on the target are suspended before the first type
    and restored after the last one, whatever the outcome.
    """

    def __init__(
        self,
        source: SourceReader,
        target: TargetStore,
        specs: Union[EntityCatalog, Sequence[EntityTypeSpec]],
        config: Optional[MigrationConfig] = None,
        registry: Optional[TransformRegistry] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the orchestrator.

        Args:
            source: Source reader
            target: Connected target store, shared with the writer
            specs: Catalog or specs to migrate
            config: Run options
            registry: Transform registry; built from the specs when omitted
            logger: Logger for progress output
            sleep: Delay function between batches

        Raises:
            CyclicDependencyError: If the specs cannot be ordered
        """
        self.catalog = specs if isinstance(specs, EntityCatalog) else EntityCatalog(specs)
        self.config = config or MigrationConfig()
        self.source = source
        self.target = target
        self.registry = registry or TransformRegistry(self.catalog)
        self.logger = logger or logging.getLogger(__name__)
        self.writer = TargetWriter(
            target,
            existing_rows=self.config.existing_rows,
            dry_run=self.config.dry_run,
            logger=self.logger,
        )
        self._sleep = sleep

        # Ordered once, before anything touches either store
        self.plan: List[EntityTypeSpec] = self.catalog.ordered(self.config.only or None)

        self.row_errors: List[RowError] = []
        self.report: Optional[MigrationReport] = None
        self.report_path: Optional[Path] = None

    def run(self) -> MigrationReport:
        """
        Migrate every planned entity type.

        Returns:
            MigrationReport with one entry per entity type

        Raises:
            ConnectivityError: If either store is unreachable before the first type
            MigrationAbortedError: If a store becomes unreachable mid-run
        """
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()
        results: Dict[str, TypeResult] = {}

        mode = "DRY RUN" if self.config.dry_run else "LIVE"
        self.logger.info(f"=== MIGRATION STARTED ({mode}) ===")
        self.logger.info(f"Order: {', '.join(spec.name for spec in self.plan)}")

        self._check_connectivity()

        self.target.disable_referential_checks()
        try:
            for spec in self.plan:
                progress = MigrationProgress(entity=spec.name)
                try:
                    self._resolve_columns(spec)
                    self._migrate_type(spec, progress)
                except ConnectivityError as e:
                    progress.status = EntityStatus.ABORTED
                    results[spec.name] = progress.to_result()
                    self.report = self._build_report(results, started_at, start, aborted_at=spec.name)
                    self.logger.error(f"Migration aborted during {spec.name}: {e.message}")
                    if self.config.save_report:
                        self._save_report()
                    raise MigrationAbortedError(spec.name, e, self.report) from e

                results[spec.name] = progress.to_result()
        finally:
            self._restore_referential_checks()

        self.report = self._build_report(results, started_at, start)
        self.logger.info(
            f"=== MIGRATION COMPLETED: {self.report.total_migrated} migrated, "
            f"{self.report.total_errors} errors in {self.report.duration_seconds}s ==="
        )
        if self.config.save_report:
            self._save_report()
        return self.report

    def _check_connectivity(self) -> None:
        if self.plan:
            count = self.source.ping(self.plan[0].source_collection)
            self.logger.info(f"Source reachable ({self.plan[0].source_collection}: {count} records)")
        self.target.ping()
        self.logger.info("Target reachable")

    def _restore_referential_checks(self) -> None:
        try:
            self.target.enable_referential_checks()
        except ConnectivityError as e:
            self.logger.error(f"Could not re-enable referential checks: {e.message}")

    def _resolve_columns(self, spec: EntityTypeSpec) -> None:
        """Project onto the target table's columns when the spec declares none."""
        if self.registry.columns(spec.name) is not None:
            return
        columns = self.target.list_columns(spec.target_table)
        if columns:
            self.registry.set_columns(spec.name, columns)
        else:
            self.logger.warning(f"No columns found for {spec.target_table}; rows are not projected")

    def _migrate_type(self, spec: EntityTypeSpec, progress: MigrationProgress) -> None:
        self.logger.info(f"Migrating {spec.name} ({spec.source_collection} -> {spec.target_table})")

        while True:
            progress.status = EntityStatus.FETCHING
            page = self.source.fetch_page(
                spec.source_collection, progress.offset, self.config.batch_size, spec.order_by
            )
            progress.total_count = page.total_count
            if page.empty:
                break

            progress.status = EntityStatus.TRANSFORMING
            rows = []
            for record in page.records:
                try:
                    result = self.registry.transform(spec.name, record)
                except RowTransformError as e:
                    progress.error_count += 1
                    self.row_errors.append(RowError(
                        table=spec.target_table,
                        key=e.record_id,
                        error=e.message,
                        stage="transform",
                        payload=record if isinstance(record, dict) else None,
                    ))
                    self.logger.error(
                        f"Error transforming {spec.name} {e.record_id}: {e.message} "
                        f"| payload: {json.dumps(record, default=str)}"
                    )
                    continue

                for fallback in result.fallbacks:
                    self.logger.debug(
                        f"{spec.name} {result.row.get(spec.primary_key)}: {fallback.field} "
                        f"{fallback.original!r} -> {fallback.fallback!r}"
                    )
                progress.fallback_count += len(result.fallbacks)
                rows.append(result.row)

            progress.status = EntityStatus.WRITING
            written = self.writer.write_batch(spec.target_table, rows, spec.primary_key)
            progress.migrated_count += written.inserted
            progress.skipped_count += written.skipped
            progress.error_count += len(written.errors)
            self.row_errors.extend(written.errors)

            # Advance by what was served; the source may cap the page below the limit
            progress.offset += len(page.records)
            progress.batches += 1
            self.logger.info(
                f"{spec.name}: {progress.offset}/{progress.total_count} processed "
                f"({written.inserted} inserted, {written.skipped} skipped, {len(written.errors)} errors)"
            )

            if self.config.batch_delay > 0:
                self._sleep(self.config.batch_delay)

        progress.status = EntityStatus.COMPLETED
        self.logger.info(
            f"Completed {spec.name}: {progress.migrated_count} migrated, "
            f"{progress.error_count} errors, {progress.skipped_count} skipped"
        )
        if progress.fallback_count:
            self.logger.warning(f"{spec.name}: {progress.fallback_count} enum fallbacks applied")

    def _build_report(
        self,
        results: Dict[str, TypeResult],
        started_at: datetime,
        start: float,
        aborted_at: Optional[str] = None
    ) -> MigrationReport:
        return MigrationReport(
            per_type=dict(results),
            duration_seconds=round(time.monotonic() - start, 3),
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            dry_run=self.config.dry_run,
            aborted_at=aborted_at,
        )

    def _save_report(self) -> Path:
        """Save the migration report."""
        directory = Path(self.config.output_dir)
        directory.mkdir(parents=True, exist_ok=True)
        filepath = directory / f"migration_report_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}.json"
        data = self.report.to_dict()
        data["config"] = self.config.to_dict()
        data["row_errors"] = [e.to_dict() for e in self.row_errors]
        with open(filepath, 'w') as f:
            json.dump(data, f, indent=2, default=str)
        self.logger.info(f"Saved migration report to {filepath}")
        self.report_path = filepath
        return filepath
