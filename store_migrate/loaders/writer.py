"""Idempotent batch writer for the target store."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import json
import logging

from .base import TargetStore
from ..errors import RowWriteError, StatementError
from ..models.entity import CanonicalRow
from ..models.migration import ExistingRowPolicy
from ..models.record import RowError

logger = logging.getLogger(__name__)


@dataclass
class WriteResult:
    """Result of writing one batch."""
    table: str
    inserted: int = 0
    skipped: int = 0
    errors: List[RowError] = field(default_factory=list)
    existing_keys: List[Any] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.inserted + self.skipped + len(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "errors": [e.to_dict() for e in self.errors],
            "existing_keys": self.existing_keys,
        }


class TargetWriter:
    """
    Writes canonical rows, one existence check and one insert per row.

    A row whose primary key is already present is skipped, so a re-run
    never inserts duplicates. A row without a primary key value, or one
    the target rejects, becomes a ``RowError`` and the batch carries on.
    Connectivity failures are not row errors and propagate to the caller.
    """

    def __init__(
        self,
        target: TargetStore,
        existing_rows: ExistingRowPolicy = ExistingRowPolicy.SKIP,
        dry_run: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the writer.

        Args:
            target: Connected target store
            existing_rows: How already-present rows are surfaced
            dry_run: If True, run existence checks but issue no inserts
            logger: Logger for progress output
        """
        self.target = target
        self.existing_rows = ExistingRowPolicy(existing_rows)
        self.dry_run = dry_run
        self.logger = logger or logging.getLogger(__name__)

    def exists(self, table: str, primary_key: str, key: Any) -> bool:
        statement = (
            f"SELECT {self.target.quote(primary_key)} FROM {self.target.quote(table)} "
            f"WHERE {self.target.quote(primary_key)} = {self.target.placeholder} LIMIT 1"
        )
        return bool(self.target.query(statement, (key,)))

    def insert(self, table: str, row: CanonicalRow, key: Any = None) -> None:
        columns = list(row)
        column_list = ", ".join(self.target.quote(c) for c in columns)
        placeholders = ", ".join([self.target.placeholder] * len(columns))
        statement = f"INSERT INTO {self.target.quote(table)} ({column_list}) VALUES ({placeholders})"
        try:
            self.target.execute(statement, [row[c] for c in columns])
        except StatementError as e:
            raise RowWriteError(e.message, table, key, row) from e

    def write_batch(
        self,
        table: str,
        rows: Sequence[CanonicalRow],
        primary_key: str = "id"
    ) -> WriteResult:
        """
        Write a batch of rows.

        Args:
            table: Target table
            rows: Canonical rows in source order
            primary_key: Field used for the existence check

        Returns:
            WriteResult with inserted, skipped and failed rows
        """
        result = WriteResult(table=table)

        for row in rows:
            key = row.get(primary_key)
            if key is None:
                error = f"Missing primary key {primary_key}"
                result.errors.append(RowError(table=table, key=None, error=error, payload=row))
                self._log_row_error(table, key, error, row)
                continue

            try:
                if self.exists(table, primary_key, key):
                    result.skipped += 1
                    result.existing_keys.append(key)
                    if self.existing_rows == ExistingRowPolicy.REPORT:
                        self.logger.info(f"{table} {key} already migrated")
                    else:
                        self.logger.debug(f"Skipping existing {table} {key}")
                    continue

                if not self.dry_run:
                    self.insert(table, row, key)
                result.inserted += 1

            except (StatementError, RowWriteError) as e:
                result.errors.append(RowError(table=table, key=key, error=e.message, payload=row))
                self._log_row_error(table, key, e.message, row)

        return result

    def _log_row_error(self, table: str, key: Any, error: str, row: CanonicalRow) -> None:
        self.logger.error(
            f"Error inserting {table} {key}: {error} | payload: {json.dumps(row, default=str)}"
        )
