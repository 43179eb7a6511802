"""Source reader for JSON table exports."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dateutil import parser as date_parser

from .base import PageResult, SourceReader
from ..errors import ConnectivityError
from ..models.entity import RawRecord

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _sort_timestamp(value: Any) -> datetime:
    """Parse a creation timestamp for ordering; missing values sort first."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = date_parser.isoparse(value)
        except (ValueError, OverflowError):
            return _EPOCH
    else:
        return _EPOCH

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class JSONExportExtractor(SourceReader):
    """
    Reader for table exports stored as ``<directory>/<collection>.json``.

    Each file holds a JSON array of records, or an object with a
    ``data`` array. Records are served in creation order with the
    primary key as tie breaker, the same order the live source uses.
    """

    store_name = "json-export"

    def __init__(
        self,
        directory: str,
        tie_breaker: str = "id",
        encoding: str = "utf-8",
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the export reader.

        Args:
            directory: Directory containing one JSON file per collection
            tie_breaker: Secondary ordering field
            encoding: File encoding
            logger: Logger for progress output
        """
        super().__init__(logger)
        self.directory = Path(directory)
        self.tie_breaker = tie_breaker
        self.encoding = encoding
        self._cache: Dict[Tuple[str, str], List[RawRecord]] = {}

    def _path(self, collection: str) -> Path:
        return self.directory / f"{collection}.json"

    def _load(self, collection: str, order_by: str) -> List[RawRecord]:
        key = (collection, order_by)
        if key in self._cache:
            return self._cache[key]

        path = self._path(collection)
        if not path.exists():
            raise ConnectivityError(
                f"Export file not found: {path}",
                store=self.store_name,
                operation=f"read {collection}",
            )

        try:
            with open(path, encoding=self.encoding) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConnectivityError(
                f"Failed to read export {path}: {e}",
                store=self.store_name,
                operation=f"read {collection}",
            ) from e

        if isinstance(data, dict):
            data = data.get("data", [])
        if not isinstance(data, list):
            raise ConnectivityError(
                f"Export {path} does not contain a list of records",
                store=self.store_name,
                operation=f"read {collection}",
            )

        records = sorted(data, key=lambda r: self._sort_key(r, order_by))
        self._cache[key] = records
        self.logger.info(f"Loaded {len(records)} {collection} records from {path}")
        return records

    def _sort_key(self, record: Any, order_by: str) -> Tuple[datetime, str]:
        # Non-object entries sort first and are rejected by the transform
        if not isinstance(record, dict):
            return _EPOCH, ""
        return _sort_timestamp(record.get(order_by)), str(record.get(self.tie_breaker, ""))

    def fetch_page(
        self,
        collection: str,
        offset: int,
        limit: int,
        order_by: str = "created_at"
    ) -> PageResult:
        """Serve one slice of the export."""
        records = self._load(collection, order_by)
        return PageResult(records=records[offset:offset + limit], total_count=len(records))

    def ping(self, collection: str) -> int:
        """Count the records in the export file."""
        return len(self._load(collection, "created_at"))

    def validate_source(self) -> List[str]:
        if not self.directory.is_dir():
            return [f"Export directory does not exist: {self.directory}"]
        return []
