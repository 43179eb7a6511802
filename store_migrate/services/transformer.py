"""Transformation of raw source records into canonical relational rows."""

import json
import logging
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from dateutil import parser as date_parser

from ..errors import ConfigurationError, RowTransformError
from ..models.entity import CanonicalRow, EntityTypeSpec, RawRecord
from ..models.record import EnumFallback, TransformResult

logger = logging.getLogger(__name__)

CANONICAL_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# ISO-8601 date followed by a time component
_ISO_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}T")


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json(value: Any) -> str:
    """Serialize a nested structure to a JSON string."""
    return json.dumps(value, default=_json_default, allow_nan=False, ensure_ascii=False)


def is_timestamp_like(value: Any) -> bool:
    """Check for native dates or ISO-8601 strings carrying a time part."""
    if isinstance(value, (datetime, date)):
        return True
    return isinstance(value, str) and bool(_ISO_TIMESTAMP.match(value))


def to_canonical_timestamp(value: Any) -> Any:
    """
    Rewrite a timestamp-shaped value as ``YYYY-MM-DD HH:MM:SS`` in UTC.

    Naive values are taken to be UTC already. Strings that look like
    timestamps but fail to parse are returned unchanged.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = date_parser.isoparse(value)
        except (ValueError, OverflowError):
            logger.debug(f"Leaving unparseable timestamp as is: {value!r}")
            return value

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed.strftime(CANONICAL_TIMESTAMP_FORMAT)


def _in_domain(value: Any, values: Iterable[str]) -> bool:
    try:
        return value in values
    except TypeError:  # unhashable
        return False


def coerce_value(value: Any) -> Any:
    """Apply the generic coercion rules to a single value."""
    if value is None:
        return None
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (dict, list, tuple)):
        return to_json(list(value) if isinstance(value, tuple) else value)
    if is_timestamp_like(value):
        return to_canonical_timestamp(value)
    if isinstance(value, Decimal):
        return str(value)
    return value


class TransformRegistry:
    """
    Registry of pure per-entity transforms.

    Every registered entity type goes through the same pipeline:
    optional ``prepare`` hook, schema projection, enum fallbacks and
    value coercion. A transform has no hidden state: the same record
    always produces the same row and the same fallback list.
    """

    def __init__(self, specs: Optional[Iterable[EntityTypeSpec]] = None):
        self._specs: Dict[str, EntityTypeSpec] = {}
        self._columns: Dict[str, Sequence[str]] = {}
        for spec in specs or ():
            self.register(spec)

    def register(self, spec: EntityTypeSpec, columns: Optional[Sequence[str]] = None) -> None:
        """Register a spec, optionally overriding its projection columns."""
        self._specs[spec.name] = spec
        if columns is not None:
            self._columns[spec.name] = tuple(columns)
        elif spec.columns:
            self._columns[spec.name] = spec.columns

    def set_columns(self, entity_type: str, columns: Sequence[str]) -> None:
        """Use the target table's columns for projection."""
        self._get_spec(entity_type)
        self._columns[entity_type] = tuple(columns)

    def columns(self, entity_type: str) -> Optional[Sequence[str]]:
        return self._columns.get(entity_type)

    def has(self, entity_type: str) -> bool:
        return entity_type in self._specs

    def _get_spec(self, entity_type: str) -> EntityTypeSpec:
        spec = self._specs.get(entity_type)
        if spec is None:
            raise ConfigurationError(f"No transform registered for entity type: {entity_type}")
        return spec

    def transform(self, entity_type: str, record: RawRecord) -> TransformResult:
        """
        Transform one raw record into a canonical row.

        Raises:
            RowTransformError: If any value cannot be coerced
        """
        spec = self._get_spec(entity_type)
        record_id = record.get(spec.primary_key) if isinstance(record, dict) else None

        if not isinstance(record, dict):
            raise RowTransformError(
                f"Expected a mapping, got {type(record).__name__}",
                entity_type=entity_type,
            )

        try:
            data = spec.prepare(dict(record)) if spec.prepare else dict(record)
        except Exception as e:
            raise RowTransformError(
                f"Prepare hook failed: {e}", entity_type, record_id, record
            ) from e

        columns = self._columns.get(entity_type)
        dropped: List[str] = []
        if columns is not None:
            dropped = [key for key in data if key not in columns]
            data = {key: value for key, value in data.items() if key in columns}

        fallbacks: List[EnumFallback] = []
        row: CanonicalRow = {}

        for key, value in data.items():
            domain = spec.enums.get(key)
            if domain is not None and value is not None and not _in_domain(value, domain.values):
                fallbacks.append(EnumFallback(field=key, original=value, fallback=domain.fallback))
                value = domain.fallback

            try:
                row[key] = coerce_value(value)
            except (TypeError, ValueError) as e:
                raise RowTransformError(
                    f"Cannot coerce field '{key}': {e}", entity_type, record_id, record
                ) from e

        return TransformResult(row=row, fallbacks=fallbacks, dropped_fields=dropped)

    def transform_row(self, entity_type: str, record: RawRecord) -> CanonicalRow:
        """Transform and return only the canonical row."""
        return self.transform(entity_type, record).row
