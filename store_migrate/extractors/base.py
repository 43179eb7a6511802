"""Base source reader interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from ..models.entity import RawRecord

logger = logging.getLogger(__name__)


@dataclass
class PageResult:
    """One page of raw records plus the collection's total-count hint."""
    records: List[RawRecord] = field(default_factory=list)
    total_count: int = 0

    @property
    def empty(self) -> bool:
        return not self.records

    def to_dict(self) -> Dict[str, Any]:
        return {"record_count": len(self.records), "total_count": self.total_count}


class SourceReader(ABC):
    """
    Base class for all source stores.

    Readers return pages of raw records ordered by a stable creation
    timestamp. An empty page with an unchanged total signals the end of
    a collection. A reader never swallows connectivity failures: they
    surface as ``ConnectivityError`` for the caller to handle.
    """

    store_name = "source"

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(self.__class__.__module__)

    @abstractmethod
    def fetch_page(
        self,
        collection: str,
        offset: int,
        limit: int,
        order_by: str = "created_at"
    ) -> PageResult:
        """
        Fetch one page of records.

        Args:
            collection: Source collection name
            offset: Zero-based offset of the first record
            limit: Maximum number of records
            order_by: Creation timestamp field used for ordering

        Returns:
            PageResult with the records and the total count
        """
        pass

    @abstractmethod
    def ping(self, collection: str) -> int:
        """
        Probe connectivity to a collection.

        Returns:
            Number of records in the collection
        """
        pass

    def count(self, collection: str) -> int:
        """Count the records in a collection."""
        return self.ping(collection)

    def validate_source(self) -> List[str]:
        """
        Validate the reader configuration.

        Returns:
            List of validation error messages
        """
        return []

    def close(self) -> None:
        """Release any resources held by the reader."""
