"""Supabase (PostgREST) source reader."""

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import PageResult, SourceReader
from ..errors import ConnectivityError

logger = logging.getLogger(__name__)


def parse_content_range(header: Optional[str]) -> Optional[int]:
    """
    Extract the total from a ``Content-Range`` header.

    PostgREST answers ``0-99/250`` for a page and ``*/0`` for an empty
    range; the total is ``*`` when the count was not requested.
    """
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1].strip()
    if not total.isdigit():
        return None
    return int(total)


class SupabaseExtractor(SourceReader):
    """
    Reader for Supabase tables exposed through the PostgREST API.

    Pages are ordered by the creation timestamp, with the primary key as
    a tie breaker, so rows written to the source during a run do not
    shift already-read pages.
    """

    store_name = "supabase"

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = 30.0,
        max_retries: int = 0,
        tie_breaker: str = "id",
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the Supabase reader.

        Args:
            url: Project URL, e.g. https://xyz.supabase.co
            api_key: Service or anon key
            timeout: Request timeout in seconds
            max_retries: Transport retries for 429/5xx responses
            tie_breaker: Secondary ordering column
            session: Custom requests session
            logger: Logger for progress output
        """
        super().__init__(logger)
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.tie_breaker = tie_breaker
        self._session = session or self._create_session()
        self._totals: Dict[str, int] = {}

    def _create_session(self) -> requests.Session:
        """Create a requests session with optional retry logic."""
        session = requests.Session()

        if self.max_retries > 0:
            retries = Retry(
                total=self.max_retries,
                backoff_factor=2.0,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["GET", "HEAD"],
            )
            adapter = HTTPAdapter(max_retries=retries)
            session.mount("https://", adapter)
            session.mount("http://", adapter)

        return session

    def _get_headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Prefer": "count=exact",
            "Accept": "application/json",
        }

    def _endpoint(self, collection: str) -> str:
        return f"{self.url}/rest/v1/{collection}"

    def _order_clause(self, order_by: str) -> str:
        if not self.tie_breaker or self.tie_breaker == order_by:
            return f"{order_by}.asc"
        return f"{order_by}.asc,{self.tie_breaker}.asc"

    def _request(
        self,
        method: str,
        collection: str,
        params: Dict[str, Any],
        tolerated: tuple = ()
    ) -> requests.Response:
        operation = f"{method} {collection}"
        try:
            response = self._session.request(
                method,
                self._endpoint(collection),
                headers=self._get_headers(),
                params=params,
                timeout=self.timeout,
            )
            if response.status_code not in tolerated:
                response.raise_for_status()
            return response

        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            body = e.response.text[:500] if e.response is not None else ""
            raise ConnectivityError(
                f"Supabase returned HTTP {status} for {operation}: {body}",
                store=self.store_name,
                operation=operation,
            ) from e
        except requests.exceptions.RequestException as e:
            raise ConnectivityError(
                f"Failed to reach Supabase for {operation}: {e}",
                store=self.store_name,
                operation=operation,
            ) from e

    def fetch_page(
        self,
        collection: str,
        offset: int,
        limit: int,
        order_by: str = "created_at"
    ) -> PageResult:
        """Fetch one page of records ordered by creation time."""
        params = {
            "select": "*",
            "order": self._order_clause(order_by),
            "offset": offset,
            "limit": limit,
        }
        # Offsets past the end answer 416 with the total in Content-Range
        response = self._request("GET", collection, params, tolerated=(416,))
        if response.status_code == 416:
            total = parse_content_range(response.headers.get("Content-Range"))
            if total is None:
                total = self._totals.get(collection, offset)
            return PageResult(records=[], total_count=total)

        try:
            records = response.json()
        except ValueError as e:
            raise ConnectivityError(
                f"Supabase returned a non-JSON body for {collection}: {e}",
                store=self.store_name,
                operation=f"GET {collection}",
            ) from e

        if not isinstance(records, list):
            records = [records]

        total = parse_content_range(response.headers.get("Content-Range"))
        if total is None:
            total = self._totals.get(collection, offset + len(records))
        self._totals[collection] = total

        self.logger.debug(
            f"Fetched {len(records)} {collection} records at offset {offset} (total {total})"
        )
        return PageResult(records=records, total_count=total)

    def ping(self, collection: str) -> int:
        """Count a collection with a HEAD request."""
        response = self._request("HEAD", collection, {"select": "*", "limit": 1})
        total = parse_content_range(response.headers.get("Content-Range"))
        if total is None:
            raise ConnectivityError(
                f"Supabase did not return a count for {collection}",
                store=self.store_name,
                operation=f"HEAD {collection}",
            )
        self._totals[collection] = total
        return total

    def validate_source(self) -> List[str]:
        """Validate the Supabase configuration."""
        errors = []

        if not self.url:
            errors.append("SUPABASE_URL is required")
        elif not self.url.startswith(("http://", "https://")):
            errors.append(f"SUPABASE_URL must be an http(s) URL: {self.url}")

        if not self.api_key:
            errors.append("A Supabase API key is required")

        return errors

    def close(self) -> None:
        self._session.close()
