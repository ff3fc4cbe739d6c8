"""
HistoryReader - Paged listing of a bucket's history log.

Pages are fetched one after the other by following the Next-Page response
header, which keeps entries in the order requested from the server.
"""

import math
from typing import Any, Mapping

import httpx
from loguru import logger

from kinto_http.errors import InvalidArgumentError
from kinto_http.http import HTTP
from kinto_http.models import ChangeEvent, PaginatedResult
from kinto_http.utils import merge_headers, unquote


def listing_url(
    endpoint: str,
    filters: Mapping[str, Any] | None = None,
    sort: str | None = None,
    limit: int | None = None,
    since: int | str | None = None,
) -> str:
    """Build a listing URL with its querystring."""
    params: dict[str, str] = {k: str(v) for k, v in (filters or {}).items()}
    if sort:
        params["_sort"] = sort
    if limit is not None:
        params["_limit"] = str(limit)
    if since is not None:
        params["_since"] = str(since)
    return str(httpx.URL(endpoint, params=params))


async def fetch_pages(
    http: HTTP,
    url: str,
    pages: float = 1,
    headers: Mapping[str, str] | None = None,
    retry: int | None = None,
) -> PaginatedResult:
    """
    Fetch up to ``pages`` pages of a listing, starting at ``url``.

    Page N+1 is only requested once page N has been received.
    """
    if not (pages == math.inf or (isinstance(pages, int) and pages >= 1)):
        raise InvalidArgumentError(f"Invalid pages value {pages!r}")

    entries: list[dict[str, Any]] = []
    total_records: int | None = None
    last_modified: str | None = None
    next_page: str | None = url
    fetched = 0

    while next_page and fetched < pages:
        response = await http.request(next_page, headers=headers, retry=retry)
        fetched += 1
        body = response.json or {}
        entries.extend(body.get("data", []))

        if fetched == 1:
            total = response.headers.get("Total-Records")
            total_records = int(total) if total is not None else None
            last_modified = unquote(response.headers.get("ETag"))

        next_page = response.headers.get("Next-Page")
        logger.debug(f"Fetched page {fetched} of {url} ({len(entries)} entries so far)")

    remaining = next_page

    async def fetch_next() -> PaginatedResult:
        return await fetch_pages(http, remaining, pages, headers, retry)

    return PaginatedResult(
        data=entries,
        has_next_page=bool(remaining),
        total_records=total_records,
        last_modified=last_modified,
        _next=fetch_next if remaining else None,
    )


class HistoryReader:
    """
    Lists history entries of one bucket.

    Usage:
        reader = HistoryReader(http, "http://localhost:8888/v1", "main")
        result = await reader.list({"resource_name": "record"}, pages=math.inf)
    """

    def __init__(
        self,
        http: HTTP,
        remote: str,
        bucket: str,
        headers: Mapping[str, str] | None = None,
    ):
        self._http = http
        self.remote = remote.rstrip("/")
        self.bucket = bucket
        self.headers = dict(headers or {})

    @property
    def endpoint(self) -> str:
        return f"{self.remote}/buckets/{self.bucket}/history"

    async def list(
        self,
        filters: Mapping[str, Any] | None = None,
        *,
        sort: str | None = "-last_modified",
        limit: int | None = None,
        pages: float = 1,
        since: int | str | None = None,
        headers: Mapping[str, str] | None = None,
        retry: int | None = None,
    ) -> PaginatedResult:
        """
        List history entries.

        Args:
            filters: Querystring filters, e.g. {"resource_name": "record"}
            sort: Sort field, prefixed with "-" for descending order
            limit: Number of entries per page
            pages: Number of pages to aggregate, math.inf for all of them
            since: Only entries newer than this timestamp
            headers: Extra request headers
            retry: Retry budget for each page request

        Returns:
            PaginatedResult whose data holds the raw history entries
        """
        url = listing_url(self.endpoint, filters, sort=sort, limit=limit, since=since)
        return await fetch_pages(
            self._http, url, pages, merge_headers(self.headers, headers), retry
        )

    async def list_events(
        self, filters: Mapping[str, Any] | None = None, **kwargs: Any
    ) -> "list[ChangeEvent]":
        """Same as list(), returning the entries as ChangeEvent objects."""
        result = await self.list(filters, **kwargs)
        return [ChangeEvent.from_entry(entry) for entry in result.data]
