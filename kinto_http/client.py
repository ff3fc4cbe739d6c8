"""
KintoClient - Entry point binding the request engine to a Kinto server.

Options are layered with merge_options():
    library defaults < client options < bucket options < collection options < call options
"""

from typing import Any, Callable, Mapping

from loguru import logger

from kinto_http.events import EventEmitter, EventSink
from kinto_http.history import HistoryReader, fetch_pages, listing_url
from kinto_http.http import HTTP, HttpResponse
from kinto_http.models import PaginatedResult, Snapshot
from kinto_http.settings import global_settings
from kinto_http.snapshot import reconstruct, validate_revision
from kinto_http.transport import FormData, Transport
from kinto_http.utils import merge_options, require_capability, unquote


class KintoClient:
    """
    Client for a Kinto server.

    Usage:
        async with KintoClient("http://localhost:8888/v1", retry=2) as client:
            snapshot = await client.bucket("main").collection("tasks").get_snapshot(1500000000000)
    """

    def __init__(
        self,
        remote: str | None = None,
        *,
        bucket: str | None = None,
        events: EventSink | None = None,
        transport: Transport | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        retry: int | None = None,
        request_mode: str | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.remote = (remote or global_settings.remote).rstrip("/")
        self.default_bucket = bucket or global_settings.bucket
        self.events = events if events is not None else EventEmitter()
        self.http = HTTP(
            self.events,
            transport=transport,
            timeout=timeout,
            retry=retry,
            request_mode=request_mode,
            clock=clock,
        )
        self.options: dict[str, Any] = merge_options({"headers": headers})
        self._server_info: dict[str, Any] | None = None

    async def execute(
        self,
        path: str,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        body: str | bytes | FormData | None = None,
        timeout: float | None = None,
        retry: int | None = None,
    ) -> HttpResponse:
        """Send a request to a path of the server, with the client headers."""
        options = merge_options(self.options, {"headers": headers})
        return await self.http.request(
            f"{self.remote}{path}",
            method=method,
            headers=options.get("headers"),
            body=body,
            timeout=timeout,
            retry=retry,
        )

    async def server_info(self, force: bool = False) -> dict[str, Any]:
        """Fetch (and cache) the server root document."""
        if self._server_info is None or force:
            response = await self.execute("/")
            self._server_info = response.json or {}
        return self._server_info

    async def require_capability(self, capability: str) -> None:
        """Raise CapabilityError unless the server supports the capability."""
        require_capability(await self.server_info(), capability)

    def bucket(self, name: str | None = None, headers: Mapping[str, str] | None = None) -> "Bucket":
        return Bucket(self, name or self.default_bucket, headers=headers)

    async def close(self) -> None:
        aclose = getattr(self.http.transport, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.debug("KintoClient closed")

    async def __aenter__(self) -> "KintoClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class Bucket:
    def __init__(self, client: KintoClient, name: str, headers: Mapping[str, str] | None = None):
        self.client = client
        self.name = name
        self.options = merge_options(client.options, {"headers": headers})

    @property
    def history(self) -> HistoryReader:
        return HistoryReader(
            self.client.http, self.client.remote, self.name, self.options.get("headers")
        )

    async def list_history(self, filters: Mapping[str, Any] | None = None, **kwargs: Any) -> PaginatedResult:
        """List the bucket history. See HistoryReader.list()."""
        return await self.history.list(filters, **kwargs)

    def collection(self, name: str, headers: Mapping[str, str] | None = None) -> "Collection":
        return Collection(self, name, headers=headers)


class Collection:
    def __init__(self, bucket: Bucket, name: str, headers: Mapping[str, str] | None = None):
        self.bucket = bucket
        self.client = bucket.client
        self.name = name
        self.options = merge_options(bucket.options, {"headers": headers})

    @property
    def records_path(self) -> str:
        return f"/buckets/{self.bucket.name}/collections/{self.name}/records"

    def _headers(self, headers: Mapping[str, str] | None) -> dict[str, str] | None:
        return merge_options(self.options, {"headers": headers}).get("headers")

    async def get_total_records(self, headers: Mapping[str, str] | None = None) -> int:
        """Number of records in the collection, from the Total-Records header."""
        response = await self.client.execute(
            self.records_path, method="HEAD", headers=self._headers(headers)
        )
        return int(response.headers["Total-Records"])

    async def get_records_timestamp(self, headers: Mapping[str, str] | None = None) -> str | None:
        """Timestamp of the records list, from the ETag header."""
        response = await self.client.execute(
            self.records_path, method="HEAD", headers=self._headers(headers)
        )
        return unquote(response.headers.get("ETag"))

    async def list_records(
        self,
        *,
        at: int | None = None,
        filters: Mapping[str, Any] | None = None,
        sort: str = "-last_modified",
        limit: int | None = None,
        pages: float = 1,
        since: int | str | None = None,
        headers: Mapping[str, str] | None = None,
        retry: int | None = None,
    ) -> PaginatedResult | Snapshot:
        """
        List records, or the snapshot of the collection at timestamp ``at``.

        Snapshots ignore the listing options and cannot be paginated.
        """
        if at is not None:
            return await self.get_snapshot(at)

        url = listing_url(
            f"{self.client.remote}{self.records_path}",
            filters,
            sort=sort,
            limit=limit,
            since=since,
        )
        return await fetch_pages(self.client.http, url, pages, self._headers(headers), retry)

    async def get_snapshot(self, at: int) -> Snapshot:
        """Records of the collection as they were at timestamp ``at``."""
        validate_revision(at)
        await self.client.require_capability("history")
        return await reconstruct(self.name, at, self.bucket.history)
