"""Tests for HistoryReader and paged listings."""

import math

import httpx
import pytest

from kinto_http.errors import InvalidArgumentError, KintoError
from kinto_http.events import EventEmitter
from kinto_http.history import HistoryReader, listing_url
from kinto_http.http import HTTP
from kinto_http.transport import HttpxTransport

REMOTE = "http://server/v1"


def paged_handler(pages: list[list[dict]], requests: list[httpx.Request]):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        index = int(request.url.params.get("_token", 0))
        headers = {"Total-Records": str(sum(len(p) for p in pages)), "ETag": '"1500"'}
        if index + 1 < len(pages):
            headers["Next-Page"] = str(request.url.copy_merge_params({"_token": str(index + 1)}))
        return httpx.Response(200, json={"data": pages[index]}, headers=headers)

    return handler


def make_reader(handler, headers=None) -> HistoryReader:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    http = HTTP(EventEmitter(), transport=HttpxTransport(client))
    return HistoryReader(http, REMOTE + "/", "main", headers=headers)


PAGES = [
    [{"id": "h3", "last_modified": 3}],
    [{"id": "h2", "last_modified": 2}],
    [{"id": "h1", "last_modified": 1}],
]


class TestListingUrl:
    def test_builds_querystring(self):
        url = listing_url(
            "http://server/v1/buckets/main/history",
            {"resource_name": "record", "gt_last_modified": 42},
            sort="-last_modified",
            limit=10,
            since=12,
        )
        params = httpx.URL(url).params
        assert params["resource_name"] == "record"
        assert params["gt_last_modified"] == "42"
        assert params["_sort"] == "-last_modified"
        assert params["_limit"] == "10"
        assert params["_since"] == "12"


class TestHistoryReader:
    async def test_endpoint(self):
        reader = make_reader(paged_handler(PAGES, []))
        assert reader.endpoint == "http://server/v1/buckets/main/history"

    async def test_single_page_by_default(self):
        requests: list[httpx.Request] = []
        result = await make_reader(paged_handler(PAGES, requests)).list()
        assert [e["id"] for e in result.data] == ["h3"]
        assert result.has_next_page is True
        assert result.total_records == 3
        assert result.last_modified == "1500"
        assert len(requests) == 1

    async def test_all_pages(self):
        requests: list[httpx.Request] = []
        result = await make_reader(paged_handler(PAGES, requests)).list(pages=math.inf)
        assert [e["id"] for e in result.data] == ["h3", "h2", "h1"]
        assert result.has_next_page is False
        assert len(requests) == 3

    async def test_next(self):
        requests: list[httpx.Request] = []
        first = await make_reader(paged_handler(PAGES, requests)).list()
        second = await first.next()
        assert [e["id"] for e in second.data] == ["h2"]
        assert second.has_next_page is True

    async def test_next_when_exhausted(self):
        result = await make_reader(paged_handler(PAGES, [])).list(pages=math.inf)
        with pytest.raises(KintoError, match="Pagination exhausted"):
            await result.next()

    @pytest.mark.parametrize("pages", [0, -1, 1.5, "all"])
    async def test_invalid_pages(self, pages):
        requests: list[httpx.Request] = []
        with pytest.raises(InvalidArgumentError):
            await make_reader(paged_handler(PAGES, requests)).list(pages=pages)
        assert requests == []

    async def test_default_and_call_headers(self):
        requests: list[httpx.Request] = []
        reader = make_reader(paged_handler(PAGES, requests), headers={"Authorization": "Bearer a"})
        await reader.list(headers={"X-Trace": "1"})
        assert requests[0].headers["Authorization"] == "Bearer a"
        assert requests[0].headers["X-Trace"] == "1"

    async def test_list_events(self):
        def handler(request: httpx.Request) -> httpx.Response:
            data = [
                {
                    "action": "delete",
                    "last_modified": 12,
                    "target": {"data": {"id": "r1", "last_modified": 12, "deleted": True}},
                }
            ]
            return httpx.Response(200, json={"data": data})

        events = await make_reader(handler).list_events({"resource_name": "record"})
        assert len(events) == 1
        assert events[0].action == "delete"
        assert events[0].target_id == "r1"
        assert events[0].revision == 12
