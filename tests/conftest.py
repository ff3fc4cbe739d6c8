"""Shared fakes and fixtures."""

import asyncio
import json
from typing import Any

import httpx
import pytest
from loguru import logger

from kinto_http.transport import TransportResponse

# Frozen clock, in ms
NOW = 1000 * 1000


def fake_response(
    status: int,
    body: Any = None,
    headers: dict[str, str] | None = None,
    status_text: str | None = None,
) -> TransportResponse:
    """Build a transport response the way a server would send it."""
    text = json.dumps(body) if body is not None else ""
    all_headers = {"Content-Length": str(len(text))} if text else {}
    all_headers.update(headers or {})
    return TransportResponse(
        status=status,
        status_text=status_text if status_text is not None else httpx.codes.get_reason_phrase(status),
        headers=httpx.Headers(all_headers),
        body=text,
    )


class FakeTransport:
    """Replays queued responses; the last one is repeated once the queue is drained."""

    def __init__(self, *responses: TransportResponse | Exception):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def send(self, url, *, method, headers, body, mode) -> TransportResponse:
        self.calls.append(
            {"url": url, "method": method, "headers": dict(headers), "body": body, "mode": mode}
        )
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


class HangingTransport:
    """Never answers in time; records whether it was cancelled."""

    def __init__(self) -> None:
        self.cancelled = False

    async def send(self, url, *, method, headers, body, mode) -> TransportResponse:
        try:
            await asyncio.sleep(20)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return fake_response(200, {})


class RecordingSink:
    """EventSink keeping every emitted signal."""

    def __init__(self) -> None:
        self.emitted: list[tuple[str, Any]] = []

    def on(self, name, handler) -> None:
        pass

    def emit(self, name, payload) -> None:
        self.emitted.append((name, payload))

    def payloads(self, name: str) -> list[Any]:
        return [payload for signal, payload in self.emitted if signal == name]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
