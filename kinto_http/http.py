"""
HTTP - Resilient request engine for the Kinto API.

Each call to HTTP.request():
- merges default and caller headers (case-insensitive, caller wins)
- races the transport against the configured deadline
- decodes the JSON body, if any
- turns the Backoff, Retry-After and Alert response headers into signals
- classifies the status, retrying 503 responses while the retry budget lasts

A request abandoned on timeout is cancelled on the client side only: the
server may still receive and apply it.
"""

import asyncio
import json
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Mapping

from loguru import logger

from kinto_http.errors import (
    InvalidArgumentError,
    NetworkTimeoutError,
    ServerResponse,
    UnparseableResponseError,
)
from kinto_http.events import BACKOFF, DEPRECATED, RETRY_AFTER, EventSink
from kinto_http.settings import global_settings
from kinto_http.transport import FormData, HttpxTransport, Transport, TransportResponse
from kinto_http.utils import merge_headers, merge_options

DEFAULT_REQUEST_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}

# Lower bound for the wait between two attempts, in seconds
MIN_RETRY_DELAY = 0.005

TRANSIENT_OVERLOAD_STATUS = 503


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class RequestConfig:
    """Per-call request settings."""

    timeout: float | None = None  # seconds, None for no deadline
    retry: int = 0  # retries allowed on 503 responses
    request_mode: str = "cors"

    @classmethod
    def from_settings(cls) -> "RequestConfig":
        return cls(
            timeout=global_settings.timeout,
            retry=global_settings.retry,
            request_mode=global_settings.request_mode,
        )


@dataclass
class HttpResponse:
    """Successful response."""

    status: int
    json: Any
    headers: Mapping[str, str]


class HTTP:
    """
    Request engine emitting lifecycle signals on an EventSink.

    Usage:
        events = EventEmitter()
        http = HTTP(events, timeout=5, retry=2)
        response = await http.request("http://localhost:8888/v1/")

    Concurrent calls share no retry state; the EventSink is the only shared
    collaborator.
    """

    DEFAULT_REQUEST_HEADERS = DEFAULT_REQUEST_HEADERS

    def __init__(
        self,
        events: EventSink,
        transport: Transport | None = None,
        timeout: float | None = None,
        retry: int | None = None,
        request_mode: str | None = None,
        clock: Callable[[], float] | None = None,
    ):
        if events is None or not isinstance(events, EventSink):
            raise InvalidArgumentError("No events handler provided")
        self.events = events
        self.transport = transport or HttpxTransport()
        self.config = self._build_config(
            RequestConfig.from_settings(),
            {"timeout": timeout, "retry": retry, "request_mode": request_mode},
        )
        # Milliseconds since epoch, sampled once per attempt
        self._clock = clock or _now_ms

    @property
    def request_mode(self) -> str:
        return self.config.request_mode

    @staticmethod
    def _build_config(base: RequestConfig, overrides: Mapping[str, Any]) -> RequestConfig:
        config = RequestConfig(**merge_options(asdict(base), overrides))
        if not isinstance(config.retry, int) or isinstance(config.retry, bool) or config.retry < 0:
            raise InvalidArgumentError(
                f"Invalid retry budget {config.retry!r}, expected a non-negative integer"
            )
        return config

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        body: str | bytes | FormData | None = None,
        mode: str | None = None,
        timeout: float | None = None,
        retry: int | None = None,
    ) -> HttpResponse:
        """
        Send a request, retrying on 503 while the retry budget lasts.

        Args:
            url: Full URL to request
            method: HTTP method
            headers: Headers overriding the default ones
            body: Serialized JSON body, or FormData for multipart uploads
            mode: Cross-origin mode, overriding the instance one
            timeout: Deadline in seconds, overriding the instance one
            retry: Retry budget, overriding the instance one

        Returns:
            HttpResponse with status, decoded JSON body (or None) and headers

        Raises:
            NetworkTimeoutError: If the deadline expires
            UnparseableResponseError: If the body is not valid JSON
            ServerResponse: If the status is >= 400
            TransportError: On connection failures
        """
        config = self._build_config(
            self.config, {"timeout": timeout, "retry": retry, "request_mode": mode}
        )

        request_headers = merge_headers(DEFAULT_REQUEST_HEADERS, headers)
        if isinstance(body, FormData):
            # Let the transport set the multipart boundary
            request_headers = {
                k: v for k, v in request_headers.items() if k.lower() != "content-type"
            }

        options = {"method": method, "mode": config.request_mode, "headers": request_headers}
        retries_left = config.retry

        while True:
            try:
                return await self._attempt(url, options, body, config.timeout)
            except ServerResponse as e:
                if e.status != TRANSIENT_OVERLOAD_STATUS or retries_left <= 0:
                    raise
                delay = self._retry_delay(e.retry_after)
                retries_left -= 1
                logger.warning(
                    f"HTTP {e.status} on {method} {url}, retrying in {delay:.3f}s "
                    f"({retries_left} retries left)"
                )
                await asyncio.sleep(delay)

    def _retry_delay(self, retry_after: float | None) -> float:
        """Seconds to wait until the Retry-After deadline."""
        if retry_after is None:
            return MIN_RETRY_DELAY
        return max((retry_after - self._clock()) / 1000, MIN_RETRY_DELAY)

    async def _attempt(
        self,
        url: str,
        options: Mapping[str, Any],
        body: str | bytes | FormData | None,
        timeout: float | None,
    ) -> HttpResponse:
        logger.debug(f"{options['method']} {url}")
        response = await self._send_with_deadline(url, options, body, timeout)

        data = None
        parse_error: Exception | None = None
        text = ""
        content_length = response.headers.get("Content-Length")
        if content_length is not None and content_length.strip() != "0":
            text = await response.text()
            if text:
                try:
                    data = json.loads(text)
                except ValueError as e:
                    parse_error = e

        # Signals fire whatever the outcome of the attempt
        retry_after = self._check_headers(response.headers)

        if parse_error is not None:
            raise UnparseableResponseError(
                response.status, text, parse_error, url=url
            ) from parse_error

        if response.status >= 400:
            raise ServerResponse(
                response.status,
                response.status_text,
                data=data,
                headers=response.headers,
                url=url,
                retry_after=retry_after,
            )

        return HttpResponse(status=response.status, json=data, headers=response.headers)

    async def _send_with_deadline(
        self,
        url: str,
        options: Mapping[str, Any],
        body: str | bytes | FormData | None,
        timeout: float | None,
    ) -> TransportResponse:
        """Race the transport call against the deadline; the loser is cancelled."""
        send = asyncio.ensure_future(
            self.transport.send(
                url,
                method=options["method"],
                headers=options["headers"],
                body=body,
                mode=options["mode"],
            )
        )
        try:
            done, _ = await asyncio.wait({send}, timeout=timeout)
            if send in done:
                return send.result()
            logger.debug(f"Deadline of {timeout}s expired for {options['method']} {url}")
            raise NetworkTimeoutError(
                url, {"mode": options["mode"], "headers": options["headers"]}
            )
        finally:
            if not send.done():
                send.cancel()

    def _check_headers(self, headers: Mapping[str, str]) -> float | None:
        """Emit header-driven signals. Returns the Retry-After deadline, if any."""
        now = self._clock()
        self._check_for_deprecation_header(headers)
        self._check_for_backoff_header(headers, now)
        return self._check_for_retry_after_header(headers, now)

    def _check_for_deprecation_header(self, headers: Mapping[str, str]) -> None:
        raw = headers.get("Alert")
        if not raw:
            return
        try:
            alert = json.loads(raw)
        except ValueError:
            alert = None
        if not isinstance(alert, dict):
            logger.warning(f"Unable to parse Alert header message {raw}")
            return
        logger.warning(f"{alert.get('message')} {alert.get('url')}")
        self._emit(DEPRECATED, alert)

    def _check_for_backoff_header(self, headers: Mapping[str, str], now: float) -> None:
        seconds = _parse_seconds(headers.get("Backoff"))
        backoff = now + seconds * 1000 if seconds is not None else 0
        self._emit(BACKOFF, backoff)

    def _check_for_retry_after_header(
        self, headers: Mapping[str, str], now: float
    ) -> float | None:
        seconds = _parse_seconds(headers.get("Retry-After"))
        if seconds is None:
            return None
        retry_after = now + seconds * 1000
        self._emit(RETRY_AFTER, retry_after)
        return retry_after

    def _emit(self, name: str, payload: Any) -> None:
        try:
            self.events.emit(name, payload)
        except Exception as e:
            logger.opt(exception=e).error(f"Failed to emit '{name}' signal: {e}")


def _parse_seconds(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logger.debug(f"Ignoring non-integer header value {value!r}")
        return None
