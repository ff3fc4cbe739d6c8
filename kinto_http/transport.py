"""
Transport layer - the only place where bytes hit the network.

The request engine depends on the Transport protocol only; HttpxTransport is
the default implementation on top of httpx.AsyncClient.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import httpx
from loguru import logger

from kinto_http.errors import TransportError


@dataclass
class FormData:
    """Multipart request body. The transport picks the boundary."""

    fields: dict[str, Any] = field(default_factory=dict)
    files: dict[str, Any] = field(default_factory=dict)


def _form_value(value: Any) -> str | bytes:
    return value if isinstance(value, (str, bytes)) else str(value)


@dataclass
class TransportResponse:
    """Raw response as seen by the request engine."""

    status: int
    status_text: str
    headers: httpx.Headers
    body: str = ""

    async def text(self) -> str:
        return self.body


class Transport(Protocol):
    async def send(
        self,
        url: str,
        *,
        method: str,
        headers: Mapping[str, str],
        body: str | bytes | FormData | None,
        mode: str,
    ) -> TransportResponse: ...


class HttpxTransport:
    """
    Transport backed by httpx.AsyncClient.

    Usage:
        async with HttpxTransport() as transport:
            response = await transport.send(url, method="GET", headers={}, body=None, mode="cors")

    ``mode`` (the cross-origin policy) only has a meaning in browsers and is
    accepted for interface compatibility.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._http_client = client

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            # Deadlines are enforced by the request engine.
            self._http_client = httpx.AsyncClient(timeout=None, follow_redirects=True)
        return self._http_client

    async def send(
        self,
        url: str,
        *,
        method: str,
        headers: Mapping[str, str],
        body: str | bytes | FormData | None,
        mode: str,
    ) -> TransportResponse:
        client = self._get_http_client()

        kwargs: dict[str, Any] = {}
        if isinstance(body, FormData):
            # Plain fields become parts without a filename, so a FormData without
            # files is still encoded as multipart/form-data
            parts = {k: (None, _form_value(v)) for k, v in body.fields.items()}
            kwargs["files"] = {**parts, **body.files}
        elif body is not None:
            kwargs["content"] = body

        try:
            response = await client.request(
                method=method, url=url, headers=dict(headers), **kwargs
            )
        except httpx.RequestError as e:
            logger.debug(f"Transport failure on {method} {url}: {e}")
            raise TransportError(f"Network request to {url} failed: {e}", url=url) from e

        return TransportResponse(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=response.headers,
            body=response.text,
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
