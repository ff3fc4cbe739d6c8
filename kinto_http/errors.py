"""
Kinto client exceptions.
"""

import json
from typing import Any, Mapping

REDACTED_AUTHORIZATION = "**** (suppressed)"


def redact_options(options: Mapping[str, Any]) -> dict[str, Any]:
    """Copy request options with lower-cased header keys and Authorization hidden."""
    redacted = dict(options)
    headers = {k.lower(): v for k, v in (options.get("headers") or {}).items()}
    if "authorization" in headers:
        headers["authorization"] = REDACTED_AUTHORIZATION
    redacted["headers"] = dict(sorted(headers.items()))
    return redacted


class KintoError(Exception):
    """Base exception for client errors."""

    def __init__(self, message: str, url: str | None = None):
        self.url = url
        super().__init__(message)


class InvalidArgumentError(KintoError, ValueError):
    """Invalid argument, raised before any request is sent."""

    pass


class TransportError(KintoError):
    """Connection-level failure (DNS, refused connection, reset...)."""

    pass


class NetworkTimeoutError(KintoError):
    """The request did not complete before its deadline."""

    def __init__(self, url: str, options: Mapping[str, Any]):
        self.options = redact_options(options)
        super().__init__(
            f"Timeout while trying to access {url} with "
            f"{json.dumps(self.options, separators=(',', ':'))}",
            url=url,
        )


class UnparseableResponseError(KintoError):
    """Response body could not be decoded as JSON."""

    def __init__(self, status: int, text: str, error: Exception, url: str | None = None):
        self.status = status
        self.text = text
        self.error = error
        super().__init__(
            f"Response from server unparseable "
            f"(HTTP {status}; {type(error).__name__}: {error}): {text}",
            url=url,
        )


class ServerResponse(KintoError):
    """The server answered with an error status (>= 400).

    Attributes:
        status: HTTP status code.
        data: Parsed JSON body, if any.
        headers: Response headers.
        retry_after: Absolute Retry-After deadline in ms, if advertised.
    """

    def __init__(
        self,
        status: int,
        status_text: str,
        data: Any = None,
        headers: Mapping[str, str] | None = None,
        url: str | None = None,
        retry_after: float | None = None,
    ):
        self.status = status
        self.data = data
        self.headers = headers
        self.retry_after = retry_after

        message = f"HTTP {status} {status_text}".rstrip()
        if isinstance(data, dict) and data.get("error") and data.get("details"):
            details = data["details"]
            description = ""
            if isinstance(details, list) and details and isinstance(details[0], dict):
                description = details[0].get("description", "")
            message = (
                f"HTTP {status} {data['error']}: "
                f"Invalid request parameter ({description})"
            )
        super().__init__(message, url=url)


class IncompleteHistoryError(KintoError):
    """History does not go back far enough to rebuild a snapshot."""

    def __init__(self, collection_id: str):
        self.collection_id = collection_id
        super().__init__(
            f"Computing a snapshot of collection '{collection_id}' is only possible "
            f"when the full history of the collection is available: "
            f"its creation entry was not found"
        )


class SnapshotPaginationError(KintoError):
    """Snapshots are returned whole and cannot be paginated."""

    def __init__(self) -> None:
        super().__init__("Snapshots don't support pagination")


class CapabilityError(KintoError):
    """The server does not advertise a required capability."""

    def __init__(self, capability: str, available: list[str]):
        self.capability = capability
        self.available = available
        super().__init__(
            f"Version of Kinto server does not support this operation: "
            f"missing capability '{capability}' (available: {', '.join(available) or 'none'})"
        )
