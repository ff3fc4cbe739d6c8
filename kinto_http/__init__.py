"""
Async Python client for the Kinto HTTP API.

Provides:
- HTTP: request engine with deadlines, retries and Backoff/Retry-After/Alert signals
- EventEmitter: default sink for those signals
- HistoryReader: paged access to a bucket history
- reconstruct: point-in-time snapshot of a collection, rebuilt from history
- KintoClient: client, bucket and collection helpers built on the above
"""

from kinto_http.client import Bucket, Collection, KintoClient
from kinto_http.errors import (
    CapabilityError,
    IncompleteHistoryError,
    InvalidArgumentError,
    KintoError,
    NetworkTimeoutError,
    ServerResponse,
    SnapshotPaginationError,
    TransportError,
    UnparseableResponseError,
)
from kinto_http.events import EventEmitter, EventSink
from kinto_http.history import HistoryReader
from kinto_http.http import HTTP, HttpResponse, RequestConfig
from kinto_http.models import ChangeEvent, PaginatedResult, Snapshot
from kinto_http.snapshot import compute_snapshot_at, reconstruct
from kinto_http.transport import FormData, HttpxTransport, Transport, TransportResponse

__version__ = "0.1.0"

__all__ = [
    # Errors
    "KintoError",
    "InvalidArgumentError",
    "TransportError",
    "NetworkTimeoutError",
    "UnparseableResponseError",
    "ServerResponse",
    "IncompleteHistoryError",
    "SnapshotPaginationError",
    "CapabilityError",
    # Signals
    "EventSink",
    "EventEmitter",
    # Request engine
    "HTTP",
    "HttpResponse",
    "RequestConfig",
    "Transport",
    "TransportResponse",
    "HttpxTransport",
    "FormData",
    # History and snapshots
    "ChangeEvent",
    "PaginatedResult",
    "Snapshot",
    "HistoryReader",
    "compute_snapshot_at",
    "reconstruct",
    # Client
    "KintoClient",
    "Bucket",
    "Collection",
    # Meta
    "__version__",
]
