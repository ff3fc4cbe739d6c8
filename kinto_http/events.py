"""
EventEmitter - Synchronous signal delivery for request lifecycle notifications.

Signals emitted by the request engine:
- "backoff": absolute deadline (ms) before which clients should slow down, 0 if none
- "retry-after": absolute deadline (ms) before which a failed request should not be retried
- "deprecated": parsed Alert header ({code, url, message})

Delivery is synchronous, in registration order, at most once per emission,
with no buffering: handlers registered after an emission never see it.
"""

from collections import defaultdict
from typing import Any, Callable, Protocol, runtime_checkable

from loguru import logger

Handler = Callable[[Any], None]

BACKOFF = "backoff"
RETRY_AFTER = "retry-after"
DEPRECATED = "deprecated"


@runtime_checkable
class EventSink(Protocol):
    """Anything accepting handler registration and named signal emission."""

    def on(self, name: str, handler: Handler) -> None: ...

    def emit(self, name: str, payload: Any) -> None: ...


class EventEmitter:
    """
    Default EventSink implementation.

    Usage:
        events = EventEmitter()
        events.on("backoff", lambda until: print(f"backing off until {until}"))
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, name: str, handler: Handler) -> None:
        """Register a handler for a signal."""
        self._handlers[name].append(handler)

    def once(self, name: str, handler: Handler) -> None:
        """Register a handler removed after its first delivery."""

        def wrapper(payload: Any) -> None:
            self.off(name, wrapper)
            handler(payload)

        self.on(name, wrapper)

    def off(self, name: str, handler: Handler) -> bool:
        """Unregister a handler. Returns False if it was not registered."""
        handlers = self._handlers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def emit(self, name: str, payload: Any) -> None:
        """Deliver payload to every handler of the signal.

        A failing handler is logged and does not prevent delivery to the
        others, nor does it reach the emitter's caller.
        """
        for handler in list(self._handlers.get(name, [])):
            try:
                handler(payload)
            except Exception as e:
                logger.opt(exception=e).error(f"Handler for '{name}' signal failed: {e}")

    def listener_count(self, name: str) -> int:
        return len(self._handlers.get(name, []))
