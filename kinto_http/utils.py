from typing import Any, Iterable, Mapping

from kinto_http.errors import CapabilityError


def merge_headers(*layers: Mapping[str, str] | None) -> dict[str, str]:
    """
    Merge header mappings, later layers winning.

    Keys compare case-insensitively; the spelling of the winning layer is kept.
    """
    merged: dict[str, str] = {}
    spelling: dict[str, str] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            previous = spelling.pop(key.lower(), None)
            if previous is not None:
                merged.pop(previous)
            spelling[key.lower()] = key
            merged[key] = value
    return merged


def merge_options(*layers: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Merge option mappings in order of increasing precedence.

    The usual order is library defaults < instance defaults < per-call
    overrides. A None value never overrides an earlier one, and ``headers``
    are merged with :func:`merge_headers` instead of being replaced.
    """
    merged: dict[str, Any] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            if value is None:
                continue
            if key == "headers":
                merged["headers"] = merge_headers(merged.get("headers"), value)
            else:
                merged[key] = value
    return merged


def require_capability(server_info: Mapping[str, Any], capability: str) -> None:
    """Raise CapabilityError unless the server advertises the capability."""
    available: Iterable[str] = (server_info.get("capabilities") or {}).keys()
    available = sorted(available)
    if capability not in available:
        raise CapabilityError(capability, available)


def unquote(value: str | None) -> str | None:
    """Strip the double quotes of an ETag header value."""
    if value is None:
        return None
    return value.strip().strip('"')
