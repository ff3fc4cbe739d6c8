"""Data models for history entries and listing results."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal

from pydantic import BaseModel, field_validator

from kinto_http.errors import KintoError, SnapshotPaginationError


class ChangeEvent(BaseModel):
    """One entry of a bucket's history log.

    Attributes:
        action: "create", "update" or "delete".
        target_id: Id of the object the action applies to.
        data: Object data as recorded by the action.
        revision: Timestamp of the object after the action.
    """

    action: Literal["create", "update", "delete"]
    target_id: str
    data: dict[str, Any]
    revision: int

    model_config = {
        "extra": "forbid",
        "frozen": True,
    }

    @field_validator("target_id")
    @classmethod
    def validate_target_id(cls, v: str) -> str:
        if not v:
            raise ValueError("target_id must not be empty")
        return v

    @classmethod
    def from_entry(cls, entry: dict[str, Any]) -> "ChangeEvent":
        """Build from a raw history entry as returned by the server."""
        data = (entry.get("target") or {}).get("data") or {}
        revision = data.get("last_modified", entry.get("last_modified"))
        return cls(
            action=entry["action"],
            target_id=data.get("id") or entry.get("record_id", ""),
            data=data,
            revision=revision,
        )


@dataclass
class PaginatedResult:
    """One or more aggregated pages of a listing."""

    data: list[dict[str, Any]]
    has_next_page: bool = False
    total_records: int | None = None
    last_modified: str | None = None
    _next: Callable[[], Awaitable["PaginatedResult"]] | None = field(default=None, repr=False)

    async def next(self) -> "PaginatedResult":
        """Fetch the following page(s)."""
        if self._next is None:
            raise KintoError("Pagination exhausted")
        return await self._next()


@dataclass
class Snapshot:
    """Records of a collection as they were at a past timestamp."""

    data: list[dict[str, Any]]
    last_modified: str
    has_next_page: bool = False

    @property
    def total_records(self) -> int:
        return len(self.data)

    async def next(self) -> "Snapshot":
        raise SnapshotPaginationError()
