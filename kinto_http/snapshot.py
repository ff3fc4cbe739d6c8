"""
Point-in-time snapshots of a collection, rebuilt from the bucket history.

No snapshot is stored server-side: the records of a collection at timestamp
``at`` are obtained by replaying the record history up to ``at``, newest
entry first. The first entry met for an id decides its fate, so every id is
resolved exactly once.

Replaying is only correct if history was enabled before the collection was
created, which is checked before anything else.
"""

import math
from typing import Any, Iterable

from loguru import logger

from kinto_http.errors import IncompleteHistoryError, InvalidArgumentError
from kinto_http.history import HistoryReader
from kinto_http.models import ChangeEvent, Snapshot


def compute_snapshot_at(at: int, changes: Iterable[ChangeEvent]) -> list[dict[str, Any]]:
    """
    Replay changes backwards and return the records alive at ``at``.

    Changes newer than ``at`` are ignored. The result is sorted by
    last_modified, newest first.
    """
    records: dict[str, dict[str, Any]] = {}
    seen: set[str] = set()

    newest_first = sorted(
        (change for change in changes if change.revision <= at),
        key=lambda change: change.revision,
        reverse=True,
    )
    for change in newest_first:
        if change.target_id in seen:
            # Superseded by a more recent change
            continue
        seen.add(change.target_id)
        if change.action == "delete":
            records.pop(change.target_id, None)
        else:
            records[change.target_id] = change.data

    return sorted(
        records.values(),
        key=lambda record: record.get("last_modified", 0),
        reverse=True,
    )


def validate_revision(at: int) -> None:
    if isinstance(at, bool) or not isinstance(at, int) or at <= 0:
        raise InvalidArgumentError("Invalid argument, expected a positive integer.")


async def ensure_complete_history(collection_id: str, history: HistoryReader) -> None:
    """Raise IncompleteHistoryError unless the collection creation was recorded."""
    result = await history.list(
        {
            "resource_name": "collection",
            "collection_id": collection_id,
            "action": "create",
        },
        limit=1,
    )
    if not result.data:
        raise IncompleteHistoryError(collection_id)


async def reconstruct(collection_id: str, at: int, history: HistoryReader) -> Snapshot:
    """
    Rebuild the records of a collection as they were at timestamp ``at``.

    Every history page up to ``at`` is fetched, which can mean many requests
    for old timestamps of long-lived collections.

    Raises:
        InvalidArgumentError: If ``at`` is not a positive integer
        IncompleteHistoryError: If history started after the collection creation
    """
    validate_revision(at)

    await ensure_complete_history(collection_id, history)

    changes = await history.list_events(
        {
            "resource_name": "record",
            "collection_id": collection_id,
            "max_target.data.last_modified": at,
        },
        pages=math.inf,
    )
    records = compute_snapshot_at(at, changes)
    logger.debug(
        f"Snapshot of '{collection_id}' at {at}: {len(records)} records "
        f"from {len(changes)} history entries"
    )
    return Snapshot(data=records, last_modified=str(at))
