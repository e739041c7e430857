"""Last-write-wins resolution between local and remote versions of a record."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, TypeVar

from .models import QueuedMutation, parse_timestamp

T = TypeVar("T")

UPDATED_KEYS = ("updated_at", "updatedAt")
FALLBACK_KEYS = ("enqueued_at", "timestamp")


def _lookup(record: Any, keys: tuple[str, ...]) -> Any:
    for key in keys:
        if isinstance(record, Mapping):
            value = record.get(key)
        else:
            value = getattr(record, key, None)
        if value:
            return value
    return None


def record_timestamp(record: Any) -> float:
    """Return the last-write time of ``record`` in epoch seconds.

    ``updated_at`` wins over the enqueue timestamp; records carrying neither
    sort as the epoch so that the remote side is kept.
    """

    if isinstance(record, QueuedMutation):
        updated = record.payload.updated_at
        stamp = updated or record.enqueued_at
        return stamp.timestamp()
    for keys in (UPDATED_KEYS, FALLBACK_KEYS):
        parsed = parse_timestamp(_lookup(record, keys))
        if isinstance(parsed, datetime):
            return parsed.timestamp()
    return 0.0


def resolve_conflict(local: T, remote: T) -> T:
    """Last-write-wins between a local and a remote version of a record.

    ``local`` is returned only when it is strictly newer; ties and records
    without timestamps resolve to ``remote``.
    """

    if record_timestamp(remote) >= record_timestamp(local):
        return remote
    return local


__all__ = ["record_timestamp", "resolve_conflict"]
