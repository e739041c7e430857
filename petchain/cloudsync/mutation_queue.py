"""Durable offline mutation queue replayed through the authenticated pipeline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from contextlib import suppress
from dataclasses import replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, TypeVar
from urllib.parse import quote

from ..const import KEY_FAILED_QUEUE, KEY_PENDING_QUEUE, KEY_SYNC_STATUS, MAX_RETRIES
from ..utils.logging import warn_once
from .conflict import resolve_conflict
from .errors import AuthorizationFailure, PersistenceFailure, RemoteRejected, TransportError, describe_status
from .models import (
    EntityPayload,
    EntityType,
    FlushResult,
    MutationAction,
    QueuedMutation,
    SyncStatus,
    coerce_payload,
)
from .pipeline import AuthenticatedPipeline
from .store import KeyValueStore
from .transport import TransportRequest, TransportResponse

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

NOT_FOUND_STATUSES = frozenset({404, 410})
RETRYABLE_STATUSES = frozenset({401, 408, 429})


class Outcome(StrEnum):
    SENT = "sent"
    RETRY = "retry"
    REJECTED = "rejected"


class MutationQueue:
    """Ordered log of local writes waiting for delivery.

    Pending and failed entries live in the persistent store; every change is
    written through before the call that made it returns. Two locks guard the
    queue: ``_flush_lock`` keeps a single flush running at a time and
    ``_log_lock`` serialises read-modify-write cycles on the stored logs.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        max_retries: int = MAX_RETRIES,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self.max_retries = max_retries
        self._now = clock or (lambda: datetime.now(tz=UTC))
        self.logger = logger or _LOGGER
        self._flush_lock = asyncio.Lock()
        self._log_lock = asyncio.Lock()

    @property
    def flushing(self) -> bool:
        return self._flush_lock.locked()

    # ------------------------------------------------------------------
    async def _load(self, key: str) -> list[QueuedMutation]:
        raw = await self._store.get(key)
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise PersistenceFailure(f"stored queue {key} is not a list")
        entries: list[QueuedMutation] = []
        for item in raw:
            try:
                entries.append(QueuedMutation.from_dict(item))
            except (KeyError, TypeError, ValueError) as err:
                raise PersistenceFailure(f"corrupt entry in {key}: {err}") from err
        return entries

    async def _save(self, key: str, entries: list[QueuedMutation]) -> None:
        await self._store.set(key, [entry.to_dict() for entry in entries])

    async def _update_status(self, **changes: Any) -> SyncStatus:
        status = replace(await self.status(), **changes)
        await self._store.set(KEY_SYNC_STATUS, status.to_dict())
        return status

    async def pending(self) -> list[QueuedMutation]:
        return await self._load(KEY_PENDING_QUEUE)

    async def failed(self) -> list[QueuedMutation]:
        return await self._load(KEY_FAILED_QUEUE)

    async def status(self) -> SyncStatus:
        return SyncStatus.from_dict(await self._store.get(KEY_SYNC_STATUS))

    # ------------------------------------------------------------------
    async def enqueue(
        self,
        entity_type: EntityType | str,
        action: MutationAction | str,
        payload: EntityPayload | Mapping[str, Any],
    ) -> QueuedMutation:
        """Append a mutation to the pending log.

        Raises :class:`ValueError` for payloads that do not match
        ``entity_type`` or update/delete payloads without an id, and
        :class:`PersistenceFailure` when the log cannot be written.
        """

        entity_type = EntityType(entity_type)
        action = MutationAction(action)
        coerced = coerce_payload(entity_type, payload)
        if action is not MutationAction.CREATE and not coerced.id:
            raise ValueError(f"{action.value} of a {entity_type.value} requires a payload id")

        mutation = QueuedMutation.new(entity_type, action, coerced, now=self._now())
        async with self._log_lock:
            pending = await self._load(KEY_PENDING_QUEUE)
            pending.append(mutation)
            await self._save(KEY_PENDING_QUEUE, pending)
            await self._update_status(pending_count=len(pending))
        self.logger.debug("Queued %s %s as %s", mutation.action.value, entity_type.value, mutation.id)
        return mutation

    async def clear(self) -> None:
        """Discard every pending and failed mutation."""

        async with self._log_lock:
            await self._store.set_many({KEY_PENDING_QUEUE: [], KEY_FAILED_QUEUE: []})
            await self._update_status(pending_count=0, failed_count=0)
        self.logger.info("Offline mutation queue cleared")

    async def recover(self) -> SyncStatus:
        """Reset a syncing flag left behind by a process that died mid-flush."""

        async with self._log_lock:
            status = await self.status()
            if not status.is_syncing or self.flushing:
                return status
            pending = await self._load(KEY_PENDING_QUEUE)
            failed = await self._load(KEY_FAILED_QUEUE)
            self.logger.info("Recovering from interrupted flush (%d pending)", len(pending))
            return await self._update_status(
                is_syncing=False,
                pending_count=len(pending),
                failed_count=len(failed),
            )

    def resolve_conflict(self, local: T, remote: T) -> T:
        return resolve_conflict(local, remote)

    # ------------------------------------------------------------------
    async def flush(self, pipeline: AuthenticatedPipeline) -> FlushResult:
        """Deliver every pending mutation once, in enqueue order.

        Returns immediately with ``skipped=True`` when another flush is
        running. Only :class:`PersistenceFailure` escapes; delivery failures
        are recorded on the entries themselves.
        """

        if self._flush_lock.locked():
            self.logger.debug("Flush already in progress; skipping")
            return FlushResult(skipped=True)

        async with self._flush_lock:
            completed = False
            try:
                result = await self._flush(pipeline)
                completed = True
            finally:
                if not completed:
                    with suppress(PersistenceFailure):
                        async with self._log_lock:
                            await self._update_status(is_syncing=False)
        return result

    async def _flush(self, pipeline: AuthenticatedPipeline) -> FlushResult:
        async with self._log_lock:
            batch = await self._load(KEY_PENDING_QUEUE)
            await self._update_status(is_syncing=True)

        result = FlushResult()
        for entry in batch:
            outcome, error = await self._dispatch(entry, pipeline)
            await self._record_outcome(entry.id, outcome, error, result)

        async with self._log_lock:
            pending = await self._load(KEY_PENDING_QUEUE)
            failed = await self._load(KEY_FAILED_QUEUE)
            status = SyncStatus(
                is_syncing=False,
                last_sync_at=self._now(),
                pending_count=len(pending),
                failed_count=len(failed),
            )
            await self._store.set(KEY_SYNC_STATUS, status.to_dict())

        if batch:
            self.logger.info(
                "Flushed %d mutation(s): %d sent, %d to retry, %d failed",
                len(batch),
                result.sent,
                result.retried,
                result.failed,
            )
        return result

    async def _record_outcome(self, entry_id: str, outcome: Outcome, error: str | None, result: FlushResult) -> None:
        async with self._log_lock:
            pending = await self._load(KEY_PENDING_QUEUE)
            index = next((i for i, item in enumerate(pending) if item.id == entry_id), None)
            if index is None:
                # Cleared while the request was in flight.
                return
            if outcome is Outcome.SENT:
                del pending[index]
                await self._save(KEY_PENDING_QUEUE, pending)
                result.sent += 1
                return

            entry = pending[index]
            entry.retry_count += 1
            entry.last_error = error
            if outcome is Outcome.REJECTED or entry.retry_count >= self.max_retries:
                del pending[index]
                failed = await self._load(KEY_FAILED_QUEUE)
                failed.append(entry)
                await self._store.set_many(
                    {
                        KEY_PENDING_QUEUE: [item.to_dict() for item in pending],
                        KEY_FAILED_QUEUE: [item.to_dict() for item in failed],
                    }
                )
                result.failed += 1
                self.logger.warning(
                    "Giving up on %s after %d attempt(s): %s",
                    entry.id,
                    entry.retry_count,
                    error,
                )
                return

            await self._save(KEY_PENDING_QUEUE, pending)
            result.retried += 1

    # ------------------------------------------------------------------
    async def _dispatch(self, entry: QueuedMutation, pipeline: AuthenticatedPipeline) -> tuple[Outcome, str | None]:
        request = self.build_request(entry)
        try:
            response = await pipeline.send(request)
        except TransportError as err:
            warn_once(self.logger, "transport_error", "Remote API unreachable: %s", err)
            return Outcome.RETRY, str(err)
        except AuthorizationFailure as err:
            warn_once(self.logger, "authorization_failure", "Remote API rejected credentials: %s", err)
            return Outcome.RETRY, str(err)
        except PersistenceFailure:
            raise
        except Exception as err:  # counted against the retry limit like any other failure
            self.logger.exception("Unexpected error delivering %s", entry.id)
            return Outcome.RETRY, f"{type(err).__name__}: {err}"
        return self.classify(entry, response)

    @staticmethod
    def build_request(entry: QueuedMutation) -> TransportRequest:
        collection = entry.entity_type.collection_path
        if entry.action is MutationAction.CREATE:
            return TransportRequest("POST", collection, entry.payload.to_wire())
        target = f"{collection}/{quote(str(entry.target_id), safe='')}"
        if entry.action is MutationAction.UPDATE:
            return TransportRequest("PUT", target, entry.payload.to_wire())
        return TransportRequest("DELETE", target)

    def classify(self, entry: QueuedMutation, response: TransportResponse) -> tuple[Outcome, str | None]:
        status = response.status
        if response.ok:
            return Outcome.SENT, None
        if status in NOT_FOUND_STATUSES:
            if entry.action is MutationAction.DELETE:
                self.logger.debug("%s already absent remotely; treating delete as done", entry.target_id)
                return Outcome.SENT, None
            if entry.action is MutationAction.UPDATE:
                return Outcome.REJECTED, f"{entry.entity_type.value} {entry.target_id} no longer exists remotely"
        if status in RETRYABLE_STATUSES or status >= 500:
            return Outcome.RETRY, f"HTTP {status}: {describe_status(status)}"
        if 400 <= status < 500:
            return Outcome.REJECTED, str(RemoteRejected(status))
        return Outcome.RETRY, f"unexpected HTTP {status}"


__all__ = ["MutationQueue", "Outcome"]
