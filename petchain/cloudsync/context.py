"""Wire the store, transport, credentials, pipeline and queue together once per process."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from aiohttp import ClientSession

from ..config import SyncConfig
from .auth import CredentialManager, CredentialPair
from .errors import PersistenceFailure
from .models import FlushResult
from .mutation_queue import MutationQueue
from .pipeline import AuthenticatedPipeline
from .store import KeyValueStore, SQLiteStore
from .transport import AiohttpTransport, Transport

_LOGGER = logging.getLogger(__name__)


class SyncContext:
    """Explicit replacement for process-wide sync and auth singletons.

    Build one at start-up and pass it (or its ``queue``/``pipeline``
    attributes) to whatever needs them.
    """

    def __init__(
        self,
        config: SyncConfig | None = None,
        *,
        store: KeyValueStore | None = None,
        transport: Transport | None = None,
        session: ClientSession | None = None,
    ) -> None:
        self.config = config or SyncConfig.from_options()
        self.store: KeyValueStore = store or SQLiteStore(self.config.store_path)
        self._owns_transport = transport is None
        self.transport: Transport = transport or AiohttpTransport(
            self.config.base_url,
            session,
            timeout=self.config.timeout,
        )
        self.credentials = CredentialManager(self.store, self.transport)
        self.pipeline = AuthenticatedPipeline(self.transport, self.credentials)
        self.queue = MutationQueue(self.store)
        self.last_result: FlushResult | None = None
        self.last_error: str | None = None
        self.last_run_at: datetime | None = None

    async def __aenter__(self) -> SyncContext:
        await self.async_start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.async_close()

    async def async_start(self) -> None:
        await self.queue.recover()

    async def async_close(self) -> None:
        if self._owns_transport and isinstance(self.transport, AiohttpTransport):
            await self.transport.async_close()

    # ------------------------------------------------------------------
    async def async_sync_now(self) -> FlushResult:
        """Run one flush of the offline queue."""

        self.last_run_at = datetime.now(tz=UTC)
        try:
            result = await self.queue.flush(self.pipeline)
        except PersistenceFailure as err:
            self.last_error = str(err)
            raise
        self.last_result = result
        self.last_error = None
        return result

    async def run_forever(self, *, interval_seconds: float | None = None) -> None:
        interval = self.config.sync_interval if interval_seconds is None else interval_seconds
        while True:
            try:
                await self.async_sync_now()
            except asyncio.CancelledError:
                raise
            except Exception as err:  # keep the loop alive; the next pass retries
                _LOGGER.exception("Unexpected sync error: %s", err)
                self.last_error = str(err)
            await asyncio.sleep(interval)

    # ------------------------------------------------------------------
    async def login(self, email: str, password: str) -> CredentialPair:
        return await self.credentials.login(email, password)

    async def logout(self, *, discard_pending: bool = False) -> None:
        await self.credentials.logout()
        if discard_pending:
            await self.queue.clear()

    async def status(self) -> dict[str, Any]:
        sync_status = await self.queue.status()
        data: dict[str, Any] = sync_status.to_dict()
        data.update(
            {
                "base_url": self.config.base_url,
                "authenticated": await self.credentials.is_authenticated(),
                "last_refresh_at": (
                    self.credentials.last_refresh_at.isoformat() if self.credentials.last_refresh_at else None
                ),
                "last_refresh_error": self.credentials.last_refresh_error,
                "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
                "last_result": self.last_result.to_dict() if self.last_result else None,
                "last_error": self.last_error,
            }
        )
        return data


__all__ = ["SyncContext"]
