from __future__ import annotations

import asyncio
import base64
import inspect
import json
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from petchain.cloudsync import MemoryStore, TransportResponse
from petchain.utils.logging import reset_warnings


@dataclass
class RecordedCall:
    method: str
    path: str
    body: Any | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def bearer(self) -> str | None:
        value = self.headers.get("Authorization", "")
        return value.removeprefix("Bearer ") if value else None


class StubTransport:
    """Records every request and answers through ``handler``.

    ``handler`` receives the :class:`RecordedCall` and returns a
    :class:`TransportResponse`, an exception instance to raise, or an
    awaitable resolving to either. Each request yields to the event loop once
    before answering so concurrent callers interleave.
    """

    def __init__(self, handler: Callable[[RecordedCall], Any] | None = None) -> None:
        self.handler = handler or (lambda call: TransportResponse(200, {}))
        self.calls: list[RecordedCall] = []

    async def request(self, method, path, body=None, headers=None) -> TransportResponse:
        call = RecordedCall(method, path, body, dict(headers or {}))
        self.calls.append(call)
        await asyncio.sleep(0)
        result = self.handler(call)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, BaseException):
            raise result
        return result

    def calls_to(self, path: str) -> list[RecordedCall]:
        return [call for call in self.calls if call.path == path]


def _segment(data: dict[str, Any]) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()


def build_token(**claims: Any) -> str:
    return f"{_segment({'alg': 'HS256', 'typ': 'JWT'})}.{_segment(claims)}.signature"


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def transport() -> StubTransport:
    return StubTransport()


@pytest.fixture
def make_transport() -> type[StubTransport]:
    return StubTransport


@pytest.fixture
def token_factory() -> Callable[..., str]:
    """Build unsigned three-segment tokens; ``ttl`` is seconds from now."""

    def factory(ttl: float | None = 3600, **claims: Any) -> str:
        if ttl is not None:
            claims.setdefault("exp", time.time() + ttl)
        return build_token(**claims)

    return factory


@pytest.fixture(autouse=True)
def _reset_warn_once():
    reset_warnings()
    yield
    reset_warnings()
