"""HTTP transport used by the credential manager and the request pipeline."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

from aiohttp import ClientError, ClientSession, ClientTimeout

from ..const import DEFAULT_HEADERS, DEFAULT_TIMEOUT
from ..utils.redact import redact
from .errors import TransportError

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class TransportRequest:
    """A request travelling through the authenticated pipeline."""

    method: str
    path: str
    body: Any | None = None
    headers: dict[str, str] = field(default_factory=dict)
    retried: bool = False

    def with_header(self, name: str, value: str) -> TransportRequest:
        headers = dict(self.headers)
        headers[name] = value
        return replace(self, headers=headers)

    def mark_retried(self) -> TransportRequest:
        return replace(self, headers=dict(self.headers), retried=True)


@dataclass(slots=True)
class TransportResponse:
    status: int
    body: Any | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401

    def json_body(self) -> Mapping[str, Any]:
        return self.body if isinstance(self.body, Mapping) else {}


class Transport(Protocol):
    async def request(
        self,
        method: str,
        path: str,
        body: Any | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse: ...


class AiohttpTransport:
    """:class:`Transport` implementation backed by an :class:`aiohttp.ClientSession`."""

    def __init__(
        self,
        base_url: str,
        session: ClientSession | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = ClientTimeout(total=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession()
            self._owns_session = True
        return self._session

    async def async_close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def request(
        self,
        method: str,
        path: str,
        body: Any | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        merged = dict(DEFAULT_HEADERS)
        merged.update(headers or {})
        url = f"{self._base_url}/{path.lstrip('/')}"
        _LOGGER.debug("%s %s headers=%s", method, url, redact(merged))
        session = self._get_session()
        try:
            async with session.request(
                method,
                url,
                json=body,
                headers=merged,
                timeout=self._timeout,
            ) as resp:
                text = self._decode_text(await resp.read(), resp.charset)
                return TransportResponse(
                    status=resp.status,
                    body=self._decode_body(text),
                    headers=dict(resp.headers),
                )
        except TimeoutError as err:
            raise TransportError(f"{method} {path} timed out after {self._timeout.total}s") from err
        except ClientError as err:
            raise TransportError(f"{method} {path} failed: {err}") from err

    @staticmethod
    def _decode_text(raw: bytes, charset: str | None) -> str:
        """Decode a response body; undecodable bytes become U+FFFD."""
        try:
            return raw.decode(charset or "utf-8", errors="replace")
        except LookupError:
            return raw.decode("utf-8", errors="replace")

    @staticmethod
    def _decode_body(text: str) -> Any | None:
        if not text or not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text


__all__ = ["AiohttpTransport", "Transport", "TransportRequest", "TransportResponse"]
