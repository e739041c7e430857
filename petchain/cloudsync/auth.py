"""Access/refresh token ownership and single-flight credential renewal."""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from ..const import KEY_ACCESS_TOKEN, KEY_REFRESH_TOKEN, LOGIN_PATH, REFRESH_PATH
from .errors import RefreshFailure, RefreshFailureReason, RemoteRejected
from .store import KeyValueStore
from .transport import Transport

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CredentialPair:
    """Normalised tokens returned by the authentication endpoints."""

    access_token: str
    refresh_token: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> CredentialPair:
        """Build a pair from a ``/auth/login`` or ``/auth/refresh`` response body."""

        access = payload.get("accessToken") or payload.get("access_token") or payload.get("token")
        access_token = str(access).strip() if access else ""
        if not access_token:
            raise ValueError("access token missing from response")
        refresh = payload.get("refreshToken") or payload.get("refresh_token")
        refresh_token = str(refresh).strip() if refresh else None
        return cls(access_token=access_token, refresh_token=refresh_token or None)


def decode_claims(token: str) -> dict[str, Any]:
    """Decode the claims segment of a three-part ``header.claims.signature`` token.

    The signature is not verified; the client only needs the expiry.
    """

    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("token must have three segments")
    segment = parts[1]
    padded = segment + "=" * (-len(segment) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        claims = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, json.JSONDecodeError) as err:
        raise ValueError(f"token claims are not valid base64url JSON: {err}") from err
    if not isinstance(claims, dict):
        raise ValueError("token claims must be a JSON object")
    return claims


class CredentialManager:
    """Owns the stored credential pair and renews it on demand.

    ``refresh()`` is single-flight: while one renewal is outstanding every
    caller awaits the same future, so the remote endpoint sees one request no
    matter how many requests failed authorization at the same time.
    """

    def __init__(
        self,
        store: KeyValueStore,
        transport: Transport,
        *,
        refresh_path: str = REFRESH_PATH,
        login_path: str = LOGIN_PATH,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._transport = transport
        self._refresh_path = refresh_path
        self._login_path = login_path
        self._inflight: asyncio.Future[CredentialPair] | None = None
        self.logger = logger or _LOGGER
        self.refresh_count = 0
        # Bumped whenever login or logout replaces the stored pair.
        self._generation = 0
        self.last_refresh_at: datetime | None = None
        self.last_refresh_error: str | None = None

    # ------------------------------------------------------------------
    async def get_access_credential(self) -> str | None:
        token = await self._store.get(KEY_ACCESS_TOKEN)
        return str(token) if token else None

    async def get_refresh_credential(self) -> str | None:
        token = await self._store.get(KEY_REFRESH_TOKEN)
        return str(token) if token else None

    async def store_credentials(self, pair: CredentialPair) -> None:
        self._generation += 1
        items: dict[str, Any] = {KEY_ACCESS_TOKEN: pair.access_token}
        if pair.refresh_token:
            items[KEY_REFRESH_TOKEN] = pair.refresh_token
        await self._store.set_many(items)
        if not pair.refresh_token:
            await self._store.remove(KEY_REFRESH_TOKEN)

    async def clear_credentials(self) -> None:
        self._generation += 1
        await self._store.remove(KEY_ACCESS_TOKEN)
        await self._store.remove(KEY_REFRESH_TOKEN)

    # ------------------------------------------------------------------
    def is_expired(self, token: str | None, *, now: datetime | None = None, threshold_seconds: float = 0) -> bool:
        """Return ``True`` if ``token`` has expired or cannot be decoded."""

        if not token:
            return True
        try:
            claims = decode_claims(token)
        except ValueError:
            return True
        exp = claims.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, int | float) or not math.isfinite(exp):
            return True
        now = now or datetime.now(tz=UTC)
        return exp - now.timestamp() <= threshold_seconds

    async def is_authenticated(self) -> bool:
        token = await self.get_access_credential()
        return not self.is_expired(token)

    # ------------------------------------------------------------------
    async def login(self, email: str, password: str) -> CredentialPair:
        """Authenticate with email/password and persist the returned tokens."""

        response = await self._transport.request("POST", self._login_path, {"email": email, "password": password})
        if not response.ok:
            raise RemoteRejected(response.status)
        try:
            pair = CredentialPair.from_payload(response.json_body())
        except ValueError as err:
            raise RemoteRejected(response.status, f"login response malformed: {err}") from err
        await self.store_credentials(pair)
        self.logger.info("Logged in; credentials stored")
        return pair

    async def logout(self) -> None:
        await self.clear_credentials()
        self.logger.info("Logged out; credentials cleared")

    # ------------------------------------------------------------------
    async def refresh(self) -> CredentialPair:
        """Renew the credential pair, sharing one outstanding renewal between callers."""

        inflight = self._inflight
        if inflight is None or inflight.done():
            inflight = asyncio.ensure_future(self._perform_refresh())
            inflight.add_done_callback(self._clear_inflight)
            self._inflight = inflight
        else:
            self.logger.debug("Joining in-flight credential refresh")
        return await asyncio.shield(inflight)

    def _clear_inflight(self, future: asyncio.Future[CredentialPair]) -> None:
        if self._inflight is future:
            self._inflight = None
        if not future.cancelled():
            # Mark the exception retrieved even if every waiter was cancelled.
            future.exception()

    async def _perform_refresh(self) -> CredentialPair:
        generation = self._generation
        refresh_token = await self.get_refresh_credential()
        if not refresh_token:
            self.last_refresh_error = RefreshFailureReason.NO_REFRESH_TOKEN.value
            raise RefreshFailure(RefreshFailureReason.NO_REFRESH_TOKEN, "no refresh token stored")

        self.refresh_count += 1
        response = await self._transport.request("POST", self._refresh_path, {"refreshToken": refresh_token})
        self.last_refresh_at = datetime.now(tz=UTC)
        if generation != self._generation:
            self.last_refresh_error = RefreshFailureReason.SUPERSEDED.value
            self.logger.info("Credentials changed while refreshing; discarding refreshed pair")
            raise RefreshFailure(RefreshFailureReason.SUPERSEDED, "credentials replaced during refresh")

        pair: CredentialPair | None = None
        reason = f"HTTP {response.status}"
        if response.ok:
            try:
                pair = CredentialPair.from_payload(response.json_body())
            except ValueError as err:
                reason = str(err)

        if pair is None:
            self.last_refresh_error = reason
            self.logger.warning("Credential refresh rejected (%s); clearing stored tokens", reason)
            await self.clear_credentials()
            raise RefreshFailure(RefreshFailureReason.REMOTE_REJECTED, f"token refresh rejected: {reason}")

        if pair.refresh_token is None:
            pair = CredentialPair(access_token=pair.access_token, refresh_token=refresh_token)
        await self._store.set_many({KEY_ACCESS_TOKEN: pair.access_token, KEY_REFRESH_TOKEN: pair.refresh_token})
        self.last_refresh_error = None
        self.logger.info("Access credential refreshed")
        return pair


__all__ = ["CredentialManager", "CredentialPair", "decode_claims"]
