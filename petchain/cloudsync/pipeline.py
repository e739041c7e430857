"""Attach credentials to outgoing requests and recover from expired access tokens."""

from __future__ import annotations

import logging
from typing import Any

from .auth import CredentialManager
from .errors import AuthorizationFailure, RefreshFailure
from .transport import Transport, TransportRequest, TransportResponse

_LOGGER = logging.getLogger(__name__)


class AuthenticatedPipeline:
    """Send requests with the current access token, refreshing it once on 401."""

    def __init__(
        self,
        transport: Transport,
        credentials: CredentialManager,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._credentials = credentials
        self.logger = logger or _LOGGER

    async def send(self, request: TransportRequest) -> TransportResponse:
        """Submit ``request``.

        Non-auth responses are returned unchanged whatever their status. A 401
        triggers one credential refresh followed by one replay of the request;
        if the refresh fails, or the replay is rejected as well, the 401 is
        raised as :class:`AuthorizationFailure`. :class:`TransportError`
        propagates untouched, including one raised by the refresh itself.
        """

        response, token_used = await self._submit(request)
        if not response.is_unauthorized:
            return response
        if request.retried:
            raise AuthorizationFailure(response)

        request = request.mark_retried()
        current = await self._credentials.get_access_credential()
        if current and current != token_used:
            self.logger.debug("Access token changed while %s %s was in flight", request.method, request.path)
        else:
            try:
                await self._credentials.refresh()
            except RefreshFailure as err:
                self.logger.info("Cannot renew credentials for %s %s: %s", request.method, request.path, err)
                raise AuthorizationFailure(response) from err

        retry_response, _ = await self._submit(request)
        if retry_response.is_unauthorized:
            raise AuthorizationFailure(retry_response)
        return retry_response

    async def _submit(self, request: TransportRequest) -> tuple[TransportResponse, str | None]:
        token = await self._credentials.get_access_credential()
        if token:
            request = request.with_header("Authorization", f"Bearer {token}")
        response = await self._transport.request(
            request.method,
            request.path,
            request.body,
            request.headers,
        )
        return response, token

    # ------------------------------------------------------------------
    async def get(self, path: str, **kwargs: Any) -> TransportResponse:
        return await self.send(TransportRequest("GET", path, **kwargs))

    async def post(self, path: str, body: Any | None = None, **kwargs: Any) -> TransportResponse:
        return await self.send(TransportRequest("POST", path, body, **kwargs))

    async def put(self, path: str, body: Any | None = None, **kwargs: Any) -> TransportResponse:
        return await self.send(TransportRequest("PUT", path, body, **kwargs))

    async def delete(self, path: str, **kwargs: Any) -> TransportResponse:
        return await self.send(TransportRequest("DELETE", path, **kwargs))


__all__ = ["AuthenticatedPipeline"]
