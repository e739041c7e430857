import asyncio
import logging

import aiohttp
import pytest
from aiohttp import test_utils, web

from petchain.cloudsync import (
    AiohttpTransport,
    AuthenticatedPipeline,
    CredentialManager,
    MemoryStore,
    MutationQueue,
    TransportError,
    TransportRequest,
    TransportResponse,
)
from petchain.const import KEY_ACCESS_TOKEN


class DummyResp:
    def __init__(self, status=200, text="", headers=None, charset="utf-8"):
        self.status = status
        self._body = text.encode() if isinstance(text, str) else text
        self.charset = charset
        self.headers = headers or {"Content-Type": "application/json"}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def read(self):
        return self._body


class DummySession:
    def __init__(self, resp=None, exc=None):
        self.resp = resp or DummyResp()
        self.exc = exc
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.exc:
            raise self.exc
        return self.resp

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_request_builds_url_and_decodes_json():
    session = DummySession(DummyResp(201, '{"id": "p1"}'))
    transport = AiohttpTransport("https://api.example.com/api/", session)

    response = await transport.request("POST", "/pets", {"name": "Rex"}, {"Authorization": "Bearer t"})

    assert response == TransportResponse(201, {"id": "p1"}, {"Content-Type": "application/json"})
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "https://api.example.com/api/pets")
    assert kwargs["json"] == {"name": "Rex"}
    assert kwargs["headers"]["Authorization"] == "Bearer t"
    assert kwargs["headers"]["Content-Type"] == "application/json"
    assert kwargs["timeout"].total == 30.0


@pytest.mark.asyncio
@pytest.mark.parametrize(("text", "expected"), [("", None), ("  ", None), ("plain text", "plain text")])
async def test_non_json_bodies(text, expected):
    transport = AiohttpTransport("https://api.example.com", DummySession(DummyResp(500, text)))

    response = await transport.request("GET", "/pets")

    assert response.status == 500
    assert response.body == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("exc", [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()])
async def test_network_failures_raise_transport_error(exc):
    transport = AiohttpTransport("https://api.example.com", DummySession(exc=exc), timeout=5)

    with pytest.raises(TransportError) as err:
        await transport.request("GET", "/pets")

    assert err.value.__cause__ is exc


@pytest.mark.asyncio
async def test_debug_log_redacts_authorization(caplog):
    transport = AiohttpTransport("https://api.example.com", DummySession())

    with caplog.at_level(logging.DEBUG, logger="petchain.cloudsync.transport"):
        await transport.request("GET", "/pets", headers={"Authorization": "Bearer secret-token"})

    assert "secret-token" not in caplog.text
    assert "**REDACTED**" in caplog.text


@pytest.mark.asyncio
async def test_supplied_session_is_not_closed():
    session = DummySession()
    transport = AiohttpTransport("https://api.example.com", session)

    await transport.async_close()

    assert session.closed is False


def test_response_helpers():
    assert TransportResponse(204).ok
    assert not TransportResponse(302).ok
    assert TransportResponse(401).is_unauthorized
    assert TransportResponse(200, ["list"]).json_body() == {}


def test_request_helpers_do_not_mutate_original():
    request = TransportRequest("GET", "/pets", headers={"X-Trace": "1"})

    authed = request.with_header("Authorization", "Bearer t")
    retried = authed.mark_retried()

    assert request.headers == {"X-Trace": "1"}
    assert authed.headers == {"X-Trace": "1", "Authorization": "Bearer t"}
    assert retried.retried and not authed.retried


@pytest.mark.asyncio
@pytest.mark.parametrize("charset", [None, "utf-8", "no-such-codec"])
async def test_undecodable_body_is_replaced(charset):
    transport = AiohttpTransport("https://api.example.com", DummySession(DummyResp(500, b"\xff\xfe oops", charset=charset)))

    response = await transport.request("POST", "/pets")

    assert response.status == 500
    assert response.body == "\ufffd\ufffd oops"


@pytest.mark.asyncio
async def test_binary_error_body_does_not_block_the_queue():
    async def bad_pets(request):
        return web.Response(status=500, body=b"\xff\xfe oops", content_type="text/plain", charset="utf-8")

    async def appointments(request):
        return web.json_response({"id": "a1"}, status=201)

    app = web.Application()
    app.router.add_post("/api/pets", bad_pets)
    app.router.add_post("/api/appointments", appointments)
    server = test_utils.TestServer(app)
    await server.start_server()
    transport = AiohttpTransport(str(server.make_url("/api")))
    try:
        store = MemoryStore({KEY_ACCESS_TOKEN: "access-1"})
        queue = MutationQueue(store)
        pipeline = AuthenticatedPipeline(transport, CredentialManager(store, transport))
        await queue.enqueue("pet", "create", {"name": "Rex"})
        await queue.enqueue("appointment", "create", {"petId": "p1"})

        result = await queue.flush(pipeline)
    finally:
        await transport.async_close()
        await server.close()

    assert (result.sent, result.retried) == (1, 1)
    [entry] = await queue.pending()
    assert entry.entity_type == "pet"
    assert entry.retry_count == 1
    assert "HTTP 500" in entry.last_error
