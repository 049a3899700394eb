"""Tests for the authenticated transport: bearer attachment, refresh and forced logout."""

import asyncio

import httpx

from token_store import TokenStore
from transport import AuthenticatedTransport


def _make(tmp_path, handler, access="old", refresh="r1"):
    tokens = TokenStore(tmp_path / "session.db")
    if access:
        tokens.save_tokens(access, refresh)
    elif refresh:
        tokens.set("refreshToken", refresh)
    expired = []
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test")
    transport = AuthenticatedTransport(client, tokens, on_session_expired=lambda: expired.append(True))
    return transport, tokens, expired


class Recorder:
    """MockTransport handler: 401 unless the request carries the accepted token."""

    def __init__(self, accepted="Bearer new", refresh_status=200, new_token="new"):
        self.accepted = accepted
        self.refresh_status = refresh_status
        self.new_token = new_token
        self.requests = []
        self.refresh_calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/auth/refresh":
            self.refresh_calls += 1
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"error": "invalid refresh token"})
            return httpx.Response(200, json={"accessToken": self.new_token})
        if request.headers.get("Authorization") != self.accepted:
            return httpx.Response(401, json={"error": "expired"})
        return httpx.Response(200, json=[])

    def data_requests(self):
        return [r for r in self.requests if r.url.path != "/auth/refresh"]


def test_expired_token_is_refreshed_and_retried_once(tmp_path):
    recorder = Recorder()
    transport, tokens, expired = _make(tmp_path, recorder)

    async def scenario():
        async with transport:
            return await transport.get("/messages/1")

    response = asyncio.run(scenario())

    assert response.status_code == 200
    assert recorder.refresh_calls == 1
    sent = recorder.data_requests()
    assert len(sent) == 2
    assert sent[0].headers["Authorization"] == "Bearer old"
    assert sent[1].headers["Authorization"] == "Bearer new"
    assert tokens.access_token == "new"
    assert tokens.refresh_token == "r1"
    assert expired == []


def test_refresh_request_carries_refresh_token(tmp_path):
    recorder = Recorder()
    transport, _, _ = _make(tmp_path, recorder)

    asyncio.run(transport.get("/chat/conversations"))

    refresh = [r for r in recorder.requests if r.url.path == "/auth/refresh"][0]
    assert refresh.method == "POST"
    assert b'"refreshToken"' in refresh.content
    assert b'"r1"' in refresh.content


def test_failed_refresh_clears_tokens_and_does_not_retry(tmp_path):
    recorder = Recorder(refresh_status=401)
    transport, tokens, expired = _make(tmp_path, recorder)

    response = asyncio.run(transport.get("/messages/1"))

    assert response.status_code == 401
    assert recorder.refresh_calls == 1
    assert len(recorder.data_requests()) == 1
    assert tokens.access_token is None
    assert tokens.refresh_token is None
    assert expired == [True]


def test_missing_refresh_token_forces_logout_without_refresh_call(tmp_path):
    recorder = Recorder()
    transport, tokens, expired = _make(tmp_path, recorder, access="old", refresh=None)

    response = asyncio.run(transport.get("/messages/1"))

    assert response.status_code == 401
    assert recorder.refresh_calls == 0
    assert tokens.access_token is None
    assert expired == [True]


def test_refresh_response_without_token_counts_as_failure(tmp_path):
    recorder = Recorder(new_token="")
    transport, tokens, expired = _make(tmp_path, recorder)

    response = asyncio.run(transport.get("/messages/1"))

    assert response.status_code == 401
    assert len(recorder.data_requests()) == 1
    assert expired == [True]


def test_concurrent_401s_share_one_refresh(tmp_path):
    recorder = Recorder()
    transport, tokens, _ = _make(tmp_path, recorder)

    async def scenario():
        return await asyncio.gather(
            transport.get("/messages/1"),
            transport.get("/messages/2"),
            transport.get("/chat/conversations"),
        )

    responses = asyncio.run(scenario())

    assert [r.status_code for r in responses] == [200, 200, 200]
    assert recorder.refresh_calls == 1
    retried = [r for r in recorder.data_requests() if r.headers.get("Authorization") == "Bearer new"]
    assert len(retried) == 3
    assert tokens.access_token == "new"


def test_no_authorization_header_without_session(tmp_path):
    seen = []

    def handler(request):
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={"displayName": "Ada"})

    transport, _, _ = _make(tmp_path, handler, access=None, refresh=None)

    response = asyncio.run(transport.get("/users/0xabc"))

    assert response.status_code == 200
    assert seen == [None]


def test_other_error_statuses_pass_through(tmp_path):
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(500)

    transport, tokens, expired = _make(tmp_path, handler)

    response = asyncio.run(transport.post("/messages", json={"disputeId": "0", "content": "hi"}))

    assert response.status_code == 500
    assert calls == ["/messages"]
    assert tokens.access_token == "old"
    assert expired == []


def test_late_401_is_retried_with_the_rotated_token(tmp_path):
    tokens = TokenStore(tmp_path / "session.db")
    tokens.save_tokens("old", "r1")
    refresh_calls = []
    slow_headers = []

    async def handler(request):
        if request.url.path == "/auth/refresh":
            refresh_calls.append(request)
            return httpx.Response(200, json={"accessToken": "new"})
        auth = request.headers.get("Authorization")
        if request.url.path == "/messages/slow":
            slow_headers.append(auth)
            # hold the stale-token response until the other request has refreshed
            while auth == "Bearer old" and tokens.access_token != "new":
                await asyncio.sleep(0)
        return httpx.Response(200 if auth == "Bearer new" else 401, json=[])

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test")
    transport = AuthenticatedTransport(client, tokens)

    async def scenario():
        return await asyncio.gather(transport.get("/messages/1"), transport.get("/messages/slow"))

    responses = asyncio.run(scenario())

    assert [r.status_code for r in responses] == [200, 200]
    assert len(refresh_calls) == 1
    assert slow_headers == ["Bearer old", "Bearer new"]


def test_401_after_failed_refresh_does_not_expire_the_session_twice(tmp_path):
    tokens = TokenStore(tmp_path / "session.db")
    tokens.save_tokens("old", "r1")
    refresh_calls = []
    expired = []

    async def scenario():
        session_cleared = asyncio.Event()

        def on_expired():
            expired.append(True)
            session_cleared.set()

        async def handler(request):
            if request.url.path == "/auth/refresh":
                refresh_calls.append(request)
                return httpx.Response(401, json={"error": "invalid refresh token"})
            if request.url.path == "/messages/slow":
                await session_cleared.wait()
            return httpx.Response(401, json={"error": "expired"})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test")
        transport = AuthenticatedTransport(client, tokens, on_session_expired=on_expired)
        async with transport:
            return await asyncio.gather(transport.get("/messages/1"), transport.get("/messages/slow"))

    responses = asyncio.run(scenario())

    assert [r.status_code for r in responses] == [401, 401]
    assert len(refresh_calls) == 1
    assert expired == [True]
    assert tokens.access_token is None
