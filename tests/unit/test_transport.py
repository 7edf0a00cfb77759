"""Unit tests for AuthenticatedTransport retry and expiry rules.

HTTP is served by httpx.MockTransport handlers that replay a scripted
sequence of status codes.
"""

import json

import httpx
import pytest

from llm_gateway_client.config import ClientConfig
from llm_gateway_client.errors import RequestRejected, Unauthorized
from llm_gateway_client.identity import IdentityStore
from llm_gateway_client.models import UserProfile
from llm_gateway_client.transport import AuthenticatedTransport, ensure_success


class ScriptedHandler:
    """Answers requests with the next scripted status, recording each request."""

    def __init__(self, *statuses: int, body: dict | None = None) -> None:
        self.statuses = list(statuses)
        self.body = body if body is not None else {"ok": True}
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        code = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if code >= 400:
            return httpx.Response(code, json={"detail": f"status {code}"})
        return httpx.Response(code, json=self.body)


@pytest.fixture
def expired_calls() -> list[bool]:
    return []


def make_transport(
    handler: ScriptedHandler,
    identity_store: IdentityStore,
    fast_config: ClientConfig,
    expired_calls: list[bool] | None = None,
) -> AuthenticatedTransport:
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url=fast_config.base_url
    )
    return AuthenticatedTransport(
        identity_store,
        fast_config,
        http_client=http_client,
        on_session_expired=(
            (lambda: expired_calls.append(True)) if expired_calls is not None else None
        ),
    )


@pytest.fixture
def logged_in(identity_store: IdentityStore, sample_profile: UserProfile) -> IdentityStore:
    identity_store.set_session("secret-token", sample_profile, remember=True)
    return identity_store


class TestHeaders:
    """Tests for header injection."""

    async def test_bearer_and_json_headers(
        self, logged_in: IdentityStore, fast_config: ClientConfig
    ) -> None:
        handler = ScriptedHandler(200)
        transport = make_transport(handler, logged_in, fast_config)

        await transport.request("GET", "/auth/me")

        sent = handler.requests[0]
        assert sent.headers["Authorization"] == "Bearer secret-token"
        assert sent.headers["Content-Type"] == "application/json"
        assert sent.url.path == "/api/auth/me"

    async def test_no_token_no_authorization_header(
        self, identity_store: IdentityStore, fast_config: ClientConfig
    ) -> None:
        handler = ScriptedHandler(200)
        transport = make_transport(handler, identity_store, fast_config)

        await transport.request("GET", "/v1/models")

        assert "Authorization" not in handler.requests[0].headers

    async def test_caller_overrides_content_type(
        self, logged_in: IdentityStore, fast_config: ClientConfig
    ) -> None:
        handler = ScriptedHandler(200)
        transport = make_transport(handler, logged_in, fast_config)

        await transport.request("POST", "/upload", headers={"Content-Type": "text/plain"})

        assert handler.requests[0].headers["Content-Type"] == "text/plain"

    async def test_lowercase_override_replaces_content_type(
        self, logged_in: IdentityStore, fast_config: ClientConfig
    ) -> None:
        """Header names match case-insensitively, so only one value is sent."""
        handler = ScriptedHandler(200)
        transport = make_transport(handler, logged_in, fast_config)

        await transport.request("POST", "/upload", headers={"content-type": "text/plain"})

        assert handler.requests[0].headers.get_list("content-type") == ["text/plain"]

    async def test_unauthenticated_request_skips_token(
        self, logged_in: IdentityStore, fast_config: ClientConfig
    ) -> None:
        handler = ScriptedHandler(200)
        transport = make_transport(handler, logged_in, fast_config)

        await transport.request("POST", "/auth/login", json={}, authenticated=False)

        assert "Authorization" not in handler.requests[0].headers


class TestRetryPolicy:
    """Tests for the single retry and session expiry."""

    @pytest.mark.parametrize("first_status", [502, 503, 504, 401])
    async def test_transient_then_success_is_invisible(
        self, logged_in: IdentityStore, fast_config: ClientConfig, first_status: int
    ) -> None:
        """A single transient failure is absorbed by the retry."""
        handler = ScriptedHandler(first_status, 200)
        transport = make_transport(handler, logged_in, fast_config)

        response = await transport.request("GET", "/user/quota")

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert len(handler.requests) == 2

    async def test_retry_sends_identical_body(
        self, logged_in: IdentityStore, fast_config: ClientConfig
    ) -> None:
        handler = ScriptedHandler(502, 200)
        transport = make_transport(handler, logged_in, fast_config)

        await transport.request("POST", "/keys", json={"name": "ci"})

        first, second = handler.requests
        assert first.content == second.content
        assert json.loads(second.content) == {"name": "ci"}

    async def test_persistent_transient_failure_is_returned(
        self, logged_in: IdentityStore, fast_config: ClientConfig
    ) -> None:
        """After one retry the failing response is handed back as-is."""
        handler = ScriptedHandler(502, 502, 200)
        transport = make_transport(handler, logged_in, fast_config)

        response = await transport.request("GET", "/user/quota")

        assert response.status_code == 502
        assert len(handler.requests) == 2
        assert logged_in.get_token() == "secret-token"

    async def test_persistent_401_expires_session(
        self,
        logged_in: IdentityStore,
        fast_config: ClientConfig,
        expired_calls: list[bool],
    ) -> None:
        """Two 401s clear the store and raise Unauthorized, not RequestRejected."""
        handler = ScriptedHandler(401, 401, 200)
        transport = make_transport(handler, logged_in, fast_config, expired_calls)

        with pytest.raises(Unauthorized):
            await transport.request("GET", "/auth/me")

        assert len(handler.requests) == 2
        assert logged_in.get_token() is None
        assert logged_in.get_stored_profile() is None
        assert expired_calls == [True]

    async def test_transient_then_401_expires_session(
        self, logged_in: IdentityStore, fast_config: ClientConfig
    ) -> None:
        handler = ScriptedHandler(503, 401)
        transport = make_transport(handler, logged_in, fast_config)

        with pytest.raises(Unauthorized):
            await transport.request("GET", "/auth/me")
        assert logged_in.get_token() is None

    async def test_other_errors_are_not_retried(
        self, logged_in: IdentityStore, fast_config: ClientConfig
    ) -> None:
        handler = ScriptedHandler(500, 200)
        transport = make_transport(handler, logged_in, fast_config)

        response = await transport.request("GET", "/user/quota")

        assert response.status_code == 500
        assert len(handler.requests) == 1

    async def test_unauthenticated_401_is_not_retried(
        self, logged_in: IdentityStore, fast_config: ClientConfig
    ) -> None:
        """Bad login credentials are not a session expiry."""
        handler = ScriptedHandler(401, 200)
        transport = make_transport(handler, logged_in, fast_config)

        response = await transport.request("POST", "/auth/login", json={}, authenticated=False)

        assert response.status_code == 401
        assert len(handler.requests) == 1
        assert logged_in.get_token() == "secret-token"

    async def test_stream_retries_before_yielding(
        self, logged_in: IdentityStore, fast_config: ClientConfig
    ) -> None:
        handler = ScriptedHandler(502, 200)
        transport = make_transport(handler, logged_in, fast_config)

        async with transport.stream("POST", "/v1/chat", json={}) as response:
            assert response.status_code == 200
            assert json.loads(await response.aread()) == {"ok": True}

        assert len(handler.requests) == 2


class TestEnsureSuccess:
    """Tests for turning error bodies into RequestRejected."""

    async def test_success_passes_through(self) -> None:
        response = httpx.Response(200, json={})
        assert await ensure_success(response, "nope") is response

    async def test_detail_becomes_message(self) -> None:
        response = httpx.Response(403, json={"detail": "Quota exceeded"})

        with pytest.raises(RequestRejected) as exc_info:
            await ensure_success(response, "Chat failed: 403")

        assert str(exc_info.value) == "Quota exceeded"
        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "Quota exceeded"

    async def test_fallback_without_detail(self) -> None:
        response = httpx.Response(500, text="Internal Server Error")

        with pytest.raises(RequestRejected) as exc_info:
            await ensure_success(response, "Failed to fetch keys")

        assert str(exc_info.value) == "Failed to fetch keys"
        assert exc_info.value.detail is None

    async def test_list_detail_is_stringified(self) -> None:
        response = httpx.Response(422, json={"detail": [{"msg": "field required"}]})

        with pytest.raises(RequestRejected) as exc_info:
            await ensure_success(response, "Invalid")

        assert "field required" in str(exc_info.value)
