"""Gateway client: one object per user session.

Wires the storage scopes, IdentityStore, AuthenticatedTransport and
SessionContext together and exposes the service's operations as methods.

Architecture:
    - Every authenticated call goes through AuthenticatedTransport, so the
      retry and session expiry rules live in one place.
    - Identity lookups go through SessionContext, which shares a single
      in-flight /auth/me request between concurrent callers.
    - Chat calls bypass the cache; their output is a live sequence.
    - A successful chat changes the server's usage counters, so the cached
      profile is invalidated afterwards.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

import httpx
from pydantic import TypeAdapter
from pydantic.alias_generators import to_camel

from llm_gateway_client.cache import CachedResource
from llm_gateway_client.config import ClientConfig, get_client_config
from llm_gateway_client.errors import GatewayError
from llm_gateway_client.identity import IdentityStore
from llm_gateway_client.models import (
    ApiApplication,
    ApiKeyEntry,
    AuthResult,
    ChatMessage,
    ChatOptions,
    ChatRequest,
    CreatedApiKey,
    DashboardData,
    GatewaySettings,
    ModelInfo,
    ModelPerformance,
    QuotaData,
    SecurityEvent,
    SettingsData,
    SystemMetrics,
    UserProfile,
)
from llm_gateway_client.session import SessionContext
from llm_gateway_client.storage import FileStorage, KeyValueStorage, MemoryStorage
from llm_gateway_client.streaming import ChatStream, extract_message_text
from llm_gateway_client.transport import AuthenticatedTransport, ensure_success

logger = logging.getLogger(__name__)

M = TypeVar("M")

MessageLike = ChatMessage | dict[str, str]

INSIGHTS_FALLBACK = "Unable to generate insights."


def _to_messages(messages: Sequence[MessageLike]) -> list[ChatMessage]:
    return [m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m) for m in messages]


class GatewayClient:
    """Client for the LLM gateway service.

    Args:
        config: Client configuration; loaded from the environment if omitted.
        http_client: Optional pre-built httpx client (tests bind it to an app).
        durable: Durable storage scope; defaults to ``config.session_file``.
        ephemeral: Ephemeral storage scope; defaults to a fresh MemoryStorage.
        on_session_expired: Called when the session expires for good.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        durable: KeyValueStorage | None = None,
        ephemeral: KeyValueStorage | None = None,
        on_session_expired: Callable[[], None] | None = None,
    ) -> None:
        self.config = config or get_client_config()
        self.ephemeral = ephemeral if ephemeral is not None else MemoryStorage()
        self.durable = durable if durable is not None else FileStorage(self.config.session_file)
        self.identity = IdentityStore(self.durable, self.ephemeral)
        self.transport = AuthenticatedTransport(
            self.identity,
            self.config,
            http_client=http_client,
            on_session_expired=self._session_expired,
        )
        self.session = SessionContext(self.identity, self.get_me)
        self._on_session_expired = on_session_expired

    def _session_expired(self) -> None:
        self.session.reset()
        if self._on_session_expired is not None:
            self._on_session_expired()

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.transport.aclose()

    # === Helpers ===

    async def _call(
        self,
        method: str,
        path: str,
        error_message: str,
        json: Any = None,
    ) -> httpx.Response:
        response = await self.transport.request(method, path, json=json)
        return await ensure_success(response, error_message)

    async def _fetch(
        self,
        method: str,
        path: str,
        model: type[M],
        error_message: str,
        json: Any = None,
    ) -> M:
        response = await self._call(method, path, error_message, json=json)
        return TypeAdapter(model).validate_python(response.json())

    # === Auth ===

    async def _authenticate(
        self,
        path: str,
        body: dict[str, str],
        remember: bool,
        error_message: str,
    ) -> AuthResult:
        response = await self.transport.request("POST", path, json=body, authenticated=False)
        await ensure_success(response, error_message)
        result = AuthResult.model_validate(response.json())
        self.session.reset()
        self.identity.set_session(result.token, result.user, remember)
        self.session.remember(result.user)
        return result

    async def login(self, email: str, password: str, remember: bool = True) -> AuthResult:
        """Log in and store the session.

        Args:
            email: Account email.
            password: Account password.
            remember: Keep the session across restarts.

        Raises:
            RequestRejected: With the server's detail on bad credentials.
        """
        return await self._authenticate(
            "/auth/login",
            {"email": email, "password": password},
            remember,
            "Login failed",
        )

    async def signup(
        self,
        email: str,
        password: str,
        name: str,
        remember: bool = True,
    ) -> AuthResult:
        """Create an account and store the new session."""
        return await self._authenticate(
            "/auth/signup",
            {"email": email, "password": password, "passwordConfirm": password, "name": name},
            remember,
            "Signup failed",
        )

    def logout(self) -> None:
        self.session.reset()
        logger.info("Logged out")

    async def get_me(self) -> UserProfile:
        """Fetch the current profile from the service, bypassing caches."""
        return await self._fetch("GET", "/auth/me", UserProfile, "Failed to fetch user")

    async def get_identity(self) -> UserProfile:
        """Return the current profile, hitting the network only when needed."""
        return await self.session.get_identity()

    # === Dashboard ===

    async def get_dashboard(self) -> DashboardData:
        return await self._fetch(
            "GET", "/user/dashboard", DashboardData, "Failed to fetch dashboard"
        )

    async def get_quota(self) -> QuotaData:
        return await self._fetch("GET", "/user/quota", QuotaData, "Failed to fetch quota")

    # === API keys ===

    async def list_keys(self) -> list[ApiKeyEntry]:
        return await self._fetch("GET", "/keys", list[ApiKeyEntry], "Failed to fetch keys")

    async def create_key(
        self,
        name: str,
        daily_requests: int,
        daily_tokens: int,
        total_tokens: int,
    ) -> CreatedApiKey:
        body = {
            "name": name,
            "dailyRequests": daily_requests,
            "dailyTokens": daily_tokens,
            "totalTokens": total_tokens,
        }
        return await self._fetch("POST", "/keys", CreatedApiKey, "Failed to create key", json=body)

    async def delete_key(self, key_id: str) -> None:
        await self._call("DELETE", f"/keys/{key_id}", "Failed to delete key")

    async def regenerate_key(self, key_id: str) -> str:
        """Issue a new secret for a key and return it in plain text."""
        data = await self._fetch(
            "POST", f"/keys/{key_id}/regenerate", dict[str, str], "Failed to regenerate key"
        )
        return data["plainKey"]

    async def reveal_key(self, key_id: str) -> str:
        data = await self._fetch(
            "GET", f"/keys/{key_id}/reveal", dict[str, str], "Failed to reveal key"
        )
        return data["key"]

    # === Models and chat ===

    def _chat_request(
        self,
        model: str,
        messages: Sequence[MessageLike],
        temperature: float | None,
        stream: bool | None = None,
        think: bool | None = None,
    ) -> dict[str, Any]:
        request = ChatRequest(
            model=model,
            messages=_to_messages(messages),
            options=ChatOptions(temperature=temperature) if temperature is not None else None,
            stream=stream,
            think=think,
        )
        return request.to_wire()

    async def chat(
        self,
        model: str,
        messages: Sequence[MessageLike],
        temperature: float | None = None,
    ) -> str:
        """Send a non-streaming chat request and return the reply text."""
        body = self._chat_request(model, messages, temperature)
        response = await self.transport.request("POST", "/v1/chat", json=body)
        await ensure_success(response, f"Chat failed: {response.status_code}")
        self.session.invalidate_identity()
        return extract_message_text(response.json())

    def open_chat_stream(
        self,
        model: str,
        messages: Sequence[MessageLike],
        temperature: float | None = None,
        think: bool | None = None,
    ) -> ChatStream:
        """Start a streaming chat request.

        Nothing is sent until the returned stream is iterated.

        Args:
            model: Model name.
            messages: Conversation so far.
            temperature: Optional sampling temperature.
            think: Ask reasoning models to include their thinking.

        Returns:
            ChatStream yielding the accumulated reply text.
        """
        body = self._chat_request(model, messages, temperature, stream=True, think=think)
        return ChatStream(
            lambda: self.transport.stream(
                "POST",
                "/v1/chat",
                json=body,
                headers={"Accept": "text/event-stream, application/x-ndjson, application/json"},
            ),
            reveal_duration=self.config.reveal_duration,
            reveal_interval=self.config.reveal_interval,
            on_complete=self.session.invalidate_identity,
        )

    async def stream_chat(
        self,
        model: str,
        messages: Sequence[MessageLike],
        temperature: float | None = None,
        on_delta: Callable[[str], None] | None = None,
        think: bool | None = None,
    ) -> str:
        """Stream a chat reply, reporting accumulated text to ``on_delta``.

        Returns:
            The final reply text.

        Raises:
            RequestRejected: If the service rejects the request.
            Unauthorized: If the session has expired.
            httpx.HTTPError: On network failures.
        """
        async with self.open_chat_stream(model, messages, temperature, think=think) as stream:
            async for text in stream:
                if on_delta is not None:
                    on_delta(text)
            return stream.text

    async def list_models(self) -> list[ModelInfo]:
        return await self._fetch("GET", "/v1/models", list[ModelInfo], "Failed to fetch models")

    async def show_model(self, name: str) -> dict[str, Any]:
        return await self._fetch(
            "POST", "/v1/models/show", dict[str, Any], "Failed to show model", json={"name": name}
        )

    async def health(self) -> bool:
        """Whether the model backend reports itself healthy."""
        try:
            response = await self.transport.request("GET", "/v1/health")
            if not response.is_success:
                return False
            body = response.json()
            return isinstance(body, dict) and body.get("status") == "ok"
        except (httpx.HTTPError, GatewayError, ValueError) as e:
            logger.debug(f"Health check failed: {e}")
            return False

    # === Applications ===

    async def create_application(
        self,
        project_name: str,
        use_case: str,
        requested_quota: int,
        target_model: str | None = None,
    ) -> ApiApplication:
        body: dict[str, Any] = {
            "projectName": project_name,
            "useCase": use_case,
            "requestedQuota": requested_quota,
        }
        if target_model is not None:
            body["targetModel"] = target_model
        return await self._fetch(
            "POST", "/applications", ApiApplication, "Failed to create application", json=body
        )

    async def list_applications(self) -> list[ApiApplication]:
        return await self._fetch(
            "GET", "/applications", list[ApiApplication], "Failed to fetch applications"
        )

    # === Settings ===

    async def get_settings(self) -> SettingsData:
        return await self._fetch("GET", "/settings", SettingsData, "Failed to fetch settings")

    async def update_settings(self, **changes: Any) -> None:
        """Patch account settings; keyword names are snake_case field names."""
        body = SettingsData.model_validate(changes).model_dump(
            mode="json", by_alias=True, include=set(changes)
        )
        await self._call("PATCH", "/settings", "Failed to update settings", json=body)

    async def refresh_api_key(self) -> str:
        data = await self._fetch(
            "POST", "/settings/api-key/refresh", dict[str, str], "Failed to refresh API key"
        )
        return data["apiKey"]

    async def update_whitelist(self, ip_whitelist: str) -> None:
        await self._call(
            "PATCH",
            "/settings/whitelist",
            "Failed to update whitelist",
            json={"ipWhitelist": ip_whitelist},
        )

    # === Admin ===

    async def admin_list_users(self) -> list[UserProfile]:
        return await self._fetch("GET", "/admin/users", list[UserProfile], "Failed to fetch users")

    async def admin_update_user(self, user_id: str, **changes: Any) -> UserProfile:
        body = {to_camel(name): value for name, value in changes.items()}
        return await self._fetch(
            "PATCH", f"/admin/users/{user_id}", UserProfile, "Failed to update user", json=body
        )

    async def admin_security_events(self) -> list[SecurityEvent]:
        return await self._fetch(
            "GET", "/admin/security-events", list[SecurityEvent], "Failed to fetch security events"
        )

    async def admin_metrics(self) -> SystemMetrics:
        return await self._fetch("GET", "/admin/metrics", SystemMetrics, "Failed to fetch metrics")

    async def admin_model_performance(self) -> list[ModelPerformance]:
        return await self._fetch(
            "GET",
            "/admin/models/performance",
            list[ModelPerformance],
            "Failed to fetch model performance",
        )

    async def admin_insights(self, stats: Any) -> str:
        """Ask the service for management recommendations on ``stats``."""
        response = await self.transport.request("POST", "/admin/insights", json={"stats": stats})
        if not response.is_success:
            return INSIGHTS_FALLBACK
        try:
            body = response.json()
        except ValueError:
            return INSIGHTS_FALLBACK
        if not isinstance(body, dict):
            return INSIGHTS_FALLBACK
        return body.get("insights") or INSIGHTS_FALLBACK

    async def admin_list_applications(self) -> list[ApiApplication]:
        return await self._fetch(
            "GET", "/admin/applications", list[ApiApplication], "Failed to fetch applications"
        )

    async def admin_update_application(
        self,
        app_id: str,
        status: str,
        admin_note: str | None = None,
    ) -> ApiApplication:
        body = {"status": status}
        if admin_note is not None:
            body["adminNote"] = admin_note
        return await self._fetch(
            "PATCH",
            f"/admin/applications/{app_id}",
            ApiApplication,
            "Failed to update application",
            json=body,
        )

    async def admin_gateway_settings(self) -> GatewaySettings:
        return await self._fetch(
            "GET", "/admin/ollama-settings", GatewaySettings, "Failed to fetch Ollama settings"
        )

    async def admin_update_gateway_settings(self, base_url: str) -> GatewaySettings:
        return await self._fetch(
            "PATCH",
            "/admin/ollama-settings",
            GatewaySettings,
            "Failed to update Ollama settings",
            json={"ollamaBaseUrl": base_url},
        )

    # === Caching ===

    def cached(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[M]],
        model: type[M] | None = None,
        on_change: Callable[[CachedResource[M]], None] | None = None,
    ) -> CachedResource[M]:
        """Build a revalidating cache entry backed by the ephemeral scope."""
        return CachedResource(
            key,
            fetcher,
            self.ephemeral,
            prefix=self.config.cache_prefix,
            model=model,
            on_change=on_change,
        )
