"""Authenticated HTTP transport with a single retry and session expiry.

Every API call goes through AuthenticatedTransport. It injects the bearer
token, retries once after a short backoff when the service answers with a
transient upstream failure or a 401, and treats a 401 on the retry as an
expired session.

Retry policy:
    - 502 / 503 / 504: upstream blips (e.g. the backing store reconnecting).
    - 401: tolerated once to ride out clock skew and token refresh races.
    - A retried request is never retried again. Side-effecting requests may
      therefore reach the service twice.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import httpx

from llm_gateway_client.config import ClientConfig
from llm_gateway_client.errors import RequestRejected, Unauthorized
from llm_gateway_client.identity import IdentityStore

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = frozenset({502, 503, 504})
AUTH_REJECTED_STATUS = 401
RETRY_STATUSES = TRANSIENT_STATUSES | {AUTH_REJECTED_STATUS}


async def ensure_success(response: httpx.Response, fallback: str) -> httpx.Response:
    """Raise RequestRejected unless the response is 2xx.

    The server's ``{"detail": ...}`` body becomes the error message.

    Args:
        response: Response to check; streaming bodies are read first.
        fallback: Message used when the body carries no detail.

    Returns:
        The same response, for chaining.

    Raises:
        RequestRejected: If the status is not 2xx.
    """
    if response.is_success:
        return response

    await response.aread()
    detail: str | None = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("detail"):
        raw = body["detail"]
        detail = raw if isinstance(raw, str) else str(raw)

    raise RequestRejected(response.status_code, detail, fallback)


class AuthenticatedTransport:
    """Wraps an httpx.AsyncClient with auth headers and retry handling.

    Args:
        identity: Source of the bearer token; cleared on session expiry.
        config: Client configuration (base URL, prefix, backoff, timeout).
        http_client: Optional pre-built client, e.g. one bound to a test app.
        on_session_expired: Called after the store is cleared on expiry,
            typically to send the user back to the login screen.
    """

    def __init__(
        self,
        identity: IdentityStore,
        config: ClientConfig,
        http_client: httpx.AsyncClient | None = None,
        on_session_expired: Callable[[], None] | None = None,
    ) -> None:
        self._identity = identity
        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.request_timeout,
        )
        self._on_session_expired = on_session_expired

    def _build_request(
        self,
        method: str,
        path: str,
        json: Any = None,
        headers: dict[str, str] | None = None,
        authenticated: bool = True,
    ) -> httpx.Request:
        merged = httpx.Headers({"Content-Type": "application/json"})
        merged.update(headers or {})
        if authenticated:
            token = self._identity.get_token()
            if token:
                merged["Authorization"] = f"Bearer {token}"

        return self._client.build_request(
            method,
            f"{self._config.api_prefix}{path}",
            json=json,
            headers=merged,
        )

    def _expire_session(self) -> None:
        logger.warning("Session expired after retry; clearing stored credentials")
        self._identity.clear_session()
        if self._on_session_expired is not None:
            self._on_session_expired()

    async def _send(
        self, request: httpx.Request, stream: bool, authenticated: bool
    ) -> httpx.Response:
        response = await self._client.send(request, stream=stream)
        if not authenticated or response.status_code not in RETRY_STATUSES:
            return response

        logger.warning(
            f"{request.method} {request.url.path} returned {response.status_code}, "
            f"retrying once in {self._config.retry_backoff}s"
        )
        await response.aclose()
        await asyncio.sleep(self._config.retry_backoff)

        response = await self._client.send(request, stream=stream)
        if response.status_code == AUTH_REJECTED_STATUS:
            await response.aclose()
            self._expire_session()
            raise Unauthorized()
        return response

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        """Send a request and return the fully read response.

        Args:
            method: HTTP method.
            path: API path relative to the prefix, e.g. ``/auth/me``.
            json: Optional JSON body.
            headers: Extra headers; may override the JSON content type.
            authenticated: Attach the bearer token and apply retry handling.

        Returns:
            The response, which may still carry a non-2xx status.

        Raises:
            Unauthorized: If the retried request is still rejected with 401.
            httpx.HTTPError: On network failures.
        """
        request = self._build_request(method, path, json, headers, authenticated)
        return await self._send(request, stream=False, authenticated=authenticated)

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
        authenticated: bool = True,
    ) -> AsyncIterator[httpx.Response]:
        """Send a request and yield the response with its body unread.

        The response is closed when the context exits, including when the
        consumer stops early or its task is cancelled.
        """
        request = self._build_request(method, path, json, headers, authenticated)
        response = await self._send(request, stream=True, authenticated=authenticated)
        try:
            yield response
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
