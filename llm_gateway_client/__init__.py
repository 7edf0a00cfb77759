"""LLM Gateway Client - data access layer for the LLM gateway service.

Turns raw HTTP calls into an authenticated, retrying transport, a
stale-while-revalidate cache, and a streaming chat consumer that normalizes
several response shapes into one incremental contract.

Components:
    - storage: durable and ephemeral key-value scopes
    - identity: bearer token and profile storage
    - transport: auth headers, single retry, session expiry
    - session: single-flight identity lookups
    - cache: revalidating cached resources
    - streaming: SSE / NDJSON / whole-message chat streams
    - client: the service's operations behind one object
"""

from llm_gateway_client.cache import CachedResource
from llm_gateway_client.client import GatewayClient
from llm_gateway_client.config import ClientConfig, get_client_config
from llm_gateway_client.errors import GatewayError, RequestRejected, Unauthorized
from llm_gateway_client.identity import IdentityStore
from llm_gateway_client.session import SessionContext
from llm_gateway_client.storage import FileStorage, MemoryStorage, StorageError, StorageFullError
from llm_gateway_client.streaming import CHAT_ERROR_FALLBACK, ChatStream, coalesce
from llm_gateway_client.transport import AuthenticatedTransport

__version__ = "0.1.0"

__all__ = [
    "CHAT_ERROR_FALLBACK",
    "AuthenticatedTransport",
    "CachedResource",
    "ChatStream",
    "ClientConfig",
    "FileStorage",
    "GatewayClient",
    "GatewayError",
    "IdentityStore",
    "MemoryStorage",
    "RequestRejected",
    "SessionContext",
    "StorageError",
    "StorageFullError",
    "Unauthorized",
    "coalesce",
    "get_client_config",
]
