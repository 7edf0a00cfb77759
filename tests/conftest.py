"""Pytest fixtures and shared test configuration.

Provides reusable fixtures for unit and integration tests.

Fixtures:
    - fast_config: ClientConfig with no retry backoff or reveal delay
    - durable / ephemeral: in-memory storage scopes
    - identity_store: IdentityStore over those scopes
    - sample_profile: a typical user profile
    - fake_gateway: in-process fake of the remote service
    - client: GatewayClient talking to the fake through ASGITransport
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from llm_gateway_client.client import GatewayClient
from llm_gateway_client.config import ClientConfig
from llm_gateway_client.identity import IdentityStore
from llm_gateway_client.models import UserProfile
from llm_gateway_client.storage import MemoryStorage
from tests.fake_gateway import create_fake_gateway


@pytest.fixture
def fast_config(tmp_path: Path) -> ClientConfig:
    """Return config that never sleeps.

    Returns:
        ClientConfig with zero backoff and an instant simulated reveal.
    """
    return ClientConfig(
        base_url="http://test",
        retry_backoff=0.0,
        reveal_interval=0.0,
        session_file=tmp_path / "session.json",
    )


@pytest.fixture
def durable() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def ephemeral() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def identity_store(durable: MemoryStorage, ephemeral: MemoryStorage) -> IdentityStore:
    return IdentityStore(durable, ephemeral)


@pytest.fixture
def sample_profile() -> UserProfile:
    """Return a predictable profile for assertions."""
    return UserProfile(
        id="2",
        email="dev@example.com",
        name="Developer Jane",
        role="USER",
        daily_usage=12000,
        daily_quota=20000,
    )


@pytest.fixture
def fake_gateway() -> FastAPI:
    return create_fake_gateway()


@pytest.fixture
async def client(
    fake_gateway: FastAPI,
    fast_config: ClientConfig,
    durable: MemoryStorage,
    ephemeral: MemoryStorage,
) -> AsyncGenerator[GatewayClient]:
    """Create a gateway client bound to the fake service.

    Yields:
        GatewayClient whose HTTP calls never leave the process.
    """
    transport = ASGITransport(app=fake_gateway)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        gateway = GatewayClient(
            config=fast_config,
            http_client=http_client,
            durable=durable,
            ephemeral=ephemeral,
        )
        yield gateway
