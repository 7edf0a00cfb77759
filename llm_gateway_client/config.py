"""Client configuration with environment variable loading.

Pydantic-based configuration for the gateway client.
Values come from the environment (and a .env file) unless passed explicitly.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file
load_dotenv()

_DEFAULT_SESSION_FILE = Path.home() / ".llm_gateway_client" / "session.json"


class ClientConfig(BaseModel):
    """Configuration for the gateway client.

    Attributes:
        base_url: Root URL of the remote service.
        api_prefix: Path prefix prepended to every API path.
        retry_backoff: Seconds to wait before the single retry.
        request_timeout: Per-request timeout in seconds.
        session_file: JSON file backing the durable session scope.
        cache_prefix: Namespace for revalidating cache entries.
        reveal_duration: Seconds a simulated stream takes to reveal its text.
        reveal_interval: Seconds between simulated stream emissions.
    """

    base_url: str = Field(
        default_factory=lambda: os.getenv("GATEWAY_BASE_URL", "http://localhost:8000"),
        description="Remote service base URL",
    )
    api_prefix: str = Field(default="/api", description="API path prefix")
    retry_backoff: float = Field(
        default_factory=lambda: float(os.getenv("GATEWAY_RETRY_BACKOFF", "0.75")),
        ge=0.0,
        le=10.0,
        description="Delay before retrying a transient or auth failure",
    )
    request_timeout: float = Field(
        default_factory=lambda: float(os.getenv("GATEWAY_TIMEOUT", "120")),
        gt=0.0,
        description="Request timeout in seconds",
    )
    session_file: Path = Field(
        default_factory=lambda: Path(
            os.getenv("GATEWAY_SESSION_FILE", str(_DEFAULT_SESSION_FILE))
        ),
        description="Durable session storage file",
    )
    cache_prefix: str = Field(default="swr:", description="Cache key namespace")
    reveal_duration: float = Field(
        default=2.0,
        ge=0.0,
        description="Total duration of a simulated typewriter reveal",
    )
    reveal_interval: float = Field(
        default=1 / 60,
        ge=0.0,
        description="Interval between simulated typewriter emissions",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("GATEWAY_BASE_URL must start with http:// or https://")
        return v.rstrip("/")


def get_client_config() -> ClientConfig:
    """Create client configuration from environment.

    Returns:
        Configured ClientConfig instance.

    Raises:
        ValueError: If the base URL is not an http(s) URL.
    """
    return ClientConfig()
