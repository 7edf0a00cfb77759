from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for payloads exchanged with the service.

    Fields are camelCase on the wire and snake_case in Python.
    Unknown fields are kept so round-tripping a profile loses nothing.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize with wire aliases, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class UserRole(str, Enum):
    """Roles a user account can hold."""

    ADMIN = "ADMIN"
    USER = "USER"


class UserProfile(WireModel):
    """The authenticated user's profile as returned by /auth/me.

    Attributes:
        id: Account identifier.
        email: Login email.
        name: Display name.
        role: Account role (the service sends upper or lower case).
        usage: Total tokens used.
        daily_usage: Tokens used today.
        daily_quota: Daily token allowance.
        total_quota: Lifetime token allowance.
    """

    id: str
    email: str
    name: str = ""
    role: str = UserRole.USER.value
    api_key: str | None = None
    usage: int = 0
    daily_usage: int = 0
    daily_quota: int = 0
    total_quota: int = 0
    last_active: str | None = None
    ip: str | None = None
    status: str = "active"
    access_count: int = 0

    @property
    def is_admin(self) -> bool:
        return self.role.upper() == UserRole.ADMIN.value


class AuthResult(WireModel):
    """Response body of login and signup."""

    token: str
    user: UserProfile


class ChatMessage(WireModel):
    """A single chat message in the conversation.

    Attributes:
        role: The speaker identifier (user, assistant, or system).
        content: The message text.
    """

    role: str = Field(..., description="Message role: 'user', 'assistant', or 'system'")
    content: str = Field(..., description="The message content")


class ChatOptions(WireModel):
    """Sampling options forwarded to the model."""

    temperature: float | None = Field(None, ge=0.0, le=2.0)


class ChatRequest(WireModel):
    """Request payload for the chat endpoint.

    Attributes:
        model: Model name to run.
        messages: Conversation so far, oldest first.
        options: Optional sampling options.
        stream: Ask the service for an incremental response.
        think: Ask reasoning models to emit their thinking.
    """

    model: str = Field(..., min_length=1)
    messages: list[ChatMessage]
    options: ChatOptions | None = None
    stream: bool | None = None
    think: bool | None = None


class ApiKeyEntry(WireModel):
    """An API key with its limits and usage counters."""

    id: str
    name: str
    key: str = ""
    created_at: str | None = None
    daily_requests: int = 0
    daily_tokens: int = 0
    total_tokens: int = 0
    used_requests: int = 0
    used_tokens: int = 0
    total_used_tokens: int = 0
    last_reset_date: str | None = None


class CreatedApiKey(ApiKeyEntry):
    """A freshly created key; the plain key is only shown once."""

    plain_key: str | None = None


class QuotaData(WireModel):
    daily_usage: int
    daily_quota: int
    total_usage: int
    total_quota: int
    reset_time: str


class UsageStat(WireModel):
    date: str
    requests: int = 0
    tokens: int = 0
    response_time: float = 0.0


class DashboardData(WireModel):
    user: UserProfile
    recent_usage: list[UsageStat] = Field(default_factory=list)
    active_models: int = 0
    total_requests: int = 0


class ModelInfo(WireModel):
    name: str
    size: str | None = None
    modified: str | None = None
    parameter_count: str | None = None


class SettingsData(WireModel):
    auto_model_update: bool = False
    detailed_logging: bool = False
    ip_whitelist: str = ""
    email_security_alerts: bool = False
    usage_threshold_alert: bool = False
    user: UserProfile | None = None


class ApiApplication(WireModel):
    """A user's request for additional quota."""

    id: str
    user_id: str | None = None
    user_name: str | None = None
    project_name: str
    use_case: str
    requested_quota: int
    status: str = "pending"
    created_at: str | None = None


class SecurityEvent(WireModel):
    id: str
    type: str
    severity: str
    description: str
    ip: str
    timestamp: str


class ModelPerformance(WireModel):
    name: str
    tokens_per_sec: float
    avg_latency: float
    memory_usage: str
    error_rate: float


class SystemMetrics(WireModel):
    cpu: float
    memory: float
    disk: float
    uptime: str
    active_requests: int
    error_rate: float
    avg_response_time: float


class GatewaySettings(WireModel):
    """Admin-level settings of the model backend behind the gateway."""

    ollama_base_url: str
