"""Pydantic models for gateway requests and responses.

Provides type safety and validation for every payload the client sends
or receives. Models serialize with camelCase aliases to match the wire.

Models:
    - UserProfile / AuthResult: identity and login results
    - ChatMessage / ChatOptions / ChatRequest: chat contract
    - ApiKeyEntry / CreatedApiKey: API key management
    - QuotaData / DashboardData / UsageStat: usage reporting
    - SettingsData / ApiApplication: account settings and quota requests
    - SecurityEvent / ModelPerformance / SystemMetrics / GatewaySettings: admin
"""

from llm_gateway_client.models.schemas import (
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
    UsageStat,
    UserProfile,
    UserRole,
    WireModel,
)

__all__ = [
    "ApiApplication",
    "ApiKeyEntry",
    "AuthResult",
    "ChatMessage",
    "ChatOptions",
    "ChatRequest",
    "CreatedApiKey",
    "DashboardData",
    "GatewaySettings",
    "ModelInfo",
    "ModelPerformance",
    "QuotaData",
    "SecurityEvent",
    "SettingsData",
    "SystemMetrics",
    "UsageStat",
    "UserProfile",
    "UserRole",
    "WireModel",
]
