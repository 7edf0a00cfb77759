"""Integration tests for components working together as a system.

No mocks for client internals - GatewayClient talks HTTP to an in-process
FastAPI fake of the gateway through httpx.ASGITransport.

Coverage:
    - login, signup and logout with session storage
    - identity lookups and invalidation after chat
    - streaming chat over SSE, NDJSON and whole-message responses
    - retry and session expiry through real status codes
"""
