"""Unit tests for individual components in isolation.

Ensures fast execution with no network and no sleeping.

Coverage:
    - config: environment-backed configuration validation
    - storage / identity: scope selection and clearing
    - transport: header injection, retry and session expiry
    - session: single-flight identity lookups
    - cache: warm start, revalidation and liveness
    - streaming: line parsing, simulated reveal and ChatStream modes

HTTP is faked with httpx.MockTransport. Follows single responsibility
per test function.
"""
