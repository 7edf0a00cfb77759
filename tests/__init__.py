"""Test package for the LLM gateway client.

Structure:
    - unit/: storage, identity, transport, session, cache and stream parsing
      in isolation (httpx.MockTransport where HTTP is involved)
    - integration/: GatewayClient against an in-process FastAPI fake of the
      remote service

Leverages pytest with pytest-asyncio in auto mode.
"""
