"""Command-line chat against the gateway.

Streams one reply to stdout. Environment variables are loaded from .env.
Logs in with GATEWAY_EMAIL / GATEWAY_PASSWORD when no session is stored.
"""

import argparse
import asyncio
import logging
import os
import sys

import httpx
from dotenv import load_dotenv

# Load environment variables before any other imports that might need them
load_dotenv()

from llm_gateway_client.client import GatewayClient  # noqa: E402
from llm_gateway_client.errors import GatewayError, Unauthorized  # noqa: E402
from llm_gateway_client.models import ChatMessage  # noqa: E402
from llm_gateway_client.streaming import CHAT_ERROR_FALLBACK, coalesce  # noqa: E402

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "WARNING").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)

# Redraw at most this often; faster deltas are merged
REDRAW_INTERVAL = 1 / 60


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="llm-gateway-chat",
        description="Send a prompt to the LLM gateway and stream the reply.",
    )
    parser.add_argument("prompt", help="User message to send")
    parser.add_argument(
        "--model",
        default=os.getenv("GATEWAY_MODEL", "llama3:8b"),
        help="Model name (default: $GATEWAY_MODEL or llama3:8b)",
    )
    parser.add_argument("--temperature", type=float, default=None, help="Sampling temperature")
    parser.add_argument("--system", default=None, help="Optional system prompt")
    return parser.parse_args(argv)


async def _ensure_login(client: GatewayClient) -> None:
    if client.identity.get_token():
        return

    email = os.getenv("GATEWAY_EMAIL")
    password = os.getenv("GATEWAY_PASSWORD")
    if not email or not password:
        raise Unauthorized("No stored session; set GATEWAY_EMAIL and GATEWAY_PASSWORD")

    result = await client.login(email, password, remember=True)
    logger.info(f"Logged in as {result.user.email}")


async def run_chat(args: argparse.Namespace) -> int:
    """Stream one chat reply, printing only the new suffix of each update.

    Returns:
        Process exit code.
    """
    messages: list[ChatMessage] = []
    if args.system:
        messages.append(ChatMessage(role="system", content=args.system))
    messages.append(ChatMessage(role="user", content=args.prompt))

    async with GatewayClient() as client:
        try:
            await _ensure_login(client)
            printed = 0
            async with client.open_chat_stream(
                args.model, messages, temperature=args.temperature
            ) as stream:
                async for text in coalesce(stream, REDRAW_INTERVAL):
                    sys.stdout.write(text[printed:])
                    sys.stdout.flush()
                    printed = len(text)
            sys.stdout.write("\n")
        except Unauthorized as e:
            logger.error(f"Authentication required: {e}")
            print("Session expired. Please log in again.", file=sys.stderr)
            return 2
        except (GatewayError, httpx.HTTPError) as e:
            logger.error(f"Chat failed: {e}")
            print(CHAT_ERROR_FALLBACK, file=sys.stderr)
            return 1

    return 0


def main(argv: list[str] | None = None) -> None:
    """Application entry point."""
    args = _parse_args(argv)
    sys.exit(asyncio.run(run_chat(args)))


if __name__ == "__main__":
    main()
