"""Incremental chat text delivery over several response shapes.

The chat endpoint answers in one of three ways depending on the backend:

1. **Token deltas** over SSE or NDJSON, OpenAI style:
   ``{"choices": [{"delta": {"content": "..."}}]}``
2. **Message chunks** over SSE or NDJSON, Ollama style:
   ``{"message": {"content": "..."}}`` or ``{"response": "..."}``
3. **A single JSON body** with the whole message, for backends that cannot
   stream at all.

ChatStream hides the difference. It yields the accumulated text (never a
bare fragment), so every value is at least as long as the one before it.
Whole-message bodies are revealed through a typewriter-style producer so
callers see the same incremental contract either way.

Termination of a real stream is either the ``[DONE]`` sentinel or a payload
with ``"done": true``. Lines that are not JSON are skipped.
"""

import asyncio
import json
import logging
import math
from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager
from typing import Any, NamedTuple

import httpx

from llm_gateway_client.errors import GatewayError
from llm_gateway_client.transport import ensure_success

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
DATA_PREFIX = "data:"
NO_RESPONSE_TEXT = "No response from model."
CHAT_ERROR_FALLBACK = "Error: Unable to reach the model server. Please try again shortly."

MODE_STREAM = "stream"
MODE_SIMULATED = "simulated"


class StreamEvent(NamedTuple):
    """What a single stream line contributes.

    Attributes:
        content: Text fragment to append (may be empty).
        done: Whether the stream ends after this line.
    """

    content: str
    done: bool = False


def _delta_content(payload: dict[str, Any]) -> str:
    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        delta = choices[0].get("delta")
        if isinstance(delta, dict) and isinstance(delta.get("content"), str):
            return delta["content"]

    message = payload.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]

    response = payload.get("response")
    if isinstance(response, str):
        return response

    return ""


def parse_stream_line(line: str) -> StreamEvent | None:
    """Interpret one line of an SSE or NDJSON chat stream.

    Args:
        line: A complete line, with or without a ``data:`` prefix.

    Returns:
        The event carried by the line, or None when the line is blank,
        not JSON, or carries neither content nor a done flag.
    """
    text = line.strip()
    if text.startswith(DATA_PREFIX):
        text = text[len(DATA_PREFIX):].strip()
    if not text:
        return None
    if text == DONE_SENTINEL:
        return StreamEvent("", done=True)

    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        logger.debug(f"Skipping non-JSON stream line: {text[:80]!r}")
        return None
    if not isinstance(payload, dict):
        return None

    content = _delta_content(payload)
    done = payload.get("done") is True
    if not content and not done:
        return None
    return StreamEvent(content, done)


def extract_message_text(payload: Any) -> str:
    """Pull the full reply out of a non-streaming chat response.

    Falls back to NO_RESPONSE_TEXT when the body has no usable text.
    """
    if isinstance(payload, dict):
        message = payload.get("message")
        if isinstance(message, dict) and message.get("content"):
            return str(message["content"])

        choices = payload.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            choice_message = choices[0].get("message")
            if isinstance(choice_message, dict) and choice_message.get("content"):
                return str(choice_message["content"])

        if payload.get("response"):
            return str(payload["response"])

    return NO_RESPONSE_TEXT


def is_stream_content_type(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "text/event-stream" or "ndjson" in media_type


async def iter_event_stream(response: httpx.Response) -> AsyncIterator[str]:
    """Yield accumulated text from a streaming response body.

    Reads one line at a time in arrival order; ``aiter_lines`` keeps the
    partial line left over when a read ends mid-line.
    """
    accumulated = ""
    async for line in response.aiter_lines():
        event = parse_stream_line(line)
        if event is None:
            continue
        if event.content:
            accumulated += event.content
            yield accumulated
        if event.done:
            return


async def iter_simulated_reveal(
    text: str,
    duration: float = 2.0,
    interval: float = 1 / 60,
) -> AsyncIterator[str]:
    """Yield growing prefixes of ``text`` on a fixed timer.

    Long texts are revealed in about ``duration`` seconds at one emission
    per ``interval``; texts shorter than the number of ticks are revealed
    one character per tick.
    """
    if not text:
        return

    ticks = max(1, round(duration / interval)) if interval > 0 else len(text)
    step = max(1, math.ceil(len(text) / ticks))
    end = 0
    while end < len(text):
        end = min(end + step, len(text))
        yield text[:end]
        if end < len(text):
            await asyncio.sleep(interval)


async def _next_value(iterator: AsyncIterator[str]) -> str | None:
    try:
        return await anext(iterator)
    except StopAsyncIteration:
        return None


async def coalesce(values: AsyncIterable[str], interval: float) -> AsyncIterator[str]:
    """Throttle a fast stream of values for display.

    Yields at most one value per ``interval`` seconds, always the newest.
    A value held back by the throttle is flushed when its tick comes due,
    even if the source has gone quiet, and the final value is always
    yielded.
    """
    loop = asyncio.get_running_loop()
    iterator = aiter(values)
    last_flush: float | None = None
    pending: str | None = None
    reader: asyncio.Task[str | None] | None = None

    try:
        while True:
            if reader is None:
                reader = asyncio.create_task(_next_value(iterator))

            timeout = None
            if pending is not None and last_flush is not None:
                timeout = max(0.0, interval - (loop.time() - last_flush))
            done, _ = await asyncio.wait({reader}, timeout=timeout)

            if not done:
                # Tick elapsed while the source is stalled
                last_flush = loop.time()
                value, pending = pending, None
                yield value
                continue

            value = reader.result()
            reader = None
            if value is None:
                break

            now = loop.time()
            if last_flush is None or now - last_flush >= interval:
                last_flush = now
                pending = None
                yield value
            else:
                pending = value

        if pending is not None:
            yield pending
    finally:
        if reader is not None:
            reader.cancel()
            await asyncio.wait({reader})
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


class ChatStream:
    """Asynchronous sequence of accumulated chat text.

    Iterate with ``async for`` to receive each accumulated value, or await
    ``result()`` for the final text. Leaving an ``async with`` block or
    calling ``aclose()`` early closes the underlying HTTP response.

    Args:
        open_response: Factory returning a context manager that yields the
            streaming HTTP response.
        reveal_duration: Simulated reveal duration for whole-message bodies.
        reveal_interval: Simulated reveal tick.
        on_complete: Called once after the stream finishes successfully.
    """

    def __init__(
        self,
        open_response: Callable[[], AbstractAsyncContextManager[httpx.Response]],
        reveal_duration: float = 2.0,
        reveal_interval: float = 1 / 60,
        on_complete: Callable[[], None] | None = None,
    ) -> None:
        self._open_response = open_response
        self._reveal_duration = reveal_duration
        self._reveal_interval = reveal_interval
        self._on_complete = on_complete
        self._iterator = self._run()

        self.text = ""
        self.mode: str | None = None
        self.finished = False

    async def _run(self) -> AsyncGenerator[str, None]:
        whole_text: str | None = None

        async with self._open_response() as response:
            await ensure_success(response, f"Chat failed: {response.status_code}")
            content_type = response.headers.get("content-type", "")

            if is_stream_content_type(content_type):
                self.mode = MODE_STREAM
                async for text in iter_event_stream(response):
                    self.text = text
                    yield text
            else:
                self.mode = MODE_SIMULATED
                await response.aread()
                try:
                    payload = response.json()
                except ValueError as e:
                    raise GatewayError("Chat response was not valid JSON") from e
                whole_text = extract_message_text(payload)

        # The connection is released before the reveal starts
        if whole_text is not None:
            async for text in iter_simulated_reveal(
                whole_text, self._reveal_duration, self._reveal_interval
            ):
                self.text = text
                yield text
            self.text = whole_text

        self.finished = True
        logger.debug(f"Chat stream finished ({self.mode}, {len(self.text)} chars)")
        if self._on_complete is not None:
            self._on_complete()

    def __aiter__(self) -> "ChatStream":
        return self

    async def __anext__(self) -> str:
        return await self._iterator.__anext__()

    async def result(self) -> str:
        """Consume the rest of the stream and return the final text."""
        async for _ in self:
            pass
        return self.text

    async def aclose(self) -> None:
        await self._iterator.aclose()

    async def __aenter__(self) -> "ChatStream":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
