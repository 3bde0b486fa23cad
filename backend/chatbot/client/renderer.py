"""
Progressive Renderer: consume the relay's byte stream and "type" the answer
into the active conversation one character at a time.
"""
import asyncio
import codecs
import time
from typing import Callable

import httpx
from loguru import logger

from chatbot.client.manager import ConversationManager
from chatbot.models.chat import Message

ERROR_MESSAGE = "Sorry, an error occured while processing your request."
PLACEHOLDER = "..."
DEFAULT_CHAR_DELAY = 0.005


class ThroughputMeter:
    """
    Approximate tokens per second, counting words per received chunk.

    Every chunk counts for at least one token. No rate is reported until
    `min_elapsed` seconds have passed since `start()`, so the first chunk
    of a fast response never divides by (almost) zero.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, min_elapsed: float = 0.001):
        self.clock = clock
        self.min_elapsed = min_elapsed
        self.started_at: float | None = None
        self.total_tokens = 0
        self.rate: float | None = None

    def start(self) -> None:
        self.started_at = self.clock()
        self.total_tokens = 0
        self.rate = None

    def add_chunk(self, text: str) -> None:
        self.total_tokens += max(1, len(text.split()))
        self.recompute()

    def recompute(self) -> float | None:
        if self.started_at is None:
            return None
        elapsed = self.clock() - self.started_at
        if elapsed >= self.min_elapsed:
            self.rate = self.total_tokens / elapsed
        return self.rate


class ProgressiveRenderer:
    def __init__(
        self,
        manager: ConversationManager,
        base_url: str,
        char_delay: float = DEFAULT_CHAR_DELAY,
        transport: httpx.AsyncBaseTransport | None = None,
        on_char: Callable[[str], None] | None = None,
        meter: ThroughputMeter | None = None,
    ):
        self.manager = manager
        self.base_url = base_url.rstrip("/")
        self.char_delay = char_delay
        self.on_char = on_char
        self.meter = meter or ThroughputMeter()
        self.is_loading = False
        self._transport = transport

    async def send(self, text: str) -> str | None:
        """
        Send one user message and render the model's answer.

        Returns the model's final content (the error message on failure),
        or None when nothing was sent: blank input or a send already in
        flight. With no active conversation a new one is started and the
        input is not sent, so the caller can resubmit into it.
        """
        content = text.strip()
        if not content or self.is_loading:
            return None

        if self.manager.active is None:
            await self.manager.start_new_conversation()
            return None

        self.is_loading = True
        try:
            return await self._send(content)
        finally:
            self.is_loading = False

    async def _send(self, content: str) -> str:
        history_with_user = [*self.manager.history, Message(role="user", content=content)]

        await self.manager.update_history(history_with_user)
        await self.manager.update_history(
            [*history_with_user, Message(role="model", content=PLACEHOLDER)]
        )

        try:
            full_response = await self._stream(history_with_user)
        except Exception as e:
            logger.exception("Chat API error: {}", e)
            await self.manager.update_history(
                [*history_with_user, Message(role="model", content=ERROR_MESSAGE)]
            )
            return ERROR_MESSAGE

        # Final write carries the complete message, title and timestamp.
        await self.manager.update_history(
            [*history_with_user, Message(role="model", content=full_response)]
        )
        return full_response

    async def _stream(self, history_with_user: list[Message]) -> str:
        decoder = codecs.getincrementaldecoder("utf-8")()
        buffer = ""
        self.meter.start()

        body = {"messages": [m.model_dump() for m in history_with_user]}
        async with httpx.AsyncClient(base_url=self.base_url, timeout=None, transport=self._transport) as client:
            async with client.stream("POST", "/api/chat", json=body) as resp:
                resp.raise_for_status()
                async for chunk in resp.aiter_bytes():
                    text = decoder.decode(chunk)
                    buffer = await self._type_out(history_with_user, buffer, text)
                    self.meter.add_chunk(text)

        buffer = await self._type_out(history_with_user, buffer, decoder.decode(b"", final=True))
        self.meter.recompute()
        return buffer

    async def _type_out(self, history_with_user: list[Message], buffer: str, text: str) -> str:
        for char in text:
            buffer += char
            if self.on_char is not None:
                self.on_char(char)
            await self.manager.update_history(
                [*history_with_user, Message(role="model", content=buffer)]
            )
            await asyncio.sleep(self.char_delay)
        return buffer
