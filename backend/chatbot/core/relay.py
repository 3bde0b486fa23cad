from typing import AsyncIterator

from loguru import logger

from chatbot.core.providers import ModelProvider
from chatbot.exceptions import ProviderError
from chatbot.models.chat import Message


def build_prompt(messages: list[Message]) -> str:
    """Linearize a history into `role: content` lines, oldest first."""
    return "\n".join(f"{m.role}: {m.content}" for m in messages)


async def open_relay(provider: ModelProvider, prompt: str) -> AsyncIterator[bytes]:
    """
    Start a provider stream and return it as an iterator of encoded chunks.

    The first fragment is pulled before returning so that a provider which
    fails up front raises here, while the caller can still answer with an
    error status. An immediately exhausted provider gives an empty iterator.
    """
    fragments = provider.stream(prompt).__aiter__()
    try:
        first = await fragments.__anext__()
    except StopAsyncIteration:
        first = None

    return _encode(fragments, first)


async def _encode(fragments: AsyncIterator[str], first: str | None) -> AsyncIterator[bytes]:
    if first is None:
        return

    sent = 1
    yield first.encode("utf-8")
    try:
        async for fragment in fragments:
            sent += 1
            yield fragment.encode("utf-8")
    except Exception as e:
        # Headers are already on the wire. Abort the body so the client sees a
        # truncated response instead of a clean end of stream.
        logger.exception("Relay stream broke after {} fragments: {}", sent, e)
        raise ProviderError("Model stream ended abnormally") from None
    finally:
        aclose = getattr(fragments, "aclose", None)
        if aclose is not None:
            await aclose()
