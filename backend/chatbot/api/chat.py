from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger

from chatbot.models.chat import ChatRequest
from chatbot.core.providers import ModelProvider, get_provider
from chatbot.core.relay import build_prompt, open_relay

router = APIRouter(prefix="/api/chat", tags=["chat"])

SERVER_ERROR_BODY = {"error": "Error server"}


def resolve_provider() -> ModelProvider | None:
    # A misconfigured provider must surface as the generic 500, not a traceback.
    try:
        return get_provider()
    except Exception as e:
        logger.error("Model provider unavailable: {}", e)
        return None


@router.post("")
async def chat(body: ChatRequest, provider: ModelProvider | None = Depends(resolve_provider)):
    """
    Relay the model's answer for `body.messages` as a raw UTF-8 byte stream.

    No authentication: guest sessions chat through the same route.
    """
    if provider is None:
        return JSONResponse(SERVER_ERROR_BODY, status_code=500)

    prompt = build_prompt(body.messages)
    logger.debug("Relaying {} messages to {}", len(body.messages), provider.name)

    try:
        chunks = await open_relay(provider, prompt)
    except Exception as e:
        logger.exception("Error backend /api/chat: {}", e)
        return JSONResponse(SERVER_ERROR_BODY, status_code=500)

    return StreamingResponse(
        chunks,
        media_type="text/plain; charset=utf-8",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
