import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from chatbot.models.chat import Conversation, ConversationCreate, ConversationUpdate
from chatbot.core.security import get_current_user
from chatbot.db import conversations as store

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.get("", response_model=list[Conversation])
async def list_conversations(
    current_user: dict = Depends(get_current_user),
) -> list[Conversation]:
    return await store.select_conversations(current_user["id"])


@router.post("", response_model=Conversation, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    body: ConversationCreate | None = None,
    current_user: dict = Depends(get_current_user),
) -> Conversation:
    title = body.title if body else ConversationCreate().title
    conv = await store.insert_conversation(current_user["id"], title)
    logger.info("Created conversation {} for user {}", conv.id, current_user["id"])
    return conv


@router.patch("/{conversation_id}", response_model=Conversation)
async def update_conversation(
    conversation_id: uuid.UUID,
    body: ConversationUpdate,
    current_user: dict = Depends(get_current_user),
) -> Conversation:
    conv = await store.update_conversation(
        str(conversation_id),
        current_user["id"],
        body.history,
        body.title,
        body.updated_at,
    )
    if conv is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conv
