from pydantic import BaseModel, Field
from typing import Literal
from datetime import datetime

DEFAULT_TITLE = "New chat"
TITLE_MAX_CHARS = 30
TITLE_ELLIPSIS = "..."

Role = Literal["user", "model"]


class Message(BaseModel):
    role: Role
    content: str


class ChatRequest(BaseModel):
    messages: list[Message]


class Conversation(BaseModel):
    id: str
    title: str = DEFAULT_TITLE
    user_id: str
    history: list[Message] = Field(default_factory=list)
    updated_at: datetime


class ConversationCreate(BaseModel):
    title: str = DEFAULT_TITLE


class ConversationUpdate(BaseModel):
    history: list[Message]
    title: str
    updated_at: datetime


def derive_title(current_title: str, history: list[Message]) -> str:
    """
    Auto-title a conversation from its first user message.

    Only applies while the title is still the default and the history holds
    more than one entry; otherwise the current title is returned unchanged.
    """
    if current_title != DEFAULT_TITLE or len(history) <= 1:
        return current_title

    first_user = next((m for m in history if m.role == "user"), None)
    if first_user is None:
        return current_title

    content = first_user.content
    if len(content) > TITLE_MAX_CHARS:
        return content[:TITLE_MAX_CHARS] + TITLE_ELLIPSIS
    return content
