"""
Conversation Store queries.

Every query is scoped by owner so a user can never read or overwrite
another user's rows.
"""
from datetime import datetime

import asyncpg

from chatbot.db import postgres
from chatbot.models.chat import Conversation, Message, DEFAULT_TITLE

_COLUMNS = "id, title, user_id, history, updated_at"


def row_to_conversation(row: asyncpg.Record | dict) -> Conversation:
    return Conversation(
        id=str(row["id"]),
        title=row["title"],
        user_id=str(row["user_id"]),
        history=[Message(**m) for m in (row["history"] or [])],
        updated_at=row["updated_at"],
    )


async def insert_conversation(owner: int, title: str = DEFAULT_TITLE) -> Conversation:
    row = await postgres.fetch_one(
        f"""INSERT INTO conversations (user_id, title, history)
            VALUES ($1, $2, '[]'::jsonb)
            RETURNING {_COLUMNS}""",
        owner,
        title,
    )
    return row_to_conversation(row)


async def update_conversation(
    conversation_id: str,
    owner: int,
    history: list[Message],
    title: str,
    updated_at: datetime,
) -> Conversation | None:
    """Overwrite history and title. Returns None when no owned row matches."""
    row = await postgres.fetch_one(
        f"""UPDATE conversations
            SET history = $1, title = $2, updated_at = $3
            WHERE id = $4::uuid AND user_id = $5
            RETURNING {_COLUMNS}""",
        [m.model_dump() for m in history],
        title,
        updated_at,
        conversation_id,
        owner,
    )
    return row_to_conversation(row) if row else None


async def select_conversations(owner: int) -> list[Conversation]:
    rows = await postgres.fetch_all(
        f"""SELECT {_COLUMNS} FROM conversations
            WHERE user_id = $1
            ORDER BY updated_at DESC""",
        owner,
    )
    return [row_to_conversation(r) for r in rows]
