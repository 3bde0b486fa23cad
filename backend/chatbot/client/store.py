from datetime import datetime
from typing import Any, Callable, Protocol, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from chatbot.client.identity import IdentityProvider
from chatbot.exceptions import StoreError
from chatbot.models.chat import Conversation, Message, DEFAULT_TITLE

T = TypeVar("T")

_conversation_list = TypeAdapter(list[Conversation])


class ConversationStore(Protocol):
    async def insert(self, owner: str, title: str = DEFAULT_TITLE) -> Conversation:
        ...

    async def update(
        self,
        conversation_id: str,
        history: list[Message],
        title: str,
        updated_at: datetime,
    ) -> Conversation:
        ...

    async def select_by_owner(self, owner: str) -> list[Conversation]:
        ...


class HttpConversationStore:
    """
    ConversationStore backed by the /api/conversations routes.

    The server scopes every call to the bearer token's user, so `owner` is
    only checked against the signed-in identity here. Transport errors,
    error statuses and unparseable bodies all surface as StoreError.
    """

    def __init__(self, base_url: str, identity: IdentityProvider, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.identity = identity
        self._transport = transport

    async def insert(self, owner: str, title: str = DEFAULT_TITLE) -> Conversation:
        return await self._call(
            "POST", "/api/conversations", owner, Conversation.model_validate, json={"title": title}
        )

    async def update(
        self,
        conversation_id: str,
        history: list[Message],
        title: str,
        updated_at: datetime,
    ) -> Conversation:
        body = {
            "history": [m.model_dump() for m in history],
            "title": title,
            "updated_at": updated_at.isoformat(),
        }
        return await self._call(
            "PATCH", f"/api/conversations/{conversation_id}", None, Conversation.model_validate, json=body
        )

    async def select_by_owner(self, owner: str) -> list[Conversation]:
        return await self._call("GET", "/api/conversations", owner, _conversation_list.validate_python)

    async def _call(
        self,
        method: str,
        path: str,
        owner: str | None,
        parse: Callable[[Any], T],
        **kwargs,
    ) -> T:
        identity = self.identity.current_identity()
        if identity is None:
            raise StoreError("No signed-in identity for conversation store access")
        if owner is not None and owner != identity.user_id:
            raise StoreError(f"Owner {owner!r} does not match the signed-in identity")

        headers = {"Authorization": f"Bearer {identity.access_token}"}
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=10.0, transport=self._transport) as client:
                resp = await client.request(method, path, headers=headers, **kwargs)
                resp.raise_for_status()
                return parse(resp.json())
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e
        except (ValueError, ValidationError) as e:
            raise StoreError(f"{method} {path} returned an unexpected body") from e
