"""
Conversation Manager: in-memory session state between the UI and the store.

Two modes, fixed each time the session loads:

- guest: no identity. One ephemeral conversation whose history lives only
  in memory. The store is never touched.
- authenticated: conversations belong to the resolved identity, one of them
  active, and every history change is written through to the store.

Failures never raise to the caller. Missing preconditions and store errors
are logged and the operation leaves state at its last good value. Writes
are last-write-wins; two sessions editing the same conversation simply
overwrite each other.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from loguru import logger

from chatbot.client.identity import Identity
from chatbot.client.store import ConversationStore
from chatbot.exceptions import StoreError
from chatbot.models.chat import Conversation, Message, DEFAULT_TITLE, derive_title

GUEST_CONVERSATION_ID = "guest-session"
GUEST_TITLE = "Guest chat (Not saved)"
GUEST_OWNER = "guest"


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


class SessionMode(str, Enum):
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


class IdentitySource(Protocol):
    def current_identity(self) -> Identity | None:
        ...


class ConversationManager:
    def __init__(self, store: ConversationStore, identity: IdentitySource):
        self.store = store
        self.identity_source = identity

        self.state = SessionState.UNINITIALIZED
        self.mode: SessionMode | None = None
        self.identity: Identity | None = None
        self.is_loading = False

        self.guest_history: list[Message] = []
        self.conversations: list[Conversation] = []
        self.active: Conversation | None = None

    @property
    def is_guest(self) -> bool:
        return self.mode is SessionMode.GUEST

    @property
    def history(self) -> list[Message]:
        return list(self.active.history) if self.active else []

    # ── Session load ────────────────────────────────────────────────────────

    async def load(self, *_ignored) -> None:
        """
        (Re)load the session for whatever identity is current.

        Accepts and ignores positional arguments so it can be subscribed
        directly to identity change notifications.
        """
        self.state = SessionState.LOADING
        self.identity = self.identity_source.current_identity()

        if self.identity is None:
            self.mode = SessionMode.GUEST
            guest = self._guest_conversation()
            self.conversations = [guest]
            self.active = guest
            self.state = SessionState.READY
            logger.debug("Session ready in guest mode")
            return

        self.mode = SessionMode.AUTHENTICATED
        self.is_loading = True
        try:
            loaded = await self.store.select_by_owner(self.identity.user_id)
        except StoreError as e:
            logger.error("[DB ERROR] Error loading conversations: {}", e)
            self.conversations = []
            self.active = None
            self.is_loading = False
            self.state = SessionState.READY
            return

        self.conversations = sorted(loaded, key=lambda c: c.updated_at, reverse=True)
        self.active = None
        self.is_loading = False
        self.state = SessionState.READY

        if self.conversations:
            self.active = self.conversations[0].model_copy(deep=True)
        else:
            await self.start_new_conversation()

        logger.debug(
            "Session ready for {!r}: {} conversations",
            self.identity.username,
            len(self.conversations),
        )

    # ── Operations ──────────────────────────────────────────────────────────

    async def start_new_conversation(self) -> None:
        if self.is_guest:
            self.guest_history = []
            self._reflect_guest_history()
            return

        if self.identity is None:
            logger.error("Cannot create conversation: user is not logged in.")
            return

        self.is_loading = True
        try:
            conv = await self.store.insert(self.identity.user_id, DEFAULT_TITLE)
        except StoreError as e:
            logger.error("[DB ERROR] Failed to insert new conversation: {}", e)
            return
        finally:
            self.is_loading = False

        self.conversations = [conv, *self.conversations]
        self.active = conv

    async def switch_conversation(self, conversation_id: str) -> None:
        if self.active is not None and self.active.id == conversation_id:
            return

        target = next((c for c in self.conversations if c.id == conversation_id), None)
        if target is None:
            logger.warning("Cannot switch: conversation {} is not loaded", conversation_id)
            return
        self.active = target.model_copy(deep=True)

    async def update_history(self, new_history: list[Message]) -> None:
        if self.is_guest:
            self.guest_history = list(new_history)
            self._reflect_guest_history()
            return

        if self.identity is None or self.active is None:
            logger.error("[DB ERROR] Cannot update: no user or no active conversation.")
            return

        title = derive_title(self.active.title, new_history)
        try:
            updated = await self.store.update(
                self.active.id,
                new_history,
                title,
                datetime.now(timezone.utc),
            )
        except StoreError as e:
            logger.error("[DB ERROR] Failed to update history for {}: {}", self.active.id, e)
            return

        self.active = updated
        self.conversations = sorted(
            (updated if c.id == updated.id else c for c in self.conversations),
            key=lambda c: c.updated_at,
            reverse=True,
        )

    def reset_guest_session(self) -> None:
        self.guest_history = []
        if self.is_guest:
            self._reflect_guest_history()

    # ── Guest helpers ───────────────────────────────────────────────────────

    def _guest_conversation(self) -> Conversation:
        return Conversation(
            id=GUEST_CONVERSATION_ID,
            title=GUEST_TITLE,
            user_id=GUEST_OWNER,
            history=list(self.guest_history),
            updated_at=datetime.now(timezone.utc),
        )

    def _reflect_guest_history(self) -> None:
        if self.active is None:
            return
        self.active = self.active.model_copy(update={"history": list(self.guest_history)})
        self.conversations = [self.active]
