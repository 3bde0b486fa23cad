from datetime import datetime, timedelta, timezone
import uuid

import httpx
import pytest

from chatbot.api.chat import resolve_provider
from chatbot.client.identity import Identity
from chatbot.exceptions import StoreError
from chatbot.main import create_app
from chatbot.models.chat import Conversation, DEFAULT_TITLE


class FakeProvider:
    """Yields canned fragments; optionally fails before fragment `fail_at`."""

    name = "fake"

    def __init__(self, fragments=(), fail_at=None):
        self.fragments = list(fragments)
        self.fail_at = fail_at
        self.prompts = []

    async def stream(self, prompt):
        self.prompts.append(prompt)
        for i, fragment in enumerate(self.fragments):
            if i == self.fail_at:
                raise RuntimeError("provider exploded")
            yield fragment
        if self.fail_at is not None and self.fail_at >= len(self.fragments):
            raise RuntimeError("provider exploded")


class FakeStore:
    """In-memory ConversationStore that records every call."""

    def __init__(self, conversations=None, fail=False):
        self.rows = {c.id: c for c in (conversations or [])}
        self.calls = []
        self.fail = fail
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def insert(self, owner, title=DEFAULT_TITLE):
        self.calls.append(("insert", owner, title))
        if self.fail:
            raise StoreError("insert rejected")
        conv = Conversation(id=str(uuid.uuid4()), title=title, user_id=owner, history=[], updated_at=self._tick())
        self.rows[conv.id] = conv
        return conv

    async def update(self, conversation_id, history, title, updated_at):
        self.calls.append(("update", conversation_id, list(history), title))
        if self.fail:
            raise StoreError("update rejected")
        conv = self.rows[conversation_id].model_copy(
            update={"history": list(history), "title": title, "updated_at": self._tick()}
        )
        self.rows[conversation_id] = conv
        return conv

    async def select_by_owner(self, owner):
        self.calls.append(("select", owner))
        if self.fail:
            raise StoreError("select rejected")
        rows = [c for c in self.rows.values() if c.user_id == owner]
        return sorted(rows, key=lambda c: c.updated_at, reverse=True)

    @property
    def updates(self):
        return [c for c in self.calls if c[0] == "update"]


class FakeIdentitySource:
    def __init__(self, identity=None):
        self.identity = identity

    def current_identity(self):
        return self.identity


def make_conversation(title=DEFAULT_TITLE, owner="1", minutes=0, history=None):
    return Conversation(
        id=str(uuid.uuid4()),
        title=title,
        user_id=owner,
        history=history or [],
        updated_at=datetime(2025, 6, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes),
    )


@pytest.fixture
def alice():
    return Identity(user_id="1", username="alice", access_token="token-alice")


@pytest.fixture
def make_app():
    """Build the API with a fake model provider and no database lifespan."""

    def _make(provider):
        app = create_app(use_lifespan=False)
        app.dependency_overrides[resolve_provider] = lambda: provider
        return app

    return _make


@pytest.fixture
def relay_transport(make_app):
    """httpx transport that routes client calls into the API in-process."""

    def _make(provider):
        return httpx.ASGITransport(app=make_app(provider))

    return _make
