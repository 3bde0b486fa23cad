from chatbot.client.manager import (
    GUEST_CONVERSATION_ID,
    ConversationManager,
    SessionMode,
    SessionState,
)
from chatbot.models.chat import DEFAULT_TITLE, Message

from conftest import FakeIdentitySource, FakeStore, make_conversation


def msgs(*pairs):
    return [Message(role=r, content=c) for r, c in pairs]


# ── Guest mode ──────────────────────────────────────────────────────────────


async def test_guest_session_never_touches_the_store():
    store = FakeStore()
    manager = ConversationManager(store, FakeIdentitySource(None))

    await manager.load()
    await manager.update_history(msgs(("user", "Hi"), ("model", "Hello!")))
    await manager.start_new_conversation()
    await manager.switch_conversation("anything")
    manager.reset_guest_session()

    assert store.calls == []


async def test_guest_load_synthesizes_one_ephemeral_conversation():
    manager = ConversationManager(FakeStore(), FakeIdentitySource(None))
    manager.guest_history = msgs(("user", "earlier"))

    await manager.load()

    assert manager.state is SessionState.READY
    assert manager.mode is SessionMode.GUEST
    assert [c.id for c in manager.conversations] == [GUEST_CONVERSATION_ID]
    assert manager.history == msgs(("user", "earlier"))


async def test_guest_update_and_new_conversation_clear_history():
    manager = ConversationManager(FakeStore(), FakeIdentitySource(None))
    await manager.load()

    await manager.update_history(msgs(("user", "Hi"), ("model", "Hello!")))
    assert manager.history == msgs(("user", "Hi"), ("model", "Hello!"))
    assert manager.guest_history == manager.history

    await manager.start_new_conversation()
    assert manager.history == []
    assert manager.guest_history == []


async def test_reset_guest_session_clears_history():
    manager = ConversationManager(FakeStore(), FakeIdentitySource(None))
    await manager.load()
    await manager.update_history(msgs(("user", "Hi")))

    manager.reset_guest_session()

    assert manager.history == []


# ── Authenticated mode ──────────────────────────────────────────────────────


async def test_load_activates_most_recent_conversation(alice):
    old = make_conversation(title="old", minutes=1)
    new = make_conversation(title="new", minutes=5)
    store = FakeStore([old, new])
    manager = ConversationManager(store, FakeIdentitySource(alice))

    await manager.load()

    assert manager.mode is SessionMode.AUTHENTICATED
    assert [c.title for c in manager.conversations] == ["new", "old"]
    assert manager.active.id == new.id
    assert store.calls == [("select", "1")]


async def test_load_with_no_conversations_creates_one(alice):
    store = FakeStore()
    manager = ConversationManager(store, FakeIdentitySource(alice))

    await manager.load()

    assert store.calls == [("select", "1"), ("insert", "1", DEFAULT_TITLE)]
    assert len(manager.conversations) == 1
    assert manager.active.title == DEFAULT_TITLE
    assert manager.active.history == []


async def test_start_new_conversation_prepends_and_activates(alice):
    existing = make_conversation(title="existing")
    manager = ConversationManager(FakeStore([existing]), FakeIdentitySource(alice))
    await manager.load()

    await manager.start_new_conversation()

    assert manager.conversations[0].id == manager.active.id
    assert manager.conversations[1].id == existing.id
    assert manager.active.title == DEFAULT_TITLE


async def test_switch_to_active_conversation_is_a_no_op(alice):
    conv = make_conversation()
    store = FakeStore([conv])
    manager = ConversationManager(store, FakeIdentitySource(alice))
    await manager.load()
    active_before = manager.active
    calls_before = list(store.calls)

    await manager.switch_conversation(conv.id)

    assert manager.active is active_before
    assert store.calls == calls_before


async def test_switch_uses_loaded_list_without_refetching(alice):
    first = make_conversation(title="first", minutes=2)
    second = make_conversation(title="second", minutes=1)
    store = FakeStore([first, second])
    manager = ConversationManager(store, FakeIdentitySource(alice))
    await manager.load()
    calls_before = list(store.calls)

    await manager.switch_conversation(second.id)
    assert manager.active.id == second.id

    await manager.switch_conversation("unknown-id")
    assert manager.active.id == second.id
    assert store.calls == calls_before


async def test_update_history_persists_title_and_resorts(alice):
    recent = make_conversation(title="recent", minutes=10)
    target = make_conversation(minutes=1)
    store = FakeStore([recent, target])
    manager = ConversationManager(store, FakeIdentitySource(alice))
    await manager.load()
    await manager.switch_conversation(target.id)

    history = msgs(("user", "Hello there, how are you today please"), ("model", "..."))
    await manager.update_history(history)

    assert store.updates[-1] == (
        "update",
        target.id,
        history,
        "Hello there, how are you today...",
    )
    assert manager.active.title == "Hello there, how are you today..."
    assert manager.active.history == history
    assert manager.conversations[0].id == target.id


async def test_update_history_store_failure_leaves_state(alice):
    conv = make_conversation(history=msgs(("user", "kept")))
    store = FakeStore([conv])
    manager = ConversationManager(store, FakeIdentitySource(alice))
    await manager.load()
    store.fail = True

    await manager.update_history(msgs(("user", "kept"), ("model", "lost")))

    assert manager.history == msgs(("user", "kept"))


async def test_update_history_without_active_conversation_is_a_no_op(alice):
    store = FakeStore(fail=True)
    manager = ConversationManager(store, FakeIdentitySource(alice))
    await manager.load()
    store.calls.clear()

    await manager.update_history(msgs(("user", "Hi")))

    assert manager.active is None
    assert store.calls == []


async def test_operations_before_load_are_no_ops():
    store = FakeStore()
    manager = ConversationManager(store, FakeIdentitySource(None))

    await manager.start_new_conversation()
    await manager.update_history(msgs(("user", "Hi")))

    assert manager.state is SessionState.UNINITIALIZED
    assert manager.active is None
    assert store.calls == []


async def test_reset_guest_session_has_no_effect_when_authenticated(alice):
    conv = make_conversation(history=msgs(("user", "Hi")))
    manager = ConversationManager(FakeStore([conv]), FakeIdentitySource(alice))
    await manager.load()

    manager.reset_guest_session()

    assert manager.history == msgs(("user", "Hi"))
