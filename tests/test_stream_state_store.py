"""Unit tests for the resumable client-side streaming state store."""

from __future__ import annotations

import pytest

from agui_host.client.state_store import StreamingState, StreamStateStore, build_stream_state_store
from agui_host.client.storage import (
    InMemoryStorageBackend,
    RedisStorageBackend,
    StorageCapacityError,
    StorageError,
)
from agui_host.core.settings import Settings
from agui_host.protocol.events import (
    RunFinishedEvent,
    RunStartedEvent,
    TextMessageContentEvent,
    TextMessageEndEvent,
    TextMessageStartEvent,
)
from agui_host.protocol.lifecycle import replay_transcript
from tests.conftest import ManualClock

PREFIX = "tests:streaming-state"


class FailingStorageBackend(InMemoryStorageBackend):
    """In-memory backend whose writes fail while ``failing`` is set; counts calls."""

    def __init__(self, failing: bool = True) -> None:
        super().__init__()
        self.failing = failing
        self.set_calls = 0
        self.keys_calls = 0

    async def set(self, key: str, value: str) -> None:
        self.set_calls += 1
        if self.failing:
            raise StorageError("write refused")
        await super().set(key, value)

    async def keys(self, prefix: str) -> list[str]:
        self.keys_calls += 1
        return await super().keys(prefix)


def _state(conversation_id: str, clock: ManualClock, **overrides) -> StreamingState:
    values = {
        "conversation_id": conversation_id,
        "response_id": "run-1",
        "events": [RunStartedEvent(thread_id=conversation_id, run_id="run-1")],
        "timestamp": int(clock() * 1000),
    }
    values.update(overrides)
    return StreamingState(**values)


@pytest.mark.asyncio
async def test_save_then_load_returns_state(state_store: StreamStateStore, clock: ManualClock) -> None:
    state = _state("conv-1", clock, last_message_id="msg-1", accumulated_text="Hi")

    await state_store.save(state)

    assert await state_store.load("conv-1") == state


@pytest.mark.asyncio
async def test_state_is_stored_as_camel_case_json(
    state_store: StreamStateStore,
    memory_backend: InMemoryStorageBackend,
    clock: ManualClock,
) -> None:
    await state_store.save(_state("conv-1", clock))

    raw = await memory_backend.get(f"{PREFIX}:conv-1")

    assert raw is not None
    assert '"conversationId":"conv-1"' in raw
    assert '"lastSequenceNumber":-1' in raw
    assert '"threadId":"conv-1"' in raw


@pytest.mark.asyncio
async def test_load_missing_conversation_returns_none(state_store: StreamStateStore) -> None:
    assert await state_store.load("missing") is None


@pytest.mark.asyncio
async def test_expired_state_is_dropped_on_load(
    state_store: StreamStateStore,
    memory_backend: InMemoryStorageBackend,
    clock: ManualClock,
) -> None:
    await state_store.save(_state("conv-1", clock))

    clock.advance(24 * 60 * 60 + 1)

    assert await state_store.load("conv-1") is None
    assert await memory_backend.keys(PREFIX) == []


@pytest.mark.asyncio
async def test_completed_state_is_not_resumable_but_can_be_peeked(
    state_store: StreamStateStore, clock: ManualClock
) -> None:
    await state_store.save(_state("conv-1", clock, completed=True))

    assert await state_store.load("conv-1") is None
    peeked = await state_store.peek("conv-1")
    assert peeked is not None
    assert peeked.completed is True


@pytest.mark.asyncio
async def test_update_appends_events_and_accumulates_text(state_store: StreamStateStore) -> None:
    await state_store.update("conv-1", RunStartedEvent(thread_id="conv-1", run_id="run-1"), "run-1", sequence_number=0)
    await state_store.update("conv-1", TextMessageStartEvent(message_id="msg-1"), "run-1", "msg-1", sequence_number=1)
    await state_store.update(
        "conv-1", TextMessageContentEvent(message_id="msg-1", delta="Hel"), "run-1", "msg-1", sequence_number=2
    )
    state = await state_store.update(
        "conv-1", TextMessageContentEvent(message_id="msg-1", delta="lo"), "run-1", "msg-1", sequence_number=3
    )

    assert len(state.events) == 4
    assert state.accumulated_text == "Hello"
    assert state.last_message_id == "msg-1"
    assert state.last_sequence_number == 3
    assert state.completed is False
    assert await state_store.load("conv-1") == state


@pytest.mark.asyncio
async def test_sequence_number_never_moves_backwards(state_store: StreamStateStore) -> None:
    await state_store.update("conv-1", RunStartedEvent(thread_id="conv-1", run_id="run-1"), "run-1", sequence_number=5)
    state = await state_store.update(
        "conv-1", TextMessageStartEvent(message_id="msg-1"), "run-1", "msg-1", sequence_number=2
    )
    state = await state_store.update("conv-1", TextMessageContentEvent(message_id="msg-1", delta="x"), "run-1", "msg-1")

    assert state.last_sequence_number == 5


@pytest.mark.asyncio
async def test_terminal_event_marks_state_completed(state_store: StreamStateStore) -> None:
    await state_store.update("conv-1", RunStartedEvent(thread_id="conv-1", run_id="run-1"), "run-1")
    state = await state_store.update("conv-1", RunFinishedEvent(thread_id="conv-1", run_id="run-1"), "run-1")

    assert state.completed is True
    assert await state_store.load("conv-1") is None


@pytest.mark.asyncio
async def test_replayed_transcript_survives_save_load_cycles(state_store: StreamStateStore) -> None:
    events = [
        RunStartedEvent(thread_id="conv-1", run_id="run-1"),
        TextMessageStartEvent(message_id="msg-1"),
        TextMessageContentEvent(message_id="msg-1", delta="one "),
        TextMessageContentEvent(message_id="msg-1", delta="two"),
        TextMessageEndEvent(message_id="msg-1"),
    ]
    for sequence, event in enumerate(events):
        await state_store.update("conv-1", event, "run-1", "msg-1", sequence_number=sequence)

    first = await state_store.load("conv-1")
    await state_store.save(first)
    second = await state_store.load("conv-1")

    assert replay_transcript(second.events) == replay_transcript(first.events) == replay_transcript(events)
    assert replay_transcript(second.events)[0].text == "one two"


@pytest.mark.asyncio
async def test_failed_write_purges_once_retries_once_and_falls_back(clock: ManualClock) -> None:
    backend = FailingStorageBackend()
    store = StreamStateStore(backend, key_prefix=PREFIX, clock=clock)
    state = _state("conv-1", clock)

    await store.save(state)

    assert backend.set_calls == 2
    assert backend.keys_calls == 1
    assert await store.load("conv-1") == state


@pytest.mark.asyncio
async def test_updates_after_fallback_keep_accumulating_in_memory(clock: ManualClock) -> None:
    backend = FailingStorageBackend(failing=False)
    store = StreamStateStore(backend, key_prefix=PREFIX, clock=clock)
    await store.update("conv-1", RunStartedEvent(thread_id="conv-1", run_id="run-1"), "run-1", sequence_number=0)
    await store.update("conv-1", TextMessageStartEvent(message_id="msg-1"), "run-1", "msg-1", sequence_number=1)

    backend.failing = True
    await store.update(
        "conv-1", TextMessageContentEvent(message_id="msg-1", delta="Hello"), "run-1", "msg-1", sequence_number=2
    )
    await store.update(
        "conv-1", TextMessageContentEvent(message_id="msg-1", delta=" world"), "run-1", "msg-1", sequence_number=3
    )

    state = await store.load("conv-1")
    assert state is not None
    assert state.accumulated_text == "Hello world"
    assert len(state.events) == 4
    assert state.last_sequence_number == 3

    backend.failing = False
    await store.update("conv-1", TextMessageEndEvent(message_id="msg-1"), "run-1", "msg-1", sequence_number=4)

    persisted = StreamingState.model_validate_json(await backend.get(f"{PREFIX}:conv-1"))
    assert len(persisted.events) == 5
    assert persisted.accumulated_text == "Hello world"
    assert await store.load("conv-1") == persisted


@pytest.mark.asyncio
async def test_sweeping_completed_fallback_entry_drops_stale_backend_copy(clock: ManualClock) -> None:
    backend = FailingStorageBackend(failing=False)
    store = StreamStateStore(backend, key_prefix=PREFIX, clock=clock)
    await store.update("conv-1", RunStartedEvent(thread_id="conv-1", run_id="run-1"), "run-1")

    backend.failing = True
    await store.update("conv-1", RunFinishedEvent(thread_id="conv-1", run_id="run-1"), "run-1")
    assert (await store.peek("conv-1")).completed is True

    await store.clear_expired()

    assert await store.peek("conv-1") is None
    assert await backend.keys(PREFIX) == []


@pytest.mark.asyncio
async def test_capacity_error_is_resolved_by_purging_completed_entries(clock: ManualClock) -> None:
    backend = InMemoryStorageBackend(max_entries=1)
    store = StreamStateStore(backend, key_prefix=PREFIX, clock=clock)
    await store.save(_state("conv-old", clock, completed=True))

    await store.save(_state("conv-new", clock))

    assert await backend.keys(PREFIX) == [f"{PREFIX}:conv-new"]
    assert await store.load("conv-new") is not None


@pytest.mark.asyncio
async def test_in_memory_backend_enforces_entry_quota() -> None:
    backend = InMemoryStorageBackend(max_entries=1)
    await backend.set("a", "1")
    await backend.set("a", "2")

    with pytest.raises(StorageCapacityError):
        await backend.set("b", "3")


@pytest.mark.asyncio
async def test_clear_expired_removes_stale_and_undecodable_entries(
    state_store: StreamStateStore,
    memory_backend: InMemoryStorageBackend,
    clock: ManualClock,
) -> None:
    await state_store.save(_state("conv-old", clock))
    clock.advance(24 * 60 * 60 + 1)
    await state_store.save(_state("conv-done", clock, completed=True))
    await state_store.save(_state("conv-live", clock))
    await memory_backend.set(f"{PREFIX}:conv-broken", "{not json")
    await memory_backend.set("other-prefix:conv-1", "{not json")

    removed = await state_store.clear_expired()

    assert removed == 3
    assert sorted(await memory_backend.keys("")) == ["other-prefix:conv-1", f"{PREFIX}:conv-live"]


@pytest.mark.asyncio
async def test_initialize_sweeps_stale_entries(
    state_store: StreamStateStore,
    memory_backend: InMemoryStorageBackend,
    clock: ManualClock,
) -> None:
    await state_store.save(_state("conv-done", clock, completed=True))

    await state_store.initialize()

    assert await memory_backend.keys(PREFIX) == []


@pytest.mark.asyncio
async def test_mark_completed_and_clear(state_store: StreamStateStore, clock: ManualClock) -> None:
    await state_store.save(_state("conv-1", clock))
    await state_store.save(_state("conv-2", clock))

    await state_store.mark_completed("conv-1")
    await state_store.clear("conv-2")

    assert await state_store.load("conv-1") is None
    assert (await state_store.peek("conv-1")).completed is True
    assert await state_store.peek("conv-2") is None


@pytest.mark.asyncio
async def test_undecodable_entry_loads_as_none(
    state_store: StreamStateStore,
    memory_backend: InMemoryStorageBackend,
) -> None:
    await memory_backend.set(f"{PREFIX}:conv-1", '{"conversationId": "conv-1"}')

    assert await state_store.load("conv-1") is None


def test_build_stream_state_store_selects_backend() -> None:
    memory_store = build_stream_state_store(Settings())
    redis_store = build_stream_state_store(Settings(STREAM_STATE_REDIS_URL="redis://localhost:6379/0"))

    assert isinstance(memory_store._backend, InMemoryStorageBackend)  # noqa: SLF001
    assert isinstance(redis_store._backend, RedisStorageBackend)  # noqa: SLF001
