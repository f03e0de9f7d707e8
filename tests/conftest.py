"""Shared test utilities and fixtures for agui-host tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence

import pytest

from agui_host.agents.base import AgentUpdate
from agui_host.api.schemas.run import InputMessage, ToolDefinition
from agui_host.client.state_store import StreamStateStore
from agui_host.client.storage import InMemoryStorageBackend
from agui_host.core.settings import Settings
from agui_host.protocol.encoder import parse_wire_event
from agui_host.protocol.events import RunErrorReason, WireEvent


def text_updates(message_id: str | None, chunks: Sequence[str], role: str | None = "assistant") -> list[AgentUpdate]:
    return [AgentUpdate(message_id=message_id, role=role, text_delta=chunk) for chunk in chunks]


SINGLE_MESSAGE_CHUNKS = ["Hello", " ", "from", " ", "fake", " ", "agent", "!"]


def three_message_updates() -> list[AgentUpdate]:
    return [
        *text_updates("msg-a", ["First", " ", "message"]),
        *text_updates("msg-b", ["Second", " ", "message"]),
        *text_updates("msg-c", ["Third", " ", "message"]),
    ]


class FakeChatAgent:
    """Scripted agent at the inference boundary.

    ``fail_after`` raises ``error`` once that many updates were produced; ``block``
    parks the stream after the scripted updates until ``release`` is set.
    """

    def __init__(
        self,
        updates: Sequence[object] = (),
        *,
        fail_after: int | None = None,
        error: BaseException | None = None,
        block: bool = False,
    ) -> None:
        self._updates = list(updates)
        self._fail_after = fail_after
        self._error = error or RuntimeError("upstream model failure")
        self._block = block
        self.calls: list[list[InputMessage]] = []
        self.pulled = 0
        self.closed = False
        self.waiting = asyncio.Event()
        self.release = asyncio.Event()

    async def astream(self, messages: Sequence[InputMessage]) -> AsyncIterator[object]:
        self.calls.append(list(messages))
        try:
            for index, update in enumerate(self._updates):
                if self._fail_after is not None and index == self._fail_after:
                    raise self._error
                self.pulled += 1
                yield update
                await asyncio.sleep(0)
            if self._fail_after is not None and self._fail_after >= len(self._updates):
                raise self._error
            if self._block:
                self.waiting.set()
                await self.release.wait()
        finally:
            self.closed = True


class FakeAgentFactory:
    def __init__(self, agent: FakeChatAgent) -> None:
        self.agent = agent
        self.calls: list[tuple[list[InputMessage], list[ToolDefinition]]] = []

    def __call__(self, messages: Sequence[InputMessage], tools: Sequence[ToolDefinition]) -> FakeChatAgent:
        self.calls.append((list(messages), list(tools)))
        return self.agent


class RecordingObserver:
    """Stream observer fake that records callback names and arguments."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, object]] = []

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def run_opened(self, run) -> None:
        self.calls.append(("run_opened", run.run_id))

    def event_written(self, run, event, sequence: int) -> None:
        self.calls.append(("event_written", (event.type, sequence)))

    def run_errored(self, run, reason: RunErrorReason, failure) -> None:
        self.calls.append(("run_errored", reason))

    def encoding_failed(self, run, event, error) -> None:
        self.calls.append(("encoding_failed", event.type))

    def run_aborted(self, run) -> None:
        self.calls.append(("run_aborted", run.run_id))

    def run_disconnected(self, run) -> None:
        self.calls.append(("run_disconnected", run.run_id))

    def run_closed(self, run, frames_written: int) -> None:
        self.calls.append(("run_closed", frames_written))


class ManualClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def frame_events(frames: Sequence[bytes]) -> list[WireEvent]:
    events: list[WireEvent] = []
    for frame in frames:
        for line in frame.decode("utf-8").splitlines():
            if line.startswith("data: "):
                events.append(parse_wire_event(line.removeprefix("data: ")))
    return events


def frame_ids(frames: Sequence[bytes]) -> list[int]:
    ids: list[int] = []
    for frame in frames:
        for line in frame.decode("utf-8").splitlines():
            if line.startswith("id: "):
                ids.append(int(line.removeprefix("id: ")))
    return ids


def run_payload(thread_id: str = "thread-1", run_id: str = "run-1", **extra: object) -> dict[str, object]:
    return {
        "threadId": thread_id,
        "runId": run_id,
        "messages": [{"id": "user-1", "role": "user", "content": "hello"}],
        **extra,
    }


@pytest.fixture
def test_settings() -> Settings:
    return Settings()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def memory_backend() -> InMemoryStorageBackend:
    return InMemoryStorageBackend()


@pytest.fixture
def state_store(memory_backend: InMemoryStorageBackend, clock: ManualClock) -> StreamStateStore:
    return StreamStateStore(memory_backend, key_prefix="tests:streaming-state", clock=clock)
