from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from agui_host.protocol.events import (
    RunErrorEvent,
    RunFinishedEvent,
    RunStartedEvent,
    TextMessageContentEvent,
    TextMessageEndEvent,
    TextMessageStartEvent,
    WireEvent,
)


class RunPhase(StrEnum):
    IDLE = "idle"
    STARTED = "started"
    MESSAGE_OPEN = "message_open"
    MESSAGE_CLOSED = "message_closed"
    FINISHED = "finished"
    ERRORED = "errored"


_TERMINAL_PHASES = frozenset({RunPhase.FINISHED, RunPhase.ERRORED})


class ProtocolViolation(RuntimeError):
    """Raised when an event sequence breaks run/message framing."""


@dataclass(frozen=True)
class TranscriptEntry:
    message_id: str
    role: str
    text: str
    closed: bool


class RunLifecycle:
    """Per-run framing state machine shared by server emission and client replay.

    ``Idle -> Started -> (MessageOpen <-> MessageClosed)* -> Finished | Errored``
    """

    def __init__(self) -> None:
        self.phase = RunPhase.IDLE
        self.open_message_id: str | None = None
        self._seen_message_ids: set[str] = set()

    @property
    def terminated(self) -> bool:
        return self.phase in _TERMINAL_PHASES

    def has_seen(self, message_id: str) -> bool:
        return message_id in self._seen_message_ids

    def advance(self, event: WireEvent) -> RunPhase:
        match event:
            case RunStartedEvent():
                self._expect(event, RunPhase.IDLE)
                self.phase = RunPhase.STARTED
            case TextMessageStartEvent(message_id=message_id):
                self._expect(event, RunPhase.STARTED, RunPhase.MESSAGE_CLOSED)
                if message_id in self._seen_message_ids:
                    raise ProtocolViolation(f"message id {message_id!r} reused within run")
                self._seen_message_ids.add(message_id)
                self.open_message_id = message_id
                self.phase = RunPhase.MESSAGE_OPEN
            case TextMessageContentEvent(message_id=message_id):
                self._expect(event, RunPhase.MESSAGE_OPEN)
                self._expect_open(message_id)
            case TextMessageEndEvent(message_id=message_id):
                self._expect(event, RunPhase.MESSAGE_OPEN)
                self._expect_open(message_id)
                self.open_message_id = None
                self.phase = RunPhase.MESSAGE_CLOSED
            case RunFinishedEvent():
                self._expect(event, RunPhase.STARTED, RunPhase.MESSAGE_CLOSED)
                self.phase = RunPhase.FINISHED
            case RunErrorEvent():
                self._expect(event, RunPhase.STARTED, RunPhase.MESSAGE_OPEN, RunPhase.MESSAGE_CLOSED)
                self.open_message_id = None
                self.phase = RunPhase.ERRORED
        return self.phase

    def _expect(self, event: WireEvent, *phases: RunPhase) -> None:
        if self.phase not in phases:
            raise ProtocolViolation(f"{event.type} not allowed in phase {self.phase}")

    def _expect_open(self, message_id: str) -> None:
        if message_id != self.open_message_id:
            raise ProtocolViolation(
                f"event for message {message_id!r} while {self.open_message_id!r} is open"
            )


def replay_transcript(events: Iterable[WireEvent]) -> list[TranscriptEntry]:
    """Rebuild per-message text from a recorded event sequence.

    Events are validated against :class:`RunLifecycle`; a ``RUN_STARTED`` after a
    terminal event begins a new run, so a log spanning several runs replays in order.
    """

    lifecycle = RunLifecycle()
    order: list[str] = []
    roles: dict[str, str] = {}
    chunks: dict[str, list[str]] = {}
    closed: set[str] = set()

    for event in events:
        if isinstance(event, RunStartedEvent) and lifecycle.terminated:
            lifecycle = RunLifecycle()
        lifecycle.advance(event)
        match event:
            case TextMessageStartEvent(message_id=message_id, role=role):
                order.append(message_id)
                roles[message_id] = role
                chunks[message_id] = []
            case TextMessageContentEvent(message_id=message_id, delta=delta):
                chunks[message_id].append(delta)
            case TextMessageEndEvent(message_id=message_id):
                closed.add(message_id)
            case _:
                pass

    return [
        TranscriptEntry(
            message_id=message_id,
            role=roles[message_id],
            text="".join(chunks[message_id]),
            closed=message_id in closed,
        )
        for message_id in order
    ]
