from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class RunStatus(StrEnum):
    PENDING = "pending"
    STREAMING = "streaming"
    FINISHED = "finished"
    ERRORED = "errored"


@dataclass
class Message:
    """One assistant message produced during a run, with its accumulated text."""

    message_id: str
    role: str
    ordinal: int
    chunks: list[str] = field(default_factory=list)
    closed: bool = False

    @property
    def text(self) -> str:
        return "".join(self.chunks)


@dataclass
class Run:
    run_id: str
    thread_id: str
    status: RunStatus = RunStatus.PENDING
    messages: list[Message] = field(default_factory=list)

    @property
    def terminated(self) -> bool:
        return self.status in (RunStatus.FINISHED, RunStatus.ERRORED)

    def open_message(self, message_id: str, role: str) -> Message:
        message = Message(message_id=message_id, role=role, ordinal=len(self.messages))
        self.messages.append(message)
        return message

    def transcript(self) -> list[tuple[str, str]]:
        """Return ``(message_id, text)`` pairs in emission order."""

        return [(message.message_id, message.text) for message in self.messages]
