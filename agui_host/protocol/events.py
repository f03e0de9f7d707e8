from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class EventType(StrEnum):
    RUN_STARTED = "RUN_STARTED"
    TEXT_MESSAGE_START = "TEXT_MESSAGE_START"
    TEXT_MESSAGE_CONTENT = "TEXT_MESSAGE_CONTENT"
    TEXT_MESSAGE_END = "TEXT_MESSAGE_END"
    RUN_FINISHED = "RUN_FINISHED"
    RUN_ERROR = "RUN_ERROR"


class RunErrorReason(StrEnum):
    INFERENCE_FAILURE = "inference_failure"
    CANCELLED = "cancelled"
    MALFORMED_UPDATE = "malformed_update"
    SERIALIZATION_FAILURE = "serialization_failure"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class RunStartedEvent(_WireModel):
    type: Literal[EventType.RUN_STARTED] = EventType.RUN_STARTED
    thread_id: str = Field(..., description="Conversation-level correlation id")
    run_id: str = Field(..., description="Id of the run this stream belongs to")


class TextMessageStartEvent(_WireModel):
    type: Literal[EventType.TEXT_MESSAGE_START] = EventType.TEXT_MESSAGE_START
    message_id: str
    role: str = "assistant"


class TextMessageContentEvent(_WireModel):
    type: Literal[EventType.TEXT_MESSAGE_CONTENT] = EventType.TEXT_MESSAGE_CONTENT
    message_id: str
    delta: str = Field(..., min_length=1, description="Incremental text fragment, never empty")


class TextMessageEndEvent(_WireModel):
    type: Literal[EventType.TEXT_MESSAGE_END] = EventType.TEXT_MESSAGE_END
    message_id: str


class RunFinishedEvent(_WireModel):
    type: Literal[EventType.RUN_FINISHED] = EventType.RUN_FINISHED
    thread_id: str
    run_id: str


class RunErrorEvent(_WireModel):
    type: Literal[EventType.RUN_ERROR] = EventType.RUN_ERROR
    run_id: str
    reason: RunErrorReason
    message: str | None = Field(default=None, description="Human readable failure detail")


WireEvent = Annotated[
    RunStartedEvent
    | TextMessageStartEvent
    | TextMessageContentEvent
    | TextMessageEndEvent
    | RunFinishedEvent
    | RunErrorEvent,
    Field(discriminator="type"),
]

TERMINAL_EVENT_TYPES = frozenset({EventType.RUN_FINISHED, EventType.RUN_ERROR})

wire_event_adapter: TypeAdapter[WireEvent] = TypeAdapter(WireEvent)


def is_terminal(event: WireEvent) -> bool:
    return event.type in TERMINAL_EVENT_TYPES
