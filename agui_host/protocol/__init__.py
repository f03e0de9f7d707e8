"""AG-UI wire protocol: event model, run framing, translation and encoding."""

from agui_host.protocol.aggregator import MalformedUpdateError, UpdateAggregator
from agui_host.protocol.encoder import (
    EncodingError,
    SSEFrame,
    decode_sse_lines,
    encode_run_error_fallback,
    encode_sse_event,
    parse_wire_event,
)
from agui_host.protocol.events import (
    EventType,
    RunErrorEvent,
    RunErrorReason,
    RunFinishedEvent,
    RunStartedEvent,
    TextMessageContentEvent,
    TextMessageEndEvent,
    TextMessageStartEvent,
    WireEvent,
    is_terminal,
)
from agui_host.protocol.lifecycle import ProtocolViolation, RunLifecycle, RunPhase, TranscriptEntry, replay_transcript
from agui_host.protocol.observer import LoggingStreamObserver, StreamObserver
from agui_host.protocol.run import Message, Run, RunStatus

__all__ = [
    "EncodingError",
    "EventType",
    "LoggingStreamObserver",
    "MalformedUpdateError",
    "Message",
    "ProtocolViolation",
    "Run",
    "RunErrorEvent",
    "RunErrorReason",
    "RunFinishedEvent",
    "RunLifecycle",
    "RunPhase",
    "RunStartedEvent",
    "RunStatus",
    "SSEFrame",
    "StreamObserver",
    "TextMessageContentEvent",
    "TextMessageEndEvent",
    "TextMessageStartEvent",
    "TranscriptEntry",
    "UpdateAggregator",
    "WireEvent",
    "decode_sse_lines",
    "encode_run_error_fallback",
    "encode_sse_event",
    "is_terminal",
    "parse_wire_event",
    "replay_transcript",
]
