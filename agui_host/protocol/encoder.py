from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
import json

from pydantic import ValidationError

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
    wire_event_adapter,
)

SSE_MEDIA_TYPE = "text/event-stream"


class EncodingError(Exception):
    """Raised when a WireEvent cannot be turned into an on-wire frame."""

    def __init__(self, event_type: str, detail: str) -> None:
        super().__init__(f"failed to encode {event_type}: {detail}")
        self.event_type = event_type
        self.detail = detail


@dataclass(frozen=True)
class SSEFrame:
    event: str | None
    data: str
    id: int | None = None


def _payload(event: WireEvent) -> dict[str, object]:
    match event:
        case RunStartedEvent() | RunFinishedEvent():
            return {"type": event.type.value, "threadId": event.thread_id, "runId": event.run_id}
        case TextMessageStartEvent():
            return {"type": event.type.value, "messageId": event.message_id, "role": event.role}
        case TextMessageContentEvent():
            return {"type": event.type.value, "messageId": event.message_id, "delta": event.delta}
        case TextMessageEndEvent():
            return {"type": event.type.value, "messageId": event.message_id}
        case RunErrorEvent():
            payload: dict[str, object] = {"type": event.type.value, "runId": event.run_id, "reason": event.reason.value}
            if event.message is not None:
                payload["message"] = event.message
            return payload
    raise EncodingError(type(event).__name__, "unknown event variant")


def encode_sse_event(event: WireEvent, *, event_id: int | None = None) -> bytes:
    """Serialize one event into a UTF-8 server-sent-events frame."""

    event_type = getattr(getattr(event, "type", None), "value", type(event).__name__)
    try:
        data = json.dumps(_payload(event), ensure_ascii=False)
        head = f"id: {event_id}\n" if event_id is not None else ""
        return f"{head}event: {event_type}\ndata: {data}\n\n".encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise EncodingError(str(event_type), str(exc)) from exc


def encode_run_error_fallback(run_id: str, reason: RunErrorReason, *, event_id: int | None = None) -> bytes:
    """Last-resort ``RUN_ERROR`` frame; ASCII-escaped JSON always encodes."""

    data = json.dumps({"type": EventType.RUN_ERROR.value, "runId": run_id, "reason": reason.value})
    head = f"id: {event_id}\n" if event_id is not None else ""
    return f"{head}event: {EventType.RUN_ERROR.value}\ndata: {data}\n\n".encode("ascii")


def parse_wire_event(data: str) -> WireEvent:
    try:
        return wire_event_adapter.validate_json(data)
    except ValidationError as exc:
        raise ValueError(f"invalid wire event payload: {exc.error_count()} error(s)") from exc


async def decode_sse_lines(lines: AsyncIterable[str]) -> AsyncIterator[SSEFrame]:
    """Group server-sent-event lines into frames; comments and empty frames are dropped."""

    event: str | None = None
    frame_id: int | None = None
    data_lines: list[str] = []

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        if not line:
            if data_lines:
                yield SSEFrame(event=event, data="\n".join(data_lines), id=frame_id)
            event, frame_id, data_lines = None, None, []
            continue
        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        value = value.removeprefix(" ")
        if field == "event":
            event = value
        elif field == "data":
            data_lines.append(value)
        elif field == "id":
            frame_id = int(value) if value.isdigit() else None

    if data_lines:
        yield SSEFrame(event=event, data="\n".join(data_lines), id=frame_id)
