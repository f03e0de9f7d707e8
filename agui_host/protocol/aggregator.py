from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterator, Mapping
import uuid

from pydantic import ValidationError

from agui_host.agents.base import AgentUpdate
from agui_host.protocol.events import (
    RunErrorEvent,
    RunErrorReason,
    RunFinishedEvent,
    RunStartedEvent,
    TextMessageContentEvent,
    TextMessageEndEvent,
    TextMessageStartEvent,
    WireEvent,
)
from agui_host.protocol.lifecycle import RunLifecycle, RunPhase
from agui_host.protocol.run import Message, Run, RunStatus

DEFAULT_ROLE = "assistant"

_REASON_MESSAGES = {
    RunErrorReason.INFERENCE_FAILURE: "Agent stream failed",
    RunErrorReason.CANCELLED: "Agent stream was cancelled",
    RunErrorReason.MALFORMED_UPDATE: "Agent produced a malformed update",
    RunErrorReason.SERIALIZATION_FAILURE: "Event could not be serialized",
}


class MalformedUpdateError(ValueError):
    """Raised when an agent update cannot be translated into protocol events."""


def _caller_is_cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


def _default_message_id() -> str:
    return uuid.uuid4().hex


class UpdateAggregator:
    """Translate one run's agent updates into a framed WireEvent sequence.

    The aggregator is single-use and forward-only: every emitted event is checked
    against :class:`RunLifecycle` and applied to :attr:`run`, so the run model always
    reflects exactly what has been emitted.
    """

    def __init__(
        self,
        *,
        thread_id: str,
        run_id: str,
        message_id_factory: Callable[[], str] = _default_message_id,
    ) -> None:
        self.run = Run(run_id=run_id, thread_id=thread_id)
        self.failure: BaseException | None = None
        self._lifecycle = RunLifecycle()
        self._open: Message | None = None
        self._message_id_factory = message_id_factory

    @property
    def open_message_id(self) -> str | None:
        return self._open.message_id if self._open is not None else None

    @property
    def terminated(self) -> bool:
        return self._lifecycle.terminated

    async def translate(self, updates: AsyncIterable[AgentUpdate | Mapping]) -> AsyncIterator[WireEvent]:
        if self._lifecycle.phase is not RunPhase.IDLE:
            raise RuntimeError("aggregator has already translated a run")

        yield self._emit(RunStartedEvent(thread_id=self.run.thread_id, run_id=self.run.run_id))

        iterator = aiter(updates)
        reason: RunErrorReason | None = None
        try:
            try:
                async for raw in iterator:
                    update = self._coerce(raw)
                    for event in self._events_for(update):
                        yield self._emit(event)
            except asyncio.CancelledError as exc:
                if _caller_is_cancelling():
                    raise
                self.failure = exc
                reason = RunErrorReason.CANCELLED
            except MalformedUpdateError as exc:
                self.failure = exc
                reason = RunErrorReason.MALFORMED_UPDATE
            except Exception as exc:  # noqa: BLE001
                self.failure = exc
                reason = RunErrorReason.INFERENCE_FAILURE

            if reason is None:
                for event in self._closing_events():
                    yield self._emit(event)
                yield self._emit(RunFinishedEvent(thread_id=self.run.thread_id, run_id=self.run.run_id))
            else:
                for event in self.fail(reason):
                    yield event
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    def fail(self, reason: RunErrorReason, message: str | None = None) -> list[WireEvent]:
        """Terminate the run with ``RUN_ERROR`` and return the events emitted to do so.

        Returns an empty list when the run has already terminated.
        """

        if self._lifecycle.terminated:
            return []

        emitted: list[WireEvent] = []
        if self._lifecycle.phase is RunPhase.IDLE:
            emitted.append(self._emit(RunStartedEvent(thread_id=self.run.thread_id, run_id=self.run.run_id)))
        emitted.extend(self._emit(event) for event in self._closing_events())
        emitted.append(
            self._emit(
                RunErrorEvent(
                    run_id=self.run.run_id,
                    reason=reason,
                    message=message or _REASON_MESSAGES[reason],
                )
            )
        )
        return emitted

    def fail_unwritten(self, reason: RunErrorReason, message: str | None = None) -> list[WireEvent]:
        """Like :meth:`fail`, for when the last emitted event never reached the wire.

        If that event terminated the run, it is superseded by a fresh ``RUN_ERROR``.
        """

        if not self._lifecycle.terminated:
            return self.fail(reason, message)

        self.run.status = RunStatus.ERRORED
        return [RunErrorEvent(run_id=self.run.run_id, reason=reason, message=message or _REASON_MESSAGES[reason])]

    def _coerce(self, raw: object) -> AgentUpdate:
        if isinstance(raw, AgentUpdate):
            return raw
        if isinstance(raw, Mapping):
            try:
                return AgentUpdate.model_validate(raw)
            except ValidationError as exc:
                raise MalformedUpdateError(f"invalid update payload: {exc.error_count()} error(s)") from exc
        raise MalformedUpdateError(f"unsupported update type {type(raw).__name__}")

    def _events_for(self, update: AgentUpdate) -> Iterator[WireEvent]:
        message_id = update.message_id
        if message_id and message_id != self.open_message_id:
            if self._lifecycle.has_seen(message_id):
                raise MalformedUpdateError(f"update reopens closed message {message_id!r}")
            yield from self._closing_events()
            yield TextMessageStartEvent(message_id=message_id, role=update.role or DEFAULT_ROLE)

        if not update.text_delta:
            return

        if self._open is None:
            yield TextMessageStartEvent(message_id=self._message_id_factory(), role=update.role or DEFAULT_ROLE)
        yield TextMessageContentEvent(message_id=self.open_message_id, delta=update.text_delta)

    def _closing_events(self) -> Iterator[WireEvent]:
        if self._open is not None:
            yield TextMessageEndEvent(message_id=self._open.message_id)

    def _emit(self, event: WireEvent) -> WireEvent:
        self._lifecycle.advance(event)
        match event:
            case RunStartedEvent():
                self.run.status = RunStatus.STREAMING
            case TextMessageStartEvent(message_id=message_id, role=role):
                self._open = self.run.open_message(message_id, role)
            case TextMessageContentEvent(delta=delta):
                self._open.chunks.append(delta)
            case TextMessageEndEvent():
                self._open.closed = True
                self._open = None
            case RunFinishedEvent():
                self.run.status = RunStatus.FINISHED
            case RunErrorEvent():
                self.run.status = RunStatus.ERRORED
        return event
