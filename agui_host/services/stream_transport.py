from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Callable, Mapping, Sequence

from agui_host.agents.base import AgentUpdate
from agui_host.protocol.aggregator import UpdateAggregator
from agui_host.protocol.encoder import EncodingError, encode_run_error_fallback, encode_sse_event
from agui_host.protocol.events import RunErrorEvent, RunErrorReason, WireEvent
from agui_host.protocol.observer import LoggingStreamObserver, StreamObserver
from agui_host.protocol.run import Run

SSE_RESPONSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}

EventEncoder = Callable[..., bytes]


class SSEStreamTransport:
    """Single-writer channel that turns one run's events into flushed SSE frames.

    Frames are yielded one per event, in emission order, with sequential SSE ids.
    Setting ``abort`` stops pulling updates from the agent and writes the run's
    closing frames best-effort; task cancellation (client disconnect) stops the run
    without writing anything further. A run that stops because an event could not be
    encoded always ends with a ``RUN_ERROR`` frame.
    """

    def __init__(
        self,
        *,
        observer: StreamObserver | None = None,
        encoder: EventEncoder = encode_sse_event,
    ) -> None:
        self._observer = observer if observer is not None else LoggingStreamObserver()
        self._encoder = encoder
        self._writing = False

    async def stream(
        self,
        aggregator: UpdateAggregator,
        updates: AsyncIterable[AgentUpdate | Mapping],
        *,
        abort: asyncio.Event | None = None,
    ) -> AsyncIterator[bytes]:
        if self._writing:
            raise RuntimeError("stream transport already has an active writer")
        self._writing = True

        run = aggregator.run
        events = aggregator.translate(updates)
        abort_waiter = asyncio.ensure_future(abort.wait()) if abort is not None else None
        pending: asyncio.Future[WireEvent] | None = None
        sequence = 0
        self._observer.run_opened(run)

        try:
            while True:
                if abort is not None and abort.is_set():
                    self._observer.run_aborted(run)
                    for event, frame in self._closing_frames(run, aggregator.fail(RunErrorReason.CANCELLED), sequence):
                        yield frame
                        self._observer.event_written(run, event, sequence)
                        sequence += 1
                    break

                pending = asyncio.ensure_future(events.__anext__())
                waiters: set[asyncio.Future] = {pending} if abort_waiter is None else {pending, abort_waiter}
                done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

                if pending not in done:
                    # Abort won the race: stop the in-flight pull before closing the run.
                    pending.cancel()
                    await asyncio.wait({pending})
                    pending = None
                    continue

                finished = pending
                pending = None
                try:
                    event = finished.result()
                except StopAsyncIteration:
                    break

                try:
                    frame = self._encoder(event, event_id=sequence)
                except EncodingError as exc:
                    self._observer.encoding_failed(run, event, exc)
                    closing = aggregator.fail_unwritten(RunErrorReason.SERIALIZATION_FAILURE)
                    for closing_event, closing_frame in self._closing_frames(run, closing, sequence):
                        yield closing_frame
                        self._observer.event_written(run, closing_event, sequence)
                        sequence += 1
                    self._observer.run_errored(run, RunErrorReason.SERIALIZATION_FAILURE, exc)
                    break

                yield frame
                self._observer.event_written(run, event, sequence)
                sequence += 1
                if isinstance(event, RunErrorEvent):
                    self._observer.run_errored(run, event.reason, aggregator.failure)
        finally:
            if abort_waiter is not None:
                abort_waiter.cancel()
            if pending is not None and not pending.done():
                pending.cancel()
            else:
                await events.aclose()
            if not aggregator.terminated:
                self._observer.run_disconnected(run)
            self._writing = False
            self._observer.run_closed(run, sequence)

    def _closing_frames(
        self,
        run: Run,
        closing: Sequence[WireEvent],
        sequence: int,
    ) -> list[tuple[WireEvent, bytes]]:
        """Encode closing events, skipping any that fail; ``RUN_ERROR`` falls back to ASCII."""

        frames: list[tuple[WireEvent, bytes]] = []
        for event in closing:
            event_id = sequence + len(frames)
            try:
                frames.append((event, self._encoder(event, event_id=event_id)))
            except EncodingError as exc:
                self._observer.encoding_failed(run, event, exc)
                if isinstance(event, RunErrorEvent):
                    frames.append((event, encode_run_error_fallback(event.run_id, event.reason, event_id=event_id)))
        return frames
