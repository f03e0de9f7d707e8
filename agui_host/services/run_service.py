from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
import logging
import weakref

from agui_host.agents.base import AgentFactory, ChatAgent
from agui_host.api.schemas.run import RunAgentInput
from agui_host.protocol.aggregator import UpdateAggregator
from agui_host.protocol.observer import StreamObserver
from agui_host.services.stream_transport import SSEStreamTransport

logger = logging.getLogger(__name__)


class RunConflictError(Exception):
    """Raised when a run id is already streaming in this process."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"run {run_id!r} is already streaming")
        self.run_id = run_id


class RunRegistry:
    """Process-wide bookkeeping of active runs and their abort signals."""

    def __init__(self) -> None:
        self._active: dict[str, asyncio.Event] = {}

    def register(self, run_id: str) -> asyncio.Event:
        if run_id in self._active:
            raise RunConflictError(run_id)
        abort = asyncio.Event()
        self._active[run_id] = abort
        return abort

    def release(self, run_id: str, abort: asyncio.Event | None = None) -> None:
        """Forget ``run_id``; with ``abort``, only if it still owns the registration."""

        if abort is None or self._active.get(run_id) is abort:
            self._active.pop(run_id, None)

    def abort(self, run_id: str) -> bool:
        abort = self._active.get(run_id)
        if abort is None:
            return False
        abort.set()
        return True

    def active_runs(self) -> list[str]:
        return list(self._active)


class RunService:
    """Use-case service wiring agent, aggregator and transport for each run."""

    def __init__(self, agent_factory: AgentFactory, registry: RunRegistry, observer: StreamObserver) -> None:
        self._agent_factory = agent_factory
        self._registry = registry
        self._observer = observer

    def open_run(self, payload: RunAgentInput) -> AsyncIterator[bytes]:
        logger.info(
            "received agent run",
            extra={
                "thread_id": payload.thread_id,
                "run_id": payload.run_id,
                "message_count": len(payload.messages),
                "tool_count": len(payload.tools),
            },
        )
        for index, message in enumerate(payload.messages):
            logger.debug(
                "run input message",
                extra={"index": index, "role": message.role, "has_tool_calls": bool(message.tool_calls)},
            )

        agent = self._agent_factory(payload.messages, payload.tools)
        abort = self._registry.register(payload.run_id)
        stream = self._stream(payload, agent, abort)
        # A stream dropped before its first pull never reaches its finally block.
        weakref.finalize(stream, self._registry.release, payload.run_id, abort)
        return stream

    def abort_run(self, run_id: str) -> bool:
        aborted = self._registry.abort(run_id)
        logger.info("abort requested for agent run", extra={"run_id": run_id, "active": aborted})
        return aborted

    async def _stream(self, payload: RunAgentInput, agent: ChatAgent, abort: asyncio.Event) -> AsyncIterator[bytes]:
        aggregator = UpdateAggregator(thread_id=payload.thread_id, run_id=payload.run_id)
        transport = SSEStreamTransport(observer=self._observer)
        try:
            async for frame in transport.stream(aggregator, agent.astream(payload.messages), abort=abort):
                yield frame
        finally:
            self._registry.release(payload.run_id, abort)
