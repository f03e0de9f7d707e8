from __future__ import annotations

from collections.abc import AsyncIterator
import logging

import httpx

from agui_host.api.schemas.run import RunAgentInput
from agui_host.client.state_store import StreamingState, StreamStateStore
from agui_host.protocol.encoder import SSE_MEDIA_TYPE, decode_sse_lines, parse_wire_event
from agui_host.protocol.events import TextMessageStartEvent, WireEvent
from agui_host.protocol.lifecycle import TranscriptEntry, replay_transcript

logger = logging.getLogger(__name__)


class AGUIClientError(Exception):
    """Raised when the agent host rejects a request."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"agent host returned {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class AGUIStreamClient:
    """Consumes an agent host's event stream and mirrors it into a state store."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        state_store: StreamStateStore,
        endpoint: str = "/agent",
    ) -> None:
        self._http = http_client
        self._store = state_store
        self._endpoint = endpoint.rstrip("/") or "/"

    async def run(self, payload: RunAgentInput, conversation_id: str | None = None) -> AsyncIterator[WireEvent]:
        conversation_id = conversation_id or payload.thread_id
        last_message_id: str | None = None
        body = payload.model_dump(mode="json", by_alias=True, exclude_none=True)

        async with self._http.stream(
            "POST",
            self._endpoint,
            json=body,
            headers={"Accept": SSE_MEDIA_TYPE},
        ) as response:
            if response.status_code >= 400:
                detail = (await response.aread()).decode("utf-8", errors="replace")
                raise AGUIClientError(response.status_code, detail)

            async for frame in decode_sse_lines(response.aiter_lines()):
                event = parse_wire_event(frame.data)
                if isinstance(event, TextMessageStartEvent):
                    last_message_id = event.message_id
                await self._store.update(
                    conversation_id,
                    event,
                    payload.run_id,
                    last_message_id,
                    sequence_number=frame.id,
                )
                yield event

        logger.debug("agent stream consumed", extra={"conversation_id": conversation_id, "run_id": payload.run_id})

    async def resume(self, conversation_id: str) -> StreamingState | None:
        """Return persisted progress for an interrupted stream, if it can be resumed."""

        return await self._store.load(conversation_id)

    async def replay(self, conversation_id: str) -> list[TranscriptEntry]:
        state = await self._store.peek(conversation_id)
        if state is None:
            return []
        return replay_transcript(state.events)

    async def abort(self, run_id: str) -> bool:
        response = await self._http.delete(f"{self._endpoint}/runs/{run_id}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return False
        if response.status_code >= 400:
            raise AGUIClientError(response.status_code, response.text)
        return True
