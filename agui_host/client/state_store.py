from __future__ import annotations

from collections.abc import Callable, Sequence
import logging
import time

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from agui_host.client.storage import InMemoryStorageBackend, RedisStorageBackend, StorageBackend, StorageError
from agui_host.core.settings import Settings
from agui_host.protocol.events import TextMessageContentEvent, WireEvent, is_terminal

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 24 * 60 * 60


class StreamingState(BaseModel):
    """Client-side record of one conversation's in-flight stream."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    conversation_id: str
    response_id: str
    last_message_id: str | None = None
    last_sequence_number: int = -1
    events: list[WireEvent] = Field(default_factory=list)
    timestamp: int = Field(..., description="Last update time in epoch milliseconds")
    completed: bool = False
    accumulated_text: str | None = None


def extract_accumulated_text(events: Sequence[WireEvent]) -> str:
    return "".join(event.delta for event in events if isinstance(event, TextMessageContentEvent))


class StreamStateStore:
    """Persists received WireEvents per conversation so an interrupted stream can resume.

    Storage failures never reach the caller: a failed write purges stale entries and
    retries once, then falls back to in-memory tracking for that conversation.
    Concurrent writers to one conversation are not coordinated; the last write wins.
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        key_prefix: str = "agui:streaming-state",
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._key_prefix = key_prefix.strip(":")
        self._retention_ms = retention_seconds * 1000
        self._clock = clock
        self._fallback: dict[str, StreamingState] = {}

    async def initialize(self) -> None:
        removed = await self.clear_expired()
        logger.debug("streaming state store initialized", extra={"removed_entries": removed})

    async def save(self, state: StreamingState) -> None:
        key = self._key(state.conversation_id)
        data = state.model_dump_json(by_alias=True)
        try:
            await self._backend.set(key, data)
        except StorageError:
            logger.warning(
                "failed to save streaming state; purging stale entries and retrying",
                extra={"conversation_id": state.conversation_id},
                exc_info=True,
            )
            try:
                await self.clear_expired()
                await self._backend.set(key, data)
            except StorageError:
                logger.error(
                    "failed to save streaming state even after cleanup; tracking in memory only",
                    extra={"conversation_id": state.conversation_id},
                    exc_info=True,
                )
                self._fallback[state.conversation_id] = state
                return
        self._fallback.pop(state.conversation_id, None)

    async def load(self, conversation_id: str) -> StreamingState | None:
        """Return the resumable state, or ``None`` when missing, expired or completed."""

        state = await self.peek(conversation_id)
        if state is None:
            return None
        if state.completed:
            logger.debug("streaming state already completed", extra={"conversation_id": conversation_id})
            return None
        return state

    async def peek(self, conversation_id: str) -> StreamingState | None:
        """Like :meth:`load` but also returns completed entries, for read-only replay."""

        state = await self._read(conversation_id)
        if state is None:
            return None
        if self._is_expired(state, self._now_ms()):
            logger.debug("streaming state expired", extra={"conversation_id": conversation_id})
            await self.clear(conversation_id)
            return None
        return state

    async def update(
        self,
        conversation_id: str,
        event: WireEvent,
        response_id: str,
        last_message_id: str | None = None,
        *,
        sequence_number: int | None = None,
    ) -> StreamingState:
        existing = await self.load(conversation_id)
        events = [*existing.events, event] if existing is not None else [event]
        last_sequence_number = existing.last_sequence_number if existing is not None else -1
        if sequence_number is not None:
            last_sequence_number = max(last_sequence_number, sequence_number)

        state = StreamingState(
            conversation_id=conversation_id,
            response_id=response_id,
            last_message_id=last_message_id,
            last_sequence_number=last_sequence_number,
            events=events,
            timestamp=self._now_ms(),
            completed=is_terminal(event),
            accumulated_text=extract_accumulated_text(events),
        )
        await self.save(state)
        return state

    async def mark_completed(self, conversation_id: str) -> None:
        existing = await self.load(conversation_id)
        if existing is None:
            return
        await self.save(existing.model_copy(update={"completed": True, "timestamp": self._now_ms()}))

    async def clear(self, conversation_id: str) -> None:
        self._fallback.pop(conversation_id, None)
        try:
            await self._backend.delete(self._key(conversation_id))
        except StorageError:
            logger.warning("failed to clear streaming state", extra={"conversation_id": conversation_id}, exc_info=True)

    async def clear_expired(self) -> int:
        """Remove expired, completed and undecodable entries; return how many were removed."""

        now = self._now_ms()
        for conversation_id, state in list(self._fallback.items()):
            if state.completed or self._is_expired(state, now):
                await self.clear(conversation_id)

        try:
            keys = await self._backend.keys(f"{self._key_prefix}:")
        except StorageError:
            logger.warning("failed to list streaming state entries", exc_info=True)
            return 0

        removed = 0
        for key in keys:
            try:
                raw = await self._backend.get(key)
                if raw is None:
                    continue
                try:
                    state = StreamingState.model_validate_json(raw)
                    stale = state.completed or self._is_expired(state, now)
                except ValidationError:
                    stale = True
                if stale:
                    await self._backend.delete(key)
                    removed += 1
            except StorageError:
                logger.warning("failed to sweep streaming state entry", extra={"key": key}, exc_info=True)
        return removed

    async def close(self) -> None:
        await self._backend.close()

    async def _read(self, conversation_id: str) -> StreamingState | None:
        # A fallback entry only exists while the backend copy is stale.
        fallback = self._fallback.get(conversation_id)
        if fallback is not None:
            return fallback

        try:
            raw = await self._backend.get(self._key(conversation_id))
        except StorageError:
            logger.warning("failed to read streaming state", extra={"conversation_id": conversation_id}, exc_info=True)
            raw = None

        if raw is None:
            return None

        try:
            return StreamingState.model_validate_json(raw)
        except ValidationError:
            logger.warning("streaming state decode failure", extra={"conversation_id": conversation_id})
            return None

    def _is_expired(self, state: StreamingState, now_ms: int) -> bool:
        return now_ms - state.timestamp > self._retention_ms

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _key(self, conversation_id: str) -> str:
        return f"{self._key_prefix}:{conversation_id}"


def build_stream_state_store(settings: Settings) -> StreamStateStore:
    backend: StorageBackend
    if settings.stream_state_redis_url:
        backend = RedisStorageBackend(
            redis_url=settings.stream_state_redis_url,
            ttl_seconds=settings.stream_state_retention_seconds,
        )
    else:
        backend = InMemoryStorageBackend()
    return StreamStateStore(
        backend,
        key_prefix=settings.stream_state_key_prefix,
        retention_seconds=settings.stream_state_retention_seconds,
    )
