"""Client-side stream consumption and resumable state persistence."""

from agui_host.client.state_store import StreamingState, StreamStateStore, build_stream_state_store
from agui_host.client.storage import (
    InMemoryStorageBackend,
    RedisStorageBackend,
    StorageBackend,
    StorageCapacityError,
    StorageError,
)
from agui_host.client.stream_client import AGUIClientError, AGUIStreamClient

__all__ = [
    "AGUIClientError",
    "AGUIStreamClient",
    "InMemoryStorageBackend",
    "RedisStorageBackend",
    "StorageBackend",
    "StorageCapacityError",
    "StorageError",
    "StreamStateStore",
    "StreamingState",
    "build_stream_state_store",
]
