from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from agui_host.api.schemas.run import InputMessage, ToolDefinition


class AgentUpdate(BaseModel):
    """One raw chunk of agent output; every field is optional."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    message_id: str | None = None
    role: str | None = None
    text_delta: str | None = None
    tool_call_delta: dict[str, Any] | None = None


class ChatAgent(Protocol):
    """Contract for agents that stream incremental updates for a batch of input messages."""

    def astream(self, messages: Sequence[InputMessage]) -> AsyncIterator[AgentUpdate]:
        """Stream updates for the run's input messages."""


class AgentFactory(Protocol):
    """Builds a fresh agent per run from the client's messages and tools."""

    def __call__(self, messages: Sequence[InputMessage], tools: Sequence[ToolDefinition]) -> ChatAgent:
        ...
