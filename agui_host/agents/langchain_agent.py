from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
import logging
from typing import Any

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, SystemMessage, convert_to_messages

from agui_host.agents.base import AgentUpdate, ChatAgent
from agui_host.api.schemas.run import InputMessage, ToolDefinition

logger = logging.getLogger(__name__)


class LangChainChatAgent(ChatAgent):
    """Streams a LangChain chat model and maps its chunks to agent updates."""

    def __init__(
        self,
        *,
        model: BaseChatModel,
        system_prompt: str | None = None,
        tools: Sequence[ToolDefinition] = (),
    ) -> None:
        self._model = model
        self._system_prompt = system_prompt
        self._tools = list(tools)

    async def astream(self, messages: Sequence[InputMessage]) -> AsyncIterator[AgentUpdate]:
        logger.debug(
            "streaming response from chat model",
            extra={"message_count": len(messages), "tool_count": len(self._tools)},
        )
        runnable: Any = self._model
        if self._tools:
            runnable = self._model.bind_tools([tool.as_openai_tool() for tool in self._tools])

        async for chunk in runnable.astream(self._to_langchain_messages(messages)):
            tool_call_delta = self._tool_call_delta(chunk)
            for text in self._extract_text(chunk) or [None]:
                if text is None and tool_call_delta is None:
                    continue
                yield AgentUpdate(
                    message_id=getattr(chunk, "id", None),
                    role="assistant",
                    text_delta=text,
                    tool_call_delta=tool_call_delta,
                )
                tool_call_delta = None

    def _to_langchain_messages(self, messages: Sequence[InputMessage]) -> list[BaseMessage]:
        converted: list[BaseMessage] = []
        if self._system_prompt:
            converted.append(SystemMessage(content=self._system_prompt))

        payload: list[dict[str, Any]] = []
        for message in messages:
            item: dict[str, Any] = {
                "role": "system" if message.role == "developer" else message.role,
                "content": message.content or "",
            }
            if message.id:
                item["id"] = message.id
            if message.name:
                item["name"] = message.name
            if message.tool_call_id:
                item["tool_call_id"] = message.tool_call_id
            if message.tool_calls:
                item["tool_calls"] = [call.model_dump() for call in message.tool_calls]
            payload.append(item)

        converted.extend(convert_to_messages(payload))
        return converted

    def _extract_text(self, chunk: Any) -> list[str]:
        chunk_content = getattr(chunk, "content", chunk)
        if isinstance(chunk_content, str):
            return [chunk_content] if chunk_content else []

        if not isinstance(chunk_content, list):
            return []

        parsed: list[str] = []
        for item in chunk_content:
            if isinstance(item, str):
                if item:
                    parsed.append(item)
                continue
            item_type = item.get("type") if isinstance(item, dict) else getattr(item, "type", None)
            if item_type != "text":
                continue
            text = item.get("text", "") if isinstance(item, dict) else getattr(item, "text", "")
            if text:
                parsed.append(text)
        return parsed

    def _tool_call_delta(self, chunk: Any) -> dict[str, Any] | None:
        tool_call_chunks = getattr(chunk, "tool_call_chunks", None)
        if not tool_call_chunks:
            return None
        return {"tool_call_chunks": [dict(call) for call in tool_call_chunks]}
