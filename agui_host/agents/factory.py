from __future__ import annotations

from collections.abc import Sequence
import logging
from pathlib import Path

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_openai import ChatOpenAI

from agui_host.agents.base import AgentFactory, ChatAgent
from agui_host.agents.langchain_agent import LangChainChatAgent
from agui_host.api.schemas.run import InputMessage, ToolDefinition
from agui_host.core.settings import Settings

logger = logging.getLogger(__name__)

_MOCK_MESSAGE_DELIMITER = "\n\n--- message ---\n\n"


def _load_mock_messages(messages_file: str) -> list[str]:
    path = Path(messages_file)
    raw_content = path.read_text(encoding="utf-8")
    parsed_messages = [chunk.strip() for chunk in raw_content.split(_MOCK_MESSAGE_DELIMITER)]
    messages = [message for message in parsed_messages if message]
    if not messages:
        raise ValueError(
            f"No mock messages found in {path}. Use delimiter {_MOCK_MESSAGE_DELIMITER!r} between messages."
        )
    return messages


def _build_agent_model(settings: Settings) -> BaseChatModel:
    if settings.agent_use_mock:
        fake_responses = _load_mock_messages(messages_file=settings.agent_mock_messages_file)
        logger.info("using FakeListChatModel agent", extra={"responses_count": len(fake_responses)})
        return FakeListChatModel(responses=fake_responses)

    logger.info("using model-provider agent", extra={"model_alias": settings.agent_model})
    return ChatOpenAI(
        model=settings.agent_model,
        base_url=settings.model_provider_base_url,
        api_key=settings.model_provider_api_key,
        temperature=settings.agent_temperature,
        streaming=True,
    )


def build_agent_factory(settings: Settings) -> AgentFactory:
    """Create the per-run agent factory with a real or fake model backend.

    The model is built on the first run and shared afterwards; each run gets its own
    agent bound to the tools the client sent. The mock model cannot bind tools, so
    they are dropped.
    """

    models: list[BaseChatModel] = []

    def factory(messages: Sequence[InputMessage], tools: Sequence[ToolDefinition]) -> ChatAgent:
        del messages
        if not models:
            models.append(_build_agent_model(settings))
        return LangChainChatAgent(
            model=models[0],
            system_prompt=settings.agent_system_prompt,
            tools=() if settings.agent_use_mock else tools,
        )

    return factory
