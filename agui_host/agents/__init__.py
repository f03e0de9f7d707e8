from agui_host.agents.base import AgentFactory, AgentUpdate, ChatAgent

__all__ = ["AgentFactory", "AgentUpdate", "ChatAgent"]
