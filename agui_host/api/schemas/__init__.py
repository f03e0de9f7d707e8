from agui_host.api.schemas.run import (
    AbortRunResponse,
    ContextItem,
    FunctionCall,
    InputMessage,
    RunAgentInput,
    ToolCall,
    ToolDefinition,
)

__all__ = [
    "AbortRunResponse",
    "ContextItem",
    "FunctionCall",
    "InputMessage",
    "RunAgentInput",
    "ToolCall",
    "ToolDefinition",
]
