from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FunctionCall(_CamelModel):
    name: str
    arguments: str = Field(default="", description="JSON-encoded call arguments")


class ToolCall(_CamelModel):
    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


class InputMessage(_CamelModel):
    id: str | None = Field(default=None, description="Client-side message id")
    role: Literal["user", "assistant", "system", "developer", "tool"]
    content: str | None = None
    name: str | None = None
    tool_call_id: str | None = Field(default=None, description="Tool call answered by a tool message")
    tool_calls: list[ToolCall] | None = None


class ToolDefinition(_CamelModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict, description="JSON schema of the tool arguments")

    def as_openai_tool(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters or {"type": "object", "properties": {}},
            },
        }


class ContextItem(_CamelModel):
    description: str
    value: str


class RunAgentInput(_CamelModel):
    thread_id: str = Field(..., min_length=1, description="Conversation id spanning multiple runs")
    run_id: str = Field(..., min_length=1, description="Id of this request/response turn")
    messages: list[InputMessage] = Field(default_factory=list)
    tools: list[ToolDefinition] = Field(default_factory=list)
    context: list[ContextItem] = Field(default_factory=list)
    forwarded_props: Any = Field(default=None, description="Opaque client properties forwarded to the agent")
    state: Any = None


class AbortRunResponse(BaseModel):
    run_id: str
    status: Literal["aborting"] = "aborting"
