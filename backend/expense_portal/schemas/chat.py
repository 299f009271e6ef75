from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, StringConstraints


class ChatTurn(BaseModel):
    """One prior message supplied by the caller. Never stored server-side."""
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    history: List[ChatTurn] = Field(default_factory=list)


class ChatResponse(BaseModel):
    response: str
    success: bool
    error: Optional[str] = None


class ToolCall(BaseModel):
    """A function call requested by the model; consumed once per turn."""
    id: str
    name: str
    arguments: str = "{}"  # raw JSON text as sent by the model

    def to_message_part(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


class ChatCompletion(BaseModel):
    """The first choice of a chat-completion response."""
    finish_reason: Optional[str] = None
    content: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)

    @property
    def wants_tools(self) -> bool:
        return self.finish_reason == "tool_calls" or bool(self.tool_calls)

    def to_assistant_message(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.to_message_part() for call in self.tool_calls]
        return message
