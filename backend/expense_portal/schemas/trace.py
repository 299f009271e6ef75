"""Per-turn trace of the chat assistant, for debugging and observability."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field


class TraceEventType(str, Enum):
    """Types of events recorded during a chat turn."""
    LLM_CALL = "llm_call"
    TOOL_CALL = "tool_call"
    TOOL_FAILED = "tool_failed"
    TURN_FAILED = "turn_failed"


class TraceEvent(BaseModel):
    timestamp: datetime = Field(default_factory=datetime.now)
    event_type: TraceEventType
    tool: Optional[str] = None
    call_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    duration_ms: Optional[float] = None

    model_config = ConfigDict(use_enum_values=True)


class TurnTrace(BaseModel):
    """Everything that happened during one ``converse`` call."""
    trace_id: str = Field(default_factory=lambda: str(uuid.uuid4())[:12])
    user_message: str
    history_length: int = 0
    events: List[TraceEvent] = Field(default_factory=list)
    llm_calls: int = 0
    tool_rounds: int = 0
    tools_dispatched: int = 0
    tools_failed: int = 0
    total_duration_ms: float = 0
    final_response: Optional[str] = None
    success: bool = False
    started_at: datetime = Field(default_factory=datetime.now)

    def add_event(
        self,
        event_type: TraceEventType,
        tool: Optional[str] = None,
        call_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
    ) -> None:
        self.events.append(TraceEvent(
            event_type=event_type,
            tool=tool,
            call_id=call_id,
            data=data or {},
            duration_ms=duration_ms,
        ))

        if event_type == TraceEventType.LLM_CALL:
            self.llm_calls += 1
        elif event_type == TraceEventType.TOOL_CALL:
            self.tools_dispatched += 1
        elif event_type == TraceEventType.TOOL_FAILED:
            self.tools_dispatched += 1
            self.tools_failed += 1

    def finalize(self, response: Optional[str] = None, success: bool = False) -> None:
        self.final_response = response
        self.success = success
        self.total_duration_ms = (datetime.now() - self.started_at).total_seconds() * 1000
