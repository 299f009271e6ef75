from .chat import ChatTurn, ChatRequest, ChatResponse, ToolCall, ChatCompletion
from .expenses import (
    ExpenseOut,
    ExpenseCreate,
    ExpenseUpdate,
    ExpenseCreated,
    ExpenseStats,
    ApiError,
)
from .reference import CategoryOut, StatusOut, RoleOut, UserOut
from .trace import TraceEventType, TraceEvent, TurnTrace
