"""Chat orchestrator: the tool-calling conversation loop.

One ``converse`` call is one turn:
1. Build the message sequence (system prompt, caller history, new message)
2. Ask the model, offering every registered tool
3. While the model asks for tools, run them and send the results back
4. Return the model's final answer

The orchestrator keeps no state between turns; history is supplied by the
caller each time.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ...database import INITIAL_CATEGORIES, INITIAL_STATUSES, INITIAL_USERS, INITIAL_ROLES
from ...schemas.chat import ChatCompletion, ChatResponse, ChatTurn
from ...schemas.trace import TurnTrace
from .errors import AssistantError, ToolLoopExceeded
from .tools import ToolRegistry
from .tracing import format_trace_summary, trace_llm_call, trace_tool_result

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ROUNDS = 10

DISABLED_MESSAGE = (
    "🤖 **AI Chat is not configured.**\n\n"
    "No hosted model endpoint was configured for this application.\n\n"
    "To enable AI-powered chat features:\n"
    "1. Set `OPENAI_ENDPOINT` (and `OPENAI_DEPLOYMENT_NAME` if not `gpt-4o`)\n"
    "2. Provide `OPENAI_API_KEY` or `OPENAI_BEARER_TOKEN`\n"
    "3. Restart the service; the chat will then be able to help you work with expenses in natural language\n\n"
    "In the meantime, you can use the regular API to manage expenses."
)

APOLOGY_MESSAGE = "Sorry, I encountered an error processing your request."
EMPTY_ANSWER_MESSAGE = "I couldn't generate a response."


class CompletionClient(Protocol):
    async def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatCompletion:
        ...


def build_system_prompt() -> str:
    categories = ", ".join(c["name"] for c in INITIAL_CATEGORIES)
    statuses = ", ".join(s["name"] for s in INITIAL_STATUSES)
    roles = {r["id"]: r["name"] for r in INITIAL_ROLES}
    users = "\n".join(
        f"- {u['name']} (ID: {u['id']}) - {roles[u['role_id']]}" for u in INITIAL_USERS
    )
    return f"""You are an AI assistant for the Expense Management System. You help users manage their expenses by:

1. Viewing expenses (all, filtered by status or category, or pending approvals)
2. Creating new expenses and submitting them for approval
3. Approving or rejecting submitted expenses
4. Getting expense statistics

When showing lists of expenses, format them in a clear, readable way with:
- Date
- Category
- Amount (in £GBP)
- Status
- Description

Available categories: {categories}
Available statuses: {statuses}
Expenses move Draft -> Submitted -> Approved or Rejected. Approved and Rejected are final.

Users in the system:
{users}

If the user does not say who an expense belongs to, or who is reviewing it, leave userId or reviewerId out and the system default will be applied.
If a function returns an error, explain it to the user plainly.

Be helpful and concise in your responses. Format currency as £XX.XX."""


class ChatOrchestrator:
    def __init__(
        self,
        client: Optional[CompletionClient],
        registry: ToolRegistry,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        system_prompt: Optional[str] = None,
    ):
        if max_tool_rounds < 1:
            raise ValueError("max_tool_rounds must be at least 1")
        self.client = client
        self.registry = registry
        self.max_tool_rounds = max_tool_rounds
        self.system_prompt = system_prompt or build_system_prompt()

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def build_messages(self, message: str, history: Sequence[ChatTurn]) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": self.system_prompt}]
        for turn in history:
            if turn.role in ("user", "assistant"):
                messages.append({"role": turn.role, "content": turn.content})
        messages.append({"role": "user", "content": message})
        return messages

    async def converse(self, message: str, history: Sequence[ChatTurn] = ()) -> ChatResponse:
        """Run one chat turn. Never raises; failures come back with ``success=False``."""
        if self.client is None:
            return ChatResponse(response=DISABLED_MESSAGE, success=True)

        trace = TurnTrace(user_message=message, history_length=len(history))
        try:
            answer = await self._run_loop(self.build_messages(message, history), trace)
            result = ChatResponse(response=answer, success=True)
        except AssistantError as e:
            logger.error("[Chat] Turn failed: %s (trace %s)", e, trace.trace_id)
            result = ChatResponse(response=APOLOGY_MESSAGE, success=False, error=str(e))
        except Exception as e:
            logger.exception("[Chat] Unexpected error in chat turn (trace %s)", trace.trace_id)
            result = ChatResponse(response=APOLOGY_MESSAGE, success=False, error=str(e) or repr(e))

        trace.finalize(response=result.error or result.response, success=result.success)
        logger.debug(format_trace_summary(trace))
        return result

    async def _run_loop(self, messages: List[Dict[str, Any]], trace: TurnTrace) -> str:
        async with trace_llm_call(trace, round_no=0) as slot:
            completion = await self.client.complete(messages, tools=self.registry.to_openai_tools())
            slot["completion"] = completion

        rounds = 0
        while completion.wants_tools:
            if rounds >= self.max_tool_rounds:
                raise ToolLoopExceeded(self.max_tool_rounds)
            rounds += 1
            trace.tool_rounds = rounds

            messages.append(completion.to_assistant_message())
            for call in completion.tool_calls:
                started = time.time()
                payload = await self.registry.dispatch(call)
                trace_tool_result(trace, call, payload, (time.time() - started) * 1000)
                messages.append({"role": "tool", "tool_call_id": call.id, "content": payload})

            async with trace_llm_call(trace, round_no=rounds) as slot:
                completion = await self.client.complete(messages)
                slot["completion"] = completion

        return completion.content or EMPTY_ANSWER_MESSAGE
