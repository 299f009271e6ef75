"""Tracing helpers for chat turns."""

import json
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from ...schemas.chat import ChatCompletion, ToolCall
from ...schemas.trace import TraceEventType, TurnTrace


def _preview(text: Optional[str], limit: int = 100) -> Optional[str]:
    if text is None:
        return None
    return text[:limit] + "..." if len(text) > limit else text


@asynccontextmanager
async def trace_llm_call(trace: TurnTrace, round_no: int) -> AsyncIterator[Dict[str, ChatCompletion]]:
    """Time one completion request.

    Yields a dict; put the completion under ``"completion"`` so the event
    records what came back.
    """
    start_time = time.time()
    slot: Dict[str, ChatCompletion] = {}
    try:
        yield slot
    except Exception as e:
        trace.add_event(
            TraceEventType.TURN_FAILED,
            data={"round": round_no, "error": str(e)},
            duration_ms=(time.time() - start_time) * 1000,
        )
        raise

    completion = slot.get("completion")
    trace.add_event(
        TraceEventType.LLM_CALL,
        data={
            "round": round_no,
            "finish_reason": completion.finish_reason if completion else None,
            "tool_calls": [c.name for c in completion.tool_calls] if completion else [],
            "response_preview": _preview(completion.content) if completion else None,
        },
        duration_ms=(time.time() - start_time) * 1000,
    )


def trace_tool_result(trace: TurnTrace, call: ToolCall, payload: str, duration_ms: float) -> None:
    """Record a dispatched tool call, flagging payloads that carry an error."""
    failed = False
    try:
        decoded = json.loads(payload)
        failed = isinstance(decoded, dict) and bool(decoded.get("error"))
    except ValueError:
        pass

    trace.add_event(
        TraceEventType.TOOL_FAILED if failed else TraceEventType.TOOL_CALL,
        tool=call.name,
        call_id=call.id,
        data={"arguments": _preview(call.arguments), "result_preview": _preview(payload)},
        duration_ms=duration_ms,
    )


def format_trace_summary(trace: TurnTrace) -> str:
    lines = [
        f"Trace {trace.trace_id} ({_preview(trace.user_message, 50)})",
        f"  Duration: {trace.total_duration_ms:.0f}ms",
        f"  LLM calls: {trace.llm_calls}, tool rounds: {trace.tool_rounds}",
        f"  Tools: {trace.tools_dispatched} dispatched, {trace.tools_failed} failed",
        f"  Success: {trace.success}",
    ]
    for event in trace.events:
        if event.tool:
            lines.append(f"    - {event.event_type}: {event.tool} [{event.call_id}]")
    return "\n".join(lines)
