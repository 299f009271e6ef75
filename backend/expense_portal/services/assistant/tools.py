"""Functions the chat model may call, bound to the expense service.

The registry is built once at start-up and is read-only afterwards. Each tool
maps to exactly one ``ExpenseService`` operation.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Optional

from pydantic import BaseModel

from ...schemas.chat import ToolCall
from ..expenses import ExpenseService
from ..money import from_minor_units, to_minor_units

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class ToolArgumentError(ValueError):
    """Arguments from the model are missing or of the wrong type."""


@dataclass(frozen=True)
class ActorDefaults:
    """Who acts when the model leaves the user or reviewer out."""
    submitter_id: int = 1
    reviewer_id: int = 2


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    handler: ToolHandler = field(repr=False, compare=False)
    properties: Dict[str, Dict[str, str]] = field(default_factory=dict)
    required: tuple = ()

    @property
    def parameters(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": "object", "properties": dict(self.properties)}
        if self.required:
            schema["required"] = list(self.required)
        return schema

    def declaration(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    return value


def serialize_result(value: Any) -> str:
    return json.dumps(to_jsonable(value), default=str)


class ToolRegistry:
    def __init__(self, tools: Iterable[ToolDefinition]):
        ordered: Dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in ordered:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            ordered[tool.name] = tool
        self._tools = MappingProxyType(ordered)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def to_openai_tools(self) -> List[Dict[str, Any]]:
        return [tool.declaration() for tool in self._tools.values()]

    async def dispatch(self, call: ToolCall) -> str:
        """Run one tool call and return the JSON text handed back to the model.

        Failures of the call itself (unknown name, bad arguments, a handler
        blowing up) are reported as ``{"error": ...}`` so the turn continues.
        """
        tool = self._tools.get(call.name)
        if tool is None:
            logger.warning("[Tools] Unknown function requested: %s", call.name)
            return serialize_result({"error": f"Unknown function: {call.name}"})

        try:
            args = parse_arguments(call.arguments)
            missing = [name for name in tool.required if args.get(name) in (None, "")]
            if missing:
                raise ToolArgumentError(f"Missing required argument(s): {', '.join(missing)}")
            result = await tool.handler(args)
        except Exception as e:
            logger.warning("[Tools] %s failed: %s", call.name, e, exc_info=not isinstance(e, ValueError))
            return serialize_result({"error": str(e)})

        return serialize_result(result)


def parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    if raw is None or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ToolArgumentError(f"Arguments are not valid JSON: {e.msg}")
    if not isinstance(parsed, dict):
        raise ToolArgumentError("Arguments must be a JSON object")
    return parsed


def _int_arg(args: Dict[str, Any], name: str, default: Optional[int] = None) -> int:
    value = args.get(name)
    if value is None or value == "":
        if default is None:
            raise ToolArgumentError(f"Missing required argument: {name}")
        return default
    if isinstance(value, bool):
        raise ToolArgumentError(f"{name} must be an integer")
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        raise ToolArgumentError(f"{name} must be an integer, got {value!r}")
    if not as_float.is_integer():
        raise ToolArgumentError(f"{name} must be an integer, got {value!r}")
    return int(as_float)


def _date_arg(args: Dict[str, Any], name: str) -> date:
    value = args.get(name)
    try:
        # tolerate a trailing time part, e.g. 2024-01-10T00:00:00
        return date.fromisoformat(str(value)[:10])
    except (TypeError, ValueError):
        raise ToolArgumentError(f"{name} must be a date in YYYY-MM-DD format, got {value!r}")


def _str_arg(args: Dict[str, Any], name: str) -> Optional[str]:
    value = args.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _outcome(success: bool, error: Optional[str], **extra: Any) -> Dict[str, Any]:
    return {"success": success, "error": error, **extra}


def build_tool_registry(service: ExpenseService, defaults: ActorDefaults) -> ToolRegistry:
    """Declare every tool and bind it to ``service``."""

    async def get_expenses(args):
        expenses, error = await service.get_expenses(
            status=_str_arg(args, "statusFilter"),
            category=_str_arg(args, "categoryFilter"),
            user_id=_int_arg(args, "userId") if args.get("userId") not in (None, "") else None,
        )
        return _outcome(False, error) if error else expenses

    async def get_pending_expenses(args):
        expenses, error = await service.get_pending_expenses()
        return _outcome(False, error) if error else expenses

    async def get_expense(args):
        expense, error = await service.get_expense(_int_arg(args, "expenseId"))
        return _outcome(False, error) if error else expense

    async def get_expense_stats(args):
        stats, error = await service.get_stats()
        return _outcome(False, error) if error else stats

    async def create_expense(args):
        try:
            amount_minor = to_minor_units(args.get("amount"))
        except ValueError as e:
            raise ToolArgumentError(f"amount: {e}")
        expense_id, error = await service.create_expense(
            user_id=_int_arg(args, "userId", defaults.submitter_id),
            category_id=_int_arg(args, "categoryId"),
            amount=from_minor_units(amount_minor),
            expense_date=_date_arg(args, "expenseDate"),
            description=_str_arg(args, "description"),
        )
        if expense_id is None:
            return _outcome(False, error)
        return _outcome(True, None, expenseId=expense_id, amountMinor=amount_minor)

    async def submit_expense(args):
        expense_id = _int_arg(args, "expenseId")
        ok, error = await service.submit_expense(expense_id)
        return _outcome(ok, error, expenseId=expense_id)

    async def approve_expense(args):
        expense_id = _int_arg(args, "expenseId")
        reviewer_id = _int_arg(args, "reviewerId", defaults.reviewer_id)
        ok, error = await service.approve_expense(expense_id, reviewer_id)
        return _outcome(ok, error, expenseId=expense_id, reviewerId=reviewer_id)

    async def reject_expense(args):
        expense_id = _int_arg(args, "expenseId")
        reviewer_id = _int_arg(args, "reviewerId", defaults.reviewer_id)
        ok, error = await service.reject_expense(expense_id, reviewer_id)
        return _outcome(ok, error, expenseId=expense_id, reviewerId=reviewer_id)

    async def get_categories(args):
        categories, error = await service.get_categories()
        return _outcome(False, error) if error else categories

    async def get_statuses(args):
        statuses, error = await service.get_statuses()
        return _outcome(False, error) if error else statuses

    async def get_users(args):
        users, error = await service.get_users()
        return _outcome(False, error) if error else users

    expense_id_param = {"type": "integer", "description": "The ID of the expense"}
    reviewer_param = {
        "type": "integer",
        "description": "The ID of the manager reviewing; omit to use the configured default reviewer",
    }

    return ToolRegistry([
        ToolDefinition(
            name="get_expenses",
            description="Retrieves expenses from the database with optional filters",
            handler=get_expenses,
            properties={
                "statusFilter": {"type": "string", "description": "Filter by status: Draft, Submitted, Approved, Rejected"},
                "categoryFilter": {"type": "string", "description": "Filter by category: Travel, Meals, Supplies, Accommodation, Other"},
                "userId": {"type": "integer", "description": "Only expenses owned by this user"},
            },
        ),
        ToolDefinition(
            name="get_pending_expenses",
            description="Retrieves all expenses that are pending approval (Submitted status)",
            handler=get_pending_expenses,
        ),
        ToolDefinition(
            name="get_expense",
            description="Retrieves a single expense by its ID",
            handler=get_expense,
            properties={"expenseId": expense_id_param},
            required=("expenseId",),
        ),
        ToolDefinition(
            name="get_expense_stats",
            description="Retrieves expense statistics including total count, pending approvals, and approved amounts",
            handler=get_expense_stats,
        ),
        ToolDefinition(
            name="create_expense",
            description="Creates a new expense in Draft status",
            handler=create_expense,
            properties={
                "userId": {"type": "integer", "description": "The ID of the user the expense belongs to; omit to use the configured default submitter"},
                "categoryId": {"type": "integer", "description": "Category ID: 1=Travel, 2=Meals, 3=Supplies, 4=Accommodation, 5=Other"},
                "amount": {"type": "number", "description": "Amount in GBP (e.g., 25.50)"},
                "expenseDate": {"type": "string", "description": "Date in YYYY-MM-DD format"},
                "description": {"type": "string", "description": "Description of the expense"},
            },
            required=("categoryId", "amount", "expenseDate"),
        ),
        ToolDefinition(
            name="submit_expense",
            description="Submits a Draft expense for approval",
            handler=submit_expense,
            properties={"expenseId": expense_id_param},
            required=("expenseId",),
        ),
        ToolDefinition(
            name="approve_expense",
            description="Approves a submitted expense",
            handler=approve_expense,
            properties={"expenseId": expense_id_param, "reviewerId": reviewer_param},
            required=("expenseId",),
        ),
        ToolDefinition(
            name="reject_expense",
            description="Rejects a submitted expense",
            handler=reject_expense,
            properties={"expenseId": expense_id_param, "reviewerId": reviewer_param},
            required=("expenseId",),
        ),
        ToolDefinition(
            name="get_categories",
            description="Retrieves all active expense categories",
            handler=get_categories,
        ),
        ToolDefinition(
            name="get_statuses",
            description="Retrieves all expense statuses",
            handler=get_statuses,
        ),
        ToolDefinition(
            name="get_users",
            description="Retrieves all users in the system",
            handler=get_users,
        ),
    ])
