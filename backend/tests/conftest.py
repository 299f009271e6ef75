from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from expense_portal.config import Settings
from expense_portal.database import create_engine_for, create_session_factory, init_db
from expense_portal.main import create_app
from expense_portal.schemas.chat import ChatCompletion, ToolCall
from expense_portal.services import ExpenseService, RecordStore
from expense_portal.services.assistant import ActorDefaults, build_tool_registry

MEMORY_DB = "sqlite+aiosqlite:///:memory:"


@pytest.fixture()
async def store():
    """A RecordStore over a fresh, seeded in-memory database."""
    engine = create_engine_for(MEMORY_DB)
    await init_db(engine)
    yield RecordStore(create_session_factory(engine))
    await engine.dispose()


@pytest.fixture()
def service(store) -> ExpenseService:
    return ExpenseService(store)


@pytest.fixture()
def registry(service):
    return build_tool_registry(service, ActorDefaults(submitter_id=1, reviewer_id=2))


async def add_expense(
    service: ExpenseService,
    category_id: int = 1,
    amount: str = "25.50",
    expense_date: date = date(2024, 1, 10),
    description: Optional[str] = "Train to Leeds",
    user_id: int = 1,
) -> int:
    expense_id, error = await service.create_expense(
        user_id=user_id,
        category_id=category_id,
        amount=Decimal(amount),
        expense_date=expense_date,
        description=description,
    )
    assert error is None
    return expense_id


def broken_store(message: str = "connection refused") -> RecordStore:
    """A RecordStore whose every operation fails as if the database were unreachable."""

    def session_factory():
        raise OSError(message)

    return RecordStore(session_factory)


class ScriptedClient:
    """Stands in for the hosted model: replays canned completions in order.

    When the script runs out the last completion is repeated.
    """

    def __init__(self, *completions: ChatCompletion, error: Optional[Exception] = None):
        self.completions = list(completions)
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, messages, tools=None) -> ChatCompletion:
        self.calls.append({"messages": [dict(m) for m in messages], "tools": tools})
        if self.error is not None:
            raise self.error
        index = min(len(self.calls) - 1, len(self.completions) - 1)
        return self.completions[index]


def tool_round(*calls: tuple) -> ChatCompletion:
    """A completion asking for tools: each call is (id, name, arguments dict or raw str)."""
    return ChatCompletion(
        finish_reason="tool_calls",
        content=None,
        tool_calls=[
            ToolCall(id=call_id, name=name, arguments=args if isinstance(args, str) else json.dumps(args))
            for call_id, name, args in calls
        ],
    )


def answer(text: str) -> ChatCompletion:
    return ChatCompletion(finish_reason="stop", content=text)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        database_url=MEMORY_DB,
        degraded_mode=False,
        log_level="WARNING",
    )


@pytest.fixture()
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client
