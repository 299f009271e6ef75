"""FastAPI dependencies resolving the services built in ``create_app``."""

from typing import Optional

from fastapi import Request

from .config import Settings
from .services import DegradedModeProvider, ExpenseService
from .services.assistant import ChatOrchestrator


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_expense_service(request: Request) -> ExpenseService:
    return request.app.state.expense_service


def get_degraded_provider(request: Request) -> Optional[DegradedModeProvider]:
    """The placeholder provider, or None when degraded mode is switched off."""
    return request.app.state.degraded_provider


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.orchestrator
