import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import errors
from .config import Settings, get_settings
from .database import create_engine_for, create_session_factory, init_db
from .logging_config import request_context_middleware
from .routers import chat, expenses, users
from .services import DegradedModeProvider, ExpenseService, RecordStore
from .services.assistant import (
    ActorDefaults,
    ChatCompletionClient,
    ChatOrchestrator,
    CredentialProvider,
    build_tool_registry,
)
from .services.assistant.orchestrator import CompletionClient

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    completion_client: Optional[CompletionClient] = None,
    credential: Optional[CredentialProvider] = None,
) -> FastAPI:
    """Application factory.

    Tests pass their own ``Settings`` (e.g. an in-memory database) and, for
    the assistant, a ``completion_client`` standing in for the hosted model.
    Hosts whose tokens expire (managed identity) pass a ``credential`` such as
    ``BearerTokenCredential(fetch_token)``; it takes precedence over
    ``OPENAI_API_KEY`` and ``OPENAI_BEARER_TOKEN``.

    Logging is left to the host; ``asgi.py`` calls ``configure_logging``.
    """
    settings = settings or get_settings()

    engine = create_engine_for(settings.database_url)
    store = RecordStore(create_session_factory(engine))
    service = ExpenseService(store, currency=settings.default_currency)

    if completion_client is None and settings.chat_enabled:
        completion_client = ChatCompletionClient.from_settings(settings, credential=credential)
    registry = build_tool_registry(
        service,
        ActorDefaults(
            submitter_id=settings.default_submitter_id,
            reviewer_id=settings.default_reviewer_id,
        ),
    )
    orchestrator = ChatOrchestrator(
        completion_client, registry, max_tool_rounds=settings.chat_max_tool_rounds
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Server starting, checking tables")
        await init_db(engine, seed=settings.seed_reference_data)
        if not orchestrator.enabled:
            logger.info("OPENAI_ENDPOINT not set, chat assistant disabled")
        yield
        await engine.dispose()
        logger.info("Server shut down")

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

    app.state.settings = settings
    app.state.engine = engine
    app.state.expense_service = service
    app.state.degraded_provider = (
        DegradedModeProvider(currency=settings.default_currency) if settings.degraded_mode else None
    )
    app.state.orchestrator = orchestrator

    app.middleware("http")(request_context_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Error-Message", "X-Request-Id"],
    )

    app.add_exception_handler(StarletteHTTPException, errors.http_error_handler)
    app.add_exception_handler(RequestValidationError, errors.validation_error_handler)
    app.add_exception_handler(errors.ExpenseActionFailed, errors.expense_action_failed_handler)
    app.add_exception_handler(Exception, errors.server_error_handler)

    app.include_router(expenses.router)
    app.include_router(users.router)
    app.include_router(chat.router)

    @app.get("/")
    def read_root():
        return {"message": settings.app_name, "version": settings.version}

    @app.get("/health")
    def health():
        return {"status": "ok", "chat_enabled": orchestrator.enabled}

    return app
