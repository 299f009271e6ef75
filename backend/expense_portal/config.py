import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

SQLITE_FALLBACK_URL = "sqlite+aiosqlite:///./expenses.db"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _database_url_from_env() -> str:
    """Build the async database URL.

    An explicit DATABASE_URL wins. Otherwise the Postgres pieces
    (DB_USER, DB_PASS, PG_HOST, DB_NAME) are assembled for asyncpg, and a
    local SQLite file is used when none of them are set.
    """
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit

    db_user = os.getenv("DB_USER")
    db_pass = os.getenv("DB_PASS")
    db_host = os.getenv("PG_HOST")
    db_name = os.getenv("DB_NAME")
    if db_user and db_host and db_name:
        return f"postgresql+asyncpg://{db_user}:{db_pass or ''}@{db_host}/{db_name}"

    return SQLITE_FALLBACK_URL


@dataclass
class Settings:
    """Runtime configuration for the expense portal."""

    app_name: str = "Expense Management API"
    version: str = "1.0.0"

    database_url: str = SQLITE_FALLBACK_URL
    seed_reference_data: bool = True

    # Hosted chat-completion endpoint. No endpoint means the assistant is off.
    openai_endpoint: Optional[str] = None
    openai_deployment: str = "gpt-4o"
    openai_api_version: str = "2024-02-01"
    openai_api_key: Optional[str] = None
    openai_bearer_token: Optional[str] = None

    chat_temperature: float = 0.7
    chat_max_tokens: int = 2000
    chat_max_tool_rounds: int = 10
    chat_timeout_seconds: float = 30.0

    # Actors applied when a tool call leaves them out
    default_submitter_id: int = 1
    default_reviewer_id: int = 2
    default_currency: str = "GBP"

    degraded_mode: bool = True

    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"]
    )
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def chat_enabled(self) -> bool:
        return bool(self.openai_endpoint)

    @classmethod
    def from_env(cls) -> "Settings":
        cors = os.getenv("CORS_ORIGINS")
        return cls(
            database_url=_database_url_from_env(),
            seed_reference_data=_env_bool("SEED_REFERENCE_DATA", True),
            openai_endpoint=os.getenv("OPENAI_ENDPOINT") or None,
            openai_deployment=os.getenv("OPENAI_DEPLOYMENT_NAME") or "gpt-4o",
            openai_api_version=os.getenv("OPENAI_API_VERSION") or "2024-02-01",
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_bearer_token=os.getenv("OPENAI_BEARER_TOKEN") or None,
            chat_temperature=_env_float("CHAT_TEMPERATURE", 0.7),
            chat_max_tokens=_env_int("CHAT_MAX_TOKENS", 2000),
            chat_max_tool_rounds=_env_int("CHAT_MAX_TOOL_ROUNDS", 10),
            chat_timeout_seconds=_env_float("CHAT_TIMEOUT_SECONDS", 30.0),
            default_submitter_id=_env_int("DEFAULT_SUBMITTER_ID", 1),
            default_reviewer_id=_env_int("DEFAULT_REVIEWER_ID", 2),
            default_currency=os.getenv("DEFAULT_CURRENCY") or "GBP",
            degraded_mode=_env_bool("DEGRADED_MODE", True),
            cors_origins=[o.strip() for o in cors.split(",") if o.strip()] if cors else
            ["http://localhost:5173", "http://localhost:3000"],
            log_level=os.getenv("LOG_LEVEL") or "INFO",
            log_json=_env_bool("LOG_JSON", False),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
