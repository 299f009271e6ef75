"""ASGI entry point: ``uvicorn expense_portal.asgi:app``."""

from .config import get_settings
from .logging_config import configure_logging
from .main import create_app

settings = get_settings()
configure_logging(settings.log_level, json_output=settings.log_json)

app = create_app(settings)
