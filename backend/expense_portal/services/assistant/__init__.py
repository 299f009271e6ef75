"""Chat assistant backed by a hosted chat-completion model.

Main entry point:
    ChatOrchestrator.converse(message, history) -> ChatResponse

Architecture:
    ChatOrchestrator
    ├── ChatCompletionClient (httpx) → hosted model
    └── ToolRegistry → ExpenseService → RecordStore
"""

from .errors import AssistantError, ChatCompletionError, CredentialError, ToolLoopExceeded
from .llm import (
    ApiKeyCredential,
    BearerTokenCredential,
    ChatCompletionClient,
    CredentialProvider,
    credential_from_settings,
)
from .orchestrator import ChatOrchestrator, APOLOGY_MESSAGE, DISABLED_MESSAGE
from .tools import ActorDefaults, ToolDefinition, ToolRegistry, build_tool_registry

__all__ = [
    "AssistantError",
    "ChatCompletionError",
    "CredentialError",
    "ToolLoopExceeded",
    "ApiKeyCredential",
    "BearerTokenCredential",
    "ChatCompletionClient",
    "CredentialProvider",
    "credential_from_settings",
    "ChatOrchestrator",
    "APOLOGY_MESSAGE",
    "DISABLED_MESSAGE",
    "ActorDefaults",
    "ToolDefinition",
    "ToolRegistry",
    "build_tool_registry",
]
