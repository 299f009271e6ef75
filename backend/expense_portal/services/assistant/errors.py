"""Turn-fatal failures of the chat assistant.

Anything raised from here is caught at the orchestrator boundary and turned
into an unsuccessful ``ChatResult``; it never reaches the HTTP client.
"""

from typing import Optional


class AssistantError(Exception):
    """Base class for failures that end a chat turn."""


class CredentialError(AssistantError):
    """No usable credential for the chat-completion endpoint."""


class ChatCompletionError(AssistantError):
    """Transport failure, error status, or unreadable response from the model endpoint."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ToolLoopExceeded(AssistantError):
    """The model kept asking for tools past the configured round cap."""

    def __init__(self, max_rounds: int):
        self.max_rounds = max_rounds
        super().__init__(
            f"Tool-call loop exceeded {max_rounds} rounds without a final answer"
        )
