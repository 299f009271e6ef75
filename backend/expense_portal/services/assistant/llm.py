"""Client for a hosted (Azure OpenAI compatible) chat-completion endpoint."""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

import httpx

from ...config import Settings
from ...schemas.chat import ChatCompletion, ToolCall
from .errors import ChatCompletionError, CredentialError

logger = logging.getLogger(__name__)


@runtime_checkable
class CredentialProvider(Protocol):
    """Produces the auth headers for one request to the endpoint."""

    async def auth_headers(self) -> Dict[str, str]:
        ...


class ApiKeyCredential:
    def __init__(self, api_key: str):
        if not api_key:
            raise CredentialError("API key is empty")
        self._api_key = api_key

    async def auth_headers(self) -> Dict[str, str]:
        return {"api-key": self._api_key}


TokenSource = Union[str, Callable[[], Awaitable[str]]]


class BearerTokenCredential:
    """Bearer auth from a fixed token or an async token factory.

    A factory is resolved on every request so short-lived tokens
    (e.g. from a managed identity sidecar) are always fresh.
    """

    def __init__(self, token: TokenSource):
        self._token = token

    async def auth_headers(self) -> Dict[str, str]:
        token = self._token if isinstance(self._token, str) else await self._token()
        if not token:
            raise CredentialError("Token source returned an empty token")
        return {"Authorization": f"Bearer {token}"}


def credential_from_settings(settings: Settings) -> Optional[CredentialProvider]:
    if settings.openai_api_key:
        return ApiKeyCredential(settings.openai_api_key)
    if settings.openai_bearer_token:
        return BearerTokenCredential(settings.openai_bearer_token)
    return None


def parse_completion(data: Dict[str, Any]) -> ChatCompletion:
    """Read the first choice of a chat-completion response body."""
    try:
        choice = data["choices"][0]
        message = choice.get("message") or {}
        tool_calls = [
            ToolCall(
                id=call["id"],
                name=call["function"]["name"],
                arguments=call["function"].get("arguments") or "{}",
            )
            for call in message.get("tool_calls") or []
        ]
    except (KeyError, IndexError, TypeError) as e:
        raise ChatCompletionError(f"Malformed completion response: missing {e}")

    return ChatCompletion(
        finish_reason=choice.get("finish_reason"),
        content=message.get("content"),
        tool_calls=tool_calls,
    )


class ChatCompletionClient:
    def __init__(
        self,
        endpoint: str,
        deployment: str,
        credential: Optional[CredentialProvider],
        api_version: str = "2024-02-01",
        temperature: float = 0.7,
        max_tokens: int = 2000,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.deployment = deployment
        self.api_version = api_version
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._credential = credential
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        credential: Optional[CredentialProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ChatCompletionClient":
        return cls(
            endpoint=settings.openai_endpoint or "",
            deployment=settings.openai_deployment,
            credential=credential or credential_from_settings(settings),
            api_version=settings.openai_api_version,
            temperature=settings.chat_temperature,
            max_tokens=settings.chat_max_tokens,
            timeout=settings.chat_timeout_seconds,
            transport=transport,
        )

    @property
    def credential(self) -> Optional[CredentialProvider]:
        return self._credential

    @property
    def url(self) -> str:
        return f"{self.endpoint}/openai/deployments/{self.deployment}/chat/completions"

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatCompletion:
        """Send one completion request.

        Args:
            messages: Full message sequence, system prompt first
            tools: Function declarations; omitted on follow-up rounds

        Raises:
            CredentialError: no credential could be produced
            ChatCompletionError: transport failure, error status or bad body
        """
        if self._credential is None:
            raise CredentialError("No credential configured for the chat-completion endpoint")
        headers = await self._credential.auth_headers()

        payload: Dict[str, Any] = {
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        logger.debug("[LLM] POST %s (%d messages, %d tools)", self.url, len(messages), len(tools or []))

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    params={"api-version": self.api_version},
                    headers=headers,
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            try:
                detail = e.response.json().get("error", {}).get("message", "")
            except (ValueError, AttributeError):
                detail = e.response.text[:200] if e.response.text else ""
            logger.error("[LLM] HTTP error: %s - %s", e.response.status_code, detail)
            raise ChatCompletionError(
                f"API error: {e.response.status_code} - {detail}",
                status_code=e.response.status_code,
            )
        except httpx.HTTPError as e:
            logger.error("[LLM] Transport error: %s", e)
            raise ChatCompletionError(f"Error calling chat endpoint: {e!r}")
        except ValueError as e:
            raise ChatCompletionError(f"Completion response is not JSON: {e}")

        return parse_completion(data)
