from __future__ import annotations

import json

import httpx
import pytest

from expense_portal.config import Settings
from expense_portal.services.assistant import (
    ApiKeyCredential,
    BearerTokenCredential,
    ChatCompletionClient,
    ChatCompletionError,
    CredentialError,
    credential_from_settings,
)

ENDPOINT = "https://example-openai.test/"


def _completion_body(message, finish_reason="stop"):
    return {"choices": [{"index": 0, "finish_reason": finish_reason, "message": message}]}


def _client(handler, credential=None, **kwargs):
    return ChatCompletionClient(
        endpoint=ENDPOINT,
        deployment="gpt-4o",
        credential=credential or ApiKeyCredential("secret-key"),
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


async def test_request_wire_format():
    seen = {}

    def handler(request: httpx.Request):
        seen["request"] = request
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion_body({"role": "assistant", "content": "Hello"}))

    tools = [{"type": "function", "function": {"name": "get_users", "description": "", "parameters": {}}}]
    completion = await _client(handler, temperature=0.2, max_tokens=50).complete(
        [{"role": "user", "content": "hi"}], tools=tools
    )

    request = seen["request"]
    assert request.method == "POST"
    assert request.url.path == "/openai/deployments/gpt-4o/chat/completions"
    assert request.url.params["api-version"] == "2024-02-01"
    assert request.headers["api-key"] == "secret-key"

    body = seen["body"]
    assert body["messages"] == [{"role": "user", "content": "hi"}]
    assert body["temperature"] == 0.2
    assert body["max_tokens"] == 50
    assert body["tools"] == tools
    assert body["tool_choice"] == "auto"

    assert completion.content == "Hello"
    assert completion.finish_reason == "stop"
    assert not completion.wants_tools


async def test_follow_up_request_has_no_tools():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=_completion_body({"role": "assistant", "content": "ok"}))

    await _client(handler).complete([{"role": "user", "content": "hi"}])
    assert "tools" not in bodies[0]
    assert "tool_choice" not in bodies[0]


async def test_tool_calls_are_parsed():
    def handler(request):
        return httpx.Response(200, json=_completion_body(
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {
                        "id": "call_abc",
                        "type": "function",
                        "function": {"name": "get_expense", "arguments": "{\"expenseId\": 4}"},
                    }
                ],
            },
            finish_reason="tool_calls",
        ))

    completion = await _client(handler).complete([{"role": "user", "content": "show 4"}])
    assert completion.wants_tools
    assert completion.tool_calls[0].id == "call_abc"
    assert completion.tool_calls[0].name == "get_expense"
    assert json.loads(completion.tool_calls[0].arguments) == {"expenseId": 4}

    message = completion.to_assistant_message()
    assert message["role"] == "assistant"
    assert message["tool_calls"][0]["function"]["name"] == "get_expense"


async def test_error_status_is_reported_with_provider_message():
    def handler(request):
        return httpx.Response(401, json={"error": {"code": "401", "message": "Access denied"}})

    with pytest.raises(ChatCompletionError) as excinfo:
        await _client(handler).complete([{"role": "user", "content": "hi"}])
    assert excinfo.value.status_code == 401
    assert "401" in str(excinfo.value)
    assert "Access denied" in str(excinfo.value)


async def test_transport_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ChatCompletionError, match="Error calling chat endpoint"):
        await _client(handler).complete([{"role": "user", "content": "hi"}])


async def test_malformed_body():
    def handler(request):
        return httpx.Response(200, json={"choices": []})

    with pytest.raises(ChatCompletionError, match="Malformed"):
        await _client(handler).complete([{"role": "user", "content": "hi"}])


async def test_missing_credential():
    def handler(request):  # pragma: no cover - never reached
        return httpx.Response(200, json={})

    client = ChatCompletionClient(
        endpoint=ENDPOINT, deployment="gpt-4o", credential=None, transport=httpx.MockTransport(handler)
    )
    with pytest.raises(CredentialError):
        await client.complete([{"role": "user", "content": "hi"}])


async def test_bearer_token_factory_is_called_per_request():
    tokens = iter(["first", "second"])
    auth = []

    async def fetch_token():
        return next(tokens)

    def handler(request):
        auth.append(request.headers["Authorization"])
        return httpx.Response(200, json=_completion_body({"role": "assistant", "content": "ok"}))

    client = _client(handler, credential=BearerTokenCredential(fetch_token))
    await client.complete([{"role": "user", "content": "a"}])
    await client.complete([{"role": "user", "content": "b"}])
    assert auth == ["Bearer first", "Bearer second"]


async def test_empty_bearer_token_is_a_credential_error():
    with pytest.raises(CredentialError):
        await BearerTokenCredential("").auth_headers()


def test_credential_from_settings():
    assert credential_from_settings(Settings()) is None
    assert isinstance(credential_from_settings(Settings(openai_api_key="k")), ApiKeyCredential)
    assert isinstance(
        credential_from_settings(Settings(openai_bearer_token="t")), BearerTokenCredential
    )


def test_from_settings():
    settings = Settings(
        openai_endpoint="https://resource.openai.azure.com",
        openai_deployment="gpt-4o-mini",
        openai_api_key="k",
        chat_max_tokens=123,
    )
    client = ChatCompletionClient.from_settings(settings)
    assert client.url == "https://resource.openai.azure.com/openai/deployments/gpt-4o-mini/chat/completions"
    assert client.max_tokens == 123
