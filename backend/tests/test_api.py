from __future__ import annotations

import logging

from fastapi.testclient import TestClient

from expense_portal.config import Settings
from expense_portal.main import create_app
from expense_portal.services import ExpenseService
from expense_portal.services.assistant import (
    DISABLED_MESSAGE,
    BearerTokenCredential,
    ChatCompletionClient,
)

from tests.conftest import MEMORY_DB, ScriptedClient, answer, broken_store, tool_round

TRAIN_TICKET = {
    "category_id": 1,
    "amount": "25.50",
    "expense_date": "2024-01-10",
    "description": "Train to Leeds",
}


def _create(client, body=None) -> int:
    response = client.post("/api/expenses", json=body or TRAIN_TICKET)
    assert response.status_code == 201, response.text
    return response.json()["expenseId"]


def test_root_and_health(client):
    assert client.get("/").json()["version"] == "1.0.0"
    assert client.get("/health").json() == {"status": "ok", "chat_enabled": False}


def test_request_id_header(client):
    response = client.get("/health", headers={"X-Request-Id": "abc123"})
    assert response.headers["X-Request-Id"] == "abc123"


def test_create_submit_approve(client):
    response = client.post("/api/expenses", json=TRAIN_TICKET)
    assert response.status_code == 201
    expense_id = response.json()["expenseId"]
    assert response.headers["Location"] == f"/api/expenses/{expense_id}"

    expense = client.get(f"/api/expenses/{expense_id}").json()
    assert expense["status_name"] == "Draft"
    assert expense["amount_minor"] == 2550
    assert expense["user_id"] == 1

    assert client.post(f"/api/expenses/{expense_id}/submit").status_code == 204
    pending = client.get("/api/expenses/pending").json()
    assert [e["id"] for e in pending] == [expense_id]

    assert client.post(f"/api/expenses/{expense_id}/approve", params={"reviewerId": 2}).status_code == 204

    expense = client.get(f"/api/expenses/{expense_id}").json()
    assert expense["status_name"] == "Approved"
    assert expense["reviewed_by"] == 2
    assert expense["reviewed_at"] is not None

    stats = client.get("/api/expenses/stats").json()
    assert stats["approved_count"] == 1
    assert stats["total_approved_amount_minor"] == 2550
    assert stats["pending_approvals"] == 0


def test_reject_uses_configured_reviewer(client):
    expense_id = _create(client)
    client.post(f"/api/expenses/{expense_id}/submit")
    assert client.post(f"/api/expenses/{expense_id}/reject").status_code == 204

    expense = client.get(f"/api/expenses/{expense_id}").json()
    assert expense["status_name"] == "Rejected"
    assert expense["reviewed_by"] == 2


def test_refused_transition_is_400(client):
    expense_id = _create(client)
    response = client.post(f"/api/expenses/{expense_id}/approve")
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Failed to approve expense"
    assert "only Submitted expenses" in body["details"]


def test_list_filters(client):
    travel = _create(client)
    meals = _create(client, {**TRAIN_TICKET, "category_id": 2})
    client.post(f"/api/expenses/{meals}/submit")

    assert [e["id"] for e in client.get("/api/expenses", params={"status": "Submitted"}).json()] == [meals]
    assert [e["id"] for e in client.get("/api/expenses", params={"category": "Travel"}).json()] == [travel]
    assert len(client.get("/api/expenses", params={"userId": 1}).json()) == 2
    assert client.get("/api/expenses", params={"userId": 2}).json() == []


def test_update_and_delete(client):
    expense_id = _create(client)
    response = client.put(
        f"/api/expenses/{expense_id}",
        json={"category_id": 4, "amount": "120.00", "expense_date": "2024-01-11", "description": "Hotel"},
    )
    assert response.status_code == 204

    expense = client.get(f"/api/expenses/{expense_id}").json()
    assert expense["category_name"] == "Accommodation"
    assert expense["amount"] == 120.0

    assert client.delete(f"/api/expenses/{expense_id}").status_code == 204
    assert client.get(f"/api/expenses/{expense_id}").status_code == 404
    response = client.delete(f"/api/expenses/{expense_id}")
    assert response.status_code == 400
    assert response.json()["message"] == "Failed to delete expense"


def test_unknown_expense_is_404(client):
    response = client.get("/api/expenses/999")
    assert response.status_code == 404
    assert response.json() == {"error": "not_found", "detail": "Expense not found"}


def test_validation_error(client):
    response = client.post("/api/expenses", json={**TRAIN_TICKET, "amount": "-5"})
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"
    assert response.json()["detail"][0]["loc"] == ["body", "amount"]


def test_amount_with_too_many_decimals_is_422(client):
    response = client.post("/api/expenses", json={**TRAIN_TICKET, "amount": "1.234"})
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


def test_update_with_negative_amount_is_422(client):
    expense_id = _create(client)
    response = client.put(
        f"/api/expenses/{expense_id}",
        json={"category_id": 1, "amount": "-1", "expense_date": "2024-01-10"},
    )
    assert response.status_code == 422


def test_unknown_category_is_400(client):
    response = client.post("/api/expenses", json={**TRAIN_TICKET, "category_id": 42})
    assert response.status_code == 400
    assert response.json() == {"message": "Failed to create expense", "details": "Category 42 not found"}


def test_reference_endpoints(client):
    assert len(client.get("/api/expenses/categories").json()) == 5
    assert client.get("/api/expenses/statuses").json()[0]["name"] == "Draft"
    assert len(client.get("/api/users").json()) == 2
    assert client.get("/api/users/2").json()["role_name"] == "Manager"
    assert client.get("/api/users/99").status_code == 404
    assert {r["name"] for r in client.get("/api/roles").json()} == {"Employee", "Manager"}


def test_chat_disabled(client):
    response = client.post("/api/chat", json={"message": "hello"})
    assert response.status_code == 200
    assert response.json() == {"response": DISABLED_MESSAGE, "success": True}


def test_chat_empty_message_is_422(client):
    assert client.post("/api/chat", json={"message": ""}).status_code == 422


def test_chat_blank_message_is_422(settings):
    model = ScriptedClient(answer("unused"))
    with TestClient(create_app(settings, completion_client=model)) as client:
        response = client.post("/api/chat", json={"message": "   \n\t"})
    assert response.status_code == 422
    assert model.calls == []


def test_chat_with_model(settings):
    model = ScriptedClient(
        tool_round(("c1", "create_expense", {"categoryId": 2, "amount": 12, "expenseDate": "2024-02-01"})),
        answer("Created expense 1 for £12.00."),
    )
    with TestClient(create_app(settings, completion_client=model)) as client:
        response = client.post(
            "/api/chat",
            json={
                "message": "log a £12 lunch on 1 Feb",
                "history": [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "Hello!"}],
            },
        )
        assert response.status_code == 200
        assert response.json() == {"response": "Created expense 1 for £12.00.", "success": True}

        expenses = client.get("/api/expenses").json()
        assert [(e["category_name"], e["amount_minor"], e["user_id"]) for e in expenses] == [("Meals", 1200, 1)]
        assert client.get("/health").json()["chat_enabled"] is True


def test_chat_failure_is_reported_in_body(settings):
    model = ScriptedClient(tool_round(("c1", "get_statuses", {})))
    settings.chat_max_tool_rounds = 2
    with TestClient(create_app(settings, completion_client=model)) as client:
        body = client.post("/api/chat", json={"message": "loop"}).json()
    assert body["success"] is False
    assert body["response"] == "Sorry, I encountered an error processing your request."
    assert "2 rounds" in body["error"]


def test_degraded_mode_serves_placeholders():
    settings = Settings(database_url=MEMORY_DB, degraded_mode=True, log_level="WARNING")
    app = create_app(settings)
    with TestClient(app) as client:
        app.state.expense_service = ExpenseService(broken_store())

        response = client.get("/api/expenses")
        assert response.status_code == 200
        assert [e["id"] for e in response.json()] == [1, 2, 3, 4]
        assert "connection refused" in response.headers["X-Error-Message"]

        pending = client.get("/api/expenses/pending").json()
        assert {e["status_name"] for e in pending} == {"Submitted"}

        stats = client.get("/api/expenses/stats")
        assert stats.json()["total_expenses"] == 10
        assert "X-Error-Message" in stats.headers

        assert len(client.get("/api/users").json()) == 2


def test_without_degraded_mode_errors_give_empty_collections(client):
    client.app.state.expense_service = ExpenseService(broken_store())

    response = client.get("/api/expenses")
    assert response.json() == []
    assert "connection refused" in response.headers["X-Error-Message"]

    assert client.get("/api/expenses/stats").json()["total_expenses"] == 0
    assert client.post("/api/expenses", json=TRAIN_TICKET).status_code == 400


def test_injected_credential_is_used_by_the_chat_client(settings):
    async def fetch_token():
        return "short-lived-token"

    credential = BearerTokenCredential(fetch_token)
    settings.openai_endpoint = "https://resource.openai.azure.com"
    settings.openai_api_key = "static-key"
    app = create_app(settings, credential=credential)

    chat_client = app.state.orchestrator.client
    assert isinstance(chat_client, ChatCompletionClient)
    assert chat_client.credential is credential


def test_create_app_leaves_logging_handlers_alone(settings):
    root = logging.getLogger()
    handler = logging.NullHandler()
    root.addHandler(handler)
    try:
        create_app(settings)
        assert handler in root.handlers
    finally:
        root.removeHandler(handler)
