"""
Tests for the stable /api/v1 contract and the /internal assistant endpoints
"""
from datetime import date
from unittest.mock import patch

import pytest

from app.api.deps import get_advisor_client
from app.application.advisor import AdvisorClient, RetryPolicy
from app.config import Settings


@pytest.fixture
def month():
    today = date.today()
    return today.year, today.month


@pytest.fixture
def seeded(client, month):
    year, m = month
    for action_id, name, amount, essential in (("seed-1", "Rent", 1000, True), ("seed-2", "Streaming", 15, False)):
        response = client.post("/api/v1/actions", json={
            "action_id": action_id,
            "type": "CREATE_TEMPLATE",
            "name": name,
            "amount_default": amount,
            "due_day": 28,
            "essential": essential,
            "year": year,
            "month": m,
        })
        assert response.status_code == 200
    return client


def test_summary_envelope(seeded, month):
    year, m = month
    body = seeded.get(f"/api/v1/summary?year={year}&month={m}").json()

    assert body["app"] == "au-jour-le-jour"
    assert body["schema_version"] == "2"
    assert "generated_at" in body
    assert body["period"] == f"{year}-{m:02d}"
    assert body["required_month"] == 1015.0
    assert body["future_reserved"] == 0.0

    essentials = seeded.get(f"/api/v1/summary?year={year}&month={m}&essentials_only=1").json()
    assert essentials["required_month"] == 1000.0
    assert essentials["filters"] == {"essentials_only": True}


def test_summary_requires_month(client):
    assert client.get("/api/v1/summary").status_code == 400


def test_month_items(seeded, month):
    year, m = month
    items = seeded.get(f"/api/v1/month?year={year}&month={m}").json()["items"]
    assert {i["name"] for i in items} == {"Rent", "Streaming"}
    assert all(i["status"] == "pending" for i in items)


def test_templates_and_funds(seeded):
    assert len(seeded.get("/api/v1/templates").json()["templates"]) == 2
    assert seeded.get("/api/v1/sinking-funds").json()["funds"] == []
    assert seeded.get("/api/v1/sinking-events").status_code == 400


def test_action_replay(seeded, month):
    year, m = month
    item = seeded.get(f"/api/v1/month?year={year}&month={m}").json()["items"][0]
    body = {"action_id": "pay-rent", "type": "MARK_PAID", "instance_id": item["instance_id"]}

    first = seeded.post("/api/v1/actions", json=body)
    second = seeded.post("/api/v1/actions", json=body)
    assert first.status_code == second.status_code == 200
    assert first.json() == second.json()


def test_action_errors(client):
    missing = client.post("/api/v1/actions", json={"type": "MARK_PAID"})
    assert missing.status_code == 400
    assert missing.json() == {"ok": False, "error": "action_id is required"}

    unknown = client.post("/api/v1/actions", json={"action_id": "x1", "type": "NOPE"})
    assert unknown.status_code == 400
    assert unknown.json()["error"] == "Unknown action type"

    # the stored failure is replayed with the same status
    again = client.post("/api/v1/actions", json={"action_id": "x1", "type": "NOPE"})
    assert again.status_code == 400


def test_cors_on_public_contract(client):
    preflight = client.options("/api/v1/summary")
    assert preflight.status_code == 204
    assert preflight.headers["access-control-allow-origin"] == "*"

    response = client.get("/api/v1/templates")
    assert response.headers["access-control-allow-origin"] == "*"

    local = client.get("/api/templates")
    assert "access-control-allow-origin" not in local.headers


# === /internal ===

@pytest.fixture
def advisor_client(client):
    from app.main import app

    settings = Settings(LLM_PROVIDER="ollama", LLM_BASE_URL="http://llm.local")
    app.dependency_overrides[get_advisor_client] = lambda: AdvisorClient(
        settings, retry=RetryPolicy(max_retries=0, backoff_seconds=0)
    )
    return client


def test_advisor_query_requires_task(client):
    assert client.post("/internal/advisor/query", json={}).status_code == 400
    assert client.post("/internal/advisor/query", json={"task": "poem"}).status_code == 400


def test_advisor_query_disabled(client):
    from app.main import app

    app.dependency_overrides[get_advisor_client] = lambda: AdvisorClient(Settings(LLM_PROVIDER="disabled"))
    response = client.post("/internal/advisor/query", json={"task": "intake", "payload": {}})
    assert response.status_code == 503
    assert response.json() == {"ok": False, "error": "LLM disabled"}


def test_advisor_query_success(advisor_client):
    with patch("app.application.advisor.requests.post") as post:
        post.return_value.ok = True
        post.return_value.status_code = 200
        post.return_value.json.return_value = {"message": {"content": '{"templates": []}'}}
        response = advisor_client.post("/internal/advisor/query", json={"task": "intake", "payload": {"user_text": "x"}})

    assert response.status_code == 200
    assert response.json() == {"ok": True, "data": {"templates": []}}


def test_agent_log(client):
    created = client.post("/internal/agent/log", json={"user_text": "pay rent", "kind": "command"})
    assert created.json()["ok"] is True

    items = client.get("/internal/agent/log?limit=5").json()["items"]
    assert len(items) == 1
    assert items[0]["user_text"] == "pay rent"


def test_behavior_features(seeded, month):
    year, m = month
    body = seeded.get(f"/internal/behavior/features?year={year}&month={m}&window=2").json()
    assert body["window_months"] == 2
    assert len(body["features"]["per_bill"]) == 2
    assert "percent_essentials_paid" in body["features"]["global"]


def test_nudges_fallback(seeded, month):
    from app.main import app

    app.dependency_overrides[get_advisor_client] = lambda: AdvisorClient(Settings(LLM_PROVIDER="disabled"))
    year, m = month
    body = seeded.post(f"/internal/nudges?year={year}&month={m}").json()

    assert body["ok"] is True
    assert body["source"] == "fallback"
    assert len(body["messages"]) == len(body["events"])
