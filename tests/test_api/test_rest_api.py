"""
Tests for the /api endpoints used by the local UI
"""
import pytest


@pytest.fixture
def template(client):
    response = client.post(
        "/api/templates?year=2026&month=2",
        json={"name": "Rent", "amount_default": 1200, "due_day": 31, "category": "Housing"},
    )
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def instance(client, template):
    return client.get("/api/instances?year=2026&month=2").json()[0]


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_create_template_materializes_month(client, template):
    assert template["name"] == "Rent"
    assert template["amount_default"] == 1200.0

    items = client.get("/api/instances?year=2026&month=2").json()
    assert len(items) == 1
    assert items[0]["due_date"] == "2026-02-28"
    assert items[0]["status_derived"] == "pending"


def test_create_template_validation(client):
    response = client.post("/api/templates", json={"name": "Rent", "amount_default": 10, "due_day": 40})
    assert response.status_code == 400
    assert response.json()["detail"] == "Due day must be 1-31"


def test_instances_require_month(client):
    assert client.get("/api/instances").status_code == 400
    assert client.get("/api/instances?year=2026&month=13").status_code == 400


def test_ensure_month(client, template):
    response = client.get("/api/ensure-month?year=2026&month=3")
    assert response.json() == {"ok": True, "created": 1}
    assert client.get("/api/ensure-month?year=2026&month=3").json() == {"ok": True, "created": 0}


def test_update_template_applies_to_month(client, template):
    response = client.put(
        f"/api/templates/{template['id']}?year=2026&month=2",
        json={"name": "Rent", "amount_default": 1250, "due_day": 5},
    )
    assert response.status_code == 200
    item = client.get("/api/instances?year=2026&month=2").json()[0]
    assert item["amount"] == 1250.0
    assert item["due_date"] == "2026-02-05"


def test_unknown_template(client):
    response = client.put("/api/templates/nope", json={"name": "X", "amount_default": 1, "due_day": 1})
    assert response.status_code == 404
    assert client.post("/api/templates/nope/archive").status_code == 404
    assert client.delete("/api/templates/nope").status_code == 404


def test_archive_and_delete_template(client, template):
    assert client.post(f"/api/templates/{template['id']}/archive").json() == {"ok": True}
    assert client.get("/api/templates").json()[0]["active"] is False

    assert client.delete(f"/api/templates/{template['id']}?year=2026&month=2").json() == {"ok": True}
    assert client.get("/api/templates").json() == []
    assert client.get("/api/instances?year=2026&month=2").json() == []


def test_payments_flow(client, instance):
    response = client.post(
        f"/api/instances/{instance['id']}/payments",
        json={"amount": 200, "paid_date": "2026-02-03"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["instance"]["status_derived"] == "partial"
    payment_id = body["payment"]["id"]

    payments = client.get("/api/payments?year=2026&month=2").json()
    assert [p["id"] for p in payments] == [payment_id]

    deleted = client.delete(f"/api/payments/{payment_id}").json()
    assert deleted["instance"]["amount_paid"] == 0.0
    assert client.delete(f"/api/payments/{payment_id}").status_code == 404


def test_payment_validation(client, instance):
    response = client.post(f"/api/instances/{instance['id']}/payments", json={"amount": 0})
    assert response.status_code == 400
    assert response.json()["detail"] == "Amount must be > 0"


def test_mark_paid_and_undo(client, instance):
    paid = client.post(f"/api/instances/{instance['id']}/mark-paid").json()
    assert paid["status_derived"] == "paid"
    assert paid["amount_remaining"] == 0.0

    undone = client.post(f"/api/instances/{instance['id']}/undo-paid").json()
    assert undone["status_derived"] == "pending"
    assert client.post("/api/instances/nope/mark-paid").status_code == 404


def test_patch_instance(client, instance):
    response = client.patch(f"/api/instances/{instance['id']}", json={"note": "autopay next month"})
    assert response.status_code == 200
    assert response.json()["note"] == "autopay next month"

    bad = client.patch(f"/api/instances/{instance['id']}", json={"status": "partial"})
    assert bad.status_code == 400

    empty = client.patch(f"/api/instances/{instance['id']}", json={})
    assert empty.json()["detail"] == "No fields to update"


def test_instance_events(client, instance):
    client.post(f"/api/instances/{instance['id']}/mark-paid")

    events = client.get(f"/api/instances/{instance['id']}/events").json()
    assert {e["type"] for e in events} == {"created", "marked_done"}

    month = client.get("/api/instance-events?year=2026&month=2").json()
    assert all(e["name"] == "Rent" for e in month)
    assert client.get("/api/instances/nope/events").status_code == 404


def test_apply_templates(client, template):
    response = client.post("/api/apply-templates?year=2026&month=2")
    assert response.json() == {"ok": True, "updated": 1}


def test_month_settings(client):
    assert client.get("/api/month-settings?year=2026&month=2").json()["cash_start"] == 0.0

    saved = client.post("/api/month-settings", json={"year": 2026, "month": 2, "cash_start": 2500})
    assert saved.json() == {"ok": True}
    assert client.get("/api/month-settings?year=2026&month=2").json()["cash_start"] == 2500.0

    bad = client.post("/api/month-settings", json={"year": 2026, "month": 2, "cash_start": -5})
    assert bad.status_code == 400


def test_app_settings(client):
    saved = client.post("/api/settings", json={"defaults": {"sort": "name", "dueSoonDays": 40}}).json()
    assert saved["defaults"] == {"sort": "name", "dueSoonDays": 7, "defaultPeriod": "month"}
    assert client.get("/api/settings").json()["defaults"]["sort"] == "name"


def test_sinking_endpoints(client):
    assert client.get("/api/sinking-funds?year=2026&month=2").json() == []
    assert client.get("/api/sinking-events").status_code == 400


def test_backup_round_trip(client, instance):
    client.post(f"/api/instances/{instance['id']}/mark-paid")

    response = client.get("/api/export/backup.json")
    assert response.status_code == 200
    assert "attachment" in response.headers["content-disposition"]
    backup = response.json()
    assert backup["schema_version"] == "2"

    imported = client.post("/api/import/backup", json=backup).json()
    assert imported["ok"] is True
    assert imported["imported"]["instances"] == 0

    assert client.post("/api/import/backup", json=[1, 2]).status_code == 400
