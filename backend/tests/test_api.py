from fastapi.testclient import TestClient

from cashplan.main import app

client = TestClient(app)


def test_health_endpoints():
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"

    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["environment"] == "test"


def test_bare_and_prefixed_health_return_same_payload():
    assert client.get("/healthz").json() == client.get("/api/health").json()


def test_request_id_is_propagated():
    resp = client.get("/api/health", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"

    resp = client.get("/api/health")
    assert resp.headers.get("X-Request-ID")


def test_order_events_endpoint(reference_po, reference_settings, snapshot_factory):
    snapshot = snapshot_factory(pos=[reference_po], settings=reference_settings)

    resp = client.post("/api/orders/events", json={"snapshot": snapshot})

    assert resp.status_code == 200
    body = resp.json()
    assert len(body["events"]) == 8
    assert body["events"][0]["date"] == "2025-02-21"
    assert body["orders"][0]["order_id"] == "po-25007"
    assert body["orders"][0]["validation"]["ok"] is True


def test_order_events_report_validation_errors(reference_po, snapshot_factory):
    reference_po["milestones"][1]["percent"] = 50

    resp = client.post("/api/orders/events", json={"snapshot": snapshot_factory(pos=[reference_po])})

    assert resp.status_code == 200
    validation = resp.json()["orders"][0]["validation"]
    assert validation["ok"] is False
    assert validation["errors"]


def test_monthly_cashflow_endpoint(reference_po, reference_settings, snapshot_factory):
    snapshot = snapshot_factory(pos=[reference_po], settings=reference_settings)

    resp = client.post(
        "/api/orders/cashflow/monthly",
        json={"snapshot": snapshot, "months": ["2025-01", "2025-08"]},
    )

    assert resp.status_code == 200
    buckets = resp.json()
    assert [b["month"] for b in buckets] == ["2025-01", "2025-08"]
    assert buckets[0]["items"] == []
    assert buckets[1]["inflow"] == 1032.35


def test_journal_preview_endpoint(eur_po, snapshot_factory):
    eur_po["paymentLog"] = {"m1": {"status": "paid", "paidDate": "2025-03-02", "amountActualEur": 300}}

    resp = client.post(
        "/api/journal/preview",
        json={"snapshot": snapshot_factory(pos=[eur_po]), "scope": "paid", "month": "2025-03"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["scope"] == "paid"
    assert body["month"] == "2025-03"
    assert body["count"] == 1
    row = body["rows"][0]
    assert row["row_id"] == "PO-EVT-po-1-m1"
    assert row["status"] == "PAID"
    assert row["amount_actual_eur"] == 300.0
    assert row["supplier_name"] == "Shenzhen Tools Ltd"


def test_journal_preview_sanitizes_scope_and_month(eur_po, snapshot_factory):
    resp = client.post(
        "/api/journal/preview",
        json={"snapshot": snapshot_factory(pos=[eur_po]), "scope": "weird", "month": "2025-3"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["scope"] == "both"
    assert body["month"] is None
    assert body["count"] == 2


def test_journal_monthly_endpoint(eur_po, snapshot_factory):
    resp = client.post("/api/journal/monthly", json={"snapshot": snapshot_factory(pos=[eur_po])})

    assert resp.status_code == 200
    assert resp.json() == [
        {"month": "2025-03", "planned_eur": 1000.0, "actual_eur": 0.0, "paid_count": 0, "open_count": 2}
    ]


def test_snapshot_must_be_an_object():
    resp = client.post("/api/journal/preview", json={"snapshot": "not-a-snapshot"})
    assert resp.status_code == 422
