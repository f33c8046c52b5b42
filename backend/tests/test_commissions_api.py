import os

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("SKIP_MIGRATIONS", "1")

from fastapi.testclient import TestClient  # noqa: E402

from app.main import app  # noqa: E402
from tests.factories import setup_db  # noqa: E402


client = TestClient(app)


@pytest.fixture(autouse=True)
def _database(tmp_path):
    return setup_db(f"sqlite:///{tmp_path / 'commissions_api.db'}")


def _create_partner(commission=None, **overrides):
    body = {"name": "Downtown Cafe", "partner_type": "location"}
    if commission is not None:
        body["commission"] = commission
    body.update(overrides)
    resp = client.post("/api/v1/admin/partners", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _link_payee(partner_id, payee_id="payee-1", status="active"):
    resp = client.put(
        f"/api/v1/admin/partners/{partner_id}/payout-link",
        json={"payee_id": payee_id, "status": status},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def _put_inputs(partner_id, month="2025-03", **values):
    resp = client.put(
        "/api/v1/admin/commissions/inputs",
        json={"partner_id": partner_id, "month": month, **values},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def _calculate(partner_id, month="2025-03"):
    return client.post("/api/v1/admin/commissions/calculate", json={"partner_id": partner_id, "month": month})


def test_percentage_partner_march_calculation():
    partner = _create_partner({"type": "percentage", "rate": 5})
    _put_inputs(partner["id"], revenue_basis=20000)

    resp = _calculate(partner["id"])
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["outcome"] == "created"
    assert body["amount"] == 1000.0
    record = body["record"]
    assert record["commission_id"].startswith("COMM-2025-")
    assert record["commission_month"] == "2025-03-01"
    assert record["payment_status"] == "pending"
    assert record["calculation_method"] == "percentage"
    assert record["revenue_basis"] == 20000.0
    assert record["conversion_count"] is None
    assert record["partner_code"] == partner["partner_code"]
    assert "5% × $20,000 revenue" in record["calculation_details"]


def test_hybrid_rounding_through_the_api():
    partner = _create_partner({"type": "hybrid", "monthly_amount": 133.333, "rate": 2.5})
    _put_inputs(partner["id"], revenue_basis=10000.004)

    resp = _calculate(partner["id"])
    assert resp.status_code == 200, resp.text
    assert resp.json()["record"]["commission_amount"] == 383.33


def test_calculate_without_structure_is_skipped():
    partner = _create_partner()
    resp = _calculate(partner["id"])
    assert resp.status_code == 200
    body = resp.json()
    assert body["outcome"] == "skipped"
    assert body["record"] is None

    records = client.get("/api/v1/admin/commissions/records").json()
    assert records == []


def test_calculation_errors_are_rendered_with_error_code():
    partner = _create_partner({"type": "percentage", "rate": 5})
    resp = _calculate(partner["id"])
    assert resp.status_code == 422
    assert resp.headers["X-Error-Code"] == "missing_revenue_basis"
    assert resp.json()["code"] == "missing_revenue_basis"

    resp = _calculate(99999)
    assert resp.status_code == 404
    assert resp.json()["code"] == "partner_not_found"

    resp = _calculate(partner["id"], month="March")
    assert resp.status_code == 422


def test_settlement_lifecycle_and_immutability():
    partner = _create_partner({"type": "flat_fee", "monthly_amount": 200})
    record = _calculate(partner["id"]).json()["record"]
    record_id = record["id"]

    resp = client.post(f"/api/v1/admin/commissions/records/{record_id}/processing")
    assert resp.status_code == 409
    assert resp.headers["X-Error-Code"] == "payee_not_payable"

    _link_payee(partner["id"])
    resp = client.post(f"/api/v1/admin/commissions/records/{record_id}/processing")
    assert resp.status_code == 200, resp.text
    assert resp.json()["payment_status"] == "processing"
    assert resp.json()["processing_handle"] == f"manual-{record['commission_id']}"

    resp = _calculate(partner["id"])
    assert resp.status_code == 409
    assert resp.json()["code"] == "record_locked"

    resp = client.post(
        f"/api/v1/admin/commissions/records/{record_id}/paid",
        json={"payment_date": "2025-04-05T10:00:00", "payment_reference": "pay-1"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["payment_status"] == "paid"
    assert body["payment_date"].startswith("2025-04-05T10:00:00")
    assert body["payment_reference"] == "pay-1"

    resp = client.post(f"/api/v1/admin/commissions/records/{record_id}/failed", json={"reason": "late"})
    assert resp.status_code == 409
    assert resp.json()["code"] == "invalid_transition"

    resp = _calculate(partner["id"])
    assert resp.status_code == 409
    assert resp.json()["code"] == "record_locked"

    events = client.get(f"/api/v1/admin/commissions/records/{record_id}/events").json()
    assert [event["event"] for event in events] == ["calculated", "processing", "paid"]
    assert events[-1]["from_status"] == "processing"
    assert events[-1]["to_status"] == "paid"


def test_failed_payment_returns_to_pending_and_retry_recalculates():
    partner = _create_partner({"type": "per_referral", "amount_per_conversion": 25})
    _link_payee(partner["id"])
    _put_inputs(partner["id"], conversion_count=4)
    record_id = _calculate(partner["id"]).json()["record"]["id"]

    client.post(f"/api/v1/admin/commissions/records/{record_id}/processing")
    resp = client.post(
        f"/api/v1/admin/commissions/records/{record_id}/failed",
        json={"reason": "bank rejected", "auto_retry": False},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["payment_status"] == "failed"
    assert resp.json()["failure_reason"] == "bank rejected"

    _put_inputs(partner["id"], conversion_count=5)
    resp = client.post(f"/api/v1/admin/commissions/records/{record_id}/retry")
    assert resp.status_code == 200, resp.text
    assert resp.json()["payment_status"] == "pending"
    assert resp.json()["commission_amount"] == 125.0

    resp = client.post(f"/api/v1/admin/commissions/records/{record_id}/failed", json={"reason": "x"})
    assert resp.status_code == 409


def test_failed_payment_auto_retries_by_default():
    partner = _create_partner({"type": "flat_fee", "monthly_amount": 200})
    _link_payee(partner["id"])
    record_id = _calculate(partner["id"]).json()["record"]["id"]
    client.post(f"/api/v1/admin/commissions/records/{record_id}/processing")

    resp = client.post(f"/api/v1/admin/commissions/records/{record_id}/failed", json={"reason": "bounced"})
    assert resp.status_code == 200
    assert resp.json()["payment_status"] == "pending"


def test_batch_endpoint():
    flat = _create_partner({"type": "flat_fee", "monthly_amount": 200})
    pct = _create_partner({"type": "percentage", "rate": 5})
    none = _create_partner()

    resp = client.post("/api/v1/admin/commissions/calculate-batch", json={"month": "2025-03"})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert [item["partner_id"] for item in body["succeeded"]] == [flat["id"]]
    assert body["skipped"] == [none["id"]]
    assert body["failed"] == [
        {
            "partner_id": pct["id"],
            "code": "missing_revenue_basis",
            "message": "Revenue basis is required for percentage commissions",
        }
    ]
    assert body["total_amount"] == 200.0
    assert body["cancelled"] is False


def test_records_filters_and_summary():
    location = _create_partner({"type": "flat_fee", "monthly_amount": 200})
    referral = _create_partner({"type": "flat_fee", "monthly_amount": 50}, partner_type="referral")
    _link_payee(location["id"])
    march_id = _calculate(location["id"]).json()["record"]["id"]
    _calculate(location["id"], month="2025-04")
    _calculate(referral["id"])
    client.post(f"/api/v1/admin/commissions/records/{march_id}/processing")
    client.post(f"/api/v1/admin/commissions/records/{march_id}/paid", json={})

    records = client.get("/api/v1/admin/commissions/records").json()
    assert len(records) == 3
    assert records[0]["commission_month"] == "2025-04-01"

    march = client.get("/api/v1/admin/commissions/records", params={"month": "2025-03"}).json()
    assert len(march) == 2
    paid = client.get("/api/v1/admin/commissions/records", params={"status": "paid"}).json()
    assert [row["id"] for row in paid] == [march_id]
    referrals = client.get("/api/v1/admin/commissions/records", params={"partner_type": "referral"}).json()
    assert [row["partner_id"] for row in referrals] == [referral["id"]]

    resp = client.get("/api/v1/admin/commissions/records", params={"status": "settled"})
    assert resp.status_code == 422

    summary = client.get("/api/v1/admin/commissions/summary").json()
    assert summary["total_records"] == 3
    assert summary["pending_count"] == 2
    assert summary["paid_count"] == 1
    assert summary["total_pending"] == 250.0
    assert summary["total_paid"] == 200.0

    march_summary = client.get("/api/v1/admin/commissions/summary", params={"month": "2025-03"}).json()
    assert march_summary["month"] == "2025-03"
    assert march_summary["total_records"] == 2


def test_unknown_record_is_404():
    resp = client.get("/api/v1/admin/commissions/records/424242")
    assert resp.status_code == 404
    assert resp.headers["X-Error-Code"] == "record_not_found"


def test_inputs_validation():
    resp = client.put(
        "/api/v1/admin/commissions/inputs",
        json={"partner_id": 424242, "month": "2025-03", "revenue_basis": 10},
    )
    assert resp.status_code == 404

    partner = _create_partner({"type": "percentage", "rate": 5})
    resp = client.put(
        "/api/v1/admin/commissions/inputs",
        json={"partner_id": partner["id"], "month": "2025-03", "revenue_basis": -10},
    )
    assert resp.status_code == 422

    row = _put_inputs(partner["id"], month="2025-03-17", revenue_basis=10, conversion_count=0)
    assert row["input_month"] == "2025-03-01"
    assert row["conversion_count"] == 0


def test_ping_metrics_and_request_id():
    resp = client.get("/ping", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 200
    assert resp.json() == {"message": "pong"}
    assert resp.headers["X-Request-Id"] == "req-123"

    partner = _create_partner({"type": "flat_fee", "monthly_amount": 10})
    _calculate(partner["id"])
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "commission_calculations_total" in metrics.text
    assert "api_request_count_total" in metrics.text
