import json
import os
from decimal import Decimal

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("SKIP_MIGRATIONS", "1")

from fastapi.testclient import TestClient  # noqa: E402

from app.commissions import service  # noqa: E402
from app.commissions.structures import FlatFee  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.crud.partners import get_partner  # noqa: E402
from app.main import app  # noqa: E402
from app.models.enums import PayeeStatusEnum, PaymentStatusEnum  # noqa: E402
from app.payouts import ManualPayoutProcessor  # noqa: E402
from app.payouts.webhooks import compute_signature, verify_signature  # noqa: E402
from tests.factories import make_partner, setup_db  # noqa: E402


client = TestClient(app)
SECRET = "whsec_test"


@pytest.fixture(autouse=True)
def SessionLocal(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "PAYOUT_WEBHOOK_SECRET", SECRET)
    return setup_db(f"sqlite:///{tmp_path / 'payout_webhook.db'}")


def _post(event: dict, *, secret: str = SECRET, signature: str | None = None):
    body = json.dumps(event).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    headers["X-Payout-Signature"] = signature if signature is not None else compute_signature(secret, body)
    return client.post("/api/v1/webhooks/payouts", content=body, headers=headers)


def _processing_record(db):
    partner = make_partner(db, structure=FlatFee(monthly_amount=Decimal("200")), payee_id="payee-1")
    record = service.calculate_one(db, partner.id, "2025-03").record
    return service.mark_processing(db, record.id, processor=ManualPayoutProcessor())


def test_signature_helpers():
    body = b'{"event":"payment_completed"}'
    signature = compute_signature(SECRET, body)
    assert verify_signature(SECRET, body, signature)
    assert not verify_signature(SECRET, body + b" ", signature)
    assert not verify_signature(SECRET, body, None)


def test_rejects_bad_signature():
    resp = _post({"event": "payee_onboarded", "payee_id": "payee-1"}, signature="bogus")
    assert resp.status_code == 401


def test_requires_configured_secret(monkeypatch):
    monkeypatch.setattr(settings, "PAYOUT_WEBHOOK_SECRET", None)
    resp = _post({"event": "payee_onboarded", "payee_id": "payee-1"})
    assert resp.status_code == 400


def test_payee_onboarded_activates_link(SessionLocal):
    with SessionLocal() as db:
        partner = make_partner(db, payee_id="payee-7", payout_status=PayeeStatusEnum.PENDING)
        partner_id = partner.id

    resp = _post({"event": "payee_onboarded", "payee_id": "payee-7", "payment_method": "ACH"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["handled"] is True

    with SessionLocal() as db:
        partner = get_partner(db, partner_id=partner_id)
        assert partner.payout_status == PayeeStatusEnum.ACTIVE
        assert partner.payout_method == "ACH"
        assert partner.payout_onboarded_at is not None

    resp = _post({"event": "payee_suspended", "data": {"payee_id": "payee-7"}})
    assert resp.json()["handled"] is True
    with SessionLocal() as db:
        assert get_partner(db, partner_id=partner_id).payout_status == PayeeStatusEnum.SUSPENDED


def test_unknown_payee_is_acknowledged():
    resp = _post({"event": "payee_onboarded", "payee_id": "nobody"})
    assert resp.status_code == 200
    assert resp.json() == {
        "received": True,
        "event": "payee_onboarded",
        "handled": False,
        "reason": "unknown_payee",
    }


def test_payment_completed_marks_paid_once(SessionLocal):
    with SessionLocal() as db:
        record = _processing_record(db)
        record_id, handle = record.id, record.processing_handle

    event = {
        "event": "payment_completed",
        "invoice_ref": handle,
        "payment_reference": "pay-42",
        "paid_at": "2025-04-02T09:30:00Z",
    }
    resp = _post(event)
    assert resp.status_code == 200, resp.text
    assert resp.json()["handled"] is True

    with SessionLocal() as db:
        record = service.get_record_or_raise(db, record_id)
        assert record.payment_status == PaymentStatusEnum.PAID
        assert record.payment_reference == "pay-42"
        assert record.payment_date.isoformat() == "2025-04-02T09:30:00"

    again = _post(event)
    assert again.status_code == 200
    assert again.json()["handled"] is False
    assert again.json()["reason"] == "already_paid"


def test_payment_failed_returns_record_to_pending(SessionLocal):
    with SessionLocal() as db:
        record = _processing_record(db)
        record_id, commission_id = record.id, record.commission_id

    resp = _post({"event": "payment_failed", "commission_id": commission_id, "error_message": "Invalid account"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["payment_status"] == "pending"

    with SessionLocal() as db:
        record = service.get_record_or_raise(db, record_id)
        assert record.payment_status == PaymentStatusEnum.PENDING
        assert record.failure_reason == "Invalid account"

    # A repeated delivery finds the record no longer processing.
    again = _post({"event": "payment_failed", "commission_id": commission_id, "error_message": "Invalid account"})
    assert again.json()["handled"] is False
    assert again.json()["reason"] == "not_processing"


def test_payment_submitted_and_unknown_events_are_acknowledged(SessionLocal):
    with SessionLocal() as db:
        record = _processing_record(db)
        commission_id = record.commission_id

    resp = _post({"event": "payment_submitted", "commission_id": commission_id})
    assert resp.json()["handled"] is True
    assert resp.json()["commission_id"] == commission_id

    resp = _post({"event": "payee_details_changed"})
    assert resp.status_code == 200
    assert resp.json()["handled"] is False
    assert resp.json()["reason"] == "unhandled_event"


def test_invalid_json_payload():
    body = b"not json"
    resp = client.post(
        "/api/v1/webhooks/payouts",
        content=body,
        headers={"X-Payout-Signature": compute_signature(SECRET, body)},
    )
    assert resp.status_code == 400
