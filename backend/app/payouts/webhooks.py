"""
Callbacks from the payout processor.

The processor reports payee onboarding and the outcome of submitted bills.
Deliveries can repeat, so every handler is safe to run twice: a second
``payment_completed`` for a paid record is acknowledged without touching it.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.orm import Session

from app.commissions import settlement
from app.core.time import normalize_dt
from app.crud.commissions import get_record_by_commission_id, get_record_by_handle
from app.crud.partners import get_partner_by_payee_id, link_payout_payee
from app.models.enums import PayeeStatusEnum, PaymentStatusEnum


logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Payout-Signature"


def compute_signature(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(secret, body), signature.strip())


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return normalize_dt(value)
    try:
        return normalize_dt(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return None


def _ack(event_type: str, *, handled: bool, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"received": True, "event": event_type, "handled": handled}
    payload.update({key: value for key, value in extra.items() if value is not None})
    return payload


def _update_payee(db: Session, event_type: str, data: dict[str, Any], status: PayeeStatusEnum | None) -> dict[str, Any]:
    payee_id = data.get("payee_id")
    partner = get_partner_by_payee_id(db, payee_id=str(payee_id)) if payee_id else None
    if not partner:
        logger.warning("payout_webhook.unknown_payee", extra={"event_type": event_type, "payee_id": payee_id})
        return _ack(event_type, handled=False, reason="unknown_payee")
    link_payout_payee(
        db,
        partner=partner,
        payee_id=partner.payout_payee_id,
        status=status or PayeeStatusEnum(partner.payout_status),
        payout_method=data.get("payment_method"),
        onboarded_at=_parse_timestamp(data.get("onboarded_at")),
    )
    logger.info(
        "payout_webhook.payee_updated",
        extra={"event_type": event_type, "partner_id": partner.id, "payout_status": PayeeStatusEnum(partner.payout_status).value},
    )
    return _ack(event_type, handled=True, partner_id=partner.id)


def _handle_payee_onboarded(db: Session, data: dict[str, Any]) -> dict[str, Any]:
    return _update_payee(db, "payee_onboarded", data, PayeeStatusEnum.ACTIVE)


def _handle_payee_suspended(db: Session, data: dict[str, Any]) -> dict[str, Any]:
    return _update_payee(db, "payee_suspended", data, PayeeStatusEnum.SUSPENDED)


def _handle_payee_updated(db: Session, data: dict[str, Any]) -> dict[str, Any]:
    return _update_payee(db, "payee_updated", data, None)


def _find_record(db: Session, data: dict[str, Any]):
    handle = data.get("invoice_ref") or data.get("processing_handle")
    if handle:
        record = get_record_by_handle(db, processing_handle=str(handle))
        if record:
            return record
    commission_id = data.get("commission_id") or data.get("invoice_number")
    if commission_id:
        return get_record_by_commission_id(db, commission_id=str(commission_id))
    return None


def _handle_payment_submitted(db: Session, data: dict[str, Any]) -> dict[str, Any]:
    record = _find_record(db, data)
    logger.info(
        "payout_webhook.payment_submitted",
        extra={"commission_id": record.commission_id if record else None},
    )
    return _ack("payment_submitted", handled=record is not None, commission_id=record.commission_id if record else None)


def _handle_payment_completed(db: Session, data: dict[str, Any]) -> dict[str, Any]:
    record = _find_record(db, data)
    if not record:
        logger.warning("payout_webhook.unknown_record", extra={"event_type": "payment_completed"})
        return _ack("payment_completed", handled=False, reason="unknown_record")
    if record.payment_status == PaymentStatusEnum.PAID:
        return _ack("payment_completed", handled=False, reason="already_paid", commission_id=record.commission_id)
    record = settlement.mark_paid(
        db,
        record,
        payment_date=_parse_timestamp(data.get("paid_at")),
        payment_method=data.get("payment_method"),
        payment_reference=data.get("payment_reference") or data.get("payment_id"),
    )
    return _ack("payment_completed", handled=True, commission_id=record.commission_id)


def _handle_payment_failed(db: Session, data: dict[str, Any]) -> dict[str, Any]:
    record = _find_record(db, data)
    if not record:
        logger.warning("payout_webhook.unknown_record", extra={"event_type": "payment_failed"})
        return _ack("payment_failed", handled=False, reason="unknown_record")
    if record.payment_status != PaymentStatusEnum.PROCESSING:
        return _ack(
            "payment_failed",
            handled=False,
            reason="not_processing",
            commission_id=record.commission_id,
        )
    reason = str(data.get("error_message") or data.get("reason") or "Payment failed")
    record = settlement.mark_failed(db, record, reason=reason)
    return _ack(
        "payment_failed",
        handled=True,
        commission_id=record.commission_id,
        payment_status=PaymentStatusEnum(record.payment_status).value,
    )


_EVENT_HANDLERS: dict[str, Callable[[Session, dict[str, Any]], dict[str, Any]]] = {
    "payee_onboarded": _handle_payee_onboarded,
    "payee_suspended": _handle_payee_suspended,
    "payee_updated": _handle_payee_updated,
    "payment_submitted": _handle_payment_submitted,
    "payment_completed": _handle_payment_completed,
    "payment_failed": _handle_payment_failed,
}


def handle_payout_event(db: Session, event: dict[str, Any]) -> dict[str, Any]:
    event_type = str(event.get("event") or event.get("type") or "").strip()
    data = event.get("data") if isinstance(event.get("data"), dict) else event
    handler = _EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("payout_webhook.unhandled_event", extra={"event_type": event_type or None})
        return _ack(event_type or "unknown", handled=False, reason="unhandled_event")
    return handler(db, data)
