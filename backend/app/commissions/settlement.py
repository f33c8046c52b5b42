"""
Settlement state machine for commission records.

    pending -> processing -> paid        (paid is terminal)
                  |
                  v
               failed -> pending         (retry)

``pending -> failed`` is not allowed: a record has to be attempted before it
can fail. Every transition is a compare-and-swap on ``payment_status`` and
appends a ``CommissionEvent``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.commissions.errors import InvalidTransition, PayeeNotPayable, PayoutSubmissionError
from app.core.config import settings
from app.core.metrics import record_settlement_rejection, record_settlement_transition
from app.core.time import normalize_dt, utcnow
from app.crud.commissions import add_event, compare_and_set, get_record
from app.models.commissions import CommissionRecord
from app.models.enums import CommissionEventEnum, PaymentStatusEnum
from app.payouts.base import PayoutLink, PayoutProcessor


logger = logging.getLogger(__name__)

TRANSITIONS: dict[PaymentStatusEnum, frozenset[PaymentStatusEnum]] = {
    PaymentStatusEnum.PENDING: frozenset({PaymentStatusEnum.PROCESSING}),
    PaymentStatusEnum.PROCESSING: frozenset({PaymentStatusEnum.PAID, PaymentStatusEnum.FAILED}),
    PaymentStatusEnum.FAILED: frozenset({PaymentStatusEnum.PENDING}),
    PaymentStatusEnum.PAID: frozenset(),
}


def can_transition(from_status: PaymentStatusEnum, to_status: PaymentStatusEnum) -> bool:
    return PaymentStatusEnum(to_status) in TRANSITIONS.get(PaymentStatusEnum(from_status), frozenset())


def _transition(
    db: Session,
    record: CommissionRecord,
    *,
    to_status: PaymentStatusEnum,
    event: CommissionEventEnum,
    values: dict[str, Any] | None = None,
    detail: str | None = None,
) -> CommissionRecord:
    from_status = PaymentStatusEnum(record.payment_status)
    if not can_transition(from_status, to_status):
        record_settlement_rejection("invalid_transition")
        raise InvalidTransition(
            commission_id=record.commission_id,
            from_status=from_status.value,
            to_status=to_status.value,
        )

    payload = dict(values or {})
    payload["payment_status"] = to_status
    if not compare_and_set(db, record_id=record.id, expected_statuses=[from_status], values=payload):
        db.rollback()
        current = get_record(db, record_id=record.id)
        current_status = PaymentStatusEnum(current.payment_status) if current else from_status
        record_settlement_rejection("concurrent_update")
        raise InvalidTransition(
            commission_id=record.commission_id,
            from_status=current_status.value,
            to_status=to_status.value,
        )

    add_event(
        db,
        record=record,
        event=event,
        from_status=from_status,
        to_status=to_status,
        amount=record.commission_amount,
        detail=detail,
    )
    db.commit()
    db.refresh(record)
    record_settlement_transition(to_status)
    logger.info(
        "settlement.transition",
        extra={
            "commission_id": record.commission_id,
            "from_status": from_status.value,
            "to_status": to_status.value,
        },
    )
    return record


def mark_processing(db: Session, record: CommissionRecord, *, processor: PayoutProcessor) -> CommissionRecord:
    """Send a pending record to the payout processor.

    The partner needs an active payout payee; otherwise ``PayeeNotPayable``
    is raised and the record stays ``pending``. The record is claimed
    (pending -> processing) before the processor is called so two callers
    can never submit the same record. A clear rejection releases the claim.
    When the outcome is unknown (timeout, 5xx) the record stays ``processing``
    under its commission id, since the bill may already exist.
    """
    from_status = PaymentStatusEnum(record.payment_status)
    if not can_transition(from_status, PaymentStatusEnum.PROCESSING):
        record_settlement_rejection("invalid_transition")
        raise InvalidTransition(
            commission_id=record.commission_id,
            from_status=from_status.value,
            to_status=PaymentStatusEnum.PROCESSING.value,
        )

    partner = record.partner
    link = PayoutLink.from_partner(partner)
    if not link.is_active or not processor.is_payable(link):
        record_settlement_rejection("payee_not_payable")
        logger.warning(
            "settlement.payee_not_payable",
            extra={
                "commission_id": record.commission_id,
                "partner_id": partner.id,
                "payout_status": link.status.value,
            },
        )
        raise PayeeNotPayable(partner_id=partner.id, payout_status=link.status.value)

    record = _transition(
        db,
        record,
        to_status=PaymentStatusEnum.PROCESSING,
        event=CommissionEventEnum.PROCESSING,
        values={"failure_reason": None},
        detail=f"submitted via {processor.name}",
    )
    try:
        handle = processor.submit(record=record, partner=partner)
    except PayoutSubmissionError as exc:
        if exc.outcome_unknown:
            # The processor may hold the bill; its callback or an admin settles the record.
            logger.warning(
                "settlement.submit_unconfirmed",
                extra={"commission_id": record.commission_id, "error_code": exc.code},
            )
            record.processing_handle = record.commission_id
            db.commit()
            db.refresh(record)
            raise
        logger.exception(
            "settlement.submit_failed",
            extra={"commission_id": record.commission_id, "error_code": exc.code},
        )
        compare_and_set(
            db,
            record_id=record.id,
            expected_statuses=[PaymentStatusEnum.PROCESSING],
            values={"payment_status": PaymentStatusEnum.PENDING},
        )
        add_event(
            db,
            record=record,
            event=CommissionEventEnum.RETRIED,
            from_status=PaymentStatusEnum.PROCESSING,
            to_status=PaymentStatusEnum.PENDING,
            amount=record.commission_amount,
            detail=f"submission failed: {exc.message}",
        )
        db.commit()
        db.refresh(record)
        raise

    record.processing_handle = handle
    db.commit()
    db.refresh(record)
    return record


def mark_paid(
    db: Session,
    record: CommissionRecord,
    *,
    payment_date: datetime | None = None,
    payment_method: str | None = None,
    payment_reference: str | None = None,
) -> CommissionRecord:
    """Record the processor's confirmation. The record is frozen afterwards."""
    values: dict[str, Any] = {"payment_date": normalize_dt(payment_date) or utcnow()}
    if payment_method is not None:
        values["payment_method"] = payment_method
    if payment_reference is not None:
        values["payment_reference"] = payment_reference
    return _transition(
        db,
        record,
        to_status=PaymentStatusEnum.PAID,
        event=CommissionEventEnum.PAID,
        values=values,
        detail=payment_reference,
    )


def mark_failed(
    db: Session,
    record: CommissionRecord,
    *,
    reason: str,
    auto_retry: bool | None = None,
) -> CommissionRecord:
    record = _transition(
        db,
        record,
        to_status=PaymentStatusEnum.FAILED,
        event=CommissionEventEnum.FAILED,
        values={"failure_reason": reason},
        detail=reason,
    )
    if settings.SETTLEMENT_AUTO_RETRY if auto_retry is None else auto_retry:
        record = retry(db, record)
    return record


def retry(db: Session, record: CommissionRecord) -> CommissionRecord:
    """failed -> pending, so the next cycle can recalculate and resend."""
    return _transition(
        db,
        record,
        to_status=PaymentStatusEnum.PENDING,
        event=CommissionEventEnum.RETRIED,
        values={"processing_handle": None},
        detail=record.failure_reason,
    )
