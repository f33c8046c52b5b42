from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.commissions import CommissionEvent, CommissionRecord
from app.models.enums import CommissionEventEnum, PartnerTypeEnum, PaymentStatusEnum


def next_commission_id(db: Session, *, prefix: str, year: int) -> str:
    stem = f"{prefix}-{year}-"
    pattern = re.compile(rf"^{re.escape(stem)}(\d+)$")
    rows = (
        db.query(CommissionRecord.commission_id)
        .filter(CommissionRecord.commission_id.like(f"{stem}%"))
        .all()
    )
    highest = 0
    for (commission_id,) in rows:
        match = pattern.match(commission_id or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{stem}{highest + 1:03d}"


def get_record(db: Session, *, record_id: int) -> CommissionRecord | None:
    return db.query(CommissionRecord).filter(CommissionRecord.id == record_id).first()


def get_record_by_commission_id(db: Session, *, commission_id: str) -> CommissionRecord | None:
    return db.query(CommissionRecord).filter(CommissionRecord.commission_id == commission_id).first()


def get_record_by_handle(db: Session, *, processing_handle: str) -> CommissionRecord | None:
    return (
        db.query(CommissionRecord)
        .filter(CommissionRecord.processing_handle == processing_handle)
        .first()
    )


def get_record_for_partner_month(db: Session, *, partner_id: int, month: date) -> CommissionRecord | None:
    return (
        db.query(CommissionRecord)
        .filter(
            CommissionRecord.partner_id == partner_id,
            CommissionRecord.commission_month == month,
        )
        .first()
    )


def list_records(
    db: Session,
    *,
    partner_id: int | None = None,
    month_from: date | None = None,
    month_to: date | None = None,
    payment_status: PaymentStatusEnum | None = None,
    partner_type: PartnerTypeEnum | None = None,
) -> list[CommissionRecord]:
    query = db.query(CommissionRecord)
    if partner_id is not None:
        query = query.filter(CommissionRecord.partner_id == partner_id)
    if month_from is not None:
        query = query.filter(CommissionRecord.commission_month >= month_from)
    if month_to is not None:
        query = query.filter(CommissionRecord.commission_month <= month_to)
    if payment_status is not None:
        query = query.filter(CommissionRecord.payment_status == PaymentStatusEnum(payment_status))
    if partner_type is not None:
        query = query.filter(CommissionRecord.recipient_type == PartnerTypeEnum(partner_type))
    return (
        query.order_by(CommissionRecord.commission_month.desc(), CommissionRecord.id.desc())
        .all()
    )


def add_event(
    db: Session,
    *,
    record: CommissionRecord,
    event: CommissionEventEnum,
    from_status: PaymentStatusEnum | None,
    to_status: PaymentStatusEnum | None,
    amount: Decimal | None = None,
    detail: str | None = None,
) -> CommissionEvent:
    entry = CommissionEvent(
        record_id=record.id,
        event=event,
        from_status=from_status.value if from_status is not None else None,
        to_status=to_status.value if to_status is not None else None,
        amount=amount,
        detail=detail,
    )
    db.add(entry)
    return entry


def list_events(db: Session, *, record_id: int) -> list[CommissionEvent]:
    return (
        db.query(CommissionEvent)
        .filter(CommissionEvent.record_id == record_id)
        .order_by(CommissionEvent.id.asc())
        .all()
    )


def compare_and_set(
    db: Session,
    *,
    record_id: int,
    expected_statuses: Iterable[PaymentStatusEnum],
    values: dict[str, Any],
) -> bool:
    """Apply ``values`` only while the row is still in one of ``expected_statuses``.

    Does not commit; returns False when another writer got there first.
    """
    updated = (
        db.query(CommissionRecord)
        .filter(
            CommissionRecord.id == record_id,
            CommissionRecord.payment_status.in_(list(expected_statuses)),
        )
        .update(values, synchronize_session=False)
    )
    return updated == 1


def sum_amounts(db: Session, *, payment_status: PaymentStatusEnum, month: date | None = None) -> float:
    query = db.query(func.coalesce(func.sum(CommissionRecord.commission_amount), 0)).filter(
        CommissionRecord.payment_status == payment_status
    )
    if month is not None:
        query = query.filter(CommissionRecord.commission_month == month)
    total = query.scalar()
    try:
        return float(total or 0)
    except (TypeError, ValueError):
        return 0.0


def count_records(db: Session, *, payment_status: PaymentStatusEnum | None = None, month: date | None = None) -> int:
    query = db.query(func.count(CommissionRecord.id))
    if payment_status is not None:
        query = query.filter(CommissionRecord.payment_status == payment_status)
    if month is not None:
        query = query.filter(CommissionRecord.commission_month == month)
    return int(query.scalar() or 0)
