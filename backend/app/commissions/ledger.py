"""
Commission ledger: one record per (partner, month), ever.

The unique constraint on ``(partner_id, commission_month)`` is the only
synchronization primitive. Inserts that lose a race surface as
``IntegrityError`` and are retried as re-read + upsert; updates are
compare-and-swap on ``payment_status`` so a record that moved to
``processing`` or ``paid`` underneath us is never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.commissions.engine import CalculationResult
from app.commissions.errors import DuplicateKeyRace, RecordLocked
from app.core.config import settings
from app.core.time import utcnow
from app.crud.commissions import (
    add_event,
    compare_and_set,
    get_record_for_partner_month,
    next_commission_id,
)
from app.models.commissions import CommissionRecord
from app.models.enums import (
    EDITABLE_PAYMENT_STATUSES,
    LOCKED_PAYMENT_STATUSES,
    CommissionEventEnum,
    PartnerTypeEnum,
    PaymentStatusEnum,
)


logger = logging.getLogger(__name__)


def _calculation_values(result: CalculationResult, partner_type: PartnerTypeEnum) -> dict:
    return {
        "recipient_type": partner_type,
        "calculation_method": result.structure.type,
        "calculation_params_json": result.structure.to_params(),
        "revenue_basis": result.revenue_basis,
        "conversion_count": result.conversion_count,
        "commission_amount": result.amount,
        "calculation_details": result.details,
        "calculated_at": utcnow(),
    }


def _insert(db: Session, *, partner_id: int, partner_type: PartnerTypeEnum, result: CalculationResult) -> CommissionRecord:
    record = CommissionRecord(
        commission_id=next_commission_id(
            db,
            prefix=settings.COMMISSION_ID_PREFIX,
            year=result.commission_month.year,
        ),
        partner_id=partner_id,
        commission_month=result.commission_month,
        currency=settings.COMMISSION_CURRENCY,
        payment_status=PaymentStatusEnum.PENDING,
        calculation_count=1,
        **_calculation_values(result, partner_type),
    )
    db.add(record)
    db.flush()
    add_event(
        db,
        record=record,
        event=CommissionEventEnum.CALCULATED,
        from_status=None,
        to_status=PaymentStatusEnum.PENDING,
        amount=result.amount,
        detail=result.details,
    )
    db.commit()
    db.refresh(record)
    return record


def _overwrite(
    db: Session,
    *,
    existing: CommissionRecord,
    partner_type: PartnerTypeEnum,
    result: CalculationResult,
) -> CommissionRecord:
    status = PaymentStatusEnum(existing.payment_status)
    values = _calculation_values(result, partner_type)
    values["calculation_count"] = CommissionRecord.calculation_count + 1
    if not compare_and_set(db, record_id=existing.id, expected_statuses=EDITABLE_PAYMENT_STATUSES, values=values):
        db.rollback()
        current = get_record_for_partner_month(
            db,
            partner_id=existing.partner_id,
            month=existing.commission_month,
        )
        raise RecordLocked(
            commission_id=existing.commission_id,
            payment_status=PaymentStatusEnum(current.payment_status).value if current else status.value,
        )
    add_event(
        db,
        record=existing,
        event=CommissionEventEnum.RECALCULATED,
        from_status=status,
        to_status=status,
        amount=result.amount,
        detail=result.details,
    )
    db.commit()
    db.refresh(existing)
    return existing


def upsert(
    db: Session,
    *,
    partner_id: int,
    partner_type: PartnerTypeEnum,
    result: CalculationResult,
) -> CommissionRecord:
    """Insert or overwrite the record for ``(partner_id, result.commission_month)``.

    Raises ``RecordLocked`` when the record is ``processing`` or ``paid``.
    """
    if result.skipped:
        raise ValueError("Results without a commission structure are not written to the ledger")

    month = result.commission_month
    last_race: DuplicateKeyRace | None = None
    for attempt in range(settings.LEDGER_UPSERT_MAX_RETRIES):
        existing = get_record_for_partner_month(db, partner_id=partner_id, month=month)
        if existing is None:
            try:
                record = _insert(db, partner_id=partner_id, partner_type=partner_type, result=result)
            except IntegrityError:
                db.rollback()
                last_race = DuplicateKeyRace(partner_id=partner_id, commission_month=month.isoformat())
                logger.info(
                    "commission.insert_race",
                    extra={"partner_id": partner_id, "commission_month": month.isoformat(), "attempt": attempt + 1},
                )
                continue
            logger.info(
                "commission.created",
                extra={
                    "commission_id": record.commission_id,
                    "partner_id": partner_id,
                    "commission_month": month.isoformat(),
                    "amount": str(record.commission_amount),
                },
            )
            return record

        if existing.payment_status in LOCKED_PAYMENT_STATUSES:
            logger.warning(
                "commission.locked",
                extra={
                    "commission_id": existing.commission_id,
                    "payment_status": PaymentStatusEnum(existing.payment_status).value,
                },
            )
            raise RecordLocked(
                commission_id=existing.commission_id,
                payment_status=PaymentStatusEnum(existing.payment_status).value,
            )

        record = _overwrite(db, existing=existing, partner_type=partner_type, result=result)
        logger.info(
            "commission.recalculated",
            extra={
                "commission_id": record.commission_id,
                "partner_id": partner_id,
                "commission_month": month.isoformat(),
                "amount": str(record.commission_amount),
            },
        )
        return record

    raise last_race or DuplicateKeyRace(partner_id=partner_id, commission_month=month.isoformat())
