"""
Orchestration of the commission workflow.

``calculate_one`` is the only calculation path: the batch sweep calls it once
per partner, each in its own transaction, and collects failures instead of
stopping. Settlement helpers resolve record ids and delegate to
``app.commissions.settlement``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from time import monotonic
from typing import Any, Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.commissions import ledger, settlement
from app.commissions.engine import CalculationResult, PartnerTerms, calculate
from app.commissions.errors import (
    CommissionCalculationError,
    CommissionError,
    InvalidStructure,
    PartnerNotFound,
    RecordLocked,
    RecordNotFound,
    StructureRemoved,
)
from app.commissions.revenue import RevenueSource, StoredRevenueSource
from app.core.config import settings
from app.core.metrics import record_batch_run, record_commission_calculation
from app.core.time import month_start
from app.crud import commissions as crud_commissions
from app.crud.partners import get_partner, list_partners
from app.models.commissions import CommissionRecord
from app.models.enums import LOCKED_PAYMENT_STATUSES, PartnerTypeEnum, PaymentStatusEnum
from app.payouts import PayoutProcessor, get_payout_processor


logger = logging.getLogger(__name__)

CancelCheck = Callable[[], bool]


@dataclass
class CommissionOutcome:
    partner_id: int
    commission_month: date
    outcome: str
    result: CalculationResult
    record: CommissionRecord | None = None

    @property
    def skipped(self) -> bool:
        return self.record is None


@dataclass
class BatchFailure:
    partner_id: int
    code: str
    message: str


@dataclass
class BatchResult:
    commission_month: date
    succeeded: list[CommissionOutcome] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[BatchFailure] = field(default_factory=list)
    cancelled: bool = False

    def summary(self) -> dict[str, Any]:
        return {
            "commission_month": self.commission_month.isoformat(),
            "succeeded": len(self.succeeded),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
            "cancelled": self.cancelled,
            "total_amount": str(sum((item.result.amount for item in self.succeeded), start=0)),
            "failures": [
                {"partner_id": item.partner_id, "code": item.code, "message": item.message}
                for item in self.failed
            ],
        }


def _terms_for(partner) -> PartnerTerms:
    try:
        return PartnerTerms.from_model(partner)
    except ValueError as exc:
        raise InvalidStructure(partner_id=partner.id, reason=str(exc)) from exc


def calculate_one(
    db: Session,
    partner_id: int,
    month: date | datetime | str,
    *,
    revenue_source: RevenueSource | None = None,
) -> CommissionOutcome:
    """Calculate and record one partner's commission for ``month``.

    Partners without a structure are reported as skipped and never get a
    ledger row; if an unpaid row from an earlier run exists, ``StructureRemoved``
    is raised instead. Raises calculation errors, ``RecordLocked`` and
    ``PartnerNotFound``.
    """
    commission_month = month_start(month)
    partner = get_partner(db, partner_id=partner_id)
    if not partner:
        raise PartnerNotFound(partner_id=partner_id)

    existing = crud_commissions.get_record_for_partner_month(db, partner_id=partner.id, month=commission_month)
    if existing is not None and existing.payment_status in LOCKED_PAYMENT_STATUSES:
        record_commission_calculation("locked")
        raise RecordLocked(
            commission_id=existing.commission_id,
            payment_status=PaymentStatusEnum(existing.payment_status).value,
        )

    try:
        terms = _terms_for(partner)
        inputs = (revenue_source or StoredRevenueSource(db)).fetch(partner.id, commission_month)
        result = calculate(
            terms,
            commission_month,
            revenue_basis=inputs.revenue_basis,
            conversion_count=inputs.conversion_count,
        )
    except CommissionCalculationError as exc:
        record_commission_calculation("failed")
        logger.warning(
            "commission.calculation_failed",
            extra={
                "partner_id": partner.id,
                "commission_month": commission_month.isoformat(),
                "error_code": exc.code,
            },
        )
        raise

    if result.skipped:
        if existing is not None:
            record_commission_calculation("structure_removed")
            logger.warning(
                "commission.structure_removed",
                extra={
                    "partner_id": partner.id,
                    "commission_id": existing.commission_id,
                    "commission_month": commission_month.isoformat(),
                },
            )
            raise StructureRemoved(commission_id=existing.commission_id, partner_id=partner.id)
        record_commission_calculation("skipped")
        logger.info(
            "commission.skipped",
            extra={"partner_id": partner.id, "commission_month": commission_month.isoformat()},
        )
        return CommissionOutcome(
            partner_id=partner.id,
            commission_month=commission_month,
            outcome="skipped",
            result=result,
        )

    try:
        record = ledger.upsert(db, partner_id=partner.id, partner_type=terms.partner_type, result=result)
    except RecordLocked:
        record_commission_calculation("locked")
        raise

    outcome = "created" if (record.calculation_count or 1) == 1 else "recalculated"
    record_commission_calculation(outcome)
    logger.info(
        "commission.calculated",
        extra={
            "commission_id": record.commission_id,
            "partner_id": partner.id,
            "commission_month": commission_month.isoformat(),
            "amount": str(record.commission_amount),
            "outcome": outcome,
        },
    )
    return CommissionOutcome(
        partner_id=partner.id,
        commission_month=commission_month,
        outcome=outcome,
        result=result,
        record=record,
    )


def _cancel_requested(should_cancel: Any) -> bool:
    if should_cancel is None:
        return False
    is_set = getattr(should_cancel, "is_set", None)
    if callable(is_set):
        return bool(is_set())
    return bool(should_cancel())


def calculate_batch(
    db: Session,
    month: date | datetime | str,
    should_cancel: CancelCheck | Any | None = None,
    *,
    partner_types: Iterable[PartnerTypeEnum | str] | None = None,
    revenue_source: RevenueSource | None = None,
) -> BatchResult:
    """Sweep every partner (optionally filtered by type) for ``month``.

    ``should_cancel`` may be a callable or a ``threading.Event``; it is
    checked between partners and partners already written keep their result.
    """
    commission_month = month_start(month)
    types = [PartnerTypeEnum(value) for value in (partner_types or settings.BATCH_PARTNER_TYPES or [])]
    partner_ids = [partner.id for partner in list_partners(db, partner_types=types)]
    result = BatchResult(commission_month=commission_month)
    started = monotonic()

    for partner_id in partner_ids:
        if _cancel_requested(should_cancel):
            result.cancelled = True
            logger.info(
                "batch.cancelled",
                extra={"commission_month": commission_month.isoformat(), "partner_id": partner_id},
            )
            break
        try:
            outcome = calculate_one(db, partner_id, commission_month, revenue_source=revenue_source)
        except CommissionError as exc:
            db.rollback()
            result.failed.append(BatchFailure(partner_id=partner_id, code=exc.code, message=exc.message))
            logger.warning(
                "batch.partner_failed",
                extra={"partner_id": partner_id, "error_code": exc.code, "commission_month": commission_month.isoformat()},
            )
            continue
        except SQLAlchemyError as exc:
            db.rollback()
            result.failed.append(BatchFailure(partner_id=partner_id, code="database_error", message=str(exc)))
            logger.exception(
                "batch.partner_failed",
                extra={"partner_id": partner_id, "error_code": "database_error"},
            )
            continue
        if outcome.skipped:
            result.skipped.append(partner_id)
        else:
            result.succeeded.append(outcome)

    record_batch_run(
        duration_seconds=monotonic() - started,
        succeeded=len(result.succeeded),
        skipped=len(result.skipped),
        failed=len(result.failed),
    )
    logger.info("batch.completed", extra=result.summary())
    return result


def list_records(
    db: Session,
    partner_id: int | None = None,
    month_from: date | str | None = None,
    month_to: date | str | None = None,
    payment_status: PaymentStatusEnum | str | None = None,
    partner_type: PartnerTypeEnum | str | None = None,
) -> list[CommissionRecord]:
    return crud_commissions.list_records(
        db,
        partner_id=partner_id,
        month_from=month_start(month_from) if month_from else None,
        month_to=month_start(month_to) if month_to else None,
        payment_status=PaymentStatusEnum(payment_status) if payment_status else None,
        partner_type=PartnerTypeEnum(partner_type) if partner_type else None,
    )


def record_summary(db: Session, *, month: date | str | None = None) -> dict[str, Any]:
    commission_month = month_start(month) if month else None
    return {
        "total_records": crud_commissions.count_records(db, month=commission_month),
        "pending_count": crud_commissions.count_records(
            db, payment_status=PaymentStatusEnum.PENDING, month=commission_month
        ),
        "paid_count": crud_commissions.count_records(
            db, payment_status=PaymentStatusEnum.PAID, month=commission_month
        ),
        "total_pending": crud_commissions.sum_amounts(
            db, payment_status=PaymentStatusEnum.PENDING, month=commission_month
        ),
        "total_paid": crud_commissions.sum_amounts(
            db, payment_status=PaymentStatusEnum.PAID, month=commission_month
        ),
    }


def get_record_or_raise(db: Session, record_id: int) -> CommissionRecord:
    record = crud_commissions.get_record(db, record_id=record_id)
    if not record:
        raise RecordNotFound(record_id=record_id)
    return record


def mark_processing(
    db: Session,
    record_id: int,
    *,
    processor: PayoutProcessor | None = None,
) -> CommissionRecord:
    record = get_record_or_raise(db, record_id)
    return settlement.mark_processing(db, record, processor=processor or get_payout_processor())


def mark_paid(
    db: Session,
    record_id: int,
    payment_date: datetime | None = None,
    *,
    payment_method: str | None = None,
    payment_reference: str | None = None,
) -> CommissionRecord:
    record = get_record_or_raise(db, record_id)
    return settlement.mark_paid(
        db,
        record,
        payment_date=payment_date,
        payment_method=payment_method,
        payment_reference=payment_reference,
    )


def mark_failed(
    db: Session,
    record_id: int,
    reason: str,
    *,
    auto_retry: bool | None = None,
) -> CommissionRecord:
    record = get_record_or_raise(db, record_id)
    return settlement.mark_failed(db, record, reason=reason, auto_retry=auto_retry)


def retry_record(
    db: Session,
    record_id: int,
    *,
    recalculate: bool = True,
    revenue_source: RevenueSource | None = None,
) -> CommissionRecord:
    """Move a failed record back to pending and, by default, recompute it from fresh inputs.

    If the inputs no longer support a calculation the record keeps its
    previous figures and stays pending.
    """
    record = settlement.retry(db, get_record_or_raise(db, record_id))
    if not recalculate:
        return record
    try:
        outcome = calculate_one(db, record.partner_id, record.commission_month, revenue_source=revenue_source)
    except CommissionCalculationError as exc:
        db.rollback()
        logger.warning(
            "commission.retry_recalculation_failed",
            extra={"commission_id": record.commission_id, "error_code": exc.code},
        )
        db.refresh(record)
        return record
    if outcome.record is None:
        db.refresh(record)
        return record
    return outcome.record
