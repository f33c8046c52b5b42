from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.commissions import service
from app.commissions.errors import PartnerNotFound
from app.commissions.service import CommissionOutcome
from app.core.db import get_db
from app.core.time import month_start
from app.crud.commissions import list_events
from app.crud.partners import get_partner
from app.crud.revenue_inputs import upsert_monthly_input
from app.models.enums import CommissionStructureTypeEnum, PartnerTypeEnum, PaymentStatusEnum
from app.schemas.commissions import (
    BatchFailureRead,
    CommissionBatchRequest,
    CommissionBatchResponse,
    CommissionCalculateRequest,
    CommissionCalculateResponse,
    CommissionEventRead,
    CommissionMarkFailed,
    CommissionMarkPaid,
    CommissionRecordRead,
    CommissionRetry,
    CommissionSummary,
    MonthlyInputRead,
    MonthlyInputUpsert,
)


router = APIRouter(prefix="/admin/commissions", tags=["commissions"])


def _float(value) -> float | None:
    if value is None:
        return None
    return float(value)


def _parse_month(value: str):
    try:
        return month_start(value)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail="Month must look like YYYY-MM") from exc


def _record_read(record) -> CommissionRecordRead:
    partner = record.partner
    return CommissionRecordRead(
        id=record.id,
        commission_id=record.commission_id,
        partner_id=record.partner_id,
        partner_code=partner.partner_code if partner else None,
        partner_name=partner.name if partner else None,
        commission_month=record.commission_month,
        recipient_type=PartnerTypeEnum(record.recipient_type).value,
        calculation_method=CommissionStructureTypeEnum(record.calculation_method).value,
        calculation_params=record.calculation_params_json if isinstance(record.calculation_params_json, dict) else None,
        revenue_basis=_float(record.revenue_basis),
        conversion_count=record.conversion_count,
        commission_amount=float(record.commission_amount or 0),
        currency=record.currency,
        calculation_details=record.calculation_details,
        calculated_at=record.calculated_at,
        calculation_count=record.calculation_count or 1,
        payment_status=PaymentStatusEnum(record.payment_status).value,
        payment_date=record.payment_date,
        processing_handle=record.processing_handle,
        payment_method=record.payment_method,
        payment_reference=record.payment_reference,
        failure_reason=record.failure_reason,
        notes=record.notes,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _outcome_read(outcome: CommissionOutcome) -> CommissionCalculateResponse:
    return CommissionCalculateResponse(
        partner_id=outcome.partner_id,
        commission_month=outcome.commission_month,
        outcome=outcome.outcome,
        amount=float(outcome.result.amount),
        details=outcome.result.details,
        record=_record_read(outcome.record) if outcome.record is not None else None,
    )


def _parse_enum(enum_cls, value: str | None, label: str):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid {label}") from exc


@router.post("/calculate", response_model=CommissionCalculateResponse)
def calculate_commission(
    payload: CommissionCalculateRequest,
    db: Session = Depends(get_db),
):
    month = _parse_month(payload.month)
    outcome = service.calculate_one(db, payload.partner_id, month)
    return _outcome_read(outcome)


@router.post("/calculate-batch", response_model=CommissionBatchResponse)
def calculate_commission_batch(
    payload: CommissionBatchRequest,
    db: Session = Depends(get_db),
):
    month = _parse_month(payload.month)
    types = [_parse_enum(PartnerTypeEnum, value, "partner type") for value in (payload.partner_types or [])]
    result = service.calculate_batch(db, month, partner_types=types or None)
    return CommissionBatchResponse(
        commission_month=result.commission_month,
        succeeded=[_outcome_read(item) for item in result.succeeded],
        skipped=result.skipped,
        failed=[
            BatchFailureRead(partner_id=item.partner_id, code=item.code, message=item.message)
            for item in result.failed
        ],
        cancelled=result.cancelled,
        total_amount=float(sum((item.result.amount for item in result.succeeded), Decimal("0"))),
    )


@router.get("/records", response_model=list[CommissionRecordRead])
def list_commission_records(
    partner_id: Optional[int] = Query(default=None),
    month: Optional[str] = Query(default=None),
    month_from: Optional[str] = Query(default=None),
    month_to: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    partner_type: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    if month:
        month_from = month_to = month
    records = service.list_records(
        db,
        partner_id=partner_id,
        month_from=_parse_month(month_from) if month_from else None,
        month_to=_parse_month(month_to) if month_to else None,
        payment_status=_parse_enum(PaymentStatusEnum, status, "payment status"),
        partner_type=_parse_enum(PartnerTypeEnum, partner_type, "partner type"),
    )
    return [_record_read(record) for record in records]


@router.get("/summary", response_model=CommissionSummary)
def commission_summary(
    month: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    commission_month = _parse_month(month) if month else None
    summary = service.record_summary(db, month=commission_month)
    return CommissionSummary(month=month, **summary)


@router.get("/records/{record_id}", response_model=CommissionRecordRead)
def get_commission_record(
    record_id: int,
    db: Session = Depends(get_db),
):
    return _record_read(service.get_record_or_raise(db, record_id))


@router.get("/records/{record_id}/events", response_model=list[CommissionEventRead])
def list_commission_events(
    record_id: int,
    db: Session = Depends(get_db),
):
    record = service.get_record_or_raise(db, record_id)
    return [
        CommissionEventRead(
            id=row.id,
            record_id=row.record_id,
            event=row.event.value if hasattr(row.event, "value") else str(row.event),
            from_status=row.from_status,
            to_status=row.to_status,
            amount=_float(row.amount),
            detail=row.detail,
            created_at=row.created_at,
        )
        for row in list_events(db, record_id=record.id)
    ]


@router.post("/records/{record_id}/processing", response_model=CommissionRecordRead)
def mark_commission_processing(
    record_id: int,
    db: Session = Depends(get_db),
):
    return _record_read(service.mark_processing(db, record_id))


@router.post("/records/{record_id}/paid", response_model=CommissionRecordRead)
def mark_commission_paid(
    record_id: int,
    payload: CommissionMarkPaid,
    db: Session = Depends(get_db),
):
    record = service.mark_paid(
        db,
        record_id,
        payload.payment_date,
        payment_method=payload.payment_method,
        payment_reference=payload.payment_reference,
    )
    return _record_read(record)


@router.post("/records/{record_id}/failed", response_model=CommissionRecordRead)
def mark_commission_failed(
    record_id: int,
    payload: CommissionMarkFailed,
    db: Session = Depends(get_db),
):
    record = service.mark_failed(db, record_id, payload.reason, auto_retry=payload.auto_retry)
    return _record_read(record)


@router.post("/records/{record_id}/retry", response_model=CommissionRecordRead)
def retry_commission(
    record_id: int,
    payload: Optional[CommissionRetry] = None,
    db: Session = Depends(get_db),
):
    recalculate = payload.recalculate if payload is not None else True
    return _record_read(service.retry_record(db, record_id, recalculate=recalculate))


@router.put("/inputs", response_model=MonthlyInputRead)
def upsert_commission_inputs(
    payload: MonthlyInputUpsert,
    db: Session = Depends(get_db),
):
    if not get_partner(db, partner_id=payload.partner_id):
        raise PartnerNotFound(partner_id=payload.partner_id)
    if payload.revenue_basis is not None and payload.revenue_basis < 0:
        raise HTTPException(status_code=422, detail="revenue_basis must not be negative")
    row = upsert_monthly_input(
        db,
        partner_id=payload.partner_id,
        month=_parse_month(payload.month),
        revenue_basis=Decimal(str(payload.revenue_basis)) if payload.revenue_basis is not None else None,
        conversion_count=payload.conversion_count,
        source=payload.source,
    )
    return MonthlyInputRead(
        id=row.id,
        partner_id=row.partner_id,
        input_month=row.input_month,
        revenue_basis=_float(row.revenue_basis),
        conversion_count=row.conversion_count,
        source=row.source,
        updated_at=row.updated_at,
    )
