from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


class CommissionCalculateRequest(BaseModel):
    partner_id: int
    month: str = Field(..., description="Commission month as YYYY-MM")


class CommissionBatchRequest(BaseModel):
    month: str = Field(..., description="Commission month as YYYY-MM")
    partner_types: Optional[list[str]] = None


class CommissionRecordRead(BaseModel):
    id: int
    commission_id: str
    partner_id: int
    partner_code: str | None = None
    partner_name: str | None = None
    commission_month: date
    recipient_type: str
    calculation_method: str
    calculation_params: dict | None = None
    revenue_basis: float | None = None
    conversion_count: int | None = None
    commission_amount: float
    currency: str
    calculation_details: str
    calculated_at: datetime | None = None
    calculation_count: int
    payment_status: str
    payment_date: datetime | None = None
    processing_handle: str | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    failure_reason: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CommissionCalculateResponse(BaseModel):
    partner_id: int
    commission_month: date
    outcome: str
    amount: float
    details: str
    record: CommissionRecordRead | None = None


class BatchFailureRead(BaseModel):
    partner_id: int
    code: str
    message: str


class CommissionBatchResponse(BaseModel):
    commission_month: date
    succeeded: list[CommissionCalculateResponse]
    skipped: list[int]
    failed: list[BatchFailureRead]
    cancelled: bool
    total_amount: float


class CommissionEventRead(BaseModel):
    id: int
    record_id: int
    event: str
    from_status: str | None = None
    to_status: str | None = None
    amount: float | None = None
    detail: str | None = None
    created_at: datetime


class CommissionMarkPaid(BaseModel):
    payment_date: datetime | None = None
    payment_method: str | None = None
    payment_reference: str | None = None


class CommissionMarkFailed(BaseModel):
    reason: str = Field(..., min_length=1)
    auto_retry: bool | None = None


class CommissionRetry(BaseModel):
    recalculate: bool = True


class CommissionSummary(BaseModel):
    month: str | None = None
    total_records: int
    pending_count: int
    paid_count: int
    total_pending: float
    total_paid: float


class MonthlyInputUpsert(BaseModel):
    partner_id: int
    month: str = Field(..., description="Input month as YYYY-MM")
    revenue_basis: float | None = None
    conversion_count: int | None = Field(default=None, ge=0)
    source: str | None = None


class MonthlyInputRead(BaseModel):
    id: int
    partner_id: int
    input_month: date
    revenue_basis: float | None = None
    conversion_count: int | None = None
    source: str | None = None
    updated_at: datetime | None = None
