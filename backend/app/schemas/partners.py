from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class CommissionStructureIn(BaseModel):
    type: str = Field(..., description="none, flat_fee, percentage, per_referral or hybrid")
    monthly_amount: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    amount_per_conversion: Optional[Decimal] = None


class PartnerCreate(BaseModel):
    name: str = Field(..., min_length=1)
    partner_type: str
    partner_code: Optional[str] = None
    company_name: Optional[str] = None
    email: Optional[str] = None
    commission: Optional[CommissionStructureIn] = None
    commission_notes: Optional[str] = None
    active: bool = True
    active_from: Optional[date] = None
    active_until: Optional[date] = None


class PartnerCommissionUpdate(BaseModel):
    commission: CommissionStructureIn
    commission_notes: Optional[str] = None


class PartnerActivityUpdate(BaseModel):
    active: bool
    active_from: Optional[date] = None
    active_until: Optional[date] = None


class PayoutLinkUpdate(BaseModel):
    payee_id: Optional[str] = None
    status: str
    payout_method: Optional[str] = None


class PartnerRead(BaseModel):
    id: int
    partner_code: str
    name: str
    company_name: str | None = None
    email: str | None = None
    partner_type: str
    commission_structure_type: str
    commission_params: dict | None = None
    commission_display: str
    commission_notes: str | None = None
    payout_payee_id: str | None = None
    payout_status: str
    payout_method: str | None = None
    payout_onboarded_at: datetime | None = None
    active: bool
    active_from: date | None = None
    active_until: date | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
