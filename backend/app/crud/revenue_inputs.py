from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from app.models.commissions import PartnerMonthlyInput


def get_monthly_input(db: Session, *, partner_id: int, month: date) -> PartnerMonthlyInput | None:
    return (
        db.query(PartnerMonthlyInput)
        .filter(
            PartnerMonthlyInput.partner_id == partner_id,
            PartnerMonthlyInput.input_month == month,
        )
        .first()
    )


def upsert_monthly_input(
    db: Session,
    *,
    partner_id: int,
    month: date,
    revenue_basis: Decimal | None,
    conversion_count: int | None,
    source: str | None = None,
) -> PartnerMonthlyInput:
    row = get_monthly_input(db, partner_id=partner_id, month=month)
    if row:
        row.revenue_basis = revenue_basis
        row.conversion_count = conversion_count
        row.source = source
    else:
        row = PartnerMonthlyInput(
            partner_id=partner_id,
            input_month=month,
            revenue_basis=revenue_basis,
            conversion_count=conversion_count,
            source=source,
        )
        db.add(row)
    db.commit()
    db.refresh(row)
    return row
