from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from app.core.time import month_start
from app.crud.revenue_inputs import get_monthly_input


@dataclass(frozen=True)
class RevenueInputs:
    # None means "not supplied", never zero.
    revenue_basis: Decimal | None = None
    conversion_count: int | None = None


class RevenueSource:
    def fetch(self, partner_id: int, month: date) -> RevenueInputs:
        raise NotImplementedError


class StoredRevenueSource(RevenueSource):
    """Reads inputs registered in ``partner_monthly_inputs``."""

    def __init__(self, db: Session):
        self.db = db

    def fetch(self, partner_id: int, month: date) -> RevenueInputs:
        row = get_monthly_input(self.db, partner_id=partner_id, month=month_start(month))
        if not row:
            return RevenueInputs()
        return RevenueInputs(
            revenue_basis=Decimal(str(row.revenue_basis)) if row.revenue_basis is not None else None,
            conversion_count=int(row.conversion_count) if row.conversion_count is not None else None,
        )


class StaticRevenueSource(RevenueSource):
    """Fixed inputs keyed by (partner_id, month); handy for ad-hoc runs and tests."""

    def __init__(self, inputs: dict[tuple[int, date], RevenueInputs] | None = None):
        self._inputs = {
            (partner_id, month_start(month)): value
            for (partner_id, month), value in (inputs or {}).items()
        }

    def fetch(self, partner_id: int, month: date) -> RevenueInputs:
        return self._inputs.get((partner_id, month_start(month)), RevenueInputs())
