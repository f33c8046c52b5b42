from __future__ import annotations

from app.models.commissions import CommissionRecord
from app.models.partners import Partner
from app.payouts.base import PayoutLink, PayoutProcessor


class ManualPayoutProcessor(PayoutProcessor):
    """Money is moved by hand; confirmation arrives through mark_paid / mark_failed."""

    name = "manual"

    def is_payable(self, link: PayoutLink) -> bool:
        return link.is_active

    def submit(self, *, record: CommissionRecord, partner: Partner) -> str:
        _ = partner
        return f"manual-{record.commission_id}"
