from __future__ import annotations

from dataclasses import dataclass

from app.models.commissions import CommissionRecord
from app.models.enums import PayeeStatusEnum
from app.models.partners import Partner


@dataclass(frozen=True)
class PayoutLink:
    payee_id: str | None
    status: PayeeStatusEnum

    @classmethod
    def from_partner(cls, partner: Partner) -> "PayoutLink":
        return cls(
            payee_id=partner.payout_payee_id,
            status=PayeeStatusEnum(partner.payout_status or PayeeStatusEnum.NOT_LINKED),
        )

    @property
    def is_active(self) -> bool:
        return bool(self.payee_id) and self.status == PayeeStatusEnum.ACTIVE


class PayoutProcessor:
    name = "base"

    def is_payable(self, link: PayoutLink) -> bool:
        raise NotImplementedError

    def submit(self, *, record: CommissionRecord, partner: Partner) -> str:
        """Hand the record to the processor and return its processing handle."""
        raise NotImplementedError
