from .partners import Partner
from .commissions import CommissionEvent, CommissionRecord, PartnerMonthlyInput

__all__ = [
    "Partner",
    "CommissionRecord",
    "CommissionEvent",
    "PartnerMonthlyInput",
]
