from enum import Enum

# Stored as strings (native enums disabled for easier evolution).


class PartnerTypeEnum(str, Enum):
    LOCATION = "location"
    REFERRAL = "referral"
    CHANNEL = "channel"
    RELATIONSHIP = "relationship"
    CONTRACTOR = "contractor"


class CommissionStructureTypeEnum(str, Enum):
    NONE = "none"
    FLAT_FEE = "flat_fee"
    PERCENTAGE = "percentage"
    PER_REFERRAL = "per_referral"
    HYBRID = "hybrid"


class PayeeStatusEnum(str, Enum):
    # Only active payees can receive money; the others still accrue.
    NOT_LINKED = "not_linked"
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class PaymentStatusEnum(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"


class CommissionEventEnum(str, Enum):
    CALCULATED = "calculated"
    RECALCULATED = "recalculated"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    RETRIED = "retried"


EDITABLE_PAYMENT_STATUSES = frozenset({PaymentStatusEnum.PENDING, PaymentStatusEnum.FAILED})
LOCKED_PAYMENT_STATUSES = frozenset({PaymentStatusEnum.PROCESSING, PaymentStatusEnum.PAID})
