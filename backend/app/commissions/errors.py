"""
Error taxonomy for commission calculation and settlement.

Every error carries a stable ``code`` and an HTTP ``status_code`` so the API
layer can render it without knowing the concrete class.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class CommissionError(Exception):
    code: str
    message: str
    status_code: int = 400
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        for key, value in self.context.items():
            if value is not None:
                payload[key] = value
        return payload


class CommissionCalculationError(CommissionError):
    """The commission for one partner/month could not be computed."""


class MissingRevenueBasis(CommissionCalculationError):
    def __init__(self, *, structure: str):
        super().__init__(
            code="missing_revenue_basis",
            message=f"Revenue basis is required for {structure} commissions",
            status_code=422,
            context={"structure": structure},
        )


class MissingConversionCount(CommissionCalculationError):
    def __init__(self, *, structure: str):
        super().__init__(
            code="missing_conversion_count",
            message=f"Conversion count is required for {structure} commissions",
            status_code=422,
            context={"structure": structure},
        )


class NegativeInput(CommissionCalculationError):
    def __init__(self, *, field_name: str, value: Any):
        super().__init__(
            code="negative_input",
            message=f"{field_name} must not be negative",
            status_code=422,
            context={"field": field_name, "value": str(value)},
        )


class InvalidStructure(CommissionCalculationError):
    def __init__(self, *, partner_id: int, reason: str):
        super().__init__(
            code="invalid_structure",
            message=f"Stored commission structure is invalid: {reason}",
            status_code=422,
            context={"partner_id": partner_id},
        )


class RecordLocked(CommissionError):
    def __init__(self, *, commission_id: str, payment_status: str):
        super().__init__(
            code="record_locked",
            message=f"Commission {commission_id} is {payment_status} and can no longer be changed",
            status_code=409,
            context={"commission_id": commission_id, "payment_status": payment_status},
        )


class PayeeNotPayable(CommissionError):
    def __init__(self, *, partner_id: int, payout_status: str | None):
        super().__init__(
            code="payee_not_payable",
            message="Partner has no active payout payee",
            status_code=409,
            context={"partner_id": partner_id, "payout_status": payout_status},
        )


class DuplicateKeyRace(CommissionError):
    """Lost a concurrent insert on (partner_id, commission_month). Retried by the ledger."""

    def __init__(self, *, partner_id: int, commission_month: str):
        super().__init__(
            code="duplicate_key_race",
            message="Concurrent commission insert collided",
            status_code=409,
            context={"partner_id": partner_id, "commission_month": commission_month},
        )


class InvalidTransition(CommissionError):
    def __init__(self, *, commission_id: str, from_status: str, to_status: str):
        super().__init__(
            code="invalid_transition",
            message=f"Cannot move commission {commission_id} from {from_status} to {to_status}",
            status_code=409,
            context={
                "commission_id": commission_id,
                "from_status": from_status,
                "to_status": to_status,
            },
        )


class PartnerNotFound(CommissionError):
    def __init__(self, *, partner_id: int):
        super().__init__(
            code="partner_not_found",
            message="Partner not found",
            status_code=404,
            context={"partner_id": partner_id},
        )


class RecordNotFound(CommissionError):
    def __init__(self, *, record_id: int | str):
        super().__init__(
            code="record_not_found",
            message="Commission record not found",
            status_code=404,
            context={"record_id": record_id},
        )


class PayoutSubmissionError(CommissionError):
    """``outcome_unknown`` means the processor may already hold the bill (timeout, 5xx)."""

    def __init__(self, message: str, *, commission_id: str | None = None, outcome_unknown: bool = False):
        super().__init__(
            code="payout_submission_failed",
            message=message,
            status_code=502,
            context={"commission_id": commission_id, "outcome_unknown": outcome_unknown or None},
        )
        self.outcome_unknown = outcome_unknown


class StructureRemoved(CommissionError):
    """The partner has no structure now, but an unpaid record for the month still exists."""

    def __init__(self, *, commission_id: str, partner_id: int):
        super().__init__(
            code="structure_removed",
            message=f"Partner has no commission structure but {commission_id} is still payable",
            status_code=409,
            context={"commission_id": commission_id, "partner_id": partner_id},
        )
