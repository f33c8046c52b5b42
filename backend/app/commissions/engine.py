"""
Commission calculation engine.

``calculate`` is a pure function of the partner's terms, the month and the
externally supplied inputs. It never touches the database; persisting the
result is the ledger's job.

Rounding happens exactly once: sub-amounts (flat + percentage for hybrid
structures) are summed at full ``Decimal`` precision and only the final
total is quantized to cents with ROUND_HALF_UP.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from app.commissions.errors import MissingConversionCount, MissingRevenueBasis, NegativeInput
from app.commissions.structures import (
    CommissionStructure,
    FlatFee,
    Hybrid,
    NoStructure,
    Percentage,
    PerReferral,
    format_money,
    format_rate,
    format_total,
    parse_structure,
    to_decimal,
)
from app.core.time import month_start, next_month
from app.models.enums import PartnerTypeEnum


CENTS = Decimal("0.01")


@dataclass(frozen=True)
class PartnerTerms:
    """What the engine needs to know about a partner, detached from the ORM."""

    partner_id: int
    partner_type: PartnerTypeEnum
    structure: CommissionStructure
    active: bool = True
    active_from: date | None = None
    active_until: date | None = None

    @classmethod
    def from_model(cls, partner: Any) -> "PartnerTerms":
        return cls(
            partner_id=partner.id,
            partner_type=PartnerTypeEnum(partner.partner_type),
            structure=parse_structure(partner.commission_structure_type, partner.commission_params_json),
            active=bool(partner.active),
            active_from=partner.active_from,
            active_until=partner.active_until,
        )

    def active_for_whole_month(self, month: date) -> bool:
        # No proration: the activity window must cover every day of the month.
        if not self.active:
            return False
        start = month_start(month)
        last_day = date.fromordinal(next_month(start).toordinal() - 1)
        if self.active_from is not None and self.active_from > start:
            return False
        if self.active_until is not None and self.active_until < last_day:
            return False
        return True


@dataclass(frozen=True)
class CalculationResult:
    amount: Decimal
    details: str
    structure: CommissionStructure
    commission_month: date
    revenue_basis: Decimal | None = None
    conversion_count: int | None = None
    consumed_inputs: tuple[str, ...] = field(default_factory=tuple)

    @property
    def skipped(self) -> bool:
        """True when no structure is configured, i.e. no commission is owed at all."""
        return isinstance(self.structure, NoStructure)


def round_amount(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _require_non_negative(value: Decimal, field_name: str) -> Decimal:
    if value < 0:
        raise NegativeInput(field_name=field_name, value=value)
    return value


def _revenue(revenue_basis: Any, structure_name: str) -> Decimal:
    if revenue_basis is None:
        raise MissingRevenueBasis(structure=structure_name)
    return _require_non_negative(to_decimal(revenue_basis, field_name="revenue_basis"), "revenue_basis")


def _conversions(conversion_count: Any, structure_name: str) -> int:
    if conversion_count is None:
        raise MissingConversionCount(structure=structure_name)
    if isinstance(conversion_count, bool):
        raise MissingConversionCount(structure=structure_name)
    count = int(conversion_count)
    if count != conversion_count:
        raise MissingConversionCount(structure=structure_name)
    if count < 0:
        raise NegativeInput(field_name="conversion_count", value=count)
    return count


def _ignored_inputs_note(revenue_basis: Any, conversion_count: Any) -> str:
    ignored: list[str] = []
    if revenue_basis is not None:
        ignored.append(f"revenue basis {format_money(to_decimal(revenue_basis, field_name='revenue_basis'))}")
    if conversion_count is not None:
        ignored.append(f"{conversion_count} conversions")
    if not ignored:
        return ""
    return f" (ignored inputs: {', '.join(ignored)})"


def _flat_part(structure: FlatFee | Hybrid, terms: PartnerTerms, month: date) -> tuple[Decimal, str]:
    monthly = _require_non_negative(structure.monthly_amount, "monthly_amount")
    if terms.active_for_whole_month(month):
        return monthly, f"flat {format_money(monthly)}"
    return Decimal("0"), f"flat {format_money(monthly)} not accrued (partner not active for the full month)"


def _percentage_part(rate: Decimal, revenue: Decimal) -> tuple[Decimal, str]:
    rate = _require_non_negative(rate, "rate")
    return revenue * rate / Decimal(100), f"{format_rate(rate)} × {format_money(revenue)} revenue"


def calculate(
    terms: PartnerTerms,
    month: date,
    revenue_basis: Any = None,
    conversion_count: Any = None,
) -> CalculationResult:
    """Compute one partner's commission for one month.

    Raises ``MissingRevenueBasis``, ``MissingConversionCount`` or
    ``NegativeInput`` when the inputs can't support the structure.
    """
    commission_month = month_start(month)
    structure = terms.structure

    if isinstance(structure, NoStructure):
        return CalculationResult(
            amount=Decimal("0.00"),
            details="No commission structure configured",
            structure=structure,
            commission_month=commission_month,
        )

    if isinstance(structure, FlatFee):
        raw, text = _flat_part(structure, terms, commission_month)
        total = round_amount(raw)
        details = f"{text} = {format_total(total)}{_ignored_inputs_note(revenue_basis, conversion_count)}"
        return CalculationResult(
            amount=total,
            details=details,
            structure=structure,
            commission_month=commission_month,
        )

    if isinstance(structure, Percentage):
        revenue = _revenue(revenue_basis, "percentage")
        raw, text = _percentage_part(structure.rate, revenue)
        total = round_amount(raw)
        return CalculationResult(
            amount=total,
            details=f"{text} = {format_total(total)}{_ignored_inputs_note(None, conversion_count)}",
            structure=structure,
            commission_month=commission_month,
            revenue_basis=revenue,
            consumed_inputs=("revenue_basis",),
        )

    if isinstance(structure, PerReferral):
        count = _conversions(conversion_count, "per_referral")
        per_conversion = _require_non_negative(structure.amount_per_conversion, "amount_per_conversion")
        total = round_amount(per_conversion * count)
        return CalculationResult(
            amount=total,
            details=(
                f"{count} conversions × {format_money(per_conversion)} = {format_total(total)}"
                f"{_ignored_inputs_note(revenue_basis, None)}"
            ),
            structure=structure,
            commission_month=commission_month,
            conversion_count=count,
            consumed_inputs=("conversion_count",),
        )

    if isinstance(structure, Hybrid):
        # Revenue basis is always required, even when the flat part alone would succeed.
        revenue = _revenue(revenue_basis, "hybrid")
        flat_raw, flat_text = _flat_part(structure, terms, commission_month)
        pct_raw, pct_text = _percentage_part(structure.rate, revenue)
        total = round_amount(flat_raw + pct_raw)
        return CalculationResult(
            amount=total,
            details=(
                f"{flat_text} + {pct_text} = {format_total(total)}"
                f"{_ignored_inputs_note(None, conversion_count)}"
            ),
            structure=structure,
            commission_month=commission_month,
            revenue_basis=revenue,
            consumed_inputs=("revenue_basis",),
        )

    raise TypeError(f"Unsupported commission structure: {structure!r}")
