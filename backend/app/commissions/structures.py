"""
Commission structures as a tagged variant.

Each variant only carries the parameters that mean something for it, so a
flat fee can never hold a stray percentage. Persisted as a type string plus
a JSON object of parameters (see ``Partner.commission_params_json`` and the
``calculation_params_json`` snapshot on commission records).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Union

from app.models.enums import CommissionStructureTypeEnum


def to_decimal(value: Any, *, field_name: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field_name} is required")
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid decimal value for {field_name}: {value!r}") from exc
    if parsed.is_nan() or parsed.is_infinite():
        raise ValueError(f"{field_name} must be a finite number")
    return parsed


def format_money(value: Decimal) -> str:
    """Render an amount for audit strings: ``$12,400`` or ``$133.333``."""
    if value == value.to_integral_value():
        return f"${value.quantize(Decimal(1)):,}"
    return f"${value.normalize():,f}"


def format_total(value: Decimal) -> str:
    return f"${value:,}"


def format_rate(value: Decimal) -> str:
    if value == value.to_integral_value():
        return f"{value.quantize(Decimal(1))}%"
    return f"{value.normalize():f}%"


@dataclass(frozen=True)
class NoStructure:
    type = CommissionStructureTypeEnum.NONE

    def to_params(self) -> dict[str, str]:
        return {}

    def describe(self) -> str:
        return "none"


@dataclass(frozen=True)
class FlatFee:
    monthly_amount: Decimal
    type = CommissionStructureTypeEnum.FLAT_FEE

    def to_params(self) -> dict[str, str]:
        return {"monthly_amount": str(self.monthly_amount)}

    def describe(self) -> str:
        return f"{format_money(self.monthly_amount)}/mo"


@dataclass(frozen=True)
class Percentage:
    rate: Decimal
    type = CommissionStructureTypeEnum.PERCENTAGE

    def to_params(self) -> dict[str, str]:
        return {"rate": str(self.rate)}

    def describe(self) -> str:
        return format_rate(self.rate)


@dataclass(frozen=True)
class PerReferral:
    amount_per_conversion: Decimal
    type = CommissionStructureTypeEnum.PER_REFERRAL

    def to_params(self) -> dict[str, str]:
        return {"amount_per_conversion": str(self.amount_per_conversion)}

    def describe(self) -> str:
        return f"{format_money(self.amount_per_conversion)}/ref"


@dataclass(frozen=True)
class Hybrid:
    monthly_amount: Decimal
    rate: Decimal
    type = CommissionStructureTypeEnum.HYBRID

    def to_params(self) -> dict[str, str]:
        return {"monthly_amount": str(self.monthly_amount), "rate": str(self.rate)}

    def describe(self) -> str:
        return f"{format_money(self.monthly_amount)} + {format_rate(self.rate)}"


CommissionStructure = Union[NoStructure, FlatFee, Percentage, PerReferral, Hybrid]


def uses_revenue_basis(structure: CommissionStructure) -> bool:
    return isinstance(structure, (Percentage, Hybrid))


def uses_conversion_count(structure: CommissionStructure) -> bool:
    return isinstance(structure, PerReferral)


def parse_structure(structure_type: str | CommissionStructureTypeEnum | None, params: dict | None) -> CommissionStructure:
    """Build the variant for a stored type + params pair.

    Unknown keys in ``params`` are ignored; missing required keys raise ``ValueError``.
    """
    if structure_type is None:
        return NoStructure()
    try:
        kind = CommissionStructureTypeEnum(structure_type)
    except ValueError as exc:
        raise ValueError(f"Unknown commission structure: {structure_type!r}") from exc
    params = params if isinstance(params, dict) else {}

    if kind == CommissionStructureTypeEnum.NONE:
        return NoStructure()
    if kind == CommissionStructureTypeEnum.FLAT_FEE:
        return FlatFee(monthly_amount=to_decimal(params.get("monthly_amount"), field_name="monthly_amount"))
    if kind == CommissionStructureTypeEnum.PERCENTAGE:
        return Percentage(rate=to_decimal(params.get("rate"), field_name="rate"))
    if kind == CommissionStructureTypeEnum.PER_REFERRAL:
        return PerReferral(
            amount_per_conversion=to_decimal(
                params.get("amount_per_conversion"),
                field_name="amount_per_conversion",
            )
        )
    return Hybrid(
        monthly_amount=to_decimal(params.get("monthly_amount"), field_name="monthly_amount"),
        rate=to_decimal(params.get("rate"), field_name="rate"),
    )


def validate_structure(structure: CommissionStructure) -> None:
    """Reject configurations that could never produce a valid commission."""
    for name in ("monthly_amount", "rate", "amount_per_conversion"):
        value = getattr(structure, name, None)
        if value is not None and value < 0:
            raise ValueError(f"{name} must not be negative")
    rate = getattr(structure, "rate", None)
    if rate is not None and rate > 100:
        raise ValueError("rate must be between 0 and 100")
