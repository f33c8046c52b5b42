from decimal import Decimal

import pytest

from app.commissions.structures import (
    FlatFee,
    Hybrid,
    NoStructure,
    Percentage,
    PerReferral,
    parse_structure,
    uses_conversion_count,
    uses_revenue_basis,
    validate_structure,
)
from app.models.enums import CommissionStructureTypeEnum


def test_parse_structure_builds_each_variant():
    assert parse_structure("none", None) == NoStructure()
    assert parse_structure(None, {"rate": "5"}) == NoStructure()
    assert parse_structure("flat_fee", {"monthly_amount": "200"}) == FlatFee(monthly_amount=Decimal("200"))
    assert parse_structure(CommissionStructureTypeEnum.PERCENTAGE, {"rate": 5}) == Percentage(rate=Decimal("5"))
    assert parse_structure("per_referral", {"amount_per_conversion": "25"}) == PerReferral(
        amount_per_conversion=Decimal("25")
    )
    assert parse_structure("hybrid", {"monthly_amount": "200", "rate": "3.5"}) == Hybrid(
        monthly_amount=Decimal("200"),
        rate=Decimal("3.5"),
    )


def test_flat_fee_ignores_stray_rate():
    structure = parse_structure("flat_fee", {"monthly_amount": "200", "rate": "5"})
    assert structure == FlatFee(monthly_amount=Decimal("200"))
    assert structure.to_params() == {"monthly_amount": "200"}


def test_parse_structure_rejects_unknown_type():
    with pytest.raises(ValueError):
        parse_structure("tiered", {})


def test_parse_structure_rejects_missing_params():
    with pytest.raises(ValueError):
        parse_structure("percentage", {})
    with pytest.raises(ValueError):
        parse_structure("hybrid", {"monthly_amount": "200"})


def test_parse_structure_rejects_non_numeric_params():
    with pytest.raises(ValueError):
        parse_structure("flat_fee", {"monthly_amount": "lots"})


def test_round_trip_through_params():
    structure = Hybrid(monthly_amount=Decimal("133.333"), rate=Decimal("2.5"))
    assert parse_structure(structure.type, structure.to_params()) == structure


def test_display_strings():
    assert NoStructure().describe() == "none"
    assert Percentage(rate=Decimal("5")).describe() == "5%"
    assert FlatFee(monthly_amount=Decimal("200")).describe() == "$200/mo"
    assert PerReferral(amount_per_conversion=Decimal("25")).describe() == "$25/ref"
    assert Hybrid(monthly_amount=Decimal("200"), rate=Decimal("3.5")).describe() == "$200 + 3.5%"
    assert FlatFee(monthly_amount=Decimal("1250.50")).describe() == "$1,250.5/mo"


def test_input_requirements():
    assert uses_revenue_basis(Percentage(rate=Decimal("5")))
    assert uses_revenue_basis(Hybrid(monthly_amount=Decimal("1"), rate=Decimal("1")))
    assert not uses_revenue_basis(FlatFee(monthly_amount=Decimal("1")))
    assert uses_conversion_count(PerReferral(amount_per_conversion=Decimal("1")))
    assert not uses_conversion_count(Percentage(rate=Decimal("5")))


def test_validate_structure():
    validate_structure(Percentage(rate=Decimal("100")))
    with pytest.raises(ValueError):
        validate_structure(Percentage(rate=Decimal("100.5")))
    with pytest.raises(ValueError):
        validate_structure(FlatFee(monthly_amount=Decimal("-1")))
    with pytest.raises(ValueError):
        validate_structure(PerReferral(amount_per_conversion=Decimal("-0.01")))
