from __future__ import annotations

import pytest

from app.core.errors import ValidationError
from app.domain.catalog.pricing import (
    Variant,
    allowed_keys,
    build_pricing,
    classify,
    required_fields,
    validate_pricing,
)


@pytest.mark.parametrize(
    "name,variant",
    [
        ("Crepe", Variant.crepe),
        ("crepe pizza", Variant.crepe),
        ("  Crepe Pizza ", Variant.crepe),
        ("Pizza", Variant.pizza),
        ("Sandwiches", Variant.sandwich),
        ("Drinks", Variant.simple),
        ("", Variant.simple),
        (None, Variant.simple),
    ],
)
def test_classify_by_secondary_name(name, variant):
    assert classify(name) == variant


def test_required_fields_per_variant():
    assert [f.key for f in required_fields(Variant.simple)] == ["price"]
    assert [f.key for f in required_fields(Variant.sandwich)] == ["price", "price_large"]
    assert [f.key for f in required_fields(Variant.pizza)] == ["price", "price_medium", "price_large"]
    assert [f.key for f in required_fields(Variant.crepe)] == [
        "price",
        "price_medium",
        "price_large",
        "price_family",
    ]
    assert "offers" in allowed_keys(Variant.simple)


def test_build_pricing_coerces_and_omits_empty_offers():
    out = build_pricing(Variant.sandwich, {"price": "25", "price_large": "35", "offers": ""})
    assert out == {"price": 25.0, "price_large": 35.0}

    out2 = build_pricing(Variant.simple, {"price": 10, "offers": " 2.5 "})
    assert out2 == {"price": 10.0, "offers": 2.5}


def test_build_pricing_ignores_fields_of_other_variants():
    # price_medium was typed while Pizza was selected, then the user switched to Sandwiches
    out = build_pricing(Variant.sandwich, {"price": "25", "price_medium": "30", "price_large": "35"})
    assert "price_medium" not in out


def test_build_pricing_requires_every_variant_field():
    with pytest.raises(ValidationError) as ei:
        build_pricing(Variant.pizza, {"price": "30", "price_medium": "", "price_large": "50"})
    assert ei.value.code == "price_required"
    assert ei.value.field == "price_medium"


def test_build_pricing_rejects_non_numbers():
    with pytest.raises(ValidationError) as ei:
        build_pricing(Variant.simple, {"price": "ten"})
    assert ei.value.code == "invalid_number"

    with pytest.raises(ValidationError):
        build_pricing(Variant.simple, {"price": True})


def test_validate_pricing_key_set_matches_variant():
    validate_pricing(Variant.pizza, {"price": 30.0, "price_medium": 40.0, "price_large": 50.0})
    validate_pricing(Variant.simple, {"price": 5.0, "offers": 1.0})

    with pytest.raises(ValidationError) as e1:
        validate_pricing(Variant.sandwich, {"price": 25.0, "price_large": 35.0, "price_medium": 30.0})
    assert e1.value.code == "unknown_price_field"

    with pytest.raises(ValidationError) as e2:
        validate_pricing(Variant.crepe, {"price": 1.0, "price_medium": 2.0, "price_large": 3.0})
    assert e2.value.code == "price_required"
    assert e2.value.field == "price_family"
