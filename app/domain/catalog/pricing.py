"""Category-dependent price field sets.

A category's secondary (English) name selects one of four pricing variants.
Each variant fixes the price keys an item must carry; ``offers`` is an
optional discount accepted by all of them.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from app.core.errors import ValidationError


class Variant(str, Enum):
    simple = "simple"
    sandwich = "sandwich"
    pizza = "pizza"
    crepe = "crepe"


@dataclass(frozen=True)
class PriceField:
    key: str
    label: str
    required: bool = True


_CREPE_NAMES = {"crepe", "crepe pizza"}
_PIZZA_NAMES = {"pizza"}
_SANDWICH_NAMES = {"sandwiches"}

_FIELDS: dict[Variant, tuple[PriceField, ...]] = {
    Variant.simple: (
        PriceField("price", "Price"),
    ),
    Variant.sandwich: (
        PriceField("price", "Medium size price"),
        PriceField("price_large", "Large size price"),
    ),
    Variant.pizza: (
        PriceField("price", "Small size price"),
        PriceField("price_medium", "Medium size price"),
        PriceField("price_large", "Large size price"),
    ),
    Variant.crepe: (
        PriceField("price", "Triangle, medium size price"),
        PriceField("price_medium", "Triangle, large size price"),
        PriceField("price_large", "Roll, medium size price"),
        PriceField("price_family", "Roll, large size price"),
    ),
}

OFFERS_FIELD = PriceField("offers", "Discount", required=False)

# Every key a price may live under, whatever the variant
PRICE_KEYS = ("price", "price_medium", "price_large", "price_family", OFFERS_FIELD.key)


def classify(category_name: str | None) -> Variant:
    name = (category_name or "").strip().lower()
    if name in _CREPE_NAMES:
        return Variant.crepe
    if name in _PIZZA_NAMES:
        return Variant.pizza
    if name in _SANDWICH_NAMES:
        return Variant.sandwich
    return Variant.simple


def required_fields(variant: Variant) -> tuple[PriceField, ...]:
    return _FIELDS[Variant(variant)]


def allowed_keys(variant: Variant) -> set[str]:
    return {f.key for f in required_fields(variant)} | {OFFERS_FIELD.key}


def _is_empty(v: Any) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


def _to_number(key: str, v: Any) -> float:
    # bool is a subclass of int; never a price
    if isinstance(v, bool):
        raise ValidationError(f"{key} must be a number", code="invalid_number", field=key)
    if isinstance(v, (int, float)):
        return float(v)
    try:
        return float(str(v).strip())
    except ValueError:
        raise ValidationError(f"{key} must be a number", code="invalid_number", field=key)


def build_pricing(variant: Variant, values: Mapping[str, Any]) -> dict[str, float]:
    """Coerces the variant's price inputs to numbers.

    Empty inputs are omitted. Keys the variant does not define are ignored,
    so a value typed under a previously selected category never reaches the
    payload.
    """
    out: dict[str, float] = {}
    for f in required_fields(variant) + (OFFERS_FIELD,):
        raw = values.get(f.key)
        if _is_empty(raw):
            if f.required:
                raise ValidationError(f"{f.key} is required", code="price_required", field=f.key)
            continue
        out[f.key] = _to_number(f.key, raw)
    return out


def validate_pricing(variant: Variant, pricing: Mapping[str, Any]) -> None:
    allowed = allowed_keys(variant)
    for k in pricing.keys():
        if k not in allowed:
            raise ValidationError(f"unexpected price field: {k}", code="unknown_price_field", field=k)
    for f in required_fields(variant):
        if f.key not in pricing or pricing[f.key] is None:
            raise ValidationError(f"{f.key} is required", code="price_required", field=f.key)
    for k, v in pricing.items():
        if v is None and k == OFFERS_FIELD.key:
            continue
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValidationError(f"{k} must be a number", code="invalid_number", field=k)
