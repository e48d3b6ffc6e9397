# backend/stockledger/attributes.py
"""
Type-specific product attributes.

A product's type is chosen once at creation and never changes, so its
attribute bag is modelled as a tagged variant:

    ProductAttributes = TireAttributes | BaleAttributes

Only the variant matching the product type is ever written to the row. The
other variant's columns stay NULL for the product's whole life; update
payloads for the other type are ignored rather than cross-applied.

Payload keys are the short field names (``size``, ``load_index``, ...), not
the storage column names.
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime
from typing import Any, ClassVar, Mapping, Union

from .time_utils import normalize_datetime, to_utc_z
from .validation import InvalidTypeFieldError, validate_choice


PRODUCT_TYPE_TIRE = "TIRE"
PRODUCT_TYPE_BALE = "BALE"
PRODUCT_TYPES = (PRODUCT_TYPE_TIRE, PRODUCT_TYPE_BALE)

PRODUCT_GRADES = ("A", "B", "C")

TIRE_CATEGORIES = ("NEW", "SECOND_HAND")
TIRE_USAGES = ("FOUR_BY_FOUR", "REGULAR", "TRUCK")


@dataclass(frozen=True)
class TireAttributes:
    category: str | None = None
    usage: str | None = None
    size: str | None = None
    load_index: str | None = None
    speed_rating: str | None = None
    warranty_period: str | None = None

    product_type: ClassVar[str] = PRODUCT_TYPE_TIRE
    columns: ClassVar[dict[str, str]] = {
        "category": "tire_category",
        "usage": "tire_usage",
        "size": "tire_size",
        "load_index": "load_index",
        "speed_rating": "speed_rating",
        "warranty_period": "warranty_period",
    }

    def __post_init__(self):
        if self.category is not None:
            validate_choice(self.category, TIRE_CATEGORIES, field="tire category")
        if self.usage is not None:
            validate_choice(self.usage, TIRE_USAGES, field="tire usage")

    def to_dict(self) -> dict:
        return {"kind": self.product_type, **asdict(self)}


@dataclass(frozen=True)
class BaleAttributes:
    weight: float | None = None
    category: str | None = None
    origin_country: str | None = None
    import_date: datetime | None = None

    product_type: ClassVar[str] = PRODUCT_TYPE_BALE
    columns: ClassVar[dict[str, str]] = {
        "weight": "bale_weight",
        "category": "bale_category",
        "origin_country": "origin_country",
        "import_date": "import_date",
    }

    def __post_init__(self):
        if self.weight is not None:
            if isinstance(self.weight, bool) or not isinstance(self.weight, (int, float)):
                raise InvalidTypeFieldError("bale weight must be a number")
            if not math.isfinite(self.weight):
                raise InvalidTypeFieldError("bale weight must be a finite number")
            if self.weight < 0:
                raise InvalidTypeFieldError("bale weight cannot be negative")
        if self.import_date is not None and not isinstance(self.import_date, datetime):
            try:
                parsed = normalize_datetime(self.import_date)
            except ValueError:
                raise InvalidTypeFieldError("import_date must be an ISO-8601 date")
            # frozen: assign through object.__setattr__
            object.__setattr__(self, "import_date", parsed)

    def to_dict(self) -> dict:
        data = {"kind": self.product_type, **asdict(self)}
        data["import_date"] = to_utc_z(self.import_date)
        return data


ProductAttributes = Union[TireAttributes, BaleAttributes]

VARIANTS: dict[str, type] = {
    PRODUCT_TYPE_TIRE: TireAttributes,
    PRODUCT_TYPE_BALE: BaleAttributes,
}


def _field_names(variant: type) -> set[str]:
    return {f.name for f in fields(variant)}


def _coerce_payload(variant: type, payload: Any) -> dict:
    """Normalise a dict or variant instance into a checked key/value dict."""
    if payload is None:
        return {}
    if isinstance(payload, (TireAttributes, BaleAttributes)):
        if not isinstance(payload, variant):
            raise InvalidTypeFieldError(
                f"{payload.product_type} attributes are not valid for {variant.product_type} type"
            )
        return {k: v for k, v in asdict(payload).items() if v is not None}
    if not isinstance(payload, Mapping):
        raise InvalidTypeFieldError(f"{variant.product_type.lower()} fields must be an object")

    allowed = _field_names(variant)
    unknown = sorted(k for k in payload if k not in allowed)
    if unknown:
        raise InvalidTypeFieldError(
            f"Unknown {variant.product_type.lower()} fields: {', '.join(unknown)}"
        )
    return dict(payload)


def _is_populated(payload: Any) -> bool:
    if payload is None:
        return False
    if isinstance(payload, (TireAttributes, BaleAttributes)):
        return any(v is not None for v in asdict(payload).values())
    if isinstance(payload, Mapping):
        return any(v is not None for v in payload.values())
    return True


def resolve_attributes(product_type: str, tire_fields: Any = None, bale_fields: Any = None) -> ProductAttributes:
    """
    Select the attribute variant for a new product.

    Raises InvalidTypeFieldError if the bag for the other type carries any
    value, or if the matching bag has unknown keys or bad enum values.
    """
    validate_choice(product_type, PRODUCT_TYPES, field="type")

    if product_type == PRODUCT_TYPE_TIRE:
        if _is_populated(bale_fields):
            raise InvalidTypeFieldError("Bale-specific fields are not valid for TIRE type")
        return TireAttributes(**_coerce_payload(TireAttributes, tire_fields))

    if _is_populated(tire_fields):
        raise InvalidTypeFieldError("Tire-specific fields are not valid for BALE type")
    return BaleAttributes(**_coerce_payload(BaleAttributes, bale_fields))


def patch_attributes(current: ProductAttributes, payload: Any) -> tuple[ProductAttributes, list[str]]:
    """
    Apply a partial update to an existing variant.

    Keys present in the payload are applied (None clears a value). Returns the
    new variant and the storage column names that changed.
    """
    variant = type(current)
    changes = _coerce_payload(variant, payload)
    if not changes:
        return current, []
    updated = replace(current, **changes)
    changed = sorted(
        variant.columns[k] for k in changes if getattr(current, k) != getattr(updated, k)
    )
    return updated, changed


def attributes_to_columns(attrs: ProductAttributes) -> dict:
    return {column: getattr(attrs, name) for name, column in attrs.columns.items()}


def attributes_of(product) -> ProductAttributes:
    """Rebuild the stored variant from a Product row."""
    variant = VARIANTS[product.type]
    return variant(**{name: getattr(product, column) for name, column in variant.columns.items()})
