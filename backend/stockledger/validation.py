from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


class CatalogError(Exception):
    """
    Base for every failure surfaced by the catalog core.

    `code` is the stable error kind the routing layer maps to a transport
    status; `entity_id` names the offending product/store/record.
    """
    code = "CATALOG_ERROR"

    def __init__(self, message: str, *, entity_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "entity_id": self.entity_id,
        }


# ---------------------------------------------------------------------------
# 400-level input problems (raised before a transaction is opened)
# ---------------------------------------------------------------------------

class ValidationError(CatalogError, ValueError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"


class MissingFieldError(ValidationError):
    code = "MISSING_REQUIRED_FIELDS"


class InvalidPriceError(ValidationError):
    code = "INVALID_PRICE"


class InvalidTypeFieldError(ValidationError):
    code = "INVALID_FIELD"


class InvalidQuantityError(ValidationError):
    code = "INVALID_QUANTITY"


class InvalidLevelsError(ValidationError):
    code = "INVALID_LEVELS"


class NoUpdatesProvidedError(ValidationError):
    code = "NO_UPDATES_PROVIDED"


class SameStoreError(ValidationError):
    code = "SAME_STORE"


# ---------------------------------------------------------------------------
# 409-level uniqueness conflicts (detected inside the transaction)
# ---------------------------------------------------------------------------

class ConflictError(CatalogError, ValueError):
    """409-level business rule conflict (e.g., duplicate product name)."""
    code = "CONFLICT"


class DuplicateNameError(ConflictError):
    code = "PRODUCT_EXISTS"


class AlreadyAssignedError(ConflictError):
    code = "PRODUCT_ALREADY_ASSIGNED"


# ---------------------------------------------------------------------------
# Referential integrity
# ---------------------------------------------------------------------------

class NotFoundError(CatalogError, LookupError):
    code = "NOT_FOUND"


class ProductNotFoundError(NotFoundError):
    code = "PRODUCT_NOT_FOUND"


class StoreNotFoundError(NotFoundError):
    code = "STORE_NOT_FOUND"


class InventoryNotFoundError(NotFoundError):
    code = "INVENTORY_NOT_FOUND"


class AssignmentNotFoundError(NotFoundError):
    code = "PRODUCT_NOT_ASSIGNED"


class TransferNotFoundError(NotFoundError):
    code = "TRANSFER_NOT_FOUND"


# ---------------------------------------------------------------------------
# Business-policy rejections
# ---------------------------------------------------------------------------

class PolicyViolationError(CatalogError):
    code = "POLICY_VIOLATION"


class ProductHasInventoryError(PolicyViolationError):
    code = "PRODUCT_HAS_INVENTORY"


class ProductHasRecentSalesError(PolicyViolationError):
    code = "PRODUCT_HAS_RECENT_SALES"


class ProductDeletionPreventedError(PolicyViolationError):
    code = "PRODUCT_DELETION_PREVENTED"


class InsufficientInventoryError(PolicyViolationError):
    code = "INSUFFICIENT_INVENTORY"


class InvalidTransferStatusError(PolicyViolationError):
    code = "INVALID_TRANSFER_STATUS"


# ---------------------------------------------------------------------------
# Store-layer failures (caller may retry; the core never does)
# ---------------------------------------------------------------------------

class StorageUnavailableError(CatalogError):
    code = "STORAGE_UNAVAILABLE"
    retryable = True


class ConcurrencyConflictError(StorageUnavailableError):
    code = "CONCURRENT_MODIFICATION"


# ---------------------------------------------------------------------------
# Field rules shared by the services
# ---------------------------------------------------------------------------

def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def require_fields(fields: dict[str, Any]) -> None:
    missing = [k for k, v in fields.items() if _is_blank(v)]
    if missing:
        raise MissingFieldError(f"Missing required fields: {', '.join(missing)}")


def _is_number(value: Any) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float, Decimal))


def price_to_cents(value: Any, *, field: str = "base_price") -> int:
    """
    Validate a decimal price and convert it to integer cents.

    Accepts int, float, Decimal or a numeric string. Half-cents round up.
    NaN and infinities are rejected.
    """
    if isinstance(value, bool):
        raise InvalidPriceError(f"{field} must be a number")
    try:
        amount = Decimal(str(value)) if _is_number(value) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidPriceError(f"{field} must be a number")
    if not amount.is_finite():
        raise InvalidPriceError(f"{field} must be a finite number")
    if amount < 0:
        raise InvalidPriceError(f"{field} cannot be negative")

    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents > MAX_PRICE_CENTS:
        raise InvalidPriceError(f"{field} cannot exceed {MAX_PRICE_CENTS / 100:,.2f}")
    return cents


def cents_to_price(cents: int | None) -> float | None:
    if cents is None:
        return None
    return cents / 100


def validate_name(value: Any, *, field: str = "name") -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingFieldError(f"Missing required fields: {field}")
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip()


def validate_quantity(value: Any, *, field: str = "quantity", allow_zero: bool = False) -> int:
    # Reject floats and bools; quantities are whole units
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQuantityError(f"{field} must be an integer")
    if value < 0 or (value == 0 and not allow_zero):
        bound = ">= 0" if allow_zero else "> 0"
        raise InvalidQuantityError(f"{field} must be {bound}")
    return value


def validate_choice(value: Any, choices: Iterable[str], *, field: str) -> str:
    choices = tuple(choices)
    if value not in choices:
        raise InvalidTypeFieldError(f"{field} must be one of {', '.join(choices)}")
    return value
