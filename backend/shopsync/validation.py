from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


# Maximum money value accepted on input: 9,999,999,999.99 (Numeric(12, 2))
MAX_MONEY = Decimal("9999999999.99")
CENT = Decimal("0.01")


class ApiError(ValueError):
    """Base for errors that map onto an HTTP status."""

    status_code = 400

    def __init__(self, message: str, errors: dict | None = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(ApiError):
    """422: malformed or missing fields, raised before anything is persisted."""
    status_code = 422


class AuthorizationError(ApiError):
    """403: caller lacks access to the shop that owns the record."""
    status_code = 403


class NotFoundError(ApiError):
    """404: referenced id does not exist."""
    status_code = 404


class ConflictError(ApiError):
    """409: duplicate natural key (invoice_number, barcode) or state conflict."""
    status_code = 409


class PayloadTooLargeError(ApiError):
    """413: push batch exceeds the configured record count."""
    status_code = 413


# =============================================================================
# MONEY
# =============================================================================

def to_money(value: Any) -> Decimal:
    """
    Normalize a stored or computed amount to a 2-place Decimal (half-up).

    Floats go through str() so 0.1 stays 0.10 rather than its binary expansion.
    """
    if value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal):
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(value: Any, field: str, *, required: bool = True, allow_zero: bool = True) -> Decimal | None:
    """Validate client money input: numeric, non-negative, at most 2 decimals."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required", {field: "required"})
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", {field: "must be a number"})
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number", {field: "must be a number"})
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number", {field: "must be a number"})
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0", {field: "must be >= 0"})
    if not allow_zero and amount == 0:
        raise ValidationError(f"{field} must be > 0", {field: "must be > 0"})
    if amount > MAX_MONEY:
        raise ValidationError(f"{field} exceeds {MAX_MONEY}", {field: "too large"})
    if amount != amount.quantize(CENT):
        raise ValidationError(
            f"{field} must have at most 2 decimal places",
            {field: "at most 2 decimal places"},
        )
    return amount.quantize(CENT)


def parse_rate(value: Any, field: str) -> Decimal:
    """Percent rate (tax_rate, discount_rate), 0 when omitted."""
    if value is None:
        return Decimal("0.00")
    rate = parse_money(value, field)
    if rate > Decimal("100"):
        raise ValidationError(f"{field} must be <= 100", {field: "must be <= 100"})
    return rate


# =============================================================================
# SCALARS
# =============================================================================

def parse_int(value: Any, field: str, *, required: bool = True, minimum: int | None = None) -> int | None:
    """
    Strict integer parsing: rejects bools, floats and scientific notation.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required", {field: "required"})
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", {field: "must be an integer"})

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer", {field: "must be an integer"})
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", {field: "must be an integer"})
    else:
        raise ValidationError(f"{field} must be an integer", {field: "must be an integer"})

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", {field: f"must be >= {minimum}"})
    return result


def parse_client_id(value: Any, field: str = "id") -> str:
    """
    Client-assigned idempotency key. Offline clients send local integer ids,
    some send UUIDs; both are kept as strings.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", {field: "required"})
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer or string", {field: "invalid"})
    key = str(value).strip()
    if not key:
        raise ValidationError(f"{field} is required", {field: "required"})
    if len(key) > 64:
        raise ValidationError(f"{field} exceeds max length 64", {field: "too long"})
    return key


def parse_str(value: Any, field: str, *, required: bool = False, max_length: int = 255) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", {field: "required"})
        return None
    text = str(value).strip()
    if required and not text:
        raise ValidationError(f"{field} cannot be blank", {field: "cannot be blank"})
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", {field: "too long"})
    return text or None


def require_list(value: Any, field: str, *, min_items: int = 0, max_items: int | None = None) -> list:
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be an array", {field: "must be an array"})
    if len(value) < min_items:
        raise ValidationError(f"{field} must contain at least {min_items} item(s)", {field: "too few items"})
    if max_items is not None and len(value) > max_items:
        raise ValidationError(f"{field} may contain at most {max_items} items", {field: "too many items"})
    return value


def format_money(value: Any) -> str | None:
    """Serialize money as a 2-place string; JSON floats would lose cents."""
    if value is None:
        return None
    return str(to_money(value))
