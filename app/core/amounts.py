"""Decimal amount parsing and unit conversion. Money never touches float.

Conversions work on the Decimal's integer coefficient and exponent, so no
result depends on the ambient decimal context precision.
"""

from __future__ import annotations

import secrets
from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from .recovery.errors import ValidationError

ETH_DECIMALS = 18

UINT256_LIMIT = 2 ** 256
# Decimal digits of the largest uint256
MAX_INTEGER_DIGITS = 78

AmountInput = Union[str, int, Decimal]


def _fraction_digits(amount: Decimal) -> int:
    """Significant digits after the decimal point, ignoring trailing zeros."""
    _, digits, exponent = amount.as_tuple()
    if exponent >= 0:
        return 0
    significant = "".join(map(str, digits)).rstrip("0")
    if not significant:
        return 0
    trailing_zeros = len(digits) - len(significant)
    return max(-exponent - trailing_zeros, 0)


def parse_amount(
    value: AmountInput,
    *,
    field: str = "amount",
    decimals: int = ETH_DECIMALS,
    allow_zero: bool = False,
) -> Decimal:
    """Parse a decimal string into a Decimal.

    Floats are rejected outright; so are NaN/Infinity, negative values, zero
    (unless ``allow_zero``), more fractional digits than ``decimals`` and
    values too large for a uint256 of base units.
    """
    if isinstance(value, (bool, float)) or value is None:
        raise ValidationError(f"{field} must be a decimal string")

    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} is not a valid decimal: {value!r}")

    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite")
    if amount < 0:
        raise ValidationError(f"{field} must not be negative")
    if amount == 0 and not allow_zero:
        raise ValidationError(f"{field} must be positive")

    if _fraction_digits(amount) > decimals:
        raise ValidationError(f"{field} has more than {decimals} decimal places")
    too_many_digits = amount.adjusted() + decimals >= MAX_INTEGER_DIGITS
    if too_many_digits or to_base_units(amount, decimals) >= UINT256_LIMIT:
        raise ValidationError(f"{field} is too large")

    return amount


def to_base_units(amount: Decimal, decimals: int = ETH_DECIMALS) -> int:
    """Convert a human amount (e.g. ether) into integer base units (e.g. wei).

    Exact for any finite Decimal; a value with more than ``decimals``
    fractional digits raises ValidationError instead of rounding.
    """
    if not amount.is_finite():
        raise ValidationError(f"Amount {amount} is not finite")
    sign, digits, exponent = amount.as_tuple()
    coefficient = int("".join(map(str, digits)) or "0")
    shift = exponent + decimals
    if shift >= 0:
        units = coefficient * 10 ** shift
    else:
        units, remainder = divmod(coefficient, 10 ** -shift)
        if remainder:
            raise ValidationError(f"Amount {amount} is not representable with {decimals} decimals")
    return -units if sign else units


def format_units(value: int, decimals: int = ETH_DECIMALS) -> str:
    """Format integer base units as a fixed-point string with ``decimals`` places."""
    sign = "-" if value < 0 else ""
    whole, fraction = divmod(abs(int(value)), 10 ** decimals)
    if decimals == 0:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{fraction:0{decimals}d}"


def decimal_to_str(amount: Decimal) -> str:
    """Canonical string form: no exponent, no trailing zeros."""
    with localcontext() as ctx:
        # normalize() rounds to the context precision
        ctx.prec = max(len(amount.as_tuple().digits), 1)
        return format(amount.normalize(), "f")


def generate_id() -> str:
    """256-bit identifier from the OS CSPRNG, hex encoded."""
    return secrets.token_hex(32)
