"""
Fixed-point helpers for raw integer token math.

Conventions:
- Prices carry PRICE_DECIMALS (8) decimals of the base currency.
- Ratios (LTV, liquidation threshold, fees, buffers) are basis points.
- Leverage and health factor are WAD (1e18 == 1.0).

Python integers never wrap, so every helper bounds its result to the
256-bit range the pool and aggregator interfaces accept, and checks
divisors explicitly instead of relying on ZeroDivisionError.

Maximum safe input magnitude: amounts up to MAX_SAFE_AMOUNT (2**128 - 1).
The widest product in sizing is amount * price * 10**decimals with
8-decimal prices and at most 36-decimal tokens, which stays below 2**256.
"""
from decimal import Decimal

from flashlever.errors.exceptions import (
    AmountTooLargeError,
    ArithmeticOverflowError,
    DivisionByZeroError,
)

PRICE_DECIMALS = 8
PRICE_UNIT = 10 ** PRICE_DECIMALS

BPS = 10_000
HALF_BPS = BPS // 2

WAD = 10 ** 18
HALF_WAD = WAD // 2

MAX_UINT256 = 2 ** 256 - 1
MAX_SAFE_AMOUNT = 2 ** 128 - 1


def _bounded(value: int) -> int:
    if value > MAX_UINT256:
        raise ArithmeticOverflowError(value_bits=value.bit_length())
    return value


def mul_div(a: int, b: int, denominator: int, round_up: bool = False) -> int:
    """
    Compute a * b / denominator with a full-width intermediate.

    Args:
        a: Non-negative multiplicand
        b: Non-negative multiplier
        denominator: Strictly positive divisor
        round_up: Round toward positive infinity instead of down

    Raises:
        DivisionByZeroError: If denominator <= 0
        ArithmeticOverflowError: If the result exceeds 2**256 - 1
    """
    if denominator <= 0:
        raise DivisionByZeroError(denominator=denominator)
    product = _bounded(a * b)
    if round_up:
        return _bounded(-(-product // denominator))
    return product // denominator


def percent_mul(value: int, bps: int) -> int:
    """Multiply by a basis-point ratio, rounding half up."""
    return _bounded((_bounded(value * bps) + HALF_BPS) // BPS)


def wad_mul(a: int, b: int) -> int:
    """Multiply two WAD values, rounding half up."""
    return _bounded((_bounded(a * b) + HALF_WAD) // WAD)


def to_wad(value: Decimal) -> int:
    """Convert a Decimal ratio (e.g. 3.0 leverage) to WAD."""
    return int(Decimal(value) * WAD)


def from_wad(value: int) -> Decimal:
    return Decimal(value) / Decimal(WAD)


def require_safe_amount(amount: int, field: str = "amount") -> int:
    """Reject amounts above the documented maximum safe magnitude."""
    if amount > MAX_SAFE_AMOUNT:
        raise AmountTooLargeError(field=field, bits=amount.bit_length())
    return amount


def rescale(amount: int, from_decimals: int, to_decimals: int) -> int:
    """Rescale a raw amount between decimal precisions (rounds down)."""
    if from_decimals == to_decimals:
        return amount
    if from_decimals < to_decimals:
        return _bounded(amount * 10 ** (to_decimals - from_decimals))
    return amount // 10 ** (from_decimals - to_decimals)
