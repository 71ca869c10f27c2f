"""
Token amount and price quote value types.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from flashlever.errors.exceptions import InvalidPriceError, ValidationError
from flashlever.models.common import Address
from flashlever.utils.fixed_point import PRICE_DECIMALS, mul_div, rescale


@dataclass(frozen=True)
class TokenAmount:
    """
    A raw integer amount of a token at its native decimal precision.

    Amounts are never negative. Combining two amounts requires the same
    token and the same precision; use rescaled() first otherwise.
    """
    token: Address
    amount: int
    decimals: int

    def __post_init__(self):
        if self.amount < 0:
            raise ValidationError("Token amount cannot be negative", token=self.token)
        if self.decimals < 0:
            raise ValidationError("Token decimals cannot be negative", token=self.token)

    def rescaled(self, decimals: int) -> "TokenAmount":
        return TokenAmount(self.token, rescale(self.amount, self.decimals, decimals), decimals)

    def _check_compatible(self, other: "TokenAmount") -> None:
        if self.token != other.token:
            raise ValidationError("Cannot combine amounts of different tokens")
        if self.decimals != other.decimals:
            raise ValidationError(
                f"Cannot combine precisions {self.decimals} and {other.decimals} without rescaling"
            )

    def __add__(self, other: "TokenAmount") -> "TokenAmount":
        self._check_compatible(other)
        return TokenAmount(self.token, self.amount + other.amount, self.decimals)

    def __sub__(self, other: "TokenAmount") -> "TokenAmount":
        self._check_compatible(other)
        return TokenAmount(self.token, self.amount - other.amount, self.decimals)

    def to_decimal(self) -> Decimal:
        """Human-readable amount."""
        return Decimal(self.amount) / (Decimal(10) ** self.decimals)

    def value_in_base(self, quote: "PriceQuote") -> int:
        """Value in base currency units (PRICE_DECIMALS)."""
        if quote.token != self.token:
            raise ValidationError("Quote token does not match amount token")
        return mul_div(self.amount, quote.price, 10 ** self.decimals)


@dataclass(frozen=True)
class PriceQuote:
    """Unit price of a token in base currency with PRICE_DECIMALS decimals."""
    token: Address
    price: int
    updated_at: Optional[int] = None
    decimals: int = PRICE_DECIMALS

    def __post_init__(self):
        if self.price <= 0:
            raise InvalidPriceError(token=self.token, price=self.price)

    def to_decimal(self) -> Decimal:
        return Decimal(self.price) / (Decimal(10) ** self.decimals)
