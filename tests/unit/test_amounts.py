"""
Tests for token amount and price quote value types.
"""
from decimal import Decimal

import pytest

from flashlever.errors.exceptions import InvalidPriceError, ValidationError
from flashlever.models.amounts import PriceQuote, TokenAmount
from tests.conftest import ONE_A, ONE_B, ONE_DOLLAR, TOKEN_A, TOKEN_B


class TestTokenAmount:
    """Tests for TokenAmount."""

    def test_negative_rejected(self):
        with pytest.raises(ValidationError):
            TokenAmount(TOKEN_A, -1, 18)

    def test_add_and_subtract(self):
        a = TokenAmount(TOKEN_A, 3 * ONE_A, 18)
        b = TokenAmount(TOKEN_A, ONE_A, 18)
        assert (a + b).amount == 4 * ONE_A
        assert (a - b).amount == 2 * ONE_A

    def test_subtraction_cannot_go_negative(self):
        with pytest.raises(ValidationError):
            TokenAmount(TOKEN_A, ONE_A, 18) - TokenAmount(TOKEN_A, 2 * ONE_A, 18)

    def test_mixed_precision_requires_rescale(self):
        six = TokenAmount(TOKEN_A, ONE_B, 6)
        eighteen = TokenAmount(TOKEN_A, ONE_A, 18)
        with pytest.raises(ValidationError):
            six + eighteen
        assert (six.rescaled(18) + eighteen).amount == 2 * ONE_A

    def test_different_tokens(self):
        with pytest.raises(ValidationError):
            TokenAmount(TOKEN_A, 1, 18) + TokenAmount(TOKEN_B, 1, 18)

    def test_value_in_base(self):
        amount = TokenAmount(TOKEN_B, 1500 * ONE_B, 6)
        quote = PriceQuote(TOKEN_B, 2 * ONE_DOLLAR)
        assert amount.value_in_base(quote) == 3000 * ONE_DOLLAR
        assert amount.to_decimal() == Decimal(1500)

    def test_value_with_wrong_quote(self):
        with pytest.raises(ValidationError):
            TokenAmount(TOKEN_A, 1, 18).value_in_base(PriceQuote(TOKEN_B, ONE_DOLLAR))


class TestPriceQuote:
    """Tests for PriceQuote."""

    def test_non_positive_price(self):
        with pytest.raises(InvalidPriceError):
            PriceQuote(TOKEN_A, 0)

    def test_to_decimal(self):
        assert PriceQuote(TOKEN_A, 250_050_000_000).to_decimal() == Decimal("2500.5")
