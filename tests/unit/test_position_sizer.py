"""
Tests for the position sizing calculator.

Example scenarios (A 18 decimals, B 6 decimals, both $1, LTV 80%):
- 1000 A at 3x → flash 2000 A, borrow 2000 B
- Unwind 1000 B → 1250 A before buffer, 1312.5 A with a 5% buffer
"""
from decimal import Decimal

import pytest

from flashlever.core.position_sizer import (
    build_open_request,
    build_unwind_request,
    collateral_for_debt,
)
from flashlever.errors.exceptions import (
    AssetNotUsableAsCollateralError,
    FeedNotConfiguredError,
    InvalidLeverageError,
    InvalidPricesError,
    StalePriceError,
    ValidationError,
    ZeroAmountError,
)
from flashlever.utils.fixed_point import BPS
from tests.conftest import ONE_A, ONE_B, ONE_DOLLAR, OWNER, TOKEN_A, TOKEN_B


class TestOpenSizing:
    """Tests for compute_open_sizing."""

    def test_three_x_scenario(self, env):
        sizing = env.sizer.compute_open_sizing(TOKEN_A, TOKEN_B, Decimal("3"), 1000 * ONE_A)

        assert sizing.flash_loan_amount == 2000 * ONE_A
        assert sizing.borrow_amount == 2000 * ONE_B
        assert sizing.user_collateral_value == 1000 * ONE_DOLLAR
        assert sizing.total_collateral_value == 3000 * ONE_DOLLAR
        assert sizing.borrow_value == 2000 * ONE_DOLLAR
        assert sizing.ltv_bps == 8000

    def test_premium_and_buffered_borrow(self, env):
        sizing = env.sizer.compute_open_sizing(TOKEN_A, TOKEN_B, Decimal("3"), 1000 * ONE_A)

        assert sizing.flash_loan_premium == ONE_A  # 5 bps of 2000
        assert sizing.amount_owed == 2001 * ONE_A
        # 2001 B of owed value plus a 5% buffer
        assert sizing.buffered_borrow_amount == 2_101_050_000

    def test_one_x_borrows_nothing(self, env):
        sizing = env.sizer.compute_open_sizing(TOKEN_A, TOKEN_B, Decimal("1"), 1000 * ONE_A)
        assert sizing.flash_loan_amount == 0
        assert sizing.borrow_amount == 0

    def test_price_moves_borrow_not_flash(self, env):
        env.feeds[TOKEN_A].set_price(2 * ONE_DOLLAR, env.chain.now())

        sizing = env.sizer.compute_open_sizing(TOKEN_A, TOKEN_B, Decimal("3"), 1000 * ONE_A)

        assert sizing.flash_loan_amount == 2000 * ONE_A
        assert sizing.borrow_amount == 4000 * ONE_B

    @pytest.mark.parametrize("leverage", ["1.5", "2", "3", "4", "4.1"])
    def test_borrow_never_exceeds_ltv(self, env, leverage):
        """Both the plain and the buffered borrow stay within the collateral LTV."""
        sizing = env.sizer.compute_open_sizing(TOKEN_A, TOKEN_B, Decimal(leverage), 1234 * ONE_A)
        assert sizing.borrow_value * BPS <= sizing.ltv_bps * sizing.total_collateral_value
        # B has 6 decimals and A 18, both at $1
        buffered_value = sizing.buffered_borrow_amount * ONE_DOLLAR // ONE_B
        assert buffered_value * BPS <= sizing.ltv_bps * sizing.total_collateral_value

    @pytest.mark.parametrize("leverage", ["4.5", "5"])
    def test_buffered_borrow_over_ltv(self, env, leverage):
        """(L - 1) / L fits the LTV but the buffered borrow does not."""
        with pytest.raises(InvalidLeverageError, match="Buffered borrow"):
            env.sizer.compute_open_sizing(TOKEN_A, TOKEN_B, Decimal(leverage), 1000 * ONE_A)

    @pytest.mark.parametrize("leverage", ["0.5", "5.01", "6", "11"])
    def test_invalid_leverage(self, env, leverage):
        with pytest.raises(InvalidLeverageError):
            env.sizer.compute_open_sizing(TOKEN_A, TOKEN_B, Decimal(leverage), 1000 * ONE_A)

    def test_zero_collateral(self, env):
        with pytest.raises(ZeroAmountError):
            env.sizer.compute_open_sizing(TOKEN_A, TOKEN_B, Decimal("2"), 0)

    def test_caller_prices_rejected(self, env):
        with pytest.raises(ValidationError):
            env.sizer.compute_open_sizing(
                TOKEN_A, TOKEN_B, Decimal("2"), 1000 * ONE_A, prices=(ONE_DOLLAR, ONE_DOLLAR)
            )

    def test_stale_price_refuses_sizing(self, env):
        env.chain.advance(3601)
        with pytest.raises(StalePriceError):
            env.sizer.compute_open_sizing(TOKEN_A, TOKEN_B, Decimal("2"), 1000 * ONE_A)

    def test_missing_feed(self, env):
        env.oracle.remove_feed(OWNER, TOKEN_B)
        with pytest.raises(FeedNotConfiguredError):
            env.sizer.compute_open_sizing(TOKEN_A, TOKEN_B, Decimal("2"), 1000 * ONE_A)

    def test_zero_ltv_collateral(self, env):
        env.pool.update_reserve(TOKEN_A, ltv_bps=0)
        with pytest.raises(AssetNotUsableAsCollateralError):
            env.sizer.compute_open_sizing(TOKEN_A, TOKEN_B, Decimal("2"), 1000 * ONE_A)


class TestUnwindSizing:
    """Tests for compute_unwind_sizing."""

    def test_unwind_scenario(self, env):
        sizing = env.sizer.compute_unwind_sizing(TOKEN_A, TOKEN_B, 1000 * ONE_B)

        assert sizing.base_collateral_to_withdraw == 1250 * ONE_A
        assert sizing.collateral_to_withdraw == 1312_500_000_000_000_000_000
        assert sizing.ratio_bps == 8000
        assert sizing.slippage_buffer_bps == 500

    def test_buffer_follows_admin(self, env):
        env.admin.set_slippage_buffer_bps(OWNER, 0)
        sizing = env.sizer.compute_unwind_sizing(TOKEN_A, TOKEN_B, 1000 * ONE_B)
        assert sizing.collateral_to_withdraw == sizing.base_collateral_to_withdraw

    def test_zero_debt(self, env):
        with pytest.raises(ZeroAmountError):
            env.sizer.compute_unwind_sizing(TOKEN_A, TOKEN_B, 0)

    def test_stale_price(self, env):
        env.chain.advance(7200)
        with pytest.raises(StalePriceError):
            env.sizer.compute_unwind_sizing(TOKEN_A, TOKEN_B, 1000 * ONE_B)

    def test_open_then_unwind_use_the_same_ratio(self, env):
        """Unwinding the pure borrow frees exactly the levered collateral over LTV."""
        open_sizing = env.sizer.compute_open_sizing(TOKEN_A, TOKEN_B, Decimal("3"), 1000 * ONE_A)
        unwind = env.sizer.compute_unwind_sizing(TOKEN_A, TOKEN_B, open_sizing.borrow_amount)
        assert unwind.ratio_bps == open_sizing.ltv_bps
        assert unwind.base_collateral_to_withdraw == 2500 * ONE_A


class TestCollateralForDebt:
    """Tests for the shared unwind formula."""

    def test_decimals_are_respected(self):
        amount = collateral_for_debt(1000 * ONE_B, ONE_DOLLAR, 6, 2 * ONE_DOLLAR, 18, 5000)
        assert amount == 1000 * ONE_A

    def test_non_positive_prices(self):
        with pytest.raises(InvalidPricesError):
            collateral_for_debt(1, 0, 6, ONE_DOLLAR, 18, 8000)
        with pytest.raises(InvalidPricesError):
            collateral_for_debt(1, ONE_DOLLAR, 6, -1, 18, 8000)

    def test_zero_ratio(self):
        with pytest.raises(AssetNotUsableAsCollateralError):
            collateral_for_debt(1, ONE_DOLLAR, 6, ONE_DOLLAR, 18, 0)


class TestRequestBuilders:
    """Tests for build_open_request / build_unwind_request."""

    def test_open_request_defaults(self, env):
        sizing = env.open_sizing()
        request = build_open_request(sizing, b"route")

        assert request.flash_loan_token == TOKEN_A
        assert request.borrow_amount == sizing.buffered_borrow_amount
        assert request.min_swap_output == sizing.amount_owed

    def test_open_request_pure_borrow(self, env):
        sizing = env.open_sizing()
        request = build_open_request(sizing, b"route", use_buffered_borrow=False, min_swap_output=7)

        assert request.borrow_amount == sizing.borrow_amount
        assert request.min_swap_output == 7

    def test_unwind_request(self, env):
        sizing = env.sizer.compute_unwind_sizing(TOKEN_A, TOKEN_B, 1000 * ONE_B)
        request = build_unwind_request(sizing, b"route", min_swap_output=1001 * ONE_B)

        assert request.collateral_to_withdraw == sizing.collateral_to_withdraw
        assert request.debt_amount == 1000 * ONE_B
