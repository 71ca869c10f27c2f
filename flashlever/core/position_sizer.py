"""
Position sizing for flash-loan leveraged positions.

Open sizing converts a leverage multiple and a user collateral amount
into a flash loan amount (collateral asset) and a borrow amount (borrow
asset). Unwind sizing converts a debt amount into the collateral to
withdraw.

Both directions use one canonical ratio, the collateral's loan-to-value,
and both always fetch prices from the oracle at call time.

Example (1000 A at $1, 3x leverage, LTV 80%, B at $1):
- User collateral value: $1,000
- Total target collateral: $1,000 × 3 = $3,000
- Borrow value: $3,000 - $1,000 = $2,000 → 2,000 B
- Flash loan: 3,000 A - 1,000 A = 2,000 A

Example (unwind 1000 B of debt, LTV 80%, both at $1, 5% buffer):
- Collateral before buffer: $1,000 / ($1 × 0.80) = 1,250 A
- Collateral with buffer: 1,250 × 1.05 = 1,312.5 A
"""
from decimal import Decimal
from typing import Optional, Tuple

from flashlever.config.settings import get_risk_limits
from flashlever.core.admin import AdminConfig
from flashlever.errors.exceptions import (
    AssetNotUsableAsCollateralError,
    InvalidLeverageError,
    InvalidPricesError,
    ValidationError,
    ZeroAmountError,
)
from flashlever.models.amounts import PriceQuote, TokenAmount
from flashlever.models.common import Address, require_nonzero_address
from flashlever.models.requests import OpenRequest, OpenSizing, UnwindRequest, UnwindSizing
from flashlever.oracle.price_oracle import PriceOracle
from flashlever.utils.fixed_point import (
    BPS,
    WAD,
    mul_div,
    percent_mul,
    require_safe_amount,
    to_wad,
    wad_mul,
)
from flashlever.utils.logger import get_logger
from flashlever.venues.lending_pool import LendingPool

logger = get_logger(__name__)


def collateral_for_debt(
    debt_amount: int,
    debt_price: int,
    debt_decimals: int,
    collateral_price: int,
    collateral_decimals: int,
    ratio_bps: int,
) -> int:
    """
    Canonical unwind ratio: debt value / (collateral price × ratio).

    Shared by the sizer and the orchestrator's in-callback recomputation.
    Prices and ratio are checked before they are used as divisors.
    """
    if debt_price <= 0 or collateral_price <= 0:
        raise InvalidPricesError(collateral_price=collateral_price, debt_price=debt_price)
    if ratio_bps <= 0:
        raise AssetNotUsableAsCollateralError(ratio_bps=ratio_bps)

    debt_value = mul_div(debt_amount, debt_price, 10 ** debt_decimals)
    return mul_div(debt_value * BPS, 10 ** collateral_decimals, collateral_price * ratio_bps)


class PositionSizer:
    """
    Read-only sizing calculator.

    Args:
        oracle: Price oracle (prices are always re-fetched)
        pool: Lending pool (LTV, decimals and premium are read live)
        admin: Shared config providing the slippage buffer
        max_leverage: Upper bound on requested leverage (default from risk config)
    """

    def __init__(
        self,
        oracle: PriceOracle,
        pool: LendingPool,
        admin: AdminConfig,
        max_leverage: Optional[Decimal] = None,
    ):
        self.oracle = oracle
        self.pool = pool
        self.admin = admin

        risk_limits = get_risk_limits()
        self.max_leverage = max_leverage or Decimal(str(risk_limits.get("max_leverage", 10.0)))

    def canonical_ratio_bps(self, collateral_token: Address) -> int:
        """The single ratio used by both open and unwind: the collateral LTV."""
        config = self.pool.get_reserve_configuration(collateral_token)
        if config.ltv_bps == 0:
            raise AssetNotUsableAsCollateralError(asset=config.asset)
        return config.ltv_bps

    def _fetch_quotes(self, collateral_token: Address, debt_token: Address) -> Tuple[PriceQuote, PriceQuote]:
        collateral_quote = self.oracle.get_quote(collateral_token)
        debt_quote = self.oracle.get_quote(debt_token)
        if collateral_quote.price <= 0 or debt_quote.price <= 0:
            raise InvalidPricesError(collateral_price=collateral_quote.price, debt_price=debt_quote.price)
        return collateral_quote, debt_quote

    def compute_open_sizing(
        self,
        collateral_token: Address,
        borrow_token: Address,
        leverage: Decimal,
        user_collateral_amount: int,
        collateral_decimals: Optional[int] = None,
        borrow_decimals: Optional[int] = None,
        prices: Optional[object] = None,
    ) -> OpenSizing:
        """
        Size an open.

        Args:
            collateral_token: Asset supplied as collateral (and flash-loaned)
            borrow_token: Asset borrowed and swapped back to collateral
            leverage: Desired leverage multiple (>= 1)
            user_collateral_amount: Raw collateral the user brings (> 0)
            collateral_decimals: Collateral precision (read from pool if None)
            borrow_decimals: Borrow precision (read from pool if None)
            prices: Not accepted; prices always come from the oracle

        Returns:
            OpenSizing

        Raises:
            ValidationError: On bad input or caller-supplied prices
            InvalidLeverageError: If leverage < 1, above max, or implies a
                borrow ratio (plain or buffered) above the collateral LTV
            AssetNotUsableAsCollateralError: If collateral LTV is zero
            OracleError: If either price cannot be read
        """
        if prices is not None:
            raise ValidationError("Caller-supplied prices are not accepted", field="prices")

        collateral_token = require_nonzero_address(collateral_token, "collateral_token")
        borrow_token = require_nonzero_address(borrow_token, "borrow_token")
        if user_collateral_amount <= 0:
            raise ZeroAmountError(field="user_collateral_amount")
        require_safe_amount(user_collateral_amount, "user_collateral_amount")

        leverage = Decimal(leverage)
        if leverage < 1 or leverage > self.max_leverage:
            raise InvalidLeverageError(leverage=str(leverage), max_leverage=str(self.max_leverage))

        collateral_config = self.pool.get_reserve_configuration(collateral_token)
        borrow_config = self.pool.get_reserve_configuration(borrow_token)
        collateral_decimals = collateral_config.decimals if collateral_decimals is None else collateral_decimals
        borrow_decimals = borrow_config.decimals if borrow_decimals is None else borrow_decimals

        ltv_bps = self.canonical_ratio_bps(collateral_token)

        # borrow / total = (L - 1) / L must not exceed LTV
        leverage_wad = to_wad(leverage)
        if (leverage_wad - WAD) * BPS > ltv_bps * leverage_wad:
            raise InvalidLeverageError(
                "Leverage implies a borrow ratio above the collateral LTV",
                leverage=str(leverage),
                ltv_bps=ltv_bps,
            )

        collateral_quote, borrow_quote = self._fetch_quotes(collateral_token, borrow_token)
        collateral_price, borrow_price = collateral_quote.price, borrow_quote.price

        user_collateral = TokenAmount(collateral_token, user_collateral_amount, collateral_decimals)
        user_value = user_collateral.value_in_base(collateral_quote)
        total_value = wad_mul(user_value, leverage_wad)
        borrow_value = total_value - user_value
        borrow_amount = mul_div(borrow_value, 10 ** borrow_decimals, borrow_price)

        # Computed from raw amounts to avoid a lossy round trip through value
        flash_loan_amount = mul_div(user_collateral_amount, leverage_wad, WAD) - user_collateral_amount

        premium = percent_mul(flash_loan_amount, self.pool.flash_loan_premium_bps)
        amount_owed = flash_loan_amount + premium
        owed_value = mul_div(amount_owed, collateral_price, 10 ** collateral_decimals, round_up=True)
        borrow_for_owed = mul_div(owed_value, 10 ** borrow_decimals, borrow_price, round_up=True)
        buffered_borrow_amount = percent_mul(borrow_for_owed, BPS + self.admin.slippage_buffer_bps)

        # The executed borrow is the buffered one; it must also fit the LTV
        buffered_borrow_value = mul_div(buffered_borrow_amount, borrow_price, 10 ** borrow_decimals, round_up=True)
        if buffered_borrow_value * BPS > ltv_bps * total_value:
            raise InvalidLeverageError(
                "Buffered borrow exceeds the collateral LTV",
                leverage=str(leverage),
                ltv_bps=ltv_bps,
                buffered_borrow_value=buffered_borrow_value,
                max_borrow_value=mul_div(total_value, ltv_bps, BPS),
            )

        sizing = OpenSizing(
            collateral_token=collateral_token,
            borrow_token=borrow_token,
            user_collateral_amount=user_collateral_amount,
            leverage=leverage,
            flash_loan_amount=flash_loan_amount,
            borrow_amount=borrow_amount,
            flash_loan_premium=premium,
            amount_owed=amount_owed,
            buffered_borrow_amount=buffered_borrow_amount,
            collateral_price=collateral_price,
            borrow_price=borrow_price,
            ltv_bps=ltv_bps,
            user_collateral_value=user_value,
            total_collateral_value=total_value,
            borrow_value=borrow_value,
        )

        logger.info(
            "open_sizing_computed",
            collateral_token=collateral_token,
            borrow_token=borrow_token,
            leverage=str(leverage),
            flash_loan_amount=flash_loan_amount,
            borrow_amount=borrow_amount,
            buffered_borrow_amount=buffered_borrow_amount,
        )
        return sizing

    def compute_unwind_sizing(
        self,
        collateral_token: Address,
        debt_token: Address,
        debt_amount: int,
    ) -> UnwindSizing:
        """
        Size an unwind.

        Args:
            collateral_token: Asset withdrawn and swapped to the debt asset
            debt_token: Asset flash-loaned and repaid
            debt_amount: Raw debt to repay (> 0)

        Returns:
            UnwindSizing with the buffered collateral to withdraw

        Raises:
            InvalidPricesError: If either price is not positive
            AssetNotUsableAsCollateralError: If collateral LTV is zero
            OracleError: If either price cannot be read
        """
        collateral_token = require_nonzero_address(collateral_token, "collateral_token")
        debt_token = require_nonzero_address(debt_token, "debt_token")
        if debt_amount <= 0:
            raise ZeroAmountError(field="debt_amount")
        require_safe_amount(debt_amount, "debt_amount")

        collateral_config = self.pool.get_reserve_configuration(collateral_token)
        debt_config = self.pool.get_reserve_configuration(debt_token)
        ratio_bps = self.canonical_ratio_bps(collateral_token)

        collateral_quote, debt_quote = self._fetch_quotes(collateral_token, debt_token)
        collateral_price, debt_price = collateral_quote.price, debt_quote.price

        base = collateral_for_debt(
            debt_amount,
            debt_price,
            debt_config.decimals,
            collateral_price,
            collateral_config.decimals,
            ratio_bps,
        )
        buffer_bps = self.admin.slippage_buffer_bps
        buffered = percent_mul(base, BPS + buffer_bps)

        logger.info(
            "unwind_sizing_computed",
            collateral_token=collateral_token,
            debt_token=debt_token,
            debt_amount=debt_amount,
            collateral_to_withdraw=buffered,
            ratio_bps=ratio_bps,
        )

        return UnwindSizing(
            collateral_token=collateral_token,
            debt_token=debt_token,
            debt_amount=debt_amount,
            base_collateral_to_withdraw=base,
            collateral_to_withdraw=buffered,
            ratio_bps=ratio_bps,
            slippage_buffer_bps=buffer_bps,
            collateral_price=collateral_price,
            debt_price=debt_price,
        )


def build_open_request(
    sizing: OpenSizing,
    swap_instruction: bytes,
    use_buffered_borrow: bool = True,
    min_swap_output: Optional[int] = None,
) -> OpenRequest:
    """
    Assemble an OpenRequest from a sizing and an off-path swap instruction.

    By default the buffered borrow is used so the swap output covers the
    flash loan premium; min_swap_output defaults to the amount owed.
    """
    return OpenRequest(
        flash_loan_token=sizing.collateral_token,
        flash_loan_amount=sizing.flash_loan_amount,
        user_collateral_amount=sizing.user_collateral_amount,
        borrow_token=sizing.borrow_token,
        borrow_amount=sizing.buffered_borrow_amount if use_buffered_borrow else sizing.borrow_amount,
        swap_instruction=swap_instruction,
        min_swap_output=sizing.amount_owed if min_swap_output is None else min_swap_output,
    )


def build_unwind_request(
    sizing: UnwindSizing,
    swap_instruction: bytes,
    min_swap_output: int,
) -> UnwindRequest:
    """Assemble an UnwindRequest from a sizing and an off-path swap instruction."""
    return UnwindRequest(
        collateral_token=sizing.collateral_token,
        collateral_to_withdraw=sizing.collateral_to_withdraw,
        debt_token=sizing.debt_token,
        debt_amount=sizing.debt_amount,
        swap_instruction=swap_instruction,
        min_swap_output=min_swap_output,
    )
