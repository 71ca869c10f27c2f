"""
Lending pool interface and an Aave-v3-shaped simulation.

The orchestrator treats the pool as the single source of truth for the
position: collateral and debt are re-read on every operation and never
cached locally.

Amounts are raw token units. Account data is reported in base currency
units (8 decimals) and the health factor in WAD.
"""
import copy
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Protocol

from flashlever.chain.ledger import SimulatedChain
from flashlever.errors.exceptions import (
    BorrowCapExceededError,
    CollateralCannotCoverBorrowError,
    FlashLoanRejectedError,
    HealthFactorTooLowError,
    InsufficientLiquidityError,
    NoDebtToRepayError,
    ReserveFrozenError,
    ReserveInactiveError,
    SupplyCapExceededError,
    ValidationError,
    ZeroAmountError,
)
from flashlever.models.common import Address, InterestRateMode, to_address
from flashlever.utils.fixed_point import BPS, MAX_UINT256, WAD, mul_div, percent_mul
from flashlever.utils.logger import get_logger

logger = get_logger(__name__)

PriceSource = Callable[[Address], int]


@dataclass(frozen=True)
class ReserveConfiguration:
    """Per-asset risk configuration. Caps are in whole tokens, 0 = no cap."""
    asset: Address
    decimals: int
    ltv_bps: int
    liquidation_threshold_bps: int
    active: bool = True
    frozen: bool = False
    borrowing_enabled: bool = True
    borrow_cap: int = 0
    supply_cap: int = 0


@dataclass(frozen=True)
class AccountData:
    """Aggregate position of one account, in base currency units."""
    total_collateral_base: int
    total_debt_base: int
    available_borrows_base: int
    current_liquidation_threshold_bps: int
    ltv_bps: int
    health_factor: int


class FlashLoanReceiver(Protocol):
    """Inbound callback invoked by the pool during a flash loan."""

    address: Address

    def execute_operation(
        self,
        sender: Address,
        asset: Address,
        amount: int,
        premium: int,
        initiator: Address,
        params: bytes,
    ) -> bool: ...


class LendingPool(Protocol):
    """Call contract consumed by the orchestrator."""

    address: Address
    flash_loan_premium_bps: int

    def get_reserve_configuration(self, asset: Address) -> ReserveConfiguration: ...

    def supply(self, sender: Address, asset: Address, amount: int, on_behalf_of: Address) -> None: ...

    def borrow(
        self, sender: Address, asset: Address, amount: int, rate_mode: InterestRateMode, on_behalf_of: Address
    ) -> None: ...

    def repay(
        self, sender: Address, asset: Address, amount: int, rate_mode: InterestRateMode, on_behalf_of: Address
    ) -> int: ...

    def withdraw(self, sender: Address, asset: Address, amount: int, to: Address) -> int: ...

    def flash_loan(
        self, sender: Address, receiver: FlashLoanReceiver, asset: Address, amount: int, params: bytes
    ) -> None: ...

    def get_user_account_data(self, user: Address) -> AccountData: ...

    def user_collateral(self, asset: Address, user: Address) -> int: ...

    def user_debt(self, asset: Address, user: Address) -> int: ...


class SimulatedLendingPool:
    """
    In-memory lending pool with Aave v3 semantics for supply, borrow,
    repay, withdraw and single-asset flash loans.

    Args:
        chain: Simulated chain holding the token ledger
        price_source: Callable returning an 8-decimal price for an asset
        address: Pool account address
        flash_loan_premium_bps: Premium charged on flash loans
        enforce_borrow_ltv: Reject borrows the collateral's LTV cannot cover
    """

    def __init__(
        self,
        chain: SimulatedChain,
        price_source: PriceSource,
        address: Address,
        flash_loan_premium_bps: int = 5,
        enforce_borrow_ltv: bool = True,
    ):
        self.chain = chain
        self.ledger = chain.ledger
        self.price_source = price_source
        self.address = to_address(address, "pool")
        self.flash_loan_premium_bps = flash_loan_premium_bps
        self.enforce_borrow_ltv = enforce_borrow_ltv

        self._reserves: Dict[Address, ReserveConfiguration] = {}
        self._supplied: Dict[Address, Dict[Address, int]] = {}
        self._debt: Dict[Address, Dict[Address, int]] = {}

        chain.register(self)

    # Configuration

    def add_reserve(self, config: ReserveConfiguration) -> ReserveConfiguration:
        asset = to_address(config.asset, "asset")
        if config.liquidation_threshold_bps < config.ltv_bps:
            raise ValidationError("Liquidation threshold must be >= LTV", asset=asset)
        config = replace(config, asset=asset)
        self._reserves[asset] = config
        self._supplied.setdefault(asset, {})
        self._debt.setdefault(asset, {})
        return config

    def update_reserve(self, asset: Address, **changes: Any) -> ReserveConfiguration:
        """Change reserve flags or caps (e.g. frozen=True)."""
        config = replace(self.get_reserve_configuration(asset), **changes)
        self._reserves[config.asset] = config
        return config

    def get_reserve_configuration(self, asset: Address) -> ReserveConfiguration:
        asset = to_address(asset, "asset")
        if asset not in self._reserves:
            raise ReserveInactiveError(f"No reserve for {asset}", asset=asset)
        return self._reserves[asset]

    # Views

    def user_collateral(self, asset: Address, user: Address) -> int:
        asset = self.get_reserve_configuration(asset).asset
        return self._supplied[asset].get(to_address(user), 0)

    def user_debt(self, asset: Address, user: Address) -> int:
        asset = self.get_reserve_configuration(asset).asset
        return self._debt[asset].get(to_address(user), 0)

    def available_liquidity(self, asset: Address) -> int:
        return self.ledger.balance_of(asset, self.address)

    def _base_value(self, config: ReserveConfiguration, amount: int) -> int:
        if amount == 0:
            return 0
        return mul_div(amount, self.price_source(config.asset), 10 ** config.decimals)

    def get_user_account_data(self, user: Address) -> AccountData:
        """
        Aggregate collateral and debt across reserves.

        The health factor is sum(collateral * liquidation threshold) / debt
        in WAD, or MAX_UINT256 when the account has no debt.
        """
        user = to_address(user, "user")
        total_collateral = 0
        total_debt = 0
        weighted_ltv = 0
        weighted_threshold = 0

        for asset, config in self._reserves.items():
            supplied = self._supplied[asset].get(user, 0)
            if supplied:
                value = self._base_value(config, supplied)
                total_collateral += value
                weighted_ltv += value * config.ltv_bps
                weighted_threshold += value * config.liquidation_threshold_bps
            debt = self._debt[asset].get(user, 0)
            if debt:
                total_debt += self._base_value(config, debt)

        avg_ltv = weighted_ltv // total_collateral if total_collateral else 0
        avg_threshold = weighted_threshold // total_collateral if total_collateral else 0

        if total_debt == 0:
            health_factor = MAX_UINT256
        else:
            health_factor = mul_div(weighted_threshold // BPS, WAD, total_debt)

        max_borrow = weighted_ltv // BPS
        available = max(0, max_borrow - total_debt)

        return AccountData(
            total_collateral_base=total_collateral,
            total_debt_base=total_debt,
            available_borrows_base=available,
            current_liquidation_threshold_bps=avg_threshold,
            ltv_bps=avg_ltv,
            health_factor=health_factor,
        )

    # Validation

    def _require_usable(self, asset: Address, allow_frozen: bool = False) -> ReserveConfiguration:
        config = self.get_reserve_configuration(asset)
        if not config.active:
            raise ReserveInactiveError(asset=config.asset)
        if config.frozen and not allow_frozen:
            raise ReserveFrozenError(asset=config.asset)
        return config

    @staticmethod
    def _require_amount(amount: int) -> None:
        if amount <= 0:
            raise ZeroAmountError(field="amount")

    # Mutations

    def supply(self, sender: Address, asset: Address, amount: int, on_behalf_of: Address) -> None:
        self._require_amount(amount)
        config = self._require_usable(asset)
        on_behalf_of = to_address(on_behalf_of, "on_behalf_of")

        if config.supply_cap:
            total_supplied = sum(self._supplied[config.asset].values())
            if total_supplied + amount > config.supply_cap * 10 ** config.decimals:
                raise SupplyCapExceededError(asset=config.asset, cap=config.supply_cap)

        received = self.ledger.transfer_from(config.asset, self.address, sender, self.address, amount)
        balances = self._supplied[config.asset]
        balances[on_behalf_of] = balances.get(on_behalf_of, 0) + received

        logger.debug("pool_supply", asset=config.asset, amount=received, on_behalf_of=on_behalf_of)

    def borrow(
        self,
        sender: Address,
        asset: Address,
        amount: int,
        rate_mode: InterestRateMode,
        on_behalf_of: Address,
    ) -> None:
        self._require_amount(amount)
        config = self._require_usable(asset)
        InterestRateMode(rate_mode)
        sender = to_address(sender, "sender")
        on_behalf_of = to_address(on_behalf_of, "on_behalf_of")

        if not config.borrowing_enabled:
            raise ReserveFrozenError("Borrowing is disabled", asset=config.asset)

        if config.borrow_cap:
            total_debt = sum(self._debt[config.asset].values())
            if total_debt + amount > config.borrow_cap * 10 ** config.decimals:
                raise BorrowCapExceededError(asset=config.asset, cap=config.borrow_cap)

        liquidity = self.available_liquidity(config.asset)
        if amount > liquidity:
            raise InsufficientLiquidityError(asset=config.asset, requested=amount, available=liquidity)

        if self.enforce_borrow_ltv:
            account = self.get_user_account_data(on_behalf_of)
            new_debt_value = self._base_value(config, amount)
            if new_debt_value > account.available_borrows_base:
                raise CollateralCannotCoverBorrowError(
                    asset=config.asset,
                    requested_base=new_debt_value,
                    available_base=account.available_borrows_base,
                )

        debts = self._debt[config.asset]
        debts[on_behalf_of] = debts.get(on_behalf_of, 0) + amount
        self.ledger.transfer(config.asset, self.address, sender, amount)

        logger.debug("pool_borrow", asset=config.asset, amount=amount, on_behalf_of=on_behalf_of)

    def repay(
        self,
        sender: Address,
        asset: Address,
        amount: int,
        rate_mode: InterestRateMode,
        on_behalf_of: Address,
    ) -> int:
        """Repay debt; returns the amount actually repaid (capped at the debt)."""
        self._require_amount(amount)
        config = self._require_usable(asset, allow_frozen=True)
        InterestRateMode(rate_mode)
        on_behalf_of = to_address(on_behalf_of, "on_behalf_of")

        debts = self._debt[config.asset]
        outstanding = debts.get(on_behalf_of, 0)
        if outstanding == 0:
            raise NoDebtToRepayError(asset=config.asset, user=on_behalf_of)

        repaid = min(amount, outstanding)
        self.ledger.transfer_from(config.asset, self.address, sender, self.address, repaid)
        debts[on_behalf_of] = outstanding - repaid

        logger.debug("pool_repay", asset=config.asset, amount=repaid, on_behalf_of=on_behalf_of)
        return repaid

    def withdraw(self, sender: Address, asset: Address, amount: int, to: Address) -> int:
        """
        Withdraw supplied collateral.

        Returns the amount actually withdrawn, capped at the sender's
        supplied balance. MAX_UINT256 withdraws everything.
        """
        self._require_amount(amount)
        config = self._require_usable(asset, allow_frozen=True)
        sender = to_address(sender, "sender")

        balances = self._supplied[config.asset]
        supplied = balances.get(sender, 0)
        actual = min(amount, supplied)
        if actual == 0:
            raise InsufficientLiquidityError("Nothing to withdraw", asset=config.asset, user=sender)

        liquidity = self.available_liquidity(config.asset)
        if actual > liquidity:
            raise InsufficientLiquidityError(asset=config.asset, requested=actual, available=liquidity)

        balances[sender] = supplied - actual
        account = self.get_user_account_data(sender)
        if account.total_debt_base and account.health_factor < WAD:
            balances[sender] = supplied
            raise HealthFactorTooLowError(asset=config.asset, health_factor=account.health_factor)

        self.ledger.transfer(config.asset, self.address, to, actual)

        logger.debug("pool_withdraw", asset=config.asset, amount=actual, user=sender)
        return actual

    def flash_loan(
        self,
        sender: Address,
        receiver: FlashLoanReceiver,
        asset: Address,
        amount: int,
        params: bytes,
    ) -> None:
        """
        Lend amount of asset to receiver for the duration of one callback.

        The receiver must leave amount + premium approved to the pool when
        its callback returns; otherwise the whole loan reverts.
        """
        self._require_amount(amount)
        config = self._require_usable(asset, allow_frozen=True)
        initiator = to_address(sender, "sender")

        liquidity = self.available_liquidity(config.asset)
        if amount > liquidity:
            raise InsufficientLiquidityError(asset=config.asset, requested=amount, available=liquidity)

        premium = percent_mul(amount, self.flash_loan_premium_bps)

        with self.chain.atomic("flash_loan"):
            self.ledger.transfer(config.asset, self.address, receiver.address, amount)
            ok = receiver.execute_operation(
                self.address, config.asset, amount, premium, initiator, params
            )
            if not ok:
                raise FlashLoanRejectedError(asset=config.asset)
            self.ledger.transfer_from(
                config.asset, self.address, receiver.address, self.address, amount + premium
            )

        logger.info(
            "flash_loan_settled",
            asset=config.asset,
            amount=amount,
            premium=premium,
            receiver=receiver.address,
        )

    def snapshot_state(self) -> Any:
        return copy.deepcopy((self._reserves, self._supplied, self._debt))

    def restore_state(self, state: Any) -> None:
        reserves, supplied, debt = copy.deepcopy(state)
        self._reserves = reserves
        self._supplied = supplied
        self._debt = debt
