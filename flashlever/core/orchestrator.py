"""
Leveraged position orchestrator.

Sequences lending pool and swap calls inside the atomic scope of one
flash loan:

Open:   pull collateral → flash loan collateral asset → supply → borrow
        → swap borrow asset to collateral → repay flash loan
Unwind: flash loan debt asset → repay debt → withdraw collateral
        → swap collateral to debt asset → repay flash loan

Post-conditions (swap output covers principal + premium; resulting health
factor above the minimum; flash asset matches the context) run before
repayment and fail the whole unit. Any surplus after repayment stays in
the position: it is re-supplied to the pool as collateral (less the
protocol fee, if one is set), not refunded.

Entry points hold an exclusive lock for the whole call; nested entry
raises ReentrantCallError. The flash loan context is single-use: its
operation id is armed just before the loan and consumed by the callback.

The callback compares the sender argument with the pool address. That
argument is supplied by the substrate delivering the call, so the check
holds only when the substrate reports the real caller (as
SimulatedLendingPool.flash_loan does). A forged sender still cannot
replay a context: the pending operation id is consumed on first use.
"""
from contextlib import contextmanager
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterator, Optional

from flashlever.chain.ledger import SimulatedChain
from flashlever.config.settings import get_risk_limits
from flashlever.core.admin import AdminConfig
from flashlever.core.position_sizer import PositionSizer
from flashlever.core.swap_adapter import SwapAdapter
from flashlever.errors.exceptions import (
    AssetMismatchError,
    ContextNotPendingError,
    DeadlineExpiredError,
    InsufficientReturnForRepaymentError,
    InvalidCallbackCallerError,
    InvalidInitiatorError,
    InvalidParamsError,
    ReentrantCallError,
    RepayExceedsDebtError,
    UnhealthyPositionError,
    UnwindSizingMismatchError,
    ZeroAmountError,
)
from flashlever.models.common import (
    Address,
    InterestRateMode,
    OperationKind,
    OperationState,
    to_address,
)
from flashlever.models.context import FlashLoanContext, new_operation_id
from flashlever.models.requests import (
    OpenRequest,
    OpenSizing,
    OperationResult,
    UnwindRequest,
    UnwindSizing,
)
from flashlever.state.state_machine import OperationTracker
from flashlever.utils.fixed_point import percent_mul, to_wad
from flashlever.utils.logger import get_logger, log_operation_event
from flashlever.venues.lending_pool import LendingPool

logger = get_logger(__name__)

S = OperationState


@dataclass
class _ActiveOperation:
    """Per-call scratch state, discarded when the call returns."""
    tracker: OperationTracker
    result: OperationResult
    pending_id: Optional[bytes]


class LeveragedPositionOrchestrator:
    """
    Opens and unwinds a leveraged position held by this orchestrator's
    account in the lending pool.

    Args:
        chain: Execution substrate providing the ledger, clock and atomic()
        pool: Lending pool
        sizer: Position sizer (shares the oracle and pool)
        swap_adapter: Adapter bound to this orchestrator's account
        admin: Owner and fee configuration
        address: Orchestrator account address
        min_health_factor: Health factor the result must exceed
            (default from risk config, normally 1.0)
    """

    def __init__(
        self,
        chain: SimulatedChain,
        pool: LendingPool,
        sizer: PositionSizer,
        swap_adapter: SwapAdapter,
        admin: AdminConfig,
        address: Address,
        min_health_factor: Optional[Decimal] = None,
    ):
        self.chain = chain
        self.ledger = chain.ledger
        self.pool = pool
        self.sizer = sizer
        self.swap_adapter = swap_adapter
        self.admin = admin
        self.address = to_address(address, "orchestrator")

        if swap_adapter.account != self.address:
            raise ValueError("Swap adapter must act for the orchestrator account")

        risk_limits = get_risk_limits()
        if min_health_factor is None:
            min_health_factor = Decimal(str(risk_limits.get("min_health_factor", 1.0)))
        self.min_health_factor_wad = to_wad(min_health_factor)

        self._locked = False
        self._active: Optional[_ActiveOperation] = None

    # Read-only operator surface

    def compute_open_sizing(self, *args, **kwargs) -> OpenSizing:
        return self.sizer.compute_open_sizing(*args, **kwargs)

    def compute_unwind_sizing(self, *args, **kwargs) -> UnwindSizing:
        return self.sizer.compute_unwind_sizing(*args, **kwargs)

    @property
    def is_locked(self) -> bool:
        return self._locked

    # Guards

    @contextmanager
    def _non_reentrant(self) -> Iterator[None]:
        if self._locked:
            raise ReentrantCallError()
        self._locked = True
        try:
            yield
        finally:
            self._locked = False
            self._active = None

    def _check_deadline(self, deadline: int) -> None:
        now = self.chain.now()
        if deadline < now:
            raise DeadlineExpiredError(deadline=deadline, now=now)

    # State-mutating operator surface

    def open_position(self, caller: Address, request: OpenRequest, deadline: int) -> OperationResult:
        """
        Open (or add to) a leveraged position.

        Args:
            caller: Must be the owner; supplies the collateral
            request: Amounts from compute_open_sizing plus a swap instruction
            deadline: Latest acceptable block timestamp

        Returns:
            OperationResult

        Raises:
            LeverageError subclasses; on any failure nothing is changed
        """
        with self._non_reentrant():
            self.admin.require_owner(caller)
            caller = to_address(caller, "caller")
            request = request.validate()
            self._check_deadline(deadline)

            operation_id = new_operation_id()
            tracker = OperationTracker(OperationKind.OPEN, "0x" + operation_id.hex())
            result = OperationResult(operation_id=tracker.operation_id, kind=OperationKind.OPEN)
            log_operation_event(
                logger, "started", tracker.operation_id, "open",
                flash_loan_amount=request.flash_loan_amount,
                borrow_amount=request.borrow_amount,
            )

            try:
                with self.chain.atomic("open_position"):
                    received = self._pull_collateral(caller, request)
                    result.collateral_received = received
                    tracker.transition(S.COLLATERAL_RECEIVED)

                    context = FlashLoanContext(
                        kind=OperationKind.OPEN,
                        operation_id=operation_id,
                        caller=caller,
                        request=replace(request, user_collateral_amount=received),
                    )
                    self._active = _ActiveOperation(tracker, result, operation_id)
                    self.pool.flash_loan(
                        self.address, self, request.flash_loan_token, request.flash_loan_amount, context.encode()
                    )
                    tracker.transition(S.REPAID)
            except Exception as e:
                tracker.fail(str(e))
                log_operation_event(
                    logger, "failed", tracker.operation_id, "open", error=type(e).__name__
                )
                raise

            result.states = list(tracker.history)
            log_operation_event(logger, "completed", **result.to_summary())
            return result

    def unwind_position(self, caller: Address, request: UnwindRequest, deadline: int) -> OperationResult:
        """
        Repay debt with a flash loan and withdraw collateral to cover it.

        Args:
            caller: Must be the owner
            request: Amounts from compute_unwind_sizing plus a swap instruction
            deadline: Latest acceptable block timestamp

        Returns:
            OperationResult

        Raises:
            RepayExceedsDebtError: If debt_amount exceeds the live debt
            LeverageError subclasses; on any failure nothing is changed
        """
        with self._non_reentrant():
            self.admin.require_owner(caller)
            caller = to_address(caller, "caller")
            request = request.validate()
            self._check_deadline(deadline)

            outstanding = self.pool.user_debt(request.debt_token, self.address)
            if request.debt_amount > outstanding:
                raise RepayExceedsDebtError(requested=request.debt_amount, outstanding=outstanding)

            operation_id = new_operation_id()
            tracker = OperationTracker(OperationKind.UNWIND, "0x" + operation_id.hex())
            result = OperationResult(operation_id=tracker.operation_id, kind=OperationKind.UNWIND)
            log_operation_event(
                logger, "started", tracker.operation_id, "unwind",
                debt_amount=request.debt_amount,
                collateral_to_withdraw=request.collateral_to_withdraw,
            )

            try:
                with self.chain.atomic("unwind_position"):
                    context = FlashLoanContext(
                        kind=OperationKind.UNWIND,
                        operation_id=operation_id,
                        caller=caller,
                        request=request,
                    )
                    self._active = _ActiveOperation(tracker, result, operation_id)
                    self.pool.flash_loan(
                        self.address, self, request.debt_token, request.debt_amount, context.encode()
                    )
                    tracker.transition(S.REPAID)
            except Exception as e:
                tracker.fail(str(e))
                log_operation_event(
                    logger, "failed", tracker.operation_id, "unwind", error=type(e).__name__
                )
                raise

            result.states = list(tracker.history)
            log_operation_event(logger, "completed", **result.to_summary())
            return result

    # Flash loan callback

    def execute_operation(
        self,
        sender: Address,
        asset: Address,
        amount: int,
        premium: int,
        initiator: Address,
        params: bytes,
    ) -> bool:
        """
        Flash loan callback invoked by the lending pool.

        Caller identity and initiator are verified before any other
        argument is trusted; the context is decoded once and consumed.
        """
        if to_address(sender, "sender") != self.pool.address:
            raise InvalidCallbackCallerError(sender=sender)
        if to_address(initiator, "initiator") != self.address:
            raise InvalidInitiatorError(initiator=initiator)
        if amount <= 0:
            raise ZeroAmountError(field="amount")
        if not params:
            raise InvalidParamsError("Flash loan params are empty")

        context = FlashLoanContext.decode(params)

        active = self._active
        if active is None or active.pending_id is None or context.operation_id != active.pending_id:
            raise ContextNotPendingError(operation_id=context.operation_id_hex)
        active.pending_id = None

        asset = to_address(asset, "asset")
        active.tracker.transition(S.FLASH_LOAN_DRAWN)
        active.result.flash_loan_amount = amount
        active.result.flash_loan_premium = premium

        if context.kind == OperationKind.OPEN:
            self._execute_open(context.request, asset, amount, premium, active)
        else:
            self._execute_unwind(context.request, asset, amount, premium, active)
        return True

    def _execute_open(
        self,
        request: OpenRequest,
        asset: Address,
        amount: int,
        premium: int,
        active: _ActiveOperation,
    ) -> None:
        tracker = active.tracker
        if asset != request.flash_loan_token:
            raise AssetMismatchError(expected=request.flash_loan_token, actual=asset)
        if amount != request.flash_loan_amount:
            raise InvalidParamsError(
                "Flash loan amount differs from context", expected=request.flash_loan_amount, actual=amount
            )

        # Fee-on-transfer assets deliver less than was lent
        supply_amount = min(request.user_collateral_amount + amount, self.ledger.balance_of(asset, self.address))
        self.ledger.approve(asset, self.address, self.pool.address, supply_amount)
        self.pool.supply(self.address, asset, supply_amount, self.address)
        tracker.transition(S.SUPPLIED)

        self.pool.borrow(
            self.address, request.borrow_token, request.borrow_amount, InterestRateMode.VARIABLE, self.address
        )
        tracker.transition(S.BORROWED)

        realized = self.swap_adapter.execute_swap(
            request.swap_instruction,
            input_token=request.borrow_token,
            amount_in=request.borrow_amount,
            output_token=request.collateral_token,
            min_output=request.min_swap_output,
        )
        tracker.transition(S.SWAPPED)

        self._settle(asset, amount, premium, realized, active)

    def _execute_unwind(
        self,
        request: UnwindRequest,
        asset: Address,
        amount: int,
        premium: int,
        active: _ActiveOperation,
    ) -> None:
        tracker = active.tracker
        if asset != request.debt_token:
            raise AssetMismatchError(expected=request.debt_token, actual=asset)

        repay_amount = min(amount, self.ledger.balance_of(asset, self.address))
        self.ledger.approve(asset, self.address, self.pool.address, repay_amount)
        repaid = self.pool.repay(self.address, asset, repay_amount, InterestRateMode.VARIABLE, self.address)
        tracker.transition(S.DEBT_REPAID)

        # Recompute from live state with the same ratio the sizer uses
        live = self.sizer.compute_unwind_sizing(request.collateral_token, request.debt_token, repaid)
        tolerance = live.collateral_to_withdraw - live.base_collateral_to_withdraw
        if abs(request.collateral_to_withdraw - live.collateral_to_withdraw) > tolerance:
            raise UnwindSizingMismatchError(
                requested=request.collateral_to_withdraw,
                recomputed=live.collateral_to_withdraw,
                tolerance=tolerance,
            )

        balance_before = self.ledger.balance_of(request.collateral_token, self.address)
        self.pool.withdraw(self.address, request.collateral_token, live.collateral_to_withdraw, self.address)
        withdrawn = self.ledger.balance_of(request.collateral_token, self.address) - balance_before
        if withdrawn <= 0:
            raise ZeroAmountError("Nothing was withdrawn", field="collateral_withdrawn")
        active.result.collateral_withdrawn = withdrawn
        tracker.transition(S.COLLATERAL_WITHDRAWN)

        realized = self.swap_adapter.execute_swap(
            request.swap_instruction,
            input_token=request.collateral_token,
            amount_in=withdrawn,
            output_token=request.debt_token,
            min_output=request.min_swap_output,
        )
        tracker.transition(S.SWAPPED)

        self._settle(asset, amount, premium, realized, active)

    def _settle(
        self,
        asset: Address,
        amount: int,
        premium: int,
        realized: int,
        active: _ActiveOperation,
    ) -> None:
        """
        Reconcile the swap output against the flash debt, re-supply the
        surplus and approve repayment. Uses only the realized swap output,
        never the account's total balance of the asset.
        """
        owed = amount + premium
        if realized < owed:
            raise InsufficientReturnForRepaymentError(realized=realized, owed=owed, asset=asset)

        surplus = realized - owed
        fee = percent_mul(surplus, self.admin.fee_bps) if self.admin.fee_bps else 0
        if fee:
            self.ledger.transfer(asset, self.address, self.admin.owner, fee)
        resupply = surplus - fee
        if resupply:
            self.ledger.approve(asset, self.address, self.pool.address, resupply)
            self.pool.supply(self.address, asset, resupply, self.address)

        account = self.pool.get_user_account_data(self.address)
        if account.health_factor <= self.min_health_factor_wad:
            raise UnhealthyPositionError(
                health_factor=account.health_factor,
                min_health_factor=self.min_health_factor_wad,
            )

        self.ledger.approve(asset, self.address, self.pool.address, owed)

        active.result.realized_swap_output = realized
        active.result.surplus = surplus
        active.result.fee_paid = fee
        active.result.health_factor = account.health_factor
        active.tracker.transition(S.RECONCILED)

    def _pull_collateral(self, caller: Address, request: OpenRequest) -> int:
        """Take the user's collateral into custody; returns the amount actually received."""
        token = request.collateral_token
        before = self.ledger.balance_of(token, self.address)
        self.ledger.transfer_from(token, self.address, caller, self.address, request.user_collateral_amount)
        received = self.ledger.balance_of(token, self.address) - before
        if received <= 0:
            raise ZeroAmountError("No collateral received", field="user_collateral_amount")
        return received
