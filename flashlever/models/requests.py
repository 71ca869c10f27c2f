"""
Ephemeral request and result types for open/unwind operations.

Requests are produced by the position sizer (plus an off-path swap
instruction), consumed once by the orchestrator and never persisted.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from flashlever.errors.exceptions import InvalidParamsError, ZeroAmountError
from flashlever.models.common import (
    Address,
    OperationKind,
    OperationState,
    require_nonzero_address,
)
from flashlever.utils.fixed_point import from_wad, require_safe_amount


def _require_positive(value: int, field_name: str) -> None:
    if value <= 0:
        raise ZeroAmountError(field=field_name)
    require_safe_amount(value, field_name)


@dataclass(frozen=True)
class OpenRequest:
    """Inputs for opening a leveraged position. The flash-loan token is the collateral."""
    flash_loan_token: Address
    flash_loan_amount: int
    user_collateral_amount: int
    borrow_token: Address
    borrow_amount: int
    swap_instruction: bytes
    min_swap_output: int

    @property
    def collateral_token(self) -> Address:
        return self.flash_loan_token

    def validate(self) -> "OpenRequest":
        """Reject malformed input before any external call."""
        flash_loan_token = require_nonzero_address(self.flash_loan_token, "flash_loan_token")
        borrow_token = require_nonzero_address(self.borrow_token, "borrow_token")
        _require_positive(self.flash_loan_amount, "flash_loan_amount")
        _require_positive(self.user_collateral_amount, "user_collateral_amount")
        _require_positive(self.borrow_amount, "borrow_amount")
        require_safe_amount(self.min_swap_output, "min_swap_output")
        if not self.swap_instruction:
            raise InvalidParamsError("Swap instruction is empty", field="swap_instruction")
        return OpenRequest(
            flash_loan_token=flash_loan_token,
            flash_loan_amount=self.flash_loan_amount,
            user_collateral_amount=self.user_collateral_amount,
            borrow_token=borrow_token,
            borrow_amount=self.borrow_amount,
            swap_instruction=bytes(self.swap_instruction),
            min_swap_output=self.min_swap_output,
        )


@dataclass(frozen=True)
class UnwindRequest:
    """Inputs for unwinding (part of) a leveraged position."""
    collateral_token: Address
    collateral_to_withdraw: int
    debt_token: Address
    debt_amount: int
    swap_instruction: bytes
    min_swap_output: int

    def validate(self) -> "UnwindRequest":
        """Reject malformed input before any external call."""
        collateral_token = require_nonzero_address(self.collateral_token, "collateral_token")
        debt_token = require_nonzero_address(self.debt_token, "debt_token")
        _require_positive(self.collateral_to_withdraw, "collateral_to_withdraw")
        _require_positive(self.debt_amount, "debt_amount")
        require_safe_amount(self.min_swap_output, "min_swap_output")
        if not self.swap_instruction:
            raise InvalidParamsError("Swap instruction is empty", field="swap_instruction")
        return UnwindRequest(
            collateral_token=collateral_token,
            collateral_to_withdraw=self.collateral_to_withdraw,
            debt_token=debt_token,
            debt_amount=self.debt_amount,
            swap_instruction=bytes(self.swap_instruction),
            min_swap_output=self.min_swap_output,
        )


@dataclass(frozen=True)
class OpenSizing:
    """
    Result of open sizing.

    borrow_amount is the pure leverage borrow (total value minus user
    value). buffered_borrow_amount additionally covers the flash loan
    premium and the slippage buffer, which is what a caller should borrow
    for the swap output to repay the flash loan.
    """
    collateral_token: Address
    borrow_token: Address
    user_collateral_amount: int
    leverage: Decimal
    flash_loan_amount: int
    borrow_amount: int
    flash_loan_premium: int
    amount_owed: int
    buffered_borrow_amount: int
    collateral_price: int
    borrow_price: int
    ltv_bps: int
    user_collateral_value: int
    total_collateral_value: int
    borrow_value: int


@dataclass(frozen=True)
class UnwindSizing:
    """
    Result of unwind sizing.

    base_collateral_to_withdraw = debt value / (collateral price * LTV);
    collateral_to_withdraw adds the slippage buffer on top.
    """
    collateral_token: Address
    debt_token: Address
    debt_amount: int
    base_collateral_to_withdraw: int
    collateral_to_withdraw: int
    ratio_bps: int
    slippage_buffer_bps: int
    collateral_price: int
    debt_price: int


@dataclass
class OperationResult:
    """Outcome of a successful open or unwind."""
    operation_id: str
    kind: OperationKind
    states: List[OperationState] = field(default_factory=list)
    flash_loan_amount: int = 0
    flash_loan_premium: int = 0
    realized_swap_output: int = 0
    surplus: int = 0
    fee_paid: int = 0
    health_factor: Optional[int] = None
    collateral_received: int = 0
    collateral_withdrawn: int = 0

    @property
    def amount_owed(self) -> int:
        return self.flash_loan_amount + self.flash_loan_premium

    def to_summary(self) -> dict:
        """Get summary dict for logging."""
        return {
            "operation_id": self.operation_id,
            "kind": self.kind.name.lower(),
            "final_state": self.states[-1].value if self.states else None,
            "flash_loan_amount": self.flash_loan_amount,
            "amount_owed": self.amount_owed,
            "realized_swap_output": self.realized_swap_output,
            "surplus": self.surplus,
            "fee_paid": self.fee_paid,
            "health_factor": float(from_wad(self.health_factor)) if self.health_factor is not None else None,
        }
