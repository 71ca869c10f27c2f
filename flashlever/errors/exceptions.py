"""
Exception classes for the leverage engine.

Every concrete error carries an ErrorCode. Category base classes mirror the
error taxonomy: input, oracle, lending pool, swap, reconciliation,
arithmetic, auth and execution failures.
"""

from typing import Any, Dict, Optional

from .codes import ErrorCode


class LeverageError(Exception):
    """Base exception for all leverage engine errors."""

    error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: Optional[str] = None,
        description: Optional[str] = None,
        **details: Any,
    ):
        self.code = self.error_code.code
        self.message = message or self.error_code.message
        self.description = description or self.error_code.description
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging or API responses."""
        return {
            "error_code": self.code,
            "message": self.message,
            "description": self.description,
            "details": self.details,
        }


class ValidationError(LeverageError):
    """Input validation error, raised before any external call."""
    error_code = ErrorCode.INVALID_INPUT


class OracleError(LeverageError):
    """Price oracle failure."""


class ProtocolError(LeverageError):
    """Lending pool or token ledger failure."""


class SwapError(LeverageError):
    """Swap execution failure."""


class ReconciliationError(LeverageError):
    """Post-condition failure inside the flash loan callback."""


class ArithmeticGuardError(LeverageError):
    """Controlled rejection of an unsafe arithmetic operation."""


class AuthError(LeverageError):
    """Authorization failure."""


class ExecutionError(LeverageError):
    """Orchestration failure (reentrancy, malformed context, bad state)."""


# Input errors

class ZeroAmountError(ValidationError):
    error_code = ErrorCode.ZERO_AMOUNT


class ZeroAddressError(ValidationError):
    error_code = ErrorCode.ZERO_ADDRESS


class ArrayLengthMismatchError(ValidationError):
    error_code = ErrorCode.ARRAY_LENGTH_MISMATCH


class DeadlineExpiredError(ValidationError):
    error_code = ErrorCode.DEADLINE_EXPIRED


class BatchTooLargeError(ValidationError):
    error_code = ErrorCode.BATCH_TOO_LARGE


class InvalidLeverageError(ValidationError):
    error_code = ErrorCode.INVALID_LEVERAGE


class AmountTooLargeError(ValidationError):
    error_code = ErrorCode.AMOUNT_TOO_LARGE


class InvalidFeeError(ValidationError):
    error_code = ErrorCode.INVALID_FEE


class RepayExceedsDebtError(ValidationError):
    error_code = ErrorCode.REPAY_EXCEEDS_DEBT


# Oracle errors

class FeedNotConfiguredError(OracleError):
    error_code = ErrorCode.FEED_NOT_CONFIGURED


class InvalidPriceError(OracleError):
    error_code = ErrorCode.INVALID_PRICE


class StalePriceError(OracleError):
    error_code = ErrorCode.STALE_PRICE


class IncompleteRoundError(OracleError):
    error_code = ErrorCode.INCOMPLETE_ROUND


class SequencerDownError(OracleError):
    error_code = ErrorCode.SEQUENCER_DOWN


class GracePeriodActiveError(OracleError):
    error_code = ErrorCode.GRACE_PERIOD_ACTIVE


class InvalidPricesError(OracleError):
    error_code = ErrorCode.INVALID_PRICES


# Lending pool / ledger errors

class ReserveInactiveError(ProtocolError):
    error_code = ErrorCode.RESERVE_INACTIVE


class ReserveFrozenError(ProtocolError):
    error_code = ErrorCode.RESERVE_FROZEN


class BorrowCapExceededError(ProtocolError):
    error_code = ErrorCode.BORROW_CAP_EXCEEDED


class SupplyCapExceededError(ProtocolError):
    error_code = ErrorCode.SUPPLY_CAP_EXCEEDED


class InsufficientLiquidityError(ProtocolError):
    error_code = ErrorCode.INSUFFICIENT_LIQUIDITY


class CollateralCannotCoverBorrowError(ProtocolError):
    error_code = ErrorCode.COLLATERAL_CANNOT_COVER_BORROW


class HealthFactorTooLowError(ProtocolError):
    error_code = ErrorCode.HEALTH_FACTOR_TOO_LOW


class NoDebtToRepayError(ProtocolError):
    error_code = ErrorCode.NO_DEBT_TO_REPAY


class AssetNotUsableAsCollateralError(ProtocolError):
    error_code = ErrorCode.ASSET_NOT_USABLE_AS_COLLATERAL


class InsufficientBalanceError(ProtocolError):
    error_code = ErrorCode.INSUFFICIENT_BALANCE


class InsufficientAllowanceError(ProtocolError):
    error_code = ErrorCode.INSUFFICIENT_ALLOWANCE


class FlashLoanRejectedError(ProtocolError):
    error_code = ErrorCode.FLASH_LOAN_REJECTED


# Swap errors

class SwapFailedError(SwapError):
    error_code = ErrorCode.SWAP_FAILED


class InsufficientOutputError(SwapError):
    error_code = ErrorCode.INSUFFICIENT_OUTPUT


class InvalidSwapInstructionError(SwapError):
    error_code = ErrorCode.INVALID_SWAP_INSTRUCTION


# Reconciliation errors

class InsufficientReturnForRepaymentError(ReconciliationError):
    error_code = ErrorCode.INSUFFICIENT_RETURN_FOR_REPAYMENT


class UnhealthyPositionError(ReconciliationError):
    error_code = ErrorCode.UNHEALTHY_POSITION


class AssetMismatchError(ReconciliationError):
    error_code = ErrorCode.ASSET_MISMATCH


class UnwindSizingMismatchError(ReconciliationError):
    error_code = ErrorCode.UNWIND_SIZING_MISMATCH


# Arithmetic errors

class DivisionByZeroError(ArithmeticGuardError):
    error_code = ErrorCode.DIVISION_BY_ZERO


class ArithmeticOverflowError(ArithmeticGuardError):
    error_code = ErrorCode.ARITHMETIC_OVERFLOW


# Auth errors

class NotOwnerError(AuthError):
    error_code = ErrorCode.NOT_OWNER


class NotPendingOwnerError(AuthError):
    error_code = ErrorCode.NOT_PENDING_OWNER


class InvalidCallbackCallerError(AuthError):
    error_code = ErrorCode.INVALID_CALLBACK_CALLER


class InvalidInitiatorError(AuthError):
    error_code = ErrorCode.INVALID_INITIATOR


# Execution errors

class ReentrantCallError(ExecutionError):
    error_code = ErrorCode.REENTRANT_CALL


class InvalidParamsError(ExecutionError):
    error_code = ErrorCode.INVALID_PARAMS


class UnknownOperationError(ExecutionError):
    error_code = ErrorCode.UNKNOWN_OPERATION


class UnsupportedContextVersionError(ExecutionError):
    error_code = ErrorCode.UNSUPPORTED_CONTEXT_VERSION


class ContextNotPendingError(ExecutionError):
    error_code = ErrorCode.CONTEXT_NOT_PENDING


class InvalidStateTransitionError(ExecutionError):
    error_code = ErrorCode.INVALID_STATE_TRANSITION
