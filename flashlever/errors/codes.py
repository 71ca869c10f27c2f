"""
Error codes and messages for the leverage engine.

Format: XXX-NNNN
- XXX: Category (3 letters)
- NNNN: Sequential number (4 digits)
"""

from enum import Enum
from typing import Dict


class ErrorCategory(Enum):
    """Error categories."""
    GENERAL = "GEN"
    VALIDATION = "VAL"
    ORACLE = "ORC"
    PROTOCOL = "POL"
    SWAP = "SWP"
    RECONCILIATION = "REC"
    ARITHMETIC = "ARI"
    AUTH = "AUT"
    EXECUTION = "EXE"


class ErrorCode(Enum):
    """
    All error codes for the leverage engine.

    Format: CATEGORY-NNNN
    """
    # General Errors (GEN)
    UNKNOWN_ERROR = ("GEN-0001", "An unexpected error occurred")

    # Input Errors (VAL)
    INVALID_INPUT = ("VAL-0001", "Invalid input provided")
    ZERO_AMOUNT = ("VAL-0002", "Amount must be greater than zero")
    ZERO_ADDRESS = ("VAL-0003", "Address must not be the zero address")
    ARRAY_LENGTH_MISMATCH = ("VAL-0004", "Array lengths do not match")
    DEADLINE_EXPIRED = ("VAL-0005", "Deadline has passed")
    BATCH_TOO_LARGE = ("VAL-0006", "Batch exceeds maximum size")
    INVALID_LEVERAGE = ("VAL-0007", "Leverage is out of range")
    AMOUNT_TOO_LARGE = ("VAL-0008", "Amount exceeds maximum safe magnitude")
    INVALID_FEE = ("VAL-0009", "Fee basis points out of range")
    REPAY_EXCEEDS_DEBT = ("VAL-0010", "Repay amount exceeds outstanding debt")

    # Oracle Errors (ORC)
    FEED_NOT_CONFIGURED = ("ORC-0001", "No price feed configured for token")
    INVALID_PRICE = ("ORC-0002", "Price feed returned a non-positive price")
    STALE_PRICE = ("ORC-0003", "Price feed update is older than its maximum age")
    INCOMPLETE_ROUND = ("ORC-0004", "Price feed round is incomplete")
    SEQUENCER_DOWN = ("ORC-0005", "Sequencer is down")
    GRACE_PERIOD_ACTIVE = ("ORC-0006", "Sequencer grace period has not elapsed")
    INVALID_PRICES = ("ORC-0007", "Collateral or debt price is not positive")

    # Lending Pool Errors (POL)
    RESERVE_INACTIVE = ("POL-0001", "Reserve is not active")
    RESERVE_FROZEN = ("POL-0002", "Reserve is frozen")
    BORROW_CAP_EXCEEDED = ("POL-0003", "Borrow cap exceeded")
    SUPPLY_CAP_EXCEEDED = ("POL-0004", "Supply cap exceeded")
    INSUFFICIENT_LIQUIDITY = ("POL-0005", "Insufficient available liquidity")
    COLLATERAL_CANNOT_COVER_BORROW = ("POL-0006", "Collateral cannot cover new borrow")
    HEALTH_FACTOR_TOO_LOW = ("POL-0007", "Health factor would fall below liquidation threshold")
    NO_DEBT_TO_REPAY = ("POL-0008", "No debt of this type to repay")
    ASSET_NOT_USABLE_AS_COLLATERAL = ("POL-0009", "Asset has zero loan-to-value")
    INSUFFICIENT_BALANCE = ("POL-0010", "Transfer amount exceeds balance")
    INSUFFICIENT_ALLOWANCE = ("POL-0011", "Transfer amount exceeds allowance")
    FLASH_LOAN_REJECTED = ("POL-0012", "Flash loan receiver returned failure")

    # Swap Errors (SWP)
    SWAP_FAILED = ("SWP-0001", "Swap call was unsuccessful")
    INSUFFICIENT_OUTPUT = ("SWP-0002", "Swap output below minimum")
    INVALID_SWAP_INSTRUCTION = ("SWP-0003", "Swap instruction could not be decoded")

    # Reconciliation Errors (REC)
    INSUFFICIENT_RETURN_FOR_REPAYMENT = ("REC-0001", "Swap output does not cover flash loan repayment")
    UNHEALTHY_POSITION = ("REC-0002", "Resulting position is not healthy")
    ASSET_MISMATCH = ("REC-0003", "Flash loan asset does not match operation asset")
    UNWIND_SIZING_MISMATCH = ("REC-0004", "Requested withdrawal disagrees with live sizing")

    # Arithmetic Errors (ARI)
    DIVISION_BY_ZERO = ("ARI-0001", "Division by zero or negative divisor")
    ARITHMETIC_OVERFLOW = ("ARI-0002", "Result exceeds 256-bit range")

    # Auth Errors (AUT)
    NOT_OWNER = ("AUT-0001", "Caller is not the owner")
    NOT_PENDING_OWNER = ("AUT-0002", "Caller is not the pending owner")
    INVALID_CALLBACK_CALLER = ("AUT-0003", "Callback caller is not the lending pool")
    INVALID_INITIATOR = ("AUT-0004", "Flash loan was not initiated by this orchestrator")

    # Execution Errors (EXE)
    REENTRANT_CALL = ("EXE-0001", "Reentrant call rejected")
    INVALID_PARAMS = ("EXE-0002", "Flash loan parameters are empty or malformed")
    UNKNOWN_OPERATION = ("EXE-0003", "Unknown operation tag")
    UNSUPPORTED_CONTEXT_VERSION = ("EXE-0004", "Unsupported operation context version")
    CONTEXT_NOT_PENDING = ("EXE-0005", "Operation context is not pending or was already consumed")
    INVALID_STATE_TRANSITION = ("EXE-0006", "Invalid operation state transition")

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        # Parse category from code
        self.category = ErrorCategory(code.split("-")[0])

    @property
    def description(self) -> str:
        return ERROR_DESCRIPTIONS.get(self.code, self.message)


def get_error_info(code: ErrorCode) -> Dict[str, str]:
    """Get error information as dictionary."""
    return {
        "error_code": code.code,
        "message": code.message,
        "category": code.category.value,
    }


# Detailed descriptions for documentation
ERROR_DESCRIPTIONS: Dict[str, str] = {
    "VAL-0005": "The operation deadline is in the past. Resubmit with a fresh deadline.",
    "VAL-0007": "Leverage must be at least 1x and the implied borrow ratio must not exceed the collateral LTV.",
    "VAL-0008": "Amounts must be below 2**128 so that fixed-point intermediates stay inside 256 bits.",
    "VAL-0010": "Unwind repays exactly the flash-loaned amount; it cannot exceed the live debt.",
    "ORC-0003": "The feed has not updated within its heartbeat. Sizing is refused until it does.",
    "ORC-0005": "The L2 sequencer reports an outage; prices may be stale.",
    "ORC-0006": "The sequencer recently came back up; prices are refused until the grace period ends.",
    "POL-0009": "The collateral asset has a loan-to-value of zero and cannot back a borrow.",
    "REC-0001": "The swap did not return enough to repay flash loan principal plus premium. Nothing was executed.",
    "REC-0002": "The resulting health factor does not exceed the minimum. Reduce leverage.",
    "REC-0003": "The flash-loaned asset differs from the asset recorded in the operation context.",
    "REC-0004": "The caller-supplied withdrawal differs from the live computation by more than the slippage buffer.",
    "EXE-0001": "An operation is already executing; nested entry was rejected.",
}


def get_error_description(code: str) -> str:
    """Get detailed description for an error code."""
    for error_code in ErrorCode:
        if error_code.code == code:
            return ERROR_DESCRIPTIONS.get(code, error_code.message)
    return "Unknown error"
