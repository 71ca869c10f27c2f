"""
Common enums, type aliases and address helpers used across the system.
"""
from enum import Enum, IntEnum

from eth_utils import is_address, to_checksum_address

from flashlever.errors.exceptions import ValidationError, ZeroAddressError

# Type aliases
Address = str

ZERO_ADDRESS: Address = "0x0000000000000000000000000000000000000000"

# Sentinel for the chain's native (non-tokenized) asset
NATIVE_ASSET: Address = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"


class OperationKind(IntEnum):
    """Operation tag carried in the flash loan context."""
    OPEN = 1
    UNWIND = 2


class InterestRateMode(IntEnum):
    """Lending pool interest rate mode."""
    STABLE = 1
    VARIABLE = 2


class OperationState(str, Enum):
    """Orchestrator state machine states."""
    START = "start"
    COLLATERAL_RECEIVED = "collateral_received"
    FLASH_LOAN_DRAWN = "flash_loan_drawn"
    SUPPLIED = "supplied"
    BORROWED = "borrowed"
    DEBT_REPAID = "debt_repaid"
    COLLATERAL_WITHDRAWN = "collateral_withdrawn"
    SWAPPED = "swapped"
    RECONCILED = "reconciled_against_flash_debt"
    REPAID = "repaid"
    FAILED = "failed"


def to_address(value: str, field: str = "address") -> Address:
    """
    Normalize an address to checksummed form.

    Raises:
        ValidationError: If value is not a 20-byte hex address
    """
    if not isinstance(value, str) or not is_address(value):
        raise ValidationError(f"Invalid address for {field}: {value!r}", field=field)
    return to_checksum_address(value)


def require_nonzero_address(value: str, field: str = "address") -> Address:
    """Normalize an address and reject the zero address."""
    address = to_address(value, field)
    if address == ZERO_ADDRESS:
        raise ZeroAddressError(field=field)
    return address


def is_native(token: Address) -> bool:
    return token.lower() == NATIVE_ASSET.lower()
