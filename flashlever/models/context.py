"""
Flash loan context: the typed, versioned parameter bundle threaded through
the lending pool's callback.

Wire format (ABI-encoded):
    (uint8 version, uint8 kind, bytes32 operation_id, address caller, bytes payload)

The payload layout depends on kind. Unknown versions and tags are
rejected at decode time.
"""
import secrets
from dataclasses import dataclass
from typing import Union

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from flashlever.errors.exceptions import (
    InvalidParamsError,
    UnknownOperationError,
    UnsupportedContextVersionError,
)
from flashlever.models.common import Address, OperationKind
from flashlever.models.requests import OpenRequest, UnwindRequest

CONTEXT_VERSION = 1

_HEADER_TYPES = ["uint8", "uint8", "bytes32", "address", "bytes"]
_OPEN_TYPES = ["address", "uint256", "uint256", "address", "uint256", "bytes", "uint256"]
_UNWIND_TYPES = ["address", "uint256", "address", "uint256", "bytes", "uint256"]

OperationRequest = Union[OpenRequest, UnwindRequest]


def new_operation_id() -> bytes:
    """Random 32-byte identifier binding a context to one flash loan."""
    return secrets.token_bytes(32)


@dataclass(frozen=True)
class FlashLoanContext:
    """
    Single-use bundle describing the operation a flash loan funds.

    For OPEN, request.user_collateral_amount holds the amount actually
    received into custody, not the amount the caller asked to transfer.
    """
    kind: OperationKind
    operation_id: bytes
    caller: Address
    request: OperationRequest
    version: int = CONTEXT_VERSION

    @property
    def operation_id_hex(self) -> str:
        return "0x" + self.operation_id.hex()

    def encode(self) -> bytes:
        if self.kind == OperationKind.OPEN:
            r = self.request
            payload = encode(
                _OPEN_TYPES,
                [
                    r.flash_loan_token,
                    r.flash_loan_amount,
                    r.user_collateral_amount,
                    r.borrow_token,
                    r.borrow_amount,
                    r.swap_instruction,
                    r.min_swap_output,
                ],
            )
        elif self.kind == OperationKind.UNWIND:
            r = self.request
            payload = encode(
                _UNWIND_TYPES,
                [
                    r.collateral_token,
                    r.collateral_to_withdraw,
                    r.debt_token,
                    r.debt_amount,
                    r.swap_instruction,
                    r.min_swap_output,
                ],
            )
        else:
            raise UnknownOperationError(kind=int(self.kind))

        return encode(
            _HEADER_TYPES,
            [self.version, int(self.kind), self.operation_id, self.caller, payload],
        )

    @classmethod
    def decode(cls, params: bytes) -> "FlashLoanContext":
        """
        Decode and validate a context.

        Raises:
            InvalidParamsError: If params are empty or not decodable
            UnsupportedContextVersionError: If the version is unknown
            UnknownOperationError: If the kind tag is unknown
        """
        if not params:
            raise InvalidParamsError("Flash loan params are empty")

        try:
            version, tag, operation_id, caller, payload = decode(_HEADER_TYPES, params)
        except (DecodingError, ValueError, TypeError) as e:
            raise InvalidParamsError(f"Malformed context header: {e}")

        if version != CONTEXT_VERSION:
            raise UnsupportedContextVersionError(version=version)

        try:
            kind = OperationKind(tag)
        except ValueError:
            raise UnknownOperationError(tag=tag)

        try:
            if kind == OperationKind.OPEN:
                fields = decode(_OPEN_TYPES, payload)
                request = OpenRequest(
                    flash_loan_token=to_checksum_address(fields[0]),
                    flash_loan_amount=fields[1],
                    user_collateral_amount=fields[2],
                    borrow_token=to_checksum_address(fields[3]),
                    borrow_amount=fields[4],
                    swap_instruction=bytes(fields[5]),
                    min_swap_output=fields[6],
                )
            else:
                fields = decode(_UNWIND_TYPES, payload)
                request = UnwindRequest(
                    collateral_token=to_checksum_address(fields[0]),
                    collateral_to_withdraw=fields[1],
                    debt_token=to_checksum_address(fields[2]),
                    debt_amount=fields[3],
                    swap_instruction=bytes(fields[4]),
                    min_swap_output=fields[5],
                )
        except (DecodingError, ValueError, TypeError) as e:
            raise InvalidParamsError(f"Malformed {kind.name.lower()} payload: {e}")

        return cls(
            kind=kind,
            operation_id=bytes(operation_id),
            caller=to_checksum_address(caller),
            request=request,
            version=version,
        )
