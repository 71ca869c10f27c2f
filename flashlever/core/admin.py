"""
Owner and fee configuration shared by the oracle registry and the
orchestrator.

Ownership moves in two steps (propose, then accept by the proposed
address) so a mistyped address cannot take control.
"""
from typing import Optional

from flashlever.config.settings import get_risk_limits
from flashlever.errors.exceptions import (
    InvalidFeeError,
    NotOwnerError,
    NotPendingOwnerError,
)
from flashlever.models.common import Address, require_nonzero_address, to_address
from flashlever.utils.fixed_point import BPS
from flashlever.utils.logger import get_logger

logger = get_logger(__name__)


class AdminConfig:
    """
    Single-writer configuration object passed explicitly to components.

    Args:
        owner: Initial owner address
        fee_bps: Protocol fee on swap surplus (default from risk config)
        slippage_buffer_bps: Buffer applied to unwind withdrawals and
            buffered open borrows (default from risk config)
    """

    def __init__(
        self,
        owner: Address,
        fee_bps: Optional[int] = None,
        slippage_buffer_bps: Optional[int] = None,
    ):
        risk_limits = get_risk_limits()
        self.max_fee_bps = int(risk_limits.get("max_fee_bps", 1000))

        self._owner = require_nonzero_address(owner, "owner")
        self._pending_owner: Optional[Address] = None
        self._fee_bps = 0
        self._slippage_buffer_bps = 0

        self._set_fee(int(risk_limits.get("fee_bps", 0)) if fee_bps is None else fee_bps)
        self._set_buffer(
            int(risk_limits.get("slippage_buffer_bps", 500))
            if slippage_buffer_bps is None else slippage_buffer_bps
        )

    @property
    def owner(self) -> Address:
        return self._owner

    @property
    def pending_owner(self) -> Optional[Address]:
        return self._pending_owner

    @property
    def fee_bps(self) -> int:
        return self._fee_bps

    @property
    def slippage_buffer_bps(self) -> int:
        return self._slippage_buffer_bps

    def require_owner(self, caller: Address) -> None:
        if to_address(caller, "caller") != self._owner:
            raise NotOwnerError(caller=caller)

    def propose_owner(self, caller: Address, new_owner: Address) -> None:
        """Step one of an ownership transfer."""
        self.require_owner(caller)
        self._pending_owner = require_nonzero_address(new_owner, "new_owner")
        logger.info("ownership_transfer_proposed", owner=self._owner, pending_owner=self._pending_owner)

    def accept_ownership(self, caller: Address) -> None:
        """Step two: the proposed owner claims ownership."""
        caller = to_address(caller, "caller")
        if self._pending_owner is None or caller != self._pending_owner:
            raise NotPendingOwnerError(caller=caller)
        previous = self._owner
        self._owner = caller
        self._pending_owner = None
        logger.info("ownership_transferred", previous_owner=previous, owner=caller)

    def cancel_ownership_transfer(self, caller: Address) -> None:
        self.require_owner(caller)
        self._pending_owner = None

    def set_fee_bps(self, caller: Address, fee_bps: int) -> None:
        self.require_owner(caller)
        self._set_fee(fee_bps)
        logger.info("fee_updated", fee_bps=fee_bps)

    def set_slippage_buffer_bps(self, caller: Address, buffer_bps: int) -> None:
        self.require_owner(caller)
        self._set_buffer(buffer_bps)
        logger.info("slippage_buffer_updated", slippage_buffer_bps=buffer_bps)

    def _set_fee(self, fee_bps: int) -> None:
        if not 0 <= fee_bps <= self.max_fee_bps:
            raise InvalidFeeError(fee_bps=fee_bps, max_fee_bps=self.max_fee_bps)
        self._fee_bps = fee_bps

    def _set_buffer(self, buffer_bps: int) -> None:
        if not 0 <= buffer_bps < BPS:
            raise InvalidFeeError("Slippage buffer out of range", buffer_bps=buffer_bps)
        self._slippage_buffer_bps = buffer_bps
