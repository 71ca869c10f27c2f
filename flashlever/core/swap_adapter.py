"""
Swap execution adapter.

Calls the aggregator with a pre-built instruction and reconciles the
realized output:
- If the call returns an output amount, that value is used.
- Otherwise the adapter measures its own balance of the *output* token
  before and after the call and uses the delta.

Native asset support: native input is forwarded as call value and native
output is received into the adapter's account; both directions are
supported. When input and output tokens are identical no external call
is made and the input amount is returned unchanged.
"""
from eth_abi import decode
from eth_abi.exceptions import DecodingError

from flashlever.chain.ledger import TokenLedger
from flashlever.errors.exceptions import (
    InsufficientOutputError,
    SwapFailedError,
    ZeroAmountError,
)
from flashlever.models.common import Address, is_native, to_address
from flashlever.utils.logger import get_logger
from flashlever.venues.aggregator import SwapAggregator

logger = get_logger(__name__)


class SwapAdapter:
    """
    Executes swaps for one account (the orchestrator's custody address).

    Args:
        ledger: Token ledger used for approvals and balance reads
        aggregator: External aggregator
        account: Address whose funds are swapped
    """

    def __init__(self, ledger: TokenLedger, aggregator: SwapAggregator, account: Address):
        self.ledger = ledger
        self.aggregator = aggregator
        self.account = to_address(account, "account")

    def execute_swap(
        self,
        instruction: bytes,
        input_token: Address,
        amount_in: int,
        output_token: Address,
        min_output: int,
    ) -> int:
        """
        Execute one swap.

        Args:
            instruction: Opaque, off-path aggregator instruction
            input_token: Token spent
            amount_in: Amount of input_token made available to the aggregator
            output_token: Token expected back; the fallback measures this token
            min_output: Minimum acceptable realized output

        Returns:
            Realized output amount

        Raises:
            SwapFailedError: If the aggregator call is unsuccessful
            InsufficientOutputError: If realized output < min_output
        """
        if amount_in <= 0:
            raise ZeroAmountError(field="amount_in")
        input_token = to_address(input_token, "input_token")
        output_token = to_address(output_token, "output_token")

        if input_token == output_token:
            realized = amount_in
            logger.info("swap_skipped_same_token", token=input_token, amount=amount_in)
        else:
            realized = self._call_aggregator(instruction, input_token, amount_in, output_token)

        if realized < min_output:
            raise InsufficientOutputError(
                realized=realized, min_output=min_output, output_token=output_token
            )
        return realized

    def _call_aggregator(
        self,
        instruction: bytes,
        input_token: Address,
        amount_in: int,
        output_token: Address,
    ) -> int:
        value = 0
        if is_native(input_token):
            value = amount_in
        else:
            self.ledger.approve(input_token, self.account, self.aggregator.address, amount_in)

        balance_before = self.ledger.balance_of(output_token, self.account)
        success, return_data = self.aggregator.call(self.account, instruction, value)

        if not is_native(input_token):
            # Clear any unspent approval
            self.ledger.approve(input_token, self.account, self.aggregator.address, 0)

        if not success:
            reason = return_data.decode(errors="replace") if return_data else ""
            logger.warning("swap_failed", input_token=input_token, output_token=output_token, reason=reason)
            raise SwapFailedError(reason=reason, input_token=input_token, output_token=output_token)

        balance_after = self.ledger.balance_of(output_token, self.account)

        realized = self._decode_output(return_data)
        source = "return_data"
        if realized is None:
            realized = max(0, balance_after - balance_before)
            source = "balance_delta"

        logger.info(
            "swap_executed",
            input_token=input_token,
            output_token=output_token,
            amount_in=amount_in,
            realized_output=realized,
            source=source,
        )
        return realized

    @staticmethod
    def _decode_output(return_data: bytes):
        if len(return_data) < 32:
            return None
        try:
            (amount,) = decode(["uint256"], return_data[:32])
        except DecodingError:
            return None
        return amount
