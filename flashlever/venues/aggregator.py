"""
Swap aggregator interface, off-path instruction builder and a simulation.

Instructions are opaque to the orchestrator: they are built off-path
(here with build_swap_instruction) and handed to the aggregator as bytes.
The aggregator behaves like a low-level call and returns
(success, return_data); return_data may be empty.
"""
from dataclasses import dataclass
from typing import Callable, List, Protocol, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from flashlever.chain.ledger import SimulatedChain
from flashlever.errors.exceptions import InvalidSwapInstructionError
from flashlever.models.common import Address, is_native, to_address
from flashlever.utils.fixed_point import BPS, mul_div
from flashlever.utils.logger import get_logger

logger = get_logger(__name__)

_INSTRUCTION_TYPES = ["address", "address", "uint256", "uint256"]

CallResult = Tuple[bool, bytes]


@dataclass(frozen=True)
class SwapInstruction:
    """Decoded form of an aggregator route."""
    token_in: Address
    token_out: Address
    amount_in: int
    min_amount_out: int


def build_swap_instruction(
    token_in: Address,
    token_out: Address,
    amount_in: int,
    min_amount_out: int = 0,
) -> bytes:
    """Encode a route for the aggregator (off-path)."""
    return encode(
        _INSTRUCTION_TYPES,
        [to_address(token_in, "token_in"), to_address(token_out, "token_out"), amount_in, min_amount_out],
    )


def decode_swap_instruction(data: bytes) -> SwapInstruction:
    try:
        token_in, token_out, amount_in, min_amount_out = decode(_INSTRUCTION_TYPES, data)
    except (DecodingError, ValueError, TypeError) as e:
        raise InvalidSwapInstructionError(f"Cannot decode swap instruction: {e}")
    return SwapInstruction(
        token_in=to_checksum_address(token_in),
        token_out=to_checksum_address(token_out),
        amount_in=amount_in,
        min_amount_out=min_amount_out,
    )


class SwapAggregator(Protocol):
    """External aggregator reached through a low-level call."""

    address: Address

    def call(self, sender: Address, data: bytes, value: int = 0) -> CallResult: ...


SwapHook = Callable[["SimulatedAggregator", Address], None]


class SimulatedAggregator:
    """
    Aggregator that fills routes at oracle prices minus a fee, from its
    own inventory.

    The input pulled is min(instruction amount, allowance) for tokens, or
    the attached value for the native asset. Registered hooks run
    mid-swap, after the input is taken and before output is paid, to
    model arbitrary external code.

    Args:
        chain: Simulated chain holding the token ledger
        price_source: Callable returning an 8-decimal price for a token
        address: Aggregator account address
        fee_bps: Execution cost applied to the output
        returns_output: Whether successful calls return the output amount
    """

    def __init__(
        self,
        chain: SimulatedChain,
        price_source: Callable[[Address], int],
        address: Address,
        fee_bps: int = 30,
        returns_output: bool = True,
    ):
        self.chain = chain
        self.ledger = chain.ledger
        self.price_source = price_source
        self.address = to_address(address, "aggregator")
        self.fee_bps = fee_bps
        self.returns_output = returns_output
        self.hooks: List[SwapHook] = []

    def add_hook(self, hook: SwapHook) -> None:
        self.hooks.append(hook)

    def quote(self, token_in: Address, token_out: Address, amount_in: int) -> int:
        """Output for amount_in at current prices after fee."""
        if token_in == token_out:
            gross = amount_in
        else:
            value = mul_div(amount_in, self.price_source(token_in), 10 ** self.ledger.decimals(token_in))
            gross = mul_div(value, 10 ** self.ledger.decimals(token_out), self.price_source(token_out))
        return gross - mul_div(gross, self.fee_bps, BPS)

    def call(self, sender: Address, data: bytes, value: int = 0) -> CallResult:
        sender = to_address(sender, "sender")
        try:
            route = decode_swap_instruction(data)
        except InvalidSwapInstructionError as e:
            return False, e.message.encode()

        if is_native(route.token_in):
            amount_in = min(value, route.amount_in)
        else:
            if value:
                return False, b"unexpected native value"
            amount_in = min(
                route.amount_in, self.ledger.allowance(route.token_in, sender, self.address)
            )
        if amount_in <= 0:
            return False, b"no input"

        amount_out = self.quote(route.token_in, route.token_out, amount_in)
        if amount_out < route.min_amount_out:
            return False, b"return amount is not enough"
        if amount_out > self.ledger.balance_of(route.token_out, self.address):
            return False, b"insufficient aggregator liquidity"

        with self.chain.atomic("aggregator_swap"):
            if is_native(route.token_in):
                # Attached value moves with the call; any excess is refunded
                self.ledger.transfer(route.token_in, sender, self.address, value)
                if value > amount_in:
                    self.ledger.transfer(route.token_in, self.address, sender, value - amount_in)
            else:
                self.ledger.transfer_from(route.token_in, self.address, sender, self.address, amount_in)

            for hook in self.hooks:
                hook(self, sender)

            self.ledger.transfer(route.token_out, self.address, sender, amount_out)

        logger.debug(
            "aggregator_swap",
            token_in=route.token_in,
            token_out=route.token_out,
            amount_in=amount_in,
            amount_out=amount_out,
        )

        if self.returns_output:
            return True, encode(["uint256"], [amount_out])
        return True, b""
