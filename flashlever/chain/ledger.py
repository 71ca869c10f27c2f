"""
In-process execution substrate: token ledger, block clock and the atomic
unit boundary.

The ledger models ERC-20 style balances and allowances keyed by
checksummed token address. NATIVE_ASSET is tracked like any other token.
Tokens registered with a transfer fee deliver less than the sent amount,
which models fee-on-transfer assets.

SimulatedChain.atomic() snapshots every registered component and restores
all of them if an exception escapes, so a failed operation leaves no
partial effect. Scopes nest: an inner failure that is caught by an outer
scope only rolls back the inner frame.
"""
import copy
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple

from flashlever.errors.exceptions import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    ValidationError,
)
from flashlever.models.common import NATIVE_ASSET, Address, to_address
from flashlever.utils.fixed_point import BPS, mul_div
from flashlever.utils.logger import get_logger

logger = get_logger(__name__)


class Snapshottable(Protocol):
    """A component whose mutable state can be captured and restored."""

    def snapshot_state(self) -> Any: ...

    def restore_state(self, state: Any) -> None: ...


@dataclass(frozen=True)
class TokenInfo:
    """Metadata for a registered token."""
    address: Address
    symbol: str
    decimals: int
    transfer_fee_bps: int = 0


class TokenLedger:
    """Balances and allowances for every token on the simulated chain."""

    def __init__(self):
        self._tokens: Dict[Address, TokenInfo] = {}
        self._balances: Dict[Address, Dict[Address, int]] = {}
        self._allowances: Dict[Tuple[Address, Address, Address], int] = {}
        self.register_token(NATIVE_ASSET, "ETH", 18)

    def register_token(
        self,
        token: Address,
        symbol: str,
        decimals: int,
        transfer_fee_bps: int = 0,
    ) -> TokenInfo:
        token = to_address(token, "token")
        if not 0 <= transfer_fee_bps < BPS:
            raise ValidationError("transfer_fee_bps out of range", token=token)
        info = TokenInfo(token, symbol, decimals, transfer_fee_bps)
        self._tokens[token] = info
        self._balances.setdefault(token, {})
        return info

    def token_info(self, token: Address) -> TokenInfo:
        token = to_address(token, "token")
        if token not in self._tokens:
            raise ValidationError(f"Unknown token {token}", token=token)
        return self._tokens[token]

    def decimals(self, token: Address) -> int:
        return self.token_info(token).decimals

    def balance_of(self, token: Address, account: Address) -> int:
        token = self.token_info(token).address
        return self._balances[token].get(to_address(account, "account"), 0)

    def allowance(self, token: Address, owner: Address, spender: Address) -> int:
        token = self.token_info(token).address
        return self._allowances.get((token, to_address(owner), to_address(spender)), 0)

    def mint(self, token: Address, to: Address, amount: int) -> None:
        token = self.token_info(token).address
        to = to_address(to, "to")
        self._balances[token][to] = self._balances[token].get(to, 0) + amount

    def approve(self, token: Address, owner: Address, spender: Address, amount: int) -> None:
        token = self.token_info(token).address
        self._allowances[(token, to_address(owner), to_address(spender))] = amount

    def transfer(self, token: Address, sender: Address, to: Address, amount: int) -> int:
        """
        Move tokens between accounts.

        Returns:
            Amount credited to the recipient (less than amount for
            fee-on-transfer tokens)

        Raises:
            InsufficientBalanceError: If sender balance is too low
        """
        info = self.token_info(token)
        sender = to_address(sender, "sender")
        to = to_address(to, "to")
        balances = self._balances[info.address]

        available = balances.get(sender, 0)
        if amount > available:
            raise InsufficientBalanceError(
                token=info.address, account=sender, required=amount, available=available
            )

        fee = mul_div(amount, info.transfer_fee_bps, BPS) if info.transfer_fee_bps else 0
        received = amount - fee
        balances[sender] = available - amount
        balances[to] = balances.get(to, 0) + received
        return received

    def transfer_from(
        self,
        token: Address,
        spender: Address,
        owner: Address,
        to: Address,
        amount: int,
    ) -> int:
        """Spend an allowance and transfer on the owner's behalf."""
        info = self.token_info(token)
        key = (info.address, to_address(owner), to_address(spender))
        allowed = self._allowances.get(key, 0)
        if amount > allowed:
            raise InsufficientAllowanceError(
                token=info.address, owner=key[1], spender=key[2], required=amount, allowed=allowed
            )
        received = self.transfer(info.address, owner, to, amount)
        self._allowances[key] = allowed - amount
        return received

    def snapshot_state(self) -> Any:
        return copy.deepcopy((self._balances, self._allowances))

    def restore_state(self, state: Any) -> None:
        balances, allowances = copy.deepcopy(state)
        self._balances = balances
        self._allowances = allowances


class SimulatedChain:
    """
    Deterministic single-threaded chain with a block clock.

    Every operation runs to completion before the next starts; atomic()
    provides the all-or-nothing boundary.
    """

    def __init__(self, timestamp: Optional[int] = None):
        self.timestamp = int(timestamp if timestamp is not None else time.time())
        self.ledger = TokenLedger()
        self._components: List[Snapshottable] = [self.ledger]

    def now(self) -> int:
        """Current block timestamp."""
        return self.timestamp

    def advance(self, seconds: int) -> int:
        self.timestamp += seconds
        return self.timestamp

    def register(self, component: Snapshottable) -> None:
        """Include a component in atomic snapshots."""
        if component not in self._components:
            self._components.append(component)

    @contextmanager
    def atomic(self, name: str = "tx") -> Iterator[None]:
        """
        Run a block as one atomic unit of work.

        On any exception every registered component is restored to its
        state at entry and the exception propagates.
        """
        snapshots = [(c, c.snapshot_state()) for c in self._components]
        try:
            yield
        except BaseException as e:
            for component, state in snapshots:
                component.restore_state(state)
            logger.warning("atomic_unit_reverted", unit=name, error=type(e).__name__)
            raise
