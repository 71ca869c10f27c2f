"""
Price oracle adapter over a registry of per-token feeds.

get_price() either returns a positive 8-decimal price or raises a typed
OracleError; a default or zero price never reaches sizing math.

Checks, in order:
1. Feed registered                       -> FeedNotConfiguredError
2. Sequencer up (if a feed is set)       -> SequencerDownError
3. Sequencer grace period elapsed        -> GracePeriodActiveError
4. Answer positive                       -> InvalidPriceError
5. Round complete                        -> IncompleteRoundError
6. Update within the feed's max age      -> StalePriceError
"""
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from flashlever.config.settings import get_oracle_config
from flashlever.core.admin import AdminConfig
from flashlever.errors.exceptions import (
    ArrayLengthMismatchError,
    BatchTooLargeError,
    FeedNotConfiguredError,
    GracePeriodActiveError,
    IncompleteRoundError,
    InvalidPriceError,
    SequencerDownError,
    StalePriceError,
    ZeroAmountError,
)
from flashlever.models.amounts import PriceQuote
from flashlever.models.common import Address, require_nonzero_address, to_address
from flashlever.oracle.feeds import PriceFeed
from flashlever.utils.fixed_point import PRICE_DECIMALS
from flashlever.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FeedConfig:
    """Registered feed and its liveness bound."""
    feed: PriceFeed
    max_age_seconds: int


class PriceOracle:
    """
    Owner-managed feed registry with liveness validation.

    Args:
        admin: Shared owner configuration
        clock: Callable returning the current timestamp
        default_max_age_seconds: Heartbeat used when set_feed omits one
        sequencer_grace_period_seconds: Wait after a sequencer restart
        max_batch_size: Upper bound for set_feeds
    """

    def __init__(
        self,
        admin: AdminConfig,
        clock: Callable[[], int],
        default_max_age_seconds: Optional[int] = None,
        sequencer_grace_period_seconds: Optional[int] = None,
        max_batch_size: Optional[int] = None,
    ):
        oracle_config = get_oracle_config()
        self.admin = admin
        self.clock = clock
        self.default_max_age_seconds = default_max_age_seconds or int(
            oracle_config.get("max_price_age_seconds", 3600)
        )
        self.sequencer_grace_period_seconds = (
            sequencer_grace_period_seconds
            if sequencer_grace_period_seconds is not None
            else int(oracle_config.get("sequencer_grace_period_seconds", 3600))
        )
        self.max_batch_size = max_batch_size or int(oracle_config.get("max_batch_size", 20))

        self._feeds: Dict[Address, FeedConfig] = {}
        self._sequencer_feed: Optional[PriceFeed] = None

    # Registry management (owner-gated)

    def set_feed(
        self,
        caller: Address,
        token: Address,
        feed: PriceFeed,
        max_age_seconds: Optional[int] = None,
    ) -> None:
        self.admin.require_owner(caller)
        self._register(token, feed, max_age_seconds)

    def set_feeds(
        self,
        caller: Address,
        tokens: Sequence[Address],
        feeds: Sequence[PriceFeed],
        max_ages: Optional[Sequence[int]] = None,
    ) -> None:
        """Register several feeds at once, bounded by max_batch_size."""
        self.admin.require_owner(caller)
        if len(tokens) != len(feeds) or (max_ages is not None and len(max_ages) != len(tokens)):
            raise ArrayLengthMismatchError(tokens=len(tokens), feeds=len(feeds))
        if len(tokens) > self.max_batch_size:
            raise BatchTooLargeError(size=len(tokens), max_size=self.max_batch_size)

        # Validate every entry before registering any
        entries = [
            (
                require_nonzero_address(token, "token"),
                feed,
                max_ages[i] if max_ages is not None else None,
            )
            for i, (token, feed) in enumerate(zip(tokens, feeds))
        ]
        for token, feed, max_age in entries:
            self._register(token, feed, max_age)

    def remove_feed(self, caller: Address, token: Address) -> None:
        self.admin.require_owner(caller)
        self._feeds.pop(to_address(token, "token"), None)
        logger.info("price_feed_removed", token=token)

    def set_sequencer_feed(self, caller: Address, feed: Optional[PriceFeed]) -> None:
        """Enable (or with None, disable) sequencer uptime checks."""
        self.admin.require_owner(caller)
        self._sequencer_feed = feed
        logger.info("sequencer_feed_updated", enabled=feed is not None)

    def _register(self, token: Address, feed: PriceFeed, max_age_seconds: Optional[int]) -> None:
        token = require_nonzero_address(token, "token")
        max_age = self.default_max_age_seconds if max_age_seconds is None else max_age_seconds
        if max_age <= 0:
            raise ZeroAmountError(field="max_age_seconds")
        self._feeds[token] = FeedConfig(feed=feed, max_age_seconds=max_age)
        logger.info("price_feed_set", token=token, max_age_seconds=max_age)

    def has_feed(self, token: Address) -> bool:
        return to_address(token, "token") in self._feeds

    # Reads

    def _check_sequencer(self, now: int) -> None:
        if self._sequencer_feed is None:
            return
        status = self._sequencer_feed.latest_round_data()
        if status.answer != 0:
            raise SequencerDownError(since=status.started_at)
        if status.started_at == 0 or now - status.started_at <= self.sequencer_grace_period_seconds:
            raise GracePeriodActiveError(
                up_since=status.started_at,
                grace_period_seconds=self.sequencer_grace_period_seconds,
            )

    def get_quote(self, token: Address) -> PriceQuote:
        """
        Read and validate the latest price for a token.

        Returns:
            PriceQuote normalized to PRICE_DECIMALS

        Raises:
            OracleError subclasses as listed in the module docstring
        """
        token = to_address(token, "token")
        config = self._feeds.get(token)
        if config is None:
            raise FeedNotConfiguredError(token=token)

        now = self.clock()
        self._check_sequencer(now)

        data = config.feed.latest_round_data()
        if data.answer <= 0:
            raise InvalidPriceError(token=token, answer=data.answer)
        if data.updated_at == 0 or data.answered_in_round < data.round_id:
            raise IncompleteRoundError(
                token=token, round_id=data.round_id, answered_in_round=data.answered_in_round
            )
        age = now - data.updated_at
        if age > config.max_age_seconds:
            raise StalePriceError(token=token, age_seconds=age, max_age_seconds=config.max_age_seconds)

        price = _normalize(data.answer, config.feed.decimals)
        if price <= 0:
            # Sub-unit answers from high-precision feeds round to zero
            raise InvalidPriceError(token=token, answer=data.answer)

        return PriceQuote(token=token, price=price, updated_at=data.updated_at)

    def get_price(self, token: Address) -> int:
        return self.get_quote(token).price

    def get_prices(self, tokens: List[Address]) -> List[int]:
        return [self.get_price(token) for token in tokens]


def _normalize(answer: int, decimals: int) -> int:
    if decimals == PRICE_DECIMALS:
        return answer
    if decimals < PRICE_DECIMALS:
        return answer * 10 ** (PRICE_DECIMALS - decimals)
    return answer // 10 ** (decimals - PRICE_DECIMALS)
