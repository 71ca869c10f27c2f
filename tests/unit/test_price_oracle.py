"""
Tests for the price oracle adapter.

These tests verify:
- Owner-gated feed registry and batch limits
- Liveness validation (stale, incomplete round, non-positive answer)
- Sequencer uptime and grace period handling
- Normalization to 8 decimals
"""
import pytest

from flashlever.chain.ledger import SimulatedChain
from flashlever.core.admin import AdminConfig
from flashlever.errors.exceptions import (
    ArrayLengthMismatchError,
    BatchTooLargeError,
    FeedNotConfiguredError,
    GracePeriodActiveError,
    IncompleteRoundError,
    InvalidPriceError,
    NotOwnerError,
    SequencerDownError,
    StalePriceError,
    ZeroAddressError,
)
from flashlever.oracle.feeds import SequencerUptimeFeed, StaticPriceFeed
from flashlever.oracle.price_oracle import PriceOracle
from tests.conftest import ONE_DOLLAR, OWNER, START_TIME, STRANGER, TOKEN_A, TOKEN_B


@pytest.fixture
def chain():
    return SimulatedChain(timestamp=START_TIME)


@pytest.fixture
def oracle(chain):
    return PriceOracle(AdminConfig(OWNER), clock=chain.now)


class TestFeedRegistry:
    """Tests for feed registration."""

    def test_set_feed_requires_owner(self, oracle, chain):
        with pytest.raises(NotOwnerError):
            oracle.set_feed(STRANGER, TOKEN_A, StaticPriceFeed(ONE_DOLLAR, chain.now()))

    def test_zero_token_rejected(self, oracle, chain):
        with pytest.raises(ZeroAddressError):
            oracle.set_feed(OWNER, "0x" + "00" * 20, StaticPriceFeed(ONE_DOLLAR, chain.now()))

    def test_unconfigured_token(self, oracle):
        with pytest.raises(FeedNotConfiguredError):
            oracle.get_price(TOKEN_A)

    def test_remove_feed(self, oracle, chain):
        oracle.set_feed(OWNER, TOKEN_A, StaticPriceFeed(ONE_DOLLAR, chain.now()))
        assert oracle.has_feed(TOKEN_A)
        oracle.remove_feed(OWNER, TOKEN_A)
        assert not oracle.has_feed(TOKEN_A)
        with pytest.raises(FeedNotConfiguredError):
            oracle.get_price(TOKEN_A)

    def test_set_feeds_batch(self, oracle, chain):
        feeds = [StaticPriceFeed(ONE_DOLLAR, chain.now()), StaticPriceFeed(2 * ONE_DOLLAR, chain.now())]
        oracle.set_feeds(OWNER, [TOKEN_A, TOKEN_B], feeds)
        assert oracle.get_prices([TOKEN_A, TOKEN_B]) == [ONE_DOLLAR, 2 * ONE_DOLLAR]

    def test_set_feeds_length_mismatch(self, oracle, chain):
        with pytest.raises(ArrayLengthMismatchError):
            oracle.set_feeds(OWNER, [TOKEN_A, TOKEN_B], [StaticPriceFeed(ONE_DOLLAR, chain.now())])

    def test_set_feeds_batch_too_large(self, chain):
        oracle = PriceOracle(AdminConfig(OWNER), clock=chain.now, max_batch_size=1)
        feeds = [StaticPriceFeed(ONE_DOLLAR, chain.now())] * 2
        with pytest.raises(BatchTooLargeError):
            oracle.set_feeds(OWNER, [TOKEN_A, TOKEN_B], feeds)

    def test_set_feeds_is_all_or_nothing(self, oracle, chain):
        """An invalid entry leaves the registry untouched."""
        feed = StaticPriceFeed(ONE_DOLLAR, chain.now())
        with pytest.raises(ZeroAddressError):
            oracle.set_feeds(OWNER, [TOKEN_A, "0x" + "00" * 20], [feed, feed])
        assert not oracle.has_feed(TOKEN_A)


class TestPriceValidation:
    """Tests for liveness checks."""

    def test_fresh_price(self, oracle, chain):
        oracle.set_feed(OWNER, TOKEN_A, StaticPriceFeed(2500 * ONE_DOLLAR, chain.now()))
        quote = oracle.get_quote(TOKEN_A)
        assert quote.price == 2500 * ONE_DOLLAR
        assert quote.updated_at == chain.now()

    def test_stale_price(self, oracle, chain):
        oracle.set_feed(OWNER, TOKEN_A, StaticPriceFeed(ONE_DOLLAR, chain.now()), max_age_seconds=3600)
        chain.advance(3601)
        with pytest.raises(StalePriceError):
            oracle.get_price(TOKEN_A)

    def test_price_at_max_age_is_fresh(self, oracle, chain):
        oracle.set_feed(OWNER, TOKEN_A, StaticPriceFeed(ONE_DOLLAR, chain.now()), max_age_seconds=3600)
        chain.advance(3600)
        assert oracle.get_price(TOKEN_A) == ONE_DOLLAR

    def test_zero_and_negative_answers(self, oracle, chain):
        feed = StaticPriceFeed(0, chain.now())
        oracle.set_feed(OWNER, TOKEN_A, feed)
        with pytest.raises(InvalidPriceError):
            oracle.get_price(TOKEN_A)

        feed.set_price(-5, chain.now())
        with pytest.raises(InvalidPriceError):
            oracle.get_price(TOKEN_A)

    def test_incomplete_round(self, oracle, chain):
        feed = StaticPriceFeed(ONE_DOLLAR, chain.now())
        feed.set_round(5, ONE_DOLLAR, chain.now(), chain.now(), answered_in_round=4)
        oracle.set_feed(OWNER, TOKEN_A, feed)
        with pytest.raises(IncompleteRoundError):
            oracle.get_price(TOKEN_A)

    def test_unset_update_time(self, oracle, chain):
        feed = StaticPriceFeed(ONE_DOLLAR, chain.now())
        feed.set_round(2, ONE_DOLLAR, chain.now(), 0)
        oracle.set_feed(OWNER, TOKEN_A, feed)
        with pytest.raises(IncompleteRoundError):
            oracle.get_price(TOKEN_A)

    def test_normalizes_decimals(self, oracle, chain):
        oracle.set_feed(OWNER, TOKEN_A, StaticPriceFeed(3 * 10 ** 18, chain.now(), decimals=18))
        oracle.set_feed(OWNER, TOKEN_B, StaticPriceFeed(3 * 10 ** 6, chain.now(), decimals=6))
        assert oracle.get_price(TOKEN_A) == 3 * ONE_DOLLAR
        assert oracle.get_price(TOKEN_B) == 3 * ONE_DOLLAR

    def test_sub_unit_high_precision_answer_rejected(self, oracle, chain):
        oracle.set_feed(OWNER, TOKEN_A, StaticPriceFeed(1, chain.now(), decimals=18))
        with pytest.raises(InvalidPriceError):
            oracle.get_price(TOKEN_A)


class TestSequencer:
    """Tests for L2 sequencer uptime checks."""

    @pytest.fixture
    def configured(self, oracle, chain):
        oracle.set_feed(OWNER, TOKEN_A, StaticPriceFeed(ONE_DOLLAR, chain.now()))
        return oracle

    def test_sequencer_down(self, configured, chain):
        configured.set_sequencer_feed(OWNER, SequencerUptimeFeed(is_up=False, since=chain.now() - 10))
        with pytest.raises(SequencerDownError):
            configured.get_price(TOKEN_A)

    def test_grace_period_active(self, configured, chain):
        configured.set_sequencer_feed(OWNER, SequencerUptimeFeed(is_up=True, since=chain.now() - 60))
        with pytest.raises(GracePeriodActiveError):
            configured.get_price(TOKEN_A)

    def test_grace_period_elapsed(self, configured, chain):
        configured.set_sequencer_feed(OWNER, SequencerUptimeFeed(is_up=True, since=chain.now() - 3601))
        assert configured.get_price(TOKEN_A) == ONE_DOLLAR

    def test_uninitialized_sequencer_round(self, configured):
        configured.set_sequencer_feed(OWNER, SequencerUptimeFeed(is_up=True, since=0))
        with pytest.raises(GracePeriodActiveError):
            configured.get_price(TOKEN_A)

    def test_disable_sequencer_check(self, configured, chain):
        configured.set_sequencer_feed(OWNER, SequencerUptimeFeed(is_up=False, since=chain.now()))
        configured.set_sequencer_feed(OWNER, None)
        assert configured.get_price(TOKEN_A) == ONE_DOLLAR

    def test_set_sequencer_feed_requires_owner(self, configured):
        with pytest.raises(NotOwnerError):
            configured.set_sequencer_feed(STRANGER, SequencerUptimeFeed())
