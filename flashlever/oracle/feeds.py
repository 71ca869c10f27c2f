"""
Price feed shapes (Chainlink AggregatorV3) and settable simulation feeds.
"""
from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class RoundData:
    """One round as returned by latestRoundData()."""
    round_id: int
    answer: int
    started_at: int
    updated_at: int
    answered_in_round: int


class PriceFeed(Protocol):
    """Anything that reports rounds like a Chainlink aggregator."""

    @property
    def decimals(self) -> int: ...

    def latest_round_data(self) -> RoundData: ...


class StaticPriceFeed:
    """
    Feed whose answer is set directly. Each set_price starts a new,
    complete round.
    """

    def __init__(self, answer: int, updated_at: int, decimals: int = 8):
        self._decimals = decimals
        self._round = RoundData(1, answer, updated_at, updated_at, 1)

    @property
    def decimals(self) -> int:
        return self._decimals

    def set_price(self, answer: int, updated_at: int) -> None:
        next_round = self._round.round_id + 1
        self._round = RoundData(next_round, answer, updated_at, updated_at, next_round)

    def set_round(
        self,
        round_id: int,
        answer: int,
        started_at: int,
        updated_at: int,
        answered_in_round: Optional[int] = None,
    ) -> None:
        """Set raw round data, e.g. to model an incomplete round."""
        self._round = RoundData(
            round_id,
            answer,
            started_at,
            updated_at,
            round_id if answered_in_round is None else answered_in_round,
        )

    def latest_round_data(self) -> RoundData:
        return self._round


class SequencerUptimeFeed:
    """
    L2 sequencer status feed: answer 0 means up, 1 means down; started_at
    is the time of the last status change.
    """

    decimals = 0

    def __init__(self, is_up: bool = True, since: int = 0):
        self._round = RoundData(1, 0 if is_up else 1, since, since, 1)

    def set_status(self, is_up: bool, since: int) -> None:
        next_round = self._round.round_id + 1
        self._round = RoundData(next_round, 0 if is_up else 1, since, since, next_round)

    def latest_round_data(self) -> RoundData:
        return self._round
