"""
Pytest configuration and shared fixtures.

Builds a funded simulated environment: token A (18 decimals) as
collateral, token B (6 decimals) as the borrow asset, both at $1, an
Aave-shaped pool with LTV 80% / liquidation threshold 85%, oracle feeds,
an aggregator with inventory and an owner holding collateral.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict

import pytest

from flashlever.chain.ledger import SimulatedChain, TokenLedger
from flashlever.config.settings import clear_settings_cache, reload_settings
from flashlever.core.admin import AdminConfig
from flashlever.core.orchestrator import LeveragedPositionOrchestrator
from flashlever.core.position_sizer import PositionSizer, build_open_request
from flashlever.core.swap_adapter import SwapAdapter
from flashlever.models.common import to_address
from flashlever.models.requests import OpenRequest, OpenSizing
from flashlever.oracle.feeds import StaticPriceFeed
from flashlever.oracle.price_oracle import PriceOracle
from flashlever.venues.aggregator import SimulatedAggregator, build_swap_instruction
from flashlever.venues.lending_pool import ReserveConfiguration, SimulatedLendingPool

START_TIME = 1_700_000_000

OWNER = to_address("0x" + "11" * 20)
STRANGER = to_address("0x" + "22" * 20)
POOL = to_address("0x" + "33" * 20)
AGGREGATOR = to_address("0x" + "44" * 20)
ORCHESTRATOR = to_address("0x" + "55" * 20)

TOKEN_A = to_address("0x" + "a1" * 20)
TOKEN_B = to_address("0x" + "b2" * 20)

ONE_A = 10 ** 18
ONE_B = 10 ** 6
ONE_DOLLAR = 10 ** 8


@dataclass
class Environment:
    """Everything a test needs to drive an open or unwind."""
    chain: SimulatedChain
    ledger: TokenLedger
    admin: AdminConfig
    oracle: PriceOracle
    feeds: Dict[str, StaticPriceFeed]
    pool: SimulatedLendingPool
    aggregator: SimulatedAggregator
    adapter: SwapAdapter
    sizer: PositionSizer
    orchestrator: LeveragedPositionOrchestrator

    @property
    def deadline(self) -> int:
        return self.chain.now() + 300

    def open_sizing(self, leverage="3", user_amount=1000 * ONE_A) -> OpenSizing:
        return self.sizer.compute_open_sizing(TOKEN_A, TOKEN_B, Decimal(leverage), user_amount)

    def open_request(self, leverage="3", user_amount=1000 * ONE_A, **kwargs) -> OpenRequest:
        sizing = self.open_sizing(leverage, user_amount)
        instruction = build_swap_instruction(TOKEN_B, TOKEN_A, sizing.buffered_borrow_amount)
        return build_open_request(sizing, instruction, **kwargs)

    def snapshot(self):
        """Comparable view of all mutable state."""
        return (self.ledger.snapshot_state(), self.pool.snapshot_state())


def build_environment(
    enforce_borrow_ltv: bool = True,
    aggregator_returns_output: bool = True,
    fee_bps: int = 0,
) -> Environment:
    chain = SimulatedChain(timestamp=START_TIME)
    ledger = chain.ledger
    ledger.register_token(TOKEN_A, "A", 18)
    ledger.register_token(TOKEN_B, "B", 6)

    admin = AdminConfig(OWNER, fee_bps=fee_bps, slippage_buffer_bps=500)
    oracle = PriceOracle(admin, clock=chain.now)
    feeds = {
        TOKEN_A: StaticPriceFeed(ONE_DOLLAR, chain.now()),
        TOKEN_B: StaticPriceFeed(ONE_DOLLAR, chain.now()),
    }
    for token, feed in feeds.items():
        oracle.set_feed(OWNER, token, feed)

    pool = SimulatedLendingPool(
        chain, oracle.get_price, POOL, flash_loan_premium_bps=5, enforce_borrow_ltv=enforce_borrow_ltv
    )
    pool.add_reserve(ReserveConfiguration(TOKEN_A, 18, ltv_bps=8000, liquidation_threshold_bps=8500))
    pool.add_reserve(ReserveConfiguration(TOKEN_B, 6, ltv_bps=8000, liquidation_threshold_bps=8500))
    ledger.mint(TOKEN_A, POOL, 1_000_000 * ONE_A)
    ledger.mint(TOKEN_B, POOL, 1_000_000 * ONE_B)

    aggregator = SimulatedAggregator(
        chain, oracle.get_price, AGGREGATOR, fee_bps=30, returns_output=aggregator_returns_output
    )
    ledger.mint(TOKEN_A, AGGREGATOR, 1_000_000 * ONE_A)
    ledger.mint(TOKEN_B, AGGREGATOR, 1_000_000 * ONE_B)

    adapter = SwapAdapter(ledger, aggregator, ORCHESTRATOR)
    sizer = PositionSizer(oracle, pool, admin)
    orchestrator = LeveragedPositionOrchestrator(
        chain, pool, sizer, adapter, admin, ORCHESTRATOR
    )

    ledger.mint(TOKEN_A, OWNER, 10_000 * ONE_A)
    ledger.approve(TOKEN_A, OWNER, ORCHESTRATOR, 10_000 * ONE_A)

    return Environment(
        chain=chain,
        ledger=ledger,
        admin=admin,
        oracle=oracle,
        feeds=feeds,
        pool=pool,
        aggregator=aggregator,
        adapter=adapter,
        sizer=sizer,
        orchestrator=orchestrator,
    )


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Use the bundled risk config regardless of the host environment."""
    monkeypatch.delenv("RISK_CONFIG_PATH", raising=False)
    reload_settings()
    yield
    clear_settings_cache()


@pytest.fixture
def env() -> Environment:
    """Funded simulated environment."""
    return build_environment()


@pytest.fixture
def opened_env(env) -> Environment:
    """Environment with a 3x position already opened from 1000 A."""
    env.orchestrator.open_position(OWNER, env.open_request(), env.deadline)
    return env
