#!/usr/bin/env python3
"""Run an open followed by a full unwind on a simulated chain."""

import argparse
from decimal import Decimal

from flashlever.chain.ledger import SimulatedChain
from flashlever.config.settings import get_simulation_config
from flashlever.core.admin import AdminConfig
from flashlever.core.orchestrator import LeveragedPositionOrchestrator
from flashlever.core.position_sizer import PositionSizer, build_open_request, build_unwind_request
from flashlever.core.swap_adapter import SwapAdapter
from flashlever.oracle.feeds import StaticPriceFeed
from flashlever.oracle.price_oracle import PriceOracle
from flashlever.utils.fixed_point import from_wad
from flashlever.utils.logger import configure_logging
from flashlever.venues.aggregator import SimulatedAggregator, build_swap_instruction
from flashlever.venues.lending_pool import ReserveConfiguration, SimulatedLendingPool

OWNER = "0x1111111111111111111111111111111111111111"
POOL = "0x3333333333333333333333333333333333333333"
AGGREGATOR = "0x4444444444444444444444444444444444444444"
ORCHESTRATOR = "0x5555555555555555555555555555555555555555"

WETH = "0x82af49447d8a07e3bd95bd0d56f35241523fbab1"
USDC = "0xaf88d065e77c8cc2239327c5edb3a432268e5831"


def build(eth_price: int):
    """Wire a funded pool, oracle and aggregator around one orchestrator."""
    simulation = get_simulation_config()
    chain = SimulatedChain()
    ledger = chain.ledger
    ledger.register_token(WETH, "WETH", 18)
    ledger.register_token(USDC, "USDC", 6)

    admin = AdminConfig(OWNER)
    oracle = PriceOracle(admin, clock=chain.now)
    oracle.set_feed(OWNER, WETH, StaticPriceFeed(eth_price * 10 ** 8, chain.now()))
    oracle.set_feed(OWNER, USDC, StaticPriceFeed(10 ** 8, chain.now()))

    pool = SimulatedLendingPool(
        chain, oracle.get_price, POOL,
        flash_loan_premium_bps=int(simulation.get("flash_loan_premium_bps", 5)),
    )
    pool.add_reserve(ReserveConfiguration(WETH, 18, ltv_bps=8000, liquidation_threshold_bps=8250))
    pool.add_reserve(ReserveConfiguration(USDC, 6, ltv_bps=7500, liquidation_threshold_bps=7800))
    ledger.mint(WETH, POOL, 10_000 * 10 ** 18)
    ledger.mint(USDC, POOL, 50_000_000 * 10 ** 6)

    aggregator = SimulatedAggregator(
        chain, oracle.get_price, AGGREGATOR,
        fee_bps=int(simulation.get("aggregator_fee_bps", 30)),
    )
    ledger.mint(WETH, AGGREGATOR, 10_000 * 10 ** 18)
    ledger.mint(USDC, AGGREGATOR, 50_000_000 * 10 ** 6)

    sizer = PositionSizer(oracle, pool, admin)
    orchestrator = LeveragedPositionOrchestrator(
        chain, pool, sizer, SwapAdapter(ledger, aggregator, ORCHESTRATOR), admin, ORCHESTRATOR
    )
    return chain, pool, orchestrator


def print_result(label: str, result) -> None:
    summary = result.to_summary()
    print(f"\n{label}")
    for key, value in summary.items():
        print(f"  {key}: {value}")


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--collateral", type=Decimal, default=Decimal("10"), help="WETH supplied by the user")
    parser.add_argument("--leverage", type=Decimal, default=Decimal("3"))
    parser.add_argument("--eth-price", type=int, default=3000)
    args = parser.parse_args()

    configure_logging()
    chain, pool, orchestrator = build(args.eth_price)

    user_amount = int(args.collateral * 10 ** 18)
    chain.ledger.mint(WETH, OWNER, user_amount)
    chain.ledger.approve(WETH, OWNER, ORCHESTRATOR, user_amount)

    sizing = orchestrator.compute_open_sizing(WETH, USDC, args.leverage, user_amount)
    instruction = build_swap_instruction(USDC, WETH, sizing.buffered_borrow_amount)
    opened = orchestrator.open_position(
        OWNER, build_open_request(sizing, instruction), chain.now() + 300
    )
    print_result("Opened", opened)

    debt = pool.user_debt(USDC, ORCHESTRATOR)
    unwind_sizing = orchestrator.compute_unwind_sizing(WETH, USDC, debt)
    instruction = build_swap_instruction(WETH, USDC, unwind_sizing.collateral_to_withdraw)
    unwound = orchestrator.unwind_position(
        OWNER, build_unwind_request(unwind_sizing, instruction, min_swap_output=0), chain.now() + 300
    )
    print_result("Unwound", unwound)

    account = pool.get_user_account_data(ORCHESTRATOR)
    print("\nFinal position")
    print(f"  WETH collateral: {Decimal(pool.user_collateral(WETH, ORCHESTRATOR)) / 10 ** 18}")
    print(f"  USDC collateral: {Decimal(pool.user_collateral(USDC, ORCHESTRATOR)) / 10 ** 6}")
    print(f"  USDC debt: {Decimal(pool.user_debt(USDC, ORCHESTRATOR)) / 10 ** 6}")
    if account.total_debt_base:
        print(f"  health factor: {from_wad(account.health_factor)}")


if __name__ == "__main__":
    main()
