"""
Example: A lending pool from first deposit to lender exit.

Shows the ledger trace (verbose=True) for every pool operation, how the rate
curve reacts to utilization, and how repaid interest lifts the share value.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from lendpool import (
    Ledger, Move, asset, build_transaction, SYSTEM_WALLET,
    create_rate_curve, setup_liquidity_pool, ray_to_decimal,
    InsufficientLiquidity,
)


def _pct(ray_value: int) -> str:
    return f"{ray_to_decimal(ray_value) * 100:.4f}%"


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 80)
    print("LENDING POOL - Deposit, Borrow, Repay, Exit")
    print("=" * 80)
    print()

    ledger = Ledger("demo", initial_time=datetime(2025, 1, 1), verbose=True)
    ledger.register_unit(asset("USDC", "USD Coin", decimals=6))
    ledger.register_unit(asset("WETH", "Wrapped Ether", decimals=18))
    for wallet in ("alice", "bob", "router"):
        ledger.register_wallet(wallet)

    print()
    print("Step 1: Issue funds from the system wallet")
    print("-" * 80)
    ledger.execute(build_transaction(ledger, [
        Move(600_000_000_000, "USDC", SYSTEM_WALLET, "alice", "faucet"),
        Move(400_000_000_000, "USDC", SYSTEM_WALLET, "bob", "faucet"),
        Move(100_000_000_000, "USDC", SYSTEM_WALLET, "router", "faucet"),
        Move(500 * 10**18, "WETH", SYSTEM_WALLET, "router", "faucet"),
    ]))

    print()
    print("Step 2: Create the pool (kink at 80%, slope1 4%, slope2 75%)")
    print("-" * 80)
    pool = setup_liquidity_pool(
        ledger, "POOL_USDC", "USDC", owner="admin", router="router",
        rate_curve=create_rate_curve(
            optimal_usage_ratio=Decimal("0.8"),
            base_variable_rate=Decimal("0"),
            variable_slope1=Decimal("0.04"),
            variable_slope2=Decimal("0.75"),
        ),
    )

    print()
    print("Step 3: Lenders deposit (the first deposit mints 1:1)")
    print("-" * 80)
    pool.deposit("alice", 600_000_000_000)
    pool.deposit("bob", 400_000_000_000)
    print(f"Total shares: {pool.total_shares():,}")

    print()
    print("Step 4: Router borrows 800,000 USDC for dave against 400 WETH")
    print("-" * 80)
    ledger.advance_time(ledger.current_time + timedelta(days=1))
    pool.borrow("router", "dave", 800_000_000_000, "WETH", 400 * 10**18)
    rates = pool.query_rates()
    print(f"Utilization:     {_pct(rates.utilization)}")
    print(f"Variable rate:   {_pct(rates.variable_borrow_rate)}")
    print(f"Stable rate:     {_pct(rates.stable_borrow_rate)}")
    print(f"Liquidity rate:  {_pct(rates.liquidity_rate)}")

    print()
    print("Step 5: Alice tries to withdraw more than the free liquidity")
    print("-" * 80)
    try:
        pool.withdraw("alice", 300_000_000_000)
    except InsufficientLiquidity as e:
        print(f"Refused: {e}")

    print()
    print("Step 6: Router repays principal plus 32,000 USDC interest")
    print("-" * 80)
    ledger.advance_time(ledger.current_time + timedelta(days=90))
    loan = pool.repay("router", "dave", 832_000_000_000)
    print(f"Loan status: {loan.status.value}, collateral returned to {loan.router}")
    print(f"Share value: {ray_to_decimal(pool.share_value())}")

    print()
    print("Step 7: Lenders exit")
    print("-" * 80)
    for lender in ("alice", "bob"):
        paid = pool.redeem(lender, pool.share_balance(lender))
        print(f"{lender} redeemed for {paid:,} USDC base units")

    print()
    print("=" * 80)
    print("SUMMARY")
    print("=" * 80)
    print(f"Double entry holds: {ledger.verify_double_entry()['valid']}")
    print("Recent events:")
    for event in pool.events.tail(6):
        print(f"  {event}")
    print()


if __name__ == "__main__":
    main()
