"""
pool_helpers.py - Shared builders and comparison helpers for pool tests
"""

from datetime import datetime
from decimal import Decimal

from hypothesis import strategies as st

from lendpool import (
    Ledger, Move, SYSTEM_WALLET, PoolError,
    asset, debt_token, build_transaction,
    create_rate_curve,
    setup_liquidity_pool,
)


T0 = datetime(2025, 1, 1)

# Curve used by most tests: base 1%, slope1 4%, slope2 100%, kink at 80%
TEST_CURVE = dict(
    optimal_usage_ratio=Decimal("0.8"),
    base_variable_rate=Decimal("0.01"),
    variable_slope1=Decimal("0.04"),
    variable_slope2=Decimal("1"),
    base_stable_rate_offset=Decimal("0.02"),
    stable_rate_excess_offset=Decimal("0.05"),
    optimal_stable_to_total_debt_ratio=Decimal("0.2"),
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def snapshot_ledger(ledger: Ledger) -> dict:
    """Capture balances, unit states and log length for before/after comparison."""
    return {
        "balances": {
            wallet: {u: q for u, q in bals.items() if q != 0}
            for wallet, bals in ledger.balances.items()
        },
        "states": {sym: ledger.get_unit_state(sym) for sym in ledger.units},
        "log_length": len(ledger.transaction_log),
    }


def compare_ledger_states(ledger1: Ledger, ledger2: Ledger) -> dict:
    """Compare two ledger states and return differences."""
    balance_diffs = []
    state_diffs = []

    all_wallets = ledger1.registered_wallets | ledger2.registered_wallets
    all_units = set(ledger1.units.keys()) | set(ledger2.units.keys())

    for wallet in sorted(all_wallets):
        for unit in sorted(all_units):
            bal1 = ledger1.balances.get(wallet, {}).get(unit, 0)
            bal2 = ledger2.balances.get(wallet, {}).get(unit, 0)
            if bal1 != bal2:
                balance_diffs.append({"wallet": wallet, "unit": unit, "ledger1": bal1, "ledger2": bal2})

    for unit_sym in sorted(all_units):
        if unit_sym in ledger1.units and unit_sym in ledger2.units:
            state1 = ledger1.get_unit_state(unit_sym)
            state2 = ledger2.get_unit_state(unit_sym)
            if state1 != state2:
                state_diffs.append({"unit": unit_sym, "ledger1": state1, "ledger2": state2})

    return {
        "equal": not balance_diffs and not state_diffs,
        "balance_diffs": balance_diffs,
        "state_diffs": state_diffs,
    }


def make_pool_ledger(lenders=("alice", "bob", "carol"), funding=1_000_000, **pool_kwargs):
    """
    Ledger with USDC, WETH collateral, funded lenders and a router, plus a pool.

    Funding is issued from the system wallet so the ledger stays replayable
    and every unit nets to zero across wallets.
    """
    ledger = Ledger("pool", T0, verbose=False, test_mode=True)
    ledger.register_unit(asset("USDC", "USD Coin", decimals=6))
    ledger.register_unit(asset("WETH", "Wrapped Ether", decimals=18))
    ledger.register_unit(debt_token("dUSDC", "Loan Contract Debt", issuer="loan_contract"))
    for wallet in (*lenders, "router", "loan_contract", "admin"):
        ledger.register_wallet(wallet)
    faucet = [Move(funding, "USDC", SYSTEM_WALLET, wallet, "faucet") for wallet in (*lenders, "router")]
    faucet.append(Move(100 * 10**18, "WETH", SYSTEM_WALLET, "router", "faucet"))
    ledger.execute(build_transaction(ledger, faucet))

    pool_kwargs.setdefault("rate_curve", create_rate_curve(**TEST_CURVE))
    pool_kwargs.setdefault("debt_token", "dUSDC")
    pool = setup_liquidity_pool(
        ledger, "POOL", "USDC", owner="admin", router="router", **pool_kwargs
    )
    return ledger, pool


# =============================================================================
# RANDOM OPERATION SEQUENCES
# =============================================================================

LENDERS = ("alice", "bob", "carol")
BORROWERS = ("dave", "erin")

_lender_op = st.tuples(
    st.sampled_from(["deposit", "withdraw", "redeem"]),
    st.sampled_from(LENDERS),
    st.integers(min_value=1, max_value=1_200_000),
)
_router_op = st.tuples(
    st.sampled_from(["borrow", "repay"]),
    st.sampled_from(BORROWERS),
    st.integers(min_value=1, max_value=1_200_000),
)

# Sequences of (operation, actor, amount); many of them are expected to fail
pool_operations = st.lists(st.one_of(_lender_op, _router_op), min_size=1, max_size=25)


def apply_operation(pool, op) -> bool:
    """Run one random operation; False when the pool refused it."""
    kind, actor, amount = op
    try:
        if kind == "deposit":
            pool.deposit(actor, amount)
        elif kind == "withdraw":
            pool.withdraw(actor, amount)
        elif kind == "redeem":
            pool.redeem(actor, amount)
        elif kind == "borrow":
            pool.borrow("router", actor, amount, "WETH", 10**18)
        elif kind == "repay":
            pool.repay("router", actor, amount)
        else:
            raise ValueError(f"unknown operation {kind}")
    except PoolError:
        return False
    return True
