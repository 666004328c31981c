"""
test_liquidity_pool.py - Unit tests for the pure liquidity pool functions

Tests:
- Pool unit creation and configuration checks
- compute_* return PendingTransactions without touching the ledger
- Move order and contract ids
- Domain errors (liquidity, entitlement, loans, collection)
- transact() dispatch
"""

import pytest
from datetime import datetime

from lendpool import (
    Move, ExecuteResult, SYSTEM_WALLET, UNIT_TYPE_LIQUIDITY_POOL,
    build_transaction, create_liquidity_pool_unit, load_pool, load_reserve,
    compute_deposit, compute_withdraw, compute_redeem,
    compute_borrow, compute_repay, compute_collect_payment, compute_rates,
    liquidity_pool_transact, LoanStatus,
    InvalidArgument, InsufficientLiquidity, InsufficientEntitlement,
    LoanAlreadyOpen, LoanNotFound, Misconfiguration, DivisionByZero,
    UnitNotRegistered,
)
from lendpool.units import calculate_collection, live_snapshot
from lendpool.ray_math import RAY

from tests.fake_view import FakeView
from tests.pool_helpers import make_pool_ledger, snapshot_ledger


PCT = RAY // 100


def _apply(ledger, pending):
    assert ledger.execute(pending) == ExecuteResult.APPLIED


def _issue_debt(ledger, units, wallet="POOL_reserve"):
    _apply(ledger, build_transaction(ledger, [Move(units, "dUSDC", SYSTEM_WALLET, wallet, "loan_contract:issue")]))


@pytest.fixture
def pool_ledger(funded_pool):
    ledger, _ = funded_pool
    return ledger


class TestPoolUnit:

    def test_create_pool_unit(self):
        unit = create_liquidity_pool_unit(
            "P", "Pool", "USDC", "lpUSDC", reserve_wallet="p_res", escrow_wallet="p_esc",
        )
        state = unit.state
        assert unit.unit_type == UNIT_TYPE_LIQUIDITY_POOL
        assert state["asset"] == "USDC"
        assert state["loans"] == {}
        assert state["nonce"] == 0
        assert state["reserve_factor"] == 1_000

    def test_reserve_and_escrow_must_differ(self):
        with pytest.raises(Misconfiguration):
            create_liquidity_pool_unit("P", "Pool", "USDC", "lpUSDC", "w", "w")

    def test_system_wallet_cannot_hold_funds(self):
        with pytest.raises(Misconfiguration):
            create_liquidity_pool_unit("P", "Pool", "USDC", "lpUSDC", SYSTEM_WALLET, "esc")

    def test_reserve_factor_range(self):
        with pytest.raises(Misconfiguration):
            create_liquidity_pool_unit("P", "Pool", "USDC", "lpUSDC", "res", "esc", reserve_factor=10_001)

    def test_load_pool_on_non_pool(self, pool_setup):
        ledger, _ = pool_setup
        with pytest.raises(Misconfiguration):
            load_pool(ledger, "USDC")

    def test_load_pool(self, pool_setup):
        ledger, _ = pool_setup
        terms, state = load_pool(ledger, "POOL")
        assert terms.asset == "USDC"
        assert terms.share_unit == "lpUSDC"
        assert terms.debt_token == "dUSDC"
        assert state.nonce == 0


class TestComputeDeposit:

    def test_bootstrap_deposit(self, pool_setup):
        ledger, _ = pool_setup
        pending = compute_deposit(ledger, "POOL", "alice", 1_000)
        assert [(m.quantity, m.unit_symbol, m.source, m.dest, m.contract_id) for m in pending.moves] == [
            (1_000, "USDC", "alice", "POOL_reserve", "POOL:deposit"),
            (1_000, "lpUSDC", SYSTEM_WALLET, "alice", "POOL:mint"),
        ]
        assert pending.state_changes[0].new_state["nonce"] == 1

    def test_pure_function_leaves_ledger_untouched(self, pool_setup):
        ledger, _ = pool_setup
        before = snapshot_ledger(ledger)
        compute_deposit(ledger, "POOL", "alice", 1_000)
        assert snapshot_ledger(ledger) == before

    def test_identical_deposits_hash_differently(self, pool_setup):
        ledger, _ = pool_setup
        first = compute_deposit(ledger, "POOL", "alice", 1_000)
        _apply(ledger, first)
        second = compute_deposit(ledger, "POOL", "alice", 1_000)
        assert first.intent_id != second.intent_id
        _apply(ledger, second)

    def test_second_deposit_priced_on_reserve(self, pool_ledger):
        # 1,000,000 assets / 1,000,000 shares, then a donation brings assets to 1,250,000
        pool_ledger.execute(build_transaction(pool_ledger, [
            Move(250_000, "USDC", "carol", "POOL_reserve", "donation"),
        ]))
        pending = compute_deposit(pool_ledger, "POOL", "carol", 125_000)
        assert pending.moves[1].quantity == 100_000

    def test_works_against_fake_view(self):
        unit = create_liquidity_pool_unit("P", "Pool", "USDC", "lpUSDC", "res", "esc")
        view = FakeView(
            balances={"res": {"USDC": 2_000}, "alice": {"lpUSDC": 1_000}},
            states={"P": unit.state},
            time=datetime(2025, 1, 1),
        )
        pending = compute_deposit(view, "P", "bob", 100)
        assert pending.moves[1].quantity == 50

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount(self, pool_setup, amount):
        ledger, _ = pool_setup
        with pytest.raises(InvalidArgument):
            compute_deposit(ledger, "POOL", "alice", amount)

    def test_system_wallet_cannot_deposit(self, pool_setup):
        ledger, _ = pool_setup
        with pytest.raises(InvalidArgument):
            compute_deposit(ledger, "POOL", SYSTEM_WALLET, 1_000)


class TestComputeWithdraw:

    def test_burn_then_payout(self, pool_ledger):
        pending = compute_withdraw(pool_ledger, "POOL", "alice", 100_000)
        assert [(m.unit_symbol, m.source, m.dest, m.contract_id) for m in pending.moves] == [
            ("lpUSDC", "alice", SYSTEM_WALLET, "POOL:burn"),
            ("USDC", "POOL_reserve", "alice", "POOL:withdraw"),
        ]
        assert pending.moves[0].quantity == 100_000

    def test_burn_rounds_up(self, pool_ledger):
        # after the donation one share is worth 1.5 units of the asset
        pool_ledger.execute(build_transaction(pool_ledger, [
            Move(500_000, "USDC", "carol", "POOL_reserve", "donation"),
        ]))
        pending = compute_withdraw(pool_ledger, "POOL", "alice", 1)
        assert pending.moves[0].quantity == 1

    def test_more_than_entitlement(self, pool_ledger):
        with pytest.raises(InsufficientEntitlement):
            compute_withdraw(pool_ledger, "POOL", "alice", 600_001)

    def test_more_than_liquidity(self, pool_ledger):
        _apply(pool_ledger, compute_borrow(pool_ledger, "POOL", "router", "dave", 800_000))
        with pytest.raises(InsufficientLiquidity):
            compute_withdraw(pool_ledger, "POOL", "alice", 300_000)

    def test_lender_without_shares(self, pool_ledger):
        with pytest.raises(InsufficientEntitlement):
            compute_withdraw(pool_ledger, "POOL", "carol", 1)


class TestComputeRedeem:

    def test_redeem_pays_floored_value(self, pool_ledger):
        pool_ledger.execute(build_transaction(pool_ledger, [
            Move(1, "USDC", "carol", "POOL_reserve", "donation"),
        ]))
        pending = compute_redeem(pool_ledger, "POOL", "bob", 3)
        assert pending.moves[0].quantity == 3
        assert pending.moves[1].quantity == 3

    def test_redeem_more_than_held(self, pool_ledger):
        with pytest.raises(InsufficientEntitlement):
            compute_redeem(pool_ledger, "POOL", "bob", 400_001)


class TestComputeBorrow:

    def test_collateral_in_then_notional_out(self, pool_ledger):
        pending = compute_borrow(pool_ledger, "POOL", "router", "dave", 500_000, "WETH", 10**18)
        assert [(m.quantity, m.unit_symbol, m.source, m.dest, m.contract_id) for m in pending.moves] == [
            (10**18, "WETH", "router", "POOL_escrow", "POOL:collateral"),
            (500_000, "USDC", "POOL_reserve", "router", "POOL:borrow"),
        ]
        loan = pending.state_changes[0].new_state["loans"]["dave"]
        assert loan["status"] == "OPEN"
        assert loan["router"] == "router"
        assert loan["opened_at"] == pool_ledger.current_time

    def test_unsecured_borrow(self, pool_ledger):
        pending = compute_borrow(pool_ledger, "POOL", "router", "dave", 500_000)
        assert len(pending.moves) == 1
        assert pending.state_changes[0].new_state["loans"]["dave"]["collateral_asset"] is None

    def test_above_liquidity(self, pool_ledger):
        with pytest.raises(InsufficientLiquidity):
            compute_borrow(pool_ledger, "POOL", "router", "dave", 1_000_001, "WETH", 10**18)

    def test_second_open_loan(self, pool_ledger):
        _apply(pool_ledger, compute_borrow(pool_ledger, "POOL", "router", "dave", 100_000))
        with pytest.raises(LoanAlreadyOpen):
            compute_borrow(pool_ledger, "POOL", "router", "dave", 100_000)

    def test_unknown_collateral(self, pool_ledger):
        with pytest.raises(UnitNotRegistered):
            compute_borrow(pool_ledger, "POOL", "router", "dave", 100, "DOGE", 5)

    def test_shares_as_collateral(self, pool_ledger):
        with pytest.raises(InvalidArgument, match="shares"):
            compute_borrow(pool_ledger, "POOL", "router", "dave", 100, "lpUSDC", 5)

    def test_collateral_without_asset(self, pool_ledger):
        with pytest.raises(InvalidArgument):
            compute_borrow(pool_ledger, "POOL", "router", "dave", 100, None, 5)


class TestComputeRepay:

    @pytest.fixture
    def borrowed(self, pool_ledger):
        _apply(pool_ledger, compute_borrow(pool_ledger, "POOL", "router", "dave", 800_000, "WETH", 10**18))
        return pool_ledger

    def test_partial_repay(self, borrowed):
        pending = compute_repay(borrowed, "POOL", "router", "dave", 300_000)
        assert len(pending.moves) == 1
        loan = pending.state_changes[0].new_state["loans"]["dave"]
        assert loan["amount_repaid"] == 300_000
        assert loan["status"] == "OPEN"

    def test_full_repay_releases_collateral(self, borrowed):
        pending = compute_repay(borrowed, "POOL", "router", "dave", 800_000)
        assert [(m.unit_symbol, m.source, m.dest, m.contract_id) for m in pending.moves] == [
            ("USDC", "router", "POOL_reserve", "POOL:repay"),
            ("WETH", "POOL_escrow", "router", "POOL:release"),
        ]
        assert pending.state_changes[0].new_state["loans"]["dave"]["status"] == LoanStatus.REPAID.value

    def test_no_loan(self, pool_ledger):
        with pytest.raises(LoanNotFound):
            compute_repay(pool_ledger, "POOL", "router", "dave", 1)

    def test_reborrow_archives_closed_loan(self, borrowed):
        _apply(borrowed, compute_repay(borrowed, "POOL", "router", "dave", 800_000))
        _apply(borrowed, compute_borrow(borrowed, "POOL", "router", "dave", 10_000))
        _, state = load_pool(borrowed, "POOL")
        assert state.loans["dave"].amount_borrowed == 10_000
        assert len(state.loan_history) == 1
        assert state.loan_history[0]["status"] == "REPAID"


class TestCollection:

    def test_calculate_collection(self):
        unit_value, due = calculate_collection(250, 400_000, 1_000)
        assert unit_value == 400 * RAY
        assert due == 100_000

    def test_asset_due_rounds_up(self):
        _, due = calculate_collection(1, 1_000, 3)
        assert due == 334

    def test_zero_debt_balance(self):
        with pytest.raises(DivisionByZero):
            calculate_collection(1, 1_000, 0)

    def test_units_above_holding(self):
        with pytest.raises(InvalidArgument):
            calculate_collection(11, 1_000, 10)

    def test_collect_moves(self, pool_ledger):
        _issue_debt(pool_ledger, 1_000)
        pending = compute_collect_payment(pool_ledger, "POOL", "router", "loan_contract", 250, 400_000)
        assert [(m.quantity, m.unit_symbol, m.source, m.dest, m.contract_id) for m in pending.moves] == [
            (100_000, "USDC", "router", "POOL_reserve", "POOL:collect"),
            (250, "dUSDC", "POOL_reserve", "loan_contract", "POOL:debt_return"),
        ]
        assert pending.state_changes[0].new_state["total_collected"] == 100_000

    def test_collect_applies_to_borrower(self, pool_ledger):
        _apply(pool_ledger, compute_borrow(pool_ledger, "POOL", "router", "dave", 800_000))
        _issue_debt(pool_ledger, 1_000)
        pending = compute_collect_payment(
            pool_ledger, "POOL", "router", "loan_contract", 250, 400_000, borrower="dave",
        )
        assert pending.state_changes[0].new_state["loans"]["dave"]["amount_repaid"] == 100_000

    def test_collect_without_debt_holding(self, pool_ledger):
        with pytest.raises(DivisionByZero):
            compute_collect_payment(pool_ledger, "POOL", "router", "loan_contract", 1, 100)

    def test_collect_without_debt_token(self):
        ledger, pool = make_pool_ledger(debt_token=None)
        pool.deposit("alice", 1_000)
        with pytest.raises(Misconfiguration):
            compute_collect_payment(ledger, "POOL", "router", "loan_contract", 1, 100)


class TestRates:

    def test_live_rates_at_80_percent(self, pool_ledger):
        _apply(pool_ledger, compute_borrow(pool_ledger, "POOL", "router", "dave", 800_000))
        rates = compute_rates(pool_ledger, "POOL")
        assert rates.utilization == 80 * PCT
        assert rates.variable_borrow_rate == 5 * PCT
        # 5% * 0.8 * (1 - 10% reserve factor)
        assert rates.liquidity_rate == 36 * RAY // 1000

    def test_live_snapshot(self, pool_ledger):
        _apply(pool_ledger, compute_borrow(pool_ledger, "POOL", "router", "dave", 800_000))
        snap = live_snapshot(pool_ledger, "POOL")
        assert snap.reserve_balance == 200_000
        assert snap.total_variable_debt == 800_000
        assert snap.reserve_factor == 1_000

    def test_reserve_counts_outstanding_principal(self, pool_ledger):
        _apply(pool_ledger, compute_borrow(pool_ledger, "POOL", "router", "dave", 800_000))
        reserve = load_reserve(pool_ledger, "POOL")
        assert reserve.total_assets == 1_000_000
        assert reserve.available_liquidity == 200_000


class TestTransact:

    def test_dispatch_deposit(self, pool_setup):
        ledger, _ = pool_setup
        pending = liquidity_pool_transact(
            ledger, "POOL", "DEPOSIT", ledger.current_time, lender="alice", amount=1_000,
        )
        assert pending.origin.event_type == "DEPOSIT"

    def test_missing_parameter(self, pool_setup):
        ledger, _ = pool_setup
        with pytest.raises(ValueError, match="amount"):
            liquidity_pool_transact(ledger, "POOL", "DEPOSIT", ledger.current_time, lender="alice")

    def test_unknown_event(self, pool_setup):
        ledger, _ = pool_setup
        with pytest.raises(ValueError, match="Unknown event type"):
            liquidity_pool_transact(ledger, "POOL", "LIQUIDATE", ledger.current_time)
