"""
Serialization Conformance Tests

INVARIANT: Mutating operations on one pool apply in a total order, and no
update is ever lost.

    ∀ pending transactions T1, T2 built against the same pool state:
        execute(T1) = APPLIED ⟹ execute(T2) = REJECTED ("stale state")

    ∀ handles H1, H2 on one pool, run from different threads:
        every accepted borrow is in the loan registry
        escrowed collateral = collateral of OPEN loans
        total_assets = reserve balance + open principal

Every handle on a pool takes the ledger's lock for that pool, and the
ledger refuses a state change whose old_state is no longer current.
"""

import threading

from hypothesis import given, settings, HealthCheck

from lendpool import (
    ExecuteResult, LiquidityPool, LoanStatus,
    compute_borrow, compute_deposit,
)

from tests.pool_helpers import make_pool_ledger, pool_operations, apply_operation, snapshot_ledger


ONE_WETH = 10**18


def _run_concurrently(*jobs):
    """Start every job behind one barrier; return the exceptions they raised."""
    barrier = threading.Barrier(len(jobs))
    errors = []

    def worker(job):
        barrier.wait()
        try:
            job()
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(job,)) for job in jobs]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return errors


def _assert_registry_consistent(ledger, pool):
    loans = pool.loans()
    open_loans = [loan for loan in loans.values() if loan.status is LoanStatus.OPEN]
    reserve = pool.reserve()
    assert ledger.get_balance("POOL_escrow", "WETH") == sum(l.collateral_amount for l in open_loans)
    assert reserve.total_assets == ledger.get_balance("POOL_reserve", "USDC") + reserve.outstanding_principal
    assert ledger.verify_double_entry()["valid"]


class TestStalePendingTransactions:

    def test_second_prebuilt_borrow_is_rejected(self):
        ledger, pool = make_pool_ledger()
        pool.deposit("alice", 600_000)

        for_dave = compute_borrow(ledger, "POOL", "router", "dave", 100_000, "WETH", ONE_WETH)
        for_erin = compute_borrow(ledger, "POOL", "router", "erin", 100_000, "WETH", ONE_WETH)
        assert ledger.execute(for_dave) == ExecuteResult.APPLIED
        before = snapshot_ledger(ledger)

        assert ledger.execute(for_erin) == ExecuteResult.REJECTED
        assert ledger.last_rejection == "stale state: POOL"
        assert snapshot_ledger(ledger) == before
        assert sorted(pool.loans()) == ["dave"]
        assert pool.total_assets() == 600_000
        _assert_registry_consistent(ledger, pool)

    def test_pending_built_before_engine_call_is_rejected(self):
        ledger, pool = make_pool_ledger()
        pool.deposit("alice", 600_000)

        stale = compute_borrow(ledger, "POOL", "router", "dave", 100_000, "WETH", ONE_WETH)
        pool.borrow("router", "erin", 100_000, "WETH", ONE_WETH)

        assert ledger.execute(stale) == ExecuteResult.REJECTED
        assert sorted(pool.loans()) == ["erin"]
        assert ledger.get_balance("POOL_escrow", "WETH") == ONE_WETH
        assert pool.total_assets() == 600_000

    def test_stale_deposit_mints_nothing(self):
        ledger, pool = make_pool_ledger()
        stale = compute_deposit(ledger, "POOL", "alice", 1_000)
        pool.deposit("bob", 1_000)

        assert ledger.execute(stale) == ExecuteResult.REJECTED
        assert pool.share_balance("alice") == 0
        assert pool.total_shares() == 1_000

    def test_rebuilt_pending_applies(self):
        ledger, pool = make_pool_ledger()
        pool.deposit("alice", 600_000)
        ledger.execute(compute_borrow(ledger, "POOL", "router", "dave", 100_000))
        assert ledger.execute(compute_borrow(ledger, "POOL", "router", "erin", 100_000)) == ExecuteResult.APPLIED
        assert sorted(pool.loans()) == ["dave", "erin"]
        assert pool.total_assets() == 600_000


class TestConcurrentHandles:

    def test_default_lock_is_shared_per_pool(self):
        ledger, pool = make_pool_ledger()
        other = LiquidityPool(ledger, "POOL", pool.access)
        assert other._lock is pool._lock
        assert other._lock is ledger.unit_lock("POOL")

    def test_reads_wait_for_the_pool_lock(self):
        ledger, pool = make_pool_ledger()
        pool.deposit("alice", 1_000)
        done = threading.Event()
        results = {}

        def read():
            results.update(
                balance=pool.share_balance("alice"),
                loan=pool.get_loan("dave"),
                loans=pool.loans(),
                history=pool.loan_history(),
            )
            done.set()

        with ledger.unit_lock("POOL"):
            reader = threading.Thread(target=read)
            reader.start()
            assert not done.wait(timeout=0.2)
        reader.join(timeout=5)

        assert done.is_set()
        assert results == {"balance": 1_000, "loan": None, "loans": {}, "history": []}

    def test_two_handles_borrow_from_two_threads(self):
        ledger, pool = make_pool_ledger()
        pool.deposit("alice", 600_000)
        first = LiquidityPool(ledger, "POOL", pool.access)
        second = LiquidityPool(ledger, "POOL", pool.access)

        errors = _run_concurrently(
            lambda: first.borrow("router", "dave", 100_000, "WETH", ONE_WETH),
            lambda: second.borrow("router", "erin", 100_000, "WETH", ONE_WETH),
        )

        assert errors == []
        assert sorted(pool.loans()) == ["dave", "erin"]
        assert ledger.get_balance("POOL_escrow", "WETH") == 2 * ONE_WETH
        assert pool.available_liquidity() == 400_000
        assert pool.total_assets() == 600_000

    def test_many_threads_deposit(self):
        ledger, pool = make_pool_ledger(lenders=("alice", "bob", "carol", "frank"))
        handles = [LiquidityPool(ledger, "POOL", pool.access) for _ in range(4)]
        lenders = ("alice", "bob", "carol", "frank")

        def deposit_many(handle, lender):
            for _ in range(25):
                handle.deposit(lender, 1_000)

        errors = _run_concurrently(*[
            (lambda h=h, l=l: deposit_many(h, l)) for h, l in zip(handles, lenders)
        ])

        assert errors == []
        assert pool.total_shares() == 100_000
        assert all(pool.share_balance(lender) == 25_000 for lender in lenders)
        assert len(ledger.transaction_log) == 101

    @given(pool_operations, pool_operations)
    @settings(max_examples=20, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_interleaved_sequences_lose_no_update(self, ops1, ops2):
        ledger, pool = make_pool_ledger()
        first = LiquidityPool(ledger, "POOL", pool.access)
        second = LiquidityPool(ledger, "POOL", pool.access)

        def run(handle, ops):
            for op in ops:
                apply_operation(handle, op)

        errors = _run_concurrently(lambda: run(first, ops1), lambda: run(second, ops2))

        assert errors == []
        borrowed = {e.actor for e in (*first.events, *second.events) if e.name == "Borrowed"}
        assert borrowed <= set(pool.loans())
        _assert_registry_consistent(ledger, pool)
