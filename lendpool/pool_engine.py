"""
pool_engine.py - Liquidity Pool Orchestrator

LiquidityPool composes the pure pool functions with the ledger, the access
and pause predicates, and the event log.

Execution order of every mutating call (under the pool lock):
1. Check pause state and router authorization
2. Build a PendingTransaction with a pure compute_* function
3. Ledger.execute() applies it atomically (state first, payout last)
4. Record domain events and log

Any failure in steps 1-3 raises before anything changed; the ledger,
the loan registry and the event log are left exactly as they were.
"""

from __future__ import annotations
import logging
import threading
from typing import Callable, Dict, List, Optional

from .core import (
    PendingTransaction, Transaction, ExecuteResult,
    LedgerError, ExternalTransferFailed, InactiveState, Misconfiguration, Unauthorized,
)
from .ledger import Ledger
from .access import RouterAccess, PauseState, PoolAdmin
from .events import (
    EventLog, PoolEvent,
    DEPOSITED, SHARES_MINTED, SHARES_BURNED, WITHDRAWAL,
    BORROWED, REPAID, LOAN_CLOSED, PAYMENT_COLLECTED,
)
from .rate_curve import InterestRates, ReserveSnapshot, RateCurveParams, RiskPremiums, DEFAULT_RESERVE_FACTOR
from .units.loan import Loan, load_loans
from .units.share_token import create_share_unit, entitlement as share_entitlement
from .units.liquidity_pool import (
    PoolReserve,
    load_pool, load_reserve,
    compute_deposit, compute_withdraw, compute_redeem,
    compute_borrow, compute_repay, compute_collect_payment,
    compute_rates, compute_risk_adjusted_rates, compute_share_value,
    create_liquidity_pool_unit,
)

logger = logging.getLogger(__name__)


def _moved(tx: Transaction, contract_id: str) -> int:
    """Total quantity of the moves in tx tagged with contract_id."""
    return sum(m.quantity for m in tx.moves if m.contract_id == contract_id)


class LiquidityPool:
    """
    Lending pool over one underlying asset held in a Ledger.

    Lenders deposit and withdraw; the authorized router borrows, repays and
    collects payments on behalf of borrowers. Every call on one pool
    serializes on a reentrant lock, by default the ledger's lock for the pool
    unit, so separate handles on the same pool serialize with each other.

    Example:
        pool = setup_liquidity_pool(ledger, "POOL_USDC", "USDC", owner="admin", router="router")
        pool.deposit("alice", 1_000_000)
        pool.borrow("router", "bob", 400_000, "WETH", 10**18)
        rates = pool.query_rates()
    """

    def __init__(
        self,
        ledger: Ledger,
        symbol: str,
        access: RouterAccess,
        pause: Optional[PauseState] = None,
        events: Optional[EventLog] = None,
        lock: Optional[threading.RLock] = None,
    ):
        """
        Args:
            ledger: Ledger holding the pool unit, its asset and its shares
            symbol: Pool unit symbol (created by create_liquidity_pool_unit)
            access: Router authorization predicate
            pause: Pause predicate (default: access, when it provides is_active)
            events: Event log (default: a new bounded EventLog)
            lock: Lock to serialize on (default: ledger.unit_lock(symbol))
        """
        if pause is None:
            if not isinstance(access, PauseState):
                raise Misconfiguration("pause state is required when access has no is_active()")
            pause = access
        load_pool(ledger, symbol)

        self.ledger = ledger
        self.symbol = symbol
        self.access = access
        self.pause = pause
        self.events = events if events is not None else EventLog()
        self._lock = lock if lock is not None else ledger.unit_lock(symbol)

    # ========================================================================
    # GUARDS AND EXECUTION
    # ========================================================================

    def _require_active(self, operation: str) -> None:
        if not self.pause.is_active():
            logger.warning("%s %s rejected: pool is paused", self.symbol, operation)
            raise InactiveState(f"{self.symbol} is paused; {operation} is not allowed")

    def _require_router(self, caller: str, operation: str) -> None:
        if not self.access.is_authorized_router(caller):
            logger.warning("%s %s rejected: %s is not the router", self.symbol, operation, caller)
            raise Unauthorized(f"{caller} is not the authorized router for {operation}")

    def _run(self, operation: str, actor: str, build: Callable[[], PendingTransaction]) -> Transaction:
        """Build and apply one operation, logging the outcome."""
        try:
            pending = build()
        except LedgerError as e:
            logger.warning("%s %s by %s rejected: %s", self.symbol, operation, actor, e)
            raise

        result = self.ledger.execute(pending)
        if result == ExecuteResult.REJECTED:
            reason = self.ledger.last_rejection
            logger.warning("%s %s by %s failed in ledger: %s", self.symbol, operation, actor, reason)
            raise ExternalTransferFailed(f"{operation} rejected by ledger: {reason}")
        if result == ExecuteResult.ALREADY_APPLIED:
            raise LedgerError(f"{operation} intent {pending.intent_id} was already applied")

        tx = self.ledger.transaction_log[-1]
        logger.info("%s %s by %s applied as %s", self.symbol, operation, actor, tx.exec_id)
        return tx

    def _emit(self, tx: Transaction, name: str, actor: str, amount: int, **details) -> PoolEvent:
        event = PoolEvent(
            name=name,
            pool=self.symbol,
            actor=actor,
            amount=amount,
            exec_id=tx.exec_id,
            timestamp=tx.execution_time,
            details=details,
        )
        self.events.add(event)
        return event

    # ========================================================================
    # LENDER OPERATIONS
    # ========================================================================

    def deposit(self, lender: str, amount: int) -> int:
        """
        Deposit amount of the underlying; returns the shares minted.

        Raises:
            InactiveState, InvalidArgument, ExternalTransferFailed
        """
        with self._lock:
            self._require_active("deposit")
            tx = self._run("deposit", lender, lambda: compute_deposit(self.ledger, self.symbol, lender, amount))
            shares = _moved(tx, f"{self.symbol}:mint")
            self._emit(tx, DEPOSITED, lender, amount)
            self._emit(tx, SHARES_MINTED, lender, shares)
            return shares

    def withdraw(self, lender: str, amount: int) -> int:
        """
        Withdraw amount of the underlying; returns the shares burned.

        Allowed while the pool is paused.

        Raises:
            InvalidArgument, InsufficientEntitlement, InsufficientLiquidity,
            ExternalTransferFailed
        """
        with self._lock:
            tx = self._run("withdraw", lender, lambda: compute_withdraw(self.ledger, self.symbol, lender, amount))
            burned = _moved(tx, f"{self.symbol}:burn")
            self._emit(tx, SHARES_BURNED, lender, burned)
            self._emit(tx, WITHDRAWAL, lender, amount)
            return burned

    def redeem(self, lender: str, shares: int) -> int:
        """Burn exactly `shares`; returns the underlying paid out."""
        with self._lock:
            tx = self._run("redeem", lender, lambda: compute_redeem(self.ledger, self.symbol, lender, shares))
            paid = _moved(tx, f"{self.symbol}:withdraw")
            self._emit(tx, SHARES_BURNED, lender, shares)
            self._emit(tx, WITHDRAWAL, lender, paid)
            return paid

    # ========================================================================
    # ROUTER OPERATIONS
    # ========================================================================

    def borrow(
        self,
        caller: str,
        borrower: str,
        notional: int,
        collateral_asset: Optional[str] = None,
        collateral_amount: int = 0,
    ) -> Loan:
        """
        Open a loan for borrower; the notional is paid to the calling router.

        Raises:
            Unauthorized, InactiveState, InvalidArgument, LoanAlreadyOpen,
            InsufficientLiquidity, ExternalTransferFailed
        """
        with self._lock:
            self._require_router(caller, "borrow")
            self._require_active("borrow")
            tx = self._run("borrow", caller, lambda: compute_borrow(
                self.ledger, self.symbol, caller, borrower, notional,
                collateral_asset, collateral_amount,
            ))
            self._emit(
                tx, BORROWED, borrower, notional,
                router=caller,
                collateral_asset=collateral_asset,
                collateral_amount=collateral_amount,
            )
            return self.get_loan(borrower)

    def repay(self, caller: str, borrower: str, amount: int) -> Loan:
        """
        Repay borrower's open loan; returns the updated record.

        Raises:
            Unauthorized, InactiveState, InvalidArgument, LoanNotFound,
            ExternalTransferFailed
        """
        with self._lock:
            self._require_router(caller, "repay")
            self._require_active("repay")
            tx = self._run("repay", caller, lambda: compute_repay(
                self.ledger, self.symbol, caller, borrower, amount,
            ))
            loan = self.get_loan(borrower)
            self._emit(tx, REPAID, borrower, amount, router=caller, outstanding=loan.outstanding)
            if not loan.is_open:
                self._emit_closed(tx, loan)
            return loan

    def collect_payment(
        self,
        caller: str,
        loan_contract: str,
        debt_units: int,
        debt_outstanding: int,
        borrower: Optional[str] = None,
    ) -> int:
        """
        Return debt units to loan_contract and pull the matching underlying.

        Returns:
            The underlying amount collected from the caller.

        Raises:
            Unauthorized, InactiveState, InvalidArgument, Misconfiguration,
            DivisionByZero, LoanNotFound, ExternalTransferFailed
        """
        with self._lock:
            self._require_router(caller, "collect_payment")
            self._require_active("collect_payment")
            was_open = borrower is not None and self._is_open(borrower)
            tx = self._run("collect_payment", caller, lambda: compute_collect_payment(
                self.ledger, self.symbol, caller, loan_contract,
                debt_units, debt_outstanding, borrower,
            ))
            collected = _moved(tx, f"{self.symbol}:collect")
            self._emit(
                tx, PAYMENT_COLLECTED, caller, collected,
                loan_contract=loan_contract,
                debt_units=debt_units,
                debt_outstanding=debt_outstanding,
                borrower=borrower,
            )
            if borrower is not None and collected > 0:
                loan = self.get_loan(borrower)
                self._emit(tx, REPAID, borrower, collected, router=caller, outstanding=loan.outstanding)
                if was_open and not loan.is_open:
                    self._emit_closed(tx, loan)
            return collected

    def _emit_closed(self, tx: Transaction, loan: Loan) -> None:
        self._emit(
            tx, LOAN_CLOSED, loan.borrower, loan.amount_repaid,
            collateral_released=loan.collateral_amount,
            collateral_asset=loan.collateral_asset,
        )

    def _is_open(self, borrower: str) -> bool:
        loan = self.get_loan(borrower)
        return loan is not None and loan.is_open

    # ========================================================================
    # RATE QUERIES
    # ========================================================================

    def query_rates(self, snapshot: Optional[ReserveSnapshot] = None) -> InterestRates:
        """
        Liquidity, stable and variable rates for a snapshot or the live reserve.

        Without a snapshot all outstanding principal counts as variable debt.
        """
        with self._lock:
            return compute_rates(self.ledger, self.symbol, snapshot)

    def risk_adjusted_rates(
        self,
        has_coupon: bool,
        has_collateral_insurance: bool,
        snapshot: Optional[ReserveSnapshot] = None,
    ) -> InterestRates:
        with self._lock:
            return compute_risk_adjusted_rates(
                self.ledger, self.symbol, has_coupon, has_collateral_insurance, snapshot,
            )

    # ========================================================================
    # READ-ONLY VIEWS
    # ========================================================================

    def reserve(self) -> PoolReserve:
        with self._lock:
            return load_reserve(self.ledger, self.symbol)

    def total_shares(self) -> int:
        return self.reserve().total_shares

    def total_assets(self) -> int:
        return self.reserve().total_assets

    def available_liquidity(self) -> int:
        return self.reserve().available_liquidity

    def share_balance(self, lender: str) -> int:
        with self._lock:
            terms, _ = load_pool(self.ledger, self.symbol)
            if not self.ledger.is_registered(lender):
                return 0
            return self.ledger.get_balance(lender, terms.share_unit)

    def entitlement(self, lender: str) -> int:
        """Underlying the lender could claim at the current share value."""
        with self._lock:
            reserve = self.reserve()
            return share_entitlement(self.share_balance(lender), reserve.total_shares, reserve.total_assets)

    def share_value(self) -> int:
        """Ray price of one share."""
        with self._lock:
            return compute_share_value(self.ledger, self.symbol)

    def get_loan(self, borrower: str) -> Optional[Loan]:
        with self._lock:
            return load_loans(self.ledger.get_unit_state(self.symbol)).get(borrower)

    def loans(self) -> Dict[str, Loan]:
        with self._lock:
            return load_loans(self.ledger.get_unit_state(self.symbol))

    def loan_history(self) -> List[dict]:
        with self._lock:
            _, state = load_pool(self.ledger, self.symbol)
            return list(state.loan_history)

    def __repr__(self):
        return f"LiquidityPool({self.symbol}, access={self.access!r})"


# ============================================================================
# SETUP
# ============================================================================

def setup_liquidity_pool(
    ledger: Ledger,
    symbol: str,
    asset: str,
    owner: str,
    router: Optional[str] = None,
    share_symbol: Optional[str] = None,
    rate_curve: Optional[RateCurveParams] = None,
    reserve_factor: int = DEFAULT_RESERVE_FACTOR,
    debt_token: Optional[str] = None,
    risk_premiums: Optional[RiskPremiums] = None,
    reserve_wallet: Optional[str] = None,
    escrow_wallet: Optional[str] = None,
    events: Optional[EventLog] = None,
    lock: Optional[threading.RLock] = None,
) -> LiquidityPool:
    """
    Register a pool, its share unit and its wallets, and return the orchestrator.

    The underlying asset (and debt token, if any) must already be registered.
    Access and pause are handled by a fresh PoolAdmin owned by `owner`.
    Pass `lock` to serialize this pool with others (default: the ledger's
    lock for `symbol`).

    Defaults:
        share_symbol   = "lp" + asset
        reserve_wallet = symbol + "_reserve"
        escrow_wallet  = symbol + "_escrow"

    Example:
        ledger.register_unit(asset("USDC", "USD Coin", decimals=6))
        pool = setup_liquidity_pool(ledger, "POOL_USDC", "USDC", owner="admin", router="router")
    """
    ledger.get_unit(asset)
    if debt_token is not None:
        ledger.get_unit(debt_token)

    share_symbol = share_symbol or f"lp{asset}"
    reserve_wallet = reserve_wallet or f"{symbol}_reserve"
    escrow_wallet = escrow_wallet or f"{symbol}_escrow"

    pool_unit = create_liquidity_pool_unit(
        symbol, f"{asset} Liquidity Pool", asset, share_symbol,
        reserve_wallet=reserve_wallet,
        escrow_wallet=escrow_wallet,
        rate_curve=rate_curve,
        reserve_factor=reserve_factor,
        debt_token=debt_token,
        risk_premiums=risk_premiums,
    )
    ledger.register_unit(create_share_unit(share_symbol, f"{symbol} Shares", symbol))
    ledger.register_unit(pool_unit)
    ledger.ensure_wallet(reserve_wallet)
    ledger.ensure_wallet(escrow_wallet)
    if router is not None:
        ledger.ensure_wallet(router)

    admin = PoolAdmin(owner=owner, router=router)
    return LiquidityPool(ledger, symbol, access=admin, pause=admin, events=events, lock=lock)
