"""
liquidity_pool.py - Liquidity Pool Unit and Pure Pool Operations

This module provides the pool unit and every pool operation as a pure
function that reads through a LedgerView and returns a PendingTransaction.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - PoolTerms: Pool configuration (asset, share unit, wallets, rate curve)
   - PoolState: Mutable-over-lifecycle part (loan registry, nonce, totals)
   - PoolReserve: Live reserve figures derived from balances and loans

2. ADAPTER FUNCTIONS (load_pool / load_reserve / to_state_dict):
   - The only places that read pool state from a LedgerView

3. OPERATION FUNCTIONS (compute_*):
   - Validate, raise domain errors, and build one PendingTransaction
   - Never mutate anything; Ledger.execute applies the result atomically

Transaction layout:
    state change (loan registry, nonce) first, then moves in order:
    pulls into the pool -> share mints/burns -> payouts last.

Wallets:
    reserve_wallet holds free liquidity (and debt tokens), escrow_wallet
    holds posted collateral so collateral never counts as liquidity.

Key Formulas:
    total_assets          = available_liquidity + outstanding_principal
    unit_value (collect)  = debt_outstanding / debt_balance           (ray)
    asset_due  (collect)  = ceil(debt_units * unit_value)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Mapping, Optional, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    SYSTEM_WALLET, UNIT_TYPE_LIQUIDITY_POOL,
    InvalidArgument, InsufficientLiquidity, InsufficientEntitlement,
    Misconfiguration, DivisionByZero,
    build_transaction, _freeze_state,
)
from ..ray_math import RAY, PERCENTAGE_FACTOR, mul_div, mul_div_up
from ..rate_curve import (
    RateCurveParams, ReserveSnapshot, RiskPremiums, InterestRates,
    DEFAULT_RESERVE_FACTOR,
    create_rate_curve, load_rate_curve, rate_curve_to_dict,
    calculate_interest_rates, calculate_risk_adjusted_rates,
)
from .loan import (
    Loan,
    load_loans, loans_to_dict, open_loan, apply_repayment, get_open_loan,
    outstanding_principal, archive,
)
from .share_token import (
    shares_for_deposit, assets_for_withdraw, entitlement, shares_to_burn, share_value,
)


# Event types understood by transact()
EVENT_DEPOSIT = "DEPOSIT"
EVENT_WITHDRAW = "WITHDRAW"
EVENT_REDEEM = "REDEEM"
EVENT_BORROW = "BORROW"
EVENT_REPAY = "REPAY"
EVENT_COLLECT_PAYMENT = "COLLECT_PAYMENT"


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class PoolTerms:
    """
    Pool configuration, fixed at creation.

    Any registered unit can be the underlying asset; the pool logic is the
    same for a stablecoin, a wrapped native token or anything else.
    """
    asset: str
    share_unit: str
    reserve_wallet: str
    escrow_wallet: str
    rate_curve: RateCurveParams
    reserve_factor: int = DEFAULT_RESERVE_FACTOR
    debt_token: Optional[str] = None
    risk_premiums: RiskPremiums = field(default_factory=RiskPremiums)

    def __post_init__(self):
        for name in ('asset', 'share_unit', 'reserve_wallet', 'escrow_wallet'):
            value = getattr(self, name)
            if not value or not value.strip():
                raise Misconfiguration(f"{name} cannot be empty")
        if self.asset == self.share_unit:
            raise Misconfiguration("asset and share_unit must differ")
        if self.reserve_wallet == self.escrow_wallet:
            raise Misconfiguration("reserve_wallet and escrow_wallet must differ")
        if SYSTEM_WALLET in (self.reserve_wallet, self.escrow_wallet):
            raise Misconfiguration("the system wallet cannot hold pool funds")
        if self.debt_token is not None and self.debt_token in (self.asset, self.share_unit):
            raise Misconfiguration("debt_token must differ from asset and share_unit")
        if isinstance(self.reserve_factor, bool) or not isinstance(self.reserve_factor, int):
            raise Misconfiguration(f"reserve_factor must be int bps, got {self.reserve_factor!r}")
        if not 0 <= self.reserve_factor <= PERCENTAGE_FACTOR:
            raise Misconfiguration(
                f"reserve_factor must be in [0, {PERCENTAGE_FACTOR}] bps, got {self.reserve_factor}"
            )


@dataclass(frozen=True, slots=True)
class PoolState:
    """Lifecycle state: loan registry, archived loans, operation nonce and totals."""
    loans: Mapping[str, Loan] = field(default_factory=dict)
    loan_history: Tuple[Dict[str, Any], ...] = ()
    nonce: int = 0
    total_borrowed: int = 0
    total_repaid: int = 0
    total_collected: int = 0


@dataclass(frozen=True, slots=True)
class PoolReserve:
    """
    Live reserve figures, derived on every read and never cached.

    total_shares is the circulating share supply, available_liquidity the
    asset balance of the reserve wallet.
    """
    total_shares: int
    available_liquidity: int
    outstanding_principal: int

    @property
    def total_assets(self) -> int:
        return self.available_liquidity + self.outstanding_principal


# ============================================================================
# ADAPTER FUNCTIONS
# ============================================================================

def load_pool(view: LedgerView, symbol: str) -> Tuple[PoolTerms, PoolState]:
    """
    Load a pool from ledger state as typed frozen dataclasses.

    Example:
        terms, state = load_pool(view, "POOL_USDC")
        loan = state.loans.get("alice")
    """
    raw = view.get_unit_state(symbol)
    if 'asset' not in raw or 'rate_curve' not in raw:
        raise Misconfiguration(f"{symbol} is not a liquidity pool")

    premiums = raw.get('risk_premiums') or {}
    terms = PoolTerms(
        asset=raw['asset'],
        share_unit=raw['share_unit'],
        reserve_wallet=raw['reserve_wallet'],
        escrow_wallet=raw['escrow_wallet'],
        rate_curve=load_rate_curve(raw['rate_curve']),
        reserve_factor=raw.get('reserve_factor', DEFAULT_RESERVE_FACTOR),
        debt_token=raw.get('debt_token'),
        risk_premiums=RiskPremiums(
            coupon_premium=premiums.get('coupon_premium', 0),
            collateral_insurance_premium=premiums.get('collateral_insurance_premium', 0),
        ),
    )

    state = PoolState(
        loans=load_loans(raw),
        loan_history=tuple(raw.get('loan_history', ())),
        nonce=raw.get('nonce', 0),
        total_borrowed=raw.get('total_borrowed', 0),
        total_repaid=raw.get('total_repaid', 0),
        total_collected=raw.get('total_collected', 0),
    )
    return terms, state


def to_state_dict(terms: PoolTerms, state: PoolState) -> Dict[str, Any]:
    """Inverse of load_pool(), used when building state changes."""
    return {
        'asset': terms.asset,
        'share_unit': terms.share_unit,
        'reserve_wallet': terms.reserve_wallet,
        'escrow_wallet': terms.escrow_wallet,
        'rate_curve': rate_curve_to_dict(terms.rate_curve),
        'reserve_factor': terms.reserve_factor,
        'debt_token': terms.debt_token,
        'risk_premiums': {
            'coupon_premium': terms.risk_premiums.coupon_premium,
            'collateral_insurance_premium': terms.risk_premiums.collateral_insurance_premium,
        },
        'loans': loans_to_dict(state.loans),
        'loan_history': list(state.loan_history),
        'nonce': state.nonce,
        'total_borrowed': state.total_borrowed,
        'total_repaid': state.total_repaid,
        'total_collected': state.total_collected,
    }


def calculate_reserve(
    share_supply: int,
    reserve_balance: int,
    loans: Mapping[str, Loan],
) -> PoolReserve:
    return PoolReserve(
        total_shares=share_supply,
        available_liquidity=reserve_balance,
        outstanding_principal=outstanding_principal(loans.values()),
    )


def load_reserve(view: LedgerView, symbol: str) -> PoolReserve:
    """Read the live reserve of a pool."""
    terms, state = load_pool(view, symbol)
    return calculate_reserve(
        view.circulating_supply(terms.share_unit),
        view.get_balance(terms.reserve_wallet, terms.asset),
        state.loans,
    )


# ============================================================================
# HELPERS
# ============================================================================

def _require_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{name} must be int, got {type(value).__name__}")
    if value <= 0:
        raise InvalidArgument(f"{name} must be positive, got {value}")


def _require_non_negative(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{name} must be int, got {type(value).__name__}")
    if value < 0:
        raise InvalidArgument(f"{name} cannot be negative, got {value}")


def _require_wallet_id(name: str, value: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{name} must be a non-empty wallet id")
    if value == SYSTEM_WALLET:
        raise InvalidArgument(f"{name} cannot be the system wallet")


def _origin(origin_type: OriginType, source_id: str, symbol: str, event: str) -> TransactionOrigin:
    return TransactionOrigin(
        origin_type=origin_type,
        source_id=source_id,
        unit_symbol=symbol,
        event_type=event,
    )


def _build(
    view: LedgerView,
    symbol: str,
    terms: PoolTerms,
    old_state: Dict[str, Any],
    new_state: PoolState,
    moves: List[Move],
    origin: TransactionOrigin,
) -> PendingTransaction:
    state_changes = [UnitStateChange(
        unit=symbol,
        old_state=old_state,
        new_state=to_state_dict(terms, new_state),
    )]
    return build_transaction(view, moves, state_changes, origin)


def _bump(state: PoolState, **changes: Any) -> PoolState:
    """Copy state with the nonce incremented; every operation hashes uniquely."""
    values = {
        'loans': state.loans,
        'loan_history': state.loan_history,
        'nonce': state.nonce + 1,
        'total_borrowed': state.total_borrowed,
        'total_repaid': state.total_repaid,
        'total_collected': state.total_collected,
    }
    values.update(changes)
    return PoolState(**values)


def _repayment_moves(
    symbol: str,
    terms: PoolTerms,
    before: Loan,
    after: Loan,
) -> List[Move]:
    """Collateral release when a repayment closes the loan."""
    if before.is_open and not after.is_open and after.collateral_amount > 0:
        return [Move(
            after.collateral_amount, after.collateral_asset,
            terms.escrow_wallet, after.router, f"{symbol}:release",
        )]
    return []


# ============================================================================
# LENDER OPERATIONS
# ============================================================================

def compute_deposit(
    view: LedgerView,
    symbol: str,
    lender: str,
    amount: int,
) -> PendingTransaction:
    """
    Deposit underlying into the pool and mint shares to the lender.

    Shares are priced against the pre-deposit reserve; the first deposit
    into an empty pool mints 1:1.

    Moves:
        1. amount of asset: lender -> reserve_wallet
        2. shares: system -> lender (mint)

    Raises:
        InvalidArgument: If amount <= 0 or too small to mint a share
    """
    _require_wallet_id("lender", lender)
    _require_positive("amount", amount)

    raw = view.get_unit_state(symbol)
    terms, state = load_pool(view, symbol)
    reserve = load_reserve(view, symbol)
    shares = shares_for_deposit(amount, reserve.total_shares, reserve.total_assets)

    moves = [
        Move(amount, terms.asset, lender, terms.reserve_wallet, f"{symbol}:deposit"),
        Move(shares, terms.share_unit, SYSTEM_WALLET, lender, f"{symbol}:mint"),
    ]
    return _build(
        view, symbol, terms, raw, _bump(state), moves,
        _origin(OriginType.USER_ACTION, lender, symbol, EVENT_DEPOSIT),
    )


def compute_withdraw(
    view: LedgerView,
    symbol: str,
    lender: str,
    amount: int,
) -> PendingTransaction:
    """
    Withdraw an amount of underlying by burning the lender's shares.

    Moves:
        1. shares_to_burn(amount): lender -> system (burn)
        2. amount of asset: reserve_wallet -> lender

    Raises:
        InvalidArgument: If amount <= 0
        InsufficientEntitlement: If amount exceeds the lender's entitlement
        InsufficientLiquidity: If amount exceeds free liquidity
    """
    _require_wallet_id("lender", lender)
    _require_positive("amount", amount)

    raw = view.get_unit_state(symbol)
    terms, state = load_pool(view, symbol)
    reserve = load_reserve(view, symbol)
    balance = view.get_balance(lender, terms.share_unit)

    claim = entitlement(balance, reserve.total_shares, reserve.total_assets)
    if amount > claim:
        raise InsufficientEntitlement(
            f"{lender} requested {amount} but is entitled to {claim}"
        )
    if amount > reserve.available_liquidity:
        raise InsufficientLiquidity(
            f"withdrawal of {amount} exceeds available liquidity {reserve.available_liquidity}"
        )

    burn = shares_to_burn(amount, reserve.total_shares, reserve.total_assets)
    moves = [
        Move(burn, terms.share_unit, lender, SYSTEM_WALLET, f"{symbol}:burn"),
        Move(amount, terms.asset, terms.reserve_wallet, lender, f"{symbol}:withdraw"),
    ]
    return _build(
        view, symbol, terms, raw, _bump(state), moves,
        _origin(OriginType.USER_ACTION, lender, symbol, EVENT_WITHDRAW),
    )


def compute_redeem(
    view: LedgerView,
    symbol: str,
    lender: str,
    shares: int,
) -> PendingTransaction:
    """
    Burn exactly `shares` and pay out their floored asset value.

    Raises:
        InvalidArgument: If shares <= 0 or worth nothing
        InsufficientEntitlement: If the lender holds fewer shares
        InsufficientLiquidity: If the value exceeds free liquidity
    """
    _require_wallet_id("lender", lender)
    _require_positive("shares", shares)

    raw = view.get_unit_state(symbol)
    terms, state = load_pool(view, symbol)
    reserve = load_reserve(view, symbol)
    balance = view.get_balance(lender, terms.share_unit)
    if shares > balance:
        raise InsufficientEntitlement(f"{lender} holds {balance} shares, tried to redeem {shares}")

    amount = assets_for_withdraw(shares, reserve.total_shares, reserve.total_assets)
    if amount == 0:
        raise InvalidArgument(f"{shares} shares redeem for zero assets")
    if amount > reserve.available_liquidity:
        raise InsufficientLiquidity(
            f"redemption of {amount} exceeds available liquidity {reserve.available_liquidity}"
        )

    moves = [
        Move(shares, terms.share_unit, lender, SYSTEM_WALLET, f"{symbol}:burn"),
        Move(amount, terms.asset, terms.reserve_wallet, lender, f"{symbol}:withdraw"),
    ]
    return _build(
        view, symbol, terms, raw, _bump(state), moves,
        _origin(OriginType.USER_ACTION, lender, symbol, EVENT_REDEEM),
    )


# ============================================================================
# ROUTER OPERATIONS
# ============================================================================

def compute_borrow(
    view: LedgerView,
    symbol: str,
    router: str,
    borrower: str,
    notional: int,
    collateral_asset: Optional[str] = None,
    collateral_amount: int = 0,
) -> PendingTransaction:
    """
    Open a loan: record it, escrow collateral, pay the notional out last.

    Moves:
        1. collateral: router -> escrow_wallet (if any)
        2. notional of asset: reserve_wallet -> router

    Raises:
        InvalidArgument: If notional <= 0 or collateral_amount < 0
        InsufficientLiquidity: If notional exceeds free liquidity
        LoanAlreadyOpen: If borrower already has an OPEN loan
        UnitNotRegistered: If collateral_asset is unknown
    """
    _require_wallet_id("router", router)
    _require_wallet_id("borrower", borrower)
    _require_positive("notional", notional)
    _require_non_negative("collateral_amount", collateral_amount)

    raw = view.get_unit_state(symbol)
    terms, state = load_pool(view, symbol)

    if collateral_amount > 0:
        if not collateral_asset:
            raise InvalidArgument("collateral_asset is required when collateral is posted")
        if collateral_asset == terms.share_unit:
            raise InvalidArgument("pool shares cannot be posted as collateral")
        view.get_unit(collateral_asset)

    reserve = load_reserve(view, symbol)
    if notional > reserve.available_liquidity:
        raise InsufficientLiquidity(
            f"borrow of {notional} exceeds available liquidity {reserve.available_liquidity}"
        )

    loan = open_loan(
        state.loans, borrower, notional,
        collateral_asset if collateral_amount > 0 else None,
        collateral_amount, router, view.current_time,
    )
    loans = dict(state.loans)
    history = archive(list(state.loan_history), state.loans.get(borrower))
    loans[borrower] = loan

    moves = []
    if collateral_amount > 0:
        moves.append(Move(
            collateral_amount, collateral_asset, router, terms.escrow_wallet, f"{symbol}:collateral",
        ))
    moves.append(Move(notional, terms.asset, terms.reserve_wallet, router, f"{symbol}:borrow"))

    new_state = _bump(
        state,
        loans=loans,
        loan_history=tuple(history),
        total_borrowed=state.total_borrowed + notional,
    )
    return _build(
        view, symbol, terms, raw, new_state, moves,
        _origin(OriginType.ROUTER, router, symbol, EVENT_BORROW),
    )


def compute_repay(
    view: LedgerView,
    symbol: str,
    router: str,
    borrower: str,
    amount: int,
) -> PendingTransaction:
    """
    Repay a borrower's OPEN loan; full repayment closes it and releases collateral.

    Moves:
        1. amount of asset: router -> reserve_wallet
        2. collateral: escrow_wallet -> posting router (only on closure)

    Raises:
        InvalidArgument: If amount <= 0
        LoanNotFound: If borrower has no OPEN loan
    """
    _require_wallet_id("router", router)
    _require_positive("amount", amount)

    raw = view.get_unit_state(symbol)
    terms, state = load_pool(view, symbol)
    loan = get_open_loan(state.loans, borrower)
    updated = apply_repayment(loan, amount, view.current_time)

    loans = dict(state.loans)
    loans[borrower] = updated

    moves = [Move(amount, terms.asset, router, terms.reserve_wallet, f"{symbol}:repay")]
    moves.extend(_repayment_moves(symbol, terms, loan, updated))

    new_state = _bump(state, loans=loans, total_repaid=state.total_repaid + amount)
    return _build(
        view, symbol, terms, raw, new_state, moves,
        _origin(OriginType.ROUTER, router, symbol, EVENT_REPAY),
    )


def calculate_collection(debt_units: int, debt_outstanding: int, debt_balance: int) -> Tuple[int, int]:
    """
    Price a payment collection.

    Returns:
        (unit_value, asset_due): unit_value is the ray value of one debt unit,
        asset_due the underlying owed for debt_units, rounded up.

    Raises:
        DivisionByZero: If debt_balance is zero
        InvalidArgument: If debt_units exceeds debt_balance
    """
    _require_positive("debt_units", debt_units)
    _require_non_negative("debt_outstanding", debt_outstanding)
    if debt_balance == 0:
        raise DivisionByZero("pool holds no debt tokens to value")
    if debt_units > debt_balance:
        raise InvalidArgument(f"debt_units {debt_units} exceed pool holding {debt_balance}")
    unit_value = mul_div(debt_outstanding, RAY, debt_balance)
    return unit_value, mul_div_up(debt_units, unit_value, RAY)


def compute_collect_payment(
    view: LedgerView,
    symbol: str,
    router: str,
    loan_contract: str,
    debt_units: int,
    debt_outstanding: int,
    borrower: Optional[str] = None,
) -> PendingTransaction:
    """
    Hand debt units back to a loan contract against underlying from the router.

    When borrower is given, the collected amount is applied to that
    borrower's OPEN loan exactly like compute_repay().

    Moves:
        1. asset_due of asset: router -> reserve_wallet
        2. debt_units of debt token: reserve_wallet -> loan_contract
        3. collateral: escrow_wallet -> posting router (only on closure)

    Raises:
        Misconfiguration: If the pool has no debt token
        DivisionByZero: If the pool holds no debt tokens
        InvalidArgument: On invalid amounts
        LoanNotFound: If borrower is given and has no OPEN loan
    """
    _require_wallet_id("router", router)
    _require_wallet_id("loan_contract", loan_contract)
    _require_positive("debt_units", debt_units)
    _require_non_negative("debt_outstanding", debt_outstanding)

    raw = view.get_unit_state(symbol)
    terms, state = load_pool(view, symbol)
    if terms.debt_token is None:
        raise Misconfiguration(f"pool {symbol} has no debt token configured")

    debt_balance = view.get_balance(terms.reserve_wallet, terms.debt_token)
    _, asset_due = calculate_collection(debt_units, debt_outstanding, debt_balance)

    moves = []
    if asset_due > 0:
        moves.append(Move(asset_due, terms.asset, router, terms.reserve_wallet, f"{symbol}:collect"))
    moves.append(Move(
        debt_units, terms.debt_token, terms.reserve_wallet, loan_contract, f"{symbol}:debt_return",
    ))

    loans = state.loans
    total_repaid = state.total_repaid
    if borrower is not None:
        loan = get_open_loan(state.loans, borrower)
        if asset_due > 0:
            updated = apply_repayment(loan, asset_due, view.current_time)
            loans = dict(state.loans)
            loans[borrower] = updated
            total_repaid += asset_due
            moves.extend(_repayment_moves(symbol, terms, loan, updated))

    new_state = _bump(
        state,
        loans=loans,
        total_repaid=total_repaid,
        total_collected=state.total_collected + asset_due,
    )
    return _build(
        view, symbol, terms, raw, new_state, moves,
        _origin(OriginType.ROUTER, router, symbol, EVENT_COLLECT_PAYMENT),
    )


# ============================================================================
# RATE QUERIES
# ============================================================================

def live_snapshot(view: LedgerView, symbol: str) -> ReserveSnapshot:
    """Snapshot of the pool with all outstanding principal as variable debt."""
    terms, _ = load_pool(view, symbol)
    reserve = load_reserve(view, symbol)
    return ReserveSnapshot(
        reserve_balance=reserve.available_liquidity,
        total_variable_debt=reserve.outstanding_principal,
        reserve_factor=terms.reserve_factor,
    )


def compute_rates(
    view: LedgerView,
    symbol: str,
    snapshot: Optional[ReserveSnapshot] = None,
) -> InterestRates:
    """Evaluate the pool's rate curve against a snapshot, or the live reserve."""
    terms, _ = load_pool(view, symbol)
    if snapshot is None:
        snapshot = live_snapshot(view, symbol)
    return calculate_interest_rates(terms.rate_curve, snapshot)


def compute_risk_adjusted_rates(
    view: LedgerView,
    symbol: str,
    has_coupon: bool,
    has_collateral_insurance: bool,
    snapshot: Optional[ReserveSnapshot] = None,
) -> InterestRates:
    """compute_rates() plus the pool's configured risk premiums."""
    terms, _ = load_pool(view, symbol)
    rates = compute_rates(view, symbol, snapshot)
    return calculate_risk_adjusted_rates(
        rates, terms.risk_premiums, has_coupon, has_collateral_insurance,
    )


def compute_share_value(view: LedgerView, symbol: str) -> int:
    reserve = load_reserve(view, symbol)
    return share_value(reserve.total_shares, reserve.total_assets)


# ============================================================================
# UNIT FACTORY
# ============================================================================

def create_liquidity_pool_unit(
    symbol: str,
    name: str,
    asset: str,
    share_unit: str,
    reserve_wallet: str,
    escrow_wallet: str,
    rate_curve: Optional[RateCurveParams] = None,
    reserve_factor: int = DEFAULT_RESERVE_FACTOR,
    debt_token: Optional[str] = None,
    risk_premiums: Optional[RiskPremiums] = None,
) -> Unit:
    """
    Create a liquidity pool unit.

    The pool unit is never held by any wallet; it only carries the pool's
    configuration and loan registry in its state.

    Args:
        symbol: Pool identifier (e.g., "POOL_USDC")
        name: Human-readable pool name
        asset: Underlying asset unit symbol
        share_unit: Symbol of the pool's share unit
        reserve_wallet: Wallet holding the pool's free liquidity
        escrow_wallet: Wallet holding posted collateral
        rate_curve: Curve parameters (default: create_rate_curve() defaults)
        reserve_factor: Protocol share of interest in bps (default: 1000)
        debt_token: Debt-token unit used by collect_payment (optional)
        risk_premiums: Premiums for risk-adjusted rates (default: none)

    Raises:
        Misconfiguration: If the configuration is inconsistent

    Example:
        pool = create_liquidity_pool_unit(
            "POOL_USDC", "USDC Pool", "USDC", "lpUSDC",
            reserve_wallet="pool_usdc_reserve", escrow_wallet="pool_usdc_escrow",
        )
    """
    if not symbol or not symbol.strip():
        raise Misconfiguration("pool symbol cannot be empty")
    terms = PoolTerms(
        asset=asset,
        share_unit=share_unit,
        reserve_wallet=reserve_wallet,
        escrow_wallet=escrow_wallet,
        rate_curve=rate_curve if rate_curve is not None else create_rate_curve(),
        reserve_factor=reserve_factor,
        debt_token=debt_token,
        risk_premiums=risk_premiums if risk_premiums is not None else RiskPremiums(),
    )
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_LIQUIDITY_POOL,
        _frozen_state=_freeze_state(to_state_dict(terms, PoolState())),
    )


# ============================================================================
# TRANSACT
# ============================================================================

def transact(
    view: LedgerView,
    symbol: str,
    event_type: str,
    event_date: datetime,
    **kwargs
) -> PendingTransaction:
    """
    Generate a pool transaction for an event type.

    Args:
        view: Read-only ledger access
        symbol: Pool unit symbol
        event_type: DEPOSIT, WITHDRAW, REDEEM, BORROW, REPAY or COLLECT_PAYMENT
        event_date: When the event occurs (the ledger's clock is authoritative)
        **kwargs: Event-specific parameters

    Example:
        tx = transact(view, "POOL_USDC", "DEPOSIT", now, lender="alice", amount=1_000)
    """
    def need(name: str) -> Any:
        value = kwargs.get(name)
        if value is None:
            raise ValueError(f"Missing '{name}' parameter for {event_type} event on {symbol}")
        return value

    if event_type == EVENT_DEPOSIT:
        return compute_deposit(view, symbol, need('lender'), need('amount'))

    elif event_type == EVENT_WITHDRAW:
        return compute_withdraw(view, symbol, need('lender'), need('amount'))

    elif event_type == EVENT_REDEEM:
        return compute_redeem(view, symbol, need('lender'), need('shares'))

    elif event_type == EVENT_BORROW:
        return compute_borrow(
            view, symbol, need('router'), need('borrower'), need('notional'),
            kwargs.get('collateral_asset'), kwargs.get('collateral_amount', 0),
        )

    elif event_type == EVENT_REPAY:
        return compute_repay(view, symbol, need('router'), need('borrower'), need('amount'))

    elif event_type == EVENT_COLLECT_PAYMENT:
        return compute_collect_payment(
            view, symbol, need('router'), need('loan_contract'),
            need('debt_units'), need('debt_outstanding'), kwargs.get('borrower'),
        )

    else:
        raise ValueError(f"Unknown event type '{event_type}' for liquidity pool {symbol}")
