"""
lendpool - Collateralized Lending Pool Core

Proportional-share lender accounting, a per-borrower loan registry and a
two-slope utilization rate curve, on top of an atomic double-entry ledger.

Usage:
    from lendpool import Ledger, asset, Move, build_transaction, setup_liquidity_pool, SYSTEM_WALLET

    ledger = Ledger("main")
    ledger.register_unit(asset("USDC", "USD Coin", decimals=6))
    ledger.register_wallet("alice")

    # Fund wallets via SYSTEM_WALLET (proper issuance)
    ledger.execute(build_transaction(ledger, [
        Move(1_000_000, "USDC", SYSTEM_WALLET, "alice", "faucet")
    ]))

    pool = setup_liquidity_pool(ledger, "POOL_USDC", "USDC", owner="admin", router="router")
    shares = pool.deposit("alice", 1_000_000)
    rates = pool.query_rates()
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    LedgerError,
    InsufficientFunds,
    BalanceConstraintViolation,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    PoolError,
    InvalidArgument,
    LoanAlreadyOpen,
    LoanNotFound,
    Unauthorized,
    InsufficientLiquidity,
    InsufficientEntitlement,
    ExternalTransferFailed,
    Misconfiguration,
    DivisionByZero,
    InactiveState,
    asset,
    debt_token,
    SYSTEM_WALLET,
    UNIT_TYPE_ASSET,
    UNIT_TYPE_POOL_SHARE,
    UNIT_TYPE_DEBT_TOKEN,
    UNIT_TYPE_LIQUIDITY_POOL,
)

# Ledger
from .ledger import Ledger

# Fixed-point math
from .ray_math import (
    RAY,
    PERCENTAGE_FACTOR,
    mul_div,
    mul_div_up,
    to_ray,
    ray_to_decimal,
)

# Rate curve
from .rate_curve import (
    RateCurveParams,
    ReserveSnapshot,
    RiskPremiums,
    InterestRates,
    create_rate_curve,
    calculate_utilization,
    calculate_variable_rate,
    calculate_interest_rates,
    calculate_risk_adjusted_rates,
    rate_curve_points,
    DEFAULT_OPTIMAL_USAGE_RATIO,
    DEFAULT_RESERVE_FACTOR,
)

# Units
from .units import (
    shares_for_deposit,
    assets_for_withdraw,
    entitlement,
    shares_to_burn,
    share_value,
    create_share_unit,
    Loan,
    LoanStatus,
    PoolTerms,
    PoolState,
    PoolReserve,
    load_pool,
    load_reserve,
    compute_deposit,
    compute_withdraw,
    compute_redeem,
    compute_borrow,
    compute_repay,
    compute_collect_payment,
    compute_rates,
    create_liquidity_pool_unit,
    liquidity_pool_transact,
)

# Collaborators and orchestration
from .access import RouterAccess, PauseState, PoolAdmin
from .events import EventLog, PoolEvent
from .pool_engine import LiquidityPool, setup_liquidity_pool

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin', 'OriginType',
    'build_transaction',
    'Unit', 'UnitStateChange', 'ExecuteResult',
    'asset', 'debt_token', 'SYSTEM_WALLET',
    'UNIT_TYPE_ASSET', 'UNIT_TYPE_POOL_SHARE', 'UNIT_TYPE_DEBT_TOKEN', 'UNIT_TYPE_LIQUIDITY_POOL',
    # Errors
    'LedgerError', 'InsufficientFunds', 'BalanceConstraintViolation',
    'TransferRuleViolation', 'UnitNotRegistered', 'WalletNotRegistered',
    'PoolError', 'InvalidArgument', 'LoanAlreadyOpen', 'LoanNotFound', 'Unauthorized',
    'InsufficientLiquidity', 'InsufficientEntitlement', 'ExternalTransferFailed',
    'Misconfiguration', 'DivisionByZero', 'InactiveState',
    # Ledger
    'Ledger',
    # Ray math
    'RAY', 'PERCENTAGE_FACTOR', 'mul_div', 'mul_div_up', 'to_ray', 'ray_to_decimal',
    # Rate curve
    'RateCurveParams', 'ReserveSnapshot', 'RiskPremiums', 'InterestRates',
    'create_rate_curve', 'calculate_utilization', 'calculate_variable_rate',
    'calculate_interest_rates', 'calculate_risk_adjusted_rates', 'rate_curve_points',
    'DEFAULT_OPTIMAL_USAGE_RATIO', 'DEFAULT_RESERVE_FACTOR',
    # Units
    'shares_for_deposit', 'assets_for_withdraw', 'entitlement', 'shares_to_burn',
    'share_value', 'create_share_unit',
    'Loan', 'LoanStatus',
    'PoolTerms', 'PoolState', 'PoolReserve', 'load_pool', 'load_reserve',
    'compute_deposit', 'compute_withdraw', 'compute_redeem',
    'compute_borrow', 'compute_repay', 'compute_collect_payment', 'compute_rates',
    'create_liquidity_pool_unit', 'liquidity_pool_transact',
    # Orchestration
    'RouterAccess', 'PauseState', 'PoolAdmin', 'EventLog', 'PoolEvent',
    'LiquidityPool', 'setup_liquidity_pool',
]

__version__ = '1.0.0'
