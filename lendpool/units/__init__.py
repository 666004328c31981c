"""
Units module - Pool shares, loans and the liquidity pool unit.

- Share units with proportional-share math
- Loan records and their OPEN -> REPAID state machine
- Liquidity pool unit with pure deposit/withdraw/borrow/repay/collect functions

All unit factories and related functions are re-exported here for convenience.
"""

# Pool shares
from .share_token import (
    shares_for_deposit,
    assets_for_withdraw,
    entitlement,
    shares_to_burn,
    share_value,
    share_mint_rule,
    create_share_unit,
)

# Loans
from .loan import (
    Loan,
    LoanStatus,
    load_loans,
    loan_to_dict,
    loan_from_dict,
    open_loan,
    apply_repayment,
    get_open_loan,
    outstanding_principal,
)

# Liquidity pools
from .liquidity_pool import (
    PoolTerms,
    PoolState,
    PoolReserve,
    load_pool,
    load_reserve,
    to_state_dict as pool_to_state_dict,
    calculate_reserve,
    calculate_collection,
    compute_deposit,
    compute_withdraw,
    compute_redeem,
    compute_borrow,
    compute_repay,
    compute_collect_payment,
    compute_rates,
    compute_risk_adjusted_rates,
    compute_share_value,
    live_snapshot,
    create_liquidity_pool_unit,
    transact as liquidity_pool_transact,
)

__all__ = [
    # Shares
    'shares_for_deposit', 'assets_for_withdraw', 'entitlement', 'shares_to_burn',
    'share_value', 'share_mint_rule', 'create_share_unit',
    # Loans
    'Loan', 'LoanStatus', 'load_loans', 'loan_to_dict', 'loan_from_dict',
    'open_loan', 'apply_repayment', 'get_open_loan', 'outstanding_principal',
    # Liquidity pools
    'PoolTerms', 'PoolState', 'PoolReserve', 'load_pool', 'load_reserve',
    'pool_to_state_dict', 'calculate_reserve', 'calculate_collection',
    'compute_deposit', 'compute_withdraw', 'compute_redeem',
    'compute_borrow', 'compute_repay', 'compute_collect_payment',
    'compute_rates', 'compute_risk_adjusted_rates', 'compute_share_value',
    'live_snapshot', 'create_liquidity_pool_unit', 'liquidity_pool_transact',
]
