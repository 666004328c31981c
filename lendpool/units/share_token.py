"""
share_token.py - Proportional Pool Shares

Converts between underlying asset amounts and pool share units at the live
pool exchange rate. Functions here compute amounts only; share balances are
held by the ledger, and minting/burning are moves from/to the system wallet.

Rounding always favours the pool:
    deposit  -> shares floored (the depositor gets fewer shares)
    withdraw -> shares to burn ceiled (the withdrawer burns at least the true value)
    redeem   -> assets floored

Key Formulas:
    shares_for_deposit = amount * total_shares / total_assets   (1:1 at bootstrap)
    entitlement        = share_balance * total_assets / total_shares
    share_value        = total_assets / total_shares            (ray)
"""

from __future__ import annotations

from ..core import (
    LedgerView, Move, Unit,
    SYSTEM_WALLET, UNIT_TYPE_POOL_SHARE,
    InvalidArgument, DivisionByZero, TransferRuleViolation,
    _freeze_state,
)
from ..ray_math import RAY, mul_div, mul_div_up


def _check_amount(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{name} must be int, got {type(value).__name__}")
    if value <= 0:
        raise InvalidArgument(f"{name} must be positive, got {value}")


def _check_reserve(total_shares: int, total_assets: int) -> None:
    if total_shares < 0 or total_assets < 0:
        raise InvalidArgument(
            f"reserve figures cannot be negative: shares={total_shares}, assets={total_assets}"
        )


def shares_for_deposit(amount: int, total_shares: int, total_assets: int) -> int:
    """
    Shares minted for a deposit, priced against the pre-deposit reserve.

    The first deposit into an empty pool mints 1:1.

    Raises:
        InvalidArgument: If amount <= 0, or the deposit is too small to mint
            a single share at the current price.
        DivisionByZero: If shares exist but the pool holds no assets.
    """
    _check_amount("amount", amount)
    _check_reserve(total_shares, total_assets)
    if total_shares == 0:
        return amount
    if total_assets == 0:
        raise DivisionByZero("pool has shares outstanding but no assets")
    shares = mul_div(amount, total_shares, total_assets)
    if shares == 0:
        raise InvalidArgument(
            f"deposit of {amount} mints zero shares at {total_assets}/{total_shares}"
        )
    return shares


def assets_for_withdraw(share_amount: int, total_shares: int, total_assets: int) -> int:
    """
    Assets paid out for burning share_amount shares (floored).

    Raises:
        InvalidArgument: If share_amount <= 0 or exceeds total_shares
        DivisionByZero: If there are no shares
    """
    _check_amount("share_amount", share_amount)
    _check_reserve(total_shares, total_assets)
    if total_shares == 0:
        raise DivisionByZero("no shares outstanding")
    if share_amount > total_shares:
        raise InvalidArgument(f"share_amount {share_amount} exceeds supply {total_shares}")
    return mul_div(share_amount, total_assets, total_shares)


def entitlement(share_balance: int, total_shares: int, total_assets: int) -> int:
    """A holder's claim on pool assets; 0 when no shares exist."""
    _check_reserve(total_shares, total_assets)
    if share_balance < 0:
        raise InvalidArgument(f"share_balance cannot be negative, got {share_balance}")
    if total_shares == 0 or share_balance == 0:
        return 0
    return mul_div(share_balance, total_assets, total_shares)


def shares_to_burn(amount: int, total_shares: int, total_assets: int) -> int:
    """
    Shares burned to withdraw amount of the underlying (ceiled).

    Raises:
        InvalidArgument: If amount <= 0 or exceeds total_assets
        DivisionByZero: If the pool holds no assets
    """
    _check_amount("amount", amount)
    _check_reserve(total_shares, total_assets)
    if total_assets == 0:
        raise DivisionByZero("pool holds no assets")
    if amount > total_assets:
        raise InvalidArgument(f"amount {amount} exceeds pool assets {total_assets}")
    return mul_div_up(amount, total_shares, total_assets)


def share_value(total_shares: int, total_assets: int) -> int:
    """Price of one share in ray; RAY before the first deposit."""
    _check_reserve(total_shares, total_assets)
    if total_shares == 0:
        return RAY
    return mul_div(total_assets, RAY, total_shares)


# ============================================================================
# UNIT FACTORY
# ============================================================================

def share_mint_rule(view: LedgerView, move: Move) -> None:
    """
    Only the issuing pool can mint or burn its shares.

    Mints and burns are moves from/to the system wallet; they must carry a
    contract_id of the form "<pool_symbol>:<operation>".

    Raises:
        TransferRuleViolation: If a mint or burn comes from anywhere else
    """
    if SYSTEM_WALLET not in (move.source, move.dest):
        return
    pool_symbol = view.get_unit_state(move.unit_symbol).get('pool')
    if not pool_symbol:
        raise TransferRuleViolation(f"Share unit {move.unit_symbol} has no issuing pool")
    if not move.contract_id.startswith(f"{pool_symbol}:"):
        raise TransferRuleViolation(
            f"{move.unit_symbol} can only be minted or burned by pool {pool_symbol}, "
            f"got contract_id={move.contract_id}"
        )


def create_share_unit(symbol: str, name: str, pool_symbol: str) -> Unit:
    """
    Create the fungible share unit of a liquidity pool.

    Args:
        symbol: Share ticker (e.g., "lpUSDC")
        name: Human-readable name
        pool_symbol: Symbol of the pool unit allowed to mint and burn

    Returns:
        A Unit that no lender wallet can overdraw.
    """
    if not symbol or not symbol.strip():
        raise InvalidArgument("share symbol cannot be empty")
    if not pool_symbol or not pool_symbol.strip():
        raise InvalidArgument("pool_symbol cannot be empty")
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_POOL_SHARE,
        transfer_rule=share_mint_rule,
        _frozen_state=_freeze_state({'pool': pool_symbol}),
    )
