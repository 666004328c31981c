"""
conftest.py - Shared pytest fixtures for lendpool tests

Provides common fixtures used across unit, conformance and functional tests:
- Basic ledgers (empty, funded)
- Pool ledgers with lenders, a router and collateral
- Pool test curve
"""

import pytest

from lendpool import Ledger, asset, create_rate_curve

from tests.pool_helpers import T0, TEST_CURVE, make_pool_ledger


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", verbose=False, test_mode=True)


@pytest.fixture
def basic_ledger():
    """Ledger with USDC and two wallets."""
    ledger = Ledger("test", T0, verbose=False, test_mode=True)
    ledger.register_unit(asset("USDC", "USD Coin", decimals=6))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    return ledger


@pytest.fixture
def funded_ledger(basic_ledger):
    """Basic ledger with alice holding 10,000 USDC base units."""
    basic_ledger.set_balance("alice", "USDC", 10_000)
    return basic_ledger


# =============================================================================
# POOL FIXTURES
# =============================================================================

@pytest.fixture
def test_curve():
    return create_rate_curve(**TEST_CURVE)


@pytest.fixture
def pool_setup():
    """(ledger, pool) with three funded lenders, a funded router and a debt token."""
    return make_pool_ledger()


@pytest.fixture
def funded_pool(pool_setup):
    """Pool with alice 600,000 and bob 400,000 deposited."""
    ledger, pool = pool_setup
    pool.deposit("alice", 600_000)
    pool.deposit("bob", 400_000)
    return ledger, pool
