"""
loan.py - Per-Borrower Loan Registry

Loan records live in the pool unit's state under 'loans' (one slot per
borrower) and 'loan_history' (closed records that were replaced by a newer
loan). Records are never deleted.

State machine per borrower:

    (no loan) --borrow--> OPEN --repay/collect, repaid >= borrowed--> REPAID
                                                                        |
    OPEN <--------------------------borrow (old record archived)--------+

A second borrow while a loan is OPEN is rejected with LoanAlreadyOpen.

Functions here are pure: they take and return frozen Loan values.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Iterable, List, Mapping, Optional

from ..core import InvalidArgument, LoanAlreadyOpen, LoanNotFound


class LoanStatus(str, Enum):
    OPEN = "OPEN"
    REPAID = "REPAID"


@dataclass(frozen=True, slots=True)
class Loan:
    """
    Immutable loan record.

    amount_repaid may exceed amount_borrowed; the surplus is interest paid
    into the pool.
    """
    borrower: str
    amount_borrowed: int
    collateral_amount: int
    collateral_asset: Optional[str]
    router: str
    opened_at: Optional[datetime] = None
    amount_repaid: int = 0
    status: LoanStatus = LoanStatus.OPEN
    closed_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.borrower or not self.borrower.strip():
            raise InvalidArgument("borrower cannot be empty")
        if self.amount_borrowed <= 0:
            raise InvalidArgument(f"amount_borrowed must be positive, got {self.amount_borrowed}")
        if self.collateral_amount < 0:
            raise InvalidArgument(f"collateral_amount cannot be negative, got {self.collateral_amount}")
        if self.collateral_amount > 0 and not self.collateral_asset:
            raise InvalidArgument("collateral_asset is required when collateral is posted")
        if self.amount_repaid < 0:
            raise InvalidArgument(f"amount_repaid cannot be negative, got {self.amount_repaid}")
        if not isinstance(self.status, LoanStatus):
            object.__setattr__(self, 'status', LoanStatus(self.status))

    @property
    def is_open(self) -> bool:
        return self.status is LoanStatus.OPEN

    @property
    def outstanding(self) -> int:
        """Principal still owed; zero once repaid in full."""
        return max(self.amount_borrowed - self.amount_repaid, 0)


# ============================================================================
# ADAPTER FUNCTIONS
# ============================================================================

def loan_to_dict(loan: Loan) -> Dict[str, Any]:
    """Plain dict form stored in pool unit state."""
    return {
        'borrower': loan.borrower,
        'amount_borrowed': loan.amount_borrowed,
        'collateral_amount': loan.collateral_amount,
        'collateral_asset': loan.collateral_asset,
        'router': loan.router,
        'opened_at': loan.opened_at,
        'amount_repaid': loan.amount_repaid,
        'status': loan.status.value,
        'closed_at': loan.closed_at,
    }


def loan_from_dict(raw: Mapping[str, Any]) -> Loan:
    return Loan(
        borrower=raw['borrower'],
        amount_borrowed=raw['amount_borrowed'],
        collateral_amount=raw.get('collateral_amount', 0),
        collateral_asset=raw.get('collateral_asset'),
        router=raw.get('router', ''),
        opened_at=raw.get('opened_at'),
        amount_repaid=raw.get('amount_repaid', 0),
        status=LoanStatus(raw.get('status', LoanStatus.OPEN.value)),
        closed_at=raw.get('closed_at'),
    )


def load_loans(state: Mapping[str, Any]) -> Dict[str, Loan]:
    """Read the borrower -> Loan registry out of a pool state dict."""
    return {borrower: loan_from_dict(raw) for borrower, raw in state.get('loans', {}).items()}


def loans_to_dict(loans: Mapping[str, Loan]) -> Dict[str, Dict[str, Any]]:
    return {borrower: loan_to_dict(loan) for borrower, loan in loans.items()}


# ============================================================================
# PURE TRANSITIONS
# ============================================================================

def open_loan(
    loans: Mapping[str, Loan],
    borrower: str,
    amount: int,
    collateral_asset: Optional[str],
    collateral_amount: int,
    router: str,
    opened_at: Optional[datetime] = None,
) -> Loan:
    """
    Create a new OPEN loan for borrower.

    Raises:
        LoanAlreadyOpen: If borrower already has an OPEN loan
        InvalidArgument: If the loan fields are invalid
    """
    existing = loans.get(borrower)
    if existing is not None and existing.is_open:
        raise LoanAlreadyOpen(
            f"{borrower} already has an open loan of {existing.amount_borrowed} "
            f"({existing.outstanding} outstanding)"
        )
    return Loan(
        borrower=borrower,
        amount_borrowed=amount,
        collateral_amount=collateral_amount,
        collateral_asset=collateral_asset,
        router=router,
        opened_at=opened_at,
    )


def apply_repayment(loan: Loan, amount: int, when: Optional[datetime] = None) -> Loan:
    """
    Apply a repayment to an OPEN loan.

    The loan becomes REPAID once amount_repaid reaches amount_borrowed.

    Raises:
        InvalidArgument: If amount <= 0 or the loan is already REPAID
    """
    if amount <= 0:
        raise InvalidArgument(f"repayment must be positive, got {amount}")
    if not loan.is_open:
        raise InvalidArgument(f"loan of {loan.borrower} is already {loan.status.value}")
    repaid = loan.amount_repaid + amount
    if repaid >= loan.amount_borrowed:
        return replace(loan, amount_repaid=repaid, status=LoanStatus.REPAID, closed_at=when)
    return replace(loan, amount_repaid=repaid)


def get_open_loan(loans: Mapping[str, Loan], borrower: str) -> Loan:
    """
    Raises:
        LoanNotFound: If borrower has no OPEN loan
    """
    loan = loans.get(borrower)
    if loan is None or not loan.is_open:
        raise LoanNotFound(f"{borrower} has no open loan")
    return loan


def outstanding_principal(loans: Iterable[Loan]) -> int:
    """Sum of unpaid principal over OPEN loans."""
    return sum(loan.outstanding for loan in loans if loan.is_open)


def archive(history: List[Dict[str, Any]], previous: Optional[Loan]) -> List[Dict[str, Any]]:
    """Return history with a replaced REPAID record appended."""
    if previous is None:
        return list(history)
    return list(history) + [loan_to_dict(previous)]
