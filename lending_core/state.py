"""
Loan State Machine

Derives a loan's status from its balances and due date. Finalized is
terminal; active and overdue move back and forth as obligations fall due
and get paid.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from .currency import ZERO


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "active"
    OVERDUE = "overdue"
    FINALIZED = "finalized"

    @property
    def is_open(self) -> bool:
        return self is not LoanStatus.FINALIZED


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_overdue(now: Union[date, datetime], due_date: Optional[date]) -> int:
    """Days past a due date, never negative. Recompute on every read."""
    if due_date is None:
        return 0
    return max(0, (_as_date(now) - due_date).days)


def transition(
    current: LoanStatus,
    principal_balance: Decimal,
    pending_interest: Decimal,
    penalty_balance: Decimal,
    next_due_date: Optional[date],
    now: Union[date, datetime]
) -> LoanStatus:
    """
    Next status after an accrual or payment event

    Rules:
        * finalized stays finalized
        * principal at zero finalizes, from active or overdue
        * past the due date with principal outstanding goes overdue
        * overdue returns to active once penalty and interest are both
          cleared and the due date is back in the future
    """
    if current is LoanStatus.FINALIZED:
        return LoanStatus.FINALIZED

    if principal_balance <= ZERO:
        return LoanStatus.FINALIZED

    past_due = days_overdue(now, next_due_date) > 0

    if current is LoanStatus.ACTIVE:
        return LoanStatus.OVERDUE if past_due else LoanStatus.ACTIVE

    cleared = pending_interest <= ZERO and penalty_balance <= ZERO
    if cleared and not past_due:
        return LoanStatus.ACTIVE
    return LoanStatus.OVERDUE
