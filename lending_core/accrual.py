"""
Interest Accrual Module

Computes interest owed since the last accrual checkpoint. Open-ended loans
accrue simple interest on the current principal balance for every biweekly
boundary crossed; fixed-term loans accrue the interest portion of each
scheduled installment as its due date passes.

Accrual is idempotent as long as the caller persists the new checkpoint:
a second call over the same (checkpoint, now) window adds nothing.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Sequence

from .currency import ZERO, round_money, to_decimal, DecimalLike
from .errors import InconsistentLoanState, InvalidAmount, InvalidTimestampOrder
from .periods import PeriodType, next_period_boundary, periods_elapsed


HUNDRED = Decimal('100')


@dataclass(frozen=True)
class AccrualResult:
    """Outcome of one accrual run"""
    new_interest: Decimal
    total_pending_interest: Decimal
    next_due_date: date
    periods_elapsed: int

    @property
    def has_new_interest(self) -> bool:
        return self.new_interest > ZERO


def _check_window(last_accrual_timestamp: datetime, now: datetime) -> None:
    if now < last_accrual_timestamp:
        raise InvalidTimestampOrder(
            f"Accrual time {now.isoformat()} is before the last checkpoint "
            f"{last_accrual_timestamp.isoformat()}"
        )


def _non_negative(name: str, value: DecimalLike) -> Decimal:
    amount = to_decimal(value)
    if amount < ZERO:
        raise InconsistentLoanState(f"{name} cannot be negative: {amount}")
    return amount


def accrue(
    principal_balance: DecimalLike,
    rate_percent: DecimalLike,
    last_accrual_timestamp: datetime,
    now: datetime,
    pending_interest_carry: DecimalLike = ZERO
) -> AccrualResult:
    """
    Accrue interest on an open-ended loan

    Args:
        principal_balance: Current unpaid principal
        rate_percent: Interest per biweekly period as a percentage (2 = 2%)
        last_accrual_timestamp: Point interest was last computed through
        now: Point to compute interest through
        pending_interest_carry: Unpaid interest carried from earlier periods

    Returns:
        AccrualResult with the new interest, the carried total, the next
        due date after ``now`` and the number of periods counted

    Raises:
        InvalidTimestampOrder: If ``now`` is before the checkpoint
        InconsistentLoanState: If a balance is negative
        InvalidAmount: If the rate is negative
    """
    _check_window(last_accrual_timestamp, now)
    balance = _non_negative("Principal balance", principal_balance)
    carry = _non_negative("Pending interest", pending_interest_carry)
    rate = to_decimal(rate_percent)
    if rate < ZERO:
        raise InvalidAmount(f"Interest rate cannot be negative: {rate}")

    periods = periods_elapsed(last_accrual_timestamp, now, PeriodType.BIWEEKLY)
    new_interest = round_money(balance * (rate / HUNDRED) * periods)

    return AccrualResult(
        new_interest=new_interest,
        total_pending_interest=round_money(carry + new_interest),
        next_due_date=next_period_boundary(now, PeriodType.BIWEEKLY),
        periods_elapsed=periods
    )


def accrue_scheduled(
    principal_balance: DecimalLike,
    rate_percent: DecimalLike,
    due_dates: Sequence[date],
    last_accrual_timestamp: datetime,
    now: datetime,
    pending_interest_carry: DecimalLike = ZERO
) -> AccrualResult:
    """
    Accrue interest on a fixed-term loan at its scheduled due dates

    Each due date in the half-open window (checkpoint date, now date]
    charges one period of interest on the current principal balance, so a
    borrower paying on schedule is charged exactly the projected interest
    and one who prepaid principal is charged less.

    The next due date is the first scheduled date after ``now``, or the
    final due date once the schedule is exhausted.
    """
    _check_window(last_accrual_timestamp, now)
    balance = _non_negative("Principal balance", principal_balance)
    carry = _non_negative("Pending interest", pending_interest_carry)
    rate = to_decimal(rate_percent)
    if rate < ZERO:
        raise InvalidAmount(f"Interest rate cannot be negative: {rate}")

    start = last_accrual_timestamp.date()
    end = now.date()
    periods = sum(1 for due in due_dates if start < due <= end)
    new_interest = round_money(balance * (rate / HUNDRED) * periods)

    upcoming = [due for due in due_dates if due > end]
    if upcoming:
        next_due = upcoming[0]
    elif due_dates:
        next_due = due_dates[-1]
    else:
        next_due = end

    return AccrualResult(
        new_interest=new_interest,
        total_pending_interest=round_money(carry + new_interest),
        next_due_date=next_due,
        periods_elapsed=periods
    )


def interest_projection(principal_balance: DecimalLike, rate_percent: DecimalLike) -> Dict[str, Decimal]:
    """
    Forward-looking interest figures for an open-ended loan

    Returns per-period, monthly (two periods) and annual (24 periods)
    interest, plus the annualized return as a percentage of the balance.
    """
    balance = _non_negative("Principal balance", principal_balance)
    rate = to_decimal(rate_percent)
    per_period = round_money(balance * rate / HUNDRED)

    annual_return = ZERO
    if balance > ZERO:
        annual_return = round_money(per_period * 24 / balance * HUNDRED)

    return {
        "per_period": per_period,
        "monthly": per_period * 2,
        "annual": per_period * 24,
        "annual_return_percent": annual_return
    }
