"""
Amortization Schedule Module

Projects the period-by-period plan of a fixed-term loan. The installment is
flat-rate (principal plus simple interest over the whole term, split evenly)
while each row's interest is recomputed from the declining balance; the
final row absorbs whatever principal remains so the schedule closes at
exactly zero.

Schedules are projections only. The loan's balances are the source of truth
for money owed; reconciliation against real payments is for display.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union

from .currency import ZERO, round_money, to_decimal, DecimalLike
from .errors import InvalidAmount, UnsupportedPeriodType
from .periods import PeriodType, add_periods, coerce_period_type
from .state import days_overdue


HUNDRED = Decimal('100')


@dataclass(frozen=True)
class ScheduleEntry:
    """One projected installment"""
    period: int
    due_date: date
    opening_balance: Decimal
    interest_portion: Decimal
    principal_portion: Decimal
    installment: Decimal
    closing_balance: Decimal


class InstallmentStatus(Enum):
    """Display status of a projected installment"""
    PAID = "paid"
    PENDING = "pending"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class InstallmentView:
    """Schedule entry annotated against real payments"""
    entry: ScheduleEntry
    status: InstallmentStatus
    days_overdue: int = 0


def _validate_terms(principal: Decimal, rate: Decimal, term_periods: int,
                    period_type: PeriodType) -> None:
    if not period_type.is_fixed_term:
        raise UnsupportedPeriodType("Open-ended loans have no amortization schedule")
    if principal <= ZERO:
        raise InvalidAmount(f"Principal must be positive, got {principal}")
    if rate <= ZERO:
        raise InvalidAmount(f"Interest rate must be positive, got {rate}")
    if not isinstance(term_periods, int) or isinstance(term_periods, bool) or term_periods <= 0:
        raise InvalidAmount(f"Term must be a positive number of periods, got {term_periods!r}")


def total_interest(principal: DecimalLike, rate_percent: DecimalLike, term_periods: int) -> Decimal:
    """Simple interest over the whole term"""
    return round_money(to_decimal(principal) * (to_decimal(rate_percent) / HUNDRED) * term_periods)


def installment_amount(principal: DecimalLike, rate_percent: DecimalLike, term_periods: int) -> Decimal:
    """Fixed installment: (principal + total interest) / term"""
    principal = to_decimal(principal)
    return round_money((principal + total_interest(principal, rate_percent, term_periods)) / term_periods)


def generate_schedule(
    principal: DecimalLike,
    rate_percent: DecimalLike,
    period_type: Union[PeriodType, str],
    term_periods: int,
    start_date: Union[date, datetime]
) -> List[ScheduleEntry]:
    """
    Generate the full schedule for a fixed-term loan

    Args:
        principal: Amount disbursed
        rate_percent: Interest per period as a percentage
        period_type: biweekly, monthly or annual
        term_periods: Number of installments
        start_date: Loan start; installment i falls i periods later

    Returns:
        List of ScheduleEntry, one per period, closing at exactly zero

    Raises:
        InvalidAmount: For non-positive principal, rate or term
        UnsupportedPeriodType: For open-ended or unknown period types
    """
    principal = to_decimal(principal)
    rate = to_decimal(rate_percent)
    period_type = coerce_period_type(period_type)
    _validate_terms(principal, rate, term_periods, period_type)

    rate_per_period = rate / HUNDRED
    installment = installment_amount(principal, rate, term_periods)
    balance = round_money(principal)
    schedule = []

    for period in range(1, term_periods + 1):
        interest = round_money(balance * rate_per_period)

        if period == term_periods:
            principal_portion = balance
        else:
            principal_portion = installment - interest
            # Flat installments can outrun the declining balance on steep rates
            principal_portion = min(max(principal_portion, ZERO), balance)

        closing = balance - principal_portion
        schedule.append(ScheduleEntry(
            period=period,
            due_date=add_periods(start_date, period, period_type),
            opening_balance=balance,
            interest_portion=interest,
            principal_portion=principal_portion,
            installment=principal_portion + interest,
            closing_balance=closing
        ))
        balance = closing

    return schedule


def maturity_date(start_date: Union[date, datetime], term_periods: int,
                  period_type: Union[PeriodType, str]) -> date:
    """Due date of the last installment"""
    return add_periods(start_date, term_periods, period_type)


def schedule_summary(schedule: List[ScheduleEntry]) -> Dict[str, Decimal]:
    """Totals over a schedule"""
    return {
        "installments": Decimal(len(schedule)),
        "total_principal": sum((e.principal_portion for e in schedule), ZERO),
        "total_interest": sum((e.interest_portion for e in schedule), ZERO),
        "total_payable": sum((e.installment for e in schedule), ZERO),
    }


def next_due_after(schedule: List[ScheduleEntry], after: Union[date, datetime]) -> Optional[date]:
    """First scheduled due date strictly after a date"""
    day = after.date() if isinstance(after, datetime) else after
    for entry in schedule:
        if entry.due_date > day:
            return entry.due_date
    return None


def reconcile_schedule(
    schedule: List[ScheduleEntry],
    amount_paid: DecimalLike,
    as_of: Union[date, datetime]
) -> List[InstallmentView]:
    """
    Annotate a projected schedule with real payments

    Installments are considered paid in order while the cumulative
    installment total is covered by ``amount_paid`` (interest plus principal
    actually received). Unpaid installments past their due date are overdue.
    """
    remaining = to_decimal(amount_paid)
    views = []
    for entry in schedule:
        if remaining >= entry.installment:
            remaining -= entry.installment
            views.append(InstallmentView(entry=entry, status=InstallmentStatus.PAID))
            continue

        remaining = ZERO
        overdue_days = days_overdue(as_of, entry.due_date)
        if overdue_days > 0:
            views.append(InstallmentView(entry=entry, status=InstallmentStatus.OVERDUE,
                                         days_overdue=overdue_days))
        else:
            views.append(InstallmentView(entry=entry, status=InstallmentStatus.PENDING))
    return views
