"""
Loan Module

Loan snapshots and the operations that move them forward: origination,
interest accrual, payment allocation and late-payment penalties. The
snapshot functions are pure; LoanManager persists their results, keeps the
audit trail and serializes concurrent work on the same loan.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union
import threading
import weakref
import uuid

from .accrual import AccrualResult, accrue, accrue_scheduled
from .allocation import AllocationResult, allocate
from .amortization import (
    InstallmentView, ScheduleEntry, generate_schedule, next_due_after, reconcile_schedule
)
from .audit import AuditTrail, AuditEventType
from .config import LendingConfig, get_config
from .currency import ZERO, Currency, Money, round_money, to_decimal, DecimalLike
from .errors import (
    InconsistentLoanState, InvalidAmount, LoanClosedError, LoanNotFoundError,
    UnsupportedPeriodType
)
from .logging_config import get_logger, log_action
from .periods import PeriodType, add_periods, coerce_period_type, next_period_boundary
from .state import LoanStatus, days_overdue, transition
from .storage import StorageInterface, StorageRecord, normalize_timestamp


logger = get_logger("lending.loans")


@dataclass
class Loan(StorageRecord):
    """
    Snapshot of a loan's terms and balances

    Terms (principal, rate, period type, term, start date) are fixed at
    creation. Balances only change through accrual, payment and penalty
    events, each producing a new snapshot.
    """
    principal: Decimal
    rate: Decimal                       # Percent per period, e.g. 2 for 2%
    period_type: PeriodType
    start_date: date
    principal_balance: Decimal
    last_accrual_timestamp: datetime
    term_periods: Optional[int] = None  # None for open-ended loans
    pending_interest: Decimal = ZERO
    penalty_balance: Decimal = ZERO
    status: LoanStatus = LoanStatus.ACTIVE
    next_due_date: Optional[date] = None
    customer_id: Optional[str] = None
    currency: Currency = Currency.USD

    # Running totals of what payments actually covered
    interest_paid: Decimal = ZERO
    principal_paid: Decimal = ZERO
    penalty_paid: Decimal = ZERO
    last_payment_at: Optional[datetime] = None
    last_penalty_date: Optional[date] = None
    last_penalized_due_date: Optional[date] = None  # Latest due date a late fee covered

    @property
    def is_open_ended(self) -> bool:
        return self.period_type is PeriodType.OPEN_ENDED

    @property
    def is_open(self) -> bool:
        """Check if the loan still accepts payments"""
        return self.status.is_open

    @property
    def total_outstanding(self) -> Decimal:
        return total_outstanding(self)

    def days_overdue(self, now: Union[date, datetime]) -> int:
        """Days past the next due date as of ``now``"""
        return days_overdue(now, self.next_due_date)


@dataclass
class LoanPayment(StorageRecord):
    """Record of one payment and how it was split"""
    loan_id: str
    number: str                         # Receipt number, PG<yymmdd><nnnn>
    amount: Decimal
    applied_at: datetime
    penalty_portion: Decimal
    interest_portion: Decimal
    principal_portion: Decimal
    overflow: Decimal                   # Not absorbed by the loan; refund or credit
    principal_allowed: bool
    method: str = "cash"
    reference: Optional[str] = None
    notes: Optional[str] = None
    loan_status: LoanStatus = LoanStatus.ACTIVE


def _coerce_currency(value: Union[Currency, str]) -> Currency:
    if isinstance(value, Currency):
        return value
    try:
        return Currency[str(value).upper()]
    except KeyError:
        raise InvalidAmount(f"Unsupported currency: {value!r}")


def open_loan(
    principal: DecimalLike,
    rate: DecimalLike,
    period_type: Union[PeriodType, str],
    start_date: Union[date, datetime],
    term_periods: Optional[int] = None,
    customer_id: Optional[str] = None,
    currency: Union[Currency, str] = Currency.USD,
    loan_id: Optional[str] = None
) -> Loan:
    """
    Create a new active loan

    Interest is counted from the start date; the first due date is the
    first period boundary (open-ended) or first installment date
    (fixed-term) after it.

    Raises:
        InvalidAmount: For non-positive principal or rate, or a missing
            term on a fixed-term loan
        UnsupportedPeriodType: For an unknown period type
    """
    principal = to_decimal(principal)
    rate = to_decimal(rate)
    period_type = coerce_period_type(period_type)
    currency = _coerce_currency(currency)

    if principal <= ZERO:
        raise InvalidAmount(f"Principal must be positive, got {principal}")
    if rate <= ZERO:
        raise InvalidAmount(f"Interest rate must be positive, got {rate}")

    checkpoint = normalize_timestamp(start_date)
    start = checkpoint.date()

    if period_type.is_fixed_term:
        if not isinstance(term_periods, int) or isinstance(term_periods, bool) or term_periods <= 0:
            raise InvalidAmount(
                f"Fixed-term loans need a positive number of periods, got {term_periods!r}"
            )
        first_due = add_periods(start, 1, period_type)
    else:
        term_periods = None
        first_due = next_period_boundary(start, period_type)

    principal = Money(principal, currency).amount
    now = datetime.now(timezone.utc)

    return Loan(
        id=loan_id or str(uuid.uuid4()),
        created_at=now,
        updated_at=now,
        principal=principal,
        rate=rate,
        period_type=period_type,
        start_date=start,
        principal_balance=principal,
        last_accrual_timestamp=checkpoint,
        term_periods=term_periods,
        next_due_date=first_due,
        customer_id=customer_id,
        currency=currency
    )


def validate_loan(loan: Loan) -> None:
    """
    Reject snapshots that no operation could have produced

    Raises:
        InconsistentLoanState: For negative balances, a balance above the
            original principal or a fixed-term loan without a term
    """
    for name in ("principal_balance", "pending_interest", "penalty_balance"):
        value = getattr(loan, name)
        if value < ZERO:
            raise InconsistentLoanState(f"Loan {loan.id} has negative {name}: {value}")

    if loan.principal_balance > loan.principal:
        raise InconsistentLoanState(
            f"Loan {loan.id} balance {loan.principal_balance} exceeds principal {loan.principal}"
        )
    if loan.period_type.is_fixed_term and not loan.term_periods:
        raise InconsistentLoanState(f"Fixed-term loan {loan.id} has no term")


def total_outstanding(loan: Loan) -> Decimal:
    """Principal, interest and penalty still owed"""
    return loan.principal_balance + loan.pending_interest + loan.penalty_balance


def loan_schedule(loan: Loan) -> List[ScheduleEntry]:
    """Projected installment plan, regenerated from the loan's terms"""
    if loan.is_open_ended:
        raise UnsupportedPeriodType("Open-ended loans have no amortization schedule")
    return generate_schedule(
        loan.principal, loan.rate, loan.period_type, loan.term_periods, loan.start_date
    )


def next_due_date_after(loan: Loan, when: Union[date, datetime]) -> date:
    """
    Due date that follows ``when``

    Open-ended loans fall due on every biweekly boundary. Fixed-term loans
    fall due on their schedule dates; past maturity the final date stays.
    """
    if loan.is_open_ended:
        return next_period_boundary(when, loan.period_type)
    schedule = loan_schedule(loan)
    return next_due_after(schedule, when) or schedule[-1].due_date


def missed_due_dates(loan: Loan, as_of: Union[date, datetime], grace_days: int = 0) -> List[date]:
    """
    Due dates past their grace period that no late fee has covered yet

    Walks forward from the loan's current due date. Accrual never moves that
    date, so every boundary (open-ended) or installment date (fixed-term)
    missed since the last payment is counted on its own.
    """
    if loan.next_due_date is None:
        return []

    today = as_of.date() if isinstance(as_of, datetime) else as_of
    covered = loan.last_penalized_due_date

    missed = []
    due = loan.next_due_date
    while (today - due).days > grace_days:
        if covered is None or due > covered:
            missed.append(due)
        following = next_due_date_after(loan, due)
        if following <= due:
            break
        due = following
    return missed


def accrue_loan(loan: Loan, now: datetime) -> Tuple[Loan, AccrualResult]:
    """
    Bring interest up to ``now`` and advance the checkpoint

    Accrual never moves the due date; an unpaid due date is what makes a
    loan overdue.

    Raises:
        InvalidTimestampOrder: If ``now`` is before the last checkpoint
        InconsistentLoanState: If the snapshot is invalid
    """
    validate_loan(loan)

    if loan.is_open_ended:
        result = accrue(
            loan.principal_balance, loan.rate,
            loan.last_accrual_timestamp, now, loan.pending_interest
        )
    else:
        due_dates = [entry.due_date for entry in loan_schedule(loan)]
        result = accrue_scheduled(
            loan.principal_balance, loan.rate, due_dates,
            loan.last_accrual_timestamp, now, loan.pending_interest
        )

    next_due = loan.next_due_date or result.next_due_date
    status = transition(
        loan.status, loan.principal_balance, result.total_pending_interest,
        loan.penalty_balance, next_due, now
    )

    updated = replace(
        loan,
        pending_interest=result.total_pending_interest,
        last_accrual_timestamp=now,
        next_due_date=next_due,
        status=status,
        updated_at=now
    )
    return updated, result


def pay_loan(loan: Loan, amount: DecimalLike, applied_at: datetime) -> Tuple[Loan, AllocationResult]:
    """
    Apply a payment through the waterfall

    Once penalty and interest are both cleared the due date moves to the
    next one after the payment. Overflow is left on the allocation result
    for the caller.

    Raises:
        LoanClosedError: If the loan is finalized
        InvalidAmount: If the amount is not positive
        InconsistentLoanState: If the snapshot is invalid
    """
    validate_loan(loan)
    if not loan.is_open:
        raise LoanClosedError(f"Loan {loan.id} is finalized and accepts no payments")

    allocation = allocate(amount, loan.principal_balance, loan.pending_interest, loan.penalty_balance)

    principal_balance = loan.principal_balance - allocation.principal_portion
    pending_interest = loan.pending_interest - allocation.interest_portion
    penalty_balance = loan.penalty_balance - allocation.penalty_portion

    next_due = loan.next_due_date
    if pending_interest <= ZERO and penalty_balance <= ZERO and principal_balance > ZERO:
        candidate = next_due_date_after(loan, applied_at)
        next_due = max(candidate, next_due) if next_due else candidate

    status = transition(
        loan.status, principal_balance, pending_interest, penalty_balance, next_due, applied_at
    )

    updated = replace(
        loan,
        principal_balance=principal_balance,
        pending_interest=pending_interest,
        penalty_balance=penalty_balance,
        interest_paid=loan.interest_paid + allocation.interest_portion,
        principal_paid=loan.principal_paid + allocation.principal_portion,
        penalty_paid=loan.penalty_paid + allocation.penalty_portion,
        next_due_date=next_due,
        status=status,
        last_payment_at=applied_at,
        updated_at=applied_at
    )
    return updated, allocation


def charge_penalty(loan: Loan, amount: DecimalLike, as_of: datetime,
                   due_date: Optional[date] = None) -> Loan:
    """
    Add a late-payment penalty to the loan

    ``due_date`` is the latest missed due date the penalty covers; late
    fees pass it so the same due date is never charged twice.

    Raises:
        LoanClosedError: If the loan is finalized
        InvalidAmount: If the amount is not positive
    """
    validate_loan(loan)
    if not loan.is_open:
        raise LoanClosedError(f"Loan {loan.id} is finalized and accepts no penalties")

    fee = round_money(to_decimal(amount))
    if fee <= ZERO:
        raise InvalidAmount(f"Penalty must be positive, got {fee}")

    penalty_balance = loan.penalty_balance + fee
    status = transition(
        loan.status, loan.principal_balance, loan.pending_interest,
        penalty_balance, loan.next_due_date, as_of
    )
    return replace(
        loan,
        penalty_balance=penalty_balance,
        last_penalty_date=as_of.date(),
        last_penalized_due_date=due_date or loan.last_penalized_due_date,
        status=status,
        updated_at=as_of
    )


class LoanManager:
    """
    Manages loans from origination through payoff

    Every mutation runs under the loan's own lock and inside a storage
    atomic block, so a read-modify-write on one loan never interleaves with
    another on the same loan. Different loans proceed in parallel.
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        config: Optional[LendingConfig] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.config = config or get_config()

        self.loans_table = "loans"
        self.payments_table = "loan_payments"

        # Entries vanish once no caller holds the lock
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _loan_lock(self, loan_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(loan_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[loan_id] = lock
            return lock

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def originate_loan(
        self,
        principal: DecimalLike,
        rate: DecimalLike,
        period_type: Union[PeriodType, str],
        start_date: Optional[Union[date, datetime]] = None,
        term_periods: Optional[int] = None,
        customer_id: Optional[str] = None,
        currency: Optional[Union[Currency, str]] = None
    ) -> Loan:
        """
        Create and store a new loan

        Args:
            principal: Amount lent
            rate: Interest per period as a percentage
            period_type: biweekly, monthly, annual or open_ended
            start_date: Disbursement date (defaults to now)
            term_periods: Number of installments for fixed-term loans
            customer_id: Borrower reference
            currency: Currency code (defaults to configuration)

        Returns:
            Created Loan
        """
        loan = open_loan(
            principal=principal,
            rate=rate,
            period_type=period_type,
            start_date=start_date if start_date is not None else self._now(),
            term_periods=term_periods,
            customer_id=customer_id,
            currency=currency or self.config.default_currency
        )

        with self.storage.atomic():
            self._save_loan(loan)
            self._audit(AuditEventType.LOAN_ORIGINATED, loan.id, {
                "principal": loan.principal,
                "rate": loan.rate,
                "period_type": loan.period_type,
                "term_periods": loan.term_periods,
                "start_date": loan.start_date,
                "next_due_date": loan.next_due_date,
                "customer_id": loan.customer_id
            })

        log_action(
            logger, "info", "Loan originated",
            action="originate_loan", resource=f"loan:{loan.id}",
            extra={
                "principal": str(loan.principal),
                "rate": str(loan.rate),
                "period_type": loan.period_type.value
            }
        )
        return loan

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        data = self.storage.load(self.loans_table, loan_id)
        if data:
            return self._loan_from_dict(data)
        return None

    def _require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if loan is None:
            raise LoanNotFoundError(f"Loan {loan_id} not found")
        return loan

    def list_loans(
        self,
        status: Optional[Union[LoanStatus, str]] = None,
        open_ended: Optional[bool] = None
    ) -> List[Loan]:
        """All loans, optionally filtered by status and by open-ended/fixed-term"""
        filters = {}
        if status is not None:
            filters["status"] = LoanStatus(status).value
        loans = [self._loan_from_dict(data) for data in self.storage.find(self.loans_table, filters)]

        if open_ended is not None:
            loans = [loan for loan in loans if loan.is_open_ended == open_ended]

        loans.sort(key=lambda loan: loan.created_at)
        return loans

    def accrue_interest(self, loan_id: str, now: Optional[datetime] = None) -> Tuple[Loan, AccrualResult]:
        """
        Accrue interest on a stored loan up to ``now``

        Returns:
            Tuple of (updated loan, accrual result)
        """
        now = normalize_timestamp(now) if now is not None else self._now()

        with self._loan_lock(loan_id):
            with self.storage.atomic():
                loan = self._require_loan(loan_id)
                updated, result = accrue_loan(loan, now)
                self._save_loan(updated)

                if result.has_new_interest:
                    self._audit(AuditEventType.INTEREST_ACCRUED, loan_id, {
                        "new_interest": result.new_interest,
                        "pending_interest": result.total_pending_interest,
                        "periods_elapsed": result.periods_elapsed,
                        "accrued_through": now
                    })
                self._record_status_change(loan, updated, "accrual")

        if result.has_new_interest:
            log_action(
                logger, "info", "Interest accrued",
                action="accrue_interest", resource=f"loan:{loan_id}",
                extra={
                    "new_interest": str(result.new_interest),
                    "pending_interest": str(result.total_pending_interest),
                    "periods_elapsed": result.periods_elapsed,
                    "status": updated.status.value
                }
            )
        return updated, result

    def make_payment(
        self,
        loan_id: str,
        amount: DecimalLike,
        applied_at: Optional[datetime] = None,
        method: str = "cash",
        reference: Optional[str] = None,
        notes: Optional[str] = None
    ) -> LoanPayment:
        """
        Record a payment against a loan

        Interest is first accrued up to the payment time so the waterfall
        sees everything owed, then the payment is split penalty, interest,
        principal. Both steps are stored together or not at all. A payment
        dated before the last accrual checkpoint is applied to the balances
        as they stand.

        Args:
            loan_id: Loan ID
            amount: Amount received
            applied_at: When the money was received (defaults to now)
            method: Payment method (cash, transfer, ...)
            reference: External reference such as a transfer number
            notes: Free text

        Returns:
            LoanPayment record, including any overflow to refund

        Raises:
            LoanNotFoundError: If the loan does not exist
            LoanClosedError: If the loan is finalized
            InvalidAmount: If the amount is not positive
        """
        applied_at = normalize_timestamp(applied_at) if applied_at is not None else self._now()

        with self._loan_lock(loan_id):
            with self.storage.atomic():
                loan = self._require_loan(loan_id)
                payment_amount = Money(to_decimal(amount), loan.currency).amount

                accrued = loan
                if loan.is_open and applied_at >= loan.last_accrual_timestamp:
                    accrued, accrual = accrue_loan(loan, applied_at)
                    if accrual.has_new_interest:
                        self._audit(AuditEventType.INTEREST_ACCRUED, loan_id, {
                            "new_interest": accrual.new_interest,
                            "pending_interest": accrual.total_pending_interest,
                            "periods_elapsed": accrual.periods_elapsed,
                            "accrued_through": applied_at
                        })

                updated, allocation = pay_loan(accrued, payment_amount, applied_at)

                payment = LoanPayment(
                    id=str(uuid.uuid4()),
                    created_at=self._now(),
                    updated_at=self._now(),
                    loan_id=loan_id,
                    number=self._next_payment_number(applied_at),
                    amount=payment_amount,
                    applied_at=applied_at,
                    penalty_portion=allocation.penalty_portion,
                    interest_portion=allocation.interest_portion,
                    principal_portion=allocation.principal_portion,
                    overflow=allocation.overflow,
                    principal_allowed=allocation.principal_allowed,
                    method=method,
                    reference=reference,
                    notes=notes,
                    loan_status=updated.status
                )

                self._save_payment(payment)
                self._save_loan(updated)

                self._audit(AuditEventType.LOAN_PAYMENT_MADE, loan_id, {
                    "payment_id": payment.id,
                    "number": payment.number,
                    "amount": payment.amount,
                    "penalty_portion": payment.penalty_portion,
                    "interest_portion": payment.interest_portion,
                    "principal_portion": payment.principal_portion,
                    "overflow": payment.overflow,
                    "remaining_balance": updated.principal_balance
                })
                self._record_status_change(loan, updated, "payment")

        log_action(
            logger, "info", "Loan payment applied",
            action="make_payment", resource=f"loan:{loan_id}",
            extra={
                "payment_id": payment.id,
                "number": payment.number,
                "amount": str(payment.amount),
                "interest_portion": str(payment.interest_portion),
                "principal_portion": str(payment.principal_portion),
                "overflow": str(payment.overflow),
                "status": updated.status.value
            }
        )
        if payment.overflow > ZERO:
            log_action(
                logger, "warning", "Payment exceeded what the loan could absorb",
                action="make_payment", resource=f"loan:{loan_id}",
                extra={"payment_id": payment.id, "overflow": str(payment.overflow)}
            )
        return payment

    def charge_penalty(self, loan_id: str, amount: DecimalLike,
                       as_of: Optional[datetime] = None) -> Loan:
        """Add a late-payment penalty to a stored loan"""
        as_of = normalize_timestamp(as_of) if as_of is not None else self._now()

        with self._loan_lock(loan_id):
            with self.storage.atomic():
                loan = self._require_loan(loan_id)
                updated = self._apply_penalty(loan, amount, as_of)

        log_action(
            logger, "info", "Penalty charged",
            action="charge_penalty", resource=f"loan:{loan_id}",
            extra={"penalty_balance": str(updated.penalty_balance)}
        )
        return updated

    def assess_late_fee(
        self,
        loan_id: str,
        as_of: Optional[datetime] = None,
        fee: Optional[DecimalLike] = None,
        grace_days: Optional[int] = None
    ) -> int:
        """
        Charge the configured late fee for every missed due date

        Each due date past its grace period is charged once; dates an earlier
        fee already covered are skipped. The check and the charge happen
        under the loan's lock in one atomic block.

        Returns:
            Number of fees charged
        """
        as_of = normalize_timestamp(as_of) if as_of is not None else self._now()
        fee = round_money(fee if fee is not None else self.config.late_fee_amount)
        grace_days = self.config.late_fee_grace_days if grace_days is None else grace_days

        if fee <= ZERO:
            return 0

        with self._loan_lock(loan_id):
            with self.storage.atomic():
                loan = self._require_loan(loan_id)
                if not loan.is_open:
                    return 0

                missed = missed_due_dates(loan, as_of, grace_days)
                if not missed:
                    return 0

                updated = self._apply_penalty(loan, fee * len(missed), as_of, due_date=missed[-1])

        log_action(
            logger, "info", "Late fee charged",
            action="assess_late_fee", resource=f"loan:{loan_id}",
            extra={
                "fees": len(missed),
                "missed_due_dates": [due.isoformat() for due in missed],
                "penalty_balance": str(updated.penalty_balance)
            }
        )
        return len(missed)

    def _apply_penalty(self, loan: Loan, amount: DecimalLike, as_of: datetime,
                       due_date: Optional[date] = None) -> Loan:
        updated = charge_penalty(loan, amount, as_of, due_date)
        self._save_loan(updated)
        self._audit(AuditEventType.PENALTY_CHARGED, loan.id, {
            "amount": updated.penalty_balance - loan.penalty_balance,
            "penalty_balance": updated.penalty_balance,
            "next_due_date": updated.next_due_date,
            "covered_due_date": due_date,
            "days_overdue": updated.days_overdue(as_of)
        })
        self._record_status_change(loan, updated, "penalty")
        return updated

    def get_schedule(self, loan_id: str) -> List[ScheduleEntry]:
        """Projected installments of a fixed-term loan"""
        return loan_schedule(self._require_loan(loan_id))

    def get_schedule_status(self, loan_id: str, as_of: Optional[datetime] = None) -> List[InstallmentView]:
        """Projected installments marked paid, pending or overdue against real payments"""
        as_of = normalize_timestamp(as_of) if as_of is not None else self._now()
        loan = self._require_loan(loan_id)
        amount_paid = loan.interest_paid + loan.principal_paid
        return reconcile_schedule(loan_schedule(loan), amount_paid, as_of)

    def get_loan_payments(self, loan_id: str) -> List[LoanPayment]:
        """All payments on a loan, oldest first"""
        self._require_loan(loan_id)
        payments_data = self.storage.find(self.payments_table, {"loan_id": loan_id})
        payments = [self._payment_from_dict(data) for data in payments_data]
        payments.sort(key=lambda p: (p.applied_at, p.created_at))
        return payments

    def _next_payment_number(self, applied_at: datetime) -> str:
        sequence = (self.storage.count(self.payments_table) + 1) % 10000
        return f"PG{applied_at:%y%m%d}{sequence:04d}"

    def _record_status_change(self, before: Loan, after: Loan, reason: str) -> None:
        if before.status is after.status:
            return

        self._audit(AuditEventType.LOAN_STATUS_CHANGED, after.id, {
            "from_status": before.status,
            "to_status": after.status,
            "reason": reason,
            "next_due_date": after.next_due_date
        })
        if after.status is LoanStatus.FINALIZED:
            self._audit(AuditEventType.LOAN_FINALIZED, after.id, {
                "principal_paid": after.principal_paid,
                "interest_paid": after.interest_paid,
                "penalty_paid": after.penalty_paid
            })

        log_action(
            logger, "info", f"Loan status changed to {after.status.value}",
            action="status_change", resource=f"loan:{after.id}",
            extra={"from_status": before.status.value, "reason": reason}
        )

    def _audit(self, event_type: AuditEventType, loan_id: str, metadata: Dict) -> None:
        if self.config.enable_audit_logging:
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type="loan",
                entity_id=loan_id,
                metadata=metadata
            )

    def _save_loan(self, loan: Loan) -> None:
        """Save loan to storage"""
        self.storage.save(self.loans_table, loan.id, self._loan_to_dict(loan))

    def _save_payment(self, payment: LoanPayment) -> None:
        """Save loan payment to storage"""
        self.storage.save(self.payments_table, payment.id, self._payment_to_dict(payment))

    def _loan_to_dict(self, loan: Loan) -> Dict:
        """Convert loan to dictionary"""
        result = {
            'id': loan.id,
            'created_at': loan.created_at.isoformat(),
            'updated_at': loan.updated_at.isoformat(),
            'period_type': loan.period_type.value,
            'status': loan.status.value,
            'currency': loan.currency.code,
            'term_periods': loan.term_periods,
            'customer_id': loan.customer_id,
            'start_date': loan.start_date.isoformat(),
            'last_accrual_timestamp': loan.last_accrual_timestamp.isoformat()
        }

        # Money and rates travel as Decimal strings
        for field in ['principal', 'rate', 'principal_balance', 'pending_interest',
                      'penalty_balance', 'interest_paid', 'principal_paid', 'penalty_paid']:
            result[field] = str(getattr(loan, field))

        for field in ['next_due_date', 'last_penalty_date', 'last_penalized_due_date',
                      'last_payment_at']:
            value = getattr(loan, field)
            result[field] = value.isoformat() if value else None

        return result

    def _loan_from_dict(self, data: Dict) -> Loan:
        """Convert dictionary to loan"""
        def get_date(field: str) -> Optional[date]:
            if data.get(field):
                return date.fromisoformat(data[field])
            return None

        last_payment_at = None
        if data.get('last_payment_at'):
            last_payment_at = normalize_timestamp(data['last_payment_at'])

        return Loan(
            id=data['id'],
            created_at=normalize_timestamp(data['created_at']),
            updated_at=normalize_timestamp(data['updated_at']),
            principal=Decimal(data['principal']),
            rate=Decimal(data['rate']),
            period_type=PeriodType(data['period_type']),
            start_date=date.fromisoformat(data['start_date']),
            principal_balance=Decimal(data['principal_balance']),
            last_accrual_timestamp=normalize_timestamp(data['last_accrual_timestamp']),
            term_periods=data.get('term_periods'),
            pending_interest=Decimal(data.get('pending_interest', '0.00')),
            penalty_balance=Decimal(data.get('penalty_balance', '0.00')),
            status=LoanStatus(data['status']),
            next_due_date=get_date('next_due_date'),
            customer_id=data.get('customer_id'),
            currency=_coerce_currency(data.get('currency', 'USD')),
            interest_paid=Decimal(data.get('interest_paid', '0.00')),
            principal_paid=Decimal(data.get('principal_paid', '0.00')),
            penalty_paid=Decimal(data.get('penalty_paid', '0.00')),
            last_payment_at=last_payment_at,
            last_penalty_date=get_date('last_penalty_date'),
            last_penalized_due_date=get_date('last_penalized_due_date')
        )

    def _payment_to_dict(self, payment: LoanPayment) -> Dict:
        """Convert payment to dictionary"""
        result = {
            'id': payment.id,
            'created_at': payment.created_at.isoformat(),
            'updated_at': payment.updated_at.isoformat(),
            'loan_id': payment.loan_id,
            'number': payment.number,
            'applied_at': payment.applied_at.isoformat(),
            'principal_allowed': payment.principal_allowed,
            'method': payment.method,
            'reference': payment.reference,
            'notes': payment.notes,
            'loan_status': payment.loan_status.value
        }
        for field in ['amount', 'penalty_portion', 'interest_portion', 'principal_portion', 'overflow']:
            result[field] = str(getattr(payment, field))
        return result

    def _payment_from_dict(self, data: Dict) -> LoanPayment:
        """Convert dictionary to payment"""
        return LoanPayment(
            id=data['id'],
            created_at=normalize_timestamp(data['created_at']),
            updated_at=normalize_timestamp(data['updated_at']),
            loan_id=data['loan_id'],
            number=data['number'],
            amount=Decimal(data['amount']),
            applied_at=normalize_timestamp(data['applied_at']),
            penalty_portion=Decimal(data['penalty_portion']),
            interest_portion=Decimal(data['interest_portion']),
            principal_portion=Decimal(data['principal_portion']),
            overflow=Decimal(data['overflow']),
            principal_allowed=data['principal_allowed'],
            method=data.get('method', 'cash'),
            reference=data.get('reference'),
            notes=data.get('notes'),
            loan_status=LoanStatus(data.get('loan_status', LoanStatus.ACTIVE.value))
        )
