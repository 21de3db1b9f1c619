"""
Loan endpoints
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import LendingSystem, get_lending_system, parse_timestamp, to_http_exception
from .schemas import (
    AccrueRequest, AllocationPreviewRequest, CreateLoanRequest, LoanPaymentRequest,
    MoneyModel, PenaltyRequest
)
from ..accrual import interest_projection
from ..allocation import allocate
from ..amortization import maturity_date, schedule_summary
from ..errors import InvalidAmount
from ..loans import Loan, LoanPayment
from ..currency import to_decimal


router = APIRouter()


def _loan_response(loan: Loan, now: datetime) -> dict:
    def money(amount):
        return MoneyModel.from_amount(amount, loan.currency).model_dump()

    result = {
        "id": loan.id,
        "customer_id": loan.customer_id,
        "status": loan.status.value,
        "period_type": loan.period_type.value,
        "term_periods": loan.term_periods,
        "rate": str(loan.rate),
        "start_date": loan.start_date.isoformat(),
        "principal": money(loan.principal),
        "principal_balance": money(loan.principal_balance),
        "pending_interest": money(loan.pending_interest),
        "penalty_balance": money(loan.penalty_balance),
        "total_outstanding": money(loan.total_outstanding),
        "interest_paid": money(loan.interest_paid),
        "principal_paid": money(loan.principal_paid),
        "penalty_paid": money(loan.penalty_paid),
        "next_due_date": loan.next_due_date.isoformat() if loan.next_due_date else None,
        "days_overdue": loan.days_overdue(now),
        "last_accrual_timestamp": loan.last_accrual_timestamp.isoformat(),
        "last_payment_at": loan.last_payment_at.isoformat() if loan.last_payment_at else None
    }

    if loan.is_open_ended:
        projection = interest_projection(loan.principal_balance, loan.rate)
        result["projection"] = {key: str(value) for key, value in projection.items()}
    else:
        result["maturity_date"] = maturity_date(
            loan.start_date, loan.term_periods, loan.period_type
        ).isoformat()

    return result


def _payment_response(payment: LoanPayment, loan: Loan) -> dict:
    def money(amount):
        return MoneyModel.from_amount(amount, loan.currency).model_dump()

    return {
        "payment_id": payment.id,
        "number": payment.number,
        "loan_id": payment.loan_id,
        "applied_at": payment.applied_at.isoformat(),
        "amount": money(payment.amount),
        "penalty_portion": money(payment.penalty_portion),
        "interest_portion": money(payment.interest_portion),
        "principal_portion": money(payment.principal_portion),
        "overflow": money(payment.overflow),
        "principal_allowed": payment.principal_allowed,
        "method": payment.method,
        "reference": payment.reference,
        "notes": payment.notes,
        "loan_status": payment.loan_status.value
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Originate a new loan"""
    try:
        principal = request.principal.to_money()
        loan = system.loan_manager.originate_loan(
            principal=principal.amount,
            rate=request.rate,
            period_type=request.period_type,
            start_date=parse_timestamp(request.start_date),
            term_periods=request.term_periods,
            customer_id=request.customer_id,
            currency=principal.currency
        )
    except ValueError as e:
        raise to_http_exception(e)

    return _loan_response(loan, datetime.now(timezone.utc))


@router.get("")
async def list_loans(
    status: Optional[str] = None,
    open_ended: Optional[bool] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """List loans, optionally filtered by status and by open-ended/fixed-term"""
    try:
        loans = system.loan_manager.list_loans(status=status, open_ended=open_ended)
    except ValueError as e:
        raise to_http_exception(e)

    now = datetime.now(timezone.utc)
    return {"loans": [_loan_response(loan, now) for loan in loans]}


@router.post("/allocation-preview")
async def preview_allocation(request: AllocationPreviewRequest):
    """Show how a payment would be split without applying it"""
    try:
        allocation = allocate(
            to_decimal(request.amount),
            to_decimal(request.principal_balance),
            to_decimal(request.pending_interest),
            to_decimal(request.penalty_balance)
        )
    except ValueError as e:
        raise to_http_exception(e)

    return {
        "penalty_portion": str(allocation.penalty_portion),
        "interest_portion": str(allocation.interest_portion),
        "principal_portion": str(allocation.principal_portion),
        "overflow": str(allocation.overflow),
        "principal_allowed": allocation.principal_allowed
    }


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan details"""
    loan = system.loan_manager.get_loan(loan_id)
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")

    return _loan_response(loan, datetime.now(timezone.utc))


@router.post("/{loan_id}/accrue")
async def accrue_loan_interest(
    loan_id: str,
    request: Optional[AccrueRequest] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Accrue interest on a loan up to a point in time"""
    try:
        as_of = parse_timestamp(request.as_of) if request else None
        loan, result = system.loan_manager.accrue_interest(loan_id, as_of)
    except ValueError as e:
        raise to_http_exception(e)

    return {
        "loan": _loan_response(loan, loan.last_accrual_timestamp),
        "new_interest": str(result.new_interest),
        "total_pending_interest": str(result.total_pending_interest),
        "periods_elapsed": result.periods_elapsed,
        "next_due_date": result.next_due_date.isoformat()
    }


@router.post("/{loan_id}/payments", status_code=status.HTTP_201_CREATED)
async def make_loan_payment(
    loan_id: str,
    request: LoanPaymentRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Make a loan payment"""
    try:
        amount = request.amount.to_money()
        loan = system.loan_manager.get_loan(loan_id)
        if loan and amount.currency != loan.currency:
            raise InvalidAmount(
                f"Payment currency {amount.currency.code} does not match loan currency {loan.currency.code}"
            )

        payment = system.loan_manager.make_payment(
            loan_id=loan_id,
            amount=amount.amount,
            applied_at=parse_timestamp(request.applied_at),
            method=request.method,
            reference=request.reference,
            notes=request.notes
        )
        loan = system.loan_manager.get_loan(loan_id)
    except ValueError as e:
        raise to_http_exception(e)

    return {
        "payment": _payment_response(payment, loan),
        "loan": _loan_response(loan, payment.applied_at),
        "message": "Loan payment processed successfully"
    }


@router.get("/{loan_id}/payments")
async def get_loan_payments(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Payment history of a loan, oldest first"""
    try:
        loan = system.loan_manager.get_loan(loan_id)
        payments = system.loan_manager.get_loan_payments(loan_id)
    except ValueError as e:
        raise to_http_exception(e)

    return {"payments": [_payment_response(payment, loan) for payment in payments]}


@router.post("/{loan_id}/penalties")
async def charge_loan_penalty(
    loan_id: str,
    request: PenaltyRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Charge a late-payment penalty"""
    try:
        amount = request.amount.to_money()
        as_of = parse_timestamp(request.as_of)
        loan = system.loan_manager.charge_penalty(loan_id, amount.amount, as_of)
    except ValueError as e:
        raise to_http_exception(e)

    return _loan_response(loan, as_of or datetime.now(timezone.utc))


@router.get("/{loan_id}/schedule")
async def get_loan_schedule(
    loan_id: str,
    as_of: Optional[str] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan amortization schedule with the status of each installment"""
    try:
        loan = system.loan_manager.get_loan(loan_id)
        views = system.loan_manager.get_schedule_status(loan_id, parse_timestamp(as_of))
    except ValueError as e:
        raise to_http_exception(e)

    def money(amount):
        return MoneyModel.from_amount(amount, loan.currency).model_dump()

    result = []
    for view in views:
        entry = view.entry
        result.append({
            "period": entry.period,
            "due_date": entry.due_date.isoformat(),
            "opening_balance": money(entry.opening_balance),
            "interest_portion": money(entry.interest_portion),
            "principal_portion": money(entry.principal_portion),
            "installment": money(entry.installment),
            "closing_balance": money(entry.closing_balance),
            "status": view.status.value,
            "days_overdue": view.days_overdue
        })

    summary = schedule_summary([view.entry for view in views])
    return {
        "schedule": result,
        "summary": {key: str(value) for key, value in summary.items()}
    }
