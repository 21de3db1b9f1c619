"""
Payment Waterfall Module

Splits one incoming payment across penalty, interest and principal in that
fixed order. Principal can only be reduced once the interest owed is fully
cleared; anything the buckets cannot absorb is returned as overflow for the
caller to refund, credit or display.
"""

from dataclasses import dataclass
from decimal import Decimal

from .currency import ZERO, to_decimal, DecimalLike
from .errors import InconsistentLoanState, InvalidAmount


@dataclass(frozen=True)
class AllocationResult:
    """How a payment was split"""
    penalty_portion: Decimal
    interest_portion: Decimal
    principal_portion: Decimal
    overflow: Decimal
    principal_allowed: bool

    @property
    def applied(self) -> Decimal:
        """Amount absorbed by the loan (everything except overflow)"""
        return self.penalty_portion + self.interest_portion + self.principal_portion

    @property
    def total(self) -> Decimal:
        return self.applied + self.overflow


def allocate(
    payment_amount: DecimalLike,
    principal_balance: DecimalLike,
    pending_interest: DecimalLike,
    penalty_balance: DecimalLike = ZERO
) -> AllocationResult:
    """
    Allocate a payment: penalty first, then interest, then principal

    Args:
        payment_amount: Amount received, must be positive
        principal_balance: Unpaid principal
        pending_interest: Accrued unpaid interest
        penalty_balance: Accrued late-payment penalty

    Returns:
        AllocationResult whose four portions add up to ``payment_amount``

    Raises:
        InvalidAmount: If the payment is not positive
        InconsistentLoanState: If any balance is negative
    """
    amount = to_decimal(payment_amount)
    if amount <= ZERO:
        raise InvalidAmount(f"Payment amount must be positive, got {amount}")

    balances = {
        "principal balance": to_decimal(principal_balance),
        "pending interest": to_decimal(pending_interest),
        "penalty balance": to_decimal(penalty_balance),
    }
    for name, value in balances.items():
        if value < ZERO:
            raise InconsistentLoanState(f"Negative {name}: {value}")

    principal = balances["principal balance"]
    interest_owed = balances["pending interest"]
    penalty_owed = balances["penalty balance"]

    remaining = amount

    penalty_portion = min(remaining, penalty_owed)
    remaining -= penalty_portion

    interest_portion = min(remaining, interest_owed)
    remaining -= interest_portion

    principal_allowed = interest_owed - interest_portion <= ZERO

    principal_portion = ZERO
    if principal_allowed:
        principal_portion = min(remaining, principal)
        remaining -= principal_portion

    return AllocationResult(
        penalty_portion=penalty_portion,
        interest_portion=interest_portion,
        principal_portion=principal_portion,
        overflow=remaining,
        principal_allowed=principal_allowed
    )
