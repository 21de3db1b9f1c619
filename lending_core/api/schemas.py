"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from ..currency import Money, Currency, decimal_from_string
from ..errors import InvalidAmount


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field("USD", description="Currency code (USD, PAB, EUR, ...)")

    def to_money(self) -> Money:
        try:
            currency = Currency[self.currency.upper()]
        except KeyError:
            raise InvalidAmount(f"Unsupported currency: {self.currency}")
        return Money(decimal_from_string(self.amount), currency)

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)

    @classmethod
    def from_amount(cls, amount: Decimal, currency: Currency) -> 'MoneyModel':
        return cls.from_money(Money(amount, currency))


class CreateLoanRequest(BaseModel):
    principal: MoneyModel
    rate: str = Field(..., description="Interest per period as a percentage, e.g. \"2\" for 2%")
    period_type: str = Field(..., description="biweekly, monthly, annual or open_ended")
    term_periods: Optional[int] = Field(None, description="Number of installments (fixed-term only)")
    start_date: Optional[str] = None  # ISO date or datetime string
    customer_id: Optional[str] = None


class AccrueRequest(BaseModel):
    as_of: Optional[str] = None  # ISO datetime string, defaults to now


class LoanPaymentRequest(BaseModel):
    amount: MoneyModel
    applied_at: Optional[str] = None  # ISO datetime string, defaults to now
    method: str = "cash"
    reference: Optional[str] = None
    notes: Optional[str] = None


class PenaltyRequest(BaseModel):
    amount: MoneyModel
    as_of: Optional[str] = None


class AllocationPreviewRequest(BaseModel):
    amount: str
    principal_balance: str
    pending_interest: str
    penalty_balance: str = "0.00"


class InterestSweepRequest(BaseModel):
    as_of: Optional[str] = None
    open_ended_only: Optional[bool] = None
