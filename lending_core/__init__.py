"""
Lending Engine

Interest accrual, amortization schedules, payment allocation and loan
status tracking for biweekly, monthly, annual and open-ended loans.
All money is Decimal, rounded half-up to cents.
"""

__version__ = "1.0.0"
