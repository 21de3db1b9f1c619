"""Exception hierarchy for the lending engine.

Every error derives from ``ValueError`` so callers that only care about
"bad input" can keep catching that.
"""


class LendingError(ValueError):
    """Base exception for all lending engine errors."""


class InvalidTimestampOrder(LendingError):
    """Raised when accrual is asked to run backwards in time."""


class InvalidTimestamp(LendingError):
    """Raised when a stored timestamp cannot be normalized."""


class InvalidAmount(LendingError):
    """Raised for non-positive payments, principals or rates."""


class InconsistentLoanState(LendingError):
    """Raised when a loan snapshot carries negative balances or broken terms."""


class UnsupportedPeriodType(LendingError):
    """Raised for a period type outside the supported set."""


class LoanNotFoundError(LendingError):
    """Raised when a referenced loan does not exist."""


class LoanClosedError(LendingError):
    """Raised when money is applied to a finalized loan."""
