"""
Tests for the payment waterfall

Payments go to penalty, then interest, then principal. Principal is only
touched once interest is cleared, and the split always adds up to the
amount received.
"""

import pytest
from decimal import Decimal

from lending_core.allocation import allocate
from lending_core.errors import InconsistentLoanState, InvalidAmount


class TestWaterfallOrder:
    """Test allocation priority"""

    def test_payment_below_interest_pays_interest_only(self):
        result = allocate(Decimal('60'), Decimal('500'), Decimal('100'), Decimal('0'))

        assert result.penalty_portion == Decimal('0')
        assert result.interest_portion == Decimal('60')
        assert result.principal_portion == Decimal('0')
        assert result.overflow == Decimal('0')
        assert not result.principal_allowed

    def test_interest_cleared_then_principal(self):
        result = allocate(Decimal('150'), Decimal('500'), Decimal('100'), Decimal('0'))

        assert result.interest_portion == Decimal('100')
        assert result.principal_portion == Decimal('50')
        assert result.overflow == Decimal('0')
        assert result.principal_allowed

    def test_penalty_first(self):
        """A payment smaller than the penalty touches nothing else"""
        result = allocate(Decimal('30'), Decimal('500'), Decimal('100'), Decimal('50'))

        assert result.penalty_portion == Decimal('30')
        assert result.interest_portion == Decimal('0')
        assert result.principal_portion == Decimal('0')

    def test_overflow_is_returned(self):
        result = allocate(Decimal('700.00'), Decimal('500.00'), Decimal('100.00'), Decimal('20.00'))

        assert result.penalty_portion == Decimal('20.00')
        assert result.interest_portion == Decimal('100.00')
        assert result.principal_portion == Decimal('500.00')
        assert result.overflow == Decimal('80.00')
        assert result.applied == Decimal('620.00')

    def test_no_interest_owed_goes_to_principal(self):
        result = allocate(Decimal('100.00'), Decimal('500.00'), Decimal('0.00'))

        assert result.principal_allowed
        assert result.principal_portion == Decimal('100.00')

    def test_string_inputs(self):
        result = allocate("150.00", "500.00", "100.00")
        assert result.principal_portion == Decimal('50.00')


class TestWaterfallConservation:
    """Test that no money is created or lost"""

    @pytest.mark.parametrize("amount", [
        Decimal('0.01'), Decimal('19.99'), Decimal('20.00'), Decimal('75.50'),
        Decimal('120.00'), Decimal('619.99'), Decimal('620.00'), Decimal('10000.00'),
    ])
    def test_portions_sum_to_amount(self, amount):
        result = allocate(amount, Decimal('500.00'), Decimal('100.00'), Decimal('20.00'))

        assert result.total == amount
        assert result.penalty_portion <= Decimal('20.00')
        assert result.interest_portion <= Decimal('100.00')
        assert result.principal_portion <= Decimal('500.00')
        assert min(result.penalty_portion, result.interest_portion,
                   result.principal_portion, result.overflow) >= 0


class TestWaterfallValidation:
    """Test rejected inputs"""

    @pytest.mark.parametrize("amount", [Decimal('0'), Decimal('-10')])
    def test_non_positive_payment(self, amount):
        with pytest.raises(InvalidAmount):
            allocate(amount, Decimal('500'), Decimal('100'))

    def test_negative_balance(self):
        with pytest.raises(InconsistentLoanState, match="pending interest"):
            allocate(Decimal('10'), Decimal('500'), Decimal('-1'))

    def test_float_payment_rejected(self):
        with pytest.raises(ValueError):
            allocate(10.5, Decimal('500'), Decimal('100'))
