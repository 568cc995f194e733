"""
Test suite for the aggregation engine

Loan totals are derived from installments on every read, so pending,
overdue, late fee and applied amounts must be exact and repeatable.
"""

from decimal import Decimal
from datetime import date

from loan_ledger import dates
from loan_ledger.aggregates import compute_aggregates, days_overdue, is_overdue, is_paid
from loan_ledger.models import Installment, InstallmentStatus


def make_installment(number, due, principal="90.00", interest="10.00", paid="0",
                     late_fee="0", status=InstallmentStatus.PENDING):
    return Installment(
        installment_number=number,
        due_date=due,
        principal_amount=Decimal(principal),
        interest_amount=Decimal(interest),
        paid_amount=Decimal(paid),
        late_fee=Decimal(late_fee),
        status=status
    )


class TestInstallmentPredicates:
    """Test paid and overdue checks"""

    def test_is_paid_with_epsilon(self):
        """Test a payment within 1e-6 of the total counts as paid"""
        assert is_paid(make_installment(1, date(2024, 1, 1), paid="100.00"))
        assert is_paid(make_installment(1, date(2024, 1, 1), paid="99.9999995"))
        assert not is_paid(make_installment(1, date(2024, 1, 1), paid="99.99"))

    def test_late_fee_counts_toward_total(self):
        """Test late fees must be covered before an installment is paid"""
        installment = make_installment(1, date(2024, 1, 1), paid="100.00", late_fee="5.00")
        assert not is_paid(installment)
        assert installment.pending == Decimal('5.00')

    def test_due_today_not_overdue(self):
        """Test an installment due today is not yet overdue"""
        installment = make_installment(1, date(2024, 3, 15))
        assert not is_overdue(installment, date(2024, 3, 15))
        assert is_overdue(installment, date(2024, 3, 16))

    def test_paid_status_never_overdue(self):
        """Test Paid installments are never overdue"""
        installment = make_installment(1, date(2024, 1, 1), paid="100.00", status=InstallmentStatus.PAID)
        assert not is_overdue(installment, date(2024, 6, 1))

    def test_missing_due_date(self):
        """Test an installment without due date is never overdue"""
        installment = make_installment(1, None)
        assert not is_overdue(installment, date(2024, 6, 1))
        assert days_overdue(installment, date(2024, 6, 1)) == 0

    def test_default_reference_is_today(self, monkeypatch):
        """Test overdue checks default to the local calendar date"""
        monkeypatch.setattr(dates, "today", lambda: date(2024, 2, 1))
        installment = make_installment(1, date(2024, 1, 20))
        assert is_overdue(installment)
        assert days_overdue(installment) == 12

    def test_days_overdue_not_negative(self):
        """Test future due dates report zero days overdue"""
        installment = make_installment(1, date(2024, 5, 1))
        assert days_overdue(installment, date(2024, 4, 1)) == 0
        assert days_overdue(installment, date(2024, 5, 31)) == 30


class TestComputeAggregates:
    """Test loan totals"""

    def test_mixed_installments(self):
        """Test totals over paid, overdue, partial and future installments"""
        installments = [
            make_installment(1, date(2024, 1, 10), paid="100.00", status=InstallmentStatus.PAID),
            make_installment(2, date(2024, 2, 10), paid="40.00", late_fee="5.00",
                             status=InstallmentStatus.OVERDUE),
            make_installment(3, date(2024, 3, 10)),
        ]

        aggregates = compute_aggregates(installments, as_of=date(2024, 3, 1))

        assert aggregates.total_pending == Decimal('165.00')
        assert aggregates.overdue_amount == Decimal('65.00')
        assert aggregates.sum_late_fees == Decimal('5.00')
        assert aggregates.amount_applied == Decimal('140.00')
        assert not aggregates.is_settled

    def test_overpaid_installment_not_negative(self):
        """Test an overpaid installment contributes zero pending"""
        installments = [
            make_installment(1, date(2024, 1, 10), paid="150.00", status=InstallmentStatus.PAID),
            make_installment(2, date(2024, 2, 10)),
        ]

        aggregates = compute_aggregates(installments, as_of=date(2024, 1, 1))

        assert aggregates.total_pending == Decimal('100.00')
        assert aggregates.amount_applied == Decimal('150.00')

    def test_settled(self):
        """Test a fully paid set is settled"""
        installments = [
            make_installment(n, date(2024, n, 10), paid="100.00", status=InstallmentStatus.PAID)
            for n in (1, 2)
        ]

        aggregates = compute_aggregates(installments, as_of=date(2024, 12, 31))

        assert aggregates.total_pending == Decimal('0.00')
        assert aggregates.overdue_amount == Decimal('0.00')
        assert aggregates.is_settled

    def test_idempotent(self):
        """Test recomputing over the same installments yields the same totals"""
        installments = [
            make_installment(1, date(2024, 1, 10), paid="33.33", status=InstallmentStatus.PARTIAL),
            make_installment(2, date(2024, 2, 10), late_fee="1.50"),
        ]

        first = compute_aggregates(installments, as_of=date(2024, 3, 1))
        second = compute_aggregates(installments, as_of=date(2024, 3, 1))

        assert first == second

    def test_empty(self):
        """Test no installments gives zero totals"""
        aggregates = compute_aggregates([], as_of=date(2024, 1, 1))
        assert aggregates.total_pending == Decimal('0.00')
        assert aggregates.is_settled
