"""
Test suite for the capital ledger

Tests pool balance changes on disbursement and payment, the best-effort
failure handling and the event subscriptions.
"""

from decimal import Decimal

from loan_ledger.capital import CapitalLedger
from loan_ledger.events import DomainEvent, EventDispatcher, EventPayload
from loan_ledger.storage import InMemoryStorage


class BrokenStorage(InMemoryStorage):
    """Storage whose writes always fail"""

    def save(self, table, record_id, data):
        raise IOError("disk full")


class TestCapitalBalance:
    """Test balance reads and writes"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.capital = CapitalLedger(self.storage)

    def test_unseeded_pool_is_zero(self):
        """Test a missing row reads as zero"""
        assert self.capital.get_balance() == Decimal('0')

    def test_set_balance(self):
        """Test seeding stores a single row with id 1"""
        assert self.capital.set_balance("10000") == Decimal('10000.00')
        assert self.capital.get_balance() == Decimal('10000.00')
        assert self.storage.count("capital") == 1
        assert self.storage.load("capital", "1")["total"] == "10000.00"

    def test_disbursement_covered(self):
        """Test a covered disbursement subtracts the principal"""
        self.capital.set_balance("10000")
        assert self.capital.on_disbursement(Decimal('1500')) == Decimal('8500.00')
        assert self.capital.get_balance() == Decimal('8500.00')

    def test_disbursement_exactly_covered(self):
        """Test disbursing the whole pool leaves zero"""
        self.capital.set_balance("1500")
        assert self.capital.on_disbursement("1500") == Decimal('0.00')

    def test_disbursement_underfunded_replaces_balance(self):
        """Test an underfunded disbursement sets the balance to the shortfall"""
        self.capital.set_balance("1000")
        assert self.capital.on_disbursement(Decimal('1500')) == Decimal('500.00')
        assert self.capital.get_balance() == Decimal('500.00')

    def test_payment_adds_cash(self):
        """Test received cash is added to the pool"""
        self.capital.set_balance("100")
        assert self.capital.on_payment_received("25.50") == Decimal('125.50')

    def test_payment_skips_non_positive_and_non_numeric(self):
        """Test zero, negative and non-numeric cash are ignored"""
        self.capital.set_balance("100")
        assert self.capital.on_payment_received("0") is None
        assert self.capital.on_payment_received("-10") is None
        assert self.capital.on_payment_received("abc") is None
        assert self.capital.get_balance() == Decimal('100.00')


class TestCapitalFailures:
    """Test best-effort behaviour"""

    def test_failed_disbursement_returns_none(self):
        """Test a storage failure is logged, not raised"""
        capital = CapitalLedger(BrokenStorage())
        assert capital.on_disbursement("100") is None

    def test_failed_payment_returns_none(self):
        """Test a storage failure on payment is logged, not raised"""
        capital = CapitalLedger(BrokenStorage())
        assert capital.on_payment_received("100") is None

    def test_invalid_disbursement_returns_none(self):
        """Test a non-positive disbursement is rejected without raising"""
        capital = CapitalLedger(InMemoryStorage())
        assert capital.on_disbursement("0") is None


class TestCapitalEvents:
    """Test event-driven updates"""

    def setup_method(self):
        self.dispatcher = EventDispatcher()
        self.capital = CapitalLedger(InMemoryStorage())
        self.capital.set_balance("5000")
        self.capital.attach(self.dispatcher)

    def test_loan_created_draws_principal(self):
        """Test LOAN_CREATED is treated as a disbursement"""
        self.dispatcher.publish(EventPayload(
            DomainEvent.LOAN_CREATED, "loan", "loan-1", {"principal": "1200.00"}
        ))
        assert self.capital.get_balance() == Decimal('3800.00')

    def test_payment_received_adds_cash(self):
        """Test LOAN_PAYMENT_RECEIVED adds the cash amount"""
        self.dispatcher.publish(EventPayload(
            DomainEvent.LOAN_PAYMENT_RECEIVED, "loan", "loan-1", {"amount": "112.00"}
        ))
        assert self.capital.get_balance() == Decimal('5112.00')

    def test_other_events_ignored(self):
        """Test unrelated events leave the pool alone"""
        self.dispatcher.publish(EventPayload(DomainEvent.LOAN_DELETED, "loan", "loan-1", {}))
        assert self.capital.get_balance() == Decimal('5000.00')
