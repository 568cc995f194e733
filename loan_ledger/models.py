"""
Loan Domain Model

Canonical in-memory representation of loans and installments. Storage rows
may carry legacy labels and duplicate keys; those are resolved in the
repository before anything here is built.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from .money import ZERO, PAID_EPSILON, round_money


class PaymentFrequency(Enum):
    """Installment frequency options"""
    MONTHLY = "monthly"        # 12 periods per year
    BIWEEKLY = "biweekly"      # 24 periods per year, 15 calendar days apart
    WEEKLY = "weekly"          # 52 periods per year
    DAILY = "daily"            # 365 periods per year

    @classmethod
    def parse(cls, value) -> 'PaymentFrequency':
        """Resolve canonical names and legacy store labels"""
        if isinstance(value, cls):
            return value
        label = str(value or "").strip().lower()
        resolved = _FREQUENCY_ALIASES.get(label)
        if resolved is None:
            raise ValueError(f"Unknown payment frequency: {value!r}")
        return resolved

    @property
    def periods_per_year(self) -> int:
        return {
            PaymentFrequency.MONTHLY: 12,
            PaymentFrequency.BIWEEKLY: 24,
            PaymentFrequency.WEEKLY: 52,
            PaymentFrequency.DAILY: 365,
        }[self]


_FREQUENCY_ALIASES = {
    "monthly": PaymentFrequency.MONTHLY,
    "mensual": PaymentFrequency.MONTHLY,
    "biweekly": PaymentFrequency.BIWEEKLY,
    "bi_weekly": PaymentFrequency.BIWEEKLY,
    "quincenal": PaymentFrequency.BIWEEKLY,
    "weekly": PaymentFrequency.WEEKLY,
    "semanal": PaymentFrequency.WEEKLY,
    "daily": PaymentFrequency.DAILY,
    "diario": PaymentFrequency.DAILY,
}


class AmortizationStyle(Enum):
    """How interest is spread over the schedule"""
    FLAT = "flat"                # Interest on full principal, split evenly
    AMORTIZING = "amortizing"    # Level payment, interest on declining balance

    @classmethod
    def parse(cls, value) -> 'AmortizationStyle':
        if isinstance(value, cls):
            return value
        label = str(value or "").strip().lower()
        if label in ("flat", "simple"):
            return cls.FLAT
        if label in ("amortizing", "amortization", "amortizacion"):
            return cls.AMORTIZING
        raise ValueError(f"Unknown amortization style: {value!r}")


class InstallmentStatus(Enum):
    """Installment ledger states"""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


class LoanStatus(Enum):
    """Loan lifecycle states"""
    PENDING = "pending"        # Created, awaiting approval
    APPROVED = "approved"      # Active, receiving payments
    PAID = "paid"              # Fully paid, derived from aggregates
    CANCELLED = "cancelled"    # Rejected or cancelled


@dataclass(frozen=True)
class InstallmentSpec:
    """One row of a generated schedule, before it is persisted"""
    installment_number: int
    due_date: date
    principal_amount: Decimal
    interest_amount: Decimal

    @property
    def scheduled_amount(self) -> Decimal:
        return self.principal_amount + self.interest_amount


@dataclass
class Installment:
    """A persisted installment with its ledger state"""
    installment_number: int
    due_date: Optional[date]
    principal_amount: Decimal
    interest_amount: Decimal
    paid_amount: Decimal = ZERO
    late_fee: Decimal = ZERO
    status: InstallmentStatus = InstallmentStatus.PENDING
    payment_date: Optional[date] = None
    id: Optional[str] = None
    loan_id: Optional[str] = None

    @property
    def total_due(self) -> Decimal:
        """Principal + interest + late fee"""
        return self.principal_amount + self.interest_amount + self.late_fee

    @property
    def pending(self) -> Decimal:
        """Shortfall, never negative"""
        return max(self.total_due - self.paid_amount, ZERO)

    @property
    def is_paid(self) -> bool:
        return self.paid_amount >= self.total_due - PAID_EPSILON


@dataclass(frozen=True)
class LoanAggregates:
    """Loan-level totals derived from the installment set"""
    total_pending: Decimal
    overdue_amount: Decimal
    sum_late_fees: Decimal
    amount_applied: Decimal

    @property
    def is_settled(self) -> bool:
        """True when nothing is left to pay"""
        return round_money(self.total_pending) == ZERO


@dataclass(frozen=True)
class PaymentDistribution:
    """How much of a payment lands on one installment"""
    installment_number: int
    amount_applied: Decimal
    new_paid_amount: Decimal
    new_status: InstallmentStatus


@dataclass
class Loan:
    """Loan header plus its installment set"""
    id: Optional[str]
    loan_number: str
    principal: Decimal
    interest_rate: Decimal              # Annual, percent (15 means 15%)
    term: int                           # Number of installments
    frequency: PaymentFrequency
    style: AmortizationStyle
    start_date: date
    loan_date: Optional[date] = None
    due_date: Optional[date] = None     # Maturity: due date of the last installment
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    cashier: Optional[str] = None
    amount: Decimal = ZERO              # Disbursed amount
    amount_to_pay: Decimal = ZERO
    amount_applied: Decimal = ZERO
    total_pending: Decimal = ZERO
    overdue_amount: Decimal = ZERO
    late_fee: Decimal = ZERO
    status: LoanStatus = LoanStatus.PENDING
    version: int = 0
    created_at: Optional[datetime] = None
    installments: List[Installment] = field(default_factory=list)

    def with_aggregates(self, aggregates: LoanAggregates) -> 'Loan':
        """Overlay freshly computed aggregates on this loan"""
        self.total_pending = aggregates.total_pending
        self.overdue_amount = aggregates.overdue_amount
        self.late_fee = aggregates.sum_late_fees
        self.amount_applied = aggregates.amount_applied
        return self

    def installment(self, number: int) -> Optional[Installment]:
        """Find an installment by number"""
        for installment in self.installments:
            if installment.installment_number == number:
                return installment
        return None

    def to_dict(self) -> Dict:
        """Plain JSON-friendly view for API responses"""
        return {
            "id": self.id,
            "loan_number": self.loan_number,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "cashier": self.cashier,
            "principal": str(self.principal),
            "interest_rate": str(self.interest_rate),
            "term": self.term,
            "frequency": self.frequency.value,
            "style": self.style.value,
            "loan_date": self.loan_date.isoformat() if self.loan_date else None,
            "start_date": self.start_date.isoformat(),
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "amount": str(self.amount),
            "amount_to_pay": str(self.amount_to_pay),
            "amount_applied": str(self.amount_applied),
            "total_pending": str(self.total_pending),
            "overdue_amount": str(self.overdue_amount),
            "late_fee": str(self.late_fee),
            "status": self.status.value,
            "version": self.version,
            "installments": [
                {
                    "id": i.id,
                    "installment_number": i.installment_number,
                    "due_date": i.due_date.isoformat() if i.due_date else None,
                    "principal_amount": str(i.principal_amount),
                    "interest_amount": str(i.interest_amount),
                    "paid_amount": str(i.paid_amount),
                    "late_fee": str(i.late_fee),
                    "status": i.status.value,
                    "payment_date": i.payment_date.isoformat() if i.payment_date else None,
                }
                for i in self.installments
            ],
        }
