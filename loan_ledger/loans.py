"""
Loan Module

Handles loan origination, payment application, manual corrections, overdue
and late fee assessment, and deletion. LoanManager orchestrates the
schedule, distribution and aggregation functions over a LoanRepository and
announces lifecycle events to subscribers such as the capital ledger.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Union
import math
import random
import time

from . import dates
from .aggregates import compute_aggregates, days_overdue, is_overdue, is_paid
from .config import get_config
from .errors import (
    InvalidInstallmentReference, InvalidStateTransition, LedgerError,
    LoanNotFound, NoPendingInstallments, ValidationError
)
from .events import DomainEvent, EventDispatcher, EventPublisherMixin
from .logging_config import get_logger, log_action
from .models import (
    AmortizationStyle, Installment, InstallmentSpec, InstallmentStatus,
    Loan, LoanAggregates, LoanStatus, PaymentFrequency
)
from .money import ZERO, round_money, sum_money, to_decimal
from .payments import distribute_payment, unapplied_amount
from .repository import LoanRepository
from .schedule import generate_schedule, total_amount, validate_terms


# Manual status changes allowed by update_loan; Paid is only ever derived
ALLOWED_TRANSITIONS = {
    LoanStatus.PENDING: {LoanStatus.APPROVED, LoanStatus.CANCELLED},
    LoanStatus.APPROVED: {LoanStatus.CANCELLED},
    LoanStatus.PAID: set(),
    LoanStatus.CANCELLED: set(),
}

DAYS_PER_LATE_FEE_PERIOD = 30


@dataclass
class LoanApplication:
    """Caller input for loan creation, validated on construction"""
    principal: Any
    interest_rate: Any                  # Annual, percent
    term: int
    start_date: Any
    frequency: Any = PaymentFrequency.MONTHLY
    style: Any = AmortizationStyle.FLAT
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    cashier: Optional[str] = None
    loan_date: Any = None
    amount: Any = None                  # Disbursed amount, defaults to principal
    loan_number: Optional[str] = None
    # Trusted pre-computed schedule; skips generation when given
    installments: Optional[Sequence[Union[InstallmentSpec, Installment]]] = None
    amount_to_pay: Any = None

    def __post_init__(self):
        if self.installments is not None:
            if not self.installments:
                raise ValidationError("Installment list cannot be empty")
            if not self.term:
                self.term = len(self.installments)

        self.principal, self.interest_rate, self.term = validate_terms(
            self.principal, self.interest_rate, self.term
        )

        try:
            self.frequency = PaymentFrequency.parse(self.frequency)
            self.style = AmortizationStyle.parse(self.style)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        self.start_date = dates.to_local_date(self.start_date)
        if self.start_date is None:
            raise ValidationError("Start date is required")
        self.loan_date = dates.to_local_date(self.loan_date)

        self.principal = round_money(self.principal)
        self.amount = _non_negative("amount", self.amount)
        self.amount_to_pay = _non_negative("amount_to_pay", self.amount_to_pay)


def _non_negative(name: str, value) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = round_money(value)
    except ValueError as e:
        raise ValidationError(f"{name}: {e}") from e
    if amount < ZERO:
        raise ValidationError(f"{name} cannot be negative")
    return amount


def generate_loan_number(prefix: str = "LOAN") -> str:
    """Human-readable loan number: PREFIX-<epoch millis>-<3 random digits>"""
    return f"{prefix}-{int(time.time() * 1000)}-{random.randint(0, 999):03d}"


class LoanManager(EventPublisherMixin):
    """
    Manages the loan lifecycle from creation through payoff

    Aggregates stored on a loan header are a cache; every read recomputes
    them from the installment set.
    """

    def __init__(
        self,
        repository: LoanRepository,
        event_dispatcher: Optional[EventDispatcher] = None,
        late_fee_rate=None,
        loan_number_prefix: Optional[str] = None
    ):
        self.repository = repository
        self.late_fee_rate = late_fee_rate
        self.loan_number_prefix = loan_number_prefix
        self.logger = get_logger("loan_ledger.loans")
        if event_dispatcher is not None:
            self.set_event_dispatcher(event_dispatcher)

    # ---- reads ----

    def get_loan(self, loan_id: str, as_of: Optional[date] = None) -> Optional[Loan]:
        """Loan with aggregates recomputed from its installments, or None"""
        loan = self.repository.get_loan(loan_id)
        if loan is None:
            return None
        return loan.with_aggregates(compute_aggregates(loan.installments, as_of))

    def list_loans(self, as_of: Optional[date] = None) -> List[Loan]:
        """All loans, newest first, with fresh aggregates"""
        return [
            loan.with_aggregates(compute_aggregates(loan.installments, as_of))
            for loan in self.repository.list_loans()
        ]

    # ---- writes ----

    def create_loan(self, application: LoanApplication) -> Loan:
        """
        Create a loan and its installment schedule

        Args:
            application: Validated loan terms and descriptive fields

        Returns:
            The materialized loan with its installments
        """
        if application.installments is not None:
            schedule = sorted(application.installments, key=lambda i: i.installment_number)
            amount_to_pay = application.amount_to_pay
            if amount_to_pay is None:
                amount_to_pay = total_amount(schedule)
        else:
            schedule = generate_schedule(
                application.principal,
                application.interest_rate,
                application.term,
                application.frequency,
                application.style,
                application.start_date
            )
            amount_to_pay = total_amount(schedule)

        loan = Loan(
            id=None,
            loan_number=application.loan_number or generate_loan_number(self._prefix()),
            principal=application.principal,
            interest_rate=application.interest_rate,
            term=application.term,
            frequency=application.frequency,
            style=application.style,
            start_date=application.start_date,
            loan_date=application.loan_date or dates.today(),
            due_date=schedule[-1].due_date,
            client_id=application.client_id,
            client_name=application.client_name,
            cashier=application.cashier,
            amount=application.amount if application.amount is not None else application.principal,
            amount_to_pay=amount_to_pay,
            total_pending=amount_to_pay,
            status=LoanStatus.PENDING
        )

        with self.repository.atomic():
            loan_id = self.repository.create_loan(loan)
            self.repository.create_installments(loan_id, schedule)

        log_action(self.logger, "info", "Loan created",
                   action="loan.create", resource="loan", loan_id=loan_id,
                   extra={"loan_number": loan.loan_number, "principal": str(loan.principal),
                          "amount_to_pay": str(amount_to_pay), "installments": len(schedule)})

        self.publish_event(DomainEvent.LOAN_CREATED, "loan", loan_id, {
            "loan_number": loan.loan_number,
            "principal": str(loan.principal),
            "amount": str(loan.amount),
            "amount_to_pay": str(amount_to_pay),
        })

        return self.get_loan(loan_id)

    def process_payment(self, loan_id: str, amount, payment_date=None) -> Loan:
        """
        Apply a cash payment to a loan, oldest installment first

        Args:
            loan_id: Loan receiving the payment
            amount: Cash amount, must be positive
            payment_date: Recorded on installments that become Paid (default today)

        Returns:
            The refreshed loan

        Raises:
            ValidationError: If the amount is not positive
            LoanNotFound: If the loan does not exist
            InvalidStateTransition: If the loan is cancelled
            NoPendingInstallments: If nothing is left to pay
            InvalidInstallmentReference: If a target installment has no id
            ConflictError: If the loan changed while the payment was applied
        """
        amount = _positive_amount(amount)

        loan = self.repository.get_loan(loan_id)
        if loan is None:
            raise LoanNotFound(loan_id)
        if loan.status == LoanStatus.CANCELLED:
            raise InvalidStateTransition(f"Loan {loan_id} is cancelled and cannot receive payments")

        distributions = distribute_payment(loan.installments, amount)
        if not distributions:
            raise NoPendingInstallments(loan_id)

        paid_on = dates.to_local_date(payment_date) or dates.today()

        updates = []
        for distribution in distributions:
            installment = loan.installment(distribution.installment_number)
            if installment is None or not installment.id:
                raise InvalidInstallmentReference(distribution.installment_number)

            fields = {
                "paid_amount": distribution.new_paid_amount,
                "status": distribution.new_status,
            }
            if distribution.new_status == InstallmentStatus.PAID:
                fields["payment_date"] = paid_on
                installment.payment_date = paid_on
            updates.append((installment.id, fields))

            installment.paid_amount = distribution.new_paid_amount
            installment.status = distribution.new_status

        aggregates = compute_aggregates(loan.installments)
        new_status = LoanStatus.PAID if aggregates.is_settled else LoanStatus.APPROVED

        with self.repository.atomic():
            self.repository.update_loan(
                loan_id,
                dict(_aggregate_fields(aggregates), status=new_status),
                expected_version=loan.version
            )
            self.repository.update_installments(updates)

        applied = sum_money(d.amount_applied for d in distributions)
        unapplied = unapplied_amount(amount, distributions)

        log_action(self.logger, "info", "Payment applied",
                   action="loan.payment", resource="loan", loan_id=loan_id,
                   extra={"amount": str(amount), "applied": str(applied),
                          "unapplied": str(unapplied), "status": new_status.value,
                          "installments": [d.installment_number for d in distributions]})

        self.publish_event(DomainEvent.LOAN_PAYMENT_RECEIVED, "loan", loan_id, {
            "amount": str(amount),
            "applied": str(applied),
            "unapplied": str(unapplied),
            "installments": [d.installment_number for d in distributions],
        })
        if new_status == LoanStatus.PAID and loan.status != LoanStatus.PAID:
            self.publish_event(DomainEvent.LOAN_PAID_OFF, "loan", loan_id, {
                "loan_number": loan.loan_number,
                "amount_applied": str(aggregates.amount_applied),
            })

        return self.get_loan(loan_id)

    def update_loan(self, loan_id: str, status=None, late_fee=None,
                    amount_applied=None, total_pending=None) -> Loan:
        """
        Manually correct loan header fields

        Aggregates are written as given and not recomputed; the next read or
        payment recomputes them from the installments.
        """
        loan = self.repository.get_loan(loan_id)
        if loan is None:
            raise LoanNotFound(loan_id)

        fields: Dict[str, Any] = {}
        for name, value in (("late_fee", late_fee),
                            ("amount_applied", amount_applied),
                            ("total_pending", total_pending)):
            value = _non_negative(name, value)
            if value is not None:
                fields[name] = value

        if status is not None:
            new_status = _parse_loan_status(status)
            _check_transition(loan.status, new_status)
            fields["status"] = new_status

        if fields:
            self.repository.update_loan(loan_id, fields, expected_version=loan.version)

            log_action(self.logger, "info", "Loan updated",
                       action="loan.update", resource="loan", loan_id=loan_id,
                       extra={name: getattr(value, "value", str(value)) for name, value in fields.items()})

            self.publish_event(DomainEvent.LOAN_UPDATED, "loan", loan_id, {
                "fields": sorted(fields),
                "previous_status": loan.status.value,
            })

        return self.repository.get_loan(loan_id)

    def delete_loan(self, loan_id: str) -> None:
        """Delete a loan: installments first, then the header"""
        loan = self.repository.get_loan(loan_id)
        if loan is None:
            raise LoanNotFound(loan_id)

        with self.repository.atomic():
            self.repository.delete_installments(loan_id)
            self.repository.delete_loan(loan_id)

        log_action(self.logger, "info", "Loan deleted",
                   action="loan.delete", resource="loan", loan_id=loan_id,
                   extra={"loan_number": loan.loan_number})

        self.publish_event(DomainEvent.LOAN_DELETED, "loan", loan_id, {
            "loan_number": loan.loan_number,
        })

    def sweep_overdue(self, loan_id: str, late_fee_rate=None,
                      as_of: Optional[date] = None) -> int:
        """
        Mark overdue installments and assess late fees

        Each overdue, unpaid installment is charged
        (principal + interest) * rate * ceil(days_overdue / 30). The fee and
        Overdue status are written only when the new fee exceeds the stored
        one, so repeated sweeps never lower a fee.

        Returns:
            Number of installments updated
        """
        rate = self._late_fee_rate(late_fee_rate)
        reference = as_of or dates.today()

        loan = self.repository.get_loan(loan_id)
        if loan is None:
            raise LoanNotFound(loan_id)

        updates = []
        for installment in loan.installments:
            if installment.status == InstallmentStatus.PAID or is_paid(installment):
                continue
            if not is_overdue(installment, reference):
                continue

            months = math.ceil(days_overdue(installment, reference) / DAYS_PER_LATE_FEE_PERIOD)
            fee = round_money(
                (installment.principal_amount + installment.interest_amount) * rate * months
            )
            if fee <= installment.late_fee:
                continue
            if not installment.id:
                raise InvalidInstallmentReference(installment.installment_number)

            updates.append((installment.id, {"late_fee": fee, "status": InstallmentStatus.OVERDUE}))
            installment.late_fee = fee
            installment.status = InstallmentStatus.OVERDUE

        aggregates = compute_aggregates(loan.installments, reference)

        with self.repository.atomic():
            self.repository.update_loan(loan_id, _aggregate_fields(aggregates),
                                        expected_version=loan.version)
            if updates:
                self.repository.update_installments(updates)

        if updates:
            log_action(self.logger, "info", "Late fees assessed",
                       action="loan.sweep_overdue", resource="loan", loan_id=loan_id,
                       extra={"installments_updated": len(updates), "rate": str(rate),
                              "late_fee": str(aggregates.sum_late_fees),
                              "overdue_amount": str(aggregates.overdue_amount)})

            self.publish_event(DomainEvent.LOAN_OVERDUE_ASSESSED, "loan", loan_id, {
                "installments_updated": len(updates),
                "late_fee": str(aggregates.sum_late_fees),
                "overdue_amount": str(aggregates.overdue_amount),
            })

        return len(updates)

    def sweep_all_overdue(self, late_fee_rate=None, as_of: Optional[date] = None) -> Dict[str, int]:
        """Run sweep_overdue over every open loan"""
        results = {"loans_processed": 0, "installments_updated": 0, "errors": 0}
        rate = self._late_fee_rate(late_fee_rate)

        for loan in self.repository.list_loans():
            if loan.status in (LoanStatus.CANCELLED, LoanStatus.PAID):
                continue
            try:
                results["installments_updated"] += self.sweep_overdue(loan.id, rate, as_of)
                results["loans_processed"] += 1
            except LedgerError as e:
                # Log error but continue with other loans
                self.logger.error(f"Overdue sweep failed for loan {loan.id}: {e}",
                                  extra={"loan_id": loan.id})
                results["errors"] += 1

        log_action(self.logger, "info", "Overdue sweep completed",
                   action="loan.sweep_all_overdue", resource="loan", extra=results)
        return results

    # ---- helpers ----

    def _prefix(self) -> str:
        return self.loan_number_prefix or get_config().loan_number_prefix

    def _late_fee_rate(self, late_fee_rate) -> Decimal:
        if late_fee_rate is None:
            late_fee_rate = self.late_fee_rate
        if late_fee_rate is None:
            late_fee_rate = get_config().default_late_fee_rate
        try:
            rate = to_decimal(late_fee_rate)
        except ValueError as e:
            raise ValidationError(f"Invalid late fee rate: {e}") from e
        if rate < ZERO:
            raise ValidationError("Late fee rate cannot be negative")
        return rate


def _aggregate_fields(aggregates: LoanAggregates) -> Dict[str, Decimal]:
    return {
        "total_pending": aggregates.total_pending,
        "overdue_amount": aggregates.overdue_amount,
        "late_fee": aggregates.sum_late_fees,
        "amount_applied": aggregates.amount_applied,
    }


def _positive_amount(amount) -> Decimal:
    try:
        amount = round_money(amount)
    except ValueError as e:
        raise ValidationError(f"Invalid payment amount: {e}") from e
    if amount <= ZERO:
        raise ValidationError("Payment amount must be greater than 0")
    return amount


def _parse_loan_status(status) -> LoanStatus:
    if isinstance(status, LoanStatus):
        return status
    try:
        return LoanStatus(str(status).strip().lower())
    except ValueError as e:
        raise ValidationError(f"Unknown loan status: {status!r}") from e


def _check_transition(current: LoanStatus, target: LoanStatus) -> None:
    if target == current:
        return
    if target == LoanStatus.PAID:
        raise InvalidStateTransition("Paid status is set by payments, not manually")
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateTransition(
            f"Cannot change loan status from {current.value} to {target.value}"
        )
