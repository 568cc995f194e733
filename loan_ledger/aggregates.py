"""
Aggregation Engine

Derives loan-level totals from an installment set. This is the single source
of truth for pending, overdue, late-fee and applied amounts; the values
stored on a loan header are only a cache of compute_aggregates().
"""

from datetime import date
from typing import Iterable, Optional

from . import dates
from .models import Installment, InstallmentStatus, LoanAggregates
from .money import ZERO, round_money


def is_paid(installment: Installment) -> bool:
    """Paid amount covers principal + interest + late fee (within 1e-6)"""
    return installment.is_paid


def is_overdue(installment: Installment, as_of: Optional[date] = None) -> bool:
    """
    Check whether an installment is past due

    Due strictly before as_of (today by default) and not marked Paid. An
    installment due today is not overdue.
    """
    if installment.due_date is None:
        return False
    if installment.status == InstallmentStatus.PAID:
        return False
    reference = as_of or dates.today()
    return installment.due_date < reference


def days_overdue(installment: Installment, as_of: Optional[date] = None) -> int:
    """Days elapsed since the due date, zero if not yet due"""
    if installment.due_date is None:
        return 0
    reference = as_of or dates.today()
    return max(0, dates.days_between(installment.due_date, reference))


def compute_aggregates(installments: Iterable[Installment],
                       as_of: Optional[date] = None) -> LoanAggregates:
    """
    Compute loan aggregates from installments

    Args:
        installments: The loan's full installment set
        as_of: Reference date for overdue checks, defaults to today

    Returns:
        LoanAggregates with every total rounded to cents
    """
    reference = as_of or dates.today()

    total_pending = ZERO
    overdue_amount = ZERO
    sum_late_fees = ZERO
    amount_applied = ZERO

    for installment in installments:
        pending = installment.pending

        total_pending += pending
        sum_late_fees += installment.late_fee
        amount_applied += installment.paid_amount

        if not is_paid(installment) and is_overdue(installment, reference):
            overdue_amount += pending

    return LoanAggregates(
        total_pending=round_money(total_pending),
        overdue_amount=round_money(overdue_amount),
        sum_late_fees=round_money(sum_late_fees),
        amount_applied=round_money(amount_applied)
    )
