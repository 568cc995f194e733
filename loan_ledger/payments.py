"""
Payment Distribution Module

Allocates a cash payment across a loan's outstanding installments, oldest
obligation first. The distributor only ever applies money to scheduled
installments; it never creates principal-reduction items and never tracks
change. Callers use unapplied_amount() to decide what to do with excess.
"""

from decimal import Decimal
from typing import Iterable, List

from .aggregates import is_paid
from .models import Installment, InstallmentStatus, PaymentDistribution
from .money import ZERO, PAID_EPSILON, to_decimal


def distribute_payment(installments: Iterable[Installment], payment_amount) -> List[PaymentDistribution]:
    """
    Distribute a payment across pending installments

    Installments are walked in ascending installment number. Paid ones are
    skipped; each unpaid one receives min(remaining, pending). Overdue status
    is never set here: a fully paid overdue installment becomes Paid.

    Args:
        installments: The loan's installments, in any order
        payment_amount: Cash amount to distribute

    Returns:
        One PaymentDistribution per installment touched. Empty when every
        installment is already paid or the amount is not positive.
    """
    remaining = to_decimal(payment_amount)
    distributions: List[PaymentDistribution] = []

    ordered = sorted(installments, key=lambda i: i.installment_number)

    for installment in ordered:
        if remaining <= ZERO:
            break
        if is_paid(installment):
            continue

        total_due = installment.total_due
        pending = total_due - installment.paid_amount
        if pending <= ZERO:
            continue

        amount_to_apply = min(remaining, pending)
        new_paid_amount = installment.paid_amount + amount_to_apply

        distributions.append(PaymentDistribution(
            installment_number=installment.installment_number,
            amount_applied=amount_to_apply,
            new_paid_amount=new_paid_amount,
            new_status=_status_after_payment(new_paid_amount, total_due)
        ))

        remaining -= amount_to_apply

    return distributions


def unapplied_amount(payment_amount, distributions: Iterable[PaymentDistribution]) -> Decimal:
    """Portion of a payment that no installment absorbed"""
    applied = sum((d.amount_applied for d in distributions), ZERO)
    return max(to_decimal(payment_amount) - applied, ZERO)


def _status_after_payment(new_paid_amount: Decimal, total_due: Decimal) -> InstallmentStatus:
    if new_paid_amount >= total_due - PAID_EPSILON:
        return InstallmentStatus.PAID
    elif new_paid_amount > ZERO:
        return InstallmentStatus.PARTIAL
    return InstallmentStatus.PENDING
