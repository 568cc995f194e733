"""
Amortization Schedule Module

Generates installment schedules from loan terms. Two styles are supported:
flat (interest computed once on the full principal and split evenly) and
amortizing (level payment, interest on the declining balance).

Every component is rounded to cents per installment, not just in total, so
a persisted schedule reads back exactly as it was generated.
"""

from datetime import date
from decimal import Decimal
from typing import List

from .dates import add_period
from .errors import ValidationError
from .models import AmortizationStyle, InstallmentSpec, PaymentFrequency
from .money import ZERO, round_money, sum_money, to_decimal

MAX_RATE_PERCENT = Decimal('100')


def periods_per_year(frequency) -> int:
    """Number of periods per year for a frequency (12, 24, 52 or 365)"""
    return _parse_frequency(frequency).periods_per_year


def periodic_rate(annual_rate_percent, frequency) -> Decimal:
    """Convert an annual percentage rate into a per-period fraction"""
    rate = to_decimal(annual_rate_percent)
    return rate / Decimal('100') / Decimal(periods_per_year(frequency))


def level_payment(principal, annual_rate_percent, term: int, frequency) -> Decimal:
    """
    Level payment for an amortizing loan (unrounded)

    Standard annuity formula: P * r * (1+r)^n / ((1+r)^n - 1).
    A zero rate degrades to principal / term.
    """
    principal = to_decimal(principal)
    rate = periodic_rate(annual_rate_percent, frequency)
    if rate == ZERO:
        return principal / Decimal(term)
    factor = (Decimal('1') + rate) ** term
    return principal * rate * factor / (factor - Decimal('1'))


def generate_schedule(
    principal,
    annual_rate_percent,
    term: int,
    frequency,
    style,
    start_date: date
) -> List[InstallmentSpec]:
    """
    Generate the installment schedule for a loan

    Args:
        principal: Amount lent, must be positive
        annual_rate_percent: Annual interest rate in percent, 0 to 100
        term: Number of installments, must be positive
        frequency: PaymentFrequency or a recognized label
        style: AmortizationStyle or a recognized label
        start_date: Loan start date; the first installment falls one period later

    Returns:
        InstallmentSpec list numbered 1..term

    Raises:
        ValidationError: If any term is out of range
    """
    principal, rate, term = validate_terms(principal, annual_rate_percent, term)
    frequency = _parse_frequency(frequency)
    style = _parse_style(style)

    if style == AmortizationStyle.FLAT:
        rows = _flat_rows(principal, rate, term, frequency)
    elif rate == ZERO:
        rows = _zero_rate_rows(principal, term)
    else:
        rows = _amortizing_rows(principal, rate, term, frequency)

    return [
        InstallmentSpec(
            installment_number=number,
            due_date=add_period(start_date, number, frequency),
            principal_amount=principal_part,
            interest_amount=interest_part
        )
        for number, (principal_part, interest_part) in enumerate(rows, start=1)
    ]


def total_amount(schedule) -> Decimal:
    """Amount to pay: scheduled principal + interest over all installments"""
    return sum_money(row.principal_amount + row.interest_amount for row in schedule)


def validate_terms(principal, annual_rate_percent, term):
    """Check and normalize loan terms, returning (principal, rate, term)"""
    try:
        principal = to_decimal(principal)
        rate = to_decimal(annual_rate_percent)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    if principal <= ZERO:
        raise ValidationError("Principal must be greater than 0")
    if rate < ZERO:
        raise ValidationError("Interest rate cannot be negative")
    if rate > MAX_RATE_PERCENT:
        raise ValidationError("Interest rate cannot exceed 100%")
    if isinstance(term, bool) or not isinstance(term, int) or term <= 0:
        raise ValidationError("Loan term must be a positive integer")
    return principal, rate, term


def _flat_rows(principal: Decimal, rate: Decimal, term: int, frequency: PaymentFrequency):
    total_interest = principal * periodic_rate(rate, frequency) * term
    principal_part = round_money(principal / term)
    interest_part = round_money(total_interest / term)
    return [(principal_part, interest_part)] * term


def _zero_rate_rows(principal: Decimal, term: int):
    flat = principal / term
    rows = []
    for number in range(1, term + 1):
        if number == term:
            # Last installment closes the principal exactly
            principal_part = principal - round_money(flat) * (term - 1)
        else:
            principal_part = flat
        rows.append((round_money(principal_part), ZERO))
    return rows


def _amortizing_rows(principal: Decimal, rate: Decimal, term: int, frequency: PaymentFrequency):
    r = periodic_rate(rate, frequency)
    payment = level_payment(principal, rate, term, frequency)
    balance = principal
    rows = []

    for number in range(1, term + 1):
        interest_part = round_money(balance * r)
        principal_part = min(round_money(payment - balance * r), balance)

        if number == term:
            # Close the balance and push accumulated rounding drift into interest
            principal_part = round_money(balance)
            interest_part = max(round_money(payment - principal_part), ZERO)

        balance = round_money(balance - principal_part)
        rows.append((principal_part, interest_part))

    return rows


def _parse_frequency(value) -> PaymentFrequency:
    try:
        return PaymentFrequency.parse(value)
    except ValueError as e:
        raise ValidationError(str(e)) from e


def _parse_style(value) -> AmortizationStyle:
    try:
        return AmortizationStyle.parse(value)
    except ValueError as e:
        raise ValidationError(str(e)) from e
