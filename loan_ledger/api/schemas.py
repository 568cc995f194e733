"""
Pydantic schemas for API requests
"""

from typing import List, Optional
from pydantic import BaseModel, Field

from ..dates import to_local_date
from ..errors import ValidationError
from ..loans import LoanApplication
from ..models import InstallmentSpec
from ..money import round_money


class InstallmentModel(BaseModel):
    installment_number: int
    due_date: str  # ISO date string
    principal_amount: str  # Decimal as string
    interest_amount: str = "0"

    def to_spec(self) -> InstallmentSpec:
        due_date = to_local_date(self.due_date)
        if due_date is None:
            raise ValidationError(f"Invalid due date for installment #{self.installment_number}")
        try:
            principal = round_money(self.principal_amount)
            interest = round_money(self.interest_amount)
        except ValueError as e:
            raise ValidationError(f"Installment #{self.installment_number}: {e}") from e
        return InstallmentSpec(
            installment_number=self.installment_number,
            due_date=due_date,
            principal_amount=principal,
            interest_amount=interest
        )


class CreateLoanRequest(BaseModel):
    principal: str = Field(..., description="Decimal amount as string")
    interest_rate: str = Field(..., description="Annual rate in percent, e.g. 15 for 15%")
    term: int = Field(0, description="Number of installments; taken from installments when omitted")
    start_date: str  # ISO date string
    frequency: str = "monthly"
    style: str = "flat"
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    cashier: Optional[str] = None
    loan_date: Optional[str] = None
    amount: Optional[str] = None
    loan_number: Optional[str] = None
    installments: Optional[List[InstallmentModel]] = None
    amount_to_pay: Optional[str] = None

    def to_application(self) -> LoanApplication:
        installments = None
        if self.installments is not None:
            installments = [item.to_spec() for item in self.installments]
        return LoanApplication(
            principal=self.principal,
            interest_rate=self.interest_rate,
            term=self.term,
            start_date=self.start_date,
            frequency=self.frequency,
            style=self.style,
            client_id=self.client_id,
            client_name=self.client_name,
            cashier=self.cashier,
            loan_date=self.loan_date,
            amount=self.amount,
            loan_number=self.loan_number,
            installments=installments,
            amount_to_pay=self.amount_to_pay
        )


class UpdateLoanRequest(BaseModel):
    status: Optional[str] = None
    late_fee: Optional[str] = None
    amount_applied: Optional[str] = None
    total_pending: Optional[str] = None


class PaymentRequest(BaseModel):
    amount: str = Field(..., description="Cash amount as string")
    payment_date: Optional[str] = None  # ISO date string


class SweepOverdueRequest(BaseModel):
    late_fee_rate: Optional[str] = None  # Fraction per overdue month, e.g. "0.05"
    as_of: Optional[str] = None  # ISO date string


class SetCapitalRequest(BaseModel):
    total: str = Field(..., description="Decimal amount as string")
