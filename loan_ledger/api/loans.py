"""
Loan endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .deps import LedgerSystem, get_ledger_system, http_error
from .schemas import CreateLoanRequest, PaymentRequest, SweepOverdueRequest, UpdateLoanRequest
from ..dates import to_local_date
from ..errors import LedgerError, LoanNotFound, ValidationError


router = APIRouter()


def _sweep_args(request: Optional[SweepOverdueRequest]):
    if request is None:
        return None, None
    as_of = None
    if request.as_of:
        as_of = to_local_date(request.as_of)
        if as_of is None:
            raise ValidationError(f"Invalid as_of date: {request.as_of}")
    return request.late_fee_rate, as_of


@router.get("")
async def list_loans(system: LedgerSystem = Depends(get_ledger_system)):
    """List all loans, newest first"""
    try:
        loans = system.loan_manager.list_loans()
    except LedgerError as e:
        raise http_error(e)
    return {"loans": [loan.to_dict() for loan in loans], "count": len(loans)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Create a loan and its installment schedule"""
    try:
        loan = system.loan_manager.create_loan(request.to_application())
    except LedgerError as e:
        raise http_error(e)
    return loan.to_dict()


@router.post("/sweep-overdue")
async def sweep_all_overdue(
    request: Optional[SweepOverdueRequest] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Assess late fees on every open loan"""
    try:
        late_fee_rate, as_of = _sweep_args(request)
        return system.loan_manager.sweep_all_overdue(late_fee_rate, as_of)
    except LedgerError as e:
        raise http_error(e)


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get loan details with fresh aggregates"""
    try:
        loan = system.loan_manager.get_loan(loan_id)
    except LedgerError as e:
        raise http_error(e)
    if loan is None:
        raise http_error(LoanNotFound(loan_id))
    return loan.to_dict()


@router.put("/{loan_id}")
async def update_loan(
    loan_id: str,
    request: UpdateLoanRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Manually correct loan status or cached totals"""
    try:
        loan = system.loan_manager.update_loan(
            loan_id,
            status=request.status,
            late_fee=request.late_fee,
            amount_applied=request.amount_applied,
            total_pending=request.total_pending
        )
    except LedgerError as e:
        raise http_error(e)
    return loan.to_dict()


@router.delete("/{loan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_loan(
    loan_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Delete a loan and its installments"""
    try:
        system.loan_manager.delete_loan(loan_id)
    except LedgerError as e:
        raise http_error(e)


@router.post("/{loan_id}/payments")
async def make_payment(
    loan_id: str,
    request: PaymentRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Apply a payment to the loan's installments"""
    try:
        loan = system.loan_manager.process_payment(loan_id, request.amount, request.payment_date)
    except LedgerError as e:
        raise http_error(e)
    return dict(loan.to_dict(), capital_total=str(system.capital_ledger.get_balance()))


@router.post("/{loan_id}/sweep-overdue")
async def sweep_overdue(
    loan_id: str,
    request: Optional[SweepOverdueRequest] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Assess late fees on one loan"""
    try:
        late_fee_rate, as_of = _sweep_args(request)
        updated = system.loan_manager.sweep_overdue(loan_id, late_fee_rate, as_of)
        loan = system.loan_manager.get_loan(loan_id, as_of)
    except LedgerError as e:
        raise http_error(e)
    return {"installments_updated": updated, "loan": loan.to_dict()}
