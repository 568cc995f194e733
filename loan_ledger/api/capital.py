"""
Capital pool endpoints
"""

from fastapi import APIRouter, Depends

from .deps import LedgerSystem, get_ledger_system, http_error
from .schemas import SetCapitalRequest
from ..errors import ValidationError


router = APIRouter()


@router.get("")
async def get_capital(system: LedgerSystem = Depends(get_ledger_system)):
    """Current capital pool balance"""
    return {"total": str(system.capital_ledger.get_balance())}


@router.put("")
async def set_capital(
    request: SetCapitalRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Seed or top up the capital pool"""
    try:
        total = system.capital_ledger.set_balance(request.total)
    except ValueError as e:
        raise http_error(ValidationError(str(e)))
    return {"total": str(total)}
