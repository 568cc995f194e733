"""
Shared API dependencies
"""

from typing import Optional

from fastapi import HTTPException, status

from ..capital import CapitalLedger
from ..config import LedgerConfig, get_config
from ..errors import ConflictError, LedgerError, NotFoundError, StateError, ValidationError
from ..events import EventDispatcher
from ..loans import LoanManager
from ..repository import StorageLoanRepository
from ..storage import create_storage


class LedgerSystem:
    """Loan ledger with all components initialized"""

    def __init__(self, settings: Optional[LedgerConfig] = None, database_url: Optional[str] = None):
        settings = settings or get_config()

        self.storage = create_storage(database_url or settings.database_url)
        self.repository = StorageLoanRepository(self.storage)
        self.event_dispatcher = EventDispatcher()

        self.capital_ledger = CapitalLedger(self.storage)
        if settings.enable_capital_tracking:
            self.capital_ledger.attach(self.event_dispatcher)
            if not self.storage.exists(self.capital_ledger.table_name, CapitalLedger.ROW_ID):
                self.capital_ledger.set_balance(settings.initial_capital)

        self.loan_manager = LoanManager(
            self.repository,
            self.event_dispatcher,
            late_fee_rate=settings.default_late_fee_rate,
            loan_number_prefix=settings.loan_number_prefix
        )

    def close(self) -> None:
        self.storage.close()


_ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    """Dependency returning the process-wide ledger, built on first use"""
    global _ledger_system
    if _ledger_system is None:
        _ledger_system = LedgerSystem()
    return _ledger_system


def http_error(error: LedgerError) -> HTTPException:
    """Translate a ledger error into the matching HTTP status"""
    if isinstance(error, ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, (StateError, ConflictError)):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(error))
