"""Exception hierarchy for the loan ledger."""


class LedgerError(Exception):
    """Base exception for all loan ledger errors."""


class ValidationError(LedgerError, ValueError):
    """Raised when caller input has a bad shape or is out of range."""


class NotFoundError(LedgerError):
    """Raised when a referenced record does not exist."""


class LoanNotFound(NotFoundError):
    """Raised when a loan id does not resolve to a stored loan."""

    def __init__(self, loan_id: str):
        super().__init__(f"Loan {loan_id} not found")
        self.loan_id = loan_id


class InvalidInstallmentReference(NotFoundError):
    """Raised when a distribution targets an installment without a persisted id."""

    def __init__(self, installment_number: int):
        super().__init__(f"Invalid installment ID for installment #{installment_number}")
        self.installment_number = installment_number


class StateError(LedgerError):
    """Raised when a loan is in the wrong state for the operation."""


class NoPendingInstallments(StateError):
    """Raised when a payment finds nothing left to apply to."""

    def __init__(self, loan_id: str):
        super().__init__(f"No pending installments to apply payment on loan {loan_id}")
        self.loan_id = loan_id


class InvalidStateTransition(StateError):
    """Raised when a manual status change is not allowed."""


class ConflictError(LedgerError):
    """Raised when a write is based on a stale loan version."""


class PersistenceError(LedgerError):
    """Raised when the storage collaborator fails."""
