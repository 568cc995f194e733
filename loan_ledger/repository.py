"""
Loan Repository Module

The persistence collaborator of the loan service. LoanRepository is the
narrow interface the service depends on; StorageLoanRepository implements it
over a StorageInterface.

Rows keep the column names of the original back-office store, which also
carries duplicate keys for one concept (due_date / dueDate) and localized
status labels (Pendiente, Pagado, ...). Those are resolved by the mapping
functions in this module and nowhere else.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union
import threading
import uuid

from .dates import to_local_date
from .errors import ConflictError, LedgerError, LoanNotFound, PersistenceError, ValidationError
from .logging_config import get_logger
from .models import (
    AmortizationStyle, Installment, InstallmentSpec, InstallmentStatus,
    Loan, LoanStatus, PaymentFrequency
)
from .money import ZERO, round_money, to_decimal
from .storage import StorageInterface


LOANS_TABLE = "loans"
INSTALLMENTS_TABLE = "installments"

# Canonical field name -> row column
LOAN_COLUMNS = {
    "id": "id",
    "loan_number": "loan_number",
    "client_id": "client_id",
    "client_name": "client_name",
    "cashier": "cashier",
    "principal": "principal",
    "interest_rate": "interest_rate",
    "term": "loan_term",
    "frequency": "loan_type",
    "style": "amortization_style",
    "loan_date": "loan_date",
    "start_date": "start_date",
    "due_date": "due_date",
    "amount": "amount",
    "amount_to_pay": "amount_to_pay",
    "amount_applied": "amount_applied",
    "total_pending": "total_pending",
    "overdue_amount": "overdue_amount",
    "late_fee": "late_fee",
    "status": "status",
    "version": "version",
    "created_at": "created_at",
}

INSTALLMENT_COLUMNS = {
    "id": "id",
    "loan_id": "loan_id",
    "installment_number": "installment_number",
    "due_date": "due_date",
    "principal_amount": "principal_amount",
    "interest_amount": "interest_amount",
    "paid_amount": "paid_amount",
    "late_fee": "late_fee",
    "status": "status",
    "payment_date": "payment_date",
}

# Fields the service may patch after creation
MUTABLE_LOAN_FIELDS = frozenset({
    "status", "late_fee", "amount_applied", "total_pending", "overdue_amount",
})
MUTABLE_INSTALLMENT_FIELDS = frozenset({
    "paid_amount", "late_fee", "status", "payment_date",
})

# Alternate keys found on rows written by older clients
_INSTALLMENT_ALIASES = {
    "installment_number": ("installment_number", "installmentNumber"),
    "due_date": ("due_date", "dueDate"),
    "paid_amount": ("paid_amount", "paidAmount"),
    "late_fee": ("late_fee", "lateFee"),
    "payment_date": ("payment_date", "paymentDate"),
}

_INSTALLMENT_STATUS_LABELS = {
    "pending": InstallmentStatus.PENDING,
    "pendiente": InstallmentStatus.PENDING,
    "partial": InstallmentStatus.PARTIAL,
    "parcial": InstallmentStatus.PARTIAL,
    "paid": InstallmentStatus.PAID,
    "pagado": InstallmentStatus.PAID,
    "overdue": InstallmentStatus.OVERDUE,
    "atrasado": InstallmentStatus.OVERDUE,
}

_LOAN_STATUS_LABELS = {
    "pending": LoanStatus.PENDING,
    "pendiente": LoanStatus.PENDING,
    "approved": LoanStatus.APPROVED,
    "aprobado": LoanStatus.APPROVED,
    "paid": LoanStatus.PAID,
    "pagado": LoanStatus.PAID,
    "canceled": LoanStatus.CANCELLED,
    "cancelled": LoanStatus.CANCELLED,
    "cancelado": LoanStatus.CANCELLED,
}


# =========================
#    Mapping functions
# =========================

def parse_installment_status(label) -> InstallmentStatus:
    """Resolve a stored installment status label; unknown labels read as Pending"""
    if isinstance(label, InstallmentStatus):
        return label
    return _INSTALLMENT_STATUS_LABELS.get(str(label or "").strip().lower(), InstallmentStatus.PENDING)


def parse_loan_status(label) -> LoanStatus:
    """Resolve a stored loan status label; unknown labels read as Pending"""
    if isinstance(label, LoanStatus):
        return label
    return _LOAN_STATUS_LABELS.get(str(label or "").strip().lower(), LoanStatus.PENDING)


def _pick(row: Dict[str, Any], field_name: str) -> Any:
    for key in _INSTALLMENT_ALIASES.get(field_name, (field_name,)):
        if row.get(key) is not None:
            return row[key]
    return None


def _encode(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def installment_from_row(row: Dict[str, Any]) -> Installment:
    """Convert a stored installment row to the canonical Installment"""
    return Installment(
        id=row.get('id'),
        loan_id=row.get('loan_id'),
        installment_number=int(_pick(row, 'installment_number') or 0),
        due_date=to_local_date(_pick(row, 'due_date')),
        principal_amount=round_money(row.get('principal_amount')),
        interest_amount=round_money(row.get('interest_amount')),
        paid_amount=to_decimal(_pick(row, 'paid_amount')),
        late_fee=round_money(_pick(row, 'late_fee')),
        status=parse_installment_status(row.get('status')),
        payment_date=to_local_date(_pick(row, 'payment_date'))
    )


def installment_to_row(installment: Union[Installment, InstallmentSpec], loan_id: str,
                       installment_id: str) -> Dict[str, Any]:
    """Convert a schedule row or installment to its stored form"""
    paid_amount = getattr(installment, 'paid_amount', ZERO)
    late_fee = getattr(installment, 'late_fee', ZERO)
    status = getattr(installment, 'status', InstallmentStatus.PENDING)
    payment_date = getattr(installment, 'payment_date', None)

    return {
        'id': installment_id,
        'loan_id': loan_id,
        'installment_number': installment.installment_number,
        'due_date': _encode(installment.due_date),
        # Scheduled principal + interest, kept for reporting queries
        'amount': str(installment.principal_amount + installment.interest_amount),
        'principal_amount': str(installment.principal_amount),
        'interest_amount': str(installment.interest_amount),
        'paid_amount': str(paid_amount),
        'late_fee': str(late_fee),
        'status': status.value,
        'payment_date': _encode(payment_date),
    }


def loan_from_row(row: Dict[str, Any], installments: Sequence[Installment] = ()) -> Loan:
    """Convert a stored loan row (plus its installments) to the canonical Loan"""
    try:
        frequency = PaymentFrequency.parse(row.get('loan_type'))
    except ValueError:
        frequency = PaymentFrequency.MONTHLY
    try:
        style = AmortizationStyle.parse(row.get('amortization_style'))
    except ValueError:
        style = AmortizationStyle.FLAT

    created_at = row.get('created_at')
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)

    return Loan(
        id=row.get('id'),
        loan_number=row.get('loan_number') or "",
        client_id=row.get('client_id'),
        client_name=row.get('client_name'),
        cashier=row.get('cashier'),
        principal=round_money(row.get('principal')),
        interest_rate=to_decimal(row.get('interest_rate')),
        term=int(row.get('loan_term') or len(installments)),
        frequency=frequency,
        style=style,
        loan_date=to_local_date(row.get('loan_date')),
        start_date=to_local_date(row.get('start_date')),
        due_date=to_local_date(row.get('due_date')),
        amount=round_money(row.get('amount')),
        amount_to_pay=round_money(row.get('amount_to_pay')),
        amount_applied=round_money(row.get('amount_applied')),
        total_pending=round_money(row.get('total_pending')),
        overdue_amount=round_money(row.get('overdue_amount')),
        late_fee=round_money(row.get('late_fee')),
        status=parse_loan_status(row.get('status')),
        version=int(row.get('version') or 0),
        created_at=created_at,
        installments=sorted(installments, key=lambda i: i.installment_number)
    )


def loan_to_row(loan: Loan) -> Dict[str, Any]:
    """Convert a Loan header to its stored form (installments excluded)"""
    row = {}
    for field_name, column in LOAN_COLUMNS.items():
        row[column] = _encode(getattr(loan, field_name))
    return row


def loan_updates_to_row(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Translate a canonical partial update to row columns"""
    unknown = set(fields) - MUTABLE_LOAN_FIELDS
    if unknown:
        raise ValidationError(f"Loan fields cannot be updated: {sorted(unknown)}")
    return {LOAN_COLUMNS[name]: _encode(value) for name, value in fields.items()}


def installment_updates_to_row(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Translate a canonical installment patch to row columns"""
    unknown = set(fields) - MUTABLE_INSTALLMENT_FIELDS
    if unknown:
        raise ValidationError(f"Installment fields cannot be updated: {sorted(unknown)}")
    return {INSTALLMENT_COLUMNS[name]: _encode(value) for name, value in fields.items()}


# =========================
#    Repository
# =========================

class LoanRepository(ABC):
    """Persistence collaborator used by the loan service"""

    @abstractmethod
    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Load a loan with its installments, or None"""
        pass

    @abstractmethod
    def list_loans(self) -> List[Loan]:
        """Load every loan with its installments, newest first"""
        pass

    @abstractmethod
    def create_loan(self, loan: Loan) -> str:
        """Persist a loan header and return its id"""
        pass

    @abstractmethod
    def update_loan(self, loan_id: str, fields: Dict[str, Any],
                    expected_version: Optional[int] = None) -> None:
        """
        Patch header fields

        When expected_version is given the write is rejected with
        ConflictError unless it matches the stored version. Every successful
        update increments the version.
        """
        pass

    @abstractmethod
    def delete_loan(self, loan_id: str) -> None:
        """Delete a loan header"""
        pass

    @abstractmethod
    def create_installments(self, loan_id: str,
                            installments: Iterable[Union[InstallmentSpec, Installment]]) -> List[Installment]:
        """Persist a batch of installments for a loan"""
        pass

    @abstractmethod
    def update_installments(self, updates: Sequence[Tuple[str, Dict[str, Any]]]) -> None:
        """Patch installments, given (installment_id, fields) pairs"""
        pass

    @abstractmethod
    def delete_installments(self, loan_id: str) -> None:
        """Delete every installment of a loan"""
        pass

    @contextmanager
    def atomic(self):
        """Group writes; default is no grouping"""
        yield


class StorageLoanRepository(LoanRepository):
    """LoanRepository over a document StorageInterface"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self._lock = threading.RLock()
        self.logger = get_logger("loan_ledger.repository")

    @contextmanager
    def _guard(self, message: str, loan_id: Optional[str] = None):
        try:
            yield
        except LedgerError:
            raise
        except Exception as e:
            self.logger.error(f"{message}: {e}", extra={"loan_id": loan_id})
            raise PersistenceError(f"{message}: {e}") from e

    @contextmanager
    def atomic(self):
        """Run writes in one storage transaction"""
        with self._lock:
            with self._guard("Transaction failed"):
                with self.storage.atomic():
                    yield

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        with self._guard("Error fetching loan by ID", loan_id):
            row = self.storage.load(LOANS_TABLE, loan_id)
            if not row:
                return None
            return loan_from_row(row, self._load_installments(loan_id))

    def list_loans(self) -> List[Loan]:
        with self._guard("Error fetching loans"):
            # load_all is oldest first; reversing keeps same-timestamp rows newest first
            rows = list(reversed(self.storage.load_all(LOANS_TABLE)))
            rows.sort(key=lambda r: r.get('created_at') or "", reverse=True)
            loans = [loan_from_row(row, self._load_installments(row['id'])) for row in rows]
        self.logger.debug(f"Fetched {len(loans)} loans")
        return loans

    def create_loan(self, loan: Loan) -> str:
        with self._guard("Error creating loan"):
            loan_id = loan.id or str(uuid.uuid4())
            loan.id = loan_id
            loan.version = 0
            if loan.created_at is None:
                loan.created_at = datetime.now(timezone.utc)
            self.storage.save(LOANS_TABLE, loan_id, loan_to_row(loan))
        self.logger.info("Loan created", extra={"loan_id": loan_id})
        return loan_id

    def update_loan(self, loan_id: str, fields: Dict[str, Any],
                    expected_version: Optional[int] = None) -> None:
        updates = loan_updates_to_row(fields)
        with self._lock:
            with self._guard("Error updating loan", loan_id):
                row = self.storage.load(LOANS_TABLE, loan_id)
                if not row:
                    raise LoanNotFound(loan_id)
                stored_version = int(row.get('version') or 0)
                if expected_version is not None and stored_version != expected_version:
                    raise ConflictError(
                        f"Loan {loan_id} was modified concurrently "
                        f"(expected version {expected_version}, found {stored_version})"
                    )
                row.update(updates)
                row['version'] = stored_version + 1
                self.storage.save(LOANS_TABLE, loan_id, row)

    def delete_loan(self, loan_id: str) -> None:
        with self._guard("Error deleting loan", loan_id):
            self.storage.delete(LOANS_TABLE, loan_id)
        self.logger.info("Loan deleted", extra={"loan_id": loan_id})

    def create_installments(self, loan_id: str,
                            installments: Iterable[Union[InstallmentSpec, Installment]]) -> List[Installment]:
        created = []
        with self._guard("Error creating installments", loan_id):
            for installment in installments:
                row = installment_to_row(installment, loan_id, str(uuid.uuid4()))
                self.storage.save(INSTALLMENTS_TABLE, row['id'], row)
                created.append(installment_from_row(row))
        self.logger.info(f"Installments created: {len(created)}", extra={"loan_id": loan_id})
        return created

    def update_installments(self, updates: Sequence[Tuple[str, Dict[str, Any]]]) -> None:
        with self._lock:
            with self._guard("Error updating installments"):
                for installment_id, fields in updates:
                    row = self.storage.load(INSTALLMENTS_TABLE, str(installment_id))
                    if not row:
                        raise PersistenceError(f"Installment {installment_id} does not exist")
                    row.update(installment_updates_to_row(fields))
                    self.storage.save(INSTALLMENTS_TABLE, row['id'], row)

    def delete_installments(self, loan_id: str) -> None:
        with self._guard("Error deleting installments", loan_id):
            deleted = self.storage.delete_where(INSTALLMENTS_TABLE, {'loan_id': loan_id})
        self.logger.info(f"Installments deleted: {deleted}", extra={"loan_id": loan_id})

    def _load_installments(self, loan_id: str) -> List[Installment]:
        rows = self.storage.find(INSTALLMENTS_TABLE, {'loan_id': loan_id})
        installments = [installment_from_row(row) for row in rows]
        installments.sort(key=lambda i: i.installment_number)
        return installments
