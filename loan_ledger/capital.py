"""
Capital Ledger Module

Tracks the single pooled balance of lendable cash. Disbursements draw it
down, payments replenish it. Tracking is advisory: a failed update is logged
and never fails or rolls back the loan operation that caused it.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
import threading

from .events import DomainEvent, EventDispatcher, EventPayload
from .logging_config import get_logger, log_action
from .money import ZERO, round_money, to_decimal
from .storage import StorageInterface


class CapitalLedger:
    """
    Single-row capital pool with last-write-wins semantics

    The balance lives in one storage record and is only changed through
    on_disbursement(), on_payment_received() and set_balance().
    """

    ROW_ID = "1"

    def __init__(self, storage: StorageInterface, table_name: str = "capital"):
        self.storage = storage
        self.table_name = table_name
        self._lock = threading.Lock()
        self.logger = get_logger("loan_ledger.capital")

    def get_balance(self) -> Decimal:
        """Current capital total, zero when the pool was never seeded"""
        row = self.storage.load(self.table_name, self.ROW_ID)
        if not row:
            return ZERO
        return round_money(row.get('total'))

    def set_balance(self, total) -> Decimal:
        """Seed or overwrite the pool (administrative top-up)"""
        total = round_money(total)
        with self._lock:
            self._write(total)
        log_action(self.logger, "info", "Capital balance set",
                   action="capital.set", resource="capital", extra={"total": str(total)})
        return total

    def on_disbursement(self, principal) -> Optional[Decimal]:
        """
        Draw a loan's principal from the pool

        When the pool covers the principal it is reduced by it. When it does
        not, the shortfall (principal - balance) becomes the new balance.

        Returns:
            New balance, or None if the update failed
        """
        try:
            principal = round_money(principal)
            if principal <= ZERO:
                raise ValueError(f"Disbursement must be positive, got {principal}")

            with self._lock:
                current = self.get_balance()
                if current >= principal:
                    new_total = current - principal
                else:
                    # TODO: confirm with the business whether an underfunded
                    # disbursement should replace the balance with the shortfall
                    new_total = principal - current
                self._write(new_total)
        except Exception as e:
            self.logger.warning(f"Failed to update capital after loan creation: {e}", exc_info=True)
            return None

        log_action(self.logger, "info", "Capital updated after loan creation",
                   action="capital.disbursement", resource="capital",
                   extra={"previous": str(current), "new": str(new_total), "principal": str(principal)})
        return new_total

    def on_payment_received(self, cash_amount) -> Optional[Decimal]:
        """
        Add received cash to the pool

        Zero, negative or non-numeric amounts are skipped.

        Returns:
            New balance, or None if skipped or the update failed
        """
        try:
            amount = to_decimal(cash_amount)
        except ValueError:
            return None
        if not amount.is_finite() or amount <= ZERO:
            return None

        try:
            with self._lock:
                current = self.get_balance()
                new_total = round_money(current + amount)
                self._write(new_total)
        except Exception as e:
            self.logger.warning(f"Failed to update capital after payment: {e}", exc_info=True)
            return None

        log_action(self.logger, "info", "Capital updated after payment",
                   action="capital.payment", resource="capital",
                   extra={"previous": str(current), "new": str(new_total)})
        return new_total

    def attach(self, dispatcher: EventDispatcher) -> None:
        """Follow loan creation and payment events"""
        dispatcher.subscribe(DomainEvent.LOAN_CREATED, self._handle_loan_created)
        dispatcher.subscribe(DomainEvent.LOAN_PAYMENT_RECEIVED, self._handle_payment_received)

    def _handle_loan_created(self, event: EventPayload) -> None:
        self.on_disbursement(event.data.get('principal'))

    def _handle_payment_received(self, event: EventPayload) -> None:
        self.on_payment_received(event.data.get('amount'))

    def _write(self, total: Decimal) -> None:
        self.storage.save(self.table_name, self.ROW_ID, {
            'id': self.ROW_ID,
            'total': str(total),
            'updated_at': datetime.now(timezone.utc).isoformat()
        })
