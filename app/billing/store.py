"""
Transaction Store: узкий контракт хранения Payment для движка Click.

SqlTransactionStore — рабочая реализация (PostgreSQL через SQLAlchemy),
InMemoryTransactionStore — потокобезопасный двойник для тестов и локального запуска.
Обе реализации гарантируют атомарный compare-and-set статуса: даже без
внешнего lock две конфликтующие финализации не могут примениться обе.
"""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.billing.codes import NOTE_GATEWAY_ID_MISMATCH, ClickError
from app.billing.errors import ConflictError, StorageError
from app.billing.models import PaymentRecord
from app.models.payment import TERMINAL_STATUSES, Payment, PaymentStatus
from app.models.user import User  # noqa: F401  (users.id FK target must be registered)

logger = logging.getLogger(__name__)

# Поля, которые разрешено менять вместе со статусом; остальные неизменяемы.
MUTABLE_FIELDS = frozenset({"merchant_reference_id", "outcome_code"})


def _check_fields(fields: dict[str, Any] | None) -> dict[str, Any]:
    fields = dict(fields or {})
    unknown = set(fields) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"immutable payment fields: {sorted(unknown)}")
    return fields


class TransactionStore(ABC):
    @abstractmethod
    def find_by_transaction_param(self, transaction_param: str) -> PaymentRecord | None:
        raise NotImplementedError

    @abstractmethod
    def find_by_transaction_param_and_gateway_id(
        self, transaction_param: str, gateway_id: str
    ) -> PaymentRecord | None:
        raise NotImplementedError

    @abstractmethod
    def compare_and_set_status(
        self,
        payment_id: str,
        expected_status: PaymentStatus,
        new_status: PaymentStatus,
        fields: dict[str, Any] | None = None,
        event: dict[str, Any] | None = None,
    ) -> bool:
        """Write new_status only if the row still has expected_status. False = conflict."""
        raise NotImplementedError

    @abstractmethod
    def assign_gateway_id(
        self,
        payment_id: str,
        gateway_id: str,
        event: dict[str, Any] | None = None,
    ) -> bool:
        """Bind gateway id once. False = already assigned (or no longer pending)."""
        raise NotImplementedError


class SqlTransactionStore(TransactionStore):
    def __init__(self, db: Session):
        self.db = db

    def _one(self, *criteria) -> PaymentRecord | None:
        try:
            payment = (
                self.db.query(Payment)
                .populate_existing()
                .filter(*criteria)
                .one_or_none()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"payment lookup failed: {e}") from e
        return PaymentRecord.model_validate(payment) if payment else None

    def find_by_transaction_param(self, transaction_param: str) -> PaymentRecord | None:
        return self._one(Payment.transaction_param == transaction_param)

    def find_by_transaction_param_and_gateway_id(
        self, transaction_param: str, gateway_id: str
    ) -> PaymentRecord | None:
        return self._one(
            Payment.transaction_param == transaction_param,
            Payment.gateway_transaction_id == gateway_id,
        )

    def _append_event(self, payment_id: str, event: dict[str, Any]) -> None:
        # Строка уже заблокирована UPDATE'ом в этой же транзакции.
        payment = self.db.get(Payment, payment_id, populate_existing=True)
        payment.payment_metadata = [*(payment.payment_metadata or []), event]
        self.db.flush()

    def compare_and_set_status(
        self,
        payment_id: str,
        expected_status: PaymentStatus,
        new_status: PaymentStatus,
        fields: dict[str, Any] | None = None,
        event: dict[str, Any] | None = None,
    ) -> bool:
        values = _check_fields(fields)
        now = datetime.now(timezone.utc)
        values.update(status=new_status.value, updated_at=now)
        if new_status in TERMINAL_STATUSES:
            values["completed_at"] = now
        try:
            result = self.db.execute(
                update(Payment)
                .where(Payment.id == payment_id, Payment.status == expected_status.value)
                .values(**values)
            )
            if result.rowcount == 0:
                self.db.rollback()
                logger.info(
                    "payment_cas_conflict",
                    extra={
                        "payment_id": payment_id,
                        "expected_status": expected_status.value,
                        "new_status": new_status.value,
                    },
                )
                return False
            if event:
                self._append_event(payment_id, event)
            self.db.commit()
            return True
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"compare_and_set_status failed: {e}") from e

    def assign_gateway_id(
        self,
        payment_id: str,
        gateway_id: str,
        event: dict[str, Any] | None = None,
    ) -> bool:
        try:
            result = self.db.execute(
                update(Payment)
                .where(
                    Payment.id == payment_id,
                    Payment.gateway_transaction_id.is_(None),
                    Payment.status == PaymentStatus.PENDING.value,
                )
                .values(gateway_transaction_id=gateway_id, updated_at=datetime.now(timezone.utc))
            )
            if result.rowcount == 0:
                self.db.rollback()
                return False
            if event:
                self._append_event(payment_id, event)
            self.db.commit()
            return True
        except IntegrityError as e:
            # click_trans_id уже привязан к другому платежу
            self.db.rollback()
            logger.warning(
                "gateway_id_bound_elsewhere",
                extra={"payment_id": payment_id, "click_trans_id": gateway_id},
            )
            raise ConflictError(ClickError.TRANSACTION_DOES_NOT_EXIST, NOTE_GATEWAY_ID_MISMATCH) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"assign_gateway_id failed: {e}") from e


class InMemoryTransactionStore(TransactionStore):
    """Thread-safe in-process store. events[payment_id] mirrors payment_metadata."""

    def __init__(self, records: list[PaymentRecord] | None = None) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, PaymentRecord] = {}
        self.events: dict[str, list[dict[str, Any]]] = {}
        for record in records or []:
            self.add(record)

    def add(self, record: PaymentRecord) -> PaymentRecord:
        with self._lock:
            if any(r.transaction_param == record.transaction_param for r in self._records.values()):
                raise ValueError(f"duplicate transaction_param {record.transaction_param}")
            self._records[record.id] = record
            self.events.setdefault(record.id, [])
        return record

    def get(self, payment_id: str) -> PaymentRecord | None:
        with self._lock:
            return self._records.get(payment_id)

    def find_by_transaction_param(self, transaction_param: str) -> PaymentRecord | None:
        with self._lock:
            for record in self._records.values():
                if record.transaction_param == transaction_param:
                    return record
        return None

    def find_by_transaction_param_and_gateway_id(
        self, transaction_param: str, gateway_id: str
    ) -> PaymentRecord | None:
        record = self.find_by_transaction_param(transaction_param)
        if record and record.gateway_transaction_id == gateway_id:
            return record
        return None

    def compare_and_set_status(
        self,
        payment_id: str,
        expected_status: PaymentStatus,
        new_status: PaymentStatus,
        fields: dict[str, Any] | None = None,
        event: dict[str, Any] | None = None,
    ) -> bool:
        values = _check_fields(fields)
        with self._lock:
            record = self._records.get(payment_id)
            if record is None or record.status != expected_status:
                return False
            values.update(status=new_status, updated_at=datetime.now(timezone.utc))
            self._records[payment_id] = record.model_copy(update=values)
            if event:
                self.events[payment_id].append(event)
            return True

    def assign_gateway_id(
        self,
        payment_id: str,
        gateway_id: str,
        event: dict[str, Any] | None = None,
    ) -> bool:
        with self._lock:
            record = self._records.get(payment_id)
            if record is None or record.gateway_transaction_id is not None:
                return False
            if record.status != PaymentStatus.PENDING:
                return False
            if any(r.gateway_transaction_id == gateway_id for r in self._records.values()):
                raise ConflictError(ClickError.TRANSACTION_DOES_NOT_EXIST, NOTE_GATEWAY_ID_MISMATCH)
            self._records[payment_id] = record.model_copy(
                update={"gateway_transaction_id": gateway_id, "updated_at": datetime.now(timezone.utc)}
            )
            if event:
                self.events[payment_id].append(event)
            return True
