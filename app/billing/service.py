"""
ClickWebhookService — обработка callback'ов Click (prepare / complete).

Ответственности:
- валидация полей и подписи до любой логики переходов
- сериализация callback'ов одного transaction_param (advisory lock)
- lookup -> сверка суммы -> шаг state machine -> compare-and-set в store
- выдача доступа после перехода в PAID (сбой выдачи уходит в retry, PAID не откатывается)
- формирование ответа в кодах Click
"""
import logging
import time
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Mapping

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.billing.codes import (
    NOTE_CANCELLED,
    NOTE_GATEWAY_ID_MISMATCH,
    NOTE_SUCCESS,
    NOTE_TRANSACTION_NOT_FOUND,
    NOTE_UNKNOWN_ACTION,
    ClickAction,
    ClickError,
)
from app.billing.config import get_cas_retry_attempts, get_click_secret_key, get_click_service_id
from app.billing.errors import (
    BillingError,
    ConflictError,
    GrantError,
    NotFoundError,
    StorageError,
)
from app.billing.grants import AccessGrantNotifier, SqlAccessGrantNotifier
from app.billing.locks import RedisTransactionLocks, TransactionLocks
from app.billing.models import (
    ACTION_ADAPTER,
    ClickCompleteRequest,
    ClickPrepareRequest,
    ClickResponse,
    ClickResult,
    PaymentRecord,
)
from app.billing.signature import check_amount, validate_callback
from app.billing.state_machine import Transition, on_complete, on_prepare
from app.billing.store import SqlTransactionStore, TransactionStore
from app.models.payment import PaymentStatus
from app.utils.metrics import (
    click_callback_duration_seconds,
    click_callbacks_total,
    payment_transitions_total,
)

logger = logging.getLogger(__name__)


def parse_action(raw: Any) -> ClickAction | None:
    """0 -> PREPARE, 1 -> COMPLETE; всё остальное (включая bool и мусор) -> None.
    Разбор тот же, что у поля action в ClickPrepareRequest."""
    if raw is None:
        return None
    try:
        return ClickAction(ACTION_ADAPTER.validate_python(raw))
    except (PydanticValidationError, ValueError):
        return None


def _echo_ids(params: Mapping[str, Any]) -> dict[str, str]:
    ids = {}
    for key in ("click_trans_id", "merchant_trans_id"):
        value = params.get(key)
        if value not in (None, ""):
            ids[key] = str(value)
    return ids


def _event(kind: str, request: ClickPrepareRequest) -> dict[str, Any]:
    return {
        "event": kind,
        "at": datetime.now(timezone.utc).isoformat(),
        "params": request.audit_params(),
    }


class ClickWebhookService:
    def __init__(
        self,
        store: TransactionStore,
        locks: TransactionLocks,
        notifier: AccessGrantNotifier,
        *,
        secret_key: str | None = None,
        service_id: str | None = None,
        schedule_grant_retry: Callable[[str], None] | None = None,
        schedule_notification: Callable[[str], None] | None = None,
    ) -> None:
        self.store = store
        self.locks = locks
        self.notifier = notifier
        self.secret_key = secret_key if secret_key is not None else get_click_secret_key()
        self.service_id = service_id if service_id is not None else get_click_service_id()
        if schedule_grant_retry is None or schedule_notification is None:
            from app.billing.tasks import queue_access_notification, queue_grant_retry

            schedule_grant_retry = schedule_grant_retry or queue_grant_retry
            schedule_notification = schedule_notification or queue_access_notification
        self.schedule_grant_retry = schedule_grant_retry
        self.schedule_notification = schedule_notification

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def handle(self, params: Mapping[str, Any]) -> ClickResult:
        """Dispatch on the `action` field."""
        action = parse_action(params.get("action"))
        if action is None:
            logger.warning(
                "click_unknown_action",
                extra={"action": str(params.get("action")), **_echo_ids(params)},
            )
            click_callbacks_total.labels(action="unknown", error_code=str(int(ClickError.ACTION_NOT_FOUND))).inc()
            return ClickResult(
                response=ClickResponse(error=int(ClickError.ACTION_NOT_FOUND), error_note=NOTE_UNKNOWN_ACTION),
                http_status=400,
            )
        if action == ClickAction.PREPARE:
            return self.handle_prepare(params)
        return self.handle_complete(params)

    def handle_prepare(self, params: Mapping[str, Any]) -> ClickResult:
        started = time.time()
        try:
            request = validate_callback(
                params, ClickAction.PREPARE, secret_key=self.secret_key, service_id=self.service_id
            )
            with self.locks.hold(request.merchant_trans_id):
                payment = self._prepare_locked(request)
            result = ClickResult(
                response=ClickResponse(
                    click_trans_id=request.click_trans_id,
                    merchant_trans_id=request.merchant_trans_id,
                    merchant_prepare_id=payment.id,
                    error=int(ClickError.SUCCESS),
                    error_note=NOTE_SUCCESS,
                )
            )
        except BillingError as e:
            result = self._reject("prepare", e, params)
        self._observe("prepare", result, started)
        return result

    def handle_complete(self, params: Mapping[str, Any]) -> ClickResult:
        started = time.time()
        try:
            request = validate_callback(
                params, ClickAction.COMPLETE, secret_key=self.secret_key, service_id=self.service_id
            )
            with self.locks.hold(request.merchant_trans_id):
                payment, transition = self._complete_locked(request)
                if transition.grants_access:
                    self._grant(payment)
            if transition.next_status == PaymentStatus.PAID:
                code, note = ClickError.SUCCESS, NOTE_SUCCESS
            else:
                code, note = ClickError.TRANSACTION_CANCELLED, NOTE_CANCELLED
            result = ClickResult(
                response=ClickResponse(
                    click_trans_id=request.click_trans_id,
                    merchant_trans_id=request.merchant_trans_id,
                    merchant_confirm_id=payment.id,
                    error=int(code),
                    error_note=note,
                )
            )
        except BillingError as e:
            result = self._reject("complete", e, params)
        self._observe("complete", result, started)
        return result

    # ------------------------------------------------------------------
    # Locked sections: lookup -> amount -> transition -> persist
    # ------------------------------------------------------------------

    def _lookup(self, transaction_param: str) -> PaymentRecord:
        payment = self.store.find_by_transaction_param(transaction_param)
        if payment is None:
            raise NotFoundError(ClickError.TRANSACTION_NOT_FOUND, NOTE_TRANSACTION_NOT_FOUND)
        return payment

    def _prepare_locked(self, request: ClickPrepareRequest) -> PaymentRecord:
        attempts = get_cas_retry_attempts()
        for attempt in range(1, attempts + 1):
            payment = self._lookup(request.merchant_trans_id)
            check_amount(request, payment.amount)
            transition = on_prepare(payment, request.click_trans_id)
            if transition.replay:
                logger.info(
                    "click_prepare_replay",
                    extra={"payment_id": payment.id, "click_trans_id": request.click_trans_id},
                )
                return payment
            if self.store.assign_gateway_id(
                payment.id, transition.assign_gateway_id, event=_event("prepare", request)
            ):
                payment_transitions_total.labels(event="prepare", new_status=payment.status.value).inc()
                logger.info(
                    "click_prepare_accepted",
                    extra={
                        "payment_id": payment.id,
                        "transaction_param": payment.transaction_param,
                        "click_trans_id": request.click_trans_id,
                    },
                )
                return payment.model_copy(update={"gateway_transaction_id": transition.assign_gateway_id})
            logger.info(
                "click_prepare_cas_lost",
                extra={"payment_id": payment.id, "attempt": attempt},
            )
        raise StorageError(
            f"prepare for {request.merchant_trans_id} lost compare-and-set {attempts} times"
        )

    def _complete_locked(self, request: ClickCompleteRequest) -> tuple[PaymentRecord, Transition]:
        attempts = get_cas_retry_attempts()
        for attempt in range(1, attempts + 1):
            payment = self._lookup(request.merchant_trans_id)
            if payment.gateway_transaction_id is not None:
                correlated = self.store.find_by_transaction_param_and_gateway_id(
                    request.merchant_trans_id, request.click_trans_id
                )
                if correlated is None:
                    # Тот же заказ, но другой click_trans_id: отдельная транзакция, не сливаем.
                    raise ConflictError(ClickError.TRANSACTION_DOES_NOT_EXIST, NOTE_GATEWAY_ID_MISMATCH)
                payment = correlated
            check_amount(request, payment.amount)
            transition = on_complete(
                payment, request.click_trans_id, request.merchant_prepare_id, request.error
            )
            if transition.replay:
                logger.info(
                    "click_complete_replay",
                    extra={
                        "payment_id": payment.id,
                        "click_trans_id": request.click_trans_id,
                        "status": payment.status.value,
                    },
                )
                return payment, transition
            fields = {
                "merchant_reference_id": request.merchant_prepare_id,
                "outcome_code": request.error,
            }
            if self.store.compare_and_set_status(
                payment.id,
                transition.current,
                transition.next_status,
                fields=fields,
                event=_event("complete", request),
            ):
                payment_transitions_total.labels(
                    event="complete", new_status=transition.next_status.value
                ).inc()
                logger.info(
                    "click_complete_accepted",
                    extra={
                        "payment_id": payment.id,
                        "transaction_param": payment.transaction_param,
                        "click_trans_id": request.click_trans_id,
                        "new_status": transition.next_status.value,
                        "error_code": request.error,
                    },
                )
                return payment.model_copy(update={"status": transition.next_status, **fields}), transition
            logger.info(
                "click_complete_cas_lost",
                extra={"payment_id": payment.id, "attempt": attempt},
            )
        raise StorageError(
            f"complete for {request.merchant_trans_id} lost compare-and-set {attempts} times"
        )

    def _grant(self, payment: PaymentRecord) -> None:
        """PAID уже закоммичен: сбой выдачи доступа логируется и уходит в retry."""
        try:
            self.notifier.grant_access(payment.user_id)
        except GrantError as e:
            logger.error(
                "access_grant_failed",
                extra={"payment_id": payment.id, "user_id": payment.user_id, "error": e.reason},
            )
            self.schedule_grant_retry(payment.id)
            return
        self.schedule_notification(payment.user_id)

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def _reject(self, kind: str, error: BillingError, params: Mapping[str, Any]) -> ClickResult:
        ids = _echo_ids(params)
        extra = {"action": kind, "error_code": error.code, **ids}
        if isinstance(error, StorageError):
            logger.error(
                "click_callback_internal_error",
                extra={**extra, "error": error.detail},
                exc_info=True,
            )
        elif isinstance(error, ConflictError):
            logger.warning("click_callback_conflict", extra={**extra, "error": error.note})
        else:
            logger.info("click_callback_rejected", extra={**extra, "error": error.note})
        return ClickResult(
            response=ClickResponse(error=error.code, error_note=error.note, **ids),
            http_status=error.http_status,
        )

    def _observe(self, kind: str, result: ClickResult, started: float) -> None:
        click_callbacks_total.labels(action=kind, error_code=str(result.response.error)).inc()
        click_callback_duration_seconds.labels(action=kind).observe(time.time() - started)


@lru_cache(maxsize=1)
def get_transaction_locks() -> TransactionLocks:
    return RedisTransactionLocks()


def build_webhook_service(db: Session) -> ClickWebhookService:
    """Production wiring: SQL store + notifier on the request session, Redis locks."""
    return ClickWebhookService(
        store=SqlTransactionStore(db),
        locks=get_transaction_locks(),
        notifier=SqlAccessGrantNotifier(db),
    )
