"""
Celery tasks: повторная выдача доступа после оплаты и уведомление пользователя.

retry_grant_access ставится из webhook, если grant упал после коммита PAID.
sweep_ungranted_payments (beat) — страховка на случай, если не удалось даже
поставить задачу в очередь.
"""
import logging

from app.billing.config import get_grant_retry_delay_seconds, get_grant_retry_max_attempts
from app.billing.errors import GrantError
from app.billing.grants import SqlAccessGrantNotifier
from app.core.celery_app import celery_app
from app.db.session import SessionLocal
from app.models.payment import Payment, PaymentStatus
from app.models.user import User
from app.services.telegram.client import TelegramClient
from app.utils.metrics import access_grants_total

logger = logging.getLogger(__name__)

ACCESS_GRANTED_TEXT = (
    "✅ To'lov muvaffaqiyatli qabul qilindi!\n\n"
    "Endi barcha latifalar siz uchun ochiq. Davom etish uchun /start buyrug'ini bering."
)


@celery_app.task(bind=True, name="app.billing.tasks.retry_grant_access")
def retry_grant_access(self, payment_id: str) -> dict:
    """Re-run the access grant for a committed PAID payment."""
    db = SessionLocal()
    try:
        payment = db.query(Payment).filter(Payment.id == payment_id).one_or_none()
        if not payment:
            logger.error("grant_retry_payment_not_found", extra={"payment_id": payment_id})
            return {"ok": False, "error": "payment_not_found"}
        if payment.status != PaymentStatus.PAID.value:
            logger.error(
                "grant_retry_payment_not_paid",
                extra={"payment_id": payment_id, "status": payment.status},
            )
            return {"ok": False, "error": "not_paid"}
        user_id = payment.user_id
        try:
            SqlAccessGrantNotifier(db).grant_access(user_id)
        except GrantError as e:
            logger.warning(
                "grant_retry_failed",
                extra={"payment_id": payment_id, "user_id": user_id, "attempt": self.request.retries + 1},
            )
            raise self.retry(
                exc=e,
                countdown=get_grant_retry_delay_seconds(),
                max_retries=get_grant_retry_max_attempts(),
            )
        queue_access_notification(user_id)
        return {"ok": True}
    finally:
        db.close()


@celery_app.task(name="app.billing.tasks.sweep_ungranted_payments")
def sweep_ungranted_payments() -> dict:
    """Grant access for every PAID payment whose owner still has has_paid=False."""
    db = SessionLocal()
    try:
        rows = (
            db.query(Payment.id, Payment.user_id)
            .join(User, User.id == Payment.user_id)
            .filter(Payment.status == PaymentStatus.PAID.value, User.has_paid.is_(False))
            .all()
        )
        notifier = SqlAccessGrantNotifier(db)
        granted = 0
        for payment_id, user_id in rows:
            try:
                notifier.grant_access(user_id)
            except GrantError:
                logger.exception(
                    "grant_sweep_failed",
                    extra={"payment_id": payment_id, "user_id": user_id},
                )
                continue
            granted += 1
            queue_access_notification(user_id)
        logger.info("grant_sweep_done", extra={"found": len(rows), "granted": granted})
        return {"found": len(rows), "granted": granted}
    except Exception:
        db.rollback()
        logger.exception("grant_sweep_error")
        return {"found": 0, "granted": 0, "error": "exception"}
    finally:
        db.close()


@celery_app.task(name="app.billing.tasks.notify_access_granted")
def notify_access_granted(user_id: str) -> dict:
    """Tell the user in Telegram that content is unlocked. Best effort."""
    db = SessionLocal()
    telegram = TelegramClient()
    try:
        if not telegram.enabled:
            return {"ok": False, "error": "telegram_disabled"}
        user = db.query(User).filter(User.id == user_id).one_or_none()
        if not user or not user.telegram_id:
            return {"ok": False, "error": "user_not_found"}
        try:
            telegram.send_message(user.telegram_id, ACCESS_GRANTED_TEXT)
        except Exception:
            logger.exception("access_notify_fail", extra={"user_id": user_id})
            return {"ok": False, "error": "send_failed"}
        return {"ok": True}
    finally:
        telegram.close()
        db.close()


def queue_grant_retry(payment_id: str) -> None:
    """Enqueue retry_grant_access; if the broker is down the beat sweep picks the payment up."""
    try:
        retry_grant_access.apply_async(args=[payment_id], countdown=get_grant_retry_delay_seconds())
        access_grants_total.labels(result="queued").inc()
    except Exception:
        logger.exception("grant_retry_enqueue_failed", extra={"payment_id": payment_id})


def queue_access_notification(user_id: str) -> None:
    try:
        notify_access_granted.delay(user_id)
    except Exception:
        logger.exception("access_notify_enqueue_failed", extra={"user_id": user_id})
