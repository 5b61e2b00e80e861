"""
PaymentService — создание платежа Click и запрос статуса для бота.

Ответственности:
- Создание записи Payment в статусе pending с уникальным transaction_param
- Ссылка на оплату my.click.uz (без вызова API шлюза)
- Статус платежа для кнопки «Проверить оплату»

Переходы статуса выполняет только ClickWebhookService.
"""
import logging
from urllib.parse import urlencode
from uuid import uuid4

from sqlalchemy.orm import Session

from app.billing.config import (
    get_access_price,
    get_click_merchant_id,
    get_click_merchant_user_id,
    get_click_pay_url,
    get_click_return_url,
    get_click_service_id,
)
from app.models.payment import Payment, PaymentStatus
from app.services.users.service import UserService

logger = logging.getLogger(__name__)


class AlreadyPaidError(Exception):
    """User already has access; no new payment is created."""


def build_pay_url(transaction_param: str, amount: int) -> str:
    """Redirect link to the Click payment page for this order."""
    query = {
        "service_id": get_click_service_id(),
        "merchant_id": get_click_merchant_id(),
        "amount": amount,
        "transaction_param": transaction_param,
    }
    merchant_user_id = get_click_merchant_user_id()
    if merchant_user_id:
        query["merchant_user_id"] = merchant_user_id
    return_url = get_click_return_url()
    if return_url:
        query["return_url"] = return_url
    return f"{get_click_pay_url()}?{urlencode(query)}"


class PaymentService:
    def __init__(self, db: Session):
        self.db = db

    def create_payment(
        self,
        telegram_id: str,
        amount: int | None = None,
        telegram_username: str | None = None,
        telegram_first_name: str | None = None,
        telegram_last_name: str | None = None,
    ) -> tuple[Payment, str]:
        """
        Создать pending-платёж для пользователя Telegram.
        Returns: (payment, pay_url)
        Raises: AlreadyPaidError если доступ уже открыт.
        """
        user = UserService(self.db).get_or_create_user(
            telegram_id,
            telegram_username=telegram_username,
            telegram_first_name=telegram_first_name,
            telegram_last_name=telegram_last_name,
        )
        if user.has_paid:
            raise AlreadyPaidError(user.id)

        amount = amount if amount is not None else get_access_price()
        if amount <= 0:
            raise ValueError("amount must be positive")

        payment = Payment(
            transaction_param=uuid4().hex,
            user_id=user.id,
            amount=amount,
            status=PaymentStatus.PENDING.value,
            payment_metadata=[],
        )
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        logger.info(
            "payment_created",
            extra={
                "payment_id": payment.id,
                "user_id": user.id,
                "transaction_param": payment.transaction_param,
            },
        )
        return payment, build_pay_url(payment.transaction_param, amount)

    def get_by_transaction_param(self, transaction_param: str) -> Payment | None:
        return (
            self.db.query(Payment)
            .filter(Payment.transaction_param == transaction_param)
            .one_or_none()
        )

    def get_status(self, transaction_param: str) -> dict | None:
        """Статус платежа и флаг доступа владельца; None если платёж не найден."""
        payment = self.get_by_transaction_param(transaction_param)
        if not payment:
            return None
        user = UserService(self.db).get(payment.user_id)
        return {
            "transaction_param": payment.transaction_param,
            "status": payment.status,
            "amount": payment.amount,
            "has_paid": bool(user and user.has_paid),
            "created_at": payment.created_at,
            "completed_at": payment.completed_at,
        }
