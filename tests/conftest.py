"""
Общие фикстуры: окружение для Settings, подписанные callback'и Click,
in-memory store и локальные lock'и вместо PostgreSQL/Redis.
"""
import hashlib
import os

# Settings() читается при импорте app.core.config, поэтому env выставляется до импортов app.*
os.environ.setdefault("DATABASE_URL", "sqlite:///./.pytest-paywall.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("CELERY_BROKER_URL", "redis://localhost:6379/1")
os.environ.setdefault("CELERY_RESULT_BACKEND", "redis://localhost:6379/2")
os.environ.setdefault("CLICK_SERVICE_ID", "1111")
os.environ.setdefault("CLICK_MERCHANT_ID", "2222")
os.environ.setdefault("CLICK_SECRET_KEY", "test-click-secret-key")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")

from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402

from app.billing.errors import GrantError  # noqa: E402
from app.billing.grants import AccessGrantNotifier  # noqa: E402
from app.billing.locks import LocalTransactionLocks  # noqa: E402
from app.billing.models import PaymentRecord  # noqa: E402
from app.billing.service import ClickWebhookService  # noqa: E402
from app.billing.store import InMemoryTransactionStore  # noqa: E402
from app.models.payment import PaymentStatus  # noqa: E402

SECRET = os.environ["CLICK_SECRET_KEY"]
SERVICE_ID = os.environ["CLICK_SERVICE_ID"]
PAYMENT_ID = "pay-1"
TRANSACTION_PARAM = "ord-1"
USER_ID = "user-1"
AMOUNT = 50000


def click_sign(params: dict, secret: str = SECRET) -> str:
    raw = (
        f"{params['click_trans_id']}{params['service_id']}{secret}{params['merchant_trans_id']}"
        f"{params.get('merchant_prepare_id', '')}{params['amount']}{params['action']}{params['sign_time']}"
    )
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def prepare_params(
    transaction_param: str = TRANSACTION_PARAM,
    amount="50000",
    click_trans_id: str = "5001",
    secret: str = SECRET,
    **overrides,
) -> dict:
    params = {
        "click_trans_id": click_trans_id,
        "service_id": SERVICE_ID,
        "click_paydoc_id": "9001",
        "merchant_trans_id": transaction_param,
        "amount": amount,
        "action": "0",
        "error": "0",
        "error_note": "Success",
        "sign_time": "2024-05-01 12:00:00",
    }
    params.update(overrides)
    params["sign_string"] = click_sign(params, secret)
    return params


def complete_params(
    transaction_param: str = TRANSACTION_PARAM,
    amount="50000",
    click_trans_id: str = "5001",
    merchant_prepare_id: str = PAYMENT_ID,
    error: int = 0,
    secret: str = SECRET,
    **overrides,
) -> dict:
    params = {
        "click_trans_id": click_trans_id,
        "service_id": SERVICE_ID,
        "click_paydoc_id": "9001",
        "merchant_trans_id": transaction_param,
        "merchant_prepare_id": merchant_prepare_id,
        "amount": amount,
        "action": "1",
        "error": str(error),
        "error_note": "Success" if error == 0 else "Failed",
        "sign_time": "2024-05-01 12:00:05",
    }
    params.update(overrides)
    params["sign_string"] = click_sign(params, secret)
    return params


def make_record(**kwargs) -> PaymentRecord:
    data = {
        "id": PAYMENT_ID,
        "transaction_param": TRANSACTION_PARAM,
        "user_id": USER_ID,
        "amount": AMOUNT,
        "status": PaymentStatus.PENDING,
    }
    data.update(kwargs)
    return PaymentRecord(**data)


class FakeNotifier(AccessGrantNotifier):
    """Выставляет флаг в памяти; failures — сколько первых вызовов падают."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls: list[str] = []
        self.granted: set[str] = set()

    def grant_access(self, user_id: str) -> None:
        self.calls.append(user_id)
        if len(self.calls) <= self.failures:
            raise GrantError(user_id, "db down")
        self.granted.add(user_id)


@pytest.fixture
def store():
    return InMemoryTransactionStore([make_record()])


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def service(store, notifier):
    return ClickWebhookService(
        store,
        LocalTransactionLocks(wait_seconds=2),
        notifier,
        secret_key=SECRET,
        service_id=SERVICE_ID,
        schedule_grant_retry=MagicMock(),
        schedule_notification=MagicMock(),
    )
