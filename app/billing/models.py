"""
DTO billing: входящие callback'и Click, снимок платежа из хранилища и ответ шлюзу.
Нетипизированный JSON/form от Click превращается в модель до любой логики переходов.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field, TypeAdapter, field_validator

from app.models.payment import PaymentStatus


def _to_stripped_str(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


def _to_action(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("action must be an integer, not bool")
    if isinstance(value, str):
        return value.strip()
    return value


# Одно правило разбора action для диспетчера (parse_action) и для моделей запросов.
ActionValue = Annotated[int, BeforeValidator(_to_action)]
ACTION_ADAPTER = TypeAdapter(ActionValue)


# ----- Входящие callback'и -----


class ClickPrepareRequest(BaseModel):
    """action=0. Все поля, участвующие в подписи, обязательны."""

    click_trans_id: str = Field(..., min_length=1)
    service_id: str = Field(..., min_length=1)
    click_paydoc_id: str | None = None
    merchant_trans_id: str = Field(..., min_length=1)
    amount: str = Field(..., min_length=1)
    action: ActionValue
    error: int = 0
    error_note: str | None = None
    sign_time: str = Field(..., min_length=1)
    sign_string: str = Field(..., min_length=1)

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator(
        "click_trans_id",
        "service_id",
        "click_paydoc_id",
        "merchant_trans_id",
        "amount",
        "sign_time",
        "sign_string",
        mode="before",
    )
    @classmethod
    def coerce_str(cls, v: Any) -> Any:
        return _to_stripped_str(v)

    @property
    def merchant_prepare_part(self) -> str:
        """Часть строки подписи между merchant_trans_id и amount (пусто для prepare)."""
        return ""

    def audit_params(self) -> dict[str, Any]:
        """Параметры для журнала payment_metadata, без подписи."""
        return self.model_dump(exclude={"sign_string"}, exclude_none=True)


class ClickCompleteRequest(ClickPrepareRequest):
    """action=1: дополнительно merchant_prepare_id и итог списания в error."""

    merchant_prepare_id: str = Field(..., min_length=1)
    error: int

    @field_validator("merchant_prepare_id", mode="before")
    @classmethod
    def coerce_prepare_id(cls, v: Any) -> Any:
        return _to_stripped_str(v)

    @property
    def merchant_prepare_part(self) -> str:
        return self.merchant_prepare_id


# ----- Снимок записи Payment (контракт Transaction Store) -----


class PaymentRecord(BaseModel):
    """Неизменяемый снимок платежа; store отдаёт его вместо ORM-объекта."""

    id: str
    transaction_param: str
    user_id: str
    amount: int
    status: PaymentStatus
    gateway_transaction_id: str | None = None
    merchant_reference_id: str | None = None
    outcome_code: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"frozen": True, "from_attributes": True}


# ----- Ответ шлюзу -----


class ClickResponse(BaseModel):
    """Тело ответа Click: код ошибки обязателен даже при успехе."""

    click_trans_id: str | None = None
    merchant_trans_id: str | None = None
    merchant_prepare_id: str | None = None
    merchant_confirm_id: str | None = None
    error: int
    error_note: str

    model_config = {"frozen": True}

    def as_body(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ClickResult(BaseModel):
    """Ответ + HTTP статус. Бизнес-отказы идут с 200, внутренние ошибки — с 500."""

    response: ClickResponse
    http_status: int = 200

    model_config = {"frozen": True}
