"""
Проверка подлинности и параметров callback'ов Click. Чистые функции, без I/O.

Порядок (до первой ошибки): обязательные поля -> подпись -> сумма.
Сумма сверяется только после того, как найдена запись Payment, поэтому
check_amount вызывается обработчиком отдельно.
"""
from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from app.billing.codes import (
    NOTE_BAD_REQUEST,
    NOTE_INCORRECT_AMOUNT,
    NOTE_SIGN_CHECK_FAILED,
    ClickAction,
    ClickError,
)
from app.billing.errors import ValidationError
from app.billing.models import ClickCompleteRequest, ClickPrepareRequest

_REQUEST_MODELS = {
    ClickAction.PREPARE: ClickPrepareRequest,
    ClickAction.COMPLETE: ClickCompleteRequest,
}


def parse_request(
    params: Mapping[str, Any], kind: ClickAction
) -> ClickPrepareRequest | ClickCompleteRequest:
    """Проверить наличие обязательных полей для kind и вернуть типизированный запрос."""
    model = _REQUEST_MODELS[kind]
    try:
        request = model.model_validate(dict(params))
    except PydanticValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise ValidationError(
            ClickError.BAD_REQUEST, f"{NOTE_BAD_REQUEST}: invalid {', '.join(fields)}"
        ) from e
    if request.action != kind:
        raise ValidationError(ClickError.BAD_REQUEST, f"{NOTE_BAD_REQUEST}: action mismatch")
    return request


def build_sign_string(
    request: ClickPrepareRequest | ClickCompleteRequest, secret_key: str
) -> str:
    """md5(click_trans_id + service_id + secret + merchant_trans_id [+ merchant_prepare_id] + amount + action + sign_time)."""
    raw = (
        f"{request.click_trans_id}"
        f"{request.service_id}"
        f"{secret_key}"
        f"{request.merchant_trans_id}"
        f"{request.merchant_prepare_part}"
        f"{request.amount}"
        f"{request.action}"
        f"{request.sign_time}"
    )
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def verify_signature(
    request: ClickPrepareRequest | ClickCompleteRequest,
    *,
    secret_key: str,
    service_id: str,
) -> None:
    """Raise ValidationError unless the request belongs to our service and is signed with our key."""
    if request.service_id != service_id:
        raise ValidationError(ClickError.BAD_REQUEST, f"{NOTE_BAD_REQUEST}: unknown service_id")
    expected = build_sign_string(request, secret_key)
    # подпись приходит извне и может содержать не-ASCII: сравниваем байты
    if not hmac.compare_digest(expected.encode("ascii"), request.sign_string.lower().encode("utf-8")):
        raise ValidationError(ClickError.SIGN_CHECK_FAILED, NOTE_SIGN_CHECK_FAILED)


def amount_matches(reported: str, expected: int) -> bool:
    """Точное сравнение: '50000', '50000.0' и '50000.00' равны 50000, дробные копейки — нет."""
    try:
        value = Decimal(reported)
    except (InvalidOperation, ValueError):
        return False
    if not value.is_finite():
        return False
    return value == Decimal(expected)


def check_amount(request: ClickPrepareRequest | ClickCompleteRequest, expected: int) -> None:
    if not amount_matches(request.amount, expected):
        raise ValidationError(ClickError.INCORRECT_AMOUNT, NOTE_INCORRECT_AMOUNT)


def validate_callback(
    params: Mapping[str, Any],
    kind: ClickAction,
    *,
    secret_key: str,
    service_id: str,
) -> ClickPrepareRequest | ClickCompleteRequest:
    """Поля + подпись. Сумма проверяется после поиска записи (check_amount)."""
    request = parse_request(params, kind)
    verify_signature(request, secret_key=secret_key, service_id=service_id)
    return request
