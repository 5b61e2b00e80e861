"""
Click SHOP API callbacks: POST /webhook/click (action=0 prepare, action=1 complete).
/api/click — тот же обработчик (в кабинете Click мог быть указан старый путь).
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.billing.codes import INTERNAL_ERROR_CODE, NOTE_INTERNAL_ERROR
from app.billing.service import ClickWebhookService, build_webhook_service
from app.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["click"])


def get_webhook_service(db: Session = Depends(get_db)) -> ClickWebhookService:
    return build_webhook_service(db)


async def read_callback_params(request: Request) -> dict[str, Any]:
    """Click шлёт form-urlencoded; JSON тоже принимаем."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
    form = await request.form()
    return dict(form)


def _process(params: dict[str, Any], service: ClickWebhookService) -> JSONResponse:
    try:
        result = service.handle(params)
    except Exception:
        logger.exception(
            "click_webhook_crashed",
            extra={
                "action": str(params.get("action")),
                "transaction_param": str(params.get("merchant_trans_id")),
                "click_trans_id": str(params.get("click_trans_id")),
            },
        )
        return JSONResponse(
            status_code=500,
            content={"error": int(INTERNAL_ERROR_CODE), "error_note": NOTE_INTERNAL_ERROR},
        )
    return JSONResponse(status_code=result.http_status, content=result.response.as_body())


@router.post("/webhook/click")
async def click_webhook(
    request: Request,
    service: ClickWebhookService = Depends(get_webhook_service),
) -> JSONResponse:
    params = await read_callback_params(request)
    return await run_in_threadpool(_process, params, service)


@router.post("/api/click")
async def click_webhook_legacy(
    request: Request,
    service: ClickWebhookService = Depends(get_webhook_service),
) -> JSONResponse:
    logger.warning("click_webhook_legacy_path", extra={"path": "/api/click"})
    params = await read_callback_params(request)
    return await run_in_threadpool(_process, params, service)
