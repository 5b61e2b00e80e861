"""
Payments API for the bot: create a pending Click payment and check its status.
Protected by X-Admin-Key (settings.admin_api_key).
"""
import hmac

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db
from app.schemas.payments import PaymentCreatedOut, PaymentCreateIn, PaymentStatusOut
from app.services.payments.service import AlreadyPaidError, PaymentService


def require_admin_key(x_admin_key: str | None = Header(None)) -> None:
    expected = settings.admin_api_key
    if not expected:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="admin_api_key is not configured")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin key")


router = APIRouter(prefix="/payments", tags=["payments"], dependencies=[Depends(require_admin_key)])


@router.post("", response_model=PaymentCreatedOut, status_code=status.HTTP_201_CREATED)
def create_payment(body: PaymentCreateIn, db: Session = Depends(get_db)) -> PaymentCreatedOut:
    service = PaymentService(db)
    try:
        payment, pay_url = service.create_payment(
            body.telegram_id,
            amount=body.amount,
            telegram_username=body.telegram_username,
            telegram_first_name=body.telegram_first_name,
            telegram_last_name=body.telegram_last_name,
        )
    except AlreadyPaidError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already has access")
    return PaymentCreatedOut(
        transaction_param=payment.transaction_param,
        amount=payment.amount,
        status=payment.status,
        pay_url=pay_url,
    )


@router.get("/{transaction_param}", response_model=PaymentStatusOut)
def get_payment_status(transaction_param: str, db: Session = Depends(get_db)) -> PaymentStatusOut:
    result = PaymentService(db).get_status(transaction_param)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    return PaymentStatusOut(**result)
