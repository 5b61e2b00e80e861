from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PaymentCreateIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    telegram_id: str
    amount: int | None = Field(None, gt=0)  # None = settings.access_price
    telegram_username: str | None = None
    telegram_first_name: str | None = None
    telegram_last_name: str | None = None

    @field_validator("telegram_id", mode="before")
    @classmethod
    def coerce_telegram_id(cls, v: Any) -> Any:
        # бот присылает id числом
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class PaymentCreatedOut(BaseModel):
    transaction_param: str
    amount: int
    status: str
    pay_url: str


class PaymentStatusOut(BaseModel):
    transaction_param: str
    status: str
    amount: int
    has_paid: bool
    created_at: datetime | None = None
    completed_at: datetime | None = None
