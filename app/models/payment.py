"""
Payment model — одна запись на попытку оплаты через Click.
transaction_param уникален и передаётся в Click как merchant_trans_id;
gateway_transaction_id (click_trans_id) назначается один раз при первом prepare.
"""
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELLED})


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    transaction_param = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)                   # в сумах, сравнивается точно
    status = Column(String, nullable=False, default=PaymentStatus.PENDING.value, index=True)
    gateway_transaction_id = Column(String, unique=True, nullable=True)  # click_trans_id
    merchant_reference_id = Column(String, nullable=True)      # merchant_prepare_id из complete
    outcome_code = Column(Integer, nullable=True)              # поле error из complete
    payment_metadata = Column(JSONB().with_variant(JSON(), "sqlite"), nullable=False, default=list)  # append-only журнал callback'ов
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)
