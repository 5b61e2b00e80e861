"""
Движок callback-протокола Click (prepare / complete) для платного доступа к латифам.
Decision (state_machine, signature) и execution (service, store, grants) разделены.
"""
from app.billing.errors import (
    BillingError,
    ConflictError,
    GrantError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from app.billing.models import ClickResponse, ClickResult, PaymentRecord
from app.billing.service import ClickWebhookService, build_webhook_service
from app.billing.state_machine import Transition, on_complete, on_prepare

__all__ = [
    "BillingError",
    "ConflictError",
    "GrantError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    "ClickResponse",
    "ClickResult",
    "PaymentRecord",
    "ClickWebhookService",
    "build_webhook_service",
    "Transition",
    "on_complete",
    "on_prepare",
]
