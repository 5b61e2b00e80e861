"""
Payment state machine for the two-phase Click protocol.

Pure logic, no I/O: given the persisted snapshot and an incoming event it
returns a Transition or raises a named BillingError. Persistence and side
effects (grant, response) belong to the webhook service.

    pending --prepare--> pending (gateway id assigned once)
    pending --complete(0)--> paid
    pending --complete(-9)--> cancelled
    pending --complete(other)--> failed
    paid / failed / cancelled: terminal

A replayed event (same gateway id, same resulting status) is a Transition
with replay=True: the caller answers success again and mutates nothing.
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from app.billing.codes import (
    NOTE_ALREADY_PAID,
    NOTE_BAD_REQUEST,
    NOTE_CANCELLED,
    NOTE_FINALIZED_DIFFERENTLY,
    NOTE_GATEWAY_ID_MISMATCH,
    NOTE_NO_PREPARE,
    OUTCOME_CANCELLED,
    OUTCOME_SUCCESS,
    ClickError,
)
from app.billing.errors import ConflictError, NotFoundError, ValidationError
from app.billing.models import PaymentRecord
from app.models.payment import TERMINAL_STATUSES, PaymentStatus

Event = Literal["prepare", "complete"]


class Transition(BaseModel):
    """Result of one protocol step."""

    event: Event
    current: PaymentStatus
    next_status: PaymentStatus
    replay: bool = False
    assign_gateway_id: str | None = None
    outcome_code: int | None = None

    model_config = {"frozen": True}

    @property
    def changes_status(self) -> bool:
        return not self.replay and self.next_status != self.current

    @property
    def grants_access(self) -> bool:
        return self.changes_status and self.next_status == PaymentStatus.PAID


def is_terminal(status: PaymentStatus) -> bool:
    return status in TERMINAL_STATUSES


def outcome_status(outcome_code: int) -> PaymentStatus:
    """Map Click's complete `error` field to the final status."""
    if outcome_code == OUTCOME_SUCCESS:
        return PaymentStatus.PAID
    if outcome_code == OUTCOME_CANCELLED:
        return PaymentStatus.CANCELLED
    return PaymentStatus.FAILED


def _reject_finalized(status: PaymentStatus) -> ConflictError:
    if status == PaymentStatus.PAID:
        return ConflictError(ClickError.ALREADY_PAID, NOTE_ALREADY_PAID)
    return ConflictError(ClickError.TRANSACTION_CANCELLED, NOTE_CANCELLED)


def on_prepare(payment: PaymentRecord, gateway_id: str | None) -> Transition:
    """First phase: bind click_trans_id to the transaction exactly once."""
    if is_terminal(payment.status):
        raise _reject_finalized(payment.status)

    bound = payment.gateway_transaction_id
    if bound is None:
        if not gateway_id:
            raise ValidationError(ClickError.BAD_REQUEST, f"{NOTE_BAD_REQUEST}: click_trans_id required")
        return Transition(
            event="prepare",
            current=payment.status,
            next_status=payment.status,
            assign_gateway_id=gateway_id,
        )

    if gateway_id == bound:
        return Transition(
            event="prepare",
            current=payment.status,
            next_status=payment.status,
            replay=True,
        )

    raise ConflictError(ClickError.TRANSACTION_DOES_NOT_EXIST, NOTE_GATEWAY_ID_MISMATCH)


def on_complete(
    payment: PaymentRecord,
    gateway_id: str | None,
    merchant_prepare_id: str | None,
    outcome_code: int,
) -> Transition:
    """Second phase: finalize once; identical replays are accepted, conflicting ones rejected."""
    bound = payment.gateway_transaction_id
    if bound is None:
        raise NotFoundError(ClickError.TRANSACTION_DOES_NOT_EXIST, NOTE_NO_PREPARE)
    if gateway_id != bound:
        raise ConflictError(ClickError.TRANSACTION_DOES_NOT_EXIST, NOTE_GATEWAY_ID_MISMATCH)
    if merchant_prepare_id != payment.id:
        # merchant_prepare_id выдаётся нами в ответе на prepare; чужой id = prepare не было
        raise NotFoundError(ClickError.TRANSACTION_DOES_NOT_EXIST, NOTE_NO_PREPARE)

    target = outcome_status(outcome_code)

    if payment.status == PaymentStatus.PENDING:
        return Transition(
            event="complete",
            current=payment.status,
            next_status=target,
            outcome_code=outcome_code,
        )

    if payment.status == target:
        return Transition(
            event="complete",
            current=payment.status,
            next_status=target,
            replay=True,
            outcome_code=outcome_code,
        )

    if payment.status == PaymentStatus.PAID:
        raise ConflictError(ClickError.ALREADY_PAID, NOTE_ALREADY_PAID)
    raise ConflictError(ClickError.TRANSACTION_CANCELLED, NOTE_FINALIZED_DIFFERENTLY)
