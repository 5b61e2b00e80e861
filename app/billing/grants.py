"""
Access Grant Notifier: после подтверждённой оплаты выставляет User.has_paid.

Финансовая истина (Payment.status) и доступ (User.has_paid) могут кратко
расходиться; они сходятся повторными попытками (app.billing.tasks), никогда
откатом статуса платежа.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.billing.errors import GrantError
from app.models.user import User
from app.utils.metrics import access_grants_total

logger = logging.getLogger(__name__)


class AccessGrantNotifier(ABC):
    @abstractmethod
    def grant_access(self, user_id: str) -> None:
        """Flip the paid-access flag. Raises GrantError on a retryable failure."""
        raise NotImplementedError


class SqlAccessGrantNotifier(AccessGrantNotifier):
    def __init__(self, db: Session):
        self.db = db

    def grant_access(self, user_id: str) -> None:
        try:
            result = self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(has_paid=True, updated_at=datetime.now(timezone.utc))
            )
            if result.rowcount == 0:
                self.db.rollback()
                access_grants_total.labels(result="failed").inc()
                raise GrantError(user_id, "user_not_found")
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            access_grants_total.labels(result="failed").inc()
            raise GrantError(user_id, str(e)) from e
        access_grants_total.labels(result="granted").inc()
        logger.info("access_granted", extra={"user_id": user_id})
