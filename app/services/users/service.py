"""
UserService — пользователи бота (по telegram_id) и их флаг платного доступа.
has_paid выставляет только billing (grant после PAID); здесь он только читается.
"""
import logging

from sqlalchemy.orm import Session

from app.models.user import User

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("telegram_username", "telegram_first_name", "telegram_last_name")


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_or_create_user(self, telegram_id: str, **profile: str | None) -> User:
        """Найти по telegram_id или создать; непустые поля профиля обновляются."""
        changes = {k: v for k, v in profile.items() if k in PROFILE_FIELDS and v is not None}
        user = self.get_by_telegram_id(telegram_id)
        if user is None:
            user = User(telegram_id=telegram_id, **changes)
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
            logger.info("user_created", extra={"user_id": user.id, "telegram_id": telegram_id})
            return user
        if any(getattr(user, k) != v for k, v in changes.items()):
            for key, value in changes.items():
                setattr(user, key, value)
            self.db.commit()
            self.db.refresh(user)
        return user

    def get_by_telegram_id(self, telegram_id: str) -> User | None:
        return self.db.query(User).filter(User.telegram_id == telegram_id).one_or_none()

    def get(self, user_id: str) -> User | None:
        return self.db.query(User).filter(User.id == user_id).one_or_none()
