from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    telegram_id = Column(String, unique=True, nullable=False, index=True)
    telegram_username = Column(String, nullable=True)   # @nickname
    telegram_first_name = Column(String, nullable=True)
    telegram_last_name = Column(String, nullable=True)
    # NB: выставляется только AccessGrantNotifier после подтверждённой оплаты.
    has_paid = Column(Boolean, nullable=False, default=False)
    viewed_anecdotes = Column(Integer, nullable=False, default=0)  # ведёт сервис контента
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
