"""
Telegram Bot API client (httpx sync) for Celery workers.
Used only to tell a user that paid access is open; the bot itself runs elsewhere.
"""
import logging
import time

import httpx

from app.core.config import settings
from app.utils.metrics import (
    telegram_request_duration_seconds,
    telegram_requests_total,
)

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramAPIError(Exception):
    def __init__(self, method: str, error_code: int, description: str) -> None:
        super().__init__(f"{method} -> {error_code}: {description}")
        self.method = method
        self.error_code = error_code
        self.description = description


class TelegramClient:
    def __init__(self, token: str | None = None, timeout: float = 10.0) -> None:
        self._token = token if token is not None else settings.telegram_bot_token
        self._timeout = timeout
        self._client: httpx.Client | None = None

    @property
    def enabled(self) -> bool:
        """Без токена уведомления выключены."""
        return bool(self._token)

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=f"{TELEGRAM_API_BASE}/bot{self._token}",
                timeout=self._timeout,
            )
        return self._client

    def _call(self, method: str, data: dict) -> dict:
        start = time.time()
        status = "error"
        try:
            result = self.client.post(f"/{method}", json=data).json()
            if not result.get("ok"):
                raise TelegramAPIError(
                    method,
                    result.get("error_code", 0),
                    result.get("description", "Unknown error"),
                )
            status = "success"
            return result
        finally:
            telegram_requests_total.labels(method=method, status=status).inc()
            telegram_request_duration_seconds.labels(method=method).observe(time.time() - start)

    def send_message(self, chat_id: str, text: str) -> dict:
        try:
            return self._call("sendMessage", {"chat_id": int(chat_id), "text": text})
        except (httpx.HTTPError, TelegramAPIError, ValueError) as e:
            logger.warning("telegram_send_failed", extra={"chat_id": chat_id, "error": str(e)})
            raise

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
