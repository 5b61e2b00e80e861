"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # CORS: через запятую. Пусто = дефолтный список в коде.
    cors_origins: str = ""

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str  # Required, no default
    celery_broker_url: str  # Required, no default
    celery_result_backend: str  # Required, no default

    # ===========================================
    # TELEGRAM BOT
    # ===========================================
    # Пусто = уведомления пользователю после оплаты не отправляются.
    telegram_bot_token: str = ""

    # ===========================================
    # INTERNAL API (bot -> payments)
    # ===========================================
    admin_api_key: str | None = None  # Optional, but recommended

    # ===========================================
    # CLICK MERCHANT
    # ===========================================
    click_service_id: str  # Required, no default
    click_merchant_id: str  # Required, no default
    click_secret_key: str  # Required, no default
    click_merchant_user_id: str = ""
    click_pay_url: str = "https://my.click.uz/services/pay"
    click_return_url: str = ""
    # Цена доступа к латифам (в сумах, целое)
    access_price: int = 50000

    # Per-transaction lock: сколько ждать захвата и сколько живёт lock в Redis
    click_lock_wait_seconds: float = 5.0
    click_lock_ttl_seconds: int = 30
    # Сколько раз перечитывать запись, если compare-and-set проиграл гонку
    click_cas_retry_attempts: int = 3

    # ===========================================
    # ACCESS GRANT RETRY
    # ===========================================
    grant_retry_max_attempts: int = 5
    grant_retry_delay_seconds: int = 30
    grant_sweep_minutes: int = 10

    # ===========================================
    # LOGGING
    # ===========================================
    request_id_header: str = "X-Request-Id"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("click_secret_key")
    @classmethod
    def validate_click_secret(cls, v: str) -> str:
        """Ensure the Click secret key is set and not a placeholder."""
        v = v.strip()
        if not v:
            raise ValueError("click_secret_key must not be empty")
        if v in ("changeme", "secret", "password"):
            raise ValueError("click_secret_key is a placeholder, please set the real key")
        return v

    @field_validator("click_service_id", "click_merchant_id")
    @classmethod
    def strip_ids(cls, v: str) -> str:
        return v.strip()

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Игнорировать неизвестные поля из .env


settings = Settings()
