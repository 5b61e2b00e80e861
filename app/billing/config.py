"""
Billing config — typed wrappers over app.core.config.settings.
"""
from __future__ import annotations

from app.core.config import settings


def get_click_secret_key() -> str:
    return settings.click_secret_key


def get_click_service_id() -> str:
    return settings.click_service_id


def get_click_merchant_id() -> str:
    return settings.click_merchant_id


def get_click_merchant_user_id() -> str:
    return settings.click_merchant_user_id


def get_click_pay_url() -> str:
    return settings.click_pay_url


def get_click_return_url() -> str:
    return settings.click_return_url


def get_access_price() -> int:
    return settings.access_price


def get_lock_wait_seconds() -> float:
    return settings.click_lock_wait_seconds


def get_lock_ttl_seconds() -> int:
    return settings.click_lock_ttl_seconds


def get_cas_retry_attempts() -> int:
    return max(1, settings.click_cas_retry_attempts)


def get_grant_retry_max_attempts() -> int:
    return settings.grant_retry_max_attempts


def get_grant_retry_delay_seconds() -> int:
    return settings.grant_retry_delay_seconds
