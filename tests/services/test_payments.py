"""Tests for PaymentService: pending payment creation, pay link and status for the bot."""
from types import SimpleNamespace
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest

from app.services.payments.service import AlreadyPaidError, PaymentService, build_pay_url


def _make_user(**kwargs):
    user = MagicMock()
    user.id = kwargs.get("id", "user-1")
    user.telegram_id = kwargs.get("telegram_id", "777")
    user.has_paid = kwargs.get("has_paid", False)
    return user


class TestPayUrl:
    def test_contains_merchant_and_order(self):
        url = build_pay_url("abc123", 50000)
        parsed = urlparse(url)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://my.click.uz/services/pay"
        query = parse_qs(parsed.query)
        assert query["service_id"] == ["1111"]
        assert query["merchant_id"] == ["2222"]
        assert query["amount"] == ["50000"]
        assert query["transaction_param"] == ["abc123"]

    @patch("app.services.payments.service.get_click_return_url", return_value="https://t.me/anecdote_bot")
    @patch("app.services.payments.service.get_click_merchant_user_id", return_value="42")
    def test_optional_params(self, *_):
        query = parse_qs(urlparse(build_pay_url("abc123", 50000)).query)
        assert query["merchant_user_id"] == ["42"]
        assert query["return_url"] == ["https://t.me/anecdote_bot"]


class TestCreatePayment:
    @patch("app.services.payments.service.UserService")
    def test_creates_pending_payment(self, mock_users):
        db = MagicMock()
        mock_users.return_value.get_or_create_user.return_value = _make_user()
        payment, pay_url = PaymentService(db).create_payment("777", telegram_username="bob")
        assert payment.status == "pending"
        assert payment.user_id == "user-1"
        assert payment.amount == 50000
        assert len(payment.transaction_param) == 32
        assert f"transaction_param={payment.transaction_param}" in pay_url
        db.add.assert_called_once_with(payment)
        db.commit.assert_called_once()

    @patch("app.services.payments.service.UserService")
    def test_unique_transaction_params(self, mock_users):
        mock_users.return_value.get_or_create_user.return_value = _make_user()
        svc = PaymentService(MagicMock())
        first, _ = svc.create_payment("777")
        second, _ = svc.create_payment("777")
        assert first.transaction_param != second.transaction_param

    @patch("app.services.payments.service.UserService")
    def test_already_paid(self, mock_users):
        db = MagicMock()
        mock_users.return_value.get_or_create_user.return_value = _make_user(has_paid=True)
        with pytest.raises(AlreadyPaidError):
            PaymentService(db).create_payment("777")
        db.add.assert_not_called()

    @patch("app.services.payments.service.UserService")
    def test_custom_amount(self, mock_users):
        mock_users.return_value.get_or_create_user.return_value = _make_user()
        payment, _ = PaymentService(MagicMock()).create_payment("777", amount=1000)
        assert payment.amount == 1000

    @patch("app.services.payments.service.UserService")
    def test_non_positive_amount(self, mock_users):
        mock_users.return_value.get_or_create_user.return_value = _make_user()
        with pytest.raises(ValueError):
            PaymentService(MagicMock()).create_payment("777", amount=0)


class TestStatus:
    def test_not_found(self):
        db = MagicMock()
        db.query.return_value.filter.return_value.one_or_none.return_value = None
        assert PaymentService(db).get_status("missing") is None

    def test_paid_with_access(self):
        db = MagicMock()
        payment = SimpleNamespace(
            transaction_param="ord-1",
            status="paid",
            amount=50000,
            user_id="user-1",
            created_at=None,
            completed_at=None,
        )
        db.query.return_value.filter.return_value.one_or_none.side_effect = [payment, _make_user(has_paid=True)]
        status = PaymentService(db).get_status("ord-1")
        assert status["status"] == "paid"
        assert status["has_paid"] is True
