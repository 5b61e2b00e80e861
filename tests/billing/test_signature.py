"""
Unit-тесты проверки callback'ов Click: обязательные поля, подпись, сумма.
"""
import unittest

from conftest import SECRET, SERVICE_ID, complete_params, prepare_params

from app.billing.codes import ClickAction, ClickError
from app.billing.errors import ValidationError
from app.billing.models import ClickCompleteRequest
from app.billing.signature import (
    amount_matches,
    build_sign_string,
    check_amount,
    parse_request,
    validate_callback,
)


def _validate(params, kind=ClickAction.PREPARE):
    return validate_callback(params, kind, secret_key=SECRET, service_id=SERVICE_ID)


class TestParseRequest(unittest.TestCase):
    def test_prepare_ok(self):
        request = parse_request(prepare_params(), ClickAction.PREPARE)
        self.assertEqual(request.merchant_trans_id, "ord-1")
        self.assertEqual(request.action, 0)
        self.assertEqual(request.merchant_prepare_part, "")

    def test_numbers_coerced_to_strings(self):
        params = prepare_params(click_trans_id="5001")
        params["click_trans_id"] = 5001
        params["amount"] = 50000
        request = parse_request(params, ClickAction.PREPARE)
        self.assertEqual(request.click_trans_id, "5001")
        self.assertEqual(request.amount, "50000")

    def test_missing_merchant_trans_id(self):
        params = prepare_params()
        del params["merchant_trans_id"]
        with self.assertRaises(ValidationError) as ctx:
            parse_request(params, ClickAction.PREPARE)
        self.assertEqual(ctx.exception.code, ClickError.BAD_REQUEST)
        self.assertIn("merchant_trans_id", ctx.exception.note)

    def test_complete_requires_merchant_prepare_id(self):
        params = complete_params()
        del params["merchant_prepare_id"]
        with self.assertRaises(ValidationError) as ctx:
            parse_request(params, ClickAction.COMPLETE)
        self.assertEqual(ctx.exception.code, -8)
        self.assertIn("merchant_prepare_id", ctx.exception.note)

    def test_complete_request_type(self):
        request = parse_request(complete_params(), ClickAction.COMPLETE)
        self.assertIsInstance(request, ClickCompleteRequest)
        self.assertEqual(request.merchant_prepare_part, "pay-1")
        self.assertEqual(request.error, 0)

    def test_action_mismatch(self):
        with self.assertRaises(ValidationError) as ctx:
            parse_request(complete_params(), ClickAction.PREPARE)
        self.assertIn("action mismatch", ctx.exception.note)

    def test_padded_action_accepted(self):
        params = prepare_params()
        params["action"] = " 0 "
        request = parse_request(params, ClickAction.PREPARE)
        self.assertEqual(request.action, 0)

    def test_bool_action_rejected(self):
        params = prepare_params()
        params["action"] = False
        with self.assertRaises(ValidationError):
            parse_request(params, ClickAction.PREPARE)

    def test_audit_params_without_signature(self):
        request = parse_request(prepare_params(), ClickAction.PREPARE)
        audit = request.audit_params()
        self.assertNotIn("sign_string", audit)
        self.assertEqual(audit["click_trans_id"], "5001")


class TestSignature(unittest.TestCase):
    def test_valid_prepare_signature(self):
        request = _validate(prepare_params())
        self.assertEqual(request.click_trans_id, "5001")

    def test_valid_complete_signature_includes_prepare_id(self):
        params = complete_params()
        request = _validate(params, ClickAction.COMPLETE)
        self.assertEqual(build_sign_string(request, SECRET), params["sign_string"])

    def test_uppercase_hex_accepted(self):
        params = prepare_params()
        params["sign_string"] = params["sign_string"].upper()
        _validate(params)

    def test_wrong_secret(self):
        with self.assertRaises(ValidationError) as ctx:
            _validate(prepare_params(secret="another-secret"))
        self.assertEqual(ctx.exception.code, ClickError.SIGN_CHECK_FAILED)
        self.assertEqual(ctx.exception.http_status, 200)

    def test_tampered_amount_breaks_signature(self):
        params = prepare_params()
        params["amount"] = "1000"
        with self.assertRaises(ValidationError) as ctx:
            _validate(params)
        self.assertEqual(ctx.exception.code, -1)

    def test_tampered_prepare_id_breaks_signature(self):
        params = complete_params()
        params["merchant_prepare_id"] = "pay-2"
        with self.assertRaises(ValidationError) as ctx:
            _validate(params, ClickAction.COMPLETE)
        self.assertEqual(ctx.exception.code, -1)

    def test_non_ascii_signature_rejected_as_sign_failure(self):
        params = prepare_params()
        params["sign_string"] = "ё" * 32
        with self.assertRaises(ValidationError) as ctx:
            _validate(params)
        self.assertEqual(ctx.exception.code, ClickError.SIGN_CHECK_FAILED)

    def test_unknown_service_id(self):
        params = prepare_params(service_id="9999")
        with self.assertRaises(ValidationError) as ctx:
            _validate(params)
        self.assertEqual(ctx.exception.code, -8)
        self.assertIn("service_id", ctx.exception.note)


class TestAmount(unittest.TestCase):
    def test_equal_representations(self):
        self.assertTrue(amount_matches("50000", 50000))
        self.assertTrue(amount_matches("50000.0", 50000))
        self.assertTrue(amount_matches("50000.00", 50000))

    def test_mismatch(self):
        self.assertFalse(amount_matches("49999.99", 50000))
        self.assertFalse(amount_matches("50001", 50000))

    def test_garbage_and_non_finite(self):
        self.assertFalse(amount_matches("abc", 50000))
        self.assertFalse(amount_matches("NaN", 50000))
        self.assertFalse(amount_matches("Infinity", 50000))

    def test_check_amount_raises_incorrect_amount(self):
        request = _validate(prepare_params(amount="100"))
        with self.assertRaises(ValidationError) as ctx:
            check_amount(request, 50000)
        self.assertEqual(ctx.exception.code, ClickError.INCORRECT_AMOUNT)
