# src/tests/test_payments.py
import datetime
import hashlib
import hmac
import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests

from src.core import db, payments
from src.core.exceptions import PaymentGatewayError
from src.core.models import PlanType
from src.tests.fake_supabase import FakeSupabase

CHAT_ID = 4242
NOW = datetime.datetime(2025, 7, 10, 15, 0, tzinfo=datetime.timezone.utc)
SECRET = "segredo-do-webhook"


def sign(data_id, request_id, ts, secret=SECRET):
    manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
    return hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()


class TestWebhookSignature(unittest.TestCase):
    def test_valid_signature(self):
        header = f"ts=1704908010,v1={sign('123', 'req-1', '1704908010')}"
        self.assertTrue(payments.validate_webhook_signature(SECRET, header, "req-1", "123"))

    def test_tolerates_spaces_in_header(self):
        header = f"ts = 1704908010 , v1 = {sign('123', 'req-1', '1704908010')}"
        self.assertTrue(payments.validate_webhook_signature(SECRET, header, "req-1", "123"))

    def test_wrong_secret(self):
        header = f"ts=1,v1={sign('123', 'req-1', '1', secret='outro')}"
        self.assertFalse(payments.validate_webhook_signature(SECRET, header, "req-1", "123"))

    def test_tampered_data_id(self):
        header = f"ts=1,v1={sign('123', 'req-1', '1')}"
        self.assertFalse(payments.validate_webhook_signature(SECRET, header, "req-1", "999"))

    def test_missing_headers(self):
        self.assertFalse(payments.validate_webhook_signature(SECRET, None, "req-1", "123"))
        self.assertFalse(payments.validate_webhook_signature(SECRET, "ts=1,v1=abc", None, "123"))

    def test_malformed_header(self):
        self.assertFalse(payments.validate_webhook_signature(SECRET, "v1=abc", "req-1", "123"))
        self.assertFalse(payments.validate_webhook_signature(SECRET, "lixo", "req-1", "123"))

    def test_without_secret_accepts(self):
        self.assertTrue(payments.validate_webhook_signature(None, None, None, "123"))
        self.assertTrue(payments.validate_webhook_signature("", "qualquer", "coisa", "123"))


class TestExternalReference(unittest.TestCase):
    def test_valid_reference(self):
        self.assertEqual(payments.parse_external_reference("123:pro"), (123, PlanType.PRO))
        self.assertEqual(payments.parse_external_reference("-100200:ultra"), (-100200, PlanType.ULTRA))

    def test_invalid_references(self):
        for reference in (None, "", "123", "abc:pro", "123:gold", "0:pro", "123:free"):
            with self.subTest(reference=reference):
                self.assertIsNone(payments.parse_external_reference(reference))


class TestCreatePixCharge(unittest.TestCase):
    def setUp(self):
        self.supabase_client = FakeSupabase(now=NOW)
        self.gateway = MagicMock()

    def test_creates_charge_and_records_payment(self):
        self.gateway.create_pix_payment.return_value = {
            "id": 987654,
            "status": "pending",
            "point_of_interaction": {"transaction_data": {"qr_code": "000201...", "qr_code_base64": "iVBOR"}},
        }
        result = payments.create_pix_charge(self.supabase_client, self.gateway, CHAT_ID, PlanType.BASICO, now=NOW)

        self.assertTrue(result.success)
        self.assertEqual(result.payment_id, "987654")
        self.assertEqual(result.qr_code, "000201...")
        self.assertEqual(result.qr_code_base64, "iVBOR")

        kwargs = self.gateway.create_pix_payment.call_args.kwargs
        self.assertEqual(kwargs["amount"], Decimal("197"))
        self.assertEqual(kwargs["external_reference"], f"{CHAT_ID}:basico")
        self.assertEqual(kwargs["idempotency_key"], f"{CHAT_ID}-basico-{int(NOW.timestamp() * 1000)}")

        payment = db.get_payment_by_mp_id(self.supabase_client, "987654")
        self.assertEqual(payment.chat_id, CHAT_ID)
        self.assertEqual(payment.plan, PlanType.BASICO)
        self.assertEqual(payment.mp_status, "pending")

    def test_gateway_error(self):
        self.gateway.create_pix_payment.side_effect = PaymentGatewayError("Saldo insuficiente", 400)
        result = payments.create_pix_charge(self.supabase_client, self.gateway, CHAT_ID, PlanType.PRO, now=NOW)
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Saldo insuficiente")
        self.assertEqual(self.supabase_client.tables["payments"], [])

    def test_free_plan_rejected(self):
        result = payments.create_pix_charge(self.supabase_client, self.gateway, CHAT_ID, PlanType.FREE, now=NOW)
        self.assertFalse(result.success)
        self.gateway.create_pix_payment.assert_not_called()

    def test_without_gateway(self):
        result = payments.create_pix_charge(self.supabase_client, None, CHAT_ID, PlanType.PRO, now=NOW)
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Mercado Pago não configurado")


class TestHandlePaymentWebhook(unittest.TestCase):
    def setUp(self):
        self.supabase_client = FakeSupabase(now=NOW)
        self.gateway = MagicMock()
        db.save_payment(self.supabase_client, CHAT_ID, PlanType.PRO, Decimal("349"), "555", "pending", None, None)

    def test_approved_payment_activates_plan(self):
        self.gateway.get_payment.return_value = {"status": "approved", "external_reference": f"{CHAT_ID}:pro"}
        result = payments.handle_payment_webhook(self.supabase_client, self.gateway, "555", now=NOW)

        self.assertTrue(result.success)
        self.assertEqual(result.chat_id, CHAT_ID)
        self.assertEqual(result.plan, PlanType.PRO)

        subscription = db.get_subscription(self.supabase_client, CHAT_ID)
        self.assertEqual(subscription.plan, PlanType.PRO)
        self.assertEqual(subscription.period_end, datetime.datetime(2025, 8, 10, 15, 0, tzinfo=datetime.timezone.utc))
        self.assertEqual(db.get_payment_by_mp_id(self.supabase_client, "555").mp_status, "approved")

    def test_redelivered_approval_does_not_reactivate(self):
        self.gateway.get_payment.return_value = {"status": "approved", "external_reference": f"{CHAT_ID}:pro"}
        first = payments.handle_payment_webhook(self.supabase_client, self.gateway, "555", now=NOW)
        self.assertTrue(first.success)
        for _ in range(10):
            db.increment_usage(self.supabase_client, CHAT_ID)

        later = NOW + datetime.timedelta(days=20)
        second = payments.handle_payment_webhook(self.supabase_client, self.gateway, "555", now=later)

        self.assertFalse(second.success)
        subscription = db.get_subscription(self.supabase_client, CHAT_ID)
        self.assertEqual(subscription.transactions_used, 10)
        self.assertEqual(subscription.period_end, datetime.datetime(2025, 8, 10, 15, 0, tzinfo=datetime.timezone.utc))

    @patch("src.core.payments.db.activate_subscription")
    def test_failed_activation_keeps_payment_retryable(self, mock_activate):
        mock_activate.side_effect = RuntimeError("banco fora do ar")
        self.gateway.get_payment.return_value = {"status": "approved", "external_reference": f"{CHAT_ID}:pro"}
        with self.assertRaises(RuntimeError):
            payments.handle_payment_webhook(self.supabase_client, self.gateway, "555", now=NOW)
        self.assertEqual(db.get_payment_by_mp_id(self.supabase_client, "555").mp_status, "pending")

    def test_pending_payment_only_updates_status(self):
        self.gateway.get_payment.return_value = {"status": "rejected", "external_reference": f"{CHAT_ID}:pro"}
        result = payments.handle_payment_webhook(self.supabase_client, self.gateway, "555", now=NOW)

        self.assertFalse(result.success)
        self.assertEqual(result.status, "rejected")
        self.assertEqual(db.get_payment_by_mp_id(self.supabase_client, "555").mp_status, "rejected")
        self.assertIsNone(db.get_subscription(self.supabase_client, CHAT_ID))

    def test_invalid_reference_is_ignored(self):
        self.gateway.get_payment.return_value = {"status": "approved", "external_reference": "lixo"}
        result = payments.handle_payment_webhook(self.supabase_client, self.gateway, "555", now=NOW)
        self.assertFalse(result.success)
        self.assertIsNone(db.get_subscription(self.supabase_client, CHAT_ID))

    def test_gateway_error_propagates(self):
        self.gateway.get_payment.side_effect = PaymentGatewayError("timeout")
        with self.assertRaises(PaymentGatewayError):
            payments.handle_payment_webhook(self.supabase_client, self.gateway, "555", now=NOW)


@patch("src.core.payments.requests.request")
class TestMercadoPagoClient(unittest.TestCase):
    def setUp(self):
        self.client = payments.MercadoPagoClient("TOKEN", base_url="https://api.exemplo.com/")

    def test_create_pix_payment(self, mock_request):
        mock_request.return_value = MagicMock(ok=True, status_code=201)
        mock_request.return_value.json.return_value = {"id": 1, "status": "pending"}

        data = self.client.create_pix_payment(Decimal("197"), "Plano", "a@b.com", "1:basico", "chave-1")

        self.assertEqual(data, {"id": 1, "status": "pending"})
        args, kwargs = mock_request.call_args
        self.assertEqual(args, ("POST", "https://api.exemplo.com/v1/payments"))
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer TOKEN")
        self.assertEqual(kwargs["headers"]["X-Idempotency-Key"], "chave-1")
        self.assertEqual(kwargs["json"]["transaction_amount"], 197.0)
        self.assertEqual(kwargs["json"]["payment_method_id"], "pix")

    def test_error_response(self, mock_request):
        mock_request.return_value = MagicMock(ok=False, status_code=400)
        mock_request.return_value.json.return_value = {"message": "invalid payer"}
        with self.assertRaises(PaymentGatewayError) as ctx:
            self.client.get_payment("1")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn("invalid payer", str(ctx.exception))

    def test_connection_error(self, mock_request):
        mock_request.side_effect = requests.exceptions.ConnectionError("offline")
        with self.assertRaises(PaymentGatewayError) as ctx:
            self.client.get_payment("1")
        self.assertIsNone(ctx.exception.status_code)


if __name__ == "__main__":
    unittest.main()
