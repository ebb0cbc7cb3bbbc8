import json
from datetime import timedelta
from io import StringIO
from unittest.mock import Mock, patch

from django.core import mail
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from applications.models import Application
from applications.tests import make_application

from .integrations.phonepe import CheckoutOrder, GatewayError, OrderStatus
from .models import PaymentOrder
from .services import initiate_payment, map_gateway_state, reconcile_payment

APP_ID = "NF20251700000000000001"


def initiate_payload(**overrides):
    data = {
        "applicationId": APP_ID,
        "amount": 99,
        "name": "Asha Verma",
        "email": "a@b.com",
        "phone": "9876543210",
        "merchantOrderId": "MO_1",
    }
    data.update(overrides)
    return data


def fake_gateway(state="COMPLETED", order_id="OMO123"):
    client = Mock()
    client.create_order.return_value = CheckoutOrder(
        order_id=order_id,
        redirect_url="https://mercury.phonepe.com/transact/pay?token=abc",
        state="PENDING",
        expire_at=1700001800000,
        raw={"orderId": order_id, "state": "PENDING"},
    )
    client.get_order_status.return_value = OrderStatus(
        state=state, order_id=order_id, raw={"orderId": order_id, "state": state, "amount": 9900}
    )
    tokens = Mock()
    tokens.get_token.return_value = "tok"
    return client, tokens


class GatewayPatchMixin:
    """Route the views through a mocked PhonePe client and token cache."""

    def setUp(self):
        super().setUp()
        self.gateway, self.tokens = fake_gateway()
        client_patch = patch("payments.services.get_gateway_client", return_value=self.gateway)
        tokens_patch = patch("payments.services.get_token_cache", return_value=self.tokens)
        client_patch.start()
        tokens_patch.start()
        self.addCleanup(client_patch.stop)
        self.addCleanup(tokens_patch.stop)

    def set_state(self, state, order_id="OMO123"):
        self.gateway.get_order_status.return_value = OrderStatus(
            state=state, order_id=order_id, raw={"orderId": order_id, "state": state}
        )


class StateMappingTests(TestCase):
    def test_known_states(self):
        self.assertEqual(map_gateway_state("COMPLETED"), "completed")
        self.assertEqual(map_gateway_state("FAILED"), "failed")
        self.assertEqual(map_gateway_state("PENDING"), "pending")

    def test_unknown_state_maps_to_pending_with_warning(self):
        with self.assertLogs("payments.services", level="WARNING"):
            self.assertEqual(map_gateway_state("REFUNDED"), "pending")


class InitiatePaymentViewTests(GatewayPatchMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.application = make_application(application_id=APP_ID)

    def _post(self, payload):
        return self.client.post(
            reverse("payments:initiate"), data=json.dumps(payload), content_type="application/json"
        )

    def test_initiates_checkout_and_records_order(self):
        resp = self._post(initiate_payload())

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"], {
            "orderId": "OMO123",
            "redirectUrl": "https://mercury.phonepe.com/transact/pay?token=abc",
            "state": "PENDING",
            "expireAt": 1700001800000,
        })

        order = PaymentOrder.objects.get(merchant_order_id="MO_1")
        self.assertEqual(order.application_id, APP_ID)
        self.assertEqual(order.amount, 9900)
        self.assertEqual(order.status, "initiated")
        self.assertEqual(order.gateway_order_id, "OMO123")

        _, kwargs = self.gateway.create_order.call_args
        self.assertEqual(kwargs["amount"], 9900)
        self.assertEqual(kwargs["merchant_order_id"], "MO_1")
        self.assertEqual(
            kwargs["redirect_url"], "https://apply.example.com/payment-status.html?transactionId=MO_1"
        )
        self.assertEqual(kwargs["metadata"]["application_id"], APP_ID)

    def test_missing_fields_are_listed(self):
        payload = initiate_payload()
        del payload["merchantOrderId"]
        payload["name"] = "  "

        resp = self._post(payload)

        self.assertEqual(resp.status_code, 400)
        body = resp.json()
        self.assertEqual(body["message"], "Missing required fields")
        self.assertEqual(body["errors"], ["name is required", "merchantOrderId is required"])
        self.gateway.create_order.assert_not_called()

    def test_only_exact_fee_is_accepted(self):
        for amount in (1, 100, 9900, "99", 99.5, True):
            with self.subTest(amount=amount):
                resp = self._post(initiate_payload(amount=amount))
                self.assertEqual(resp.status_code, 400)
                self.assertEqual(resp.json()["message"], "Invalid amount")
        self.gateway.create_order.assert_not_called()
        self.assertFalse(PaymentOrder.objects.exists())

    def test_reused_merchant_order_id_conflicts(self):
        PaymentOrder.objects.create(
            application_id=APP_ID, merchant_order_id="MO_1", amount=9900, status="pending"
        )

        resp = self._post(initiate_payload())

        self.assertEqual(resp.status_code, 409)
        body = resp.json()
        self.assertEqual(body["message"], "Payment already exists for this order ID")
        self.assertEqual(body["existingPayment"]["merchantOrderId"], "MO_1")
        self.assertEqual(body["existingPayment"]["status"], "pending")
        self.gateway.create_order.assert_not_called()

    def test_recent_completed_payment_blocks_new_attempt(self):
        PaymentOrder.objects.create(
            application_id=APP_ID, merchant_order_id="MO_0", amount=9900, status="completed"
        )

        resp = self._post(initiate_payload())

        self.assertEqual(resp.status_code, 409)
        body = resp.json()
        self.assertEqual(body["message"], "Payment already exists for this application. Status: completed")
        self.assertEqual(body["existingPayment"]["merchantOrderId"], "MO_0")
        self.gateway.create_order.assert_not_called()

    def test_completed_payment_outside_window_allows_new_attempt(self):
        PaymentOrder.objects.create(
            application_id=APP_ID, merchant_order_id="MO_0", amount=9900, status="completed"
        )
        PaymentOrder.objects.filter(merchant_order_id="MO_0").update(
            created_at=timezone.now() - timedelta(minutes=30, seconds=1)
        )

        resp = self._post(initiate_payload())

        self.assertEqual(resp.status_code, 200)
        self.assertTrue(PaymentOrder.objects.filter(merchant_order_id="MO_1").exists())

    def test_failed_payment_does_not_block_retry(self):
        PaymentOrder.objects.create(
            application_id=APP_ID, merchant_order_id="MO_0", amount=9900, status="failed"
        )

        resp = self._post(initiate_payload())

        self.assertEqual(resp.status_code, 200)

    def test_gateway_failure_records_nothing(self):
        self.gateway.create_order.side_effect = GatewayError(
            "Payment initiation failed",
            code="KEY_NOT_ACTIVE",
            reason="Merchant M123 key index 1 not active",
            upstream={"code": "KEY_NOT_ACTIVE", "message": "Merchant M123 key index 1 not active"},
        )

        with self.assertLogs("scholarship.errors", level="ERROR"):
            resp = self._post(initiate_payload())

        self.assertEqual(resp.status_code, 500)
        body = resp.json()
        self.assertEqual(body, {"success": False, "message": "Payment initiation failed"})
        self.assertNotIn("M123", resp.content.decode())
        self.assertFalse(PaymentOrder.objects.exists())

    @override_settings(DEBUG=True)
    def test_gateway_failure_detail_only_in_debug(self):
        self.gateway.create_order.side_effect = GatewayError(
            "Payment initiation failed",
            code="INVALID_MERCHANT",
            reason="PhonePe Error: INVALID_MERCHANT",
            upstream={"code": "INVALID_MERCHANT"},
        )

        with self.assertLogs("scholarship.errors", level="ERROR"):
            resp = self._post(initiate_payload())

        body = resp.json()
        self.assertEqual(body["message"], "Payment initiation failed")
        self.assertEqual(body["error"], {
            "code": "INVALID_MERCHANT",
            "reason": "PhonePe Error: INVALID_MERCHANT",
            "upstream": {"code": "INVALID_MERCHANT"},
        })

    def test_zero_amount_is_missing(self):
        resp = self._post(initiate_payload(amount=0))

        self.assertEqual(resp.status_code, 400)
        body = resp.json()
        self.assertEqual(body["message"], "Missing required fields")
        self.assertEqual(body["errors"], ["amount is required"])

    def test_form_encoded_body_is_rejected(self):
        resp = self.client.post(reverse("payments:initiate"), data=initiate_payload())

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Invalid JSON body")
        self.gateway.create_order.assert_not_called()

    def test_overlong_keys_are_rejected_before_gateway(self):
        resp = self._post(initiate_payload(applicationId="A" * 33, merchantOrderId="M" * 65))

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["errors"], [
            "applicationId must be at most 32 characters",
            "merchantOrderId must be at most 64 characters",
        ])
        self.gateway.create_order.assert_not_called()
        self.assertFalse(PaymentOrder.objects.exists())

    def test_losing_the_insert_race_conflicts_with_winner(self):
        # another request inserts MO_1 after this one passed the lookup gate
        PaymentOrder.objects.create(
            application_id=APP_ID, merchant_order_id="MO_1", amount=9900, status="initiated"
        )
        real_find = PaymentOrder.objects.find_by_key
        lookups = []

        def stale_first_lookup(merchant_order_id):
            lookups.append(merchant_order_id)
            return None if len(lookups) == 1 else real_find(merchant_order_id)

        with patch.object(PaymentOrder.objects, "find_by_key", side_effect=stale_first_lookup):
            resp = self._post(initiate_payload())

        self.assertEqual(resp.status_code, 409)
        body = resp.json()
        self.assertEqual(body["message"], "Payment already exists for this order ID")
        self.assertEqual(body["existingPayment"]["merchantOrderId"], "MO_1")
        self.assertEqual(body["existingPayment"]["status"], "initiated")
        self.gateway.create_order.assert_called_once()
        self.assertEqual(PaymentOrder.objects.filter(merchant_order_id="MO_1").count(), 1)


class ReconcilePaymentViewTests(GatewayPatchMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.application = make_application(application_id=APP_ID)
        self.order = PaymentOrder.objects.create(
            application_id=APP_ID,
            merchant_order_id="MO_1",
            gateway_order_id="OMO123",
            amount=9900,
            status="initiated",
        )

    def _get(self, merchant_order_id="MO_1"):
        return self.client.get(reverse("payments:status", args=[merchant_order_id]))

    def test_unknown_order_is_404_without_gateway_call(self):
        resp = self._get("MO_404")

        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["message"], "Payment record not found")
        self.gateway.get_order_status.assert_not_called()

    def test_pending_updates_order_but_not_application(self):
        self.set_state("PENDING")

        with self.captureOnCommitCallbacks(execute=True):
            resp = self._get()

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["state"], "PENDING")
        self.assertEqual(body["localData"]["status"], "pending")
        self.assertTrue(body["localData"]["recognizedState"])

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "pending")
        self.application.refresh_from_db()
        self.assertEqual(self.application.payment_status, "pending")
        self.assertEqual(self.application.status, "pending")
        self.assertEqual(len(mail.outbox), 0)

    def test_completed_marks_application_paid_and_emails_once(self):
        with self.captureOnCommitCallbacks(execute=True):
            resp = self._get()

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["localData"]["status"], "completed")

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "completed")
        self.assertEqual(self.order.gateway_response["state"], "COMPLETED")
        self.application.refresh_from_db()
        self.assertEqual(self.application.payment_status, "completed")
        self.assertEqual(self.application.status, "paid")
        self.assertEqual(self.application.payment_order_id, "OMO123")

        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ["a@b.com"])
        self.assertIn("Successfully Submitted", message.subject)
        self.assertIn(APP_ID, message.body)
        self.assertIn("OMO123", message.body)

        with self.captureOnCommitCallbacks(execute=True):
            again = self._get()

        self.assertEqual(again.status_code, 200)
        self.assertEqual(len(mail.outbox), 1)

    def test_failed_leaves_application_untouched(self):
        self.set_state("FAILED")

        with self.captureOnCommitCallbacks(execute=True):
            resp = self._get()

        self.assertEqual(resp.json()["localData"]["status"], "failed")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "failed")
        self.application.refresh_from_db()
        self.assertEqual(self.application.payment_status, "pending")
        self.assertEqual(len(mail.outbox), 0)

    def test_unrecognized_state_is_pending_and_reported(self):
        self.set_state("CHARGEBACK")

        with self.assertLogs("payments.services", level="WARNING"):
            resp = self._get()

        local = resp.json()["localData"]
        self.assertEqual(local["status"], "pending")
        self.assertEqual(local["gatewayState"], "CHARGEBACK")
        self.assertFalse(local["recognizedState"])

    def test_gateway_error_leaves_order_unchanged(self):
        self.gateway.get_order_status.side_effect = GatewayError("Payment status check failed")

        with self.assertLogs("scholarship.errors", level="ERROR"):
            resp = self._get()

        self.assertEqual(resp.status_code, 500)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "initiated")

    def test_email_failure_does_not_fail_reconciliation(self):
        with patch("payments.emails.EmailMultiAlternatives.send", side_effect=OSError("smtp down")):
            with self.assertLogs("payments.emails", level="ERROR"):
                with self.captureOnCommitCallbacks(execute=True):
                    resp = self._get()

        self.assertEqual(resp.status_code, 200)
        self.application.refresh_from_db()
        self.assertEqual(self.application.status, "paid")

    @override_settings(EMAIL_ENABLED=False)
    def test_email_skipped_when_provider_not_configured(self):
        with self.assertLogs("payments.emails", level="WARNING"):
            with self.captureOnCommitCallbacks(execute=True):
                resp = self._get()

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(mail.outbox), 0)

    def test_completed_for_missing_application_is_logged(self):
        Application.objects.all().delete()

        with self.assertLogs("payments.services", level="WARNING"):
            with self.captureOnCommitCallbacks(execute=True):
                resp = self._get()

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["localData"]["status"], "completed")
        self.assertEqual(len(mail.outbox), 0)


class PaymentFlowTests(GatewayPatchMixin, TestCase):
    def test_submit_pay_poll(self):
        submit = self.client.post(
            reverse("applications:submit"),
            data=json.dumps({
                "name": "Asha Verma",
                "email": "a@b.com",
                "phone": "9876543210",
                "dob": "2006-04-12",
                "gender": "Female",
                "category": "Class 12",
                "school": "GGIC",
                "state": "Uttar Pradesh",
                "district": "Gorakhpur",
                "pincode": "273001",
                "address": "12 Station Road",
                "income_amount": 120000,
                "income_band": "1-2.5 lakh",
                "achievements": "District topper",
                "recommendation": "Principal",
                "sop": "x" * 60,
            }),
            content_type="application/json",
        )
        self.assertEqual(submit.status_code, 201)
        app_id = submit.json()["data"]["applicationId"]

        initiate = self.client.post(
            reverse("payments:initiate"),
            data=json.dumps(initiate_payload(applicationId=app_id)),
            content_type="application/json",
        )
        self.assertEqual(initiate.status_code, 200)
        self.assertTrue(initiate.json()["data"]["redirectUrl"].startswith("https://mercury.phonepe.com/"))

        with self.captureOnCommitCallbacks(execute=True):
            status = self.client.get(reverse("payments:status", args=["MO_1"]))

        self.assertEqual(status.json()["localData"]["status"], "completed")
        application = Application.objects.get(application_id=app_id)
        self.assertEqual(application.status, "paid")
        self.assertEqual(application.payment_status, "completed")
        self.assertEqual(len(mail.outbox), 1)

        # a second attempt right after a completed payment is rejected
        retry = self.client.post(
            reverse("payments:initiate"),
            data=json.dumps(initiate_payload(applicationId=app_id, merchantOrderId="MO_2")),
            content_type="application/json",
        )
        self.assertEqual(retry.status_code, 409)


class ServiceInjectionTests(TestCase):
    def test_explicit_client_and_tokens_are_used(self):
        make_application(application_id=APP_ID)
        client, tokens = fake_gateway()

        result = initiate_payment(initiate_payload(), client=client, tokens=tokens)

        self.assertEqual(result["orderId"], "OMO123")
        tokens.get_token.assert_called_once_with()
        client.create_order.assert_called_once()

        reconciled = reconcile_payment("MO_1", client=client, tokens=tokens)
        client.get_order_status.assert_called_once_with("tok", "MO_1")
        self.assertEqual(reconciled["localData"]["applicationId"], APP_ID)


class ReconcilePendingPaymentsCommandTests(GatewayPatchMixin, TestCase):
    def _order(self, merchant_order_id, status, minutes_ago):
        PaymentOrder.objects.create(
            application_id=APP_ID, merchant_order_id=merchant_order_id, amount=9900, status=status
        )
        PaymentOrder.objects.filter(merchant_order_id=merchant_order_id).update(
            updated_at=timezone.now() - timedelta(minutes=minutes_ago)
        )

    def test_polls_stale_open_orders_only(self):
        make_application(application_id=APP_ID)
        self._order("MO_OLD", "initiated", 10)
        self._order("MO_NEW", "initiated", 0)
        self._order("MO_DONE", "completed", 10)
        out = StringIO()

        call_command("reconcile_pending_payments", "--sleep", "0", stdout=out)

        self.gateway.get_order_status.assert_called_once_with("tok", "MO_OLD")
        self.assertEqual(PaymentOrder.objects.get(merchant_order_id="MO_OLD").status, "completed")
        self.assertEqual(PaymentOrder.objects.get(merchant_order_id="MO_NEW").status, "initiated")
        self.assertIn("Checked 1, updated 1 payments.", out.getvalue())

    def test_gateway_errors_are_reported_and_skipped(self):
        self._order("MO_OLD", "pending", 10)
        self.gateway.get_order_status.side_effect = GatewayError("Payment status check failed")
        out = StringIO()

        call_command("reconcile_pending_payments", "--sleep", "0", stdout=out)

        self.assertIn("MO_OLD: Payment status check failed", out.getvalue())
        self.assertIn("Checked 1, updated 0 payments.", out.getvalue())

    def test_nothing_to_do(self):
        out = StringIO()
        call_command("reconcile_pending_payments", stdout=out)
        self.assertIn("No pending payments to reconcile.", out.getvalue())


class PaymentStoreTests(TestCase):
    def test_update_by_key_patches_fields(self):
        order = PaymentOrder.objects.create(
            application_id=APP_ID, merchant_order_id="MO_1", amount=9900, status="initiated"
        )

        updated = PaymentOrder.objects.update_by_key("MO_1", status="failed", gateway_order_id="OMO9")

        self.assertEqual(updated, 1)
        order.refresh_from_db()
        self.assertEqual(order.status, "failed")
        self.assertEqual(order.gateway_order_id, "OMO9")
        self.assertEqual(PaymentOrder.objects.update_by_key("MO_404", status="failed"), 0)

    def test_create_order_duplicate_key_raises_conflict(self):
        from scholarship.errors import ConflictError

        PaymentOrder.objects.create_order(
            application_id=APP_ID, merchant_order_id="MO_1", amount=9900, status="pending"
        )
        with self.assertRaises(ConflictError) as cm:
            PaymentOrder.objects.create_order(
                application_id=APP_ID, merchant_order_id="MO_1", amount=9900, status="initiated"
            )
        self.assertEqual(cm.exception.payload["existingPayment"]["status"], "pending")
