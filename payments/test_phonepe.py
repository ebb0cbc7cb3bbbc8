from unittest.mock import patch

import requests
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings
from requests.auth import HTTPBasicAuth

from .integrations.phonepe import (
    AuthError,
    GatewayError,
    PHONEPE_URLS,
    PhonePeClient,
)


class FakeResponse:
    def __init__(self, status_code=200, data=None, text=""):
        self.status_code = status_code
        self._data = data
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._data is None:
            raise ValueError("No JSON")
        return self._data


def make_client(**overrides):
    kwargs = dict(
        client_id="cid",
        client_secret="csecret",
        client_version="1",
        merchant_id="MID",
        environment="UAT",
        timeout=7,
    )
    kwargs.update(overrides)
    return PhonePeClient(**kwargs)


class FromSettingsTests(SimpleTestCase):
    def test_builds_client_from_settings(self):
        client = PhonePeClient.from_settings()
        self.assertEqual(client.client_id, "test-client")
        self.assertEqual(client.urls, PHONEPE_URLS["UAT"])

    @override_settings(PHONEPE_CLIENT_SECRET="", PHONEPE_MERCHANT_ID="")
    def test_missing_credentials_prevent_operation(self):
        with self.assertLogs("payments.integrations.phonepe", level="ERROR"):
            with self.assertRaises(ImproperlyConfigured) as cm:
                PhonePeClient.from_settings()
        self.assertIn("PHONEPE_CLIENT_SECRET", str(cm.exception))
        self.assertIn("PHONEPE_MERCHANT_ID", str(cm.exception))

    @override_settings(PHONEPE_CLIENT_VERSION="")
    def test_missing_client_version_prevents_operation(self):
        with self.assertLogs("payments.integrations.phonepe", level="ERROR"):
            with self.assertRaises(ImproperlyConfigured) as cm:
                PhonePeClient.from_settings()
        self.assertIn("PHONEPE_CLIENT_VERSION", str(cm.exception))

    def test_unknown_environment_rejected(self):
        with self.assertRaises(ImproperlyConfigured):
            make_client(environment="STAGING")


class ExchangeTokenTests(SimpleTestCase):
    def test_posts_client_credentials_with_basic_auth(self):
        resp = FakeResponse(data={
            "access_token": "tok",
            "token_type": "O-Bearer",
            "issued_at": 1700000000,
            "expires_at": 1700003600,
        })
        with patch("payments.integrations.phonepe.requests.post", return_value=resp) as post:
            token = make_client().exchange_token()

        self.assertEqual(token.token, "tok")
        self.assertEqual(token.issued_at, 1700000000)
        self.assertEqual(token.expires_at, 1700003600)

        post.assert_called_once()
        args, kwargs = post.call_args
        self.assertEqual(args[0], PHONEPE_URLS["UAT"]["token"])
        self.assertEqual(kwargs["data"], {
            "client_id": "cid",
            "client_version": "1",
            "client_secret": "csecret",
            "grant_type": "client_credentials",
        })
        self.assertEqual(kwargs["auth"], HTTPBasicAuth("cid", "csecret"))
        self.assertEqual(kwargs["headers"]["Content-Type"], "application/x-www-form-urlencoded")
        self.assertEqual(kwargs["timeout"], 7)

    def test_missing_access_token_is_auth_error(self):
        resp = FakeResponse(data={"token_type": "O-Bearer"})
        with patch("payments.integrations.phonepe.requests.post", return_value=resp):
            with self.assertLogs("payments.integrations.phonepe", level="ERROR"):
                with self.assertRaises(AuthError):
                    make_client().exchange_token()

    def test_non_2xx_is_auth_error_with_upstream_message(self):
        resp = FakeResponse(status_code=401, data={"code": "UNAUTHORIZED", "message": "Client not found"})
        with patch("payments.integrations.phonepe.requests.post", return_value=resp):
            with self.assertLogs("payments.integrations.phonepe", level="ERROR"):
                with self.assertRaises(AuthError) as cm:
                    make_client().exchange_token()
        self.assertEqual(cm.exception.message, "OAuth token generation failed")
        self.assertEqual(cm.exception.reason, "Client not found")
        self.assertEqual(cm.exception.code, "UNAUTHORIZED")

    def test_transport_failure_is_auth_error(self):
        with patch(
            "payments.integrations.phonepe.requests.post",
            side_effect=requests.Timeout("read timed out"),
        ):
            with self.assertLogs("payments.integrations.phonepe", level="ERROR"):
                with self.assertRaises(AuthError):
                    make_client().exchange_token()


class CreateOrderTests(SimpleTestCase):
    metadata = {"application_id": "NF1", "name": "Asha", "email": "a@b.com", "phone": "9876543210"}

    def _create(self, resp):
        with patch("payments.integrations.phonepe.requests.post", return_value=resp) as post:
            order = make_client().create_order(
                "tok",
                merchant_order_id="MO_1",
                amount=9900,
                metadata=self.metadata,
                redirect_url="https://apply.example.com/payment-status.html?transactionId=MO_1",
            )
        return order, post

    def test_sends_checkout_payload_with_bearer_header(self):
        order, post = self._create(FakeResponse(data={
            "orderId": "OMO123",
            "state": "PENDING",
            "expireAt": 1700001800000,
            "redirectUrl": "https://mercury.phonepe.com/transact/pay?token=abc",
        }))

        self.assertEqual(order.order_id, "OMO123")
        self.assertEqual(order.redirect_url, "https://mercury.phonepe.com/transact/pay?token=abc")
        self.assertEqual(order.state, "PENDING")
        self.assertEqual(order.expire_at, 1700001800000)

        args, kwargs = post.call_args
        self.assertEqual(args[0], PHONEPE_URLS["UAT"]["payment"])
        self.assertEqual(kwargs["headers"]["Authorization"], "O-Bearer tok")
        payload = kwargs["json"]
        self.assertEqual(payload["merchantId"], "MID")
        self.assertEqual(payload["merchantOrderId"], "MO_1")
        self.assertEqual(payload["amount"], 9900)
        self.assertEqual(payload["expireAfter"], 1800)
        self.assertEqual(payload["metaInfo"], {
            "udf1": "NF1",
            "udf2": "Asha",
            "udf3": "a@b.com",
            "udf4": "9876543210",
            "udf5": "Scholarship Application",
        })
        self.assertEqual(payload["paymentFlow"]["type"], "PG_CHECKOUT")
        self.assertIn("MO_1", payload["paymentFlow"]["merchantUrls"]["redirectUrl"])
        self.assertEqual(kwargs["timeout"], 7)

    def test_missing_redirect_url_is_gateway_error(self):
        with self.assertLogs("payments.integrations.phonepe", level="ERROR"):
            with self.assertRaises(GatewayError) as cm:
                self._create(FakeResponse(data={"code": "BAD_REQUEST", "message": "Invalid amount"}))
        self.assertEqual(cm.exception.code, "BAD_REQUEST")
        self.assertEqual(cm.exception.message, "Payment initiation failed")
        self.assertEqual(cm.exception.reason, "Invalid amount")

    def test_missing_order_id_is_gateway_error(self):
        with self.assertLogs("payments.integrations.phonepe", level="ERROR"):
            with self.assertRaises(GatewayError):
                self._create(FakeResponse(data={"redirectUrl": "https://mercury.phonepe.com/x"}))

    def test_upstream_error_code_is_kept_out_of_message(self):
        with self.assertLogs("payments.integrations.phonepe", level="ERROR"):
            with self.assertRaises(GatewayError) as cm:
                self._create(FakeResponse(status_code=400, data={"code": "INVALID_MERCHANT"}))
        self.assertEqual(cm.exception.message, "Payment initiation failed")
        self.assertEqual(cm.exception.reason, "PhonePe Error: INVALID_MERCHANT")
        self.assertEqual(cm.exception.upstream, {"code": "INVALID_MERCHANT"})

    def test_non_json_body_is_gateway_error(self):
        with self.assertLogs("payments.integrations.phonepe", level="ERROR"):
            with self.assertRaises(GatewayError) as cm:
                self._create(FakeResponse(status_code=502, text="<html>Bad gateway</html>"))
        self.assertEqual(cm.exception.upstream, {"raw": "<html>Bad gateway</html>"})


class OrderStatusTests(SimpleTestCase):
    def test_gets_status_with_detail_flags(self):
        resp = FakeResponse(data={"orderId": "OMO123", "state": "COMPLETED", "amount": 9900})
        with patch("payments.integrations.phonepe.requests.get", return_value=resp) as get:
            status = make_client().get_order_status("tok", "MO_1")

        self.assertEqual(status.state, "COMPLETED")
        self.assertEqual(status.order_id, "OMO123")
        self.assertEqual(status.raw["amount"], 9900)

        args, kwargs = get.call_args
        self.assertEqual(args[0], PHONEPE_URLS["UAT"]["status"] + "/MO_1/status")
        self.assertEqual(kwargs["params"], {"details": "true", "errorContext": "true"})
        self.assertEqual(kwargs["headers"]["Authorization"], "O-Bearer tok")
        self.assertEqual(kwargs["timeout"], 7)

    def test_non_2xx_is_gateway_error(self):
        resp = FakeResponse(status_code=404, data={"code": "ORDER_NOT_FOUND"})
        with patch("payments.integrations.phonepe.requests.get", return_value=resp):
            with self.assertLogs("payments.integrations.phonepe", level="ERROR"):
                with self.assertRaises(GatewayError) as cm:
                    make_client().get_order_status("tok", "MO_1")
        self.assertEqual(cm.exception.code, "ORDER_NOT_FOUND")

    def test_transport_failure_is_gateway_error(self):
        with patch(
            "payments.integrations.phonepe.requests.get",
            side_effect=requests.ConnectionError("refused"),
        ):
            with self.assertLogs("payments.integrations.phonepe", level="ERROR"):
                with self.assertRaises(GatewayError) as cm:
                    make_client().get_order_status("tok", "MO_1")
        self.assertEqual(cm.exception.message, "Payment status check failed")
        self.assertEqual(cm.exception.reason, "refused")
