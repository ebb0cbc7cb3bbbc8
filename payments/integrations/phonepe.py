"""PhonePe Checkout v2 client: OAuth token exchange, order creation, order status.

Docs: https://developer.phonepe.com/v1/reference/pay-api (Standard Checkout v2)
"""
import logging
from typing import NamedTuple, Optional

import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from requests import RequestException
from requests.auth import HTTPBasicAuth

from scholarship.errors import IntakeError

logger = logging.getLogger(__name__)

PHONEPE_URLS = {
    "UAT": {
        "token": "https://api-preprod.phonepe.com/apis/pg-sandbox/v1/oauth/token",
        "payment": "https://api-preprod.phonepe.com/apis/pg-sandbox/checkout/v2/pay",
        "status": "https://api-preprod.phonepe.com/apis/pg-sandbox/checkout/v2/order",
    },
    "PROD": {
        "token": "https://api.phonepe.com/apis/identity-manager/v1/oauth/token",
        "payment": "https://api.phonepe.com/apis/pg/checkout/v2/pay",
        "status": "https://api.phonepe.com/apis/pg/checkout/v2/order",
    },
}

ORDER_EXPIRE_AFTER = 1800  # seconds
CHECKOUT_MESSAGE = "Naukrivalaa Foundation Scholarship Application Fee"
APPLICATION_TAG = "Scholarship Application"

STATE_COMPLETED = "COMPLETED"
STATE_FAILED = "FAILED"
STATE_PENDING = "PENDING"
KNOWN_STATES = {STATE_COMPLETED, STATE_FAILED, STATE_PENDING}

# Public messages; upstream reasons never reach a production response.
ORDER_FAILED_MESSAGE = "Payment initiation failed"
STATUS_FAILED_MESSAGE = "Payment status check failed"


class PhonePeError(IntakeError):
    """Gateway failure with a fixed public message.

    The upstream code and reason stay in ``detail``, which only reaches the
    response body under DEBUG.
    """

    status_code = 500

    def __init__(self, message, *, code=None, reason=None, upstream=None):
        self.code = code
        self.reason = reason
        self.upstream = upstream
        detail = {k: v for k, v in (("code", code), ("reason", reason), ("upstream", upstream)) if v}
        super().__init__(message, detail=detail or None)


class AuthError(PhonePeError):
    """Token exchange failed."""

    default_message = "OAuth token generation failed"

    def __init__(self, message=None, **kwargs):
        super().__init__(message or self.default_message, **kwargs)


class GatewayError(PhonePeError):
    """Order creation or status call failed."""


class AccessToken(NamedTuple):
    token: str
    issued_at: int
    expires_at: int


class CheckoutOrder(NamedTuple):
    order_id: str
    redirect_url: str
    state: Optional[str]
    expire_at: Optional[int]
    raw: dict


class OrderStatus(NamedTuple):
    state: str
    order_id: Optional[str]
    raw: dict


def _json_or_raw(resp) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {"raw": resp.text}
    return data if isinstance(data, dict) else {"raw": data}


def _upstream_reason(data: dict, fallback: str) -> str:
    if data.get("message"):
        return str(data["message"])
    if data.get("code"):
        return f"PhonePe Error: {data['code']}"
    return fallback


class PhonePeClient:
    def __init__(self, *, client_id, client_secret, client_version, merchant_id,
                 environment="PROD", timeout=30):
        if environment not in PHONEPE_URLS:
            raise ImproperlyConfigured(f"PHONEPE_ENV must be one of {sorted(PHONEPE_URLS)}, got {environment!r}")
        self.client_id = client_id
        self.client_secret = client_secret
        self.client_version = client_version
        self.merchant_id = merchant_id
        self.environment = environment
        self.urls = PHONEPE_URLS[environment]
        self.timeout = timeout

    @classmethod
    def from_settings(cls):
        required = {
            "PHONEPE_CLIENT_ID": settings.PHONEPE_CLIENT_ID,
            "PHONEPE_CLIENT_SECRET": settings.PHONEPE_CLIENT_SECRET,
            "PHONEPE_CLIENT_VERSION": settings.PHONEPE_CLIENT_VERSION,
            "PHONEPE_MERCHANT_ID": settings.PHONEPE_MERCHANT_ID,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            logger.error("PhonePe credentials missing: %s", ", ".join(missing))
            raise ImproperlyConfigured(f"Missing PhonePe settings: {', '.join(missing)}")
        return cls(
            client_id=settings.PHONEPE_CLIENT_ID,
            client_secret=settings.PHONEPE_CLIENT_SECRET,
            client_version=settings.PHONEPE_CLIENT_VERSION,
            merchant_id=settings.PHONEPE_MERCHANT_ID,
            environment=settings.PHONEPE_ENV,
            timeout=settings.PHONEPE_TIMEOUT,
        )

    def _auth_headers(self, token: str) -> dict:
        return {"Content-Type": "application/json", "Authorization": f"O-Bearer {token}"}

    # ---------- API calls ----------
    def exchange_token(self) -> AccessToken:
        """Client-credentials grant; Basic auth plus the credentials in the form body."""
        form = {
            "client_id": self.client_id,
            "client_version": self.client_version,
            "client_secret": self.client_secret,
            "grant_type": "client_credentials",
        }
        url = self.urls["token"]
        try:
            resp = requests.post(
                url,
                data=form,
                auth=HTTPBasicAuth(self.client_id, self.client_secret),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except RequestException as e:
            logger.error("PhonePe token request to %s failed: %s", url, e)
            raise AuthError(reason=str(e))

        data = _json_or_raw(resp)
        if not resp.ok:
            logger.error("PhonePe token exchange failed: status=%s body=%s", resp.status_code, data)
            raise AuthError(
                reason=_upstream_reason(data, f"HTTP {resp.status_code}"),
                code=data.get("code"),
                upstream=data,
            )
        if not data.get("access_token"):
            logger.error("PhonePe token response has no access_token: %s", data)
            raise AuthError(reason="invalid token response", upstream=data)

        return AccessToken(
            token=data["access_token"],
            issued_at=int(data.get("issued_at") or 0),
            expires_at=int(data.get("expires_at") or 0),
        )

    def create_order(self, token, *, merchant_order_id, amount, metadata, redirect_url) -> CheckoutOrder:
        """Create a PG_CHECKOUT order. ``amount`` is in paise."""
        payload = {
            "merchantId": self.merchant_id,
            "merchantOrderId": merchant_order_id,
            "amount": amount,
            "expireAfter": ORDER_EXPIRE_AFTER,
            "metaInfo": {
                "udf1": metadata.get("application_id", ""),
                "udf2": metadata.get("name", ""),
                "udf3": metadata.get("email", ""),
                "udf4": metadata.get("phone", ""),
                "udf5": APPLICATION_TAG,
            },
            "paymentFlow": {
                "type": "PG_CHECKOUT",
                "message": CHECKOUT_MESSAGE,
                "merchantUrls": {"redirectUrl": redirect_url},
            },
        }
        url = self.urls["payment"]
        try:
            resp = requests.post(url, json=payload, headers=self._auth_headers(token), timeout=self.timeout)
        except RequestException as e:
            logger.error("PhonePe order creation for %s failed: %s", merchant_order_id, e)
            raise GatewayError(ORDER_FAILED_MESSAGE, reason=str(e))

        data = _json_or_raw(resp)
        if not resp.ok:
            logger.error(
                "PhonePe order creation failed for %s: status=%s body=%s",
                merchant_order_id, resp.status_code, data,
            )
            raise GatewayError(
                ORDER_FAILED_MESSAGE,
                reason=_upstream_reason(data, f"HTTP {resp.status_code}"),
                code=data.get("code"),
                upstream=data,
            )
        if not (data.get("redirectUrl") and data.get("orderId")):
            logger.error("PhonePe response for %s missing redirectUrl/orderId: %s", merchant_order_id, data)
            raise GatewayError(
                ORDER_FAILED_MESSAGE,
                reason=_upstream_reason(data, "response missing redirectUrl/orderId"),
                code=data.get("code"),
                upstream=data,
            )

        return CheckoutOrder(
            order_id=data["orderId"],
            redirect_url=data["redirectUrl"],
            state=data.get("state"),
            expire_at=data.get("expireAt"),
            raw=data,
        )

    def get_order_status(self, token, merchant_order_id) -> OrderStatus:
        url = f"{self.urls['status']}/{merchant_order_id}/status"
        try:
            resp = requests.get(
                url,
                params={"details": "true", "errorContext": "true"},
                headers=self._auth_headers(token),
                timeout=self.timeout,
            )
        except RequestException as e:
            logger.error("PhonePe status request for %s failed: %s", merchant_order_id, e)
            raise GatewayError(STATUS_FAILED_MESSAGE, reason=str(e))

        data = _json_or_raw(resp)
        if not resp.ok:
            logger.error(
                "PhonePe status failed for %s: status=%s body=%s",
                merchant_order_id, resp.status_code, data,
            )
            raise GatewayError(
                STATUS_FAILED_MESSAGE,
                reason=_upstream_reason(data, f"HTTP {resp.status_code}"),
                code=data.get("code"),
                upstream=data,
            )

        return OrderStatus(state=str(data.get("state") or ""), order_id=data.get("orderId"), raw=data)
