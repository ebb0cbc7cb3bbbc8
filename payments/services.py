"""Payment initiation and status reconciliation against PhonePe.

``initiate_payment`` runs the duplicate/amount gates before touching the
gateway and records a PaymentOrder only once PhonePe has accepted the order.
``reconcile_payment`` pulls the authoritative order state and propagates it
to the PaymentOrder and its Application, emailing the applicant the first
time an order is seen as completed.
"""
import logging
from datetime import timedelta
from urllib.parse import urlencode

from django.conf import settings
from django.db import transaction

from applications.models import Application
from scholarship.errors import ConflictError, NotFoundError, ValidationError

from .emails import send_application_confirmation
from .integrations.phonepe import KNOWN_STATES, STATE_COMPLETED, STATE_FAILED, STATE_PENDING
from .models import PaymentOrder
from .token_cache import get_gateway_client, get_token_cache

logger = logging.getLogger(__name__)

INITIATE_FIELDS = ["applicationId", "amount", "name", "email", "phone", "merchantOrderId"]

STATE_TO_STATUS = {
    STATE_COMPLETED: PaymentOrder.STATUS_COMPLETED,
    STATE_FAILED: PaymentOrder.STATUS_FAILED,
    STATE_PENDING: PaymentOrder.STATUS_PENDING,
}


def map_gateway_state(state: str) -> str:
    """Local PaymentOrder status for a PhonePe order state; unknown states stay pending."""
    if state not in KNOWN_STATES:
        logger.warning("Unknown PhonePe order state: %r", state)
    return STATE_TO_STATUS.get(state, PaymentOrder.STATUS_PENDING)


def payment_redirect_url(merchant_order_id: str) -> str:
    query = urlencode({"transactionId": merchant_order_id})
    return f"{settings.FRONTEND_URL}/payment-status.html?{query}"


def _is_accepted_amount(amount) -> bool:
    # bool is an int subclass; "99" and 99.0 are rejected too
    return type(amount) is int and amount == settings.APPLICATION_FEE


def _clean(body: dict) -> dict:
    return {k: (v.strip() if isinstance(v, str) else v) for k, v in body.items()}


def _is_missing(value) -> bool:
    # numeric zero counts as absent
    return value is None or value == "" or (not isinstance(value, str) and value == 0)


def _key_length_errors(application_id: str, merchant_order_id: str) -> list:
    limits = [
        ("applicationId", application_id, PaymentOrder._meta.get_field("application_id").max_length),
        ("merchantOrderId", merchant_order_id, PaymentOrder._meta.get_field("merchant_order_id").max_length),
    ]
    return [f"{name} must be at most {limit} characters" for name, value, limit in limits if len(value) > limit]


def initiate_payment(body: dict, *, client=None, tokens=None) -> dict:
    body = _clean(body)
    missing = [k for k in INITIATE_FIELDS if _is_missing(body.get(k))]
    if missing:
        raise ValidationError([f"{k} is required" for k in missing], "Missing required fields")

    if not _is_accepted_amount(body["amount"]):
        raise ValidationError([f"amount must be {settings.APPLICATION_FEE}"], "Invalid amount")

    application_id = str(body["applicationId"])
    merchant_order_id = str(body["merchantOrderId"])
    # must run before the gateway call
    too_long = _key_length_errors(application_id, merchant_order_id)
    if too_long:
        raise ValidationError(too_long)

    existing = PaymentOrder.objects.find_by_key(merchant_order_id)
    if existing:
        raise ConflictError(
            "Payment already exists for this order ID",
            payload={"existingPayment": existing.summary()},
        )

    window = timedelta(minutes=settings.DUPLICATE_PAYMENT_WINDOW_MINUTES)
    duplicate = PaymentOrder.objects.recent_completed(application_id, window)
    if duplicate:
        raise ConflictError(
            f"Payment already exists for this application. Status: {duplicate.status}",
            payload={"existingPayment": duplicate.summary()},
        )

    client = client or get_gateway_client()
    tokens = tokens or get_token_cache()
    amount = body["amount"] * 100

    order = client.create_order(
        tokens.get_token(),
        merchant_order_id=merchant_order_id,
        amount=amount,
        metadata={
            "application_id": application_id,
            "name": str(body["name"]),
            "email": str(body["email"]),
            "phone": str(body["phone"]),
        },
        redirect_url=payment_redirect_url(merchant_order_id),
    )

    PaymentOrder.objects.create_order(
        application_id=application_id,
        merchant_order_id=merchant_order_id,
        gateway_order_id=order.order_id,
        amount=amount,
        status=PaymentOrder.STATUS_INITIATED,
        gateway_response=order.raw,
    )
    logger.info("Payment %s initiated for %s (gateway order %s)", merchant_order_id, application_id, order.order_id)

    return {
        "orderId": order.order_id,
        "redirectUrl": order.redirect_url,
        "state": order.state,
        "expireAt": order.expire_at,
    }


def _notify(application_pk, gateway_order_id):
    application = Application.objects.filter(pk=application_pk).first()
    if application is None:
        return
    try:
        send_application_confirmation(application=application, gateway_order_id=gateway_order_id)
    except Exception:
        logger.exception("Confirmation email crashed for %s", application.application_id)


def reconcile_payment(merchant_order_id: str, *, client=None, tokens=None) -> dict:
    payment = PaymentOrder.objects.find_by_key(merchant_order_id)
    if payment is None:
        raise NotFoundError("Payment record not found")

    client = client or get_gateway_client()
    tokens = tokens or get_token_cache()
    result = client.get_order_status(tokens.get_token(), merchant_order_id)

    new_status = map_gateway_state(result.state)
    completed = new_status == PaymentOrder.STATUS_COMPLETED

    with transaction.atomic():
        locked = PaymentOrder.objects.select_for_update().get(pk=payment.pk)
        previous_status = locked.status
        locked.status = new_status
        locked.gateway_order_id = result.order_id or locked.gateway_order_id
        locked.gateway_response = result.raw
        locked.save(update_fields=["status", "gateway_order_id", "gateway_response", "updated_at"])

        application = None
        if completed:
            Application.objects.update_by_key(
                locked.application_id,
                payment_status="completed",
                status="paid",
                payment_order_id=locked.gateway_order_id,
            )
            application = Application.objects.find_by_key(locked.application_id)
            if application is None:
                logger.warning("Payment %s completed for unknown application %s",
                               merchant_order_id, locked.application_id)

        if completed and previous_status != PaymentOrder.STATUS_COMPLETED and application:
            app_pk, order_id = application.pk, locked.gateway_order_id
            transaction.on_commit(lambda: _notify(app_pk, order_id))

    if previous_status != new_status:
        logger.info("Payment %s: %s -> %s", merchant_order_id, previous_status, new_status)

    return {
        "data": result.raw,
        "localData": {
            "merchantOrderId": locked.merchant_order_id,
            "applicationId": locked.application_id,
            "status": locked.status,
            "gatewayState": result.state,
            "recognizedState": result.state in KNOWN_STATES,
            "createdAt": locked.created_at,
            "updatedAt": locked.updated_at,
        },
    }
