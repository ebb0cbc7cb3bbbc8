from datetime import timedelta

from django.db import IntegrityError, models, transaction
from django.utils import timezone

from scholarship.errors import ConflictError


class PaymentOrderManager(models.Manager):
    def create_order(self, **fields):
        try:
            with transaction.atomic():
                return self.create(**fields)
        except IntegrityError:
            existing = self.find_by_key(fields.get("merchant_order_id"))
            raise ConflictError(
                "Payment already exists for this order ID",
                payload={"existingPayment": existing.summary() if existing else None},
            )

    def find_by_key(self, merchant_order_id):
        return self.filter(merchant_order_id=merchant_order_id).first()

    def for_application(self, application_id):
        return self.filter(application_id=application_id)

    def recent_completed(self, application_id, window: timedelta):
        cutoff = timezone.now() - window
        return (
            self.for_application(application_id)
            .filter(status=PaymentOrder.STATUS_COMPLETED, created_at__gte=cutoff)
            .order_by("-created_at")
            .first()
        )

    def update_by_key(self, merchant_order_id, **patch) -> int:
        patch.setdefault("updated_at", timezone.now())
        return self.filter(merchant_order_id=merchant_order_id).update(**patch)


class PaymentOrder(models.Model):
    STATUS_INITIATED = "initiated"
    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    STATUS_FAILED = "failed"
    STATUS_CHOICES = [
        (STATUS_INITIATED, "Initiated"),
        (STATUS_PENDING, "Pending"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_FAILED, "Failed"),
    ]

    # Reference only; an order never owns its application.
    application_id = models.CharField(max_length=32)
    merchant_order_id = models.CharField(max_length=64, unique=True)
    gateway_order_id = models.CharField(max_length=64, blank=True, default="", db_index=True)

    amount = models.PositiveIntegerField()  # paise
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_INITIATED)

    gateway_response = models.JSONField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PaymentOrderManager()

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["application_id", "status"], name="payment_app_status_idx"),
            models.Index(fields=["status", "-created_at"], name="payment_status_created_idx"),
        ]

    def summary(self) -> dict:
        return {
            "merchantOrderId": self.merchant_order_id,
            "status": self.status,
            "createdAt": self.created_at,
        }

    def __str__(self):
        return f"{self.merchant_order_id} ({self.status})"
