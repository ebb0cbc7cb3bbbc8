from django.db import IntegrityError, models, transaction
from django.db.models import Q
from django.utils import timezone

from scholarship.errors import ConflictError


class ApplicationManager(models.Manager):
    def create_application(self, **fields):
        try:
            with transaction.atomic():
                return self.create(**fields)
        except IntegrityError:
            raise ConflictError("Application already exists with this email or phone number")

    def find_by_key(self, application_id):
        return self.filter(application_id=application_id).first()

    def find_duplicate(self, email, phone):
        """Any application sharing the email OR the phone number."""
        return self.filter(Q(email__iexact=email) | Q(phone=phone)).first()

    def update_by_key(self, application_id, **patch) -> int:
        patch.setdefault("updated_at", timezone.now())
        return self.filter(application_id=application_id).update(**patch)


class Application(models.Model):
    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("paid", "Paid"),
        ("approved", "Approved"),
        ("rejected", "Rejected"),
    ]
    PAYMENT_STATUS_CHOICES = [
        ("pending", "Pending"),
        ("completed", "Completed"),
        ("failed", "Failed"),
    ]
    GENDER_CHOICES = [
        ("Male", "Male"),
        ("Female", "Female"),
        ("Other", "Other"),
    ]

    application_id = models.CharField(max_length=32, unique=True)

    name = models.CharField(max_length=150)
    email = models.EmailField()
    phone = models.CharField(max_length=10)
    dob = models.DateField()
    gender = models.CharField(max_length=8, choices=GENDER_CHOICES)

    category = models.CharField(max_length=100)  # class / course
    school = models.CharField(max_length=200)
    state = models.CharField(max_length=100)
    district = models.CharField(max_length=100)
    pincode = models.CharField(max_length=6)
    address = models.TextField()
    income_amount = models.PositiveIntegerField()
    income_band = models.CharField(max_length=64)
    achievements = models.TextField()
    recommendation = models.TextField()
    sop = models.TextField()

    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default="pending")
    payment_status = models.CharField(max_length=16, choices=PAYMENT_STATUS_CHOICES, default="pending")
    payment_order_id = models.CharField(max_length=64, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ApplicationManager()

    class Meta:
        ordering = ("-created_at",)
        constraints = [
            models.UniqueConstraint(fields=["email", "phone"], name="unique_application_contact"),
        ]
        indexes = [
            models.Index(fields=["status", "-created_at"], name="application_status_idx"),
            models.Index(fields=["payment_status", "-created_at"], name="application_paystatus_idx"),
        ]

    def __str__(self):
        return f"{self.application_id} ({self.name})"

    def to_dict(self) -> dict:
        return {
            "applicationId": self.application_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "dob": self.dob.isoformat() if self.dob else None,
            "gender": self.gender,
            "category": self.category,
            "school": self.school,
            "state": self.state,
            "district": self.district,
            "pincode": self.pincode,
            "address": self.address,
            "income_amount": self.income_amount,
            "income_band": self.income_band,
            "achievements": self.achievements,
            "recommendation": self.recommendation,
            "sop": self.sop,
            "status": self.status,
            "paymentStatus": self.payment_status,
            "paymentOrderId": self.payment_order_id or None,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
