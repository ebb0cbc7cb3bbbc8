import json
import re
from datetime import date
from unittest.mock import patch

from django.test import TestCase
from django.urls import reverse

from .forms import ApplicationForm
from .models import Application

APPLICATION_ID_RE = re.compile(r"^NF\d{4}\d{13}\d{3}$")


def application_payload(**overrides):
    data = {
        "name": "Asha Verma",
        "email": "a@b.com",
        "phone": "9876543210",
        "dob": "2006-04-12",
        "gender": "Female",
        "category": "Class 12",
        "school": "Government Girls Inter College",
        "state": "Uttar Pradesh",
        "district": "Gorakhpur",
        "pincode": "273001",
        "address": "12 Station Road, Gorakhpur",
        "income_amount": 120000,
        "income_band": "1-2.5 lakh",
        "achievements": "District topper in class 10",
        "recommendation": "Principal, GGIC Gorakhpur",
        "sop": "I want to study engineering and support my family and village school in the future.",
    }
    data.update(overrides)
    return data


def make_application(**overrides):
    fields = application_payload(**overrides)
    fields.setdefault("application_id", "NF20251700000000000001")
    fields["dob"] = date.fromisoformat(fields["dob"])
    return Application.objects.create(**fields)


class ApplicationFormTests(TestCase):
    def test_valid_payload(self):
        form = ApplicationForm(data=application_payload())
        self.assertTrue(form.is_valid(), form.errors)

    def test_collects_every_violation(self):
        form = ApplicationForm(
            data=application_payload(email="not-an-email", phone="12345", pincode="2730", sop="Too short")
        )
        self.assertFalse(form.is_valid())
        self.assertEqual(set(form.errors), {"email", "phone", "pincode", "sop"})
        self.assertIn("Invalid email format", form.error_list())
        self.assertIn("Invalid Indian phone number", form.error_list())
        self.assertIn("Pincode must be exactly 6 digits", form.error_list())
        self.assertIn("Statement of purpose must be at least 50 characters", form.error_list())

    def test_blank_after_trim_is_missing(self):
        form = ApplicationForm(data=application_payload(name="   ", school=""))
        self.assertFalse(form.is_valid())
        self.assertIn("Name is required", form.error_list())
        self.assertIn("School/College name is required", form.error_list())

    def test_phone_must_start_with_6_to_9(self):
        form = ApplicationForm(data=application_payload(phone="5876543210"))
        self.assertFalse(form.is_valid())
        self.assertEqual(list(form.errors), ["phone"])

    def test_email_is_normalized(self):
        form = ApplicationForm(data=application_payload(email="  Asha.V@Example.COM "))
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data["email"], "asha.v@example.com")


class SubmitApplicationViewTests(TestCase):
    def _post(self, payload):
        return self.client.post(
            reverse("applications:submit"),
            data=json.dumps(payload),
            content_type="application/json",
        )

    def test_submission_creates_pending_application(self):
        resp = self._post(application_payload())

        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertTrue(body["success"])
        app_id = body["data"]["applicationId"]
        self.assertRegex(app_id, APPLICATION_ID_RE)
        self.assertIn("timestamp", body["data"])

        application = Application.objects.get(application_id=app_id)
        self.assertEqual(application.status, "pending")
        self.assertEqual(application.payment_status, "pending")
        self.assertEqual(application.payment_order_id, "")

    def test_validation_errors_are_reported_together(self):
        resp = self._post(application_payload(email="bad", phone="123", pincode="12", sop="short"))

        self.assertEqual(resp.status_code, 400)
        body = resp.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["message"], "Validation failed")
        self.assertEqual(len(body["errors"]), 4)
        self.assertEqual(set(body["fields"]), {"email", "phone", "pincode", "sop"})
        self.assertFalse(Application.objects.exists())

    def test_resubmitting_same_contact_conflicts(self):
        self.assertEqual(self._post(application_payload()).status_code, 201)

        resp = self._post(application_payload())

        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["message"], "Application already exists with this email or phone number")
        self.assertEqual(Application.objects.count(), 1)

    def test_same_email_different_phone_conflicts(self):
        self._post(application_payload())
        resp = self._post(application_payload(email="A@B.com", phone="9123456780"))
        self.assertEqual(resp.status_code, 409)

    def test_same_phone_different_email_conflicts(self):
        self._post(application_payload())
        resp = self._post(application_payload(email="other@b.com"))
        self.assertEqual(resp.status_code, 409)

    def test_unseen_contact_is_accepted(self):
        self._post(application_payload())
        resp = self._post(application_payload(email="other@b.com", phone="9123456780"))
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(Application.objects.count(), 2)

    def test_invalid_json_is_rejected(self):
        resp = self.client.post(
            reverse("applications:submit"), data="{not json", content_type="application/json"
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Invalid JSON body")

    def test_colliding_application_id_is_regenerated(self):
        make_application(email="x@y.com", phone="9000000000", application_id="NF20250000000000000001")
        with patch(
            "applications.services.gen_application_id",
            side_effect=["NF20250000000000000001", "NF20250000000000000002"],
        ):
            resp = self._post(application_payload())

        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["data"]["applicationId"], "NF20250000000000000002")

    def test_unexpected_error_returns_500_without_detail(self):
        with patch.object(Application.objects, "create_application", side_effect=RuntimeError("db down")):
            with self.assertLogs("scholarship.errors", level="ERROR"):
                resp = self._post(application_payload())

        self.assertEqual(resp.status_code, 500)
        body = resp.json()
        self.assertEqual(body["message"], "Application submission failed")
        self.assertNotIn("error", body)


class ApplicationDetailViewTests(TestCase):
    def test_returns_application(self):
        application = make_application()

        resp = self.client.get(reverse("applications:detail", args=[application.application_id]))

        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["applicationId"], application.application_id)
        self.assertEqual(data["email"], "a@b.com")
        self.assertEqual(data["paymentStatus"], "pending")
        self.assertIsNone(data["paymentOrderId"])

    def test_unknown_application_is_404(self):
        resp = self.client.get(reverse("applications:detail", args=["NF_UNKNOWN"]))
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["message"], "Application not found")


class ApplicationStoreTests(TestCase):
    def test_duplicate_contact_pair_raises_conflict(self):
        from scholarship.errors import ConflictError

        make_application()
        fields = application_payload(application_id="NF20251700000000000099")
        fields["dob"] = date(2006, 4, 12)
        with self.assertRaises(ConflictError):
            Application.objects.create_application(**fields)

    def test_update_by_key_patches_fields(self):
        application = make_application()

        updated = Application.objects.update_by_key(application.application_id, status="paid")

        self.assertEqual(updated, 1)
        application.refresh_from_db()
        self.assertEqual(application.status, "paid")
