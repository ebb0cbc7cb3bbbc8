from django import forms
from django.core.validators import RegexValidator

from .models import Application

phone_validator = RegexValidator(r"^[6-9]\d{9}$", "Invalid Indian phone number")
pincode_validator = RegexValidator(r"^\d{6}$", "Pincode must be exactly 6 digits")

SOP_MIN_LENGTH = 50


def _required(label):
    return {"required": f"{label} is required"}


class ApplicationForm(forms.Form):
    """Scholarship application as submitted by the intake form.

    Field names match the JSON keys the browser sends. ``is_valid()`` reports
    every violation at once; ``error_list()`` flattens them for the API.
    """

    name = forms.CharField(max_length=150, error_messages=_required("Name"))
    email = forms.EmailField(
        error_messages={**_required("Email"), "invalid": "Invalid email format"},
    )
    phone = forms.CharField(validators=[phone_validator], error_messages=_required("Phone number"))
    dob = forms.DateField(
        error_messages={**_required("Date of birth"), "invalid": "Invalid date of birth"},
    )
    gender = forms.ChoiceField(
        choices=Application.GENDER_CHOICES,
        error_messages={**_required("Gender"), "invalid_choice": "Gender must be Male, Female or Other"},
    )
    category = forms.CharField(max_length=100, error_messages=_required("Class/Course"))
    school = forms.CharField(max_length=200, error_messages=_required("School/College name"))
    state = forms.CharField(max_length=100, error_messages=_required("State"))
    district = forms.CharField(max_length=100, error_messages=_required("District"))
    pincode = forms.CharField(validators=[pincode_validator], error_messages=_required("Pincode"))
    address = forms.CharField(error_messages=_required("Address"))
    income_amount = forms.IntegerField(
        min_value=0,
        error_messages={**_required("Family income"), "invalid": "Family income must be a number"},
    )
    income_band = forms.CharField(max_length=64, error_messages=_required("Income band"))
    achievements = forms.CharField(error_messages={"required": "Achievements are required"})
    recommendation = forms.CharField(error_messages=_required("Recommendation"))
    sop = forms.CharField(
        min_length=SOP_MIN_LENGTH,
        error_messages={
            **_required("Statement of purpose"),
            "min_length": f"Statement of purpose must be at least {SOP_MIN_LENGTH} characters",
        },
    )

    def clean_email(self):
        return self.cleaned_data["email"].strip().lower()

    def error_list(self) -> list:
        return [msg for field in self.errors.values() for msg in field]
