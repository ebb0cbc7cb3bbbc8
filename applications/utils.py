import secrets

from django.conf import settings
from django.utils import timezone


def gen_application_id():
    # e.g. NF2025 + epoch millis + 3 random digits -> NF20251718000000000042
    now = timezone.now()
    prefix = getattr(settings, "APPLICATION_ID_PREFIX", "NF")
    return f"{prefix}{now.year}{int(now.timestamp() * 1000)}{secrets.randbelow(1000):03d}"
