"""
Django settings for the scholarship intake service.

Every value comes from the environment (a local ``.env`` is honoured via
python-dotenv). ``test.py`` overrides what the test suite needs.
"""
from dotenv import load_dotenv
load_dotenv()

import os
from pathlib import Path

import dj_database_url

BASE_DIR = Path(__file__).resolve().parent.parent.parent


def _env_bool(name, default="false"):
    return os.getenv(name, default).lower() in ("1", "true", "yes")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-change-me")
DEBUG = _env_bool("DJANGO_DEBUG")
ENVIRONMENT = os.getenv("APP_ENV", "development" if DEBUG else "production")

ALLOWED_HOSTS = [h.strip() for h in os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "corsheaders",
    "applications",
    "payments",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "scholarship.middleware.RateLimitMiddleware",
]

ROOT_URLCONF = "scholarship.urls"
WSGI_APPLICATION = "scholarship.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

DATABASES = {
    "default": dj_database_url.config(
        default=os.getenv("DATABASE_URL") or f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
        conn_max_age=600,
    )
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "Asia/Kolkata"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "scholarship",
    }
}

# --- CORS: the form is served from a separate static host ---
CORS_ALLOW_ALL_ORIGINS = _env_bool("CORS_ALLOW_ALL_ORIGINS", "true")
CORS_ALLOW_CREDENTIALS = True

# --- PhonePe Checkout v2 ---
PHONEPE_CLIENT_ID = os.getenv("PHONEPE_CLIENT_ID", "")
PHONEPE_CLIENT_SECRET = os.getenv("PHONEPE_CLIENT_SECRET", "")
PHONEPE_CLIENT_VERSION = os.getenv("PHONEPE_CLIENT_VERSION", "")
PHONEPE_MERCHANT_ID = os.getenv("PHONEPE_MERCHANT_ID", "")
PHONEPE_ENV = os.getenv("PHONEPE_ENV", "PROD").upper()
PHONEPE_TIMEOUT = float(os.getenv("PHONEPE_TIMEOUT", "30"))

# Browser lands here after checkout: <FRONTEND_URL>/payment-status.html?transactionId=...
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

# Application fee in rupees; the only amount /api/payment/initiate accepts.
APPLICATION_FEE = 99
DUPLICATE_PAYMENT_WINDOW_MINUTES = 30
APPLICATION_ID_PREFIX = os.getenv("APPLICATION_ID_PREFIX", "NF")

# --- Email (Resend SMTP relay; the API key is the SMTP password) ---
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
EMAIL_ENABLED = bool(RESEND_API_KEY)
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend")
EMAIL_HOST = os.getenv("EMAIL_HOST", "smtp.resend.com")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_HOST_USER = os.getenv("EMAIL_HOST_USER", "resend")
EMAIL_HOST_PASSWORD = RESEND_API_KEY
EMAIL_USE_TLS = True
EMAIL_TIMEOUT = 20
EMAIL_FROM = os.getenv("EMAIL_FROM", "onboarding@resend.dev")
EMAIL_FROM_NAME = os.getenv("EMAIL_FROM_NAME", "Naukrivalaa Foundation")
DEFAULT_FROM_EMAIL = f"{EMAIL_FROM_NAME} <{EMAIL_FROM}>"
REPLY_TO_EMAIL = os.getenv("REPLY_TO_EMAIL", "naukrivalaafoundation@gmail.com")
EMAIL_FAIL_SILENTLY = False

# --- Rate limiting (scholarship.middleware.RateLimitMiddleware) ---
RATE_LIMITING_ENABLED = _env_bool("RATE_LIMITING_ENABLED", "true")
# (max requests, window seconds)
RATE_LIMIT_GENERAL = (int(os.getenv("RATE_LIMIT_GENERAL", "100")), 15 * 60)
RATE_LIMIT_PAYMENT = (int(os.getenv("RATE_LIMIT_PAYMENT", "10")), 5 * 60)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.getenv("DJANGO_LOG_LEVEL", "INFO"),
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("DJANGO_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
