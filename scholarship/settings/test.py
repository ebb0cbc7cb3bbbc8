from .base import *

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

ALLOWED_HOSTS = ['testserver']

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'scholarship-test',
    }
}

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
EMAIL_ENABLED = True

PHONEPE_CLIENT_ID = 'test-client'
PHONEPE_CLIENT_SECRET = 'test-secret'
PHONEPE_CLIENT_VERSION = '1'
PHONEPE_MERCHANT_ID = 'TESTMERCHANT'
PHONEPE_ENV = 'UAT'
PHONEPE_TIMEOUT = 5

FRONTEND_URL = 'https://apply.example.com'

RATE_LIMITING_ENABLED = False
