"""Settings used by the pytest suite."""
from .settings import *  # noqa: F401,F403

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "club-billing-tests",
    }
}

MEMBER_ENCRYPTION_KEY = "test-member-encryption-key-0123456789abcdef"

# Tests inject fake gateways; nothing real is registered at start-up.
PAYMENT_GATEWAYS = []
ASAAS_API_KEY = "test-asaas-key"
ASAAS_WEBHOOK_SECRET = "test-asaas-webhook-secret"
STRIPE_SECRET_KEY = "sk_test_123"
STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
WHATSAPP_PROVIDER = ""

CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"
CELERY_TASK_ALWAYS_EAGER = False

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]
