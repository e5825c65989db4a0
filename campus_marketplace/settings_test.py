"""
Settings used by the test suite.

Runs against an on-disk SQLite database so the suite does not need a MySQL
server, and uses fast hashing and in-memory caching.
"""

from .settings import *  # noqa: F401,F403

SECRET_KEY = 'campus-marketplace-test-secret-key'

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'test_db.sqlite3',  # noqa: F405
    }
}

PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

PAYMENT_GATEWAY = {
    **PAYMENT_GATEWAY,  # noqa: F405
    'KEY_ID': 'rzp_test_key',
    'KEY_SECRET': 'test_key_secret',
    'WEBHOOK_SECRET': 'test_webhook_secret',
    'RETRY_BACKOFF': 0,
}

CRON_SECRET = 'test-cron-secret'

MEDIA_ROOT = BASE_DIR / 'test_media'  # noqa: F405

LOGGING['loggers']['core']['level'] = 'WARNING'  # noqa: F405
