import pytest
from django.core.cache import cache


@pytest.fixture(autouse=True)
def isolated_settings(settings, tmp_path):
    # in-process catalog, inline notifications, mail captured in outbox
    settings.USE_HTTP_ADAPTERS = False
    settings.ORDER_NOTIFICATIONS_MODE = "inline"
    settings.ORDER_INVOICE_DIR = str(tmp_path / "invoices")
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    settings.STORE_EMAIL = "admin@store.test"
    settings.TWILIO_ACCOUNT_SID = ""
    settings.TWILIO_AUTH_TOKEN = ""
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    # throttle counters live in the cache
    cache.clear()
    yield
    cache.clear()
