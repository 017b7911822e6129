"""Service provider helpers for wiring OrderService with ports.

``get_order_service`` builds an ``OrderService`` from Django settings:

- the catalog is the remote inventory service (``HttpCatalogClient``) when
  ``settings.USE_HTTP_ADAPTERS`` is truthy, otherwise the local ``Product``
  table (``ProductCatalog``);
- notifications run inline, or after commit on a small thread pool when
  ``ORDER_NOTIFICATIONS_MODE == "background"``.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from functools import lru_cache
from typing import Callable

from django.conf import settings
from django.db import connection, transaction

from apps.catalog.repository import ProductCatalog

from .adapters import DjangoEmailSender, InvoiceFileWriter, PaymentQRGenerator
from .domain import OrderConfig, OrderService
from .http_adapters import HttpCatalogClient, TwilioWhatsAppClient
from .notifications import InlineRunner, NotificationDispatcher
from .pricing import PricingPolicy
from .repository import CustomerStatsRepository, OrderRepository

logger = logging.getLogger("orders")


class BackgroundRunner:
    """Run submitted work on a thread pool once the current transaction commits.

    Outside an atomic block ``on_commit`` fires immediately, so the work is
    queued right away.
    """

    def __init__(self, executor: ThreadPoolExecutor):
        self.executor = executor

    def submit(self, fn: Callable, *args) -> None:
        transaction.on_commit(lambda: self.executor.submit(self._run, fn, *args))

    @staticmethod
    def _run(fn: Callable, *args) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("background task failed")
        finally:
            # worker threads own their connection
            connection.close()


@lru_cache(maxsize=1)
def _executor() -> ThreadPoolExecutor:
    return ThreadPoolExecutor(
        max_workers=getattr(settings, "ORDER_NOTIFICATION_WORKERS", 2),
        thread_name_prefix="order-notify",
    )


def _decimal_setting(name: str, default):
    value = getattr(settings, name, default)
    return None if value is None else Decimal(str(value))


def get_order_config() -> OrderConfig:
    """Build ``OrderConfig`` from Django settings."""
    return OrderConfig(
        order_number_prefix=getattr(settings, "ORDER_NUMBER_PREFIX", "UJ"),
        pricing=PricingPolicy(
            tax_rate=_decimal_setting("ORDER_TAX_RATE", "0.18"),
            free_shipping_threshold=_decimal_setting("ORDER_FREE_SHIPPING_THRESHOLD", "5000"),
            flat_shipping_fee=_decimal_setting("ORDER_FLAT_SHIPPING_FEE", "200"),
        ),
        pricing_tolerance=_decimal_setting("ORDER_PRICING_TOLERANCE", None),
        estimated_delivery_days=getattr(settings, "ORDER_ESTIMATED_DELIVERY_DAYS", 7),
        tracking_url_base=getattr(settings, "ORDER_TRACKING_URL_BASE", "https://track.example.com"),
        default_carrier=getattr(settings, "ORDER_DEFAULT_CARRIER", "Standard Courier"),
    )


def get_runner():
    if getattr(settings, "ORDER_NOTIFICATIONS_MODE", "inline") == "background":
        return BackgroundRunner(_executor())
    return InlineRunner()


def get_order_service() -> OrderService:
    """Return a configured OrderService instance.

    Returns:
        OrderService: A service wired with the ORM order store, the catalog
        selected by ``USE_HTTP_ADAPTERS`` and the notification channels.
    """
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        catalog = HttpCatalogClient()
    else:
        catalog = ProductCatalog()

    notifier = NotificationDispatcher(
        email=DjangoEmailSender(),
        whatsapp=TwilioWhatsAppClient(),
        invoices=InvoiceFileWriter(),
    )
    return OrderService(
        orders=OrderRepository(),
        catalog=catalog,
        notifier=notifier,
        payment_qr=PaymentQRGenerator(),
        stats=CustomerStatsRepository(),
        config=get_order_config(),
        runner=get_runner(),
    )
