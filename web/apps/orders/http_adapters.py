"""HTTP adapter clients with retries, circuit breakers, and context headers.

This module implements the network-facing ports using ``httpx``:

- ``HttpCatalogClient`` talks to the remote catalog/inventory service
    (``services/inventory``). It propagates ``X-Request-ID`` from the
    ContextVar set by the gateway middleware, guards every call with a
    circuit breaker, and retries idempotent reads with exponential backoff
    on transport errors and 5xx. Stock mutations are sent exactly once.
- ``TwilioWhatsAppClient`` sends WhatsApp messages through the Twilio REST
    Messages API. It reports ``not_configured`` instead of calling out when
    the account credentials are missing.
"""

import logging
import threading
import time
from decimal import Decimal
from typing import Iterable, Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import CatalogPort, Order, OrderStatus, ProductRecord
from .notifications import (
    ADMIN_WHATSAPP,
    CUSTOMER_WHATSAPP,
    NOT_CONFIGURED,
    NotificationResult,
    WhatsAppPort,
)

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")

logger = logging.getLogger("orders.http")

# ---------------- Circuit Breaker ---------------- #

class CircuitOpenError(RuntimeError):
    """Raised when a circuit breaker rejects a call without attempting it."""


class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; back to OPEN on failure.
      Only one probe may be in flight at a time.

    This implementation is thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> str:
        """Current breaker state with time-based transition handling."""
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check and update state before a protected call.

        Returns:
            str: The state at call time.

        Raises:
            CircuitOpenError: If the circuit is OPEN or a HALF_OPEN probe is busy.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CircuitOpenError("CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._probe_in_flight:
                    raise CircuitOpenError("CIRCUIT_HALF_OPEN_BUSY")
                self._probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._probe_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probe_in_flight = False


_catalog_cb = CircuitBreaker(
    "catalog",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_attempts, backoff_base_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport errors or HTTP 5xx."""
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


def _send(
    breaker: CircuitBreaker,
    method: str,
    url: str,
    timeout: float,
    json: Optional[dict] = None,
    retry: bool = True,
    expected: Iterable[int] = (404, 409),
) -> httpx.Response:
    """Perform one protected HTTP call.

    Responses below 400 and ``expected`` business statuses are returned to
    the caller and count as a healthy dependency. Transport errors and 5xx
    are retried with exponential backoff when ``retry`` is set, then open the
    breaker once attempts are exhausted.

    Raises:
        CircuitOpenError: When the breaker rejects the call.
        httpx.RequestError: For transport errors after the last attempt.
        httpx.HTTPStatusError: For other non-2xx responses.
    """
    max_attempts, backoff = _retry_policy() if retry else (1, 0.0)
    max_attempts = max(1, max_attempts)
    tries = 0

    state = breaker.before_call()
    headers = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})

    try:
        with httpx.Client(timeout=timeout) as client:
            call = getattr(client, method)
            while True:
                resp = None
                exc = None
                try:
                    if json is None:
                        resp = call(url, headers=headers)
                    else:
                        resp = call(url, json=json, headers=headers)
                    if resp.status_code < 400 or resp.status_code in expected:
                        breaker.on_success()
                        return resp
                    if not _should_retry(resp, None):
                        resp.raise_for_status()
                except httpx.RequestError as e:
                    exc = e

                tries += 1
                headers["X-Retry-Count"] = str(tries)

                if tries >= max_attempts:
                    breaker.on_failure()
                    logger.warning(
                        "upstream call failed",
                        extra={"service": breaker.name, "url": url, "attempts": tries},
                    )
                    if exc:
                        raise exc
                    resp.raise_for_status()

                sleep_s = backoff * (2 ** (tries - 1))
                cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                time.sleep(min(sleep_s, cap))
    finally:
        breaker.on_finish()


# ---------------- Catalog Adapter ---------------- #

class HttpCatalogClient(CatalogPort):
    """HTTP client for the catalog/inventory service.

    Reads (``get_product``, ``get_product_by_sku``) are retried. Stock
    adjustments are not, because a retried decrement could debit twice.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.INVENTORY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def get_product(self, product_id: str) -> Optional[ProductRecord]:
        resp = _send(_catalog_cb, "get", f"{self.base_url}/products/{product_id}", self.timeout)
        return None if resp.status_code == 404 else self._record(resp.json())

    def get_product_by_sku(self, sku: str) -> Optional[ProductRecord]:
        resp = _send(_catalog_cb, "get", f"{self.base_url}/products/by-sku/{sku}", self.timeout)
        return None if resp.status_code == 404 else self._record(resp.json())

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """Debit ``quantity`` units.

        Returns:
            bool: True on 200; False on 409 (insufficient stock) or 404.
        """
        resp = _send(
            _catalog_cb,
            "post",
            f"{self.base_url}/products/{product_id}/decrement",
            self.timeout,
            json={"quantity": quantity},
            retry=False,
        )
        return resp.status_code == 200

    def increment_stock(self, product_id: str, quantity: int) -> None:
        resp = _send(
            _catalog_cb,
            "post",
            f"{self.base_url}/products/{product_id}/increment",
            self.timeout,
            json={"quantity": quantity},
            retry=False,
        )
        if resp.status_code == 404:
            logger.warning("stock credit for unknown product", extra={"product_id": product_id})

    @staticmethod
    def _record(data: dict) -> ProductRecord:
        return ProductRecord(
            id=str(data["id"]),
            name=data["name"],
            sku=data["sku"],
            price=Decimal(str(data["price"])),
            images=list(data.get("images") or []),
            specifications=dict(data.get("specifications") or {}),
            stock_quantity=int(data.get("stock_quantity", 0)),
        )


# ---------------- WhatsApp Adapter ---------------- #

STATUS_EMOJI = {
    OrderStatus.CONFIRMED: "✅",
    OrderStatus.PROCESSING: "⚙️",
    OrderStatus.SHIPPED: "🚚",
    OrderStatus.DELIVERED: "📦",
    OrderStatus.CANCELLED: "❌",
}


def _rupees(value) -> str:
    return f"₹{value:,.2f}"


def admin_order_message(order: Order) -> str:
    """New-order summary sent to the store's WhatsApp number."""
    info = order.customer_info
    addr = order.shipping_address
    lines = [
        "🔔 *NEW ORDER ALERT*",
        "",
        f"📦 *Order:* {order.order_number}",
        f"👤 *Customer:* {info.full_name}",
        f"📧 *Email:* {info.email}",
        f"📱 *Phone:* {info.phone or 'Not provided'}",
        "",
        "🛍️ *Items:*",
    ]
    for item in order.items:
        snap = item.product_snapshot
        lines.append(f"• {snap.name} ({snap.sku or '-'}) - Qty: {item.quantity} - {_rupees(item.line_total)}")
    lines += [
        "",
        f"💰 *Total Amount:* {_rupees(order.pricing.total)}",
        "",
        "📍 *Shipping Address:*",
        addr.street,
        f"{addr.city}, {addr.state} {addr.zip_code}",
        addr.country,
    ]
    if addr.landmark:
        lines.append(f"Landmark: {addr.landmark}")
    if order.notes.get("customer"):
        lines += ["", f"📝 *Customer Notes:* {order.notes['customer']}"]
    lines += ["", "Please process this order in the admin panel."]
    return "\n".join(lines)


def status_update_message(order: Order, status: OrderStatus, store_name: str) -> str:
    """Status change message sent to the customer."""
    lines = [
        f"{STATUS_EMOJI.get(status, '📋')} *Order Update - {store_name}*",
        "",
        f"Hello {order.customer_info.first_name}!",
        "",
        f"Your order *{order.order_number}* has been updated:",
        "",
        f"📋 *Status:* {status.value.capitalize()}",
        f"💰 *Amount:* {_rupees(order.pricing.total)}",
    ]
    if status == OrderStatus.SHIPPED and order.tracking:
        lines.append(f"🔗 *Tracking Number:* {order.tracking.tracking_number}")
    lines.append("")
    if status == OrderStatus.DELIVERED:
        lines.append("Thank you for shopping with us! We hope you love your jewelry. ✨")
    else:
        lines.append("We'll keep you updated on any further changes.")
    return "\n".join(lines)


class TwilioWhatsAppClient(WhatsAppPort):
    """WhatsApp channel over the Twilio REST Messages API."""

    API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
        admin_number: str | None = None,
        timeout: float | None = None,
    ):
        self.account_sid = account_sid if account_sid is not None else settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token if auth_token is not None else settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number if from_number is not None else settings.TWILIO_WHATSAPP_NUMBER
        self.admin_number = admin_number if admin_number is not None else settings.STORE_WHATSAPP_NUMBER
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    @property
    def configured(self) -> bool:
        return bool(
            self.account_sid
            and self.account_sid.startswith("AC")
            and self.auth_token
            and self.from_number
        )

    def send_admin_order_alert(self, order: Order) -> NotificationResult:
        if not self.configured or not self.admin_number:
            return NotificationResult(ADMIN_WHATSAPP, ok=False, reason=NOT_CONFIGURED)
        sid = self._send(self.admin_number, admin_order_message(order))
        return NotificationResult(ADMIN_WHATSAPP, ok=True, reference=sid)

    def send_customer_status_update(self, phone: str, order: Order, status: OrderStatus) -> NotificationResult:
        if not self.configured:
            return NotificationResult(CUSTOMER_WHATSAPP, ok=False, reason=NOT_CONFIGURED)
        body = status_update_message(order, status, settings.STORE_NAME)
        sid = self._send(f"whatsapp:{phone}", body)
        return NotificationResult(CUSTOMER_WHATSAPP, ok=True, reference=sid)

    def _send(self, to: str, body: str) -> Optional[str]:
        url = self.API_URL.format(sid=self.account_sid)
        with httpx.Client(timeout=self.timeout, auth=(self.account_sid, self.auth_token)) as client:
            resp = client.post(
                url,
                data={"From": self.from_number, "To": to, "Body": body},
                headers=_request_headers(),
            )
            resp.raise_for_status()
            return resp.json().get("sid")
