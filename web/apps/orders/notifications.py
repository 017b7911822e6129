"""Best-effort notification fan-out for order events.

Each order event (placed, payment confirmed, status changed) is delivered
over several independent channels: customer email, admin email, admin
WhatsApp, customer WhatsApp and the invoice document. Every channel is
attempted on its own; a failure is logged and recorded as a
``NotificationResult`` but never raised to the caller, and never affects
the order's validity.

Channels that are not configured report ``reason="not_configured"``
instead of failing.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional, Protocol

if TYPE_CHECKING:
    from .domain import Order, OrderStatus

logger = logging.getLogger("orders.notifications")

CUSTOMER_EMAIL = "customer_email"
ADMIN_EMAIL = "admin_email"
ADMIN_WHATSAPP = "admin_whatsapp"
CUSTOMER_WHATSAPP = "customer_whatsapp"
INVOICE = "invoice"

NOT_CONFIGURED = "not_configured"
ERROR = "error"
SKIPPED = "skipped"


@dataclass(frozen=True)
class NotificationResult:
    """Outcome of one delivery attempt.

    Attributes:
        channel: Channel name (``customer_email``, ``admin_whatsapp``...).
        ok: Whether the message was accepted by the provider.
        reason: ``not_configured``, ``error`` or ``skipped`` when not ok.
        reference: Provider message id, or the invoice path for invoices.
    """

    channel: str
    ok: bool
    reason: Optional[str] = None
    reference: Optional[str] = None


# ---- Ports ----
class EmailPort(Protocol):
    def send_order_confirmation(self, order: "Order", invoice_path: Optional[str] = None) -> NotificationResult:
        raise NotImplementedError()

    def send_admin_order_alert(self, order: "Order") -> NotificationResult:
        raise NotImplementedError()


class WhatsAppPort(Protocol):
    def send_admin_order_alert(self, order: "Order") -> NotificationResult:
        raise NotImplementedError()

    def send_customer_status_update(self, phone: str, order: "Order", status: "OrderStatus") -> NotificationResult:
        raise NotImplementedError()


class InvoicePort(Protocol):
    def generate(self, order: "Order") -> str:
        """Render the invoice and return the path of the written document."""
        raise NotImplementedError()


class InlineRunner:
    """Runs submitted work immediately in the caller's thread."""

    def submit(self, fn: Callable, *args) -> None:
        fn(*args)


class NotificationDispatcher:
    """Fans order events out to the configured channels.

    The dispatcher mutates ``order.notifications`` to record which channels
    succeeded; persisting the flags is left to the caller.
    """

    def __init__(self, email: EmailPort, whatsapp: WhatsAppPort, invoices: InvoicePort):
        self.email = email
        self.whatsapp = whatsapp
        self.invoices = invoices

    def order_placed(self, order: "Order") -> List[NotificationResult]:
        """Customer confirmation email, admin email and admin WhatsApp."""
        results = [
            self._attempt(CUSTOMER_EMAIL, order, self.email.send_order_confirmation, order),
            self._attempt(ADMIN_EMAIL, order, self.email.send_admin_order_alert, order),
            self._attempt(ADMIN_WHATSAPP, order, self.whatsapp.send_admin_order_alert, order),
        ]
        return results

    def payment_confirmed(self, order: "Order") -> List[NotificationResult]:
        """Invoice first, then the customer email with the invoice attached."""
        invoice = self._attempt(INVOICE, order, self._generate_invoice, order)
        invoice_path = invoice.reference if invoice.ok else None
        return [
            invoice,
            self._attempt(CUSTOMER_EMAIL, order, self.email.send_order_confirmation, order, invoice_path),
            self._attempt(ADMIN_EMAIL, order, self.email.send_admin_order_alert, order),
            self._attempt(ADMIN_WHATSAPP, order, self.whatsapp.send_admin_order_alert, order),
        ]

    def status_changed(self, order: "Order", status: "OrderStatus") -> List[NotificationResult]:
        if not order.customer_info.phone:
            return [NotificationResult(CUSTOMER_WHATSAPP, ok=False, reason=SKIPPED)]
        phone = order.customer_info.phone
        return [self._attempt(CUSTOMER_WHATSAPP, order, self.whatsapp.send_customer_status_update, phone, order, status)]

    def _generate_invoice(self, order: "Order") -> NotificationResult:
        return NotificationResult(INVOICE, ok=True, reference=self.invoices.generate(order))

    def _attempt(self, channel: str, order: "Order", send: Callable, *args) -> NotificationResult:
        try:
            result = send(*args)
        except Exception:
            logger.warning(
                "notification failed",
                extra={"channel": channel, "order_number": order.order_number},
                exc_info=True,
            )
            return NotificationResult(channel, ok=False, reason=ERROR)

        if result.channel != channel:
            result = dataclasses.replace(result, channel=channel)
        if not result.ok:
            logger.info(
                "notification not sent",
                extra={"channel": channel, "order_number": order.order_number, "reason": result.reason},
            )
            return result

        flags = order.notifications
        if channel == CUSTOMER_EMAIL:
            flags.email_sent = True
        elif channel == ADMIN_WHATSAPP:
            flags.whatsapp_sent = True
        elif channel == INVOICE:
            flags.invoice_generated = True
            flags.invoice_path = result.reference
        return result
