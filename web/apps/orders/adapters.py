"""In-process adapters for the orders domain ports.

These adapters implement ``PaymentQRPort``, ``InvoicePort`` and
``EmailPort`` without any network calls of their own: the payment QR is a
PNG data URL rendered with segno from a payment URI built from settings,
the invoice is an HTML document rendered with Django templates, and email
goes through Django's mail framework (the locmem backend under tests).
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import segno
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

from .domain import Order, PaymentMethod, PaymentQR, PaymentQRPort
from .notifications import ADMIN_EMAIL, CUSTOMER_EMAIL, NOT_CONFIGURED, EmailPort, InvoicePort, NotificationResult

logger = logging.getLogger("orders.adapters")


def _amount(value) -> str:
    return f"{value:.2f}"


class PaymentQRGenerator(PaymentQRPort):
    """Render the payment QR for an order as a PNG data URL.

    ``qr-code`` orders encode an eSewa URI and ``upi`` orders a UPI URI. The
    merchant id is taken from ``ESEWA_ID`` or ``UPI_ID`` respectively, and the
    encoded URI is returned in ``payment_details["payment_uri"]``.
    """

    scale = 10
    border = 2

    def generate(self, order: Order) -> PaymentQR:
        store_name = settings.STORE_NAME
        note = f"Payment for Order {order.order_number}"
        amount = _amount(order.pricing.total)

        if order.payment.method == PaymentMethod.UPI:
            merchant_id = settings.UPI_ID
            uri = (
                f"upi://pay?pa={quote(merchant_id)}&pn={quote(store_name)}"
                f"&am={amount}&cu=INR&tn={quote(note)}"
            )
            currency, provider, dark = "INR", "UPI", "#000000"
        else:
            merchant_id = settings.ESEWA_ID
            uri = (
                f"esewa://pay?scd={quote(merchant_id)}&pn={quote(store_name)}"
                f"&am={amount}&cu=NPR&tn={quote(note)}"
            )
            currency, provider, dark = "NPR", "eSewa", "#60A338"

        qr = segno.make(uri, error="m")
        image = qr.png_data_uri(scale=self.scale, border=self.border, dark=dark, light="#FFFFFF")
        return PaymentQR(
            qr_image_data=image,
            payment_details={
                "merchant_id": merchant_id,
                "amount": amount,
                "store_name": store_name,
                "order_number": order.order_number,
                "currency": currency,
                "payment_method": provider,
                "payment_uri": uri,
            },
        )


class InvoiceFileWriter(InvoicePort):
    """Render ``orders/invoice.html`` into ``ORDER_INVOICE_DIR``."""

    def __init__(self, directory: Optional[str] = None):
        self.directory = Path(directory or settings.ORDER_INVOICE_DIR)

    def generate(self, order: Order) -> str:
        """Write the invoice for ``order`` and return its path.

        Raises:
            OSError: When the invoice directory cannot be written.
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"invoice-{order.order_number}.html"
        html = render_to_string("orders/invoice.html", {"order": order, "store_name": settings.STORE_NAME})
        path.write_text(html, encoding="utf-8")
        logger.info("invoice generated", extra={"order_number": order.order_number, "path": str(path)})
        return str(path)


class DjangoEmailSender(EmailPort):
    """Email channel backed by ``django.core.mail``.

    Reports ``not_configured`` when ``ORDER_EMAIL_ENABLED`` is off; the admin
    alert additionally requires ``STORE_EMAIL``.
    """

    def send_order_confirmation(self, order: Order, invoice_path: Optional[str] = None) -> NotificationResult:
        if not settings.ORDER_EMAIL_ENABLED:
            return NotificationResult(CUSTOMER_EMAIL, ok=False, reason=NOT_CONFIGURED)

        context = {"order": order, "store_name": settings.STORE_NAME, "invoice_attached": bool(invoice_path)}
        message = EmailMultiAlternatives(
            subject=f"Order Confirmation - {order.order_number}",
            body=render_to_string("orders/email/order_confirmation.txt", context),
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[order.customer_info.email],
        )
        if invoice_path and Path(invoice_path).exists():
            message.attach_file(invoice_path, mimetype="text/html")
        message.send()
        return NotificationResult(CUSTOMER_EMAIL, ok=True, reference=order.customer_info.email)

    def send_admin_order_alert(self, order: Order) -> NotificationResult:
        if not settings.ORDER_EMAIL_ENABLED or not settings.STORE_EMAIL:
            return NotificationResult(ADMIN_EMAIL, ok=False, reason=NOT_CONFIGURED)

        message = EmailMultiAlternatives(
            subject=f"New Order Received - {order.order_number}",
            body=render_to_string("orders/email/admin_order_alert.txt", {"order": order}),
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[settings.STORE_EMAIL],
        )
        message.send()
        return NotificationResult(ADMIN_EMAIL, ok=True, reference=settings.STORE_EMAIL)
