"""Unit tests for the notification fan-out.

Every channel is attempted independently: a raising channel is recorded as
an ``error`` result and never stops the remaining channels.
"""

from apps.orders.domain import OrderStatus
from apps.orders.notifications import (
    ADMIN_EMAIL,
    ADMIN_WHATSAPP,
    CUSTOMER_EMAIL,
    CUSTOMER_WHATSAPP,
    ERROR,
    INVOICE,
    NOT_CONFIGURED,
    SKIPPED,
    InlineRunner,
    NotificationDispatcher,
    NotificationResult,
)

from .factories import make_order


class Email:
    def __init__(self, fail_customer=False):
        self.fail_customer = fail_customer
        self.calls = []

    def send_order_confirmation(self, order, invoice_path=None):
        self.calls.append(("customer", invoice_path))
        if self.fail_customer:
            raise ConnectionError("smtp refused")
        return NotificationResult(CUSTOMER_EMAIL, ok=True)

    def send_admin_order_alert(self, order):
        self.calls.append(("admin", None))
        return NotificationResult(ADMIN_EMAIL, ok=True)


class WhatsApp:
    def __init__(self, configured=True):
        self.configured = configured
        self.calls = []

    def send_admin_order_alert(self, order):
        if not self.configured:
            return NotificationResult(ADMIN_WHATSAPP, ok=False, reason=NOT_CONFIGURED)
        self.calls.append(("admin", order.order_number))
        return NotificationResult(ADMIN_WHATSAPP, ok=True, reference="SM1")

    def send_customer_status_update(self, phone, order, status):
        self.calls.append((phone, status))
        # providers may report a generic channel name
        return NotificationResult("whatsapp", ok=True, reference="SM2")


class Invoices:
    def __init__(self, fail=False):
        self.fail = fail

    def generate(self, order):
        if self.fail:
            raise OSError("disk full")
        return f"/invoices/invoice-{order.order_number}.html"


def test_order_placed_attempts_every_channel_despite_failures():
    email, whatsapp = Email(fail_customer=True), WhatsApp()
    order = make_order()
    results = NotificationDispatcher(email, whatsapp, Invoices()).order_placed(order)

    assert [(r.channel, r.ok, r.reason) for r in results] == [
        (CUSTOMER_EMAIL, False, ERROR),
        (ADMIN_EMAIL, True, None),
        (ADMIN_WHATSAPP, True, None),
    ]
    assert order.notifications.email_sent is False
    assert order.notifications.whatsapp_sent is True


def test_unconfigured_channel_is_reported_not_raised():
    order = make_order()
    results = NotificationDispatcher(Email(), WhatsApp(configured=False), Invoices()).order_placed(order)
    assert results[-1] == NotificationResult(ADMIN_WHATSAPP, ok=False, reason=NOT_CONFIGURED)
    assert order.notifications.email_sent is True
    assert order.notifications.whatsapp_sent is False


def test_payment_confirmed_attaches_invoice_to_customer_email():
    email = Email()
    order = make_order()
    results = NotificationDispatcher(email, WhatsApp(), Invoices()).payment_confirmed(order)

    path = "/invoices/invoice-UJ12345678001.html"
    assert results[0] == NotificationResult(INVOICE, ok=True, reference=path)
    assert email.calls[0] == ("customer", path)
    assert order.notifications.invoice_generated is True
    assert order.notifications.invoice_path == path


def test_invoice_failure_still_sends_email_without_attachment():
    email = Email()
    order = make_order()
    results = NotificationDispatcher(email, WhatsApp(), Invoices(fail=True)).payment_confirmed(order)

    assert results[0].reason == ERROR
    assert email.calls[0] == ("customer", None)
    assert order.notifications.invoice_generated is False
    assert order.notifications.email_sent is True


def test_status_changed_uses_customer_phone_and_normalizes_channel():
    whatsapp = WhatsApp()
    order = make_order()
    (result,) = NotificationDispatcher(Email(), whatsapp, Invoices()).status_changed(order, OrderStatus.SHIPPED)
    assert result.channel == CUSTOMER_WHATSAPP and result.ok
    assert whatsapp.calls == [("+9779800000001", OrderStatus.SHIPPED)]
    # customer updates do not flip the admin whatsapp flag
    assert order.notifications.whatsapp_sent is False


def test_status_changed_without_phone_is_skipped():
    whatsapp = WhatsApp()
    (result,) = NotificationDispatcher(Email(), whatsapp, Invoices()).status_changed(
        make_order(phone=None), OrderStatus.SHIPPED
    )
    assert result.reason == SKIPPED
    assert whatsapp.calls == []


def test_inline_runner_runs_immediately():
    seen = []
    InlineRunner().submit(seen.append, 1)
    assert seen == [1]
