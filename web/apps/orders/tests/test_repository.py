"""Persistence tests for the Django ORM order repository."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from django.db import IntegrityError

from apps.orders.domain import Coupon, OrderStatus, PaymentStatus, StatusChange, Tracking
from apps.orders.models import OrderModel, StatusHistoryModel
from apps.orders.repository import CustomerStatsRepository, OrderRepository

from .factories import make_order

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def numbers(*values):
    it = iter(values)
    return lambda: next(it)


@pytest.fixture
def repo():
    return OrderRepository()


@pytest.fixture
def stored(repo, user):
    order = make_order(customer_id=str(user.pk), coupon=Coupon(code="WELCOME", discount=Decimal("100")))
    return repo.create(order, numbers("UJ00000001001"))


@pytest.mark.django_db
def test_create_round_trip(repo, stored, user):
    loaded = repo.get(stored.id)
    assert loaded.order_number == "UJ00000001001"
    assert loaded.customer_id == str(user.pk)
    assert loaded.items[0].product_snapshot.price == Decimal("1500")
    assert loaded.items[0].product_id == "p-ring"
    assert loaded.pricing.total == Decimal("3740.00")
    assert loaded.coupon == Coupon(code="WELCOME", discount=Decimal("100"))
    assert loaded.shipping_address.landmark == "Near Narayanhiti"
    assert loaded.status == OrderStatus.PENDING
    assert loaded.status_history == []


@pytest.mark.django_db
def test_internal_id_is_sequential(repo, user):
    a = repo.create(make_order(customer_id=str(user.pk)), numbers("UJA"))
    b = repo.create(make_order(customer_id=str(user.pk)), numbers("UJB"))
    ids = dict(OrderModel.objects.filter(pk__in=[a.id, b.id]).values_list("order_number", "internal_id"))
    assert ids["UJB"] == ids["UJA"] + 1


@pytest.mark.django_db
def test_order_number_collision_is_retried(repo, stored, user):
    order = repo.create(make_order(customer_id=str(user.pk)), numbers("UJ00000001001", "UJ00000001002"))
    assert order.order_number == "UJ00000001002"
    assert OrderModel.objects.count() == 2


@pytest.mark.django_db
def test_order_number_attempts_exhausted(repo, stored, user):
    with pytest.raises(IntegrityError):
        repo.create(make_order(customer_id=str(user.pk)), lambda: "UJ00000001001")


@pytest.mark.django_db
def test_get_scoped_to_customer(repo, stored, user, other_user):
    assert repo.get(stored.id, customer_id=str(user.pk)) is not None
    assert repo.get(stored.id, customer_id=str(other_user.pk)) is None


@pytest.mark.django_db
def test_find_by_number_or_uuid(repo, stored):
    assert repo.find("UJ00000001001").id == stored.id
    assert repo.find(str(stored.id)).order_number == "UJ00000001001"
    assert repo.find("not-a-uuid") is None


@pytest.mark.django_db
def test_save_is_compare_and_swap(repo, stored):
    first = repo.get(stored.id)
    second = repo.get(stored.id)

    entry = first.transition_to(OrderStatus.CANCELLED, T0, note="changed mind")
    assert repo.save(first, OrderStatus.PENDING, new_history=[entry]) is True

    entry = second.transition_to(OrderStatus.CONFIRMED, T0)
    assert repo.save(second, OrderStatus.PENDING, new_history=[entry]) is False

    loaded = repo.get(stored.id)
    assert loaded.status == OrderStatus.CANCELLED
    assert [h.status for h in loaded.status_history] == [OrderStatus.CANCELLED]


@pytest.mark.django_db
def test_concurrent_same_status_saves_keep_every_history_entry(repo, stored):
    order = repo.get(stored.id)
    entry = order.transition_to(OrderStatus.PROCESSING, T0, note="a")
    repo.save(order, OrderStatus.PENDING, new_history=[entry])

    first = repo.get(stored.id)
    second = repo.get(stored.id)
    entry_a = first.transition_to(OrderStatus.PROCESSING, T0 + timedelta(minutes=1), note="admin A")
    entry_b = second.transition_to(OrderStatus.PROCESSING, T0 + timedelta(minutes=1), note="admin B")

    assert repo.save(first, OrderStatus.PROCESSING, new_history=[entry_a]) is True
    assert repo.save(second, OrderStatus.PROCESSING, new_history=[entry_b]) is True

    loaded = repo.get(stored.id)
    assert [h.note for h in loaded.status_history] == ["a", "admin A", "admin B"]


@pytest.mark.django_db
def test_save_without_new_history_writes_no_rows(repo, stored):
    order = repo.get(stored.id)
    order.transition_to(OrderStatus.CONFIRMED, T0)
    assert repo.save(order, OrderStatus.PENDING) is True
    assert StatusHistoryModel.objects.filter(order_id=stored.id).count() == 0


@pytest.mark.django_db
def test_save_checks_payment_status(repo, stored):
    OrderModel.objects.filter(pk=stored.id).update(payment_status=PaymentStatus.COMPLETED.value)
    order = repo.get(stored.id)
    order.payment.transaction_id = "TXN-2"
    assert repo.save(order, OrderStatus.PENDING, PaymentStatus.PENDING) is False
    assert repo.get(stored.id).payment.transaction_id is None


@pytest.mark.django_db
def test_save_appends_history_and_tracking(repo, stored):
    order = repo.get(stored.id)
    entry = order.transition_to(OrderStatus.CONFIRMED, T0)
    repo.save(order, OrderStatus.PENDING, new_history=[entry])

    order = repo.get(stored.id)
    entry = order.transition_to(OrderStatus.SHIPPED, T0 + timedelta(hours=1), updated_by="1")
    order.tracking = Tracking("DHL", "TRK9", "https://track.example.com/TRK9")
    order.estimated_delivery = T0 + timedelta(days=7)
    repo.save(order, OrderStatus.CONFIRMED, new_history=[entry])

    loaded = repo.get(stored.id)
    assert [h.status for h in loaded.status_history] == [OrderStatus.CONFIRMED, OrderStatus.SHIPPED]
    assert loaded.status_history[1].updated_by == "1"
    assert loaded.tracking == Tracking("DHL", "TRK9", "https://track.example.com/TRK9")
    assert loaded.estimated_delivery == T0 + timedelta(days=7)


@pytest.mark.django_db
def test_history_rows_are_immutable(repo, stored):
    order = repo.get(stored.id)
    entry = order.transition_to(OrderStatus.CONFIRMED, T0)
    repo.save(order, OrderStatus.PENDING, new_history=[entry])

    row = StatusHistoryModel.objects.get(order_id=stored.id)
    row.note = "rewritten"
    with pytest.raises(ValueError, match="STATUS_HISTORY_IMMUTABLE"):
        row.save()


@pytest.mark.django_db
def test_notification_flags_and_qr_are_targeted_updates(repo, stored):
    order = repo.get(stored.id)
    order.notifications.email_sent = True
    order.notifications.invoice_path = "/tmp/i.html"
    order.payment.qr_code = "esewa://pay?am=1"
    order.payment.upi_id = "9800000000"
    repo.save_notifications(order)
    repo.save_payment_qr(order)

    loaded = repo.get(stored.id)
    assert loaded.notifications.email_sent is True
    assert loaded.notifications.invoice_path == "/tmp/i.html"
    assert loaded.payment.qr_code == "esewa://pay?am=1"
    assert loaded.status == OrderStatus.PENDING


@pytest.mark.django_db
def test_list_filters_search_and_pages(repo, user, other_user):
    for n in range(3):
        repo.create(make_order(customer_id=str(user.pk)), numbers(f"UJ1000000000{n}"))
    bikash = replace(make_order().customer_info, email="bikash@example.com", first_name="Bikash")
    repo.create(make_order(customer_id=str(other_user.pk), customer_info=bikash), numbers("UJ20000000000"))

    rows, total = repo.list(customer_id=str(user.pk), page=1, limit=2)
    assert total == 3 and len(rows) == 2

    rows, total = repo.list(search="bikash")
    assert total == 1 and rows[0].order_number == "UJ20000000000"

    rows, total = repo.list(search="UJ1000000000")
    assert total == 3

    assert repo.list(status=OrderStatus.SHIPPED) == ([], 0)


@pytest.mark.django_db
def test_delete(repo, stored):
    assert repo.delete(stored.id) is True
    assert repo.get(stored.id) is None
    assert repo.delete(stored.id) is False


@pytest.mark.django_db
def test_customer_stats_accumulate(user):
    stats = CustomerStatsRepository()
    stats.record_order(str(user.pk), Decimal("3740.00"))
    stats.record_order(str(user.pk), Decimal("1000.00"))

    row = stats.get(str(user.pk))
    assert row.total_orders == 2
    assert row.total_spent == Decimal("4740.00")
    assert row.average_order_value == Decimal("2370.00")
    assert row.last_order_date is not None
