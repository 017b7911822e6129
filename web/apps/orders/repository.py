"""Repository layer for persisting orders.

This module maps the ``Order`` aggregate to the Django ORM models so the
domain layer is not coupled to Django. Status and payment changes are
written with a compare-and-swap ``UPDATE ... WHERE status = <expected>``;
history rows are only ever inserted.
"""

import logging
import uuid
from dataclasses import asdict
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Tuple

from django.core.paginator import Paginator
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from .domain import (
    Address,
    Coupon,
    CustomerInfo,
    NotificationFlags,
    Order,
    OrderItem,
    OrderStatus,
    OrderStorePort,
    Payment,
    PaymentMethod,
    PaymentStatus,
    ProductSnapshot,
    StatusChange,
    Tracking,
    UserStatsPort,
)
from .models import CustomerStatsModel, OrderItemModel, OrderModel, StatusHistoryModel
from .pricing import CENT, Pricing

logger = logging.getLogger("orders.repository")

ORDER_NUMBER_ATTEMPTS = 5


def _snapshot_json(snap: ProductSnapshot) -> dict:
    return {
        "name": snap.name,
        "sku": snap.sku,
        "image": snap.image,
        "price": str(snap.price) if snap.price is not None else None,
        "specifications": snap.specifications,
    }


def _snapshot(data: dict) -> ProductSnapshot:
    price = data.get("price")
    return ProductSnapshot(
        name=data.get("name", ""),
        sku=data.get("sku"),
        image=data.get("image"),
        price=Decimal(price) if price is not None else None,
        specifications=data.get("specifications") or {},
    )


def _history_row(order_id, entry: StatusChange) -> StatusHistoryModel:
    return StatusHistoryModel(
        order_id=order_id,
        status=entry.status.value,
        timestamp=entry.timestamp,
        note=entry.note,
        updated_by=entry.updated_by,
    )


def _mutable_fields(order: Order) -> dict:
    tracking = order.tracking
    return {
        "status": order.status.value,
        "payment_method": order.payment.method.value,
        "payment_status": order.payment.status.value,
        "transaction_id": order.payment.transaction_id,
        "paid_at": order.payment.paid_at,
        "carrier": tracking.carrier if tracking else None,
        "tracking_number": tracking.tracking_number if tracking else None,
        "tracking_url": tracking.tracking_url if tracking else None,
        "estimated_delivery": order.estimated_delivery,
        "actual_delivery": order.actual_delivery,
    }


def to_domain(obj: OrderModel) -> Order:
    """Map an ``OrderModel`` (with items and history) to the aggregate."""
    tracking = None
    if obj.tracking_number:
        tracking = Tracking(carrier=obj.carrier, tracking_number=obj.tracking_number, tracking_url=obj.tracking_url)
    coupon = None
    if obj.coupon:
        coupon = Coupon(
            code=obj.coupon["code"],
            discount=Decimal(obj.coupon.get("discount") or "0"),
            type=obj.coupon.get("type", "percentage"),
        )
    return Order(
        id=obj.id,
        order_number=obj.order_number,
        customer_id=str(obj.customer_id) if obj.customer_id is not None else None,
        customer_info=CustomerInfo(**obj.customer_info),
        items=[
            OrderItem(
                product_snapshot=_snapshot(it.product_snapshot),
                quantity=it.quantity,
                price=it.price,
                product_id=it.product_id,
                variant=it.variant,
            )
            for it in obj.items.all()
        ],
        shipping_address=Address(**obj.shipping_address),
        billing_address=obj.billing_address,
        pricing=Pricing(
            subtotal=obj.subtotal,
            tax=obj.tax,
            shipping_cost=obj.shipping_cost,
            discount=obj.discount,
            total=obj.total,
        ),
        payment=Payment(
            method=PaymentMethod(obj.payment_method),
            status=PaymentStatus(obj.payment_status),
            transaction_id=obj.transaction_id,
            paid_at=obj.paid_at,
            qr_code=obj.qr_code,
            upi_id=obj.upi_id,
        ),
        status=OrderStatus(obj.status),
        coupon=coupon,
        notes=obj.notes or {},
        status_history=[
            StatusChange(status=OrderStatus(h.status), timestamp=h.timestamp, note=h.note, updated_by=h.updated_by)
            for h in obj.status_history.all()
        ],
        tracking=tracking,
        notifications=NotificationFlags(
            email_sent=obj.email_sent,
            whatsapp_sent=obj.whatsapp_sent,
            invoice_generated=obj.invoice_generated,
            invoice_path=obj.invoice_path,
        ),
        estimated_delivery=obj.estimated_delivery,
        actual_delivery=obj.actual_delivery,
        created_at=obj.created_at,
    )


class OrderRepository(OrderStorePort):
    """Repository that persists ``Order`` aggregates using Django ORM."""

    def _queryset(self):
        return OrderModel.objects.prefetch_related("items", "status_history")

    def create(self, order: Order, next_number: Callable[[], str]) -> Order:
        """Insert the order, its items and any initial history entries.

        A freshly generated order number can collide with an existing one;
        the insert is retried with a new number a few times before giving up.

        Args:
            order: Aggregate to persist; ``id`` and ``order_number`` are
                assigned here.
            next_number: Generator for candidate order numbers.

        Returns:
            Order: The same aggregate with its identifiers set.

        Raises:
            IntegrityError: On any constraint failure other than an order
                number collision, or when every attempt collided.
        """
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            number = next_number()
            try:
                with transaction.atomic():
                    obj = self._insert(order, number)
                break
            except IntegrityError:
                if not OrderModel.objects.filter(order_number=number).exists():
                    raise
                logger.warning("order number collision", extra={"order_number": number})
        else:
            raise IntegrityError("ORDER_NUMBER_EXHAUSTED")

        order.id = obj.id
        order.order_number = obj.order_number
        order.created_at = obj.created_at
        return order

    def _insert(self, order: Order, number: str) -> OrderModel:
        obj = OrderModel(
            order_number=number,
            customer_id=order.customer_id,
            customer_info=asdict(order.customer_info),
            shipping_address=asdict(order.shipping_address),
            billing_address=order.billing_address,
            subtotal=order.pricing.subtotal,
            tax=order.pricing.tax,
            shipping_cost=order.pricing.shipping_cost,
            discount=order.pricing.discount,
            total=order.pricing.total,
            coupon=(
                {"code": order.coupon.code, "discount": str(order.coupon.discount), "type": order.coupon.type}
                if order.coupon
                else None
            ),
            notes=order.notes,
            qr_code=order.payment.qr_code,
            upi_id=order.payment.upi_id,
            created_at=order.created_at or timezone.now(),
            **_mutable_fields(order),
        )
        obj.save()
        OrderItemModel.objects.bulk_create(
            [
                OrderItemModel(
                    order=obj,
                    position=pos,
                    product_id=item.product_id,
                    product_snapshot=_snapshot_json(item.product_snapshot),
                    quantity=item.quantity,
                    price=item.price,
                    variant=item.variant,
                )
                for pos, item in enumerate(order.items)
            ]
        )
        if order.status_history:
            StatusHistoryModel.objects.bulk_create([_history_row(obj.id, e) for e in order.status_history])
        return obj

    def get(self, order_id, customer_id: Optional[str] = None) -> Optional[Order]:
        qs = self._queryset().filter(pk=order_id)
        if customer_id is not None:
            qs = qs.filter(customer_id=customer_id)
        obj = qs.first()
        return to_domain(obj) if obj else None

    def find(self, reference: str) -> Optional[Order]:
        """Look an order up by order number, falling back to its UUID."""
        obj = self._queryset().filter(order_number=reference).first()
        if obj is None:
            try:
                pk = uuid.UUID(str(reference))
            except ValueError:
                return None
            obj = self._queryset().filter(pk=pk).first()
        return to_domain(obj) if obj else None

    def save(
        self,
        order: Order,
        expected_status: OrderStatus,
        expected_payment_status: Optional[PaymentStatus] = None,
        new_history: Sequence[StatusChange] = (),
    ) -> bool:
        """Compare-and-swap the mutable order fields and append new history.

        Only the entries in ``new_history`` are inserted; rows already stored
        are never rewritten, so concurrent writers each keep their own entry.

        Returns:
            bool: False when the stored status (or payment status) no longer
            matches, in which case nothing is written.
        """
        with transaction.atomic():
            qs = OrderModel.objects.filter(pk=order.id, status=expected_status.value)
            if expected_payment_status is not None:
                qs = qs.filter(payment_status=expected_payment_status.value)
            if not qs.update(updated_at=timezone.now(), **_mutable_fields(order)):
                return False

            if new_history:
                StatusHistoryModel.objects.bulk_create([_history_row(order.id, e) for e in new_history])
        return True

    def save_notifications(self, order: Order) -> None:
        flags = order.notifications
        OrderModel.objects.filter(pk=order.id).update(
            email_sent=flags.email_sent,
            whatsapp_sent=flags.whatsapp_sent,
            invoice_generated=flags.invoice_generated,
            invoice_path=flags.invoice_path,
        )

    def save_payment_qr(self, order: Order) -> None:
        OrderModel.objects.filter(pk=order.id).update(qr_code=order.payment.qr_code, upi_id=order.payment.upi_id)

    def list(
        self,
        customer_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Order], int]:
        """Return one page of orders, newest first, and the total count.

        ``search`` matches the order number, customer email and customer name.
        """
        qs = self._queryset()
        if customer_id is not None:
            qs = qs.filter(customer_id=customer_id)
        if status is not None:
            qs = qs.filter(status=OrderStatus(status).value)
        if search:
            qs = qs.filter(
                Q(order_number__icontains=search)
                | Q(customer_info__email__icontains=search)
                | Q(customer_info__first_name__icontains=search)
                | Q(customer_info__last_name__icontains=search)
            )
        p = Paginator(qs, limit)
        page_obj = p.get_page(page)
        return [to_domain(o) for o in page_obj.object_list], p.count

    def delete(self, order_id) -> bool:
        deleted, _ = OrderModel.objects.filter(pk=order_id).delete()
        return deleted > 0


class CustomerStatsRepository(UserStatsPort):
    """Running order statistics per user, updated under a row lock."""

    def record_order(self, user_id: str, order_total: Decimal) -> None:
        with transaction.atomic():
            stats, _ = CustomerStatsModel.objects.select_for_update().get_or_create(user_id=user_id)
            stats.total_orders += 1
            stats.total_spent = Decimal(stats.total_spent) + Decimal(order_total)
            stats.average_order_value = (stats.total_spent / stats.total_orders).quantize(CENT)
            stats.last_order_date = timezone.now()
            stats.save()

    def get(self, user_id: str) -> Optional[CustomerStatsModel]:
        return CustomerStatsModel.objects.filter(user_id=user_id).first()
