"""Domain models, ports and service for the order lifecycle.

This module contains the dataclasses describing an order and its line items,
protocol definitions (ports) for the collaborators the service depends on
(product catalog, order store, payment QR, user statistics) and the domain
service that drives an order from checkout to delivery or cancellation.

Nothing here imports Django: persistence and transport live behind the ports
and are wired together in ``providers.py``.
"""

import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from .notifications import InlineRunner, NotificationDispatcher, NotificationResult
from .pricing import DEFAULT_POLICY, Pricing, PricingPolicy, resolve_pricing

logger = logging.getLogger("orders")


# ---- Enums ----
class OrderStatus(str, Enum):
    """Fulfillment states of an order."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    QR_CODE = "qr-code"
    UPI = "upi"
    CARD = "card"
    BANK_TRANSFER = "bank-transfer"
    COD = "cod"


CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING})
UNPAYABLE_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.RETURNED})
QR_PAYMENT_METHODS = frozenset({PaymentMethod.QR_CODE, PaymentMethod.UPI})

# order events whose notifications an admin can send again
ORDER_PLACED = "order_placed"
PAYMENT_CONFIRMED = "payment_confirmed"


# ---- Errors ----
class OrderError(ValueError):
    """Base class for domain errors. ``str(exc)`` is a short error code."""


class OrderValidationError(OrderError):
    """The request is malformed; nothing was mutated."""


class NotFoundError(OrderError):
    """An order or product could not be resolved."""


class OrderConflict(OrderError):
    """The order is not in a state that allows the requested operation."""


class InsufficientStock(OrderError):
    """A line item could not be debited from stock."""

    def __init__(self, sku: Optional[str] = None):
        super().__init__("INSUFFICIENT_STOCK")
        self.sku = sku


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class ProductRecord:
    """Authoritative product data returned by the catalog.

    Attributes:
        id: Catalog identifier used for stock adjustments.
        name: Display name.
        sku: Stock keeping unit.
        price: Current unit price.
        images: Image URLs, primary image first.
        specifications: Metal, purity, gemstone and similar attributes.
        stock_quantity: Units currently available.
    """

    id: str
    name: str
    sku: str
    price: Decimal
    images: List[str] = field(default_factory=list)
    specifications: dict = field(default_factory=dict)
    stock_quantity: int = 0

    @property
    def image(self) -> Optional[str]:
        return self.images[0] if self.images else None


@dataclass(frozen=True)
class ProductSnapshot:
    """Copy of the product taken at order time.

    Historical orders render from the snapshot, so later catalog edits or
    deletions never change what the customer bought.
    """

    name: str
    sku: Optional[str] = None
    image: Optional[str] = None
    price: Optional[Decimal] = None
    specifications: dict = field(default_factory=dict)


@dataclass(frozen=True)
class OrderItem:
    """A single line item in an order.

    Attributes:
        product_snapshot: Product data frozen at order time.
        quantity: Units purchased (at least 1).
        price: Unit price at purchase.
        product_id: Live catalog reference, kept only to credit stock back
            on cancellation. ``None`` when the line was identified purely by
            its snapshot.
        variant: Optional ``{"name", "value"}`` selection (size, colour).
    """

    product_snapshot: ProductSnapshot
    quantity: int
    price: Decimal
    product_id: Optional[str] = None
    variant: Optional[dict] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class CustomerInfo:
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Address:
    first_name: str
    last_name: str
    email: str
    phone: str
    street: str
    city: str
    state: str
    zip_code: str
    apartment: str = ""
    country: str = "India"
    landmark: str = ""


@dataclass(frozen=True)
class Coupon:
    code: str
    discount: Decimal
    type: str = "percentage"


@dataclass
class Payment:
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    qr_code: Optional[str] = None
    upi_id: Optional[str] = None


@dataclass(frozen=True)
class StatusChange:
    """One entry of the append-only status history."""

    status: OrderStatus
    timestamp: datetime
    note: Optional[str] = None
    updated_by: Optional[str] = None


@dataclass(frozen=True)
class Tracking:
    carrier: str
    tracking_number: str
    tracking_url: str


@dataclass
class NotificationFlags:
    """Outcome of the best-effort notification channels.

    Used for observability and retry decisions; never gates order validity.
    """

    email_sent: bool = False
    whatsapp_sent: bool = False
    invoice_generated: bool = False
    invoice_path: Optional[str] = None


@dataclass
class Order:
    """The order aggregate.

    Attributes:
        id: Storage identifier, or None before the order is persisted.
        order_number: Human-facing identifier, immutable once assigned.
        customer_id: Owning user.
        customer_info: Buyer contact details captured at order time.
        items: Non-empty list of line items.
        shipping_address: Delivery address.
        pricing: Monetary breakdown.
        payment: Payment method and state.
        status: Fulfillment state.
        status_history: Transitions after creation, oldest first.
    """

    id: Optional[uuid.UUID]
    order_number: Optional[str]
    customer_id: Optional[str]
    customer_info: CustomerInfo
    items: List[OrderItem]
    shipping_address: Address
    pricing: Pricing
    payment: Payment
    status: OrderStatus = OrderStatus.PENDING
    billing_address: Optional[dict] = None
    coupon: Optional[Coupon] = None
    notes: dict = field(default_factory=dict)
    status_history: List[StatusChange] = field(default_factory=list)
    tracking: Optional[Tracking] = None
    notifications: NotificationFlags = field(default_factory=NotificationFlags)
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def transition_to(
        self,
        status: OrderStatus,
        at: datetime,
        note: Optional[str] = None,
        updated_by: Optional[str] = None,
    ) -> StatusChange:
        """Set ``status`` and append the matching history entry."""
        entry = StatusChange(status=status, timestamp=at, note=note, updated_by=updated_by)
        self.status_history.append(entry)
        self.status = status
        return entry


# ---- Commands / results ----
@dataclass(frozen=True)
class LineRequest:
    """A cart line as submitted by the storefront.

    Either ``product_id`` or ``snapshot`` must be present.
    """

    quantity: int
    product_id: Optional[str] = None
    snapshot: Optional[ProductSnapshot] = None
    price: Optional[Decimal] = None
    variant: Optional[dict] = None


@dataclass(frozen=True)
class PaymentRequest:
    method: PaymentMethod = PaymentMethod.QR_CODE
    status: Optional[PaymentStatus] = None
    transaction_id: Optional[str] = None


@dataclass
class NewOrder:
    """Everything CreateOrder needs, already validated at the edge."""

    customer_id: Optional[str]
    customer_info: CustomerInfo
    items: List[LineRequest]
    shipping_address: Address
    payment: PaymentRequest = field(default_factory=PaymentRequest)
    billing_address: Optional[dict] = None
    pricing: Optional[Pricing] = None
    coupon_code: Optional[str] = None
    coupon_discount: Optional[Decimal] = None
    notes: dict = field(default_factory=dict)


@dataclass(frozen=True)
class TrackingUpdate:
    tracking_number: str
    carrier: Optional[str] = None


@dataclass(frozen=True)
class PaymentQR:
    qr_image_data: str
    payment_details: dict


@dataclass(frozen=True)
class PlacedOrder:
    order: Order
    payment_qr: Optional[PaymentQR] = None


@dataclass(frozen=True)
class OrderTracking:
    """Public, PII-free view of an order's progress."""

    order_number: str
    status: OrderStatus
    status_history: List[StatusChange]
    tracking: Optional[Tracking]
    estimated_delivery: Optional[datetime]
    order_date: Optional[datetime]


@dataclass(frozen=True)
class OrderConfig:
    """Explicit configuration for ``OrderService``.

    Built once from Django settings by ``providers.get_order_service``.
    """

    order_number_prefix: str = "UJ"
    pricing: PricingPolicy = DEFAULT_POLICY
    pricing_tolerance: Optional[Decimal] = None
    estimated_delivery_days: int = 7
    tracking_url_base: str = "https://track.example.com"
    default_carrier: str = "Standard Courier"


def generate_order_number(prefix: str, now: datetime) -> str:
    """Build ``<prefix><last 8 digits of epoch millis><3 random digits>``."""
    millis = str(int(now.timestamp() * 1000))[-8:]
    return f"{prefix}{millis}{random.randint(0, 999):03d}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _first(*values):
    for value in values:
        if value:
            return value
    return None


# ---- Ports (DIP) ----
class CatalogPort(Protocol):
    """Port describing the product catalog and its stock counters.

    ``decrement_stock`` must be a single atomic conditional update: it
    succeeds only when at least ``quantity`` units are available and reports
    False otherwise, leaving the counter untouched.
    """

    def get_product(self, product_id: str) -> Optional[ProductRecord]:
        raise NotImplementedError()

    def get_product_by_sku(self, sku: str) -> Optional[ProductRecord]:
        raise NotImplementedError()

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        raise NotImplementedError()

    def increment_stock(self, product_id: str, quantity: int) -> None:
        raise NotImplementedError()


class OrderStorePort(Protocol):
    """Port describing durable order storage.

    ``save`` is a compare-and-swap: it writes only if the stored status (and
    payment status, when given) still match the expected values, and returns
    False otherwise. Only the entries passed in ``new_history`` are appended.
    """

    def create(self, order: Order, next_number: Callable[[], str]) -> Order:
        raise NotImplementedError()

    def get(self, order_id, customer_id: Optional[str] = None) -> Optional[Order]:
        raise NotImplementedError()

    def find(self, reference: str) -> Optional[Order]:
        raise NotImplementedError()

    def save(
        self,
        order: Order,
        expected_status: OrderStatus,
        expected_payment_status: Optional[PaymentStatus] = None,
        new_history: Sequence[StatusChange] = (),
    ) -> bool:
        raise NotImplementedError()

    def save_notifications(self, order: Order) -> None:
        raise NotImplementedError()

    def save_payment_qr(self, order: Order) -> None:
        raise NotImplementedError()

    def list(
        self,
        customer_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Order], int]:
        raise NotImplementedError()

    def delete(self, order_id) -> bool:
        raise NotImplementedError()


class PaymentQRPort(Protocol):
    def generate(self, order: Order) -> PaymentQR:
        raise NotImplementedError()


class UserStatsPort(Protocol):
    def record_order(self, user_id: str, order_total: Decimal) -> None:
        raise NotImplementedError()


# ---- Domain service ----
class OrderService:
    """Domain service responsible for the order lifecycle.

    Orchestrates checkout (snapshot, stock debit, pricing, persistence), the
    payment confirmation, cancellation and admin status transitions, and the
    best-effort side effects attached to each of them: payment QR, customer
    statistics and notifications. Side-effect failures are logged and never
    abort or roll back a persisted order.
    """

    def __init__(
        self,
        orders: OrderStorePort,
        catalog: CatalogPort,
        notifier: NotificationDispatcher,
        payment_qr: PaymentQRPort,
        stats: UserStatsPort,
        config: Optional[OrderConfig] = None,
        runner=None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the service with its collaborators.

        Args:
            orders: Order aggregate store.
            catalog: Product lookup and stock counters.
            notifier: Notification fan-out.
            payment_qr: Payment QR collaborator for ``qr-code``/``upi``.
            stats: Customer order statistics.
            config: Pricing and fulfillment constants.
            runner: Object with ``submit(fn, *args)`` used to schedule
                notification dispatch. Runs inline when omitted.
            clock: Returns the current aware datetime.
        """
        self.orders = orders
        self.catalog = catalog
        self.notifier = notifier
        self.payment_qr = payment_qr
        self.stats = stats
        self.config = config or OrderConfig()
        self.runner = runner or InlineRunner()
        self.clock = clock

    # ---- CreateOrder ----
    def create_order(self, request: NewOrder) -> PlacedOrder:
        """Turn a validated cart into a persisted ``pending`` order.

        Steps: resolve and snapshot each line, debit stock atomically per
        line, price the order, persist it, then run the best-effort side
        effects (payment QR, notifications, customer statistics).

        Args:
            request: The checkout command.

        Returns:
            PlacedOrder: The persisted order and the payment QR, if any.

        Raises:
            OrderValidationError: ``EMPTY_ORDER``, ``INVALID_QUANTITY``,
                ``PRICE_REQUIRED`` or ``PRICING_MISMATCH``.
            NotFoundError: ``PRODUCT_NOT_FOUND`` for a line with neither a
                resolvable product nor a snapshot.
            InsufficientStock: When a line cannot be debited. Lines already
                debited for this request are credited back.
        """
        if not request.items:
            raise OrderValidationError("EMPTY_ORDER")

        items = [self._resolve_line(line) for line in request.items]

        debited: List[OrderItem] = []
        try:
            # 1) Reserve stock, one conditional decrement per line
            for item in items:
                if item.product_id is None:
                    continue
                if not self.catalog.decrement_stock(item.product_id, item.quantity):
                    raise InsufficientStock(item.product_snapshot.sku)
                debited.append(item)

            # 2) Price and persist
            pricing = self._price(items, request)
            order = self.orders.create(self._build_order(request, items, pricing), self._next_order_number)
        except Exception:
            self._release_stock(debited, reason="order not created")
            raise

        logger.info(
            "order created",
            extra={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "total": str(order.pricing.total),
                "items": len(order.items),
            },
        )

        # 3) Side effects
        payment_qr = self._attach_payment_qr(order)
        self.runner.submit(self._dispatch, self.notifier.order_placed, order)
        self._record_stats(order)
        return PlacedOrder(order=order, payment_qr=payment_qr)

    def _resolve_line(self, line: LineRequest) -> OrderItem:
        if line.quantity < 1:
            raise OrderValidationError("INVALID_QUANTITY")

        product = None
        if line.product_id:
            product = self.catalog.get_product(line.product_id)
        elif line.snapshot and line.snapshot.sku:
            # no live reference: find the product anyway so stock can move
            product = self.catalog.get_product_by_sku(line.snapshot.sku)

        snap = line.snapshot
        if product is None and snap is None:
            raise NotFoundError("PRODUCT_NOT_FOUND")

        unit_price = line.price
        if unit_price is None:
            unit_price = product.price if product else snap.price
        if unit_price is None:
            raise OrderValidationError("PRICE_REQUIRED")

        snapshot = ProductSnapshot(
            name=_first(snap and snap.name, product and product.name) or "",
            sku=_first(snap and snap.sku, product and product.sku),
            image=_first(snap and snap.image, product and product.image),
            price=unit_price,
            specifications=_first(snap and snap.specifications, product and product.specifications) or {},
        )
        return OrderItem(
            product_snapshot=snapshot,
            quantity=line.quantity,
            price=unit_price,
            product_id=product.id if product else None,
            variant=line.variant,
        )

    def _price(self, items: List[OrderItem], request: NewOrder) -> Pricing:
        try:
            return resolve_pricing(
                [(item.price, item.quantity) for item in items],
                supplied=request.pricing,
                coupon_discount=request.coupon_discount,
                policy=self.config.pricing,
                tolerance=self.config.pricing_tolerance,
            )
        except OrderError:
            raise
        except ValueError as exc:
            raise OrderValidationError(str(exc)) from exc

    def _build_order(self, request: NewOrder, items: List[OrderItem], pricing: Pricing) -> Order:
        now = self.clock()
        payment_status = request.payment.status or PaymentStatus.PENDING
        payment = Payment(
            method=request.payment.method,
            status=payment_status,
            transaction_id=request.payment.transaction_id,
            paid_at=now if payment_status == PaymentStatus.COMPLETED else None,
        )
        coupon = None
        if request.coupon_code:
            coupon = Coupon(code=request.coupon_code, discount=request.coupon_discount or Decimal("0"))
        return Order(
            id=None,
            order_number=None,
            customer_id=request.customer_id,
            customer_info=request.customer_info,
            items=items,
            shipping_address=request.shipping_address,
            billing_address=request.billing_address,
            pricing=pricing,
            payment=payment,
            coupon=coupon,
            notes=dict(request.notes or {}),
            created_at=now,
        )

    def _next_order_number(self) -> str:
        return generate_order_number(self.config.order_number_prefix, self.clock())

    def _attach_payment_qr(self, order: Order) -> Optional[PaymentQR]:
        if order.payment.method not in QR_PAYMENT_METHODS:
            return None
        try:
            qr = self.payment_qr.generate(order)
        except Exception:
            logger.warning("payment qr generation failed", extra={"order_number": order.order_number}, exc_info=True)
            return None

        order.payment.qr_code = qr.qr_image_data
        order.payment.upi_id = qr.payment_details.get("merchant_id")
        try:
            self.orders.save_payment_qr(order)
        except Exception:
            logger.warning("payment qr not persisted", extra={"order_number": order.order_number}, exc_info=True)
        return qr

    def _record_stats(self, order: Order) -> None:
        if not order.customer_id:
            return
        try:
            self.stats.record_order(order.customer_id, order.pricing.total)
        except Exception:
            logger.warning("customer stats update failed", extra={"order_number": order.order_number}, exc_info=True)

    # ---- ConfirmPayment ----
    def confirm_payment(
        self,
        order_id,
        transaction_id: str,
        method: Optional[PaymentMethod] = None,
        customer_id: Optional[str] = None,
    ) -> Order:
        """Mark the order as paid and confirmed.

        Raises:
            OrderValidationError: ``TRANSACTION_ID_REQUIRED``.
            NotFoundError: ``ORDER_NOT_FOUND`` (also for another customer's order).
            OrderConflict: ``PAYMENT_ALREADY_CONFIRMED``, ``ORDER_NOT_PAYABLE``
                or ``CONCURRENT_UPDATE``.
        """
        if not transaction_id:
            raise OrderValidationError("TRANSACTION_ID_REQUIRED")

        order = self._load(order_id, customer_id)
        if order.payment.status == PaymentStatus.COMPLETED:
            raise OrderConflict("PAYMENT_ALREADY_CONFIRMED")
        if order.status in UNPAYABLE_STATUSES:
            raise OrderConflict("ORDER_NOT_PAYABLE")

        previous_status = order.status
        previous_payment = order.payment.status
        now = self.clock()

        order.payment.status = PaymentStatus.COMPLETED
        order.payment.transaction_id = transaction_id
        if method is not None:
            order.payment.method = method
        order.payment.paid_at = now
        history = []
        if order.status != OrderStatus.CONFIRMED:
            history.append(
                order.transition_to(OrderStatus.CONFIRMED, now, note="Payment confirmed", updated_by=customer_id)
            )

        self._commit(order, previous_status, history, previous_payment)
        logger.info(
            "payment confirmed",
            extra={"order_number": order.order_number, "transaction_id": transaction_id},
        )

        self.runner.submit(self._dispatch, self.notifier.payment_confirmed, order)
        return order

    # ---- CancelOrder ----
    def cancel_order(self, order_id, reason: Optional[str] = None, customer_id: Optional[str] = None) -> Order:
        """Cancel a pending, confirmed or processing order and credit stock back.

        Raises:
            NotFoundError: ``ORDER_NOT_FOUND``.
            OrderConflict: ``ORDER_NOT_CANCELLABLE`` or ``CONCURRENT_UPDATE``.
        """
        order = self._load(order_id, customer_id)
        if order.status not in CANCELLABLE_STATUSES:
            raise OrderConflict("ORDER_NOT_CANCELLABLE")

        previous = order.status
        entry = order.transition_to(
            OrderStatus.CANCELLED,
            self.clock(),
            note=reason or "Cancelled by customer",
            updated_by=customer_id,
        )
        # the status swap must win before any stock moves
        self._commit(order, previous, [entry])
        self._release_stock(order.items, reason="order cancelled")

        logger.info("order cancelled", extra={"order_number": order.order_number, "from_status": previous.value})
        return order

    # ---- UpdateStatus ----
    def update_status(
        self,
        order_id,
        new_status: OrderStatus,
        note: Optional[str] = None,
        tracking: Optional[TrackingUpdate] = None,
        updated_by: Optional[str] = None,
    ) -> Order:
        """Apply an admin status transition.

        Any status is accepted, except that a cancelled order cannot be moved
        to another status because its stock has already been released.
        Moving an order into ``cancelled`` credits its stock back.

        Raises:
            NotFoundError: ``ORDER_NOT_FOUND``.
            OrderConflict: ``ORDER_ALREADY_CANCELLED`` or ``CONCURRENT_UPDATE``.
        """
        order = self._load(order_id)
        previous = order.status
        if previous == OrderStatus.CANCELLED and new_status != OrderStatus.CANCELLED:
            raise OrderConflict("ORDER_ALREADY_CANCELLED")

        now = self.clock()
        entry = order.transition_to(new_status, now, note=note, updated_by=updated_by)

        if new_status == OrderStatus.SHIPPED and tracking and tracking.tracking_number:
            order.tracking = Tracking(
                carrier=tracking.carrier or self.config.default_carrier,
                tracking_number=tracking.tracking_number,
                tracking_url=f"{self.config.tracking_url_base.rstrip('/')}/{tracking.tracking_number}",
            )
            order.estimated_delivery = now + timedelta(days=self.config.estimated_delivery_days)
        if new_status == OrderStatus.DELIVERED:
            order.actual_delivery = now

        self._commit(order, previous, [entry])
        if new_status == OrderStatus.CANCELLED and previous != OrderStatus.CANCELLED:
            self._release_stock(order.items, reason="order cancelled by admin")

        logger.info(
            "order status updated",
            extra={"order_number": order.order_number, "from_status": previous.value, "to_status": new_status.value},
        )

        if new_status != previous and order.customer_info.phone:
            self.runner.submit(self._dispatch, self.notifier.status_changed, order, new_status)
        return order

    # ---- Reads / admin ----
    def get_order(self, order_id, customer_id: Optional[str] = None) -> Order:
        return self._load(order_id, customer_id)

    def list_orders(self, **filters) -> Tuple[List[Order], int]:
        return self.orders.list(**filters)

    def track_order(self, reference: str) -> OrderTracking:
        """Public lookup by order number or record id."""
        order = self.orders.find(reference)
        if order is None:
            raise NotFoundError("ORDER_NOT_FOUND")
        return OrderTracking(
            order_number=order.order_number,
            status=order.status,
            status_history=list(order.status_history),
            tracking=order.tracking,
            estimated_delivery=order.estimated_delivery,
            order_date=order.created_at,
        )

    def delete_order(self, order_id) -> None:
        """Hard delete, bypassing business invariants (stock is not restored)."""
        if not self.orders.delete(order_id):
            raise NotFoundError("ORDER_NOT_FOUND")
        logger.warning("order deleted", extra={"order_id": str(order_id)})

    # ---- ResendNotifications ----
    def resend_notifications(self, order_id, event: Optional[str] = None) -> Tuple[Order, List[NotificationResult]]:
        """Deliver an order event's notifications again and persist the flags.

        Runs in the caller's thread so the per-channel results can be
        returned. Flags already set stay set.

        Args:
            order_id: The order to notify about.
            event: ``order_placed`` or ``payment_confirmed``. Defaults to
                ``payment_confirmed`` once the payment is completed.

        Raises:
            NotFoundError: ``ORDER_NOT_FOUND``.
            OrderValidationError: ``INVALID_NOTIFICATION_EVENT``.
        """
        order = self._load(order_id)
        if event is None:
            event = PAYMENT_CONFIRMED if order.payment.status == PaymentStatus.COMPLETED else ORDER_PLACED
        senders = {ORDER_PLACED: self.notifier.order_placed, PAYMENT_CONFIRMED: self.notifier.payment_confirmed}
        if event not in senders:
            raise OrderValidationError("INVALID_NOTIFICATION_EVENT")

        results = senders[event](order)
        self.orders.save_notifications(order)
        logger.info(
            "notifications resent",
            extra={
                "order_number": order.order_number,
                "event": event,
                "sent": [r.channel for r in results if r.ok],
            },
        )
        return order, results

    # ---- Helpers ----
    def _load(self, order_id, customer_id: Optional[str] = None) -> Order:
        order = self.orders.get(order_id, customer_id=customer_id)
        if order is None:
            raise NotFoundError("ORDER_NOT_FOUND")
        return order

    def _commit(
        self,
        order: Order,
        expected_status: OrderStatus,
        new_history: List[StatusChange],
        expected_payment_status: Optional[PaymentStatus] = None,
    ) -> None:
        if not self.orders.save(order, expected_status, expected_payment_status, new_history):
            raise OrderConflict("CONCURRENT_UPDATE")

    def _release_stock(self, items: List[OrderItem], reason: str) -> None:
        for item in items:
            if item.product_id is None:
                continue
            try:
                self.catalog.increment_stock(item.product_id, item.quantity)
            except Exception:
                logger.error(
                    "stock release failed",
                    extra={"product_id": item.product_id, "quantity": item.quantity, "reason": reason},
                    exc_info=True,
                )

    def _dispatch(self, send: Callable, order: Order, *args) -> None:
        try:
            send(order, *args)
            self.orders.save_notifications(order)
        except Exception:
            logger.error("notification dispatch failed", extra={"order_number": order.order_number}, exc_info=True)
