"""Pydantic schemas for orders.

Request DTOs validate the storefront's camelCase payloads and convert them
into domain commands; read DTOs render domain aggregates back to camelCase
JSON. Field names are snake_case in Python, with aliases generated by
``to_camel``.
"""

from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .domain import (
    Address,
    CustomerInfo,
    LineRequest,
    NewOrder,
    Order,
    OrderStatus,
    OrderTracking,
    OrderValidationError,
    PaymentMethod,
    PaymentQR,
    PaymentRequest,
    PaymentStatus,
    ProductSnapshot,
    TrackingUpdate,
)
from .notifications import NotificationResult
from .pricing import Pricing


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------- Requests ---------------- #

class ProductSnapshotIn(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    sku: Optional[str] = Field(default=None, max_length=64)
    image: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    specifications: dict = Field(default_factory=dict)


class OrderItemIn(CamelModel):
    """Input schema for a single cart line.

    Attributes:
        product_id: Live catalog id (``product`` in the payload).
        product_snapshot: Product data as shown in the cart. Required when
            ``product_id`` is missing.
        quantity: Positive number of units.
        price: Unit price as shown in the cart.
        variant: Optional ``{"name", "value"}`` selection.
    """

    product_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("product", "productId", "product_id")
    )
    product_snapshot: Optional[ProductSnapshotIn] = None
    quantity: int = Field(gt=0)
    price: Optional[Decimal] = Field(default=None, ge=0)
    variant: Optional[dict] = None

    @model_validator(mode="after")
    def require_reference(self):
        if not self.product_id and self.product_snapshot is None:
            raise ValueError("product or productSnapshot is required")
        return self


class CustomerInfoIn(CamelModel):
    """Buyer contact details; missing fields fall back to the user profile."""

    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=32)


class AddressIn(CamelModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(min_length=5, max_length=32)
    street: str = Field(min_length=1, max_length=300)
    apartment: str = ""
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=100)
    zip_code: str = Field(min_length=3, max_length=16)
    country: str = "India"
    landmark: str = ""


class PaymentIn(CamelModel):
    method: PaymentMethod = PaymentMethod.QR_CODE
    status: Optional[PaymentStatus] = None
    transaction_id: Optional[str] = Field(default=None, max_length=128)


class PricingIn(CamelModel):
    subtotal: Decimal = Field(ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    total: Decimal


class CouponIn(CamelModel):
    code: str = Field(min_length=1, max_length=50)
    discount: Decimal = Field(default=Decimal("0"), ge=0)


class CreateOrderDTO(CamelModel):
    """Schema for creating an order.

    ``customer_info`` may be omitted or partial; each missing field is taken
    from the authenticated user's profile, and the phone from the shipping
    address. ``pricing`` is optional; when absent it is computed
    server-side.
    """

    items: list[OrderItemIn] = Field(default_factory=list)
    customer_info: Optional[CustomerInfoIn] = None
    shipping_address: AddressIn
    billing_address: Optional[dict] = None
    payment: PaymentIn = Field(default_factory=PaymentIn)
    pricing: Optional[PricingIn] = None
    coupon: Optional[CouponIn] = None
    notes: Optional[dict] = None

    def to_command(self, user) -> NewOrder:
        """Build the domain command for ``user`` (the authenticated buyer).

        Raises:
            OrderValidationError: ``CUSTOMER_EMAIL_REQUIRED`` when neither the
                payload nor the profile provides an email.
        """
        user_id = str(user.pk)
        supplied = self.customer_info or CustomerInfoIn()
        info = CustomerInfo(
            email=supplied.email or user.email,
            first_name=supplied.first_name or user.first_name,
            last_name=supplied.last_name or user.last_name,
            phone=supplied.phone or self.shipping_address.phone,
            user_id=user_id,
        )
        if not info.email:
            raise OrderValidationError("CUSTOMER_EMAIL_REQUIRED")

        lines = []
        for it in self.items:
            snap = None
            if it.product_snapshot is not None:
                snap = ProductSnapshot(**it.product_snapshot.model_dump())
            lines.append(
                LineRequest(
                    quantity=it.quantity,
                    product_id=it.product_id,
                    snapshot=snap,
                    price=it.price,
                    variant=it.variant,
                )
            )

        return NewOrder(
            customer_id=user_id,
            customer_info=info,
            items=lines,
            shipping_address=Address(**self.shipping_address.model_dump()),
            billing_address=self.billing_address,
            payment=PaymentRequest(**self.payment.model_dump()),
            pricing=Pricing(**self.pricing.model_dump()) if self.pricing else None,
            coupon_code=self.coupon.code if self.coupon else None,
            coupon_discount=self.coupon.discount if self.coupon else None,
            notes=self.notes or {},
        )


class ConfirmPaymentDTO(CamelModel):
    transaction_id: Optional[str] = Field(default=None, max_length=128)
    payment_method: PaymentMethod = PaymentMethod.UPI


class CancelOrderDTO(CamelModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class UpdateStatusDTO(CamelModel):
    status: OrderStatus
    note: Optional[str] = Field(default=None, max_length=500)
    tracking_number: Optional[str] = Field(default=None, max_length=128)
    carrier: Optional[str] = Field(default=None, max_length=64)

    def tracking(self) -> Optional[TrackingUpdate]:
        if not self.tracking_number:
            return None
        return TrackingUpdate(tracking_number=self.tracking_number, carrier=self.carrier)


class ResendNotificationsDTO(CamelModel):
    event: Optional[Literal["order_placed", "payment_confirmed"]] = None


class OrderListQuery(CamelModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    status: Optional[OrderStatus] = None
    search: Optional[str] = Field(default=None, max_length=100)

    @field_validator("status", "search", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        return v or None


# ---------------- Responses ---------------- #

class ProductSnapshotOut(CamelModel):
    name: str
    sku: Optional[str] = None
    image: Optional[str] = None
    price: Optional[Decimal] = None
    specifications: dict = Field(default_factory=dict)


class OrderItemOut(CamelModel):
    product_id: Optional[str] = None
    product_snapshot: ProductSnapshotOut
    quantity: int
    price: Decimal
    variant: Optional[dict] = None


class PricingOut(CamelModel):
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    discount: Decimal
    total: Decimal


class PaymentOut(CamelModel):
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    qr_code: Optional[str] = None
    upi_id: Optional[str] = None


class StatusChangeOut(CamelModel):
    status: OrderStatus
    timestamp: datetime
    note: Optional[str] = None
    updated_by: Optional[str] = None


class TrackingOut(CamelModel):
    carrier: str
    tracking_number: str
    tracking_url: str


class NotificationsOut(CamelModel):
    email_sent: bool
    whatsapp_sent: bool
    invoice_generated: bool
    invoice_path: Optional[str] = None


class CustomerInfoOut(CamelModel):
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    user_id: Optional[str] = None


class AddressOut(CamelModel):
    first_name: str
    last_name: str
    email: str
    phone: str
    street: str
    apartment: str = ""
    city: str
    state: str
    zip_code: str
    country: str
    landmark: str = ""


class CouponOut(CamelModel):
    code: str
    discount: Decimal
    type: str


class OrderReadDTO(CamelModel):
    id: UUID
    order_number: str
    customer_id: Optional[str] = None
    customer_info: CustomerInfoOut
    items: list[OrderItemOut]
    shipping_address: AddressOut
    billing_address: Optional[dict] = None
    pricing: PricingOut
    payment: PaymentOut
    status: OrderStatus
    coupon: Optional[CouponOut] = None
    notes: dict = Field(default_factory=dict)
    status_history: list[StatusChangeOut]
    tracking: Optional[TrackingOut] = None
    notifications: NotificationsOut
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderReadDTO":
        return cls.model_validate(asdict(order))


class PaymentQROut(CamelModel):
    qr_image_data: str
    payment_details: dict


class NotificationResultOut(CamelModel):
    channel: str
    ok: bool
    reason: Optional[str] = None
    reference: Optional[str] = None


class TrackingHistoryOut(CamelModel):
    status: OrderStatus
    timestamp: datetime
    note: Optional[str] = None


class TrackingReadDTO(CamelModel):
    """Public tracking view: no payment or customer details."""

    order_number: str
    status: OrderStatus
    status_history: list[TrackingHistoryOut]
    tracking: Optional[TrackingOut] = None
    estimated_delivery: Optional[datetime] = None
    order_date: Optional[datetime] = None

    @classmethod
    def from_domain(cls, tracking: OrderTracking) -> "TrackingReadDTO":
        return cls.model_validate(asdict(tracking))


def dump(dto: BaseModel) -> dict:
    """Serialize a read DTO to JSON-ready camelCase data."""
    return dto.model_dump(by_alias=True, mode="json")


def payment_qr_payload(qr: Optional[PaymentQR]) -> Optional[dict]:
    return dump(PaymentQROut(**asdict(qr))) if qr else None


def notification_results_payload(results: list[NotificationResult]) -> list[dict]:
    return [dump(NotificationResultOut(**asdict(r))) for r in results]
