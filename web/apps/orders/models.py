import uuid
from django.conf import settings
from django.db import models, transaction
from django.utils import timezone


class OrderModel(models.Model):
    # UUID PK exposed by the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Internal incremental counter
    internal_id = models.BigIntegerField(unique=True, editable=False, null=True)

    class Status(models.TextChoices):
        PENDING = "pending"
        CONFIRMED = "confirmed"
        PROCESSING = "processing"
        SHIPPED = "shipped"
        DELIVERED = "delivered"
        CANCELLED = "cancelled"
        RETURNED = "returned"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending"
        PROCESSING = "processing"
        COMPLETED = "completed"
        FAILED = "failed"
        REFUNDED = "refunded"

    class PaymentMethod(models.TextChoices):
        QR_CODE = "qr-code"
        UPI = "upi"
        CARD = "card"
        BANK_TRANSFER = "bank-transfer"
        COD = "cod"

    order_number = models.CharField(max_length=32, unique=True)
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="orders"
    )
    customer_info = models.JSONField()
    shipping_address = models.JSONField()
    billing_address = models.JSONField(null=True, blank=True)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    coupon = models.JSONField(null=True, blank=True)

    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices, default=PaymentMethod.QR_CODE)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    transaction_id = models.CharField(max_length=128, null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    qr_code = models.TextField(null=True, blank=True)
    upi_id = models.CharField(max_length=128, null=True, blank=True)

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)

    carrier = models.CharField(max_length=64, null=True, blank=True)
    tracking_number = models.CharField(max_length=128, null=True, blank=True)
    tracking_url = models.URLField(max_length=300, null=True, blank=True)

    # Best-effort notification outcome; never gates the order
    email_sent = models.BooleanField(default=False)
    whatsapp_sent = models.BooleanField(default=False)
    invoice_generated = models.BooleanField(default=False)
    invoice_path = models.CharField(max_length=300, null=True, blank=True)

    notes = models.JSONField(default=dict, blank=True)
    estimated_delivery = models.DateTimeField(null=True, blank=True)
    actual_delivery = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at", "-internal_id"]
        indexes = [
            models.Index(fields=["customer", "-created_at"], name="orders_customer_created_idx"),
            models.Index(fields=["status"], name="orders_status_idx"),
        ]

    def save(self, *args, **kwargs):
        # Assign incremental `internal_id` only on creation
        if self.internal_id is None:
            with transaction.atomic():
                last = (
                    OrderModel.objects.select_for_update()
                    .exclude(internal_id=None)
                    .order_by("-internal_id")
                    .first()
                )
                self.internal_id = 1 if last is None else last.internal_id + 1
                super().save(*args, **kwargs)
            return
        super().save(*args, **kwargs)

    def __str__(self):
        return self.order_number


class OrderItemModel(models.Model):
    order = models.ForeignKey(OrderModel, on_delete=models.CASCADE, related_name="items")
    position = models.PositiveSmallIntegerField(default=0)
    # Live catalog reference, only used to credit stock back
    product_id = models.CharField(max_length=64, null=True, blank=True)
    product_snapshot = models.JSONField()
    quantity = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=12, decimal_places=2)
    variant = models.JSONField(null=True, blank=True)

    class Meta:
        db_table = "order_items"
        ordering = ["order", "position"]


class StatusHistoryModel(models.Model):
    order = models.ForeignKey(OrderModel, on_delete=models.CASCADE, related_name="status_history")
    status = models.CharField(max_length=16, choices=OrderModel.Status.choices)
    timestamp = models.DateTimeField()
    note = models.TextField(null=True, blank=True)
    updated_by = models.CharField(max_length=64, null=True, blank=True)

    class Meta:
        db_table = "order_status_history"
        ordering = ["order", "timestamp", "id"]

    def save(self, *args, **kwargs):
        # Append-only: rows are never rewritten
        if not self._state.adding:
            raise ValueError("STATUS_HISTORY_IMMUTABLE")
        super().save(*args, **kwargs)


class CustomerStatsModel(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="order_stats")
    total_orders = models.PositiveIntegerField(default=0)
    total_spent = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    average_order_value = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    last_order_date = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "customer_order_stats"


class IdempotencyKey(models.Model):
    key = models.CharField(max_length=128, unique=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    order = models.ForeignKey(OrderModel, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
