import uuid
from django.db import models


class Product(models.Model):
    class StockStatus(models.TextChoices):
        IN_STOCK = "in-stock"
        LOW_STOCK = "low-stock"
        OUT_OF_STOCK = "out-of-stock"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=200)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    images = models.JSONField(default=list, blank=True)
    specifications = models.JSONField(default=dict, blank=True)
    stock_quantity = models.PositiveIntegerField(default=0)
    low_stock_threshold = models.PositiveIntegerField(default=5)
    stock_status = models.CharField(max_length=16, choices=StockStatus.choices, default=StockStatus.IN_STOCK)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "products"
        ordering = ["name"]

    @staticmethod
    def status_for(quantity: int, threshold: int) -> str:
        if quantity == 0:
            return Product.StockStatus.OUT_OF_STOCK
        if quantity <= threshold:
            return Product.StockStatus.LOW_STOCK
        return Product.StockStatus.IN_STOCK

    def save(self, *args, **kwargs):
        self.stock_status = self.status_for(self.stock_quantity, self.low_stock_threshold)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.sku} {self.name}"
