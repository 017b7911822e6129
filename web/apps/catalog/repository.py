"""In-process catalog adapter backed by the ``Product`` table.

Stock is only ever changed through single conditional ``UPDATE`` statements
built from ``F()`` expressions, so two concurrent checkouts can never both
take the last unit. The denormalized ``stock_status`` column is recomputed
in the same transaction.
"""

import logging
import uuid
from typing import Optional

from django.db import transaction
from django.db.models import Case, F, Value, When

from apps.orders.domain import CatalogPort, ProductRecord

from .models import Product

logger = logging.getLogger("catalog")


def _pk(product_id) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(product_id))
    except ValueError:
        return None


def _refresh_stock_status(pk: uuid.UUID) -> None:
    Product.objects.filter(pk=pk).update(
        stock_status=Case(
            When(stock_quantity=0, then=Value(Product.StockStatus.OUT_OF_STOCK)),
            When(stock_quantity__lte=F("low_stock_threshold"), then=Value(Product.StockStatus.LOW_STOCK)),
            default=Value(Product.StockStatus.IN_STOCK),
        )
    )


def to_record(product: Product) -> ProductRecord:
    return ProductRecord(
        id=str(product.pk),
        name=product.name,
        sku=product.sku,
        price=product.price,
        images=list(product.images or []),
        specifications=dict(product.specifications or {}),
        stock_quantity=product.stock_quantity,
    )


class ProductCatalog(CatalogPort):
    """``CatalogPort`` over the local database."""

    def get_product(self, product_id: str) -> Optional[ProductRecord]:
        pk = _pk(product_id)
        if pk is None:
            return None
        product = Product.objects.filter(pk=pk).first()
        return to_record(product) if product else None

    def get_product_by_sku(self, sku: str) -> Optional[ProductRecord]:
        product = Product.objects.filter(sku=sku).first()
        return to_record(product) if product else None

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """Debit ``quantity`` units if at least that many are available.

        Returns:
            bool: False when the product is unknown or stock is short; the
            counter is left untouched in that case.
        """
        pk = _pk(product_id)
        if pk is None or quantity < 1:
            return False
        with transaction.atomic():
            updated = Product.objects.filter(pk=pk, stock_quantity__gte=quantity).update(
                stock_quantity=F("stock_quantity") - quantity
            )
            if not updated:
                return False
            _refresh_stock_status(pk)
        logger.info("stock debited", extra={"product_id": str(pk), "quantity": quantity})
        return True

    def increment_stock(self, product_id: str, quantity: int) -> None:
        pk = _pk(product_id)
        if pk is None:
            logger.warning("stock credit for unknown product", extra={"product_id": str(product_id)})
            return
        with transaction.atomic():
            updated = Product.objects.filter(pk=pk).update(stock_quantity=F("stock_quantity") + quantity)
            if updated:
                _refresh_stock_status(pk)
        if updated:
            logger.info("stock credited", extra={"product_id": str(pk), "quantity": quantity})
        else:
            logger.warning("stock credit for unknown product", extra={"product_id": str(pk)})
