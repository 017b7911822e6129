"""SQLAlchemy repository for the product catalog and its stock counters.

The ``products`` table holds the authoritative price, images, specifications
and stock quantity of each product. Stock is changed only with conditional
``UPDATE`` statements (``... WHERE stock_quantity >= :qty``), so concurrent
checkouts can never drive a counter below zero, and the denormalized
``stock_status`` column is recomputed in the same transaction.

The connection is configured with ``DATABASE_URL``, or the individual
``DB_*`` variables for PostgreSQL.
"""

import os
import uuid
from contextlib import contextmanager
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Integer, Numeric, String, case, create_engine, select, update
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

DB_HOST = os.getenv("DB_HOST", "inventory-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "inventory")
DB_USER = os.getenv("DB_USER", "inventory_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "inventory-pass")

DATABASE_URL = os.getenv("DATABASE_URL") or (
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)
engine = create_engine(DATABASE_URL, pool_pre_ping=True)

OK = "ok"
INSUFFICIENT = "insufficient"
NOT_FOUND = "not_found"


class Base(DeclarativeBase): pass


class Product(Base):
    """A sellable product and its stock counter.

    Attributes:
        id: UUID string, primary key.
        sku: Unique stock keeping unit.
        price: Current unit price.
        stock_quantity: Units available (never negative).
        low_stock_threshold: At or below this quantity the product is
            ``low-stock``.
        stock_status: ``in-stock``, ``low-stock`` or ``out-of-stock``.
    """
    __tablename__ = "products"
    id = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sku = mapped_column(String(64), unique=True, nullable=False)
    name = mapped_column(String(200), nullable=False)
    price = mapped_column(Numeric(12, 2), nullable=False)
    images = mapped_column(JSON, nullable=False, default=list)
    specifications = mapped_column(JSON, nullable=False, default=dict)
    stock_quantity = mapped_column(Integer, nullable=False, default=0)
    low_stock_threshold = mapped_column(Integer, nullable=False, default=5)
    stock_status = mapped_column(String(16), nullable=False, default="in-stock")


def init_db() -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    with Session(engine) as s:
        yield s


def _stock_status():
    return case(
        (Product.stock_quantity == 0, "out-of-stock"),
        (Product.stock_quantity <= Product.low_stock_threshold, "low-stock"),
        else_="in-stock",
    )


def _as_dict(p: Product) -> dict:
    return {
        "id": p.id,
        "sku": p.sku,
        "name": p.name,
        "price": p.price,
        "images": list(p.images or []),
        "specifications": dict(p.specifications or {}),
        "stock_quantity": p.stock_quantity,
        "low_stock_threshold": p.low_stock_threshold,
        "stock_status": p.stock_status,
    }


class CatalogRepo:
    """Repository class for product lookups and stock adjustments."""

    def get(self, product_id: str) -> Optional[dict]:
        with get_session() as s:
            obj = s.get(Product, product_id)
            return _as_dict(obj) if obj else None

    def get_by_sku(self, sku: str) -> Optional[dict]:
        with get_session() as s:
            obj = s.scalars(select(Product).where(Product.sku == sku)).first()
            return _as_dict(obj) if obj else None

    def upsert(
        self,
        sku: str,
        name: str,
        price: Decimal,
        stock_quantity: int,
        images: Optional[list] = None,
        specifications: Optional[dict] = None,
        low_stock_threshold: int = 5,
    ) -> str:
        """Create or replace a product by SKU and return its id."""
        with get_session() as s:
            obj = s.scalars(select(Product).where(Product.sku == sku)).first() or Product(sku=sku)
            obj.name = name
            obj.price = price
            obj.stock_quantity = stock_quantity
            obj.images = images or []
            obj.specifications = specifications or {}
            obj.low_stock_threshold = low_stock_threshold
            s.add(obj)
            s.flush()
            s.execute(
                update(Product)
                .where(Product.id == obj.id)
                .values(stock_status=_stock_status())
                .execution_options(synchronize_session=False)
            )
            s.commit()
            return obj.id

    def decrement(self, product_id: str, quantity: int) -> str:
        """Debit ``quantity`` units in one conditional update.

        Returns:
            str: ``ok``, ``insufficient`` (nothing changed) or ``not_found``.
        """
        with get_session() as s:
            res = s.execute(
                update(Product)
                .where(Product.id == product_id, Product.stock_quantity >= quantity)
                .values(stock_quantity=Product.stock_quantity - quantity)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 0:
                s.rollback()
                return INSUFFICIENT if s.get(Product, product_id) is not None else NOT_FOUND
            self._refresh_status(s, product_id)
            s.commit()
            return OK

    def increment(self, product_id: str, quantity: int) -> bool:
        with get_session() as s:
            res = s.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(stock_quantity=Product.stock_quantity + quantity)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 0:
                s.rollback()
                return False
            self._refresh_status(s, product_id)
            s.commit()
            return True

    @staticmethod
    def _refresh_status(s: Session, product_id: str) -> None:
        s.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_status=_stock_status())
            .execution_options(synchronize_session=False)
        )
