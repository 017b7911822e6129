"""Order pricing calculation.

Totals are computed with ``Decimal`` arithmetic so that
``total == subtotal + tax + shipping_cost - discount`` holds exactly for
every server-computed order. A pricing block supplied by the caller (the
storefront cart) is trusted and stored as-is.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

CENT = Decimal("0.01")
ZERO = Decimal("0")


@dataclass(frozen=True)
class Pricing:
    """Monetary breakdown of an order.

    Attributes:
        subtotal: Sum of unit price times quantity over all lines.
        tax: Tax charged on the subtotal.
        shipping_cost: Shipping fee (zero above the free-shipping threshold).
        discount: Coupon discount applied to the order.
        total: Amount the customer pays.
    """

    subtotal: Decimal
    tax: Decimal = ZERO
    shipping_cost: Decimal = ZERO
    discount: Decimal = ZERO
    total: Decimal = ZERO


@dataclass(frozen=True)
class PricingPolicy:
    """Store-wide pricing constants (18% GST, free shipping above 5000)."""

    tax_rate: Decimal = Decimal("0.18")
    free_shipping_threshold: Decimal = Decimal("5000")
    flat_shipping_fee: Decimal = Decimal("200")


DEFAULT_POLICY = PricingPolicy()


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_pricing(
    lines: Iterable[Tuple[Decimal, int]],
    coupon_discount: Optional[Decimal] = None,
    policy: PricingPolicy = DEFAULT_POLICY,
) -> Pricing:
    """Compute pricing from ``(unit_price, quantity)`` lines.

    Args:
        lines: Iterable of ``(unit_price, quantity)`` tuples.
        coupon_discount: Optional absolute discount from a coupon.
        policy: Tax and shipping constants to apply.

    Returns:
        Pricing: Breakdown whose total satisfies the pricing formula.
    """
    subtotal = _money(sum((Decimal(str(price)) * qty for price, qty in lines), ZERO))
    tax = _money(subtotal * policy.tax_rate)
    shipping = ZERO if subtotal > policy.free_shipping_threshold else _money(policy.flat_shipping_fee)
    discount = _money(coupon_discount or ZERO)
    # negative totals from an oversized discount are not rejected here
    total = subtotal + tax + shipping - discount
    return Pricing(subtotal=subtotal, tax=tax, shipping_cost=shipping, discount=discount, total=total)


def resolve_pricing(
    lines: Iterable[Tuple[Decimal, int]],
    supplied: Optional[Pricing] = None,
    coupon_discount: Optional[Decimal] = None,
    policy: PricingPolicy = DEFAULT_POLICY,
    tolerance: Optional[Decimal] = None,
) -> Pricing:
    """Return the pricing to store on a new order.

    A supplied pricing block is used verbatim and its total is not
    recomputed. When ``tolerance`` is set, the supplied total is compared
    against the server-side computation first.

    Raises:
        ValueError: ``PRICING_MISMATCH`` when the supplied total differs from
            the computed one by more than ``tolerance``.
    """
    lines = list(lines)
    if supplied is None:
        return compute_pricing(lines, coupon_discount=coupon_discount, policy=policy)
    if tolerance is not None:
        expected = compute_pricing(lines, coupon_discount=coupon_discount, policy=policy)
        if abs(Decimal(str(supplied.total)) - expected.total) > tolerance:
            raise ValueError("PRICING_MISMATCH")
    return supplied
