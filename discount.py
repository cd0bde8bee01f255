# Local estimate, shown only while no server figure exists for the current cart
from typing import Optional, Tuple

from models import CartSnapshot, Coupon, ValidationResult


def estimate_discount(coupon: Coupon, cart_value: float) -> float:
    if coupon.discountType == "percentage":
        discount = cart_value * coupon.discountValue / 100
        if coupon.maxDiscountCap is not None:
            discount = min(discount, coupon.maxDiscountCap)
        return max(0.0, discount)
    if coupon.discountType == "fixed_amount":
        return max(0.0, min(coupon.discountValue, cart_value))
    if coupon.discountType == "free_delivery":
        # waived delivery charge, not bounded by the cart value
        return max(0.0, coupon.discountValue)
    return 0.0


def final_amount(cart_value: float, discount: float) -> float:
    return max(0.0, cart_value - discount)


def displayed_totals(
    coupon: Optional[Coupon],
    snapshot: CartSnapshot,
    result: Optional[ValidationResult] = None,
) -> Tuple[float, float, Optional[str]]:
    """
    Discount and final amount to show for a cart.

    `result` must already be known to belong to `snapshot`; when it carries a
    discount that figure wins over the local estimate.

    Returns:
        (discount, final_amount, source) where source is "server",
        "estimate" or None when no coupon is applied.
    """
    cart_value = snapshot.cart_value
    if coupon is None:
        return 0.0, cart_value, None
    if result is not None and result.valid and result.discount is not None:
        discount, source = result.discount, "server"
    else:
        discount, source = estimate_discount(coupon, cart_value), "estimate"
    return discount, final_amount(cart_value, discount), source
