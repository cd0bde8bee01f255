from typing import List

from errors import ServiceError
from logger import get_logger
from models import Order

logger = get_logger("history")


async def load_usage_history(api) -> List[dict]:
    """The user's coupon usages, each joined with its coupon where possible."""
    usages = await api.get_my_usage()
    if all(usage.coupon is not None for usage in usages):
        return [{"usage": usage, "coupon": usage.coupon} for usage in usages]

    try:
        by_id = {coupon.id: coupon for coupon in await api.get_available_coupons()}
    except ServiceError as e:
        # rows without coupon details are still worth showing
        logger.warning(f"Could not load coupon details for usage history: {e.message}")
        by_id = {}

    return [
        {"usage": usage, "coupon": usage.coupon or by_id.get(usage.couponId)}
        for usage in usages
    ]


async def cancel_order(api, order_id: str) -> Order:
    """Cancel an order; the backend reverts the discount and usage count."""
    order = await api.cancel_order(order_id)
    logger.info(f"Order {order_id} cancelled")
    return order
