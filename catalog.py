"""
Coupon catalog operations for the admin screens and the customer coupon list.

Create and edit both pass the draft through the constraint checks before
anything is sent to the backend.
"""
import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

from constraints import ensure_valid_definition
from logger import get_logger
from models import Coupon, CouponDraft, CouponUsage

logger = get_logger("catalog")

STATUS_FILTERS = ("all", "active", "inactive")


def status_text(coupon: Coupon, now: Optional[datetime] = None) -> str:
    if not coupon.isActive:
        return "Inactive"
    now = now or datetime.now(timezone.utc)
    end = coupon.endDate
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    if now > end:
        return "Expired"
    return "Active"


def discount_badge(coupon: Coupon) -> str:
    if coupon.discountType == "percentage":
        return f"{coupon.discountValue:g}% OFF"
    if coupon.discountType == "fixed_amount":
        return f"₹{coupon.discountValue:g} OFF"
    return "FREE DELIVERY"


async def list_coupons(api, status: str = "all", search: Optional[str] = None) -> List[Coupon]:
    if status not in STATUS_FILTERS:
        raise ValueError(f"status must be one of {', '.join(STATUS_FILTERS)}")
    is_active = None if status == "all" else status == "active"
    return await api.get_all_coupons(is_active=is_active, search=search or None)


async def create_coupon(api, draft: CouponDraft) -> Coupon:
    ensure_valid_definition(draft)
    coupon = await api.create_coupon(draft.to_payload())
    logger.info(f"Coupon {coupon.code} created")
    return coupon


async def update_coupon(api, coupon_id: str, draft: CouponDraft) -> Coupon:
    ensure_valid_definition(draft)
    coupon = await api.update_coupon(coupon_id, draft.to_payload())
    logger.info(f"Coupon {coupon.code} updated")
    return coupon


async def dashboard_stats(api) -> Dict[str, float]:
    coupons, revenue = await asyncio.gather(api.get_all_coupons(), api.get_revenue_impact())
    return {
        "totalCoupons": len(coupons),
        "activeCoupons": sum(1 for c in coupons if c.isActive),
        "totalUsage": sum(c.currentUsageCount for c in coupons),
        "totalDiscountGiven": (revenue or {}).get("totalDiscountGiven", 0),
    }


# Customer side

def usage_counts(usages: List[CouponUsage]) -> Dict[str, int]:
    """Per-coupon count of this user's usages that still stand."""
    counts: Dict[str, int] = {}
    for usage in usages:
        if usage.status == "applied":
            counts[usage.couponId] = counts.get(usage.couponId, 0) + 1
    return counts


def is_user_limit_reached(coupon: Coupon, counts: Dict[str, int]) -> bool:
    if not coupon.perUserLimit:
        return False
    return counts.get(coupon.id, 0) >= coupon.perUserLimit


async def available_coupons(api) -> List[dict]:
    coupons, usages = await asyncio.gather(api.get_available_coupons(), api.get_my_usage())
    counts = usage_counts(usages)
    return [
        {
            "coupon": coupon,
            "badge": discount_badge(coupon),
            "timesUsed": counts.get(coupon.id, 0),
            "limitReached": is_user_limit_reached(coupon, counts),
        }
        for coupon in coupons
    ]
