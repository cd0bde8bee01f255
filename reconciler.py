# Keeps the applied coupon consistent with a cart that keeps changing.
import asyncio
from enum import Enum
from typing import Optional, Tuple

from cart import Cart
from config import DEFAULT_PAYMENT_METHOD, DELIVERY_CHARGE
from discount import displayed_totals
from errors import (
    CheckoutError, CouponError, CouponRejected, RecommendationTransportError,
    ServiceError, ValidationTransportError,
)
from logger import get_logger
from models import (
    CartSnapshot, CartView, Coupon, CreateOrderRequest, Order, RecommendCouponRequest,
    Recommendations, ValidateCouponRequest, ValidationResult,
)

logger = get_logger("reconciler")


class Status(str, Enum):
    NO_COUPON = "no_coupon"
    VALIDATING = "validating"
    APPLIED = "applied"
    INVALID = "invalid"


class CouponReconciler:
    def __init__(self, api, cart: Cart, delivery_charge: float = DELIVERY_CHARGE,
                 payment_method: str = DEFAULT_PAYMENT_METHOD):
        self.api = api
        self.cart = cart
        self.delivery_charge = delivery_charge
        self.payment_method = payment_method

        self.status = Status.NO_COUPON
        self.coupon: Optional[Coupon] = None
        self.result: Optional[ValidationResult] = None
        self.result_generation: Optional[int] = None
        self.error: Optional[CouponError] = None
        self.message: Optional[str] = None
        self.code_input = ""

        self.recommendations: Optional[Recommendations] = None
        self.recommendation_error: Optional[RecommendationTransportError] = None

        self._last_synced: Optional[CartSnapshot] = None
        # bumped whenever the slot is cleared or replaced
        self._slot = 0
        self._validating_slot: Optional[int] = None

    @property
    def is_validating(self) -> bool:
        return self._validating_slot is not None and self._validating_slot == self._slot

    @property
    def applied_coupon(self) -> Optional[Coupon]:
        if self.status in (Status.APPLIED, Status.VALIDATING):
            return self.coupon
        return None

    # Cart changes

    async def sync(self) -> None:
        """React to the current cart; call after every cart mutation."""
        snapshot = self.cart.snapshot()
        if snapshot.same_lines(self._last_synced):
            return
        self._last_synced = snapshot

        if snapshot.is_empty:
            self.recommendations = None
            if self.coupon is not None:
                logger.info(f"Cart emptied, dropping coupon {self.coupon.code}")
                self._clear_slot()
            return

        pending = [self._refresh_recommendations(snapshot)]
        if self.applied_coupon is not None and self.result_generation != snapshot.generation:
            pending.append(self._revalidate())
        await asyncio.gather(*pending)

    async def _revalidate(self) -> None:
        if self.is_validating:
            # the request in flight notices the newer generation when it lands
            logger.debug("Validation already in flight, deferring to it")
            return
        await self._run_validation(self.coupon.code, explicit=False)

    # User actions

    async def apply_code(self, code: str) -> Status:
        code = (code or "").strip()
        self.code_input = code
        if not code or self.cart.snapshot().is_empty:
            return self.status
        if self.is_validating:
            logger.debug(f"Ignoring apply of {code}: validation in flight")
            return self.status

        self._slot += 1
        self.status = Status.VALIDATING
        self.coupon = None
        self.result = None
        self.result_generation = None
        self.error = None
        self.message = None
        await self._run_validation(code, explicit=True)
        return self.status

    def remove(self) -> None:
        if self.coupon is not None:
            logger.info(f"Coupon {self.coupon.code} removed")
        self._clear_slot()

    def _clear_slot(self) -> None:
        self._slot += 1
        self.status = Status.NO_COUPON
        self.coupon = None
        self.result = None
        self.result_generation = None
        self.error = None
        self.message = None

    # Validation

    async def _run_validation(self, code: str, explicit: bool) -> None:
        slot = self._slot
        self._validating_slot = slot
        self.status = Status.VALIDATING
        coupon = self.coupon
        try:
            while True:
                snapshot = self.cart.snapshot()
                if snapshot.is_empty:
                    self._clear_slot()
                    return

                result, error = await self._validate_snapshot(code, snapshot)
                if error is None and coupon is None and self._accepted(result):
                    coupon, error = await self._lookup_coupon(code)

                if slot != self._slot:
                    logger.debug(f"Dropping validation of {code}: coupon slot was replaced")
                    return
                if self.cart.generation != snapshot.generation:
                    logger.debug(f"Cart changed while validating {code}, validating again")
                    continue

                self._settle(code, coupon, snapshot, result, error, explicit)
                return
        finally:
            if self._validating_slot == slot:
                self._validating_slot = None

    @staticmethod
    def _accepted(result: Optional[ValidationResult]) -> bool:
        return result is not None and result.valid and result.discount is not None

    async def _validate_snapshot(self, code: str, snapshot: CartSnapshot) -> Tuple[
            Optional[ValidationResult], Optional[CouponError]]:
        body = ValidateCouponRequest(
            cartValue=snapshot.cart_value,
            items=snapshot.item_payloads(),
            paymentMethod=self.payment_method,
        )
        try:
            return await self.api.validate_coupon(code, body), None
        except ServiceError as e:
            logger.warning(f"Validation of {code} failed: {e.message}")
            return None, ValidationTransportError(e.message or "Failed to validate coupon")

    async def _lookup_coupon(self, code: str) -> Tuple[Optional[Coupon], Optional[CouponError]]:
        try:
            coupons = await self.api.get_available_coupons()
        except ServiceError as e:
            return None, ValidationTransportError(e.message or "Failed to load coupon details")
        for coupon in coupons:
            if coupon.matches_code(code):
                return coupon, None
        return None, CouponRejected(f"Coupon {code.upper()} is not available")

    def _settle(self, code, coupon, snapshot, result, error, explicit) -> None:
        if error is None and self._accepted(result) and coupon is not None:
            self.status = Status.APPLIED
            self.coupon = coupon
            self.result = result
            self.result_generation = snapshot.generation
            self.error = None
            self.message = None
            if explicit:
                self.code_input = ""
            logger.info(f"Coupon {coupon.code} valid for cart #{snapshot.generation}: discount {result.discount}")
            return

        if explicit:
            self.error = error or CouponRejected((result and result.message) or "Invalid coupon")
            self.status = Status.INVALID
            self.coupon = None
            self.result = result
            self.result_generation = snapshot.generation if result is not None else None
            self.message = self.error.message
            logger.info(f"Coupon {code} not applied: {self.message}")
        elif isinstance(error, ValidationTransportError):
            # transient failure: keep the coupon, show the error
            self.status = Status.APPLIED
            self.error = error
            self.message = error.message
        else:
            self.error = CouponRejected(
                (result and result.message) or "Coupon is no longer valid for current cart"
            )
            logger.info(f"Coupon {code} dropped after cart change: {self.error.message}")
            self._slot += 1
            self.status = Status.NO_COUPON
            self.coupon = None
            self.result = result
            self.result_generation = snapshot.generation
            self.message = self.error.message

    # Recommendations

    async def _refresh_recommendations(self, snapshot: CartSnapshot) -> None:
        body = RecommendCouponRequest(cartValue=snapshot.cart_value, items=snapshot.item_payloads())
        try:
            recommendations = await self.api.recommend_coupons(body)
        except ServiceError as e:
            self.recommendation_error = RecommendationTransportError(e.message)
            logger.warning(f"Failed to fetch recommendations: {e.message}")
            return
        if self.cart.generation != snapshot.generation:
            return
        self.recommendation_error = None
        self.recommendations = recommendations

    # Checkout

    async def checkout(self, payment_method: Optional[str] = None) -> Order:
        snapshot = self.cart.snapshot()
        if snapshot.is_empty:
            raise CheckoutError("Cart is empty")

        coupon = self.applied_coupon
        body = CreateOrderRequest(
            orderValue=snapshot.cart_value,
            items=snapshot.item_payloads(),
            paymentMethod=payment_method or self.payment_method,
            couponCode=coupon.code if coupon else None,
            deliveryCharge=self.delivery_charge,
        )
        try:
            order = await self.api.create_order(body)
        except ServiceError as e:
            logger.warning(f"Checkout failed: {e.message}")
            raise CheckoutError(e.message or "Failed to place order") from e

        logger.info(f"Order {order.id} placed for {snapshot.cart_value}")
        self.reset()
        return order

    def reset(self) -> None:
        """Clear cart, coupon and recommendations (checkout, logout)."""
        self.cart.clear()
        self._clear_slot()
        self.code_input = ""
        self.recommendations = None
        self.recommendation_error = None
        self._last_synced = self.cart.snapshot()

    # Presentation

    def view(self) -> CartView:
        snapshot = self.cart.snapshot()
        fresh = self.result if self.result_generation == snapshot.generation else None
        discount, final, source = displayed_totals(self.applied_coupon, snapshot, fresh)
        return CartView(
            status=self.status.value,
            items=list(snapshot.lines),
            cartValue=snapshot.cart_value,
            coupon=self.applied_coupon,
            isValidating=self.is_validating,
            discount=discount,
            finalAmount=final,
            deliveryCharge=self.delivery_charge,
            discountSource=source,
            message=self.message,
            codeInput=self.code_input,
            nonApplicableItems=fresh.nonApplicableItems or [] if fresh else [],
            itemDiscounts=fresh.itemDiscounts or [] if fresh else [],
            recommendations=self.recommendations,
        )
