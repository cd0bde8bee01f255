from typing import List, Optional


class CouponError(Exception):
    """Base class for every recoverable coupon/cart failure."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Coupon definition constraint violations (reported inline on the form)

class ConstraintViolation(CouponError):
    kind = "ConstraintViolation"


class InvalidDateWindow(ConstraintViolation):
    kind = "InvalidDateWindow"


class CategoryConflict(ConstraintViolation):
    kind = "CategoryConflict"

    def __init__(self, overlap: List[str]):
        super().__init__(
            f"Categories cannot be in both applicable and excluded lists: {', '.join(overlap)}"
        )
        self.overlap = overlap


class ProductConflict(ConstraintViolation):
    kind = "ProductConflict"

    def __init__(self, overlap: List[str]):
        super().__init__(
            f"Products cannot be in both applicable and excluded lists: {', '.join(overlap)}"
        )
        self.overlap = overlap


# Backend / reconciliation failures

class ServiceError(CouponError):
    """HTTP or network failure talking to the coupon backend."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CouponRejected(CouponError):
    pass


class ValidationTransportError(CouponError):
    pass


class RecommendationTransportError(CouponError):
    pass


class CheckoutError(CouponError):
    pass


class UnknownProduct(CouponError):
    def __init__(self, product_id: str):
        super().__init__(f"Unknown product '{product_id}'")
        self.product_id = product_id
