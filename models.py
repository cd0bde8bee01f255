from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict

from constraints import split_product_ids

DiscountType = Literal["percentage", "fixed_amount", "free_delivery"]
UserSegment = Literal["all", "new_users", "premium_users"]
CouponStatus = Literal["applied", "refunded", "expired"]
OrderStatus = Literal["pending", "confirmed", "delivered", "cancelled"]
UserRole = Literal["customer", "admin"]


class Coupon(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    code: str
    title: str = ""
    description: str = ""
    discountType: DiscountType
    discountValue: float
    minOrderValue: float = 0
    maxDiscountCap: Optional[float] = None  # None = uncapped
    startDate: datetime
    endDate: datetime
    isActive: bool = True
    totalUsageLimit: Optional[int] = None
    perUserLimit: Optional[int] = None
    currentUsageCount: int = 0
    applicableCategories: Optional[List[str]] = None
    applicableProducts: Optional[List[str]] = None
    userSegment: Optional[UserSegment] = None
    minPurchaseCount: Optional[int] = None
    excludedCategories: Optional[List[str]] = None
    excludedProducts: Optional[List[str]] = None
    paymentMethods: Optional[List[str]] = None  # None = all allowed
    createdBy: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    def matches_code(self, code: str) -> bool:
        return self.code.strip().lower() == code.strip().lower()


class CartItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    productId: str
    name: str
    category: str
    quantity: int
    price: float


class CartSnapshot(BaseModel):
    """Immutable capture of the cart; `generation` grows on every real change."""
    model_config = ConfigDict(frozen=True)

    lines: Tuple[CartItem, ...] = ()
    generation: int = 0

    @property
    def cart_value(self) -> float:
        return sum(line.price * line.quantity for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def same_lines(self, other: Optional["CartSnapshot"]) -> bool:
        return other is not None and self.lines == other.lines

    def item_payloads(self) -> List["LineItem"]:
        return [
            LineItem(
                productId=line.productId,
                category=line.category,
                quantity=line.quantity,
                price=line.price,
            )
            for line in self.lines
        ]


class LineItem(BaseModel):
    productId: str
    category: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[float] = None


# Backend request/response contracts

class ValidateCouponRequest(BaseModel):
    cartValue: float
    items: List[LineItem] = []
    paymentMethod: Optional[str] = None


class NonApplicableItem(BaseModel):
    productId: str
    category: Optional[str] = None
    reason: str


class ItemDiscount(BaseModel):
    productId: str
    discount: float
    originalPrice: float


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    discount: Optional[float] = None
    message: Optional[str] = None
    nonApplicableItems: Optional[List[NonApplicableItem]] = None
    itemDiscounts: Optional[List[ItemDiscount]] = None


class RecommendCouponRequest(BaseModel):
    cartValue: float
    items: List[LineItem] = []
    userId: Optional[str] = None


class RecommendedCoupon(BaseModel):
    code: str
    potentialSavings: float
    coupon: Coupon


class Recommendations(BaseModel):
    bestCoupon: Optional[RecommendedCoupon] = None
    alternativeCoupons: List[RecommendedCoupon] = []


class CreateOrderRequest(BaseModel):
    orderValue: float
    items: List[LineItem]
    paymentMethod: str
    couponCode: Optional[str] = None
    deliveryCharge: Optional[float] = None


class Order(BaseModel):
    id: str
    userId: Optional[str] = None
    orderValue: float
    discountAmount: float = 0
    finalAmount: float
    appliedCouponCode: Optional[str] = None
    items: List[Dict[str, Any]] = []
    paymentMethod: str
    status: OrderStatus = "pending"
    createdAt: Optional[datetime] = None


class CouponUsage(BaseModel):
    id: str
    couponId: str
    userId: str
    orderId: str
    discountApplied: float
    orderValue: float
    finalOrderValue: float
    usedAt: datetime
    status: CouponStatus
    coupon: Optional[Coupon] = None


class User(BaseModel):
    id: str
    email: str
    name: str
    phone: str = ""
    role: UserRole = "customer"
    isNewUser: bool = False
    isPremiumUser: bool = False
    totalOrders: int = 0
    totalSpent: float = 0
    joinedAt: Optional[datetime] = None
    isActive: bool = True


class LoginResponse(BaseModel):
    access_token: str
    user: User


class CouponDraft(BaseModel):
    """Admin create/edit form for a coupon definition."""
    code: str
    title: str = ""
    description: str = ""
    discountType: DiscountType = "percentage"
    discountValue: float
    minOrderValue: float = 0
    maxDiscountCap: Optional[float] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    isActive: bool = True
    totalUsageLimit: Optional[int] = None
    perUserLimit: Optional[int] = None
    userSegment: UserSegment = "all"
    applicableCategories: List[str] = []
    applicableProducts: Union[str, List[str]] = ""
    excludedCategories: List[str] = []
    excludedProducts: Union[str, List[str]] = ""
    minPurchaseCount: Optional[int] = None
    paymentMethods: List[str] = []

    def to_payload(self) -> Dict[str, Any]:
        """CreateCoupon body for the backend; empty lists are left out."""
        data = self.model_dump(exclude_none=True)
        data["code"] = self.code.strip().upper()
        for field in ("startDate", "endDate"):
            value = getattr(self, field)
            if value is not None:
                data[field] = f"{value.isoformat()}T00:00:00.000Z"
        data["applicableProducts"] = split_product_ids(self.applicableProducts)
        data["excludedProducts"] = split_product_ids(self.excludedProducts)
        for field in ("applicableCategories", "excludedCategories", "applicableProducts",
                      "excludedProducts", "paymentMethods"):
            if not data.get(field):
                data.pop(field, None)
        return data


# BFF request/response bodies

class MessageResponse(BaseModel):
    message: str


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: str
    phone: str
    role: UserRole = "customer"
    referralCode: Optional[str] = None


class AddItemRequest(BaseModel):
    productId: str


class QuantityChangeRequest(BaseModel):
    delta: int


class ApplyCouponRequest(BaseModel):
    code: str


class CheckoutRequest(BaseModel):
    paymentMethod: Optional[str] = None


class ConstraintVerdict(BaseModel):
    valid: bool
    kind: Optional[str] = None
    message: Optional[str] = None
    overlap: Optional[List[str]] = None


class CartView(BaseModel):
    status: str
    items: List[CartItem]
    cartValue: float
    coupon: Optional[Coupon] = None
    isValidating: bool = False
    discount: float = 0
    finalAmount: float
    deliveryCharge: float
    discountSource: Optional[Literal["server", "estimate"]] = None
    message: Optional[str] = None
    codeInput: str = ""
    nonApplicableItems: List[NonApplicableItem] = []
    itemDiscounts: List[ItemDiscount] = []
    recommendations: Optional[Recommendations] = None
