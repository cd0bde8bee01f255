# Async client for the authoritative coupon backend.
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from config import COUPON_API_URL, REQUEST_TIMEOUT
from errors import ServiceError
from logger import get_logger
from models import (
    Coupon, CouponUsage, CreateOrderRequest, LoginResponse, Order,
    RecommendCouponRequest, Recommendations, User, ValidateCouponRequest, ValidationResult,
)

logger = get_logger("services")

M = TypeVar("M", bound=BaseModel)


class ApiService:
    def __init__(
        self,
        base_url: str = COUPON_API_URL,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.token = token
        self.client = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, endpoint: str, json: Any = None,
                       params: Optional[Dict[str, str]] = None) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = await self.client.request(method, endpoint, json=json, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {endpoint} failed: {e}")
            raise ServiceError(f"Could not reach coupon service: {e}") from e

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = body.get("message") if isinstance(body, dict) else None
            logger.info(f"{method} {endpoint} -> {response.status_code}")
            raise ServiceError(
                message or response.reason_phrase or f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"{method} {endpoint} returned a non-JSON body")
            raise ServiceError("Malformed response from coupon service", status_code=response.status_code) from e

    @staticmethod
    def _parse(model: Type[M], data: Any) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Unexpected {model.__name__} payload: {e.error_count()} errors")
            raise ServiceError("Malformed response from coupon service") from e

    @classmethod
    def _parse_list(cls, model: Type[M], data: Any) -> List[M]:
        if not isinstance(data, list):
            logger.warning(f"Expected a list of {model.__name__}, got {type(data).__name__}")
            raise ServiceError("Malformed response from coupon service")
        return [cls._parse(model, item) for item in data]

    # Auth

    async def login(self, email: str, password: str) -> LoginResponse:
        data = await self._request("POST", "/auth/login", json={"email": email, "password": password})
        return self._parse(LoginResponse, data)

    async def register(self, email: str, password: str, name: str, phone: str,
                       role: str = "customer", referral_code: Optional[str] = None) -> User:
        body = {"email": email, "password": password, "name": name, "phone": phone, "role": role}
        if referral_code:
            body["referralCode"] = referral_code
        return self._parse(User, await self._request("POST", "/auth/register", json=body))

    # Customer coupons

    async def get_available_coupons(self) -> List[Coupon]:
        return self._parse_list(Coupon, await self._request("GET", "/coupons/available"))

    async def validate_coupon(self, code: str, body: ValidateCouponRequest) -> ValidationResult:
        data = await self._request("POST", f"/coupons/{code}/validate", json=body.model_dump(exclude_none=True))
        return self._parse(ValidationResult, data)

    async def get_my_usage(self) -> List[CouponUsage]:
        return self._parse_list(CouponUsage, await self._request("GET", "/coupons/my-usage"))

    async def recommend_coupons(self, body: RecommendCouponRequest) -> Recommendations:
        data = await self._request("POST", "/coupons/recommend", json=body.model_dump(exclude_none=True))
        return self._parse(Recommendations, data)

    # Orders

    async def create_order(self, body: CreateOrderRequest) -> Order:
        data = await self._request("POST", "/orders", json=body.model_dump(exclude_none=True))
        return self._parse(Order, data)

    async def cancel_order(self, order_id: str) -> Order:
        return self._parse(Order, await self._request("DELETE", f"/orders/{order_id}"))

    # Admin

    async def create_coupon(self, payload: Dict[str, Any]) -> Coupon:
        return self._parse(Coupon, await self._request("POST", "/admin/coupons", json=payload))

    async def get_all_coupons(self, is_active: Optional[bool] = None, discount_type: Optional[str] = None,
                              user_segment: Optional[str] = None, search: Optional[str] = None) -> List[Coupon]:
        params = {}
        if is_active is not None:
            params["isActive"] = "true" if is_active else "false"
        if discount_type:
            params["discountType"] = discount_type
        if user_segment:
            params["userSegment"] = user_segment
        if search:
            params["search"] = search
        return self._parse_list(Coupon, await self._request("GET", "/admin/coupons", params=params or None))

    async def get_coupon_by_id(self, coupon_id: str) -> Coupon:
        return self._parse(Coupon, await self._request("GET", f"/admin/coupons/{coupon_id}"))

    async def update_coupon(self, coupon_id: str, payload: Dict[str, Any]) -> Coupon:
        return self._parse(Coupon, await self._request("PUT", f"/admin/coupons/{coupon_id}", json=payload))

    async def toggle_coupon_status(self, coupon_id: str) -> Coupon:
        return self._parse(Coupon, await self._request("PATCH", f"/admin/coupons/{coupon_id}/toggle-status"))

    async def delete_coupon(self, coupon_id: str) -> None:
        await self._request("DELETE", f"/admin/coupons/{coupon_id}")

    async def get_coupon_analytics(self, coupon_id: str) -> Any:
        return await self._request("GET", f"/admin/coupons/{coupon_id}/analytics")

    async def get_top_coupons(self, limit: int = 10) -> Any:
        return await self._request("GET", "/admin/reports/top-coupons", params={"limit": str(limit)})

    async def get_revenue_impact(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> Any:
        params = {k: v for k, v in (("startDate", start_date), ("endDate", end_date)) if v}
        return await self._request("GET", "/admin/reports/revenue-impact", params=params or None)
