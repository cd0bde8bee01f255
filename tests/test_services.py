import asyncio
import json

import httpx
import pytest

from errors import ServiceError
from models import CreateOrderRequest, LineItem, RecommendCouponRequest, ValidateCouponRequest
from services import ApiService

COUPON = {
    "id": "c1",
    "code": "SAVE10",
    "discountType": "percentage",
    "discountValue": 10,
    "maxDiscountCap": 100,
    "minOrderValue": 500,
    "startDate": "2026-10-01T00:00:00.000Z",
    "endDate": "2026-12-01T00:00:00.000Z",
    "isActive": True,
    "currentUsageCount": 3,
}


def client_for(handler, token=None):
    return ApiService(base_url="http://backend.test", token=token, transport=httpx.MockTransport(handler))


def test_validate_coupon_posts_cart_and_parses_result():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "valid": True,
            "discount": 100,
            "itemDiscounts": [{"productId": "p1", "discount": 100, "originalPrice": 1500}],
        })

    async def scenario():
        api = client_for(handler, token="tok")
        body = ValidateCouponRequest(
            cartValue=1500,
            items=[LineItem(productId="p1", category="electronics", quantity=1, price=1500)],
            paymentMethod="card",
        )
        result = await api.validate_coupon("SAVE10", body)
        await api.aclose()
        return result

    result = asyncio.run(scenario())
    assert seen["path"] == "/coupons/SAVE10/validate"
    assert seen["auth"] == "Bearer tok"
    assert seen["body"]["cartValue"] == 1500
    assert seen["body"]["items"][0]["category"] == "electronics"
    assert result.valid and result.discount == 100
    assert result.itemDiscounts[0].productId == "p1"


def test_error_message_taken_from_body():
    def handler(request):
        return httpx.Response(400, json={"message": "Coupon expired"})

    async def scenario():
        api = client_for(handler)
        try:
            await api.create_order(CreateOrderRequest(orderValue=10, items=[], paymentMethod="card"))
        finally:
            await api.aclose()

    with pytest.raises(ServiceError) as info:
        asyncio.run(scenario())
    assert info.value.message == "Coupon expired"
    assert info.value.status_code == 400


def test_error_without_json_body_uses_reason_phrase():
    def handler(request):
        return httpx.Response(503, text="upstream down")

    async def scenario():
        api = client_for(handler)
        try:
            await api.get_my_usage()
        finally:
            await api.aclose()

    with pytest.raises(ServiceError) as info:
        asyncio.run(scenario())
    assert info.value.message == "Service Unavailable"


def test_network_failure_becomes_service_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        api = client_for(handler)
        try:
            await api.get_available_coupons()
        finally:
            await api.aclose()

    with pytest.raises(ServiceError) as info:
        asyncio.run(scenario())
    assert info.value.status_code is None


def test_get_all_coupons_builds_filters():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=[COUPON])

    async def scenario():
        api = client_for(handler)
        coupons = await api.get_all_coupons(is_active=False, search="save")
        await api.aclose()
        return coupons

    coupons = asyncio.run(scenario())
    assert seen["params"] == {"isActive": "false", "search": "save"}
    assert coupons[0].code == "SAVE10"
    assert coupons[0].maxDiscountCap == 100


def test_delete_coupon_accepts_empty_body():
    def handler(request):
        assert request.method == "DELETE"
        return httpx.Response(204)

    async def scenario():
        api = client_for(handler)
        result = await api.delete_coupon("c1")
        await api.aclose()
        return result

    assert asyncio.run(scenario()) is None


def test_recommendations_parse_null_best():
    def handler(request):
        return httpx.Response(200, json={"bestCoupon": None, "alternativeCoupons": [
            {"code": "SAVE10", "potentialSavings": 100, "coupon": COUPON},
        ]})

    async def scenario():
        api = client_for(handler)
        recs = await api.recommend_coupons(RecommendCouponRequest(cartValue=1500))
        await api.aclose()
        return recs

    recs = asyncio.run(scenario())
    assert recs.bestCoupon is None
    assert recs.alternativeCoupons[0].potentialSavings == 100


def test_non_json_success_body_becomes_service_error():
    def handler(request):
        return httpx.Response(200, text="<html><body>Maintenance</body></html>")

    async def scenario():
        api = client_for(handler)
        try:
            await api.validate_coupon("SAVE10", ValidateCouponRequest(cartValue=1500))
        finally:
            await api.aclose()

    with pytest.raises(ServiceError) as info:
        asyncio.run(scenario())
    assert info.value.message == "Malformed response from coupon service"
    assert info.value.status_code == 200


@pytest.mark.parametrize("payload", [
    {"discount": 100},
    {"valid": True, "discount": "a lot"},
    [{"valid": True}],
])
def test_unexpected_shape_becomes_service_error(payload):
    def handler(request):
        return httpx.Response(200, json=payload)

    async def scenario():
        api = client_for(handler)
        try:
            await api.validate_coupon("SAVE10", ValidateCouponRequest(cartValue=1500))
        finally:
            await api.aclose()

    with pytest.raises(ServiceError, match="Malformed response"):
        asyncio.run(scenario())


def test_list_endpoint_rejects_non_list_body():
    def handler(request):
        return httpx.Response(200, json={"coupons": [COUPON]})

    async def scenario():
        api = client_for(handler)
        try:
            await api.get_available_coupons()
        finally:
            await api.aclose()

    with pytest.raises(ServiceError, match="Malformed response"):
        asyncio.run(scenario())


def test_register_sends_referral_code():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "u2", "email": "ravi@example.com", "name": "Ravi"})

    async def scenario():
        api = client_for(handler)
        user = await api.register("ravi@example.com", "pw", "Ravi", "9999", referral_code="FRIEND")
        await api.aclose()
        return user

    user = asyncio.run(scenario())
    assert seen["path"] == "/auth/register"
    assert seen["body"]["referralCode"] == "FRIEND"
    assert seen["body"]["role"] == "customer"
    assert user.id == "u2"
