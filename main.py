import time
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import catalog
import history
from cart import SAMPLE_PRODUCTS
from config import ADMIN_API_KEY, FRONTEND_ORIGIN, SESSION_IDLE_SECONDS
from constraints import check_coupon_definition
from errors import (
    CheckoutError, ConstraintViolation, CouponError, ServiceError, UnknownProduct,
)
from firebase_util import FirebaseSessionStore
from logger import get_logger
from models import (
    AddItemRequest, ApplyCouponRequest, CartView, CheckoutRequest, ConstraintVerdict,
    Coupon, CouponDraft, LoginRequest, MessageResponse, Order, QuantityChangeRequest,
    RegisterRequest, User,
)
from services import ApiService
from session import Session

logger = get_logger("api")

# Live sessions, keyed by the x-session-id header
_SESSIONS: Dict[str, Session] = {}


async def evict_idle_sessions(now: Optional[float] = None) -> int:
    """Drop sessions idle past SESSION_IDLE_SECONDS and close their clients."""
    now = time.monotonic() if now is None else now
    stale = [sid for sid, s in _SESSIONS.items() if s.idle_for(now) > SESSION_IDLE_SECONDS]
    for sid in stale:
        session = _SESSIONS.pop(sid)
        await session.api.aclose()
    if stale:
        logger.info(f"Evicted {len(stale)} idle sessions, {len(_SESSIONS)} live")
    return len(stale)


async def close_sessions() -> None:
    while _SESSIONS:
        _, session = _SESSIONS.popitem()
        await session.api.aclose()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    logger.info(f"Shutting down, closing {len(_SESSIONS)} sessions")
    await close_sessions()


app = FastAPI(title="Coupon Cart", lifespan=lifespan)

# Allow frontend CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store() -> FirebaseSessionStore:
    return FirebaseSessionStore()


def get_api_factory():
    return ApiService


async def get_session(
    session_id: str = Header(..., alias="x-session-id"),
    store: FirebaseSessionStore = Depends(get_store),
    api_factory=Depends(get_api_factory),
) -> Session:
    await evict_idle_sessions()
    session = _SESSIONS.get(session_id)
    if session is None:
        session = Session(session_id, api_factory(), store)
        session.restore()
        _SESSIONS[session_id] = session
    session.touch()
    return session


# Admin API key check
def check_admin(api_key: str = Header(..., alias="x-api-key")):
    if not ADMIN_API_KEY or api_key != ADMIN_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


@app.exception_handler(CouponError)
async def coupon_error_handler(request: Request, exc: CouponError):
    if isinstance(exc, ConstraintViolation):
        status_code = 400
        detail = {"kind": exc.kind, "message": exc.message, "overlap": getattr(exc, "overlap", None)}
    elif isinstance(exc, UnknownProduct):
        status_code, detail = 404, exc.message
    elif isinstance(exc, CheckoutError):
        status_code, detail = 400, exc.message
    elif isinstance(exc, ServiceError) and exc.status_code and 400 <= exc.status_code < 500:
        status_code, detail = exc.status_code, exc.message
    else:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
        status_code, detail = 502, exc.message
    return JSONResponse(status_code=status_code, content={"detail": detail})


# 🔐 Auth

@app.post("/api/auth/login", response_model=User)
async def login(body: LoginRequest, session: Session = Depends(get_session)):
    return await session.login(body.email, body.password)


@app.post("/api/auth/register", response_model=User)
async def register(body: RegisterRequest, session: Session = Depends(get_session)):
    return await session.register(body)


@app.post("/api/auth/logout", response_model=MessageResponse)
async def logout(session: Session = Depends(get_session)):
    session.logout()
    _SESSIONS.pop(session.session_id, None)
    await session.api.aclose()
    return {"message": "✅ Logged out"}


# 🛒 Cart

@app.get("/api/products")
def list_products():
    return SAMPLE_PRODUCTS


@app.get("/api/cart", response_model=CartView)
async def get_cart(session: Session = Depends(get_session)):
    await session.reconciler.sync()
    return session.reconciler.view()


@app.post("/api/cart/items", response_model=CartView)
async def add_item(body: AddItemRequest, session: Session = Depends(get_session)):
    session.cart.add(body.productId)
    await session.reconciler.sync()
    return session.reconciler.view()


@app.patch("/api/cart/items/{product_id}", response_model=CartView)
async def change_quantity(product_id: str, body: QuantityChangeRequest, session: Session = Depends(get_session)):
    session.cart.update_quantity(product_id, body.delta)
    await session.reconciler.sync()
    return session.reconciler.view()


@app.delete("/api/cart/items/{product_id}", response_model=CartView)
async def remove_item(product_id: str, session: Session = Depends(get_session)):
    session.cart.remove(product_id)
    await session.reconciler.sync()
    return session.reconciler.view()


# 🎯 Coupon on the cart

@app.post("/api/cart/coupon", response_model=CartView)
async def apply_coupon(body: ApplyCouponRequest, session: Session = Depends(get_session)):
    await session.reconciler.apply_code(body.code)
    return session.reconciler.view()


@app.delete("/api/cart/coupon", response_model=CartView)
async def remove_coupon(session: Session = Depends(get_session)):
    session.reconciler.remove()
    return session.reconciler.view()


@app.post("/api/cart/checkout", response_model=Order)
async def checkout(body: Optional[CheckoutRequest] = None, session: Session = Depends(get_session)):
    payment_method = body.paymentMethod if body else None
    return await session.reconciler.checkout(payment_method)


# 🎟️ Customer coupons and usage

@app.get("/api/coupons/available")
async def get_available_coupons(session: Session = Depends(get_session)):
    return await catalog.available_coupons(session.api)


@app.get("/api/coupons/usage")
async def get_usage_history(session: Session = Depends(get_session)):
    return await history.load_usage_history(session.api)


@app.delete("/api/orders/{order_id}")
async def cancel_order(order_id: str, session: Session = Depends(get_session)):
    await history.cancel_order(session.api, order_id)
    return await history.load_usage_history(session.api)


# 🔐 Admin coupon management

@app.get("/api/admin/coupons", dependencies=[Depends(check_admin)])
async def list_coupons(status: str = "all", search: Optional[str] = None, session: Session = Depends(get_session)):
    if status not in catalog.STATUS_FILTERS:
        raise HTTPException(status_code=400, detail=f"Unknown status filter '{status}'")
    coupons = await catalog.list_coupons(session.api, status, search)
    return [
        {"coupon": c, "status": catalog.status_text(c), "badge": catalog.discount_badge(c)}
        for c in coupons
    ]


@app.get("/api/admin/coupons/{coupon_id}", response_model=Coupon, dependencies=[Depends(check_admin)])
async def get_coupon(coupon_id: str, session: Session = Depends(get_session)):
    return await session.api.get_coupon_by_id(coupon_id)


@app.post("/api/admin/coupons/check", response_model=ConstraintVerdict, dependencies=[Depends(check_admin)])
def check_coupon(draft: CouponDraft):
    violation = check_coupon_definition(draft)
    if violation is None:
        return ConstraintVerdict(valid=True)
    return ConstraintVerdict(
        valid=False,
        kind=violation.kind,
        message=violation.message,
        overlap=getattr(violation, "overlap", None),
    )


@app.post("/api/admin/coupons", response_model=Coupon, dependencies=[Depends(check_admin)])
async def create_coupon(draft: CouponDraft, session: Session = Depends(get_session)):
    return await catalog.create_coupon(session.api, draft)


@app.put("/api/admin/coupons/{coupon_id}", response_model=Coupon, dependencies=[Depends(check_admin)])
async def update_coupon(coupon_id: str, draft: CouponDraft, session: Session = Depends(get_session)):
    return await catalog.update_coupon(session.api, coupon_id, draft)


@app.patch("/api/admin/coupons/{coupon_id}/toggle-status", response_model=Coupon,
           dependencies=[Depends(check_admin)])
async def toggle_coupon(coupon_id: str, session: Session = Depends(get_session)):
    return await session.api.toggle_coupon_status(coupon_id)


@app.delete("/api/admin/coupons/{coupon_id}", response_model=MessageResponse, dependencies=[Depends(check_admin)])
async def delete_coupon(coupon_id: str, session: Session = Depends(get_session)):
    await session.api.delete_coupon(coupon_id)
    return {"message": f"✅ Coupon {coupon_id} deleted"}


@app.get("/api/admin/coupons/{coupon_id}/analytics", dependencies=[Depends(check_admin)])
async def coupon_analytics(coupon_id: str, session: Session = Depends(get_session)):
    return await session.api.get_coupon_analytics(coupon_id)


@app.get("/api/admin/stats", dependencies=[Depends(check_admin)])
async def admin_stats(session: Session = Depends(get_session)):
    stats = await catalog.dashboard_stats(session.api)
    stats["topCoupons"] = await session.api.get_top_coupons(5)
    return stats
