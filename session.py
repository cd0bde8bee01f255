import time
from datetime import datetime, timezone
from typing import Optional

from cart import Cart
from firebase_util import FirebaseSessionStore
from logger import get_logger
from models import RegisterRequest, User
from reconciler import CouponReconciler
from services import ApiService

logger = get_logger("session")


class Session:
    """
    One customer or admin session.

    Owns the auth token, the backend client carrying it, the cart and the
    reconciler holding the applied coupon. Everything is built in the
    constructor and torn down in `logout()`.
    """

    def __init__(self, session_id: str, api: ApiService, store: FirebaseSessionStore):
        self.session_id = session_id
        self.api = api
        self.store = store
        self.user: Optional[User] = None
        self.cart = Cart()
        self.reconciler = CouponReconciler(api, self.cart)
        self.last_seen = time.monotonic()

    def touch(self) -> None:
        self.last_seen = time.monotonic()

    def idle_for(self, now: float) -> float:
        return now - self.last_seen

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def restore(self) -> bool:
        data = self.store.load(self.session_id)
        if not data or not data.get("token") or not data.get("user"):
            return False
        self.api.token = data["token"]
        self.user = User.model_validate(data["user"])
        return True

    async def login(self, email: str, password: str) -> User:
        response = await self.api.login(email, password)
        self.api.token = response.access_token
        self.user = response.user
        self.store.save(self.session_id, {
            "token": response.access_token,
            "user": response.user.model_dump(mode="json"),
            "loggedInAt": datetime.now(timezone.utc).isoformat(),
        })
        logger.info(f"Session {self.session_id} logged in as {response.user.email}")
        return response.user

    async def register(self, body: RegisterRequest) -> User:
        """Create the account, then sign straight in with the same credentials."""
        created = await self.api.register(
            body.email, body.password, body.name, body.phone,
            role=body.role, referral_code=(body.referralCode or "").strip() or None,
        )
        logger.info(f"Registered {created.email} from session {self.session_id}")
        return await self.login(body.email, body.password)

    def logout(self) -> None:
        self.store.delete(self.session_id)
        self.api.token = None
        self.user = None
        self.reconciler.reset()
        logger.info(f"Session {self.session_id} logged out")
