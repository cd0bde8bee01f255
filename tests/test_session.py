import asyncio

import pytest

from errors import ServiceError
from firebase_util import FirebaseSessionStore
from models import RegisterRequest
from session import Session
from fakes import FakeApi, FakeRef


def make_session(data=None):
    store = FirebaseSessionStore(ref=FakeRef(data))
    return Session("s1", FakeApi(), store), store


def test_login_persists_token_and_user():
    session, store = make_session()
    user = asyncio.run(session.login("asha@example.com", "secret"))

    assert user.email == "asha@example.com"
    assert session.api.token == "tok-123"
    saved = store.load("s1")
    assert saved["token"] == "tok-123"
    assert saved["user"]["id"] == "u1"


def test_failed_login_leaves_session_anonymous():
    session, store = make_session()
    with pytest.raises(ServiceError):
        asyncio.run(session.login("asha@example.com", "wrong"))
    assert not session.is_authenticated
    assert store.load("s1") is None


def test_restore_reads_stored_session():
    data = {"sessions": {"s1": {"token": "tok-9", "user": {"id": "u9", "email": "a@b.c", "name": "A"}}}}
    session, _ = make_session(data)
    assert session.restore()
    assert session.user.id == "u9"
    assert session.api.token == "tok-9"


def test_restore_without_stored_session():
    session, _ = make_session()
    assert not session.restore()
    assert session.user is None


def test_logout_tears_everything_down():
    session, store = make_session()
    asyncio.run(session.login("asha@example.com", "secret"))
    session.cart.add("p1")

    session.logout()

    assert store.load("s1") is None
    assert session.api.token is None
    assert session.cart.snapshot().is_empty
    assert session.reconciler.coupon is None


def test_register_then_logs_in_with_same_credentials():
    session, store = make_session()
    user = asyncio.run(session.register(RegisterRequest(
        email="ravi@example.com", password="pw-123", name="Ravi", phone="9999", referralCode="  ",
    )))

    assert user.email == "ravi@example.com"
    assert session.is_authenticated
    assert store.load("s1")["token"] == "tok-123"
    assert ("register", "ravi@example.com", "customer", None) in session.api.calls


def test_failed_registration_does_not_log_in():
    session, store = make_session()
    session.api.registered["ravi@example.com"] = "old"
    with pytest.raises(ServiceError):
        asyncio.run(session.register(RegisterRequest(
            email="ravi@example.com", password="pw", name="Ravi", phone="1",
        )))
    assert session.api.count("login") == 0
    assert not session.is_authenticated
