from datetime import datetime, timedelta, timezone

import jwt
import pytest

from userdir.models import UserRecord, utcnow
from userdir.security import ADMIN_ROLE, USER_ROLE, TokenIssuer, verify_credentials
from userdir.store import InMemoryRecordStore


SECRET = "tests-secret-key-that-is-long-enough-for-hs256"


def _record(login: str = "bob", *, admin: bool = False) -> UserRecord:
    return UserRecord(login=login, password="secret1", name="Bob", admin=admin, created_by="System")


def test_issued_token_carries_login_and_role() -> None:
    issuer = TokenIssuer(SECRET)

    user_claims = issuer.decode(issuer.issue(_record()))
    admin_claims = issuer.decode(issuer.issue(_record("root", admin=True)))

    assert user_claims is not None and admin_claims is not None
    assert user_claims["sub"] == "bob"
    assert user_claims["role"] == USER_ROLE
    assert admin_claims["sub"] == "root"
    assert admin_claims["role"] == ADMIN_ROLE


def test_token_expires_after_ttl() -> None:
    issuer = TokenIssuer(SECRET, ttl=timedelta(hours=2))
    claims = issuer.decode(issuer.issue(_record()))

    assert claims is not None
    assert claims["exp"] - claims["iat"] == 2 * 60 * 60


class MovableClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


def test_token_expiry_follows_issuer_clock() -> None:
    clock = MovableClock(datetime(2024, 6, 15, 9, 30, tzinfo=timezone.utc))
    issuer = TokenIssuer(SECRET, ttl=timedelta(hours=2), clock=clock)
    token = issuer.issue(_record())

    assert issuer.decode(token) is not None

    clock.now += timedelta(hours=2) - timedelta(seconds=1)
    assert issuer.decode(token) is not None

    clock.now += timedelta(seconds=1)
    assert issuer.decode(token) is None


def test_token_issued_in_the_past_is_rejected_by_wall_clock_issuer() -> None:
    issued_at = utcnow() - timedelta(hours=3)
    stale = TokenIssuer(SECRET, ttl=timedelta(hours=2), clock=lambda: issued_at).issue(_record())

    assert TokenIssuer(SECRET).decode(stale) is None


def test_token_without_expiry_is_rejected() -> None:
    token = jwt.encode({"sub": "bob"}, SECRET, algorithm="HS256")

    assert TokenIssuer(SECRET).decode(token) is None


def test_token_signed_with_other_secret_is_rejected() -> None:
    forged = TokenIssuer("another-secret-key-that-is-long-enough-too").issue(_record())

    assert TokenIssuer(SECRET).decode(forged) is None
    assert TokenIssuer(SECRET).decode("garbage") is None


def test_token_without_string_subject_is_rejected() -> None:
    now = datetime.now(timezone.utc)
    token = jwt.encode({"sub": 42, "exp": now + timedelta(minutes=5)}, SECRET, algorithm="HS256")

    assert TokenIssuer(SECRET).decode(token) is None


def test_issuer_requires_secret() -> None:
    with pytest.raises(ValueError):
        TokenIssuer("")


def test_verify_credentials() -> None:
    store = InMemoryRecordStore()
    record = _record()
    store.insert(record)

    assert verify_credentials(store, "bob", "secret1") is record
    assert verify_credentials(store, "bob", "wrong") is None
    assert verify_credentials(store, "Bob", "secret1") is None
    assert verify_credentials(store, "ghost", "secret1") is None


def test_verify_credentials_returns_revoked_records() -> None:
    store = InMemoryRecordStore()
    record = _record()
    record.revoke("Admin", utcnow())
    store.insert(record)

    found = verify_credentials(store, "bob", "secret1")

    assert found is record
    assert not found.is_active
