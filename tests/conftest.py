from __future__ import annotations

import json
import os
import uuid

os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.config import settings  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.db import session as db_session_module  # noqa: E402
from app.db.base_class import Base  # noqa: E402
from app.db.seed import seed_catalog  # noqa: E402
from app.db.session import SessionLocal, configure_sqlite  # noqa: E402
from app.models import models, payment_models  # noqa: E402,F401
from app.models.enums import PaymentProvider, PaymentStatus  # noqa: E402
from app.models.models import User  # noqa: E402
from app.models.payment_models import Payment  # noqa: E402
from app.services.payments import SignatureVerifier  # noqa: E402

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")


test_engine = create_engine(
    TEST_DATABASE_URL,
    future=True,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
configure_sqlite(test_engine)

# Ensure application code uses the test engine
settings.DATABASE_URL = TEST_DATABASE_URL  # type: ignore[attr-defined]
settings.ENV = "test"  # type: ignore[attr-defined]
db_session_module.engine = test_engine  # type: ignore[assignment]
SessionLocal.configure(bind=test_engine)


@pytest.fixture(autouse=True)
def _reset_database_state():
    """Ensure each test sees a fresh database schema."""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield


@pytest.fixture
def db_session():
    """Provide a database session for tests."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    finally:
        session.close()


# FastAPI TestClient fixture
from fastapi.testclient import TestClient  # noqa: E402
from app.api.main import app  # noqa: E402


@pytest.fixture
def client():
    """Provide a FastAPI TestClient bound to the application."""
    return TestClient(app)


@pytest.fixture
def seeded(db_session):
    """Default tree prices (RUB 1900, USD 2500, ...) and the achievement catalog."""
    return seed_catalog(db_session)


@pytest.fixture
def make_user(db_session):
    def _make(username: str | None = None, **fields) -> User:
        username = username or "user" + uuid.uuid4().hex[:6]
        user = User(email=f"{username}@example.org", username=username, **fields)
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def make_payment(db_session):
    """Pending payment as a payment intent would create it."""

    def _make(user: User | None, amount_minor: int = 9500, currency: str = "RUB", **meta) -> Payment:
        payment_id = uuid.uuid4()
        payment = Payment(
            id=payment_id,
            provider=PaymentProvider.CLOUDPAYMENTS,
            provider_payment_id=str(payment_id),
            user_id=user.id if user is not None else None,
            amount_minor=amount_minor,
            currency=currency,
            status=PaymentStatus.PENDING,
            meta={k: str(v) for k, v in meta.items()},
        )
        db_session.add(payment)
        db_session.commit()
        return payment

    return _make


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


@pytest.fixture
def auth():
    return auth_headers


@pytest.fixture
def admin_auth():
    return (settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD)


def sign(raw: bytes) -> str:
    return SignatureVerifier(settings.CLOUDPAYMENTS_SECRET).compute(raw)


@pytest.fixture
def post_webhook(client):
    """POST a CloudPayments notification, signed correctly unless told otherwise."""

    def _post(payload, signature: str | None = None, provider: str = "cloudpayments"):
        raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        headers = {settings.WEBHOOK_SIGNATURE_HEADER: signature if signature is not None else sign(raw)}
        return client.post(f"/webhooks/{provider}", content=raw, headers=headers)

    return _post
