"""Settlements from separate sessions must not lose counter increments."""
import uuid

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

from app.db.base_class import Base
from app.db.seed import seed_catalog
from app.db.session import configure_sqlite
from app.models.enums import PaymentProvider, PaymentStatus
from app.models.models import User
from app.models.payment_models import Donation, Payment
from app.services.payments import SettlementEngine, classify_event
from app.services.price_service import PriceService
from app.services.user_service import UserService


@pytest.fixture
def file_sessions(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'planet.db'}", future=True)
    configure_sqlite(engine)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)
    yield factory
    engine.dispose()


def _pending(db, user_id, amount_minor):
    payment_id = uuid.uuid4()
    db.add(
        Payment(
            id=payment_id,
            provider=PaymentProvider.CLOUDPAYMENTS,
            provider_payment_id=str(payment_id),
            user_id=user_id,
            amount_minor=amount_minor,
            currency="RUB",
            status=PaymentStatus.PENDING,
        )
    )
    return str(payment_id)


def _settle(db, transaction_id, amount):
    engine = SettlementEngine(db, prices=PriceService(db), users=UserService(db))
    event = classify_event(
        {"Type": "Payment", "TransactionId": transaction_id, "Amount": amount, "Currency": "RUB", "Status": "Succeeded"}
    )
    result = engine.settle(event)
    db.commit()
    return result


def test_interleaved_sessions_keep_counters_consistent(file_sessions):
    with file_sessions() as setup:
        seed_catalog(setup)
        user = User(email="race@example.org", username="race")
        setup.add(user)
        setup.flush()
        user_id = user.id
        first_tx = _pending(setup, user_id, 9500)
        second_tx = _pending(setup, user_id, 19000)
        setup.commit()

    with file_sessions() as session_a, file_sessions() as session_b:
        stale = session_a.get(User, user_id)
        session_a.commit()
        assert stale.total_trees == 0

        _settle(session_b, second_tx, 190)
        result = _settle(session_a, first_tx, 95)

    assert result.total_trees == 15
    with file_sessions() as check:
        stored = check.get(User, user_id)
        assert stored.total_trees == 15
        assert stored.donations_count == 2
        donations = check.execute(select(func.count(Donation.id)).where(Donation.user_id == user_id)).scalar_one()
        assert donations == 2
