import uuid

import pytest
from sqlalchemy import func, select

from app.core.exceptions import (
    DonationOwnerMissingError,
    PriceNotConfiguredError,
    ReferenceNotFoundError,
)
from app.models.enums import PaymentProvider, PaymentStatus, SubscriptionStatus
from app.models.models import Project
from app.models.payment_models import Donation, Payment, Subscription
from app.services.payments import SettlementEngine, classify_event
from app.services.price_service import PriceService
from app.services.user_service import UserService


class FixedPrices:
    def __init__(self, **prices):
        self.prices = prices

    def get_price_by_currency(self, currency):
        return self.prices.get(currency)


def _engine(db, prices=None):
    return SettlementEngine(db, prices=prices or PriceService(db), users=UserService(db))


def _payment_event(payment, amount="95.00", currency="RUB", **extra):
    payload = {
        "Type": "Payment",
        "TransactionId": payment.provider_payment_id,
        "Amount": amount,
        "Currency": currency,
        "Status": "Succeeded",
        "OccurredAt": "2024-05-01T10:00:00Z",
    }
    payload.update(extra)
    return classify_event(payload)


def _donations(db):
    return db.execute(select(Donation)).scalars().all()


def test_payment_creates_donation_and_updates_counters(db_session, seeded, make_user, make_payment):
    user = make_user("alice")
    payment = make_payment(user, amount_minor=9500, currency="RUB")

    result = _engine(db_session).settle(_payment_event(payment))
    db_session.commit()

    assert result.action == "payment_settled"
    assert result.trees == 5
    assert result.total_trees == 5
    assert result.created_donation

    db_session.expire_all()
    stored = db_session.get(Payment, payment.id)
    assert stored.status == PaymentStatus.SUCCEEDED
    assert stored.occurred_at is not None
    assert stored.meta["webhook_processed"] is True

    [donation] = _donations(db_session)
    assert donation.payment_id == payment.id
    assert donation.trees_count == 5

    user = UserService(db_session).get_user(user.id)
    assert user.total_trees == 5
    assert user.donations_count == 1
    assert user.last_donation_at is not None


def test_tree_count_rounds_down(db_session, make_user, make_payment):
    user = make_user()
    payment = make_payment(user, amount_minor=3799, currency="RUB")

    result = _engine(db_session, FixedPrices(RUB=1900)).settle(_payment_event(payment))

    assert result.trees == 1


def test_amount_below_price_still_records_donation(db_session, make_user, make_payment):
    user = make_user()
    payment = make_payment(user, amount_minor=1000, currency="RUB")

    result = _engine(db_session, FixedPrices(RUB=1900)).settle(_payment_event(payment))
    db_session.commit()

    assert result.trees == 0
    assert result.created_donation
    user = UserService(db_session).get_user(user.id)
    assert user.total_trees == 0
    assert user.donations_count == 1


def test_counters_accumulate_across_donations(db_session, seeded, make_user, make_payment):
    user = make_user()
    engine = _engine(db_session)
    engine.settle(_payment_event(make_payment(user, amount_minor=9500)))
    result = engine.settle(_payment_event(make_payment(user, amount_minor=19000)))
    db_session.commit()

    assert result.total_trees == 15
    assert UserService(db_session).get_user(user.id).donations_count == 2


def test_missing_price_leaves_payment_untouched(db_session, make_user, make_payment):
    user = make_user()
    payment = make_payment(user, currency="EUR")

    with pytest.raises(PriceNotConfiguredError) as exc:
        _engine(db_session, FixedPrices(RUB=1900)).settle(_payment_event(payment, currency="EUR"))
    db_session.rollback()

    assert exc.value.status_code == 500
    db_session.expire_all()
    assert db_session.get(Payment, payment.id).status == PaymentStatus.PENDING
    assert _donations(db_session) == []


def test_unknown_payment(db_session, seeded):
    event = classify_event(
        {"Type": "Payment", "TransactionId": "nope", "Amount": 1, "Currency": "RUB", "Status": "Succeeded"}
    )
    with pytest.raises(ReferenceNotFoundError) as exc:
        _engine(db_session).settle(event)
    assert exc.value.status_code == 404
    assert exc.value.message == "Payment not found"


def test_payment_without_owner(db_session, seeded, make_payment):
    payment = make_payment(None)
    with pytest.raises(DonationOwnerMissingError):
        _engine(db_session).settle(_payment_event(payment))
    db_session.rollback()
    db_session.expire_all()
    assert db_session.get(Payment, payment.id).status == PaymentStatus.PENDING


def test_project_and_referral_attribution(db_session, seeded, make_user, make_payment):
    donor = make_user("donor")
    friend = make_user("friend")
    project = Project(title="Altai reforestation")
    db_session.add(project)
    db_session.commit()
    payment = make_payment(donor, project_id=project.id, referral_user_id=friend.id)

    _engine(db_session).settle(_payment_event(payment))
    db_session.commit()

    [donation] = _donations(db_session)
    assert donation.project_id == project.id
    assert donation.referral_user_id == friend.id


def test_self_referral_and_dangling_ids_are_dropped(db_session, seeded, make_user, make_payment):
    donor = make_user()
    payment = make_payment(donor, project_id=uuid.uuid4(), referral_user_id=donor.id)

    _engine(db_session).settle(_payment_event(payment))
    db_session.commit()

    [donation] = _donations(db_session)
    assert donation.project_id is None
    assert donation.referral_user_id is None


def test_subscription_charge_creates_new_payment(db_session, seeded, make_user):
    user = make_user()
    project = Project(title="Kazakh steppe belt")
    db_session.add(project)
    db_session.flush()
    subscription = Subscription(
        user_id=user.id,
        provider=PaymentProvider.CLOUDPAYMENTS,
        provider_subscription_id="sub-42",
        amount_minor=5000,
        currency="USD",
        status=SubscriptionStatus.ACTIVE,
        meta={"project_id": str(project.id)},
    )
    db_session.add(subscription)
    db_session.commit()

    event = classify_event(
        {
            "Type": "SubscriptionCharge",
            "TransactionId": "charge-1",
            "SubscriptionId": "sub-42",
            "Amount": 50,
            "Currency": "USD",
            "Status": "Succeeded",
        }
    )
    result = _engine(db_session).settle(event)
    db_session.commit()

    assert result.action == "subscription_charge_settled"
    assert result.trees == 2
    payment = db_session.execute(select(Payment).where(Payment.provider_payment_id == "charge-1")).scalar_one()
    assert payment.status == PaymentStatus.SUCCEEDED
    assert payment.subscription_id == subscription.id
    assert payment.user_id == user.id
    [donation] = _donations(db_session)
    assert donation.project_id == project.id


def test_subscription_charge_for_unknown_subscription(db_session, seeded):
    event = classify_event(
        {
            "Type": "SubscriptionCharge",
            "TransactionId": "charge-1",
            "SubscriptionId": "missing",
            "Amount": 50,
            "Currency": "USD",
            "Status": "Succeeded",
        }
    )
    with pytest.raises(ReferenceNotFoundError) as exc:
        _engine(db_session).settle(event)
    assert exc.value.details["kind"] == "subscription"


def test_refund_marks_payment_without_clawback(db_session, seeded, make_user, make_payment):
    user = make_user()
    payment = make_payment(user)
    engine = _engine(db_session)
    engine.settle(_payment_event(payment))
    db_session.commit()

    refund = classify_event(
        {"Type": "Refund", "TransactionId": payment.provider_payment_id, "Status": "Completed", "Reason": "duplicate"}
    )
    result = engine.settle(refund)
    db_session.commit()

    assert result.action == "refund_recorded"
    assert not result.created_donation
    db_session.expire_all()
    stored = db_session.get(Payment, payment.id)
    assert stored.status == PaymentStatus.REFUNDED
    assert stored.meta["refund_reason"] == "duplicate"
    assert db_session.execute(select(func.count(Donation.id))).scalar_one() == 1
    assert UserService(db_session).get_user(user.id).total_trees == 5


def test_unknown_event_cannot_be_settled(db_session):
    with pytest.raises(ValueError):
        _engine(db_session).settle(classify_event({"Type": "Chargeback", "TransactionId": "x"}))


def _refund_event(payment):
    return classify_event({"Type": "Refund", "TransactionId": payment.provider_payment_id, "Status": "Completed"})


def test_success_after_refund_keeps_payment_refunded(db_session, seeded, make_user, make_payment):
    user = make_user()
    payment = make_payment(user)
    engine = _engine(db_session)
    engine.settle(_refund_event(payment))
    db_session.commit()

    result = engine.settle(_payment_event(payment))
    db_session.commit()

    assert result.action == "already_refunded"
    assert not result.created_donation
    db_session.expire_all()
    assert db_session.get(Payment, payment.id).status == PaymentStatus.REFUNDED
    assert _donations(db_session) == []
    assert UserService(db_session).get_user(user.id).total_trees == 0


def test_success_for_payment_with_donation_is_noop(db_session, seeded, make_user, make_payment):
    user = make_user()
    payment = make_payment(user)
    engine = _engine(db_session)
    engine.settle(_payment_event(payment))
    db_session.commit()

    # Settled directly, so the webhook dedup gate is not involved
    result = engine.settle(_payment_event(payment))
    db_session.commit()

    assert result.action == "already_settled"
    assert len(_donations(db_session)) == 1
    assert UserService(db_session).get_user(user.id).donations_count == 1


def _active_subscription(db, user, external_id="sub-7"):
    subscription = Subscription(
        user_id=user.id,
        provider=PaymentProvider.CLOUDPAYMENTS,
        provider_subscription_id=external_id,
        amount_minor=9500,
        currency="RUB",
        status=SubscriptionStatus.ACTIVE,
    )
    db.add(subscription)
    db.commit()
    return subscription


def _charge_event(transaction_id, subscription_id="sub-7", amount=95):
    return classify_event(
        {
            "Type": "SubscriptionCharge",
            "TransactionId": transaction_id,
            "SubscriptionId": subscription_id,
            "Amount": amount,
            "Currency": "RUB",
            "Status": "Succeeded",
        }
    )


def test_payment_after_subscription_charge_with_same_transaction(db_session, seeded, make_user):
    user = make_user()
    _active_subscription(db_session, user)
    engine = _engine(db_session)
    engine.settle(_charge_event("tx-1"))
    db_session.commit()
    charged = db_session.execute(select(Payment).where(Payment.provider_payment_id == "tx-1")).scalar_one()

    result = engine.settle(_payment_event(charged))
    db_session.commit()

    assert result.action == "already_settled"
    assert len(_donations(db_session)) == 1
    assert UserService(db_session).get_user(user.id).total_trees == 5


def test_subscription_charge_reuses_existing_payment(db_session, seeded, make_user, make_payment):
    user = make_user()
    subscription = _active_subscription(db_session, user)
    pending = make_payment(user)

    result = _engine(db_session).settle(_charge_event(pending.provider_payment_id))
    db_session.commit()

    assert result.action == "subscription_charge_settled"
    assert result.trees == 5
    db_session.expire_all()
    stored = db_session.get(Payment, pending.id)
    assert stored.status == PaymentStatus.SUCCEEDED
    assert stored.subscription_id == subscription.id
    assert db_session.execute(select(func.count(Payment.id))).scalar_one() == 1
    [donation] = _donations(db_session)
    assert donation.payment_id == pending.id


def test_subscription_charge_after_payment_is_noop(db_session, seeded, make_user, make_payment):
    user = make_user()
    _active_subscription(db_session, user)
    payment = make_payment(user)
    engine = _engine(db_session)
    engine.settle(_payment_event(payment))
    db_session.commit()

    result = engine.settle(_charge_event(payment.provider_payment_id))
    db_session.commit()

    assert result.action == "already_settled"
    assert len(_donations(db_session)) == 1
    assert UserService(db_session).get_user(user.id).total_trees == 5
