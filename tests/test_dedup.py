from sqlalchemy import select

import pytest

from app.models.enums import PaymentProvider
from app.models.payment_models import WebhookEvent
from app.services.payments import Admission, DeliveryRecord, WebhookDeduplicator


def _record(key="Payment:tx-1", signature_ok=True):
    return DeliveryRecord(
        provider=PaymentProvider.CLOUDPAYMENTS,
        event_type="Payment",
        idempotency_key=key,
        raw_payload={"Type": "Payment", "TransactionId": "tx-1"},
        signature_ok=signature_ok,
    )


def _rows(db, key):
    return db.execute(select(WebhookEvent).where(WebhookEvent.delivery_key == key)).scalars().all()


def test_first_delivery_claims_key(db_session):
    dedup = WebhookDeduplicator(db_session)
    assert dedup.admit(_record()) is Admission.ADMITTED
    db_session.commit()

    assert dedup.claim is not None
    assert dedup.claim.event_idempotency == "Payment:tx-1"
    assert dedup.claim.processed_ok is False
    assert WebhookDeduplicator(db_session).is_claimed("Payment:tx-1")


def test_redelivery_is_duplicate_and_logged(db_session):
    WebhookDeduplicator(db_session).admit(_record())
    db_session.commit()

    assert WebhookDeduplicator(db_session).admit(_record()) is Admission.DUPLICATE
    db_session.commit()

    rows = _rows(db_session, "Payment:tx-1")
    assert len(rows) == 2
    duplicate = next(r for r in rows if r.event_idempotency is None)
    assert duplicate.processed_ok is True


def test_lost_race_on_unique_index_is_duplicate(db_session, monkeypatch):
    WebhookDeduplicator(db_session).admit(_record())
    db_session.commit()

    # Simulate a concurrent delivery that read before the first claim committed
    monkeypatch.setattr(WebhookDeduplicator, "is_claimed", lambda self, key: False)
    dedup = WebhookDeduplicator(db_session)
    assert dedup.admit(_record()) is Admission.DUPLICATE
    assert dedup.claim is None
    db_session.commit()

    claimed = db_session.execute(
        select(WebhookEvent).where(WebhookEvent.event_idempotency == "Payment:tx-1")
    ).scalars().all()
    assert len(claimed) == 1
    assert len(_rows(db_session, "Payment:tx-1")) == 2


def test_rolled_back_claim_can_be_retried(db_session):
    WebhookDeduplicator(db_session).admit(_record())
    db_session.rollback()

    assert not WebhookDeduplicator(db_session).is_claimed("Payment:tx-1")
    assert WebhookDeduplicator(db_session).admit(_record()) is Admission.ADMITTED


def test_admit_requires_key(db_session):
    with pytest.raises(ValueError):
        WebhookDeduplicator(db_session).admit(_record(key=None))


def test_record_outcome_requires_claim(db_session):
    with pytest.raises(RuntimeError):
        WebhookDeduplicator(db_session).record_outcome(processed_ok=True)


def test_record_outcome_marks_claim(db_session):
    dedup = WebhookDeduplicator(db_session)
    dedup.admit(_record())
    row = dedup.record_outcome(processed_ok=True)
    db_session.commit()
    assert row.processed_ok is True
    assert row.processing_error is None


def test_unclaimed_rows_never_block_the_key(db_session):
    dedup = WebhookDeduplicator(db_session)
    row = dedup.record_unclaimed(_record(signature_ok=False), processed_ok=False, error="x" * 2000)
    db_session.commit()

    assert row.event_idempotency is None
    assert row.delivery_key == "Payment:tx-1"
    assert row.signature_ok is False
    assert len(row.processing_error) == 500
    assert WebhookDeduplicator(db_session).admit(_record()) is Admission.ADMITTED
