import re
import uuid

import pytest

from app.core.exceptions import InvalidRequestError, NotFoundError
from app.models.enums import ShareKind
from app.services.share_service import ShareService, generate_slug


def _settle(post_webhook, make_payment, user, amount_minor=9500, **meta):
    payment = make_payment(user, amount_minor=amount_minor, **meta)
    resp = post_webhook(
        {
            "Type": "Payment",
            "TransactionId": payment.provider_payment_id,
            "Amount": amount_minor / 100,
            "Currency": "RUB",
            "Status": "Succeeded",
        }
    )
    assert resp.json()["status"] == "processed", resp.text
    return payment


def test_slug_format():
    assert re.fullmatch(r"alice-profile-[0-9a-f]{8}", generate_slug("alice", ShareKind.PROFILE))
    assert generate_slug(None, ShareKind.DONATION).startswith("user-donation-")


def test_profile_share_round_trip(client, seeded, make_user, make_payment, post_webhook, auth):
    user = make_user("alice", display_name="Alice")
    _settle(post_webhook, make_payment, user)

    created = client.post("/shares", json={"kind": "profile"}, headers=auth(user))
    assert created.status_code == 201, created.text
    token = created.json()
    assert token["kind"] == "profile"
    assert token["ref_id"] is None

    resolved = client.get(f"/shares/{token['slug']}")
    assert resolved.status_code == 200
    view = resolved.json()
    assert view["kind"] == "profile"
    assert view["referral_user_id"] == str(user.id)
    assert view["donation"] is None
    assert view["profile"]["display_name"] == "Alice"
    assert view["profile"]["total_trees"] == 5
    assert [a["achievement"]["code"] for a in view["profile"]["achievements"]] == ["first_tree"]


def test_donation_share(client, db_session, seeded, make_user, make_payment, post_webhook, auth):
    user = make_user("bob")
    _settle(post_webhook, make_payment, user)
    donation_id = client.get("/me/donations", headers=auth(user)).json()["items"][0]["id"]

    token = client.post("/shares", json={"kind": "donation", "ref_id": donation_id}, headers=auth(user)).json()
    view = client.get(f"/shares/{token['slug']}").json()

    assert view["kind"] == "donation"
    assert view["profile"] is None
    assert view["donation"]["id"] == donation_id
    assert view["donation"]["trees_count"] == 5
    assert view["donation"]["donor_username"] == "bob"


def test_cannot_share_someone_elses_donation(db_session, seeded, make_user, make_payment, post_webhook, client, auth):
    owner = make_user()
    other = make_user()
    _settle(post_webhook, make_payment, owner)
    donation_id = client.get("/me/donations", headers=auth(owner)).json()["items"][0]["id"]

    with pytest.raises(NotFoundError):
        ShareService(db_session).create_token(other.id, "donation", uuid.UUID(donation_id))


def test_donation_share_requires_ref(db_session, make_user):
    with pytest.raises(InvalidRequestError):
        ShareService(db_session).create_token(make_user().id, "donation")


def test_invalid_kind_rejected(client, make_user, auth):
    resp = client.post("/shares", json={"kind": "project"}, headers=auth(make_user()))
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VAL300"


def test_unknown_slug(client):
    assert client.get("/shares/nobody-profile-deadbeef").status_code == 404


def test_list_and_delete_tokens(client, make_user, auth):
    user = make_user()
    other = make_user()
    token = client.post("/shares", json={"kind": "profile"}, headers=auth(user)).json()

    assert [t["id"] for t in client.get("/shares", headers=auth(user)).json()] == [token["id"]]
    assert client.get("/shares", headers=auth(other)).json() == []

    assert client.delete(f"/shares/{token['id']}", headers=auth(other)).status_code == 404
    assert client.delete(f"/shares/{token['id']}", headers=auth(user)).status_code == 204
    assert client.get(f"/shares/{token['slug']}").status_code == 404


def test_referral_stats(client, seeded, make_user, make_payment, post_webhook, auth):
    referrer = make_user()
    _settle(post_webhook, make_payment, make_user(), referral_user_id=referrer.id)
    _settle(post_webhook, make_payment, make_user(), amount_minor=19000, referral_user_id=referrer.id)
    # Self-referral is never counted
    _settle(post_webhook, make_payment, referrer, referral_user_id=referrer.id)

    stats = client.get("/shares/referrals/stats", headers=auth(referrer))
    assert stats.status_code == 200
    assert stats.json() == {"total_referrals": 2, "total_trees_planted": 15}


def test_leaderboard(client, seeded, make_user, make_payment, post_webhook):
    small = make_user("small")
    big = make_user("big")
    make_user("idle")
    _settle(post_webhook, make_payment, small)
    _settle(post_webhook, make_payment, big, amount_minor=19000)

    board = client.get("/users/leaderboard").json()
    assert [entry["username"] for entry in board] == ["big", "small"]
    assert board[0]["total_trees"] == 10
