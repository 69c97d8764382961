import uuid

import pytest

from app.core.exceptions import NotFoundError
from app.services.achievement_service import AchievementService


class TestEvaluation:
    def test_grants_every_reached_threshold(self, db_session, seeded, make_user):
        user = make_user()
        granted = AchievementService(db_session).evaluate(user.id, 120)
        db_session.commit()

        assert [g.achievement.code for g in granted] == ["first_tree", "tree_planter", "forest_guardian"]
        assert granted[0].reason == "Reached 1 trees"

    def test_is_idempotent(self, db_session, seeded, make_user):
        user = make_user()
        service = AchievementService(db_session)
        service.evaluate(user.id, 10)
        db_session.commit()

        assert service.evaluate(user.id, 10) == []
        assert [g.achievement.code for g in service.evaluate(user.id, 100)] == ["forest_guardian"]
        assert len(service.user_achievements(user.id)) == 3

    def test_zero_trees_grants_nothing(self, db_session, seeded, make_user):
        assert AchievementService(db_session).evaluate(make_user().id, 0) == []

    def test_manual_achievements_never_auto_granted(self, db_session, seeded, make_user):
        user = make_user()
        codes = [g.achievement.code for g in AchievementService(db_session).evaluate(user.id, 10_000)]
        assert "volunteer" not in codes
        assert "earth_saver" in codes


class TestAward:
    def test_manual_award(self, db_session, seeded, make_user):
        user = make_user()
        service = AchievementService(db_session)
        grant = service.award(user.id, "volunteer", reason="Spring planting 2024")
        db_session.commit()

        assert grant is not None
        assert grant.reason == "Spring planting 2024"
        assert service.award(user.id, "volunteer") is None

    def test_unknown_code(self, db_session, seeded, make_user):
        with pytest.raises(NotFoundError):
            AchievementService(db_session).award(make_user().id, "moon_walker")


def test_catalog_endpoint_orders_manual_last(client, seeded):
    resp = client.get("/achievements")
    assert resp.status_code == 200
    codes = [a["code"] for a in resp.json()]
    assert codes == ["first_tree", "tree_planter", "forest_guardian", "earth_saver", "volunteer"]


def test_my_achievements_endpoint(client, db_session, seeded, make_user, auth):
    user = make_user()
    AchievementService(db_session).evaluate(user.id, 1)
    db_session.commit()

    resp = client.get("/me/achievements", headers=auth(user))
    assert resp.status_code == 200
    [item] = resp.json()
    assert item["achievement"]["code"] == "first_tree"


def test_admin_award_endpoint(client, seeded, make_user, admin_auth):
    user = make_user()
    body = {"user_id": str(user.id), "code": "volunteer", "reason": "Planting day"}

    first = client.post("/admin/achievements/award", json=body, auth=admin_auth)
    assert first.status_code == 200, first.text
    assert first.json()["achievement"]["code"] == "volunteer"

    again = client.post("/admin/achievements/award", json=body, auth=admin_auth)
    assert again.status_code == 200
    assert again.json() is None


def test_admin_award_requires_credentials(client, seeded, make_user):
    body = {"user_id": str(make_user().id), "code": "volunteer"}
    assert client.post("/admin/achievements/award", json=body).status_code == 401
    assert client.post("/admin/achievements/award", json=body, auth=("admin", "wrong")).status_code == 401


def test_admin_award_unknown_user(client, seeded, admin_auth):
    body = {"user_id": str(uuid.uuid4()), "code": "volunteer"}
    resp = client.post("/admin/achievements/award", json=body, auth=admin_auth)
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "RES400"
