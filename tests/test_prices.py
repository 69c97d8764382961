import pytest

from app.core.exceptions import InvalidEnumValueError, InvalidRequestError
from app.db.seed import TREE_PRICES, seed_catalog
from app.services.price_service import PriceService


def test_get_prices(db_session, seeded):
    assert PriceService(db_session).get_prices() == TREE_PRICES


def test_lookup_is_case_insensitive(db_session, seeded):
    service = PriceService(db_session)
    assert service.get_price_by_currency("rub") == 1900
    assert service.get_price_by_currency("GBP") is None


def test_update_price_upserts(db_session, seeded):
    service = PriceService(db_session)
    service.update_price("usd", 3000)
    db_session.commit()
    assert service.get_price_by_currency("USD") == 3000


def test_update_price_validation(db_session):
    service = PriceService(db_session)
    with pytest.raises(InvalidRequestError):
        service.update_price("RUB", 0)
    with pytest.raises(InvalidEnumValueError):
        service.update_price("XYZ", 100)


def test_seed_keeps_existing_prices_when_asked(db_session, seeded):
    PriceService(db_session).update_price("RUB", 2000)
    db_session.commit()

    counts = seed_catalog(db_session, update_prices=False)

    assert counts == {"prices": 0, "achievements": 0}
    assert PriceService(db_session).get_price_by_currency("RUB") == 2000


def test_prices_endpoint(client, seeded):
    resp = client.get("/prices")
    assert resp.status_code == 200
    assert resp.json() == {"prices": TREE_PRICES}

    single = client.get("/prices/kzt")
    assert single.status_code == 200
    assert single.json()["price_minor"] == 950


def test_price_endpoint_errors(client, seeded):
    assert client.get("/prices/XYZ").status_code == 400


def test_missing_price_is_404(client):
    resp = client.get("/prices/EUR")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "RES400"


def test_admin_price_update(client, seeded, admin_auth):
    assert client.put("/prices/EUR", json={"price_minor": 2400}).status_code == 401

    resp = client.put("/prices/EUR", json={"price_minor": 2400}, auth=admin_auth)
    assert resp.status_code == 200, resp.text
    assert resp.json()["price_minor"] == 2400
    assert client.get("/prices").json()["prices"]["EUR"] == 2400

    assert client.put("/prices/EUR", json={"price_minor": -1}, auth=admin_auth).status_code == 422
