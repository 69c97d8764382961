"""Static catalog data: tree prices and achievements."""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.models import Achievement
from app.services.price_service import PriceService

logger = logging.getLogger(__name__)

TREE_PRICES: dict[str, int] = {
    "RUB": 1900,
    "KZT": 950,
    "USD": 2500,
    "EUR": 2300,
}

ACHIEVEMENTS: list[dict] = [
    {"code": "first_tree", "title": "First Tree", "description": "Planted your first tree", "threshold_trees": 1},
    {"code": "tree_planter", "title": "Tree Planter", "description": "Planted 10 trees", "threshold_trees": 10},
    {
        "code": "forest_guardian",
        "title": "Forest Guardian",
        "description": "Planted 100 trees",
        "threshold_trees": 100,
    },
    {"code": "earth_saver", "title": "Earth Saver", "description": "Planted 1000 trees", "threshold_trees": 1000},
    # Manual-only: granted by an admin after a planting event
    {"code": "volunteer", "title": "Volunteer", "description": "Participated in a planting event", "threshold_trees": None},
]


def seed_catalog(db: Session, update_prices: bool = True) -> dict[str, int]:
    """Upsert tree prices and insert missing achievements. Commits.

    Existing achievements are left as they are so edits made in production
    are not overwritten.
    """
    prices = PriceService(db)
    prices_written = 0
    for currency, price_minor in TREE_PRICES.items():
        if update_prices or prices.get_price_by_currency(currency) is None:
            prices.update_price(currency, price_minor)
            prices_written += 1

    achievements_created = 0
    existing = set(db.execute(select(Achievement.code)).scalars().all())
    for data in ACHIEVEMENTS:
        if data["code"] in existing:
            continue
        db.add(Achievement(**data))
        achievements_created += 1

    db.commit()
    logger.info("Seeded %d tree prices and %d achievements", prices_written, achievements_created)
    return {"prices": prices_written, "achievements": achievements_created}
