"""Tree price lookup and maintenance."""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidRequestError, NotFoundError
from app.models.enums import Currency, utcnow
from app.models.models import TreePrice

logger = logging.getLogger(__name__)


class PriceService:
    def __init__(self, db: Session):
        self.db = db

    def get_prices(self) -> dict[str, int]:
        """All configured prices as ``{currency: price_minor}``."""
        rows = self.db.execute(select(TreePrice).order_by(TreePrice.currency)).scalars().all()
        return {row.currency: row.price_minor for row in rows}

    def get_price_by_currency(self, currency: str) -> int | None:
        """Minor-unit price of one tree, or None when the currency has no price."""
        price = self.db.get(TreePrice, currency.upper())
        if price is None:
            return None
        return price.price_minor

    def require_price(self, currency: str) -> TreePrice:
        code = Currency.parse(currency.upper()).value
        price = self.db.get(TreePrice, code)
        if price is None:
            raise NotFoundError("Tree price", code)
        return price

    def update_price(self, currency: str, price_minor: int) -> TreePrice:
        """Create or replace the price for a currency. Does not commit."""
        code = Currency.parse(currency.upper()).value
        if price_minor <= 0:
            raise InvalidRequestError("price_minor must be positive", field="price_minor")
        price = self.db.get(TreePrice, code)
        if price is None:
            price = TreePrice(currency=code, price_minor=price_minor)
            self.db.add(price)
        else:
            price.price_minor = price_minor
            price.updated_at = utcnow()
        self.db.flush()
        logger.info("Tree price for %s set to %s", code, price_minor)
        return price
