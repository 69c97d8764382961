from fastapi import APIRouter

from app.api.dependencies import AdminDep, DbDep
from app.models import schemas
from app.services.price_service import PriceService

router = APIRouter()


@router.get("", response_model=schemas.PricesOut)
def list_prices(db: DbDep):
    """Price of one tree per currency, in minor units."""
    return {"prices": PriceService(db).get_prices()}


@router.get("/{currency}", response_model=schemas.TreePriceOut)
def get_price(currency: str, db: DbDep):
    return PriceService(db).require_price(currency)


@router.put("/{currency}", response_model=schemas.TreePriceOut)
def update_price(currency: str, data: schemas.TreePriceUpdate, db: DbDep, _admin: AdminDep):
    price = PriceService(db).update_price(currency, data.price_minor)
    db.commit()
    return price
