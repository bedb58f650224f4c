import functools
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from country_api import models
from country_api.errors import StoreError
from country_api.utils import as_utc

logger = logging.getLogger("country_api.db")

VALID_SORTS = {"gdp_desc", "gdp_asc", "name"}


def _store_operation(fn):
    """Re-raise SQLAlchemy failures as StoreError."""

    @functools.wraps(fn)
    def wrapper(db: Session, *args, **kwargs):
        try:
            return fn(db, *args, **kwargs)
        except SQLAlchemyError as exc:
            logger.error("Store operation %s failed: %s", fn.__name__, exc)
            raise StoreError(f"{fn.__name__} failed") from exc

    return wrapper


@_store_operation
def get_country(db: Session, name: str):
    return db.query(models.Country).filter(models.Country.name == name).first()


@_store_operation
def get_countries(db: Session, region=None, currency=None, sort=None):
    query = db.query(models.Country)
    if region:
        query = query.filter(models.Country.region == region)
    if currency:
        query = query.filter(models.Country.currency_code == currency)

    if sort == "gdp_desc":
        query = query.order_by(models.Country.estimated_gdp.desc().nulls_last())
    elif sort == "gdp_asc":
        query = query.order_by(models.Country.estimated_gdp.asc().nulls_last())
    elif sort == "name":
        query = query.order_by(models.Country.name.asc())
    else:
        query = query.order_by(models.Country.id.asc())
    return query.all()


@_store_operation
def upsert_country(
    db: Session,
    *,
    name: str,
    population: int,
    last_refreshed_at: datetime,
    capital: Optional[str] = None,
    region: Optional[str] = None,
    currency_code: Optional[str] = None,
    exchange_rate: Optional[float] = None,
    estimated_gdp: Optional[float] = None,
    flag_url: Optional[str] = None,
):
    """Insert the country, or overwrite every field of the existing row with the same name.

    Does not commit; the caller owns the transaction.
    """
    country = get_country(db, name)
    if country is None:
        country = models.Country(name=name)
        db.add(country)
    country.capital = capital
    country.region = region
    country.population = population
    country.currency_code = currency_code
    country.exchange_rate = exchange_rate
    country.estimated_gdp = estimated_gdp
    country.flag_url = flag_url
    country.last_refreshed_at = last_refreshed_at
    # Make the row visible to later lookups within the same run
    db.flush()
    return country


@_store_operation
def delete_country(db: Session, name: str) -> bool:
    country = get_country(db, name)
    if country is None:
        return False
    db.delete(country)
    db.commit()
    return True


# -----------------------------
# Aggregates
# -----------------------------
@_store_operation
def count_countries(db: Session) -> int:
    return db.query(func.count(models.Country.id)).scalar() or 0


@_store_operation
def get_last_refreshed_at(db: Session) -> Optional[datetime]:
    return as_utc(db.query(func.max(models.Country.last_refreshed_at)).scalar())


@_store_operation
def get_top_countries_by_gdp(db: Session, limit: int = 5):
    return (
        db.query(models.Country)
        .filter(models.Country.estimated_gdp.is_not(None))
        .order_by(models.Country.estimated_gdp.desc())
        .limit(limit)
        .all()
    )
