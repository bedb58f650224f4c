import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from numbers import Real
from pathlib import Path
from typing import Optional

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from country_api import crud
from country_api.config import Settings
from country_api.errors import StoreError
from country_api.services.image_generator import (
    discard_summary_image,
    publish_summary_image,
    render_summary_image,
)
from country_api.services.sources import fetch_countries, fetch_exchange_rates

logger = logging.getLogger("country_api.refresh")

GDP_MULTIPLIER_RANGE = (1000, 2000)


@dataclass
class RefreshResult:
    processed: int
    skipped: int
    refreshed_at: datetime
    image_path: Path


def extract_currency_code(entry: dict) -> Optional[str]:
    """Code of the first listed currency, or None when there is none."""
    currencies = entry.get("currencies") or []
    if not currencies:
        return None
    first = currencies[0]
    code = first.get("code") if isinstance(first, dict) else None
    return code or None


def _usable_rate(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, Real) or value <= 0:
        return None
    return float(value)


def estimate_gdp(
    population: int,
    currency_code: Optional[str],
    rates: dict,
    rng: random.Random | None = None,
) -> tuple[Optional[float], Optional[float]]:
    """Return ``(exchange_rate, estimated_gdp)`` for one country.

    No currency at all gives a GDP of 0; a currency without a usable rate gives
    no GDP. The multiplier is redrawn on every call, so the estimate is noisy
    on purpose.
    """
    if currency_code is None:
        return None, 0
    rate = _usable_rate(rates.get(currency_code))
    if rate is None:
        return None, None
    multiplier = (rng or random).randint(*GDP_MULTIPLIER_RANGE)
    return rate, population * multiplier / rate


def _population(value) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValueError("population must be a number")
    if value != int(value):
        raise ValueError("population must be a whole number")
    return int(value)


def _run_timestamp(db: Session) -> datetime:
    now = datetime.now(timezone.utc)
    previous = crud.get_last_refreshed_at(db)
    # Never move a record's refresh time backwards
    if previous is not None and previous > now:
        return previous
    return now


def _abort(db: Session, staged: Optional[Path]) -> None:
    db.rollback()
    if staged is not None:
        discard_summary_image(staged)


def refresh_countries(
    db: Session,
    http: requests.Session,
    settings: Settings,
    rng: random.Random | None = None,
) -> RefreshResult:
    """Fetch countries and exchange rates, upsert every country, then render the summary.

    Both sources are fetched before anything is written, so a failed fetch
    leaves the store untouched. Upserts and the summary image share one
    transaction: if rendering fails the run's writes are rolled back, and the
    staged image is only moved into place once the commit succeeds.

    Raises SourceUnavailable, RenderError or StoreError.
    """
    timeout = settings.HTTP_TIMEOUT_SECONDS
    countries = fetch_countries(http, settings.COUNTRY_API, timeout)
    rates = fetch_exchange_rates(http, settings.EXCHANGE_API, timeout)

    processed = skipped = 0
    staged = None
    try:
        refreshed_at = _run_timestamp(db)
        for entry in countries:
            name = entry.get("name") if isinstance(entry, dict) else None
            if not name:
                logger.warning("Skipping directory entry without a name: %r", entry)
                skipped += 1
                continue
            try:
                population = _population(entry.get("population"))
            except (OverflowError, ValueError):
                logger.warning("Skipping %s: invalid population %r", name, entry.get("population"))
                skipped += 1
                continue

            currency_code = extract_currency_code(entry)
            rate, gdp = estimate_gdp(population, currency_code, rates, rng)
            crud.upsert_country(
                db,
                name=name,
                capital=entry.get("capital") or None,
                region=entry.get("region") or None,
                population=population,
                currency_code=currency_code,
                exchange_rate=rate,
                estimated_gdp=gdp,
                flag_url=entry.get("flag") or None,
                last_refreshed_at=refreshed_at,
            )
            processed += 1

        staged = render_summary_image(db, settings.cache_dir)
        db.commit()
    except SQLAlchemyError as exc:
        _abort(db, staged)
        raise StoreError("refresh could not be committed") from exc
    except Exception:
        _abort(db, staged)
        raise

    # Only a committed run replaces the published image
    image_path = publish_summary_image(staged)

    logger.info(
        "Refresh complete: %d countries upserted, %d skipped, refreshed_at=%s",
        processed,
        skipped,
        refreshed_at.isoformat(),
    )
    return RefreshResult(processed, skipped, refreshed_at, image_path)
