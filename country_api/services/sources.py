"""Outbound reads against the countries directory and the exchange-rate feed.

Each call site raises ``SourceUnavailable`` tagged with the logical source it
represents, so callers never need to inspect URLs to know what failed.
"""
import logging
from typing import Any

import requests

from country_api.errors import COUNTRIES_SOURCE, EXCHANGE_SOURCE, SourceUnavailable

logger = logging.getLogger("country_api.refresh")


def _get_json(http: requests.Session, url: str, timeout: float, source: str) -> Any:
    try:
        resp = http.get(url, timeout=timeout)
        resp.raise_for_status()
        return resp.json()
    except requests.Timeout as exc:
        logger.warning("%s timed out after %ss", source, timeout)
        raise SourceUnavailable(source, "timeout") from exc
    except requests.RequestException as exc:
        logger.warning("%s request failed: %s", source, exc)
        raise SourceUnavailable(source, str(exc)) from exc
    except ValueError as exc:
        logger.warning("%s returned a body that is not JSON", source)
        raise SourceUnavailable(source, "invalid JSON") from exc


def fetch_countries(http: requests.Session, url: str, timeout: float) -> list[dict]:
    data = _get_json(http, url, timeout, COUNTRIES_SOURCE)
    if not isinstance(data, list):
        raise SourceUnavailable(COUNTRIES_SOURCE, "expected a list of countries")
    logger.info("Fetched %d countries from %s", len(data), COUNTRIES_SOURCE)
    return data


def fetch_exchange_rates(http: requests.Session, url: str, timeout: float) -> dict[str, float]:
    data = _get_json(http, url, timeout, EXCHANGE_SOURCE)
    rates = data.get("rates") if isinstance(data, dict) else None
    if not isinstance(rates, dict):
        raise SourceUnavailable(EXCHANGE_SOURCE, "response has no rates mapping")
    logger.info("Fetched %d exchange rates from %s", len(rates), EXCHANGE_SOURCE)
    return rates
