from datetime import datetime, timezone

import pytest
import requests
from fastapi.testclient import TestClient

from country_api import crud
from country_api.config import Settings
from country_api.database import build_engine, init_db, make_session_factory
from country_api.main import create_app

COUNTRIES_URL = "https://restcountries.com/v2/all?fields=name,capital,region,population,flag,currencies"
EXCHANGE_URL = "https://open.er-api.com/v6/latest/USD"


class DummyResponse:
    def __init__(self, data, status_code=200):
        self._data = data
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=None)

    def json(self):
        return self._data


class FakeHTTP:
    """Stands in for the shared requests.Session; answers by URL."""

    def __init__(self, countries=None, rates=None):
        self.countries = countries or []
        self.rates = rates or {}
        self.rates_body = None
        self.failures = {}
        self.calls = []

    def fail(self, which, exc=None, status_code=None):
        self.failures[which] = (exc, status_code)

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        which = "countries" if "restcountries" in url else "rates"
        if which in self.failures:
            exc, status_code = self.failures[which]
            if exc is not None:
                raise exc
            return DummyResponse({"error": "upstream"}, status_code=status_code)
        if which == "countries":
            return DummyResponse(self.countries)
        if self.rates_body is not None:
            return DummyResponse(self.rates_body)
        return DummyResponse({"result": "success", "base_code": "USD", "rates": self.rates})

    def close(self):
        pass


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
        CACHE_DIR=tmp_path / "cache",
        COUNTRY_API=COUNTRIES_URL,
        EXCHANGE_API=EXCHANGE_URL,
    )


@pytest.fixture
def db(settings):
    engine = build_engine(settings.DATABASE_URL)
    init_db(engine)
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def fake_http():
    return FakeHTTP()


@pytest.fixture
def client(settings, fake_http):
    app = create_app(settings)
    with TestClient(app) as c:
        resources = c.app.state.resources
        resources.http.close()
        resources.http = fake_http
        yield c


@pytest.fixture
def session_factory(client):
    return client.app.state.resources.session_factory


def seed_country(db, name, **fields):
    fields.setdefault("population", 1000)
    fields.setdefault("last_refreshed_at", datetime(2025, 1, 1, tzinfo=timezone.utc))
    country = crud.upsert_country(db, name=name, **fields)
    db.commit()
    return country


@pytest.fixture
def seed():
    return seed_country


@pytest.fixture
def feed():
    return [
        {
            "name": "Nigeria",
            "capital": "Abuja",
            "region": "Africa",
            "population": 206139587,
            "flag": "https://flagcdn.com/ng.svg",
            "currencies": [{"code": "NGN", "name": "Nigerian naira", "symbol": "₦"}],
        },
        {
            "name": "Germany",
            "capital": "Berlin",
            "region": "Europe",
            "population": 83240525,
            "flag": "https://flagcdn.com/de.svg",
            "currencies": [{"code": "EUR", "name": "Euro", "symbol": "€"}],
        },
        {
            "name": "Antarctica",
            "region": "Polar",
            "population": 1000,
            "flag": "https://flagcdn.com/aq.svg",
        },
    ]
