import logging
import os
from dataclasses import dataclass
from pathlib import Path

import requests
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from country_api.config import Settings
from country_api.database import build_engine, init_db, make_session_factory

logger = logging.getLogger("country_api")


def ensure_cache_dir(path: Path) -> Path:
    os.makedirs(path, exist_ok=True)
    return path


@dataclass
class Resources:
    """Clients shared by every request, built once at startup."""

    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    http: requests.Session

    @classmethod
    def create(cls, settings: Settings) -> "Resources":
        engine = build_engine(settings.DATABASE_URL)
        init_db(engine)
        ensure_cache_dir(settings.cache_dir)
        http = requests.Session()
        http.headers.update({"Accept": "application/json"})
        logger.info("Resources ready (db=%s, cache=%s)", engine.url.render_as_string(hide_password=True), settings.cache_dir)
        return cls(
            settings=settings,
            engine=engine,
            session_factory=make_session_factory(engine),
            http=http,
        )

    def close(self) -> None:
        self.http.close()
        self.engine.dispose()
        logger.info("Resources released")
