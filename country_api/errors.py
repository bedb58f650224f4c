"""Error taxonomy shared by the refresh pipeline, the store and the API layer."""

COUNTRIES_SOURCE = "restcountries.com"
EXCHANGE_SOURCE = "open.er-api.com"
UNKNOWN_SOURCE = "unknown"


class CountryAPIError(Exception):
    """Base class for application errors."""


class SourceUnavailable(CountryAPIError):
    """An external data source was unreachable, timed out or answered badly."""

    def __init__(self, source: str = UNKNOWN_SOURCE, reason: str | None = None):
        self.source = source or UNKNOWN_SOURCE
        self.reason = reason
        super().__init__(f"Could not fetch data from {self.source}")


class StoreError(CountryAPIError):
    """The persistence layer failed on a read or a write."""


class RenderError(CountryAPIError):
    """The summary image could not be generated."""
