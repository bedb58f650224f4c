from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from country_api.utils import as_utc


class CountryBase(BaseModel):
    name: str = Field(..., description="Country name as given by the directory feed")
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int
    currency_code: Optional[str] = Field(None, description="First currency listed for the country")
    exchange_rate: Optional[float] = Field(None, description="Units of currency per 1 USD")
    estimated_gdp: Optional[float] = Field(None, description="population * random(1000..2000) / exchange_rate")
    flag_url: Optional[str] = None
    last_refreshed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("last_refreshed_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class CountryOut(CountryBase):
    id: int


class StatusOut(BaseModel):
    total_countries: int
    last_refreshed_at: Optional[datetime] = None


class MessageOut(BaseModel):
    message: str

