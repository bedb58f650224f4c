import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, Response
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from country_api import crud, schemas
from country_api.database import get_db
from country_api.resources import Resources
from country_api.services.refresh import refresh_countries

logger = logging.getLogger("country_api")

router = APIRouter()


def get_resources(request: Request) -> Resources:
    return request.app.state.resources


@router.post(
    "/refresh",
    response_model=schemas.MessageOut,
    summary="Refresh country, currency, and exchange data",
    description=(
        "Fetches the latest data from external providers and refreshes the local database. "
        "Also regenerates the summary image for the top 5 GDP countries."
    ),
)
def refresh(
    db: Session = Depends(get_db),
    resources: Resources = Depends(get_resources),
):
    result = refresh_countries(db, resources.http, resources.settings)
    logger.info("Refresh run at %s stored %d countries", result.refreshed_at.isoformat(), result.processed)
    return {"message": "Data refreshed successfully"}


@router.get(
    "",
    response_model=List[schemas.CountryOut],
    summary="List countries",
    description=(
        "Returns countries with optional filtering and sorting.\n\n"
        "Filters:\n"
        "- region: exact region match (e.g., 'Africa')\n"
        "- currency: exact currency code (e.g., 'NGN')\n\n"
        "Sorting options (sort): gdp_desc|gdp_asc|name"
    ),
    response_description="List of countries",
)
def get_all(
    region: Optional[str] = Query(default=None, description="Filter by region", examples=["Africa"]),
    currency: Optional[str] = Query(default=None, description="Filter by currency code", examples=["NGN"]),
    sort: Optional[str] = Query(
        default=None,
        description="Sort order: one of gdp_desc, gdp_asc, name",
        examples=["gdp_desc"],
    ),
    db: Session = Depends(get_db),
):
    if sort is not None and sort not in crud.VALID_SORTS:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "Validation failed",
                "details": {"sort": "invalid value; must be one of: " + ", ".join(sorted(crud.VALID_SORTS))},
            },
        )
    return crud.get_countries(db, region, currency, sort)


@router.get(
    "/image",
    summary="Get generated summary image",
    description="Returns the PNG summary (total countries, top 5 by estimated GDP, render time).",
    response_class=FileResponse,
)
def get_image(resources: Resources = Depends(get_resources)):
    img_path = resources.settings.summary_image_path
    if not img_path.exists():
        raise HTTPException(status_code=404, detail="Summary image not found")
    return FileResponse(str(img_path), media_type="image/png")


@router.get(
    "/{name}",
    response_model=schemas.CountryOut,
    summary="Get country by name",
    description="Exact, case-sensitive country name match.",
)
def get_one(
    name: str = Path(..., description="Exact country name", examples=["Nigeria"]),
    db: Session = Depends(get_db),
):
    country = crud.get_country(db, name)
    if not country:
        raise HTTPException(status_code=404, detail="Country not found")
    return country


@router.delete(
    "/{name}",
    status_code=204,
    response_class=Response,
    summary="Delete a country by name",
    description="Deletes a country if it exists.",
)
def delete_country(
    name: str = Path(..., description="Exact country name", examples=["Nigeria"]),
    db: Session = Depends(get_db),
):
    if not crud.delete_country(db, name):
        raise HTTPException(status_code=404, detail="Country not found")
    return Response(status_code=204)
