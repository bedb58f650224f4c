from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from country_api import crud, schemas
from country_api.database import get_db

router = APIRouter()


@router.get(
    "",
    response_model=schemas.StatusOut,
    summary="API/data status",
    description="Returns the number of countries stored and the timestamp of the last refresh.",
)
def get_status(db: Session = Depends(get_db)):
    return {
        "total_countries": crud.count_countries(db),
        "last_refreshed_at": crud.get_last_refreshed_at(db),
    }
