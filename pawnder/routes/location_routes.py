from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pawnder.auth.dependencies import get_current_user
from pawnder.database import get_db
from pawnder.models.user import User
from pawnder.routes.common import database_unavailable, ensure_database_ready
from pawnder.schemas.location import CreateLocationRequest, LocationResponse
from pawnder.services import locations

router = APIRouter(tags=['locations'])


@router.post('', response_model=LocationResponse, status_code=status.HTTP_201_CREATED)
def create_location(
    data: CreateLocationRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        return locations.create_location(db, data.to_location_data())
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/recent', response_model=list[LocationResponse])
def list_recent_locations(
    limit: int = Query(default=locations.DEFAULT_RECENT_LIMIT, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return locations.get_recent_locations(db, current_user.id, limit)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
