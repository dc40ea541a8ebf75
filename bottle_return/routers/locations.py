from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from bottle_return.db import get_db
from bottle_return.schemas import IncidentCreate, IncidentOut, LocationOut, SyncMetadataOut
from bottle_return.services.incident_service import create_incident
from bottle_return.services.location_normalizer import BoundingBox
from bottle_return.services.location_service import (
    get_location,
    get_sync_metadata,
    list_locations,
    search_locations,
)

router = APIRouter(prefix='/api', tags=['locations'])


def _parse_bounds(
    north: float | None,
    south: float | None,
    east: float | None,
    west: float | None,
) -> BoundingBox | None:
    values = (north, south, east, west)
    if all(value is None for value in values):
        return None
    if any(value is None for value in values):
        raise HTTPException(status_code=400, detail='Bounds need north, south, east and west')
    if south > north or west > east:
        raise HTTPException(status_code=400, detail='Invalid bounds')
    return BoundingBox(north=north, south=south, east=east, west=west)


@router.get('/locations', response_model=list[LocationOut])
def locations_index(
    north: float | None = None,
    south: float | None = None,
    east: float | None = None,
    west: float | None = None,
    db: Session = Depends(get_db),
):
    return list_locations(db, bounds=_parse_bounds(north, south, east, west))


@router.get('/locations/search', response_model=list[LocationOut])
def locations_search(
    q: str = Query(min_length=1, max_length=100),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return search_locations(db, query=q, limit=limit)


@router.get('/locations/{location_id}', response_model=LocationOut)
def location_detail(location_id: int, db: Session = Depends(get_db)):
    try:
        return get_location(db, location_id=location_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get('/sync-metadata', response_model=SyncMetadataOut)
def sync_metadata(db: Session = Depends(get_db)):
    return get_sync_metadata(db)


@router.post('/incidents', response_model=IncidentOut, status_code=status.HTTP_201_CREATED)
def report_incident(payload: IncidentCreate, db: Session = Depends(get_db)):
    try:
        incident = create_incident(
            db,
            location_id=payload.location_id,
            kind=payload.kind,
            description=payload.description,
            reporter_name=payload.reporter_name,
            reporter_email=payload.reporter_email,
            priority=payload.priority,
        )
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return incident
