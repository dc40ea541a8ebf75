from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from bottle_return.config import settings
from bottle_return.models import (
    ACTIVE_INCIDENT_STATUSES,
    SYNC_METADATA_ID,
    Incident,
    Location,
    SyncMetadata,
    utc_now,
)
from bottle_return.services.location_normalizer import BoundingBox, google_maps_url
from bottle_return.services.status_resolver import resolve_location_status


def _active_incidents_by_location(db: Session, location_ids: list[int]) -> dict[int, list[Incident]]:
    incidents_by_location: dict[int, list[Incident]] = defaultdict(list)
    if not location_ids:
        return incidents_by_location
    rows = db.execute(
        select(Incident)
        .where(Incident.location_id.in_(location_ids), Incident.status.in_(ACTIVE_INCIDENT_STATUSES))
        .order_by(Incident.created_at.desc())
    ).scalars()
    for incident in rows:
        incidents_by_location[incident.location_id].append(incident)
    return incidents_by_location


def _serialize(location: Location, incidents: list[Incident], now: datetime) -> dict:
    status = resolve_location_status(
        business_status=location.business_status,
        open_now=location.open_now,
        incidents=incidents,
        now=now,
        window=timedelta(hours=settings.recent_incident_hours),
    )
    return {
        'id': location.id,
        'name': location.name,
        'chain': location.chain,
        'address': location.address,
        'city': location.city,
        'postal_code': location.postal_code,
        'latitude': location.latitude,
        'longitude': location.longitude,
        'status': status,
        'opening_hours': location.opening_hours,
        'active_incidents': len(incidents),
        'last_updated': location.last_updated,
        'google_maps_url': google_maps_url(location.name, location.address, location.postal_code, location.city),
    }


def _serialize_many(db: Session, locations: list[Location], now: datetime | None) -> list[dict]:
    now = now or utc_now()
    incidents_by_location = _active_incidents_by_location(db, [location.id for location in locations])
    return [_serialize(location, incidents_by_location.get(location.id, []), now) for location in locations]


def list_locations(db: Session, *, bounds: BoundingBox | None = None, now: datetime | None = None) -> list[dict]:
    query = select(Location).order_by(Location.chain.asc(), Location.name.asc(), Location.id.asc())
    if bounds is not None:
        query = query.where(
            Location.latitude >= bounds.south,
            Location.latitude <= bounds.north,
            Location.longitude >= bounds.west,
            Location.longitude <= bounds.east,
        )
    locations = db.execute(query).scalars().all()
    return _serialize_many(db, locations, now)


def search_locations(db: Session, *, query: str, limit: int = 50, now: datetime | None = None) -> list[dict]:
    term = query.strip()
    if not term:
        return []
    pattern = f'%{term}%'
    locations = db.execute(
        select(Location)
        .where(
            or_(
                Location.name.ilike(pattern),
                Location.chain.ilike(pattern),
                Location.city.ilike(pattern),
                Location.postal_code.ilike(pattern),
                Location.address.ilike(pattern),
            )
        )
        .order_by(Location.chain.asc(), Location.name.asc(), Location.id.asc())
        .limit(limit)
    ).scalars().all()
    return _serialize_many(db, locations, now)


def get_location(db: Session, *, location_id: int, now: datetime | None = None) -> dict:
    location = db.get(Location, location_id)
    if not location:
        raise ValueError('Location not found')
    return _serialize_many(db, [location], now)[0]


def get_sync_metadata(db: Session) -> dict:
    metadata = db.get(SyncMetadata, SYNC_METADATA_ID)
    if not metadata:
        return {'last_sync': None, 'total_locations': None, 'status': None, 'error_message': None}
    return {
        'last_sync': metadata.last_sync,
        'total_locations': metadata.total_locations,
        'status': metadata.status,
        'error_message': metadata.error_message,
    }
