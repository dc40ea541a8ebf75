from __future__ import annotations

import argparse
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from bottle_return.config import settings
from bottle_return.db import SessionLocal
from bottle_return.models import (
    ACTIVE_INCIDENT_STATUSES,
    SYNC_METADATA_ID,
    Incident,
    Location,
    SyncMetadata,
    SyncRunStatus,
    as_utc,
    utc_now,
)
from bottle_return.services.location_normalizer import BoundingBox, NormalizedLocation, deduplicate, normalize_place
from bottle_return.services.places_provider import PlaceResult, PlacesApiError, PlacesProvider
from bottle_return.services.provider_factory import get_places_provider
from bottle_return.services.status_resolver import incident_window_start

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = (
    'name',
    'chain',
    'address',
    'city',
    'postal_code',
    'latitude',
    'longitude',
    'business_status',
    'open_now',
    'status',
    'opening_hours',
)


class SyncError(RuntimeError):
    pass


class SyncAlreadyRunningError(SyncError):
    pass


@dataclass
class SyncResult:
    fetched: int = 0
    unique: int = 0
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    failed_chains: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.inserted + self.updated


def default_bounds() -> BoundingBox:
    return BoundingBox(
        north=settings.bounds_north,
        south=settings.bounds_south,
        east=settings.bounds_east,
        west=settings.bounds_west,
    )


def _noop_report(_message: str) -> None:
    return None


def fetch_places(
    provider: PlacesProvider,
    chains: list[str],
    *,
    bounds: BoundingBox,
    result: SyncResult,
    delay_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
    report: Callable[[str], None] = _noop_report,
) -> list[PlaceResult]:
    """Search each chain in turn, keeping only results inside ``bounds``.

    Chains are searched strictly one after another with ``delay_seconds``
    between calls. A failed search is logged and skipped.
    """
    collected: list[PlaceResult] = []
    for idx, chain in enumerate(chains):
        if idx and delay_seconds > 0:
            sleep(delay_seconds)

        query = f'{chain} {settings.sync_query_suffix}'.strip()
        try:
            places = provider.search_text(query, place_type=settings.sync_place_type, region=settings.sync_region)
        except PlacesApiError as exc:
            logger.warning('Places search for %s failed: %s', chain, exc)
            result.failed_chains.append(chain)
            report(f'{chain}: search failed ({exc})')
            continue

        in_bounds = [place for place in places if bounds.contains(place.latitude, place.longitude)]
        skipped = len(places) - len(in_bounds)
        if skipped:
            logger.info('Discarded %s %s results outside the bounding box', skipped, chain)
        collected.extend(in_bounds)
        report(f'{chain}: {len(in_bounds)} locations found')
    return collected


def recent_incident_place_ids(db: Session, *, now: datetime, window: timedelta) -> set[str]:
    rows = db.execute(
        select(Location.google_place_id)
        .join(Incident, Incident.location_id == Location.id)
        .where(
            Location.google_place_id.is_not(None),
            Incident.status.in_(ACTIVE_INCIDENT_STATUSES),
            Incident.created_at >= incident_window_start(now, window),
        )
        .distinct()
    ).scalars()
    return set(rows)


def _find_unkeyed_location(db: Session, record: NormalizedLocation) -> Location | None:
    return db.execute(
        select(Location)
        .where(
            Location.google_place_id.is_(None),
            Location.name == record.name,
            Location.address == record.address,
            Location.city == record.city,
        )
        .order_by(Location.id.asc())
        .limit(1)
    ).scalar_one_or_none()


def _apply_record(location: Location, record: NormalizedLocation) -> None:
    for field_name in MUTABLE_FIELDS:
        value = getattr(record, field_name)
        if getattr(location, field_name) != value:
            setattr(location, field_name, value)


def upsert_locations(
    db: Session,
    records: list[NormalizedLocation],
    *,
    result: SyncResult,
    now: datetime,
    batch_size: int,
) -> None:
    """Insert new locations and update existing ones keyed on ``google_place_id``.

    Each record is written in its own savepoint so one bad row does not sink
    the batch; every batch is committed on its own.
    """
    batch_size = max(1, batch_size)
    for start in range(0, len(records), batch_size):
        batch = records[start : start + batch_size]
        place_ids = [record.google_place_id for record in batch if record.google_place_id]
        existing_by_place_id: dict[str, Location] = {}
        if place_ids:
            existing_by_place_id = {
                location.google_place_id: location
                for location in db.execute(
                    select(Location).where(Location.google_place_id.in_(place_ids))
                ).scalars()
            }

        for record in batch:
            created = False
            try:
                with db.begin_nested():
                    if record.google_place_id:
                        location = existing_by_place_id.get(record.google_place_id)
                    else:
                        location = _find_unkeyed_location(db, record)

                    if location is None:
                        location = Location(google_place_id=record.google_place_id, last_updated=now)
                        _apply_record(location, record)
                        db.add(location)
                        created = True
                    else:
                        _apply_record(location, record)
                        location.last_updated = now
            except SQLAlchemyError as exc:
                logger.warning('Skipping location %s (%s): %s', record.name, record.google_place_id, exc)
                result.failed += 1
                continue

            if created:
                result.inserted += 1
            else:
                result.updated += 1

        db.commit()


def acquire_run_lock(db: Session, *, now: datetime, stale_after: timedelta) -> None:
    metadata = db.get(SyncMetadata, SYNC_METADATA_ID, with_for_update=True)
    if metadata is None:
        metadata = SyncMetadata(id=SYNC_METADATA_ID)
        db.add(metadata)
    elif (
        metadata.status == SyncRunStatus.RUNNING
        and metadata.started_at is not None
        and as_utc(metadata.started_at) > now - stale_after
    ):
        db.rollback()
        raise SyncAlreadyRunningError(f'Another sync has been running since {as_utc(metadata.started_at).isoformat()}')

    metadata.status = SyncRunStatus.RUNNING
    metadata.started_at = now
    metadata.error_message = None
    db.commit()


def write_sync_metadata(
    db: Session,
    *,
    status: SyncRunStatus,
    now: datetime,
    total_locations: int | None = None,
    error_message: str | None = None,
) -> None:
    metadata = db.get(SyncMetadata, SYNC_METADATA_ID)
    if metadata is None:
        metadata = SyncMetadata(id=SYNC_METADATA_ID)
        db.add(metadata)

    metadata.status = status
    metadata.error_message = error_message
    if status == SyncRunStatus.SUCCESS:
        metadata.last_sync = now
        metadata.total_locations = total_locations
    db.commit()


def _record_failure(session_factory: sessionmaker, message: str, *, now: datetime) -> None:
    try:
        with session_factory() as db:
            write_sync_metadata(db, status=SyncRunStatus.ERROR, now=now, error_message=message)
    except SQLAlchemyError:
        logger.exception('Could not record sync failure')


def sync_locations(
    *,
    provider: PlacesProvider | None = None,
    session_factory: sessionmaker | None = None,
    chains: list[str] | None = None,
    bounds: BoundingBox | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], datetime] = utc_now,
    report: Callable[[str], None] = _noop_report,
) -> SyncResult:
    session_factory = session_factory or SessionLocal
    chains = list(chains if chains is not None else settings.sync_chains)
    bounds = bounds or default_bounds()
    window = timedelta(hours=settings.recent_incident_hours)

    if provider is None:
        try:
            provider = get_places_provider()
        except ValueError as exc:
            _record_failure(session_factory, str(exc), now=clock())
            raise SyncError(str(exc)) from exc

    started_at = clock()
    try:
        with session_factory() as db:
            acquire_run_lock(db, now=started_at, stale_after=timedelta(minutes=settings.sync_stale_lock_minutes))
    except SQLAlchemyError as exc:
        raise SyncError(f'Database unavailable: {exc}') from exc

    result = SyncResult()
    try:
        with session_factory() as db:
            flagged_place_ids = recent_incident_place_ids(db, now=started_at, window=window)

        places = fetch_places(
            provider,
            chains,
            bounds=bounds,
            result=result,
            delay_seconds=settings.sync_request_delay_ms / 1000,
            sleep=sleep,
            report=report,
        )
        records = [
            normalize_place(place, chains=chains, has_recent_incident=place.place_id in flagged_place_ids)
            for place in places
        ]
        result.fetched = len(records)

        unique_records = deduplicate(records)
        result.unique = len(unique_records)
        if unique_records:
            with session_factory() as db:
                upsert_locations(
                    db,
                    unique_records,
                    result=result,
                    now=clock(),
                    batch_size=settings.sync_batch_size,
                )
        else:
            logger.warning('No locations fetched; check the places API key and network connection')

        with session_factory() as db:
            write_sync_metadata(db, status=SyncRunStatus.SUCCESS, now=clock(), total_locations=result.processed)
    except Exception as exc:
        logger.exception('Location sync failed')
        _record_failure(session_factory, str(exc), now=clock())
        if isinstance(exc, SyncError):
            raise
        raise SyncError(str(exc)) from exc

    return result


def main() -> None:
    parser = argparse.ArgumentParser(description='Sync bottle-return locations from the places search API.')
    parser.parse_args()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    print(f"Starting location sync for {len(settings.sync_chains)} chains via '{settings.places_provider}'")
    try:
        result = sync_locations(report=print)
    except SyncError as exc:
        print(f'Location sync failed: {exc}')
        raise SystemExit(1) from exc

    print(
        'Location sync complete: '
        f'fetched={result.fetched}, unique={result.unique}, inserted={result.inserted}, '
        f'updated={result.updated}, failed={result.failed}, failed_chains={len(result.failed_chains)}'
    )


if __name__ == '__main__':
    main()
