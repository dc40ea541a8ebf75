from __future__ import annotations

from collections import defaultdict

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from bottle_return.models import (
    ACTIVE_INCIDENT_STATUSES,
    FINISHED_INCIDENT_STATUSES,
    SYNC_METADATA_ID,
    Incident,
    IncidentKind,
    IncidentPriority,
    IncidentStatus,
    Location,
    SyncMetadata,
    utc_now,
)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _get_incident(db: Session, incident_id: int) -> Incident:
    incident = db.get(Incident, incident_id)
    if not incident:
        raise ValueError('Incident not found')
    return incident


def create_incident(
    db: Session,
    *,
    location_id: int,
    kind: IncidentKind,
    description: str | None = None,
    reporter_name: str | None = None,
    reporter_email: str | None = None,
    priority: IncidentPriority = IncidentPriority.MEDIUM,
) -> Incident:
    if not db.get(Location, location_id):
        raise ValueError('Location not found')

    now = utc_now()
    incident = Incident(
        location_id=location_id,
        kind=kind,
        description=_clean(description),
        reporter_name=_clean(reporter_name),
        reporter_email=_clean(reporter_email),
        priority=priority,
        status=IncidentStatus.OPEN,
        created_at=now,
        updated_at=now,
    )
    db.add(incident)
    db.flush()
    return incident


def update_incident(
    db: Session,
    *,
    incident_id: int,
    status: IncidentStatus | None = None,
    priority: IncidentPriority | None = None,
    admin_note: str | None = None,
) -> Incident:
    if status is None and priority is None and admin_note is None:
        raise ValueError('Nothing to update')

    incident = _get_incident(db, incident_id)
    now = utc_now()
    if status is not None and status != incident.status:
        incident.status = status
        incident.resolved_at = now if status in FINISHED_INCIDENT_STATUSES else None
    if priority is not None:
        incident.priority = priority
    if admin_note is not None:
        incident.admin_note = _clean(admin_note)
    incident.updated_at = now
    db.flush()
    return incident


def bulk_resolve_incidents(db: Session, *, incident_ids: list[int], admin_note: str | None = None) -> int:
    """Mark every listed incident that is not already resolved as resolved.

    Returns the number of incidents that actually changed.
    """
    ids = sorted(set(incident_ids))
    if not ids:
        return 0

    note = _clean(admin_note)
    now = utc_now()
    incidents = db.execute(
        select(Incident)
        .where(Incident.id.in_(ids), Incident.status != IncidentStatus.RESOLVED)
        .with_for_update()
    ).scalars().all()
    for incident in incidents:
        incident.status = IncidentStatus.RESOLVED
        if note is not None:
            incident.admin_note = note
        incident.resolved_at = now
        incident.updated_at = now
    db.flush()
    return len(incidents)


def list_recent_incidents(
    db: Session,
    *,
    limit: int = 20,
    status: IncidentStatus | None = None,
) -> list[dict]:
    query = (
        select(Incident, Location.name.label('location_name'), Location.chain.label('chain'))
        .join(Location, Location.id == Incident.location_id)
        .order_by(Incident.created_at.desc(), Incident.id.desc())
        .limit(limit)
    )
    if status is not None:
        query = query.where(Incident.status == status)

    return [
        {
            'id': incident.id,
            'location_id': incident.location_id,
            'location_name': location_name,
            'chain': chain,
            'kind': incident.kind,
            'description': incident.description,
            'reporter_name': incident.reporter_name,
            'reporter_email': incident.reporter_email,
            'priority': incident.priority,
            'status': incident.status,
            'admin_note': incident.admin_note,
            'resolved_at': incident.resolved_at,
            'created_at': incident.created_at,
            'updated_at': incident.updated_at,
        }
        for incident, location_name, chain in db.execute(query).all()
    ]


def list_incident_summaries(db: Session, *, active_only: bool = False) -> list[dict]:
    is_active = Incident.status.in_(ACTIVE_INCIDENT_STATUSES)
    active_count = func.count(case((is_active, Incident.id))).label('active_incidents')
    rows = db.execute(
        select(
            Location.id,
            Location.name,
            Location.chain,
            Location.city,
            func.count(Incident.id).label('total_incidents'),
            active_count,
            func.max(case((is_active, Incident.created_at))).label('last_incident_date'),
        )
        .join(Incident, Incident.location_id == Location.id)
        .group_by(Location.id, Location.name, Location.chain, Location.city)
        .order_by(active_count.desc(), Location.name.asc())
    ).all()

    kinds_by_location: dict[int, set[str]] = defaultdict(set)
    for location_id, kind in db.execute(
        select(Incident.location_id, Incident.kind).where(is_active).distinct()
    ).all():
        kinds_by_location[location_id].add(kind.value if hasattr(kind, 'value') else kind)

    summaries = [
        {
            'location_id': row.id,
            'location_name': row.name,
            'chain': row.chain,
            'city': row.city,
            'total_incidents': row.total_incidents,
            'active_incidents': row.active_incidents,
            'active_incident_kinds': sorted(kinds_by_location.get(row.id, set())),
            'last_incident_date': row.last_incident_date,
        }
        for row in rows
    ]
    if active_only:
        summaries = [summary for summary in summaries if summary['active_incidents'] > 0]
    return summaries


def get_dashboard_stats(db: Session) -> dict:
    total_locations = db.execute(select(func.count(Location.id))).scalar_one()
    total_incidents, active_incidents, resolved_incidents = db.execute(
        select(
            func.count(Incident.id),
            func.count(case((Incident.status.in_(ACTIVE_INCIDENT_STATUSES), Incident.id))),
            func.count(case((Incident.status.in_(FINISHED_INCIDENT_STATUSES), Incident.id))),
        )
    ).one()
    last_sync = db.execute(select(SyncMetadata.last_sync).where(SyncMetadata.id == SYNC_METADATA_ID)).scalar_one_or_none()
    return {
        'total_locations': total_locations,
        'total_incidents': total_incidents,
        'active_incidents': active_incidents,
        'resolved_incidents': resolved_incidents,
        'last_sync_date': last_sync,
    }
