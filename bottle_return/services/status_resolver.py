"""Availability status for a bottle-return point.

Rules are applied in priority order and the first match wins:

1. the business is closed permanently or temporarily -> closed
2. an open/investigating incident was reported recently -> closed
3. live opening hours say open or closed -> passed through
4. nothing known -> closed
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any, Protocol

from bottle_return.models import ACTIVE_INCIDENT_STATUSES, LocationStatus, as_utc

CLOSED_BUSINESS_STATUSES = frozenset({'CLOSED_PERMANENTLY', 'CLOSED_TEMPORARILY'})
RECENT_INCIDENT_WINDOW = timedelta(hours=24)


class IncidentLike(Protocol):
    status: Any
    created_at: datetime


def resolve_status(
    *,
    business_status: str | None,
    has_recent_incident: bool,
    open_now: bool | None,
) -> LocationStatus:
    if business_status and business_status.upper() in CLOSED_BUSINESS_STATUSES:
        return LocationStatus.CLOSED
    if has_recent_incident:
        return LocationStatus.CLOSED
    if open_now is not None:
        return LocationStatus.OPEN if open_now else LocationStatus.CLOSED
    return LocationStatus.CLOSED


def open_now_from_hours(opening_hours: dict | None) -> bool | None:
    """Return the explicit ``open_now`` flag of a raw opening-hours payload, if any."""
    if not opening_hours:
        return None
    value = opening_hours.get('open_now')
    if isinstance(value, bool):
        return value
    return None


def incident_window_start(now: datetime, window: timedelta = RECENT_INCIDENT_WINDOW) -> datetime:
    return as_utc(now) - window


def is_recent_active_incident(
    incident: IncidentLike,
    *,
    now: datetime,
    window: timedelta = RECENT_INCIDENT_WINDOW,
) -> bool:
    if incident.status not in ACTIVE_INCIDENT_STATUSES:
        return False
    return as_utc(incident.created_at) >= incident_window_start(now, window)


def has_recent_active_incident(
    incidents: Iterable[IncidentLike],
    *,
    now: datetime,
    window: timedelta = RECENT_INCIDENT_WINDOW,
) -> bool:
    return any(is_recent_active_incident(incident, now=now, window=window) for incident in incidents)


def resolve_location_status(
    *,
    business_status: str | None,
    open_now: bool | None,
    incidents: Iterable[IncidentLike],
    now: datetime,
    window: timedelta = RECENT_INCIDENT_WINDOW,
) -> LocationStatus:
    """Read-time variant working on incident rows that were already loaded for the location."""
    return resolve_status(
        business_status=business_status,
        has_recent_incident=has_recent_active_incident(incidents, now=now, window=window),
        open_now=open_now,
    )
