from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from bottle_return.models import IncidentKind, IncidentPriority, IncidentStatus, LocationStatus, SyncRunStatus


class LocationOut(BaseModel):
    id: int
    name: str
    chain: str
    address: str
    city: str
    postal_code: str
    latitude: float
    longitude: float
    status: LocationStatus
    opening_hours: dict[str, str] | None = None
    active_incidents: int = 0
    last_updated: datetime | None = None
    google_maps_url: str


class SyncMetadataOut(BaseModel):
    last_sync: datetime | None = None
    total_locations: int | None = None
    status: SyncRunStatus | None = None
    error_message: str | None = None


class IncidentCreate(BaseModel):
    location_id: int
    kind: IncidentKind
    description: str | None = Field(default=None, max_length=2000)
    reporter_name: str | None = Field(default=None, max_length=200)
    reporter_email: str | None = Field(default=None, max_length=320)
    priority: IncidentPriority = IncidentPriority.MEDIUM


class IncidentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    location_id: int
    kind: IncidentKind
    description: str | None = None
    reporter_name: str | None = None
    reporter_email: str | None = None
    priority: IncidentPriority
    status: IncidentStatus
    admin_note: str | None = None
    resolved_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class AdminIncidentOut(IncidentOut):
    location_name: str
    chain: str


class IncidentUpdate(BaseModel):
    status: IncidentStatus | None = None
    priority: IncidentPriority | None = None
    admin_note: str | None = Field(default=None, max_length=2000)


class BulkResolveRequest(BaseModel):
    incident_ids: list[int] = Field(min_length=1, max_length=500)
    admin_note: str | None = Field(default=None, max_length=2000)


class BulkResolveResponse(BaseModel):
    resolved_count: int


class IncidentSummaryOut(BaseModel):
    location_id: int
    location_name: str
    chain: str
    city: str
    total_incidents: int
    active_incidents: int
    active_incident_kinds: list[str]
    last_incident_date: datetime | None = None


class DashboardStatsOut(BaseModel):
    total_locations: int
    total_incidents: int
    active_incidents: int
    resolved_incidents: int
    last_sync_date: datetime | None = None


class SyncRunOut(BaseModel):
    fetched: int
    unique: int
    inserted: int
    updated: int
    failed: int
    failed_chains: list[str]


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=200)
    password: str = Field(min_length=1, max_length=500)


class PrincipalOut(BaseModel):
    id: int
    username: str
    role: str
