from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from bottle_return.auth import Principal, require_admin
from bottle_return.db import get_db
from bottle_return.models import IncidentStatus
from bottle_return.routers.sync import run_sync, sync_result_payload
from bottle_return.schemas import (
    AdminIncidentOut,
    BulkResolveRequest,
    BulkResolveResponse,
    DashboardStatsOut,
    IncidentOut,
    IncidentSummaryOut,
    IncidentUpdate,
    SyncRunOut,
)
from bottle_return.security.csrf import verify_csrf
from bottle_return.services.audit_service import AuditAction, log_audit
from bottle_return.services.incident_service import (
    bulk_resolve_incidents,
    get_dashboard_stats,
    list_incident_summaries,
    list_recent_incidents,
    update_incident,
)

router = APIRouter(prefix='/api/admin', tags=['admin'])


@router.get('/stats', response_model=DashboardStatsOut)
def dashboard_stats(_: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    return get_dashboard_stats(db)


@router.get('/incidents', response_model=list[AdminIncidentOut])
def recent_incidents(
    limit: int = Query(default=20, ge=1, le=200),
    status: IncidentStatus | None = None,
    _: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return list_recent_incidents(db, limit=limit, status=status)


@router.get('/incident-summaries', response_model=list[IncidentSummaryOut])
def incident_summaries(
    active_only: bool = True,
    _: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return list_incident_summaries(db, active_only=active_only)


@router.patch('/incidents/{incident_id}', response_model=IncidentOut)
def patch_incident(
    incident_id: int,
    payload: IncidentUpdate,
    request: Request,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        incident = update_incident(
            db,
            incident_id=incident_id,
            status=payload.status,
            priority=payload.priority,
            admin_note=payload.admin_note,
        )
    except ValueError as exc:
        status_code = 404 if 'not found' in str(exc) else 400
        raise HTTPException(status_code=status_code, detail=str(exc)) from exc

    log_audit(
        db,
        request,
        action=AuditAction.INCIDENT_UPDATED,
        actor_principal_id=principal.id,
        metadata={'incident_id': incident_id, **payload.model_dump(mode='json', exclude_none=True)},
    )
    db.commit()
    return incident


@router.post('/incidents/bulk-resolve', response_model=BulkResolveResponse)
def bulk_resolve(
    payload: BulkResolveRequest,
    request: Request,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    resolved_count = bulk_resolve_incidents(db, incident_ids=payload.incident_ids, admin_note=payload.admin_note)
    log_audit(
        db,
        request,
        action=AuditAction.INCIDENTS_BULK_RESOLVED,
        actor_principal_id=principal.id,
        metadata={'incident_ids': payload.incident_ids, 'resolved_count': resolved_count},
    )
    db.commit()
    return {'resolved_count': resolved_count}


@router.post('/sync', response_model=SyncRunOut)
def sync_now(
    request: Request,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    payload = sync_result_payload(run_sync())
    log_audit(db, request, action=AuditAction.LOCATIONS_SYNCED, actor_principal_id=principal.id, metadata=payload)
    db.commit()
    return payload
