from __future__ import annotations

import secrets

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from bottle_return.config import settings
from bottle_return.db import get_db
from bottle_return.dependencies import get_bearer_token
from bottle_return.schemas import SyncRunOut
from bottle_return.services.audit_service import AuditAction, log_audit
from bottle_return.sync_locations import SyncAlreadyRunningError, SyncError, SyncResult, sync_locations

router = APIRouter(prefix='/api', tags=['sync'])


def run_sync() -> SyncResult:
    try:
        return sync_locations()
    except SyncAlreadyRunningError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except SyncError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


def sync_result_payload(result: SyncResult) -> dict:
    return {
        'fetched': result.fetched,
        'unique': result.unique,
        'inserted': result.inserted,
        'updated': result.updated,
        'failed': result.failed,
        'failed_chains': result.failed_chains,
    }


def verify_sync_token(request: Request) -> None:
    expected = settings.sync_token
    provided = get_bearer_token(request)
    if not expected or not provided or not secrets.compare_digest(provided, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Unauthorized')


@router.post('/sync', response_model=SyncRunOut)
def trigger_sync(
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_sync_token),
):
    payload = sync_result_payload(run_sync())
    log_audit(db, request, action=AuditAction.LOCATIONS_SYNCED, metadata=payload)
    db.commit()
    return payload
