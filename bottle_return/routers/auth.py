from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from bottle_return.auth import Principal, get_current_principal, get_optional_principal
from bottle_return.config import settings
from bottle_return.db import get_db
from bottle_return.dependencies import get_client_ip, get_user_agent
from bottle_return.models import Principal as PrincipalModel
from bottle_return.models import utc_now
from bottle_return.schemas import LoginRequest, PrincipalOut
from bottle_return.security.csrf import verify_csrf
from bottle_return.security.passwords import check_password
from bottle_return.security.sessions import create_web_session, revoke_web_session
from bottle_return.services.audit_service import AuditAction, LoginFailure, log_audit, log_login_attempt

router = APIRouter(prefix='/api', tags=['auth'])


def _reject_login(db: Session, request: Request, *, username: str, reason: str, principal_id: int | None = None):
    log_login_attempt(db, request, username=username, principal_id=principal_id, failure_reason=reason)
    db.commit()
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid username or password')


@router.post('/login', response_model=PrincipalOut)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    username = payload.username.strip()
    principal = db.execute(select(PrincipalModel).where(PrincipalModel.username == username)).scalar_one_or_none()
    if not principal:
        _reject_login(db, request, username=username, reason=LoginFailure.UNKNOWN_USERNAME)
    if not principal.active:
        _reject_login(db, request, username=username, reason=LoginFailure.INACTIVE_PRINCIPAL, principal_id=principal.id)

    valid, upgraded_hash = check_password(payload.password, principal.password_hash)
    if not valid:
        _reject_login(db, request, username=username, reason=LoginFailure.BAD_PASSWORD, principal_id=principal.id)
    if upgraded_hash:
        principal.password_hash = upgraded_hash
        principal.updated_at = utc_now()

    token = create_web_session(db, principal.id, ip=get_client_ip(request), user_agent=get_user_agent(request))
    log_login_attempt(db, request, username=username, principal_id=principal.id)
    log_audit(db, request, action=AuditAction.LOGIN, actor_principal_id=principal.id, metadata={'username': username})
    db.commit()

    response = JSONResponse({'id': principal.id, 'username': principal.username, 'role': principal.role})
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/logout', status_code=status.HTTP_204_NO_CONTENT)
def logout(request: Request, db: Session = Depends(get_db), _: None = Depends(verify_csrf)):
    principal = get_optional_principal(request)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)

    log_audit(db, request, action=AuditAction.LOGOUT, actor_principal_id=principal.id if principal else None)
    db.commit()

    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/me', response_model=PrincipalOut)
def me(principal: Principal = Depends(get_current_principal)):
    return {'id': principal.id, 'username': principal.username, 'role': principal.role}
