"""Opaque, database-backed admin sessions.

The cookie only carries a random token; expiry slides forward on every
request that presents a live token.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta

from fastapi import FastAPI, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from bottle_return.auth import Principal
from bottle_return.config import settings
from bottle_return.db import SessionLocal
from bottle_return.models import Principal as PrincipalModel
from bottle_return.models import WebSession, as_utc, utc_now


SESSION_TOKEN_BYTES = 48


def _expires_after(now: datetime) -> datetime:
    return now + timedelta(minutes=settings.session_ttl_minutes)


def create_web_session(db: Session, principal_id: int, *, ip: str | None, user_agent: str | None) -> str:
    token = secrets.token_urlsafe(SESSION_TOKEN_BYTES)
    db.add(
        WebSession(
            session_token=token,
            principal_id=principal_id,
            ip=ip,
            user_agent=user_agent,
            expires_at=_expires_after(utc_now()),
        )
    )
    db.flush()
    return token


def revoke_web_session(db: Session, token: str) -> bool:
    web_session = db.execute(
        select(WebSession).where(WebSession.session_token == token, WebSession.revoked_at.is_(None))
    ).scalar_one_or_none()
    if web_session is None:
        return False
    web_session.revoked_at = utc_now()
    return True


def load_principal_from_token(db: Session, token: str | None) -> Principal | None:
    if not token:
        return None

    row = db.execute(
        select(WebSession, PrincipalModel)
        .join(PrincipalModel, PrincipalModel.id == WebSession.principal_id)
        .where(WebSession.session_token == token, WebSession.revoked_at.is_(None))
    ).one_or_none()
    if row is None:
        return None

    web_session, principal = row
    now = utc_now()
    if as_utc(web_session.expires_at) <= now:
        return None

    web_session.last_seen_at = now
    web_session.expires_at = _expires_after(now)
    return Principal(id=principal.id, username=principal.username, role=principal.role, active=principal.active)


def install_auth_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        request.state.principal = None
        token = request.cookies.get(settings.session_cookie_name)
        if token:
            with SessionLocal() as db:
                request.state.principal = load_principal_from_token(db, token)
                db.commit()
        return await call_next(request)
