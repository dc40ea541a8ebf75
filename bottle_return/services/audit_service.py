from __future__ import annotations

from fastapi import Request
from sqlalchemy.orm import Session

from bottle_return.dependencies import get_client_ip, get_user_agent
from bottle_return.models import AuditLog, AuthEvent


class AuditAction:
    LOGIN = 'AUTH_LOGIN'
    LOGOUT = 'AUTH_LOGOUT'
    INCIDENT_UPDATED = 'INCIDENT_UPDATED'
    INCIDENTS_BULK_RESOLVED = 'INCIDENTS_BULK_RESOLVED'
    LOCATIONS_SYNCED = 'LOCATIONS_SYNCED'


class LoginFailure:
    UNKNOWN_USERNAME = 'UNKNOWN_USERNAME'
    INACTIVE_PRINCIPAL = 'INACTIVE_PRINCIPAL'
    BAD_PASSWORD = 'BAD_PASSWORD'


def log_login_attempt(
    db: Session,
    request: Request,
    *,
    username: str,
    principal_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    """Record a login attempt; it counts as successful when no failure reason is given."""
    db.add(
        AuthEvent(
            attempted_username=username,
            success=failure_reason is None,
            failure_reason=failure_reason,
            principal_id=principal_id,
            ip=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
    )


def log_audit(
    db: Session,
    request: Request,
    *,
    action: str,
    actor_principal_id: int | None = None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor_principal_id=actor_principal_id,
            action=action,
            ip=get_client_ip(request),
            meta=metadata or {},
        )
    )
