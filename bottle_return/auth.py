from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status

from bottle_return.config import settings


@dataclass
class Principal:
    id: int
    username: str
    role: str
    active: bool


def get_optional_principal(request: Request) -> Principal | None:
    return getattr(request.state, 'principal', None)


def get_current_principal(request: Request) -> Principal:
    principal = get_optional_principal(request)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Authentication required')
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Access denied')
    return principal


def is_admin_role(role: str | None) -> bool:
    return bool(role) and role == settings.admin_role


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not is_admin_role(principal.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Access denied. Admin role required.')
    return principal
