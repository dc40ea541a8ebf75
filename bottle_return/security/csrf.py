from __future__ import annotations

import secrets

from fastapi import HTTPException, Request, status

from bottle_return.config import settings


CSRF_COOKIE_NAME = 'csrf_token'
CSRF_HEADER_NAME = 'x-csrf-token'
SAFE_METHODS = frozenset({'GET', 'HEAD', 'OPTIONS'})


def install_csrf_cookie_middleware(app) -> None:
    """Hand every client a readable CSRF cookie that JSON clients echo back in a header."""

    @app.middleware('http')
    async def csrf_cookie_middleware(request: Request, call_next):
        existing = request.cookies.get(CSRF_COOKIE_NAME)
        request.state.csrf_token = existing or secrets.token_urlsafe(24)

        response = await call_next(request)
        if not existing:
            response.set_cookie(
                key=CSRF_COOKIE_NAME,
                value=request.state.csrf_token,
                httponly=False,
                secure=settings.session_cookie_secure,
                samesite=settings.session_cookie_samesite,
            )
        return response


def verify_csrf(request: Request) -> None:
    if request.method in SAFE_METHODS:
        return

    sent = request.headers.get(CSRF_HEADER_NAME, '')
    expected = request.cookies.get(CSRF_COOKIE_NAME, '')
    if not sent or not expected or not secrets.compare_digest(sent, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Invalid CSRF token')
