from fastapi import FastAPI, Request
from starlette.responses import Response


ADMIN_PATH_PREFIX = '/api/admin'

COMMON_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'Referrer-Policy': 'same-origin',
    'X-Frame-Options': 'DENY',
}
ADMIN_HEADERS = {
    'X-Robots-Tag': 'noindex, nofollow, noarchive',
    'Cache-Control': 'no-store',
}


def install_security_headers(app: FastAPI) -> None:
    @app.middleware('http')
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        headers = dict(COMMON_HEADERS)
        if request.url.path.startswith(ADMIN_PATH_PREFIX):
            headers.update(ADMIN_HEADERS)
        for name, value in headers.items():
            response.headers.setdefault(name, value)
        return response
