from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from bottle_return.routers import admin, auth, locations, sync
from bottle_return.security.csrf import install_csrf_cookie_middleware
from bottle_return.security.headers import install_security_headers
from bottle_return.security.sessions import install_auth_session_middleware

app = FastAPI(title='Bottle Return Points')

install_security_headers(app)
install_csrf_cookie_middleware(app)
install_auth_session_middleware(app)

app.include_router(auth.router)
app.include_router(locations.router)
app.include_router(admin.router)
app.include_router(sync.router)


@app.get('/healthz')
def healthz() -> dict:
    return {'status': 'ok'}


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /api/admin\n'
