from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session, sessionmaker

from rep_stock.config import settings
from rep_stock.logging_config import configure_logging
from rep_stock.routers import auth, catalog, stock, system_settings, users
from rep_stock.security.csrf import install_csrf_cookie_middleware
from rep_stock.security.headers import install_security_headers
from rep_stock.security.sessions import install_auth_session_middleware
from rep_stock.services.image_service import uploads_path

logger = logging.getLogger(__name__)


def create_app(session_factory: sessionmaker[Session] | None = None) -> FastAPI:
    configure_logging(settings.log_level)

    app = FastAPI(title='Rep Stock Portal')
    if session_factory is not None:
        app.state.session_factory = session_factory

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.exception('Unhandled error on %s %s', request.method, request.url.path)
        return JSONResponse({'detail': 'Internal server error'}, status_code=500)

    # Last installed runs first: the CSRF cookie is issued even on 401 responses.
    install_security_headers(app)
    install_auth_session_middleware(app)
    install_csrf_cookie_middleware(app)

    app.include_router(auth.router)
    app.include_router(catalog.router)
    app.include_router(stock.router)
    app.include_router(users.router)
    app.include_router(system_settings.router)

    app.mount('/uploads', StaticFiles(directory=str(uploads_path())), name='uploads')

    @app.get('/robots.txt', response_class=PlainTextResponse)
    def robots_txt() -> str:
        return 'User-agent: *\nDisallow: /\n'

    return app


app = create_app()
