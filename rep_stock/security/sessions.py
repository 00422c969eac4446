from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select

from rep_stock.auth import Principal
from rep_stock.config import settings
from rep_stock.db import SessionLocal
from rep_stock.models import User, UserRole, WebSession


AUTH_EXEMPT_PATHS = {'/api/login', '/api/register'}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _session_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.session_ttl_minutes)


def create_web_session(db, user_id: int, ip: str | None, user_agent: str | None) -> str:
    token = secrets.token_urlsafe(48)
    web_session = WebSession(
        session_token=token,
        user_id=user_id,
        ip=ip,
        user_agent=user_agent,
        expires_at=_session_expiry(),
    )
    db.add(web_session)
    db.flush()
    return token


def revoke_web_session(db, token: str) -> None:
    session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not session or session.revoked_at is not None:
        return
    session.revoked_at = _now()


def load_principal_from_token(db, token: str | None) -> Principal | None:
    if not token:
        return None

    row = db.execute(
        select(WebSession, User)
        .join(User, User.id == WebSession.user_id)
        .where(WebSession.session_token == token)
    ).one_or_none()
    if not row:
        return None

    web_session, user = row
    now = _now()
    if web_session.revoked_at is not None or _as_utc(web_session.expires_at) <= now:
        return None

    web_session.last_seen_at = now
    web_session.expires_at = _session_expiry()
    return Principal(
        id=user.id,
        username=user.username,
        name=user.name,
        role=UserRole(user.role),
    )


def _requires_principal(path: str) -> bool:
    return path.startswith('/api/') and path not in AUTH_EXEMPT_PATHS


def install_auth_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        token = request.cookies.get(settings.session_cookie_name)
        session_factory = getattr(request.app.state, 'session_factory', SessionLocal)
        with session_factory() as db:
            principal = load_principal_from_token(db, token)
            request.state.principal = principal
            db.commit()

        if _requires_principal(request.url.path) and request.state.principal is None:
            return JSONResponse({'detail': 'Unauthorized'}, status_code=401)

        response = await call_next(request)
        return response
