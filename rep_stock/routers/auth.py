from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from rep_stock.auth import Principal, get_current_principal
from rep_stock.config import settings
from rep_stock.db import get_db
from rep_stock.dependencies import ClientInfo, get_client_info, get_client_ip, to_http_exception
from rep_stock.permissions import permission_map
from rep_stock.schemas import LoginIn, RegisterIn, UserOut
from rep_stock.security.csrf import verify_csrf
from rep_stock.security.passwords import verify_and_upgrade, verify_password
from rep_stock.security.sessions import create_web_session, revoke_web_session
from rep_stock.services.audit_service import log_audit, log_auth_event
from rep_stock.services.user_service import get_user, get_user_by_username, register_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/api', tags=['auth'])

INVALID_CREDENTIALS = 'Incorrect username or password'


def _session_response(payload: dict, token: str, status_code: int) -> JSONResponse:
    response = JSONResponse(payload, status_code=status_code)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


def _user_payload(user) -> dict:
    payload = UserOut.model_validate(user).model_dump(mode='json', by_alias=True)
    payload['permissions'] = permission_map(user.role)
    return payload


@router.post('/register')
def register(
    body: RegisterIn,
    client: ClientInfo = Depends(get_client_info),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        user = register_user(db, username=body.username, password=body.password, name=body.name, region=body.region)
    except ValueError as exc:
        raise to_http_exception(exc) from exc

    token = create_web_session(db, user.id, ip=client.ip, user_agent=client.user_agent)
    log_audit(db, actor_user_id=user.id, action='AUTH_REGISTER', ip=client.ip, metadata={'username': user.username})
    db.commit()
    return _session_response(_user_payload(user), token, status.HTTP_201_CREATED)


@router.post('/login')
def login(
    body: LoginIn,
    client: ClientInfo = Depends(get_client_info),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    username = body.username.strip()
    ip, user_agent = client.ip, client.user_agent

    user = get_user_by_username(db, username)
    failure_reason = None
    if not user:
        verify_password(body.password, None)
        failure_reason = 'UNKNOWN_USERNAME'
    else:
        valid, upgraded_hash = verify_and_upgrade(body.password, user.password_hash)
        if not valid:
            failure_reason = 'BAD_PASSWORD'
        elif upgraded_hash:
            user.password_hash = upgraded_hash

    if failure_reason:
        log_auth_event(
            db,
            attempted_username=username,
            success=False,
            failure_reason=failure_reason,
            user_id=user.id if user else None,
            ip=ip,
            user_agent=user_agent,
        )
        db.commit()
        logger.warning('Failed login for %r from %s: %s', username, ip, failure_reason)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)

    token = create_web_session(db, user.id, ip=ip, user_agent=user_agent)
    log_auth_event(
        db,
        attempted_username=username,
        success=True,
        failure_reason=None,
        user_id=user.id,
        ip=ip,
        user_agent=user_agent,
    )
    log_audit(db, actor_user_id=user.id, action='AUTH_LOGIN', ip=ip, metadata={'username': username})
    db.commit()
    return _session_response(_user_payload(user), token, status.HTTP_200_OK)


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db), _: None = Depends(verify_csrf)):
    principal = getattr(request.state, 'principal', None)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)

    log_audit(
        db,
        actor_user_id=principal.id if principal else None,
        action='AUTH_LOGOUT',
        ip=get_client_ip(request),
        metadata={},
    )
    db.commit()

    response = Response(status_code=status.HTTP_200_OK)
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/user')
def current_user(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    try:
        user = get_user(db, principal.id)
    except ValueError as exc:
        raise to_http_exception(exc) from exc
    return _user_payload(user)
