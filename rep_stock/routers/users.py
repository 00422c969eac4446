from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from rep_stock.auth import Principal, get_current_principal, require_permission
from rep_stock.db import get_db
from rep_stock.dependencies import get_client_ip, to_http_exception
from rep_stock.models import UserRole
from rep_stock.permissions import Permission
from rep_stock.schemas import UserOut, UserUpdate
from rep_stock.security.csrf import verify_csrf
from rep_stock.services import user_service
from rep_stock.services.audit_service import log_audit

router = APIRouter(prefix='/api/users', tags=['users'])

manage_users = require_permission(Permission.MANAGE_USERS)


@router.get('', response_model=list[UserOut])
def list_users(
    role: UserRole | None = Query(default=None),
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return user_service.list_users(db, role=role)


@router.get('/{user_id}', response_model=UserOut)
def get_user(user_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    try:
        return user_service.get_user(db, user_id)
    except ValueError as exc:
        raise to_http_exception(exc) from exc


@router.put('/{user_id}', response_model=UserOut)
def update_user(
    user_id: int,
    body: UserUpdate,
    request: Request,
    principal: Principal = Depends(manage_users),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    changes = body.model_dump(exclude_unset=True)
    try:
        user = user_service.update_user(db, user_id, changes)
    except ValueError as exc:
        raise to_http_exception(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_UPDATED',
        ip=get_client_ip(request),
        # Field names only; never the password value.
        metadata={'user_id': user_id, 'fields': sorted(changes)},
    )
    db.commit()
    return user


@router.delete('/{user_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: int,
    request: Request,
    principal: Principal = Depends(manage_users),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        user_service.delete_user(db, user_id, acting_user_id=principal.id)
    except ValueError as exc:
        raise to_http_exception(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_DELETED',
        ip=get_client_ip(request),
        metadata={'user_id': user_id},
    )
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
