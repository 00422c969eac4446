from __future__ import annotations

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from rep_stock.auth import Principal, get_current_principal, require_permission
from rep_stock.db import get_db
from rep_stock.dependencies import to_http_exception
from rep_stock.permissions import Permission
from rep_stock.security.csrf import verify_csrf
from rep_stock.services.system_setting_service import get_system_settings, update_system_settings

router = APIRouter(prefix='/api/system-settings', tags=['settings'])


@router.get('')
def read_settings(_: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return get_system_settings(db)


@router.post('')
def write_settings(
    values: dict[str, str | int | float | bool | None] = Body(...),
    _: Principal = Depends(require_permission(Permission.ACCESS_SETTINGS)),
    db: Session = Depends(get_db),
    __: None = Depends(verify_csrf),
):
    try:
        settings = update_system_settings(db, values)
    except ValueError as exc:
        raise to_http_exception(exc) from exc
    db.commit()
    return {'success': True, 'settings': settings}
