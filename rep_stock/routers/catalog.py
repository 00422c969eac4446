from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from rep_stock.auth import Principal, get_current_principal, require_permission
from rep_stock.db import get_db
from rep_stock.dependencies import get_client_ip, to_http_exception
from rep_stock.permissions import Permission
from rep_stock.schemas import CategoryIn, CategoryOut, SpecialtyIn, SpecialtyOut, SpecialtyUpdate
from rep_stock.security.csrf import verify_csrf
from rep_stock.services import catalog_service
from rep_stock.services.audit_service import log_audit

router = APIRouter(prefix='/api', tags=['catalog'])

manage_specialties = require_permission(Permission.MANAGE_SPECIALTIES)
manage_categories = require_permission(Permission.ADD_ITEMS)


@router.get('/specialties', response_model=list[SpecialtyOut])
def list_specialties(_: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return catalog_service.list_specialties(db)


@router.get('/specialties/{specialty_id}', response_model=SpecialtyOut)
def get_specialty(specialty_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    try:
        return catalog_service.get_specialty(db, specialty_id)
    except ValueError as exc:
        raise to_http_exception(exc) from exc


@router.post('/specialties', response_model=SpecialtyOut, status_code=status.HTTP_201_CREATED)
def create_specialty(
    body: SpecialtyIn,
    request: Request,
    principal: Principal = Depends(manage_specialties),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        specialty = catalog_service.create_specialty(db, name=body.name, description=body.description)
    except ValueError as exc:
        raise to_http_exception(exc) from exc
    log_audit(
        db,
        actor_user_id=principal.id,
        action='SPECIALTY_CREATED',
        ip=get_client_ip(request),
        metadata={'specialty_id': specialty.id, 'name': specialty.name},
    )
    db.commit()
    return specialty


@router.put('/specialties/{specialty_id}', response_model=SpecialtyOut)
def update_specialty(
    specialty_id: int,
    body: SpecialtyUpdate,
    _: Principal = Depends(manage_specialties),
    db: Session = Depends(get_db),
    __: None = Depends(verify_csrf),
):
    try:
        specialty = catalog_service.update_specialty(db, specialty_id, name=body.name, description=body.description)
    except ValueError as exc:
        raise to_http_exception(exc) from exc
    db.commit()
    return specialty


@router.delete('/specialties/{specialty_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_specialty(
    specialty_id: int,
    request: Request,
    principal: Principal = Depends(manage_specialties),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        catalog_service.delete_specialty(db, specialty_id)
    except ValueError as exc:
        raise to_http_exception(exc) from exc
    log_audit(
        db,
        actor_user_id=principal.id,
        action='SPECIALTY_DELETED',
        ip=get_client_ip(request),
        metadata={'specialty_id': specialty_id},
    )
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get('/categories', response_model=list[CategoryOut])
def list_categories(_: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return catalog_service.list_categories(db)


@router.get('/categories/{category_id}', response_model=CategoryOut)
def get_category(category_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    try:
        return catalog_service.get_category(db, category_id)
    except ValueError as exc:
        raise to_http_exception(exc) from exc


@router.post('/categories', response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
def create_category(
    body: CategoryIn,
    _: Principal = Depends(manage_categories),
    db: Session = Depends(get_db),
    __: None = Depends(verify_csrf),
):
    try:
        category = catalog_service.create_category(db, name=body.name, color=body.color)
    except ValueError as exc:
        raise to_http_exception(exc) from exc
    db.commit()
    return category


@router.put('/categories/{category_id}', response_model=CategoryOut)
def update_category(
    category_id: int,
    body: CategoryIn,
    _: Principal = Depends(manage_categories),
    db: Session = Depends(get_db),
    __: None = Depends(verify_csrf),
):
    try:
        category = catalog_service.update_category(db, category_id, name=body.name, color=body.color)
    except ValueError as exc:
        raise to_http_exception(exc) from exc
    db.commit()
    return category


@router.delete('/categories/{category_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: int,
    _: Principal = Depends(manage_categories),
    db: Session = Depends(get_db),
    __: None = Depends(verify_csrf),
):
    try:
        catalog_service.delete_category(db, category_id)
    except ValueError as exc:
        raise to_http_exception(exc) from exc
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
