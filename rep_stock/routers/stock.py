from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from rep_stock.auth import Principal, get_current_principal, require_permission
from rep_stock.config import settings
from rep_stock.db import get_db
from rep_stock.dependencies import get_client_ip, to_http_exception
from rep_stock.permissions import Permission
from rep_stock.schemas import AllocationOut, MovementIn, MovementOut, StockItemOut
from rep_stock.security.csrf import verify_csrf
from rep_stock.services import stock_item_service
from rep_stock.services.audit_service import log_audit
from rep_stock.services.image_service import delete_image, save_image
from rep_stock.services.stock_ledger_service import list_allocations, list_movements, move_stock

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/api', tags=['stock'])

# multipart field -> service field
FORM_INT_FIELDS = {'categoryId': 'category_id', 'specialtyId': 'specialty_id', 'quantity': 'quantity'}
FORM_TEXT_FIELDS = {'name': 'name', 'uniqueNumber': 'unique_number', 'notes': 'notes', 'expiry': 'expiry'}


def _parse_int(field: str, raw) -> int | None:
    text = str(raw).strip()
    if text == '' or text.lower() == 'null':
        return None
    try:
        return int(text)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f'Invalid integer for {field}') from exc


def _parse_stock_form(form) -> dict:
    values: dict = {}
    for form_key, field in FORM_INT_FIELDS.items():
        if form_key in form:
            values[field] = _parse_int(form_key, form.get(form_key))
    for form_key, field in FORM_TEXT_FIELDS.items():
        if form_key in form:
            values[field] = str(form.get(form_key))
    if 'price' in form:
        try:
            values['price'] = stock_item_service.price_to_cents(form.get('price'))
        except ValueError as exc:
            raise to_http_exception(exc) from exc
    return values


def _uploaded_image(form) -> UploadFile | None:
    upload = form.get('image')
    if isinstance(upload, UploadFile) and upload.filename:
        return upload
    return None


def _parse_days(raw: str | None) -> int:
    if raw is None or raw.strip() == '':
        return settings.default_expiring_days
    try:
        days = int(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail='Days must be a positive integer') from exc
    if days < 1:
        raise HTTPException(status_code=400, detail='Days must be a positive integer')
    return days


@router.get('/stock-items', response_model=list[StockItemOut])
def list_stock_items(
    category_id: int | None = Query(default=None, alias='categoryId', gt=0),
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    if category_id is not None:
        return stock_item_service.list_stock_items_by_category(db, category_id)
    return stock_item_service.list_stock_items(db)


@router.get('/stock-items/expiring', response_model=list[StockItemOut])
def expiring_stock_items(
    days: str | None = Query(default=None),
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        return stock_item_service.get_expiring_items(db, _parse_days(days))
    except ValueError as exc:
        raise to_http_exception(exc) from exc


@router.get('/stock-items/{item_id}', response_model=StockItemOut)
def get_stock_item(item_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    try:
        return stock_item_service.get_stock_item(db, item_id)
    except ValueError as exc:
        raise to_http_exception(exc) from exc


@router.post('/stock-items', response_model=StockItemOut, status_code=status.HTTP_201_CREATED)
async def create_stock_item(
    request: Request,
    principal: Principal = Depends(require_permission(Permission.ADD_ITEMS)),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    values = _parse_stock_form(form)
    values.setdefault('quantity', None)
    values.setdefault('category_id', None)
    values.setdefault('name', '')
    if values['quantity'] is None:
        raise HTTPException(status_code=400, detail='Quantity is required')

    image_url = None
    upload = _uploaded_image(form)
    try:
        if upload:
            image_url = await save_image(upload)
        item = stock_item_service.create_stock_item(db, created_by=principal.id, image_url=image_url, **values)
    except ValueError as exc:
        db.rollback()
        delete_image(image_url)
        raise to_http_exception(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='STOCK_ITEM_CREATED',
        ip=get_client_ip(request),
        metadata={'stock_item_id': item.id, 'quantity': item.quantity},
    )
    db.commit()
    return item


@router.put('/stock-items/{item_id}', response_model=StockItemOut)
async def update_stock_item(
    item_id: int,
    request: Request,
    principal: Principal = Depends(require_permission(Permission.EDIT_ITEMS)),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    changes = _parse_stock_form(form)
    if changes.get('quantity', 0) is None:
        raise HTTPException(status_code=400, detail='Quantity cannot be blank')

    new_image_url = None
    old_image_url = None
    upload = _uploaded_image(form)
    try:
        existing = stock_item_service.get_stock_item(db, item_id)
        old_image_url = existing.image_url
        if upload:
            new_image_url = await save_image(upload)
            changes['image_url'] = new_image_url
        item = stock_item_service.update_stock_item(db, item_id, changes)
    except ValueError as exc:
        db.rollback()
        delete_image(new_image_url)
        raise to_http_exception(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='STOCK_ITEM_UPDATED',
        ip=get_client_ip(request),
        metadata={'stock_item_id': item.id, 'fields': sorted(changes)},
    )
    db.commit()
    if new_image_url and old_image_url != new_image_url:
        delete_image(old_image_url)
    return item


@router.delete('/stock-items/{item_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_stock_item(
    item_id: int,
    request: Request,
    principal: Principal = Depends(require_permission(Permission.REMOVE_ITEMS)),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        item = stock_item_service.delete_stock_item(db, item_id)
    except ValueError as exc:
        raise to_http_exception(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='STOCK_ITEM_DELETED',
        ip=get_client_ip(request),
        metadata={'stock_item_id': item_id, 'name': item.name},
    )
    db.commit()
    delete_image(item.image_url)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get('/allocations', response_model=list[AllocationOut])
def allocations(
    user_id: int | None = Query(default=None, alias='userId', gt=0),
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return list_allocations(db, user_id=user_id)


@router.get('/movements', response_model=list[MovementOut])
def movements(
    stock_item_id: int | None = Query(default=None, alias='stockItemId', gt=0),
    user_id: int | None = Query(default=None, alias='userId', gt=0),
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return list_movements(db, stock_item_id=stock_item_id, user_id=user_id)


@router.post('/movements', response_model=MovementOut, status_code=status.HTTP_201_CREATED)
def create_movement(
    body: MovementIn,
    request: Request,
    principal: Principal = Depends(require_permission(Permission.MOVE_STOCK)),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        movement = move_stock(
            db,
            stock_item_id=body.stock_item_id,
            quantity=body.quantity,
            from_user_id=body.from_user_id,
            to_user_id=body.to_user_id,
            moved_by=principal.id,
            notes=body.notes,
        )
    except ValueError as exc:
        db.rollback()
        logger.info('Rejected stock movement by user %s: %s', principal.id, exc)
        raise to_http_exception(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='STOCK_MOVED',
        ip=get_client_ip(request),
        metadata={
            'movement_id': movement.id,
            'stock_item_id': movement.stock_item_id,
            'from_user_id': movement.from_user_id,
            'to_user_id': movement.to_user_id,
            'quantity': movement.quantity,
        },
    )
    db.commit()
    return movement
