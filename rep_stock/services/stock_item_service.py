from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from rep_stock.errors import InvalidArgumentError, NotFoundError
from rep_stock.models import Category, Specialty, StockAllocation, StockItem
from rep_stock.services.stock_ledger_service import allocated_total, lock_stock_item

logger = logging.getLogger(__name__)

# Quantity and price columns are 32-bit INTEGER.
MAX_COLUMN_INT = 2**31 - 1

EDITABLE_FIELDS = (
    'name',
    'category_id',
    'specialty_id',
    'quantity',
    'price',
    'expiry',
    'unique_number',
    'image_url',
    'notes',
)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def price_to_cents(raw) -> int:
    """Convert a currency amount such as ``'10.99'`` to integer cents (``1099``), rounding half up."""
    if raw is None or (isinstance(raw, str) and raw.strip() == ''):
        return 0
    try:
        amount = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise InvalidArgumentError(f'Invalid price: {raw}') from exc
    if not amount.is_finite():
        raise InvalidArgumentError(f'Invalid price: {raw}')
    cents = int((amount * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    if cents < 0:
        raise InvalidArgumentError('Price cannot be negative')
    return cents


def cents_to_price(cents: int | None) -> Decimal:
    return (Decimal(cents or 0) / 100).quantize(Decimal('0.01'))


def parse_expiry(raw) -> datetime | None:
    if raw is None:
        return None
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, date):
        value = datetime.combine(raw, time.min)
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            value = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError as exc:
            raise InvalidArgumentError(f'Invalid expiry date: {text}') from exc
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _validate_name(name) -> str:
    name = (name or '').strip()
    if len(name) < 2:
        raise InvalidArgumentError('Item name must be at least 2 characters')
    return name


def _validate_quantity(quantity) -> int:
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise InvalidArgumentError('Quantity must be an integer')
    if quantity < 0:
        raise InvalidArgumentError('Quantity cannot be negative')
    if quantity > MAX_COLUMN_INT:
        raise InvalidArgumentError(f'Quantity cannot exceed {MAX_COLUMN_INT}')
    return quantity


def _validate_price(price) -> int:
    if not isinstance(price, int) or isinstance(price, bool):
        raise InvalidArgumentError('Price must be an integer amount of cents')
    if price < 0:
        raise InvalidArgumentError('Price cannot be negative')
    if price > MAX_COLUMN_INT:
        raise InvalidArgumentError('Price is too large')
    return price


def _ensure_category(db: Session, category_id) -> int:
    if category_id is None:
        raise InvalidArgumentError('Category is required')
    if db.get(Category, category_id) is None:
        raise InvalidArgumentError(f'Category {category_id} not found')
    return category_id


def _ensure_specialty(db: Session, specialty_id) -> int | None:
    if specialty_id is None:
        return None
    if db.get(Specialty, specialty_id) is None:
        raise InvalidArgumentError(f'Specialty {specialty_id} not found')
    return specialty_id


def get_stock_item(db: Session, item_id: int) -> StockItem:
    item = db.get(StockItem, item_id)
    if not item:
        raise NotFoundError('Stock item not found')
    return item


def list_stock_items(db: Session) -> list[StockItem]:
    return db.execute(select(StockItem).order_by(StockItem.id.asc())).scalars().all()


def list_stock_items_by_category(db: Session, category_id: int) -> list[StockItem]:
    return db.execute(
        select(StockItem).where(StockItem.category_id == category_id).order_by(StockItem.id.asc())
    ).scalars().all()


def create_stock_item(
    db: Session,
    *,
    name: str,
    category_id: int,
    quantity: int,
    created_by: int,
    price: int = 0,
    specialty_id: int | None = None,
    expiry: datetime | None = None,
    unique_number: str | None = None,
    image_url: str | None = None,
    notes: str | None = None,
) -> StockItem:
    item = StockItem(
        name=_validate_name(name),
        category_id=_ensure_category(db, category_id),
        specialty_id=_ensure_specialty(db, specialty_id),
        quantity=_validate_quantity(quantity),
        price=_validate_price(price),
        expiry=parse_expiry(expiry),
        unique_number=unique_number or None,
        image_url=image_url or None,
        notes=notes or None,
        created_by=created_by,
    )
    db.add(item)
    db.flush()
    logger.info('Created stock item %s (%s) with quantity %s', item.id, item.name, item.quantity)
    return item


def update_stock_item(db: Session, item_id: int, changes: dict) -> StockItem:
    """Apply a partial update. Quantity may not drop below what is currently allocated.

    The item row stays locked until the caller commits so no movement can
    allocate more between the floor check and the write.
    """
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise InvalidArgumentError(f'Unknown fields: {", ".join(sorted(unknown))}')
    item = lock_stock_item(db, item_id)

    if 'name' in changes:
        item.name = _validate_name(changes['name'])
    if 'category_id' in changes:
        item.category_id = _ensure_category(db, changes['category_id'])
    if 'specialty_id' in changes:
        item.specialty_id = _ensure_specialty(db, changes['specialty_id'])
    if 'quantity' in changes:
        quantity = _validate_quantity(changes['quantity'])
        allocated = allocated_total(db, item.id)
        if quantity < allocated:
            raise InvalidArgumentError(
                f'Quantity {quantity} is below the {allocated} units currently allocated to users'
            )
        item.quantity = quantity
    if 'price' in changes:
        item.price = _validate_price(changes['price'])
    if 'expiry' in changes:
        item.expiry = parse_expiry(changes['expiry'])
    for field in ('unique_number', 'image_url', 'notes'):
        if field in changes:
            setattr(item, field, changes[field] or None)

    db.flush()
    logger.info('Updated stock item %s fields: %s', item.id, ', '.join(sorted(changes)))
    return item


def delete_stock_item(db: Session, item_id: int) -> StockItem:
    """Delete the item and its allocations. Movement history is kept."""
    item = get_stock_item(db, item_id)
    db.execute(delete(StockAllocation).where(StockAllocation.stock_item_id == item.id))
    db.delete(item)
    db.flush()
    logger.info('Deleted stock item %s (%s)', item.id, item.name)
    return item


def get_expiring_items(db: Session, days: int, now: datetime | None = None) -> list[StockItem]:
    if not isinstance(days, int) or isinstance(days, bool) or days < 1:
        raise InvalidArgumentError('Days must be a positive integer')
    start = now or _now()
    try:
        end = start + timedelta(days=days)
    except OverflowError:
        end = datetime.max.replace(tzinfo=timezone.utc)
    return db.execute(
        select(StockItem)
        .where(
            StockItem.expiry.is_not(None),
            StockItem.expiry >= start,
            StockItem.expiry <= end,
        )
        .order_by(StockItem.expiry.asc(), StockItem.id.asc())
    ).scalars().all()
