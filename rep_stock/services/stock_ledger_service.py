"""Stock movement transaction and allocation balances.

Central inventory is never stored: it is the part of an item's total quantity
that no allocation row accounts for. ``move_stock`` is the only writer of
``StockAllocation`` balances.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rep_stock.errors import InsufficientStockError, InvalidArgumentError, NotFoundError
from rep_stock.models import StockAllocation, StockItem, StockMovement, User

logger = logging.getLogger(__name__)

CENTRAL_INVENTORY = 'central inventory'


@dataclass(frozen=True)
class SourceBalance:
    holder: str
    available: int
    allocation: StockAllocation | None


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def lock_stock_item(db: Session, stock_item_id: int) -> StockItem:
    """Load the item with a row lock. Writers that check allocation totals hold it until commit."""
    item = db.execute(
        select(StockItem)
        .where(StockItem.id == stock_item_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not item:
        raise NotFoundError(f'Stock item {stock_item_id} not found')
    return item


def _allocation_for(db: Session, *, stock_item_id: int, user_id: int) -> StockAllocation | None:
    return db.execute(
        select(StockAllocation).where(
            StockAllocation.stock_item_id == stock_item_id,
            StockAllocation.user_id == user_id,
        )
    ).scalar_one_or_none()


def allocated_total(db: Session, stock_item_id: int) -> int:
    total = db.execute(
        select(func.coalesce(func.sum(StockAllocation.quantity), 0)).where(
            StockAllocation.stock_item_id == stock_item_id
        )
    ).scalar_one()
    return int(total)


def central_available(db: Session, item: StockItem) -> int:
    return item.quantity - allocated_total(db, item.id)


def resolve_source_balance(db: Session, item: StockItem, from_user_id: int | None) -> SourceBalance:
    """What the source can give: the derived central pool, or the user's allocation (0 when none)."""
    if from_user_id is None:
        return SourceBalance(holder=CENTRAL_INVENTORY, available=central_available(db, item), allocation=None)

    allocation = _allocation_for(db, stock_item_id=item.id, user_id=from_user_id)
    return SourceBalance(
        holder=f'user {from_user_id}',
        available=allocation.quantity if allocation else 0,
        allocation=allocation,
    )


def move_stock(
    db: Session,
    *,
    stock_item_id: int,
    quantity: int,
    to_user_id: int | None,
    moved_by: int,
    from_user_id: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """Transfer ``quantity`` of an item to ``to_user_id`` and record the movement.

    Runs inside the caller's transaction: the caller commits on success and
    rolls back on any raised error. The item row is locked first so concurrent
    movements on the same item serialize.
    """
    item = lock_stock_item(db, stock_item_id)

    if not _is_positive_int(quantity):
        raise InvalidArgumentError('Quantity must be a positive integer')
    if to_user_id is None:
        raise InvalidArgumentError('Destination user is required')
    if db.get(User, to_user_id) is None:
        raise InvalidArgumentError(f'Destination user {to_user_id} not found')
    if from_user_id is not None and from_user_id == to_user_id:
        raise InvalidArgumentError('Source and destination must be different holders')

    source = resolve_source_balance(db, item, from_user_id)
    if quantity > source.available:
        raise InsufficientStockError(
            f'Insufficient stock at {source.holder} for item {item.id}: '
            f'requested {quantity}, available {source.available}',
            holder=source.holder,
            available=source.available,
            requested=quantity,
        )

    now = _now()
    if source.allocation is not None:
        source.allocation.quantity -= quantity

    destination = _allocation_for(db, stock_item_id=item.id, user_id=to_user_id)
    if destination is None:
        db.add(
            StockAllocation(
                user_id=to_user_id,
                stock_item_id=item.id,
                quantity=quantity,
                allocated_at=now,
                allocated_by=moved_by,
            )
        )
    else:
        destination.quantity += quantity
        destination.allocated_at = now
        destination.allocated_by = moved_by

    movement = StockMovement(
        stock_item_id=item.id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        quantity=quantity,
        notes=notes,
        moved_at=now,
        moved_by=moved_by,
    )
    db.add(movement)
    db.flush()

    logger.info(
        'Moved %s of stock item %s from %s to user %s (movement %s, by user %s)',
        quantity,
        item.id,
        source.holder,
        to_user_id,
        movement.id,
        moved_by,
    )
    return movement


def list_allocations(db: Session, user_id: int | None = None) -> list[StockAllocation]:
    query = select(StockAllocation)
    if user_id is not None:
        query = query.where(StockAllocation.user_id == user_id)
    return db.execute(query.order_by(StockAllocation.id.asc())).scalars().all()


def list_movements(
    db: Session,
    *,
    stock_item_id: int | None = None,
    user_id: int | None = None,
) -> list[StockMovement]:
    query = select(StockMovement)
    if stock_item_id is not None:
        query = query.where(StockMovement.stock_item_id == stock_item_id)
    if user_id is not None:
        query = query.where((StockMovement.from_user_id == user_id) | (StockMovement.to_user_id == user_id))
    return db.execute(query.order_by(StockMovement.moved_at.desc(), StockMovement.id.desc())).scalars().all()
