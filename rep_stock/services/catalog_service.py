from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from rep_stock.errors import InvalidArgumentError, NotFoundError
from rep_stock.models import Category, Specialty, StockItem


def _required_text(value, field: str) -> str:
    value = (value or '').strip()
    if not value:
        raise InvalidArgumentError(f'{field} is required')
    return value


def _ensure_unique_name(db: Session, model, name: str, *, exclude_id: int | None = None) -> None:
    query = select(model.id).where(model.name == name)
    if exclude_id is not None:
        query = query.where(model.id != exclude_id)
    if db.execute(query).first():
        raise InvalidArgumentError(f'{model.__name__} "{name}" already exists')


def list_specialties(db: Session) -> list[Specialty]:
    return db.execute(select(Specialty).order_by(Specialty.name.asc())).scalars().all()


def get_specialty(db: Session, specialty_id: int) -> Specialty:
    specialty = db.get(Specialty, specialty_id)
    if not specialty:
        raise NotFoundError('Specialty not found')
    return specialty


def create_specialty(db: Session, *, name: str, description: str | None = None) -> Specialty:
    name = _required_text(name, 'Name')
    _ensure_unique_name(db, Specialty, name)
    specialty = Specialty(name=name, description=(description or '').strip() or None)
    db.add(specialty)
    db.flush()
    return specialty


def update_specialty(db: Session, specialty_id: int, *, name: str | None = None, description: str | None = None) -> Specialty:
    specialty = get_specialty(db, specialty_id)
    if name is not None:
        name = _required_text(name, 'Name')
        _ensure_unique_name(db, Specialty, name, exclude_id=specialty.id)
        specialty.name = name
    if description is not None:
        specialty.description = description.strip() or None
    db.flush()
    return specialty


def delete_specialty(db: Session, specialty_id: int) -> None:
    specialty = get_specialty(db, specialty_id)
    db.delete(specialty)
    db.flush()


def list_categories(db: Session) -> list[Category]:
    return db.execute(select(Category).order_by(Category.name.asc())).scalars().all()


def get_category(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if not category:
        raise NotFoundError('Category not found')
    return category


def create_category(db: Session, *, name: str, color: str) -> Category:
    name = _required_text(name, 'Name')
    color = _required_text(color, 'Color')
    _ensure_unique_name(db, Category, name)
    category = Category(name=name, color=color)
    db.add(category)
    db.flush()
    return category


def update_category(db: Session, category_id: int, *, name: str, color: str) -> Category:
    category = get_category(db, category_id)
    name = _required_text(name, 'Name')
    _ensure_unique_name(db, Category, name, exclude_id=category.id)
    category.name = name
    category.color = _required_text(color, 'Color')
    db.flush()
    return category


def delete_category(db: Session, category_id: int) -> None:
    category = get_category(db, category_id)
    in_use = db.execute(select(StockItem.id).where(StockItem.category_id == category.id).limit(1)).first()
    if in_use:
        raise InvalidArgumentError('Cannot delete category that is in use by stock items')
    db.delete(category)
    db.flush()
