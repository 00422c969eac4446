from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from rep_stock.db import build_engine, build_session_factory
from rep_stock.models import Base, Category, StockItem, User, UserRole


def memory_session_factory() -> sessionmaker[Session]:
    engine = build_engine('sqlite+pysqlite:///:memory:')
    Base.metadata.create_all(engine)
    return build_session_factory(engine)


def add_user(db: Session, username: str, role: UserRole = UserRole.MEDICAL_REP, password_hash: str = 'x') -> User:
    user = User(username=username, password_hash=password_hash, name=username.title(), role=role)
    db.add(user)
    db.flush()
    return user


def add_category(db: Session, name: str = 'Samples', color: str = 'blue') -> Category:
    category = Category(name=name, color=color)
    db.add(category)
    db.flush()
    return category


def add_item(db: Session, *, category: Category, created_by: User, quantity: int = 100, name: str = 'Item X', **extra) -> StockItem:
    item = StockItem(name=name, category_id=category.id, quantity=quantity, created_by=created_by.id, **extra)
    db.add(item)
    db.flush()
    return item
