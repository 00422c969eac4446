from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
Identifier = BigInteger().with_variant(Integer(), 'sqlite')


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Base(DeclarativeBase):
    pass


class UserRole(str, Enum):
    CEO = 'ceo'
    MARKETER = 'marketer'
    SALES_MANAGER = 'salesManager'
    STOCK_MANAGER = 'stockManager'
    ADMIN = 'admin'
    MEDICAL_REP = 'medicalRep'


class Specialty(Base):
    __tablename__ = 'specialties'

    id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())


class Category(Base):
    __tablename__ = 'categories'

    id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    color: Mapped[str] = mapped_column(Text, nullable=False)


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name='user_role', values_callable=lambda roles: [role.value for role in roles]),
        nullable=False,
    )
    region: Mapped[str | None] = mapped_column(Text)
    avatar: Mapped[str | None] = mapped_column(Text)
    specialty_id: Mapped[int | None] = mapped_column(Identifier, ForeignKey('specialties.id', ondelete='SET NULL'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())


class StockItem(Base):
    __tablename__ = 'stock_items'
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='stock_items_quantity_non_negative'),
        CheckConstraint('price >= 0', name='stock_items_price_non_negative'),
    )

    id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[int] = mapped_column(Identifier, ForeignKey('categories.id'), nullable=False)
    specialty_id: Mapped[int | None] = mapped_column(Identifier, ForeignKey('specialties.id', ondelete='SET NULL'))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    # Minor currency units (cents).
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    unique_number: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    created_by: Mapped[int] = mapped_column(Identifier, nullable=False)


class StockAllocation(Base):
    __tablename__ = 'stock_allocations'
    __table_args__ = (
        UniqueConstraint('user_id', 'stock_item_id', name='stock_allocations_user_item_key'),
        CheckConstraint('quantity >= 0', name='stock_allocations_quantity_non_negative'),
    )

    id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    user_id: Mapped[int] = mapped_column(Identifier, ForeignKey('users.id'), nullable=False)
    stock_item_id: Mapped[int] = mapped_column(
        Identifier, ForeignKey('stock_items.id', ondelete='CASCADE'), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    allocated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    allocated_by: Mapped[int] = mapped_column(Identifier, nullable=False)


class StockMovement(Base):
    """Append-only ledger row. References are plain ids so history outlives the item and users."""

    __tablename__ = 'stock_movements'
    __table_args__ = (CheckConstraint('quantity > 0', name='stock_movements_quantity_positive'),)

    id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    stock_item_id: Mapped[int] = mapped_column(Identifier, nullable=False, index=True)
    # NULL means the quantity came from central inventory.
    from_user_id: Mapped[int | None] = mapped_column(Identifier)
    to_user_id: Mapped[int] = mapped_column(Identifier, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    moved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    moved_by: Mapped[int] = mapped_column(Identifier, nullable=False)


class SystemSetting(Base):
    __tablename__ = 'system_settings'

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[str | None] = mapped_column(Text)


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    attempted_username: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[int | None] = mapped_column(Identifier, ForeignKey('users.id', ondelete='SET NULL'))
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    actor_user_id: Mapped[int | None] = mapped_column(Identifier, ForeignKey('users.id', ondelete='SET NULL'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(Identifier, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
