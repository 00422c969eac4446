from __future__ import annotations

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from rep_stock.errors import InvalidArgumentError, NotFoundError
from rep_stock.models import Specialty, StockAllocation, User, UserRole
from rep_stock.permissions import Permission, role_has_permission
from rep_stock.security.passwords import hash_password

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('username', 'password', 'name', 'role', 'region', 'avatar', 'specialty_id')


def _required_text(value, field: str) -> str:
    value = (value or '').strip()
    if not value:
        raise InvalidArgumentError(f'{field} is required')
    return value


def _parse_role(role) -> UserRole:
    try:
        return UserRole(role)
    except ValueError as exc:
        raise InvalidArgumentError(f'Unknown role: {role}') from exc


def _ensure_username_free(db: Session, username: str, *, exclude_id: int | None = None) -> None:
    query = select(User.id).where(User.username == username)
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    if db.execute(query).first():
        raise InvalidArgumentError('Username already exists')


def _ensure_specialty(db: Session, specialty_id) -> int | None:
    if specialty_id is None:
        return None
    if db.get(Specialty, specialty_id) is None:
        raise InvalidArgumentError(f'Specialty {specialty_id} not found')
    return specialty_id


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError('User not found')
    return user


def get_user_by_username(db: Session, username: str) -> User | None:
    return db.execute(select(User).where(User.username == username)).scalar_one_or_none()


def list_users(db: Session, role: UserRole | str | None = None) -> list[User]:
    query = select(User)
    if role is not None:
        query = query.where(User.role == _parse_role(role))
    return db.execute(query.order_by(User.id.asc())).scalars().all()


def create_user(
    db: Session,
    *,
    username: str,
    password: str,
    name: str,
    role: UserRole | str = UserRole.MEDICAL_REP,
    region: str | None = None,
    avatar: str | None = None,
    specialty_id: int | None = None,
) -> User:
    username = _required_text(username, 'Username')
    if not password:
        raise InvalidArgumentError('Password is required')
    _ensure_username_free(db, username)
    user = User(
        username=username,
        password_hash=hash_password(password),
        name=_required_text(name, 'Name'),
        role=_parse_role(role),
        region=region or None,
        avatar=avatar or None,
        specialty_id=_ensure_specialty(db, specialty_id),
    )
    db.add(user)
    db.flush()
    logger.info('Created user %s (%s) with role %s', user.id, user.username, user.role.value)
    return user


def register_user(db: Session, *, username: str, password: str, name: str, region: str | None = None) -> User:
    """Self-registration always yields a medical rep; other roles are assigned by user managers."""
    return create_user(
        db,
        username=username,
        password=password,
        name=name,
        role=UserRole.MEDICAL_REP,
        region=region,
    )


def update_user(db: Session, user_id: int, changes: dict) -> User:
    user = get_user(db, user_id)
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise InvalidArgumentError(f'Unknown fields: {", ".join(sorted(unknown))}')

    if 'username' in changes:
        username = _required_text(changes['username'], 'Username')
        _ensure_username_free(db, username, exclude_id=user.id)
        user.username = username
    if changes.get('password'):
        user.password_hash = hash_password(changes['password'])
    if 'name' in changes:
        user.name = _required_text(changes['name'], 'Name')
    if 'role' in changes:
        user.role = _parse_role(changes['role'])
    if 'region' in changes:
        user.region = changes['region'] or None
    if 'avatar' in changes:
        user.avatar = changes['avatar'] or None
    if 'specialty_id' in changes:
        user.specialty_id = _ensure_specialty(db, changes['specialty_id'])

    db.flush()
    return user


def delete_user(db: Session, user_id: int, *, acting_user_id: int) -> None:
    if user_id == acting_user_id:
        raise InvalidArgumentError('Cannot delete your own account')
    user = get_user(db, user_id)
    held = db.execute(
        select(func.coalesce(func.sum(StockAllocation.quantity), 0)).where(StockAllocation.user_id == user.id)
    ).scalar_one()
    if held > 0:
        raise InvalidArgumentError(
            f'Cannot delete user {user.username}: {held} units are still allocated. Move them first.'
        )
    # Only drained allocation rows remain.
    db.execute(delete(StockAllocation).where(StockAllocation.user_id == user.id))
    db.delete(user)
    db.flush()
    logger.info('Deleted user %s (%s)', user.id, user.username)


def has_permission(db: Session, user_id: int, permission: Permission | str) -> bool:
    user = db.get(User, user_id)
    if user is None:
        return False
    return role_has_permission(user.role, permission)
