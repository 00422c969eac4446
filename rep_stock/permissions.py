from __future__ import annotations

from enum import Enum

from rep_stock.models import UserRole


class Permission(str, Enum):
    VIEW_ALL = 'canViewAll'
    ADD_ITEMS = 'canAddItems'
    EDIT_ITEMS = 'canEditItems'
    REMOVE_ITEMS = 'canRemoveItems'
    MOVE_STOCK = 'canMoveStock'
    MANAGE_USERS = 'canManageUsers'
    VIEW_REPORTS = 'canViewReports'
    ACCESS_SETTINGS = 'canAccessSettings'
    MANAGE_SPECIALTIES = 'canManageSpecialties'
    SEE_ALL_SPECIALTIES = 'canSeeAllSpecialties'


def _grants(*permissions: Permission) -> frozenset[Permission]:
    return frozenset(permissions)


_ITEM_EDITING = (Permission.ADD_ITEMS, Permission.EDIT_ITEMS, Permission.REMOVE_ITEMS)

ROLE_PERMISSIONS: dict[UserRole, frozenset[Permission]] = {
    UserRole.CEO: frozenset(Permission),
    UserRole.MARKETER: _grants(*_ITEM_EDITING, Permission.MOVE_STOCK),
    UserRole.SALES_MANAGER: _grants(*_ITEM_EDITING, Permission.MOVE_STOCK),
    UserRole.STOCK_MANAGER: _grants(*_ITEM_EDITING, Permission.ACCESS_SETTINGS),
    UserRole.ADMIN: _grants(
        Permission.VIEW_ALL,
        *_ITEM_EDITING,
        Permission.MANAGE_USERS,
        Permission.VIEW_REPORTS,
        Permission.ACCESS_SETTINGS,
        Permission.MANAGE_SPECIALTIES,
        Permission.SEE_ALL_SPECIALTIES,
    ),
    UserRole.MEDICAL_REP: frozenset(),
}


def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def role_has_permission(role: UserRole | str | None, permission: Permission | str) -> bool:
    """Look up ``permission`` for ``role``; anything unknown is denied and the CEO is always allowed."""
    resolved_role = _coerce(UserRole, role)
    if resolved_role is None:
        return False
    if resolved_role == UserRole.CEO:
        return True
    resolved_permission = _coerce(Permission, permission)
    if resolved_permission is None:
        return False
    return resolved_permission in ROLE_PERMISSIONS.get(resolved_role, frozenset())


def permission_map(role: UserRole | str | None) -> dict[str, bool]:
    return {permission.value: role_has_permission(role, permission) for permission in Permission}
