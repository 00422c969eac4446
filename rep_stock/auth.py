from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status

from rep_stock.models import UserRole
from rep_stock.permissions import Permission, role_has_permission


@dataclass
class Principal:
    id: int
    username: str
    name: str
    role: UserRole


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return principal


def require_permission(permission: Permission):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not role_has_permission(principal.role, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden: Insufficient permissions",
            )
        return principal

    return _dep
