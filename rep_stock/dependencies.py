from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from rep_stock.errors import NotFoundError

MAX_USER_AGENT_LENGTH = 512


@dataclass(frozen=True)
class ClientInfo:
    ip: str | None
    user_agent: str | None


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_client_info(request: Request) -> ClientInfo:
    user_agent = request.headers.get('user-agent')
    return ClientInfo(
        ip=get_client_ip(request),
        user_agent=user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None,
    )


def to_http_exception(exc: ValueError) -> HTTPException:
    """NotFoundError maps to 404; every other domain ValueError is a 400 carrying its message."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
