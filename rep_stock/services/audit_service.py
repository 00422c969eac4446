from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from rep_stock.models import AuditLog, AuthEvent

logger = logging.getLogger(__name__)


def log_auth_event(
    db: Session,
    *,
    attempted_username: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    user_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    db.add(
        AuthEvent(
            attempted_username=attempted_username,
            success=success,
            failure_reason=failure_reason,
            user_id=user_id,
            ip=ip,
            user_agent=user_agent,
        )
    )


def log_audit(
    db: Session,
    *,
    actor_user_id: int | None,
    action: str,
    ip: str | None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            ip=ip,
            meta=metadata or {},
        )
    )
    logger.debug('Audit %s by user %s from %s', action, actor_user_id, ip)
