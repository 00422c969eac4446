from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from rep_stock.errors import InvalidArgumentError
from rep_stock.models import SystemSetting


def get_system_settings(db: Session) -> dict[str, str | None]:
    rows = db.execute(select(SystemSetting).order_by(SystemSetting.key.asc())).scalars().all()
    return {row.key: row.value for row in rows}


def update_system_settings(db: Session, values: dict) -> dict[str, str | None]:
    for key, value in values.items():
        key = str(key).strip()
        if not key:
            raise InvalidArgumentError('Setting keys cannot be empty')
        row = db.get(SystemSetting, key)
        stored = None if value is None else str(value)
        if row is None:
            db.add(SystemSetting(key=key, value=stored))
        else:
            row.value = stored
    db.flush()
    return get_system_settings(db)
