from __future__ import annotations

from collections.abc import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from rep_stock.config import settings


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA foreign_keys=ON')
    cursor.close()


def build_engine(url: str, *, echo: bool = False) -> Engine:
    if url.startswith('sqlite'):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool,
        )
        event.listen(engine, 'connect', _enable_sqlite_foreign_keys)
        return engine
    return create_engine(url, echo=echo, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


engine = build_engine(settings.database_url_normalized, echo=settings.database_echo)
SessionLocal = build_session_factory(engine)


def get_db(request: Request) -> Iterator[Session]:
    session_factory = getattr(request.app.state, 'session_factory', SessionLocal)
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
