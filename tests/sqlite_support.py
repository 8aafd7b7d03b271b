from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pharmacy_core.models import Base


def make_session_factory() -> sessionmaker[Session]:
    """Fresh in-memory database shared by every session of one test."""
    engine = create_engine('sqlite://', poolclass=StaticPool, connect_args={'check_same_thread': False})

    # pysqlite defers BEGIN on its own; emit it explicitly so SAVEPOINTs behave.
    @event.listens_for(engine, 'connect')
    def _disable_driver_transactions(dbapi_connection, _record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _begin(connection) -> None:
        connection.exec_driver_sql('BEGIN')

    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
