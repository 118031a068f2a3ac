import logging
from collections.abc import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, DisconnectionError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


class DatabaseConnectionError(Exception):
    """Raised when the DB connection fails (e.g. psycopg2 OperationalError).

    Routes can catch this and return 503 / log as needed.
    """


class Database:
    """Store handle owned by the process entry point.

    Nothing is connected until ``open()``; ``close()`` disposes the pool.
    """

    def __init__(self, url: str):
        self.url = url
        self.engine: Engine | None = None
        self._sessionmaker: sessionmaker | None = None

    def open(self) -> "Database":
        if self.engine is not None:
            return self
        is_sqlite = self.url.startswith("sqlite")
        self.engine = create_engine(
            self.url,
            connect_args={"check_same_thread": False} if is_sqlite else {},
            # Help detect and recycle stale/closed connections (useful for SSL disconnects)
            pool_pre_ping=True,
        )
        if is_sqlite:
            # Enforce foreign keys so ON DELETE CASCADE works
            @event.listens_for(self.engine, "connect")
            def _set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        # Import models so every table is registered on Base.metadata
        from models import (  # noqa: F401
            refresh_token,
            session,
            social_login,
            user,
            verification,
        )

        Base.metadata.create_all(bind=self.engine)
        self._sessionmaker = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )
        return self

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self._sessionmaker = None

    def session(self) -> Session:
        if self._sessionmaker is None:
            raise DatabaseConnectionError("Database is not open")
        return self._sessionmaker()


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.db.session()
    try:
        try:
            yield db
        except (OperationalError, DBAPIError, DisconnectionError) as e:
            # Log the original DBAPI error for diagnostics; re-raise custom error
            logging.getLogger("app.database").exception(
                "Database operational error: %s", e
            )
            raise DatabaseConnectionError(str(e)) from e
    finally:
        db.close()
