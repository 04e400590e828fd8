import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from errors import DatabaseUnavailable

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def _translate_connectivity_errors(context) -> None:
    if context.is_disconnect or isinstance(
        context.sqlalchemy_exception, (OperationalError, InterfaceError)
    ):
        raise DatabaseUnavailable() from context.original_exception


class Database:
    """Store client owning the engine and session factory.

    Nothing connects until ``open()``; every session request before that (or
    after ``close()``) raises ``DatabaseUnavailable``.
    """

    def __init__(self, url: Optional[str]) -> None:
        self.url = url
        self.engine: Optional[Engine] = None
        self._sessionmaker: Optional[sessionmaker] = None

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    def _create_engine(self) -> Engine:
        if not self.url:
            raise DatabaseUnavailable("Database not configured")
        kwargs: dict[str, object] = {}
        is_sqlite = self.url.startswith("sqlite")
        if is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                # in-memory databases vanish with their connection
                kwargs["poolclass"] = StaticPool
        eng = create_engine(self.url, **kwargs)
        if is_sqlite:
            event.listen(eng, "connect", _enable_sqlite_pragmas)
        event.listen(eng, "handle_error", _translate_connectivity_errors)
        return eng

    def open(self) -> None:
        if self.is_open:
            return
        if not self.url:
            raise DatabaseUnavailable("Database not configured")
        eng = self._create_engine()
        try:
            with eng.connect() as conn:
                conn.execute(text("SELECT 1"))
        except DatabaseUnavailable:
            eng.dispose()
            raise
        self.engine = eng
        self._sessionmaker = sessionmaker(
            bind=eng, autoflush=False, expire_on_commit=False
        )
        driver = self.url.split(":", 1)[0]
        logger.info(f"database_open: driver={driver}")

    def close(self) -> None:
        if self.engine is None:
            return
        self.engine.dispose()
        self.engine = None
        self._sessionmaker = None
        logger.info("database_closed")

    def create_all(self) -> None:
        if self.engine is None:
            raise DatabaseUnavailable("Database not configured")
        import models  # noqa: F401  registers the tables on Base

        Base.metadata.create_all(self.engine)

    def session(self) -> Session:
        if self._sessionmaker is None:
            raise DatabaseUnavailable("Database not configured")
        return self._sessionmaker()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        session = self.session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
