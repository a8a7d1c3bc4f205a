"""Database configuration: engine, sessions and reconnect handling."""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)

IN_MEMORY_SQLITE_URLS = ("sqlite://", "sqlite:///:memory:")


def _create_engine(database_url: str, echo: bool = False) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    connect_args = {"check_same_thread": False}
    if database_url in IN_MEMORY_SQLITE_URLS:
        # One shared connection, otherwise every session sees an empty database
        engine = create_engine(
            database_url, echo=echo, connect_args=connect_args, poolclass=StaticPool
        )
    else:
        engine = create_engine(database_url, echo=echo, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


class Database:
    """
    Database handle owned by the application.

    Wraps one SQLAlchemy engine. Connections are health-checked on
    checkout (pool_pre_ping); when the server has gone away, the pool is
    disposed and the connection retried once before the error propagates.
    """

    def __init__(self, database_url: str, echo: bool = False, reconnect_attempts: int = 2):
        self.database_url = database_url
        self.echo = echo
        self.reconnect_attempts = reconnect_attempts
        self.engine = _create_engine(database_url, echo=echo)

        if database_url.startswith("postgresql"):
            logger.info("Using PostgreSQL database")
        else:
            logger.info(f"Using database: {database_url.split('@')[-1]}")

    def _reconnect(self, retry_state) -> None:
        logger.warning(
            f"Database connection lost ({retry_state.outcome.exception()}), reconnecting"
        )
        self.engine.dispose()

    def ensure_connection(self) -> None:
        """
        Verify the database is reachable, recreating the pool on failure.

        Raises:
            OperationalError: if the database is still unreachable after retrying
        """
        for attempt in Retrying(
            retry=retry_if_exception_type((OperationalError, DBAPIError)),
            stop=stop_after_attempt(self.reconnect_attempts),
            wait=wait_fixed(0.5),
            before_sleep=self._reconnect,
            reraise=True,
        ):
            with attempt:
                with self.engine.connect() as connection:
                    connection.execute(text("SELECT 1"))

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Open a session for a unit of work outside a request."""
        self.ensure_connection()
        with Session(self.engine) as session:
            yield session

    def dispose(self) -> None:
        self.engine.dispose()
