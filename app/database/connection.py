"""
Database connection management using SQLAlchemy.

This module handles engine and pool creation, session management, the
per-call statement deadline, and the SQL functions SQLite needs for title
search and genre containment.
"""

import json
import logging
import os
import re
import sqlite3
import time
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from app import config
from app.database.models import Base

logger = logging.getLogger(__name__)

# Number of SQLite VM instructions between deadline checks
SQLITE_PROGRESS_STEPS = 1000

# Connection-record info key holding the active (token, deadline) pair
DEADLINE_KEY = "statement_deadline"

_TOKEN_RE = re.compile(r"\w+")


def tokenize(value: Optional[str]) -> set:
    """Split text into lower-cased word tokens."""
    return set(_TOKEN_RE.findall((value or "").lower()))


def title_matches(title: Optional[str], phrase: Optional[str]) -> int:
    """
    SQLite function: 1 if every token of the phrase appears in the title.

    A phrase with no word tokens matches nothing, as plainto_tsquery does.
    """
    wanted = tokenize(phrase)
    return int(bool(wanted) and wanted <= tokenize(title))


def genres_contain(stored: Optional[str], required: Optional[str]) -> int:
    """SQLite function: 1 if the stored JSON genre list holds every required genre."""
    stored_genres = set(json.loads(stored)) if stored else set()
    required_genres = set(json.loads(required)) if required else set()
    return int(required_genres <= stored_genres)


def deadline_passed(info: dict) -> int:
    """Progress-handler check: 1 once the connection's active deadline is behind us."""
    entry = info.get(DEADLINE_KEY)
    return int(entry is not None and time.monotonic() > entry[1])


def sqlite_url(db_path: str) -> str:
    """
    Get SQLite database URL for a file path.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy database URL
    """
    db_dir = os.path.dirname(db_path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
    return f"sqlite:///{os.path.abspath(db_path)}"


@event.listens_for(Engine, "connect")
def register_sqlite_functions(dbapi_conn, connection_record):
    """
    Prepare every new SQLite connection.

    Enables foreign keys, registers the search helpers used by the
    listing query, and installs the progress handler that enforces
    statement deadlines. Other backends are left untouched.
    """
    if not isinstance(dbapi_conn, sqlite3.Connection):
        return
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
    dbapi_conn.create_function("title_matches", 2, title_matches, deterministic=True)
    dbapi_conn.create_function("genres_contain", 2, genres_contain, deterministic=True)
    info = connection_record.info
    dbapi_conn.set_progress_handler(lambda: deadline_passed(info), SQLITE_PROGRESS_STEPS)


@contextmanager
def statement_deadline(connection: Connection, seconds: float) -> Generator[None, None, None]:
    """
    Bound every statement issued on ``connection`` inside the block.

    PostgreSQL gets a transaction-scoped ``statement_timeout``. SQLite
    connections carry a progress handler that interrupts the running
    statement once the deadline stored in the connection record has passed.
    Either way the backend raises, and SQLAlchemy surfaces it as an
    ``OperationalError``. A COMMIT issued inside the block is bounded too.

    The SQLite deadline is only cleared if it is still ours: once the
    connection has been checked in, another caller may own it.
    """
    dialect = connection.dialect.name
    if dialect == "postgresql":
        connection.exec_driver_sql(f"SET LOCAL statement_timeout = {int(seconds * 1000)}")
        yield
    elif dialect == "sqlite":
        info = connection.info
        entry = (object(), time.monotonic() + seconds)
        info[DEADLINE_KEY] = entry
        try:
            yield
        finally:
            if info.get(DEADLINE_KEY) is entry:
                del info[DEADLINE_KEY]
    else:
        yield


def use_immediate_transactions(engine: Engine) -> None:
    """
    Make every SQLite transaction take the write lock when it begins.

    pysqlite defers BEGIN until the first write, so two transactions that
    both read and then write can deadlock instead of queueing behind the
    busy timeout. Emitting BEGIN IMMEDIATE ourselves serializes writers.
    """

    @event.listens_for(engine, "connect")
    def disable_driver_begin(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None

    @event.listens_for(engine, "begin")
    def begin_immediate(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    @event.listens_for(engine, "checkin")
    def clear_deadline(dbapi_conn, connection_record):
        connection_record.info.pop(DEADLINE_KEY, None)


def pool_settings(max_open_conns: int, max_idle_conns: int, max_idle_time: float, timeout: float) -> dict:
    """
    Translate connection limits into QueuePool arguments.

    QueuePool treats ``pool_size=0`` as unbounded, so at least one
    connection is always kept and the open-connection cap stays in force.

    Raises:
        ValueError: If max_open_conns is below 1 or max_idle_conns is negative
    """
    if max_open_conns < 1:
        raise ValueError("max_open_conns must be positive")
    if max_idle_conns < 0:
        raise ValueError("max_idle_conns must be non-negative")
    pool_size = max(1, min(max_idle_conns, max_open_conns))
    return {
        "pool_size": pool_size,
        "max_overflow": max_open_conns - pool_size,
        "pool_recycle": int(max_idle_time),
        "pool_timeout": timeout,
        "pool_pre_ping": True,
    }


class DatabaseManager:
    """
    Database connection manager.

    Handles engine creation, pool sizing, session management, and schema
    creation. The pool is shared by every caller; sessions are not.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        echo: bool = False,
        timeout: Optional[float] = None,
        max_open_conns: Optional[int] = None,
        max_idle_conns: Optional[int] = None,
        max_idle_time: Optional[float] = None,
    ):
        """
        Initialize database manager.

        Args:
            database_url: SQLAlchemy URL (default: from DATABASE_URL)
            echo: If True, log all SQL statements (useful for debugging)
            timeout: Per-call deadline in seconds (default: from DB_QUERY_TIMEOUT)
            max_open_conns: Upper bound on open connections
            max_idle_conns: Connections kept open in the pool while idle
            max_idle_time: Seconds before a pooled connection is recycled
        """
        self.database_url = database_url or config.get_database_url()
        self.timeout = timeout if timeout is not None else config.get_query_timeout()

        url = make_url(self.database_url)
        engine_args = {"echo": echo}
        if url.get_backend_name() == "sqlite":
            if url.database and url.database != ":memory:":
                self.database_url = sqlite_url(url.database)
            else:
                # In-memory databases live as long as their single connection
                engine_args["poolclass"] = StaticPool
            engine_args["connect_args"] = {
                "check_same_thread": False,
                "timeout": self.timeout,
            }
        else:
            engine_args.update(pool_settings(
                max_open_conns if max_open_conns is not None else config.get_max_open_conns(),
                max_idle_conns if max_idle_conns is not None else config.get_max_idle_conns(),
                max_idle_time if max_idle_time is not None else config.get_max_idle_time(),
                self.timeout,
            ))

        self.engine = create_engine(self.database_url, **engine_args)
        if url.get_backend_name() == "sqlite":
            use_immediate_transactions(self.engine)

        # Create session factory
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            info={"query_timeout": self.timeout},
        )

    def create_tables(self):
        """
        Create all tables defined in the models.

        This creates tables if they don't exist. Existing tables are not modified.
        """
        Base.metadata.create_all(bind=self.engine)

    def drop_tables(self):
        """
        Drop all tables defined in the models.

        WARNING: This will delete all data in the database!
        """
        Base.metadata.drop_all(bind=self.engine)

    def reset_database(self):
        """
        Drop and recreate all tables.

        WARNING: This will delete all data in the database!
        """
        self.drop_tables()
        self.create_tables()

    def ping(self) -> None:
        """
        Check that the database answers within the deadline.

        Raises:
            sqlalchemy.exc.SQLAlchemyError: If the database is unreachable
        """
        with self.engine.connect() as connection:
            with connection.begin():
                with statement_deadline(connection, self.timeout):
                    connection.execute(text("SELECT 1"))
        logger.info("database connection pool established")

    def get_session(self) -> Session:
        """
        Get a new database session.

        Returns:
            SQLAlchemy Session object
        """
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Context manager for database sessions.

        Automatically commits on success and rolls back on failure.

        Usage:
            with db_manager.session_scope() as session:
                movie = crud.get_movie(session, movie_id)

        Yields:
            SQLAlchemy Session object
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        """Close the database engine and all connections."""
        self.engine.dispose()


# Global database manager instance (singleton pattern)
_db_manager = None


def get_db_manager(database_url: Optional[str] = None, echo: Optional[bool] = None) -> DatabaseManager:
    """
    Get or create the global database manager instance.

    Args:
        database_url: SQLAlchemy URL (default: from DATABASE_URL)
        echo: If True, log all SQL statements (default: from DB_ECHO)

    Returns:
        DatabaseManager instance
    """
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager(
            database_url=database_url,
            echo=config.get_db_echo() if echo is None else echo,
        )
    return _db_manager
