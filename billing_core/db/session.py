"""Engine and session factory for the billing store."""

from pathlib import Path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from billing_core.logging_config import get_logger

logger = get_logger(__name__)

SQLITE_BUSY_TIMEOUT_SECONDS = 30


def _is_memory_sqlite(url) -> bool:
    return url.database in (None, "", ":memory:") or "mode=memory" in str(url)


def _configure_sqlite(engine: Engine) -> None:
    """Let SQLAlchemy own transactions on pysqlite.

    pysqlite's own BEGIN handling breaks SAVEPOINT. Writers start with BEGIN
    IMMEDIATE so concurrent transactions queue on the busy timeout instead of
    failing on lock upgrade.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for database_url.

    SQLite file databases get their parent directory created. In-memory
    SQLite uses a single shared connection so every session sees the same
    database.
    """
    url = make_url(database_url)

    if url.get_backend_name() != "sqlite":
        engine = create_engine(url, echo=echo, pool_pre_ping=True)
        logger.info("database_engine_created", backend=url.get_backend_name())
        return engine

    connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
    if _is_memory_sqlite(url):
        engine = create_engine(url, echo=echo, connect_args=connect_args, poolclass=StaticPool)
    else:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(url, echo=echo, connect_args=connect_args)

    _configure_sqlite(engine)
    logger.info("database_engine_created", backend="sqlite", database=url.database or ":memory:")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory used as ``with factory.begin() as session``."""
    return sessionmaker(bind=engine, expire_on_commit=False)
