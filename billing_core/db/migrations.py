"""Ordered schema migrations applied once at startup.

Each migration runs in its own transaction together with the insert into
schema_version, so a failed migration leaves no version row behind and is
retried on the next start.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import Connection, Engine, select
from sqlalchemy.exc import SQLAlchemyError

from billing_core.errors import MigrationError
from billing_core.logging_config import get_logger
from billing_core.utils.invoice_number import DEFAULT_PREFIX

from .tables import CORE_TABLES, InvoiceRow, SchemaVersionRow, SettingRow

logger = get_logger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    apply: Callable[[Connection], None]


def _create_core_tables(conn: Connection) -> None:
    for table in CORE_TABLES:
        table.create(conn, checkfirst=True)


def _ensure_cycle_unique_index(conn: Connection) -> None:
    # Stores created before the index existed only have the window check.
    for index in InvoiceRow.__table__.indexes:
        if index.name == "uq_invoices_service_cycle":
            index.create(conn, checkfirst=True)


def _seed_default_settings(conn: Connection) -> None:
    existing = conn.execute(select(SettingRow.key).where(SettingRow.key == "invoice_prefix")).first()
    if existing is None:
        conn.execute(SettingRow.__table__.insert().values(key="invoice_prefix", value=DEFAULT_PREFIX))


MIGRATIONS: list[Migration] = [
    Migration(1, "create core tables", _create_core_tables),
    Migration(2, "unique invoice per service cycle", _ensure_cycle_unique_index),
    Migration(3, "seed default settings", _seed_default_settings),
]


def current_version(engine: Engine) -> int:
    """Highest applied migration version, 0 for an empty store."""
    with engine.begin() as conn:
        SchemaVersionRow.__table__.create(conn, checkfirst=True)
        versions = conn.execute(select(SchemaVersionRow.version)).scalars().all()
    return max(versions, default=0)


def apply_migrations(engine: Engine, migrations: list[Migration] = MIGRATIONS) -> list[int]:
    """Apply pending migrations in order.

    Returns:
        Versions applied by this call (empty when the store is up to date)

    Raises:
        MigrationError: If a migration fails
    """
    applied_before = current_version(engine)
    applied: list[int] = []

    for migration in sorted(migrations, key=lambda m: m.version):
        if migration.version <= applied_before:
            continue
        try:
            with engine.begin() as conn:
                migration.apply(conn)
                conn.execute(
                    SchemaVersionRow.__table__.insert().values(
                        version=migration.version,
                        description=migration.description,
                        applied_at=datetime.now(timezone.utc),
                    )
                )
        except SQLAlchemyError as e:
            logger.error(
                "migration_failed",
                version=migration.version,
                description=migration.description,
                error=str(e),
            )
            raise MigrationError(f"Migration {migration.version} ({migration.description}) failed: {e}") from e

        applied.append(migration.version)
        logger.info("migration_applied", version=migration.version, description=migration.description)

    if not applied:
        logger.debug("migrations_up_to_date", version=applied_before)
    return applied
