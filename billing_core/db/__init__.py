"""Relational store: tables, engine setup, and migrations."""

from .migrations import MIGRATIONS, Migration, apply_migrations, current_version
from .session import create_db_engine, create_session_factory
from .tables import (
    Base,
    CreditRow,
    InvoiceRow,
    ProductRow,
    SchemaVersionRow,
    ServiceRow,
    SettingRow,
    UTCDateTime,
)

__all__ = [
    "MIGRATIONS",
    "Migration",
    "apply_migrations",
    "current_version",
    "create_db_engine",
    "create_session_factory",
    "Base",
    "CreditRow",
    "InvoiceRow",
    "ProductRow",
    "SchemaVersionRow",
    "ServiceRow",
    "SettingRow",
    "UTCDateTime",
]
