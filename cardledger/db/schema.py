"""
Idempotent schema evolution.

Runs at every startup before anything else touches storage:

1. Create tables and indexes that do not exist yet.
2. Add columns the models expect but an older store lacks, each with an
   explicit default.

Nothing is ever dropped or altered in place. A second run against an
up-to-date store changes nothing.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import Column, Table, inspect
from sqlalchemy.engine import Connection, Dialect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.sql.elements import ClauseElement

from cardledger.models.db import Base
from cardledger.models.failure import SchemaFailure

logger = logging.getLogger(__name__)


@dataclass
class SchemaReport:
    """Structural changes made by one schema evolution run."""

    created_tables: list[str] = field(default_factory=list)
    created_indexes: list[str] = field(default_factory=list)
    added_columns: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created_tables or self.created_indexes or self.added_columns)


def _default_sql(column: Column[object], dialect: Dialect) -> str:
    server_default = column.server_default
    if server_default is None:
        if not column.nullable:
            raise SchemaFailure(
                f"Cannot add NOT NULL column {column.table.name}.{column.name}",
                detail="Column has no server default to backfill existing rows",
            )
        return "NULL"

    arg = server_default.arg  # type: ignore[attr-defined]
    if isinstance(arg, ClauseElement):
        return str(arg.compile(dialect=dialect, compile_kwargs={"literal_binds": True}))
    return "'" + str(arg).replace("'", "''") + "'"


def add_column_ddl(table: Table, column: Column[object], dialect: Dialect) -> str:
    """Render ALTER TABLE ... ADD COLUMN with an explicit default."""
    quote = dialect.identifier_preparer.quote
    column_type = column.type.compile(dialect=dialect)
    ddl = f"ALTER TABLE {quote(table.name)} ADD COLUMN {quote(column.name)} {column_type}"
    if not column.nullable:
        ddl += " NOT NULL"
    return ddl + f" DEFAULT {_default_sql(column, dialect)}"


def _evolve(conn: Connection, log: logging.Logger) -> SchemaReport:
    report = SchemaReport()
    inspector = inspect(conn)
    existing_tables = set(inspector.get_table_names())

    for table in Base.metadata.sorted_tables:
        if table.name not in existing_tables:
            table.create(conn)
            report.created_tables.append(table.name)
            log.info("Created table %s", table.name)
            continue

        live_columns = {col["name"] for col in inspector.get_columns(table.name)}
        for column in table.columns:
            if column.name in live_columns or column.primary_key:
                continue
            conn.exec_driver_sql(add_column_ddl(table, column, conn.dialect))
            report.added_columns.append(f"{table.name}.{column.name}")
            log.info("Added column %s.%s", table.name, column.name)

        live_indexes = {ix["name"] for ix in inspector.get_indexes(table.name)}
        for index in table.indexes:
            if index.name in live_indexes:
                continue
            index.create(conn)
            report.created_indexes.append(str(index.name))
            log.info("Created index %s on %s", index.name, table.name)

    return report


async def evolve_schema(engine: AsyncEngine, log: logging.Logger | None = None) -> SchemaReport:
    """
    Bring the store up to the current schema.

    Raises:
        SchemaFailure: If any step fails. The transaction is rolled back
            and callers must abort startup.
    """
    log = log or logger
    try:
        async with engine.begin() as conn:
            report = await conn.run_sync(_evolve, log)
    except SQLAlchemyError as e:
        log.error("Schema evolution failed: %s", e)
        raise SchemaFailure("Schema evolution failed", detail=str(e)) from e

    if not report.changed:
        log.debug("Schema is up to date")
    return report
