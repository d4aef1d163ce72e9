"""
Migration Runner
================

Applies and reverts versioned schema migrations.

Every migration is an ordered list of SQL statements run on one pooled
connection inside one transaction: either all statements (and the
bookkeeping row in schema_migrations) take effect, or none do. The
connection goes back to the pool on every exit path.
"""

import logging
from dataclasses import dataclass
from types import ModuleType
from typing import Awaitable, Callable, List, Optional, Sequence

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from drms.core import MigrationException
from drms.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

AfterHook = Callable[[AsyncConnection], Awaitable[None]]

bookkeeping_metadata = MetaData()

schema_migrations = Table(
    "schema_migrations",
    bookkeeping_metadata,
    Column("version", Integer, primary_key=True, autoincrement=False),
    Column("name", String(255), nullable=False),
    Column("applied_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)


async def run_in_transaction(
    engine: AsyncEngine,
    statements: Sequence[str],
    after: Optional[AfterHook] = None
) -> None:
    """
    Execute statements in order inside a single transaction.

    Args:
        engine: Engine whose pool supplies the connection
        statements: SQL statements, executed verbatim
        after: Optional coroutine run on the same connection before commit

    Raises:
        Exception: The first failing statement's error, after rollback
    """
    async with engine.connect() as conn:
        index = -1
        try:
            async with conn.begin():
                for index, statement in enumerate(statements):
                    await conn.exec_driver_sql(statement)
                if after is not None:
                    await after(conn)
        except Exception:
            logger.error(
                "Transaction rolled back",
                extra={
                    "statement_index": index,
                    "statement_count": len(statements),
                }
            )
            raise


@dataclass(frozen=True)
class Migration:
    """One versioned, reversible schema change."""
    version: int
    name: str
    up_statements: Sequence[str]
    down_statements: Sequence[str]

    @classmethod
    def from_module(cls, module: ModuleType) -> "Migration":
        return cls(
            version=module.VERSION,
            name=module.NAME,
            up_statements=tuple(module.UP),
            down_statements=tuple(module.DOWN),
        )

    async def up(self, engine: AsyncEngine) -> None:
        await run_in_transaction(engine, self.up_statements)

    async def down(self, engine: AsyncEngine) -> None:
        await run_in_transaction(engine, self.down_statements)


class MigrationRunner:
    """
    Applies migrations in version order and records them in schema_migrations.

    Versions must be unique and gapless starting at 1; anything else is
    rejected at construction.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        migrations: Sequence[Migration],
        logger: Optional[logging.Logger] = None
    ):
        self._engine = engine
        self._migrations = self._validate(migrations)
        self._logger = logger or get_logger(__name__)

    @staticmethod
    def _validate(migrations: Sequence[Migration]) -> List[Migration]:
        ordered = sorted(migrations, key=lambda m: m.version)
        seen = set()

        for expected, migration in enumerate(ordered, start=1):
            if migration.version in seen:
                raise MigrationException(
                    f"Duplicate migration version {migration.version}",
                    details={"version": migration.version, "name": migration.name}
                )
            if migration.version != expected:
                raise MigrationException(
                    f"Migration versions must be gapless from 1: expected {expected}, "
                    f"found {migration.version}",
                    details={"expected": expected, "version": migration.version}
                )
            seen.add(migration.version)

        return ordered

    @property
    def migrations(self) -> List[Migration]:
        return list(self._migrations)

    def get(self, version: int) -> Migration:
        for migration in self._migrations:
            if migration.version == version:
                return migration
        raise MigrationException(
            f"Migration not found: {version}",
            details={"version": version}
        )

    async def ensure_bookkeeping_table(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(bookkeeping_metadata.create_all)

    async def applied_versions(self) -> List[int]:
        await self.ensure_bookkeeping_table()
        async with self._engine.connect() as conn:
            result = await conn.execute(
                select(schema_migrations.c.version).order_by(schema_migrations.c.version)
            )
            return list(result.scalars().all())

    async def pending(self) -> List[Migration]:
        applied = set(await self.applied_versions())
        return [m for m in self._migrations if m.version not in applied]

    async def run_migrations(self) -> List[int]:
        """
        Apply every pending migration in ascending version order.

        Stops at the first failure by re-raising it; migrations applied
        before the failure stay applied.

        Returns:
            Versions applied by this call
        """
        applied: List[int] = []

        for migration in await self.pending():
            self._logger.info(
                "Running migration",
                extra={"version": migration.version, "migration": migration.name}
            )

            async def record(conn: AsyncConnection, migration: Migration = migration) -> None:
                await conn.execute(
                    insert(schema_migrations).values(version=migration.version, name=migration.name)
                )

            with log_latency(self._logger, "migration", version=migration.version):
                await run_in_transaction(self._engine, migration.up_statements, after=record)

            applied.append(migration.version)

        if not applied:
            self._logger.info("Schema is up to date")

        return applied

    async def rollback_migration(self, version: int) -> None:
        """
        Revert one migration and drop its bookkeeping row.

        Succeeds on a migration that was never applied: the down statements
        only drop what exists.
        """
        migration = self.get(version)
        await self.ensure_bookkeeping_table()

        self._logger.info(
            "Rolling back migration",
            extra={"version": migration.version, "migration": migration.name}
        )

        async def forget(conn: AsyncConnection) -> None:
            await conn.execute(
                delete(schema_migrations).where(schema_migrations.c.version == migration.version)
            )

        with log_latency(self._logger, "migration rollback", version=migration.version):
            await run_in_transaction(self._engine, migration.down_statements, after=forget)

    async def rollback_last(self) -> Optional[int]:
        applied = await self.applied_versions()
        if not applied:
            self._logger.info("No applied migrations to roll back")
            return None

        version = applied[-1]
        await self.rollback_migration(version)
        return version
