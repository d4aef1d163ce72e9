"""
Schema Migrations
=================

Versioned, transactional schema changes for the case service database.

Usage:
    from drms.migrations import MIGRATIONS, MigrationRunner

    runner = MigrationRunner(engine, MIGRATIONS)
    await runner.run_migrations()
"""

from drms.migrations.runner import (
    Migration,
    MigrationRunner,
    run_in_transaction,
    schema_migrations,
)
from drms.migrations.versions import MIGRATIONS

__all__ = [
    "MIGRATIONS",
    "Migration",
    "MigrationRunner",
    "run_in_transaction",
    "schema_migrations",
]
