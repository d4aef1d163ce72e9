"""
Migration Versions
==================

One module per schema version, applied in ascending VERSION order.
Add new modules here; versions must stay gapless.
"""

from drms.migrations.runner import Migration
from drms.migrations.versions import (
    v001_create_case_tables,
    v002_add_sla_monitoring,
    v003_create_sla_metrics,
    v004_add_foreign_keys,
)

MIGRATION_MODULES = [
    v001_create_case_tables,
    v002_add_sla_monitoring,
    v003_create_sla_metrics,
    v004_add_foreign_keys,
]

MIGRATIONS = [Migration.from_module(module) for module in MIGRATION_MODULES]

__all__ = ["MIGRATIONS", "MIGRATION_MODULES"]
