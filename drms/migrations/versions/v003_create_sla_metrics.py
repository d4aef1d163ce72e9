"""Per-period SLA compliance metrics."""

from sqlalchemy.ext.asyncio import AsyncEngine

from drms.migrations.runner import run_in_transaction

VERSION = 3
NAME = "create_sla_metrics"

UP = [
    """
    CREATE TABLE IF NOT EXISTS sla_metrics (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        sla_id UUID,
        period_start DATE NOT NULL,
        period_end DATE NOT NULL,
        total_cases INTEGER NOT NULL DEFAULT 0,
        on_track_cases INTEGER NOT NULL DEFAULT 0,
        breached_cases INTEGER NOT NULL DEFAULT 0,
        compliance_rate NUMERIC(5, 2) NOT NULL DEFAULT 0,
        avg_response_time_hours NUMERIC(8, 2),
        avg_resolution_time_hours NUMERIC(8, 2),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (sla_id, period_start, period_end)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_sla_metrics_sla_id ON sla_metrics(sla_id)",
    "CREATE INDEX IF NOT EXISTS idx_sla_metrics_period ON sla_metrics(period_start, period_end)",
    "CREATE INDEX IF NOT EXISTS idx_sla_configurations_priority ON sla_configurations(priority)",
]

DOWN = [
    "DROP INDEX IF EXISTS idx_sla_configurations_priority",
    "DROP TABLE IF EXISTS sla_metrics CASCADE",
]


async def up(engine: AsyncEngine) -> None:
    await run_in_transaction(engine, UP)


async def down(engine: AsyncEngine) -> None:
    await run_in_transaction(engine, DOWN)
