"""SLA monitoring state on repair cases and the case escalation log."""

from sqlalchemy.ext.asyncio import AsyncEngine

from drms.migrations.runner import run_in_transaction

VERSION = 2
NAME = "add_sla_monitoring"

UP = [
    "ALTER TABLE repair_cases ADD COLUMN IF NOT EXISTS last_sla_check TIMESTAMPTZ",
    "ALTER TABLE repair_cases ADD COLUMN IF NOT EXISTS sla_status VARCHAR(20) NOT NULL DEFAULT 'on_track'",
    "ALTER TABLE repair_cases ADD COLUMN IF NOT EXISTS escalation_level INTEGER NOT NULL DEFAULT 0",
    "ALTER TABLE repair_cases ADD COLUMN IF NOT EXISTS escalated_at TIMESTAMPTZ",
    """
    CREATE TABLE IF NOT EXISTS case_escalations (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        case_id UUID NOT NULL,
        escalation_level INTEGER NOT NULL,
        escalation_type VARCHAR(50) NOT NULL
            CHECK (escalation_type IN ('warning', 'critical', 'breach')),
        reason TEXT,
        sla_status JSONB,
        escalated_by VARCHAR(100) NOT NULL DEFAULT 'system',
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_case_escalations_case_id ON case_escalations(case_id)",
    "CREATE INDEX IF NOT EXISTS idx_repair_cases_last_sla_check ON repair_cases(last_sla_check)",
]

DOWN = [
    "DROP INDEX IF EXISTS idx_repair_cases_last_sla_check",
    "DROP TABLE IF EXISTS case_escalations CASCADE",
    "ALTER TABLE IF EXISTS repair_cases DROP COLUMN IF EXISTS escalated_at",
    "ALTER TABLE IF EXISTS repair_cases DROP COLUMN IF EXISTS escalation_level",
    "ALTER TABLE IF EXISTS repair_cases DROP COLUMN IF EXISTS sla_status",
    "ALTER TABLE IF EXISTS repair_cases DROP COLUMN IF EXISTS last_sla_check",
]


async def up(engine: AsyncEngine) -> None:
    await run_in_transaction(engine, UP)


async def down(engine: AsyncEngine) -> None:
    await run_in_transaction(engine, DOWN)
