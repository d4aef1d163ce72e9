"""Core case service tables: customers, SLA and workflow configurations, repair cases."""

from sqlalchemy.ext.asyncio import AsyncEngine

from drms.migrations.runner import run_in_transaction

VERSION = 1
NAME = "create_case_tables"

UP = [
    """
    CREATE TABLE IF NOT EXISTS customers (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        name VARCHAR(255) NOT NULL,
        tier VARCHAR(20) NOT NULL DEFAULT 'standard'
            CHECK (tier IN ('premium', 'standard', 'basic')),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sla_configurations (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        name VARCHAR(255) NOT NULL,
        customer_tier VARCHAR(50) NOT NULL,
        service_type VARCHAR(100) NOT NULL,
        response_time_hours DOUBLE PRECISION NOT NULL CHECK (response_time_hours > 0),
        resolution_time_hours DOUBLE PRECISION NOT NULL CHECK (resolution_time_hours > 0),
        escalation_rules JSONB NOT NULL DEFAULT '[]',
        penalty_rules JSONB NOT NULL DEFAULT '[]',
        priority INTEGER NOT NULL DEFAULT 0,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS workflow_configurations (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        name VARCHAR(255) NOT NULL,
        service_type VARCHAR(100) NOT NULL DEFAULT 'repair',
        sla_id UUID,
        is_active BOOLEAN NOT NULL DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS repair_cases (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        case_number VARCHAR(50) NOT NULL UNIQUE,
        customer_id UUID,
        device_id UUID,
        workflow_configuration_id UUID,
        workflow_instance_id UUID,
        sla_id UUID,
        assigned_technician_id UUID,
        service_type VARCHAR(50) NOT NULL DEFAULT 'repair',
        status VARCHAR(50) NOT NULL DEFAULT 'created'
            CHECK (status IN ('created', 'open', 'assigned', 'in_progress',
                              'waiting_parts', 'waiting_customer', 'completed', 'cancelled')),
        priority VARCHAR(20) NOT NULL DEFAULT 'medium'
            CHECK (priority IN ('low', 'medium', 'high', 'urgent')),
        description TEXT,
        estimated_value DOUBLE PRECISION,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        assigned_at TIMESTAMPTZ,
        completed_at TIMESTAMPTZ,
        deleted_at TIMESTAMPTZ
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_repair_cases_status ON repair_cases(status)",
    "CREATE INDEX IF NOT EXISTS idx_repair_cases_customer_id ON repair_cases(customer_id)",
    "CREATE INDEX IF NOT EXISTS idx_sla_configurations_lookup "
    "ON sla_configurations(customer_tier, service_type, is_active)",
]

DOWN = [
    "DROP TABLE IF EXISTS repair_cases CASCADE",
    "DROP TABLE IF EXISTS workflow_configurations CASCADE",
    "DROP TABLE IF EXISTS sla_configurations CASCADE",
    "DROP TABLE IF EXISTS customers CASCADE",
]


async def up(engine: AsyncEngine) -> None:
    await run_in_transaction(engine, UP)


async def down(engine: AsyncEngine) -> None:
    await run_in_transaction(engine, DOWN)
