"""Foreign keys between the tables created by migrations 1 to 3."""

from sqlalchemy.ext.asyncio import AsyncEngine

from drms.migrations.runner import run_in_transaction

VERSION = 4
NAME = "add_foreign_keys"

UP = [
    "ALTER TABLE workflow_configurations ADD CONSTRAINT fk_workflow_configurations_sla "
    "FOREIGN KEY (sla_id) REFERENCES sla_configurations(id) ON DELETE SET NULL",
    "ALTER TABLE repair_cases ADD CONSTRAINT fk_repair_cases_customer "
    "FOREIGN KEY (customer_id) REFERENCES customers(id) ON DELETE SET NULL",
    "ALTER TABLE repair_cases ADD CONSTRAINT fk_repair_cases_workflow_configuration "
    "FOREIGN KEY (workflow_configuration_id) REFERENCES workflow_configurations(id) ON DELETE SET NULL",
    "ALTER TABLE case_escalations ADD CONSTRAINT fk_case_escalations_case "
    "FOREIGN KEY (case_id) REFERENCES repair_cases(id) ON DELETE CASCADE",
    "ALTER TABLE sla_metrics ADD CONSTRAINT fk_sla_metrics_sla "
    "FOREIGN KEY (sla_id) REFERENCES sla_configurations(id) ON DELETE CASCADE",
]

# Tables may already be gone when rolling back out of order
DOWN = [
    "ALTER TABLE IF EXISTS sla_metrics DROP CONSTRAINT IF EXISTS fk_sla_metrics_sla",
    "ALTER TABLE IF EXISTS case_escalations DROP CONSTRAINT IF EXISTS fk_case_escalations_case",
    "ALTER TABLE IF EXISTS repair_cases DROP CONSTRAINT IF EXISTS fk_repair_cases_workflow_configuration",
    "ALTER TABLE IF EXISTS repair_cases DROP CONSTRAINT IF EXISTS fk_repair_cases_customer",
    "ALTER TABLE IF EXISTS workflow_configurations DROP CONSTRAINT IF EXISTS fk_workflow_configurations_sla",
]


async def up(engine: AsyncEngine) -> None:
    await run_in_transaction(engine, UP)


async def down(engine: AsyncEngine) -> None:
    await run_in_transaction(engine, DOWN)
