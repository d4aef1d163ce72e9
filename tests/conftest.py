"""Shared fixtures: settings, a SQLite database with transactional DDL, scheduler."""

from datetime import timezone

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from drms.config import Settings
from drms.infrastructure.database import Base
from drms.sla.infrastructure import models  # noqa: F401  (registers tables on Base)


def _build_settings(**overrides) -> Settings:
    values = {
        "environment": "test",
        "enable_sla_monitoring": True,
        "sla_check_interval_minutes": 60,
        "sla_escalation_enabled": True,
        "sla_penalty_calculation_enabled": True,
        "slack_webhook_url": None,
        "grafana_host": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def enable_transactional_ddl(engine: AsyncEngine) -> None:
    """
    Let SQLite run DDL and savepoints inside real transactions.

    pysqlite otherwise commits implicitly before DDL statements.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture
def settings_factory():
    return _build_settings


@pytest.fixture
def settings() -> Settings:
    return _build_settings()


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'case_service.db'}")
    enable_transactional_ddl(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_engine(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def scheduler():
    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    yield scheduler
    if scheduler.running:
        scheduler.shutdown(wait=False)
