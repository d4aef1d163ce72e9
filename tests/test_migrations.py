"""Checks on the shipped migration modules and the drms-migrate CLI."""

import inspect
import re

import pytest
from typer.testing import CliRunner

from drms.migrations import MIGRATIONS, Migration
from drms.migrations import cli
from drms.migrations.versions import MIGRATION_MODULES
from drms.migrations.versions import v004_add_foreign_keys


class TestShippedMigrations:
    def test_versions_are_gapless(self):
        assert [m.version for m in MIGRATIONS] == [1, 2, 3, 4]

    def test_names_are_unique(self):
        names = [m.name for m in MIGRATIONS]
        assert len(names) == len(set(names))

    @pytest.mark.parametrize("module", MIGRATION_MODULES, ids=lambda m: m.NAME)
    def test_module_entry_points_are_coroutines(self, module):
        assert inspect.iscoroutinefunction(module.up)
        assert inspect.iscoroutinefunction(module.down)

    @pytest.mark.parametrize("migration", MIGRATIONS, ids=lambda m: m.name)
    def test_down_statements_tolerate_missing_objects(self, migration):
        assert migration.down_statements
        for statement in migration.down_statements:
            assert "IF EXISTS" in statement

    @pytest.mark.parametrize("migration", MIGRATIONS, ids=lambda m: m.name)
    def test_up_statements_are_rerunnable_or_named(self, migration):
        for statement in migration.up_statements:
            assert "IF NOT EXISTS" in statement or "ADD CONSTRAINT" in statement

    def test_foreign_keys_dropped_by_name(self):
        added = set(re.findall(r"ADD CONSTRAINT (\w+)", " ".join(v004_add_foreign_keys.UP)))
        dropped = set(re.findall(r"DROP CONSTRAINT IF EXISTS (\w+)", " ".join(v004_add_foreign_keys.DOWN)))

        assert added
        assert added == dropped


WIDGETS = Migration(
    version=1,
    name="create_widgets",
    up_statements=("CREATE TABLE widgets (id INTEGER PRIMARY KEY)",),
    down_statements=("DROP TABLE IF EXISTS widgets",),
)


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def database_url(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "MIGRATIONS", [WIDGETS])
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


class TestMigrateCli:
    def test_up_then_status(self, cli_runner, database_url):
        result = cli_runner.invoke(cli.app, ["up", "--database-url", database_url])

        assert result.exit_code == 0, result.output
        assert "[apply] 001" in result.output

        result = cli_runner.invoke(cli.app, ["status", "--database-url", database_url])

        assert result.exit_code == 0, result.output
        assert "[applied] 001 create_widgets" in result.output

    def test_up_twice(self, cli_runner, database_url):
        cli_runner.invoke(cli.app, ["up", "--database-url", database_url])
        result = cli_runner.invoke(cli.app, ["up", "--database-url", database_url])

        assert result.exit_code == 0, result.output
        assert "Schema is up to date" in result.output

    def test_rollback_last(self, cli_runner, database_url):
        cli_runner.invoke(cli.app, ["up", "--database-url", database_url])

        result = cli_runner.invoke(cli.app, ["rollback-last", "--database-url", database_url])
        assert result.exit_code == 0, result.output
        assert "Rolled back migration 001" in result.output

        result = cli_runner.invoke(cli.app, ["rollback-last", "--database-url", database_url])
        assert result.exit_code == 0, result.output
        assert "No applied migrations" in result.output

    def test_down_unknown_version_fails(self, cli_runner, database_url):
        result = cli_runner.invoke(cli.app, ["down", "7", "--database-url", database_url])

        assert result.exit_code == 1
