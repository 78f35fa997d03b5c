"""Test Alembic migrations: upgrade, downgrade, and structural checks.

Runs against a throwaway SQLite file, so the PostgreSQL-only audit triggers
are not exercised here.
"""

import os
import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ALEMBIC_INI = os.path.join(os.path.dirname(__file__), "..", "..", "alembic.ini")

EXPECTED_TABLES = {
    "workflow_definitions",
    "workflow_stages",
    "workflow_stage_reviewers",
    "workflow_instances",
    "workflow_instance_stages",
    "workflow_votes",
    "workflow_audit_entries",
    "reprint_requests",
}


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'migrations.db'}"


@pytest.fixture
def alembic_cfg(database_url) -> Config:
    cfg = Config(ALEMBIC_INI)
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def _tables(database_url):
    engine = create_engine(database_url)
    try:
        return set(inspect(engine).get_table_names()) - {"alembic_version"}
    finally:
        engine.dispose()


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


@pytest.mark.integration
class TestMigrations:
    """Run upgrade, verify, downgrade, verify."""

    def test_upgrade_creates_all_tables(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")

        assert _tables(database_url) == EXPECTED_TABLES

    def test_one_active_instance_key_is_unique(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")

        engine = create_engine(database_url)
        try:
            inspector = inspect(engine)
            unique_columns = [c["column_names"] for c in inspector.get_unique_constraints("workflow_instances")]
            unique_columns += [
                i["column_names"] for i in inspector.get_indexes("workflow_instances") if i["unique"]
            ]
        finally:
            engine.dispose()

        assert ["active_key"] in unique_columns

    def test_votes_reference_instance_stages(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")

        engine = create_engine(database_url)
        try:
            foreign_keys = inspect(engine).get_foreign_keys("workflow_votes")
        finally:
            engine.dispose()

        referred = {fk["referred_table"] for fk in foreign_keys}
        assert {"workflow_instances", "workflow_instance_stages"} <= referred

    def test_downgrade_removes_all_tables(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")
        command.downgrade(alembic_cfg, "base")

        assert _tables(database_url) == set()
