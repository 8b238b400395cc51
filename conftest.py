"""Root-level pytest fixtures: testcontainer-backed Postgres with auto-migration."""

from __future__ import annotations

import pytest


@pytest.fixture(scope="session")
def postgres_container():
    """Single Postgres container for the test session."""
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:16") as pg:
        yield pg


@pytest.fixture
async def budget_db(postgres_container):
    """Connected + migrated Postgres for the 'budget' DB."""
    from budget_platform.migrations.runner import MigrationRunner
    from budget_platform.services.database.postgres_database import PostgresDatabase
    from budget_platform.services.secrets.env_secrets import EnvSecrets

    # testcontainers gives a psycopg2-style URL; convert to asyncpg format
    url = postgres_container.get_connection_url()
    asyncpg_url = url.replace("postgresql+psycopg2://", "postgresql://")

    db = PostgresDatabase(secrets=EnvSecrets(overrides={"DB_POSTGRES_URL": asyncpg_url}))
    await db.connect_async()

    runner = MigrationRunner(db, db_name="budget")
    await runner.up()

    yield db

    # Teardown: rollback all migrations then disconnect
    await runner.down(count=999)
    await db.disconnect_async()
