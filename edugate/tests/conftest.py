from __future__ import annotations

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from edugate.core.config import get_settings
from edugate.domain.models import TENANT_SCHEMA, Base
from edugate.persistence.db import build_session_factory
from edugate.tests.utils.catalog import seed_catalog
from edugate.tests.utils.fakes import FakeRedis


# Tenant partitions provisioned for every test database.
TENANT_SCHEMAS = ("acme", "beta")


@pytest.fixture(autouse=True)
def reset_settings_cache() -> None:
    # Settings are cached per process; tests that patch env vars need a fresh read.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def engine(tmp_path) -> AsyncEngine:
    # File-backed SQLite; each tenant schema is a database attached on every new connection.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shared.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _attach_tenant_schemas(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        for schema in TENANT_SCHEMAS:
            cursor.execute(f"ATTACH DATABASE '{tmp_path / schema}.db' AS {schema}")
        cursor.close()

    for schema in TENANT_SCHEMAS:
        async with engine.begin() as conn:
            await conn.run_sync(
                lambda sync_conn, schema=schema: Base.metadata.create_all(
                    sync_conn.execution_options(schema_translate_map={TENANT_SCHEMA: schema})
                )
            )
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine):
    return build_session_factory(engine)


@pytest.fixture
async def seeded_session_factory(session_factory):
    async with session_factory() as session:
        await seed_catalog(session)
    return session_factory


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
