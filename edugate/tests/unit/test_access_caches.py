from __future__ import annotations

import pytest

from edugate.core.config import Settings
from edugate.services.academic_sessions import SessionContextCache
from edugate.services.access import plan_access as plan_access_module
from edugate.services.access import user_permissions as user_permissions_module
from edugate.services.access.caches import AccessCaches
from edugate.services.access.plan_access import PlanAccess, PlanAccessCache
from edugate.services.access.user_permissions import RoleSummary, UserAccessCache
from edugate.tests.utils.fakes import FakeClock


@pytest.fixture
def resolver_calls(monkeypatch) -> list[str]:
    # Replace the store-backed resolver with a counter.
    calls: list[str] = []

    async def _fake_resolve(session, institution_id):
        calls.append(institution_id)
        return PlanAccess(module_ids=frozenset({"m"}), permission_keys=frozenset({"k"}), plan_id="p")

    monkeypatch.setattr(plan_access_module, "resolve_plan_access", _fake_resolve)
    return calls


@pytest.fixture
def user_lookups(monkeypatch) -> list[tuple[str, str]]:
    # Count store lookups; users named "ghost-*" resolve to nothing.
    calls: list[tuple[str, str]] = []

    async def _fake_roles(session, *, schema_name, user_id):
        calls.append((schema_name, user_id))
        if user_id.startswith("ghost"):
            return []
        return [RoleSummary(id="r-1", name="Teacher")]

    async def _fake_permissions(session, *, schema_name, user_id, plan_permission_keys):
        if user_id.startswith("ghost"):
            return set()
        return {"k"} & set(plan_permission_keys)

    monkeypatch.setattr(user_permissions_module, "load_user_roles", _fake_roles)
    monkeypatch.setattr(user_permissions_module, "aggregate_user_permissions", _fake_permissions)
    return calls


@pytest.mark.asyncio
async def test_plan_access_cache_reuses_until_ttl(resolver_calls) -> None:
    clock = FakeClock()
    cache = PlanAccessCache(ttl_s=30, time_provider=clock)

    first = await cache.get_or_resolve(None, "inst-1")
    clock.advance(29)
    second = await cache.get_or_resolve(None, "inst-1")
    assert first is second
    assert resolver_calls == ["inst-1"]

    clock.advance(2)
    await cache.get_or_resolve(None, "inst-1")
    assert resolver_calls == ["inst-1", "inst-1"]


@pytest.mark.asyncio
async def test_plan_access_cache_invalidation(resolver_calls) -> None:
    cache = PlanAccessCache(ttl_s=30, time_provider=FakeClock())
    await cache.get_or_resolve(None, "inst-1")
    await cache.get_or_resolve(None, "inst-2")
    cache.invalidate("inst-1")
    await cache.get_or_resolve(None, "inst-1")
    await cache.get_or_resolve(None, "inst-2")
    assert resolver_calls == ["inst-1", "inst-2", "inst-1"]

    cache.clear()
    await cache.get_or_resolve(None, "inst-2")
    assert resolver_calls[-1] == "inst-2"


@pytest.mark.asyncio
async def test_plan_access_cache_skips_absent_institution(resolver_calls) -> None:
    cache = PlanAccessCache(ttl_s=30)
    access = await cache.get_or_resolve(None, None)
    assert access.is_empty
    assert resolver_calls == []


@pytest.mark.asyncio
async def test_zero_ttl_disables_plan_caching(resolver_calls) -> None:
    cache = PlanAccessCache(ttl_s=0)
    await cache.get_or_resolve(None, "inst-1")
    await cache.get_or_resolve(None, "inst-1")
    assert resolver_calls == ["inst-1", "inst-1"]


@pytest.mark.asyncio
async def test_session_cache_expires_after_ttl() -> None:
    clock = FakeClock()
    cache = SessionContextCache(ttl_s=300, time_provider=clock)
    await cache.set("inst-1", "session-a")
    clock.advance(299)
    assert await cache.get("inst-1") == "session-a"
    clock.advance(1)
    assert await cache.get("inst-1") is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_access_caches_are_isolated_instances() -> None:
    settings = Settings(session_cache_ttl_s=60, plan_access_cache_ttl_s=10)
    first = AccessCaches.from_settings(settings)
    second = AccessCaches.from_settings(settings)
    await first.sessions.set("inst-1", "session-a")
    assert await second.sessions.get("inst-1") is None

    first.invalidate_session_cache("inst-1")
    assert await first.sessions.get("inst-1") is None

    await first.sessions.set("inst-1", "session-a")
    await first.sessions.set("inst-2", "session-b")
    first.clear_session_cache()
    assert len(first.sessions) == 0


@pytest.mark.asyncio
async def test_access_caches_plan_hooks(resolver_calls) -> None:
    caches = AccessCaches.from_settings(Settings(plan_access_cache_ttl_s=30), time_provider=FakeClock())
    await caches.plan_access.get_or_resolve(None, "inst-1")
    await caches.plan_access.get_or_resolve(None, "inst-1")
    assert resolver_calls == ["inst-1"]

    caches.invalidate_plan_access("inst-1")
    await caches.plan_access.get_or_resolve(None, "inst-1")
    caches.clear_plan_access()
    await caches.plan_access.get_or_resolve(None, "inst-1")
    assert resolver_calls == ["inst-1", "inst-1", "inst-1"]


@pytest.mark.asyncio
async def test_user_access_cache_reuses_until_ttl(user_lookups) -> None:
    clock = FakeClock()
    cache = UserAccessCache(ttl_s=60, time_provider=clock)
    plan_keys = frozenset({"k", "other"})

    first = await cache.get_or_load(None, schema_name="acme", user_id="u-1", plan_permission_keys=plan_keys)
    clock.advance(59)
    second = await cache.get_or_load(None, schema_name="acme", user_id="u-1", plan_permission_keys=plan_keys)
    assert first is second
    assert first.permission_keys == frozenset({"k"})
    assert not first.is_admin
    assert user_lookups == [("acme", "u-1")]

    clock.advance(2)
    await cache.get_or_load(None, schema_name="acme", user_id="u-1", plan_permission_keys=plan_keys)
    assert len(user_lookups) == 2


@pytest.mark.asyncio
async def test_user_access_cache_reloads_when_plan_changes(user_lookups) -> None:
    cache = UserAccessCache(ttl_s=60, time_provider=FakeClock())
    licensed = await cache.get_or_load(
        None, schema_name="acme", user_id="u-1", plan_permission_keys=frozenset({"k"})
    )
    downgraded = await cache.get_or_load(
        None, schema_name="acme", user_id="u-1", plan_permission_keys=frozenset({"other"})
    )
    assert licensed.permission_keys == frozenset({"k"})
    assert downgraded.permission_keys == frozenset()
    assert len(user_lookups) == 2


@pytest.mark.asyncio
async def test_user_access_cache_skips_empty_results(user_lookups) -> None:
    cache = UserAccessCache(ttl_s=60, time_provider=FakeClock())
    for _ in range(2):
        await cache.get_or_load(None, schema_name="acme", user_id="ghost-1", plan_permission_keys=frozenset({"k"}))
    assert user_lookups == [("acme", "ghost-1"), ("acme", "ghost-1")]
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_zero_ttl_disables_user_caching(user_lookups) -> None:
    cache = UserAccessCache(ttl_s=0)
    for _ in range(2):
        await cache.get_or_load(None, schema_name="acme", user_id="u-1", plan_permission_keys=frozenset({"k"}))
    assert len(user_lookups) == 2
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_access_caches_user_and_tenant_hooks(user_lookups) -> None:
    caches = AccessCaches.from_settings(Settings(user_access_cache_ttl_s=60), time_provider=FakeClock())
    plan_keys = frozenset({"k"})
    for schema_name, user_id in (("acme", "u-1"), ("acme", "u-2"), ("beta", "u-1")):
        await caches.users.get_or_load(None, schema_name=schema_name, user_id=user_id, plan_permission_keys=plan_keys)
    assert len(caches.users) == 3

    caches.invalidate_user_access("acme", "u-1")
    assert len(caches.users) == 2
    await caches.users.get_or_load(None, schema_name="acme", user_id="u-1", plan_permission_keys=plan_keys)
    await caches.users.get_or_load(None, schema_name="acme", user_id="u-2", plan_permission_keys=plan_keys)
    assert user_lookups[3:] == [("acme", "u-1")]

    caches.invalidate_tenant_access("acme")
    assert len(caches.users) == 1
    await caches.users.get_or_load(None, schema_name="beta", user_id="u-1", plan_permission_keys=plan_keys)
    assert len(user_lookups) == 4

    caches.clear_user_access()
    assert len(caches.users) == 0
