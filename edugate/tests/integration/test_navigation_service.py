from __future__ import annotations

import logging

import pytest

from edugate.core.config import Settings
from edugate.services.access.caches import AccessCaches
from edugate.services.navigation.service import NavigationService
from edugate.tests.utils.catalog import STANDARD_INSTITUTION, UNLICENSED_INSTITUTION
from edugate.tests.utils.tenant import assign_role, create_role, create_user, grant_direct


def _service() -> NavigationService:
    return NavigationService(caches=AccessCaches.from_settings(Settings()))


async def _user_with_role(session_factory, *, institution_id, permission_ids=(), is_admin=False, name="Teacher"):
    async with session_factory() as session:
        user_id = await create_user(session, schema_name="acme", institution_id=institution_id)
        role_id = await create_role(
            session,
            schema_name="acme",
            name=name,
            permission_ids=permission_ids,
            is_admin=is_admin,
            role_id=f"role-{name.lower()}",
        )
        await assign_role(session, schema_name="acme", user_id=user_id, role_id=role_id)
        await session.commit()
    return user_id


@pytest.mark.asyncio
async def test_single_licensed_feature_collapses_into_module_family(seeded_session_factory) -> None:
    user_id = await _user_with_role(
        seeded_session_factory, institution_id=STANDARD_INSTITUTION, permission_ids=["exams.results.view"]
    )
    async with seeded_session_factory() as session:
        payload = await _service().get_permissions_and_navigation(
            session, schema_name="acme", user_id=user_id, institution_id=STANDARD_INSTITUTION
        )

    assert payload == {
        "permissions": ["exams.results.view"],
        "navigation": [{"key": "results", "title": "Academics", "icon": "book", "path": "/exams/results"}],
        "roles": [{"id": "role-teacher", "name": "Teacher"}],
        "isAdmin": False,
    }


@pytest.mark.asyncio
async def test_held_permission_route_is_preferred(seeded_session_factory) -> None:
    user_id = await _user_with_role(
        seeded_session_factory,
        institution_id=STANDARD_INSTITUTION,
        permission_ids=["exams.results.view", "exams.results.edit"],
    )
    async with seeded_session_factory() as session:
        payload = await _service().get_nav_items_payload(
            session, schema_name="acme", user_id=user_id, institution_id=STANDARD_INSTITUTION
        )
    assert payload["navigation"][0]["path"] == "/exams/results/manage"


@pytest.mark.asyncio
async def test_admin_sees_all_licensed_features_for_their_institution_type(seeded_session_factory) -> None:
    user_id = await _user_with_role(
        seeded_session_factory, institution_id=STANDARD_INSTITUTION, is_admin=True, name="Principal"
    )
    async with seeded_session_factory() as session:
        payload = await _service().get_permissions_and_navigation(
            session, schema_name="acme", user_id=user_id, institution_id=STANDARD_INSTITUTION
        )

    assert payload["isAdmin"] is True
    assert payload["permissions"] == []
    assert payload["navigation"] == [
        {
            "key": "academics",
            "title": "Academics",
            "icon": "book",
            "children": [
                {"key": "classes", "title": "Classes", "path": "/academics/classes"},
                {"key": "subjects", "title": "Subjects", "path": "/academics/subjects"},
                {"key": "results", "title": "Exams", "path": "/exams/results/manage"},
            ],
        }
    ]


@pytest.mark.asyncio
async def test_institution_without_plan_gets_empty_bootstrap(seeded_session_factory) -> None:
    user_id = await _user_with_role(
        seeded_session_factory, institution_id=UNLICENSED_INSTITUTION, permission_ids=["exams.results.view"]
    )
    async with seeded_session_factory() as session:
        payload = await _service().get_permissions_and_navigation(
            session, schema_name="acme", user_id=user_id, institution_id=UNLICENSED_INSTITUTION
        )
    assert payload["permissions"] == []
    assert payload["navigation"] == []
    assert payload["isAdmin"] is False


@pytest.mark.asyncio
async def test_user_without_permissions_is_logged(seeded_session_factory, caplog) -> None:
    user_id = await _user_with_role(seeded_session_factory, institution_id=STANDARD_INSTITUTION)
    caplog.set_level(logging.WARNING, logger="edugate.services.navigation.service")
    async with seeded_session_factory() as session:
        payload = await _service().get_permissions_payload(
            session, schema_name="acme", user_id=user_id, institution_id=STANDARD_INSTITUTION
        )
    assert payload == {"permissions": [], "roles": [{"id": "role-teacher", "name": "Teacher"}], "isAdmin": False}
    assert any("user_has_no_permissions" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_cached_user_access_refreshes_after_invalidation(seeded_session_factory) -> None:
    caches = AccessCaches.from_settings(Settings(user_access_cache_ttl_s=300))
    service = NavigationService(caches=caches)
    user_id = await _user_with_role(
        seeded_session_factory, institution_id=STANDARD_INSTITUTION, permission_ids=["exams.results.view"]
    )

    async def _permissions() -> list[str]:
        async with seeded_session_factory() as session:
            payload = await service.get_permissions_payload(
                session, schema_name="acme", user_id=user_id, institution_id=STANDARD_INSTITUTION
            )
        return payload["permissions"]

    assert await _permissions() == ["exams.results.view"]
    async with seeded_session_factory() as session:
        await grant_direct(session, schema_name="acme", user_id=user_id, permission_key="academics.classes.view")
        await session.commit()

    assert await _permissions() == ["exams.results.view"]
    caches.invalidate_user_access("acme", user_id)
    assert await _permissions() == ["academics.classes.view", "exams.results.view"]
