from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from edugate.domain.models import (
    Feature,
    Institution,
    Module,
    Permission,
    Plan,
    PlanModule,
    PlanPermission,
)


# Institutions seeded by seed_catalog.
STANDARD_INSTITUTION = "inst-standard"
UNLICENSED_INSTITUTION = "inst-unlicensed"
LAPSED_INSTITUTION = "inst-lapsed"

AUDIT_VIEW = "security.audit.view"

# Keys licensed to the standard plan, either explicitly or through module ownership.
STANDARD_PLAN_KEYS = frozenset(
    {
        "academics.classes.view",
        "academics.subjects.view",
        "exams.results.view",
        "exams.results.edit",
        "nursery.rhymes.view",
        AUDIT_VIEW,
    }
)


async def seed_catalog(session: AsyncSession) -> None:
    # Shared catalog: one live plan licensing the exams submodule, one lapsed plan.
    session.add_all(
        [
            Plan(id="plan-standard", name="Standard", is_active=True),
            Plan(id="plan-lapsed", name="Lapsed", is_active=False),
        ]
    )
    await session.flush()
    session.add_all(
        [
            Institution(id=STANDARD_INSTITUTION, name="Hillside", type="secondary", plan_id="plan-standard"),
            Institution(id=UNLICENSED_INSTITUTION, name="Riverside", type="secondary", plan_id=None),
            Institution(id=LAPSED_INSTITUTION, name="Lakeside", type="primary", plan_id="plan-lapsed"),
        ]
    )
    session.add_all(
        [
            Module(id="m-academics", slug="academics", name="Academics", icon="book", sort_order=1),
            Module(id="m-exams", parent_id="m-academics", slug="exams", name="Exams", sort_order=2),
            Module(id="m-finance", slug="finance", name="Finance", sort_order=3),
            Module(
                id="m-nursery",
                parent_id="m-academics",
                slug="nursery",
                name="Nursery",
                sort_order=4,
                institution_type="primary",
            ),
        ]
    )
    await session.flush()
    session.add_all(
        [
            Feature(id="f-classes", module_id="m-academics", slug="classes", name="Classes", sort_order=1),
            Feature(id="f-subjects", module_id="m-academics", slug="subjects", name="Subjects", sort_order=2),
            Feature(id="f-results", module_id="m-exams", slug="results", name="Results", sort_order=1),
            Feature(id="f-fees", module_id="m-finance", slug="fees", name="Fees", sort_order=1),
            Feature(id="f-rhymes", module_id="m-nursery", slug="rhymes", name="Rhymes", sort_order=1),
        ]
    )
    await session.flush()
    session.add_all(
        [
            Permission(id="academics.classes.view", key="academics.classes.view", feature_id="f-classes"),
            Permission(id="academics.subjects.view", key="academics.subjects.view", feature_id="f-subjects"),
            Permission(id="exams.results.view", key="exams.results.view", feature_id="f-results"),
            Permission(
                id="exams.results.edit",
                key="exams.results.edit",
                feature_id="f-results",
                route_name="/exams/results/manage",
                route_title="Manage Results",
            ),
            Permission(id="finance.fees.view", key="finance.fees.view", feature_id="f-fees"),
            Permission(id="nursery.rhymes.view", key="nursery.rhymes.view", feature_id="f-rhymes"),
            Permission(id=AUDIT_VIEW, key=AUDIT_VIEW, feature_id=None),
            Permission(id="legacy.reports.view", key="legacy.reports.view", feature_id=None, is_active=False),
        ]
    )
    await session.flush()
    session.add_all(
        [
            PlanModule(plan_id="plan-standard", module_id="m-exams"),
            PlanPermission(plan_id="plan-standard", permission_id=AUDIT_VIEW),
            PlanPermission(plan_id="plan-standard", permission_id="legacy.reports.view"),
            PlanModule(plan_id="plan-lapsed", module_id="m-finance"),
        ]
    )
    await session.commit()
