from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field


@dataclass(frozen=True)
class PermissionEntry:
    key: str
    route_name: str | None = None
    route_title: str | None = None
    route_active: bool | None = None


@dataclass(frozen=True)
class FeatureEntry:
    slug: str
    name: str
    icon: str | None = None
    route_name: str | None = None
    route_title: str | None = None
    route_active: bool | None = None
    sort_order: int = 0
    permissions: tuple[PermissionEntry, ...] = ()


@dataclass(frozen=True)
class ModuleEntry:
    id: str
    slug: str
    name: str
    parent_id: str | None = None
    icon: str | None = None
    route_name: str | None = None
    route_title: str | None = None
    route_active: bool | None = None
    sort_order: int = 0
    institution_type: str | None = "all"
    features: tuple[FeatureEntry, ...] = ()


@dataclass
class NavItem:
    # Working node shared by both passes; sort_order, is_module and leaf_title never leave the service.
    key: str
    title: str
    icon: str | None = None
    path: str | None = None
    children: list[NavItem] = field(default_factory=list)
    sort_order: int = 0
    is_module: bool = False
    route_active: bool | None = None
    # Title of the feature a flattened node ultimately points at.
    leaf_title: str | None = None


def _module_visible_for(module: ModuleEntry, institution_type: str | None) -> bool:
    if not institution_type or not module.institution_type:
        return True
    if module.institution_type.lower() == "all":
        return True
    return module.institution_type.lower() == institution_type.lower()


def _feature_node(
    module: ModuleEntry,
    feature: FeatureEntry,
    *,
    plan_permission_keys: frozenset[str] | set[str],
    user_permission_keys: frozenset[str] | set[str],
    is_admin: bool,
) -> NavItem | None:
    if feature.route_active is False:
        return None
    keys = [permission.key for permission in feature.permissions]
    if not (is_admin or any(key in user_permission_keys for key in keys)):
        return None
    # Admins skip membership checks but never the plan licence.
    if keys and not any(key in plan_permission_keys for key in keys):
        return None

    route_override: str | None = None
    title_override: str | None = None
    for permission in feature.permissions:
        if permission.route_active is False:
            continue
        if is_admin:
            held = permission.key in plan_permission_keys
        else:
            held = permission.key in user_permission_keys
        if not held:
            continue
        if route_override is None and permission.route_name:
            route_override = permission.route_name
        if title_override is None and permission.route_title:
            title_override = permission.route_title
        if route_override and title_override:
            break

    title = title_override or feature.route_title or feature.name
    return NavItem(
        key=feature.slug,
        title=title,
        icon=feature.icon,
        path=route_override or feature.route_name or f"/{module.slug}/{feature.slug}",
        sort_order=feature.sort_order,
        is_module=False,
        leaf_title=title,
    )


def build_candidate_tree(
    modules: Sequence[ModuleEntry],
    *,
    plan_permission_keys: frozenset[str] | set[str],
    user_permission_keys: frozenset[str] | set[str],
    is_admin: bool,
    institution_type: str | None,
) -> list[NavItem]:
    """Turn licensed modules into an unpruned forest of navigation items.

    ``modules`` must already be ordered by ``(sort_order, name)`` and carry
    their features in ``(sort_order, name)`` order; that order is the
    tie-break for every later sort.
    """
    nodes: dict[str, NavItem] = {}
    synthesized_paths: set[str] = set()
    visible: list[ModuleEntry] = []

    for module in modules:
        if not _module_visible_for(module, institution_type):
            continue
        visible.append(module)
        features = [
            node
            for node in (
                _feature_node(
                    module,
                    feature,
                    plan_permission_keys=plan_permission_keys,
                    user_permission_keys=user_permission_keys,
                    is_admin=is_admin,
                )
                for feature in module.features
            )
            if node is not None
        ]
        item = NavItem(
            key=module.slug,
            title=module.route_title or module.name,
            icon=module.icon,
            children=features,
            sort_order=module.sort_order,
            is_module=True,
            route_active=module.route_active,
        )
        if not features:
            if module.route_name:
                item.path = module.route_name
            elif not module.features:
                item.path = f"/{module.slug}"
                synthesized_paths.add(module.id)
        nodes[module.id] = item

    roots: list[NavItem] = []
    for module in visible:
        item = nodes[module.id]
        # Hidden modules take their whole subtree with them.
        if item.route_active is False:
            continue
        parent = nodes.get(module.parent_id) if module.parent_id else None
        if parent is not None:
            parent.children.append(item)
        else:
            roots.append(item)

    # A featureless module that groups child modules is a container, not a page.
    for module_id in synthesized_paths:
        item = nodes[module_id]
        if any(child.is_module for child in item.children):
            item.path = None
    return roots


def iter_nav_items(items: Iterable[NavItem]) -> Iterable[NavItem]:
    for item in items:
        yield item
        yield from iter_nav_items(item.children)
