from __future__ import annotations

from collections.abc import Callable
from typing import Any

from edugate.services.navigation.builder import NavItem


GENERIC_GROUPING_TITLES = frozenset({"portal", "portals", "module", "modules", "group", "menu"})

TitlePolicy = Callable[[str], bool]


def is_generic_grouping_title(title: str) -> bool:
    # Wrapper labels that carry no meaning of their own, e.g. "Portals" -> "Admin".
    return title.strip().lower() in GENERIC_GROUPING_TITLES


def _sort_key(item: NavItem) -> int:
    return item.sort_order


def collapse_navigation(
    items: list[NavItem],
    *,
    is_generic_title: TitlePolicy = is_generic_grouping_title,
) -> list[NavItem]:
    """Drop dead ends and flatten single-leaf wrappers, bottom-up.

    The pass is idempotent: running it on its own output returns an equal
    tree. Sorting is stable, so equal ``sort_order`` keeps the incoming
    name order.
    """
    result: list[NavItem] = []
    for item in items:
        children = collapse_navigation(item.children, is_generic_title=is_generic_title)

        if not children:
            if item.path:
                result.append(
                    NavItem(
                        key=item.key,
                        title=item.title,
                        icon=item.icon,
                        path=item.path,
                        sort_order=item.sort_order,
                        is_module=item.is_module,
                        route_active=item.route_active,
                        leaf_title=item.leaf_title,
                    )
                )
            continue

        if len(children) == 1:
            child = children[0]
            if not child.children and not child.is_module:
                # The flattened node is a plain leaf, so an enclosing wrapper can fold it again.
                leaf_title = child.leaf_title or child.title
                result.append(
                    NavItem(
                        key=child.key,
                        title=leaf_title if is_generic_title(item.title) else item.title,
                        icon=item.icon or child.icon,
                        path=child.path,
                        sort_order=item.sort_order,
                        is_module=False,
                        route_active=item.route_active,
                        leaf_title=leaf_title,
                    )
                )
                continue

        # A branch is navigated through its children, never its own path.
        result.append(
            NavItem(
                key=item.key,
                title=item.title,
                icon=item.icon,
                path=None,
                children=sorted(children, key=_sort_key),
                sort_order=item.sort_order,
                is_module=item.is_module,
                route_active=item.route_active,
            )
        )
    return result


def to_payload(items: list[NavItem]) -> list[dict[str, Any]]:
    # Emit the public NavNode shape, omitting bookkeeping and empty optional fields.
    payload: list[dict[str, Any]] = []
    for item in sorted(items, key=_sort_key):
        node: dict[str, Any] = {"key": item.key, "title": item.title}
        if item.icon:
            node["icon"] = item.icon
        if item.children:
            node["children"] = to_payload(item.children)
        elif item.path:
            node["path"] = item.path
        payload.append(node)
    return payload
