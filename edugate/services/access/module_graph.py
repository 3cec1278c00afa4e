from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from edugate.core.errors import ModuleGraphCycleError


class ModuleGraph:
    """In-memory parent/child adjacency over the module forest.

    Built once per resolution from ``(module_id, parent_id)`` edges so that
    closure never issues follow-up queries. Parent ids that do not name a
    known module are treated as absent, which makes that module a root.
    """

    def __init__(self, edges: Iterable[tuple[str, str | None]]) -> None:
        parents: dict[str, str | None] = {}
        for module_id, parent_id in edges:
            parents[module_id] = parent_id
        self._parents: dict[str, str | None] = {
            module_id: parent_id if parent_id in parents else None
            for module_id, parent_id in parents.items()
        }
        self._children: dict[str, list[str]] = {module_id: [] for module_id in self._parents}
        for module_id, parent_id in self._parents.items():
            if parent_id is not None:
                self._children[parent_id].append(module_id)
        self._assert_acyclic()

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._parents

    def __len__(self) -> int:
        return len(self._parents)

    def parent_of(self, module_id: str) -> str | None:
        return self._parents.get(module_id)

    def children_of(self, module_id: str) -> list[str]:
        return list(self._children.get(module_id, ()))

    def _assert_acyclic(self) -> None:
        # Walk each parent chain once; nodes proven acyclic are skipped on later walks.
        verified: set[str] = set()
        for start in self._parents:
            path: list[str] = []
            on_path: set[str] = set()
            current: str | None = start
            while current is not None and current not in verified:
                if current in on_path:
                    cycle = path[path.index(current):] + [current]
                    raise ModuleGraphCycleError(cycle)
                path.append(current)
                on_path.add(current)
                current = self._parents[current]
            verified.update(path)

    def closure(self, seed: Iterable[str]) -> frozenset[str]:
        # Smallest superset of the seed closed under both parent and child edges.
        included: set[str] = set()
        queue: deque[str] = deque()
        for module_id in seed:
            if module_id in self._parents and module_id not in included:
                included.add(module_id)
                queue.append(module_id)
        while queue:
            current = queue.popleft()
            neighbours = list(self._children[current])
            parent_id = self._parents[current]
            if parent_id is not None:
                neighbours.append(parent_id)
            for neighbour in neighbours:
                if neighbour not in included:
                    included.add(neighbour)
                    queue.append(neighbour)
        return frozenset(included)
