"""Dependency graph between fields.

An edge ``target -> dependant`` means the dependant's rules read the
target's value. Edges are keyed by field id so detached fields can be
removed without walking object references, and cycles are legal.
"""

from collections import deque
from typing import Iterable, Iterator


class DependencyGraph:
    """Directed edge list keyed by field id."""

    def __init__(self) -> None:
        self._dependants: dict[str, set[str]] = {}
        self._targets: dict[str, set[str]] = {}

    def add_edge(self, target_id: str, dependant_id: str) -> None:
        """Record that ``dependant_id`` reads the value of ``target_id``."""
        self._dependants.setdefault(target_id, set()).add(dependant_id)
        self._targets.setdefault(dependant_id, set()).add(target_id)

    def remove_edge(self, target_id: str, dependant_id: str) -> None:
        self._dependants.get(target_id, set()).discard(dependant_id)
        self._targets.get(dependant_id, set()).discard(target_id)

    def set_targets(self, dependant_id: str, target_ids: Iterable[str]) -> None:
        """Replace all outgoing references of a field."""
        for target_id in list(self._targets.get(dependant_id, ())):
            self.remove_edge(target_id, dependant_id)
        for target_id in target_ids:
            if target_id != dependant_id:
                self.add_edge(target_id, dependant_id)

    def remove_node(self, field_id: str) -> None:
        """Remove every edge a field participates in, in both directions."""
        for dependant_id in self._dependants.pop(field_id, set()):
            self._targets.get(dependant_id, set()).discard(field_id)
        for target_id in self._targets.pop(field_id, set()):
            self._dependants.get(target_id, set()).discard(field_id)

    def dependants(self, field_id: str) -> set[str]:
        """Ids of fields that read ``field_id``'s value."""
        return set(self._dependants.get(field_id, ()))

    def targets(self, field_id: str) -> set[str]:
        """Ids of fields whose value ``field_id`` reads."""
        return set(self._targets.get(field_id, ()))

    def has_edge(self, target_id: str, dependant_id: str) -> bool:
        return dependant_id in self._dependants.get(target_id, ())

    def walk(self, field_id: str, visited: set[str] | None = None) -> Iterator[str]:
        """Breadth-first walk over transitive dependants.

        Each id is yielded at most once; ids already in ``visited`` (which is
        updated in place) are skipped, so cycles terminate.
        """
        visited = visited if visited is not None else set()
        visited.add(field_id)
        queue = deque([field_id])
        while queue:
            current = queue.popleft()
            for dependant_id in sorted(self._dependants.get(current, ())):
                if dependant_id in visited:
                    continue
                visited.add(dependant_id)
                queue.append(dependant_id)
                yield dependant_id

    def __len__(self) -> int:
        return sum(len(ids) for ids in self._dependants.values())
