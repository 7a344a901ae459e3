from __future__ import annotations

import logging
import threading
from typing import FrozenSet, Iterable, Iterator, List, Tuple

from .model import GroupingTuple

logger = logging.getLogger("orgacl.grouping")


class GroupingResolver:
    """Role -> permission relation with single-hop membership queries.

    The edge set is an immutable frozenset replaced under ``_lock`` on every
    write, so ``resolve`` reads it without locking. Writers are serialized and
    each upsert (check + insert) happens inside one critical section.
    """

    def __init__(self, edges: Iterable[GroupingTuple | Tuple[str, str]] = (), *, name: str = "g") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._edges: FrozenSet[Tuple[str, str]] = frozenset(_edge(e) for e in edges)

    # --- queries -------------------------------------------------------------

    def resolve(self, role: str, permission: str) -> bool:
        """True iff ``(role, permission)`` is a registered edge."""
        return (role, permission) in self._edges

    def permissions_for(self, role: str) -> FrozenSet[str]:
        return frozenset(p for r, p in self._edges if r == role)

    def edges(self) -> FrozenSet[GroupingTuple]:
        return frozenset(GroupingTuple(r, p) for r, p in self._edges)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, GroupingTuple):
            return self.resolve(item.role, item.permission)
        if isinstance(item, tuple) and len(item) == 2:
            return item in self._edges
        return False

    def __len__(self) -> int:
        return len(self._edges)

    def __iter__(self) -> Iterator[GroupingTuple]:
        return iter(sorted(self.edges(), key=lambda g: (g.role, g.permission)))

    # --- writes --------------------------------------------------------------

    def ensure_edge(self, role: str, permission: str) -> bool:
        """Insert ``(role, permission)`` if absent. Returns whether an insertion occurred."""
        return bool(self.ensure_edges(role, (permission,)))

    def ensure_edges(self, role: str, permissions: Iterable[str]) -> List[str]:
        """Atomically upsert ``role -> p`` for every ``p``.

        Returns the permissions that were actually inserted, in input order.
        """
        with self._lock:
            current = self._edges
            added: List[str] = []
            for perm in permissions:
                edge = (role, perm)
                if edge in current or perm in added:
                    continue
                added.append(perm)
            if added:
                self._edges = current | {(role, p) for p in added}
                logger.debug("grouping %s: added %s -> %s", self.name, role, added)
            return added

    def remove_edge(self, role: str, permission: str) -> bool:
        with self._lock:
            edge = (role, permission)
            if edge not in self._edges:
                return False
            self._edges = self._edges - {edge}
            logger.debug("grouping %s: removed %s -> %s", self.name, role, permission)
            return True


def _edge(item: GroupingTuple | Tuple[str, str]) -> Tuple[str, str]:
    if isinstance(item, GroupingTuple):
        return (item.role, item.permission)
    role, permission = item
    return (role, permission)


__all__ = ["GroupingResolver"]
