from __future__ import annotations

import threading
from typing import Iterable, List, Optional

from ..core.model import GroupingTuple, PolicyTuple


class MemoryPolicyStore:
    """In-process policy store. Useful for tests and for callers that pre-cache tuples."""

    def __init__(
        self,
        policies: Iterable[PolicyTuple] = (),
        groupings: Iterable[GroupingTuple] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._policies: List[PolicyTuple] = list(policies)
        self._groupings: List[GroupingTuple] = list(groupings)
        self._revision = 0

    def load_policies(self) -> List[PolicyTuple]:
        with self._lock:
            return list(self._policies)

    def load_groupings(self) -> List[GroupingTuple]:
        with self._lock:
            return list(self._groupings)

    def has_grouping(self, role: str, permission: str) -> bool:
        with self._lock:
            return GroupingTuple(role, permission) in self._groupings

    def add_grouping(self, role: str, permission: str) -> bool:
        edge = GroupingTuple(role, permission)
        with self._lock:
            if edge in self._groupings:
                return False
            self._groupings.append(edge)
            self._revision += 1
            return True

    def save(self, policies: Iterable[PolicyTuple], groupings: Iterable[GroupingTuple]) -> None:
        with self._lock:
            self._policies = list(policies)
            self._groupings = list(groupings)
            self._revision += 1

    def etag(self) -> Optional[str]:
        with self._lock:
            return f"rev:{self._revision}"


__all__ = ["MemoryPolicyStore"]
