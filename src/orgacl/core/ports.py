from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from .model import GroupingTuple, PolicyTuple


@runtime_checkable
class PolicyStore(Protocol):
    """Source of policy and grouping tuples consumed by the enforcer.

    Read at initialization and on reload. ``add_grouping`` must be idempotent.
    """

    def load_policies(self) -> List[PolicyTuple]: ...

    def load_groupings(self) -> List[GroupingTuple]: ...

    def has_grouping(self, role: str, permission: str) -> bool: ...

    def add_grouping(self, role: str, permission: str) -> bool: ...


@runtime_checkable
class PersistentPolicyStore(PolicyStore, Protocol):
    """A store that can persist a full snapshot and report a change token."""

    def save(self, policies: Iterable[PolicyTuple], groupings: Iterable[GroupingTuple]) -> None: ...

    def etag(self) -> Optional[str]: ...


@runtime_checkable
class DecisionLogSink(Protocol):
    def log(self, payload: Dict[str, Any]) -> None: ...


@runtime_checkable
class MetricsSink(Protocol):
    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None: ...


@runtime_checkable
class MetricsObserve(Protocol):
    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None: ...


__all__ = [
    "PolicyStore",
    "PersistentPolicyStore",
    "DecisionLogSink",
    "MetricsSink",
    "MetricsObserve",
]
