from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

from .errors import (
    ConfigurationError,
    EvaluationError,
    MalformedRowError,
    ReloadError,
    StoreError,
)
from .grouping import GroupingResolver
from .model import (
    OWNER_PERMISSIONS,
    OWNER_ROLE,
    Decision,
    GroupingTuple,
    PolicyTuple,
    Request,
    SubjectDescriptor,
)
from .policy_model import DEFAULT_MODEL, PolicyModel
from .ports import DecisionLogSink, MetricsSink, PolicyStore

logger = logging.getLogger("orgacl.engine")

SubjectLike = Union[SubjectDescriptor, Mapping[str, Any]]


@dataclass(frozen=True)
class Snapshot:
    """View of the policy set and role relation used by evaluations.

    ``version`` increases on every published change, including grouping upserts
    and removals, which update the relation in place.
    """

    policies: Tuple[PolicyTuple, ...]
    groupings: GroupingResolver
    version: int = 0


class Enforcer:
    """Decision facade over a loaded policy/grouping snapshot.

    Evaluations read ``self._snapshot`` once and never lock. Writers (reload,
    grouping upserts, policy add/remove) are serialized on ``self._lock`` and
    publish by replacing the snapshot reference.
    """

    def __init__(
        self,
        store: PolicyStore,
        *,
        model: PolicyModel = DEFAULT_MODEL,
        metrics: MetricsSink | None = None,
        logger_sink: DecisionLogSink | None = None,
        auto_save: bool = False,
        bootstrap_owner: bool = True,
    ) -> None:
        self.store = store
        self.model = model.validate()
        self.metrics = metrics
        self.logger_sink = logger_sink
        self.auto_save = bool(auto_save)
        self.bootstrap_owner = bool(bootstrap_owner)

        self._matcher = self.model.build_matcher()
        self._lock = threading.RLock()
        self._last_error: Exception | None = None

        self._snapshot = self._load_snapshot(version=0)
        if self.bootstrap_owner:
            self.bootstrap_owner_role()
        logger.info(
            "ORGACL: enforcer ready (%d policies, %d groupings)",
            len(self._snapshot.policies),
            len(self._snapshot.groupings),
        )

    # ------------------------------------------------------------------ #
    # Decisions
    # ------------------------------------------------------------------ #

    def evaluate(self, subject: SubjectLike, obj: str, act: str) -> Decision:
        """Decide whether ``subject`` may perform ``act`` on ``obj``.

        Raises:
            MalformedRequestError: the request is missing required fields.
            EvaluationError: matching failed internally; treat as deny.
        """
        if not isinstance(subject, SubjectDescriptor) and isinstance(subject, Mapping):
            subject = SubjectDescriptor.from_mapping(subject)
        return self.evaluate_request(Request(subject, obj, act))  # type: ignore[arg-type]

    def evaluate_request(self, request: Request) -> Decision:
        start = time.perf_counter()
        snap = self._snapshot
        try:
            hit = self._matcher.first_match(snap.policies, request, snap.groupings)
        except Exception as e:
            logger.exception("ORGACL: evaluation failed for obj=%s act=%s", request.obj, request.act)
            self._observe("error", start)
            raise EvaluationError(f"could not evaluate request: {e}") from e

        if hit is None:
            decision = Decision(allowed=False, reason="no_match")
        else:
            policy, clause = hit
            decision = Decision(allowed=True, reason="matched", policy=policy, clause=clause)

        self._observe("allow" if decision.allowed else "deny", start)
        self._log_decision(request, decision)
        return decision

    def is_allowed(self, subject: SubjectLike, obj: str, act: str) -> bool:
        """Boolean shortcut for :meth:`evaluate`. Internal errors deny."""
        try:
            return self.evaluate(subject, obj, act).allowed
        except EvaluationError:
            return False

    async def evaluate_async(self, subject: SubjectLike, obj: str, act: str) -> Decision:
        return await asyncio.to_thread(self.evaluate, subject, obj, act)

    # ------------------------------------------------------------------ #
    # Role relation
    # ------------------------------------------------------------------ #

    def bootstrap_owner_role(self) -> List[str]:
        """Ensure ``owner`` expands to the fixed owner permissions. Idempotent.

        Returns the permissions that were newly registered.
        """
        added = self._upsert_groupings(OWNER_ROLE, OWNER_PERMISSIONS)
        if added:
            logger.info("ORGACL: owner role expanded to %s", ", ".join(added))
        return added

    def ensure_grouping(self, role: str, permission: str) -> bool:
        return bool(self._upsert_groupings(role, (permission,)))

    def remove_grouping(self, role: str, permission: str) -> bool:
        with self._lock:
            snap = self._snapshot
            if not snap.groupings.resolve(role, permission):
                return False
            if self.auto_save:
                remaining = [g for g in snap.groupings.edges() if g != GroupingTuple(role, permission)]
                self._persist(snap.policies, remaining)
            snap.groupings.remove_edge(role, permission)
            self._bump_version()
            return True

    def _upsert_groupings(
        self,
        role: str,
        permissions: Iterable[str],
        groupings: GroupingResolver | None = None,
    ) -> List[str]:
        """Insert the missing ``role -> p`` edges into ``groupings`` (the live relation by default).

        With ``auto_save`` each edge is written to the store first. If a write
        fails, the edges already stored are still applied before the error
        propagates, so the store and the relation stay in agreement.
        """
        with self._lock:
            target = groupings if groupings is not None else self._snapshot.groupings
            missing = [p for p in dict.fromkeys(permissions) if not target.resolve(role, p)]
            if not missing:
                return []
            persisted: List[str] = []
            try:
                if self.auto_save:
                    for perm in missing:
                        self._write_grouping(role, perm)
                        persisted.append(perm)
                else:
                    persisted = missing
            finally:
                added = target.ensure_edges(role, persisted)
                if added and target is self._snapshot.groupings:
                    self._bump_version()
            return added

    def _write_grouping(self, role: str, permission: str) -> None:
        try:
            self.store.add_grouping(role, permission)
        except Exception as e:
            raise StoreError(f"could not persist grouping {role} -> {permission}: {e}") from e

    def _bump_version(self) -> None:
        snap = self._snapshot
        self._snapshot = Snapshot(snap.policies, snap.groupings, snap.version + 1)

    # ------------------------------------------------------------------ #
    # Policy set
    # ------------------------------------------------------------------ #

    def add_policies(self, policies: Iterable[PolicyTuple]) -> int:
        """Add tuples not already present. Returns how many were added."""
        with self._lock:
            snap = self._snapshot
            present = set(snap.policies)
            new: List[PolicyTuple] = []
            for p in policies:
                p = _coerce_policy(p)
                if p in present:
                    continue
                present.add(p)
                new.append(p)
            if not new:
                return 0
            self._publish(snap.policies + tuple(new), snap.groupings)
            return len(new)

    def remove_policies(self, policies: Iterable[PolicyTuple]) -> int:
        with self._lock:
            snap = self._snapshot
            doomed = {_coerce_policy(p) for p in policies}
            kept = tuple(p for p in snap.policies if p not in doomed)
            removed = len(snap.policies) - len(kept)
            if removed:
                self._publish(kept, snap.groupings)
            return removed

    def _publish(self, policies: Tuple[PolicyTuple, ...], groupings: GroupingResolver) -> None:
        if self.auto_save:
            self._persist(policies, groupings.edges())
        self._snapshot = Snapshot(policies, groupings, self._snapshot.version + 1)

    def _persist(self, policies: Iterable[PolicyTuple], groupings: Iterable[GroupingTuple]) -> None:
        save = getattr(self.store, "save", None)
        if not callable(save):
            raise StoreError(f"{type(self.store).__name__} does not support saving")
        try:
            save(list(policies), sorted(groupings, key=lambda g: (g.role, g.permission)))
        except Exception as e:
            raise StoreError(f"could not save policy set: {e}") from e

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #

    def reload(self) -> None:
        """Load the store into a fresh snapshot and swap it in.

        On failure the previous snapshot stays in effect and ReloadError is raised.
        """
        with self._lock:
            try:
                snap = self._load_snapshot(version=self._snapshot.version + 1)
                if self.bootstrap_owner:
                    self._upsert_groupings(OWNER_ROLE, OWNER_PERMISSIONS, snap.groupings)
            except Exception as e:
                self._last_error = e
                logger.warning("ORGACL: reload failed, keeping previous snapshot: %s", e)
                raise ReloadError(f"reload failed: {e}") from e
            self._snapshot = snap
            self._last_error = None
        logger.info(
            "ORGACL: policy reloaded (%d policies, %d groupings)",
            len(snap.policies),
            len(snap.groupings),
        )

    def _load_snapshot(self, *, version: int) -> Snapshot:
        try:
            raw_policies = self.store.load_policies()
            raw_groupings = self.store.load_groupings()
        except ConfigurationError:
            raise
        except Exception as e:
            raise StoreError(f"could not read policy store: {e}") from e

        policies = tuple(_coerce_policy(p) for p in raw_policies)
        groupings = GroupingResolver(
            (_coerce_grouping(g) for g in raw_groupings), name=self.model.role_relation
        )
        return Snapshot(policies, groupings, version)

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def policies(self) -> Tuple[PolicyTuple, ...]:
        return self._snapshot.policies

    @property
    def groupings(self) -> FrozenSet[GroupingTuple]:
        return self._snapshot.groupings.edges()

    def resolve(self, role: str, permission: str) -> bool:
        return self._snapshot.groupings.resolve(role, permission)

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    # ------------------------------------------------------------------ #
    # Sinks
    # ------------------------------------------------------------------ #

    def _observe(self, outcome: str, start: float) -> None:
        if self.metrics is None:
            return
        labels = {"decision": outcome}
        try:
            self.metrics.inc("orgacl_decisions_total", labels)
            observe = getattr(self.metrics, "observe", None)
            if callable(observe):
                observe("orgacl_decision_seconds", time.perf_counter() - start, labels)
        except Exception:
            logger.debug("ORGACL: metrics sink failed", exc_info=True)

    def _log_decision(self, request: Request, decision: Decision) -> None:
        if self.logger_sink is None:
            return
        payload: Dict[str, Any] = {
            "decision": "allow" if decision.allowed else "deny",
            "reason": decision.reason,
            "subject": request.subject.to_dict(),
            "obj": request.obj,
            "act": request.act,
            "clause": decision.clause.value if decision.clause is not None else None,
            "policy": list(decision.policy.to_row()) if decision.policy is not None else None,
        }
        try:
            self.logger_sink.log(payload)
        except Exception:
            logger.debug("ORGACL: decision logger failed", exc_info=True)


def _coerce_policy(item: Any) -> PolicyTuple:
    try:
        if isinstance(item, PolicyTuple):
            return item.validate()
        fields = tuple(item)
        if len(fields) != 5:
            raise ValueError(f"expected 5 fields, got {fields!r}")
        return PolicyTuple(*fields)
    except (TypeError, ValueError) as e:
        raise MalformedRowError(f"malformed policy tuple: {e}") from e


def _coerce_grouping(item: Any) -> GroupingTuple:
    try:
        if isinstance(item, GroupingTuple):
            return item.validate()
        fields = tuple(item)
        if len(fields) != 2:
            raise ValueError(f"expected 2 fields, got {fields!r}")
        return GroupingTuple(*fields)
    except (TypeError, ValueError) as e:
        raise MalformedRowError(f"malformed grouping tuple: {e}") from e


__all__ = ["Enforcer", "Snapshot"]
