from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Mapping, Tuple

from .errors import ModelError
from .matcher import DEFAULT_CLAUSE_ORDER, ClauseKind, Matcher

REQUEST_DEFINITION: Tuple[str, ...] = ("sub", "obj", "act")
POLICY_DEFINITION: Tuple[str, ...] = ("sub", "obj", "act", "pgrp", "orgId")
ROLE_RELATION = "g"
EFFECT_SOME_ALLOW = "some(allow)"


@dataclass(frozen=True)
class PolicyModel:
    """Static schema of the engine.

    Request shape ``(sub, obj, act)``, policy shape ``(sub, obj, act, pgrp, orgId)``,
    a binary role relation ``g`` and an allow-if-any-matches effect. Only the
    clause order may differ between models; the clause set itself is fixed.
    """

    request_definition: Tuple[str, ...] = REQUEST_DEFINITION
    policy_definition: Tuple[str, ...] = POLICY_DEFINITION
    role_definition: Tuple[str, int] = (ROLE_RELATION, 2)
    effect: str = EFFECT_SOME_ALLOW
    clause_order: Tuple[ClauseKind, ...] = DEFAULT_CLAUSE_ORDER

    @property
    def role_relation(self) -> str:
        return self.role_definition[0]

    def validate(self) -> "PolicyModel":
        if tuple(self.request_definition) != REQUEST_DEFINITION:
            raise ModelError(
                f"request definition must be {', '.join(REQUEST_DEFINITION)}; "
                f"got {', '.join(self.request_definition)}"
            )
        if tuple(self.policy_definition) != POLICY_DEFINITION:
            raise ModelError(
                f"policy definition must be {', '.join(POLICY_DEFINITION)}; "
                f"got {', '.join(self.policy_definition)}"
            )
        if tuple(self.role_definition) != (ROLE_RELATION, 2):
            raise ModelError(f"role definition must be {ROLE_RELATION} = _, _")
        if self.effect != EFFECT_SOME_ALLOW:
            raise ModelError(f"unsupported policy effect {self.effect!r}")

        kinds = []
        for k in self.clause_order:
            try:
                kinds.append(ClauseKind(k))
            except ValueError:
                raise ModelError(f"unknown matcher clause {k!r}") from None
        dupes = sorted(k.value for k, n in Counter(kinds).items() if n > 1)
        if dupes:
            raise ModelError(f"duplicate matcher clauses: {', '.join(dupes)}")
        missing = sorted(k.value for k in ClauseKind if k not in kinds)
        if missing:
            raise ModelError(f"matcher is missing clauses: {', '.join(missing)}")
        return self

    def build_matcher(self) -> Matcher:
        return Matcher(self.clause_order)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PolicyModel":
        """Build a model from a plain mapping (e.g. parsed JSON) and validate it."""
        if not isinstance(data, Mapping):
            raise ModelError("policy model must be a mapping")
        try:
            kwargs: dict[str, Any] = {}
            if "request_definition" in data:
                kwargs["request_definition"] = tuple(data["request_definition"])
            if "policy_definition" in data:
                kwargs["policy_definition"] = tuple(data["policy_definition"])
            if "role_definition" in data:
                name, arity = data["role_definition"]
                kwargs["role_definition"] = (name, int(arity))
            if "effect" in data:
                kwargs["effect"] = data["effect"]
            if "clause_order" in data:
                kwargs["clause_order"] = tuple(data["clause_order"])
        except (TypeError, ValueError) as e:
            raise ModelError(f"malformed policy model: {e}") from e
        return cls(**kwargs).validate()


DEFAULT_MODEL = PolicyModel().validate()

__all__ = ["PolicyModel", "DEFAULT_MODEL", "POLICY_DEFINITION", "REQUEST_DEFINITION"]
