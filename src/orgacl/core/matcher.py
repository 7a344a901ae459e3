"""Seven-clause matcher.

Each clause is a typed predicate over ``(policy, request, groupings)``. A policy
satisfies a request when any clause holds; clauses are tried in the order the
policy model declares, and the first hit wins.

Default order::

    1. USER_GRANT      p.sub == userId  and act/obj equal, pgrp == user
    2. DEPT_GRANT      p.sub == deptId  and act/obj equal, pgrp == dept
    3. ORG_GRANT       p.sub == orgId   and act/obj equal, pgrp == org
    4. TEAM_GRANT      p.sub in teams   and act/obj equal, pgrp == team
    5. ROLE_EXPANSION  p.sub == userId, g(p.act, r.act), obj equal, pgrp == user
    6. ORG_ADMIN       "admin" in roles and p.orgId == orgId   (obj/act ignored)
    7. PUBLIC_SHARE    p.sub == "0"     and act/obj equal, pgrp == public
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence, Tuple

from .grouping import GroupingResolver
from .model import ADMIN_ROLE, PUBLIC_SUBJECT, PolicyGroup, PolicyTuple, Request


class ClauseKind(str, Enum):
    USER_GRANT = "user_grant"
    DEPT_GRANT = "dept_grant"
    ORG_GRANT = "org_grant"
    TEAM_GRANT = "team_grant"
    ROLE_EXPANSION = "role_expansion"
    ORG_ADMIN = "org_admin"
    PUBLIC_SHARE = "public_share"

    def __str__(self) -> str:
        return self.value


Predicate = Callable[[PolicyTuple, Request, GroupingResolver], bool]


def _same_target(p: PolicyTuple, r: Request) -> bool:
    return p.act == r.act and p.obj == r.obj


def _user_grant(p: PolicyTuple, r: Request, g: GroupingResolver) -> bool:
    return p.sub == r.subject.user_id and _same_target(p, r) and p.pgrp is PolicyGroup.USER


def _dept_grant(p: PolicyTuple, r: Request, g: GroupingResolver) -> bool:
    return p.sub == r.subject.dept_id and _same_target(p, r) and p.pgrp is PolicyGroup.DEPT


def _org_grant(p: PolicyTuple, r: Request, g: GroupingResolver) -> bool:
    return p.sub == r.subject.org_id and _same_target(p, r) and p.pgrp is PolicyGroup.ORG


def _team_grant(p: PolicyTuple, r: Request, g: GroupingResolver) -> bool:
    return p.sub in r.subject.teams and _same_target(p, r) and p.pgrp is PolicyGroup.TEAM


def _role_expansion(p: PolicyTuple, r: Request, g: GroupingResolver) -> bool:
    return (
        p.sub == r.subject.user_id
        and p.obj == r.obj
        and p.pgrp is PolicyGroup.USER
        and g.resolve(p.act, r.act)
    )


def _org_admin(p: PolicyTuple, r: Request, g: GroupingResolver) -> bool:
    # Full bypass of obj/act; the org match is what keeps it tenant-scoped.
    return ADMIN_ROLE in r.subject.roles and p.org_id == r.subject.org_id


def _public_share(p: PolicyTuple, r: Request, g: GroupingResolver) -> bool:
    return p.sub == PUBLIC_SUBJECT and _same_target(p, r) and p.pgrp is PolicyGroup.PUBLIC


@dataclass(frozen=True)
class Clause:
    kind: ClauseKind
    predicate: Predicate

    def __call__(self, policy: PolicyTuple, request: Request, groupings: GroupingResolver) -> bool:
        return self.predicate(policy, request, groupings)


CLAUSES = {
    ClauseKind.USER_GRANT: Clause(ClauseKind.USER_GRANT, _user_grant),
    ClauseKind.DEPT_GRANT: Clause(ClauseKind.DEPT_GRANT, _dept_grant),
    ClauseKind.ORG_GRANT: Clause(ClauseKind.ORG_GRANT, _org_grant),
    ClauseKind.TEAM_GRANT: Clause(ClauseKind.TEAM_GRANT, _team_grant),
    ClauseKind.ROLE_EXPANSION: Clause(ClauseKind.ROLE_EXPANSION, _role_expansion),
    ClauseKind.ORG_ADMIN: Clause(ClauseKind.ORG_ADMIN, _org_admin),
    ClauseKind.PUBLIC_SHARE: Clause(ClauseKind.PUBLIC_SHARE, _public_share),
}

DEFAULT_CLAUSE_ORDER: Tuple[ClauseKind, ...] = (
    ClauseKind.USER_GRANT,
    ClauseKind.DEPT_GRANT,
    ClauseKind.ORG_GRANT,
    ClauseKind.TEAM_GRANT,
    ClauseKind.ROLE_EXPANSION,
    ClauseKind.ORG_ADMIN,
    ClauseKind.PUBLIC_SHARE,
)

DEFAULT_CLAUSES: Tuple[Clause, ...] = tuple(CLAUSES[k] for k in DEFAULT_CLAUSE_ORDER)


class Matcher:
    """Ordered list of clauses evaluated as a disjunction."""

    def __init__(self, order: Sequence[ClauseKind] = DEFAULT_CLAUSE_ORDER) -> None:
        self.clauses: Tuple[Clause, ...] = tuple(CLAUSES[ClauseKind(k)] for k in order)

    @property
    def order(self) -> Tuple[ClauseKind, ...]:
        return tuple(c.kind for c in self.clauses)

    def match(
        self, policy: PolicyTuple, request: Request, groupings: GroupingResolver
    ) -> Optional[ClauseKind]:
        """Return the first clause satisfied by ``policy`` for ``request``, if any."""
        for clause in self.clauses:
            if clause(policy, request, groupings):
                return clause.kind
        return None

    def first_match(
        self,
        policies: Iterable[PolicyTuple],
        request: Request,
        groupings: GroupingResolver,
    ) -> Optional[Tuple[PolicyTuple, ClauseKind]]:
        for policy in policies:
            kind = self.match(policy, request, groupings)
            if kind is not None:
                return policy, kind
        return None


__all__ = ["ClauseKind", "Clause", "CLAUSES", "DEFAULT_CLAUSE_ORDER", "DEFAULT_CLAUSES", "Matcher"]
