from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, FrozenSet, Mapping, Optional, Tuple

from .errors import MalformedRequestError

if TYPE_CHECKING:  # pragma: no cover
    from .matcher import ClauseKind

# Subject value of a public-sharing tuple; matches any requester.
PUBLIC_SUBJECT = "0"

OWNER_ROLE = "owner"
OWNER_PERMISSIONS: Tuple[str, ...] = ("read", "write", "download", "share", "delete")

ADMIN_ROLE = "admin"


class PolicyGroup(str, Enum):
    """Scope tag of a policy tuple.

    Selects which field of the requester is compared against the tuple's subject.
    """

    USER = "user"
    TEAM = "team"
    DEPT = "dept"
    ORG = "org"
    PUBLIC = "public"

    @classmethod
    def parse(cls, value: Any) -> "PolicyGroup":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip())
        except ValueError:
            allowed = "|".join(m.value for m in cls)
            raise ValueError(f"unknown policy group {value!r} (expected {allowed})") from None

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PolicyTuple:
    """A single allow grant: ``(sub, obj, act, pgrp, orgId)``."""

    sub: str
    obj: str
    act: str
    pgrp: PolicyGroup
    org_id: str

    def __post_init__(self) -> None:
        if not isinstance(self.pgrp, PolicyGroup):
            object.__setattr__(self, "pgrp", PolicyGroup.parse(self.pgrp))
        self.validate()

    def validate(self) -> "PolicyTuple":
        """Raise ValueError unless every field is a non-empty string.

        An empty field would match the empty optional fields of a requester.
        """
        _require_fields(self, ("sub", "obj", "act", "org_id"))
        if not isinstance(self.pgrp, PolicyGroup):
            raise ValueError(f"pgrp must be a PolicyGroup, got {self.pgrp!r}")
        return self

    def to_row(self) -> Tuple[str, str, str, str, str]:
        return (self.sub, self.obj, self.act, self.pgrp.value, self.org_id)


@dataclass(frozen=True)
class GroupingTuple:
    """An edge of the role relation: ``role`` implies ``permission``."""

    role: str
    permission: str

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> "GroupingTuple":
        _require_fields(self, ("role", "permission"))
        return self

    def to_row(self) -> Tuple[str, str]:
        return (self.role, self.permission)


def _require_fields(obj: Any, names: Tuple[str, ...]) -> None:
    for name in names:
        value = getattr(obj, name)
        if not isinstance(value, str):
            raise ValueError(f"{name} must be a string, got {type(value).__name__}")
        if not value:
            raise ValueError(f"{name} must not be empty")


def _as_id(name: str, value: Any, *, required: bool = False) -> str:
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise MalformedRequestError(f"{name} must be a string, got {type(value).__name__}")
    if required and not value:
        raise MalformedRequestError(f"{name} is required")
    return value


def _as_id_set(name: str, values: Any) -> FrozenSet[str]:
    if values is None:
        return frozenset()
    # A bare string is iterable but almost certainly a caller mistake.
    if isinstance(values, (str, bytes)):
        raise MalformedRequestError(f"{name} must be a collection of strings, not a single string")
    try:
        items = list(values)
    except TypeError:
        raise MalformedRequestError(f"{name} must be a collection of strings") from None
    for item in items:
        if not isinstance(item, str):
            raise MalformedRequestError(
                f"{name} must contain only strings, got {type(item).__name__}"
            )
    return frozenset(items)


@dataclass(frozen=True)
class SubjectDescriptor:
    """Verified identity of a requester.

    ``roles`` and ``teams`` accept any iterable of strings and are stored as frozensets.
    """

    user_id: str
    team_id: str = ""
    dept_id: str = ""
    org_id: str = ""
    roles: FrozenSet[str] = field(default_factory=frozenset)
    teams: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "user_id", _as_id("user_id", self.user_id, required=True))
        object.__setattr__(self, "team_id", _as_id("team_id", self.team_id))
        object.__setattr__(self, "dept_id", _as_id("dept_id", self.dept_id))
        object.__setattr__(self, "org_id", _as_id("org_id", self.org_id))
        object.__setattr__(self, "roles", _as_id_set("roles", self.roles))
        object.__setattr__(self, "teams", _as_id_set("teams", self.teams))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SubjectDescriptor":
        """Build a descriptor from snake_case or camelCase keys (``user_id`` / ``userId``)."""
        if not isinstance(data, Mapping):
            raise MalformedRequestError("subject must be a mapping")

        def pick(snake: str, camel: str) -> Any:
            if snake in data:
                return data[snake]
            return data.get(camel)

        return cls(
            user_id=pick("user_id", "userId"),
            team_id=pick("team_id", "teamId"),
            dept_id=pick("dept_id", "deptId"),
            org_id=pick("org_id", "orgId"),
            roles=pick("roles", "roles"),
            teams=pick("teams", "teams"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "team_id": self.team_id,
            "dept_id": self.dept_id,
            "org_id": self.org_id,
            "roles": sorted(self.roles),
            "teams": sorted(self.teams),
        }


@dataclass(frozen=True)
class Request:
    subject: SubjectDescriptor
    obj: str
    act: str

    def __post_init__(self) -> None:
        if not isinstance(self.subject, SubjectDescriptor):
            raise MalformedRequestError(
                f"subject must be a SubjectDescriptor, got {type(self.subject).__name__}"
            )
        object.__setattr__(self, "obj", _as_id("obj", self.obj, required=True))
        object.__setattr__(self, "act", _as_id("act", self.act, required=True))


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str
    policy: Optional[PolicyTuple] = None
    clause: Optional["ClauseKind"] = None

    def __bool__(self) -> bool:
        return self.allowed
