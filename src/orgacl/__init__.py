"""Hierarchical multi-tenant access-control decision engine."""

from .core.engine import Enforcer, Snapshot
from .core.errors import (
    ConfigurationError,
    EvaluationError,
    MalformedRequestError,
    MalformedRowError,
    ModelError,
    OrgAclError,
    ReloadError,
    StoreError,
)
from .core.grouping import GroupingResolver
from .core.matcher import ClauseKind, Matcher
from .core.model import (
    OWNER_PERMISSIONS,
    OWNER_ROLE,
    PUBLIC_SUBJECT,
    Decision,
    GroupingTuple,
    PolicyGroup,
    PolicyTuple,
    Request,
    SubjectDescriptor,
)
from .core.policy_model import DEFAULT_MODEL, PolicyModel
from .storage import FilePolicyStore, HotReloader, MemoryPolicyStore

__version__ = "0.1.0"

__all__ = [
    "Enforcer",
    "Snapshot",
    "GroupingResolver",
    "ClauseKind",
    "Matcher",
    "PolicyModel",
    "DEFAULT_MODEL",
    "Decision",
    "GroupingTuple",
    "PolicyGroup",
    "PolicyTuple",
    "Request",
    "SubjectDescriptor",
    "OWNER_PERMISSIONS",
    "OWNER_ROLE",
    "PUBLIC_SUBJECT",
    "FilePolicyStore",
    "HotReloader",
    "MemoryPolicyStore",
    "OrgAclError",
    "ConfigurationError",
    "ModelError",
    "StoreError",
    "MalformedRowError",
    "MalformedRequestError",
    "EvaluationError",
    "ReloadError",
    "__version__",
]
