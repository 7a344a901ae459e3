from __future__ import annotations

from typing import Optional


class OrgAclError(Exception):
    """Base class for all orgacl errors."""


class ConfigurationError(OrgAclError):
    """The engine could not be initialized; no decisions are served."""


class ModelError(ConfigurationError):
    """The policy model is malformed."""


class StoreError(ConfigurationError):
    """The policy store could not be read or written."""


class MalformedRowError(ConfigurationError):
    """A persisted policy/grouping row could not be parsed."""

    def __init__(self, message: str, *, line: Optional[int] = None, source: Optional[str] = None) -> None:
        self.line = line
        self.source = source
        where = ""
        if source:
            where = f"{source}:"
        if line is not None:
            where = f"{where}{line}: "
        elif where:
            where = f"{where} "
        super().__init__(f"{where}{message}")


class MalformedRequestError(OrgAclError, ValueError):
    """The request is missing required fields or has the wrong shape."""


class EvaluationError(OrgAclError):
    """An unexpected internal error occurred while matching a request."""


class ReloadError(OrgAclError):
    """A reload failed; the previous snapshot is still in effect."""


__all__ = [
    "OrgAclError",
    "ConfigurationError",
    "ModelError",
    "StoreError",
    "MalformedRowError",
    "MalformedRequestError",
    "EvaluationError",
    "ReloadError",
]
