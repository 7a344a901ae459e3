from __future__ import annotations

from typing import Any, Callable, Tuple

from ..core.model import SubjectDescriptor

# Maps a framework request to (subject, obj, act).
RequestBuilder = Callable[[Any], Tuple[SubjectDescriptor, str, str]]

REASON_HEADER = "X-ORGACL-Reason"
CLAUSE_HEADER = "X-ORGACL-Clause"
