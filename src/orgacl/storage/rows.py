"""Row-oriented persisted format.

One record per line, comma separated::

    p, sub, obj, act, pgrp, orgId
    g, role, permission

Blank lines and lines starting with ``#`` are ignored.
"""

from __future__ import annotations

import csv
import io
from typing import Iterable, List, Optional, Tuple

from ..core.errors import MalformedRowError
from ..core.model import GroupingTuple, PolicyGroup, PolicyTuple

POLICY_PTYPE = "p"
GROUPING_PTYPE = "g"


def parse_rows(
    text: str, *, source: Optional[str] = None
) -> Tuple[List[PolicyTuple], List[GroupingTuple]]:
    policies: List[PolicyTuple] = []
    groupings: List[GroupingTuple] = []

    reader = csv.reader(io.StringIO(text), skipinitialspace=True)
    for fields in reader:
        lineno = reader.line_num
        fields = [f.strip() for f in fields]
        if not fields or fields == [""] or fields[0].startswith("#"):
            continue

        ptype, values = fields[0], fields[1:]
        if any(v == "" for v in values):
            raise MalformedRowError("empty field", line=lineno, source=source)

        if ptype == POLICY_PTYPE:
            if len(values) != 5:
                raise MalformedRowError(
                    f"policy row needs 5 fields (sub, obj, act, pgrp, orgId), got {len(values)}",
                    line=lineno,
                    source=source,
                )
            sub, obj, act, pgrp, org_id = values
            try:
                group = PolicyGroup.parse(pgrp)
            except ValueError as e:
                raise MalformedRowError(str(e), line=lineno, source=source) from None
            policies.append(PolicyTuple(sub, obj, act, group, org_id))
        elif ptype == GROUPING_PTYPE:
            if len(values) != 2:
                raise MalformedRowError(
                    f"grouping row needs 2 fields (role, permission), got {len(values)}",
                    line=lineno,
                    source=source,
                )
            groupings.append(GroupingTuple(values[0], values[1]))
        else:
            raise MalformedRowError(f"unknown row type {ptype!r}", line=lineno, source=source)

    return policies, groupings


def format_rows(policies: Iterable[PolicyTuple], groupings: Iterable[GroupingTuple]) -> str:
    lines = [", ".join((POLICY_PTYPE,) + p.to_row()) for p in policies]
    lines += [", ".join((GROUPING_PTYPE,) + g.to_row()) for g in groupings]
    return "\n".join(lines) + ("\n" if lines else "")


__all__ = ["parse_rows", "format_rows", "POLICY_PTYPE", "GROUPING_PTYPE"]
