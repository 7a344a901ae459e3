import pytest

hypothesis = pytest.importorskip("hypothesis")
from hypothesis import given, settings
from hypothesis import strategies as st

from orgacl import (
    Enforcer,
    MemoryPolicyStore,
    PolicyGroup,
    PolicyTuple,
    SubjectDescriptor,
)

IDS = st.sampled_from(["0", "1", "2", "3"])
ACTS = st.sampled_from(["read", "write", "delete", "owner"])
ROLES = st.frozensets(st.sampled_from(["admin", "team_lead", "member"]), max_size=2)

policies_st = st.lists(
    st.builds(PolicyTuple, IDS, IDS, ACTS, st.sampled_from(list(PolicyGroup)), IDS),
    max_size=6,
)
subject_st = st.builds(
    SubjectDescriptor,
    user_id=IDS,
    team_id=IDS,
    dept_id=IDS,
    org_id=IDS,
    roles=ROLES,
    teams=st.frozensets(IDS, max_size=3),
)
OWNER_PERMS = {"read", "write", "download", "share", "delete"}


def _reference(policies, sub, obj, act):
    """The seven clauses written out as one boolean expression per tuple."""
    for p in policies:
        g = p.act == "owner" and act in OWNER_PERMS
        if (
            (p.sub == sub.user_id and p.act == act and p.obj == obj and p.pgrp == "user")
            or (p.sub == sub.dept_id and p.act == act and p.obj == obj and p.pgrp == "dept")
            or (p.sub == sub.org_id and p.act == act and p.obj == obj and p.pgrp == "org")
            or (p.sub in sub.teams and p.act == act and p.obj == obj and p.pgrp == "team")
            or (p.sub == sub.user_id and g and p.obj == obj and p.pgrp == "user")
            or ("admin" in sub.roles and p.org_id == sub.org_id)
            or (p.sub == "0" and p.act == act and p.obj == obj and p.pgrp == "public")
        ):
            return True
    return False


@settings(max_examples=300, deadline=None)
@given(policies_st, subject_st, IDS, ACTS)
def test_decision_equals_disjunction_of_clauses(policies, sub, obj, act):
    enforcer = Enforcer(MemoryPolicyStore(policies))
    d1 = enforcer.evaluate(sub, obj, act)
    d2 = enforcer.evaluate(sub, obj, act)
    assert d1 == d2
    assert d1.allowed is _reference(policies, sub, obj, act)


@settings(max_examples=100, deadline=None)
@given(policies_st, IDS, ACTS, st.frozensets(IDS, max_size=3))
def test_admin_never_crosses_organizations(policies, obj, act, teams):
    # Keep only tuples of org "1"; an admin of org "2" can then only get in through
    # clauses that do not look at the org at all.
    org1 = [PolicyTuple(p.sub, p.obj, p.act, p.pgrp, "1") for p in policies]
    enforcer = Enforcer(MemoryPolicyStore(org1))
    admin = SubjectDescriptor(user_id="9", org_id="2", roles={"admin"}, teams=teams)
    d = enforcer.evaluate(admin, obj, act)
    assert d.clause is None or d.clause.value != "org_admin"


@settings(max_examples=100, deadline=None)
@given(subject_st, IDS, ACTS)
def test_public_tuple_grants_every_subject(sub, obj, act):
    enforcer = Enforcer(MemoryPolicyStore([PolicyTuple("0", obj, act, "public", "7")]))
    assert enforcer.evaluate(sub, obj, act).allowed is True
