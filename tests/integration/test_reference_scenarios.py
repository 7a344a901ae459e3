import pytest

from orgacl import ClauseKind, SubjectDescriptor
from orgacl.storage import parse_rows


def test_user_without_grant_cannot_read_object_3(file_enforcer):
    sub = SubjectDescriptor(user_id="1", team_id="2", dept_id="1", org_id="1", roles={"slave"}, teams={"1"})
    d = file_enforcer.evaluate(sub, "3", "read")
    assert d.allowed is False
    assert d.reason == "no_match"


@pytest.mark.parametrize("act", ["read", "download", "delete", "write", "share"])
def test_owner_gets_every_owner_permission(file_enforcer, owner_of_1, act):
    d = file_enforcer.evaluate(owner_of_1, "1", act)
    assert d.allowed is True
    assert d.clause is ClauseKind.ROLE_EXPANSION
    assert d.policy.act == "owner"


def test_team_member_reads_but_cannot_share(file_enforcer):
    sub = SubjectDescriptor(user_id="3", team_id="1", teams={"1", "2"})
    read = file_enforcer.evaluate(sub, "1", "read")
    assert read.allowed is True and read.clause is ClauseKind.TEAM_GRANT
    assert file_enforcer.evaluate(sub, "1", "share").allowed is False


def test_org_wide_grant_covers_read_and_download_only(file_enforcer):
    sub = SubjectDescriptor(user_id="3", org_id="1")
    download = file_enforcer.evaluate(sub, "2", "download")
    assert download.allowed is True and download.clause is ClauseKind.ORG_GRANT
    assert file_enforcer.evaluate(sub, "2", "delete").allowed is False


@pytest.mark.parametrize("act", ["write", "delete"])
def test_org_admin_bypasses_object_checks_in_own_org(file_enforcer, act):
    sub = SubjectDescriptor(user_id="4", org_id="1", roles={"admin", "team_lead"})
    d = file_enforcer.evaluate(sub, "1", act)
    assert d.allowed is True
    assert d.clause is ClauseKind.ORG_ADMIN


@pytest.mark.parametrize("act", ["write", "delete"])
def test_admin_of_other_org_is_denied(file_enforcer, act):
    sub = SubjectDescriptor(
        user_id="5", team_id="4", dept_id="4", org_id="2", roles={"admin", "team_lead"}, teams={"1", "2"}
    )
    assert file_enforcer.evaluate(sub, "2", act).allowed is False


def test_public_object_is_readable_by_anyone(file_enforcer):
    for sub in (
        SubjectDescriptor(user_id="99"),
        SubjectDescriptor(user_id="5", org_id="2", roles={"admin"}),
    ):
        d = file_enforcer.evaluate(sub, "4", "read")
        assert d.allowed is True
    assert file_enforcer.evaluate(SubjectDescriptor(user_id="99"), "4", "write").allowed is False


def test_dept_grant(file_enforcer):
    sub = SubjectDescriptor(user_id="42", dept_id="2")
    d = file_enforcer.evaluate(sub, "3", "read")
    assert d.allowed is True and d.clause is ClauseKind.DEPT_GRANT


def test_owner_bootstrap_is_not_written_to_file_by_default(file_enforcer, policy_csv):
    assert file_enforcer.resolve("owner", "delete") is True
    _, groupings = parse_rows(policy_csv.read_text(encoding="utf-8"))
    assert groupings == []
