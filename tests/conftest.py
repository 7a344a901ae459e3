from pathlib import Path

import pytest

from orgacl import Enforcer, FilePolicyStore, MemoryPolicyStore, PolicyTuple, SubjectDescriptor

EXAMPLES = Path(__file__).resolve().parents[1] / "examples"

REFERENCE_ROWS = [
    ("2", "1", "owner", "user", "1"),
    ("1", "1", "read", "team", "1"),
    ("1", "2", "read", "org", "1"),
    ("1", "2", "download", "org", "1"),
    ("3", "3", "owner", "user", "1"),
    ("2", "3", "read", "dept", "1"),
    ("0", "4", "read", "public", "1"),
]


@pytest.fixture
def reference_policies():
    return [PolicyTuple(*row) for row in REFERENCE_ROWS]


@pytest.fixture
def memory_store(reference_policies):
    return MemoryPolicyStore(reference_policies)


@pytest.fixture
def enforcer(memory_store):
    return Enforcer(memory_store)


@pytest.fixture
def policy_csv(tmp_path):
    """A writable copy of the reference policy file."""
    path = tmp_path / "policy.csv"
    path.write_text((EXAMPLES / "policy.csv").read_text(encoding="utf-8"), encoding="utf-8")
    return path


@pytest.fixture
def file_enforcer(policy_csv):
    return Enforcer(FilePolicyStore(str(policy_csv)))


@pytest.fixture
def owner_of_1():
    return SubjectDescriptor(user_id="2", team_id="1", dept_id="1", org_id="1", teams={"1"})
