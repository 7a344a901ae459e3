import logging
import time

from orgacl import Enforcer, MemoryPolicyStore, PolicyTuple, SubjectDescriptor
from orgacl.storage import FilePolicyStore, HotReloader, atomic_write

SUB = SubjectDescriptor(user_id="u")


def test_reload_only_when_etag_changes(reference_policies):
    store = MemoryPolicyStore(reference_policies)
    e = Enforcer(store)
    hr = HotReloader(e, poll_interval=0.01)
    assert hr.store is store
    assert hr.check_and_reload() is False

    store.save([PolicyTuple("u", "1", "read", "user", "1")], [])
    assert hr.check_and_reload() is True
    assert hr.last_etag == store.etag()
    assert hr.last_error is None
    assert e.evaluate(SUB, "1", "read").allowed is True
    assert hr.check_and_reload() is False


def test_force_reload(reference_policies):
    e = Enforcer(MemoryPolicyStore(reference_policies))
    hr = HotReloader(e)
    version = e.snapshot.version
    assert hr.check_and_reload(force=True) is True
    assert e.snapshot.version == version + 1


def test_store_without_etag_reloads_every_time(reference_policies):
    class NoEtag:
        def load_policies(self):
            return list(reference_policies)

        def load_groupings(self):
            return []

        def has_grouping(self, role, permission):
            return False

        def add_grouping(self, role, permission):
            return False

    hr = HotReloader(Enforcer(NoEtag()))
    assert hr.check_and_reload() is True
    assert hr.check_and_reload() is True


def test_malformed_file_is_suppressed_and_previous_snapshot_kept(policy_csv, caplog):
    store = FilePolicyStore(str(policy_csv))
    e = Enforcer(store)
    hr = HotReloader(e, backoff_min=0.05, backoff_max=0.1, jitter_ratio=0.0)
    owner = SubjectDescriptor(user_id="2", org_id="1")

    atomic_write(str(policy_csv), "p, 2, 1, owner\n")
    caplog.set_level(logging.ERROR, logger="orgacl.storage")
    assert hr.check_and_reload() is False
    assert hr.last_error is not None
    assert hr.suppressed_until > time.time()
    # suppressed inside the backoff window
    assert hr.check_and_reload() is False
    assert any("reload error" in r.getMessage() for r in caplog.records)
    assert e.evaluate(owner, "1", "delete").allowed is True

    atomic_write(str(policy_csv), "p, 2, 1, read, user, 1\n")
    time.sleep(0.3)
    assert hr.check_and_reload() is True
    assert hr.last_error is None
    assert hr.suppressed_until == 0.0
    assert e.evaluate(owner, "1", "delete").allowed is False
    assert e.evaluate(owner, "1", "read").allowed is True


def test_missing_file_logs_warning(policy_csv, caplog):
    e = Enforcer(FilePolicyStore(str(policy_csv)))
    hr = HotReloader(e)
    policy_csv.unlink()
    caplog.set_level(logging.WARNING, logger="orgacl.storage")
    assert hr.check_and_reload() is False
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING and r.name == "orgacl.storage"]
    assert warnings and "policy not found" in warnings[-1].getMessage()


def test_background_thread_picks_up_changes(policy_csv):
    e = Enforcer(FilePolicyStore(str(policy_csv)))
    hr = HotReloader(e, poll_interval=0.01, jitter_ratio=0.0)
    hr.start()
    try:
        hr.start()  # second start is a no-op
        atomic_write(str(policy_csv), "p, u, 9, read, user, 1\n")
        deadline = time.time() + 3.0
        while time.time() < deadline and not e.is_allowed(SUB, "9", "read"):
            time.sleep(0.05)
        assert e.is_allowed(SUB, "9", "read") is True
    finally:
        hr.stop()
    hr.stop()
