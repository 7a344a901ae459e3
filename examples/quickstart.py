import logging
import os

from orgacl import Enforcer, FilePolicyStore, SubjectDescriptor
from orgacl.logging import DecisionLogger

HERE = os.path.dirname(os.path.abspath(__file__))


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(name)s %(message)s")
    enforcer = Enforcer(
        FilePolicyStore(os.path.join(HERE, "policy.csv")),
        logger_sink=DecisionLogger(as_json=True),
    )

    scenarios = [
        ("user 1 on object 3", SubjectDescriptor("1", dept_id="1", org_id="1", teams={"1"}), "3", ["read"]),
        ("owner 2 on object 1", SubjectDescriptor("2", dept_id="1", org_id="1", teams={"1"}), "1", ["read", "download", "delete"]),
        ("team member 3 on object 1", SubjectDescriptor("3", team_id="1", teams={"1", "2"}), "1", ["read", "share"]),
        ("org member 3 on object 2", SubjectDescriptor("3", org_id="1"), "2", ["download", "delete"]),
        ("org 1 admin on object 1", SubjectDescriptor("4", org_id="1", roles={"admin", "team_lead"}), "1", ["write", "delete"]),
        ("org 2 admin on object 2", SubjectDescriptor("5", org_id="2", roles={"admin", "team_lead"}), "2", ["write", "delete"]),
    ]
    for title, subject, obj, actions in scenarios:
        for act in actions:
            d = enforcer.evaluate(subject, obj, act)
            print(f"{title}: {act} -> {d.allowed} ({d.clause or d.reason})")


if __name__ == "__main__":
    main()
