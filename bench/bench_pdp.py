import argparse
import statistics
import time

from orgacl import Enforcer, MemoryPolicyStore, PolicyTuple, SubjectDescriptor


def gen_policies(n: int) -> list:
    # n-1 user grants on distinct objects, then one team grant that the probe hits last.
    policies = [PolicyTuple(f"u{i}", f"doc{i}", "read", "user", "1") for i in range(n - 1)]
    policies.append(PolicyTuple("t", "target", "read", "team", "1"))
    return policies


def run(size: int, iters: int):
    enforcer = Enforcer(MemoryPolicyStore(gen_policies(size)))
    s = SubjectDescriptor(user_id="probe", org_id="1", teams={"t"})
    lat = []
    for _ in range(iters):
        t0 = time.perf_counter()
        d = enforcer.evaluate(s, "target", "read")
        lat.append((time.perf_counter() - t0) * 1000.0)
    return {
        "p50": statistics.median(lat),
        "avg": sum(lat) / len(lat),
        "p90": percentile(lat, 90),
        "allowed": d.allowed,
    }


def percentile(arr, p):
    arr2 = sorted(arr)
    k = int(round((p / 100.0) * (len(arr2) - 1)))
    return arr2[k]


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--sizes", type=int, nargs="+", default=[10, 50, 100, 500, 1000])
    ap.add_argument("--iters", type=int, default=200)
    args = ap.parse_args()
    print("size,avg_ms,p50_ms,p90_ms,allowed")
    for s in args.sizes:
        r = run(s, args.iters)
        print(f"{s},{r['avg']:.3f},{r['p50']:.3f},{r['p90']:.3f},{r['allowed']}")


if __name__ == "__main__":
    main()
