import importlib
import sys
import types


def _install_fake_prometheus(monkeypatch):
    class _Child:
        def __init__(self, parent, labels):
            self._parent = parent
            self._labels = labels

        def inc(self):
            self._parent.counts[self._labels["decision"]] = self._parent.counts.get(self._labels["decision"], 0) + 1

        def observe(self, v):
            self._parent.values.append((self._labels["decision"], float(v)))

    class _Metric:
        def __init__(self, name, doc, labelnames=(), **kwargs):
            self.name = name
            self.labelnames = tuple(labelnames)
            self.kwargs = kwargs
            self.counts = {}
            self.values = []

        def labels(self, **kw):
            return _Child(self, kw)

    fake = types.ModuleType("prometheus_client")
    fake.Counter = _Metric
    fake.Histogram = _Metric
    monkeypatch.setitem(sys.modules, "prometheus_client", fake)
    monkeypatch.delitem(sys.modules, "orgacl.metrics.prometheus", raising=False)
    return importlib.import_module("orgacl.metrics.prometheus")


def _install_fake_otel(monkeypatch):
    class _Counter:
        def __init__(self):
            self.adds = []

        def add(self, v, attributes=None):
            self.adds.append((v, attributes))

    class _Hist:
        def __init__(self):
            self.records = []

        def record(self, v, attributes=None):
            self.records.append((v, attributes))

    class _Meter:
        def create_counter(self, name, **kw):
            return _Counter()

        def create_histogram(self, name, **kw):
            return _Hist()

    fake = types.ModuleType("opentelemetry.metrics")
    fake.get_meter = lambda *a, **k: _Meter()
    monkeypatch.setitem(sys.modules, "opentelemetry.metrics", fake)
    monkeypatch.delitem(sys.modules, "orgacl.metrics.otel", raising=False)
    return importlib.import_module("orgacl.metrics.otel")


def test_prometheus_sink_counts_and_observes(monkeypatch):
    mod = _install_fake_prometheus(monkeypatch)
    m = mod.PrometheusMetrics(registry="reg")
    m.inc("ignored", {"decision": "allow"})
    m.inc("ignored", {"decision": "allow"})
    m.inc("ignored")
    m.observe("ignored", 0.5, {"decision": "deny"})
    assert m._counter.name == "orgacl_decisions_total"
    assert m._counter.labelnames == ("decision",)
    assert m._counter.kwargs["registry"] == "reg"
    assert m._counter.counts == {"allow": 2, "unknown": 1}
    assert m._hist.values == [("deny", 0.5)]


def test_otel_sink_counts_and_records(monkeypatch):
    mod = _install_fake_otel(monkeypatch)
    m = mod.OpenTelemetryMetrics()
    m.inc("ignored", {"decision": "deny"})
    m.observe("ignored", 0.25, {"decision": "deny"})
    assert m._counter.adds == [(1, {"decision": "deny"})]
    assert m._hist.records == [(0.25, {"decision": "deny"})]


def test_sinks_plug_into_enforcer(monkeypatch, reference_policies, owner_of_1):
    from orgacl import Enforcer, MemoryPolicyStore

    mod = _install_fake_prometheus(monkeypatch)
    m = mod.PrometheusMetrics()
    e = Enforcer(MemoryPolicyStore(reference_policies), metrics=m)
    e.evaluate(owner_of_1, "1", "read")
    e.evaluate(owner_of_1, "2", "delete")
    assert m._counter.counts == {"allow": 1, "deny": 1}
    assert [d for d, _ in m._hist.values] == ["allow", "deny"]
