from __future__ import annotations

from typing import Any, Dict, Optional

try:
    from prometheus_client import Counter, Histogram  # type: ignore
except Exception:  # pragma: no cover
    Counter = Histogram = None  # type: ignore


class PrometheusMetrics:
    """Prometheus MetricsSink.

    Exposes:
      - orgacl_decisions_total{decision="allow|deny|error"}
      - orgacl_decision_seconds{decision=...} (Histogram)
    """

    _counter: Optional[Any]
    _hist: Optional[Any]

    def __init__(self, *, registry: Any | None = None, namespace: str = "") -> None:
        self._counter = None
        self._hist = None

        if Counter is None or Histogram is None:  # pragma: no cover
            return

        kwargs: Dict[str, Any] = {"namespace": namespace}
        if registry is not None:
            kwargs["registry"] = registry

        self._counter = Counter(
            "orgacl_decisions_total",
            "Total access decisions by outcome.",
            labelnames=("decision",),
            **kwargs,
        )
        self._hist = Histogram(
            "orgacl_decision_seconds",
            "Access decision evaluation duration in seconds.",
            labelnames=("decision",),
            **kwargs,
        )

    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None:
        """Increment the decision counter. *name* is ignored; the counter is fixed."""
        if self._counter is None:  # pragma: no cover
            return
        decision = (labels or {}).get("decision", "unknown")
        self._counter.labels(decision=decision).inc()

    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None:
        if self._hist is None:  # pragma: no cover
            return
        decision = (labels or {}).get("decision", "unknown")
        self._hist.labels(decision=decision).observe(float(value))


__all__ = ["PrometheusMetrics"]
