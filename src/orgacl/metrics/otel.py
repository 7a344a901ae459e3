from __future__ import annotations

from typing import Any, Dict, Optional

try:
    from opentelemetry.metrics import get_meter  # type: ignore
except Exception:  # pragma: no cover
    get_meter = None  # type: ignore


class OpenTelemetryMetrics:
    """OpenTelemetry MetricsSink.

    Creates:
      - Counter: orgacl_decisions_total (attributes: decision)
      - Histogram: orgacl_decision_seconds (unit: s)
    """

    _counter: Optional[Any]
    _hist: Optional[Any]

    def __init__(self, meter_name: str = "orgacl.metrics") -> None:
        self._counter = None
        self._hist = None

        if get_meter is None:  # pragma: no cover
            return

        meter = get_meter(meter_name)
        self._counter = meter.create_counter(
            name="orgacl_decisions_total",
            description="Total access decisions by outcome.",
        )
        create_hist = getattr(meter, "create_histogram", None)
        if create_hist is not None:
            self._hist = create_hist(
                name="orgacl_decision_seconds",
                description="Access decision evaluation duration in seconds.",
                unit="s",
            )

    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None:
        """Add one to the decision counter. *name* is ignored; the counter is fixed."""
        if self._counter is None:  # pragma: no cover
            return
        decision = (labels or {}).get("decision", "unknown")
        self._counter.add(1, {"decision": decision})

    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None:
        if self._hist is None:
            return
        decision = (labels or {}).get("decision", "unknown")
        self._hist.record(float(value), {"decision": decision})


__all__ = ["OpenTelemetryMetrics"]
