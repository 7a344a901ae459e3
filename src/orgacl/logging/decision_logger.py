from __future__ import annotations

import json
import logging
import random
from typing import Any, Dict


class DecisionLogger:
    """Decision log sink that writes one record per decision to the ``orgacl.audit`` logger.

    Args:
        sample_rate: fraction of decisions to emit, in ``[0.0, 1.0]``.
        as_json: emit ``json.dumps(payload)`` instead of ``"decision <dict>"``.
        level: logging level of emitted records.
        deny_always: emit every deny regardless of ``sample_rate``.
    """

    def __init__(
        self,
        *,
        sample_rate: float = 1.0,
        as_json: bool = False,
        level: int = logging.INFO,
        deny_always: bool = False,
        logger_name: str = "orgacl.audit",
    ) -> None:
        self.sample_rate = min(1.0, max(0.0, float(sample_rate)))
        self.as_json = bool(as_json)
        self.level = int(level)
        self.deny_always = bool(deny_always)
        self._logger = logging.getLogger(logger_name)

    def _sampled(self, payload: Dict[str, Any]) -> bool:
        if self.deny_always and payload.get("decision") == "deny":
            return True
        if self.sample_rate >= 1.0:
            return True
        if self.sample_rate <= 0.0:
            return False
        return random.random() < self.sample_rate

    def log(self, payload: Dict[str, Any]) -> None:
        if not self._sampled(payload):
            return
        if self.as_json:
            self._logger.log(self.level, json.dumps(payload, ensure_ascii=False, default=str))
        else:
            self._logger.log(self.level, "decision %s", payload)


__all__ = ["DecisionLogger"]
