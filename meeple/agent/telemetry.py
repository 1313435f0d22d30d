"""
Telemetry sink for pipeline events and metrics.

Events are emitted as one JSON line each on the ``meeple.telemetry`` logger.
A failing sink never affects the answer: errors are logged and dropped.
"""

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger("meeple.telemetry")


class Telemetry:
    """Base sink: subclasses override _emit."""

    def track_event(self, name: str, properties: Optional[Dict[str, Any]] = None) -> None:
        self._safe_emit({"event": name, **(properties or {})})

    def track_metric(self, name: str, value: float, properties: Optional[Dict[str, Any]] = None) -> None:
        self._safe_emit({"metric": name, "value": round(value, 2), **(properties or {})})

    @contextmanager
    def measure(self, metric: str, properties: Optional[Dict[str, Any]] = None):
        """Context manager that records the block's duration in milliseconds."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.track_metric(metric, (time.perf_counter() - start_time) * 1000, properties)

    def _safe_emit(self, entry: Dict[str, Any]) -> None:
        try:
            self._emit(entry)
        except Exception as e:
            logger.warning(f"Telemetry emit failed: {e}")

    def _emit(self, entry: Dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingTelemetry(Telemetry):
    """Writes structured telemetry entries to the log."""

    def _emit(self, entry: Dict[str, Any]) -> None:
        record = {"timestamp": datetime.now(timezone.utc).isoformat(), **entry}
        logger.info(json.dumps(record, default=str))


class NullTelemetry(Telemetry):
    """Discards everything."""

    def _emit(self, entry: Dict[str, Any]) -> None:
        pass
