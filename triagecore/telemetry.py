"""
Telemetry sink for run audit events.

The engine reports every completed run as a "cliTool.run" event. Delivery is
fire-and-forget: callers wrap track_event() so a failing sink never fails a run.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class TelemetryEvent:
    name: str
    properties: Dict[str, str] = field(default_factory=dict)
    measurements: Dict[str, float] = field(default_factory=dict)


class TelemetrySink(Protocol):
    def track_event(
        self,
        name: str,
        properties: Optional[Dict[str, str]] = None,
        measurements: Optional[Dict[str, float]] = None,
    ) -> None:
        ...


class LoggingTelemetry:
    """Writes events to the log and keeps the most recent ones in memory."""

    def __init__(self, enabled: bool = True, history_size: int = 200):
        self.enabled = enabled
        self._events: Deque[TelemetryEvent] = deque(maxlen=history_size)

    def track_event(
        self,
        name: str,
        properties: Optional[Dict[str, str]] = None,
        measurements: Optional[Dict[str, float]] = None,
    ) -> None:
        if not self.enabled:
            return
        event = TelemetryEvent(name, dict(properties or {}), dict(measurements or {}))
        self._events.append(event)

        property_label = f" {json.dumps(event.properties)}" if event.properties else ""
        measurement_label = f" {json.dumps(event.measurements)}" if event.measurements else ""
        logger.info(f"[telemetry] {name}{property_label}{measurement_label}")

    def recent(self, name: Optional[str] = None) -> List[TelemetryEvent]:
        return [e for e in self._events if name is None or e.name == name]
