"""Analytics sinks. Event emission never affects a request's outcome."""

from __future__ import annotations

import logging
from typing import Any, Dict, Protocol

LOGGER = logging.getLogger(__name__)
EVENT_LOGGER = logging.getLogger("pastecn.analytics")


class AnalyticsSink(Protocol):
    def track(self, event: str, properties: Dict[str, Any]) -> None:
        ...


class NullAnalytics:
    def track(self, event: str, properties: Dict[str, Any]) -> None:
        return None


class LoggingAnalytics:
    """Writes one DEBUG line per event."""

    def track(self, event: str, properties: Dict[str, Any]) -> None:
        EVENT_LOGGER.debug("%s %s", event, properties)


def emit(sink: AnalyticsSink, event: str, **properties: Any) -> None:
    try:
        sink.track(event, properties)
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("Analytics event %s dropped: %s", event, exc)
