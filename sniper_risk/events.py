"""
Monitor Events
==============

Structured events emitted by monitors and the supervisor. Visibility into
the core goes through an EventSink rather than ad-hoc log lines, so alerting
(Telegram) and tests can consume the same stream.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Protocol

logger = logging.getLogger(__name__)


class EventType(Enum):
    POSITION_OPENED = "position_opened"
    EXIT_TRIGGERED = "exit_triggered"
    EXECUTION_FAILED = "execution_failed"
    FEED_FAILURE = "feed_failure"
    FEED_EXHAUSTED = "feed_exhausted"
    MONITOR_STOPPED = "monitor_stopped"


@dataclass(frozen=True)
class MonitorEvent:
    type: EventType
    token_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class EventSink(Protocol):
    """Anything that can receive monitor events. Must not block."""

    def emit(self, event: MonitorEvent) -> None:
        ...


# Log level per event type
_EVENT_LEVELS = {
    EventType.POSITION_OPENED: logging.INFO,
    EventType.EXIT_TRIGGERED: logging.WARNING,
    EventType.EXECUTION_FAILED: logging.ERROR,
    EventType.FEED_FAILURE: logging.DEBUG,
    EventType.FEED_EXHAUSTED: logging.ERROR,
    EventType.MONITOR_STOPPED: logging.INFO,
}


class LoggingEventSink:
    """Writes every event to the standard logger."""

    def __init__(self, name: str = "sniper_risk.events"):
        self._logger = logging.getLogger(name)

    def emit(self, event: MonitorEvent) -> None:
        level = _EVENT_LEVELS.get(event.type, logging.INFO)
        details = " ".join(f"{k}={v}" for k, v in event.data.items())
        self._logger.log(level, f"[{event.type.value}] {event.token_id} {details}".rstrip())


class EventFanout:
    """
    Dispatches events to several sinks.

    A sink that raises is logged and skipped; observability must never
    break a monitor loop.
    """

    def __init__(self, sinks: Iterable[EventSink] = ()):
        self.sinks: List[EventSink] = list(sinks)

    def add(self, sink: EventSink) -> None:
        self.sinks.append(sink)

    def emit(self, event: MonitorEvent) -> None:
        for sink in self.sinks:
            try:
                sink.emit(event)
            except Exception as e:
                logger.error(f"Event sink {type(sink).__name__} failed on {event.type.value}: {e}")
