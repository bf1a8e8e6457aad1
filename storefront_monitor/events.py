"""Status-line broadcasting.

Human-readable status lines ("Checking https://...", "Sent webhook for ...")
go to the stdlib logger and to any subscribed listeners (the control API keeps
a ring buffer of recent lines).  Publishing never raises.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, Deque, List

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LEVELS = {
    "info": logging.INFO,
    "success": SUCCESS,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogEvent:
    timestamp: str
    message: str
    level: str

    def to_dict(self) -> dict:
        return asdict(self)


Listener = Callable[[LogEvent], None]


class LogBroadcaster:
    def __init__(self, logger_name: str = __name__):
        self._logger = logging.getLogger(logger_name)
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, message: str, level: str = "info") -> LogEvent:
        if level not in LEVELS:
            level = "info"
        event = LogEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            message=message,
            level=level,
        )
        self._logger.log(LEVELS[level], message)

        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Log listener %r failed", listener)
        return event


class RecentLogs:
    """Bounded in-memory buffer of the latest log events."""

    def __init__(self, maxlen: int = 200):
        self._events: Deque[LogEvent] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def __call__(self, event: LogEvent) -> None:
        with self._lock:
            self._events.append(event)

    def snapshot(self) -> List[LogEvent]:
        with self._lock:
            return list(self._events)


broadcaster = LogBroadcaster()
recent_logs = RecentLogs()
broadcaster.subscribe(recent_logs)


def broadcast_log(message: str, level: str = "info") -> LogEvent:
    return broadcaster.publish(message, level)


__all__ = [
    "SUCCESS",
    "LEVELS",
    "LogEvent",
    "LogBroadcaster",
    "RecentLogs",
    "broadcaster",
    "recent_logs",
    "broadcast_log",
]
