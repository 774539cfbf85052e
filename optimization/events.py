"""
Progress events.

Optimizers and the scheduler publish ProgressEvents on an EventBus.
Subscribers are plain callables; a failing subscriber is logged and never
interrupts the run. The bus also keeps a bounded buffer so a caller can
poll progress instead of subscribing.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

RUN_STARTED = "run_started"
ROUND_STARTED = "round_started"
ROUND_COMPLETED = "round_completed"
ROUND_FAILED = "round_failed"
RUN_COMPLETED = "run_completed"
BATCH_STARTED = "batch_started"
BATCH_COMPLETED = "batch_completed"
INSTRUMENT_COMPLETED = "instrument_completed"
INSTRUMENT_FAILED = "instrument_failed"
SCHEDULE_COMPLETED = "schedule_completed"


@dataclass(frozen=True)
class ProgressEvent:
    kind: str
    instrument: Optional[str] = None
    round: Optional[int] = None
    batch: Optional[int] = None
    score: Optional[float] = None
    best_score: Optional[float] = None
    accepted: Optional[bool] = None
    variant: Optional[str] = None
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "kind": self.kind,
            "instrument": self.instrument,
            "round": self.round,
            "batch": self.batch,
            "score": self.score,
            "best_score": self.best_score,
            "accepted": self.accepted,
            "variant": self.variant,
            "error": self.error,
            "timestamp": self.timestamp,
        }
        if self.data:
            d["data"] = dict(self.data)
        return {k: v for k, v in d.items() if v is not None}


Listener = Callable[[ProgressEvent], None]


class EventBus:
    def __init__(self, buffer_size: int = 1000):
        self._listeners: List[Listener] = []
        self._buffer: Deque[ProgressEvent] = deque(maxlen=buffer_size)
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            self._buffer.append(event)
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Progress listener failed on {event.kind}: {e}")

    def recent(self, limit: Optional[int] = None, kind: Optional[str] = None) -> List[ProgressEvent]:
        with self._lock:
            events = [e for e in self._buffer if kind is None or e.kind == kind]
        return events[-limit:] if limit else events

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()
