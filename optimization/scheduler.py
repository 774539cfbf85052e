"""
Multi-instrument scheduling.

Runs one WorkflowOptimizer per instrument in sequential batches of
max_concurrent. Each batch runs on its own thread pool and fully settles
before the next batch starts. A failing instrument is recorded with its
reason and never affects the others; aggregates cover successes only.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from core.exceptions import ConfigurationError, InstrumentError
from core.structured_log import jlog
from optimization import events as ev
from optimization.events import EventBus, ProgressEvent
from optimization.optimizer import OptimizationResult, WorkflowOptimizer

logger = logging.getLogger(__name__)

OptimizerFactory = Callable[[str], WorkflowOptimizer]


@dataclass
class InstrumentOutcome:
    instrument: str
    batch: int
    result: Optional[OptimizationResult] = None
    error: Optional[str] = None
    skipped: bool = False

    @property
    def succeeded(self) -> bool:
        return self.result is not None and self.error is None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"instrument": self.instrument, "batch": self.batch,
                             "success": self.succeeded}
        if self.result is not None:
            d["best_score"] = self.result.best_score
            d["best_variant"] = self.result.best_variant.name
            d["history"] = [r.to_dict() for r in self.result.history]
        if self.error is not None:
            d["error"] = self.error
        if self.skipped:
            d["skipped"] = True
        return d


@dataclass
class ScheduleResult:
    run_id: str
    outcomes: List[InstrumentOutcome]
    batches: List[List[str]]
    duration_seconds: float = 0.0
    stopped: bool = False

    @property
    def results(self) -> Dict[str, OptimizationResult]:
        return {o.instrument: o.result for o in self.outcomes if o.succeeded}

    @property
    def failures(self) -> Dict[str, str]:
        return {o.instrument: o.error for o in self.outcomes if o.error is not None}

    @property
    def success_count(self) -> int:
        return len(self.results)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def average_score(self) -> float:
        scores = [r.best_score for r in self.results.values()]
        return sum(scores) / len(scores) if scores else 0.0

    @property
    def global_best(self) -> Optional[Dict[str, Any]]:
        best: Optional[OptimizationResult] = None
        for result in self.results.values():
            if best is None or result.best_score > best.best_score:
                best = result
        if best is None:
            return None
        return {"instrument": best.instrument, "variant": best.best_variant.name,
                "score": best.best_score}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "global_best": self.global_best,
            "success_count": self.success_count,
            "total": self.total,
            "average_score": self.average_score,
            "batches": self.batches,
            "duration_seconds": self.duration_seconds,
            "stopped": self.stopped,
            "results": {o.instrument: o.to_dict() for o in self.outcomes},
        }


class MultiInstrumentScheduler:
    def __init__(
        self,
        instruments: Sequence[str],
        optimizer_factory: OptimizerFactory,
        max_concurrent: int = 2,
        events: Optional[EventBus] = None,
        store=None,
        run_id: Optional[str] = None,
    ):
        self.instruments = list(dict.fromkeys(s.strip().upper() for s in instruments if s and s.strip()))
        self.optimizer_factory = optimizer_factory
        self.max_concurrent = max_concurrent
        self.events = events or EventBus()
        self.store = store
        self.run_id = run_id or uuid.uuid4().hex[:12]

        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._running: Dict[str, WorkflowOptimizer] = {}

    def validate(self) -> None:
        if self.max_concurrent < 1:
            raise ConfigurationError("max_concurrent must be >= 1",
                                     context={"max_concurrent": self.max_concurrent})
        if not self.instruments:
            raise ConfigurationError("No instruments to schedule")

    def batches(self) -> List[List[str]]:
        n = self.max_concurrent
        return [self.instruments[i:i + n] for i in range(0, len(self.instruments), n)]

    def stop(self) -> None:
        """Refuse to start further batches and ask running optimizers to stop."""
        self._stop.set()
        with self._lock:
            running = list(self._running.values())
        for optimizer in running:
            optimizer.stop()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def _emit(self, kind: str, **fields: Any) -> None:
        self.events.emit(ProgressEvent(kind=kind, **fields))

    def _run_instrument(self, instrument: str) -> OptimizationResult:
        try:
            optimizer = self.optimizer_factory(instrument)
        except Exception as e:
            raise InstrumentError(f"Could not build optimizer for {instrument}",
                                  context={"instrument": instrument}, cause=e) from e
        with self._lock:
            self._running[instrument] = optimizer
        if self._stop.is_set():
            optimizer.stop()
        try:
            return optimizer.run()
        finally:
            with self._lock:
                self._running.pop(instrument, None)

    def run(self) -> ScheduleResult:
        self.validate()
        started = time.time()
        batches = self.batches()
        outcomes: Dict[str, InstrumentOutcome] = {}

        logger.info(
            f"Scheduling {len(self.instruments)} instruments in {len(batches)} batches "
            f"(max_concurrent={self.max_concurrent})"
        )

        for batch_no, batch in enumerate(batches, start=1):
            if self._stop.is_set():
                logger.info(f"Stop requested, skipping batch {batch_no}: {batch}")
                for instrument in batch:
                    outcomes[instrument] = InstrumentOutcome(instrument, batch_no, skipped=True)
                continue

            self._emit(ev.BATCH_STARTED, batch=batch_no, data={"instruments": batch})
            with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="wfo-batch") as pool:
                futures = {pool.submit(self._run_instrument, s): s for s in batch}
                for future in as_completed(futures):
                    instrument = futures[future]
                    try:
                        result = future.result()
                    except Exception as e:
                        reason = str(e.cause) if isinstance(e, InstrumentError) and e.cause else str(e)
                        outcomes[instrument] = InstrumentOutcome(instrument, batch_no, error=reason)
                        logger.error(f"Optimization for {instrument} failed: {reason}")
                        jlog("instrument_failed", level="ERROR", instrument=instrument,
                             batch=batch_no, error=reason, run_id=self.run_id)
                        self._emit(ev.INSTRUMENT_FAILED, instrument=instrument, batch=batch_no,
                                   error=reason)
                        continue
                    outcomes[instrument] = InstrumentOutcome(instrument, batch_no, result=result)
                    logger.info(f"{instrument}: best {result.best_variant.name} = {result.best_score:.2%}")
                    self._emit(ev.INSTRUMENT_COMPLETED, instrument=instrument, batch=batch_no,
                               score=result.best_score, best_score=result.best_score,
                               variant=result.best_variant.name)

            self._emit(ev.BATCH_COMPLETED, batch=batch_no,
                       data={"instruments": batch,
                             "succeeded": [s for s in batch if outcomes[s].succeeded]})

        schedule = ScheduleResult(
            run_id=self.run_id,
            outcomes=[outcomes[s] for s in self.instruments],
            batches=batches,
            duration_seconds=round(time.time() - started, 3),
            stopped=self._stop.is_set(),
        )
        self._persist(schedule)

        best = schedule.global_best
        logger.info(
            f"Schedule finished: {schedule.success_count}/{schedule.total} succeeded, "
            f"average {schedule.average_score:.2%}, "
            f"best {best['instrument'] + ' ' + best['variant'] if best else 'n/a'}"
        )
        jlog("schedule_completed", run_id=self.run_id, success_count=schedule.success_count,
             total=schedule.total, average_score=schedule.average_score, global_best=best)
        self._emit(ev.SCHEDULE_COMPLETED, score=schedule.average_score,
                   best_score=best["score"] if best else None,
                   data={"success_count": schedule.success_count, "total": schedule.total})
        return schedule

    def _persist(self, schedule: ScheduleResult) -> None:
        if self.store is None:
            return
        try:
            self.store.save_schedule(self.run_id, schedule.to_dict())
        except OSError as e:
            logger.warning(f"Could not persist schedule result: {e}")
