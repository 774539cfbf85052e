"""
Optimization sessions.

A session is the explicit handle a control surface holds for one
optimization job (one or many instruments). create_session() wires the
services, evaluator, generator and scheduler from settings; the handle is
then passed to every later operation:

    session = create_session(["AAPL", "TSLA"], rounds=3)
    session.start()
    session.progress()       # status plus buffered events
    session.stop()           # finish in-flight rounds, start nothing new
    result = session.wait()  # ScheduleResult
"""
from __future__ import annotations

import logging
import threading
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from backtest.walk_forward import WalkForwardConfig, WalkForwardEvaluator
from core.exceptions import ConfigurationError
from core.structured_log import jlog
from optimization import events as ev
from optimization.events import EventBus
from optimization.generator import CandidateGenerator
from optimization.optimizer import OptimizerConfig, WorkflowOptimizer
from optimization.results_store import ResultStore
from optimization.scheduler import MultiInstrumentScheduler, OptimizerFactory, ScheduleResult
from optimization.tree_search import SearchConfig
from workflows.catalog import VariantCatalog, default_catalog
from workflows.context import WorkflowServices, default_services
from workflows.executor import WorkflowExecutor

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


class OptimizationSession:
    """Lifecycle handle around a MultiInstrumentScheduler run on a background thread."""

    def __init__(self, scheduler: MultiInstrumentScheduler, rounds: int, mode: str):
        self.session_id = scheduler.run_id
        self.scheduler = scheduler
        self.events = scheduler.events
        self.rounds = rounds
        self.mode = mode
        self.error: Optional[str] = None

        self._status = SessionStatus.CREATED
        self._result: Optional[ScheduleResult] = None
        self._thread: Optional[threading.Thread] = None
        self._done = threading.Event()
        self._lock = threading.Lock()

    @property
    def status(self) -> SessionStatus:
        with self._lock:
            return self._status

    @property
    def instruments(self) -> List[str]:
        return list(self.scheduler.instruments)

    @property
    def result(self) -> Optional[ScheduleResult]:
        return self._result

    def start(self) -> "OptimizationSession":
        with self._lock:
            if self._status is not SessionStatus.CREATED:
                raise ConfigurationError("Session already started",
                                         context={"session_id": self.session_id,
                                                  "status": self._status.value})
            self._status = SessionStatus.RUNNING
        self._thread = threading.Thread(target=self._run, name=f"wfo-session-{self.session_id}",
                                        daemon=True)
        self._thread.start()
        logger.info(f"Session {self.session_id} started for {', '.join(self.instruments)}")
        return self

    def run(self) -> ScheduleResult:
        """Run in the calling thread (used by the CLI scripts)."""
        with self._lock:
            if self._status is not SessionStatus.CREATED:
                raise ConfigurationError("Session already started",
                                         context={"session_id": self.session_id})
            self._status = SessionStatus.RUNNING
        self._run()
        if self._result is None:
            raise ConfigurationError(self.error or "Session produced no result",
                                     context={"session_id": self.session_id})
        return self._result

    def _run(self) -> None:
        try:
            result = self.scheduler.run()
        except Exception as e:
            logger.error(f"Session {self.session_id} failed: {e}")
            jlog("session_failed", level="ERROR", session_id=self.session_id, error=str(e))
            with self._lock:
                self.error = str(e)
                self._status = SessionStatus.FAILED
        else:
            with self._lock:
                self._result = result
                self._status = SessionStatus.STOPPED if result.stopped else SessionStatus.COMPLETED
        finally:
            self._done.set()

    def stop(self) -> None:
        with self._lock:
            if self._status in (SessionStatus.RUNNING, SessionStatus.CREATED):
                self._status = SessionStatus.STOPPING
        self.scheduler.stop()
        logger.info(f"Stop requested for session {self.session_id}")

    def wait(self, timeout: Optional[float] = None) -> Optional[ScheduleResult]:
        if self._thread is None:
            return self._result
        self._done.wait(timeout)
        return self._result

    def progress(self, limit: Optional[int] = 50) -> Dict[str, Any]:
        completed = self.events.recent(kind=ev.ROUND_COMPLETED)
        failed = self.events.recent(kind=ev.ROUND_FAILED)
        best: Dict[str, float] = {}
        for event in completed:
            if event.instrument and event.best_score is not None:
                best[event.instrument] = event.best_score
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "instruments": self.instruments,
            "rounds": self.rounds,
            "mode": self.mode,
            "rounds_completed": len(completed),
            "rounds_failed": len(failed),
            "best_scores": best,
            "error": self.error,
            "events": [e.to_dict() for e in self.events.recent(limit)],
        }


def build_optimizer_factory(
    services: WorkflowServices,
    catalog: VariantCatalog,
    config: OptimizerConfig,
    search_config: SearchConfig,
    backtest_config: WalkForwardConfig,
    events: EventBus,
    store: Optional[ResultStore] = None,
    generation_service=None,
    generation_timeout: float = 20.0,
    seed: Optional[int] = None,
    run_id: Optional[str] = None,
    instruments: Sequence[str] = (),
) -> OptimizerFactory:
    """One fresh optimizer (own generator, own random streams) per instrument."""
    evaluator = WalkForwardEvaluator(WorkflowExecutor(services), backtest_config)
    order = list(dict.fromkeys(s.strip().upper() for s in instruments if s and s.strip()))

    def factory(instrument: str) -> WorkflowOptimizer:
        instrument_seed = None
        if seed is not None:
            instrument_seed = seed + (order.index(instrument) if instrument in order else 0)
        return WorkflowOptimizer(
            instrument,
            evaluator,
            catalog=catalog,
            config=config,
            search_config=search_config,
            generator=CandidateGenerator(catalog, service=generation_service,
                                         timeout=generation_timeout),
            events=events,
            store=store,
            seed=instrument_seed,
            run_id=run_id,
        )

    return factory


def create_session(
    instruments: Sequence[str],
    rounds: Optional[int] = None,
    mode: Optional[str] = None,
    max_concurrent: Optional[int] = None,
    seed: Optional[int] = None,
    services: Optional[WorkflowServices] = None,
    catalog: Optional[VariantCatalog] = None,
    generation_service=None,
    store: Optional[ResultStore] = None,
    persist: bool = True,
    events: Optional[EventBus] = None,
) -> OptimizationSession:
    """
    Build a session from settings, overriding rounds, mode and concurrency.

    Raises:
        ConfigurationError: empty instrument list, rounds < 1, max_concurrent < 1,
            unknown mode or empty catalog.
    """
    from config.settings_loader import get_generation_config, get_max_concurrent

    config = OptimizerConfig.from_settings()
    if rounds is not None:
        config.rounds = rounds
    if mode is not None:
        config.mode = mode
    config.validate()

    search_config = SearchConfig.from_settings()
    search_config.validate()
    catalog = catalog if catalog is not None else default_catalog()
    if len(catalog) == 0:
        raise ConfigurationError("Variant catalog is empty")

    gen_cfg = get_generation_config()
    if generation_service is None and gen_cfg["enabled"]:
        from llm.router import build_router_from_settings

        generation_service = build_router_from_settings()

    if store is None and persist:
        store = ResultStore.from_settings()

    run_id = uuid.uuid4().hex[:12]
    events = events or EventBus()
    factory = build_optimizer_factory(
        services=services or default_services(),
        catalog=catalog,
        config=config,
        search_config=search_config,
        backtest_config=WalkForwardConfig.from_settings(),
        events=events,
        store=store,
        generation_service=generation_service,
        generation_timeout=gen_cfg["timeout_seconds"],
        seed=seed,
        run_id=run_id,
        instruments=instruments,
    )
    scheduler = MultiInstrumentScheduler(
        instruments,
        factory,
        max_concurrent=max_concurrent if max_concurrent is not None else get_max_concurrent(),
        events=events,
        store=store,
        run_id=run_id,
    )
    scheduler.validate()
    jlog("session_created", session_id=run_id, instruments=scheduler.instruments,
         rounds=config.rounds, mode=config.mode, max_concurrent=scheduler.max_concurrent)
    return OptimizationSession(scheduler, rounds=config.rounds, mode=config.mode)
