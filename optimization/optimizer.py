"""
Round-based Workflow Optimizer
==============================

Improves one instrument's workflow over a fixed number of rounds:

    search     tree search from the current variant (short backtest)
    generate   pick the round's candidate (text service or fallbacks)
    evaluate   full walk-forward backtest of the candidate
    accept     stochastic acceptance against the current score

The walk state (current variant and score) and the best observed state are
tracked separately: a rejected candidate can still become the best, and an
accepted one never lowers the best. Every attempted round appends exactly
one record to the history; a failing round records an error marker and the
loop continues.

Usage:
    optimizer = WorkflowOptimizer("AAPL", evaluator, catalog=default_catalog(), seed=7)
    result = optimizer.run()
    result.best_variant.name, result.best_score, len(result.history)
"""
from __future__ import annotations

import logging
import random
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from backtest.walk_forward import EvaluationResult
from core.exceptions import ConfigurationError, RoundError, get_error_code
from core.structured_log import jlog
from optimization.acceptance import AcceptancePolicy
from optimization.action_space import build_action_space
from optimization import events as ev
from optimization.events import EventBus, ProgressEvent
from optimization.generator import CandidateGenerator
from optimization.tree_search import SearchConfig, SearchTree
from workflows.catalog import VariantCatalog, default_catalog
from workflows.variant import WorkflowVariant

logger = logging.getLogger(__name__)


@dataclass
class OptimizerConfig:
    rounds: int = 15
    improvement_threshold: float = 0.02
    temperature: float = 0.1
    mode: str = "catalog"   # catalog | transform

    @classmethod
    def from_settings(cls) -> "OptimizerConfig":
        from config.settings_loader import get_optimizer_config, get_setting

        return cls(mode=str(get_setting("search.mode", "catalog")), **get_optimizer_config())

    def validate(self) -> None:
        if self.rounds < 1:
            raise ConfigurationError("Optimizer needs at least one round",
                                     context={"rounds": self.rounds})
        if self.mode not in ("catalog", "transform"):
            raise ConfigurationError(f"Unknown search mode {self.mode!r}")


@dataclass
class RoundRecord:
    round: int
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())
    score: Optional[float] = None
    current_score: Optional[float] = None
    best_score: Optional[float] = None
    accepted: Optional[bool] = None
    variant: Optional[str] = None
    searched: Optional[str] = None
    source: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass
class OptimizationResult:
    instrument: str
    best_variant: WorkflowVariant
    best_score: float
    history: List[RoundRecord]
    current_variant: WorkflowVariant
    current_score: float
    initial_score: float
    rounds_requested: int
    stopped: bool = False
    duration_seconds: float = 0.0
    run_id: str = ""
    best_evaluation: Optional[EvaluationResult] = None

    @property
    def rounds_completed(self) -> int:
        return len(self.history)

    @property
    def failed_rounds(self) -> int:
        return sum(1 for r in self.history if r.is_error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "instrument": self.instrument,
            "best_variant": self.best_variant.to_dict(),
            "best_score": self.best_score,
            "current_variant": self.current_variant.name,
            "current_score": self.current_score,
            "initial_score": self.initial_score,
            "rounds_requested": self.rounds_requested,
            "rounds_completed": self.rounds_completed,
            "failed_rounds": self.failed_rounds,
            "stopped": self.stopped,
            "duration_seconds": self.duration_seconds,
            "history": [r.to_dict() for r in self.history],
            "best_evaluation": self.best_evaluation.to_dict() if self.best_evaluation else None,
        }


class WorkflowOptimizer:
    """Search, generate, evaluate and accept, once per round."""

    def __init__(
        self,
        symbol: str,
        evaluator,
        catalog: Optional[VariantCatalog] = None,
        config: Optional[OptimizerConfig] = None,
        search_config: Optional[SearchConfig] = None,
        generator: Optional[CandidateGenerator] = None,
        events: Optional[EventBus] = None,
        store=None,
        seed: Optional[int] = None,
        run_id: Optional[str] = None,
    ):
        self.symbol = symbol.upper()
        self.evaluator = evaluator
        self.config = config or OptimizerConfig()
        self.search_config = search_config or SearchConfig()
        catalog = catalog if catalog is not None else default_catalog()
        # Transformation mode admits derived variants; keep the shared catalog read-only
        self.catalog = catalog.copy() if self.config.mode == "transform" else catalog
        self.generator = generator or CandidateGenerator(self.catalog)
        if generator is not None and self.config.mode == "transform":
            self.generator.catalog = self.catalog
        self.events = events or EventBus()
        self.store = store
        self.run_id = run_id or uuid.uuid4().hex[:12]

        seeder = random.Random(seed)
        self.search_rng = random.Random(seeder.getrandbits(32)) if seed is not None else random.Random()
        self.acceptance = AcceptancePolicy(
            threshold=self.config.improvement_threshold,
            temperature=self.config.temperature,
            rng=random.Random(seeder.getrandbits(32)) if seed is not None else random.Random(),
        )
        self.action_space = build_action_space(self.config.mode, self.catalog)

        self._stop = threading.Event()
        self.history: List[RoundRecord] = []
        self.current_variant: Optional[WorkflowVariant] = None
        self.current_score = 0.0
        self.best_variant: Optional[WorkflowVariant] = None
        self.best_score = 0.0
        self.best_evaluation: Optional[EvaluationResult] = None

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def stop(self) -> None:
        """Refuse to start further rounds; the in-flight round completes."""
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def validate(self) -> None:
        """Pre-flight checks. Raises ConfigurationError."""
        self.config.validate()
        self.search_config.validate()
        if len(self.catalog) == 0:
            raise ConfigurationError("Variant catalog is empty", context={"symbol": self.symbol})

    def initial_variant(self) -> WorkflowVariant:
        for name in self.generator.preferences(self.symbol):
            variant = self.catalog.find(name)
            if variant is not None:
                return variant
        return self.catalog.first()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _evaluate(self, variant: WorkflowVariant, horizon: Optional[int] = None) -> EvaluationResult:
        return self.evaluator.evaluate(variant, self.symbol, horizon)

    def _emit(self, kind: str, **fields: Any) -> None:
        self.events.emit(ProgressEvent(kind=kind, instrument=self.symbol, **fields))

    def run(self) -> OptimizationResult:
        self.validate()
        started = time.time()
        rounds = self.config.rounds

        self.current_variant = self.initial_variant()
        try:
            self.best_evaluation = self._evaluate(self.current_variant)
            self.current_score = float(self.best_evaluation.score)
        except Exception as e:
            logger.error(f"{self.symbol}: initial evaluation failed: {e}")
            self.best_evaluation = None
            self.current_score = self.search_config.neutral_score
        initial_score = self.current_score
        self.best_variant, self.best_score = self.current_variant, self.current_score
        self.history = []

        logger.info(
            f"Starting optimization for {self.symbol}: {rounds} rounds, mode={self.config.mode}, "
            f"initial {self.current_variant.name} = {initial_score:.2%}"
        )
        self._emit(ev.RUN_STARTED, score=initial_score, variant=self.current_variant.name,
                   data={"rounds": rounds, "run_id": self.run_id})

        for round_no in range(1, rounds + 1):
            if self._stop.is_set():
                logger.info(f"{self.symbol}: stop requested, not starting round {round_no}")
                break
            self._emit(ev.ROUND_STARTED, round=round_no)
            try:
                record = self._run_round(round_no)
            except RoundError as e:
                record = RoundRecord(round=round_no, error=str(e.cause or e.message),
                                     best_score=self.best_score)
                logger.error(f"{self.symbol} round {round_no} failed: {e}")
                jlog("round_failed", level="ERROR", symbol=self.symbol, round=round_no,
                     error=record.error, run_id=self.run_id)
                self.history.append(record)
                self._emit(ev.ROUND_FAILED, round=round_no, error=record.error,
                           best_score=self.best_score)
                continue

            self.history.append(record)
            logger.info(
                f"{self.symbol} round {round_no}/{rounds}: {record.variant} scored {record.score:.2%} "
                f"({'accepted' if record.accepted else 'rejected'}), "
                f"current {self.current_score:.2%}, best {self.best_score:.2%}"
            )
            jlog("round_completed", symbol=self.symbol, round=round_no, score=record.score,
                 accepted=record.accepted, best_score=self.best_score, variant=record.variant,
                 run_id=self.run_id)
            self._emit(ev.ROUND_COMPLETED, round=round_no, score=record.score,
                       best_score=self.best_score, accepted=record.accepted,
                       variant=record.variant)

        result = OptimizationResult(
            instrument=self.symbol,
            best_variant=self.best_variant,
            best_score=self.best_score,
            history=list(self.history),
            current_variant=self.current_variant,
            current_score=self.current_score,
            initial_score=initial_score,
            rounds_requested=rounds,
            stopped=len(self.history) < rounds,
            duration_seconds=round(time.time() - started, 3),
            run_id=self.run_id,
            best_evaluation=self.best_evaluation,
        )
        self._persist(result)
        logger.info(
            f"Optimization for {self.symbol} finished: best {result.best_variant.name} "
            f"= {result.best_score:.2%} after {result.rounds_completed} rounds"
        )
        jlog("run_completed", symbol=self.symbol, best_score=result.best_score,
             best_variant=result.best_variant.name, rounds=result.rounds_completed,
             stopped=result.stopped, run_id=self.run_id)
        self._emit(ev.RUN_COMPLETED, score=result.best_score, best_score=result.best_score,
                   variant=result.best_variant.name,
                   data={"rounds_completed": result.rounds_completed, "stopped": result.stopped})
        return result

    def _run_round(self, round_no: int) -> RoundRecord:
        try:
            tree = SearchTree(
                self.action_space,
                lambda v: self._evaluate(v, self.search_config.simulation_horizon).score,
                self.search_config,
                self.search_rng,
            )
            searched = tree.search(self.current_variant).variant
            if self.config.mode == "transform":
                searched = self.catalog.admit(searched)

            generated = self.generator.generate(
                self.symbol, searched, self.current_variant, self.current_score
            )
            candidate = generated.variant
            evaluation = self._evaluate(candidate)
            new_score = float(evaluation.score)
        except Exception as e:
            raise RoundError(
                f"Round {round_no} failed",
                context={"symbol": self.symbol, "round": round_no, "code": get_error_code(e)},
                cause=e,
            ) from e

        decision = self.acceptance.decide(self.current_score, new_score)
        if decision.accepted:
            self.current_variant, self.current_score = candidate, new_score
        if new_score > self.best_score:
            self.best_variant, self.best_score = candidate, new_score
            self.best_evaluation = evaluation
            logger.info(f"{self.symbol}: new best {candidate.name} = {new_score:.2%}")

        return RoundRecord(
            round=round_no,
            score=new_score,
            current_score=self.current_score,
            best_score=self.best_score,
            accepted=decision.accepted,
            variant=candidate.name,
            searched=searched.name,
            source=generated.source,
            reason=decision.reason,
        )

    def _persist(self, result: OptimizationResult) -> None:
        if self.store is None:
            return
        try:
            self.store.save_run(self.run_id, self.symbol, result.to_dict())
        except OSError as e:
            logger.warning(f"Could not persist optimization result for {self.symbol}: {e}")
