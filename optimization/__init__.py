"""
Workflow Search & Optimization Module.

Improves per-instrument analysis workflows:
- Monte Carlo tree search over catalog entries or transformations
- Round loop with stochastic (annealing-style) acceptance
- Candidate generation with text-service and catalog fallbacks
- Multi-instrument batch scheduling with failure isolation
- Explicit session handles and progress events
"""

from .acceptance import AcceptanceDecision, AcceptancePolicy
from .action_space import CatalogActionSpace, TransformationActionSpace, build_action_space
from .events import EventBus, ProgressEvent
from .generator import CandidateGenerator, GenerationResult
from .optimizer import OptimizationResult, OptimizerConfig, RoundRecord, WorkflowOptimizer
from .results_store import ResultStore
from .scheduler import InstrumentOutcome, MultiInstrumentScheduler, ScheduleResult
from .session import OptimizationSession, SessionStatus, create_session
from .tree_search import SearchConfig, SearchNode, SearchResult, SearchTree, ucb1

__all__ = [
    # Tree search
    'SearchConfig',
    'SearchNode',
    'SearchResult',
    'SearchTree',
    'ucb1',
    'CatalogActionSpace',
    'TransformationActionSpace',
    'build_action_space',

    # Round loop
    'AcceptanceDecision',
    'AcceptancePolicy',
    'CandidateGenerator',
    'GenerationResult',
    'OptimizerConfig',
    'RoundRecord',
    'OptimizationResult',
    'WorkflowOptimizer',

    # Scheduling
    'InstrumentOutcome',
    'ScheduleResult',
    'MultiInstrumentScheduler',

    # Sessions, events, persistence
    'OptimizationSession',
    'SessionStatus',
    'create_session',
    'EventBus',
    'ProgressEvent',
    'ResultStore',
]
