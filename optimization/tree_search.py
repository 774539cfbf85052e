"""
Monte Carlo Tree Search over workflow variants.

Nodes live in a flat arena and refer to each other by index: a node owns
the indices of its children and keeps its parent index as a back-reference
only. Each search() call builds a fresh tree rooted at the given variant.

One simulation is four phases:
    selection        descend by UCB1 while the node is non-terminal and
                     fully expanded (unvisited children first)
    expansion        materialize one untried action chosen at random
    simulation       score the node's variant with the short backtest;
                     any failure scores neutral
    backpropagation  add the score and a visit to every node up to the root

The answer is the root child with the best mean score (earliest child on
ties), or the root variant when nothing was expanded.
"""
from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from core.exceptions import ConfigurationError
from optimization.action_space import ActionSpace
from workflows.variant import WorkflowVariant

logger = logging.getLogger(__name__)

Scorer = Callable[[WorkflowVariant], float]


@dataclass
class SearchConfig:
    simulations: int = 20
    exploration: float = 1.414
    terminal_visits: int = 10
    neutral_score: float = 0.5
    simulation_horizon: int = 10
    memoize: bool = True

    @classmethod
    def from_settings(cls) -> "SearchConfig":
        from config.settings_loader import get_search_config

        cfg = get_search_config()
        cfg.pop("mode", None)
        return cls(**cfg)

    def validate(self) -> None:
        if self.simulations < 1:
            raise ConfigurationError("Tree search needs at least one simulation",
                                     context={"simulations": self.simulations})
        if self.terminal_visits < 1:
            raise ConfigurationError("terminal_visits must be >= 1",
                                     context={"terminal_visits": self.terminal_visits})


@dataclass
class SearchNode:
    index: int
    variant: WorkflowVariant
    parent: Optional[int] = None
    action: Optional[str] = None
    children: List[int] = field(default_factory=list)
    tried: List[str] = field(default_factory=list)
    visits: int = 0
    total_score: float = 0.0
    ucb: float = math.inf

    @property
    def mean_score(self) -> float:
        return self.total_score / self.visits if self.visits else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "variant": self.variant.name,
            "parent": self.parent,
            "action": self.action,
            "children": list(self.children),
            "visits": self.visits,
            "mean_score": self.mean_score,
        }


@dataclass
class SearchResult:
    variant: WorkflowVariant
    mean_score: float
    visits: int
    action: Optional[str]
    root_visits: int
    node_count: int
    failures: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant": self.variant.name,
            "mean_score": self.mean_score,
            "visits": self.visits,
            "action": self.action,
            "root_visits": self.root_visits,
            "node_count": self.node_count,
            "failures": self.failures,
        }


def ucb1(mean: float, visits: int, parent_visits: int, exploration: float) -> float:
    """mean + C * sqrt(ln(parent_visits) / visits); unvisited is +inf."""
    if visits == 0:
        return math.inf
    return mean + exploration * math.sqrt(math.log(max(parent_visits, 1)) / visits)


class SearchTree:
    """Arena-backed MCTS over a pluggable action space."""

    def __init__(
        self,
        action_space: ActionSpace,
        scorer: Scorer,
        config: Optional[SearchConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.action_space = action_space
        self.scorer = scorer
        self.config = config or SearchConfig()
        self.config.validate()
        self.rng = rng or random.Random()
        self.nodes: List[SearchNode] = []
        self.failures = 0
        self._scores: Dict[str, float] = {}

    # ------------------------------------------------------------------
    # Arena helpers
    # ------------------------------------------------------------------

    @property
    def root(self) -> SearchNode:
        return self.nodes[0]

    def _add_node(self, variant: WorkflowVariant, parent: Optional[int], action: Optional[str]) -> SearchNode:
        node = SearchNode(index=len(self.nodes), variant=variant, parent=parent, action=action)
        self.nodes.append(node)
        if parent is not None:
            self.nodes[parent].children.append(node.index)
        return node

    def is_terminal(self, node: SearchNode) -> bool:
        return node.visits >= self.config.terminal_visits

    def untried_actions(self, node: SearchNode) -> List[str]:
        return [a for a in self.action_space.actions(node.variant) if a not in node.tried]

    def is_fully_expanded(self, node: SearchNode) -> bool:
        return not self.untried_actions(node)

    def path_to_root(self, index: int) -> List[int]:
        path = [index]
        while self.nodes[path[-1]].parent is not None:
            path.append(self.nodes[path[-1]].parent)
        return path

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def select(self) -> SearchNode:
        node = self.root
        while (
            not self.is_terminal(node)
            and self.is_fully_expanded(node)
            and node.children
        ):
            node = self._best_ucb_child(node)
        return node

    def _best_ucb_child(self, node: SearchNode) -> SearchNode:
        best: Optional[SearchNode] = None
        for child_index in node.children:
            child = self.nodes[child_index]
            child.ucb = ucb1(child.mean_score, child.visits, node.visits, self.config.exploration)
            if best is None or child.ucb > best.ucb:
                best = child
        return best

    def expand(self, node: SearchNode) -> SearchNode:
        untried = self.untried_actions(node)
        if not untried:
            return node
        action = self.rng.choice(untried)
        node.tried.append(action)
        try:
            variant = self.action_space.apply(node.variant, action)
        except Exception as e:
            logger.warning(f"Action {action} failed on {node.variant.name}: {e}")
            return node
        return self._add_node(variant, node.index, action)

    def simulate(self, variant: WorkflowVariant) -> float:
        if self.config.memoize and variant.key in self._scores:
            return self._scores[variant.key]
        try:
            score = float(self.scorer(variant))
            if not math.isfinite(score):
                raise ValueError(f"non-finite score {score}")
        except Exception as e:
            self.failures += 1
            logger.debug(f"Simulation of {variant.name} failed, scoring neutral: {e}")
            return self.config.neutral_score
        if self.config.memoize:
            self._scores[variant.key] = score
        return score

    def backpropagate(self, node: SearchNode, score: float) -> None:
        for index in self.path_to_root(node.index):
            n = self.nodes[index]
            n.visits += 1
            n.total_score += score

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def run_simulation(self) -> None:
        node = self.select()
        if not self.is_terminal(node) and not self.is_fully_expanded(node):
            node = self.expand(node)
        self.backpropagate(node, self.simulate(node.variant))

    def best_child(self) -> Optional[SearchNode]:
        best: Optional[SearchNode] = None
        for child_index in self.root.children:
            child = self.nodes[child_index]
            if child.visits == 0:
                continue
            if best is None or child.mean_score > best.mean_score:
                best = child
        return best

    def search(self, root_variant: WorkflowVariant) -> SearchResult:
        self.nodes = []
        self.failures = 0
        self._scores = {}
        self._add_node(root_variant, None, None)

        for _ in range(self.config.simulations):
            self.run_simulation()

        best = self.best_child()
        if best is None:
            return SearchResult(
                variant=root_variant,
                mean_score=self.root.mean_score,
                visits=self.root.visits,
                action=None,
                root_visits=self.root.visits,
                node_count=len(self.nodes),
                failures=self.failures,
            )
        logger.debug(
            f"Search from {root_variant.name}: best {best.variant.name} "
            f"mean={best.mean_score:.3f} visits={best.visits} nodes={len(self.nodes)}"
        )
        return SearchResult(
            variant=best.variant,
            mean_score=best.mean_score,
            visits=best.visits,
            action=best.action,
            root_visits=self.root.visits,
            node_count=len(self.nodes),
            failures=self.failures,
        )
