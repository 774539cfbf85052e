"""
Stochastic acceptance of candidate workflows.

    improvement >  +threshold   accept
    |improvement| <= threshold  accept with probability exp(improvement / T)
    improvement <  -threshold   reject

The band rule is a simulated-annealing style step: small regressions are
sometimes taken so the walk can leave a plateau.
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.exceptions import ConfigurationError

ACCEPT_IMPROVEMENT = "improvement"
ACCEPT_BAND = "band_accept"
REJECT_BAND = "band_reject"
REJECT_DEGRADATION = "degradation"


@dataclass(frozen=True)
class AcceptanceDecision:
    accepted: bool
    improvement: float
    reason: str
    probability: float
    draw: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "improvement": self.improvement,
            "reason": self.reason,
            "probability": self.probability,
            "draw": self.draw,
        }


class AcceptancePolicy:
    def __init__(
        self,
        threshold: float = 0.02,
        temperature: float = 0.1,
        rng: Optional[random.Random] = None,
    ):
        if temperature <= 0:
            raise ConfigurationError("Acceptance temperature must be positive",
                                     context={"temperature": temperature})
        if threshold < 0:
            raise ConfigurationError("Acceptance threshold must be >= 0",
                                     context={"threshold": threshold})
        self.threshold = threshold
        self.temperature = temperature
        self.rng = rng or random.Random()

    def band_probability(self, improvement: float) -> float:
        return min(1.0, math.exp(improvement / self.temperature))

    def decide(self, current_score: float, new_score: float) -> AcceptanceDecision:
        improvement = new_score - current_score
        if improvement > self.threshold:
            return AcceptanceDecision(True, improvement, ACCEPT_IMPROVEMENT, 1.0)
        if improvement < -self.threshold:
            return AcceptanceDecision(False, improvement, REJECT_DEGRADATION, 0.0)

        probability = self.band_probability(improvement)
        draw = self.rng.random()
        accepted = draw < probability
        return AcceptanceDecision(
            accepted,
            improvement,
            ACCEPT_BAND if accepted else REJECT_BAND,
            probability,
            draw,
        )
