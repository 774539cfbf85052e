"""
Tests for stochastic acceptance of candidate workflows.
"""
import math
import random
from unittest.mock import MagicMock

import pytest
from scipy.stats import chisquare

from core.exceptions import ConfigurationError
from optimization.acceptance import (
    ACCEPT_BAND,
    ACCEPT_IMPROVEMENT,
    REJECT_BAND,
    REJECT_DEGRADATION,
    AcceptancePolicy,
)


class TestDeterministicRegions:
    """Outside the band no random draw is taken."""

    def test_clear_improvement_always_accepted(self):
        rng = MagicMock()
        policy = AcceptancePolicy(rng=rng)

        decision = policy.decide(0.50, 0.60)

        assert decision.accepted is True
        assert decision.reason == ACCEPT_IMPROVEMENT
        rng.random.assert_not_called()

    def test_clear_degradation_always_rejected(self):
        rng = MagicMock()
        policy = AcceptancePolicy(rng=rng)

        decision = policy.decide(0.60, 0.50)

        assert decision.accepted is False
        assert decision.reason == REJECT_DEGRADATION
        assert decision.probability == 0.0
        rng.random.assert_not_called()

    @pytest.mark.parametrize('current,new', [(0.0, 0.5), (0.3, 0.9), (0.1, 0.13)])
    def test_improvements_over_threshold(self, current, new):
        assert AcceptancePolicy(rng=random.Random(0)).decide(current, new).accepted

    @pytest.mark.parametrize('current,new', [(0.5, 0.0), (0.9, 0.3), (0.13, 0.1)])
    def test_degradations_over_threshold(self, current, new):
        assert not AcceptancePolicy(rng=random.Random(0)).decide(current, new).accepted


class TestBand:
    """|improvement| <= 0.02 accepts with probability min(1, exp(improvement / 0.1))."""

    def test_band_probability(self):
        policy = AcceptancePolicy()
        assert policy.band_probability(-0.01) == pytest.approx(math.exp(-0.1))
        assert policy.band_probability(0.0) == 1.0
        assert policy.band_probability(0.015) == 1.0

    def test_small_gain_is_accepted(self):
        decision = AcceptancePolicy(rng=random.Random(1)).decide(0.50, 0.51)
        assert decision.accepted is True
        assert decision.reason == ACCEPT_BAND

    def test_exact_threshold_is_in_band(self):
        """-0.02 exactly draws instead of rejecting outright."""
        rng = MagicMock()
        rng.random.return_value = 0.99
        policy = AcceptancePolicy(rng=rng)

        decision = policy.decide(0.02, 0.0)

        rng.random.assert_called_once()
        assert decision.probability == pytest.approx(math.exp(-0.2))
        assert decision.accepted is False
        assert decision.reason == REJECT_BAND

    def test_draw_below_probability_accepts(self):
        rng = MagicMock()
        rng.random.return_value = 0.5
        decision = AcceptancePolicy(rng=rng).decide(0.50, 0.49)
        assert decision.accepted is True
        assert decision.draw == 0.5

    def test_acceptance_rate_matches_exponential(self):
        """Chi-square goodness of fit over many seeded trials."""
        policy = AcceptancePolicy(rng=random.Random(2024))
        trials = 5000
        improvement = -0.015
        p = math.exp(improvement / 0.1)

        accepted = sum(policy.decide(0.5, 0.5 + improvement).accepted for _ in range(trials))

        observed = [accepted, trials - accepted]
        expected = [trials * p, trials * (1 - p)]
        _, p_value = chisquare(observed, expected)
        assert p_value > 0.001

    def test_seeded_decisions_repeat(self):
        a = AcceptancePolicy(rng=random.Random(9))
        b = AcceptancePolicy(rng=random.Random(9))
        seq_a = [a.decide(0.5, 0.49).accepted for _ in range(50)]
        seq_b = [b.decide(0.5, 0.49).accepted for _ in range(50)]
        assert seq_a == seq_b


class TestPolicyConfiguration:
    def test_non_positive_temperature_rejected(self):
        with pytest.raises(ConfigurationError):
            AcceptancePolicy(temperature=0.0)

    def test_negative_threshold_rejected(self):
        with pytest.raises(ConfigurationError):
            AcceptancePolicy(threshold=-0.1)

    def test_decision_serializes(self):
        d = AcceptancePolicy(rng=random.Random(0)).decide(0.4, 0.5).to_dict()
        assert d['accepted'] is True
        assert d['improvement'] == pytest.approx(0.1)
