"""
Workflow executor.

Runs a variant at one decision point and returns the final context with a
prediction. Ensemble variants average their confidence with the light
analysis recipe; predictions below the variant's ``min_confidence`` are
downgraded to hold.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

import pandas as pd

from core.exceptions import WorkflowExecutionError
from workflows.context import StepContext, WorkflowServices
from workflows.predict import Prediction
from workflows.steps import get_handler, light_prediction, run_steps
from workflows.variant import WorkflowVariant

logger = logging.getLogger(__name__)


class WorkflowExecutor:
    def __init__(self, services: WorkflowServices):
        self.services = services

    def context(
        self,
        symbol: str,
        history: Optional[pd.DataFrame] = None,
        as_of: Optional[pd.Timestamp] = None,
    ) -> StepContext:
        return StepContext(symbol=symbol, services=self.services, history=history, as_of=as_of)

    def run(self, variant: WorkflowVariant, ctx: StepContext) -> StepContext:
        """
        Execute ``variant`` on ``ctx``.

        Raises:
            WorkflowExecutionError: a step dependency is missing or no
                prediction was produced
            CatalogError: the variant references an unregistered name
        """
        base = ctx
        if variant.handler is not None:
            ctx = get_handler(variant.handler).fn(ctx, variant)
        else:
            ctx = run_steps(variant.steps, ctx, variant)

        if ctx.prediction is None:
            raise WorkflowExecutionError(
                f"Variant {variant.name} produced no prediction",
                context={"symbol": ctx.symbol, "trace": list(ctx.trace)},
            )

        prediction = ctx.prediction
        if variant.ensemble:
            light = light_prediction(base, variant)
            prediction = replace(
                prediction,
                confidence=round((prediction.confidence + light.confidence) / 2, 4),
                source=f"{prediction.source}+ensemble",
            )

        prediction = apply_confidence_gate(prediction, variant.min_confidence)
        return ctx.with_artifact("gate", prediction=prediction)

    def predict(
        self,
        variant: WorkflowVariant,
        symbol: str,
        history: Optional[pd.DataFrame] = None,
        as_of: Optional[pd.Timestamp] = None,
    ) -> Prediction:
        return self.run(variant, self.context(symbol, history, as_of)).prediction


def apply_confidence_gate(prediction: Prediction, min_confidence: float) -> Prediction:
    if prediction.signal != "hold" and prediction.confidence < min_confidence:
        return replace(
            prediction,
            signal="hold",
            reasoning=f"{prediction.reasoning} | below confidence gate {min_confidence:.2f}",
        )
    return prediction
