"""
Workflow Variants
=================

Named analysis pipelines (data fetch, technical and sentiment analysis,
prediction), the closed catalog that holds them, and the transformations
the tree search applies to them.

Usage:
    from workflows import default_catalog, WorkflowExecutor, default_services

    catalog = default_catalog()
    executor = WorkflowExecutor(default_services())
    prediction = executor.predict(catalog.get("full"), "AAPL")
"""

from workflows.catalog import VariantCatalog, default_catalog, register_workflow
from workflows.context import StepContext, WorkflowServices, default_services
from workflows.executor import WorkflowExecutor
from workflows.predict import LLMPredictor, Prediction, RulePredictor
from workflows.transforms import apply_transformation, transformation_names
from workflows.variant import WorkflowVariant

__all__ = [
    'WorkflowVariant',
    'VariantCatalog',
    'default_catalog',
    'register_workflow',
    'StepContext',
    'WorkflowServices',
    'default_services',
    'WorkflowExecutor',
    'Prediction',
    'RulePredictor',
    'LLMPredictor',
    'apply_transformation',
    'transformation_names',
]
