"""
Action spaces for the workflow tree search.

Both spaces answer the same two questions: which actions exist at a node,
and what variant an action yields. The tree never needs to know which one
it is driving.
"""
from __future__ import annotations

from typing import Protocol, Sequence, Tuple

from workflows.catalog import VariantCatalog
from workflows.transforms import apply_transformation, transformation_names
from workflows.variant import WorkflowVariant


class ActionSpace(Protocol):
    def actions(self, variant: WorkflowVariant) -> Sequence[str]:
        ...

    def apply(self, variant: WorkflowVariant, action: str) -> WorkflowVariant:
        ...


class CatalogActionSpace:
    """Actions are catalog entry names; applying one selects that entry."""

    mode = "catalog"

    def __init__(self, catalog: VariantCatalog):
        self.catalog = catalog
        self._names = catalog.names()

    def actions(self, variant: WorkflowVariant) -> Tuple[str, ...]:
        return self._names

    def apply(self, variant: WorkflowVariant, action: str) -> WorkflowVariant:
        return self.catalog.get(action)


class TransformationActionSpace:
    """Actions are transformations applied to the node's variant."""

    mode = "transform"

    def __init__(self, transformations: Sequence[str] = ()):
        self._names = tuple(transformations) or transformation_names()

    def actions(self, variant: WorkflowVariant) -> Tuple[str, ...]:
        return self._names

    def apply(self, variant: WorkflowVariant, action: str) -> WorkflowVariant:
        return apply_transformation(variant, action)


def build_action_space(mode: str, catalog: VariantCatalog) -> ActionSpace:
    if mode == "transform":
        return TransformationActionSpace()
    return CatalogActionSpace(catalog)
