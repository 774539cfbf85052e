"""
Workflow variant model.

A variant is an immutable, named analysis pipeline. It is either declarative
(an ordered tuple of registered step names) or a handler variant (the key of
a statically registered callable). Tunables ride along on the variant.
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from core.exceptions import CatalogError

PROMPT_STYLES = ("standard", "multi_factor")
CONFIDENCE_LEVELS = (0.5, 0.6, 0.7)
DEFAULT_MIN_CONFIDENCE = 0.6


@dataclass(frozen=True)
class WorkflowVariant:
    name: str
    steps: Tuple[str, ...] = ()
    handler: Optional[str] = None
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    prompt_style: str = "standard"
    ensemble: bool = False
    lineage: Tuple[str, ...] = field(default=())
    description: str = ""

    def __post_init__(self):
        if bool(self.steps) == bool(self.handler):
            raise CatalogError(
                "Variant needs exactly one of steps or handler",
                context={"variant": self.name},
            )
        if self.prompt_style not in PROMPT_STYLES:
            raise CatalogError(
                f"Unknown prompt style {self.prompt_style!r}",
                context={"variant": self.name},
            )
        if not 0.0 <= self.min_confidence <= 1.0:
            raise CatalogError(
                "min_confidence must be within [0, 1]",
                context={"variant": self.name, "min_confidence": self.min_confidence},
            )

    @property
    def is_declarative(self) -> bool:
        return self.handler is None

    @property
    def key(self) -> str:
        """Deterministic identity over everything but the display name."""
        payload = json.dumps({
            "steps": list(self.steps),
            "handler": self.handler,
            "min_confidence": self.min_confidence,
            "prompt_style": self.prompt_style,
            "ensemble": self.ensemble,
        }, sort_keys=True)
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()[:12]

    def derive(self, action: str, **changes: Any) -> "WorkflowVariant":
        """New variant produced by ``action``; name and lineage record it."""
        return replace(
            self,
            name=f"{self.name}>{action}",
            lineage=self.lineage + (action,),
            **changes,
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["steps"] = list(self.steps)
        d["lineage"] = list(self.lineage)
        d["key"] = self.key
        return d

    def __str__(self) -> str:
        return self.name
