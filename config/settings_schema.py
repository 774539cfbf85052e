"""
Typed Settings Schema (Pydantic)
================================

Typed, validated view over base.yaml. Invalid settings are a pre-flight
failure: they surface as ConfigurationError before any optimization round.

Usage:
    from config.settings_schema import load_validated_settings

    settings = load_validated_settings()
    rounds = settings.optimizer.rounds
    max_concurrent = settings.scheduler.max_concurrent
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from config.settings_loader import load_settings
from core.exceptions import SettingsValidationError

logger = logging.getLogger(__name__)


# ============================================================================
# Schema Definitions
# ============================================================================

class SearchConfig(BaseModel):
    """Tree search over workflow variants."""
    mode: Literal["catalog", "transform"] = "catalog"
    simulations: int = Field(default=20, ge=1, description="Simulations per search call")
    exploration: float = Field(default=1.414, ge=0, description="UCB1 exploration constant")
    terminal_visits: int = Field(default=10, ge=1)
    neutral_score: float = Field(default=0.5, ge=0, le=1)
    simulation_horizon: int = Field(default=10, ge=1, description="Short backtest horizon")


class OptimizerConfig(BaseModel):
    """Round loop and stochastic acceptance."""
    rounds: int = Field(default=15, ge=1)
    improvement_threshold: float = Field(default=0.02, ge=0)
    temperature: float = Field(default=0.1, gt=0)


class BacktestConfig(BaseModel):
    """Walk-forward evaluator."""
    lookback: int = Field(default=30, ge=1)
    horizon: int = Field(default=30, ge=1)
    trade_tail: int = Field(default=10, ge=0)
    insufficient_data_score: float = Field(default=0.0, ge=0, le=1)
    error_score: float = Field(default=0.5, ge=0, le=1)


class SchedulerConfig(BaseModel):
    max_concurrent: int = Field(default=2, ge=1)


class GenerationConfig(BaseModel):
    """Candidate generation through a text provider."""
    enabled: bool = False
    timeout_seconds: float = Field(default=20.0, gt=0)
    preferences: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("preferences")
    @classmethod
    def upper_case_symbols(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        return {(k if k == "default" else k.upper()): list(names) for k, names in v.items()}


class DataConfig(BaseModel):
    period: str = "1y"
    request_timeout: float = Field(default=10.0, gt=0)
    synthetic_seed: int = 7
    fallback_ttl_seconds: float = Field(default=300, gt=0)


class CacheConfig(BaseModel):
    ttl_seconds: float = Field(default=3600, gt=0)
    dir: Optional[str] = None


class StorageConfig(BaseModel):
    root: str = "storage"
    persist: bool = True


class PredictionConfig(BaseModel):
    provider: Literal["rule", "llm"] = "rule"


class LLMConfig(BaseModel):
    temperature: float = Field(default=0.3, ge=0, le=2)
    max_tokens: int = Field(default=1000, ge=1)
    timeout: float = Field(default=30.0, gt=0)
    providers: List[Literal["openai", "anthropic"]] = Field(
        default_factory=lambda: ["openai", "anthropic"]
    )


class Settings(BaseModel):
    """Root settings model."""
    search: SearchConfig = Field(default_factory=SearchConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    data: DataConfig = Field(default_factory=DataConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    prediction: PredictionConfig = Field(default_factory=PredictionConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)


# ============================================================================
# Loading Functions
# ============================================================================

def validate_settings(data: Dict[str, Any]) -> Settings:
    """
    Validate a raw settings mapping.

    Raises:
        SettingsValidationError: If any section is out of bounds
    """
    try:
        return Settings.model_validate(data or {})
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        logger.error(f"Settings validation failed: {errors}")
        raise SettingsValidationError(
            "Invalid settings", context={"errors": errors}, cause=e
        ) from e


def load_validated_settings(force_reload: bool = False) -> Settings:
    """Load base.yaml and validate it."""
    return validate_settings(load_settings(force_reload=force_reload))
