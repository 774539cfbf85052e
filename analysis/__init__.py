"""
Analysis Module - Technical Indicators
======================================

Usage:
    from analysis.technical import analyze
"""

from analysis.technical import (
    IndicatorSignal,
    TechnicalSnapshot,
    TechnicalSummary,
    analyze,
)

__all__ = [
    'IndicatorSignal',
    'TechnicalSnapshot',
    'TechnicalSummary',
    'analyze',
]
