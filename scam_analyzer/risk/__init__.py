"""
Risk analysis for contract scam detection.

Threat registry lookups, pattern detectors and risk aggregation.
"""

from .registry import ThreatRegistry
from .scoring import (
    RiskAggregator,
    get_default_risk_scoring_config,
    map_score_to_risk_level,
    validate_risk_scoring_config,
)

__all__ = [
    'ThreatRegistry',
    'RiskAggregator',
    'get_default_risk_scoring_config',
    'map_score_to_risk_level',
    'validate_risk_scoring_config',
]
