"""
Heuristic scam analysis for Ethereum smart contracts.

Given a contract address, and optionally its ABI and a bytecode source, the
analyzer reports deception patterns, a risk score and security warnings.
Results are probabilistic heuristics intended for human review.
"""

import logging

from .engine import AnalysisOrchestrator, BytecodeCache, ProxyClassifier, Web3BytecodeSource
from .risk import RiskAggregator, ThreatRegistry
from .risk.patterns import create_detector
from .risk.patterns.detection import detect_all_patterns, detect_pattern
from .settings import AnalysisSettings, configure_logging, load_settings
from .shared import (
    AdvancedContractAnalysis, AnalysisError, ContractAnalysis, PatternResult, RiskAssessment,
    RiskLevel, ScamCategory, SecurityError, SecurityWarning, Severity, ValidationError,
    normalize_address,
)
from .shared.constants import ANALYSIS_VERSION
from .shared.schemas import RiskScoringConfig

# Version information
__version__ = ANALYSIS_VERSION

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Engine
    'AnalysisOrchestrator',
    'BytecodeCache',
    'ProxyClassifier',
    'Web3BytecodeSource',

    # Risk
    'ThreatRegistry',
    'RiskAggregator',
    'RiskScoringConfig',
    'create_detector',
    'detect_pattern',
    'detect_all_patterns',

    # Settings
    'AnalysisSettings',
    'load_settings',
    'configure_logging',

    # Schemas & errors
    'ContractAnalysis',
    'AdvancedContractAnalysis',
    'PatternResult',
    'RiskAssessment',
    'SecurityWarning',
    'ScamCategory',
    'Severity',
    'RiskLevel',
    'ValidationError',
    'SecurityError',
    'AnalysisError',
    'normalize_address',
]
