"""
Shared module for the scam analyzer.

Common schemas, constants, exceptions and boundary validation used by the
engine and risk packages.
"""

from .exceptions import (
    AnalysisError, BytecodeError, ScamAnalyzerError, SecurityError, ValidationError
)
from .schemas import (
    ABIEntry, ABIParameter, AdvancedContractAnalysis, AnalysisStage, AnalysisStatus,
    ContractAnalysis, PatternResult, ProxyClassification, QuickCheckResult,
    RiskAssessment, RiskLevel, ScamCategory, SecurityWarning, Severity, WarningLevel
)
from .validation import (
    ValidationResult, normalize_address, parse_abi, parse_address, validate_bytecode
)

__all__ = [
    # Exceptions
    'ScamAnalyzerError',
    'ValidationError',
    'SecurityError',
    'AnalysisError',
    'BytecodeError',

    # Schemas
    'ABIEntry',
    'ABIParameter',
    'PatternResult',
    'ProxyClassification',
    'RiskAssessment',
    'SecurityWarning',
    'ContractAnalysis',
    'AdvancedContractAnalysis',
    'QuickCheckResult',
    'ScamCategory',
    'Severity',
    'RiskLevel',
    'WarningLevel',
    'AnalysisStatus',
    'AnalysisStage',

    # Validation
    'ValidationResult',
    'normalize_address',
    'parse_address',
    'parse_abi',
    'validate_bytecode',
]
