"""
Data models for contract scam analysis.

Pydantic models describing ABI input, detector output, risk assessments and
the externally visible analysis records. Field names are snake_case in
Python and serialize to the camelCase wire names (contractAddress,
analysisStatus, patternResults, ...) through an alias generator.

File: scam_analyzer/shared/schemas.py
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .constants import PATTERN_WEIGHTS, RISK_THRESHOLDS, SEVERITY_MULTIPLIERS

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS & CONSTANTS
# =============================================================================

class ScamCategory(str, Enum):
    """Deception pattern categories, one detector per member."""
    FAKE_BALANCE = "fake-balance"
    HIDDEN_REDIRECTION = "hidden-redirection"
    NON_FUNCTIONAL_TRANSFER = "non-functional-transfer"
    DECEPTIVE_EVENTS = "deceptive-events"


class Severity(str, Enum):
    """Severity of a single pattern finding."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER.index(self)


SEVERITY_ORDER = (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)


class RiskLevel(str, Enum):
    """Overall risk classification of a contract."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class WarningLevel(str, Enum):
    """Security warning levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AnalysisStatus(str, Enum):
    """Lifecycle status of an analysis record."""
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"
    IN_PROGRESS = "in-progress"


class AnalysisStage(str, Enum):
    """Orchestrator pipeline stages."""
    START = "start"
    ADDRESS_VALIDATED = "address-validated"
    THREAT_CHECKED = "threat-checked"
    BYTECODE_FETCHED = "bytecode-fetched"
    PROXY_CLASSIFIED = "proxy-classified"
    PATTERNS_RUN = "patterns-run"
    AGGREGATED = "aggregated"
    COMPLETE = "complete"
    FAILED = "failed"


ABI_ENTRY_KINDS = ('function', 'event', 'constructor', 'fallback', 'receive', 'error')
READ_ONLY_MUTABILITY = ('view', 'pure')


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    """Base model serializing to camelCase wire names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the external (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# ABI MODELS
# =============================================================================

class ABIParameter(WireModel):
    """One typed input or output of an ABI entry."""

    model_config = ConfigDict(frozen=True, extra='ignore', populate_by_name=True)

    name: str = ""
    type: str
    indexed: Optional[bool] = None

    @field_validator('name', mode='before')
    @classmethod
    def none_name_to_empty(cls, v):
        return v or ""


class ABIEntry(WireModel):
    """Single item of a contract interface."""

    model_config = ConfigDict(
        frozen=True,
        extra='ignore',
        populate_by_name=True,
        alias_generator=to_camel,
    )

    kind: str = Field(alias='type')
    name: Optional[str] = None
    inputs: Tuple[ABIParameter, ...] = ()
    outputs: Tuple[ABIParameter, ...] = ()
    state_mutability: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def apply_legacy_defaults(cls, data: Any) -> Any:
        """Default missing kind to function and map legacy constant flags."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        data.setdefault('type', data.pop('kind', 'function'))
        if not data.get('stateMutability') and not data.get('state_mutability'):
            if data.get('constant'):
                data['stateMutability'] = 'view'
            elif 'payable' in data:
                data['stateMutability'] = 'payable' if data['payable'] else 'nonpayable'
        return data

    @field_validator('kind')
    @classmethod
    def validate_kind(cls, v: str) -> str:
        if v not in ABI_ENTRY_KINDS:
            raise ValueError(f'Unsupported ABI entry type: {v}')
        return v

    @property
    def is_function(self) -> bool:
        return self.kind == 'function'

    @property
    def is_event(self) -> bool:
        return self.kind == 'event'

    @property
    def is_read_only(self) -> bool:
        return self.state_mutability in READ_ONLY_MUTABILITY

    @property
    def input_types(self) -> Tuple[str, ...]:
        return tuple(param.type for param in self.inputs)

    @property
    def output_types(self) -> Tuple[str, ...]:
        return tuple(param.type for param in self.outputs)


# =============================================================================
# DETECTOR OUTPUT
# =============================================================================

class PatternResult(WireModel):
    """Immutable output of one pattern detector."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    detected: bool
    confidence: float = Field(ge=0.0, le=1.0)
    category: ScamCategory
    description: str = ""
    evidence: Tuple[str, ...] = ()
    severity: Severity = Severity.LOW
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PatternDetectionSummary(WireModel):
    """Combined output of running several detectors over one input."""

    overall_detected: bool
    overall_confidence: float
    overall_severity: Severity
    overall_risk_score: int = Field(ge=0, le=100)
    detected_patterns: List[ScamCategory] = Field(default_factory=list)
    pattern_results: Dict[ScamCategory, PatternResult] = Field(default_factory=dict)
    summary: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ProxyClassification(WireModel):
    """Result of matching bytecode against proxy templates."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    is_contract: bool
    is_proxy: bool
    size: int
    matched_templates: Tuple[str, ...] = ()


# =============================================================================
# RISK ASSESSMENT
# =============================================================================

def _merge_defaults(defaults: Mapping[str, float], value: Any, label: str) -> Any:
    """Overlay a partial mapping on the defaults; unknown keys are rejected."""
    if value is None:
        return dict(defaults)
    if not isinstance(value, Mapping):
        return value
    unknown = sorted(str(key) for key in value if key not in defaults)
    if unknown:
        raise ValueError(f"Unknown {label}: {', '.join(unknown)}")
    merged = dict(defaults)
    for key, item in value.items():
        merged[str(getattr(key, 'value', key))] = item
    return merged


def _check_range(values: Dict[str, float], low: float, high: float, label: str) -> Dict[str, float]:
    for key, value in values.items():
        if not low <= value <= high:
            raise ValueError(f"{label} for {key} must be between {low} and {high}, got {value}")
    return values


class RiskScoringConfig(WireModel):
    """
    Tunable inputs of the risk aggregator.

    Partial mappings are merged over the default tables, so overriding one
    category weight keeps the others. Bonus and penalty terms can be
    switched off independently.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel, extra='forbid')

    pattern_weights: Dict[str, float] = Field(default_factory=lambda: dict(PATTERN_WEIGHTS))
    severity_multipliers: Dict[str, float] = Field(default_factory=lambda: dict(SEVERITY_MULTIPLIERS))
    risk_thresholds: Dict[str, float] = Field(default_factory=lambda: dict(RISK_THRESHOLDS))
    enable_bonus_scoring: bool = True
    enable_penalty_scoring: bool = True

    @field_validator('pattern_weights', mode='before')
    @classmethod
    def merge_weights(cls, v):
        return _merge_defaults(PATTERN_WEIGHTS, v, 'pattern category')

    @field_validator('severity_multipliers', mode='before')
    @classmethod
    def merge_multipliers(cls, v):
        return _merge_defaults(SEVERITY_MULTIPLIERS, v, 'severity')

    @field_validator('risk_thresholds', mode='before')
    @classmethod
    def merge_thresholds(cls, v):
        return _merge_defaults(RISK_THRESHOLDS, v, 'risk level')

    @field_validator('pattern_weights')
    @classmethod
    def check_weights(cls, v: Dict[str, float]) -> Dict[str, float]:
        return _check_range(v, 0.0, 1.0, 'Pattern weight')

    @field_validator('severity_multipliers')
    @classmethod
    def check_multipliers(cls, v: Dict[str, float]) -> Dict[str, float]:
        return _check_range(v, 0.0, 2.0, 'Severity multiplier')

    @field_validator('risk_thresholds')
    @classmethod
    def check_thresholds(cls, v: Dict[str, float]) -> Dict[str, float]:
        _check_range(v, 0.0, 1.0, 'Risk threshold')
        if not v['medium'] <= v['high'] <= v['critical']:
            raise ValueError("Risk thresholds must satisfy medium <= high <= critical")
        return v


class PatternScore(WireModel):
    """Per-pattern scoring breakdown."""

    weight: float
    confidence: float
    severity: Severity
    severity_multiplier: float
    contribution: float
    detected: bool


class RiskBreakdown(WireModel):
    """Numeric components of the final risk score."""

    base_score: float
    bonus_score: float
    penalty_score: float
    final_score: float
    pattern_scores: Dict[ScamCategory, PatternScore] = Field(default_factory=dict)


class RiskExplanation(WireModel):
    """Human-readable explanation of a risk score."""

    summary: str
    risk_factors: List[str] = Field(default_factory=list)
    mitigating_factors: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    detailed_analysis: str = ""


class RiskAssessment(WireModel):
    """Aggregated risk verdict derived from pattern results."""

    risk_score: float = Field(ge=0.0, le=1.0)
    risk_level: RiskLevel
    confidence: float = Field(ge=0.0, le=1.0)
    breakdown: RiskBreakdown
    explanation: RiskExplanation
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SecurityWarning(WireModel):
    """Warning surfaced to the user alongside an analysis."""

    level: WarningLevel
    message: str
    address: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    category: Optional[ScamCategory] = None


# =============================================================================
# ANALYSIS RECORDS
# =============================================================================

class ContractAnalysis(WireModel):
    """Externally visible result of a contract analysis."""

    contract_address: str
    contract_name: Optional[str] = None
    analysis_status: AnalysisStatus = AnalysisStatus.PENDING
    vulnerabilities: List[str] = Field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    analysis_date: datetime = Field(default_factory=utc_now)
    last_updated: datetime = Field(default_factory=utc_now)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AdvancedContractAnalysis(ContractAnalysis):
    """Analysis record with bytecode, pattern and risk details.

    Optional fields stay None when the stage that computes them did not
    succeed.
    """

    bytecode: Optional[str] = None
    bytecode_size: Optional[int] = None
    is_contract: Optional[bool] = None
    is_proxy_contract: Optional[bool] = None
    pattern_results: Optional[Dict[ScamCategory, PatternResult]] = None
    risk_assessment: Optional[RiskAssessment] = None
    security_warnings: Optional[List[SecurityWarning]] = None


class QuickCheckResult(WireModel):
    """Outcome of the synchronous basic address check."""

    is_valid: bool
    is_malicious: bool
    risk_level: RiskLevel
    warnings: List[str] = Field(default_factory=list)
