"""
Pattern detection entry points.

Runs one or several detectors over the same input and summarizes the
outcome. Each detector runs isolated, so a crash in one leaves the rest
intact.

File: scam_analyzer/risk/patterns/detection.py
"""

import logging
import time
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from . import ABIInput, BaseDetector, BytecodeInput, create_detector, get_available_detectors
from ...shared.constants import SEVERITY_MULTIPLIERS
from ...shared.exceptions import BytecodeError, ValidationError
from ...shared.schemas import (
    SEVERITY_ORDER, PatternDetectionSummary, PatternResult, ScamCategory, Severity
)
from ...shared.validation import ValidationResult, bytecode_to_bytes, parse_abi

logger = logging.getLogger(__name__)

DETECTOR_INFO = {
    ScamCategory.FAKE_BALANCE: {
        'name': 'Fake Balance',
        'description': 'Balance functions returning time- or block-derived values, malformed ERC-20 shapes',
        'inputs': 'abi',
    },
    ScamCategory.HIDDEN_REDIRECTION: {
        'name': 'Hidden Redirection',
        'description': 'Hardcoded call targets, self-destruct beneficiaries and recipient setters',
        'inputs': 'bytecode, abi',
    },
    ScamCategory.NON_FUNCTIONAL_TRANSFER: {
        'name': 'Non-Functional Transfer',
        'description': 'Transfer functions that cannot move value or never emit transfer events',
        'inputs': 'abi, bytecode',
    },
    ScamCategory.DECEPTIVE_EVENTS: {
        'name': 'Deceptive Events',
        'description': 'Events emitted without the state change they announce',
        'inputs': 'abi',
    },
}


def get_detector_info() -> Dict[str, Dict[str, str]]:
    """Descriptions of every registered detector, keyed by category value."""
    return {category.value: dict(DETECTOR_INFO[category]) for category in get_available_detectors()}


def validate_detection_input(abi: ABIInput, bytecode: BytecodeInput = None) -> ValidationResult:
    """Check that at least one usable input is present and well-formed."""
    has_abi = abi is not None and len(abi) > 0
    has_bytecode = bytecode is not None and len(bytecode) > 0
    if not has_abi and not has_bytecode:
        return ValidationResult.failure(
            ValidationError("Either an ABI or bytecode is required for pattern detection", field="input")
        )

    if has_abi:
        parsed = parse_abi(abi)
        if not parsed.ok:
            return parsed
    if has_bytecode:
        try:
            bytecode_to_bytes(bytecode)
        except BytecodeError as e:
            return ValidationResult.failure(ValidationError(e.message, field="bytecode"))
    return ValidationResult.success(True)


def detect_pattern(
    category: Union[ScamCategory, str],
    abi: ABIInput,
    bytecode: BytecodeInput = None,
    detector: Optional[BaseDetector] = None,
) -> PatternResult:
    """Run a single detector with failure isolation."""
    detector = detector or create_detector(category)
    return detector.safe_detect(abi, bytecode)


def run_detectors(
    detectors: Mapping[ScamCategory, BaseDetector],
    abi: ABIInput,
    bytecode: BytecodeInput = None,
) -> Dict[ScamCategory, PatternResult]:
    """Run every given detector over the same input."""
    return {category: detector.safe_detect(abi, bytecode) for category, detector in detectors.items()}


def detect_all_patterns(
    abi: ABIInput,
    bytecode: BytecodeInput = None,
    include: Optional[Iterable[Union[ScamCategory, str]]] = None,
    exclude: Optional[Iterable[Union[ScamCategory, str]]] = None,
    detectors: Optional[Mapping[ScamCategory, BaseDetector]] = None,
) -> PatternDetectionSummary:
    """
    Run the selected detectors and summarize the results.

    Args:
        abi: Contract interface
        bytecode: Optional runtime bytecode
        include: Categories to run (default: all)
        exclude: Categories to skip
        detectors: Pre-built detector instances to reuse

    Returns:
        PatternDetectionSummary with per-category results and overall verdict
    """
    start_time = time.perf_counter()

    selected = [ScamCategory(c) for c in include] if include is not None else get_available_detectors()
    skipped = {ScamCategory(c) for c in exclude} if exclude is not None else set()
    categories = [c for c in selected if c not in skipped]

    instances = {
        category: (detectors or {}).get(category) or create_detector(category)
        for category in categories
    }
    results = run_detectors(instances, abi, bytecode)
    detected = [category for category, result in results.items() if result.detected]

    overall_confidence = 0.0
    overall_severity = Severity.LOW
    risk_score = 0
    if detected:
        overall_confidence = sum(results[c].confidence for c in detected) / len(detected)
        overall_severity = max((results[c].severity for c in detected), key=lambda s: s.rank)
        if len(detected) > 1:
            overall_severity = SEVERITY_ORDER[min(overall_severity.rank + 1, len(SEVERITY_ORDER) - 1)]
        scaled = overall_confidence * SEVERITY_MULTIPLIERS[overall_severity.value] / SEVERITY_MULTIPLIERS['critical']
        risk_score = int(round(min(1.0, scaled + 0.1 * (len(detected) - 1)) * 100))

    if detected:
        names = ', '.join(c.value for c in detected)
        summary = (
            f"Detected {len(detected)} of {len(results)} pattern type(s) ({names}); "
            f"overall severity {overall_severity.value}, confidence {overall_confidence * 100:.1f}%"
        )
    else:
        summary = f"No deceptive patterns detected across {len(results)} detector(s)"

    return PatternDetectionSummary(
        overall_detected=bool(detected),
        overall_confidence=overall_confidence,
        overall_severity=overall_severity,
        overall_risk_score=risk_score,
        detected_patterns=detected,
        pattern_results=results,
        summary=summary,
        metadata={
            'input_type': _input_type(abi, bytecode),
            'detectors_run': [c.value for c in categories],
            'processing_time_ms': (time.perf_counter() - start_time) * 1000,
        },
    )


def _input_type(abi: Any, bytecode: Any) -> str:
    has_abi = bool(abi)
    has_bytecode = bool(bytecode) and bytecode not in ('0x', b'')
    if has_abi and has_bytecode:
        return 'abi+bytecode'
    if has_abi:
        return 'abi'
    return 'bytecode' if has_bytecode else 'none'


__all__ = [
    'detect_pattern',
    'detect_all_patterns',
    'run_detectors',
    'get_detector_info',
    'validate_detection_input',
]
