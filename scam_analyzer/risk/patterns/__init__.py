"""
Pattern detectors for deceptive contract designs.

Each detector inspects an ABI (and optionally bytecode) for one scam
category and returns a PatternResult. Detectors are independent: a failure
in one is captured locally and never blocks the others.

File: scam_analyzer/risk/patterns/__init__.py
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ...shared.exceptions import ValidationError
from ...shared.schemas import ABIEntry, PatternResult, ScamCategory, Severity
from ...shared.validation import bytecode_to_bytes, parse_abi

logger = logging.getLogger(__name__)

ABIInput = Union[Sequence[ABIEntry], Sequence[Dict[str, Any]], str, None]
BytecodeInput = Union[str, bytes, bytearray, None]


class BaseDetector(ABC):
    """
    Abstract base class for all pattern detectors.

    Subclasses set ``category`` and implement ``detect``. Shared helpers cover
    ABI coercion, name matching and result construction.
    """

    category: ScamCategory
    detection_threshold: float = 0.3

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.logger = logger.getChild(self.__class__.__name__)

        self.performance_stats = {
            'total_detections': 0,
            'positive_detections': 0,
            'failed_detections': 0,
            'average_detection_time_ms': 0.0,
        }

    @abstractmethod
    def detect(self, abi: ABIInput, bytecode: BytecodeInput = None) -> PatternResult:
        """
        Run the detector.

        Args:
            abi: Contract interface entries
            bytecode: Optional runtime bytecode

        Returns:
            PatternResult for this detector's category
        """
        pass

    def get_category(self) -> ScamCategory:
        return self.category

    def safe_detect(self, abi: ABIInput, bytecode: BytecodeInput = None) -> PatternResult:
        """Run detect, converting any exception into a non-detected result."""
        start_time = time.perf_counter()
        try:
            result = self.detect(abi, bytecode)
            success = True
        except Exception as e:
            self.logger.error(f"{self.category.value} detection failed: {e}", exc_info=True)
            result = self._error_result(e)
            success = False

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        self._update_performance_stats(elapsed_ms, success, result.detected)
        return result

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _coerce_abi(abi: ABIInput) -> Tuple[ABIEntry, ...]:
        """Accept parsed entries, raw dicts or JSON text."""
        if abi is None:
            return ()
        if isinstance(abi, (list, tuple)) and all(isinstance(entry, ABIEntry) for entry in abi):
            return tuple(abi)
        return parse_abi(abi).unwrap()

    @staticmethod
    def _coerce_bytecode(bytecode: BytecodeInput) -> bytes:
        return bytecode_to_bytes(bytecode)

    @staticmethod
    def _functions(abi: Iterable[ABIEntry]) -> List[ABIEntry]:
        return [entry for entry in abi if entry.is_function]

    @staticmethod
    def _events(abi: Iterable[ABIEntry]) -> List[ABIEntry]:
        return [entry for entry in abi if entry.is_event]

    @staticmethod
    def _matching_tokens(name: Optional[str], tokens: Iterable[str]) -> List[str]:
        """Case-insensitive substring matches of tokens within name."""
        lowered = (name or '').lower()
        if not lowered:
            return []
        return [token for token in tokens if token.lower() in lowered]

    @staticmethod
    def _type_matches(actual: str, expected: str) -> bool:
        if expected == 'uint':
            return actual.startswith('uint')
        return actual == expected

    @classmethod
    def _shape_matches(cls, actual: Sequence[str], expected: Sequence[str]) -> bool:
        return len(actual) == len(expected) and all(
            cls._type_matches(a, e) for a, e in zip(actual, expected)
        )

    def _describe(self, detected: bool, evidence: Sequence[str], confidence: float) -> str:
        label = self.category.value.replace('-', ' ')
        if not detected:
            return f"No {label} patterns detected"
        return f"Detected {len(evidence)} {label} pattern(s) with {confidence * 100:.1f}% confidence"

    def _build_result(
        self,
        confidence: float,
        evidence: Sequence[str],
        severity: Severity,
        metadata: Dict[str, Any],
        threshold: Optional[float] = None,
    ) -> PatternResult:
        """Clamp confidence, apply the detection threshold and build the result."""
        threshold = self.detection_threshold if threshold is None else threshold
        confidence = max(0.0, min(1.0, confidence))
        detected = confidence > threshold and len(evidence) > 0
        return PatternResult(
            detected=detected,
            confidence=confidence,
            category=self.category,
            description=self._describe(detected, evidence, confidence),
            evidence=tuple(evidence),
            severity=severity,
            metadata=metadata,
        )

    def _empty_result(self, reason: str, **metadata: Any) -> PatternResult:
        metadata['reason'] = reason
        return PatternResult(
            detected=False,
            confidence=0.0,
            category=self.category,
            description=f"No {self.category.value.replace('-', ' ')} analysis performed: {reason}",
            severity=Severity.LOW,
            metadata=metadata,
        )

    def _error_result(self, error: Exception) -> PatternResult:
        return PatternResult(
            detected=False,
            confidence=0.0,
            category=self.category,
            description=f"Detection failed: {error}",
            severity=Severity.LOW,
            metadata={'error': str(error), 'error_type': error.__class__.__name__},
        )

    def _update_performance_stats(self, detection_time_ms: float, success: bool, detected: bool) -> None:
        self.performance_stats['total_detections'] += 1
        if not success:
            self.performance_stats['failed_detections'] += 1
        elif detected:
            self.performance_stats['positive_detections'] += 1

        total = self.performance_stats['total_detections']
        current_avg = self.performance_stats['average_detection_time_ms']
        self.performance_stats['average_detection_time_ms'] = (
            (current_avg * (total - 1)) + detection_time_ms
        ) / total


# =============================================================================
# DETECTOR REGISTRY
# =============================================================================

DETECTOR_REGISTRY: Dict[ScamCategory, str] = {
    ScamCategory.FAKE_BALANCE: "fake_balance.FakeBalanceDetector",
    ScamCategory.HIDDEN_REDIRECTION: "hidden_redirection.HiddenRedirectionDetector",
    ScamCategory.NON_FUNCTIONAL_TRANSFER: "non_functional_transfer.NonFunctionalTransferDetector",
    ScamCategory.DECEPTIVE_EVENTS: "deceptive_events.DeceptiveEventsDetector",
}

_unregistered = set(ScamCategory) - set(DETECTOR_REGISTRY)
if _unregistered:
    raise ImportError(
        f"No detector registered for: {', '.join(sorted(c.value for c in _unregistered))}"
    )


def create_detector(category: Union[ScamCategory, str], config: Optional[Dict[str, Any]] = None) -> BaseDetector:
    """
    Factory function creating the detector for a category.

    Raises:
        ValidationError: If the category is not supported
    """
    try:
        category = ScamCategory(category)
    except ValueError:
        raise ValidationError(f"Unsupported pattern category: {category}", field="category")

    if category == ScamCategory.FAKE_BALANCE:
        from .fake_balance import FakeBalanceDetector
        return FakeBalanceDetector(config)

    elif category == ScamCategory.HIDDEN_REDIRECTION:
        from .hidden_redirection import HiddenRedirectionDetector
        return HiddenRedirectionDetector(config)

    elif category == ScamCategory.NON_FUNCTIONAL_TRANSFER:
        from .non_functional_transfer import NonFunctionalTransferDetector
        return NonFunctionalTransferDetector(config)

    from .deceptive_events import DeceptiveEventsDetector
    return DeceptiveEventsDetector(config)


def create_all_detectors(config: Optional[Dict[str, Any]] = None) -> Dict[ScamCategory, BaseDetector]:
    """One detector per category, in enum order."""
    return {category: create_detector(category, config) for category in ScamCategory}


def get_available_detectors() -> List[ScamCategory]:
    return list(DETECTOR_REGISTRY.keys())


__all__ = [
    'BaseDetector',
    'DETECTOR_REGISTRY',
    'create_detector',
    'create_all_detectors',
    'get_available_detectors',
]
