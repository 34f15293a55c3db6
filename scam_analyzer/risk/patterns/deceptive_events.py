"""
Deceptive events detector.

Cross-references events against state-changing functions: reward/transfer
style events that nothing could emit, sensitive functions that emit nothing,
and standard events declared with mis-ordered parameters.

File: scam_analyzer/risk/patterns/deceptive_events.py
"""

import logging
from typing import List

from . import ABIInput, BaseDetector, BytecodeInput
from ...shared.constants import (
    DECEPTIVE_EVENT_SIGNATURES,
    DECEPTIVE_EVENT_WEIGHTS,
    DECEPTIVE_FUNCTION_PATTERNS,
    EVENT_EMITTER_ALIASES,
    STANDARD_EVENT_SHAPES,
)
from ...shared.schemas import ABIEntry, PatternResult, ScamCategory, Severity

logger = logging.getLogger(__name__)

DECEPTIVE_EVENT_NAMES = frozenset(sig.split('(', 1)[0].lower() for sig in DECEPTIVE_EVENT_SIGNATURES)
MIN_CROSS_REFERENCE_LENGTH = 3


def names_related(event_name: str, function_name: str) -> bool:
    """Mutual name containment or a known emitter alias."""
    event = event_name.lower()
    function = function_name.lower()
    if len(event) < MIN_CROSS_REFERENCE_LENGTH or len(function) < MIN_CROSS_REFERENCE_LENGTH:
        return False
    if event in function or function in event:
        return True
    return function in EVENT_EMITTER_ALIASES.get(event, ())


class DeceptiveEventsDetector(BaseDetector):
    """Detects events that can be emitted without the state change they announce."""

    category = ScamCategory.DECEPTIVE_EVENTS

    def detect(self, abi: ABIInput, bytecode: BytecodeInput = None) -> PatternResult:
        entries = self._coerce_abi(abi)
        events = [e for e in self._events(entries) if e.name]
        if not events:
            return self._empty_result('no_events', total_events=0)

        state_changing = [f for f in self._functions(entries) if f.name and not f.is_read_only]

        deceptive_events = [
            e for e in events
            if e.name.lower() in DECEPTIVE_EVENT_NAMES
            and not any(names_related(e.name, f.name) for f in state_changing)
        ]
        silent_functions = [
            f for f in state_changing
            if self._matching_tokens(f.name, DECEPTIVE_FUNCTION_PATTERNS)
            and not any(names_related(e.name, f.name) for e in events)
        ]
        misordered_events = [
            e for e in events
            if e.name in STANDARD_EVENT_SHAPES
            and not self._shape_matches(e.input_types, STANDARD_EVENT_SHAPES[e.name])
        ]

        evidence: List[str] = []
        for e in deceptive_events:
            evidence.append(f"Event '{e.name}' appears to be emitted without corresponding state changes")
        for f in silent_functions:
            evidence.append(f"Function '{f.name}' modifies state but doesn't emit expected events")
        for e in misordered_events:
            expected = ','.join(STANDARD_EVENT_SHAPES[e.name])
            evidence.append(
                f"Event '{e.name}' declares parameters ({','.join(e.input_types)}) "
                f"instead of the standard ({expected}) order"
            )

        weights = DECEPTIVE_EVENT_WEIGHTS
        weighted_hits = (
            weights['deceptive_events'] * len(deceptive_events)
            + weights['silent_functions'] * len(silent_functions)
            + weights['misordered_events'] * len(misordered_events)
        )
        confidence = min(1.0, 1.5 * weighted_hits / len(events))
        severity = self._severity(confidence, len(evidence))

        metadata = {
            'total_events': len(events),
            'state_changing_functions': len(state_changing),
            'deceptive_event_count': len(deceptive_events),
            'silent_function_count': len(silent_functions),
            'misordered_event_count': len(misordered_events),
        }
        return self._build_result(confidence, evidence, severity, metadata)

    @staticmethod
    def _severity(confidence: float, evidence_count: int) -> Severity:
        if confidence >= 0.8 and evidence_count >= 3:
            return Severity.CRITICAL
        if confidence >= 0.6 and evidence_count >= 2:
            return Severity.HIGH
        if confidence >= 0.4 and evidence_count >= 1:
            return Severity.MEDIUM
        return Severity.LOW
