"""
Fake balance detector.

Flags balance-reporting functions whose names suggest block- or time-derived
values, ERC-20 functions with the wrong parameter or return shape, and a
malformed Transfer event.

File: scam_analyzer/risk/patterns/fake_balance.py
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from . import ABIInput, BaseDetector, BytecodeInput
from ...shared.constants import (
    BALANCE_FUNCTION_NAMES,
    ERC20_SIGNATURES,
    FAKE_BALANCE_WEIGHTS,
    SUSPICIOUS_BALANCE_TOKENS,
    UINT256_RETURN_FUNCTIONS,
)
from ...shared.schemas import ABIEntry, PatternResult, ScamCategory, Severity

logger = logging.getLogger(__name__)


@dataclass
class BalanceFunctionProfile:
    """Classification of one function entry."""
    entry: ABIEntry
    is_balance_related: bool
    suspicious_tokens: List[str] = field(default_factory=list)
    is_view: bool = False
    expected_params: Optional[Tuple[str, ...]] = None
    has_proper_params: bool = True
    bad_return_type: Optional[str] = None

    @property
    def name(self) -> str:
        return self.entry.name or ''

    @property
    def is_erc20(self) -> bool:
        return self.expected_params is not None

    @property
    def is_improper_erc20(self) -> bool:
        return self.is_erc20 and (not self.has_proper_params or self.bad_return_type is not None)


class FakeBalanceDetector(BaseDetector):
    """Detects balance functions that report something other than real balances."""

    category = ScamCategory.FAKE_BALANCE

    def detect(self, abi: ABIInput, bytecode: BytecodeInput = None) -> PatternResult:
        entries = self._coerce_abi(abi)
        functions = self._functions(entries)
        profiles = [self._profile(entry) for entry in functions]

        timestamp_based = [
            p for p in profiles if p.is_balance_related and p.is_view and p.suspicious_tokens
        ]
        improper = [p for p in profiles if p.is_improper_erc20]
        # Same predicate as timestamp_based, reported as its own bucket
        non_deterministic = [
            p for p in profiles if p.is_view and p.is_balance_related and p.suspicious_tokens
        ]
        transfer_event_issues = [
            event for event in self._events(entries)
            if event.name == 'Transfer' and not self._shape_matches(
                event.input_types, ('address', 'address', 'uint')
            )
        ]

        evidence: List[str] = []
        for profile in timestamp_based:
            evidence.append(
                f"Function '{profile.name}' appears to return timestamp-based values instead of "
                f"actual balance (patterns: {', '.join(profile.suspicious_tokens)})"
            )
        for profile in improper:
            if not profile.has_proper_params:
                expected = ','.join(profile.expected_params)
                found = ','.join(profile.entry.input_types)
                evidence.append(
                    f"ERC20 function '{profile.name}' has incorrect parameters "
                    f"(expected ({expected}), found ({found}))"
                )
            if profile.bad_return_type is not None:
                evidence.append(
                    f"{profile.name} function returns '{profile.bad_return_type}' instead of 'uint256'"
                )
        for profile in non_deterministic:
            evidence.append(
                f"View function '{profile.name}' may return non-deterministic values "
                f"(patterns: {', '.join(profile.suspicious_tokens)})"
            )
        for event in transfer_event_issues:
            params = ', '.join(f"{p.name or '?'}:{p.type}" for p in event.inputs)
            evidence.append(f"Transfer event has incorrect parameters: {params}")

        weighted_hits = (
            FAKE_BALANCE_WEIGHTS['timestamp_based'] * len(timestamp_based)
            + FAKE_BALANCE_WEIGHTS['improper_erc20'] * len(improper)
            + FAKE_BALANCE_WEIGHTS['non_deterministic'] * len(non_deterministic)
        )
        confidence = min(1.0, 2 * weighted_hits / max(1, len(functions)))
        severity = self._severity(confidence, timestamp_based, improper)

        metadata = {
            'total_functions': len(functions),
            'balance_functions': sum(1 for p in profiles if p.is_balance_related),
            'timestamp_based_count': len(timestamp_based),
            'improper_erc20_count': len(improper),
            'non_deterministic_count': len(non_deterministic),
            'transfer_event_issues': len(transfer_event_issues),
            'flagged_functions': sorted({p.name for p in timestamp_based + improper}),
        }

        result = self._build_result(confidence, evidence, severity, metadata)
        if result.detected:
            self.logger.info(f"Fake balance patterns found: {len(evidence)} evidence item(s), "
                             f"confidence {confidence:.2f}")
        return result

    def _profile(self, entry: ABIEntry) -> BalanceFunctionProfile:
        lowered = (entry.name or '').lower()
        expected = ERC20_SIGNATURES.get(lowered)

        has_proper_params = True
        if expected is not None:
            has_proper_params = self._shape_matches(entry.input_types, expected)

        bad_return_type = None
        if lowered in UINT256_RETURN_FUNCTIONS and entry.output_types != ('uint256',):
            bad_return_type = ','.join(entry.output_types) or 'nothing'

        return BalanceFunctionProfile(
            entry=entry,
            is_balance_related=bool(self._matching_tokens(entry.name, BALANCE_FUNCTION_NAMES)),
            suspicious_tokens=self._matching_tokens(entry.name, SUSPICIOUS_BALANCE_TOKENS),
            is_view=entry.is_read_only,
            expected_params=expected,
            has_proper_params=has_proper_params,
            bad_return_type=bad_return_type,
        )

    @staticmethod
    def _severity(
        confidence: float,
        timestamp_based: List[BalanceFunctionProfile],
        improper: List[BalanceFunctionProfile],
    ) -> Severity:
        if confidence >= 0.6 and any(p.name.lower() == 'balanceof' for p in improper):
            return Severity.CRITICAL
        if confidence >= 0.5 and len(timestamp_based) >= 2:
            return Severity.HIGH
        if confidence >= 0.4:
            return Severity.MEDIUM
        return Severity.LOW
