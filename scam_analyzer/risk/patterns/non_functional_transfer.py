"""
Non-functional transfer detector.

Finds transfer-style functions that cannot move value: transfers declared
view/pure, state-changing transfers with no matching event, transfer events
nothing can emit, and bytecode that logs without ever writing storage.

File: scam_analyzer/risk/patterns/non_functional_transfer.py
"""

import logging
from typing import List, Optional

from . import ABIInput, BaseDetector, BytecodeInput
from .bytecode_scan import contains_opcode, disassemble
from ...shared.constants import (
    ERC20_STATE_FUNCTIONS,
    NON_FUNCTIONAL_TRANSFER_WEIGHTS,
    OPCODE_LOGS,
    OPCODE_SSTORE,
    PLACEHOLDER_NAME_TOKENS,
    TRANSFER_EVENT_NAMES,
    TRANSFER_FUNCTION_NAMES,
)
from ...shared.schemas import ABIEntry, PatternResult, ScamCategory, Severity

logger = logging.getLogger(__name__)

# Privilege transfers share the "transfer" prefix but move no value
NON_VALUE_TRANSFER_TOKENS = ('ownership', 'admin', 'role')
BOOL_RETURN_FUNCTIONS = ('transfer', 'transferfrom', 'approve')

_TRANSFER_TOKENS = tuple(sorted({name.lower() for name in TRANSFER_FUNCTION_NAMES}, key=len, reverse=True))
_TRANSFER_EVENTS = frozenset(name.lower() for name in TRANSFER_EVENT_NAMES)


def transfer_token(name: Optional[str]) -> Optional[str]:
    """Longest transfer name the function name starts with, if any."""
    lowered = (name or '').lower()
    if any(token in lowered for token in NON_VALUE_TRANSFER_TOKENS):
        return None
    for token in _TRANSFER_TOKENS:
        if lowered.startswith(token):
            return token
    return None


def event_matches_transfer(event_name: str, token: str) -> bool:
    """True if the event plausibly records a call of a function with this token."""
    lowered = event_name.lower()
    if 'transfer' in lowered or token in lowered:
        return True
    return token.startswith('send') and lowered == 'sent'


class NonFunctionalTransferDetector(BaseDetector):
    """Detects transfer functions that do not actually transfer anything."""

    category = ScamCategory.NON_FUNCTIONAL_TRANSFER

    def detect(self, abi: ABIInput, bytecode: BytecodeInput = None) -> PatternResult:
        entries = self._coerce_abi(abi)
        code = self._coerce_bytecode(bytecode)
        functions = self._functions(entries)
        if not functions:
            return self._empty_result('no_functions', total_functions=0)

        transfer_functions = [f for f in functions if transfer_token(f.name)]
        transfer_events = [e for e in self._events(entries) if (e.name or '').lower() in _TRANSFER_EVENTS]
        event_names = [e.name for e in transfer_events]

        view_transfers = [f for f in transfer_functions if f.is_read_only]
        state_changing = [f for f in transfer_functions if not f.is_read_only]

        non_functional = [
            f for f in state_changing
            if not any(event_matches_transfer(name, transfer_token(f.name)) for name in event_names)
        ]
        orphaned_events = [
            e for e in transfer_events
            if not any(event_matches_transfer(e.name, transfer_token(f.name)) for f in state_changing)
        ]

        storage_less = False
        if code:
            instructions = disassemble(code)
            storage_less = (
                contains_opcode(instructions, OPCODE_LOGS)
                and not contains_opcode(instructions, {OPCODE_SSTORE})
            )
            if storage_less:
                for f in state_changing:
                    if f not in non_functional:
                        non_functional.append(f)

        evidence: List[str] = []
        for f in view_transfers:
            evidence.append(
                f"Transfer function '{f.name}' is declared {f.state_mutability} and cannot change balances"
            )
        for f in non_functional:
            evidence.append(f"Transfer function '{f.name}' has no corresponding transfer event")
        for e in orphaned_events:
            evidence.append(f"Event '{e.name}' has no state-changing function that could emit it")
        if storage_less and state_changing:
            evidence.append("Bytecode emits events but never writes storage (no SSTORE)")
        evidence.extend(self._naming_markers(transfer_functions))

        weights = NON_FUNCTIONAL_TRANSFER_WEIGHTS
        weighted_hits = (
            weights['non_functional'] * len(non_functional)
            + weights['orphaned_events'] * len(orphaned_events)
            + weights['view_transfers'] * len(view_transfers)
        )
        confidence = min(1.0, 2 * weighted_hits / len(functions))
        severity = self._severity(confidence, view_transfers, non_functional)

        metadata = {
            'total_functions': len(functions),
            'transfer_functions': len(transfer_functions),
            'transfer_events': len(transfer_events),
            'view_transfer_count': len(view_transfers),
            'non_functional_count': len(non_functional),
            'orphaned_event_count': len(orphaned_events),
            'bytecode_checked': bool(code),
            'storage_less_bytecode': storage_less,
        }
        return self._build_result(confidence, evidence, severity, metadata)

    @staticmethod
    def _naming_markers(transfer_functions: List[ABIEntry]) -> List[str]:
        """Evidence-only markers: placeholder names and non-bool ERC-20 returns."""
        markers = []
        for f in transfer_functions:
            lowered = (f.name or '').lower()
            placeholder = [t for t in PLACEHOLDER_NAME_TOKENS if t in lowered]
            if placeholder:
                markers.append(f"Transfer function '{f.name}' uses placeholder naming ({', '.join(placeholder)})")
            if lowered in BOOL_RETURN_FUNCTIONS and f.outputs and f.output_types != ('bool',):
                markers.append(
                    f"ERC20 function '{f.name}' returns '{','.join(f.output_types)}' instead of 'bool'"
                )
        return markers

    @staticmethod
    def _severity(confidence: float, view_transfers: List[ABIEntry], non_functional: List[ABIEntry]) -> Severity:
        if confidence >= 0.7 and any((f.name or '').lower() in ERC20_STATE_FUNCTIONS for f in view_transfers):
            return Severity.CRITICAL
        if confidence >= 0.6 and len(non_functional) > 1:
            return Severity.HIGH
        if confidence >= 0.4:
            return Severity.MEDIUM
        return Severity.LOW
