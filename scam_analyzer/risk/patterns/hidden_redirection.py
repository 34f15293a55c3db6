"""
Hidden redirection detector.

Looks for value flows routed to addresses baked into the code: hardcoded
call targets, hardcoded self-destruct beneficiaries and burn/placeholder
address literals in bytecode, plus ABI setters that re-point fee or payout
recipients.

File: scam_analyzer/risk/patterns/hidden_redirection.py
"""

import logging
from typing import Any, Dict, List

from . import ABIInput, BaseDetector, BytecodeInput
from .bytecode_scan import disassemble, find_preceding_push20
from ...shared.constants import (
    CALL_LOOKBACK_INSTRUCTIONS,
    CALL_OPCODES,
    HIDDEN_REDIRECTION_WEIGHTS,
    OPCODE_JUMPI,
    OPCODE_SELFDESTRUCT,
    REDIRECT_FUNCTION_TOKENS,
    SUSPICIOUS_ADDRESS_MARKERS,
)
from ...shared.schemas import PatternResult, ScamCategory, Severity

logger = logging.getLogger(__name__)

MULTI_SIGNAL_MULTIPLIER = 1.5


class HiddenRedirectionDetector(BaseDetector):
    """Detects funds or calls redirected to hardcoded addresses."""

    category = ScamCategory.HIDDEN_REDIRECTION
    detection_threshold = 0.2

    def detect(self, abi: ABIInput, bytecode: BytecodeInput = None) -> PatternResult:
        entries = self._coerce_abi(abi)
        code = self._coerce_bytecode(bytecode)
        functions = self._functions(entries)
        if not code and not functions:
            return self._empty_result('empty_bytecode', bytecode_length=0)

        findings = self._scan_bytecode(code) if code else {
            'call': [], 'selfdestruct': [], 'suspicious_address': [], 'jumpi_count': 0,
        }

        redirect_setters = [
            f for f in functions
            if not f.is_read_only
            and 'address' in f.input_types
            and self._matching_tokens(f.name, REDIRECT_FUNCTION_TOKENS)
        ]

        evidence: List[str] = []
        for finding in findings['call']:
            evidence.append(
                f"Hardcoded {finding['opcode']} target at position {finding['position']} "
                f"(address: {finding['address']})"
            )
        for finding in findings['selfdestruct']:
            evidence.append(
                f"SELFDESTRUCT to hardcoded beneficiary at position {finding['position']} "
                f"(address: {finding['address']})"
            )
        for finding in findings['suspicious_address']:
            evidence.append(
                f"Suspicious address literal at position {finding['position']} "
                f"(address: {finding['address']})"
            )
        for f in redirect_setters:
            evidence.append(f"Function '{f.name}' can redirect funds to an arbitrary address")

        weights = HIDDEN_REDIRECTION_WEIGHTS
        bytecode_score = (
            weights['call'] * len(findings['call'])
            + weights['selfdestruct'] * len(findings['selfdestruct'])
            + weights['suspicious_address'] * len(findings['suspicious_address'])
        )
        signal_types = sum(
            1 for key in ('call', 'selfdestruct', 'suspicious_address') if findings[key]
        )
        if signal_types > 1:
            bytecode_score *= MULTI_SIGNAL_MULTIPLIER

        abi_score = 2 * weights['redirect_setter'] * len(redirect_setters) / max(1, len(functions))
        confidence = min(1.0, bytecode_score + abi_score)
        severity = self._severity(confidence, findings, len(redirect_setters))

        metadata = {
            'bytecode_length': len(code),
            'total_functions': len(functions),
            'hardcoded_call_count': len(findings['call']),
            'selfdestruct_count': len(findings['selfdestruct']),
            'suspicious_address_count': len(findings['suspicious_address']),
            'redirect_setter_count': len(redirect_setters),
            'jumpi_after_push_count': findings['jumpi_count'],
        }
        return self._build_result(confidence, evidence, severity, metadata)

    @staticmethod
    def _scan_bytecode(code: bytes) -> Dict[str, Any]:
        instructions = disassemble(code)
        findings: Dict[str, Any] = {'call': [], 'selfdestruct': [], 'suspicious_address': [], 'jumpi_count': 0}
        seen_literals = set()

        for index, instruction in enumerate(instructions):
            opcode = instruction.opcode

            if instruction.is_push20:
                address = instruction.pushed_address
                if address not in seen_literals and any(m in address for m in SUSPICIOUS_ADDRESS_MARKERS):
                    seen_literals.add(address)
                    findings['suspicious_address'].append(
                        {'position': instruction.position, 'address': address}
                    )

            elif opcode in CALL_OPCODES or opcode == OPCODE_SELFDESTRUCT:
                push = find_preceding_push20(instructions, index, CALL_LOOKBACK_INSTRUCTIONS)
                if push is None:
                    continue
                key = 'selfdestruct' if opcode == OPCODE_SELFDESTRUCT else 'call'
                findings[key].append({
                    'position': instruction.position,
                    'opcode': CALL_OPCODES.get(opcode, 'SELFDESTRUCT'),
                    'address': push.pushed_address,
                })

            # Every compiled dispatcher pairs PUSH with JUMPI; counted, not scored
            elif opcode == OPCODE_JUMPI and index > 0 and instructions[index - 1].is_push:
                findings['jumpi_count'] += 1

        return findings

    @staticmethod
    def _severity(confidence: float, findings: Dict[str, Any], setter_count: int) -> Severity:
        if confidence >= 0.6 and findings['selfdestruct']:
            return Severity.CRITICAL
        if confidence >= 0.5 and (len(findings['call']) > 2 or setter_count >= 2):
            return Severity.HIGH
        if confidence >= 0.4:
            return Severity.MEDIUM
        return Severity.LOW
