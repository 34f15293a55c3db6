"""
Tests for the non-functional transfer, deceptive events and hidden
redirection detectors, plus the detection entry points.

File: tests/test_patterns.py

Run with: python -m pytest tests/test_patterns.py -v
"""

from unittest.mock import patch

import pytest

from factories import PLAIN_BYTECODE, erc20_abi, event, function, view
from scam_analyzer.risk.patterns import (
    DETECTOR_REGISTRY,
    create_all_detectors,
    create_detector,
    get_available_detectors,
)
from scam_analyzer.risk.patterns.bytecode_scan import disassemble, find_preceding_push20
from scam_analyzer.risk.patterns.deceptive_events import DeceptiveEventsDetector, names_related
from scam_analyzer.risk.patterns.detection import (
    detect_all_patterns,
    detect_pattern,
    get_detector_info,
    validate_detection_input,
)
from scam_analyzer.risk.patterns.fake_balance import FakeBalanceDetector
from scam_analyzer.risk.patterns.hidden_redirection import HiddenRedirectionDetector
from scam_analyzer.risk.patterns.non_functional_transfer import (
    NonFunctionalTransferDetector,
    transfer_token,
)
from scam_analyzer.shared.exceptions import ValidationError
from scam_analyzer.shared.schemas import ScamCategory, Severity

SELFDESTRUCT_TO_LITERAL = '0x73deadbeef' + '00' * 16 + 'ff'
HARDCODED_CALL = '0x73' + '11' * 20 + '5af1'
LOG_WITHOUT_SSTORE = '0x605560006000a1'


# =============================================================================
# BYTECODE SCANNING
# =============================================================================

class TestBytecodeScan:

    def test_push_immediates_are_skipped(self):
        instructions = disassemble(bytes.fromhex(LOG_WITHOUT_SSTORE[2:]))
        assert [i.opcode for i in instructions] == [0x60, 0x60, 0x60, 0xa1]
        assert instructions[0].immediate == b'\x55'

    def test_truncated_push(self):
        instructions = disassemble(b'\x73\x01\x02')
        assert len(instructions) == 1
        assert not instructions[0].is_push20

    def test_lookback_window(self):
        code = bytes.fromhex('73' + '22' * 20 + '5b' * 8 + 'f1')
        instructions = disassemble(code)
        assert find_preceding_push20(instructions, len(instructions) - 1, 8) is None
        assert find_preceding_push20(instructions, len(instructions) - 1, 9) is not None


# =============================================================================
# NON-FUNCTIONAL TRANSFER
# =============================================================================

class TestNonFunctionalTransfer:

    @pytest.fixture
    def detector(self):
        return NonFunctionalTransferDetector()

    def test_clean_erc20(self, detector, legit_erc20_abi):
        result = detector.detect(legit_erc20_abi, PLAIN_BYTECODE)
        assert not result.detected
        assert result.confidence == 0.0

    def test_view_transfer_is_critical(self, detector):
        abi = [
            view('transfer', ['address', 'uint256'], ['bool']),
            view('balanceOf', ['address']),
            event('Transfer', ['address', 'address', 'uint256']),
        ]
        result = detector.detect(abi)

        assert result.detected
        assert result.confidence == pytest.approx(0.8)
        assert result.severity == Severity.CRITICAL
        assert result.metadata['view_transfer_count'] == 1
        assert result.metadata['orphaned_event_count'] == 1
        assert "Transfer function 'transfer' is declared view and cannot change balances" in result.evidence

    def test_transfer_without_event(self, detector):
        abi = [function('transfer', ['address', 'uint256'], ['bool']), view('balanceOf', ['address'])]
        result = detector.detect(abi)

        assert result.detected
        assert result.confidence == pytest.approx(0.4)
        assert result.severity == Severity.MEDIUM
        assert "Transfer function 'transfer' has no corresponding transfer event" in result.evidence

    def test_storage_less_bytecode(self, detector):
        abi = [
            function('transfer', ['address', 'uint256'], ['bool']),
            view('balanceOf', ['address']),
            event('Transfer', ['address', 'address', 'uint256']),
        ]
        result = detector.detect(abi, LOG_WITHOUT_SSTORE)

        assert result.detected
        assert result.confidence == pytest.approx(0.4)
        assert result.metadata['storage_less_bytecode'] is True
        assert any('no SSTORE' in e for e in result.evidence)

    def test_bytecode_with_sstore_is_not_storage_less(self, detector):
        abi = [function('transfer', ['address', 'uint256'], ['bool']), event('Transfer', ['address', 'address', 'uint256'])]
        result = detector.detect(abi, '0x6001600055600060006000a1')
        assert result.metadata['storage_less_bytecode'] is False
        assert not result.detected

    def test_ownership_transfer_is_not_a_value_transfer(self, detector):
        assert transfer_token('transferOwnership') is None
        assert transfer_token('safeTransferFrom') == 'safetransferfrom'
        result = detector.detect([function('transferOwnership', ['address'])])
        assert not result.detected

    def test_placeholder_naming_is_evidence_only(self, detector):
        abi = [
            function('transferFake', ['address', 'uint256'], ['bool']),
            event('Transfer', ['address', 'address', 'uint256']),
        ]
        result = detector.detect(abi)
        assert any('placeholder naming' in e for e in result.evidence)
        assert result.confidence == 0.0
        assert not result.detected

    def test_no_functions(self, detector):
        result = detector.detect([event('Transfer', ['address', 'address', 'uint256'])])
        assert not result.detected
        assert result.metadata['reason'] == 'no_functions'


# =============================================================================
# DECEPTIVE EVENTS
# =============================================================================

class TestDeceptiveEvents:

    @pytest.fixture
    def detector(self):
        return DeceptiveEventsDetector()

    def test_clean_erc20(self, detector, legit_erc20_abi):
        result = detector.detect(legit_erc20_abi)
        assert not result.detected
        assert result.evidence == ()

    def test_reward_events_without_emitters(self, detector):
        abi = [
            event('Claimed', ['address', 'uint256']),
            event('Rewarded', ['address', 'uint256']),
            view('balanceOf', ['address']),
        ]
        result = detector.detect(abi)

        assert result.detected
        assert result.confidence == 1.0
        assert result.severity == Severity.HIGH
        assert result.metadata['deceptive_event_count'] == 2

    def test_silent_state_changing_function(self, detector):
        abi = [function('claim'), event('Paused', ['address'])]
        result = detector.detect(abi)

        assert result.detected
        assert result.confidence == 1.0
        assert result.severity == Severity.MEDIUM
        assert result.evidence == ("Function 'claim' modifies state but doesn't emit expected events",)

    def test_misordered_transfer_event(self, detector):
        abi = [
            function('transfer', ['address', 'uint256'], ['bool']),
            event('Transfer', ['uint256', 'address', 'address']),
        ]
        result = detector.detect(abi)

        assert result.detected
        assert result.metadata['misordered_event_count'] == 1
        assert result.severity == Severity.MEDIUM

    def test_no_events(self, detector):
        result = detector.detect([function('claim')])
        assert not result.detected
        assert result.metadata['reason'] == 'no_events'

    def test_names_related(self):
        assert names_related('Approval', 'approve')
        assert names_related('Transfer', 'transferFrom')
        assert names_related('Claimed', 'claim')
        assert not names_related('Transfer', 'claim')
        assert not names_related('Ab', 'ab')


# =============================================================================
# HIDDEN REDIRECTION
# =============================================================================

class TestHiddenRedirection:

    @pytest.fixture
    def detector(self):
        return HiddenRedirectionDetector()

    def test_selfdestruct_to_suspicious_literal(self, detector):
        result = detector.detect([], SELFDESTRUCT_TO_LITERAL)

        assert result.detected
        assert result.confidence == pytest.approx(0.75)
        assert result.severity == Severity.CRITICAL
        assert result.metadata['selfdestruct_count'] == 1
        assert result.metadata['suspicious_address_count'] == 1

    def test_hardcoded_call(self, detector):
        result = detector.detect(None, HARDCODED_CALL)

        assert result.detected
        assert result.confidence == pytest.approx(0.3)
        assert result.severity == Severity.LOW
        assert result.evidence == (
            f"Hardcoded CALL target at position 22 (address: 0x{'11' * 20})",
        )

    def test_plain_bytecode(self, detector, legit_erc20_abi):
        result = detector.detect(legit_erc20_abi, PLAIN_BYTECODE)

        assert not result.detected
        assert result.confidence == 0.0
        assert result.metadata['jumpi_after_push_count'] == 1

    def test_empty_input(self, detector):
        result = detector.detect([], '0x')
        assert not result.detected
        assert result.metadata['reason'] == 'empty_bytecode'

    def test_redirect_setters(self, detector):
        abi = [
            function('setFeeReceiver', ['address']),
            function('setTreasury', ['address']),
            view('balanceOf', ['address']),
        ]
        result = detector.detect(abi)

        assert result.detected
        assert result.confidence == pytest.approx(0.4 * 2 / 3)
        assert result.metadata['redirect_setter_count'] == 2

    def test_setter_without_address_is_ignored(self, detector):
        result = detector.detect([function('setTreasury', ['uint256'])])
        assert not result.detected


# =============================================================================
# FACTORY & ENTRY POINTS
# =============================================================================

class TestFactory:

    def test_registry_covers_every_category(self):
        assert set(DETECTOR_REGISTRY) == set(ScamCategory)
        assert get_available_detectors() == list(DETECTOR_REGISTRY)

    @pytest.mark.parametrize('category, expected', [
        (ScamCategory.FAKE_BALANCE, FakeBalanceDetector),
        ('hidden-redirection', HiddenRedirectionDetector),
        (ScamCategory.NON_FUNCTIONAL_TRANSFER, NonFunctionalTransferDetector),
        ('deceptive-events', DeceptiveEventsDetector),
    ])
    def test_create_detector(self, category, expected):
        detector = create_detector(category)
        assert isinstance(detector, expected)
        assert detector.get_category() == ScamCategory(category)

    def test_unknown_category(self):
        with pytest.raises(ValidationError):
            create_detector('rug-pull')

    def test_create_all(self):
        detectors = create_all_detectors()
        assert list(detectors) == list(ScamCategory)


class TestDetectAll:

    def test_clean_contract(self, legit_erc20_abi):
        summary = detect_all_patterns(legit_erc20_abi, PLAIN_BYTECODE)

        assert not summary.overall_detected
        assert summary.overall_risk_score == 0
        assert summary.detected_patterns == []
        assert summary.summary == 'No deceptive patterns detected across 4 detector(s)'
        assert summary.metadata['input_type'] == 'abi+bytecode'

    def test_multiple_patterns_raise_severity(self):
        abi = [
            view('balanceOf', ['address'], ['bool']),
            event('Claimed', ['address', 'uint256']),
        ]
        summary = detect_all_patterns(abi, SELFDESTRUCT_TO_LITERAL)

        assert summary.overall_detected
        assert ScamCategory.HIDDEN_REDIRECTION in summary.detected_patterns
        assert ScamCategory.FAKE_BALANCE in summary.detected_patterns
        assert summary.overall_severity == Severity.CRITICAL
        assert 0 < summary.overall_risk_score <= 100

    def test_include_and_exclude(self, legit_erc20_abi):
        summary = detect_all_patterns(
            legit_erc20_abi,
            include=['fake-balance', 'deceptive-events'],
            exclude=[ScamCategory.DECEPTIVE_EVENTS],
        )
        assert list(summary.pattern_results) == [ScamCategory.FAKE_BALANCE]

    def test_failing_detector_is_isolated(self, legit_erc20_abi):
        with patch.object(FakeBalanceDetector, 'detect', side_effect=RuntimeError('boom')):
            summary = detect_all_patterns(legit_erc20_abi, PLAIN_BYTECODE)

        failed = summary.pattern_results[ScamCategory.FAKE_BALANCE]
        assert not failed.detected
        assert failed.metadata['error'] == 'boom'
        assert len(summary.pattern_results) == 4

    def test_detector_order_does_not_matter(self):
        abi = erc20_abi() + [event('Claimed', ['address', 'uint256'])]
        forward = detect_all_patterns(abi, HARDCODED_CALL)
        backward = detect_all_patterns(abi, HARDCODED_CALL, include=list(reversed(list(ScamCategory))))

        for category in ScamCategory:
            assert forward.pattern_results[category] == backward.pattern_results[category]

    def test_detect_pattern(self):
        result = detect_pattern('fake-balance', [view('balanceOf', ['address'], ['bool'])])
        assert result.detected


class TestInputValidation:

    def test_requires_some_input(self):
        result = validate_detection_input(None, None)
        assert not result.ok
        assert result.error.field == 'input'

    def test_rejects_bad_bytecode(self, legit_erc20_abi):
        result = validate_detection_input(legit_erc20_abi, '0xzz')
        assert not result.ok
        assert result.error.field == 'bytecode'

    def test_accepts_valid_input(self, legit_erc20_abi):
        assert validate_detection_input(legit_erc20_abi, PLAIN_BYTECODE).ok

    def test_detector_info(self):
        info = get_detector_info()
        assert set(info) == {c.value for c in ScamCategory}
        assert info['fake-balance']['name'] == 'Fake Balance'
