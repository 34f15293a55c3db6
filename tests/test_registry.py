"""
Tests for the threat registry.

File: tests/test_registry.py
"""

import pytest

from factories import CLEAN_ADDRESS, KNOWN_MALICIOUS
from scam_analyzer.risk.registry import ThreatRegistry
from scam_analyzer.shared.constants import KNOWN_MALICIOUS_ADDRESSES
from scam_analyzer.shared.exceptions import SecurityError, ValidationError
from scam_analyzer.shared.schemas import ScamCategory, WarningLevel


@pytest.fixture
def registry():
    return ThreatRegistry()


class TestThreatRegistry:

    def test_seeded_with_seven_addresses(self, registry):
        assert len(registry) == 7
        for address in KNOWN_MALICIOUS_ADDRESSES:
            assert registry.is_known(address)

    def test_lookup_is_case_insensitive(self, registry):
        assert registry.is_known(KNOWN_MALICIOUS.upper().replace('0X', '0x'))
        assert KNOWN_MALICIOUS in registry

    def test_unknown_address(self, registry):
        assert not registry.is_known(CLEAN_ADDRESS)
        assert not registry.is_known('garbage')
        assert not registry.is_known(None)

    def test_warning_for_known_address(self, registry):
        warning = registry.warning_for(KNOWN_MALICIOUS.upper().replace('0X', '0x'))

        assert warning.level == WarningLevel.CRITICAL
        assert warning.category == ScamCategory.DECEPTIVE_EVENTS
        assert warning.address == KNOWN_MALICIOUS
        assert 'known to be malicious' in warning.message
        assert KNOWN_MALICIOUS in warning.message

    def test_warning_for_unknown_address_is_policy_violation(self, registry):
        with pytest.raises(SecurityError) as exc_info:
            registry.warning_for(CLEAN_ADDRESS)
        assert exc_info.value.severity == 'high'

    def test_addresses_are_immutable(self, registry):
        assert isinstance(registry.addresses, frozenset)

    def test_with_extras(self):
        registry = ThreatRegistry.with_extras([CLEAN_ADDRESS.upper().replace('0X', '0x')])
        assert len(registry) == 8
        assert registry.is_known(CLEAN_ADDRESS)
        assert registry.is_known(KNOWN_MALICIOUS)

    def test_rejects_malformed_seed(self):
        with pytest.raises(ValidationError):
            ThreatRegistry(['0x1234'])
