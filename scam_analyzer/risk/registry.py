"""
Threat registry of known-malicious contract addresses.

An immutable set of normalized addresses seeded once at startup. Lookups are
O(1) and case-insensitive; matches produce the canonical critical warning.

File: scam_analyzer/risk/registry.py
"""

import logging
from typing import FrozenSet, Iterable, Optional

from ..shared.constants import KNOWN_MALICIOUS_ADDRESSES, MALICIOUS_ADDRESS_WARNING
from ..shared.exceptions import SecurityError
from ..shared.schemas import ScamCategory, SecurityWarning, WarningLevel
from ..shared.validation import normalize_address

logger = logging.getLogger(__name__)


class ThreatRegistry:
    """Read-only lookup of addresses known to be malicious."""

    def __init__(self, addresses: Optional[Iterable[str]] = None):
        """
        Build the registry.

        Args:
            addresses: Seed addresses; defaults to the built-in list

        Raises:
            ValidationError: If any seed address is malformed
        """
        seed = KNOWN_MALICIOUS_ADDRESSES if addresses is None else addresses
        self._addresses: FrozenSet[str] = frozenset(normalize_address(a) for a in seed)
        logger.debug(f"Threat registry loaded with {len(self._addresses)} addresses")

    @classmethod
    def with_extras(cls, extra_addresses: Iterable[str]) -> 'ThreatRegistry':
        """Registry containing the built-in list plus operator-supplied addresses."""
        return cls(KNOWN_MALICIOUS_ADDRESSES | frozenset(extra_addresses))

    @property
    def addresses(self) -> FrozenSet[str]:
        return self._addresses

    def is_known(self, address: str) -> bool:
        """Check whether an address is listed. Malformed input is never listed."""
        if not isinstance(address, str):
            return False
        return address.lower() in self._addresses

    def warning_for(self, address: str) -> SecurityWarning:
        """
        Build the canonical warning for a listed address.

        Raises:
            SecurityError: If the address is not in the registry
        """
        if not self.is_known(address):
            raise SecurityError(
                f"No threat registry entry for address {address}",
                severity="high",
            )

        normalized = address.lower()
        return SecurityWarning(
            level=WarningLevel.CRITICAL,
            message=MALICIOUS_ADDRESS_WARNING.format(address=normalized),
            address=normalized,
            category=ScamCategory.DECEPTIVE_EVENTS,
        )

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and self.is_known(address)

    def __len__(self) -> int:
        return len(self._addresses)


__all__ = ['ThreatRegistry']
