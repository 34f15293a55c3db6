"""
Proxy contract classification from raw bytecode.

Matches bytecode against fixed delegate-call proxy templates (EIP-1167
minimal proxy, EIP-1967/EIP-1822 storage slots, legacy forwarders). Pure
function over bytes already retrieved; no network access.

File: scam_analyzer/engine/proxy.py
"""

import logging
from typing import Mapping, Optional, Union

from ..shared.constants import PROXY_TEMPLATES
from ..shared.schemas import ProxyClassification
from ..shared.validation import bytecode_to_bytes

logger = logging.getLogger(__name__)

Bytecode = Union[str, bytes, bytearray]


def bytecode_size(bytecode: Optional[Bytecode]) -> int:
    """Size of the code in bytes."""
    return len(bytecode_to_bytes(bytecode))


class ProxyClassifier:
    """Classifies bytecode as EOA, plain contract or proxy."""

    def __init__(self, templates: Optional[Mapping[str, str]] = None):
        source = PROXY_TEMPLATES if templates is None else templates
        self.templates = {name: bytes.fromhex(pattern) for name, pattern in source.items()}

    def classify(self, bytecode: Optional[Bytecode]) -> ProxyClassification:
        """
        Classify bytecode.

        Args:
            bytecode: Hex string ('0x...') or raw bytes; empty means an EOA

        Returns:
            ProxyClassification with contract/proxy flags and size in bytes

        Raises:
            BytecodeError: If a hex string is malformed
        """
        code = bytecode_to_bytes(bytecode)
        if not code:
            return ProxyClassification(is_contract=False, is_proxy=False, size=0)

        # Byte-level containment keeps matches aligned to whole bytes
        matched = tuple(name for name, template in self.templates.items() if template in code)
        if matched:
            logger.debug(f"Proxy templates matched: {', '.join(matched)}")

        return ProxyClassification(
            is_contract=True,
            is_proxy=bool(matched),
            size=len(code),
            matched_templates=matched,
        )
