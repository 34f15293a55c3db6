"""
Input validation at the analyzer boundary.

Address normalization (the common input gate for every component), ABI and
bytecode parsing, and small sanitization helpers. Raising forms are used by
fail-fast callers; the parse_* forms return a tagged ValidationResult.

File: scam_analyzer/shared/validation.py
"""

import ipaddress
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Generic, Optional, Tuple, TypeVar, Union
from urllib.parse import urlparse

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address
from pydantic import ValidationError as PydanticValidationError

from .constants import (
    ADDRESS_PATTERN,
    BYTECODE_PATTERN,
    INVALID_ADDRESS_MESSAGE,
    MAX_BYTECODE_HEX_LENGTH,
    MAX_CONTRACT_NAME_LENGTH,
)
from .exceptions import BytecodeError, ScamAnalyzerError, ValidationError
from .schemas import ABIEntry

logger = logging.getLogger(__name__)

T = TypeVar('T')

_ADDRESS_RE = re.compile(ADDRESS_PATTERN)
_BYTECODE_RE = re.compile(BYTECODE_PATTERN)
_UNSAFE_FRAGMENTS = (
    re.compile(r'[<>]'),
    re.compile(r'javascript:', re.IGNORECASE),
    re.compile(r'on\w+\s*=', re.IGNORECASE),
)
_BLOCKED_HOSTS = ('localhost', '0.0.0.0')


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    """Tagged success/failure returned by boundary parsers."""
    ok: bool
    value: Optional[T] = None
    error: Optional[ScamAnalyzerError] = None

    @classmethod
    def success(cls, value: T) -> 'ValidationResult[T]':
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ScamAnalyzerError) -> 'ValidationResult[T]':
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        """Return the value or raise the captured error."""
        if not self.ok:
            raise self.error
        return self.value


# =============================================================================
# ADDRESSES
# =============================================================================

def normalize_address(raw: Any) -> str:
    """
    Validate and normalize an Ethereum contract address.

    Args:
        raw: Candidate address string

    Returns:
        Lowercase 0x-prefixed address

    Raises:
        ValidationError: If raw is not a 0x-prefixed 40 hex digit string
    """
    if not isinstance(raw, str) or not _ADDRESS_RE.fullmatch(raw):
        raise ValidationError(INVALID_ADDRESS_MESSAGE, field="address", value=raw)
    return raw.lower()


def parse_address(raw: Any) -> ValidationResult[str]:
    """Non-raising form of normalize_address."""
    try:
        return ValidationResult.success(normalize_address(raw))
    except ValidationError as e:
        return ValidationResult.failure(e)


def is_valid_address(raw: Any) -> bool:
    return parse_address(raw).ok


def to_checksum(address: str) -> ChecksumAddress:
    """EIP-55 checksum form of a validated address, for RPC calls and display."""
    return to_checksum_address(normalize_address(address))


# =============================================================================
# ABI & BYTECODE
# =============================================================================

def parse_abi(raw: Union[str, bytes, list, tuple, None]) -> ValidationResult[Tuple[ABIEntry, ...]]:
    """
    Parse a contract ABI from JSON text or decoded JSON.

    Args:
        raw: JSON string/bytes or a sequence of ABI entry dicts

    Returns:
        ValidationResult holding a tuple of ABIEntry on success
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            return ValidationResult.failure(
                ValidationError(f"ABI is not valid JSON: {e.msg}", field="abi")
            )

    if not isinstance(raw, (list, tuple)):
        return ValidationResult.failure(
            ValidationError("ABI must be a JSON array of entries", field="abi", value=raw)
        )

    entries = []
    for index, item in enumerate(raw):
        if isinstance(item, ABIEntry):
            entries.append(item)
            continue
        try:
            entries.append(ABIEntry.model_validate(item))
        except PydanticValidationError as e:
            first = e.errors()[0]
            location = '.'.join(str(part) for part in first.get('loc', ()))
            message = f"Invalid ABI entry at index {index}: {first.get('msg')}"
            if location:
                message += f" ({location})"
            return ValidationResult.failure(ValidationError(message, field="abi", value=item))

    return ValidationResult.success(tuple(entries))


def validate_bytecode(raw: Union[str, bytes, bytearray]) -> str:
    """
    Normalize bytecode to lowercase 0x-prefixed hex.

    Raises:
        BytecodeError: If the value is not even-length hex or is oversized
    """
    if isinstance(raw, (bytes, bytearray)):
        code = '0x' + bytes(raw).hex()
    elif isinstance(raw, str):
        code = raw if raw.startswith('0x') else f'0x{raw}'
        if not _BYTECODE_RE.fullmatch(code):
            raise BytecodeError("Invalid bytecode format")
    else:
        raise BytecodeError(f"Unsupported bytecode type: {type(raw).__name__}")

    if len(code) > MAX_BYTECODE_HEX_LENGTH:
        raise BytecodeError(f"Bytecode exceeds {MAX_BYTECODE_HEX_LENGTH} hex characters")
    if len(code) % 2:
        raise BytecodeError("Bytecode has an odd number of hex digits")
    return code.lower()


def bytecode_to_bytes(bytecode: Union[str, bytes, bytearray, None]) -> bytes:
    """Raw bytes for a hex or bytes bytecode value; None becomes empty."""
    if bytecode is None:
        return b''
    if isinstance(bytecode, (bytes, bytearray)):
        return bytes(bytecode)
    return bytes.fromhex(validate_bytecode(bytecode)[2:])


# =============================================================================
# TEXT & URLS
# =============================================================================

def validate_contract_name(name: Any) -> str:
    """Return a trimmed contract name or raise ValidationError."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Contract name is required", field="contract_name", value=name)
    name = name.strip()
    if len(name) > MAX_CONTRACT_NAME_LENGTH:
        raise ValidationError(
            f"Contract name must be at most {MAX_CONTRACT_NAME_LENGTH} characters",
            field="contract_name",
            value=name,
        )
    return name


def sanitize_input(text: str) -> str:
    """Strip markup and script fragments from free text."""
    for pattern in _UNSAFE_FRAGMENTS:
        text = pattern.sub('', text)
    return text.strip()


def is_http_url(url: Any) -> bool:
    """True for http(s) URLs with a host."""
    if not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url)
        return parsed.scheme in ('http', 'https') and bool(parsed.hostname)
    except ValueError:
        return False


def is_safe_url(url: str) -> bool:
    """True for http(s) URLs that do not point at loopback or private hosts."""
    if not is_http_url(url):
        return False

    host = urlparse(url).hostname.lower()
    if host in _BLOCKED_HOSTS:
        return False

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return True
    return not (ip.is_private or ip.is_loopback or ip.is_unspecified)
