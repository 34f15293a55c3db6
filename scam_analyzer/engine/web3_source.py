"""
Web3 bytecode source.

Default BytecodeSource implementation: fetches deployed runtime code over
JSON-RPC with web3's async provider. Provider failures are classified into
AnalysisError messages (rate limit, timeout, network) for the caller.

File: scam_analyzer/engine/web3_source.py
"""

import asyncio
import logging
from typing import Optional, Protocol, Union, runtime_checkable

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import Web3Exception

from ..shared.exceptions import AnalysisError, ValidationError
from ..shared.validation import is_http_url, to_checksum

logger = logging.getLogger(__name__)


@runtime_checkable
class BytecodeSource(Protocol):
    """Anything able to fetch runtime bytecode for an address."""

    async def fetch_code(self, address: str) -> Union[str, bytes]:
        ...


def classify_provider_error(address: str, error: BaseException) -> AnalysisError:
    """Map a provider exception to an AnalysisError with a readable message."""
    text = str(error).lower()
    if isinstance(error, asyncio.TimeoutError) or 'timeout' in text or 'timed out' in text:
        reason = "Request timeout"
    elif '429' in text or 'rate limit' in text or 'too many requests' in text:
        reason = "Rate limit exceeded"
    elif isinstance(error, (ConnectionError, OSError)) or 'connect' in text or 'network' in text:
        reason = "Network error"
    else:
        reason = "Provider error"
    return AnalysisError(f"{reason} while fetching bytecode for {address}: {error}", cause=error)


class Web3BytecodeSource:
    """Bytecode fetcher backed by an HTTP JSON-RPC endpoint."""

    def __init__(self, rpc_url: str, w3: Optional[AsyncWeb3] = None):
        """
        Args:
            rpc_url: HTTP(S) JSON-RPC endpoint
            w3: Pre-built AsyncWeb3 instance, mainly for tests

        Raises:
            ValidationError: If rpc_url is not an http(s) URL
        """
        if w3 is None and not is_http_url(rpc_url):
            raise ValidationError(f"Invalid RPC URL: {rpc_url}", field="rpc_url")

        self.rpc_url = rpc_url
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.logger = logger.getChild(self.__class__.__name__)
        self.request_count = 0
        self.failed_requests = 0

    async def fetch_code(self, address: str) -> str:
        """
        Fetch runtime bytecode.

        Returns:
            0x-prefixed hex; '0x' for an externally owned account

        Raises:
            AnalysisError: On any provider failure
        """
        checksum_address = to_checksum(address)
        self.request_count += 1
        try:
            code = await self.w3.eth.get_code(checksum_address)
        except (Web3Exception, asyncio.TimeoutError, OSError, ValueError) as e:
            self.failed_requests += 1
            error = classify_provider_error(address, e)
            self.logger.warning(error.message)
            raise error from e

        return '0x' + bytes(code).hex()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(rpc_url={self.rpc_url!r})"
