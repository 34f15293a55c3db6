"""
Shared fixtures for the scam analyzer test suite.

File: tests/conftest.py
"""

from unittest.mock import AsyncMock, Mock

import pytest

from factories import PLAIN_BYTECODE, erc20_abi
from scam_analyzer.settings import AnalysisSettings


@pytest.fixture
def legit_erc20_abi():
    """Standard, well-formed ERC-20 interface."""
    return erc20_abi()


@pytest.fixture
def settings():
    """Settings without an RPC endpoint."""
    return AnalysisSettings()


@pytest.fixture
def mock_source():
    """Bytecode source returning plain contract code."""
    source = Mock()
    source.fetch_code = AsyncMock(return_value=PLAIN_BYTECODE)
    return source


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
