"""
Analysis engine for contract scam detection.

Bytecode retrieval and caching, proxy classification and the orchestrator
that runs the full analysis pipeline.
"""

from .bytecode_cache import BatchFetchResult, BytecodeCache, CacheStatistics
from .orchestrator import AnalysisOrchestrator
from .proxy import ProxyClassifier, bytecode_size
from .web3_source import BytecodeSource, Web3BytecodeSource

__all__ = [
    'AnalysisOrchestrator',
    'BytecodeCache',
    'BatchFetchResult',
    'CacheStatistics',
    'ProxyClassifier',
    'bytecode_size',
    'BytecodeSource',
    'Web3BytecodeSource',
]
