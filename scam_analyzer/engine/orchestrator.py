"""
Analysis Orchestrator - entry point for contract scam analysis

Sequences address validation, threat registry lookup, bytecode retrieval and
proxy classification, pattern detection and risk aggregation for one or many
contract addresses, and assembles the externally visible analysis record.

Only address validation is fatal. Every later stage is optional: its
failure is logged, recorded in the result metadata and the remaining stages
still run on whatever input is available.

File: scam_analyzer/engine/orchestrator.py
"""

import asyncio
import inspect
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .bytecode_cache import BatchFetchResult, BytecodeCache, FetchCode
from .proxy import ProxyClassifier
from .web3_source import BytecodeSource, Web3BytecodeSource
from ..risk.patterns import BaseDetector, create_all_detectors, get_available_detectors
from ..risk.patterns.detection import run_detectors
from ..risk.registry import ThreatRegistry
from ..risk.scoring import RiskAggregator
from ..settings import AnalysisSettings
from ..shared.constants import ANALYSIS_VERSION, EDUCATIONAL_WARNING, MAX_SOURCE_CACHES
from ..shared.exceptions import ScamAnalyzerError, ValidationError
from ..shared.schemas import (
    AdvancedContractAnalysis,
    AnalysisStage,
    AnalysisStatus,
    PatternResult,
    ProxyClassification,
    QuickCheckResult,
    RiskAssessment,
    RiskLevel,
    ScamCategory,
    SecurityWarning,
    WarningLevel,
)
from ..shared.validation import (
    is_valid_address,
    normalize_address,
    parse_abi,
    parse_address,
    sanitize_input,
    validate_contract_name,
)

logger = logging.getLogger(__name__)

FAILED_RISK_LEVEL = RiskLevel.MEDIUM


def resolve_fetcher(source: Any) -> FetchCode:
    """Accept a BytecodeSource object or a bare async callable."""
    if isinstance(source, BytecodeSource):
        return source.fetch_code
    if callable(source):
        return source
    raise ValidationError(
        f"Bytecode source must provide fetch_code or be callable, got {type(source).__name__}",
        field="bytecode_source",
    )


def source_key(source: Any) -> Tuple[Tuple[int, Any], Any]:
    """
    Identity key for a bytecode source, plus the object that keeps it alive.

    A bound method is a new object on every attribute access, so it is keyed
    by its instance and function instead of its own id.
    """
    if inspect.ismethod(source):
        return (id(source.__self__), source.__func__), source.__self__
    return (id(source), None), source


class _StageLog:
    """Per-request record of completed and failed stages."""

    def __init__(self):
        self.completed: List[AnalysisStage] = [AnalysisStage.START]
        self.errors: Dict[str, str] = {}

    def done(self, stage: AnalysisStage) -> None:
        self.completed.append(stage)

    def failed(self, stage: str, error: BaseException) -> str:
        message = error.message if isinstance(error, ScamAnalyzerError) else str(error)
        self.errors[stage] = message
        return message


class AnalysisOrchestrator:
    """
    Facade running the full analysis pipeline.

    Features:
    - Registry, bytecode, proxy, pattern and scoring stages with local failure capture
    - Shared bytecode cache per source with single-flight fetches
    - Batch analysis bounded by the configured concurrency
    - Synchronous quick check for address validity and registry membership
    """

    def __init__(
        self,
        settings: Optional[AnalysisSettings] = None,
        registry: Optional[ThreatRegistry] = None,
        bytecode_source: Any = None,
        classifier: Optional[ProxyClassifier] = None,
        aggregator: Optional[RiskAggregator] = None,
        detectors: Optional[Mapping[ScamCategory, BaseDetector]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the orchestrator.

        Args:
            settings: Plain settings object; defaults to AnalysisSettings()
            registry: Threat registry; defaults to built-in list plus configured extras
            bytecode_source: Default BytecodeSource or async callable; built from
                settings.rpc_url when omitted
            classifier: Proxy classifier
            aggregator: Risk aggregator
            detectors: Detector instances keyed by category
            clock: Time source for cache expiry
        """
        self.settings = (settings or AnalysisSettings()).validate()
        self.registry = registry or ThreatRegistry.with_extras(self.settings.extra_malicious_addresses)
        self.classifier = classifier or ProxyClassifier()
        self.aggregator = aggregator or RiskAggregator()
        self.detectors = dict(detectors) if detectors is not None else create_all_detectors()
        self.clock = clock

        if bytecode_source is None and self.settings.rpc_url:
            bytecode_source = Web3BytecodeSource(self.settings.rpc_url)
        self.default_source = bytecode_source

        self._caches: 'OrderedDict[Tuple[int, Any], Tuple[Any, BytecodeCache]]' = OrderedDict()
        self.logger = logger.getChild(self.__class__.__name__)

        self.performance_stats = {
            'total_analyses': 0,
            'failed_analyses': 0,
            'degraded_analyses': 0,
            'batch_fetch_failures': 0,
            'average_analysis_time_ms': 0.0,
        }

        self.logger.info(
            f"Orchestrator initialized: {len(self.detectors)} detectors, "
            f"{len(self.registry)} known malicious addresses, "
            f"bytecode source {'configured' if self.default_source else 'not configured'}"
        )

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def analyze_contract(self, address: str) -> QuickCheckResult:
        """Synchronous check of address validity and registry membership."""
        warnings = [EDUCATIONAL_WARNING] if self.settings.enable_security_warnings else []

        parsed = parse_address(address)
        if not parsed.ok:
            warnings.append(f"Invalid contract address: {parsed.error.message}")
            return QuickCheckResult(
                is_valid=False, is_malicious=False, risk_level=FAILED_RISK_LEVEL, warnings=warnings
            )

        if self.registry.is_known(parsed.value):
            warnings.append(self.registry.warning_for(parsed.value).message)
            return QuickCheckResult(
                is_valid=True, is_malicious=True, risk_level=RiskLevel.CRITICAL, warnings=warnings
            )

        return QuickCheckResult(is_valid=True, is_malicious=False, risk_level=RiskLevel.LOW, warnings=warnings)

    async def analyze_contract_advanced(
        self,
        address: str,
        abi: Any = None,
        bytecode_source: Any = None,
        contract_name: Optional[str] = None,
    ) -> AdvancedContractAnalysis:
        """
        Run the full analysis pipeline for one address.

        Args:
            address: Contract address
            abi: Optional ABI (JSON text or list of entries)
            bytecode_source: Per-call bytecode source overriding the default
            contract_name: Optional display name

        Returns:
            AdvancedContractAnalysis; status 'failed' only for an invalid address
            or an unexpected internal error
        """
        return await self._analyze(address, abi, bytecode_source, contract_name)

    async def _analyze(
        self,
        address: str,
        abi: Any,
        bytecode_source: Any,
        contract_name: Optional[str],
        fetch_error: Optional[ScamAnalyzerError] = None,
    ) -> AdvancedContractAnalysis:
        start_time = time.perf_counter()
        stages = _StageLog()
        warnings: List[SecurityWarning] = []
        if self.settings.enable_security_warnings:
            warnings.append(SecurityWarning(level=WarningLevel.INFO, message=EDUCATIONAL_WARNING))

        try:
            normalized = normalize_address(address)
        except ValidationError as e:
            self.logger.info(f"Rejected invalid address {address!r}")
            return self._failed_analysis(
                address, contract_name, f"Invalid contract address: {e.message}",
                warnings, stages, start_time,
            )
        stages.done(AnalysisStage.ADDRESS_VALIDATED)

        try:
            analysis = await self._run_pipeline(
                normalized, abi, bytecode_source, contract_name, warnings, stages, start_time,
                fetch_error=fetch_error,
            )
        except Exception as e:
            self.logger.error(f"Analysis failed for {normalized}: {e}", exc_info=True)
            return self._failed_analysis(
                normalized, contract_name, f"Analysis failed: {e}", warnings, stages, start_time
            )

        self._update_performance_stats(start_time, failed=False, degraded=bool(stages.errors))
        return analysis

    async def analyze_batch(
        self,
        addresses: Iterable[str],
        abis: Optional[Mapping[str, Any]] = None,
        bytecode_source: Any = None,
    ) -> Dict[str, AdvancedContractAnalysis]:
        """
        Analyze many addresses concurrently, bounded by settings.batch_concurrency.

        Bytecode for every valid address is fetched up front in one cache
        batch. An address whose fetch failed there is analyzed without
        bytecode and is not fetched again.

        Returns:
            Results keyed by the addresses as given
        """
        unique = list(dict.fromkeys(addresses))
        abis = abis or {}
        semaphore = asyncio.Semaphore(self.settings.batch_concurrency)

        self.logger.info(f"Starting batch analysis of {len(unique)} addresses")
        prefetched = await self._prefetch_batch(unique, bytecode_source)

        async def analyze_one(address: str) -> AdvancedContractAnalysis:
            async with semaphore:
                abi = abis.get(address)
                if abi is None and isinstance(address, str):
                    abi = abis.get(address.lower())
                return await self._analyze(
                    address, abi, bytecode_source, None, fetch_error=prefetched.failures.get(address)
                )

        outcomes = await asyncio.gather(*(analyze_one(a) for a in unique), return_exceptions=True)

        results = {}
        for address, outcome in zip(unique, outcomes):
            results[address] = self._safe_extract_result(outcome, address)

        failed = sum(1 for r in results.values() if r.analysis_status == AnalysisStatus.FAILED)
        self.logger.info(
            f"Batch analysis complete: {len(results) - failed} succeeded, {failed} failed, "
            f"{len(prefetched.failures)} bytecode fetches failed"
        )
        return results

    async def _prefetch_batch(self, addresses: List[Any], bytecode_source: Any) -> BatchFetchResult:
        source = bytecode_source if bytecode_source is not None else self.default_source
        valid = [address for address in addresses if is_valid_address(address)]
        if source is None or not valid:
            return BatchFetchResult()

        try:
            prefetched = await self._cache_for(source).get_batch(valid)
        except ScamAnalyzerError as e:
            # Each analysis records the bad source on its own
            self.logger.warning(f"Batch bytecode prefetch skipped: {e.message}")
            return BatchFetchResult()

        self.performance_stats['batch_fetch_failures'] += len(prefetched.failures)
        for address, error in prefetched.failures.items():
            self.logger.warning(f"Batch bytecode fetch failed for {address}: {error.message}")
        return prefetched

    async def preload_bytecode(self, addresses: Iterable[str], bytecode_source: Any = None) -> BatchFetchResult:
        """
        Warm the bytecode cache for a set of addresses.

        Raises:
            ValidationError: If no bytecode source is available
        """
        source = bytecode_source if bytecode_source is not None else self.default_source
        if source is None:
            raise ValidationError("No bytecode source configured", field="bytecode_source")
        return await self._cache_for(source).get_batch(addresses)

    def get_security_status(self) -> Dict[str, Any]:
        return {
            'security_warnings_enabled': self.settings.enable_security_warnings,
            'explicit_consent_required': self.settings.require_explicit_consent,
            'known_malicious_addresses': len(self.registry),
            'detectors': [c.value for c in get_available_detectors()],
            'version': self.get_version(),
        }

    def get_version(self) -> str:
        return ANALYSIS_VERSION

    def get_cache_stats(self) -> Dict[str, Any]:
        return {repr(source): cache.get_stats() for source, cache in self._caches.values()}

    def clear_cache(self) -> None:
        for _, cache in self._caches.values():
            cache.clear()

    # =========================================================================
    # PIPELINE
    # =========================================================================

    async def _run_pipeline(
        self,
        address: str,
        abi: Any,
        bytecode_source: Any,
        contract_name: Optional[str],
        warnings: List[SecurityWarning],
        stages: _StageLog,
        start_time: float,
        fetch_error: Optional[ScamAnalyzerError] = None,
    ) -> AdvancedContractAnalysis:
        vulnerabilities: List[str] = []

        name = None
        if contract_name is not None:
            try:
                name = sanitize_input(validate_contract_name(contract_name))
            except ValidationError as e:
                stages.failed('contract_name', e)

        # Threat registry
        is_known = False
        try:
            is_known = self.registry.is_known(address)
            if is_known:
                warnings.append(self.registry.warning_for(address))
                vulnerabilities.append("Address is listed as a known malicious contract")
                self.logger.warning(f"Known malicious contract analyzed: {address}")
            stages.done(AnalysisStage.THREAT_CHECKED)
        except Exception as e:
            message = stages.failed('threat_check', e)
            self.logger.warning(f"Threat registry check failed for {address}: {message}")

        # Bytecode and proxy classification
        source = bytecode_source if bytecode_source is not None else self.default_source
        bytecode, classification = await self._fetch_and_classify(
            address, source, stages, vulnerabilities, fetch_error
        )
        if classification is not None:
            if not classification.is_contract:
                warnings.append(SecurityWarning(
                    level=WarningLevel.WARNING,
                    message="Address has no deployed code (externally owned account)",
                    address=address,
                ))
            elif classification.is_proxy:
                warnings.append(SecurityWarning(
                    level=WarningLevel.WARNING,
                    message=(
                        "Contract is a delegate-call proxy; behaviour depends on an "
                        f"implementation that may change ({', '.join(classification.matched_templates)})"
                    ),
                    address=address,
                ))

        # Pattern detection
        entries = ()
        if abi is not None:
            parsed = parse_abi(abi)
            if parsed.ok:
                entries = parsed.value
            else:
                message = stages.failed('abi', parsed.error)
                vulnerabilities.append(f"ABI analysis unavailable: {message}")

        has_code = classification is not None and classification.is_contract
        pattern_results: Optional[Dict[ScamCategory, PatternResult]] = None
        if entries or has_code:
            try:
                pattern_results = run_detectors(self.detectors, entries, bytecode if has_code else None)
                stages.done(AnalysisStage.PATTERNS_RUN)
            except Exception as e:
                message = stages.failed('patterns', e)
                self.logger.warning(f"Pattern detection failed for {address}: {message}")

        # Aggregation
        assessment: Optional[RiskAssessment] = None
        if pattern_results:
            try:
                assessment = self.aggregator.aggregate(pattern_results, is_known)
                warnings.extend(self.aggregator.build_warnings(pattern_results, address))
                stages.done(AnalysisStage.AGGREGATED)
            except Exception as e:
                message = stages.failed('aggregation', e)
                self.logger.warning(f"Risk aggregation failed for {address}: {message}")

            for category, result in pattern_results.items():
                if result.detected:
                    vulnerabilities.append(f"{category.value}: {result.description}")

        if assessment is not None:
            risk_level = assessment.risk_level
        else:
            risk_level = RiskLevel.CRITICAL if is_known else RiskLevel.LOW

        stages.done(AnalysisStage.COMPLETE)
        return AdvancedContractAnalysis(
            contract_address=address,
            contract_name=name,
            analysis_status=AnalysisStatus.COMPLETE,
            vulnerabilities=vulnerabilities,
            risk_level=risk_level,
            metadata=self._metadata(bytecode_source, stages, start_time),
            bytecode=bytecode,
            bytecode_size=classification.size if classification else None,
            is_contract=classification.is_contract if classification else None,
            is_proxy_contract=classification.is_proxy if classification else None,
            pattern_results=pattern_results,
            risk_assessment=assessment,
            security_warnings=warnings or None,
        )

    async def _fetch_and_classify(
        self,
        address: str,
        source: Any,
        stages: _StageLog,
        vulnerabilities: List[str],
        fetch_error: Optional[ScamAnalyzerError] = None,
    ) -> Tuple[Optional[str], Optional[ProxyClassification]]:
        if source is None:
            return None, None

        try:
            if fetch_error is not None:
                raise fetch_error
            cache = self._cache_for(source)
            bytecode = await cache.get(address, timeout=self.settings.analysis_timeout)
            stages.done(AnalysisStage.BYTECODE_FETCHED)
        except Exception as e:
            message = stages.failed('bytecode', e)
            vulnerabilities.append(f"Bytecode analysis unavailable: {message}")
            self.logger.warning(f"Bytecode fetch failed for {address}: {message}")
            return None, None

        try:
            classification = self.classifier.classify(bytecode)
            stages.done(AnalysisStage.PROXY_CLASSIFIED)
        except Exception as e:
            message = stages.failed('proxy', e)
            self.logger.warning(f"Proxy classification failed for {address}: {message}")
            return bytecode, None

        return bytecode, classification

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _cache_for(self, source: Any) -> BytecodeCache:
        key, owner = source_key(source)
        entry = self._caches.get(key)
        if entry is not None:
            self._caches.move_to_end(key)
            return entry[1]

        cache = BytecodeCache(
            resolve_fetcher(source),
            ttl_seconds=self.settings.cache_ttl_seconds,
            max_entries=self.settings.cache_max_entries,
            max_concurrency=self.settings.batch_concurrency,
            fetch_timeout=self.settings.analysis_timeout,
            clock=self.clock,
        )
        # Holding the owner keeps its id from being reused while cached
        self._caches[key] = (owner, cache)
        while len(self._caches) > MAX_SOURCE_CACHES:
            evicted, _ = self._caches.popitem(last=False)
            self.logger.debug(f"Dropped bytecode cache for least recently used source {evicted[0]}")
        return cache

    def _provider(self, bytecode_source: Any) -> str:
        if bytecode_source is not None:
            return 'custom'
        return 'default' if self.default_source is not None else 'none'

    def _metadata(self, bytecode_source: Any, stages: _StageLog, start_time: float) -> Dict[str, Any]:
        return {
            'analysis_version': ANALYSIS_VERSION,
            'provider': self._provider(bytecode_source),
            'bytecode_source_configured': (bytecode_source or self.default_source) is not None,
            'stages_completed': [stage.value for stage in stages.completed],
            'stage_errors': dict(stages.errors),
            'duration_ms': (time.perf_counter() - start_time) * 1000,
        }

    def _failed_analysis(
        self,
        address: Any,
        contract_name: Optional[str],
        message: str,
        warnings: List[SecurityWarning],
        stages: _StageLog,
        start_time: float,
    ) -> AdvancedContractAnalysis:
        stages.done(AnalysisStage.FAILED)
        warnings = list(warnings) + [SecurityWarning(level=WarningLevel.ERROR, message=message)]
        self._update_performance_stats(start_time, failed=True, degraded=False)
        return AdvancedContractAnalysis(
            contract_address=str(address),
            contract_name=contract_name if isinstance(contract_name, str) else None,
            analysis_status=AnalysisStatus.FAILED,
            vulnerabilities=[message],
            risk_level=FAILED_RISK_LEVEL,
            metadata=self._metadata(None, stages, start_time),
            security_warnings=warnings,
        )

    def _safe_extract_result(self, result: Any, address: str) -> AdvancedContractAnalysis:
        """Convert a gather() exception into a failed analysis record."""
        if isinstance(result, BaseException):
            self.logger.warning(f"Batch analysis task failed for {address}: {result}")
            return self._failed_analysis(
                address, None, f"Analysis failed: {result}", [], _StageLog(), time.perf_counter()
            )
        return result

    def _update_performance_stats(self, start_time: float, failed: bool, degraded: bool) -> None:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        self.performance_stats['total_analyses'] += 1
        if failed:
            self.performance_stats['failed_analyses'] += 1
        if degraded:
            self.performance_stats['degraded_analyses'] += 1

        total = self.performance_stats['total_analyses']
        current_avg = self.performance_stats['average_analysis_time_ms']
        self.performance_stats['average_analysis_time_ms'] = ((current_avg * (total - 1)) + elapsed_ms) / total
