"""
Risk scoring module.

Combines independent pattern results and threat registry membership into a
single explainable RiskAssessment. Pure functions of the input: the same
results always produce the same assessment.

File: scam_analyzer/risk/scoring.py
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..shared.constants import (
    ANALYSIS_VERSION,
    COMBINATION_BONUS,
    CORROBORATION_BONUS,
    DANGEROUS_COMBINATIONS,
    LOW_CONFIDENCE_DISCOUNT,
    LOW_CONFIDENCE_THRESHOLD,
    MAX_BONUS,
    MAX_PENALTY,
    MULTI_PATTERN_BONUS,
    RISK_THRESHOLDS,
    THIN_EVIDENCE_DISCOUNT,
    THIN_EVIDENCE_THRESHOLD,
)
from ..shared.exceptions import ValidationError
from ..shared.schemas import (
    PatternResult,
    PatternScore,
    RiskAssessment,
    RiskBreakdown,
    RiskExplanation,
    RiskLevel,
    RiskScoringConfig,
    ScamCategory,
    SecurityWarning,
    Severity,
    WarningLevel,
)

logger = logging.getLogger(__name__)

CORROBORATION_CONFIDENCE = 0.8

LEVEL_RECOMMENDATIONS = {
    RiskLevel.CRITICAL: [
        "Do not interact with this contract or send funds to it",
        "Report the contract address to security researchers and block explorers",
    ],
    RiskLevel.HIGH: [
        "Avoid interacting with this contract until an independent audit reviews the findings",
        "Verify the published source code against the deployed bytecode",
    ],
    RiskLevel.MEDIUM: [
        "Review the flagged functions manually before any interaction",
        "Verify contract behaviour on a testnet or fork before using real funds",
    ],
    RiskLevel.LOW: [
        "No major deception patterns found; standard due diligence still applies",
    ],
}

PATTERN_RECOMMENDATIONS = {
    ScamCategory.FAKE_BALANCE: "Verify token balances through an independent source such as a block explorer",
    ScamCategory.HIDDEN_REDIRECTION: "Trace fund flows; hardcoded addresses may receive transferred value",
    ScamCategory.NON_FUNCTIONAL_TRANSFER: "Confirm that transfers actually change balances before relying on them",
    ScamCategory.DECEPTIVE_EVENTS: "Do not trust emitted events alone; confirm state changes on-chain",
}

SEVERITY_WARNING_LEVELS = {
    Severity.CRITICAL: WarningLevel.CRITICAL,
    Severity.HIGH: WarningLevel.ERROR,
    Severity.MEDIUM: WarningLevel.WARNING,
    Severity.LOW: WarningLevel.INFO,
}


def map_score_to_risk_level(score: float, thresholds: Mapping[str, float] = RISK_THRESHOLDS) -> RiskLevel:
    """Risk level for a normalized score."""
    if score >= thresholds['critical']:
        return RiskLevel.CRITICAL
    elif score >= thresholds['high']:
        return RiskLevel.HIGH
    elif score >= thresholds['medium']:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def get_default_risk_scoring_config() -> RiskScoringConfig:
    return RiskScoringConfig()


def validate_risk_scoring_config(config: Any) -> RiskScoringConfig:
    """
    Build a RiskScoringConfig from a model, a (partial) mapping or None.

    Raises:
        ValidationError: If a value is out of range or a key is unknown
    """
    if config is None:
        return get_default_risk_scoring_config()
    if isinstance(config, RiskScoringConfig):
        return config
    if not isinstance(config, Mapping):
        raise ValidationError(
            f"Risk scoring config must be a mapping, got {type(config).__name__}",
            field="risk_scoring_config",
            value=config,
        )

    try:
        return RiskScoringConfig.model_validate(dict(config))
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = '.'.join(str(part) for part in first.get('loc', ()))
        message = f"Invalid risk scoring config: {first.get('msg')}"
        if location:
            message += f" ({location})"
        raise ValidationError(message, field="risk_scoring_config", value=config) from e


def _label(category: ScamCategory) -> str:
    return category.value.replace('-', ' ')


class RiskAggregator:
    """
    Aggregates pattern results into a RiskAssessment.

    Each detected pattern contributes weight x confidence x severity
    multiplier. Corroboration between categories adds a bonus; weak signals
    are discounted against their own contribution, so detecting one more
    pattern never lowers the final score.
    """

    def __init__(
        self,
        config: Any = None,
        weights: Optional[Mapping[str, float]] = None,
        severity_multipliers: Optional[Mapping[str, float]] = None,
    ):
        """
        Initialize the aggregator.

        Args:
            config: RiskScoringConfig or a mapping of its fields
            weights: Partial pattern weight overrides applied on top of config
            severity_multipliers: Partial multiplier overrides applied on top of config

        Raises:
            ValidationError: If the resulting configuration is invalid
        """
        config = validate_risk_scoring_config(config)
        if weights is not None or severity_multipliers is not None:
            overrides = config.model_dump()
            if weights is not None:
                overrides['pattern_weights'] = {**config.pattern_weights, **dict(weights)}
            if severity_multipliers is not None:
                overrides['severity_multipliers'] = {
                    **config.severity_multipliers, **dict(severity_multipliers)
                }
            config = validate_risk_scoring_config(overrides)

        self.config = config
        self.weights = dict(config.pattern_weights)
        self.severity_multipliers = dict(config.severity_multipliers)
        self.logger = logger.getChild(self.__class__.__name__)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def aggregate(
        self,
        pattern_results: Mapping[ScamCategory, PatternResult],
        is_known_malicious: bool = False,
    ) -> RiskAssessment:
        """
        Combine pattern results into one assessment.

        Args:
            pattern_results: One result per category
            is_known_malicious: Threat registry membership; forces score 1.0

        Returns:
            RiskAssessment with breakdown and explanation

        Raises:
            ValidationError: If the map is empty or structurally malformed
        """
        results = self._validate(pattern_results)
        ordered = [c for c in ScamCategory if c in results]
        detected = [c for c in ordered if results[c].detected]

        pattern_scores: Dict[ScamCategory, PatternScore] = {}
        base_score = 0.0
        raw_penalty = 0.0
        for category in ordered:
            result = results[category]
            multiplier = self.severity_multipliers[result.severity.value]
            contribution = 0.0
            if result.detected:
                contribution = self.weights[category.value] * result.confidence * multiplier
                base_score += contribution
                raw_penalty += self._discount(result, contribution)

            pattern_scores[category] = PatternScore(
                weight=self.weights[category.value],
                confidence=result.confidence,
                severity=result.severity,
                severity_multiplier=multiplier,
                contribution=contribution,
                detected=result.detected,
            )

        combinations = self._dangerous_combinations(detected)
        bonus_score = 0.0
        if self.config.enable_bonus_scoring:
            bonus_score = self._bonus(results, detected, combinations)
        penalty_score = 0.0
        if self.config.enable_penalty_scoring:
            penalty_score = min(raw_penalty, MAX_PENALTY)

        final_score = max(0.0, min(1.0, base_score + bonus_score - penalty_score))
        if is_known_malicious:
            final_score = 1.0

        if is_known_malicious:
            confidence = 1.0
        elif detected:
            confidence = sum(results[c].confidence for c in detected) / len(detected)
        else:
            confidence = 0.0

        risk_level = map_score_to_risk_level(final_score, self.config.risk_thresholds)
        breakdown = RiskBreakdown(
            base_score=base_score,
            bonus_score=bonus_score,
            penalty_score=penalty_score,
            final_score=final_score,
            pattern_scores=pattern_scores,
        )
        explanation = self._explain(
            results, detected, combinations, breakdown, risk_level, is_known_malicious
        )

        self.logger.debug(
            f"Aggregated {len(detected)}/{len(ordered)} detected patterns: "
            f"base={base_score:.3f} bonus={bonus_score:.3f} penalty={penalty_score:.3f} "
            f"final={final_score:.3f}"
        )

        return RiskAssessment(
            risk_score=final_score,
            risk_level=risk_level,
            confidence=confidence,
            breakdown=breakdown,
            explanation=explanation,
            metadata={
                'analysis_version': ANALYSIS_VERSION,
                'patterns_analyzed': len(ordered),
                'patterns_detected': len(detected),
                'known_malicious': is_known_malicious,
            },
        )

    def build_warnings(
        self,
        pattern_results: Mapping[ScamCategory, PatternResult],
        address: Optional[str] = None,
    ) -> List[SecurityWarning]:
        """Pattern-derived security warnings, one per detected category."""
        warnings = []
        for category in ScamCategory:
            result = pattern_results.get(category)
            if result is None or not result.detected:
                continue
            warnings.append(SecurityWarning(
                level=SEVERITY_WARNING_LEVELS[result.severity],
                message=(
                    f"{_label(category).capitalize()} pattern detected "
                    f"({result.severity.value} severity): {result.description}"
                ),
                address=address,
                category=category,
            ))
        return warnings

    # =========================================================================
    # SCORING COMPONENTS
    # =========================================================================

    @staticmethod
    def _validate(pattern_results: Mapping) -> Dict[ScamCategory, PatternResult]:
        if not isinstance(pattern_results, Mapping) or not pattern_results:
            raise ValidationError(
                "Pattern results must be a non-empty mapping", field="pattern_results"
            )

        validated = {}
        for key, result in pattern_results.items():
            try:
                category = ScamCategory(key)
            except ValueError:
                raise ValidationError(f"Unknown pattern category: {key}", field="pattern_results")
            if not isinstance(result, PatternResult):
                raise ValidationError(
                    f"Result for {category.value} is not a PatternResult", field="pattern_results"
                )
            if result.category != category:
                raise ValidationError(
                    f"Result filed under {category.value} has category {result.category.value}",
                    field="pattern_results",
                )
            validated[category] = result
        return validated

    @staticmethod
    def _discount(result: PatternResult, contribution: float) -> float:
        """Share of a pattern's own contribution withheld for weak evidence."""
        discount = 0.0
        if result.confidence < LOW_CONFIDENCE_THRESHOLD:
            discount += LOW_CONFIDENCE_DISCOUNT
        if len(result.evidence) < THIN_EVIDENCE_THRESHOLD:
            discount += THIN_EVIDENCE_DISCOUNT
        return contribution * discount

    @staticmethod
    def _dangerous_combinations(detected: List[ScamCategory]) -> List[Tuple[ScamCategory, ScamCategory]]:
        present = {c.value for c in detected}
        return [
            (ScamCategory(a), ScamCategory(b))
            for a, b in DANGEROUS_COMBINATIONS
            if a in present and b in present
        ]

    @staticmethod
    def _bonus(
        results: Mapping[ScamCategory, PatternResult],
        detected: List[ScamCategory],
        combinations: List[Tuple[ScamCategory, ScamCategory]],
    ) -> float:
        if len(detected) < 2:
            return 0.0

        bonus = MULTI_PATTERN_BONUS * (len(detected) - 1)
        bonus += COMBINATION_BONUS * len(combinations)
        strong = [c for c in detected if results[c].confidence >= CORROBORATION_CONFIDENCE]
        if len(strong) >= 2:
            bonus += CORROBORATION_BONUS
        return min(bonus, MAX_BONUS)

    # =========================================================================
    # EXPLANATION
    # =========================================================================

    def _explain(
        self,
        results: Mapping[ScamCategory, PatternResult],
        detected: List[ScamCategory],
        combinations: List[Tuple[ScamCategory, ScamCategory]],
        breakdown: RiskBreakdown,
        risk_level: RiskLevel,
        is_known_malicious: bool,
    ) -> RiskExplanation:
        score = breakdown.final_score

        if is_known_malicious:
            summary = (
                f"CRITICAL risk (score {score:.2f}): address is listed as a known malicious contract"
            )
            if detected:
                summary += f" and {len(detected)} deception pattern(s) were detected"
        elif detected:
            summary = (
                f"{risk_level.value.upper()} risk (score {score:.2f}): "
                f"{len(detected)} deception pattern(s) detected"
            )
        else:
            summary = f"LOW risk (score {score:.2f}): no deception patterns detected"

        risk_factors = []
        if is_known_malicious:
            risk_factors.append("Address is listed in the known-malicious threat registry")
        for category in detected:
            result = results[category]
            risk_factors.append(
                f"{_label(category).capitalize()}: {result.severity.value} severity, "
                f"{result.confidence * 100:.0f}% confidence, {len(result.evidence)} evidence item(s)"
            )
        for first, second in combinations:
            risk_factors.append(f"Dangerous combination: {first.value} with {second.value}")

        mitigating_factors = [
            f"No {_label(category)} patterns detected"
            for category in results if not results[category].detected
        ]
        weak = [c for c in detected if results[c].confidence < LOW_CONFIDENCE_THRESHOLD]
        if weak:
            mitigating_factors.append(
                f"Low confidence findings: {', '.join(c.value for c in weak)}"
            )

        recommendations: List[str] = []
        for line in LEVEL_RECOMMENDATIONS[risk_level]:
            if line not in recommendations:
                recommendations.append(line)
        for category in detected:
            line = PATTERN_RECOMMENDATIONS[category]
            if line not in recommendations:
                recommendations.append(line)

        lines = [
            f"Final risk score: {score:.3f} ({risk_level.value})",
            f"Base score: {breakdown.base_score:.3f}, bonus: {breakdown.bonus_score:.3f}, "
            f"penalty: {breakdown.penalty_score:.3f}",
        ]
        if is_known_malicious:
            lines.append("Score forced to 1.000 by threat registry membership")
        for category, pattern_score in breakdown.pattern_scores.items():
            status = "detected" if pattern_score.detected else "not detected"
            lines.append(
                f"- {category.value}: {status}, confidence {pattern_score.confidence:.2f}, "
                f"severity {pattern_score.severity.value}, contribution {pattern_score.contribution:.3f}"
            )

        return RiskExplanation(
            summary=summary,
            risk_factors=risk_factors,
            mitigating_factors=mitigating_factors,
            recommendations=recommendations,
            detailed_analysis='\n'.join(lines),
        )
