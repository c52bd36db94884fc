"""Gap/Risk Deriver - flags weak categories as Gap and Risk records.

Each category scoring below the adequacy threshold yields exactly one Gap
and one Risk. Output is sorted by severity then category, so deriving twice
from the same scores gives identical results.
"""

import logging
from typing import Iterable, Optional

from .config import ScorerConfig, get_config
from .schema import (
    BudgetRange,
    CategoryScore,
    EffortRange,
    Gap,
    GapRiskResult,
    Impact,
    Likelihood,
    Priority,
    Risk,
    RiskLevel,
    Severity,
    humanize_category,
)

logger = logging.getLogger(__name__)


class GapRiskDeriver:
    """Derives gaps and risks from category scores (0-5 scale)."""

    SEVERITY_PRIORITY = {
        Severity.CRITICAL: Priority.IMMEDIATE,
        Severity.HIGH: Priority.SHORT_TERM,
        Severity.MEDIUM: Priority.LONG_TERM,
        Severity.LOW: Priority.LONG_TERM,
    }

    SEVERITY_RANK = {
        Severity.CRITICAL: 0,
        Severity.HIGH: 1,
        Severity.MEDIUM: 2,
        Severity.LOW: 3,
    }

    SEVERITY_LIKELIHOOD = {
        Severity.CRITICAL: Likelihood.CERTAIN,
        Severity.HIGH: Likelihood.LIKELY,
        Severity.MEDIUM: Likelihood.POSSIBLE,
        Severity.LOW: Likelihood.UNLIKELY,
    }

    # Ordinal positions used for the likelihood x impact product
    LIKELIHOOD_VALUE = {
        Likelihood.RARE: 1,
        Likelihood.UNLIKELY: 2,
        Likelihood.POSSIBLE: 3,
        Likelihood.LIKELY: 4,
        Likelihood.CERTAIN: 5,
    }

    IMPACT_VALUE = {
        Impact.NEGLIGIBLE: 1,
        Impact.MINOR: 2,
        Impact.MODERATE: 3,
        Impact.MAJOR: 4,
        Impact.CATASTROPHIC: 5,
    }

    RISK_LEVEL_RANK = {
        RiskLevel.CRITICAL: 0,
        RiskLevel.HIGH: 1,
        RiskLevel.MEDIUM: 2,
        RiskLevel.LOW: 3,
    }

    def __init__(self, config: Optional[ScorerConfig] = None):
        self.config = config or get_config()

    def derive(self, category_scores: Iterable[CategoryScore]) -> GapRiskResult:
        """Derive gaps and risks.

        Args:
            category_scores: Per-category scores from aggregation

        Returns:
            GapRiskResult with gaps and risks, most severe first
        """
        gaps: list[Gap] = []
        risks: list[Risk] = []

        for category in category_scores:
            severity = self.severity_for(category.score)
            if severity is None:
                continue
            gaps.append(self._build_gap(category, severity))
            risks.append(self._build_risk(category, severity))

        gaps.sort(key=lambda g: (self.SEVERITY_RANK[g.severity], g.category))
        risks.sort(key=lambda r: (self.RISK_LEVEL_RANK[r.risk_level], r.category))

        logger.info("Derived %d gaps and %d risks", len(gaps), len(risks))
        return GapRiskResult(gaps=gaps, risks=risks)

    def severity_for(self, score: float) -> Optional[Severity]:
        """Gap severity of a category score, or None when the score is adequate."""
        thresholds = self.config.gap_thresholds
        if score < thresholds.critical:
            return Severity.CRITICAL
        if score < thresholds.high:
            return Severity.HIGH
        if score < thresholds.medium:
            return Severity.MEDIUM
        return None

    def _build_gap(self, category: CategoryScore, severity: Severity) -> Gap:
        effort = estimate_effort(category.weight_share, category.foundational, category.score)
        name = humanize_category(category.category)
        return Gap(
            category=category.category,
            severity=severity,
            priority=self.SEVERITY_PRIORITY[severity],
            score=category.score,
            title=f"{name} gap",
            description=(
                f"{name} scored {category.score:.1f}/5, below the adequacy "
                f"threshold of {self.config.gap_thresholds.medium:.1f}"
            ),
            estimated_effort=effort,
            estimated_cost=estimate_cost(
                effort, severity, category.weight_share, category.foundational
            ),
        )

    def _build_risk(self, category: CategoryScore, severity: Severity) -> Risk:
        likelihood = self.SEVERITY_LIKELIHOOD[severity]
        if category.foundational:
            impact = Impact.CATASTROPHIC if category.score < self.config.gap_thresholds.critical else Impact.MAJOR
        else:
            impact = Impact.MODERATE

        product = self.LIKELIHOOD_VALUE[likelihood] * self.IMPACT_VALUE[impact]
        if product >= 15:
            level = RiskLevel.CRITICAL
        elif product >= 10:
            level = RiskLevel.HIGH
        elif product >= 5:
            level = RiskLevel.MEDIUM
        else:
            level = RiskLevel.LOW

        return Risk(
            category=category.category,
            likelihood=likelihood,
            impact=impact,
            risk_level=level,
            score=float(product),
            title=f"{humanize_category(category.category)} risk",
        )


def estimate_effort(weight_share: float, is_foundational: bool, score: float) -> EffortRange:
    """Estimate remediation effort for a gap.

    LARGE needs a major share of the template (> 25%), a foundational
    category and a score below 2. A moderate share (15-25%) or a
    foundational category is MEDIUM. Everything else is SMALL.
    """
    if weight_share > 0.25 and is_foundational and score < 2.0:
        return EffortRange.LARGE
    if 0.15 <= weight_share <= 0.25:
        return EffortRange.MEDIUM
    if is_foundational:
        return EffortRange.MEDIUM
    return EffortRange.SMALL


def estimate_cost(
    effort: EffortRange,
    severity: Severity,
    weight_share: float,
    is_foundational: bool,
) -> BudgetRange:
    """Estimate the remediation cost band for a gap."""
    if effort == EffortRange.LARGE:
        if severity == Severity.CRITICAL:
            if weight_share > 0.20:
                return BudgetRange.OVER_250K
            return BudgetRange.RANGE_100K_250K
        return BudgetRange.RANGE_50K_100K
    if effort == EffortRange.MEDIUM:
        if is_foundational:
            return BudgetRange.RANGE_50K_100K
        return BudgetRange.RANGE_10K_50K
    if is_foundational:
        return BudgetRange.RANGE_10K_50K
    return BudgetRange.UNDER_10K


def derive_gaps_and_risks(category_scores: Iterable[CategoryScore]) -> GapRiskResult:
    """Derive gaps and risks from category scores."""
    return GapRiskDeriver().derive(category_scores)
