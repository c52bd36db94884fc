"""Explainer - human-readable summaries of assessment results."""

from .schema import (
    SCORE_MAX,
    AssessmentScore,
    AssessmentSummary,
    Gap,
    Risk,
    RiskLevel,
    Severity,
    humanize_category,
)


class AssessmentExplainer:
    """Summarizes an assessment's posture, strengths, weaknesses and priorities.

    Principles:
    - Every statement traces back to a score, gap or risk
    - Lists are never empty; a fallback line is used instead
    """

    # Minimum risk score for each posture level
    LEVELS = [
        (80, "Strong"),
        (60, "Good"),
        (40, "Fair"),
        (20, "Poor"),
    ]

    STRENGTH_SCORE = 3.5
    WEAKNESS_SCORE = 2.5
    MAX_ITEMS = 3
    MAX_PRIORITIES = 5

    def level_for(self, risk_score: int) -> str:
        for threshold, level in self.LEVELS:
            if risk_score >= threshold:
                return level
        return "Critical"

    def generate_summary(
        self,
        score: AssessmentScore,
        gaps: list[Gap],
        risks: list[Risk],
    ) -> AssessmentSummary:
        """Generate the summary of one scored assessment.

        Args:
            score: Aggregated assessment score
            gaps: Derived gaps, most severe first
            risks: Derived risks, most severe first

        Returns:
            AssessmentSummary with level, summary line and highlight lists
        """
        level = self.level_for(score.risk_score)

        strengths = [
            f"Strong {humanize_category(c.category).lower()} controls ({self._percent(c.score)}%)"
            for c in score.category_scores
            if c.score >= self.STRENGTH_SCORE
        ][:self.MAX_ITEMS]

        weaknesses = [
            f"{humanize_category(c.category)} gaps identified ({self._percent(c.score)}%)"
            for c in score.category_scores
            if c.score < self.WEAKNESS_SCORE
        ][:self.MAX_ITEMS]

        urgent_gaps = [
            f"Address {g.title or humanize_category(g.category)}"
            for g in gaps
            if g.severity in (Severity.CRITICAL, Severity.HIGH)
        ][:3]
        urgent_risks = [
            f"Mitigate {r.title or humanize_category(r.category)}"
            for r in risks
            if r.risk_level in (RiskLevel.CRITICAL, RiskLevel.HIGH)
        ][:2]
        priorities = (urgent_gaps + urgent_risks)[:self.MAX_PRIORITIES]

        summary = (
            f"{level} compliance posture with {len(gaps)} gaps and {len(risks)} risks "
            f"identified. Overall risk score: {score.risk_score}/100."
        )
        if score.foundational_shortfalls:
            summary += (
                f" Foundational coverage: {score.foundational_coverage_percent:.0f}%."
            )

        return AssessmentSummary(
            level=level,
            summary=summary,
            strengths=strengths or ["Comprehensive assessment completed"],
            weaknesses=weaknesses or ["No major weaknesses identified"],
            priorities=priorities or ["Continue monitoring and improvement"],
        )

    @staticmethod
    def _percent(score: float) -> int:
        return int(round(100 * score / SCORE_MAX))
