"""Aggregator - combines question sub-scores into section, category and overall scores.

Section scores are weighted averages of question scores on the 0-5 scale.
The overall risk score is the section-weighted average rescaled to 0-100.
All averages normalize by the weights actually present, so templates whose
weights do not sum to 1.0 still score correctly (with a warning).
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .config import ScorerConfig, get_config
from .errors import DuplicateAnswerError, UnmappedOptionError
from .rule_interpreter import RuleInterpreter
from .schema import (
    SCORE_MAX,
    Answer,
    AssessmentScore,
    CategoryScore,
    Organization,
    Question,
    QuestionResult,
    RiskBand,
    Section,
    SectionScore,
    Template,
)

logger = logging.getLogger(__name__)


@dataclass
class _Accumulator:
    """Running weighted sums for one section or category."""
    weighted_sum: float = 0.0
    total_weight: float = 0.0
    question_count: int = 0
    scored_count: int = 0
    foundational: bool = False
    weight_share: float = 0.0
    question_ids: list[str] = field(default_factory=list)

    @property
    def average(self) -> Optional[float]:
        if self.total_weight <= 0:
            return None
        return self.weighted_sum / self.total_weight


def resolve_category(question: Question, section: Section) -> str:
    """Category a question reports under: its own, its section's, or the section id."""
    return question.category or section.category or section.section_id


class AssessmentAggregator:
    """Aggregates an answer set against a template.

    Rules:
    - Unanswered required questions count as 0
    - Unanswered optional questions are left out of both sums
    - Questions whose answer hits an unmapped option are excluded with a warning
    - Sections with nothing scorable are left out of the overall average
    """

    def __init__(
        self,
        config: Optional[ScorerConfig] = None,
        interpreter: Optional[RuleInterpreter] = None,
    ):
        self.config = config or get_config()
        self.interpreter = interpreter or RuleInterpreter()

    def aggregate(
        self,
        template: Template,
        answers: Iterable[Answer],
        organization: Optional[Organization] = None,
    ) -> AssessmentScore:
        """Aggregate answers into an AssessmentScore.

        Args:
            template: The assessment template
            answers: Answers in any order, at most one per question
            organization: Optional organization context for contextual rules

        Returns:
            AssessmentScore with section, category and overall scores

        Raises:
            DuplicateAnswerError: If two answers target the same question.
        """
        warnings: list[str] = []
        by_question = self._index_answers(template, answers, warnings)

        section_scores: list[SectionScore] = []
        question_results: list[QuestionResult] = []
        categories: dict[str, _Accumulator] = {}
        adequacy = self.config.aggregation.adequacy_score
        foundational_total = 0
        foundational_covered = 0
        foundational_shortfalls: list[str] = []

        section_weights = self._normalized_section_weights(template, warnings)
        section_averages: dict[str, Optional[float]] = {}

        for section in template.sections:
            acc = _Accumulator(question_count=len(section.questions))
            question_weight_total = sum(q.weight for q in section.questions)

            for question in section.questions:
                category = resolve_category(question, section)
                cat = categories.setdefault(category, _Accumulator())
                cat.question_count += 1
                cat.question_ids.append(question.question_id)
                if question.is_foundational:
                    cat.foundational = True
                if question_weight_total > 0:
                    cat.weight_share += (
                        question.weight / question_weight_total
                    ) * section_weights[section.section_id]

                result = self._score_question(
                    question, section, category, by_question.get(question.question_id),
                    organization, warnings,
                )
                question_results.append(result)

                if question.is_foundational:
                    foundational_total += 1
                    if result.score is not None and result.score >= adequacy:
                        foundational_covered += 1
                    else:
                        foundational_shortfalls.append(question.question_id)

                if result.status in ("scored", "unanswered"):
                    score = result.score or 0
                    for target in (acc, cat):
                        target.weighted_sum += score * question.weight
                        target.total_weight += question.weight
                        if result.status == "scored":
                            target.scored_count += 1

            average = acc.average
            section_averages[section.section_id] = average
            section_scores.append(SectionScore(
                section_id=section.section_id,
                title=section.title,
                weight=section.weight,
                score=round(average, 2) if average is not None else 0.0,
                scaled_score=round(100 * average / SCORE_MAX, 1) if average is not None else 0.0,
                total_weight=acc.total_weight,
                question_count=acc.question_count,
                scored_count=acc.scored_count,
                included=average is not None,
            ))

        risk_score = self._overall_risk_score(template, section_averages, section_weights)

        category_scores = [
            CategoryScore(
                category=name,
                score=round(acc.average, 2) if acc.average is not None else 0.0,
                question_count=acc.question_count,
                scored_count=acc.scored_count,
                foundational=acc.foundational,
                weight_share=round(acc.weight_share, 4),
            )
            for name, acc in categories.items()
            if acc.average is not None
        ]

        coverage = (
            round(100.0 * foundational_covered / foundational_total, 1)
            if foundational_total else 100.0
        )

        logger.info(
            "Aggregated template %s: risk score %d, %d sections, %d categories",
            template.template_id, risk_score, len(section_scores), len(category_scores),
        )

        return AssessmentScore(
            template_id=template.template_id,
            risk_score=risk_score,
            risk_band=self.risk_band(risk_score),
            section_scores=section_scores,
            category_scores=category_scores,
            question_results=question_results,
            foundational_coverage_percent=coverage,
            foundational_shortfalls=foundational_shortfalls,
            warnings=warnings,
        )

    def risk_band(self, risk_score: int) -> RiskBand:
        """Band of a 0-100 risk score (higher score means lower risk)."""
        agg = self.config.aggregation
        if risk_score >= agg.risk_band_low:
            return RiskBand.LOW
        if risk_score >= agg.risk_band_medium:
            return RiskBand.MEDIUM
        if risk_score >= agg.risk_band_high:
            return RiskBand.HIGH
        return RiskBand.CRITICAL

    def _index_answers(
        self, template: Template, answers: Iterable[Answer], warnings: list[str]
    ) -> dict[str, Answer]:
        known = {q.question_id for _, q in template.iter_questions()}
        by_question: dict[str, Answer] = {}
        for answer in answers:
            if answer.question_id in by_question:
                raise DuplicateAnswerError(answer.question_id)
            by_question[answer.question_id] = answer

        for question_id in sorted(set(by_question) - known):
            message = f"Answer for unknown question {question_id!r} ignored"
            logger.warning(message)
            warnings.append(message)
        return by_question

    def _normalized_section_weights(
        self, template: Template, warnings: list[str]
    ) -> dict[str, float]:
        """Section weights divided by their actual sum (equal weights if all zero)."""
        if not template.sections:
            return {}
        total = sum(s.weight for s in template.sections)
        tolerance = self.config.aggregation.weight_sum_tolerance
        if abs(total - 1.0) > tolerance:
            message = (
                f"Section weights of template {template.template_id!r} sum to "
                f"{total:.3f}, not 1.0; normalizing"
            )
            logger.warning(message)
            warnings.append(message)
        if total <= 0:
            share = 1.0 / len(template.sections)
            return {s.section_id: share for s in template.sections}
        return {s.section_id: s.weight / total for s in template.sections}

    def _overall_risk_score(
        self,
        template: Template,
        section_averages: dict[str, Optional[float]],
        section_weights: dict[str, float],
    ) -> int:
        """Section-weighted average of the unrounded section scores, on 0-100."""
        included = {sid: avg for sid, avg in section_averages.items() if avg is not None}
        if not included:
            logger.warning("Template %s has no scorable section", template.template_id)
            return 0
        weights = {sid: section_weights[sid] for sid in included}
        if sum(weights.values()) <= 0:
            # Every remaining section weighs zero: equal weighting
            weights = {sid: 1.0 for sid in included}
        total_weight = sum(weights.values())
        weighted = sum(avg * weights[sid] for sid, avg in included.items())
        return int(round(100 * (weighted / total_weight) / SCORE_MAX))

    def _score_question(
        self,
        question: Question,
        section: Section,
        category: str,
        answer: Optional[Answer],
        organization: Optional[Organization],
        warnings: list[str],
    ) -> QuestionResult:
        base = dict(
            question_id=question.question_id,
            section_id=section.section_id,
            category=category,
            weight=question.weight,
        )
        if answer is None or question.is_blank(answer.value):
            if question.is_required:
                return QuestionResult(
                    **base, status="unanswered", score=0,
                    notes=["Required question not answered; counted as 0"],
                )
            return QuestionResult(**base, status="skipped", notes=["Optional question not answered"])

        try:
            result = self.interpreter.score(question, answer, organization)
        except UnmappedOptionError as e:
            logger.warning("%s; question excluded from aggregation", e)
            warnings.append(f"{e}; question excluded")
            return QuestionResult(**base, status="excluded", notes=[str(e)])

        return QuestionResult(**base, status="scored", score=result.score, notes=result.notes)


def aggregate_assessment(
    template: Template,
    answers: Iterable[Answer],
    org_context: Optional[Organization] = None,
) -> AssessmentScore:
    """Aggregate answers into section, category and overall scores."""
    return AssessmentAggregator().aggregate(template, answers, org_context)
