"""Compliance Engine - loads templates and vendor catalogs and runs the scoring pipeline.

Pipeline:
1. Template + answers -> rule interpretation -> aggregation
2. Category scores -> gaps and risks -> summary
3. Organization + gaps + vendor catalog -> base score -> priority boost -> ranking

File loading happens here and in the CLI only. Every scoring step is pure.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import yaml
from pydantic import ValidationError

from .aggregator import AssessmentAggregator
from .base_scorer import BaseScorer
from .config import ScorerConfig, get_config
from .errors import AssessmentStateError, ComplianceScoringError
from .explainer import AssessmentExplainer
from .gap_deriver import GapRiskDeriver
from .priority_boost import PriorityBoostScorer
from .ranker import MatchRanker
from .rule_interpreter import RuleInterpreter, describe_validation_error, parse_scoring_rule
from .schema import (
    Answer,
    AnswerScore,
    Assessment,
    AssessmentResult,
    AssessmentStatus,
    Gap,
    MappingRule,
    Organization,
    QuestionType,
    Template,
    Vendor,
    VendorMatch,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_data_file(path: PathLike) -> Any:
    """Read a JSON or YAML file (chosen by extension)."""
    path = Path(path)
    with open(path, 'r', encoding='utf-8') as f:
        if path.suffix.lower() in (".yaml", ".yml"):
            return yaml.safe_load(f)
        return json.load(f)


class ComplianceEngine:
    """Facade over the assessment scoring and vendor matching pipeline.

    Usage:
        engine = ComplianceEngine()
        template = engine.load_template("template.json")
        result = engine.score_assessment(template, answers, organization)
        matches = engine.match_vendors(organization, result.gaps, vendors)
    """

    def __init__(self, config: Optional[ScorerConfig] = None):
        self.config = config or get_config()
        self.interpreter = RuleInterpreter()
        self.aggregator = AssessmentAggregator(self.config, self.interpreter)
        self.gap_deriver = GapRiskDeriver(self.config)
        self.base_scorer = BaseScorer(self.config)
        self.boost_scorer = PriorityBoostScorer(self.config)
        self.ranker = MatchRanker(self.config)
        self.explainer = AssessmentExplainer()

        self.template: Optional[Template] = None
        self.template_warnings: list[str] = []
        self.vendors: list[Vendor] = []

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load_template(self, path: PathLike) -> Template:
        """Load and validate a template from a JSON or YAML file."""
        template = self.parse_template(load_data_file(path))
        logger.info("Loaded template %s from %s", template.template_id, path)
        return template

    def parse_template(self, data: dict) -> Template:
        """Validate template data.

        Scoring rules are parsed first so that rule defects surface as
        MalformedScoringRuleError naming the question. Authoring issues that
        do not prevent scoring are collected in ``template_warnings``.

        Raises:
            MalformedScoringRuleError: If any scoring rule is invalid.
            ValueError: If sections or questions are not objects.
            pydantic.ValidationError: If the template structure is invalid.
        """
        if not isinstance(data, dict):
            raise ValueError("Template data must be an object")

        prepared = dict(data)
        sections = []
        raw_sections = data.get("sections") or []
        if not isinstance(raw_sections, list):
            raise ValueError("Template sections must be a list")
        for i, raw_section in enumerate(raw_sections):
            if not isinstance(raw_section, dict):
                raise ValueError(f"Section {i} must be an object")
            section = dict(raw_section)
            raw_questions = raw_section.get("questions") or []
            if not isinstance(raw_questions, list):
                raise ValueError(f"Questions of section {i} must be a list")
            questions = []
            for j, raw_question in enumerate(raw_questions):
                if not isinstance(raw_question, dict):
                    raise ValueError(f"Question {j} of section {i} must be an object")
                question = dict(raw_question)
                question_id = question.get("question_id")
                question_type = question.get("type")
                if isinstance(question_type, str):
                    question_type = QuestionType.from_string(question_type)
                rule = parse_scoring_rule(question.get("scoring_rule"), question_id, question_type)
                question["scoring_rule"] = rule.model_dump()
                questions.append(question)
            section["questions"] = questions
            sections.append(section)
        prepared["sections"] = sections

        template = Template.model_validate(prepared)
        self.template = template
        self.template_warnings = self.lint_template(template)
        for warning in self.template_warnings:
            logger.warning("Template %s: %s", template.template_id, warning)

        logger.info(
            "Template %s has %d sections and %d questions",
            template.template_id,
            len(template.sections),
            sum(len(s.questions) for s in template.sections),
        )
        return template

    def lint_template(self, template: Template) -> list[str]:
        """Authoring issues that are reported but never block scoring."""
        warnings = []
        if template.sections:
            total = sum(s.weight for s in template.sections)
            if abs(total - 1.0) > self.config.aggregation.weight_sum_tolerance:
                warnings.append(f"Section weights sum to {total:.3f}, not 1.0")
        for _, question in template.iter_questions():
            rule = question.scoring_rule
            if isinstance(rule, MappingRule) and question.options:
                unmapped = [o for o in question.options if o not in rule.mapping]
                if unmapped:
                    warnings.append(
                        f"Question {question.question_id!r} declares options missing from "
                        f"its mapping: {', '.join(unmapped)}"
                    )
        return warnings

    def load_vendor_catalog(self, path: PathLike) -> list[Vendor]:
        """Load and validate a vendor catalog from a JSON or YAML file."""
        vendors = self.parse_vendor_catalog(load_data_file(path))
        logger.info("Loaded %d vendors from %s", len(vendors), path)
        return vendors

    def parse_vendor_catalog(self, data: Union[list, dict]) -> list[Vendor]:
        """Validate vendor data (a list, or an object with a ``vendors`` list)."""
        if isinstance(data, dict):
            data = data.get("vendors", [])
        if not isinstance(data, list):
            raise ValueError("Vendor catalog must be a list of vendors")

        vendors = [Vendor.model_validate(v) for v in data]
        seen: set[str] = set()
        for vendor in vendors:
            if vendor.vendor_id in seen:
                raise ValueError(f"Duplicate vendor_id {vendor.vendor_id!r}")
            seen.add(vendor.vendor_id)
        self.vendors = vendors
        return vendors

    # -------------------------------------------------------------------------
    # Assessment scoring
    # -------------------------------------------------------------------------

    def score_assessment(
        self,
        template: Optional[Template],
        answers: Iterable[Union[Answer, dict]],
        organization: Optional[Organization] = None,
    ) -> AssessmentResult:
        """Score a complete answer set.

        Args:
            template: Template to score against (defaults to the loaded one)
            answers: Answers as models or dicts, in any order
            organization: Optional organization context

        Returns:
            AssessmentResult with per-answer scores, aggregation, gaps,
            risks and summary
        """
        template = template or self.template
        if template is None:
            raise ValueError("No template loaded")

        parsed = [a if isinstance(a, Answer) else Answer.model_validate(a) for a in answers]
        score = self.aggregator.aggregate(template, parsed, organization)
        findings = self.gap_deriver.derive(score.category_scores)
        summary = self.explainer.generate_summary(score, findings.gaps, findings.risks)

        answer_scores = [
            AnswerScore(question_id=r.question_id, score=r.score, notes=r.notes)
            for r in score.question_results
            if r.status == "scored"
        ]

        return AssessmentResult(
            template_id=template.template_id,
            answer_scores=answer_scores,
            assessment=score,
            gaps=findings.gaps,
            risks=findings.risks,
            summary=summary,
        )

    # -------------------------------------------------------------------------
    # Assessment lifecycle
    # -------------------------------------------------------------------------

    def start_assessment(
        self, assessment_id: str, organization_id: str, template: Template
    ) -> Assessment:
        """Create a new IN_PROGRESS assessment."""
        return Assessment(
            assessment_id=assessment_id,
            organization_id=organization_id,
            template_id=template.template_id,
        )

    def record_answer(self, assessment: Assessment, answer: Union[Answer, dict]) -> Assessment:
        """Add or replace one answer, returning the updated assessment.

        Raises:
            AssessmentStateError: If the assessment is not IN_PROGRESS.
        """
        self._require_in_progress(assessment, "record answers for")
        answer = answer if isinstance(answer, Answer) else Answer.model_validate(answer)
        answers = [a for a in assessment.answers if a.question_id != answer.question_id]
        answers.append(answer)
        return assessment.model_copy(update={"answers": answers})

    def complete_assessment(
        self,
        assessment: Assessment,
        template: Template,
        organization: Optional[Organization] = None,
    ) -> Assessment:
        """Score an assessment and freeze it as COMPLETED.

        The returned assessment carries the risk score, gaps and risks, and
        each answer's score and explanation.
        """
        self._require_in_progress(assessment, "complete")
        if assessment.template_id != template.template_id:
            raise AssessmentStateError(
                f"Assessment {assessment.assessment_id!r} uses template "
                f"{assessment.template_id!r}, not {template.template_id!r}"
            )

        result = self.score_assessment(template, assessment.answers, organization)
        scored = {s.question_id: s for s in result.answer_scores}
        answers = []
        for answer in assessment.answers:
            answer_score = scored.get(answer.question_id)
            if answer_score is None:
                answers.append(answer)
                continue
            answers.append(answer.model_copy(update={
                "score": answer_score.score,
                "explanation": "; ".join(answer_score.notes),
            }))

        logger.info(
            "Completed assessment %s: risk score %d, %d gaps",
            assessment.assessment_id, result.assessment.risk_score, len(result.gaps),
        )
        return assessment.model_copy(update={
            "status": AssessmentStatus.COMPLETED,
            "answers": answers,
            "risk_score": result.assessment.risk_score,
            "gaps": result.gaps,
            "risks": result.risks,
            "completed_at": datetime.now(timezone.utc),
        })

    def abandon_assessment(self, assessment: Assessment) -> Assessment:
        """Mark an IN_PROGRESS assessment as ABANDONED."""
        self._require_in_progress(assessment, "abandon")
        return assessment.model_copy(update={"status": AssessmentStatus.ABANDONED})

    @staticmethod
    def _require_in_progress(assessment: Assessment, action: str) -> None:
        if assessment.status != AssessmentStatus.IN_PROGRESS:
            raise AssessmentStateError(
                f"Cannot {action} assessment {assessment.assessment_id!r} "
                f"with status {assessment.status.value}"
            )

    # -------------------------------------------------------------------------
    # Vendor matching
    # -------------------------------------------------------------------------

    def match_vendors(
        self,
        organization: Organization,
        gaps: Iterable[Gap] = (),
        vendors: Optional[list[Vendor]] = None,
        min_score: Optional[float] = None,
        top_n: Optional[int] = None,
        labeled_only: bool = False,
    ) -> list[VendorMatch]:
        """Rank vendors for an organization and its open gaps.

        Args:
            organization: Organization profile and priorities
            gaps: Open gaps from the latest assessment
            vendors: Vendors to rank (defaults to the loaded catalog)
            min_score: Drop matches below this total score
            top_n: Keep at most this many matches
            labeled_only: Drop matches without a quality label

        Returns:
            Ranked vendor matches
        """
        vendors = self.vendors if vendors is None else vendors
        gap_list = list(gaps)

        base_scores = [self.base_scorer.score(v, organization, gap_list) for v in vendors]
        boosts = [self.boost_scorer.score(v, organization, gap_list) for v in vendors]
        return self.ranker.rank(
            vendors, base_scores, boosts,
            min_score=min_score, top_n=top_n, labeled_only=labeled_only,
        )


def validate_template(path: PathLike) -> tuple[bool, list[str]]:
    """Validate a template file.

    Returns:
        (is_valid, issues). Authoring warnings are listed as issues but do
        not make the template invalid.
    """
    try:
        engine = ComplianceEngine()
        engine.load_template(path)
        return True, [f"Warning: {w}" for w in engine.template_warnings]
    except ValidationError as e:
        return False, [describe_validation_error(e)]
    except (ComplianceScoringError, ValueError, OSError, yaml.YAMLError) as e:
        return False, [str(e)]


def validate_catalog(path: PathLike) -> tuple[bool, list[str]]:
    """Validate a vendor catalog file.

    Returns:
        (is_valid, issues)
    """
    try:
        engine = ComplianceEngine()
        vendors = engine.load_vendor_catalog(path)
    except ValidationError as e:
        return False, [describe_validation_error(e)]
    except (ValueError, OSError, yaml.YAMLError) as e:
        return False, [str(e)]

    issues = []
    if not vendors:
        issues.append("Catalog contains no vendors")
    return len(issues) == 0, issues
