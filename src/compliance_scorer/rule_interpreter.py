"""Rule Interpreter - evaluates one answer against its question's scoring rule.

Every rule produces an integer sub-score on the 0-5 scale plus notes that
explain how the score was reached. Interpretation is pure: no I/O and no
state beyond the inputs.
"""

import logging
import math
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError

from .errors import MalformedScoringRuleError, UnmappedOptionError
from .schema import (
    NEUTRAL_SCORE,
    SCORE_MAX,
    SCORE_MIN,
    Answer,
    AnswerScore,
    ContextualRule,
    CountBasedRule,
    KeywordRule,
    MappingRule,
    Organization,
    Question,
    QuestionType,
    ScoringRule,
    coerce_rule_payload,
)

logger = logging.getLogger(__name__)

_RULE_ADAPTER = TypeAdapter(ScoringRule)

_TRUE_KEYS = ("true", "yes")
_FALSE_KEYS = ("false", "no")


def describe_validation_error(exc: ValidationError) -> str:
    """Flatten a pydantic ValidationError into one readable line."""
    parts = []
    for error in exc.errors():
        loc = ".".join(str(p) for p in error.get("loc", ()) if p not in ("function-after", "function-before"))
        msg = error.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def parse_scoring_rule(
    raw: Any,
    question_id: Optional[str] = None,
    question_type: Optional[QuestionType] = None,
) -> ScoringRule:
    """Parse and validate a scoring rule.

    Args:
        raw: Tagged rule dict (``{"kind": "mapping", ...}``), a loosely-shaped
            template rule, or an already-built rule model.
        question_id: Owning question, used in error messages.
        question_type: Owning question's type, when known. Count-based rules
            are only valid on multi-select questions.

    Returns:
        The validated rule model.

    Raises:
        MalformedScoringRuleError: If the rule is missing fields or carries
            invalid values.
    """
    try:
        rule = _RULE_ADAPTER.validate_python(coerce_rule_payload(raw))
    except ValidationError as e:
        raise MalformedScoringRuleError(question_id, describe_validation_error(e)) from e
    except ValueError as e:
        raise MalformedScoringRuleError(question_id, str(e)) from e

    if isinstance(rule, CountBasedRule) and question_type not in (None, QuestionType.MULTI_SELECT):
        raise MalformedScoringRuleError(
            question_id, "count-based rules apply to multi-select questions only"
        )
    return rule


def _clamp(score: float) -> int:
    return int(max(SCORE_MIN, min(SCORE_MAX, score)))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class RuleInterpreter:
    """Scores answers against the four scoring rule kinds.

    Scoring principles:
    - Unmapped options are data defects and raise, never default
    - Missing organization context falls back to the neutral score
    - Identical inputs always produce identical scores
    """

    def score(
        self,
        question: Question,
        answer: Answer,
        organization: Optional[Organization] = None,
    ) -> AnswerScore:
        """Score one answer.

        Args:
            question: The question being answered (carries the rule)
            answer: The answer; None, blank text or an empty selection means unanswered
            organization: Optional organization context for contextual rules

        Returns:
            AnswerScore with a 0-5 score and notes

        Raises:
            UnmappedOptionError: If a selected option has no score in the rule.
        """
        if question.is_blank(answer.value):
            return AnswerScore(
                question_id=question.question_id,
                score=SCORE_MIN,
                notes=["Question not answered"],
            )

        rule = question.scoring_rule
        if isinstance(rule, MappingRule):
            score, notes = self._score_mapping(question, rule, answer.value)
        elif isinstance(rule, CountBasedRule):
            score, notes = self._score_count_based(question, rule, answer.value)
        elif isinstance(rule, KeywordRule):
            score, notes = self._score_keyword(rule, answer.value)
        elif isinstance(rule, ContextualRule):
            score, notes = self._score_contextual(question, rule, answer.value, organization)
        else:
            raise TypeError(f"Unsupported scoring rule type: {type(rule).__name__}")

        logger.debug("Scored %s = %d (%s)", question.question_id, score, rule.kind)
        return AnswerScore(question_id=question.question_id, score=score, notes=notes)

    # -------------------------------------------------------------------------
    # mapping
    # -------------------------------------------------------------------------

    def _lookup(self, question: Question, table: dict[str, int], value: Any) -> Optional[int]:
        """Look up a single option; booleans fall back to true/false then yes/no."""
        if isinstance(value, bool):
            return self._lookup_boolean(table, value)
        if value in table:
            return table[value]
        if question.type == QuestionType.BOOLEAN and isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_KEYS:
                return self._lookup_boolean(table, True)
            if lowered in _FALSE_KEYS:
                return self._lookup_boolean(table, False)
        return None

    @staticmethod
    def _lookup_boolean(table: dict[str, int], value: bool) -> Optional[int]:
        lowered = {k.lower(): v for k, v in table.items()}
        for key in (_TRUE_KEYS if value else _FALSE_KEYS):
            if key in lowered:
                return lowered[key]
        return None

    def _score_mapping(
        self, question: Question, rule: MappingRule, value: Any
    ) -> tuple[int, list[str]]:
        if isinstance(value, list):
            scores = []
            for option in value:
                mapped = self._lookup(question, rule.mapping, option)
                if mapped is None:
                    raise UnmappedOptionError(question.question_id, option)
                scores.append(mapped)
            mean = sum(scores) / len(scores)
            score = _clamp(_round_half_up(mean))
            return score, [f"Mean of {len(scores)} mapped options: {mean:.2f}"]

        mapped = self._lookup(question, rule.mapping, value)
        if mapped is None:
            raise UnmappedOptionError(question.question_id, value)
        return _clamp(mapped), [f"Option {value!r} maps to {mapped}"]

    # -------------------------------------------------------------------------
    # count_based
    # -------------------------------------------------------------------------

    def _score_count_based(
        self, question: Question, rule: CountBasedRule, value: Any
    ) -> tuple[int, list[str]]:
        if isinstance(value, bool):
            raise UnmappedOptionError(question.question_id, value)
        selected = [value] if isinstance(value, str) else list(value)
        # Selections are a set
        selected = list(dict.fromkeys(selected))

        if question.options:
            allowed = set(question.options) | set(rule.penalties)
            for option in selected:
                if option not in allowed:
                    raise UnmappedOptionError(question.question_id, option)

        penalties = [(o, rule.penalties[o]) for o in selected if o in rule.penalties]
        count = sum(1 for o in selected if o not in rule.penalties)
        adjusted = count + sum(p for _, p in penalties)

        notes = [f"{count} option(s) selected"]
        for option, penalty in penalties:
            notes.append(f"Penalty {penalty} for {option!r}")

        lowest = rule.ranges[0]
        if adjusted < lowest.lower:
            if penalties:
                notes.append(f"Adjusted count {adjusted} is below the lowest range")
                return SCORE_MIN, notes
            notes.append(f"Count {adjusted} maps to the lowest range {lowest.label}")
            return _clamp(lowest.score), notes

        band = lowest
        for candidate in rule.ranges:
            if candidate.lower <= adjusted:
                band = candidate
        notes.append(f"Adjusted count {adjusted} falls in range {band.label}")
        return _clamp(band.score), notes

    # -------------------------------------------------------------------------
    # keyword
    # -------------------------------------------------------------------------

    def _score_keyword(self, rule: KeywordRule, value: Any) -> tuple[int, list[str]]:
        if isinstance(value, list):
            text = " ".join(str(v) for v in value)
        else:
            text = str(value)
        lowered = text.strip().lower()

        for anchor_score, anchor_text in sorted(rule.criteria.items(), reverse=True):
            if lowered == anchor_text.strip().lower():
                return _clamp(anchor_score), [f"Answer matches the level {anchor_score} description"]

        positive = [k for k in rule.positive if k.lower() in lowered]
        negative = [k for k in rule.negative if k.lower() in lowered]
        score = _clamp(NEUTRAL_SCORE + min(2, len(positive)) - min(2, len(negative)))

        notes = []
        if positive:
            notes.append(f"Positive indicators: {', '.join(positive)}")
        if negative:
            notes.append(f"Negative indicators: {', '.join(negative)}")
        if not notes:
            notes.append("No indicators found; neutral score")
        return score, notes

    # -------------------------------------------------------------------------
    # contextual
    # -------------------------------------------------------------------------

    def _score_contextual(
        self,
        question: Question,
        rule: ContextualRule,
        value: Any,
        organization: Optional[Organization],
    ) -> tuple[int, list[str]]:
        size = organization.size if organization else None
        if size is None:
            return NEUTRAL_SCORE, ["No organization size provided; neutral score applied"]

        table = rule.size_mapping.get(size)
        if not table:
            return NEUTRAL_SCORE, [f"No scoring guidance for {size.value} organizations; neutral score applied"]

        options = value if isinstance(value, list) else [value]
        scores = []
        for option in options:
            mapped = self._lookup(question, table, option)
            if mapped is None:
                return NEUTRAL_SCORE, [
                    f"No {size.value} guidance for option {option!r}; neutral score applied"
                ]
            scores.append(mapped)
        score = _clamp(_round_half_up(sum(scores) / len(scores)))
        return score, [f"Scored for a {size.value} organization"]


_interpreter = RuleInterpreter()


def score_answer(
    question: Question,
    answer: Answer,
    org_context: Optional[Organization] = None,
) -> AnswerScore:
    """Score one answer against its question's rule."""
    return _interpreter.score(question, answer, org_context)
