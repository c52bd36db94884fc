"""Exceptions raised by the compliance scoring engine.

None of these are retryable: the engine performs no I/O, so every error is a
data-contract violation to be fixed upstream.
"""

from typing import Any, Optional


class ComplianceScoringError(Exception):
    """Base class for all engine errors."""


class UnmappedOptionError(ComplianceScoringError):
    """An answer option has no entry in its question's mapping rule.

    This is a template data defect. The aggregator excludes the affected
    question and records a warning instead of defaulting to a score.
    """

    def __init__(self, question_id: str, option: Any):
        self.question_id = question_id
        self.option = option
        super().__init__(
            f"Question {question_id!r}: option {option!r} is not mapped by its scoring rule"
        )


class MalformedScoringRuleError(ComplianceScoringError):
    """A scoring rule is missing required fields or carries invalid values.

    Raised while a template is loaded, before any assessment is scored.
    """

    def __init__(self, question_id: Optional[str], reason: str):
        self.question_id = question_id
        self.reason = reason
        where = f"Question {question_id!r}" if question_id else "Scoring rule"
        super().__init__(f"{where}: {reason}")


class DuplicateAnswerError(ComplianceScoringError):
    """More than one answer was supplied for the same question."""

    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(f"Question {question_id!r} has more than one answer")


class AssessmentStateError(ComplianceScoringError):
    """An operation is not allowed in the assessment's current status."""
