"""Compliance assessment scoring and vendor matching engine."""

from .aggregator import aggregate_assessment
from .base_scorer import score_vendor_base
from .engine import ComplianceEngine, validate_catalog, validate_template
from .errors import (
    AssessmentStateError,
    ComplianceScoringError,
    DuplicateAnswerError,
    MalformedScoringRuleError,
    UnmappedOptionError,
)
from .gap_deriver import derive_gaps_and_risks
from .priority_boost import score_vendor_boost
from .ranker import rank_vendors
from .rule_interpreter import parse_scoring_rule, score_answer

__version__ = "1.0.0"

__all__ = [
    'ComplianceEngine',
    'validate_template',
    'validate_catalog',
    'score_answer',
    'parse_scoring_rule',
    'aggregate_assessment',
    'derive_gaps_and_risks',
    'score_vendor_base',
    'score_vendor_boost',
    'rank_vendors',
    'ComplianceScoringError',
    'UnmappedOptionError',
    'MalformedScoringRuleError',
    'DuplicateAnswerError',
    'AssessmentStateError',
]
