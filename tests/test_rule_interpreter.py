"""Tests for rule parsing and answer interpretation."""

import pytest

from compliance_scorer.errors import MalformedScoringRuleError, UnmappedOptionError
from compliance_scorer.rule_interpreter import parse_scoring_rule, score_answer
from compliance_scorer.schema import (
    Answer,
    ContextualRule,
    CountBasedRule,
    KeywordRule,
    MappingRule,
    Organization,
    Question,
    QuestionType,
)


def make_question(rule, qtype="single-select", options=None, question_id="q1"):
    return Question(
        question_id=question_id,
        text="Test question",
        type=qtype,
        scoring_rule=rule,
        options=options or [],
    )


def score(question, value, organization=None):
    return score_answer(question, Answer(question_id=question.question_id, value=value), organization)


COUNT_RULE = {
    "scale": 5,
    "countBased": True,
    "ranges": {"1-2": 2, "3-4": 3, "5-6": 4, "7+": 5},
    "penalties": {"None": -4},
}
OPTIONS = ["a", "b", "c", "d", "e", "f", "g"]


class TestParseScoringRule:
    """Tests for parsing tagged and loosely-shaped rules."""

    def test_mapping_shape(self):
        rule = parse_scoring_rule({"scale": 5, "mapping": {"yes": 5, "no": 1}}, "q1")
        assert isinstance(rule, MappingRule)
        assert rule.mapping == {"yes": 5, "no": 1}

    def test_count_based_shape(self):
        rule = parse_scoring_rule(COUNT_RULE, "q1")
        assert isinstance(rule, CountBasedRule)
        assert [b.label for b in rule.ranges] == ["1-2", "3-4", "5-6", "7+"]
        assert rule.ranges[-1].upper is None
        assert rule.penalties == {"None": -4}

    def test_ranges_sorted_by_lower_bound(self):
        rule = parse_scoring_rule({"countBased": True, "ranges": {"3+": 4, "0": 0, "1-2": 2}})
        assert [b.lower for b in rule.ranges] == [0, 1, 3]

    def test_keyword_shape(self):
        rule = parse_scoring_rule(
            {"keywords": {"positive": ["automated"], "negative": ["manual"]}}, "q1"
        )
        assert isinstance(rule, KeywordRule)
        assert rule.positive == ["automated"]

    def test_criteria_shape(self):
        rule = parse_scoring_rule(
            {"scale": 5, "criteria": {"5": "Fully automated", "1": "None"}, "highRiskFlags": ["x"]}
        )
        assert isinstance(rule, KeywordRule)
        assert rule.criteria == {5: "Fully automated", 1: "None"}

    def test_contextual_shape(self):
        rule = parse_scoring_rule({"scale": 5, "contextual": True, "businessSize": "Depends on size"})
        assert isinstance(rule, ContextualRule)
        assert rule.guidance == "Depends on size"

    def test_tagged_shape(self):
        rule = parse_scoring_rule({"kind": "mapping", "mapping": {"a": 2}})
        assert isinstance(rule, MappingRule)

    @pytest.mark.parametrize("raw", [
        {"mapping": {}},
        {"mapping": {"yes": 6}},
        {"mapping": {"yes": -1}},
        {"scale": 10, "mapping": {"yes": 5}},
        {"countBased": True, "ranges": {"1-3": 2, "3-4": 3}},
        {"countBased": True, "ranges": {"1-2": 4, "3+": 2}},
        {"countBased": True, "ranges": {"1+": 2, "3-4": 3}},
        {"countBased": True, "ranges": {"one-two": 2}},
        {"countBased": True, "ranges": {}},
        {"countBased": True, "ranges": {"1+": 5}, "penalties": {"None": 2}},
        {"keywords": {"positive": [], "negative": []}},
        {"something": "else"},
        None,
    ])
    def test_malformed_rules_raise(self, raw):
        with pytest.raises(MalformedScoringRuleError) as exc_info:
            parse_scoring_rule(raw, "q_bad")
        assert exc_info.value.question_id == "q_bad"
        assert "q_bad" in str(exc_info.value)

    def test_count_based_requires_multi_select(self):
        with pytest.raises(MalformedScoringRuleError, match="multi-select"):
            parse_scoring_rule(COUNT_RULE, "q1", QuestionType.SINGLE_SELECT)

    def test_count_based_on_multi_select_accepted(self):
        rule = parse_scoring_rule(COUNT_RULE, "q1", QuestionType.MULTI_SELECT)
        assert isinstance(rule, CountBasedRule)


class TestQuestionType:
    """Tests for question type parsing."""

    @pytest.mark.parametrize("raw,expected", [
        ("single-select", QuestionType.SINGLE_SELECT),
        ("SELECT", QuestionType.SINGLE_SELECT),
        ("MULTISELECT", QuestionType.MULTI_SELECT),
        ("multi_select", QuestionType.MULTI_SELECT),
        ("TEXT", QuestionType.FREE_TEXT),
        ("Boolean", QuestionType.BOOLEAN),
    ])
    def test_from_string(self, raw, expected):
        assert QuestionType.from_string(raw) == expected

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            QuestionType.from_string("slider")


class TestMappingRule:
    """Tests for exact option lookup."""

    def test_partial_maps_to_three(self):
        question = make_question({"scale": 5, "mapping": {"yes": 5, "partial": 3, "no": 1}})
        result = score(question, "partial")
        assert result.score == 3
        assert result.question_id == "q1"
        assert result.notes

    def test_unmapped_option_raises(self):
        question = make_question({"mapping": {"yes": 5, "no": 1}})
        with pytest.raises(UnmappedOptionError) as exc_info:
            score(question, "maybe")
        assert exc_info.value.option == "maybe"
        assert exc_info.value.question_id == "q1"

    def test_lookup_is_exact(self):
        question = make_question({"mapping": {"yes": 5, "no": 1}})
        with pytest.raises(UnmappedOptionError):
            score(question, "Yes")

    def test_boolean_prefers_true_false_keys(self):
        question = make_question({"mapping": {"TRUE": 4, "yes": 5, "False": 1, "no": 0}}, "boolean")
        assert score(question, True).score == 4
        assert score(question, False).score == 1

    def test_boolean_falls_back_to_yes_no(self):
        question = make_question({"mapping": {"Yes": 5, "No": 0}}, "boolean")
        assert score(question, True).score == 5
        assert score(question, False).score == 0

    def test_boolean_question_accepts_text_values(self):
        question = make_question({"mapping": {"yes": 5, "no": 0}}, "boolean")
        assert score(question, "true").score == 5
        assert score(question, "No").score == 0

    def test_boolean_without_keys_raises(self):
        question = make_question({"mapping": {"always": 5}}, "boolean")
        with pytest.raises(UnmappedOptionError):
            score(question, True)

    def test_multi_select_scores_rounded_mean(self):
        question = make_question({"mapping": {"a": 5, "b": 2, "c": 0}}, "multi-select")
        assert score(question, ["a", "b"]).score == 4  # 3.5 rounds half up
        assert score(question, ["b", "c"]).score == 1

    def test_multi_select_any_unmapped_raises(self):
        question = make_question({"mapping": {"a": 5, "b": 2}}, "multi-select")
        with pytest.raises(UnmappedOptionError):
            score(question, ["a", "z"])

    def test_unanswered_scores_zero(self):
        question = make_question({"mapping": {"yes": 5}})
        result = score(question, None)
        assert result.score == 0
        assert result.notes == ["Question not answered"]

    def test_empty_selection_is_unanswered(self):
        question = make_question({"mapping": {"a": 5, "b": 2}}, "multi-select")
        result = score(question, [])
        assert result.score == 0
        assert result.notes == ["Question not answered"]

    def test_boolean_keys_become_yes_no(self):
        rule = parse_scoring_rule({"mapping": {True: 5, "partial": 3, False: 1}}, "q1")
        assert rule.mapping == {"yes": 5, "partial": 3, "no": 1}

    def test_numeric_keys_become_strings(self):
        question = make_question({"mapping": {1: 1, 5: 5}})
        assert score(question, "5").score == 5


class TestCountBasedRule:
    """Tests for selection counting with penalties."""

    @pytest.fixture
    def question(self):
        return make_question(COUNT_RULE, "multi-select", OPTIONS)

    def test_penalty_lowers_adjusted_count(self, question):
        # 5 valid options + None(-4) -> adjusted count 1 -> range 1-2
        result = score(question, ["a", "b", "c", "d", "e", "None"])
        assert result.score == 2
        assert any("Penalty -4" in n for n in result.notes)

    @pytest.mark.parametrize("count,expected", [(1, 2), (2, 2), (3, 3), (4, 3), (5, 4), (6, 4), (7, 5)])
    def test_ranges(self, question, count, expected):
        assert score(question, OPTIONS[:count]).score == expected

    def test_empty_selection_maps_to_lowest_range(self, question):
        assert score(question, []).score == 2

    def test_penalty_below_lowest_range_scores_zero(self, question):
        assert score(question, ["None"]).score == 0
        assert score(question, ["a", "None"]).score == 0

    def test_duplicates_counted_once(self, question):
        assert score(question, ["a", "a", "a"]).score == score(question, ["a"]).score

    def test_unknown_option_raises(self, question):
        with pytest.raises(UnmappedOptionError):
            score(question, ["a", "zzz"])

    def test_undeclared_options_are_counted(self):
        question = make_question(COUNT_RULE, "multi-select")
        assert score(question, ["x", "y", "z"]).score == 3

    def test_single_string_counts_as_one(self, question):
        assert score(question, "a").score == 2


class TestKeywordRule:
    """Tests for free-text keyword scanning."""

    @pytest.fixture
    def question(self):
        return make_question(
            {
                "keywords": {"positive": ["automated", "daily", "ofac"], "negative": ["manual", "ad hoc"]},
                "criteria": {5: "Fully automated real-time screening"},
            },
            "free-text",
        )

    def test_no_keywords_is_neutral(self, question):
        assert score(question, "We have a process").score == 3

    def test_positive_keywords(self, question):
        assert score(question, "Automated screening").score == 4

    def test_positive_capped_at_two(self, question):
        assert score(question, "automated daily OFAC screening").score == 5

    def test_negative_keywords(self, question):
        result = score(question, "Screening is manual and ad hoc")
        assert result.score == 1
        assert any("manual" in n for n in result.notes)

    def test_mixed_keywords(self, question):
        assert score(question, "automated but manual review").score == 3

    def test_criteria_anchor_match(self, question):
        assert score(question, "  fully automated REAL-TIME screening ").score == 5

    @pytest.mark.parametrize("blank", ["", "   ", "\n\t"])
    def test_blank_text_is_unanswered(self, question, blank):
        result = score(question, blank)
        assert result.score == 0
        assert result.notes == ["Question not answered"]


class TestContextualRule:
    """Tests for organization-size dependent scoring."""

    @pytest.fixture
    def question(self):
        return make_question({
            "contextual": "Scale with company size",
            "sizeMapping": {"STARTUP": {"annual": 5, "none": 3}, "ENTERPRISE": {"annual": 3, "none": 0}},
        })

    def test_without_organization_is_neutral(self, question):
        result = score(question, "none")
        assert result.score == 3
        assert "neutral" in result.notes[0]

    def test_without_size_is_neutral(self, question):
        org = Organization(organization_id="o1")
        assert score(question, "none", org).score == 3

    def test_uses_size_table(self, question):
        assert score(question, "none", Organization(organization_id="o1", size="ENTERPRISE")).score == 0
        assert score(question, "annual", Organization(organization_id="o1", size="STARTUP")).score == 5

    def test_size_without_table_is_neutral(self, question):
        result = score(question, "annual", Organization(organization_id="o1", size="SMB"))
        assert result.score == 3
        assert "SMB" in result.notes[0]

    def test_boolean_keys_in_size_tables(self):
        question = make_question(
            {"contextual": True, "sizeMapping": {"SMB": {True: 4, False: 2}}}, "boolean"
        )
        org = Organization(organization_id="o1", size="SMB")
        assert score(question, True, org).score == 4
        assert score(question, "no", org).score == 2
