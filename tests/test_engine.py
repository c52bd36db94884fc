"""Tests for the engine facade: loading, scoring, lifecycle and matching."""

import json

import pytest
import yaml

from compliance_scorer.engine import ComplianceEngine, validate_catalog, validate_template
from compliance_scorer.errors import AssessmentStateError, MalformedScoringRuleError
from compliance_scorer.schema import (
    AssessmentStatus,
    CountBasedRule,
    Gap,
    Priority,
    RiskBand,
    Severity,
)

from conftest import STRONG_ANSWERS, TEMPLATE_DATA, WEAK_SANCTIONS_ANSWERS


@pytest.fixture
def template_file(tmp_path):
    path = tmp_path / "template.json"
    path.write_text(json.dumps(TEMPLATE_DATA))
    return path


@pytest.fixture
def catalog_data():
    return {
        "vendors": [
            {
                "vendorId": "v-screenright",
                "name": "ScreenRight",
                "categories": ["SANCTIONS_SCREENING"],
                "customerSegments": ["SMB"],
                "geographicCoverage": ["GLOBAL"],
                "pricingModel": "SUBSCRIPTION",
                "startingPrice": 15000,
                "deploymentOptions": ["CLOUD"],
                "features": ["API_ACCESS"],
                "implementationDays": 30,
                "rating": 4.5,
            },
            {
                "vendorId": "v-kyc-pro",
                "name": "KYC Pro",
                "categories": ["KYC_AML"],
                "customerSegments": ["ENTERPRISE"],
                "pricingRange": "RANGE_100K_250K",
            },
        ]
    }


class TestTemplateLoading:
    """Tests for loading and validating templates."""

    def test_load_json(self, engine, template_file):
        template = engine.load_template(template_file)
        assert template.template_id == "aml-core"
        assert engine.template is template
        assert engine.template_warnings == []

    def test_load_yaml(self, engine, tmp_path):
        path = tmp_path / "template.yaml"
        path.write_text(yaml.safe_dump(TEMPLATE_DATA))
        template = engine.load_template(path)
        question = template.get_question("q_kyc_controls")
        assert isinstance(question.scoring_rule, CountBasedRule)

    def test_malformed_rule_names_question(self, engine, template_data):
        template_data["sections"][0]["questions"][0]["scoring_rule"] = {"mapping": {"yes": 9}}
        with pytest.raises(MalformedScoringRuleError) as exc_info:
            engine.parse_template(template_data)
        assert exc_info.value.question_id == "q_kyc_program"

    def test_count_based_on_single_select_rejected(self, engine, template_data):
        template_data["sections"][0]["questions"][1]["type"] = "single-select"
        with pytest.raises(MalformedScoringRuleError) as exc_info:
            engine.parse_template(template_data)
        assert exc_info.value.question_id == "q_kyc_controls"

    def test_duplicate_question_ids_rejected(self, engine, template_data):
        template_data["sections"][1]["questions"][0]["question_id"] = "q_kyc_program"
        with pytest.raises(ValueError):
            engine.parse_template(template_data)

    def test_weight_sum_warning(self, engine, template_data):
        template_data["sections"][2]["weight"] = 0.5
        engine.parse_template(template_data)
        assert engine.template_warnings == ["Section weights sum to 1.250, not 1.0"]

    def test_unmapped_declared_option_warning(self, engine, template_data):
        template_data["sections"][2]["questions"][0]["options"].append("quarterly")
        engine.parse_template(template_data)
        assert len(engine.template_warnings) == 1
        assert "q_training_frequency" in engine.template_warnings[0]
        assert "quarterly" in engine.template_warnings[0]

    def test_non_object_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.parse_template(["not", "a", "template"])

    @pytest.mark.parametrize("sections,message", [
        ("s1", "sections must be a list"),
        ([5], "Section 0 must be an object"),
        ([{"section_id": "s1", "questions": {"q1": {}}}], "Questions of section 0 must be a list"),
        ([{"section_id": "s1", "questions": ["q1"]}], "Question 0 of section 0 must be an object"),
    ])
    def test_non_object_sections_and_questions_rejected(self, engine, sections, message):
        with pytest.raises(ValueError, match=message):
            engine.parse_template({"template_id": "t", "sections": sections})

    def test_yaml_unquoted_yes_no_keys(self, engine, tmp_path):
        path = tmp_path / "template.yaml"
        path.write_text(
            "template_id: yaml-keys\n"
            "sections:\n"
            "  - section_id: s1\n"
            "    questions:\n"
            "      - question_id: q1\n"
            "        type: single-select\n"
            "        scoring_rule:\n"
            "          scale: 5\n"
            "          mapping:\n"
            "            yes: 5\n"
            "            partial: 3\n"
            "            no: 1\n"
        )
        template = engine.load_template(path)
        question = template.get_question("q1")
        assert question.scoring_rule.mapping == {"yes": 5, "partial": 3, "no": 1}

        result = engine.score_assessment(template, [{"question_id": "q1", "value": "partial"}])
        assert result.assessment.risk_score == 60


class TestScoreAssessment:
    """End-to-end assessment scoring."""

    def test_weak_sanctions(self, engine, template):
        result = engine.score_assessment(template, WEAK_SANCTIONS_ANSWERS)

        assert result.template_id == "aml-core"
        assert result.assessment.risk_score == 45
        assert result.assessment.risk_band == RiskBand.HIGH
        assert [g.category for g in result.gaps] == ["SANCTIONS_SCREENING", "KYC_AML"]
        assert len(result.risks) == 2

        scores = {s.question_id: s.score for s in result.answer_scores}
        assert scores == {
            "q_kyc_program": 3,
            "q_kyc_controls": 2,
            "q_sanctions_tool": 0,
            "q_sanctions_process": 1,
            "q_training_frequency": 4,
        }

    def test_weak_sanctions_summary(self, engine, template):
        summary = engine.score_assessment(template, WEAK_SANCTIONS_ANSWERS).summary

        assert summary.level == "Fair"
        assert summary.summary == (
            "Fair compliance posture with 2 gaps and 2 risks identified. "
            "Overall risk score: 45/100. Foundational coverage: 50%."
        )
        assert summary.strengths == ["Strong compliance training controls (80%)"]
        assert summary.weaknesses == ["Sanctions Screening gaps identified (10%)"]
        assert summary.priorities == [
            "Address Sanctions Screening gap",
            "Mitigate Sanctions Screening risk",
            "Mitigate KYC AML risk",
        ]

    def test_strong_summary_uses_fallbacks(self, engine, template):
        summary = engine.score_assessment(template, STRONG_ANSWERS).summary
        assert summary.level == "Strong"
        assert summary.weaknesses == ["No major weaknesses identified"]
        assert summary.priorities == ["Continue monitoring and improvement"]

    def test_defaults_to_loaded_template(self, engine, template):
        result = engine.score_assessment(None, STRONG_ANSWERS)
        assert result.assessment.risk_score == 95

    def test_requires_template(self):
        with pytest.raises(ValueError):
            ComplianceEngine().score_assessment(None, [])

    def test_scoring_is_deterministic(self, engine, template):
        first = engine.score_assessment(template, WEAK_SANCTIONS_ANSWERS)
        second = engine.score_assessment(template, list(reversed(WEAK_SANCTIONS_ANSWERS)))
        assert first.assessment == second.assessment
        assert first.gaps == second.gaps
        assert first.risks == second.risks


class TestAssessmentLifecycle:
    """Tests for start, record, complete and abandon."""

    def test_complete(self, engine, template):
        assessment = engine.start_assessment("a-1", "org-1", template)
        assert assessment.status == AssessmentStatus.IN_PROGRESS

        for answer in WEAK_SANCTIONS_ANSWERS:
            assessment = engine.record_answer(assessment, answer)
        completed = engine.complete_assessment(assessment, template)

        assert completed.status == AssessmentStatus.COMPLETED
        assert completed.risk_score == 45
        assert completed.completed_at is not None
        assert [g.category for g in completed.gaps] == ["SANCTIONS_SCREENING", "KYC_AML"]

        by_id = {a.question_id: a for a in completed.answers}
        assert by_id["q_kyc_program"].score == 3
        assert by_id["q_kyc_controls"].explanation
        # The input assessment is left untouched
        assert assessment.status == AssessmentStatus.IN_PROGRESS

    def test_record_replaces_answer(self, engine, template):
        assessment = engine.start_assessment("a-1", "org-1", template)
        assessment = engine.record_answer(assessment, {"question_id": "q_kyc_program", "value": "no"})
        updated = engine.record_answer(assessment, {"question_id": "q_kyc_program", "value": "yes"})

        assert len(updated.answers) == 1
        assert updated.answers[0].value == "yes"
        assert assessment.answers[0].value == "no"

    def test_completed_assessment_is_frozen(self, engine, template):
        assessment = engine.start_assessment("a-1", "org-1", template)
        completed = engine.complete_assessment(assessment, template)

        with pytest.raises(AssessmentStateError):
            engine.record_answer(completed, {"question_id": "q_kyc_program", "value": "yes"})
        with pytest.raises(AssessmentStateError):
            engine.complete_assessment(completed, template)
        with pytest.raises(AssessmentStateError):
            engine.abandon_assessment(completed)

    def test_abandon(self, engine, template):
        assessment = engine.start_assessment("a-1", "org-1", template)
        abandoned = engine.abandon_assessment(assessment)
        assert abandoned.status == AssessmentStatus.ABANDONED
        with pytest.raises(AssessmentStateError):
            engine.complete_assessment(abandoned, template)

    def test_template_mismatch(self, engine, template, template_data):
        assessment = engine.start_assessment("a-1", "org-1", template)
        template_data["template_id"] = "other"
        other = engine.parse_template(template_data)
        with pytest.raises(AssessmentStateError):
            engine.complete_assessment(assessment, other)


class TestVendorCatalog:
    """Tests for loading vendor catalogs."""

    def test_camel_case_catalog(self, engine, catalog_data):
        vendors = engine.parse_vendor_catalog(catalog_data)
        assert [v.vendor_id for v in vendors] == ["v-screenright", "v-kyc-pro"]
        assert vendors[0].implementation_days == 30
        assert vendors[0].features == {"API_ACCESS"}
        assert engine.vendors == vendors

    def test_plain_list(self, engine, catalog_data):
        vendors = engine.parse_vendor_catalog(catalog_data["vendors"])
        assert len(vendors) == 2

    def test_duplicate_vendor_rejected(self, engine, catalog_data):
        catalog_data["vendors"][1]["vendorId"] = "v-screenright"
        with pytest.raises(ValueError, match="Duplicate"):
            engine.parse_vendor_catalog(catalog_data)

    def test_load_yaml_catalog(self, engine, catalog_data, tmp_path):
        path = tmp_path / "vendors.yaml"
        path.write_text(yaml.safe_dump(catalog_data))
        assert len(engine.load_vendor_catalog(path)) == 2


class TestMatchVendors:
    """Tests for the matching pipeline."""

    def test_uses_loaded_catalog(self, engine, catalog_data, organization):
        engine.parse_vendor_catalog(catalog_data)
        gaps = [Gap(category="SANCTIONS_SCREENING", severity=Severity.CRITICAL,
                    priority=Priority.IMMEDIATE, score=0.5)]
        matches = engine.match_vendors(organization, gaps)

        assert [m.vendor.vendor_id for m in matches] == ["v-screenright", "v-kyc-pro"]
        assert matches[0].gaps_covered == 1
        assert matches[1].gaps_covered == 0

    def test_assessment_gaps_feed_matching(self, engine, template, vendors, organization):
        result = engine.score_assessment(template, WEAK_SANCTIONS_ANSWERS, organization)
        matches = engine.match_vendors(organization, result.gaps, vendors, top_n=1)

        assert len(matches) == 1
        assert matches[0].vendor.vendor_id == "v-allround"
        assert matches[0].gaps_covered == 2

    def test_no_vendors(self, engine, organization):
        assert engine.match_vendors(organization) == []


class TestValidateFiles:
    """Tests for the file validation helpers."""

    def test_valid_template(self, template_file):
        is_valid, issues = validate_template(template_file)
        assert is_valid
        assert issues == []

    def test_template_warnings_are_not_errors(self, tmp_path, template_data):
        template_data["sections"][2]["weight"] = 0.5
        path = tmp_path / "template.json"
        path.write_text(json.dumps(template_data))

        is_valid, issues = validate_template(path)
        assert is_valid
        assert issues == ["Warning: Section weights sum to 1.250, not 1.0"]

    def test_invalid_template(self, tmp_path, template_data):
        template_data["sections"][0]["questions"][0]["scoring_rule"] = {"unknown": True}
        path = tmp_path / "template.json"
        path.write_text(json.dumps(template_data))

        is_valid, issues = validate_template(path)
        assert not is_valid
        assert "q_kyc_program" in issues[0]

    def test_non_object_section(self, tmp_path):
        path = tmp_path / "template.json"
        path.write_text(json.dumps({"template_id": "t", "sections": [5]}))

        assert validate_template(path) == (False, ["Section 0 must be an object"])

    def test_missing_template_file(self, tmp_path):
        is_valid, issues = validate_template(tmp_path / "missing.json")
        assert not is_valid
        assert len(issues) == 1

    def test_valid_catalog(self, tmp_path, catalog_data):
        path = tmp_path / "vendors.json"
        path.write_text(json.dumps(catalog_data))
        assert validate_catalog(path) == (True, [])

    def test_empty_catalog(self, tmp_path):
        path = tmp_path / "vendors.json"
        path.write_text(json.dumps({"vendors": []}))
        assert validate_catalog(path) == (False, ["Catalog contains no vendors"])

    def test_invalid_vendor(self, tmp_path):
        path = tmp_path / "vendors.json"
        path.write_text(json.dumps([{"vendorId": "v1", "name": "Bad", "rating": 9}]))
        is_valid, issues = validate_catalog(path)
        assert not is_valid
