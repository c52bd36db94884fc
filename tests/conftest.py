"""Shared fixtures for the compliance scorer tests."""

import copy

import pytest

from compliance_scorer.config import reset_config
from compliance_scorer.engine import ComplianceEngine
from compliance_scorer.schema import Organization, Vendor


KYC_CONTROLS = [
    "Customer due diligence",
    "Enhanced due diligence",
    "PEP screening",
    "Adverse media",
    "Ongoing monitoring",
    "Risk rating",
    "Record keeping",
]

TEMPLATE_DATA = {
    "template_id": "aml-core",
    "name": "AML Core Assessment",
    "version": "2.1",
    "sections": [
        {
            "section_id": "kyc",
            "title": "KYC / AML",
            "weight": 0.4,
            "category": "KYC_AML",
            "questions": [
                {
                    "question_id": "q_kyc_program",
                    "text": "Do you have a documented KYC program?",
                    "type": "single-select",
                    "weight": 2.0,
                    "is_foundational": True,
                    "options": ["yes", "partial", "no"],
                    "scoring_rule": {"scale": 5, "mapping": {"yes": 5, "partial": 3, "no": 1}},
                },
                {
                    "question_id": "q_kyc_controls",
                    "text": "Which KYC controls are in place?",
                    "type": "multi-select",
                    "weight": 1.0,
                    "options": KYC_CONTROLS,
                    "scoring_rule": {
                        "scale": 5,
                        "countBased": True,
                        "ranges": {"1-2": 2, "3-4": 3, "5-6": 4, "7+": 5},
                        "penalties": {"None": -4},
                    },
                },
            ],
        },
        {
            "section_id": "sanctions",
            "title": "Sanctions Screening",
            "weight": 0.35,
            "category": "SANCTIONS_SCREENING",
            "questions": [
                {
                    "question_id": "q_sanctions_tool",
                    "text": "Do you use a sanctions screening tool?",
                    "type": "boolean",
                    "weight": 1.0,
                    "is_foundational": True,
                    "scoring_rule": {"scale": 5, "mapping": {"yes": 5, "no": 0}},
                },
                {
                    "question_id": "q_sanctions_process",
                    "text": "Describe your screening process.",
                    "type": "free-text",
                    "weight": 1.0,
                    "is_required": False,
                    "scoring_rule": {
                        "scale": 5,
                        "keywords": {
                            "positive": ["automated", "daily", "ofac"],
                            "negative": ["manual", "ad hoc"],
                        },
                    },
                },
            ],
        },
        {
            "section_id": "training",
            "title": "Compliance Training",
            "weight": 0.25,
            "category": "COMPLIANCE_TRAINING",
            "questions": [
                {
                    "question_id": "q_training_frequency",
                    "text": "How often do staff complete compliance training?",
                    "type": "single-select",
                    "weight": 1.0,
                    "options": ["annually", "onboarding only", "never"],
                    "scoring_rule": {
                        "scale": 5,
                        "mapping": {"annually": 4, "onboarding only": 2, "never": 0},
                    },
                },
                {
                    "question_id": "q_training_fit",
                    "text": "Is your training program proportionate to your size?",
                    "type": "single-select",
                    "weight": 1.0,
                    "is_required": False,
                    "scoring_rule": {
                        "scale": 5,
                        "contextual": "Expectations scale with company size",
                        "sizeMapping": {
                            "STARTUP": {"annual": 5, "none": 3},
                            "ENTERPRISE": {"annual": 3, "none": 0},
                        },
                    },
                },
            ],
        },
    ],
}

# Weak on sanctions (0.5), middling on KYC (2.67), strong on training (4.0)
WEAK_SANCTIONS_ANSWERS = [
    {"question_id": "q_kyc_program", "value": "partial"},
    {"question_id": "q_kyc_controls", "value": KYC_CONTROLS[:5] + ["None"]},
    {"question_id": "q_sanctions_tool", "value": False},
    {"question_id": "q_sanctions_process", "value": "We screen manually on an ad hoc basis"},
    {"question_id": "q_training_frequency", "value": "annually"},
]

STRONG_ANSWERS = [
    {"question_id": "q_kyc_program", "value": "yes"},
    {"question_id": "q_kyc_controls", "value": list(KYC_CONTROLS)},
    {"question_id": "q_sanctions_tool", "value": True},
    {"question_id": "q_sanctions_process", "value": "Automated daily OFAC screening"},
    {"question_id": "q_training_frequency", "value": "annually"},
]


@pytest.fixture(autouse=True)
def default_config():
    """Every test starts from the default configuration."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def template_data():
    return copy.deepcopy(TEMPLATE_DATA)


@pytest.fixture
def engine():
    return ComplianceEngine()


@pytest.fixture
def template(engine, template_data):
    return engine.parse_template(template_data)


@pytest.fixture
def organization():
    return Organization(
        organization_id="org-1",
        name="Acme Payments",
        size="SMB",
        jurisdictions=["US", "UK"],
        budget="RANGE_10K_50K",
        ranked_priorities=["sanctions-screening", "kyc-aml", "transaction-monitoring"],
        must_have_features=["api-access"],
        deployment_preference="CLOUD",
        implementation_urgency="IMMEDIATE",
    )


@pytest.fixture
def vendors():
    return [
        Vendor(
            vendor_id="v-screenright",
            name="ScreenRight",
            categories=["SANCTIONS_SCREENING"],
            customer_segments=["SMB", "MIDMARKET"],
            geographic_coverage=["GLOBAL"],
            pricing_model="SUBSCRIPTION",
            starting_price=15000,
            deployment_options=["CLOUD"],
            features={"API_ACCESS"},
            implementation_days=30,
            rating=4.5,
        ),
        Vendor(
            vendor_id="v-kyc-pro",
            name="KYC Pro",
            categories=["KYC_AML"],
            customer_segments=["ENTERPRISE"],
            geographic_coverage=["US"],
            pricing_model="LICENSE",
            pricing_range="RANGE_100K_250K",
            deployment_options=["ON_PREMISE"],
            features=set(),
            implementation_days=180,
            rating=4.0,
        ),
        Vendor(
            vendor_id="v-allround",
            name="AllRound Compliance",
            categories=["KYC_AML", "SANCTIONS_SCREENING", "COMPLIANCE_TRAINING"],
            customer_segments=["SMB"],
            geographic_coverage=["us", "uk", "eu"],
            pricing_model="CUSTOM",
            deployment_options=["CLOUD", "HYBRID"],
            features={"api-access", "case-management"},
            implementation_days=60,
            featured=True,
            rating=4.2,
        ),
    ]
