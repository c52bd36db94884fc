"""Pydantic models for the Compliance Scoring Engine.

Input schemas for templates, answers, organizations and vendors, and output
schemas for assessment scores, gaps, risks and vendor matches.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def normalize_category(value: str) -> str:
    """Canonical UPPER_SNAKE form of a category, priority or feature tag.

    ``"sanctions-screening"``, ``"Sanctions Screening"`` and
    ``"SANCTIONS_SCREENING"`` all normalize to ``"SANCTIONS_SCREENING"``.
    """
    return re.sub(r"[\s\-/]+", "_", value.strip()).upper()


def humanize_category(value: str) -> str:
    """Display form of a category: ``SANCTIONS_SCREENING`` -> ``Sanctions Screening``."""
    words = normalize_category(value).split("_")
    return " ".join(w if w in ("KYC", "AML", "ESG", "AI") else w.capitalize() for w in words if w)


# =============================================================================
# Template Enums
# =============================================================================


class QuestionType(str, Enum):
    """Answer shape expected by a question."""
    SINGLE_SELECT = "single-select"
    MULTI_SELECT = "multi-select"
    FREE_TEXT = "free-text"
    BOOLEAN = "boolean"

    @classmethod
    def from_string(cls, value: str) -> "QuestionType":
        """Parse question type, accepting the legacy template spellings."""
        mapping = {
            "singleselect": cls.SINGLE_SELECT,
            "select": cls.SINGLE_SELECT,
            "multiselect": cls.MULTI_SELECT,
            "freetext": cls.FREE_TEXT,
            "text": cls.FREE_TEXT,
            "boolean": cls.BOOLEAN,
            "bool": cls.BOOLEAN,
        }
        key = value.lower().replace("-", "").replace("_", "").replace(" ", "")
        if key not in mapping:
            raise ValueError(f"Unknown question type: {value!r}")
        return mapping[key]


class AssessmentStatus(str, Enum):
    """Assessment lifecycle status."""
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


# =============================================================================
# Finding Enums
# =============================================================================


class Severity(str, Enum):
    """Gap severity."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Priority(str, Enum):
    """Remediation priority of a gap."""
    IMMEDIATE = "IMMEDIATE"
    SHORT_TERM = "SHORT_TERM"
    LONG_TERM = "LONG_TERM"


class Likelihood(str, Enum):
    """Likelihood that a risk materializes."""
    RARE = "RARE"
    UNLIKELY = "UNLIKELY"
    POSSIBLE = "POSSIBLE"
    LIKELY = "LIKELY"
    CERTAIN = "CERTAIN"


class Impact(str, Enum):
    """Impact of a risk if it materializes."""
    NEGLIGIBLE = "NEGLIGIBLE"
    MINOR = "MINOR"
    MODERATE = "MODERATE"
    MAJOR = "MAJOR"
    CATASTROPHIC = "CATASTROPHIC"


class RiskLevel(str, Enum):
    """Combined likelihood x impact level."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class RiskBand(str, Enum):
    """Band of the overall assessment risk score."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class EffortRange(str, Enum):
    """Estimated remediation effort for a gap."""
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"


# =============================================================================
# Organization and Vendor Enums
# =============================================================================


class CompanySize(str, Enum):
    """Organization size band / vendor customer segment."""
    STARTUP = "STARTUP"
    SMB = "SMB"
    MIDMARKET = "MIDMARKET"
    ENTERPRISE = "ENTERPRISE"


class BudgetRange(str, Enum):
    """Budget band, also used for vendor price bands and cost estimates."""
    UNDER_10K = "UNDER_10K"
    RANGE_10K_50K = "RANGE_10K_50K"
    RANGE_50K_100K = "RANGE_50K_100K"
    RANGE_100K_250K = "RANGE_100K_250K"
    OVER_250K = "OVER_250K"

    @property
    def bounds(self) -> tuple[float, float]:
        """Numeric (min, max) of the band."""
        return _BUDGET_BOUNDS[self]

    @classmethod
    def from_amount(cls, amount: float) -> "BudgetRange":
        """Band containing a price or budget amount."""
        for band in cls:
            low, high = band.bounds
            if low <= amount < high:
                return band
        return cls.OVER_250K


_BUDGET_BOUNDS = {
    BudgetRange.UNDER_10K: (0.0, 10_000.0),
    BudgetRange.RANGE_10K_50K: (10_000.0, 50_000.0),
    BudgetRange.RANGE_50K_100K: (50_000.0, 100_000.0),
    BudgetRange.RANGE_100K_250K: (100_000.0, 250_000.0),
    BudgetRange.OVER_250K: (250_000.0, float("inf")),
}


class PricingModel(str, Enum):
    """Vendor pricing model."""
    SUBSCRIPTION = "SUBSCRIPTION"
    LICENSE = "LICENSE"
    USAGE = "USAGE"
    CUSTOM = "CUSTOM"


class DeploymentModel(str, Enum):
    """Deployment model offered by a vendor or preferred by an organization."""
    CLOUD = "CLOUD"
    ON_PREMISE = "ON_PREMISE"
    HYBRID = "HYBRID"
    FLEXIBLE = "FLEXIBLE"  # Preference only: any model is acceptable


class ImplementationUrgency(str, Enum):
    """How soon the organization needs a solution in place."""
    IMMEDIATE = "IMMEDIATE"
    PLANNED = "PLANNED"
    STRATEGIC = "STRATEGIC"
    LONG_TERM = "LONG_TERM"


class MatchQuality(str, Enum):
    """Human-readable bucket of a vendor's total match score."""
    HIGHLY_RELEVANT = "Highly Relevant"
    GOOD_MATCH = "Good Match"
    FAIR_MATCH = "Fair Match"


# =============================================================================
# Scoring Rules
# =============================================================================

SCORE_MIN = 0
SCORE_MAX = 5
NEUTRAL_SCORE = 3

AnswerValue = Optional[Union[bool, str, list[str]]]


def _check_score(value: int, what: str) -> int:
    if not SCORE_MIN <= value <= SCORE_MAX:
        raise ValueError(f"{what} score {value} outside {SCORE_MIN}-{SCORE_MAX}")
    return value


def _option_keys(table: Any) -> Any:
    # YAML reads bare yes/no keys as booleans
    if not isinstance(table, dict):
        return table
    keys = {True: "yes", False: "no"}
    return {keys[k] if isinstance(k, bool) else str(k): v for k, v in table.items()}


class MappingRule(BaseModel):
    """Exact option (or boolean) to score lookup table."""
    kind: Literal["mapping"] = "mapping"
    mapping: dict[str, int]

    @field_validator("mapping", mode="before")
    @classmethod
    def _stringify_keys(cls, value: Any) -> Any:
        return _option_keys(value)

    @field_validator("mapping")
    @classmethod
    def _validate_mapping(cls, value: dict[str, int]) -> dict[str, int]:
        if not value:
            raise ValueError("mapping rule has an empty mapping table")
        for option, score in value.items():
            _check_score(score, f"option {option!r}")
        return value


class RangeBand(BaseModel):
    """One band of a count-based rule; ``upper`` is None for a trailing ``N+`` band."""
    lower: int
    upper: Optional[int] = None
    score: int

    @property
    def label(self) -> str:
        if self.upper is None:
            return f"{self.lower}+"
        if self.upper == self.lower:
            return str(self.lower)
        return f"{self.lower}-{self.upper}"

    @classmethod
    def parse(cls, label: str, score: int) -> "RangeBand":
        """Parse a ``"1-2"``, ``"7+"`` or ``"0"`` range label."""
        text = str(label).strip()
        match = re.fullmatch(r"(\d+)\s*\+", text)
        if match:
            return cls(lower=int(match.group(1)), upper=None, score=score)
        match = re.fullmatch(r"(\d+)\s*-\s*(\d+)", text)
        if match:
            return cls(lower=int(match.group(1)), upper=int(match.group(2)), score=score)
        if text.isdigit():
            return cls(lower=int(text), upper=int(text), score=score)
        raise ValueError(f"unparsable range label {label!r}")


class CountBasedRule(BaseModel):
    """Multi-select rule scoring the number of selected options."""
    kind: Literal["count_based"] = "count_based"
    ranges: list[RangeBand]
    penalties: dict[str, int] = Field(default_factory=dict)

    @field_validator("ranges", mode="before")
    @classmethod
    def _parse_ranges(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return [RangeBand.parse(label, score) for label, score in value.items()]
        return value

    @field_validator("penalties")
    @classmethod
    def _validate_penalties(cls, value: dict[str, int]) -> dict[str, int]:
        for option, adjustment in value.items():
            if adjustment > 0:
                raise ValueError(f"penalty for {option!r} must be negative, got {adjustment}")
        return value

    @model_validator(mode="after")
    def _validate_bands(self) -> "CountBasedRule":
        if not self.ranges:
            raise ValueError("count-based rule declares no ranges")
        bands = sorted(self.ranges, key=lambda b: b.lower)
        previous: Optional[RangeBand] = None
        for band in bands:
            _check_score(band.score, f"range {band.label}")
            if band.upper is not None and band.upper < band.lower:
                raise ValueError(f"range {band.label} has upper bound below lower bound")
            if previous is not None:
                if previous.upper is None:
                    raise ValueError(f"open-ended range {previous.label} must be the last range")
                if band.lower <= previous.upper:
                    raise ValueError(f"ranges {previous.label} and {band.label} overlap")
                if band.score < previous.score:
                    raise ValueError(
                        f"range scores must not decrease ({previous.label}={previous.score}, "
                        f"{band.label}={band.score})"
                    )
            previous = band
        self.ranges = bands
        return self


class KeywordRule(BaseModel):
    """Free-text rule scanning for positive and negative keywords."""
    kind: Literal["keyword"] = "keyword"
    positive: list[str] = Field(default_factory=list)
    negative: list[str] = Field(default_factory=list)
    # Anchor descriptions by score (e.g. {5: "Fully automated ..."})
    criteria: dict[int, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate_keywords(self) -> "KeywordRule":
        if not (self.positive or self.negative or self.criteria):
            raise ValueError("keyword rule declares no keywords and no criteria")
        for score in self.criteria:
            _check_score(score, "criteria anchor")
        return self


class ContextualRule(BaseModel):
    """Rule whose scoring depends on the organization's declared size."""
    kind: Literal["contextual"] = "contextual"
    guidance: Optional[str] = None
    size_mapping: dict[CompanySize, dict[str, int]] = Field(default_factory=dict)

    @field_validator("size_mapping", mode="before")
    @classmethod
    def _stringify_keys(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {size: _option_keys(table) for size, table in value.items()}
        return value

    @field_validator("size_mapping")
    @classmethod
    def _validate_size_mapping(
        cls, value: dict[CompanySize, dict[str, int]]
    ) -> dict[CompanySize, dict[str, int]]:
        for size, table in value.items():
            for option, score in table.items():
                _check_score(score, f"{size.value} option {option!r}")
        return value


ScoringRule = Annotated[
    Union[MappingRule, CountBasedRule, KeywordRule, ContextualRule],
    Field(discriminator="kind"),
]


def coerce_rule_payload(raw: Any) -> Any:
    """Convert a loosely-shaped template rule into its tagged form.

    Template data authored for the original product describes rules by field
    presence (``mapping``, ``countBased``/``ranges``, ``keywords``,
    ``criteria``, ``contextual``/``businessSize``). Already-tagged payloads and
    model instances pass through unchanged.
    """
    if not isinstance(raw, dict) or "kind" in raw:
        return raw

    scale = raw.get("scale", SCORE_MAX)
    if scale != SCORE_MAX:
        raise ValueError(f"unsupported scale {scale}; rules must score on 0-{SCORE_MAX}")

    if raw.get("countBased") or "ranges" in raw:
        return {
            "kind": "count_based",
            "ranges": raw.get("ranges") or {},
            "penalties": raw.get("penalties") or {},
        }
    if "mapping" in raw:
        return {"kind": "mapping", "mapping": raw["mapping"]}
    if "keywords" in raw or "criteria" in raw:
        keywords = raw.get("keywords") or {}
        if not isinstance(keywords, dict):
            raise ValueError("keywords must be an object with positive/negative lists")
        return {
            "kind": "keyword",
            "positive": keywords.get("positive", []),
            "negative": keywords.get("negative", []),
            "criteria": raw.get("criteria") or {},
        }
    if "contextual" in raw or "businessSize" in raw:
        guidance = raw.get("contextual")
        if not isinstance(guidance, str):
            guidance = raw.get("businessSize")
        return {
            "kind": "contextual",
            "guidance": guidance if isinstance(guidance, str) else None,
            "size_mapping": raw.get("sizeMapping") or raw.get("size_mapping") or {},
        }
    raise ValueError(f"unrecognized scoring rule shape with keys {sorted(raw)}")


# =============================================================================
# Template Models
# =============================================================================


class Question(BaseModel):
    """A scored question within a template section."""
    question_id: str
    text: str = ""
    type: QuestionType
    weight: float = Field(1.0, ge=0)
    is_foundational: bool = False
    is_required: bool = True
    scoring_rule: ScoringRule
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    options: list[str] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value: Any) -> Any:
        if isinstance(value, str) and not isinstance(value, QuestionType):
            return QuestionType.from_string(value)
        return value

    @field_validator("scoring_rule", mode="before")
    @classmethod
    def _coerce_rule(cls, value: Any) -> Any:
        return coerce_rule_payload(value)

    @model_validator(mode="after")
    def _check_rule_fits_type(self) -> "Question":
        if isinstance(self.scoring_rule, CountBasedRule) and self.type != QuestionType.MULTI_SELECT:
            raise ValueError("count-based rules apply to multi-select questions only")
        return self

    def is_blank(self, value: "AnswerValue") -> bool:
        """True when ``value`` carries no response to this question.

        Blank text and empty selections count as unanswered, except under a
        count-based rule where selecting nothing is a valid zero count.
        """
        if value is None:
            return True
        if isinstance(value, str):
            return not value.strip()
        if isinstance(value, list):
            return not value and not isinstance(self.scoring_rule, CountBasedRule)
        return False


class Section(BaseModel):
    """An ordered group of questions with a share of the overall score."""
    section_id: str
    title: str = ""
    weight: float = Field(1.0, ge=0)
    category: Optional[str] = None
    questions: list[Question] = Field(default_factory=list)


class Template(BaseModel):
    """An assessment questionnaire."""
    template_id: str
    name: str = ""
    version: str = "1.0"
    sections: list[Section] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "Template":
        seen: set[str] = set()
        for _, question in self.iter_questions():
            if question.question_id in seen:
                raise ValueError(f"duplicate question_id {question.question_id!r}")
            seen.add(question.question_id)
        section_ids = [s.section_id for s in self.sections]
        if len(section_ids) != len(set(section_ids)):
            raise ValueError("section ids must be unique")
        return self

    def iter_questions(self):
        """Yield (section, question) pairs in template order."""
        for section in self.sections:
            for question in section.questions:
                yield section, question

    def get_question(self, question_id: str) -> Optional[Question]:
        for _, question in self.iter_questions():
            if question.question_id == question_id:
                return question
        return None


# =============================================================================
# Assessment Models
# =============================================================================


class Answer(BaseModel):
    """A response to one question."""
    question_id: str
    value: AnswerValue = None
    score: Optional[int] = Field(None, ge=SCORE_MIN, le=SCORE_MAX)
    explanation: Optional[str] = None

    @property
    def is_answered(self) -> bool:
        if isinstance(self.value, str):
            return bool(self.value.strip())
        return self.value is not None


class AnswerScore(BaseModel):
    """Result of evaluating one answer against its scoring rule."""
    question_id: str
    score: int = Field(..., ge=SCORE_MIN, le=SCORE_MAX)
    notes: list[str] = Field(default_factory=list)


class Gap(BaseModel):
    """A compliance category scoring below the adequacy threshold."""
    category: str
    severity: Severity
    priority: Priority
    score: float
    title: str = ""
    description: str = ""
    estimated_effort: EffortRange = EffortRange.SMALL
    estimated_cost: BudgetRange = BudgetRange.UNDER_10K


class Risk(BaseModel):
    """A category finding expressed in likelihood x impact terms."""
    category: str
    likelihood: Likelihood
    impact: Impact
    risk_level: RiskLevel
    score: float
    title: str = ""


class Assessment(BaseModel):
    """An organization's run through a template."""
    assessment_id: str
    organization_id: str
    template_id: str
    status: AssessmentStatus = AssessmentStatus.IN_PROGRESS
    answers: list[Answer] = Field(default_factory=list)
    risk_score: Optional[int] = Field(None, ge=0, le=100)
    gaps: list[Gap] = Field(default_factory=list)
    risks: list[Risk] = Field(default_factory=list)
    completed_at: Optional[datetime] = None


class QuestionResult(BaseModel):
    """How a single question contributed to aggregation."""
    question_id: str
    section_id: str
    category: str
    weight: float
    status: Literal["scored", "unanswered", "skipped", "excluded"]
    score: Optional[int] = None
    notes: list[str] = Field(default_factory=list)


class SectionScore(BaseModel):
    """Weighted average of a section's question scores."""
    section_id: str
    title: str = ""
    weight: float
    score: float = 0.0  # 0-5 scale
    scaled_score: float = 0.0  # 0-100 scale
    total_weight: float = 0.0
    question_count: int = 0
    scored_count: int = 0
    included: bool = True  # False when no question was scorable


class CategoryScore(BaseModel):
    """Weighted average of the question scores sharing a category."""
    category: str
    score: float  # 0-5 scale
    question_count: int = 0
    scored_count: int = 0
    foundational: bool = False
    weight_share: float = 0.0  # Fraction of the template's total weight


class AssessmentScore(BaseModel):
    """Aggregated scores of an assessment."""
    template_id: str
    risk_score: int = Field(..., ge=0, le=100)
    risk_band: RiskBand
    section_scores: list[SectionScore] = Field(default_factory=list)
    category_scores: list[CategoryScore] = Field(default_factory=list)
    question_results: list[QuestionResult] = Field(default_factory=list)
    foundational_coverage_percent: float = 100.0
    foundational_shortfalls: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class GapRiskResult(BaseModel):
    """Gaps and risks derived from one set of category scores."""
    gaps: list[Gap] = Field(default_factory=list)
    risks: list[Risk] = Field(default_factory=list)


class AssessmentSummary(BaseModel):
    """Human-readable overview of an assessment result."""
    level: str
    summary: str
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    priorities: list[str] = Field(default_factory=list)


class AssessmentResult(BaseModel):
    """Complete output of scoring one assessment."""
    scoring_version: str = "1.0.0"
    scored_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    template_id: str
    answer_scores: list[AnswerScore] = Field(default_factory=list)
    assessment: AssessmentScore
    gaps: list[Gap] = Field(default_factory=list)
    risks: list[Risk] = Field(default_factory=list)
    summary: AssessmentSummary


# =============================================================================
# Organization and Vendor Models
# =============================================================================


class Organization(BaseModel):
    """Organization profile and declared priorities."""
    organization_id: str
    name: str = ""
    size: Optional[CompanySize] = None
    jurisdictions: list[str] = Field(default_factory=list)
    budget: Optional[BudgetRange] = None
    ranked_priorities: list[str] = Field(default_factory=list)
    must_have_features: list[str] = Field(default_factory=list)
    deployment_preference: Optional[DeploymentModel] = None
    implementation_urgency: Optional[ImplementationUrgency] = None


class CamelModel(BaseModel):
    """Model serialized with the camelCase field names used by the web API."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Vendor(CamelModel):
    """A marketplace vendor."""
    vendor_id: str
    name: str
    categories: list[str] = Field(default_factory=list)
    customer_segments: list[CompanySize] = Field(default_factory=list)
    geographic_coverage: list[str] = Field(default_factory=list)
    pricing_model: Optional[PricingModel] = None
    starting_price: Optional[float] = Field(None, ge=0)
    pricing_range: Optional[BudgetRange] = None
    deployment_options: list[DeploymentModel] = Field(default_factory=list)
    features: set[str] = Field(default_factory=set)
    implementation_days: Optional[int] = Field(None, ge=0)
    featured: bool = False
    rating: Optional[float] = Field(None, ge=0, le=5)

    @field_serializer("features")
    def _serialize_features(self, features: set[str]) -> list[str]:
        return sorted(features)

    def declared_tags(self) -> set[str]:
        """Normalized capability tags: declared features plus categories."""
        return {normalize_category(t) for t in self.features} | {
            normalize_category(c) for c in self.categories
        }


class BaseScore(CamelModel):
    """Vendor-organization compatibility independent of priorities (0-100)."""
    vendor_id: str
    risk_area_coverage: float = Field(..., ge=0)
    size_fit: float = Field(..., ge=0)
    geo_coverage: float = Field(..., ge=0)
    price_score: float = Field(..., ge=0)
    total_base: float = Field(..., ge=0)
    gaps_covered: int = 0
    open_gaps: int = 0
    covered_categories: list[str] = Field(default_factory=list)
    neutral_components: list[str] = Field(default_factory=list)


class PriorityBoost(CamelModel):
    """Personalized boost layered on the base score (0-40)."""
    vendor_id: str
    top_priority_boost: float = 0
    matched_priority: Optional[str] = None
    matched_priority_rank: Optional[int] = None
    feature_boost: float = 0
    missing_features: list[str] = Field(default_factory=list)
    deployment_boost: float = 0
    speed_boost: float = 0
    total_boost: float = Field(0, ge=0)


class VendorMatch(CamelModel):
    """A ranked vendor with its full score breakdown and explanation."""
    vendor: Vendor
    base_score: BaseScore
    priority_boost: PriorityBoost
    total_score: float = Field(..., ge=0)
    gaps_covered: int = 0
    match_reasons: list[str] = Field(default_factory=list)
    match_quality: Optional[MatchQuality] = None
    match_summary: str = ""

    def to_api_dict(self) -> dict[str, Any]:
        """JSON-ready dict with the field names the front end consumes."""
        return self.model_dump(mode="json", by_alias=True)
