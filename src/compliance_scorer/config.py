"""Centralized configuration management for the compliance scorer."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, model_validator


class AggregationConfig(BaseModel):
    """Settings for combining question scores into section and overall scores."""
    weight_sum_tolerance: float = Field(
        0.01,
        description="Allowed deviation of the section weight sum from 1.0 before a warning is raised"
    )
    adequacy_score: int = Field(
        3,
        description="Minimum 0-5 score at which a foundational question counts as covered"
    )
    risk_band_low: int = Field(80, description="Minimum risk score for the Low risk band (0-100)")
    risk_band_medium: int = Field(60, description="Minimum risk score for the Medium risk band")
    risk_band_high: int = Field(40, description="Minimum risk score for the High risk band")


class GapThresholdsConfig(BaseModel):
    """Category score cut-offs (0-5 scale) for gap severity.

    Scores below ``critical`` are CRITICAL, below ``high`` HIGH and below
    ``medium`` MEDIUM. Anything at or above ``medium`` raises no gap.
    """
    critical: float = Field(1.0, description="Scores below this are CRITICAL gaps")
    high: float = Field(2.0, description="Scores below this are HIGH gaps")
    medium: float = Field(3.0, description="Scores below this are MEDIUM gaps")

    @model_validator(mode="after")
    def _check_order(self) -> "GapThresholdsConfig":
        if not self.critical <= self.high <= self.medium:
            raise ValueError("gap thresholds must satisfy critical <= high <= medium")
        return self


class BaseScoreConfig(BaseModel):
    """Point maxima for the vendor base-compatibility components.

    The four maxima should sum to 100.
    """
    risk_area_coverage: float = Field(40.0, description="Points for covering the open gaps")
    size_fit: float = Field(20.0, description="Points for serving the organization's size")
    geo_coverage: float = Field(20.0, description="Points for covering required jurisdictions")
    price_fit: float = Field(20.0, description="Points for pricing within budget")
    price_tolerance: float = Field(
        1.25,
        description="Multiplier on the budget maximum still earning partial price credit"
    )


class PriorityBoostConfig(BaseModel):
    """Points awarded on top of the base score for declared priorities."""
    rank_points: list[float] = Field(
        default_factory=lambda: [20.0, 15.0, 10.0],
        description="Boost for covering the #1, #2 and #3 ranked priority"
    )
    all_features_points: float = Field(10.0, description="Boost when no needed feature is missing")
    partial_features_points: float = Field(5.0, description="Boost when a few needed features are missing")
    partial_features_max_missing: int = Field(
        2,
        description="Maximum number of missing features that still earns the partial boost"
    )
    deployment_points: float = Field(5.0, description="Boost for supporting the preferred deployment model")
    speed_points: float = Field(5.0, description="Boost for fast implementation when urgency is immediate")
    fast_implementation_days: int = Field(90, description="Implementation time counted as fast")
    max_boost: float = Field(40.0, description="Cap on the total priority boost")


class MatchQualityConfig(BaseModel):
    """Total score thresholds (0-140) for vendor match labels."""
    highly_relevant: float = Field(100.0, description="Minimum total score for 'Highly Relevant'")
    good_match: float = Field(85.0, description="Minimum total score for 'Good Match'")
    fair_match: float = Field(70.0, description="Minimum total score for 'Fair Match'")


class ScorerConfig(BaseModel):
    """Complete configuration for the compliance scorer."""
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    gap_thresholds: GapThresholdsConfig = Field(default_factory=GapThresholdsConfig)
    base_score: BaseScoreConfig = Field(default_factory=BaseScoreConfig)
    priority_boost: PriorityBoostConfig = Field(default_factory=PriorityBoostConfig)
    match_quality: MatchQualityConfig = Field(default_factory=MatchQualityConfig)
    category_aliases: dict[str, str] = Field(
        default_factory=lambda: {
            "AML": "KYC_AML",
            "KYC": "KYC_AML",
            "SANCTIONS": "SANCTIONS_SCREENING",
            "TRAINING": "COMPLIANCE_TRAINING",
            "REPORTING": "REGULATORY_REPORTING",
        },
        description="Alternate category names mapped to their canonical form"
    )


# Global config instance
_config: Optional[ScorerConfig] = None


def get_config() -> ScorerConfig:
    """Get the current configuration.

    Returns the global config, initializing with defaults if not yet loaded.
    """
    global _config
    if _config is None:
        _config = ScorerConfig()
    return _config


def load_config(path: Path) -> ScorerConfig:
    """Load configuration from a YAML file and make it the global config.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        The loaded ScorerConfig.
    """
    global _config

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    _config = ScorerConfig.model_validate(data or {})
    return _config


def reset_config() -> None:
    """Reset configuration to defaults."""
    global _config
    _config = ScorerConfig()


def find_config_file() -> Optional[Path]:
    """Find a scorer configuration file.

    Looks in (order of priority):
    1. COMPLIANCE_SCORER_CONFIG environment variable
    2. ./scorer-config.yaml
    3. ./scorer-config.yml
    4. ~/.config/compliance-scorer/config.yaml
    """
    env_path = os.environ.get("COMPLIANCE_SCORER_CONFIG")
    if env_path:
        path = Path(env_path)
        if path.exists():
            return path

    for name in ["scorer-config.yaml", "scorer-config.yml"]:
        path = Path(name)
        if path.exists():
            return path

    user_config = Path.home() / ".config" / "compliance-scorer" / "config.yaml"
    if user_config.exists():
        return user_config

    return None


def save_default_config(path: Path) -> None:
    """Save the default configuration to a YAML file.

    Args:
        path: Path where to save the configuration.
    """
    data = ScorerConfig().model_dump()

    yaml_content = """# Compliance Scorer Configuration
# ===============================
#
# This file configures aggregation, gap thresholds, vendor base scoring,
# priority boosts and match quality labels.
#
# Copy this file to one of these locations:
#   - ./scorer-config.yaml (current directory)
#   - ~/.config/compliance-scorer/config.yaml (user config)
#
# Or set the COMPLIANCE_SCORER_CONFIG environment variable.

"""
    yaml_content += yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(yaml_content)
