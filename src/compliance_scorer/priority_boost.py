"""Priority Boost Scorer - personalized points on top of the base score.

Boost components (capped at 40 together):
- Top priority coverage: 20/15/10 for the #1/#2/#3 ranked priority, highest only
- Needed features: 10 when none missing, 5 when one or two are missing
- Deployment: 5 when the preferred deployment model is supported
- Speed: 5 for fast implementation when urgency is immediate
"""

import logging
from typing import Iterable, Optional

from .base_scorer import CategoryMatcher
from .config import ScorerConfig, get_config
from .schema import (
    DeploymentModel,
    Gap,
    ImplementationUrgency,
    Organization,
    PriorityBoost,
    Vendor,
)

logger = logging.getLogger(__name__)


class PriorityBoostScorer:
    """Scores how well a vendor serves an organization's declared priorities."""

    def __init__(self, config: Optional[ScorerConfig] = None):
        self.config = config or get_config()
        self.matcher = CategoryMatcher(self.config.category_aliases)

    def score(
        self,
        vendor: Vendor,
        organization: Organization,
        gaps: Iterable[Gap] = (),
        priorities: Optional[list[str]] = None,
    ) -> PriorityBoost:
        """Score one vendor's priority boost.

        Args:
            vendor: Vendor to score
            organization: Organization profile
            gaps: Open gaps; their categories count as needed features
            priorities: Ranked priorities overriding the organization's own

        Returns:
            PriorityBoost breakdown
        """
        cfg = self.config.priority_boost
        ranked = organization.ranked_priorities if priorities is None else priorities

        top_boost, matched, matched_rank = self._score_top_priority(vendor, ranked)
        feature_boost, missing = self._score_features(vendor, organization, list(gaps))
        deployment_boost = self._score_deployment(vendor, organization)
        speed_boost = self._score_speed(vendor, organization)

        total = min(cfg.max_boost, top_boost + feature_boost + deployment_boost + speed_boost)
        logger.debug(
            "Priority boost for %s: top=%s features=%s deployment=%s speed=%s total=%s",
            vendor.vendor_id, top_boost, feature_boost, deployment_boost, speed_boost, total,
        )

        return PriorityBoost(
            vendor_id=vendor.vendor_id,
            top_priority_boost=top_boost,
            matched_priority=matched,
            matched_priority_rank=matched_rank,
            feature_boost=feature_boost,
            missing_features=missing,
            deployment_boost=deployment_boost,
            speed_boost=speed_boost,
            total_boost=total,
        )

    def _score_top_priority(
        self, vendor: Vendor, ranked: list[str]
    ) -> tuple[float, Optional[str], Optional[int]]:
        """Points for the highest-ranked priority the vendor covers (no stacking)."""
        vendor_categories = self.matcher.canonical_set(vendor.categories)
        for rank, (priority, points) in enumerate(
            zip(ranked, self.config.priority_boost.rank_points), start=1
        ):
            if priority and priority.strip() and self.matcher.canonical(priority) in vendor_categories:
                # Keep the organization's spelling for display
                return points, priority, rank
        return 0.0, None, None

    def _score_features(
        self, vendor: Vendor, organization: Organization, gaps: list[Gap]
    ) -> tuple[float, list[str]]:
        """Needed tags are the must-have features plus the open gap categories."""
        cfg = self.config.priority_boost
        declared = self.matcher.canonical_set(vendor.declared_tags())

        needed: dict[str, str] = {}
        for tag in list(organization.must_have_features) + [g.category for g in gaps]:
            if tag and tag.strip():
                needed.setdefault(self.matcher.canonical(tag), tag)

        missing = [display for key, display in needed.items() if key not in declared]
        if not missing:
            return cfg.all_features_points, []
        if len(missing) <= cfg.partial_features_max_missing:
            return cfg.partial_features_points, missing
        return 0.0, missing

    def _score_deployment(self, vendor: Vendor, organization: Organization) -> float:
        preference = organization.deployment_preference
        if preference is None:
            return 0.0
        if preference == DeploymentModel.FLEXIBLE or preference in vendor.deployment_options:
            return self.config.priority_boost.deployment_points
        return 0.0

    def _score_speed(self, vendor: Vendor, organization: Organization) -> float:
        cfg = self.config.priority_boost
        if organization.implementation_urgency != ImplementationUrgency.IMMEDIATE:
            return 0.0
        if vendor.implementation_days is None:
            return 0.0
        if vendor.implementation_days <= cfg.fast_implementation_days:
            return cfg.speed_points
        return 0.0


def score_vendor_boost(
    vendor: Vendor,
    organization: Organization,
    gaps: Iterable[Gap] = (),
    priorities: Optional[list[str]] = None,
) -> PriorityBoost:
    """Score a vendor's priority boost for an organization."""
    return PriorityBoostScorer().score(vendor, organization, gaps, priorities)
