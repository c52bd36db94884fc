"""Match Ranker - combines base scores and boosts into ranked vendor matches.

Each match carries its total score (base + boost, 0-140), human-readable
match reasons, a quality label and a one-line summary. Ranking is by total
score, then featured vendors, then rating.
"""

import logging
from typing import Iterable, Optional

from .config import ScorerConfig, get_config
from .schema import (
    BaseScore,
    MatchQuality,
    PriorityBoost,
    Vendor,
    VendorMatch,
    humanize_category,
)

logger = logging.getLogger(__name__)


class MatchRanker:
    """Builds, explains, orders and filters vendor matches."""

    # Minimum total score for each one-line summary
    SUMMARY_THRESHOLDS = [
        (120.0, "Excellent match - Highly recommended"),
        (100.0, "Strong match - Recommended"),
        (80.0, "Good match - Worth considering"),
    ]
    DEFAULT_SUMMARY = "Partial match - May require evaluation"

    def __init__(self, config: Optional[ScorerConfig] = None):
        self.config = config or get_config()

    def rank(
        self,
        vendors: Iterable[Vendor],
        base_scores: Iterable[BaseScore],
        boosts: Iterable[PriorityBoost],
        min_score: Optional[float] = None,
        top_n: Optional[int] = None,
        labeled_only: bool = False,
    ) -> list[VendorMatch]:
        """Rank vendors.

        Args:
            vendors: Vendors to rank
            base_scores: One BaseScore per vendor (matched by vendor_id)
            boosts: One PriorityBoost per vendor (matched by vendor_id)
            min_score: Drop matches with a lower total score
            top_n: Keep at most this many matches
            labeled_only: Drop matches without a quality label

        Returns:
            Matches sorted by total score descending
        """
        base_by_id = {b.vendor_id: b for b in base_scores}
        boost_by_id = {b.vendor_id: b for b in boosts}

        matches = []
        for vendor in vendors:
            base = base_by_id.get(vendor.vendor_id)
            boost = boost_by_id.get(vendor.vendor_id)
            if base is None or boost is None:
                raise ValueError(f"Missing base score or boost for vendor {vendor.vendor_id!r}")
            matches.append(self.build_match(vendor, base, boost))

        matches.sort(key=lambda m: (
            -m.total_score,
            not m.vendor.featured,
            -(m.vendor.rating or 0.0),
        ))

        if min_score is not None:
            matches = [m for m in matches if m.total_score >= min_score]
        if labeled_only:
            matches = [m for m in matches if m.match_quality is not None]
        if top_n is not None:
            matches = matches[:max(top_n, 0)]

        logger.info("Ranked %d vendor matches", len(matches))
        return matches

    def build_match(self, vendor: Vendor, base: BaseScore, boost: PriorityBoost) -> VendorMatch:
        """Combine one vendor's base score and boost into a VendorMatch."""
        total = round(base.total_base + boost.total_boost, 2)
        return VendorMatch(
            vendor=vendor,
            base_score=base,
            priority_boost=boost,
            total_score=total,
            gaps_covered=base.gaps_covered,
            match_reasons=self.generate_reasons(base, boost),
            match_quality=self.quality_for(total),
            match_summary=self.summary_for(total),
        )

    def quality_for(self, total_score: float) -> Optional[MatchQuality]:
        thresholds = self.config.match_quality
        if total_score >= thresholds.highly_relevant:
            return MatchQuality.HIGHLY_RELEVANT
        if total_score >= thresholds.good_match:
            return MatchQuality.GOOD_MATCH
        if total_score >= thresholds.fair_match:
            return MatchQuality.FAIR_MATCH
        return None

    def summary_for(self, total_score: float) -> str:
        for threshold, summary in self.SUMMARY_THRESHOLDS:
            if total_score >= threshold:
                return summary
        return self.DEFAULT_SUMMARY

    def generate_reasons(self, base: BaseScore, boost: PriorityBoost) -> list[str]:
        """Human-readable reasons, in a fixed order, for the points a vendor earned.

        Components scored on neutral fallbacks produce no reason.
        """
        reasons = []
        base_cfg = self.config.base_score
        boost_cfg = self.config.priority_boost
        neutral = set(base.neutral_components)

        if boost.matched_priority and boost.matched_priority_rank:
            reasons.append(
                f"Covers your #{boost.matched_priority_rank} priority: {boost.matched_priority}"
            )

        if base.gaps_covered > 0:
            names = ", ".join(humanize_category(c) for c in base.covered_categories)
            reasons.append(f"Covers {base.gaps_covered} of your {base.open_gaps} open gaps ({names})")

        if boost.feature_boost >= boost_cfg.all_features_points and not boost.missing_features:
            reasons.append("Has all must-have features you specified")
        elif boost.feature_boost > 0:
            missing = ", ".join(boost.missing_features)
            if len(boost.missing_features) == 1:
                reasons.append(f"Has most features, missing: {missing}")
            else:
                reasons.append(
                    f"Has most features, missing {len(boost.missing_features)}: {missing}"
                )

        if "size_fit" not in neutral and base.size_fit >= base_cfg.size_fit:
            reasons.append("Designed for companies your size")

        if "geo_coverage" not in neutral:
            if base.geo_coverage >= base_cfg.geo_coverage:
                reasons.append("Full coverage for all your jurisdictions")
            elif base.geo_coverage >= 0.75 * base_cfg.geo_coverage:
                reasons.append("Covers most of your required jurisdictions")
            elif base.geo_coverage >= 0.5 * base_cfg.geo_coverage:
                reasons.append("Partial coverage for your jurisdictions")

        if "price_score" not in neutral:
            if base.price_score >= base_cfg.price_fit:
                reasons.append("Within your budget range")
            elif base.price_score > 0:
                tolerance = round((base_cfg.price_tolerance - 1) * 100)
                reasons.append(f"Slightly above budget but within {tolerance}% tolerance")

        if boost.deployment_boost > 0:
            reasons.append("Supports your preferred deployment model")

        if boost.speed_boost > 0:
            reasons.append(
                f"Fast implementation timeline (≤{boost_cfg.fast_implementation_days} days)"
            )

        return reasons


def rank_vendors(
    vendors: Iterable[Vendor],
    base_scores: Iterable[BaseScore],
    boosts: Iterable[PriorityBoost],
    min_score: Optional[float] = None,
    top_n: Optional[int] = None,
) -> list[VendorMatch]:
    """Rank vendors by total match score."""
    return MatchRanker().rank(vendors, base_scores, boosts, min_score=min_score, top_n=top_n)
