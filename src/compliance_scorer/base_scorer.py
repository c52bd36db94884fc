"""Vendor Base Scorer - priority-independent vendor/organization compatibility.

Four components sum to a 0-100 base score:
- Risk area coverage (0-40): share of open gaps the vendor covers
- Size fit (0-20): vendor serves the organization's size band
- Geographic coverage (0-20): share of required jurisdictions covered
- Price fit (0-20): vendor pricing against the declared budget

Components without enough data on either side score half marks and are
reported as neutral.
"""

import logging
from typing import Iterable, Optional

from .config import ScorerConfig, get_config
from .schema import (
    BaseScore,
    BudgetRange,
    Gap,
    Organization,
    PricingModel,
    Vendor,
    normalize_category,
)

logger = logging.getLogger(__name__)

GLOBAL_COVERAGE = "GLOBAL"


class CategoryMatcher:
    """Compares categories in canonical form, applying configured aliases."""

    def __init__(self, aliases: Optional[dict[str, str]] = None):
        self.aliases = {
            normalize_category(k): normalize_category(v) for k, v in (aliases or {}).items()
        }

    def canonical(self, value: str) -> str:
        key = normalize_category(value)
        return self.aliases.get(key, key)

    def canonical_set(self, values: Iterable[str]) -> set[str]:
        return {self.canonical(v) for v in values}


class BaseScorer:
    """Scores vendors on compatibility with an organization and its open gaps."""

    def __init__(self, config: Optional[ScorerConfig] = None):
        self.config = config or get_config()
        self.matcher = CategoryMatcher(self.config.category_aliases)

    def score(
        self,
        vendor: Vendor,
        organization: Organization,
        gaps: Iterable[Gap] = (),
    ) -> BaseScore:
        """Score one vendor.

        Args:
            vendor: Vendor to score
            organization: Organization profile
            gaps: Open gaps from the organization's latest assessment

        Returns:
            BaseScore with the four components and coverage details
        """
        neutral: list[str] = []

        gap_list = list(gaps)
        coverage, covered = self._score_risk_area_coverage(vendor, gap_list)
        size_fit = self._score_size_fit(vendor, organization, neutral)
        geo = self._score_geo_coverage(vendor, organization, neutral)
        price = self._score_price(vendor, organization, neutral)

        total = coverage + size_fit + geo + price
        logger.debug(
            "Base score for %s: coverage=%.1f size=%.1f geo=%.1f price=%.1f total=%.1f",
            vendor.vendor_id, coverage, size_fit, geo, price, total,
        )

        return BaseScore(
            vendor_id=vendor.vendor_id,
            risk_area_coverage=round(coverage, 2),
            size_fit=size_fit,
            geo_coverage=round(geo, 2),
            price_score=price,
            total_base=round(total, 2),
            gaps_covered=len(covered),
            open_gaps=len(gap_list),
            covered_categories=covered,
            neutral_components=neutral,
        )

    def _score_risk_area_coverage(self, vendor: Vendor, gaps: list[Gap]) -> tuple[float, list[str]]:
        """Proportional gap coverage; full marks when nothing is open."""
        max_points = self.config.base_score.risk_area_coverage
        if not gaps:
            return max_points, []

        vendor_categories = self.matcher.canonical_set(vendor.categories)
        covered = [g.category for g in gaps if self.matcher.canonical(g.category) in vendor_categories]
        return max_points * len(covered) / len(gaps), covered

    def _score_size_fit(self, vendor: Vendor, organization: Organization, neutral: list[str]) -> float:
        max_points = self.config.base_score.size_fit
        if organization.size is None or not vendor.customer_segments:
            neutral.append("size_fit")
            return max_points / 2
        if organization.size in vendor.customer_segments:
            return max_points
        return 0.0

    def _score_geo_coverage(self, vendor: Vendor, organization: Organization, neutral: list[str]) -> float:
        max_points = self.config.base_score.geo_coverage
        required = {j.strip().lower() for j in organization.jurisdictions if j.strip()}
        offered = {j.strip().lower() for j in vendor.geographic_coverage if j.strip()}
        if not required or not offered:
            neutral.append("geo_coverage")
            return max_points / 2
        if GLOBAL_COVERAGE.lower() in offered:
            return max_points
        return max_points * len(required & offered) / len(required)

    def _score_price(self, vendor: Vendor, organization: Organization, neutral: list[str]) -> float:
        """Full marks when vendor pricing overlaps the budget band, half within tolerance."""
        max_points = self.config.base_score.price_fit
        vendor_range = self.vendor_price_range(vendor)
        if (
            organization.budget is None
            or vendor.pricing_model == PricingModel.CUSTOM
            or vendor_range is None
        ):
            neutral.append("price_score")
            return max_points / 2

        budget_min, budget_max = organization.budget.bounds
        vendor_min, vendor_max = vendor_range
        if vendor_min <= budget_max and vendor_max >= budget_min:
            return max_points
        if vendor_min <= budget_max * self.config.base_score.price_tolerance:
            return max_points / 2
        return 0.0

    @staticmethod
    def vendor_price_range(vendor: Vendor) -> Optional[tuple[float, float]]:
        """Numeric (min, max) of the vendor's pricing, or None when undeclared."""
        if vendor.pricing_range is not None:
            low, high = vendor.pricing_range.bounds
            if vendor.starting_price is not None and low <= vendor.starting_price <= high:
                low = vendor.starting_price
            return low, high
        if vendor.starting_price is not None:
            band = BudgetRange.from_amount(vendor.starting_price)
            return vendor.starting_price, band.bounds[1]
        return None


def score_vendor_base(
    vendor: Vendor,
    organization: Organization,
    gaps: Iterable[Gap] = (),
) -> BaseScore:
    """Score a vendor's base compatibility with an organization."""
    return BaseScorer().score(vendor, organization, gaps)
