"""
Brand Fit Scoring
=================

Rates how well a content creator suits a hospitality/travel brand on a
0-100 scale. Creators are ranked and filtered by this number, so every
caller (marketplace listing, shortlist, profile preview) goes through
calculate_brand_fit_score() rather than re-deriving it.

SCORE COMPONENTS (additive, each capped, then the total capped at 100):
- Niche overlap:   15 points per matching niche tag, at most 60
- Location:        30 home market, 20 wider region, 10 anywhere else
- Engagement:      10 / 7 / 5 / 0 by engagement-rate tier

Missing or malformed creator fields never raise; they simply earn nothing.
"""

from dataclasses import dataclass
from typing import List

from .records import read_field, as_float

TARGET_NICHES = ("travel", "tourism", "luxury", "lifestyle")
POINTS_PER_NICHE = 15
MAX_NICHE_POINTS = 60

HOME_COUNTRY = "jamaica"
REGION = "caribbean"
HOME_POINTS = 30
REGION_POINTS = 20
DEFAULT_LOCATION_POINTS = 10

# (rate must exceed, points), highest tier first
ENGAGEMENT_TIERS = (
    (8.0, 10),
    (5.0, 7),
    (3.0, 5),
)

MAX_SCORE = 100


@dataclass(frozen=True)
class BrandFitBreakdown:
    niche: int
    location: int
    engagement: int

    @property
    def total(self) -> int:
        return self.niche + self.location + self.engagement

    @property
    def score(self) -> int:
        return round(min(self.total, MAX_SCORE))

    def to_dict(self) -> dict:
        return {
            "niche": self.niche,
            "location": self.location,
            "engagement": self.engagement,
            "score": self.score,
        }


def niche_component(niches) -> int:
    """Count tags that contain any target niche token."""
    matches = sum(
        1 for tag in niches
        if any(target in tag.lower() for target in TARGET_NICHES)
    )
    return min(matches * POINTS_PER_NICHE, MAX_NICHE_POINTS)


def location_component(country: str, city: str) -> int:
    country = country.lower()
    city = city.lower()

    if HOME_COUNTRY in country or REGION in city:
        return HOME_POINTS
    if REGION in country:
        return REGION_POINTS
    return DEFAULT_LOCATION_POINTS


def engagement_component(engagement_rate: float) -> int:
    for threshold, points in ENGAGEMENT_TIERS:
        if engagement_rate > threshold:
            return points
    return 0


def brand_fit_breakdown(creator) -> BrandFitBreakdown:
    """
    Score each component for a creator.

    Args:
        creator: Mapping or object exposing niches, country, city and
            engagement rate (engagement_rate or engagementRate), as a
            percentage (8.2 means 8.2%).
    """
    return BrandFitBreakdown(
        niche=niche_component(_niches(creator)),
        location=location_component(_text(creator, "country"), _text(creator, "city")),
        engagement=engagement_component(
            as_float(read_field(creator, "engagement_rate", "engagementRate"))
        ),
    )


def calculate_brand_fit_score(creator) -> int:
    """Brand fit score in [0, 100] for a creator record."""
    return brand_fit_breakdown(creator).score


def _niches(creator) -> List[str]:
    niches = read_field(creator, "niches", default=[])
    if isinstance(niches, str):
        niches = [niches]
    try:
        return [str(tag) for tag in niches if tag is not None]
    except TypeError:
        return []


def _text(creator, name: str) -> str:
    value = read_field(creator, name, default="")
    return value if isinstance(value, str) else str(value)
