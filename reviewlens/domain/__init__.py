# Domain Layer
# ============
# Pure scoring and aggregation. No I/O, no randomness, no shared state:
# - brand_fit: creator suitability score (0-100)
# - aspects: per-aspect sentiment rollups and review-level sentiment
# - trends: rating summary and weekly rating trends

from .models import (
    Aspect, Sentiment, Severity, Review, AspectScore, Creator,
    AspectRollup, AspectAnalysis, ReviewAnalysis,
)
from .brand_fit import BrandFitBreakdown, brand_fit_breakdown, calculate_brand_fit_score
from .aspects import aggregate_aspect_scores, overall_sentiment, positive_share_score
from .trends import rating_summary, rating_trends
