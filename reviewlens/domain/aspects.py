"""
Aspect Sentiment Aggregation
============================

Rolls per-review aspect rows up into one summary per aspect for the
dashboard. Accepts rows already grouped by storage ({aspect, sentiment,
count}) as well as raw rows ({aspect, sentiment, score}, count 1), either
as dicts or as AspectScore objects.

SCORE:
    round(positive / total * 100), or 50 when an aspect has no counted rows.
    Rounding is exact (half-to-even on the rational value), which keeps the
    score symmetric: swapping positive and negative counts gives 100 - score.

TREND:
    When rows carry created_at, positive rates of the last `window_days`
    and of everything older are compared. A move of 5 points or more is
    "up"/"down"; anything else, or a window with no rows, is "flat".
"""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from fractions import Fraction
from typing import Dict, Iterable, List, Optional

from .models import Aspect, AspectRollup, Sentiment
from .records import read_field, as_float, as_int

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50
TREND_WINDOW_DAYS = 30
TREND_THRESHOLD = 5

POSITIVE_REVIEW_THRESHOLD = 70
NEGATIVE_REVIEW_THRESHOLD = 40


def positive_share_score(positive: int, total: int) -> int:
    """Share of positive mentions as an integer percentage."""
    if total <= 0:
        return NEUTRAL_SCORE
    return round(Fraction(100 * positive, total))


@dataclass
class _Tally:
    positive: int = 0
    negative: int = 0
    neutral: int = 0

    @property
    def total(self) -> int:
        return self.positive + self.negative + self.neutral

    def add(self, sentiment: Sentiment, count: int):
        if sentiment is Sentiment.POS:
            self.positive += count
        elif sentiment is Sentiment.NEG:
            self.negative += count
        else:
            self.neutral += count


class _AspectAccumulator:
    def __init__(self):
        self.counts = _Tally()
        self.score_sum = 0.0
        self.score_weight = 0
        self.dated = []

    def add(self, sentiment: Sentiment, count: int, score: Optional[float], created_at: Optional[datetime]):
        self.counts.add(sentiment, count)
        if score is not None and math.isfinite(score) and count > 0:
            self.score_sum += score * count
            self.score_weight += count
        if created_at is not None:
            self.dated.append((created_at, sentiment, count))

    def trend(self, pivot: Optional[datetime]) -> str:
        if pivot is None:
            return "flat"
        recent, earlier = _Tally(), _Tally()
        for created_at, sentiment, count in self.dated:
            (recent if created_at > pivot else earlier).add(sentiment, count)
        if recent.total == 0 or earlier.total == 0:
            return "flat"

        change = (Fraction(100 * recent.positive, recent.total)
                  - Fraction(100 * earlier.positive, earlier.total))
        if change >= TREND_THRESHOLD:
            return "up"
        if change <= -TREND_THRESHOLD:
            return "down"
        return "flat"

    def rollup(self, aspect: Aspect, pivot: Optional[datetime]) -> AspectRollup:
        average = None
        if self.score_weight:
            average = round(self.score_sum / self.score_weight, 1)
        return AspectRollup(
            aspect=aspect,
            score=positive_share_score(self.counts.positive, self.counts.total),
            positive_count=self.counts.positive,
            negative_count=self.counts.negative,
            neutral_count=self.counts.neutral,
            average_score=average,
            trend=self.trend(pivot),
        )


def aggregate_aspect_scores(
    rows: Iterable,
    as_of: Optional[datetime] = None,
    window_days: int = TREND_WINDOW_DAYS,
) -> List[AspectRollup]:
    """
    Aggregate aspect rows into one rollup per observed aspect.

    Args:
        rows: Grouped or raw aspect rows (dicts or objects).
        as_of: Reference time for the trend window. Defaults to the newest
            created_at among the rows, so the result depends only on input.
        window_days: Size of the "recent" window for the trend flag.

    Returns:
        Rollups in order of first appearance. Aspects without rows are absent.
    """
    accumulators: Dict[Aspect, _AspectAccumulator] = {}
    newest: Optional[datetime] = None

    for row in rows:
        aspect = Aspect.parse(read_field(row, "aspect"))
        if aspect is None:
            logger.debug(f"Skipping row with unknown aspect: {row!r}")
            continue

        sentiment = Sentiment.parse(read_field(row, "sentiment")) or Sentiment.NEUTRAL
        count = max(as_int(read_field(row, "count"), default=0), 0) if _has_count(row) else 1

        raw_score = read_field(row, "score", "avg_score", "avgScore")
        score = as_float(raw_score, default=None) if raw_score is not None else None

        created_at = parse_timestamp(read_field(row, "created_at", "createdAt"))
        if created_at is not None and (newest is None or created_at > newest):
            newest = created_at

        accumulators.setdefault(aspect, _AspectAccumulator()).add(sentiment, count, score, created_at)

    reference = parse_timestamp(as_of) if as_of is not None else newest
    pivot = reference - timedelta(days=window_days) if reference is not None else None
    return [acc.rollup(aspect, pivot) for aspect, acc in accumulators.items()]


def overall_sentiment(aspect_scores: Iterable) -> str:
    """
    Collapse a review's aspect scores into positive / negative / neutral.

    Mean score >= 70 is positive, <= 40 negative; no aspects is neutral.
    """
    scores = [as_float(read_field(a, "score"), default=None) for a in aspect_scores]
    scores = [s for s in scores if s is not None]
    if not scores:
        return "neutral"

    average = sum(scores) / len(scores)
    if average >= POSITIVE_REVIEW_THRESHOLD:
        return "positive"
    if average <= NEGATIVE_REVIEW_THRESHOLD:
        return "negative"
    return "neutral"


def parse_timestamp(value) -> Optional[datetime]:
    """Parse datetimes and ISO / SQLite timestamp strings; None if unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    try:
        return datetime.fromisoformat(str(value).strip().replace("Z", "")).replace(tzinfo=None)
    except ValueError:
        return None


def _has_count(row) -> bool:
    if isinstance(row, Mapping):
        return "count" in row
    return hasattr(row, "count") and not callable(getattr(row, "count"))
