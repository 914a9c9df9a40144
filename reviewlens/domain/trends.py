"""Rating summaries and weekly rating trends for the dashboard."""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from .aspects import parse_timestamp
from .records import read_field, as_int


def rating_summary(reviews: Iterable) -> dict:
    """Total count, average rating (1 decimal) and count of 4-5 star reviews."""
    ratings = [as_int(read_field(r, "rating")) for r in reviews]
    ratings = [r for r in ratings if 1 <= r <= 5]
    average = sum(ratings) / len(ratings) if ratings else 0
    return {
        "totalReviews": len(ratings),
        "averageRating": round(average, 1),
        "positiveReviews": sum(1 for r in ratings if r >= 4),
    }


def rating_trends(reviews: Iterable, days: int = 90, now: Optional[datetime] = None) -> List[dict]:
    """
    Weekly average rating over the last `days` days.

    Weeks start on Monday. Reviews without a parseable created_at are left
    out. Buckets are returned oldest first.
    """
    now = now or datetime.now()
    since = now - timedelta(days=days)

    buckets = {}
    for review in reviews:
        created_at = parse_timestamp(read_field(review, "created_at", "createdAt"))
        rating = as_int(read_field(review, "rating"))
        if created_at is None or created_at < since or not 1 <= rating <= 5:
            continue
        week = (created_at - timedelta(days=created_at.weekday())).date()
        buckets.setdefault(week, []).append(rating)

    return [
        {
            "date": week.isoformat(),
            "rating": round(sum(ratings) / len(ratings), 1),
            "count": len(ratings),
        }
        for week, ratings in sorted(buckets.items())
    ]
