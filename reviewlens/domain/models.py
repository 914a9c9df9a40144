"""
Domain Models - Reviews, Aspects and Creators
=============================================

Value objects shared by the scoring and aggregation code. Nothing in this
module touches storage or the network; the persistence layer builds these
from rows and the application layer hands them to the domain functions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Aspect(str, Enum):
    """The six fixed categories a review's sentiment is bucketed into."""
    CLEANLINESS = "CLEANLINESS"
    STAFF = "STAFF"
    FOOD_QUALITY = "FOOD_QUALITY"
    VALUE = "VALUE"
    LOCATION = "LOCATION"
    SPEED = "SPEED"

    @property
    def label(self) -> str:
        """Human-readable name, e.g. FOOD_QUALITY -> 'food quality'."""
        return self.value.lower().replace("_", " ")

    @classmethod
    def parse(cls, value) -> Optional["Aspect"]:
        if isinstance(value, cls):
            return value
        if value is None:
            return None
        key = str(value).strip().upper().replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            return None


class Sentiment(str, Enum):
    NEG = "NEG"
    NEUTRAL = "NEUTRAL"
    POS = "POS"

    @classmethod
    def parse(cls, value) -> Optional["Sentiment"]:
        """Accepts the stored codes plus the long spellings models tend to use."""
        if isinstance(value, cls):
            return value
        if value is None:
            return None
        key = str(value).strip().upper()
        aliases = {
            "NEGATIVE": cls.NEG,
            "POSITIVE": cls.POS,
            "NEU": cls.NEUTRAL,
        }
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            return None


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass
class Review:
    """A customer review belonging to one organization."""
    id: int
    organization_id: int
    source_id: int
    rating: int
    text: str
    author: str = ""
    created_at: str = ""
    external_id: str = ""


@dataclass
class AspectScore:
    """One aspect's sentiment within a review. Score is on the 0-100 scale."""
    review_id: int
    aspect: Aspect
    sentiment: Sentiment
    score: float
    id: int = 0
    created_at: str = ""


@dataclass
class Creator:
    """
    A creator profile joined with its stats, as the marketplace lists it.

    Stats fields are zero when the creator has not published stats yet.
    """
    id: int
    user_id: int
    display_name: str
    bio: str = ""
    city: str = ""
    country: str = ""
    niches: List[str] = field(default_factory=list)
    instagram_url: str = ""
    facebook_url: str = ""
    tiktok_url: str = ""
    followers: int = 0
    engagement_rate: float = 0.0
    impressions_30d: int = 0
    post_frequency_per_week: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "displayName": self.display_name,
            "bio": self.bio,
            "city": self.city,
            "country": self.country,
            "niches": list(self.niches),
            "instagramUrl": self.instagram_url or None,
            "facebookUrl": self.facebook_url or None,
            "tiktokUrl": self.tiktok_url or None,
            "followers": self.followers,
            "engagementRate": self.engagement_rate,
            "impressions30d": self.impressions_30d,
            "postFrequencyPerWeek": self.post_frequency_per_week,
        }


@dataclass
class AspectRollup:
    """Summary of one aspect across many reviews."""
    aspect: Aspect
    score: int
    positive_count: int
    negative_count: int
    neutral_count: int
    average_score: Optional[float] = None
    trend: str = "flat"

    @property
    def total_count(self) -> int:
        return self.positive_count + self.negative_count + self.neutral_count

    def to_dict(self) -> dict:
        return {
            "aspect": self.aspect.label,
            "score": self.score,
            "positiveCount": self.positive_count,
            "negativeCount": self.negative_count,
            "neutralCount": self.neutral_count,
            "averageScore": self.average_score,
            "trend": self.trend,
        }


@dataclass
class AspectAnalysis:
    """The classifier's verdict on one aspect of one review."""
    aspect: Aspect
    sentiment: Sentiment
    score: float
    reasoning: str = ""

    def to_dict(self) -> dict:
        return {
            "aspect": self.aspect.value,
            "sentiment": self.sentiment.value,
            "score": self.score,
            "reasoning": self.reasoning,
        }


@dataclass
class ReviewAnalysis:
    """Structured classifier output for a single review."""
    aspect_scores: List[AspectAnalysis]
    overall_sentiment: Sentiment
    key_points: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "aspectScores": [a.to_dict() for a in self.aspect_scores],
            "overallSentiment": self.overall_sentiment.value,
            "keyPoints": list(self.key_points),
        }
