"""Shared fixtures: temporary SQLite databases and fake LLM collaborators."""

from datetime import datetime, timedelta

import pytest

from reviewlens.domain.models import (
    Aspect, AspectAnalysis, ReviewAnalysis, Sentiment, Severity,
)
from reviewlens.infrastructure.config.settings import AnalyticsSettings
from reviewlens.infrastructure.llm import ChatCompletion, ClassifierUnavailable, GeneratedInsight
from reviewlens.infrastructure.persistence import Database


NOW = datetime(2024, 6, 15, 12, 0, 0)


class FakeClassifier:
    """
    Keyword classifier standing in for the LLM.

    Words map to (aspect, sentiment, score); texts containing `fail_on`
    raise ClassifierUnavailable.
    """

    KEYWORDS = {
        "spotless": (Aspect.CLEANLINESS, Sentiment.POS, 90),
        "dirty": (Aspect.CLEANLINESS, Sentiment.NEG, 10),
        "friendly": (Aspect.STAFF, Sentiment.POS, 85),
        "rude": (Aspect.STAFF, Sentiment.NEG, 15),
        "slow": (Aspect.SPEED, Sentiment.NEG, 20),
        "delicious": (Aspect.FOOD_QUALITY, Sentiment.POS, 88),
    }

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.calls = []

    def analyze_with_usage(self, text):
        self.calls.append(text)
        if self.fail_on and self.fail_on in text:
            raise ClassifierUnavailable("model offline")

        seen = {}
        for word, (aspect, sentiment, score) in self.KEYWORDS.items():
            if word in text.lower() and aspect not in seen:
                seen[aspect] = AspectAnalysis(aspect, sentiment, score, f"mentions '{word}'")
        scores = list(seen.values())
        overall = Sentiment.NEUTRAL
        if scores:
            mean = sum(s.score for s in scores) / len(scores)
            overall = Sentiment.POS if mean >= 70 else Sentiment.NEG if mean <= 40 else Sentiment.NEUTRAL

        analysis = ReviewAnalysis(aspect_scores=scores, overall_sentiment=overall)
        return analysis, ChatCompletion(content="{}", tokens_in=10, tokens_out=5, prompt=text)

    def analyze(self, text):
        return self.analyze_with_usage(text)[0]


class FakeInsightGenerator:
    max_reviews = 20

    def __init__(self, error=None):
        self.error = error
        self.insight_calls = []
        self.report_calls = []

    def generate_insight(self, reviews, aspects):
        if self.error:
            raise self.error
        reviews = list(reviews)
        self.insight_calls.append((reviews, list(aspects)))
        insight = GeneratedInsight(
            title=f"Improve {', '.join(aspects)}",
            summary="Guests keep mentioning the same problems.",
            severity=Severity.HIGH,
            recommendations=["Train staff", "Audit service times"],
        )
        return insight, ChatCompletion(content="{}", tokens_in=100, tokens_out=50, prompt="insight")

    def weekly_report(self, organization_name, figures):
        if self.error:
            raise self.error
        self.report_calls.append((organization_name, figures))
        text = f"Weekly report for {organization_name}: {figures['totalReviews']} reviews."
        return text, ChatCompletion(content=text, tokens_in=30, tokens_out=20, prompt="report")


@pytest.fixture
def db(tmp_path):
    database = Database(str(tmp_path / "test.db"))
    database.init()
    return database


@pytest.fixture
def org(db):
    """An owner, their organization and one review source. Returns (org_id, source_id)."""
    owner_id = db.create_user("Owner", "owner@test.com", "OWNER")
    org_id = db.create_organization("Sea Breeze Inn", owner_id)
    source_id = db.add_review_source(org_id, "Google Reviews", "")
    return org_id, source_id


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def insight_generator():
    return FakeInsightGenerator()


@pytest.fixture
def analytics_settings():
    return AnalyticsSettings(aspect_score_scale="percent")


def days_ago(n, now=NOW):
    return now - timedelta(days=n)
