"""
Insight Service - LLM-Written Insights and Weekly Reports
=========================================================

Turns a set of reviews about weak aspects into one actionable insight, and
dashboard figures into a short plain-text weekly report.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from ...domain.models import Severity
from ...domain.records import read_field
from .chat_client import ChatClient, ChatCompletion
from .errors import ClassifierMalformedResponse

logger = logging.getLogger(__name__)


@dataclass
class GeneratedInsight:
    title: str
    summary: str
    severity: Severity
    recommendations: List[str] = field(default_factory=list)


class InsightGenerator:
    """
    USAGE:
        generator = InsightGenerator(ChatClient(settings.llm))
        insight, completion = generator.generate_insight(reviews, ["speed"])
        report, completion = generator.weekly_report("Blue Lagoon Hotel", figures)
    """

    INSIGHT_PROMPT = (
        "You are a business intelligence analyst. Analyze customer reviews to "
        "generate actionable insights.\n\n"
        "Focus on the aspects: {aspects}\n\n"
        "Provide insights in JSON format:\n"
        '{{"title": "Brief insight title", '
        '"summary": "2-3 sentence summary of the key finding", '
        '"severity": "LOW/MEDIUM/HIGH based on impact", '
        '"recommendations": ["actionable recommendation 1", "actionable recommendation 2"]}}'
    )

    REPORT_PROMPT = (
        "You are a business analyst creating a weekly review summary report. "
        "Write a professional, concise report that business owners can use to "
        "understand their customer feedback trends. Include key metrics, "
        "insights, and actionable recommendations."
    )

    def __init__(self, client: ChatClient, max_reviews: int = 20):
        self._client = client
        self._max_reviews = max_reviews

    @property
    def max_reviews(self) -> int:
        return self._max_reviews

    def generate_insight(self, reviews: Iterable, aspects: List[str]) -> Tuple[GeneratedInsight, ChatCompletion]:
        """
        Ask the model for one insight about `aspects` across `reviews`.

        Only the first max_reviews review texts are sent.
        """
        texts = [str(read_field(r, "text", default="")) for r in reviews][:self._max_reviews]
        completion = self._client.complete(
            [
                {"role": "system", "content": self.INSIGHT_PROMPT.format(aspects=", ".join(aspects))},
                {"role": "user", "content": "Analyze these customer reviews:\n\n" + "\n\n".join(texts)},
            ],
            json_mode=True,
        )
        return self.parse_insight(completion.content), completion

    @staticmethod
    def parse_insight(content: str) -> GeneratedInsight:
        try:
            data = json.loads(content)
        except (TypeError, ValueError) as e:
            raise ClassifierMalformedResponse("Insight response is not valid JSON") from e
        if not isinstance(data, dict):
            raise ClassifierMalformedResponse("Insight response is not a JSON object")

        title = str(data.get("title") or "").strip()
        summary = str(data.get("summary") or "").strip()
        if not title or not summary:
            raise ClassifierMalformedResponse("Insight response lacks title or summary")

        try:
            severity = Severity(str(data.get("severity", "")).strip().upper())
        except ValueError:
            logger.warning(f"Unexpected insight severity {data.get('severity')!r}, using MEDIUM")
            severity = Severity.MEDIUM

        recommendations = data.get("recommendations") or []
        if not isinstance(recommendations, list):
            recommendations = [recommendations]

        return GeneratedInsight(
            title=title,
            summary=summary,
            severity=severity,
            recommendations=[str(r) for r in recommendations],
        )

    def weekly_report(self, organization_name: str, figures: dict) -> Tuple[str, ChatCompletion]:
        """
        Write a weekly report.

        Args:
            organization_name: Business name for the report header.
            figures: totalReviews, averageRating, aspectScores ({label: score})
                and keyInsights (titles).
        """
        message = (
            f"Create a weekly report for {organization_name} with this data:\n\n"
            f"Total Reviews: {figures.get('totalReviews', 0)}\n"
            f"Average Rating: {figures.get('averageRating', 0)}/5\n"
            f"Aspect Scores: {json.dumps(figures.get('aspectScores', {}))}\n"
            f"Key Insights: {', '.join(figures.get('keyInsights', []))}\n\n"
            "Make it concise but comprehensive, focusing on actionable insights."
        )
        completion = self._client.complete([
            {"role": "system", "content": self.REPORT_PROMPT},
            {"role": "user", "content": message},
        ])
        return completion.content, completion
