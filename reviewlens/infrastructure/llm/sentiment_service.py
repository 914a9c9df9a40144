"""
Sentiment Service - LLM-Based Aspect Sentiment Classification
=============================================================

ARCHITECTURAL DECISION:
- One chat-completions call per review, JSON mode, temperature 0
- The response is validated strictly; anything off-schema is an error
- No retries, no partial results, no heuristic fallback
- No business logic - just classification

RESPONSE SHAPE:
    {
      "aspectScores": [
        {"aspect": "CLEANLINESS", "sentiment": "POS", "score": 85,
         "reasoning": "Customer praised the spotless rooms"}
      ],
      "overallSentiment": "POS",
      "keyPoints": ["Clean facilities", "Friendly staff"]
    }

Only aspects the review mentions are listed, each at most once.
"""

import json
import logging
import math
from typing import Tuple

from ...domain.models import Aspect, AspectAnalysis, ReviewAnalysis, Sentiment
from .chat_client import ChatClient, ChatCompletion
from .errors import ClassifierMalformedResponse

logger = logging.getLogger(__name__)


class ReviewClassifier:
    """
    Aspect sentiment classifier backed by an LLM.

    USAGE:
        classifier = ReviewClassifier(ChatClient(settings.llm))
        analysis = classifier.analyze("Spotless room, slow check-in.")
        for item in analysis.aspect_scores:
            print(item.aspect, item.sentiment, item.score)
    """

    SYSTEM_PROMPT = (
        "You are a sentiment analysis expert for business reviews. "
        "Analyze the review across these 6 aspects:\n"
        "- CLEANLINESS: How clean and well-maintained the business is\n"
        "- STAFF: Quality of service, friendliness, and professionalism of staff\n"
        "- FOOD_QUALITY: Quality, taste, and presentation of food/products\n"
        "- VALUE: Price-to-quality ratio and overall value for money\n"
        "- LOCATION: Accessibility, convenience, and appeal of location\n"
        "- SPEED: Timeliness of service and efficiency\n\n"
        "For each aspect mentioned in the review (at most once per aspect), provide:\n"
        "- sentiment: NEG, NEUTRAL, or POS\n"
        "- score: 0-100 (0=very negative, 50=neutral, 100=very positive)\n"
        "- reasoning: brief explanation\n\n"
        "Respond with JSON in this format:\n"
        '{"aspectScores": [{"aspect": "CLEANLINESS", "sentiment": "POS", "score": 85, '
        '"reasoning": "Customer praised the spotless rooms"}], '
        '"overallSentiment": "POS", "keyPoints": ["Clean facilities", "Friendly staff"]}'
    )

    def __init__(self, client: ChatClient):
        self._client = client

    def analyze(self, text: str) -> ReviewAnalysis:
        """
        Classify a review's text per aspect.

        Args:
            text: Review text.

        Returns:
            ReviewAnalysis with at most one entry per aspect.

        Raises:
            ValueError: text is empty
            ClassifierError: transport failure, timeout or malformed response
        """
        analysis, _ = self.analyze_with_usage(text)
        return analysis

    def analyze_with_usage(self, text: str) -> Tuple[ReviewAnalysis, ChatCompletion]:
        """Like analyze(), also returning the raw completion for logging."""
        if not text or not text.strip():
            raise ValueError("Review text is empty")

        completion = self._client.complete(
            [
                {"role": "system", "content": self.SYSTEM_PROMPT},
                {"role": "user", "content": text.strip()},
            ],
            json_mode=True,
        )
        analysis = self.parse_response(completion.content)
        logger.debug(f"Classified review into {len(analysis.aspect_scores)} aspects")
        return analysis, completion

    @classmethod
    def parse_response(cls, content: str) -> ReviewAnalysis:
        """Validate the model's JSON and build a ReviewAnalysis."""
        try:
            data = json.loads(content)
        except (TypeError, ValueError) as e:
            raise ClassifierMalformedResponse("Classifier response is not valid JSON") from e

        if not isinstance(data, dict):
            raise ClassifierMalformedResponse("Classifier response is not a JSON object")

        items = data.get("aspectScores")
        if not isinstance(items, list):
            raise ClassifierMalformedResponse("aspectScores missing or not a list")

        overall = Sentiment.parse(data.get("overallSentiment"))
        if overall is None:
            raise ClassifierMalformedResponse(
                f"Invalid overallSentiment: {data.get('overallSentiment')!r}"
            )

        aspect_scores = []
        seen = set()
        for item in items:
            analysis = cls._parse_aspect(item)
            if analysis.aspect in seen:
                raise ClassifierMalformedResponse(f"Duplicate aspect: {analysis.aspect.value}")
            seen.add(analysis.aspect)
            aspect_scores.append(analysis)

        key_points = data.get("keyPoints") or []
        if not isinstance(key_points, list):
            raise ClassifierMalformedResponse("keyPoints is not a list")

        return ReviewAnalysis(
            aspect_scores=aspect_scores,
            overall_sentiment=overall,
            key_points=[str(point) for point in key_points],
        )

    @staticmethod
    def _parse_aspect(item) -> AspectAnalysis:
        if not isinstance(item, dict):
            raise ClassifierMalformedResponse(f"Aspect entry is not an object: {item!r}")

        aspect = Aspect.parse(item.get("aspect"))
        if aspect is None:
            raise ClassifierMalformedResponse(f"Unknown aspect: {item.get('aspect')!r}")

        sentiment = Sentiment.parse(item.get("sentiment"))
        if sentiment is None:
            raise ClassifierMalformedResponse(f"Invalid sentiment: {item.get('sentiment')!r}")

        score = item.get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ClassifierMalformedResponse(f"Score is not a number: {score!r}")
        if not math.isfinite(score) or not 0 <= score <= 100:
            raise ClassifierMalformedResponse(f"Score out of range: {score!r}")

        return AspectAnalysis(
            aspect=aspect,
            sentiment=sentiment,
            score=float(score),
            reasoning=str(item.get("reasoning") or ""),
        )
