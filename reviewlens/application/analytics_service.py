"""
Analytics Service - Application Orchestration
=============================================

Sits between the HTTP layer and the collaborators built at startup
(database, classifier, insight generator, scraper). Every method takes an
already-authorized organization or user id; nothing here reads globals.

FAILURE POLICY:
- Classifier errors are written to the AI log, then re-raised
- analyze_pending(skip_failures=True) logs and moves on (upload path)
- recompute_insights() fails fast on the first classifier error
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..domain import (
    Aspect, Review, ReviewAnalysis,
    aggregate_aspect_scores, brand_fit_breakdown, calculate_brand_fit_score,
    overall_sentiment, rating_summary, rating_trends,
)
from ..domain.aspects import parse_timestamp
from ..infrastructure.config.settings import AnalyticsSettings
from ..infrastructure.llm import ClassifierError, InsightGenerator, ReviewClassifier
from ..infrastructure.persistence import CreatorFilters, Database, Organization, ReviewFilters

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_NAME = "CSV Upload"


class OrganizationNotFound(LookupError):
    pass


class CreatorNotFound(LookupError):
    pass


class UserNotFound(LookupError):
    pass


class AnalyticsService:
    """
    Dashboard, review, creator and insight operations for one deployment.

    USAGE:
        service = AnalyticsService(db, classifier, insight_generator, settings.analytics)
        dashboard = service.get_dashboard(org_id)
    """

    def __init__(self, database: Database, classifier: ReviewClassifier,
                 insight_generator: InsightGenerator,
                 settings: Optional[AnalyticsSettings] = None, scraper=None):
        self.db = database
        self.classifier = classifier
        self.insight_generator = insight_generator
        self.settings = settings or AnalyticsSettings()
        self.scraper = scraper

    def require_organization(self, org_id: int) -> Organization:
        org = self.db.get_organization(org_id)
        if org is None:
            raise OrganizationNotFound(f"Organization {org_id} not found")
        return org

    # ── Dashboard & Reviews ────────────────────────────────────────

    def get_dashboard(self, org_id: int, now: Optional[datetime] = None) -> dict:
        """Metrics, recent reviews, aspect rollups, rating trends and latest insights."""
        org = self.require_organization(org_id)
        now = now or datetime.now(timezone.utc).replace(tzinfo=None)

        reviews = self.db.list_reviews_for_org(org_id)
        recent = self.db.list_reviews_with_sources(org_id, limit=self.settings.recent_review_count)
        rollups = aggregate_aspect_scores(
            self.db.list_aspect_scores_for_org(org_id),
            window_days=self.settings.trend_window_days,
        )

        return {
            "organization": {"id": org.id, "name": org.name, "slug": org.slug},
            "metrics": rating_summary(reviews),
            "recentReviews": [self._with_sentiment(r) for r in recent],
            "keyAreas": [r.to_dict() for r in rollups],
            "ratingTrends": rating_trends(reviews, days=self.settings.rating_trend_days, now=now),
            "insights": [i.to_dict() for i in self.db.list_insights(org_id, limit=5)],
        }

    def get_reviews(self, org_id: int, filters: Optional[ReviewFilters] = None) -> List[dict]:
        """Filtered reviews with source, aspect scores and overall sentiment."""
        self.require_organization(org_id)
        filters = filters or ReviewFilters()
        rows = self.db.list_reviews_with_sources(org_id, limit=filters.limit or 50, filters=filters)
        return [self._with_sentiment(r) for r in rows]

    @staticmethod
    def _with_sentiment(review: dict) -> dict:
        return {**review, "sentiment": overall_sentiment(review.get("aspects", []))}

    # ── Creators ───────────────────────────────────────────────────

    def get_creators(self, filters: Optional[CreatorFilters] = None) -> List[dict]:
        """
        Creators annotated with brandFitScore, best fit first.

        niches matches any tag containing any requested niche; location is a
        case-insensitive substring of city or country.
        """
        filters = filters or CreatorFilters()
        wanted = [n.lower() for n in filters.niches if n]
        location = (filters.location or "").strip().lower()

        results = []
        for creator in self.db.list_creators(filters):
            if wanted and not any(w in tag.lower() for tag in creator.niches for w in wanted):
                continue
            if location and location not in creator.city.lower() and location not in creator.country.lower():
                continue
            score = calculate_brand_fit_score(creator)
            if filters.min_brand_fit is not None and score < filters.min_brand_fit:
                continue
            results.append({**creator.to_dict(), "brandFitScore": score})

        results.sort(key=lambda c: c["brandFitScore"], reverse=True)
        return results

    def get_shortlist(self, org_id: int) -> List[dict]:
        self.require_organization(org_id)
        return [
            {
                **entry.creator.to_dict(),
                "brandFitScore": calculate_brand_fit_score(entry.creator),
                "shortlistedAt": entry.shortlisted_at,
            }
            for entry in self.db.list_shortlisted_creators(org_id)
        ]

    def shortlist_creator(self, org_id: int, creator_id: int) -> bool:
        """Returns False when the creator was already shortlisted."""
        self.require_organization(org_id)
        if self.db.get_creator(creator_id) is None:
            raise CreatorNotFound(f"Creator {creator_id} not found")
        return self.db.add_to_shortlist(org_id, creator_id)

    def remove_from_shortlist(self, org_id: int, creator_id: int) -> bool:
        self.require_organization(org_id)
        return self.db.remove_from_shortlist(org_id, creator_id)

    def get_creator_profile(self, user_id: int) -> Optional[dict]:
        """The user's creator profile with its brand fit breakdown, or None."""
        creator = self.db.get_creator_profile(user_id)
        if creator is None:
            return None
        return {**creator.to_dict(), "brandFit": brand_fit_breakdown(creator).to_dict()}

    def save_creator_profile(self, user_id: int, data: dict) -> dict:
        """
        Create or update a user's creator profile (and stats, if given).

        Args:
            user_id: Owner of the profile
            data: display_name, bio, city, country, niches, *_url fields and
                optionally followers, engagement_rate, impressions_30d,
                post_frequency_per_week
        """
        if self.db.get_user(user_id) is None:
            raise UserNotFound(f"User {user_id} not found")

        profile_fields = {
            k: v for k, v in data.items()
            if k in ("display_name", "bio", "city", "country", "niches",
                     "instagram_url", "facebook_url", "tiktok_url") and v is not None
        }

        existing = self.db.get_creator_profile(user_id)
        if existing:
            creator_id = existing.id
            self.db.update_creator_profile(creator_id, **profile_fields)
        else:
            if not str(profile_fields.get("display_name", "")).strip():
                raise ValueError("display_name is required to create a creator profile")
            creator_id = self.db.create_creator_profile(user_id, **profile_fields)

        stats_keys = ("followers", "engagement_rate", "impressions_30d", "post_frequency_per_week")
        stats = {k: data[k] for k in stats_keys if data.get(k) is not None}
        if stats:
            current = self.db.get_creator(creator_id)
            merged = {k: getattr(current, k) for k in stats_keys}
            merged.update(stats)
            self.db.upsert_creator_stats(creator_id, **merged)

        logger.info(f"Saved creator profile {creator_id} for user {user_id}")
        return self.get_creator_profile(user_id)

    # ── Training & Usage ───────────────────────────────────────────

    def get_training(self, org_id: Optional[int] = None, category: Optional[str] = None) -> dict:
        resources = [r.to_dict() for r in self.db.list_training_resources(category)]
        recommended = self.get_recommended_training(org_id) if org_id is not None else []
        return {"resources": resources, "recommended": recommended}

    def get_recommended_training(self, org_id: int) -> List[dict]:
        self.require_organization(org_id)
        return [r.to_dict() for r in self.db.get_recommended_training(org_id)]

    def get_usage(self, org_id: int, days: int = 30) -> dict:
        self.require_organization(org_id)
        return self.db.get_usage_stats(org_id, days)

    # ── Sources & Imports ──────────────────────────────────────────

    def list_review_sources(self, org_id: int) -> List[dict]:
        self.require_organization(org_id)
        return [s.to_dict() for s in self.db.list_review_sources(org_id)]

    def add_review_source(self, org_id: int, name: str, url: str = "") -> dict:
        self.require_organization(org_id)
        name = (name or "").strip()
        if not name:
            raise ValueError("Source name is required")
        source_id = self.db.add_review_source(org_id, name, url)
        if source_id is None:
            raise ValueError(f"Review source '{name}' already exists")
        return self.db.get_review_source(source_id).to_dict()

    def record_source_snapshot(self, source_id: int, rating: Optional[float],
                               review_count: Optional[int]):
        self.db.update_source_snapshot(source_id, rating, review_count)
        logger.info(f"Source {source_id} snapshot: rating={rating}, reviews={review_count}")

    def refresh_source_snapshot(self, source_id: int) -> bool:
        """Scrape a source's listing page and store what it shows. False if nothing was read."""
        source = self.db.get_review_source(source_id)
        if source is None or not source.url or self.scraper is None:
            return False
        snapshot = self.scraper.scrape(source.url)
        if snapshot.is_empty:
            logger.warning(f"No listing figures found for source {source_id} ({source.url})")
            return False
        self.record_source_snapshot(source_id, snapshot.rating, snapshot.review_count)
        return True

    def import_reviews(self, org_id: int, rows: List[dict], source_name: str = DEFAULT_SOURCE_NAME,
                       skipped: int = 0) -> dict:
        """
        Store parsed review rows under a (created-if-missing) source.

        Args:
            org_id: Owning organization
            rows: Dicts with rating, text, author, created_at
            source_name: Review source to file the rows under
            skipped: Rows the parser already dropped, reported back as skipped
        """
        self.require_organization(org_id)
        source_id = self.db.get_or_create_source(org_id, source_name or DEFAULT_SOURCE_NAME)
        result = self.db.bulk_add_reviews(org_id, source_id, rows)

        self.db.log_usage(org_id, "UPLOAD", meta={
            "reviewsUploaded": result['added'],
            "source": source_name,
        })

        return {
            "added": result['added'],
            "skipped": result['skipped'] + skipped,
            "errors": result['errors'],
            "reviewIds": result['ids'],
            "sourceId": source_id,
        }

    # ── Classification & Insights ──────────────────────────────────

    def analyze_review(self, review: Review) -> ReviewAnalysis:
        """Classify one review and store its aspect scores."""
        try:
            analysis, completion = self.classifier.analyze_with_usage(review.text)
        except ClassifierError as e:
            logger.warning(f"Classification failed for review {review.id}: {e}")
            self.db.log_ai_call(review.organization_id, "sentiment", review.text, str(e), success=False)
            raise

        self.db.save_aspect_scores(review.id, analysis.aspect_scores)
        self.db.log_ai_call(
            review.organization_id, "sentiment", completion.prompt, completion.content,
            completion.tokens_in, completion.tokens_out, success=True
        )
        self.db.log_usage(review.organization_id, "AI_CALL",
                          tokens=completion.tokens_in + completion.tokens_out,
                          meta={"route": "sentiment", "reviewId": review.id})
        return analysis

    def analyze_pending(self, org_id: int, limit: Optional[int] = None,
                        skip_failures: bool = False) -> dict:
        """
        Classify reviews that have no aspect scores yet, oldest first.

        With skip_failures the pass logs each failure and continues;
        otherwise the first ClassifierError propagates.
        """
        analyzed = failed = 0
        for review in self.db.list_unanalyzed_reviews(org_id, limit):
            try:
                self.analyze_review(review)
                analyzed += 1
            except ClassifierError:
                if not skip_failures:
                    raise
                failed += 1

        if analyzed or failed:
            logger.info(f"Organization {org_id}: analyzed {analyzed} reviews, {failed} failed")
        return {"analyzed": analyzed, "failed": failed}

    def recompute_insights(self, org_id: int) -> List[dict]:
        """
        Generate an insight for the organization's weakest aspects.

        Aspects scoring below the threshold are taken weakest first, at most
        max_insight_aspects of them. Returns the new insights (empty when no
        aspect is below the threshold).
        """
        self.require_organization(org_id)
        self.analyze_pending(org_id)

        score_rows = self.db.list_aspect_scores_for_org(org_id)
        order = list(Aspect)
        weak = sorted(
            (r for r in aggregate_aspect_scores(score_rows, window_days=self.settings.trend_window_days)
             if r.score < self.settings.insight_score_threshold),
            key=lambda r: (r.score, order.index(r.aspect)),
        )[:self.settings.max_insight_aspects]
        if not weak:
            logger.info(f"Organization {org_id}: no aspect below {self.settings.insight_score_threshold}")
            return []

        weak_aspects = {r.aspect for r in weak}
        mentioned = {s.review_id for s in score_rows if s.aspect in weak_aspects}
        reviews = [r for r in self.db.list_reviews_for_org(org_id) if r.id in mentioned]
        reviews = reviews[:self.insight_generator.max_reviews]

        labels = [r.aspect.label for r in weak]
        try:
            generated, completion = self.insight_generator.generate_insight(reviews, labels)
        except ClassifierError as e:
            logger.warning(f"Insight generation failed for organization {org_id}: {e}")
            self.db.log_ai_call(org_id, "insights", ", ".join(labels), str(e), success=False)
            raise

        self.db.log_ai_call(org_id, "insights", completion.prompt, completion.content,
                            completion.tokens_in, completion.tokens_out, success=True)
        self.db.log_usage(org_id, "AI_CALL", tokens=completion.tokens_in + completion.tokens_out,
                          meta={"route": "insights"})

        dates = [d for d in (parse_timestamp(r.created_at) for r in reviews) if d is not None]
        insight_id = self.db.create_insight(
            org_id,
            title=generated.title,
            summary=generated.summary,
            aspects=[r.aspect.value for r in weak],
            severity=generated.severity.value,
            recommendations=generated.recommendations,
            from_date=min(dates) if dates else None,
            to_date=max(dates) if dates else None,
            contributing_review_ids=[r.id for r in reviews],
        )
        logger.info(f"Organization {org_id}: stored insight {insight_id} for {labels}")
        return [i.to_dict() for i in self.db.list_insights(org_id) if i.id == insight_id]

    def list_insights(self, org_id: int) -> List[dict]:
        self.require_organization(org_id)
        return [i.to_dict() for i in self.db.list_insights(org_id)]

    def weekly_report(self, org_id: int, now: Optional[datetime] = None) -> dict:
        """Plain-text weekly report written by the LLM from the dashboard figures."""
        org = self.require_organization(org_id)
        now = now or datetime.now(timezone.utc).replace(tzinfo=None)
        dashboard = self.get_dashboard(org_id, now=now)
        figures: Dict = {
            "totalReviews": dashboard["metrics"]["totalReviews"],
            "averageRating": dashboard["metrics"]["averageRating"],
            "aspectScores": {area["aspect"]: area["score"] for area in dashboard["keyAreas"]},
            "keyInsights": [i["title"] for i in dashboard["insights"]],
        }

        try:
            report, completion = self.insight_generator.weekly_report(org.name, figures)
        except ClassifierError as e:
            logger.warning(f"Weekly report failed for organization {org_id}: {e}")
            self.db.log_ai_call(org_id, "weekly_report", org.name, str(e), success=False)
            raise

        self.db.log_ai_call(org_id, "weekly_report", completion.prompt, completion.content,
                            completion.tokens_in, completion.tokens_out, success=True)
        self.db.log_usage(org_id, "AI_CALL", tokens=completion.tokens_in + completion.tokens_out,
                          meta={"route": "weekly_report"})

        return {
            "organization": org.name,
            "generatedAt": now.strftime("%Y-%m-%d %H:%M:%S"),
            "figures": figures,
            "report": report,
        }
