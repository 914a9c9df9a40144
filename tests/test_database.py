"""
Tests for the SQLite repository.

Each test gets a fresh database file under pytest's tmp_path.

Usage:
    pytest tests/test_database.py -v
"""

from datetime import datetime

from reviewlens.domain.models import Aspect, AspectAnalysis, Sentiment
from reviewlens.infrastructure.persistence import CreatorFilters, Database, ReviewFilters
from reviewlens.infrastructure.persistence.seed import seed


# ============================================================================
# USERS, ORGANIZATIONS, SOURCES
# ============================================================================

class TestOrganizations:

    def test_create_and_lookup(self, db):
        owner_id = db.create_user("Owner", "o@test.com", "OWNER")
        org_id = db.create_organization("Blue Lagoon Hotel", owner_id)

        org = db.get_organization(org_id)
        assert org.slug == "blue-lagoon-hotel"
        assert db.get_organization_by_slug("blue-lagoon-hotel").id == org_id
        assert [o.id for o in db.get_user_organizations(owner_id)] == [org_id]

    def test_duplicate_email_and_slug(self, db):
        owner_id = db.create_user("Owner", "o@test.com", "OWNER")
        assert db.create_user("Other", "o@test.com", "OWNER") is None
        assert db.create_organization("Inn", owner_id) is not None
        assert db.create_organization("Inn", owner_id) is None

    def test_unknown_organization(self, db):
        assert db.get_organization(999) is None


class TestReviewSources:

    def test_duplicate_name_rejected(self, db, org):
        org_id, _ = org
        assert db.add_review_source(org_id, "Google Reviews") is None

    def test_get_or_create(self, db, org):
        org_id, source_id = org
        assert db.get_or_create_source(org_id, "Google Reviews") == source_id
        new_id = db.get_or_create_source(org_id, "CSV Upload")
        assert new_id != source_id
        assert [s.name for s in db.list_review_sources(org_id)] == ["Google Reviews", "CSV Upload"]

    def test_snapshot(self, db, org):
        _, source_id = org
        db.update_source_snapshot(source_id, 4.6, 779)
        source = db.get_review_source(source_id)
        assert (source.listed_rating, source.listed_review_count) == (4.6, 779)
        assert source.scraped_at


# ============================================================================
# REVIEWS
# ============================================================================

class TestReviews:

    def add(self, db, org, rating, text, created_at, author=""):
        org_id, source_id = org
        return db.add_review(org_id, source_id, rating, text, author=author, created_at=created_at)

    def test_constraints(self, db, org):
        assert self.add(db, org, 6, "Too many stars", None) is None
        assert self.add(db, org, 3, "   ", None) is None
        assert self.add(db, org, 3, "Fine", None) is not None

    def test_newest_first_and_filters(self, db, org):
        org_id, source_id = org
        self.add(db, org, 5, "Spotless and friendly", datetime(2024, 5, 1))
        self.add(db, org, 2, "Slow breakfast", datetime(2024, 5, 20))
        self.add(db, org, 4, "Nice pool", datetime(2024, 6, 1))

        assert [r.text for r in db.list_reviews_for_org(org_id)] == [
            "Nice pool", "Slow breakfast", "Spotless and friendly"
        ]
        assert [r.rating for r in db.list_reviews_for_org(org_id, ReviewFilters(ratings=[4, 5]))] == [4, 5]
        assert [r.text for r in db.list_reviews_for_org(org_id, ReviewFilters(keyword="slow"))] == ["Slow breakfast"]

        window = ReviewFilters(date_from=datetime(2024, 5, 10), date_to=datetime(2024, 5, 31))
        assert [r.text for r in db.list_reviews_for_org(org_id, window)] == ["Slow breakfast"]

        page = ReviewFilters(limit=1, offset=1)
        assert [r.text for r in db.list_reviews_for_org(org_id, page)] == ["Slow breakfast"]

    def test_organizations_are_isolated(self, db, org):
        org_id, _ = org
        self.add(db, org, 5, "Mine", None)
        other_owner = db.create_user("Other", "x@test.com", "OWNER")
        other_org = db.create_organization("Other Inn", other_owner)
        assert db.list_reviews_for_org(other_org) == []
        assert len(db.list_reviews_for_org(org_id)) == 1

    def test_bulk_add(self, db, org):
        org_id, source_id = org
        result = db.bulk_add_reviews(org_id, source_id, [
            {"rating": 5, "text": "Great", "author": "Ann", "created_at": datetime(2024, 5, 1)},
            {"rating": 4, "text": "", "author": "Bo"},
            {"rating": 9, "text": "Bad rating"},
        ])
        assert result["added"] == 1
        assert result["skipped"] == 1
        assert len(result["errors"]) == 1
        review = db.get_review(result["ids"][0])
        assert review.created_at == "2024-05-01 00:00:00"
        assert review.author == "Ann"

    def test_reviews_with_sources_and_aspects(self, db, org):
        org_id, _ = org
        review_id = self.add(db, org, 5, "Spotless", datetime(2024, 5, 1), author="Ann")
        db.save_aspect_scores(review_id, [AspectAnalysis(Aspect.CLEANLINESS, Sentiment.POS, 90)])

        rows = db.list_reviews_with_sources(org_id, limit=5)
        assert rows[0]["source"]["name"] == "Google Reviews"
        assert rows[0]["aspects"] == [{"aspect": "CLEANLINESS", "sentiment": "POS", "score": 90.0}]

    def test_aspect_filter(self, db, org):
        org_id, _ = org
        first = self.add(db, org, 5, "Spotless", None)
        self.add(db, org, 3, "Meh", None)
        db.save_aspect_scores(first, [{"aspect": "CLEANLINESS", "sentiment": "POS", "score": 90}])
        filtered = db.list_reviews_for_org(org_id, ReviewFilters(aspects=["cleanliness"]))
        assert [r.id for r in filtered] == [first]

    def test_unanalyzed(self, db, org):
        org_id, _ = org
        first = self.add(db, org, 5, "Spotless", datetime(2024, 5, 1))
        second = self.add(db, org, 3, "Meh", datetime(2024, 5, 2))
        db.save_aspect_scores(first, [{"aspect": "STAFF", "sentiment": "POS", "score": 80}])
        assert [r.id for r in db.list_unanalyzed_reviews(org_id)] == [second]


# ============================================================================
# ASPECT SCORES & SCALE
# ============================================================================

class TestAspectScores:

    def test_save_replaces_previous(self, db, org):
        org_id, source_id = org
        review_id = db.add_review(org_id, source_id, 4, "Friendly staff", created_at=datetime(2024, 5, 1))
        db.save_aspect_scores(review_id, [{"aspect": "STAFF", "sentiment": "NEG", "score": 10}])
        written = db.save_aspect_scores(review_id, [
            {"aspect": "STAFF", "sentiment": "POS", "score": 85},
            {"aspect": "BOGUS", "sentiment": "POS", "score": 85},
        ])
        assert written == 1

        scores = db.list_aspect_scores_for_org(org_id)
        assert len(scores) == 1
        assert scores[0].sentiment is Sentiment.POS
        assert scores[0].created_at == "2024-05-01 00:00:00"

    def test_grouped_counts(self, db, org):
        org_id, source_id = org
        for text, sentiment, score in [("a", "POS", 80), ("b", "POS", 90), ("c", "NEG", 10)]:
            review_id = db.add_review(org_id, source_id, 3, text)
            db.save_aspect_scores(review_id, [{"aspect": "SPEED", "sentiment": sentiment, "score": score}])

        counts = {(row["aspect"], row["sentiment"]): row for row in db.get_aspect_score_counts(org_id)}
        assert counts[("SPEED", "POS")]["count"] == 2
        assert counts[("SPEED", "POS")]["avg_score"] == 85.0
        assert counts[("SPEED", "NEG")]["count"] == 1

    def test_scores_clamped(self, db, org):
        org_id, source_id = org
        review_id = db.add_review(org_id, source_id, 3, "x")
        db.save_aspect_scores(review_id, [{"aspect": "VALUE", "sentiment": "POS", "score": 250}])
        assert db.list_aspect_scores_for_org(org_id)[0].score == 100.0

    def test_unit_scale_round_trip(self, tmp_path):
        db = Database(str(tmp_path / "unit.db"), score_scale="unit")
        db.init()
        owner = db.create_user("O", "o@test.com", "OWNER")
        org_id = db.create_organization("Inn", owner)
        source_id = db.add_review_source(org_id, "Google")
        review_id = db.add_review(org_id, source_id, 4, "Good value")
        db.save_aspect_scores(review_id, [{"aspect": "VALUE", "sentiment": "POS", "score": 85}])

        with db._get_connection() as conn:
            stored = conn.execute("SELECT score FROM aspect_scores").fetchone()[0]
        assert stored == 0.85
        assert db.list_aspect_scores_for_org(org_id)[0].score == 85.0

    def test_non_finite_score_stored_as_neutral(self, db, org):
        org_id, source_id = org
        review_id = db.add_review(org_id, source_id, 3, "x")
        written = db.save_aspect_scores(review_id, [
            {"aspect": "STAFF", "sentiment": "POS", "score": float("nan")},
            {"aspect": "VALUE", "sentiment": "NEG", "score": float("-inf")},
        ])
        assert written == 2
        assert [s.score for s in db.list_aspect_scores_for_org(org_id)] == [50.0, 50.0]

    def test_unreadable_stored_score_reads_as_neutral(self, db, org):
        org_id, source_id = org
        review_id = db.add_review(org_id, source_id, 3, "x")
        with db._get_connection() as conn:
            conn.execute(
                "INSERT INTO aspect_scores (review_id, aspect, sentiment, score) VALUES (?, ?, ?, ?)",
                (review_id, "STAFF", "POS", "high")
            )
        assert db.list_aspect_scores_for_org(org_id)[0].score == 50.0

    def test_unknown_scale_falls_back_to_percent(self, tmp_path):
        assert Database(str(tmp_path / "x.db"), score_scale="permille").score_scale == "percent"


# ============================================================================
# CREATORS & SHORTLISTS
# ============================================================================

class TestCreators:

    def make_creator(self, db, email, name, followers, niches=("travel",)):
        user_id = db.create_user(name, email, "CREATOR")
        creator_id = db.create_creator_profile(user_id, name, country="Jamaica", niches=list(niches))
        db.upsert_creator_stats(creator_id, followers, 6.0, 1000, 2)
        return user_id, creator_id

    def test_profile_with_stats(self, db):
        user_id, creator_id = self.make_creator(db, "c@test.com", "Maya", 127000)
        creator = db.get_creator_profile(user_id)
        assert creator.id == creator_id
        assert creator.niches == ["travel"]
        assert creator.followers == 127000
        assert creator.engagement_rate == 6.0

    def test_one_profile_per_user(self, db):
        user_id, _ = self.make_creator(db, "c@test.com", "Maya", 1)
        assert db.create_creator_profile(user_id, "Again") is None

    def test_update_profile_ignores_unknown_fields(self, db):
        user_id, creator_id = self.make_creator(db, "c@test.com", "Maya", 1)
        assert db.update_creator_profile(creator_id, city="Negril", niches=["luxury"], password="x")
        creator = db.get_creator(creator_id)
        assert creator.city == "Negril"
        assert creator.niches == ["luxury"]
        assert db.update_creator_profile(creator_id, password="x") is False

    def test_stats_upsert(self, db):
        _, creator_id = self.make_creator(db, "c@test.com", "Maya", 1)
        db.upsert_creator_stats(creator_id, 500, 9.1)
        assert db.get_creator(creator_id).followers == 500

    def test_creator_without_stats(self, db):
        user_id = db.create_user("New", "n@test.com", "CREATOR")
        creator_id = db.create_creator_profile(user_id, "New")
        creator = db.get_creator(creator_id)
        assert (creator.followers, creator.engagement_rate) == (0, 0.0)

    def test_min_followers_filter(self, db):
        self.make_creator(db, "a@test.com", "Small", 1000)
        self.make_creator(db, "b@test.com", "Big", 200000)
        names = [c.display_name for c in db.list_creators(CreatorFilters(min_followers=50000))]
        assert names == ["Big"]
        assert len(db.list_creators()) == 2

    def test_shortlist(self, db, org):
        org_id, _ = org
        _, creator_id = self.make_creator(db, "c@test.com", "Maya", 1)

        assert db.add_to_shortlist(org_id, creator_id) is True
        assert db.add_to_shortlist(org_id, creator_id) is False
        entries = db.list_shortlisted_creators(org_id)
        assert [e.creator.display_name for e in entries] == ["Maya"]
        assert entries[0].shortlisted_at

        assert db.remove_from_shortlist(org_id, creator_id) is True
        assert db.remove_from_shortlist(org_id, creator_id) is False
        assert db.list_shortlisted_creators(org_id) == []


# ============================================================================
# INSIGHTS, TRAINING, USAGE
# ============================================================================

class TestInsightsTrainingUsage:

    def test_insight_round_trip(self, db, org):
        org_id, _ = org
        insight_id = db.create_insight(
            org_id, "Slow service", "Guests wait.", ["SPEED"], "HIGH",
            recommendations=["Add staff"], from_date=datetime(2024, 5, 1),
            to_date=datetime(2024, 5, 31), contributing_review_ids=[3, 4],
        )
        insight = db.list_insights(org_id)[0]
        assert insight.id == insight_id
        assert insight.aspects == ["SPEED"]
        assert insight.contributing_review_ids == [3, 4]
        assert insight.to_dict()["fromDate"] == "2024-05-01 00:00:00"

    def test_training_by_category(self, db):
        db.add_training_resource("Service Excellence", "Speed Of Service Basics", "VIDEO", url="https://v")
        db.add_training_resource("Housekeeping", "Cleanliness Checklist", "DOC", markdown="# Clean")
        assert [r.title for r in db.list_training_resources("Housekeeping")] == ["Cleanliness Checklist"]
        assert len(db.list_training_resources()) == 2

    def test_recommended_training_follows_insight_aspects(self, db, org):
        org_id, _ = org
        db.add_training_resource("Service Excellence", "Speed Of Service Basics", "VIDEO")
        db.add_training_resource("Housekeeping", "Cleanliness Checklist", "DOC")
        assert db.get_recommended_training(org_id) == []

        db.create_insight(org_id, "Slow", "Waits.", ["SPEED"], "HIGH")
        assert [r.title for r in db.get_recommended_training(org_id)] == ["Speed Of Service Basics"]

    def test_usage_stats(self, db, org):
        org_id, _ = org
        db.log_usage(org_id, "AI_CALL", tokens=100)
        db.log_usage(org_id, "AI_CALL", tokens=50)
        db.log_usage(org_id, "UPLOAD", meta={"reviewsUploaded": 3})
        assert db.get_usage_stats(org_id) == {
            "AI_CALL": {"tokens": 150, "count": 2},
            "UPLOAD": {"tokens": 0, "count": 1},
        }

    def test_ai_log(self, db, org):
        org_id, _ = org
        db.log_ai_call(org_id, "sentiment", "prompt", "response", 10, 5, success=True)
        db.log_ai_call(org_id, "sentiment", "prompt", "boom", success=False)
        assert db.count_ai_calls(org_id) == 2
        assert db.count_ai_calls(org_id, success=False) == 1


# ============================================================================
# SEED
# ============================================================================

class TestSeed:

    def test_seed_is_idempotent(self, db):
        now = datetime(2024, 6, 15)
        org_id = seed(db, now=now)
        assert seed(db, now=now) == org_id

        assert db.get_organization(org_id).name == "Blue Lagoon Hotel"
        assert len(db.list_reviews_for_org(org_id)) == 8
        assert [s.name for s in db.list_review_sources(org_id)] == ["Google Reviews", "TripAdvisor"]
        assert sorted(c.display_name for c in db.list_creators()) == [
            "Marcus Johnson", "Maya Thompson", "Sophia Williams"
        ]
        assert len(db.list_training_resources()) == 2
