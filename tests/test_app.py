"""
Tests for the FastAPI routes, built around fake LLM collaborators and a
temporary SQLite file.

Usage:
    pytest tests/test_app.py -v
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from conftest import FakeClassifier, FakeInsightGenerator, NOW
from reviewlens.infrastructure.config import LLMSettings, Settings
from reviewlens.infrastructure.llm import ClassifierTimeout
from reviewlens.infrastructure.persistence.seed import seed
from reviewlens.infrastructure.scraper import SourceSnapshot
from reviewlens.web.app import create_app


@pytest.fixture
def scraper():
    mock = MagicMock()
    mock.scrape.return_value = SourceSnapshot(rating=4.6, review_count=812)
    return mock


def make_client(tmp_path, db, classifier=None, insight_generator=None, scraper=None):
    settings = Settings(llm=LLMSettings(api_key=""), database_file=tmp_path / "test.db")
    app = create_app(
        settings=settings,
        database=db,
        classifier=classifier or FakeClassifier(),
        insight_generator=insight_generator or FakeInsightGenerator(),
        scraper=scraper or MagicMock(),
    )
    return TestClient(app)


@pytest.fixture
def client(tmp_path, db, scraper):
    with make_client(tmp_path, db, scraper=scraper) as test_client:
        yield test_client


# ============================================================================
# HEALTH & ERROR MAPPING
# ============================================================================

class TestErrors:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "llmConfigured": False}

    def test_unknown_organization_is_404(self, client):
        response = client.get("/api/dashboard/999")
        assert response.status_code == 404
        assert response.json() == {"message": "Organization 999 not found"}

    def test_bad_date_is_400(self, client, org):
        org_id, _ = org
        response = client.get(f"/api/reviews/{org_id}", params={"date_from": "last tuesday"})
        assert response.status_code == 400

    def test_classifier_timeout_is_504(self, tmp_path, db, org):
        org_id, source_id = org
        db.add_review(org_id, source_id, 1, "Rude staff")
        generator = FakeInsightGenerator(error=ClassifierTimeout("no answer in 30s"))
        with make_client(tmp_path, db, insight_generator=generator) as client:
            response = client.post(f"/api/insights/{org_id}/recompute")
        assert response.status_code == 504
        assert "no answer in 30s" in response.json()["message"]

    def test_classifier_failure_is_502(self, tmp_path, db, org):
        org_id, source_id = org
        db.add_review(org_id, source_id, 3, "broken review")
        with make_client(tmp_path, db, classifier=FakeClassifier(fail_on="broken")) as client:
            response = client.post(f"/api/insights/{org_id}/recompute")
        assert response.status_code == 502
        assert response.json()["message"] == "Analysis failed: model offline"


# ============================================================================
# UPLOAD & REVIEWS
# ============================================================================

class TestUpload:

    CSV = (
        "Rating,Review,Name,Date\n"
        "5,Spotless room and friendly staff,Ann,2024-06-01\n"
        "2,Slow check-in,Bo,2024-06-02\n"
        "9,Out of range,Cy,2024-06-03\n"
    )

    def test_upload_then_list(self, client, org):
        org_id, _ = org
        response = client.post(
            f"/api/reviews/{org_id}/upload",
            files={"file": ("export.csv", self.CSV.encode(), "text/csv")},
            data={"source": "Booking.com"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 2
        assert body["skipped"] == 1
        assert body["columns"]["text"] == "review"

        reviews = client.get(f"/api/reviews/{org_id}").json()["reviews"]
        assert [r["author"] for r in reviews] == ["Bo", "Ann"]
        assert reviews[0]["source"]["name"] == "Booking.com"
        assert reviews[0]["sentiment"] == "negative"
        assert reviews[1]["sentiment"] == "positive"

        high = client.get(f"/api/reviews/{org_id}", params={"ratings": [5]}).json()["reviews"]
        assert [r["author"] for r in high] == ["Ann"]

    def test_unsupported_file(self, client, org):
        org_id, _ = org
        response = client.post(
            f"/api/reviews/{org_id}/upload",
            files={"file": ("notes.txt", b"rating,text\n5,Hi\n", "text/plain")},
        )
        assert response.status_code == 400
        assert "Unsupported" in response.json()["message"]

    def test_missing_rating_column(self, client, org):
        org_id, _ = org
        response = client.post(
            f"/api/reviews/{org_id}/upload",
            files={"file": ("export.csv", b"comment\nLovely\n", "text/csv")},
        )
        assert response.status_code == 400
        assert "Rating" in response.json()["message"]

    def test_no_valid_rows(self, client, org):
        org_id, _ = org
        response = client.post(
            f"/api/reviews/{org_id}/upload",
            files={"file": ("export.csv", b"rating,text\n0,Bad\n", "text/csv")},
        )
        assert response.status_code == 400


# ============================================================================
# SOURCES, INSIGHTS, REPORTS
# ============================================================================

class TestSourcesAndInsights:

    def test_add_source_scrapes_listing(self, client, org, scraper):
        org_id, _ = org
        response = client.post(f"/api/sources/{org_id}",
                               json={"name": "TripAdvisor", "url": "https://tripadvisor.com/h1"})
        assert response.status_code == 200
        scraper.scrape.assert_called_once_with("https://tripadvisor.com/h1")

        sources = {s["name"]: s for s in client.get(f"/api/sources/{org_id}").json()["sources"]}
        assert sources["TripAdvisor"]["listedRating"] == 4.6
        assert sources["TripAdvisor"]["listedReviewCount"] == 812

    def test_duplicate_source_is_400(self, client, org):
        org_id, _ = org
        response = client.post(f"/api/sources/{org_id}", json={"name": "Google Reviews"})
        assert response.status_code == 400

    def test_empty_source_name_is_422(self, client, org):
        org_id, _ = org
        assert client.post(f"/api/sources/{org_id}", json={"name": ""}).status_code == 422

    def test_recompute_and_list_insights(self, client, db, org):
        org_id, source_id = org
        db.add_review(org_id, source_id, 2, "Slow and rude")

        created = client.post(f"/api/insights/{org_id}/recompute").json()["insights"]
        assert created[0]["title"] == "Improve staff, speed"

        listed = client.get(f"/api/insights/{org_id}").json()["insights"]
        assert [i["id"] for i in listed] == [created[0]["id"]]

    def test_weekly_report(self, client, db, org):
        org_id, source_id = org
        db.add_review(org_id, source_id, 5, "Spotless")
        report = client.get(f"/api/reports/{org_id}/weekly").json()
        assert report["organization"] == "Sea Breeze Inn"
        assert report["report"] == "Weekly report for Sea Breeze Inn: 1 reviews."

    def test_usage(self, client, db, org):
        org_id, source_id = org
        db.add_review(org_id, source_id, 5, "Spotless")
        client.get(f"/api/reports/{org_id}/weekly")
        usage = client.get(f"/api/usage/{org_id}").json()["usage"]
        assert usage["AI_CALL"] == {"tokens": 50, "count": 1}


# ============================================================================
# CREATOR MARKETPLACE & TRAINING
# ============================================================================

class TestMarketplace:

    @pytest.fixture
    def demo_org(self, db):
        return seed(db, now=NOW)

    def test_creators_ranked_and_filtered(self, client, demo_org):
        creators = client.get("/api/creators").json()["creators"]
        assert [c["brandFitScore"] for c in creators] == [85, 62, 52]

        filtered = client.get("/api/creators", params={"niches": ["food"]}).json()["creators"]
        assert [c["displayName"] for c in filtered] == ["Marcus Johnson"]

    def test_shortlist_round_trip(self, client, db, demo_org):
        creator_id = client.get("/api/creators").json()["creators"][0]["id"]

        assert client.post(f"/api/shortlist/{demo_org}/{creator_id}").json() == {"success": True, "added": True}
        assert client.post(f"/api/shortlist/{demo_org}/{creator_id}").json()["added"] is False

        shortlisted = client.get(f"/api/shortlist/{demo_org}").json()["shortlisted"]
        assert [c["id"] for c in shortlisted] == [creator_id]

        removed = client.delete(f"/api/shortlist/{demo_org}/{creator_id}").json()
        assert removed == {"success": True, "removed": True}

    def test_shortlist_unknown_creator_is_404(self, client, demo_org):
        assert client.post(f"/api/shortlist/{demo_org}/999").status_code == 404

    def test_profile_save_and_read(self, client, db):
        user_id = db.create_user("Kim", "kim@test.com", "CREATOR")

        assert client.get(f"/api/creators/{user_id}/profile").json() == {"profile": None}

        saved = client.post(f"/api/creators/{user_id}/profile", json={
            "display_name": "Kim Reid", "city": "Ocho Rios", "country": "Jamaica",
            "niches": ["travel", "food"], "followers": 42000, "engagement_rate": 5.5,
        }).json()["profile"]
        assert saved["displayName"] == "Kim Reid"
        assert saved["brandFit"]["score"] == 52

    def test_profile_rejects_negative_stats(self, client, db):
        user_id = db.create_user("Lee", "lee@test.com", "CREATOR")
        response = client.post(f"/api/creators/{user_id}/profile",
                               json={"display_name": "Lee", "followers": -5})
        assert response.status_code == 422

    def test_training(self, client, demo_org):
        body = client.get("/api/training", params={"org_id": demo_org}).json()
        assert len(body["resources"]) == 2
        assert body["recommended"] == []
