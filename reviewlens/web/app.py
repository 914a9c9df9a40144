"""
FastAPI Web Application - ReviewLens JSON API
=============================================

Dashboard, review, insight, creator marketplace and training endpoints.

Collaborators (database, classifier, insight generator, scraper, service)
are built once in create_app() and kept on app.state; routes receive the
service through Depends, so tests can build an app around fakes.
Every organization-scoped route takes the organization id in its path.
"""

import io
import logging
from datetime import datetime
from typing import List, Optional
from contextlib import asynccontextmanager

from fastapi import (
    BackgroundTasks, Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile,
)
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..application import AnalyticsService
from ..infrastructure.config import Settings, get_settings
from ..infrastructure.importer import ReviewParser
from ..infrastructure.llm import (
    ChatClient, ClassifierError, ClassifierTimeout, InsightGenerator, ReviewClassifier,
)
from ..infrastructure.persistence import CreatorFilters, Database, ReviewFilters
from ..infrastructure.scraper import SourceScraper

logger = logging.getLogger(__name__)


# ── Request bodies ─────────────────────────────────────────────────

class SourceCreate(BaseModel):
    name: str = Field(..., min_length=1)
    url: str = ""


class CreatorProfileIn(BaseModel):
    display_name: Optional[str] = None
    bio: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    niches: Optional[List[str]] = None
    instagram_url: Optional[str] = None
    facebook_url: Optional[str] = None
    tiktok_url: Optional[str] = None
    followers: Optional[int] = Field(None, ge=0)
    engagement_rate: Optional[float] = Field(None, ge=0)
    impressions_30d: Optional[int] = Field(None, ge=0)
    post_frequency_per_week: Optional[int] = Field(None, ge=0)


# ── Dependencies ───────────────────────────────────────────────────

def get_service(request: Request) -> AnalyticsService:
    return request.app.state.service


def _parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", ""))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}")


# ── Background tasks ───────────────────────────────────────────────

def analyze_uploaded_reviews(service: AnalyticsService, org_id: int):
    """Background task: classify new reviews, logging and skipping failures."""
    try:
        result = service.analyze_pending(org_id, skip_failures=True)
        logger.info(f"Background analysis for organization {org_id}: {result}")
    except Exception as e:
        logger.exception(f"Background analysis failed for organization {org_id}: {e}")


def scrape_source_listing(service: AnalyticsService, source_id: int):
    """Background task to scrape a review source's listing figures."""
    try:
        logger.info(f"Starting background scrape for source {source_id}...")
        service.refresh_source_snapshot(source_id)
    except Exception as e:
        logger.exception(f"Background scrape failed for source {source_id}: {e}")


# ── Application factory ────────────────────────────────────────────

def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    classifier=None,
    insight_generator=None,
    scraper=None,
) -> FastAPI:
    """
    Build the API with its collaborators.

    Anything not passed in is built from settings.
    """
    settings = settings or get_settings()
    database = database or Database(settings.database_file, settings.analytics.aspect_score_scale)

    if classifier is None or insight_generator is None:
        client = ChatClient(settings.llm)
        classifier = classifier or ReviewClassifier(client)
        insight_generator = insight_generator or InsightGenerator(client, settings.llm.max_insight_reviews)

    service = AnalyticsService(
        database, classifier, insight_generator, settings.analytics,
        scraper=scraper or SourceScraper(settings.scraper),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for issue in settings.validate():
            logger.warning(issue)
        database.init()
        logger.info("Database ready")
        yield

    app = FastAPI(title="ReviewLens", description="Review analytics and creator marketplace API", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.service = service

    _register_exception_handlers(app)
    _register_routes(app)
    return app


def _register_exception_handlers(app: FastAPI):
    @app.exception_handler(LookupError)
    async def not_found(request: Request, exc: LookupError):
        return JSONResponse(status_code=404, content={"message": str(exc)})

    @app.exception_handler(ValueError)
    async def bad_request(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"message": str(exc)})

    @app.exception_handler(ClassifierTimeout)
    async def classifier_timeout(request: Request, exc: ClassifierTimeout):
        return JSONResponse(status_code=504, content={"message": f"Analysis timed out: {exc}"})

    @app.exception_handler(ClassifierError)
    async def classifier_failed(request: Request, exc: ClassifierError):
        return JSONResponse(status_code=502, content={"message": f"Analysis failed: {exc}"})


def _register_routes(app: FastAPI):

    @app.get("/api/health")
    def health(request: Request):
        return {"status": "ok", "llmConfigured": bool(request.app.state.settings.llm.api_key)}

    # ── Dashboard & Reviews ────────────────────────────────────

    @app.get("/api/dashboard/{org_id}")
    def dashboard(org_id: int, service: AnalyticsService = Depends(get_service)):
        return service.get_dashboard(org_id)

    @app.get("/api/reviews/{org_id}")
    def list_reviews(
        org_id: int,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        ratings: Optional[List[int]] = Query(None),
        sources: Optional[List[int]] = Query(None),
        aspects: Optional[List[str]] = Query(None),
        keyword: str = "",
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
        service: AnalyticsService = Depends(get_service),
    ):
        filters = ReviewFilters(
            date_from=_parse_date(date_from, "date_from"),
            date_to=_parse_date(date_to, "date_to"),
            ratings=ratings or [],
            sources=sources or [],
            aspects=aspects or [],
            keyword=keyword,
            limit=limit,
            offset=offset,
        )
        return {"reviews": service.get_reviews(org_id, filters)}

    @app.post("/api/reviews/{org_id}/upload")
    async def upload_reviews(
        org_id: int,
        background_tasks: BackgroundTasks,
        file: UploadFile = File(...),
        source: str = Form("CSV Upload"),
        service: AnalyticsService = Depends(get_service),
    ):
        """Import a CSV/Excel export, then classify the new reviews in the background."""
        service.require_organization(org_id)
        if not file.filename:
            raise HTTPException(status_code=400, detail="No file uploaded")

        # Read entire file into memory (no temp file)
        content = await file.read()
        parser = ReviewParser()
        rows, columns = parser.parse(io.BytesIO(content), filename=file.filename)
        if not rows:
            raise HTTPException(status_code=400, detail="No valid reviews found in file")

        result = service.import_reviews(org_id, rows, source_name=source, skipped=parser.skipped_rows)
        background_tasks.add_task(analyze_uploaded_reviews, service, org_id)

        return {
            "message": f"Successfully uploaded {result['added']} reviews",
            "count": result['added'],
            "skipped": result['skipped'],
            "columns": columns,
            "sourceId": result['sourceId'],
        }

    # ── Sources ────────────────────────────────────────────────

    @app.get("/api/sources/{org_id}")
    def list_sources(org_id: int, service: AnalyticsService = Depends(get_service)):
        return {"sources": service.list_review_sources(org_id)}

    @app.post("/api/sources/{org_id}")
    def add_source(
        org_id: int,
        body: SourceCreate,
        background_tasks: BackgroundTasks,
        service: AnalyticsService = Depends(get_service),
    ):
        source = service.add_review_source(org_id, body.name, body.url)
        if source["url"]:
            background_tasks.add_task(scrape_source_listing, service, source["id"])
        return {"source": source}

    # ── Insights & Reports ─────────────────────────────────────

    @app.get("/api/insights/{org_id}")
    def list_insights(org_id: int, service: AnalyticsService = Depends(get_service)):
        return {"insights": service.list_insights(org_id)}

    @app.post("/api/insights/{org_id}/recompute")
    def recompute_insights(org_id: int, service: AnalyticsService = Depends(get_service)):
        return {"insights": service.recompute_insights(org_id)}

    @app.get("/api/reports/{org_id}/weekly")
    def weekly_report(org_id: int, service: AnalyticsService = Depends(get_service)):
        return service.weekly_report(org_id)

    # ── Creator marketplace ────────────────────────────────────

    @app.get("/api/creators")
    def list_creators(
        niches: Optional[List[str]] = Query(None),
        location: str = "",
        min_followers: Optional[int] = Query(None, ge=0),
        min_brand_fit: Optional[int] = Query(None, ge=0, le=100),
        service: AnalyticsService = Depends(get_service),
    ):
        filters = CreatorFilters(
            niches=niches or [],
            location=location,
            min_followers=min_followers,
            min_brand_fit=min_brand_fit,
        )
        return {"creators": service.get_creators(filters)}

    @app.get("/api/creators/{user_id}/profile")
    def get_creator_profile(user_id: int, service: AnalyticsService = Depends(get_service)):
        return {"profile": service.get_creator_profile(user_id)}

    @app.post("/api/creators/{user_id}/profile")
    def save_creator_profile(
        user_id: int,
        body: CreatorProfileIn,
        service: AnalyticsService = Depends(get_service),
    ):
        return {"profile": service.save_creator_profile(user_id, body.model_dump(exclude_none=True))}

    @app.get("/api/shortlist/{org_id}")
    def list_shortlist(org_id: int, service: AnalyticsService = Depends(get_service)):
        return {"shortlisted": service.get_shortlist(org_id)}

    @app.post("/api/shortlist/{org_id}/{creator_id}")
    def add_to_shortlist(org_id: int, creator_id: int, service: AnalyticsService = Depends(get_service)):
        added = service.shortlist_creator(org_id, creator_id)
        return {"success": True, "added": added}

    @app.delete("/api/shortlist/{org_id}/{creator_id}")
    def remove_from_shortlist(org_id: int, creator_id: int, service: AnalyticsService = Depends(get_service)):
        removed = service.remove_from_shortlist(org_id, creator_id)
        return {"success": True, "removed": removed}

    # ── Training & Usage ───────────────────────────────────────

    @app.get("/api/training")
    def list_training(
        category: Optional[str] = None,
        org_id: Optional[int] = None,
        service: AnalyticsService = Depends(get_service),
    ):
        return service.get_training(org_id, category)

    @app.get("/api/training/recommended/{org_id}")
    def recommended_training(org_id: int, service: AnalyticsService = Depends(get_service)):
        return {"recommended": service.get_recommended_training(org_id)}

    @app.get("/api/usage/{org_id}")
    def usage(
        org_id: int,
        days: int = Query(30, ge=1, le=365),
        service: AnalyticsService = Depends(get_service),
    ):
        return {"usage": service.get_usage(org_id, days)}


def _configure_logging(settings: Settings):
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


_configure_logging(get_settings())
app = create_app()
