"""
SQLite Database Repository - Review Analytics Persistence
==========================================================

Stores organizations, their reviews and aspect scores, creators, shortlists,
training resources and usage logs. Every organization-scoped query takes an
organization id; callers are expected to have authorized it already.

Aspect scores are 0-100 everywhere above this module. The on-disk scale is
configurable (score_scale="unit" keeps legacy 0-1 values) and converted here.
"""

import json
import re
import sqlite3
import hashlib
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional
from dataclasses import dataclass, field
from contextlib import contextmanager

from ...domain.models import Aspect, AspectScore, Creator, Review, Sentiment

logger = logging.getLogger(__name__)

DATABASE_FILE = "reviewlens.db"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

CREATOR_PROFILE_COLUMNS = (
    "display_name", "bio", "city", "country", "niches",
    "instagram_url", "facebook_url", "tiktok_url",
)


@dataclass
class User:
    """User record (business owner or creator)."""
    id: int
    name: str
    email: str
    role: str
    created_at: str = ""


@dataclass
class Organization:
    id: int
    name: str
    slug: str
    created_at: str = ""


@dataclass
class ReviewSource:
    """Where an organization's reviews come from, plus its last scraped listing figures."""
    id: int
    organization_id: int
    name: str
    url: str = ""
    listed_rating: Optional[float] = None
    listed_review_count: Optional[int] = None
    scraped_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url or None,
            "listedRating": self.listed_rating,
            "listedReviewCount": self.listed_review_count,
            "scrapedAt": self.scraped_at or None,
        }


@dataclass
class Insight:
    id: int
    organization_id: int
    title: str
    summary: str
    aspects: List[str]
    severity: str
    recommendations: List[str] = field(default_factory=list)
    from_date: str = ""
    to_date: str = ""
    contributing_review_ids: List[int] = field(default_factory=list)
    created_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "aspects": list(self.aspects),
            "severity": self.severity,
            "recommendations": list(self.recommendations),
            "fromDate": self.from_date,
            "toDate": self.to_date,
            "contributingReviewIds": list(self.contributing_review_ids),
            "createdAt": self.created_at,
        }


@dataclass
class TrainingResource:
    id: int
    category: str
    title: str
    format: str
    url: str = ""
    markdown: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "title": self.title,
            "format": self.format,
            "url": self.url or None,
            "markdown": self.markdown or None,
        }


@dataclass
class ShortlistEntry:
    creator: Creator
    shortlisted_at: str = ""


@dataclass
class ReviewFilters:
    """Optional review query filters; all conditions are AND-ed."""
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    ratings: List[int] = field(default_factory=list)
    sources: List[int] = field(default_factory=list)
    aspects: List[str] = field(default_factory=list)
    keyword: str = ""
    limit: Optional[int] = None
    offset: int = 0


@dataclass
class CreatorFilters:
    niches: List[str] = field(default_factory=list)
    location: str = ""
    min_followers: Optional[int] = None
    min_brand_fit: Optional[int] = None


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def format_timestamp(value) -> Optional[str]:
    """Normalize a datetime or date-like string to SQLite's CURRENT_TIMESTAMP format."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    try:
        return datetime.fromisoformat(str(value).strip().replace("Z", "")).strftime(TIMESTAMP_FORMAT)
    except ValueError:
        return None


class Database:
    """
    SQLite database for ReviewLens.

    Usage:
        db = Database("reviewlens.db")
        db.init()

        org_id = db.create_organization("Blue Lagoon Hotel", owner_id=1)
        source_id = db.get_or_create_source(org_id, "CSV Upload")
        db.bulk_add_reviews(org_id, source_id, [{"rating": 5, "text": "Lovely stay"}])

        reviews = db.list_reviews_for_org(org_id)
    """

    def __init__(self, db_path: str = DATABASE_FILE, score_scale: str = "percent"):
        self.db_path = str(db_path)
        if score_scale not in ("percent", "unit"):
            logger.warning(f"Unknown aspect score scale '{score_scale}', using 'percent'")
            score_scale = "percent"
        self.score_scale = score_scale

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init(self):
        """Initialize database tables."""
        with self._get_connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT UNIQUE NOT NULL,
                    role TEXT NOT NULL CHECK (role IN ('OWNER', 'CREATOR')),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS organizations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    slug TEXT UNIQUE NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS organization_members (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    organization_id INTEGER NOT NULL REFERENCES organizations(id),
                    user_id INTEGER NOT NULL REFERENCES users(id),
                    role TEXT NOT NULL DEFAULT 'MEMBER',
                    UNIQUE(organization_id, user_id)
                );

                CREATE TABLE IF NOT EXISTS review_sources (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    organization_id INTEGER NOT NULL REFERENCES organizations(id),
                    name TEXT NOT NULL,
                    url TEXT DEFAULT '',
                    listed_rating REAL,
                    listed_review_count INTEGER,
                    scraped_at TIMESTAMP,
                    UNIQUE(organization_id, name)
                );

                CREATE TABLE IF NOT EXISTS reviews (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    organization_id INTEGER NOT NULL REFERENCES organizations(id),
                    source_id INTEGER NOT NULL REFERENCES review_sources(id),
                    external_id TEXT DEFAULT '',
                    author TEXT DEFAULT '',
                    rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
                    text TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS aspect_scores (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    review_id INTEGER NOT NULL REFERENCES reviews(id) ON DELETE CASCADE,
                    aspect TEXT NOT NULL,
                    sentiment TEXT NOT NULL,
                    score REAL NOT NULL,
                    UNIQUE(review_id, aspect)
                );

                CREATE TABLE IF NOT EXISTS insights (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    organization_id INTEGER NOT NULL REFERENCES organizations(id),
                    title TEXT NOT NULL,
                    summary TEXT NOT NULL,
                    aspects TEXT NOT NULL DEFAULT '[]',
                    severity TEXT NOT NULL,
                    recommendations TEXT NOT NULL DEFAULT '[]',
                    from_date TIMESTAMP,
                    to_date TIMESTAMP,
                    contributing_review_ids TEXT NOT NULL DEFAULT '[]',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS ai_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    organization_id INTEGER NOT NULL,
                    route TEXT NOT NULL,
                    prompt_hash TEXT NOT NULL,
                    prompt TEXT NOT NULL,
                    response TEXT NOT NULL,
                    tokens_in INTEGER NOT NULL DEFAULT 0,
                    tokens_out INTEGER NOT NULL DEFAULT 0,
                    success INTEGER NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS creator_profiles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER UNIQUE NOT NULL REFERENCES users(id),
                    display_name TEXT NOT NULL,
                    bio TEXT NOT NULL DEFAULT '',
                    city TEXT NOT NULL DEFAULT '',
                    country TEXT NOT NULL DEFAULT '',
                    niches TEXT NOT NULL DEFAULT '[]',
                    instagram_url TEXT DEFAULT '',
                    facebook_url TEXT DEFAULT '',
                    tiktok_url TEXT DEFAULT '',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS creator_stats (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    creator_id INTEGER UNIQUE NOT NULL REFERENCES creator_profiles(id),
                    followers INTEGER NOT NULL DEFAULT 0,
                    engagement_rate REAL NOT NULL DEFAULT 0,
                    impressions_30d INTEGER NOT NULL DEFAULT 0,
                    post_frequency_per_week INTEGER NOT NULL DEFAULT 0,
                    last_updated TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS shortlists (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    organization_id INTEGER NOT NULL REFERENCES organizations(id),
                    creator_id INTEGER NOT NULL REFERENCES creator_profiles(id),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(organization_id, creator_id)
                );

                CREATE TABLE IF NOT EXISTS training_resources (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    category TEXT NOT NULL,
                    title TEXT NOT NULL,
                    format TEXT NOT NULL CHECK (format IN ('DOC', 'VIDEO')),
                    url TEXT DEFAULT '',
                    markdown TEXT DEFAULT '',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS usage_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    organization_id INTEGER NOT NULL,
                    type TEXT NOT NULL CHECK (type IN ('AI_CALL', 'UPLOAD')),
                    tokens INTEGER,
                    meta_json TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS idx_reviews_org ON reviews(organization_id, created_at);
                CREATE INDEX IF NOT EXISTS idx_aspect_scores_review ON aspect_scores(review_id);
            """)

            logger.info(f"Database initialized: {self.db_path}")

    # ── Users & Organizations ──────────────────────────────────────

    def create_user(self, name: str, email: str, role: str) -> Optional[int]:
        """Create a user. Returns None if the email is taken."""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO users (name, email, role) VALUES (?, ?, ?)",
                    (name, email, role)
                )
                return cursor.lastrowid
        except sqlite3.IntegrityError:
            logger.warning(f"User with email {email} already exists")
            return None

    def get_user(self, user_id: int) -> Optional[User]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
            return self._row_to_user(row) if row else None

    def create_organization(self, name: str, owner_id: int, slug: Optional[str] = None) -> Optional[int]:
        """Create an organization with `owner_id` as its OWNER member. None if the slug is taken."""
        slug = slug or slugify(name)
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO organizations (name, slug) VALUES (?, ?)", (name, slug)
                )
                org_id = cursor.lastrowid
                conn.execute(
                    "INSERT INTO organization_members (organization_id, user_id, role) VALUES (?, ?, 'OWNER')",
                    (org_id, owner_id)
                )
                return org_id
        except sqlite3.IntegrityError:
            logger.warning(f"Organization slug '{slug}' already exists")
            return None

    def get_organization(self, org_id: int) -> Optional[Organization]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM organizations WHERE id = ?", (org_id,)).fetchone()
            return self._row_to_organization(row) if row else None

    def get_organization_by_slug(self, slug: str) -> Optional[Organization]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM organizations WHERE slug = ?", (slug,)).fetchone()
            return self._row_to_organization(row) if row else None

    def get_user_organizations(self, user_id: int) -> List[Organization]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT o.* FROM organization_members m
                   JOIN organizations o ON o.id = m.organization_id
                   WHERE m.user_id = ? ORDER BY o.id""",
                (user_id,)
            ).fetchall()
            return [self._row_to_organization(row) for row in rows]

    # ── Review Sources ─────────────────────────────────────────────

    def add_review_source(self, org_id: int, name: str, url: str = "") -> Optional[int]:
        """Add a named source. Returns None if the organization already has one by that name."""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO review_sources (organization_id, name, url) VALUES (?, ?, ?)",
                    (org_id, name, url or "")
                )
                return cursor.lastrowid
        except sqlite3.IntegrityError:
            logger.warning(f"Review source '{name}' already exists for organization {org_id}")
            return None

    def get_or_create_source(self, org_id: int, name: str, url: str = "") -> int:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT id FROM review_sources WHERE organization_id = ? AND name = ?",
                (org_id, name)
            ).fetchone()
            if row:
                return row["id"]
            cursor = conn.execute(
                "INSERT INTO review_sources (organization_id, name, url) VALUES (?, ?, ?)",
                (org_id, name, url or "")
            )
            return cursor.lastrowid

    def get_review_source(self, source_id: int) -> Optional[ReviewSource]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM review_sources WHERE id = ?", (source_id,)).fetchone()
            return self._row_to_source(row) if row else None

    def list_review_sources(self, org_id: int) -> List[ReviewSource]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM review_sources WHERE organization_id = ? ORDER BY id", (org_id,)
            ).fetchall()
            return [self._row_to_source(row) for row in rows]

    def update_source_snapshot(self, source_id: int, listed_rating: Optional[float],
                               listed_review_count: Optional[int]):
        """Record the rating and review count shown on the source's public listing."""
        with self._get_connection() as conn:
            conn.execute(
                """UPDATE review_sources
                   SET listed_rating = ?, listed_review_count = ?, scraped_at = CURRENT_TIMESTAMP
                   WHERE id = ?""",
                (listed_rating, listed_review_count, source_id)
            )

    # ── Reviews ────────────────────────────────────────────────────

    def add_review(self, org_id: int, source_id: int, rating: int, text: str,
                   author: str = "", created_at=None, external_id: str = "") -> Optional[int]:
        """Add one review. Returns None if it violates the rating/text constraints."""
        if not text or not text.strip():
            return None
        try:
            with self._get_connection() as conn:
                cursor = self._insert_review(conn, org_id, source_id, {
                    "rating": rating, "text": text, "author": author,
                    "created_at": created_at, "external_id": external_id,
                })
                return cursor.lastrowid
        except sqlite3.IntegrityError as e:
            logger.warning(f"Rejected review for organization {org_id}: {e}")
            return None

    def bulk_add_reviews(self, org_id: int, source_id: int, reviews: Iterable[dict]) -> dict:
        """
        Add multiple reviews at once for an organization.

        Args:
            org_id: Owning organization ID
            source_id: Review source the rows came from
            reviews: Dicts with 'rating', 'text' and optional 'author',
                'created_at', 'external_id' keys

        Returns:
            Dict with 'added', 'skipped' counts, 'errors' list and new 'ids'
        """
        result = {'added': 0, 'skipped': 0, 'errors': [], 'ids': []}

        with self._get_connection() as conn:
            for review in reviews:
                text = str(review.get('text') or '').strip()
                if not text:
                    result['skipped'] += 1
                    continue
                try:
                    cursor = self._insert_review(conn, org_id, source_id, review)
                    result['ids'].append(cursor.lastrowid)
                    result['added'] += 1
                except sqlite3.IntegrityError as e:
                    result['errors'].append(f"{review.get('author') or 'Anonymous'}: {e}")

        logger.info(f"Bulk import for organization {org_id}: {result['added']} added, {result['skipped']} skipped")
        return result

    def _insert_review(self, conn, org_id: int, source_id: int, review: dict):
        created_at = format_timestamp(review.get('created_at'))
        columns = ["organization_id", "source_id", "rating", "text", "author", "external_id"]
        values = [
            org_id, source_id, review.get('rating'), str(review.get('text', '')).strip(),
            review.get('author') or '', review.get('external_id') or '',
        ]
        if created_at:
            columns.append("created_at")
            values.append(created_at)
        placeholders = ", ".join("?" for _ in columns)
        return conn.execute(
            f"INSERT INTO reviews ({', '.join(columns)}) VALUES ({placeholders})", values
        )

    def get_review(self, review_id: int) -> Optional[Review]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM reviews WHERE id = ?", (review_id,)).fetchone()
            return self._row_to_review(row) if row else None

    def list_reviews_for_org(self, org_id: int, filters: Optional[ReviewFilters] = None) -> List[Review]:
        """Reviews for an organization, newest first."""
        filters = filters or ReviewFilters()
        where, params = self._review_conditions(org_id, filters)

        sql = f"SELECT r.* FROM reviews r WHERE {where} ORDER BY r.created_at DESC, r.id DESC"
        if filters.limit:
            sql += " LIMIT ? OFFSET ?"
            params += [filters.limit, filters.offset or 0]
        elif filters.offset:
            sql += " LIMIT -1 OFFSET ?"
            params.append(filters.offset)

        with self._get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
            return [self._row_to_review(row) for row in rows]

    def _review_conditions(self, org_id: int, filters: ReviewFilters):
        conditions = ["r.organization_id = ?"]
        params: list = [org_id]

        if filters.date_from:
            conditions.append("r.created_at >= ?")
            params.append(format_timestamp(filters.date_from))
        if filters.date_to:
            conditions.append("r.created_at <= ?")
            params.append(format_timestamp(filters.date_to))
        if filters.ratings:
            conditions.append(f"r.rating IN ({', '.join('?' for _ in filters.ratings)})")
            params.extend(filters.ratings)
        if filters.sources:
            conditions.append(f"r.source_id IN ({', '.join('?' for _ in filters.sources)})")
            params.extend(filters.sources)
        if filters.aspects:
            aspects = [a.value for a in (Aspect.parse(x) for x in filters.aspects) if a]
            conditions.append(
                f"r.id IN (SELECT review_id FROM aspect_scores WHERE aspect IN ({', '.join('?' for _ in aspects) or 'NULL'}))"
            )
            params.extend(aspects)
        if filters.keyword:
            conditions.append("r.text LIKE ?")
            params.append(f"%{filters.keyword}%")

        return " AND ".join(conditions), params

    def list_reviews_with_sources(self, org_id: int, limit: int = 10,
                                  filters: Optional[ReviewFilters] = None) -> List[dict]:
        """Newest reviews with their source and aspect scores attached."""
        filters = filters or ReviewFilters()
        where, params = self._review_conditions(org_id, filters)

        with self._get_connection() as conn:
            rows = conn.execute(
                f"""SELECT r.*, s.name AS source_name FROM reviews r
                    JOIN review_sources s ON s.id = r.source_id
                    WHERE {where}
                    ORDER BY r.created_at DESC, r.id DESC
                    LIMIT ? OFFSET ?""",
                params + [limit, filters.offset or 0]
            ).fetchall()

            review_ids = [row["id"] for row in rows]
            aspects_by_review = {rid: [] for rid in review_ids}
            if review_ids:
                score_rows = conn.execute(
                    f"""SELECT * FROM aspect_scores
                        WHERE review_id IN ({', '.join('?' for _ in review_ids)})
                        ORDER BY id""",
                    review_ids
                ).fetchall()
                for score_row in score_rows:
                    aspects_by_review[score_row["review_id"]].append({
                        "aspect": score_row["aspect"],
                        "sentiment": score_row["sentiment"],
                        "score": self._score_from_storage(score_row["score"]),
                    })

        return [
            {
                "id": row["id"],
                "rating": row["rating"],
                "text": row["text"],
                "author": row["author"] or "",
                "createdAt": row["created_at"] or "",
                "source": {"id": row["source_id"], "name": row["source_name"]},
                "aspects": aspects_by_review[row["id"]],
            }
            for row in rows
        ]

    def list_unanalyzed_reviews(self, org_id: int, limit: Optional[int] = None) -> List[Review]:
        """Reviews that have no aspect scores yet, oldest first."""
        sql = """SELECT r.* FROM reviews r
                 WHERE r.organization_id = ?
                   AND NOT EXISTS (SELECT 1 FROM aspect_scores a WHERE a.review_id = r.id)
                 ORDER BY r.created_at, r.id"""
        params: list = [org_id]
        if limit:
            sql += " LIMIT ?"
            params.append(limit)
        with self._get_connection() as conn:
            return [self._row_to_review(row) for row in conn.execute(sql, params).fetchall()]

    # ── Aspect Scores ──────────────────────────────────────────────

    def save_aspect_scores(self, review_id: int, scores: Iterable) -> int:
        """
        Replace a review's aspect scores.

        Args:
            review_id: Review the scores belong to
            scores: Objects or dicts with aspect, sentiment and score (0-100)

        Returns:
            Number of rows written
        """
        rows = []
        for item in scores:
            get = item.get if isinstance(item, dict) else (lambda k, i=item: getattr(i, k, None))
            aspect = Aspect.parse(get("aspect"))
            sentiment = Sentiment.parse(get("sentiment"))
            if aspect is None or sentiment is None:
                continue
            rows.append((review_id, aspect.value, sentiment.value, self._score_to_storage(get("score"))))

        with self._get_connection() as conn:
            conn.execute("DELETE FROM aspect_scores WHERE review_id = ?", (review_id,))
            conn.executemany(
                "INSERT OR REPLACE INTO aspect_scores (review_id, aspect, sentiment, score) VALUES (?, ?, ?, ?)",
                rows
            )
        return len(rows)

    def list_aspect_scores_for_org(self, org_id: int) -> List[AspectScore]:
        """Every aspect score for an organization, stamped with its review's created_at."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT a.*, r.created_at AS review_created_at FROM aspect_scores a
                   JOIN reviews r ON r.id = a.review_id
                   WHERE r.organization_id = ?
                   ORDER BY r.created_at, a.id""",
                (org_id,)
            ).fetchall()
            return [
                AspectScore(
                    id=row["id"],
                    review_id=row["review_id"],
                    aspect=Aspect(row["aspect"]),
                    sentiment=Sentiment(row["sentiment"]),
                    score=self._score_from_storage(row["score"]),
                    created_at=row["review_created_at"] or "",
                )
                for row in rows
            ]

    def get_aspect_score_counts(self, org_id: int) -> List[dict]:
        """Aspect scores grouped by (aspect, sentiment) with counts and mean score."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT a.aspect, a.sentiment, COUNT(*) AS count, AVG(a.score) AS avg_score
                   FROM aspect_scores a
                   JOIN reviews r ON r.id = a.review_id
                   WHERE r.organization_id = ?
                   GROUP BY a.aspect, a.sentiment""",
                (org_id,)
            ).fetchall()
            return [
                {
                    "aspect": row["aspect"],
                    "sentiment": row["sentiment"],
                    "count": row["count"],
                    "avg_score": self._score_from_storage(row["avg_score"]),
                }
                for row in rows
            ]

    def _score_to_storage(self, score) -> float:
        try:
            value = float(score)
        except (TypeError, ValueError):
            value = 50.0
        if not math.isfinite(value):
            value = 50.0
        value = min(max(value, 0.0), 100.0)
        if self.score_scale == "unit":
            return round(value / 100, 2)
        return round(value, 2)

    def _score_from_storage(self, value) -> float:
        try:
            value = float(value)
        except (TypeError, ValueError):
            logger.warning(f"Unreadable stored aspect score {value!r}; reading as 50")
            return 50.0
        if not math.isfinite(value):
            return 50.0
        if self.score_scale == "unit":
            value *= 100
        return round(min(max(value, 0.0), 100.0), 2)

    # ── Insights ───────────────────────────────────────────────────

    def create_insight(self, org_id: int, title: str, summary: str, aspects: List[str],
                       severity: str, recommendations: List[str] = (),
                       from_date=None, to_date=None,
                       contributing_review_ids: Iterable[int] = ()) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """INSERT INTO insights (organization_id, title, summary, aspects, severity,
                                         recommendations, from_date, to_date, contributing_review_ids)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    org_id, title, summary, json.dumps(list(aspects)), severity,
                    json.dumps(list(recommendations)),
                    format_timestamp(from_date), format_timestamp(to_date),
                    json.dumps(list(contributing_review_ids)),
                )
            )
            return cursor.lastrowid

    def list_insights(self, org_id: int, limit: Optional[int] = None) -> List[Insight]:
        """Insights for an organization, newest first."""
        sql = "SELECT * FROM insights WHERE organization_id = ? ORDER BY created_at DESC, id DESC"
        params: list = [org_id]
        if limit:
            sql += " LIMIT ?"
            params.append(limit)
        with self._get_connection() as conn:
            return [self._row_to_insight(row) for row in conn.execute(sql, params).fetchall()]

    # ── AI Logs & Usage ────────────────────────────────────────────

    def log_ai_call(self, org_id: int, route: str, prompt: str, response: str,
                    tokens_in: int = 0, tokens_out: int = 0, success: bool = True):
        prompt_hash = hashlib.sha256(prompt.encode()).hexdigest()
        with self._get_connection() as conn:
            conn.execute(
                """INSERT INTO ai_logs (organization_id, route, prompt_hash, prompt, response,
                                        tokens_in, tokens_out, success)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (org_id, route, prompt_hash, prompt, response, tokens_in, tokens_out, int(success))
            )

    def count_ai_calls(self, org_id: int, success: Optional[bool] = None) -> int:
        sql = "SELECT COUNT(*) FROM ai_logs WHERE organization_id = ?"
        params: list = [org_id]
        if success is not None:
            sql += " AND success = ?"
            params.append(int(success))
        with self._get_connection() as conn:
            return conn.execute(sql, params).fetchone()[0]

    def log_usage(self, org_id: int, event_type: str, tokens: Optional[int] = None,
                  meta: Optional[dict] = None):
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO usage_events (organization_id, type, tokens, meta_json) VALUES (?, ?, ?, ?)",
                (org_id, event_type, tokens, json.dumps(meta) if meta else None)
            )

    def get_usage_stats(self, org_id: int, days: int = 30) -> dict:
        """Token totals and event counts per usage type over the last `days` days."""
        since = format_timestamp(datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=days))
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT type, SUM(tokens) AS total_tokens, COUNT(*) AS count
                   FROM usage_events
                   WHERE organization_id = ? AND created_at >= ?
                   GROUP BY type""",
                (org_id, since)
            ).fetchall()
            return {
                row["type"]: {"tokens": row["total_tokens"] or 0, "count": row["count"]}
                for row in rows
            }

    # ── Creators ───────────────────────────────────────────────────

    def create_creator_profile(self, user_id: int, display_name: str, bio: str = "",
                               city: str = "", country: str = "", niches: Iterable[str] = (),
                               instagram_url: str = "", facebook_url: str = "",
                               tiktok_url: str = "") -> Optional[int]:
        """Create a creator profile. Returns None if the user already has one."""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    """INSERT INTO creator_profiles (user_id, display_name, bio, city, country, niches,
                                                     instagram_url, facebook_url, tiktok_url)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (user_id, display_name, bio, city, country, json.dumps(list(niches)),
                     instagram_url or "", facebook_url or "", tiktok_url or "")
                )
                return cursor.lastrowid
        except sqlite3.IntegrityError:
            logger.warning(f"Creator profile already exists for user {user_id}")
            return None

    def update_creator_profile(self, creator_id: int, **updates) -> bool:
        """Update profile fields. Unknown field names are ignored."""
        updates = {k: v for k, v in updates.items() if k in CREATOR_PROFILE_COLUMNS}
        if not updates:
            return False
        if "niches" in updates:
            updates["niches"] = json.dumps(list(updates["niches"] or []))

        set_clause = ", ".join(f"{k} = ?" for k in updates.keys())
        values = [v if v is not None else "" for v in updates.values()] + [creator_id]

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE creator_profiles SET {set_clause} WHERE id = ?",
                values
            )
            return cursor.rowcount > 0

    def upsert_creator_stats(self, creator_id: int, followers: int, engagement_rate: float,
                             impressions_30d: int = 0, post_frequency_per_week: int = 0):
        with self._get_connection() as conn:
            conn.execute(
                """INSERT INTO creator_stats (creator_id, followers, engagement_rate,
                                              impressions_30d, post_frequency_per_week)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(creator_id) DO UPDATE SET
                       followers = excluded.followers,
                       engagement_rate = excluded.engagement_rate,
                       impressions_30d = excluded.impressions_30d,
                       post_frequency_per_week = excluded.post_frequency_per_week,
                       last_updated = CURRENT_TIMESTAMP""",
                (creator_id, followers, engagement_rate, impressions_30d, post_frequency_per_week)
            )

    _CREATOR_SELECT = """
        SELECT p.*, s.followers, s.engagement_rate, s.impressions_30d, s.post_frequency_per_week
        FROM creator_profiles p
        LEFT JOIN creator_stats s ON s.creator_id = p.id
    """

    def get_creator(self, creator_id: int) -> Optional[Creator]:
        with self._get_connection() as conn:
            row = conn.execute(self._CREATOR_SELECT + " WHERE p.id = ?", (creator_id,)).fetchone()
            return self._row_to_creator(row) if row else None

    def get_creator_profile(self, user_id: int) -> Optional[Creator]:
        """The creator profile owned by a user, with stats."""
        with self._get_connection() as conn:
            row = conn.execute(self._CREATOR_SELECT + " WHERE p.user_id = ?", (user_id,)).fetchone()
            return self._row_to_creator(row) if row else None

    def list_creators(self, filters: Optional[CreatorFilters] = None) -> List[Creator]:
        """
        Creators joined with stats.

        Only min_followers is applied here; niche, location and brand-fit
        filters belong to the caller.
        """
        filters = filters or CreatorFilters()
        sql = self._CREATOR_SELECT
        params: list = []
        if filters.min_followers:
            sql += " WHERE COALESCE(s.followers, 0) >= ?"
            params.append(filters.min_followers)
        sql += " ORDER BY p.id"

        with self._get_connection() as conn:
            return [self._row_to_creator(row) for row in conn.execute(sql, params).fetchall()]

    # ── Shortlists ─────────────────────────────────────────────────

    def add_to_shortlist(self, org_id: int, creator_id: int) -> bool:
        """Shortlist a creator. False if already shortlisted."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    "INSERT INTO shortlists (organization_id, creator_id) VALUES (?, ?)",
                    (org_id, creator_id)
                )
                return True
        except sqlite3.IntegrityError:
            return False

    def remove_from_shortlist(self, org_id: int, creator_id: int) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM shortlists WHERE organization_id = ? AND creator_id = ?",
                (org_id, creator_id)
            )
            return cursor.rowcount > 0

    def list_shortlisted_creators(self, org_id: int) -> List[ShortlistEntry]:
        """Shortlisted creators, most recently shortlisted first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT p.*, s.followers, s.engagement_rate, s.impressions_30d,
                          s.post_frequency_per_week, l.created_at AS shortlisted_at
                   FROM shortlists l
                   JOIN creator_profiles p ON p.id = l.creator_id
                   LEFT JOIN creator_stats s ON s.creator_id = p.id
                   WHERE l.organization_id = ?
                   ORDER BY l.created_at DESC, l.id DESC""",
                (org_id,)
            ).fetchall()
            return [
                ShortlistEntry(creator=self._row_to_creator(row), shortlisted_at=row["shortlisted_at"] or "")
                for row in rows
            ]

    # ── Training ───────────────────────────────────────────────────

    def add_training_resource(self, category: str, title: str, format: str,
                              url: str = "", markdown: str = "") -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO training_resources (category, title, format, url, markdown) VALUES (?, ?, ?, ?, ?)",
                (category, title, format, url or "", markdown or "")
            )
            return cursor.lastrowid

    def list_training_resources(self, category: Optional[str] = None) -> List[TrainingResource]:
        with self._get_connection() as conn:
            if category:
                rows = conn.execute(
                    "SELECT * FROM training_resources WHERE category = ? ORDER BY title", (category,)
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM training_resources ORDER BY title").fetchall()
            return [self._row_to_training(row) for row in rows]

    def get_recommended_training(self, org_id: int, limit: int = 3) -> List[TrainingResource]:
        """Resources whose title or category mentions an aspect from the latest insights."""
        keywords = set()
        for insight in self.list_insights(org_id, limit=5):
            for name in insight.aspects:
                keywords.add(name.lower())
                aspect = Aspect.parse(name)
                if aspect:
                    keywords.add(aspect.label)
        if not keywords:
            return []

        matches = [
            resource for resource in self.list_training_resources()
            if any(k in resource.title.lower() or k in resource.category.lower() for k in keywords)
        ]
        return matches[:limit]

    # ── Row mappers ────────────────────────────────────────────────

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            role=row["role"],
            created_at=row["created_at"] or ""
        )

    def _row_to_organization(self, row: sqlite3.Row) -> Organization:
        return Organization(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            created_at=row["created_at"] or ""
        )

    def _row_to_source(self, row: sqlite3.Row) -> ReviewSource:
        return ReviewSource(
            id=row["id"],
            organization_id=row["organization_id"],
            name=row["name"],
            url=row["url"] or "",
            listed_rating=row["listed_rating"],
            listed_review_count=row["listed_review_count"],
            scraped_at=row["scraped_at"] or ""
        )

    def _row_to_review(self, row: sqlite3.Row) -> Review:
        return Review(
            id=row["id"],
            organization_id=row["organization_id"],
            source_id=row["source_id"],
            rating=row["rating"],
            text=row["text"],
            author=row["author"] or "",
            created_at=row["created_at"] or "",
            external_id=row["external_id"] or ""
        )

    def _row_to_insight(self, row: sqlite3.Row) -> Insight:
        return Insight(
            id=row["id"],
            organization_id=row["organization_id"],
            title=row["title"],
            summary=row["summary"],
            aspects=json.loads(row["aspects"] or "[]"),
            severity=row["severity"],
            recommendations=json.loads(row["recommendations"] or "[]"),
            from_date=row["from_date"] or "",
            to_date=row["to_date"] or "",
            contributing_review_ids=json.loads(row["contributing_review_ids"] or "[]"),
            created_at=row["created_at"] or ""
        )

    def _row_to_training(self, row: sqlite3.Row) -> TrainingResource:
        return TrainingResource(
            id=row["id"],
            category=row["category"],
            title=row["title"],
            format=row["format"],
            url=row["url"] or "",
            markdown=row["markdown"] or ""
        )

    def _row_to_creator(self, row: sqlite3.Row) -> Creator:
        """Convert a profile row (optionally joined with stats) to a Creator."""
        try:
            niches = json.loads(row["niches"] or "[]")
        except ValueError:
            niches = []

        return Creator(
            id=row["id"],
            user_id=row["user_id"],
            display_name=row["display_name"],
            bio=row["bio"] or "",
            city=row["city"] or "",
            country=row["country"] or "",
            niches=niches,
            instagram_url=row["instagram_url"] or "",
            facebook_url=row["facebook_url"] or "",
            tiktok_url=row["tiktok_url"] or "",
            followers=row["followers"] or 0,
            engagement_rate=row["engagement_rate"] or 0.0,
            impressions_30d=row["impressions_30d"] or 0,
            post_frequency_per_week=row["post_frequency_per_week"] or 0
        )


def init_database(db_path: str = DATABASE_FILE, score_scale: str = "percent") -> Database:
    """Open and initialize a database."""
    db = Database(db_path, score_scale=score_scale)
    db.init()
    return db
