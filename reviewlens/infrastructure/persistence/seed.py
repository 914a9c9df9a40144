"""
Demo Data Seed
==============

Adds a demo owner, the "Blue Lagoon Hotel" organization with two review
sources and a handful of recent reviews, three creators with stats and two
training resources. Safe to run repeatedly; existing rows are left alone.

Usage:
    python -m reviewlens.infrastructure.persistence.seed
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from .database import Database, init_database

logger = logging.getLogger(__name__)

DEMO_ORG_NAME = "Blue Lagoon Hotel"
DEMO_ORG_SLUG = "blue-lagoon-hotel"

SOURCES = [
    ("Google Reviews", "https://business.google.com"),
    ("TripAdvisor", "https://tripadvisor.com"),
]

# (source, author, rating, text, days ago)
REVIEWS = [
    ("Google Reviews", "Sarah Mitchell", 4,
     "Great beachfront views and friendly staff. Room cleaning could be more thorough.", 12),
    ("TripAdvisor", "Michael Rodriguez", 5,
     "Fantastic experience! Food quality outstanding. Staff went above and beyond.", 26),
    ("Google Reviews", "Jennifer Chen", 3,
     "First room had cleanliness issues, but staff quickly moved us. Excellent location.", 41),
    ("TripAdvisor", "David Thompson", 2,
     "Service was very slow at breakfast and dinner. Food decent but long waits.", 7),
    ("Google Reviews", "Lisa Johnson", 5,
     "Perfect honeymoon destination, spotless room, breathtaking ocean view, amazing staff.", 18),
    ("TripAdvisor", "Robert Wilson", 4,
     "Great value right on the beach. Food good, staff friendly and accommodating.", 55),
    ("Google Reviews", "Amanda Davis", 3,
     "Beautiful location but some maintenance issues (AC, faucet). Slow response.", 33),
    ("TripAdvisor", "James Brown", 5,
     "Outstanding hospitality and exceptional restaurant, fresh and beautifully presented.", 21),
]

CREATORS = [
    {
        "email": "creator@example.com",
        "display_name": "Maya Thompson",
        "bio": "Caribbean lifestyle and travel creator focusing on luxury resorts and authentic experiences.",
        "city": "Kingston",
        "country": "Jamaica",
        "niches": ["travel", "luxury", "lifestyle"],
        "instagram_url": "https://instagram.com/maya_caribbean",
        "facebook_url": "https://facebook.com/maya.thompson",
        "tiktok_url": "https://tiktok.com/@maya_travel",
        "stats": (127000, 8.2, 2400000, 5),
    },
    {
        "email": "marcus@example.com",
        "display_name": "Marcus Johnson",
        "bio": "Food & culture enthusiast showcasing Caribbean cuisine and hospitality.",
        "city": "Montego Bay",
        "country": "Jamaica",
        "niches": ["food", "culture", "tourism"],
        "instagram_url": "https://instagram.com/marcus_caribbean_food",
        "facebook_url": "https://facebook.com/marcus.johnson",
        "tiktok_url": "",
        "stats": (98000, 6.1, 1200000, 4),
    },
    {
        "email": "sophia@example.com",
        "display_name": "Sophia Williams",
        "bio": "Luxury travel blogger covering high-end Caribbean resorts.",
        "city": "Bridgetown",
        "country": "Barbados",
        "niches": ["luxury", "travel", "lifestyle"],
        "instagram_url": "https://instagram.com/sophia_luxury_travel",
        "facebook_url": "https://facebook.com/sophia.williams",
        "tiktok_url": "",
        "stats": (152000, 5.4, 1800000, 3),
    },
]

TRAINING = [
    {
        "category": "Service Excellence",
        "title": "Effective Complaint Resolution",
        "format": "VIDEO",
        "url": "https://youtu.be/dQw4w9WgXcQ",
    },
    {
        "category": "Service Excellence",
        "title": "Customer Service Standards Checklist",
        "format": "DOC",
        "markdown": "# Customer Service Standards\n\n- Greet guests warmly\n- Listen actively\n- Follow up promptly",
    },
]


def _ensure_user(db: Database, name: str, email: str, role: str) -> int:
    user = db.get_user_by_email(email)
    if user:
        return user.id
    return db.create_user(name, email, role)


def seed(db: Database, now: Optional[datetime] = None) -> int:
    """Seed demo data. Returns the demo organization id."""
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)

    owner_id = _ensure_user(db, "Demo Owner", "owner@example.com", "OWNER")

    org = db.get_organization_by_slug(DEMO_ORG_SLUG)
    org_id = org.id if org else db.create_organization(DEMO_ORG_NAME, owner_id, slug=DEMO_ORG_SLUG)
    logger.info(f"Demo organization: {DEMO_ORG_NAME} (id={org_id})")

    source_ids = {name: db.get_or_create_source(org_id, name, url) for name, url in SOURCES}

    if len(db.list_reviews_for_org(org_id)) < len(REVIEWS):
        added = 0
        for source, author, rating, text, days_ago in REVIEWS:
            if db.add_review(org_id, source_ids[source], rating, text, author=author,
                             created_at=now - timedelta(days=days_ago)):
                added += 1
        logger.info(f"Added {added} demo reviews")
    else:
        logger.info("Reviews already exist; skipping")

    for creator in CREATORS:
        user_id = _ensure_user(db, creator["display_name"], creator["email"], "CREATOR")
        if db.get_creator_profile(user_id):
            continue
        creator_id = db.create_creator_profile(
            user_id,
            display_name=creator["display_name"],
            bio=creator["bio"],
            city=creator["city"],
            country=creator["country"],
            niches=creator["niches"],
            instagram_url=creator["instagram_url"],
            facebook_url=creator["facebook_url"],
            tiktok_url=creator["tiktok_url"],
        )
        followers, engagement_rate, impressions, per_week = creator["stats"]
        db.upsert_creator_stats(creator_id, followers, engagement_rate, impressions, per_week)
        logger.info(f"Added creator {creator['display_name']}")

    if not db.list_training_resources():
        for resource in TRAINING:
            db.add_training_resource(**resource)
        logger.info(f"Added {len(TRAINING)} training resources")

    return org_id


if __name__ == "__main__":
    from ..config import get_settings

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    database = init_database(settings.database_file, settings.analytics.aspect_score_scale)
    org_id = seed(database)
    print(f"Seed complete. Demo organization id: {org_id}")
