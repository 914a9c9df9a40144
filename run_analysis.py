"""
Analysis Runner - Batch Review Classification
=============================================

Classifies an organization's reviews that have no aspect scores yet,
optionally recomputes insights, then prints a summary.

Usage:
    python run_analysis.py --org 1
    python run_analysis.py --org 1 --limit 50 --insights
"""

import argparse
import logging
import sys

from reviewlens.application import AnalyticsService
from reviewlens.infrastructure.config import get_settings
from reviewlens.infrastructure.llm import ChatClient, ClassifierError, InsightGenerator, ReviewClassifier
from reviewlens.infrastructure.persistence import init_database

logger = logging.getLogger(__name__)


def build_service() -> AnalyticsService:
    settings = get_settings()
    db = init_database(settings.database_file, settings.analytics.aspect_score_scale)
    client = ChatClient(settings.llm)
    return AnalyticsService(
        db,
        ReviewClassifier(client),
        InsightGenerator(client, settings.llm.max_insight_reviews),
        settings.analytics,
    )


def run_analysis(org_id: int, limit: int = None, insights: bool = False) -> int:
    """Run the classification pass. Returns a process exit code."""

    print("\n" + "=" * 60)
    print("   ReviewLens - Analysis Runner")
    print("=" * 60 + "\n")

    settings = get_settings()
    for issue in settings.validate():
        print(f"   {issue}")

    service = build_service()
    org = service.db.get_organization(org_id)
    if org is None:
        print(f"Organization {org_id} not found")
        return 1

    pending = service.db.list_unanalyzed_reviews(org_id, limit)
    if not pending:
        print(f"No pending reviews for {org.name}. All done!")
    else:
        print(f"Found {len(pending)} pending reviews for {org.name}\n")
        result = service.analyze_pending(org_id, limit=limit, skip_failures=True)
        print(f"   Analyzed: {result['analyzed']} | Failed: {result['failed']}")

    if insights:
        print("\nRecomputing insights...")
        try:
            created = service.recompute_insights(org_id)
        except ClassifierError as e:
            logger.error(f"Insight recompute failed: {e}")
            print(f"   Failed: {e}")
            return 2
        if not created:
            print("   No aspect needs attention")
        for insight in created:
            print(f"   [{insight['severity']}] {insight['title']}")

    # Summary
    dashboard = service.get_dashboard(org_id)
    metrics = dashboard["metrics"]
    print("\n" + "=" * 60)
    print("Analysis Complete!")
    print(f"   Reviews: {metrics['totalReviews']} | Avg rating: {metrics['averageRating']} "
          f"| Positive: {metrics['positiveReviews']}")
    for area in dashboard["keyAreas"]:
        print(f"   {area['aspect']:<14} {area['score']:>3}  ({area['trend']})")
    print("=" * 60 + "\n")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Classify pending reviews for an organization")
    parser.add_argument("--org", type=int, required=True, help="Organization id")
    parser.add_argument("--limit", type=int, default=None, help="Maximum reviews to classify")
    parser.add_argument("--insights", action="store_true", help="Recompute insights afterwards")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=get_settings().log_level,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    return run_analysis(args.org, args.limit, args.insights)


if __name__ == "__main__":
    sys.exit(main())
