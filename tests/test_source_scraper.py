"""
Tests for the review source listing scraper.

Note: No browser is started; the Chrome driver is mocked.

Usage:
    pytest tests/test_source_scraper.py -v
"""

from unittest.mock import MagicMock, patch

import pytest
from selenium.common.exceptions import WebDriverException

from reviewlens.infrastructure.config import ScraperSettings
from reviewlens.infrastructure.scraper import SourceScraper, SourceSnapshot, parse_rating, parse_review_count


class TestParseRating:

    @pytest.mark.parametrize("text, expected", [
        ("4.7", 4.7),
        ("4,7", 4.7),
        ("Rated 4.5 out of 5", 4.5),
        ("4.7 stars", 4.7),
        ("5", 5.0),
    ])
    def test_valid(self, text, expected):
        assert parse_rating(text) == expected

    @pytest.mark.parametrize("text", [None, "", "no rating", "0", "7.5"])
    def test_invalid(self, text):
        assert parse_rating(text) is None


class TestParseReviewCount:

    @pytest.mark.parametrize("text, expected", [
        ("779 reviews", 779),
        ("(779)", 779),
        ("1,234 reviews", 1234),
        ("2.1K reviews", 2100),
        ("1 review", 1),
        ("12 ratings", 12),
    ])
    def test_valid(self, text, expected):
        assert parse_review_count(text) == expected

    @pytest.mark.parametrize("text", [None, "", "no reviews yet", "4.7"])
    def test_invalid(self, text):
        assert parse_review_count(text) is None


class TestScrape:

    def setup_method(self):
        self.scraper = SourceScraper(ScraperSettings(page_load_timeout=1, settle_seconds=0))

    def test_driver_start_failure_gives_empty_snapshot(self):
        with patch.object(SourceScraper, "_create_driver", side_effect=WebDriverException("no chrome")):
            snapshot = self.scraper.scrape("https://maps.example/x")
        assert snapshot.is_empty

    def test_page_error_still_quits_driver(self):
        driver = MagicMock()
        driver.get.side_effect = WebDriverException("net::ERR_NAME_NOT_RESOLVED")
        with patch.object(SourceScraper, "_create_driver", return_value=driver):
            snapshot = self.scraper.scrape("https://maps.example/x")
        assert snapshot == SourceSnapshot()
        driver.quit.assert_called_once()

    def test_reads_rating_and_count(self):
        driver = MagicMock()
        with patch.object(SourceScraper, "_create_driver", return_value=driver), \
                patch.object(SourceScraper, "_extract_rating", return_value=4.3), \
                patch.object(SourceScraper, "_extract_review_count", return_value=205):
            snapshot = self.scraper.scrape("https://maps.example/x")
        assert snapshot == SourceSnapshot(rating=4.3, review_count=205)
        driver.quit.assert_called_once()
