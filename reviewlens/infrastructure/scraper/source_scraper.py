"""
Review Source Listing Scraper
=============================

Reads the public listing page of a review source (Google Maps, TripAdvisor
and similar) for the rating and total review count it displays. Runs as a
background task when a source with a URL is added.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Optional

from selenium import webdriver
from selenium.webdriver.common.by import By
from selenium.webdriver.support.ui import WebDriverWait
from selenium.webdriver.support import expected_conditions as EC
from selenium.common.exceptions import NoSuchElementException, TimeoutException, WebDriverException

from ..config.settings import ScraperSettings

logger = logging.getLogger(__name__)

RATING_RE = re.compile(r'(\d(?:[.,]\d)?)')
COUNT_RE = re.compile(r'([\d][\d,.\s]*)\s*([kK])?\s*(?:reviews?|ratings?|\))', re.IGNORECASE)
BARE_COUNT_RE = re.compile(r'^\(?\s*([\d][\d,]*)\s*\)?$')


@dataclass
class SourceSnapshot:
    rating: Optional[float] = None
    review_count: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.rating is None and self.review_count is None


def parse_rating(text: Optional[str]) -> Optional[float]:
    """
    Parse a displayed star rating.

    "4.7", "4,7", "Rated 4.5 out of 5", "4.7 stars" -> float in (0, 5]; else None.
    """
    if not text:
        return None
    match = RATING_RE.search(text)
    if not match:
        return None
    value = float(match.group(1).replace(',', '.'))
    return value if 0 < value <= 5 else None


def parse_review_count(text: Optional[str]) -> Optional[int]:
    """
    Parse a displayed review count.

    "779 reviews", "(779)", "1,234 reviews", "2.1K reviews" -> int; else None.
    """
    if not text:
        return None
    text = text.strip()

    match = BARE_COUNT_RE.match(text)
    if match:
        return int(match.group(1).replace(',', ''))

    match = COUNT_RE.search(text)
    if not match:
        return None
    digits = re.sub(r'\s', '', match.group(1))
    if match.group(2):
        try:
            return int(round(float(digits.replace(',', '.')) * 1000))
        except ValueError:
            return None
    digits = digits.replace(',', '').replace('.', '')
    return int(digits) if digits else None


class SourceScraper:
    """Selenium scraper for review source listing pages."""

    def __init__(self, settings: Optional[ScraperSettings] = None):
        self.settings = settings or ScraperSettings()

    def _create_driver(self) -> webdriver.Chrome:
        """Create headless Chrome driver."""
        options = webdriver.ChromeOptions()
        if self.settings.headless:
            options.add_argument("--headless=new")
        options.add_argument("--disable-gpu")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument("--window-size=1920,1080")

        # User agent to avoid blocking
        options.add_argument("user-agent=Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36")

        driver = webdriver.Chrome(options=options)
        driver.set_page_load_timeout(self.settings.page_load_timeout * 3)
        return driver

    def scrape(self, url: str) -> SourceSnapshot:
        """
        Scrape the listing at `url`.

        Returns an empty snapshot when the page cannot be loaded or read.
        """
        snapshot = SourceSnapshot()
        try:
            driver = self._create_driver()
        except WebDriverException as e:
            logger.error(f"Could not start Chrome: {e}")
            return snapshot

        try:
            logger.info(f"Scraping URL: {url}")
            driver.get(url)

            try:
                WebDriverWait(driver, self.settings.page_load_timeout).until(
                    EC.presence_of_element_located((By.CSS_SELECTOR, "h1"))
                )
            except TimeoutException:
                logger.warning("Timeout waiting for page load")

            # Allow some dynamic content to settle
            time.sleep(self.settings.settle_seconds)

            snapshot.rating = self._extract_rating(driver)
            snapshot.review_count = self._extract_review_count(driver)
            logger.info(f"Scraped listing: {snapshot}")

        except WebDriverException as e:
            logger.warning(f"Error scraping {url}: {e}")
        finally:
            driver.quit()

        return snapshot

    def _extract_rating(self, driver) -> Optional[float]:
        # Large rating number on Google Maps, e.g. "4.7"
        try:
            el = driver.find_element(By.XPATH, "//div[contains(@class, 'fontDisplayLarge')]")
            rating = parse_rating(el.text)
            if rating is not None:
                return rating
        except NoSuchElementException:
            pass

        # Star icon aria-label, e.g. "4.7 stars"
        try:
            el = driver.find_element(By.CSS_SELECTOR, "span[role='img'][aria-label*='star']")
            return parse_rating(el.get_attribute("aria-label"))
        except NoSuchElementException:
            return None

    def _extract_review_count(self, driver) -> Optional[int]:
        selectors = [
            (By.CSS_SELECTOR, "span[role='img'][aria-label*='review']"),
            (By.XPATH, "//div[contains(@class, 'fontBodySmall') and contains(text(), 'review')]"),
            (By.XPATH, "//*[contains(text(), 'reviews')]"),
        ]
        for by, selector in selectors:
            try:
                el = driver.find_element(by, selector)
            except NoSuchElementException:
                continue
            count = parse_review_count(el.get_attribute("aria-label")) or parse_review_count(el.text)
            if count is not None:
                return count
        return None
