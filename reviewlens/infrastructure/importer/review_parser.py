"""
Review Parser - Universal Excel/CSV Review Import
==================================================

Parses an Excel or CSV export of reviews and auto-detects its columns.
Supports .xlsx, .xls, and .csv formats, from a path or an uploaded buffer.

Detection runs in two passes: exact header matches first, then substring
matches, with patterns tried in priority order. A column is assigned to at
most one field.
"""

import logging
from pathlib import Path
from typing import IO, Dict, List, Optional, Tuple, Union

import pandas as pd

logger = logging.getLogger(__name__)

# Common column name variations for auto-detection, most specific first
RATING_PATTERNS = ['rating', 'stars', 'star_rating', 'star', 'score', 'rate']
TEXT_PATTERNS = ['text', 'review', 'review_text', 'comment', 'content', 'body', 'feedback', 'message']
AUTHOR_PATTERNS = ['author', 'reviewer', 'reviewer_name', 'customer', 'name', 'user', 'guest']
DATE_PATTERNS = ['date', 'created_at', 'created', 'review_date', 'posted', 'published', 'time']

FIELD_PATTERNS = (
    ('rating', RATING_PATTERNS),
    ('text', TEXT_PATTERNS),
    ('author', AUTHOR_PATTERNS),
    ('date', DATE_PATTERNS),
)

SUPPORTED_FORMATS = ('.csv', '.xlsx', '.xls')


class ReviewParser:
    """
    Universal Excel/CSV parser with auto-detection of review columns.

    Usage:
        parser = ReviewParser()
        reviews, columns = parser.parse("reviews.xlsx")
        # Returns: [{"rating": 5, "text": "Lovely stay", "author": "Ann", "created_at": datetime}, ...]
    """

    def __init__(self):
        self.detected_columns: Dict[str, Optional[str]] = {}
        self.skipped_rows: int = 0

    def parse(self, source: Union[str, Path, IO], filename: Optional[str] = None,
              sheet_name: Optional[str] = None) -> Tuple[List[Dict], Dict[str, Optional[str]]]:
        """
        Parse an Excel/CSV file and return review rows.

        Args:
            source: Path to the file, or a binary buffer (e.g. an upload)
            filename: Name used to pick the format when `source` is a buffer
            sheet_name: Optional sheet name for Excel files

        Returns:
            Tuple of (reviews list, detected column mapping)
        """
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not path.exists():
                raise FileNotFoundError(f"File not found: {source}")
            filename = filename or path.name

        ext = Path(filename or '').suffix.lower()
        if ext not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported file format: {ext or 'unknown'}. Use .xlsx, .xls, or .csv")

        try:
            if ext == '.csv':
                df = pd.read_csv(source)
            else:
                df = pd.read_excel(source, sheet_name=sheet_name or 0)
        except Exception as e:
            logger.error(f"Failed to read file: {e}")
            raise ValueError(f"Could not read {filename}: {e}") from e

        # Clean column names
        df.columns = [str(c).strip().lower() for c in df.columns]

        self.detected_columns = self._detect_columns(list(df.columns))
        logger.info(f"Detected columns: {self.detected_columns}")

        if not self.detected_columns['rating']:
            raise ValueError("Could not detect 'Rating' column. Please ensure your file has a column with star ratings.")

        if not self.detected_columns['text']:
            raise ValueError("Could not detect 'Review' column. Please ensure your file has a column with review text.")

        reviews = []
        self.skipped_rows = 0

        for _, row in df.iterrows():
            review = self._parse_row(row)
            if review is None:
                self.skipped_rows += 1
                continue
            reviews.append(review)

        logger.info(f"Parsed {len(reviews)} reviews from {filename} ({self.skipped_rows} skipped)")
        return reviews, self.detected_columns

    def _detect_columns(self, columns: List[str]) -> Dict[str, Optional[str]]:
        detected: Dict[str, Optional[str]] = {name: None for name, _ in FIELD_PATTERNS}
        used = set()

        for exact in (True, False):
            for name, patterns in FIELD_PATTERNS:
                if detected[name]:
                    continue
                col = self._find_column(columns, patterns, used, exact)
                if col:
                    detected[name] = col
                    used.add(col)

        return detected

    def _find_column(self, columns: List[str], patterns: List[str], used: set, exact: bool) -> Optional[str]:
        """Find the first unused column matching a pattern, trying patterns in order."""
        for pattern in patterns:
            for col in columns:
                if col in used:
                    continue
                if col == pattern or (not exact and pattern in col):
                    return col
        return None

    def _parse_row(self, row: pd.Series) -> Optional[Dict]:
        columns = self.detected_columns

        rating = self._clean_rating(row.get(columns['rating']))
        text = self._clean_text(row.get(columns['text']))
        if rating is None or not text:
            return None

        author = self._clean_text(row.get(columns['author'])) if columns['author'] else ''
        created_at = self._clean_date(row.get(columns['date'])) if columns['date'] else None

        return {
            'rating': rating,
            'text': text,
            'author': author or 'Anonymous',
            'created_at': created_at,
        }

    def _clean_rating(self, value) -> Optional[int]:
        """Whole-star rating 1-5, or None."""
        try:
            number = float(str(value).strip())
        except (TypeError, ValueError):
            return None
        if number != number or not number.is_integer():
            return None
        rating = int(number)
        return rating if 1 <= rating <= 5 else None

    def _clean_text(self, value) -> str:
        if value is None:
            return ''
        text = str(value).strip()
        return '' if text.lower() == 'nan' else text

    def _clean_date(self, value):
        if value is None or self._clean_text(value) == '':
            return None
        timestamp = pd.to_datetime(value, errors='coerce')
        if pd.isna(timestamp):
            return None
        return timestamp.to_pydatetime().replace(tzinfo=None)


def parse_reviews(source, filename: Optional[str] = None, sheet_name: Optional[str] = None) -> List[Dict]:
    """
    Convenience function to parse an Excel/CSV review export.

    Returns:
        List of review dictionaries
    """
    parser = ReviewParser()
    reviews, _ = parser.parse(source, filename=filename, sheet_name=sheet_name)
    return reviews
