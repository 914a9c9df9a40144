from .source_scraper import SourceScraper, SourceSnapshot, parse_rating, parse_review_count
