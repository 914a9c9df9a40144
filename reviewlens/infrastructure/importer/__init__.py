from .review_parser import ReviewParser, parse_reviews
