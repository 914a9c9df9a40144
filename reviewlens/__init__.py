# ReviewLens - Review Analytics for Hospitality Businesses
# =========================================================
# Multi-tenant review analytics: aspect sentiment dashboards, AI insights,
# a creator marketplace ranked by brand fit, and a training library.
#
# ARCHITECTURE LAYERS:
# - Presentation:   JSON API (web/) and CLI scripts at the repo root
# - Application:    Use cases and orchestration (application/)
# - Domain:         Pure scoring and aggregation (domain/, no I/O)
# - Infrastructure: SQLite, LLM API, CSV/Excel import, source scraping
#
# Collaborators are built once at startup and passed in, so any
# infrastructure piece can be swapped for a fake in tests.
