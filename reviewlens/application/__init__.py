# Application Layer
# =================
# Use cases and orchestration: dashboard assembly, imports, classification
# passes, insight generation. No scoring rules live here.

from .analytics_service import (
    AnalyticsService, OrganizationNotFound, CreatorNotFound, UserNotFound,
)
