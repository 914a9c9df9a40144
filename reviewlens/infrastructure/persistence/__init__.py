from .database import (
    Database, init_database, User, Organization, ReviewSource, Insight,
    TrainingResource, ShortlistEntry, ReviewFilters, CreatorFilters,
)
