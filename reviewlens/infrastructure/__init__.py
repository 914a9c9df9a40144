# Infrastructure Layer
# ====================
# Contains all external service integrations:
# - config/: Environment and settings management
# - persistence/: SQLite repository and demo seed
# - llm/: Chat-completion client, review classifier, insight writer
# - importer/: CSV/Excel review import
# - scraper/: Review source listing scraper (Selenium)
#
# This layer can be replaced entirely without affecting domain/application layers.
