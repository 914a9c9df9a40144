# Presentation Layer
# ==================
# FastAPI JSON API. Import reviewlens.web.app:create_app to build an app
# around your own collaborators; reviewlens.web.app:app is the default one.
