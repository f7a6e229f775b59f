"""
consent_gateway.db

Persistence package (SQLAlchemy async).

Responsibilities:
- Provide ORM models, engine/session setup, and repositories.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# The store is a collaborator of the admission layer: it is reached only through
# `repositories.sites.SiteRepo`, so swapping the backend does not touch auth code.
