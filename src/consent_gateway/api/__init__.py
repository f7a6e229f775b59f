"""
consent_gateway.api

API package for the consent-gateway service.

Responsibilities:
- FastAPI app factory and router modules.
- API-layer dependency wiring and response helpers.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# The API layer stays thin: admission + validation + delegation to services.
