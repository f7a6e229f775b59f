"""
consent_gateway.auth

Request admission and identity package.

Responsibilities:
- Resolve bearer tokens into typed principals (admin or site).
- Per-category rate limiting, origin enforcement and input sanitization.
- The ordered admission pipeline wrapped around every route handler.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Nothing here holds module-level state; components are built in `api.app.create_app`.
