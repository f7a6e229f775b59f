"""
consent_gateway.services

Service layer package.

Responsibilities:
- Transactional business logic that sits between routers and repositories.
"""

# Package marker.
