"""
consent_gateway.observability

Observability package.

Responsibilities:
- Structured logging configuration.
- Request context propagation and response hardening headers.
"""

# Package marker.
