"""
consent_gateway.api.__main__

Entrypoint for running the FastAPI application via `python -m consent_gateway.api`.

Responsibilities:
- Load settings.
- Create the app.
- Start uvicorn with structlog-compatible logging config.
"""

from __future__ import annotations

import uvicorn

from consent_gateway.api.app import create_app
from consent_gateway.settings import get_settings


def main() -> None:
    settings = get_settings()
    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,  # structlog
        # Client addresses key the rate limiter; only honour forwarded headers when configured.
        proxy_headers=settings.trust_proxy_headers,
    )


if __name__ == "__main__":
    main()
