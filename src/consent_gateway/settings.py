"""
consent_gateway.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Hide secrets from repr/logging (the admin API token).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Strict env-driven configuration, defaults safe for local dev.
    One settings object is built at startup and injected across layers.
    """

    model_config = SettingsConfigDict(env_prefix="CG_", case_sensitive=False)

    # Environment controls toggle behavior like auto-init DB tables.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "consent-gateway"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Auth. An empty admin token disables the admin principal entirely.
    admin_api_token: str = Field(default="", repr=False)

    # Public base URL used to compose widget URLs handed to registered sites.
    api_base_url: str = "http://localhost:8080"

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./consent_gateway.db"
    store_timeout_seconds: float = Field(default=5.0, gt=0)

    # Only honour X-Forwarded-For / X-Real-IP / CF-Connecting-IP behind a trusted proxy.
    trust_proxy_headers: bool = False

    # Rate limits per route category, "<requests>/<window seconds>".
    rate_limit_api: str = "100/60"
    rate_limit_registration: str = "5/3600"
    rate_limit_consent: str = "200/60"
    rate_limit_widget: str = "50/60"
    rate_limit_scan: str = "30/60"
    rate_limit_admin: str = "20/60"

    def rate_limit_specs(self) -> dict[str, str]:
        return {
            "api": self.rate_limit_api,
            "registration": self.rate_limit_registration,
            "consent": self.rate_limit_consent,
            "widget": self.rate_limit_widget,
            "scan": self.rate_limit_scan,
            "admin": self.rate_limit_admin,
        }

    @property
    def widget_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/api/widget/script"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Tests construct `Settings(...)` directly and pass it to `create_app`; nothing
# outside the API entrypoint should call `get_settings()` at import time.
