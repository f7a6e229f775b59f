from __future__ import annotations

from datetime import UTC, datetime

import pytest
from starlette.requests import Request

from consent_gateway.auth.middleware import (
    AuthMiddleware,
    PreflightResponse,
    RouteOptions,
    client_ip,
    extract_bearer_token,
)
from consent_gateway.auth.models import AdminPrincipal, SitePrincipal
from consent_gateway.auth.origin import OriginGuard
from consent_gateway.auth.ratelimit import RateLimiter, RateLimitPolicy
from consent_gateway.errors import AdmissionError, ErrorKind

ADMIN = "admin-token-0123456789abcdef0123456789"
SITE = "s" * 64
NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeTokenStore:
    def __init__(self) -> None:
        self.calls = 0

    async def resolve(self, token: str | None, *, admin_user: str | None = None):
        self.calls += 1
        if not token:
            raise AdmissionError(ErrorKind.missing_token, "API token is required")
        if token == ADMIN:
            return AdminPrincipal(user=admin_user or "admin")
        if token == SITE:
            return SitePrincipal(site_id="1" * 32, domain="https://shop.example.com", status="active")
        raise AdmissionError(ErrorKind.invalid_token, "Invalid or inactive token")


def make_request(
    method: str = "GET",
    *,
    headers: dict[str, str] | None = None,
    query: str = "",
    client: tuple[str, int] = ("10.0.0.1", 5000),
) -> Request:
    scope = {
        "type": "http",
        "method": method,
        "scheme": "http",
        "server": ("test", 80),
        "root_path": "",
        "path": "/api/test",
        "query_string": query.encode(),
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


@pytest.fixture
def tokens() -> FakeTokenStore:
    return FakeTokenStore()


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter(
        {"api": RateLimitPolicy(limit=3, window_seconds=60), "admin": RateLimitPolicy(1, 60)}
    )


@pytest.fixture
def auth(tokens: FakeTokenStore, limiter: RateLimiter) -> AuthMiddleware:
    return AuthMiddleware(
        token_store=tokens,  # type: ignore[arg-type]
        rate_limiter=limiter,
        origin_guard=OriginGuard(),
        now=lambda: NOW,
    )


def test_route_options_build() -> None:
    opts = RouteOptions.build(allowed_methods=["get", "post"], require_admin=True)
    assert opts.require_auth is True
    assert opts.allowed_methods == frozenset({"GET", "POST"})
    assert opts.permits("HEAD")
    assert not opts.permits("DELETE")
    assert opts.allow_header == "GET, POST"


def test_extract_bearer_token() -> None:
    assert extract_bearer_token(make_request(headers={"Authorization": f"Bearer {SITE}"})) == SITE
    assert extract_bearer_token(make_request(headers={"Authorization": f"bearer  {SITE} "})) == SITE
    assert extract_bearer_token(make_request(headers={"Authorization": "Basic abc"})) is None
    assert extract_bearer_token(make_request(query=f"token={SITE}")) == SITE
    # Query tokens are read-only.
    assert extract_bearer_token(make_request("POST", query=f"token={SITE}")) is None


def test_client_ip_honours_proxy_headers_only_when_trusted() -> None:
    req = make_request(headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.2"})
    assert client_ip(req, trust_proxy_headers=False) == "10.0.0.1"
    assert client_ip(req, trust_proxy_headers=True) == "203.0.113.9"
    req = make_request(headers={"CF-Connecting-IP": "198.51.100.7", "X-Real-IP": "192.0.2.1"})
    assert client_ip(req, trust_proxy_headers=True) == "198.51.100.7"


@pytest.mark.asyncio
async def test_admitted_request_carries_context(auth: AuthMiddleware) -> None:
    opts = RouteOptions.build(allowed_methods=["GET"], require_auth=True)
    ctx = await auth.admit(make_request(headers={"Authorization": f"Bearer {SITE}"}), opts)

    assert isinstance(ctx.principal, SitePrincipal)
    assert ctx.principal_class == "site"
    assert ctx.timestamp == NOW
    assert ctx.client_ip == "10.0.0.1"
    assert ctx.rate_limit.limit == 3
    assert ctx.rate_limit.remaining == 2
    headers = ctx.response_headers
    assert headers["X-RateLimit-Remaining"] == "2"
    assert headers["Access-Control-Allow-Origin"] == "*"
    assert SITE not in repr(ctx)


@pytest.mark.asyncio
async def test_public_route_does_not_touch_token_store(
    auth: AuthMiddleware, tokens: FakeTokenStore
) -> None:
    ctx = await auth.admit(make_request("POST"), RouteOptions.build(allowed_methods=["POST"]))
    assert ctx.principal is None
    assert ctx.principal_class == "anonymous"
    assert tokens.calls == 0


@pytest.mark.asyncio
async def test_method_check_runs_first(
    auth: AuthMiddleware, tokens: FakeTokenStore, limiter: RateLimiter
) -> None:
    opts = RouteOptions.build(
        allowed_methods=["POST"], require_auth=True, cors_origins="https://shop.example.com"
    )
    with pytest.raises(AdmissionError) as ei:
        await auth.admit(make_request("GET", headers={"Origin": "https://evil.example"}), opts)

    err = ei.value
    assert err.kind == ErrorKind.method_not_allowed
    assert err.headers["Allow"] == "POST"
    assert err.details == {"allowed_methods": ["POST"]}
    # Nothing downstream ran.
    assert tokens.calls == 0
    assert limiter.admit("ip:10.0.0.1", "api").remaining == 2


@pytest.mark.asyncio
async def test_options_is_answered_as_preflight(auth: AuthMiddleware) -> None:
    opts = RouteOptions.build(allowed_methods=["POST"])
    with pytest.raises(PreflightResponse) as ei:
        await auth.admit(make_request("OPTIONS"), opts)
    assert ei.value.headers["Allow"] == "POST"
    assert ei.value.headers["Access-Control-Allow-Origin"] == "*"


@pytest.mark.asyncio
async def test_origin_rejection_precedes_rate_limit(
    auth: AuthMiddleware, limiter: RateLimiter
) -> None:
    opts = RouteOptions.build(allowed_methods=["GET"], cors_origins="https://shop.example.com")
    with pytest.raises(AdmissionError) as ei:
        await auth.admit(make_request(headers={"Origin": "https://evil.example"}), opts)
    assert ei.value.kind == ErrorKind.origin_forbidden
    assert ei.value.http_status == 403
    assert "Access-Control-Allow-Origin" not in ei.value.headers

    ctx = await auth.admit(make_request(headers={"Origin": "https://shop.example.com"}), opts)
    # The rejected request did not consume quota.
    assert ctx.rate_limit.remaining == 2
    assert ctx.cors_headers["Access-Control-Allow-Origin"] == "https://shop.example.com"


@pytest.mark.asyncio
async def test_rate_limit_precedes_token_check(
    auth: AuthMiddleware, tokens: FakeTokenStore
) -> None:
    opts = RouteOptions.build(allowed_methods=["GET"], require_auth=True)
    for _ in range(3):
        with pytest.raises(AdmissionError) as ei:
            await auth.admit(make_request(), opts)
        assert ei.value.kind == ErrorKind.missing_token
        assert ei.value.headers["WWW-Authenticate"] == "Bearer"

    with pytest.raises(AdmissionError) as ei:
        await auth.admit(make_request(headers={"Authorization": f"Bearer {SITE}"}), opts)
    err = ei.value
    assert err.kind == ErrorKind.rate_limit_exceeded
    assert err.http_status == 429
    assert 1 <= int(err.headers["Retry-After"]) <= 60
    assert err.headers["X-RateLimit-Limit"] == "3"
    assert err.details == {"retry_after": int(err.headers["Retry-After"])}
    assert err.headers["Access-Control-Allow-Origin"] == "*"
    assert tokens.calls == 3


@pytest.mark.asyncio
async def test_admin_route_refuses_site_principal(auth: AuthMiddleware) -> None:
    opts = RouteOptions.build(allowed_methods=["GET"], require_admin=True, rate_limit_type="api")
    with pytest.raises(AdmissionError) as ei:
        await auth.admit(make_request(headers={"Authorization": f"Bearer {SITE}"}), opts)
    assert ei.value.kind == ErrorKind.unauthorized

    ctx = await auth.admit(
        make_request(headers={"Authorization": f"Bearer {ADMIN}", "X-Admin-User": "ops"}), opts
    )
    assert ctx.principal == AdminPrincipal(user="ops")


@pytest.mark.asyncio
async def test_unknown_rate_limit_category_fails_loudly(auth: AuthMiddleware) -> None:
    opts = RouteOptions.build(allowed_methods=["GET"], rate_limit_type="nope")
    with pytest.raises(ValueError):
        await auth.admit(make_request(), opts)
