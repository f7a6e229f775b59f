"""
consent_gateway.auth.middleware

The admission pipeline wrapped around every API route.

Responsibilities:
- Apply method -> origin -> rate limit -> token checks in that order,
  stopping at the first failure.
- Produce a `RequestContext` (principal, rate-limit info, CORS headers) for handlers.
- Attach CORS headers to every rejection so browsers can read the error body.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from starlette.requests import Request

from consent_gateway.auth.models import AdminPrincipal, Principal
from consent_gateway.auth.origin import WILDCARD, OriginGuard
from consent_gateway.auth.ratelimit import Rejected, RateLimiter
from consent_gateway.auth.tokens import TokenStore
from consent_gateway.errors import AdmissionError, ErrorKind
from consent_gateway.observability.logging import get_logger

log = get_logger(__name__)

ALL_METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")
READ_ONLY_METHODS = frozenset({"GET", "HEAD"})


@dataclass(frozen=True, slots=True)
class RouteOptions:
    """
    Per-route admission configuration.

    OPTIONS is always answered as a CORS preflight and never needs declaring;
    HEAD is admitted wherever GET is.
    """

    require_auth: bool = False
    require_admin: bool = False
    rate_limit_type: str = "api"
    allowed_methods: frozenset[str] = frozenset({"GET", "POST", "PUT", "DELETE"})
    cors_origins: str = WILDCARD

    @classmethod
    def build(
        cls,
        *,
        allowed_methods: Iterable[str],
        require_auth: bool = False,
        require_admin: bool = False,
        rate_limit_type: str = "api",
        cors_origins: str = WILDCARD,
    ) -> RouteOptions:
        return cls(
            require_auth=require_auth or require_admin,
            require_admin=require_admin,
            rate_limit_type=rate_limit_type,
            allowed_methods=frozenset(m.upper() for m in allowed_methods),
            cors_origins=cors_origins,
        )

    def permits(self, method: str) -> bool:
        if method in self.allowed_methods:
            return True
        return method == "HEAD" and "GET" in self.allowed_methods

    @property
    def allow_header(self) -> str:
        return ", ".join(sorted(self.allowed_methods))


@dataclass(frozen=True, slots=True)
class RateLimitInfo:
    limit: int
    remaining: int
    reset: datetime

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": self.reset.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class RequestContext:
    principal: Principal | None
    rate_limit: RateLimitInfo
    cors_headers: dict[str, str]
    timestamp: datetime
    client_ip: str
    # Raw bearer credential as presented; only the registration reconciler reads it.
    bearer_token: str | None = field(default=None, repr=False)

    @property
    def principal_class(self) -> str:
        return self.principal.kind if self.principal is not None else "anonymous"

    @property
    def response_headers(self) -> dict[str, str]:
        return {**self.cors_headers, **self.rate_limit.headers()}


class PreflightResponse(Exception):
    """Short-circuits an OPTIONS request with CORS headers and no body."""

    def __init__(self, headers: dict[str, str]) -> None:
        super().__init__("preflight")
        self.headers = headers


@dataclass(slots=True)
class _Admission:
    request: Request
    options: RouteOptions
    cors_headers: dict[str, str]
    client_ip: str
    bearer_token: str | None
    principal: Principal | None = None
    rate_limit: RateLimitInfo | None = None


def extract_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("authorization", "")
    scheme, _, credentials = auth.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    # Query-string tokens end up in access logs; accept them only for reads.
    if request.method in READ_ONLY_METHODS:
        return request.query_params.get("token") or None
    return None


def client_ip(request: Request, *, trust_proxy_headers: bool) -> str:
    if trust_proxy_headers:
        for header in ("cf-connecting-ip", "x-real-ip"):
            value = request.headers.get(header)
            if value:
                return value.strip()
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class AuthMiddleware:
    """
    Ordered admission pipeline. Constructed once at startup with its
    collaborators and shared by every request; it holds no per-request state.
    """

    def __init__(
        self,
        *,
        token_store: TokenStore,
        rate_limiter: RateLimiter,
        origin_guard: OriginGuard,
        trust_proxy_headers: bool = False,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._tokens = token_store
        self._limiter = rate_limiter
        self._origins = origin_guard
        self._trust_proxy_headers = trust_proxy_headers
        self._now = now
        self._steps: tuple[Callable[[_Admission], Awaitable[None]], ...] = (
            self._check_method,
            self._check_origin,
            self._check_rate_limit,
            self._check_token,
        )

    async def admit(self, request: Request, options: RouteOptions) -> RequestContext:
        state = _Admission(
            request=request,
            options=options,
            cors_headers=self._origins.cors_headers(
                options.cors_origins, request.headers.get("origin")
            ),
            client_ip=client_ip(request, trust_proxy_headers=self._trust_proxy_headers),
            bearer_token=extract_bearer_token(request),
        )
        for step in self._steps:
            try:
                await step(state)
            except AdmissionError as e:
                e.headers = {**state.cors_headers, **e.headers}
                log.warning(
                    "admission_rejected",
                    kind=e.kind.value,
                    code=e.code,
                    route=request.url.path,
                    principal_class=state.principal.kind if state.principal else "anonymous",
                    rate_limit_type=options.rate_limit_type,
                )
                raise

        assert state.rate_limit is not None
        return RequestContext(
            principal=state.principal,
            rate_limit=state.rate_limit,
            cors_headers=state.cors_headers,
            timestamp=self._now(),
            client_ip=state.client_ip,
            bearer_token=state.bearer_token,
        )

    async def _check_method(self, state: _Admission) -> None:
        method = state.request.method.upper()
        if method == "OPTIONS":
            raise PreflightResponse({**state.cors_headers, "Allow": state.options.allow_header})
        if not state.options.permits(method):
            raise AdmissionError(
                ErrorKind.method_not_allowed,
                f"Method {method} is not allowed for this endpoint",
                headers={"Allow": state.options.allow_header},
                details={"allowed_methods": sorted(state.options.allowed_methods)},
            )

    async def _check_origin(self, state: _Admission) -> None:
        headers = state.request.headers
        if not self._origins.is_allowed(
            headers.get("origin"), headers.get("referer"), state.options.cors_origins
        ):
            raise AdmissionError(
                ErrorKind.origin_forbidden,
                "Request origin does not match the allowed domain",
            )

    async def _check_rate_limit(self, state: _Admission) -> None:
        # Identity is not resolved yet, so the requester is keyed by client address.
        key = f"ip:{state.client_ip}"
        category = state.options.rate_limit_type
        result = self._limiter.admit(key, category)
        now = self._now()
        if isinstance(result, Rejected):
            raise AdmissionError(
                ErrorKind.rate_limit_exceeded,
                f"Too many requests. Try again in {result.retry_after} seconds.",
                headers={
                    "Retry-After": str(result.retry_after),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Reset": (
                        now + timedelta(seconds=result.retry_after)
                    ).isoformat(),
                },
                details={"retry_after": result.retry_after},
            )
        state.rate_limit = RateLimitInfo(
            limit=result.limit,
            remaining=result.remaining,
            reset=now + timedelta(seconds=result.reset_after),
        )

    async def _check_token(self, state: _Admission) -> None:
        if not state.options.require_auth:
            return
        try:
            principal = await self._tokens.resolve(
                state.bearer_token,
                admin_user=state.request.headers.get("x-admin-user"),
            )
        except AdmissionError as e:
            if e.http_status == 401:
                e.headers.setdefault("WWW-Authenticate", "Bearer")
            raise
        if state.options.require_admin and not isinstance(principal, AdminPrincipal):
            raise AdmissionError(
                ErrorKind.unauthorized,
                "Invalid admin credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )
        state.principal = principal


# --- Module Notes -----------------------------------------------------------
# Handlers receive the context through `auth.deps.admission(options)` and must
# attach `context.response_headers` to their responses (see api.responses).
