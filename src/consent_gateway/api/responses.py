"""
consent_gateway.api.responses

Shared response helpers and exception handlers.

Responsibilities:
- Render successful payloads with the admission context's CORS/rate-limit headers.
- Render `AdmissionError` into the `{error, message, code}` envelope.
- Map request validation failures and preflights onto the same contract.
"""

from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.responses import JSONResponse, Response

from consent_gateway.auth.middleware import PreflightResponse, RequestContext
from consent_gateway.errors import AdmissionError, ErrorKind
from consent_gateway.observability.logging import get_logger

log = get_logger(__name__)


def json_response(
    data: dict[str, Any], *, context: RequestContext, status_code: int = 200
) -> JSONResponse:
    return JSONResponse(data, status_code=status_code, headers=context.response_headers)


def field_errors(exc: ValidationError | RequestValidationError) -> list[dict[str, str]]:
    # Only loc/msg: pydantic's `input`/`ctx` may echo untrusted or unserializable values.
    return [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": str(err.get("msg", ""))}
        for err in exc.errors()
    ]


def validation_error(
    exc: ValidationError, *, context: RequestContext | None = None
) -> AdmissionError:
    return AdmissionError(
        ErrorKind.validation_failed,
        "Request validation failed",
        headers=context.response_headers if context else None,
        details={"errors": field_errors(exc)},
    )


async def admission_error_handler(request: Request, exc: AdmissionError) -> JSONResponse:
    context: RequestContext | None = getattr(request.state, "admission", None)
    if context is not None:
        # Pipeline rejections are logged by the pipeline itself.
        log.warning(
            "request_failed",
            kind=exc.kind.value,
            code=exc.code,
            status=exc.http_status,
            route=request.url.path,
            principal_class=context.principal_class,
        )
    return JSONResponse(exc.to_dict(), status_code=exc.http_status, headers=exc.headers)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    err = AdmissionError(
        ErrorKind.validation_failed,
        "Request validation failed",
        details={"errors": field_errors(exc)},
    )
    return await admission_error_handler(request, err)


async def preflight_handler(request: Request, exc: PreflightResponse) -> Response:
    return Response(status_code=200, headers=exc.headers)
