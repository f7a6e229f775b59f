"""
consent_gateway.auth.sanitize

Neutralize untrusted input before it reaches persistence or logs.

Responsibilities:
- Strip control characters and script-injection fragments from free text.
- Canonicalize site URLs to `scheme://host[:port]` and derive the `host[:port]` dedup key.
- Sanitize decoded JSON structures without ever raising.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any
from urllib.parse import urlsplit

DEFAULT_MAX_LENGTH = 1000
MAX_JSON_DEPTH = 32

_ANGLE_BRACKETS = re.compile(r"[<>]")
_JS_SCHEME = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)
_HOSTNAME = re.compile(r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)*[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
_DOMAIN_JUNK = re.compile(r"[^a-z0-9.-]")
_DEFAULT_PORTS = {"http": 80, "https": 443}


def _strip_controls(value: str) -> str:
    return "".join(ch for ch in value if unicodedata.category(ch) != "Cc")


def sanitize_string(value: str, *, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    cleaned = _strip_controls(value)
    cleaned = _ANGLE_BRACKETS.sub("", cleaned)
    cleaned = _JS_SCHEME.sub("", cleaned)
    cleaned = _EVENT_HANDLER.sub("", cleaned)
    return cleaned.strip()[:max_length]


def sanitize_url(value: str) -> str:
    """
    Normalize a site URL to its canonical origin form, e.g.
    ``"HTTPS://Shop.Example/path?q=1"`` -> ``"https://shop.example"``.

    Raises ValueError for non-http(s) schemes, missing or malformed hosts.
    """

    parts = urlsplit(_strip_controls(value).strip())
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise ValueError(f"unsupported URL scheme: {scheme or '<none>'}")

    host = (parts.hostname or "").rstrip(".")
    if not host:
        raise ValueError("URL has no host")
    if ":" in host:
        # IPv6 literal; urlsplit already validated the brackets.
        host = f"[{host}]"
    else:
        if not host.isascii():
            # Internationalized names are stored in their punycode form.
            try:
                host = host.encode("idna").decode("ascii")
            except UnicodeError as e:
                raise ValueError(f"invalid host: {host!r}") from e
        if not _HOSTNAME.match(host):
            raise ValueError(f"invalid host: {host!r}")

    port = parts.port  # raises ValueError on a non-numeric port
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def host_key(value: str) -> str:
    """
    Scheme-independent identity of a site URL, e.g.
    ``"http://Shop.Example/"`` and ``"https://shop.example"`` -> ``"shop.example"``.

    Registration dedupes on this, so a site moving from http to https keeps
    its id and token. Raises ValueError like `sanitize_url`.
    """

    return sanitize_url(value).split("://", 1)[1]


def sanitize_domain(value: str) -> str:
    cleaned = _DOMAIN_JUNK.sub("", value.lower())
    return cleaned.strip(".")


def sanitize_json(value: Any, *, max_length: int = DEFAULT_MAX_LENGTH) -> Any:
    """
    Recursively sanitize string leaves (and mapping keys) of a decoded JSON value.

    Shape is preserved; numbers, booleans and None pass through unchanged.
    Anything that cannot be sanitized (unknown types, nesting deeper than
    MAX_JSON_DEPTH) becomes an empty string instead of aborting the request.
    """

    return _sanitize(value, max_length=max_length, depth=0)


def _sanitize(value: Any, *, max_length: int, depth: int) -> Any:
    if depth > MAX_JSON_DEPTH:
        return ""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return sanitize_string(value, max_length=max_length)
    if isinstance(value, (list, tuple)):
        return [_sanitize(v, max_length=max_length, depth=depth + 1) for v in value]
    if isinstance(value, dict):
        return {
            sanitize_string(str(k), max_length=max_length): _sanitize(
                v, max_length=max_length, depth=depth + 1
            )
            for k, v in value.items()
        }
    return ""


# --- Module Notes -----------------------------------------------------------
# These are pure functions; the registration request model and the admin-user
# header both pass through here before anything is stored or logged.
