from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

REDACTED = "***REDACTED***"


_SENSITIVE_HEADER_NAMES = {
    "authorization",
    "proxy-authorization",
    "x-api-key",
    "x-goog-api-key",
    "api-key",
    "cookie",
    "set-cookie",
}

# The multimodal surface accepts the credential as ?key=...
_SENSITIVE_QUERY_PARAMS = {"key", "api_key", "apikey", "token"}


def sanitize_headers_for_log(
    headers: Mapping[str, str], *, mask_token: str = REDACTED
) -> dict[str, str]:
    """
    Mask credential-bearing headers before they are written to a log.

    Known header names are masked, as is any header whose name mentions
    key/token/secret/auth/cookie. Everything else is kept for debugging.
    """
    sanitized: dict[str, str] = {}
    for name, value in headers.items():
        lower_name = name.lower()
        if lower_name in _SENSITIVE_HEADER_NAMES or any(
            token in lower_name for token in ("key", "token", "secret", "auth", "cookie")
        ):
            sanitized[name] = mask_token
            continue
        sanitized[name] = value
    return sanitized


def sanitize_url_for_log(url: str, *, mask_token: str = REDACTED) -> str:
    """
    Mask credential-bearing query parameters in a URL or path.
    """
    parts = urlsplit(url)
    if not parts.query:
        return url
    pairs = [
        (k, mask_token if k.lower() in _SENSITIVE_QUERY_PARAMS else v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(pairs, safe="*"), parts.fragment)
    )


__all__ = ["REDACTED", "sanitize_headers_for_log", "sanitize_url_for_log"]
