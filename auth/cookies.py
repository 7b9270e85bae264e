"""
auth/cookies.py -- Session cookie serialization and Cookie header parsing.

Wire formats:
  login:  session=<token>; HttpOnly; SameSite=Lax; Expires=<HTTP-date>; Path=/[; Secure]
  logout: session=; HttpOnly; SameSite=Lax; Max-Age=0; Path=/[; Secure]

HttpOnly: JS cannot read the cookie (XSS mitigation).
SameSite=Lax: sent on same-site requests and top-level cross-site GET
    navigations, not on cross-site POST -- CSRF mitigation for most cases.
Expires: the session's absolute deadline, not the idle one. The server
    enforces the idle window; the browser only needs to forget the cookie
    once the session can no longer be revived.
Secure: appended only when serving over TLS (SECURE_COOKIES=true).

Cookie strings are built by hand rather than through Starlette's set_cookie()
so the attribute order matches the wire format above and the same strings can
be produced outside a request (CLI, tests).

Layer rule: stdlib only.
"""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime
from urllib.parse import unquote

SESSION_COOKIE = "session"


def _http_date(value: datetime) -> str:
    """Format value as an RFC 7231 IMF-fixdate, e.g. 'Sun, 06 Nov 1994 08:49:37 GMT'."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def build_session_cookie(token: str, expires_at: datetime, secure: bool) -> str:
    """Return the Set-Cookie value that stores token until the absolute expiry."""
    attrs = [
        f"{SESSION_COOKIE}={token}",
        "HttpOnly",
        "SameSite=Lax",
        f"Expires={_http_date(expires_at)}",
        "Path=/",
    ]
    if secure:
        attrs.append("Secure")
    return "; ".join(attrs)


def delete_session_cookie(secure: bool) -> str:
    """Return the Set-Cookie value that makes the client drop the session cookie now."""
    attrs = [
        f"{SESSION_COOKIE}=",
        "HttpOnly",
        "SameSite=Lax",
        "Max-Age=0",
        "Path=/",
    ]
    if secure:
        attrs.append("Secure")
    return "; ".join(attrs)


def parse_cookies(raw_header_value: str | None) -> dict[str, str]:
    """Parse a Cookie request header into a dict.

    Splits on ";" and then on the first "=" only -- values may contain "=".
    Keys and values are URL-decoded. Segments without "=" or with an empty key
    are skipped instead of failing the whole header. When a name repeats, the
    last occurrence wins.
    """
    cookies: dict[str, str] = {}
    if not raw_header_value:
        return cookies
    for segment in raw_header_value.split(";"):
        segment = segment.strip()
        if "=" not in segment:
            continue
        key, value = segment.split("=", 1)
        key = unquote(key.strip())
        if not key:
            continue
        cookies[key] = unquote(value.strip())
    return cookies


def read_session_token(raw_header_value: str | None) -> str | None:
    """Return the session token from a Cookie header, or None if absent or empty."""
    return parse_cookies(raw_header_value).get(SESSION_COOKIE) or None
