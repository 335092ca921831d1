from __future__ import annotations
import re
from io import BytesIO
from urllib.parse import parse_qs, quote, unquote, urlsplit

import qrcode

BOOTH_VISIT_PATH = "/feed"
BOOTH_VISIT_QUERY_KEY = "boothToken"
TOKEN_QUERY_KEYS = ("boothToken", "token", "booth", "t")

_ABSOLUTE_URL = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_TOKEN_PATHS = (re.compile(r"^/v/([^/]+)"), re.compile(r"^/visit/([^/]+)"))
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _decode_segment(segment: str) -> str:
    if _BAD_ESCAPE.search(segment):
        return segment
    try:
        return unquote(segment, errors="strict")
    except UnicodeDecodeError:
        return segment


def extract_booth_token(payload: str) -> str:
    """Pull the booth token out of whatever a scanner handed us.

    Accepts a bare token, an absolute URL or a path. Query keys win over
    ``/v/<token>`` and ``/visit/<token>`` paths; anything unrecognised is
    returned trimmed and unchanged.
    """
    if not isinstance(payload, str):
        return ""
    trimmed = payload.strip()
    if not trimmed:
        return ""

    is_absolute = bool(_ABSOLUTE_URL.match(trimmed))
    if not is_absolute and not trimmed.startswith("/"):
        return trimmed

    try:
        parts = urlsplit(trimmed)
    except ValueError:
        return trimmed

    query = parse_qs(parts.query, keep_blank_values=True)
    for key in TOKEN_QUERY_KEYS:
        if key in query:
            value = query[key][0].strip()
            if value:
                return value
            break

    pathname = parts.path.rstrip("/")
    for pattern in _TOKEN_PATHS:
        match = pattern.match(pathname)
        if match:
            return _decode_segment(match.group(1)).strip()
    return trimmed


def create_booth_visit_url(origin: str, booth_token: str) -> str:
    token = (booth_token or "").strip()
    if not token:
        return ""
    return f"{origin.rstrip('/')}{BOOTH_VISIT_PATH}?{BOOTH_VISIT_QUERY_KEY}={quote(token, safe='')}"


def render_qr_png(data: str) -> bytes:
    img = qrcode.make(data)
    b = BytesIO(); img.save(b, format="PNG")
    return b.getvalue()
