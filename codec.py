"""Decoding of document metadata packed into URL path segments.

A shared link looks like ``/<title>/<key>/<value>/<key>/<value>/``. Titles and
descriptions use a hyphen shorthand for spaces, other values are literal,
percent-encoded or Base64 text. None of the helpers here raise on bad input:
every failed decode falls back to a less interpreted form of the value.
"""

from __future__ import annotations

import base64
import binascii
import re
from typing import Dict, Optional
from urllib.parse import unquote_to_bytes


ABSOLUTE_URL_PREFIX = "http"
RASTERIZE_ROUTE = "/.netlify/functions/rasterize"
HYPHEN_RUN_RE = re.compile(r"-+")
MALFORMED_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")
PRETTY_REPLACEMENTS = {
    "---": " - ",
    "--": "-",
    "-": " ",
}
URLSAFE_TO_STANDARD = str.maketrans("-_", "+/")


def safe_unquote(value: str) -> str:
    """Percent-decode ``value`` as UTF-8, returning it untouched when malformed."""
    if MALFORMED_ESCAPE_RE.search(value):
        return value
    try:
        return unquote_to_bytes(value).decode("utf-8")
    except UnicodeDecodeError:
        return value


def from_base64(value: str) -> Optional[str]:
    """Decode Base64 text (standard or URL-safe alphabet, padding optional).

    Returns None when the value is not Base64 or does not decode to UTF-8.
    """
    cleaned = value.replace("=", "").translate(URLSAFE_TO_STANDARD)
    padded = cleaned + "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(padded, validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        return None


def decode_pretty_component(component: Optional[str]) -> str:
    if not component:
        return ""
    spaced = HYPHEN_RUN_RE.sub(lambda match: PRETTY_REPLACEMENTS.get(match.group(0), "-"), component)
    return safe_unquote(spaced)


def decode_url(value: Optional[str]) -> Optional[str]:
    if not value or is_absolute_url(value):
        return value
    decoded = from_base64(value.replace("=", ""))
    if decoded is not None:
        return decoded
    return safe_unquote(value)


def is_absolute_url(value: str) -> bool:
    return value.startswith(ABSOLUTE_URL_PREFIX)


def path_to_metadata(pathname: str) -> Dict[str, str]:
    """Rebuild the field mapping for one request path.

    The first segment is the title. The rest are read as key/value pairs; a
    pair with an empty key or value (or a dangling key) is skipped. ``d`` uses
    the hyphen shorthand, any other value is percent-decoded only when it
    contains ``%``.
    """
    segments = pathname[1:].split("/")
    info: Dict[str, str] = {"title": decode_pretty_component(segments[0])}
    pairs = segments[1:]
    for index in range(0, len(pairs), 2):
        key = pairs[index]
        value = pairs[index + 1] if index + 1 < len(pairs) else ""
        if not key or not value:
            continue
        if key == "d":
            info[key] = decode_pretty_component(value)
        elif "%" in value:
            info[key] = safe_unquote(value)
        else:
            info[key] = value
    return info
