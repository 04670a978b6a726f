"""Open Graph / Twitter-card rendering for link-preview crawlers."""

from __future__ import annotations

from typing import Iterable, List, Mapping
from urllib.parse import quote

from markupsafe import escape

from codec import RASTERIZE_ROUTE, decode_url, is_absolute_url


METADATA_BOTS = (
    "Twitterbot",
    "curl",
    "facebookexternalhit",
    "Slackbot-LinkExpanding",
    "Discordbot",
    "snapchat",
    "Googlebot",
)
# Favicon values longer than this (in UTF-16 code units) are encoded image URLs,
# anything shorter is emoji. Existing links depend on the exact value.
FAVICON_EMOJI_MAX_LENGTH = 9
EMOJI_FAVICON_URL = "https://fonts.gstatic.com/s/e/notoemoji/14.0/{codepoints}/128.png"


def is_metadata_request(path: str, user_agent: str, bots: Iterable[str] = METADATA_BOTS) -> bool:
    if path == "/" or not path.endswith("/"):
        return False
    user_agent = user_agent or ""
    return any(bot in user_agent for bot in bots)


def _prop(prop: str, content: str) -> str:
    return f'<meta property="{escape(prop)}" content="{escape(content)}"/>'


def _name(name: str, content: str) -> str:
    return f'<meta name="{escape(name)}" content="{escape(content)}"/>'


def _icon(href: str) -> str:
    return f'<link rel="icon" type="image/png" href="{escape(href)}">'


def _utf16_length(value: str) -> int:
    return len(value.encode("utf-16-le")) // 2


def emoji_favicon_url(emoji: str) -> str:
    codepoints = "_".join(format(ord(char), "x") for char in emoji)
    return EMOJI_FAVICON_URL.format(codepoints=codepoints)


def render_metadata_tags(info: Mapping[str, str], rasterize_route: str = RASTERIZE_ROUTE) -> List[str]:
    content = ['<meta charset="UTF-8">']

    title = info.get("title")
    if title:
        content.append(f"<title>{escape(title)}</title>")
        content.append(_prop("og:title", title))
    if info.get("s"):
        content.append(_prop("og:site_name", info["s"]))
    if info.get("t"):
        content.append(_prop("og:type", info["t"]))
    if info.get("d"):
        content.append(_prop("og:description", info["d"]))
        content.append(_name("description", info["d"]))
    if info.get("c"):
        content.append(_name("theme-color", f"#{info['c']}"))

    if info.get("i"):
        image = decode_url(info["i"])
        if image and not is_absolute_url(image):
            # encoded markup is served back through the rasterizer
            image = f"{rasterize_route}/{quote(image, safe='')}"
        if image:
            content.append(_prop("og:image", image))
            if info.get("iw"):
                content.append(_prop("og:image:width", info["iw"]))
            if info.get("ih"):
                content.append(_prop("og:image:height", info["ih"]))
            content.append(_name("twitter:card", "summary_large_image"))

    if info.get("v"):
        video = decode_url(info["v"])
        if video:
            content.append(_prop("og:video", video))
            if info.get("vw"):
                content.append(_prop("og:video:width", info["vw"]))
            if info.get("vh"):
                content.append(_prop("og:video:height", info["vh"]))

    favicon = info.get("f")
    if favicon:
        if _utf16_length(favicon) > FAVICON_EMOJI_MAX_LENGTH:
            href = decode_url(favicon)
            if href:
                content.append(_icon(href))
        else:
            content.append(_icon(emoji_favicon_url(favicon)))

    return content


def render_metadata_document(info: Mapping[str, str], rasterize_route: str = RASTERIZE_ROUTE) -> str:
    return "\n".join(render_metadata_tags(info, rasterize_route=rasterize_route))
