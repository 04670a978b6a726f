"""SVG-to-JPEG rendering for preview images.

Requires CairoSVG (and the cairo system library) plus Pillow.
"""

from __future__ import annotations

import io
import logging
from types import SimpleNamespace
from typing import Tuple

import cairosvg
from cairosvg.helpers import size as svg_size
from cairosvg.parser import Tree
from PIL import Image

from codec import RASTERIZE_ROUTE, from_base64, safe_unquote

logger = logging.getLogger(__name__)

MAX_WIDTH = 1200
DEFAULT_CANVAS: Tuple[int, int] = (1200, 630)
CACHE_CONTROL = "public, max-age=300"
SVG_ENVELOPE = '<svg xmlns="http://www.w3.org/2000/svg">{markup}</svg>'
JPEG_BACKGROUND = (255, 255, 255)
SVG_DPI = 96
SVG_FONT_SIZE = 12


class RasterizeError(RuntimeError):
    """Raised when a payload cannot be rendered to JPEG."""


def extract_rasterize_payload(original_url: str, base_path: str = RASTERIZE_ROUTE) -> str:
    """Pull the payload out of ``<base_path>/<payload>`` or ``<base_path>?<payload>``.

    The whole query string is the payload when present. ``=`` is stripped
    everywhere since it only ever appears as Base64 padding.
    """
    if not original_url.startswith(base_path):
        return ""
    path_part, _, query_part = original_url.partition("?")
    if query_part:
        return query_part.replace("=", "")
    suffix = path_part[len(base_path):]
    if suffix.startswith("/"):
        suffix = suffix[1:]
    return suffix.replace("=", "")


def svg_document(payload: str) -> str:
    svg = from_base64(payload)
    if svg is None:
        svg = safe_unquote(payload)
    if not svg.startswith("<svg"):
        svg = SVG_ENVELOPE.format(markup=svg)
    return svg


def declared_size(svg: bytes) -> Tuple[float, float]:
    """Root width/height in pixels, resolved the way CairoSVG will size its surface."""
    canvas_width, canvas_height = DEFAULT_CANVAS
    root = Tree(bytestring=svg, unsafe=False)
    sizer = SimpleNamespace(
        dpi=SVG_DPI,
        font_size=SVG_FONT_SIZE,
        context_width=canvas_width,
        context_height=canvas_height,
    )
    width = svg_size(sizer, root.get("width", "100%"), "x")
    height = svg_size(sizer, root.get("height", "100%"), "y")
    return width, height


def render_scale(width: float, height: float, max_width: int = MAX_WIDTH) -> float:
    """Scale that caps the rendered width, refusing canvases over Pillow's pixel limit."""
    scale = max_width / width if width > max_width else 1.0
    pixels = (width * scale) * (height * scale)
    limit = Image.MAX_IMAGE_PIXELS
    if limit and pixels > limit:
        raise RasterizeError(f"SVG canvas too large: {width:.0f}x{height:.0f}")
    return scale


def rasterize(payload: str, max_width: int = MAX_WIDTH) -> bytes:
    svg = svg_document(payload).encode("utf-8")
    canvas_width, canvas_height = DEFAULT_CANVAS
    try:
        width, height = declared_size(svg)
    except Exception as ex:
        raise RasterizeError(f"Failed to parse SVG: {ex}") from ex
    # Sized before cairo allocates its surface.
    scale = render_scale(width, height, max_width)
    try:
        png = cairosvg.svg2png(
            bytestring=svg,
            parent_width=canvas_width,
            parent_height=canvas_height,
            scale=scale,
            unsafe=False,
        )
        with Image.open(io.BytesIO(png)) as img:
            img.load()
            frame = img.convert("RGBA")
        if frame.width > max_width:
            resized_height = max(1, round(frame.height * max_width / frame.width))
            frame = frame.resize((max_width, resized_height), resample=Image.Resampling.LANCZOS)
        flattened = Image.new("RGB", frame.size, JPEG_BACKGROUND)
        flattened.paste(frame, mask=frame.getchannel("A"))
        out = io.BytesIO()
        flattened.save(out, format="JPEG", quality=90, optimize=True)
    except Image.DecompressionBombError as ex:
        raise RasterizeError(f"Image too large or suspicious: {ex}") from ex
    except Exception as ex:
        raise RasterizeError(f"Failed to rasterize payload: {ex}") from ex
    logger.debug("Rasterized %d byte payload to %dx%d JPEG", len(payload), flattened.width, flattened.height)
    return out.getvalue()
