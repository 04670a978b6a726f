from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from flask import Flask, Response, abort, g, jsonify, request, send_from_directory
from werkzeug.exceptions import HTTPException
from werkzeug.routing import BaseConverter
from werkzeug.security import safe_join

from codec import path_to_metadata
from config import BASE_DIR, ServerConfig, load_env_file
from preview import is_metadata_request, render_metadata_document
from rasterizer import CACHE_CONTROL, extract_rasterize_payload, rasterize


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("itty_unfurl.access")

HTML_CACHE_CONTROL = "no-cache"
ASSET_CACHE_CONTROL = "public, max-age=31536000, immutable"
PATH_SAFE_CHARS = "/:@!$&'()*+,;=~"


class PayloadConverter(BaseConverter):
    """Matches the rest of the URL, slashes and empty string included."""

    regex = ".*"
    part_isolating = False


def _raw_request_uri() -> str:
    """Path and query exactly as the client sent them, still percent-encoded."""
    raw = request.environ.get("RAW_URI") or request.environ.get("REQUEST_URI")
    if raw:
        try:
            return raw.encode("latin-1").decode("utf-8")
        except UnicodeError:
            return raw
    # Servers without a raw URI only expose the decoded PATH_INFO, so an
    # encoded "%2F" comes back as a real segment separator.
    path = quote(request.path, safe=PATH_SAFE_CHARS)
    query = request.query_string.decode("latin-1")
    return f"{path}?{query}" if query else path


def _raw_request_path() -> str:
    return _raw_request_uri().partition("?")[0]


def _resolve_static(docs_dir: Path, path: str) -> Optional[str]:
    if not path or path.endswith("/"):
        candidates = [f"{path}index.html"]
    else:
        candidates = [path, f"{path}.html", f"{path}/index.html"]
    for candidate in candidates:
        joined = safe_join(str(docs_dir), candidate)
        if joined and os.path.isfile(joined):
            return candidate
    return None


def _cache_control_for(filename: str) -> str:
    return HTML_CACHE_CONTROL if filename.endswith(".html") else ASSET_CACHE_CONTROL


def _log_request(config: ServerConfig, response: Response) -> None:
    if config.request_log == "silent":
        return
    size = response.content_length
    size_text = "-" if size is None else str(size)
    if config.request_log == "combined":
        access_logger.info(
            '%s - - [%s] "%s %s %s" %s %s "%s" "%s"',
            request.remote_addr or "-",
            time.strftime("%d/%b/%Y:%H:%M:%S %z"),
            request.method,
            request.full_path.rstrip("?"),
            request.environ.get("SERVER_PROTOCOL", "HTTP/1.1"),
            response.status_code,
            size_text,
            request.referrer or "-",
            request.user_agent.string or "-",
        )
        return
    started_at = float(g.get("started_at") or time.perf_counter())
    elapsed_ms = (time.perf_counter() - started_at) * 1000
    access_logger.info(
        "%s %s %s %.3f ms - %s",
        request.method,
        request.full_path.rstrip("?"),
        response.status_code,
        elapsed_ms,
        size_text,
    )


def create_app(config: Optional[ServerConfig] = None) -> Flask:
    config = config or ServerConfig.from_env()
    app = Flask(__name__, static_folder=None)
    # Base64 payloads may legitimately contain "//".
    app.url_map.merge_slashes = False
    app.url_map.converters["payload"] = PayloadConverter
    app.config["SERVER_CONFIG"] = config

    @app.before_request
    def block_agents():
        g.started_at = time.perf_counter()
        user_agent = request.headers.get("User-Agent", "")
        if any(blocked in user_agent for blocked in config.blocked_agents):
            return Response(status=401)
        return None

    @app.before_request
    def unfurl_for_crawlers():
        if request.method not in {"GET", "HEAD"}:
            return None
        path = _raw_request_path()
        if path.startswith(config.rasterize_route):
            return None
        if not is_metadata_request(path, request.headers.get("User-Agent", ""), config.metadata_bots):
            return None
        info = path_to_metadata(path)
        html = render_metadata_document(info, rasterize_route=config.rasterize_route)
        return Response(html, mimetype="text/html")

    @app.after_request
    def finish_response(response: Response) -> Response:
        if any(request.path.startswith(prefix) for prefix in config.cors_prefixes):
            response.headers["Access-Control-Allow-Origin"] = "*"
        _log_request(config, response)
        return response

    @app.errorhandler(Exception)
    def handle_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        logger.exception("Unhandled error")
        return jsonify({"error": "Internal Server Error"}), 500

    @app.get(config.rasterize_route, endpoint="rasterize")
    @app.get(f"{config.rasterize_route}<payload:suffix>", endpoint="rasterize")
    def rasterize_image(suffix: str = ""):
        payload = extract_rasterize_payload(_raw_request_uri(), config.rasterize_route)
        if not payload:
            return jsonify({"error": "Missing payload"}), 400
        response = Response(rasterize(payload), mimetype="image/jpeg")
        response.headers["Cache-Control"] = CACHE_CONTROL
        return response

    @app.get("/", endpoint="client")
    @app.get("/<path:path>", endpoint="client")
    def serve_client(path: str = ""):
        docs_dir = config.docs_dir
        filename = _resolve_static(docs_dir, path)
        if filename is None:
            if not (docs_dir / "index.html").is_file():
                abort(404)
            filename = "index.html"
        response = send_from_directory(docs_dir, filename)
        response.headers["Cache-Control"] = _cache_control_for(filename)
        return response

    return app


app = create_app()


if __name__ == "__main__":
    load_env_file(BASE_DIR / ".env")
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    settings = ServerConfig.from_env()
    server = create_app(settings)
    logger.info("itty.bitty self-host listening on port %s", settings.port)
    server.run(host=settings.host, port=settings.port, debug=settings.debug, use_reloader=False, threaded=True)
