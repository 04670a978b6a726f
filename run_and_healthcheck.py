from __future__ import annotations

import argparse
import os
import subprocess
import sys
import time
import urllib.error
import urllib.request
from pathlib import Path
from typing import List, Optional, Tuple

import requests
from bs4 import BeautifulSoup
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import load_env_file

CRAWLER_USER_AGENT = "Slackbot-LinkExpanding 1.0 (+https://api.slack.com/robots)"


def is_healthy(url: str, timeout: float = 2.0) -> bool:
    request = urllib.request.Request(url=url, method="GET")
    try:
        with urllib.request.urlopen(request, timeout=timeout) as resp:
            return int(resp.status) < 500
    except urllib.error.HTTPError as exc:
        return int(exc.code) < 500
    except (urllib.error.URLError, OSError):
        return False


def _crawler_session() -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=2,
        connect=2,
        read=2,
        backoff_factor=0.4,
        status_forcelist=(502, 503, 504),
        allowed_methods=("GET",),
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers["User-Agent"] = CRAWLER_USER_AGENT
    return session


def unfurl(base_url: str, path: str, timeout: float = 10.0) -> List[Tuple[str, str]]:
    """Fetch ``path`` the way a link-preview bot would and list its preview tags."""
    if not path.startswith("/"):
        path = f"/{path}"
    if not path.endswith("/"):
        path = f"{path}/"
    with _crawler_session() as session:
        response = session.get(f"{base_url}{path}", timeout=timeout)
        response.raise_for_status()
    soup = BeautifulSoup(response.text, "html.parser")
    tags: List[Tuple[str, str]] = []
    if soup.title and soup.title.string:
        tags.append(("title", soup.title.string))
    for meta in soup.find_all("meta"):
        key = meta.get("property") or meta.get("name")
        if key:
            tags.append((key, meta.get("content", "")))
    for link in soup.find_all("link", rel="icon"):
        tags.append(("icon", link.get("href", "")))
    return tags


def print_unfurl(base_url: str, path: str) -> int:
    try:
        tags = unfurl(base_url, path)
    except requests.RequestException as exc:
        print(f"Unfurl failed: {exc}")
        return 1
    for key, value in tags:
        print(f"{key}: {value}")
    return 0


def spawn_server(host: str, port: int, log_file: Path) -> subprocess.Popen:
    env = os.environ.copy()
    env["HOST"] = host
    env["PORT"] = str(port)
    env["FLASK_DEBUG"] = "0"
    with log_file.open("ab") as log_stream:
        return subprocess.Popen(
            [sys.executable, "app.py"],
            stdout=log_stream,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            env=env,
            cwd=str(Path(__file__).resolve().parent),
            close_fds=True,
        )


def main(argv: Optional[List[str]] = None) -> int:
    load_env_file(Path(__file__).resolve().parent / ".env")
    parser = argparse.ArgumentParser(description="Start the preview server in background and wait for health check.")
    parser.add_argument("--host", default=os.environ.get("HOST", "127.0.0.1"), help="Host to bind/check")
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8080")), help="Port to bind/check")
    parser.add_argument("--timeout", type=float, default=25.0, help="Seconds to wait for health")
    parser.add_argument("--check-only", action="store_true", help="Only check current health, do not spawn")
    parser.add_argument("--unfurl", metavar="PATH", help="Once healthy, fetch PATH as a crawler and print its preview tags")
    args = parser.parse_args(argv)

    base_url = f"http://{args.host}:{args.port}"
    health_url = f"{base_url}/"

    if is_healthy(health_url):
        print(f"Already healthy: {health_url}")
        return print_unfurl(base_url, args.unfurl) if args.unfurl else 0

    if args.check_only:
        print(f"Not healthy: {health_url}")
        return 1

    runtime_dir = Path("runtime")
    runtime_dir.mkdir(parents=True, exist_ok=True)
    log_file = runtime_dir / "server.log"
    proc = spawn_server(args.host, args.port, log_file)

    deadline = time.time() + max(1.0, args.timeout)
    while time.time() < deadline:
        if proc.poll() is not None:
            print(f"Server process exited before becoming healthy. See log: {log_file}")
            return 1
        if is_healthy(health_url):
            (runtime_dir / "server.pid").write_text(str(proc.pid), encoding="utf-8")
            print(f"Server started. URL: {health_url} PID: {proc.pid}")
            return print_unfurl(base_url, args.unfurl) if args.unfurl else 0
        time.sleep(0.4)

    proc.terminate()
    print(f"Health check timed out after {args.timeout}s: {health_url}. See log: {log_file}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
