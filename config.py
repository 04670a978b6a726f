from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

from codec import RASTERIZE_ROUTE
from preview import METADATA_BOTS


BASE_DIR = Path(__file__).resolve().parent
DEFAULT_DOCS_DIR = BASE_DIR / "docs"
TRUTHY = {"1", "true", "yes", "on"}


def load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in TRUTHY


def parse_agent_list(value: Optional[str]) -> Tuple[str, ...]:
    return tuple(ua.strip() for ua in (value or "").split(",") if ua.strip())


def _request_log_format(environ: Mapping[str, str]) -> str:
    if (environ.get("REQUEST_LOG") or "").strip().lower() == "silent":
        return "silent"
    env_name = (environ.get("APP_ENV") or environ.get("NODE_ENV") or "").strip().lower()
    return "combined" if env_name == "production" else "dev"


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    docs_dir: Path = DEFAULT_DOCS_DIR
    metadata_bots: Tuple[str, ...] = METADATA_BOTS
    blocked_agents: Tuple[str, ...] = ()
    request_log: str = "dev"
    rasterize_route: str = RASTERIZE_ROUTE
    debug: bool = False
    cors_prefixes: Tuple[str, ...] = ("/render/", "/js/")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        env = os.environ if environ is None else environ
        docs_dir = env.get("DOCS_DIR")
        return cls(
            host=env.get("HOST", "127.0.0.1"),
            port=int(env.get("PORT", "8080")),
            docs_dir=Path(docs_dir).expanduser().resolve() if docs_dir else DEFAULT_DOCS_DIR,
            metadata_bots=parse_agent_list(env.get("METADATA_BOTS")) or METADATA_BOTS,
            blocked_agents=parse_agent_list(env.get("UA_ARRAY")),
            request_log=_request_log_format(env),
            debug=parse_bool(env.get("FLASK_DEBUG"), default=False),
        )
