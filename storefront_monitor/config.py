"""Configuration loader.

Process settings are read from environment variables and `.env`.  The live
monitor configuration (sites, webhook, interval, user agent) lives in a JSON
document that the control API rewrites while the monitor is running; it is
re-read at every cycle boundary.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple
from urllib.parse import urlparse

from dotenv import load_dotenv

from .events import broadcast_log

# Load variables from a .env file if present (project root).
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")

logger = logging.getLogger(__name__)


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def _parse_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


# ---- Files -------------------------------------------------------------------

DATA_DIR: str = _get_env("DATA_DIR", "data")

# Live configuration document (edited through the control API).
CONFIG_PATH: str = _get_env("CONFIG_PATH", os.path.join(DATA_DIR, "config.json"))

# Path to SQLite state store.
STATE_DB_PATH: str = _get_env("STATE_DB_PATH", os.path.join(DATA_DIR, "monitor.db"))

# Logging level: DEBUG, INFO, WARNING, ERROR.
LOG_LEVEL: str = _get_env("LOG_LEVEL", "INFO")

# ---- HTTP --------------------------------------------------------------------

HTTP_TIMEOUT_SECONDS: float = _parse_float(_get_env("HTTP_TIMEOUT_SECONDS"), 30.0)

# products.json page size (Shopify caps this at 250).
PRODUCTS_PAGE_LIMIT: int = _parse_int(_get_env("PRODUCTS_PAGE_LIMIT"), 250)

# Number of products.json pages to walk per storefront.
PRODUCTS_MAX_PAGES: int = max(1, _parse_int(_get_env("PRODUCTS_MAX_PAGES"), 1))

WEBHOOK_USERNAME: str = _get_env("WEBHOOK_USERNAME", "Shopify Monitor")
WEBHOOK_AVATAR_URL: str = _get_env(
    "WEBHOOK_AVATAR_URL",
    "https://cdn.shopify.com/s/files/1/0533/2089/files/shopify-icon.png",
)

# ---- Monitor loop ------------------------------------------------------------

ERROR_BACKOFF_SECONDS: float = _parse_float(_get_env("ERROR_BACKOFF_SECONDS"), 5.0)
RESTART_DELAY_SECONDS: float = _parse_float(_get_env("RESTART_DELAY_SECONDS"), 1.0)

# ---- Control server ----------------------------------------------------------

CONTROL_HOST: str = _get_env("CONTROL_HOST", "127.0.0.1")
CONTROL_PORT: int = _parse_int(_get_env("PORT"), 3000)

# ---- Live configuration ------------------------------------------------------

MIN_DELAY_MS = 5000

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/133.0.0.0 Safari/537.36"
)

DEFAULTS: dict = {
    "sites": [],
    "webhookUrl": "",
    "delayMs": 60000,
    "userAgent": DEFAULT_USER_AGENT,
}


class ConfigError(ValueError):
    """Raised when a configuration document fails validation."""


@dataclass(frozen=True)
class MonitorConfig:
    sites: Tuple[str, ...] = ()
    webhook_url: str = ""
    delay_ms: int = DEFAULTS["delayMs"]
    user_agent: str = DEFAULT_USER_AGENT

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0

    @property
    def dry_run(self) -> bool:
        return not self.webhook_url.strip()

    def to_dict(self) -> dict:
        return {
            "sites": list(self.sites),
            "webhookUrl": self.webhook_url,
            "delayMs": self.delay_ms,
            "userAgent": self.user_agent,
        }


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def parse_config(raw: Mapping[str, Any]) -> MonitorConfig:
    """Validate a JSON configuration document into a MonitorConfig."""
    if not isinstance(raw, Mapping):
        raise ConfigError("configuration must be a JSON object")

    sites = raw.get("sites", [])
    if not isinstance(sites, list):
        raise ConfigError("sites must be a list of URLs")
    clean_sites = []
    for site in sites:
        if not isinstance(site, str) or not _is_http_url(site.strip()):
            raise ConfigError(f"invalid site URL: {site!r}")
        clean_sites.append(site.strip().rstrip("/"))

    webhook_url = raw.get("webhookUrl", "")
    if webhook_url is None:
        webhook_url = ""
    if not isinstance(webhook_url, str):
        raise ConfigError("webhookUrl must be a string")
    webhook_url = webhook_url.strip()
    if webhook_url and not _is_http_url(webhook_url):
        raise ConfigError(f"invalid webhook URL: {webhook_url!r}")

    delay_ms = raw.get("delayMs", DEFAULTS["delayMs"])
    if isinstance(delay_ms, bool) or not isinstance(delay_ms, int):
        raise ConfigError("delayMs must be an integer")
    if delay_ms < MIN_DELAY_MS:
        raise ConfigError(f"delayMs must be at least {MIN_DELAY_MS}")

    user_agent = raw.get("userAgent", DEFAULT_USER_AGENT)
    if not isinstance(user_agent, str) or not user_agent.strip():
        raise ConfigError("userAgent must be a non-empty string")

    return MonitorConfig(
        sites=tuple(clean_sites),
        webhook_url=webhook_url,
        delay_ms=delay_ms,
        user_agent=user_agent,
    )


def _merge_valid_fields(saved: Mapping[str, Any]) -> dict:
    merged = dict(DEFAULTS)
    for key in DEFAULTS:
        if key not in saved:
            continue
        try:
            parse_config({**DEFAULTS, key: saved[key]})
        except ConfigError as e:
            broadcast_log(f"Invalid {key} in config, using default: {e}", "error")
            continue
        merged[key] = saved[key]
    return merged


def load_config(path: Optional[str] = None) -> MonitorConfig:
    """Read the live configuration.

    Saved fields are merged over the defaults. A field that fails validation
    falls back to its default on its own; an unreadable document yields the
    defaults.
    """
    path = path or CONFIG_PATH
    if not os.path.exists(path):
        return parse_config(DEFAULTS)
    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = json.load(f)
        if not isinstance(saved, dict):
            raise ConfigError("configuration must be a JSON object")
        return parse_config(_merge_valid_fields(saved))
    except (OSError, ValueError) as e:
        logger.debug("Config load failed for %s", path, exc_info=True)
        broadcast_log(f"Config corrupted, using defaults: {e}", "error")
    return parse_config(DEFAULTS)


def save_config(cfg: MonitorConfig, path: Optional[str] = None) -> None:
    """Write the configuration document atomically (tmp file + rename)."""
    path = path or CONFIG_PATH
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(cfg.to_dict(), f, indent=2)
    os.replace(tmp_path, path)


__all__ = [
    "DATA_DIR",
    "CONFIG_PATH",
    "STATE_DB_PATH",
    "LOG_LEVEL",
    "HTTP_TIMEOUT_SECONDS",
    "PRODUCTS_PAGE_LIMIT",
    "PRODUCTS_MAX_PAGES",
    "WEBHOOK_USERNAME",
    "WEBHOOK_AVATAR_URL",
    "ERROR_BACKOFF_SECONDS",
    "RESTART_DELAY_SECONDS",
    "CONTROL_HOST",
    "CONTROL_PORT",
    "MIN_DELAY_MS",
    "DEFAULT_USER_AGENT",
    "DEFAULTS",
    "ConfigError",
    "MonitorConfig",
    "parse_config",
    "load_config",
    "save_config",
]
