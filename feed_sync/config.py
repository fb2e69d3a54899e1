"""Configuration loading for feed_sync."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from xml.etree import ElementTree as ET

from .fetching import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)


@dataclass
class FetcherConfig:
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 10.0
    relay_url: Optional[str] = None


@dataclass
class CacheConfig:
    page_ttl: float = 30.0
    raw_ttl: float = 600.0
    browser_max_age: int = 120


@dataclass
class SessionConfig:
    page_size: int = 25
    poll_size: int = 5
    poll_interval: float = 60.0
    backfill_interval: float = 300.0


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class AppConfig:
    fetcher: FetcherConfig = field(default_factory=FetcherConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def _positive(value: str, name: str, cast=float):
    try:
        number = cast(value)
    except ValueError:
        raise ValueError(f"<{name}> must be a number, got {value!r}") from None
    if number <= 0:
        raise ValueError(f"<{name}> must be positive, got {value!r}")
    return number


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    root = ET.parse(config_path).getroot()
    config = AppConfig()

    # Fetcher
    fetcher_node = root.find("fetcher")
    if fetcher_node is not None:
        user_agent = fetcher_node.findtext("user-agent")
        if user_agent and user_agent.strip():
            config.fetcher.user_agent = user_agent.strip()
        timeout = fetcher_node.findtext("timeout")
        if timeout:
            config.fetcher.timeout = _positive(timeout, "timeout")
        relay_url = fetcher_node.findtext("relay-url")
        if relay_url and relay_url.strip():
            config.fetcher.relay_url = relay_url.strip()

    # Cache
    cache_node = root.find("cache")
    if cache_node is not None:
        config.cache.page_ttl = _positive(
            cache_node.findtext("page-ttl", "30"), "page-ttl"
        )
        config.cache.raw_ttl = _positive(cache_node.findtext("raw-ttl", "600"), "raw-ttl")
        config.cache.browser_max_age = _positive(
            cache_node.findtext("browser-max-age", "120"), "browser-max-age", int
        )

    # Session
    session_node = root.find("session")
    if session_node is not None:
        config.session.page_size = _positive(
            session_node.findtext("page-size", "25"), "page-size", int
        )
        config.session.poll_size = _positive(
            session_node.findtext("poll-size", "5"), "poll-size", int
        )
        config.session.poll_interval = _positive(
            session_node.findtext("poll-interval", "60"), "poll-interval"
        )
        config.session.backfill_interval = _positive(
            session_node.findtext("backfill-interval", "300"), "backfill-interval"
        )

    # Server
    server_node = root.find("server")
    if server_node is not None:
        config.server.host = server_node.findtext("host", "127.0.0.1").strip()
        config.server.port = _positive(server_node.findtext("port", "8080"), "port", int)

    # Logging
    log_node = root.find("logging")
    if log_node is not None:
        config.logging.level = log_node.findtext("level", "INFO").strip()
        log_file = log_node.findtext("file")
        if log_file:
            config.logging.file = _resolve_path(config_path, log_file.strip())

    return config
