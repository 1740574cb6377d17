"""Server configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: DP_<SECTION>_<KEY> (uppercase).
The usual credential variables (AIRTABLE_API_KEY, NOTION_INTEGRATION_SECRET,
CLOUDINARY_*, ...) are honored as well so existing deployments keep working.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    env: str = "dev"  # "dev" or "prod"
    public_base_url: str = "https://designpublico.com.br"


@dataclass
class QueueConfig:
    max_concurrent: int = 5
    release_delay_ms: int = 50


@dataclass
class ProxyConfig:
    route_prefix: str = "/proxy-image"
    upstream_base: str = "https://v5.airtableusercontent.com"
    max_width: int = 1000
    large_width_threshold: int = 1500
    default_quality: int = 80
    upstream_timeout_seconds: float = 15.0


@dataclass
class ContentConfig:
    catalog_backend: str = "memory"  # "memory" or "airtable"
    documents_backend: str = "memory"  # "memory" or "notion"
    airtable_api_key: str = ""
    airtable_base_id: str = ""
    notion_secret: str = ""
    notion_page_url: str = ""
    id_salt: str = "designpublico_2024"
    sync_on_startup: bool = True


@dataclass
class CloudinaryConfig:
    cloud_name: str = ""
    api_key: str = ""
    api_secret: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    content: ContentConfig = field(default_factory=ContentConfig)
    cloudinary: CloudinaryConfig = field(default_factory=CloudinaryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "DP_SERVER_HOST": lambda v: setattr(config.server, "host", v),
        "DP_SERVER_PORT": lambda v: setattr(config.server, "port", int(v)),
        "DP_SERVER_ENV": lambda v: setattr(config.server, "env", v),
        "DP_SERVER_PUBLIC_BASE_URL": lambda v: setattr(config.server, "public_base_url", v),
        "DP_QUEUE_MAX_CONCURRENT": lambda v: setattr(config.queue, "max_concurrent", int(v)),
        "DP_QUEUE_RELEASE_DELAY_MS": lambda v: setattr(config.queue, "release_delay_ms", int(v)),
        "DP_PROXY_ROUTE_PREFIX": lambda v: setattr(config.proxy, "route_prefix", v),
        "DP_PROXY_UPSTREAM_BASE": lambda v: setattr(config.proxy, "upstream_base", v),
        "DP_PROXY_MAX_WIDTH": lambda v: setattr(config.proxy, "max_width", int(v)),
        "DP_PROXY_DEFAULT_QUALITY": lambda v: setattr(config.proxy, "default_quality", int(v)),
        "DP_PROXY_UPSTREAM_TIMEOUT": lambda v: setattr(config.proxy, "upstream_timeout_seconds", float(v)),
        "DP_CONTENT_CATALOG_BACKEND": lambda v: setattr(config.content, "catalog_backend", v),
        "DP_CONTENT_DOCUMENTS_BACKEND": lambda v: setattr(config.content, "documents_backend", v),
        "DP_CONTENT_ID_SALT": lambda v: setattr(config.content, "id_salt", v),
        "DP_CONTENT_SYNC_ON_STARTUP": lambda v: setattr(config.content, "sync_on_startup", _as_bool(v)),
        "AIRTABLE_API_KEY": lambda v: setattr(config.content, "airtable_api_key", v),
        "AIRTABLE_BASE_ID": lambda v: setattr(config.content, "airtable_base_id", v),
        "NOTION_INTEGRATION_SECRET": lambda v: setattr(config.content, "notion_secret", v),
        "NOTION_PAGE_URL": lambda v: setattr(config.content, "notion_page_url", v),
        "CLOUDINARY_CLOUD_NAME": lambda v: setattr(config.cloudinary, "cloud_name", v),
        "CLOUDINARY_API_KEY": lambda v: setattr(config.cloudinary, "api_key", v),
        "CLOUDINARY_API_SECRET": lambda v: setattr(config.cloudinary, "api_secret", v),
        "DP_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "DP_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    if config_path is None:
        config_path = Path(os.environ.get("DP_CONFIG", "config.yaml"))
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for section_name in ("server", "queue", "proxy", "content", "cloudinary", "logging"):
            section = getattr(config, section_name)
            for k, v in (raw.get(section_name) or {}).items():
                if hasattr(section, k):
                    setattr(section, k, v)

    # Environment overrides always win
    _apply_env_overrides(config)
    return config
