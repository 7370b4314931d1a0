"""Configuration loading for sheetmirror."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class ServiceConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    public_url: str = "http://localhost:8080"  # Address Google and siblings call back on
    notification_path: str = "/notifications"
    refresh_path: str = "/refresh"

    @property
    def notification_url(self) -> str:
        return f"{self.public_url.rstrip('/')}{self.notification_path}"

    @property
    def refresh_url(self) -> str:
        return f"{self.public_url.rstrip('/')}{self.refresh_path}"


@dataclass
class GoogleConfig:
    """Configuration for the Sheets/Drive side."""

    credentials_file: str | None = None  # None uses application default credentials
    service_identity: str | None = None  # Service account email used for writes
    sheet_range: str = "Sheet1"
    sheets_base_url: str = "https://sheets.googleapis.com/v4"
    drive_base_url: str = "https://www.googleapis.com/drive/v3"
    scopes: list[str] = field(
        default_factory=lambda: ["https://www.googleapis.com/auth/drive"]
    )


@dataclass
class AirtableConfig:
    endpoint_url: str = "https://api.airtable.com"
    view: str = "Grid view"
    max_records: int = 1000
    page_size: int = 100
    max_concurrent_requests: int = 5  # Airtable allows 5 req/s per base
    typecast: bool = False


@dataclass
class RegistryConfig:
    db_path: str = "~/.sheetmirror/registry.db"


@dataclass
class WatchConfig:
    """Configuration for Drive change-watch channels."""

    ttl_seconds: int = 86000  # Keep open for ~1 day
    renew_margin_seconds: int = 7200  # At least twice the renewal interval
    renew_enabled: bool = True
    renew_interval_minutes: int = 60


@dataclass
class SyncConfig:
    fanout_include_origin: bool = True
    fanout_mode: str = "http"  # "http" or "local"
    max_concurrent_fanout: int = 8


@dataclass
class HTTPConfig:
    timeout_seconds: float = 30.0


@dataclass
class Config:
    service: ServiceConfig = field(default_factory=ServiceConfig)
    google: GoogleConfig = field(default_factory=GoogleConfig)
    airtable: AirtableConfig = field(default_factory=AirtableConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with SHEETMIRROR_ prefix."""
    return os.environ.get(f"SHEETMIRROR_{key}", default)


def _is_true(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Service overrides
    if host := _get_env("HOST"):
        config.service.host = host
    if port := _get_env("PORT"):
        config.service.port = int(port)
    if public_url := _get_env("PUBLIC_URL"):
        config.service.public_url = public_url

    # Google overrides
    if credentials_file := _get_env("GOOGLE_CREDENTIALS_FILE"):
        config.google.credentials_file = credentials_file
    if identity := _get_env("GOOGLE_SERVICE_IDENTITY"):
        config.google.service_identity = identity
    if sheet_range := _get_env("GOOGLE_SHEET_RANGE"):
        config.google.sheet_range = sheet_range

    # Airtable overrides
    if endpoint := _get_env("AIRTABLE_ENDPOINT_URL"):
        config.airtable.endpoint_url = endpoint
    if view := _get_env("AIRTABLE_VIEW"):
        config.airtable.view = view
    if typecast := _get_env("AIRTABLE_TYPECAST"):
        config.airtable.typecast = _is_true(typecast)

    # Registry overrides
    if db_path := _get_env("REGISTRY_DB_PATH"):
        config.registry.db_path = db_path

    # Watch overrides
    if ttl := _get_env("WATCH_TTL_SECONDS"):
        config.watch.ttl_seconds = int(ttl)
    if renew_enabled := _get_env("WATCH_RENEW_ENABLED"):
        config.watch.renew_enabled = _is_true(renew_enabled)
    if renew_interval := _get_env("WATCH_RENEW_INTERVAL"):
        config.watch.renew_interval_minutes = int(renew_interval)

    # Sync overrides
    if include_origin := _get_env("FANOUT_INCLUDE_ORIGIN"):
        config.sync.fanout_include_origin = _is_true(include_origin)
    if fanout_mode := _get_env("FANOUT_MODE"):
        config.sync.fanout_mode = fanout_mode

    # HTTP overrides
    if timeout := _get_env("HTTP_TIMEOUT"):
        config.http.timeout_seconds = float(timeout)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded and validated Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse service config
            if "service" in data:
                service_data = data["service"]
                config.service = ServiceConfig(
                    host=service_data.get("host", config.service.host),
                    port=service_data.get("port", config.service.port),
                    public_url=service_data.get("public_url", config.service.public_url),
                    notification_path=service_data.get(
                        "notification_path", config.service.notification_path
                    ),
                    refresh_path=service_data.get(
                        "refresh_path", config.service.refresh_path
                    ),
                )

            # Parse google config
            if "google" in data:
                google_data = data["google"]
                config.google = GoogleConfig(
                    credentials_file=google_data.get("credentials_file"),
                    service_identity=google_data.get("service_identity"),
                    sheet_range=google_data.get("sheet_range", config.google.sheet_range),
                    sheets_base_url=google_data.get(
                        "sheets_base_url", config.google.sheets_base_url
                    ),
                    drive_base_url=google_data.get(
                        "drive_base_url", config.google.drive_base_url
                    ),
                    scopes=google_data.get("scopes", config.google.scopes),
                )

            # Parse airtable config
            if "airtable" in data:
                airtable_data = data["airtable"]
                config.airtable = AirtableConfig(
                    endpoint_url=airtable_data.get(
                        "endpoint_url", config.airtable.endpoint_url
                    ),
                    view=airtable_data.get("view", config.airtable.view),
                    max_records=airtable_data.get(
                        "max_records", config.airtable.max_records
                    ),
                    page_size=airtable_data.get("page_size", config.airtable.page_size),
                    max_concurrent_requests=airtable_data.get(
                        "max_concurrent_requests",
                        config.airtable.max_concurrent_requests,
                    ),
                    typecast=airtable_data.get("typecast", config.airtable.typecast),
                )

            # Parse registry config
            if "registry" in data:
                config.registry = RegistryConfig(
                    db_path=data["registry"].get("db_path", config.registry.db_path)
                )

            # Parse watch config
            if "watch" in data:
                watch_data = data["watch"]
                config.watch = WatchConfig(
                    ttl_seconds=watch_data.get("ttl_seconds", config.watch.ttl_seconds),
                    renew_margin_seconds=watch_data.get(
                        "renew_margin_seconds", config.watch.renew_margin_seconds
                    ),
                    renew_enabled=watch_data.get(
                        "renew_enabled", config.watch.renew_enabled
                    ),
                    renew_interval_minutes=watch_data.get(
                        "renew_interval_minutes", config.watch.renew_interval_minutes
                    ),
                )

            # Parse sync config
            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    fanout_include_origin=sync_data.get(
                        "fanout_include_origin", config.sync.fanout_include_origin
                    ),
                    fanout_mode=sync_data.get("fanout_mode", config.sync.fanout_mode),
                    max_concurrent_fanout=sync_data.get(
                        "max_concurrent_fanout", config.sync.max_concurrent_fanout
                    ),
                )

            # Parse http config
            if "http" in data:
                config.http = HTTPConfig(
                    timeout_seconds=data["http"].get(
                        "timeout_seconds", config.http.timeout_seconds
                    )
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    if config.sync.fanout_mode not in ("http", "local"):
        raise ValueError(
            f"Unknown fanout_mode '{config.sync.fanout_mode}' (expected 'http' or 'local')"
        )

    # A channel outside the margin on one pass must survive until the next
    interval_seconds = config.watch.renew_interval_minutes * 60
    if config.watch.renew_enabled and config.watch.renew_margin_seconds <= interval_seconds:
        raise ValueError(
            f"watch.renew_margin_seconds ({config.watch.renew_margin_seconds}) must exceed "
            f"the renewal interval ({interval_seconds}s); use at least twice the interval"
        )

    return config
