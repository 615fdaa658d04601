"""App configuration loading helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

import tomllib

from pydantic import BaseModel, Field, ValidationError

CONFIG_FILE = Path.home() / ".config" / "mqttwizard" / "config.toml"

UrlRederive = Literal["create", "always", "never"]


class EndpointsConfig(BaseModel):
    """REST paths of the collaborator services."""

    client_credentials: str = "/api/mqtt/client/credentials"
    connections: str = "/api/ws/connection"
    connectivity_settings: str = "/api/admin/settings/connectivity"
    password_policy: str = "/api/noauth/userPasswordPolicy"


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    api_base_url: str = "http://localhost:8083"
    request_timeout: float = 10.0
    default_host: str = "localhost"
    ws_port: int = 8084
    wss_port: int = 8085
    url_path: str = "/mqtt"
    # When a settings load re-derives the URL: create flows only, always, or never.
    url_rederive_on_settings_load: UrlRederive = "create"
    log_level: str = "INFO"
    endpoints: EndpointsConfig = Field(default_factory=EndpointsConfig)

    def rederives_url_on_settings_load(self, editing: bool) -> bool:
        if self.url_rederive_on_settings_load == "always":
            return True
        if self.url_rederive_on_settings_load == "never":
            return False
        return not editing

    def with_api_base_url(self, url: str) -> AppConfig:
        """Return a copy pointing at a different API server."""

        return self.model_copy(update={"api_base_url": url})

    def with_endpoints(self, **updates: object) -> AppConfig:
        """Return a copy with endpoint path changes applied."""

        endpoints = self.endpoints.model_copy(update=updates)
        return self.model_copy(update={"endpoints": endpoints})


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()

    try:
        return AppConfig(**data)
    except ValidationError:
        return AppConfig()


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [
        f'api_base_url = "{config.api_base_url}"',
        f"request_timeout = {config.request_timeout}",
        f'default_host = "{config.default_host}"',
        f"ws_port = {config.ws_port}",
        f"wss_port = {config.wss_port}",
        f'url_path = "{config.url_path}"',
        f'url_rederive_on_settings_load = "{config.url_rederive_on_settings_load}"',
        f'log_level = "{config.log_level}"',
        "",
        "[endpoints]",
    ]
    for name, value in config.endpoints.model_dump().items():
        lines.append(f'{name} = "{value}"')
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def configure_logging(config: AppConfig) -> None:
    """Apply the configured log level to the root logger."""

    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    if not isinstance(raw, dict):
        return data
    for key in ("api_base_url", "default_host", "url_path", "url_rederive_on_settings_load", "log_level"):
        value = raw.get(key)
        if isinstance(value, str):
            data[key] = value
    for key in ("ws_port", "wss_port"):
        value = raw.get(key)
        if isinstance(value, int):
            data[key] = value
    timeout = raw.get("request_timeout")
    if isinstance(timeout, (int, float)):
        data["request_timeout"] = float(timeout)
    endpoints = raw.get("endpoints")
    if isinstance(endpoints, dict):
        data["endpoints"] = EndpointsConfig(
            **{name: value for name, value in endpoints.items() if isinstance(value, str) and name in EndpointsConfig.model_fields}
        )
    return data


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "EndpointsConfig",
    "configure_logging",
    "load_config",
    "save_config",
]
