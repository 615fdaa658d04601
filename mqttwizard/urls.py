"""Endpoint URL derivation from transport and connectivity settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field

from .models import TransportType

LOG = logging.getLogger(__name__)

DEFAULT_PATH = "/mqtt"

_SCHEMES: Mapping[TransportType, str] = {
    TransportType.PLAIN: "ws://",
    TransportType.SECURE: "wss://",
}


class ConnectivityInfo(BaseModel):
    """Host/port advertised for one transport."""

    enabled: bool = False
    host: str = ""
    port: int | None = None


class ConnectivitySettings(BaseModel):
    """Connectivity settings as returned by the settings source."""

    model_config = ConfigDict(populate_by_name=True)

    plain: ConnectivityInfo = Field(default_factory=ConnectivityInfo, alias="ws")
    secure: ConnectivityInfo = Field(default_factory=ConnectivityInfo, alias="wss")

    def for_transport(self, transport: TransportType) -> ConnectivityInfo:
        return self.plain if transport is TransportType.PLAIN else self.secure


@dataclass(frozen=True, slots=True)
class Endpoint:
    """Resolved host/port pair for a transport."""

    host: str
    port: int


def default_endpoints(host: str, ws_port: int, wss_port: int) -> dict[TransportType, Endpoint]:
    """Locally known fallbacks used until connectivity settings load."""

    return {
        TransportType.PLAIN: Endpoint(host=host, port=ws_port),
        TransportType.SECURE: Endpoint(host=host, port=wss_port),
    }


def merge_settings(
    endpoints: Mapping[TransportType, Endpoint],
    settings: ConnectivitySettings | None,
) -> dict[TransportType, Endpoint]:
    """Overlay enabled transports from `settings` onto the current endpoints."""

    merged = dict(endpoints)
    if settings is None:
        return merged
    for transport in TransportType:
        info = settings.for_transport(transport)
        if info.enabled and info.host and info.port is not None:
            merged[transport] = Endpoint(host=info.host, port=info.port)
    return merged


def derive_url(transport: TransportType, endpoint: Endpoint, path: str = DEFAULT_PATH) -> str:
    """Return `<scheme>://<host>:<port><path>` for the transport."""

    url = f"{_SCHEMES[transport]}{endpoint.host}:{endpoint.port}{path}"
    LOG.debug("Derived %s url %s", transport.value, url)
    return url


def transport_from_url(url: str | None) -> TransportType:
    """Secure when the URL carries the wss scheme, plain otherwise."""

    if url and "wss://" in url:
        return TransportType.SECURE
    return TransportType.PLAIN


def url_warning(transport: TransportType, page_is_secure: bool) -> bool:
    """Plain WebSocket from a page served over https will be blocked."""

    return transport is not TransportType.SECURE and page_is_secure


__all__ = [
    "ConnectivityInfo",
    "ConnectivitySettings",
    "DEFAULT_PATH",
    "Endpoint",
    "default_endpoints",
    "derive_url",
    "merge_settings",
    "transport_from_url",
    "url_warning",
]
