"""Collaborator contracts plus in-memory and HTTP implementations."""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import replace
from typing import Any, Mapping, Protocol, runtime_checkable

import httpx

from .config import AppConfig, EndpointsConfig
from .errors import CollaboratorError
from .models import ConnectionProfile, CredentialReference
from .passwords import PasswordPolicy
from .urls import ConnectivitySettings

LOG = logging.getLogger(__name__)


@runtime_checkable
class CredentialStore(Protocol):
    """Issues and looks up persisted MQTT credentials."""

    async def issue(self, name: str, client_id: str, username: str | None) -> CredentialReference: ...

    async def fetch_by_id(self, credentials_id: str) -> CredentialReference: ...


@runtime_checkable
class ConnectivitySettingsSource(Protocol):
    """Supplies the advertised WebSocket host/port pairs."""

    async def get(self) -> ConnectivitySettings: ...


@runtime_checkable
class ProfileStore(Protocol):
    """Persists assembled connection profiles."""

    async def save(self, profile: ConnectionProfile) -> ConnectionProfile: ...


@runtime_checkable
class PasswordPolicySource(Protocol):
    """Supplies the active password policy."""

    async def get(self) -> PasswordPolicy: ...


@runtime_checkable
class UserContext(Protocol):
    """Identifies the user creating profiles."""

    def user_id(self) -> str: ...


def basic_credentials_value(client_id: str, username: str | None, password: str | None = None) -> str:
    """Serialize the MQTT basic credential blob with allow-all auth rules."""

    return json.dumps(
        {
            "clientId": client_id,
            "userName": username,
            "password": password,
            "authRules": {
                "pubAuthRulePatterns": [".*"],
                "subAuthRulePatterns": [".*"],
            },
        }
    )


class InMemoryCredentialStore:
    """Credential store keeping records in a dict (tests and offline use)."""

    def __init__(self, records: Mapping[str, CredentialReference] | None = None) -> None:
        self._records: dict[str, CredentialReference] = dict(records or {})

    @property
    def records(self) -> Mapping[str, CredentialReference]:
        return dict(self._records)

    async def issue(self, name: str, client_id: str, username: str | None) -> CredentialReference:
        reference = CredentialReference(
            id=str(uuid.uuid4()),
            name=name,
            credentials_value=basic_credentials_value(client_id, username),
        )
        self._records[reference.id] = reference
        return reference

    async def fetch_by_id(self, credentials_id: str) -> CredentialReference:
        try:
            return self._records[credentials_id]
        except KeyError as exc:
            raise CollaboratorError(f"Credentials '{credentials_id}' not found.", status_code=404) from exc


class InMemoryProfileStore:
    """Profile store assigning ids and creation timestamps on first save."""

    def __init__(self) -> None:
        self._profiles: dict[str, ConnectionProfile] = {}

    @property
    def profiles(self) -> tuple[ConnectionProfile, ...]:
        return tuple(self._profiles.values())

    async def save(self, profile: ConnectionProfile) -> ConnectionProfile:
        if profile.id is None:
            profile = replace(profile, id=str(uuid.uuid4()), created_time=int(time.time() * 1000))
        elif profile.created_time is None:
            existing = self._profiles.get(profile.id)
            created = existing.created_time if existing else int(time.time() * 1000)
            profile = replace(profile, created_time=created)
        self._profiles[profile.id] = profile
        return profile


class StaticConnectivitySettings:
    def __init__(self, settings: ConnectivitySettings) -> None:
        self._settings = settings

    async def get(self) -> ConnectivitySettings:
        return self._settings


class StaticPasswordPolicySource:
    def __init__(self, policy: PasswordPolicy) -> None:
        self._policy = policy

    async def get(self) -> PasswordPolicy:
        return self._policy


class StaticUserContext:
    def __init__(self, user_id: str) -> None:
        self._user_id = user_id

    def user_id(self) -> str:
        return self._user_id


class ApiClient:
    """Thin httpx wrapper shared by the HTTP collaborators."""

    def __init__(self, config: AppConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.api_base_url,
            timeout=config.request_timeout,
        )

    @property
    def endpoints(self) -> EndpointsConfig:
        return self._config.endpoints

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.aclose()

    async def get_json(self, path: str) -> Any:
        return await self._request("GET", path)

    async def post_json(self, path: str, body: Mapping[str, Any]) -> Any:
        return await self._request("POST", path, json=body)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            LOG.warning("%s %s failed: %s", method, path, exc)
            raise CollaboratorError(f"{method} {path} failed: {exc}") from exc
        if response.status_code >= 400:
            message = _error_message(response)
            LOG.warning("%s %s returned %s: %s", method, path, response.status_code, message)
            raise CollaboratorError(message, status_code=response.status_code)
        if not response.content:
            return None
        return response.json()


class HttpCredentialStore:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def issue(self, name: str, client_id: str, username: str | None) -> CredentialReference:
        body = {
            "name": name,
            "clientType": "DEVICE",
            "credentialsType": "MQTT_BASIC",
            "credentialsValue": basic_credentials_value(client_id, username),
        }
        payload = await self._api.post_json(self._api.endpoints.client_credentials, body)
        return _credential_from_payload(payload)

    async def fetch_by_id(self, credentials_id: str) -> CredentialReference:
        payload = await self._api.get_json(f"{self._api.endpoints.client_credentials}/{credentials_id}")
        return _credential_from_payload(payload)


class HttpProfileStore:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def save(self, profile: ConnectionProfile) -> ConnectionProfile:
        payload = await self._api.post_json(self._api.endpoints.connections, profile.to_payload())
        return ConnectionProfile.from_payload(payload)


class HttpConnectivitySettings:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def get(self) -> ConnectivitySettings:
        payload = await self._api.get_json(self._api.endpoints.connectivity_settings)
        json_value = (payload or {}).get("jsonValue") or {}
        return ConnectivitySettings.model_validate(json_value)


class HttpPasswordPolicySource:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def get(self) -> PasswordPolicy:
        payload = await self._api.get_json(self._api.endpoints.password_policy)
        return PasswordPolicy.model_validate(payload or {})


def _credential_from_payload(payload: Any) -> CredentialReference:
    if not isinstance(payload, Mapping):
        raise CollaboratorError("Credential store returned an unexpected payload.")
    data = dict(payload)
    # Entity ids are serialized as {"id": "...", "entityType": ...} by the server.
    if isinstance(data.get("id"), Mapping):
        data["id"] = data["id"]["id"]
    return CredentialReference.from_payload(data)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, Mapping) and body.get("message"):
        return str(body["message"])
    return response.text or f"HTTP {response.status_code}"


__all__ = [
    "ApiClient",
    "ConnectivitySettingsSource",
    "CredentialStore",
    "HttpConnectivitySettings",
    "HttpCredentialStore",
    "HttpPasswordPolicySource",
    "HttpProfileStore",
    "InMemoryCredentialStore",
    "InMemoryProfileStore",
    "PasswordPolicySource",
    "ProfileStore",
    "StaticConnectivitySettings",
    "StaticPasswordPolicySource",
    "StaticUserContext",
    "UserContext",
    "basic_credentials_value",
]
