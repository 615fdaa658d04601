"""Tests for the in-memory and HTTP collaborators."""

from __future__ import annotations

import json

import httpx
import pytest

from mqttwizard.config import AppConfig
from mqttwizard.errors import CollaboratorError
from mqttwizard.models import ConnectionConfiguration, ConnectionProfile
from mqttwizard.stores import (
    ApiClient,
    CredentialStore,
    HttpConnectivitySettings,
    HttpCredentialStore,
    HttpPasswordPolicySource,
    HttpProfileStore,
    InMemoryCredentialStore,
    InMemoryProfileStore,
    ProfileStore,
    basic_credentials_value,
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _api(handler) -> ApiClient:  # type: ignore[no-untyped-def]
    config = AppConfig(api_base_url="http://tbmq.test")
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=config.api_base_url)
    return ApiClient(config, client=client)


def _profile() -> ConnectionProfile:
    return ConnectionProfile(
        name="Lab",
        configuration=ConnectionConfiguration(url="ws://broker:8084/mqtt", client_id="lab-client"),
        user_id="user-1",
    )


def test_in_memory_stores_satisfy_protocols() -> None:
    assert isinstance(InMemoryCredentialStore(), CredentialStore)
    assert isinstance(InMemoryProfileStore(), ProfileStore)


def test_basic_credentials_value_allows_all_topics() -> None:
    value = json.loads(basic_credentials_value("client", "user"))

    assert value["clientId"] == "client"
    assert value["userName"] == "user"
    assert value["password"] is None
    assert value["authRules"]["pubAuthRulePatterns"] == [".*"]


@pytest.mark.anyio
async def test_in_memory_credential_store_round_trip() -> None:
    store = InMemoryCredentialStore()

    issued = await store.issue("Creds", "client", "user")
    fetched = await store.fetch_by_id(issued.id)

    assert fetched == issued
    assert fetched.client_id == "client"
    with pytest.raises(CollaboratorError) as excinfo:
        await store.fetch_by_id("missing")
    assert excinfo.value.status_code == 404


@pytest.mark.anyio
async def test_in_memory_profile_store_keeps_created_time_on_update() -> None:
    store = InMemoryProfileStore()

    created = await store.save(_profile())
    updated = await store.save(ConnectionProfile(name="Renamed", configuration=created.configuration, id=created.id))

    assert updated.created_time == created.created_time
    assert store.profiles == (updated,)


@pytest.mark.anyio
async def test_http_credential_store_issue_posts_basic_credentials() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": {"id": "cred-1", "entityType": "MQTT_CLIENT_CREDENTIALS"},
                "name": body["name"],
                "credentialsValue": body["credentialsValue"],
            },
        )

    async with _api(handler) as api:
        reference = await HttpCredentialStore(api).issue("Creds", "client-1", "user-1")

    body = json.loads(seen[0].content)
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/api/mqtt/client/credentials"
    assert body["clientType"] == "DEVICE"
    assert body["credentialsType"] == "MQTT_BASIC"
    assert reference.id == "cred-1"
    assert reference.client_id == "client-1"


@pytest.mark.anyio
async def test_http_credential_store_fetch_by_id() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/mqtt/client/credentials/cred-7"
        return httpx.Response(200, json={"id": "cred-7", "name": "Shared", "credentialsValue": None})

    async with _api(handler) as api:
        reference = await HttpCredentialStore(api).fetch_by_id("cred-7")

    assert reference.name == "Shared"
    assert reference.client_id is None


@pytest.mark.anyio
async def test_http_profile_store_posts_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        assert request.url.path == "/api/ws/connection"
        assert payload["configuration"]["clientId"] == "lab-client"
        payload["id"] = {"id": "conn-1"}
        payload["createdTime"] = 123
        return httpx.Response(200, json=payload)

    async with _api(handler) as api:
        saved = await HttpProfileStore(api).save(_profile())

    assert saved.id == "conn-1"
    assert saved.created_time == 123
    assert saved.configuration.client_id == "lab-client"


@pytest.mark.anyio
async def test_http_connectivity_settings_reads_json_value() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"key": "connectivity", "jsonValue": {"ws": {"enabled": True, "host": "edge", "port": 9001}}},
        )

    async with _api(handler) as api:
        settings = await HttpConnectivitySettings(api).get()

    assert settings.plain.enabled is True
    assert settings.plain.host == "edge"
    assert settings.secure.enabled is False


@pytest.mark.anyio
async def test_http_password_policy_source() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/noauth/userPasswordPolicy"
        return httpx.Response(200, json={"minimumLength": 8, "minimumDigits": 1})

    async with _api(handler) as api:
        policy = await HttpPasswordPolicySource(api).get()

    assert policy.minimum_length == 8
    assert policy.minimum_digits == 1


@pytest.mark.anyio
async def test_error_responses_raise_collaborator_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"message": "Client id already in use"})

    async with _api(handler) as api:
        with pytest.raises(CollaboratorError) as excinfo:
            await HttpCredentialStore(api).issue("Creds", "dup", None)

    assert excinfo.value.status_code == 400
    assert "already in use" in str(excinfo.value)


@pytest.mark.anyio
async def test_transport_errors_raise_collaborator_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _api(handler) as api:
        with pytest.raises(CollaboratorError) as excinfo:
            await HttpPasswordPolicySource(api).get()

    assert excinfo.value.status_code is None
