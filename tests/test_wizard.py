"""Tests for the wizard dispatcher and its draft transitions."""

from __future__ import annotations

import json

import pytest

from mqttwizard.config import AppConfig
from mqttwizard.errors import WizardError
from mqttwizard.identifiers import IdentifierGenerator
from mqttwizard.lastwill import LastWillInput
from mqttwizard.models import (
    ConnectionConfiguration,
    ConnectionProfile,
    CredentialMode,
    CredentialReference,
    DataSizeUnit,
    LastWillMessage,
    MqttVersion,
    PayloadType,
    TimeUnit,
    TransportType,
    UserProperty,
)
from mqttwizard.stores import InMemoryCredentialStore, StaticConnectivitySettings
from mqttwizard.urls import ConnectivityInfo, ConnectivitySettings
from mqttwizard.wizard import WizardDispatcher, WizardEvent, WizardEventType, WizardStep


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def dispatcher() -> WizardDispatcher:
    return WizardDispatcher(IdentifierGenerator(seed=7))


def _edit(step: WizardStep, field: str, value: object) -> WizardEvent:
    return WizardEvent(WizardEventType.FIELD_EDITED, value, step=step, field=field)


def _settings(host: str = "broker.example.com") -> ConnectivitySettings:
    return ConnectivitySettings(
        plain=ConnectivityInfo(enabled=True, host=host, port=9001),
        secure=ConnectivityInfo(enabled=False, host=host, port=9002),
    )


def _profile(url: str = "ws://stored-host:8084/mqtt", **overrides: object) -> ConnectionProfile:
    configuration = ConnectionConfiguration(url=url, client_id="stored-client", username="stored-user", **overrides)
    return ConnectionProfile(name="Stored", configuration=configuration, id="conn-1", user_id="user-1", created_time=1)


class _FailingSettings:
    async def get(self) -> ConnectivitySettings:
        raise RuntimeError("settings service down")


def test_new_draft_defaults(dispatcher: WizardDispatcher) -> None:
    draft = dispatcher.new_draft(connections_total=2)

    assert draft.connection.name.value == "WebSocket Connection 3"
    assert draft.connection.url.value == "ws://localhost:8084/mqtt"
    assert draft.connection.transport is TransportType.PLAIN
    assert draft.connection.reject_unauthorized.value is True
    assert draft.credential_mode is CredentialMode.AUTO
    assert draft.connection.identity.client_id.value.startswith("tbmq_")
    assert not draft.connection.identity.client_id.enabled
    assert draft.advanced.keep_alive.value == 60
    assert draft.advanced.mqtt_version is MqttVersion.MQTT_5
    assert draft.advanced.properties.enabled
    assert draft.last_will.last_will is None
    assert draft.user_properties.properties == ()
    assert draft.url_warning is False


def test_transport_switch_rederives_url_and_resets_tls_flag(dispatcher: WizardDispatcher) -> None:
    draft = dispatcher.new_draft()

    secure = dispatcher.dispatch(draft, WizardEvent(WizardEventType.TRANSPORT_SELECTED, TransportType.SECURE))
    secure = dispatcher.dispatch(secure, _edit(WizardStep.CONNECTION, "reject_unauthorized", False))
    plain = dispatcher.dispatch(secure, WizardEvent(WizardEventType.TRANSPORT_SELECTED, "ws"))

    assert secure.connection.url.value == "wss://localhost:8085/mqtt"
    assert secure.connection.reject_unauthorized.value is False
    assert plain.connection.url.value == "ws://localhost:8084/mqtt"
    assert plain.connection.reject_unauthorized.value is True
    assert draft.connection.transport is TransportType.PLAIN


def test_plain_transport_on_secure_page_warns() -> None:
    dispatcher = WizardDispatcher(IdentifierGenerator(seed=1), page_is_secure=True)

    draft = dispatcher.new_draft()
    secure = dispatcher.dispatch(draft, WizardEvent(WizardEventType.TRANSPORT_SELECTED, TransportType.SECURE))

    assert draft.url_warning is True
    assert secure.url_warning is False


def test_config_overrides_default_endpoints() -> None:
    config = AppConfig(default_host="mqtt.local", ws_port=1884, url_path="/ws")
    dispatcher = WizardDispatcher(IdentifierGenerator(seed=1), config=config)

    assert dispatcher.new_draft().connection.url.value == "ws://mqtt.local:1884/ws"


@pytest.mark.anyio
async def test_settings_load_rederives_url_in_create_flow(dispatcher: WizardDispatcher) -> None:
    draft = dispatcher.new_draft()

    loaded = await dispatcher.load_settings(draft, StaticConnectivitySettings(_settings()))

    assert loaded.connection.url.value == "ws://broker.example.com:9001/mqtt"
    # Disabled transports keep the local fallback.
    secure = dispatcher.dispatch(loaded, WizardEvent(WizardEventType.TRANSPORT_SELECTED, TransportType.SECURE))
    assert secure.connection.url.value == "wss://localhost:8085/mqtt"


@pytest.mark.anyio
async def test_settings_load_keeps_stored_url_in_edit_flow(dispatcher: WizardDispatcher) -> None:
    draft = dispatcher.edit_draft(_profile())

    loaded = await dispatcher.load_settings(draft, StaticConnectivitySettings(_settings()))

    assert loaded.connection.url.value == "ws://stored-host:8084/mqtt"
    switched = dispatcher.dispatch(loaded, WizardEvent(WizardEventType.TRANSPORT_SELECTED, TransportType.PLAIN))
    assert switched.connection.url.value == "ws://broker.example.com:9001/mqtt"


@pytest.mark.anyio
async def test_settings_load_can_always_rederive() -> None:
    dispatcher = WizardDispatcher(
        IdentifierGenerator(seed=1),
        config=AppConfig(url_rederive_on_settings_load="always"),
    )
    draft = dispatcher.edit_draft(_profile())

    loaded = await dispatcher.load_settings(draft, StaticConnectivitySettings(_settings()))

    assert loaded.connection.url.value == "ws://broker.example.com:9001/mqtt"


@pytest.mark.anyio
async def test_settings_failure_keeps_draft(dispatcher: WizardDispatcher) -> None:
    draft = dispatcher.new_draft()

    loaded = await dispatcher.load_settings(draft, _FailingSettings())

    assert loaded is draft


def test_locked_identity_fields_ignore_edits(dispatcher: WizardDispatcher) -> None:
    draft = dispatcher.new_draft()

    edited = dispatcher.dispatch(draft, _edit(WizardStep.CONNECTION, "client_id", "typed"))

    assert edited is draft


def test_custom_mode_accepts_identity_edits(dispatcher: WizardDispatcher) -> None:
    draft = dispatcher.dispatch_many(
        dispatcher.new_draft(),
        [
            WizardEvent(WizardEventType.CREDENTIAL_MODE_SELECTED, CredentialMode.CUSTOM),
            _edit(WizardStep.CONNECTION, "client_id", "my-client"),
            _edit(WizardStep.CONNECTION, "password", "secret"),
        ],
    )

    identity = draft.connection.identity
    assert identity.mode is CredentialMode.CUSTOM
    assert identity.client_id.value == "my-client"
    assert identity.password.value == "secret"


def test_regenerate_replaces_generated_value(dispatcher: WizardDispatcher) -> None:
    draft = dispatcher.new_draft()

    regenerated = dispatcher.dispatch(draft, WizardEvent(WizardEventType.REGENERATE, field="client_id"))

    assert regenerated.connection.identity.client_id.value != draft.connection.identity.client_id.value
    assert regenerated.connection.identity.client_id.value.startswith("tbmq_")


def test_protocol_version_gates_version5_properties(dispatcher: WizardDispatcher) -> None:
    draft = dispatcher.dispatch(
        dispatcher.new_draft(),
        _edit(WizardStep.ADVANCED, "session_expiry_interval", 120),
    )

    downgraded = dispatcher.dispatch(draft, WizardEvent(WizardEventType.PROTOCOL_VERSION_CHANGED, 4))
    ignored = dispatcher.dispatch(downgraded, _edit(WizardStep.ADVANCED, "session_expiry_interval", 5))
    restored = dispatcher.dispatch(ignored, _edit(WizardStep.ADVANCED, "protocol_version", MqttVersion.MQTT_5))

    assert downgraded.advanced.mqtt_version is MqttVersion.MQTT_3_1_1
    assert not downgraded.advanced.properties.session_expiry_interval.enabled
    assert ignored is downgraded
    assert restored.advanced.properties.enabled
    assert restored.advanced.properties.session_expiry_interval.value == 120


def test_advanced_field_edit(dispatcher: WizardDispatcher) -> None:
    draft = dispatcher.dispatch(dispatcher.new_draft(), _edit(WizardStep.ADVANCED, "keep_alive", 30))

    assert draft.advanced.keep_alive.value == 30


def test_unknown_fields_raise(dispatcher: WizardDispatcher) -> None:
    draft = dispatcher.new_draft()

    with pytest.raises(WizardError):
        dispatcher.dispatch(draft, _edit(WizardStep.CONNECTION, "colour", "blue"))
    with pytest.raises(WizardError):
        dispatcher.dispatch(draft, _edit(WizardStep.ADVANCED, "colour", "blue"))
    with pytest.raises(WizardError):
        dispatcher.dispatch(draft, WizardEvent(WizardEventType.FIELD_EDITED, "x", field="name"))


def test_last_will_and_user_property_edits(dispatcher: WizardDispatcher) -> None:
    last_will = LastWillInput(topic="status", payload={"online": False})

    draft = dispatcher.dispatch_many(
        dispatcher.new_draft(),
        [
            _edit(WizardStep.LAST_WILL, "last_will", last_will),
            _edit(WizardStep.USER_PROPERTIES, "properties", [("region", "eu"), {"k": "tier", "v": "gold"}]),
        ],
    )

    assert draft.last_will.last_will == last_will
    assert draft.user_properties.properties == (
        UserProperty(key="region", value="eu"),
        UserProperty(key="tier", value="gold"),
    )


def test_edit_draft_hydrates_stored_profile(dispatcher: WizardDispatcher) -> None:
    profile = _profile(
        url="wss://stored-host:8085/mqtt",
        mqtt_version=MqttVersion.MQTT_3_1,
        session_expiry_interval=None,
        last_will_msg=LastWillMessage(
            topic="status",
            qos=1,
            retain=True,
            payload='{"online":false}',
            payload_type=PayloadType.JSON,
        ),
        user_properties=(UserProperty(key="region", value="eu"),),
    )

    draft = dispatcher.edit_draft(profile)

    assert draft.editing is profile
    assert draft.connection.transport is TransportType.SECURE
    assert draft.connection.url.value == "wss://stored-host:8085/mqtt"
    assert draft.credential_mode is CredentialMode.CUSTOM
    assert draft.connection.identity.client_id.value == "stored-client"
    assert not draft.advanced.properties.enabled
    assert draft.advanced.properties.session_expiry_interval.value == 0
    assert draft.last_will.last_will is not None
    assert draft.last_will.last_will.payload == {"online": False}
    assert draft.user_properties.properties == (UserProperty(key="region", value="eu"),)


@pytest.mark.anyio
async def test_open_for_edit_resolves_credential_reference(dispatcher: WizardDispatcher) -> None:
    reference = CredentialReference(
        id="cred-1",
        name="Shared",
        credentials_value=json.dumps({"clientId": "cred-client", "userName": "cred-user", "password": "secret"}),
    )
    store = InMemoryCredentialStore({"cred-1": reference})

    draft = await dispatcher.open_for_edit(_profile(client_credentials_id="cred-1"), store)

    identity = draft.connection.identity
    assert identity.mode is CredentialMode.EXISTING
    assert identity.reference == reference
    assert identity.client_id.value == "cred-client"
    assert not identity.client_id.enabled
    assert identity.username.value == "cred-user"
    assert identity.password_required


@pytest.mark.anyio
async def test_open_for_edit_without_reference(dispatcher: WizardDispatcher) -> None:
    draft = await dispatcher.open_for_edit(_profile(), InMemoryCredentialStore())

    assert draft.credential_mode is CredentialMode.CUSTOM
    assert draft.connection.identity.reference is None


def test_unit_edits_are_coerced_to_enums(dispatcher: WizardDispatcher) -> None:
    draft = dispatcher.dispatch_many(
        dispatcher.new_draft(),
        [
            _edit(WizardStep.ADVANCED, "keep_alive_unit", "HOURS"),
            _edit(WizardStep.ADVANCED, "max_packet_size_unit", "KILOBYTE"),
        ],
    )

    assert draft.advanced.keep_alive_unit.value is TimeUnit.HOURS
    assert draft.advanced.properties.max_packet_size_unit.value is DataSizeUnit.KILOBYTE
    with pytest.raises(WizardError):
        dispatcher.dispatch(draft, _edit(WizardStep.ADVANCED, "connect_timeout_unit", "FORTNIGHTS"))
