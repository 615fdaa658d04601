"""Immutable wizard draft and the dispatcher that applies user events to it."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from enum import Enum, IntEnum
from typing import Any, Callable, Iterable, Mapping

from . import credentials
from .config import AppConfig
from .credentials import IdentityFields
from .errors import WizardError
from .identifiers import IdentifierGenerator
from .lastwill import LastWillInput
from .models import (
    ConnectionProfile,
    CredentialMode,
    DataSizeUnit,
    FieldState,
    MqttVersion,
    TimeUnit,
    TransportType,
    UserProperty,
)
from .protocol import Version5Properties, apply_protocol_version
from .stores import ConnectivitySettingsSource, CredentialStore
from .urls import (
    ConnectivitySettings,
    Endpoint,
    default_endpoints,
    derive_url,
    merge_settings,
    transport_from_url,
    url_warning,
)

LOG = logging.getLogger(__name__)

_UNIT_FIELDS: Mapping[str, type[Enum]] = {
    "keep_alive_unit": TimeUnit,
    "connect_timeout_unit": TimeUnit,
    "reconnect_period_unit": TimeUnit,
    "session_expiry_interval_unit": TimeUnit,
    "max_packet_size_unit": DataSizeUnit,
}


class WizardStep(IntEnum):
    """Wizard steps in the order they are shown."""

    CONNECTION = 0
    ADVANCED = 1
    LAST_WILL = 2
    USER_PROPERTIES = 3


class WizardEventType(str, Enum):
    """Events the dispatcher understands."""

    INIT = "init"
    CREDENTIAL_MODE_SELECTED = "credential_mode_selected"
    CREDENTIAL_REFERENCE_CHANGED = "credential_reference_changed"
    PROTOCOL_VERSION_CHANGED = "protocol_version_changed"
    TRANSPORT_SELECTED = "transport_selected"
    SETTINGS_LOADED = "settings_loaded"
    FIELD_EDITED = "field_edited"
    REGENERATE = "regenerate"
    URL_EDITED = "url_edited"


@dataclass(frozen=True, slots=True)
class WizardEvent:
    type: WizardEventType
    value: Any = None
    step: WizardStep | None = None
    field: str | None = None


@dataclass(frozen=True, slots=True)
class ConnectionStep:
    name: FieldState
    url: FieldState
    reject_unauthorized: FieldState
    transport: TransportType
    identity: IdentityFields


@dataclass(frozen=True, slots=True)
class AdvancedStep:
    clean_start: FieldState = FieldState(True)
    keep_alive: FieldState = FieldState(60, required=True)
    keep_alive_unit: FieldState = FieldState(TimeUnit.SECONDS)
    connect_timeout: FieldState = FieldState(30_000, required=True)
    connect_timeout_unit: FieldState = FieldState(TimeUnit.MILLISECONDS)
    reconnect_period: FieldState = FieldState(1_000, required=True)
    reconnect_period_unit: FieldState = FieldState(TimeUnit.MILLISECONDS)
    protocol_version: FieldState = FieldState(MqttVersion.MQTT_5)
    properties: Version5Properties = field(default_factory=Version5Properties)

    @property
    def mqtt_version(self) -> MqttVersion:
        return MqttVersion(int(self.protocol_version.value))


@dataclass(frozen=True, slots=True)
class LastWillStep:
    last_will: LastWillInput | None = None


@dataclass(frozen=True, slots=True)
class UserPropertiesStep:
    properties: tuple[UserProperty, ...] = ()


@dataclass(frozen=True, slots=True)
class ProfileDraft:
    """Accumulated per-step inputs; only the assembler turns it into a profile."""

    connection: ConnectionStep
    advanced: AdvancedStep
    last_will: LastWillStep
    user_properties: UserPropertiesStep
    endpoints: Mapping[TransportType, Endpoint]
    editing: ConnectionProfile | None = None
    page_is_secure: bool = False
    url_warning: bool = False

    @property
    def credential_mode(self) -> CredentialMode:
        return self.connection.identity.mode


class WizardDispatcher:
    """Applies typed events to drafts; every handler is a pure transition."""

    def __init__(
        self,
        generator: IdentifierGenerator | None = None,
        *,
        config: AppConfig | None = None,
        page_is_secure: bool = False,
    ) -> None:
        self._generator = generator or IdentifierGenerator()
        self._config = config or AppConfig()
        self._page_is_secure = page_is_secure
        self._handlers: dict[WizardEventType, Callable[[ProfileDraft, WizardEvent], ProfileDraft]] = {
            WizardEventType.INIT: self._on_init,
            WizardEventType.CREDENTIAL_MODE_SELECTED: self._on_credential_mode,
            WizardEventType.CREDENTIAL_REFERENCE_CHANGED: self._on_credential_reference,
            WizardEventType.PROTOCOL_VERSION_CHANGED: self._on_protocol_version,
            WizardEventType.TRANSPORT_SELECTED: self._on_transport,
            WizardEventType.SETTINGS_LOADED: self._on_settings_loaded,
            WizardEventType.FIELD_EDITED: self._on_field_edited,
            WizardEventType.REGENERATE: self._on_regenerate,
            WizardEventType.URL_EDITED: self._on_url_edited,
        }

    @property
    def generator(self) -> IdentifierGenerator:
        return self._generator

    def new_draft(self, connections_total: int = 0) -> ProfileDraft:
        """Start a create flow with generated identity and default settings."""

        endpoints = self._default_endpoints()
        transport = TransportType.PLAIN
        draft = ProfileDraft(
            connection=ConnectionStep(
                name=FieldState(IdentifierGenerator.connection_name(connections_total + 1), required=True),
                url=FieldState(derive_url(transport, endpoints[transport], self._config.url_path), required=True),
                reject_unauthorized=FieldState(True),
                transport=transport,
                identity=credentials.initial_identity(self._generator),
            ),
            advanced=AdvancedStep(),
            last_will=LastWillStep(),
            user_properties=UserPropertiesStep(),
            endpoints=endpoints,
            page_is_secure=self._page_is_secure,
        )
        return self.dispatch(draft, WizardEvent(WizardEventType.INIT))

    def edit_draft(self, profile: ConnectionProfile) -> ProfileDraft:
        """Start an edit flow hydrated from a stored profile."""

        configuration = profile.configuration
        last_will = configuration.last_will_msg
        draft = ProfileDraft(
            connection=ConnectionStep(
                name=FieldState(profile.name, required=True),
                url=FieldState(configuration.url, required=True),
                reject_unauthorized=FieldState(configuration.reject_unauthorized),
                transport=transport_from_url(configuration.url),
                identity=credentials.initial_identity(self._generator, profile),
            ),
            advanced=AdvancedStep(
                clean_start=FieldState(configuration.clean_start),
                keep_alive=FieldState(configuration.keep_alive, required=True),
                keep_alive_unit=FieldState(configuration.keep_alive_unit),
                connect_timeout=FieldState(configuration.connect_timeout, required=True),
                connect_timeout_unit=FieldState(configuration.connect_timeout_unit),
                reconnect_period=FieldState(configuration.reconnect_period, required=True),
                reconnect_period_unit=FieldState(configuration.reconnect_period_unit),
                protocol_version=FieldState(configuration.mqtt_version),
                properties=Version5Properties.from_configuration(configuration),
            ),
            last_will=LastWillStep(LastWillInput.from_message(last_will) if last_will else None),
            user_properties=UserPropertiesStep(tuple(configuration.user_properties or ())),
            endpoints=self._default_endpoints(),
            editing=profile,
            page_is_secure=self._page_is_secure,
        )
        return self.dispatch(draft, WizardEvent(WizardEventType.INIT))

    def dispatch(self, draft: ProfileDraft, event: WizardEvent) -> ProfileDraft:
        """Return the draft produced by applying `event`."""

        handler = self._handlers.get(event.type)
        if handler is None:  # pragma: no cover - enum is exhaustive
            raise WizardError(f"Unhandled wizard event '{event.type}'")
        return handler(draft, event)

    def dispatch_many(self, draft: ProfileDraft, events: Iterable[WizardEvent]) -> ProfileDraft:
        for event in events:
            draft = self.dispatch(draft, event)
        return draft

    async def open_for_edit(self, profile: ConnectionProfile, store: CredentialStore) -> ProfileDraft:
        """Hydrate an edit draft, resolving its credential reference if it has one."""

        draft = self.edit_draft(profile)
        credentials_id = profile.configuration.client_credentials_id
        if credentials_id is None:
            return draft
        reference = await store.fetch_by_id(credentials_id)
        return self.dispatch(draft, WizardEvent(WizardEventType.CREDENTIAL_REFERENCE_CHANGED, reference))

    async def load_settings(self, draft: ProfileDraft, source: ConnectivitySettingsSource) -> ProfileDraft:
        """Fetch connectivity settings; the defaults stay in place if that fails."""

        try:
            settings = await source.get()
        except Exception as exc:
            LOG.warning("Connectivity settings unavailable, keeping default ports: %s", exc)
            return draft
        return self.dispatch(draft, WizardEvent(WizardEventType.SETTINGS_LOADED, settings))

    def _on_init(self, draft: ProfileDraft, event: WizardEvent) -> ProfileDraft:
        # Re-apply the version gate so hydrated drafts get correct field states.
        advanced = draft.advanced
        properties = apply_protocol_version(advanced.properties, advanced.mqtt_version)
        return self._with_url_warning(replace(draft, advanced=replace(advanced, properties=properties)))

    def _on_credential_mode(self, draft: ProfileDraft, event: WizardEvent) -> ProfileDraft:
        mode = CredentialMode(event.value)
        identity = credentials.select_mode(draft.connection.identity, mode, self._generator, draft.editing)
        return self._with_identity(draft, identity)

    def _on_credential_reference(self, draft: ProfileDraft, event: WizardEvent) -> ProfileDraft:
        identity = credentials.attach_reference(draft.connection.identity, event.value, self._generator, draft.editing)
        return self._with_identity(draft, identity)

    def _on_protocol_version(self, draft: ProfileDraft, event: WizardEvent) -> ProfileDraft:
        version = MqttVersion(int(event.value))
        advanced = draft.advanced
        advanced = replace(
            advanced,
            protocol_version=advanced.protocol_version.set(version),
            properties=apply_protocol_version(advanced.properties, version),
        )
        return replace(draft, advanced=advanced)

    def _on_transport(self, draft: ProfileDraft, event: WizardEvent) -> ProfileDraft:
        transport = TransportType(event.value)
        connection = draft.connection
        url = derive_url(transport, draft.endpoints[transport], self._config.url_path)
        reject_unauthorized = connection.reject_unauthorized
        if transport is TransportType.PLAIN:
            reject_unauthorized = reject_unauthorized.set(True)
        connection = replace(
            connection,
            transport=transport,
            url=connection.url.set(url),
            reject_unauthorized=reject_unauthorized,
        )
        return self._with_url_warning(replace(draft, connection=connection))

    def _on_settings_loaded(self, draft: ProfileDraft, event: WizardEvent) -> ProfileDraft:
        settings: ConnectivitySettings | None = event.value
        endpoints = merge_settings(draft.endpoints, settings)
        draft = replace(draft, endpoints=endpoints)
        if not self._config.rederives_url_on_settings_load(editing=draft.editing is not None):
            return draft
        transport = draft.connection.transport
        url = derive_url(transport, endpoints[transport], self._config.url_path)
        connection = replace(draft.connection, url=draft.connection.url.set(url))
        return replace(draft, connection=connection)

    def _on_url_edited(self, draft: ProfileDraft, event: WizardEvent) -> ProfileDraft:
        connection = replace(draft.connection, url=draft.connection.url.set(event.value))
        return self._with_url_warning(replace(draft, connection=connection))

    def _on_regenerate(self, draft: ProfileDraft, event: WizardEvent) -> ProfileDraft:
        identity = credentials.regenerate(draft.connection.identity, str(event.field), self._generator)
        return self._with_identity(draft, identity)

    def _on_field_edited(self, draft: ProfileDraft, event: WizardEvent) -> ProfileDraft:
        name = event.field
        if event.step is WizardStep.CONNECTION:
            return self._edit_connection(draft, name, event.value)
        if event.step is WizardStep.ADVANCED:
            return self._edit_advanced(draft, name, event.value)
        if event.step is WizardStep.LAST_WILL:
            return replace(draft, last_will=LastWillStep(event.value))
        if event.step is WizardStep.USER_PROPERTIES:
            return replace(draft, user_properties=UserPropertiesStep(_user_properties(event.value)))
        raise WizardError(f"Field edit for '{name}' is missing its step.")

    def _edit_connection(self, draft: ProfileDraft, name: str | None, value: Any) -> ProfileDraft:
        connection = draft.connection
        identity = connection.identity
        if name in ("name", "reject_unauthorized"):
            state: FieldState = getattr(connection, name)
            return replace(draft, connection=replace(connection, **{name: state.set(value)}))
        if name == "url":
            return self._on_url_edited(draft, WizardEvent(WizardEventType.URL_EDITED, value))
        if name in ("credentials_name", "client_id", "username", "password"):
            state = getattr(identity, name)
            if not state.enabled:
                LOG.debug("Ignoring edit of locked field '%s'", name)
                return draft
            return self._with_identity(draft, replace(identity, **{name: state.set(value)}))
        raise WizardError(f"Unknown connection field '{name}'.")

    def _edit_advanced(self, draft: ProfileDraft, name: str | None, value: Any) -> ProfileDraft:
        advanced = draft.advanced
        if name in _UNIT_FIELDS:
            value = _unit(name, value)
        if name == "protocol_version":
            return self._on_protocol_version(draft, WizardEvent(WizardEventType.PROTOCOL_VERSION_CHANGED, value))
        if name in advanced.properties.names():
            state: FieldState = getattr(advanced.properties, name)
            if not state.enabled:
                LOG.debug("Ignoring edit of disabled MQTT 5 property '%s'", name)
                return draft
            properties = replace(advanced.properties, **{name: state.set(value)})
            return replace(draft, advanced=replace(advanced, properties=properties))
        if name in {item.name for item in fields(AdvancedStep)} and name != "properties":
            state = getattr(advanced, name)
            return replace(draft, advanced=replace(advanced, **{name: state.set(value)}))
        raise WizardError(f"Unknown advanced field '{name}'.")

    def _with_identity(self, draft: ProfileDraft, identity: IdentityFields) -> ProfileDraft:
        return replace(draft, connection=replace(draft.connection, identity=identity))

    def _with_url_warning(self, draft: ProfileDraft) -> ProfileDraft:
        return replace(draft, url_warning=url_warning(draft.connection.transport, draft.page_is_secure))

    def _default_endpoints(self) -> dict[TransportType, Endpoint]:
        return default_endpoints(self._config.default_host, self._config.ws_port, self._config.wss_port)


def _unit(name: str, value: Any) -> Enum:
    unit_type = _UNIT_FIELDS[name]
    try:
        return unit_type(value)
    except ValueError as exc:
        raise WizardError(f"Invalid unit '{value}' for '{name}'.") from exc


def _user_properties(value: Any) -> tuple[UserProperty, ...]:
    entries: list[UserProperty] = []
    for item in value or ():
        if isinstance(item, UserProperty):
            entries.append(item)
        elif isinstance(item, Mapping):
            entries.append(UserProperty(key=item.get("k") or "", value=item.get("v")))
        else:
            key, prop_value = item
            entries.append(UserProperty(key=key or "", value=prop_value))
    return tuple(entries)


__all__ = [
    "AdvancedStep",
    "ConnectionStep",
    "LastWillStep",
    "ProfileDraft",
    "UserPropertiesStep",
    "WizardDispatcher",
    "WizardEvent",
    "WizardEventType",
    "WizardStep",
]
