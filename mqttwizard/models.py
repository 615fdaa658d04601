"""Shared dataclasses and enums used across the wizard modules."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import Any, Mapping


class TimeUnit(str, Enum):
    """Time units accepted by unit-qualified fields."""

    MILLISECONDS = "MILLISECONDS"
    SECONDS = "SECONDS"
    MINUTES = "MINUTES"
    HOURS = "HOURS"


class DataSizeUnit(str, Enum):
    """Size units accepted by unit-qualified fields."""

    BYTE = "BYTE"
    KILOBYTE = "KILOBYTE"
    MEGABYTE = "MEGABYTE"


class MqttVersion(IntEnum):
    """Protocol levels a profile may target."""

    MQTT_3_1 = 3
    MQTT_3_1_1 = 4
    MQTT_5 = 5


class TransportType(str, Enum):
    """Plain or TLS-secured WebSocket transport."""

    PLAIN = "ws"
    SECURE = "wss"


class CredentialMode(str, Enum):
    """Strategy used to populate the client identity fields."""

    AUTO = "AUTO"
    CUSTOM = "CUSTOM"
    EXISTING = "EXISTING"


class PayloadType(str, Enum):
    """Encoding tag attached to a last-will payload."""

    JSON = "JSON"
    STRING = "STRING"


@dataclass(frozen=True, slots=True)
class FieldState:
    """Value of a dependent input plus its editability and requiredness."""

    value: Any = None
    enabled: bool = True
    required: bool = False

    def set(self, value: Any) -> FieldState:
        return replace(self, value=value)

    def lock(self, value: Any = ...) -> FieldState:
        """Disable the field, optionally replacing its value."""

        if value is ...:
            return replace(self, enabled=False)
        return replace(self, value=value, enabled=False)

    def unlock(self, value: Any = ...) -> FieldState:
        """Enable the field, optionally replacing its value."""

        if value is ...:
            return replace(self, enabled=True)
        return replace(self, value=value, enabled=True)

    def require(self, required: bool = True) -> FieldState:
        return replace(self, required=required)


@dataclass(frozen=True, slots=True)
class CredentialReference:
    """Persisted credential record as returned by the credential store."""

    id: str
    name: str
    credentials_value: str | None = None

    def credentials(self) -> Mapping[str, Any]:
        """Decode the serialized blob holding clientId/userName/password."""

        if not self.credentials_value:
            return {}
        decoded = json.loads(self.credentials_value)
        return decoded if isinstance(decoded, dict) else {}

    @property
    def client_id(self) -> str | None:
        return self.credentials().get("clientId") or None

    @property
    def user_name(self) -> str | None:
        return self.credentials().get("userName")

    @property
    def has_password(self) -> bool:
        """True when the record carries a non-empty password marker."""

        password = self.credentials().get("password")
        return password is not None and password != ""

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "credentialsValue": self.credentials_value}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> CredentialReference:
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or ""),
            credentials_value=payload.get("credentialsValue"),
        )


@dataclass(frozen=True, slots=True)
class UserProperty:
    """Single user-defined key/value pair."""

    key: str
    value: str | None = None


@dataclass(frozen=True, slots=True)
class LastWillMessage:
    """Wire-ready last-will entry; optional fields left as None are omitted."""

    topic: str
    qos: int
    retain: bool
    payload: str | None
    payload_type: PayloadType
    payload_format_indicator: bool | None = None
    content_type: str | None = None
    msg_expiry_interval: int | None = None
    msg_expiry_interval_unit: TimeUnit | None = None
    will_delay_interval: int | None = None
    will_delay_interval_unit: TimeUnit | None = None
    response_topic: str | None = None
    correlation_data: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "topic": self.topic,
            "qos": self.qos,
            "retain": self.retain,
            "payload": self.payload,
            "payloadType": self.payload_type.value,
        }
        optional = {
            "payloadFormatIndicator": self.payload_format_indicator,
            "contentType": self.content_type,
            "msgExpiryInterval": self.msg_expiry_interval,
            "msgExpiryIntervalUnit": _enum_value(self.msg_expiry_interval_unit),
            "willDelayInterval": self.will_delay_interval,
            "willDelayIntervalUnit": _enum_value(self.will_delay_interval_unit),
            "responseTopic": self.response_topic,
            "correlationData": self.correlation_data,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> LastWillMessage:
        return cls(
            topic=str(payload["topic"]),
            qos=int(payload.get("qos") or 0),
            retain=bool(payload.get("retain", False)),
            payload=payload.get("payload"),
            payload_type=PayloadType(payload.get("payloadType") or PayloadType.STRING.value),
            payload_format_indicator=payload.get("payloadFormatIndicator"),
            content_type=payload.get("contentType"),
            msg_expiry_interval=payload.get("msgExpiryInterval"),
            msg_expiry_interval_unit=_optional_enum(TimeUnit, payload.get("msgExpiryIntervalUnit")),
            will_delay_interval=payload.get("willDelayInterval"),
            will_delay_interval_unit=_optional_enum(TimeUnit, payload.get("willDelayIntervalUnit")),
            response_topic=payload.get("responseTopic"),
            correlation_data=payload.get("correlationData"),
        )


@dataclass(frozen=True, slots=True)
class ConnectionConfiguration:
    """Connection settings persisted alongside the profile name."""

    url: str
    client_id: str
    username: str | None = None
    password_required: bool = False
    reject_unauthorized: bool = True
    client_credentials_id: str | None = None
    clean_start: bool = True
    keep_alive: int = 60
    keep_alive_unit: TimeUnit = TimeUnit.SECONDS
    connect_timeout: int = 30_000
    connect_timeout_unit: TimeUnit = TimeUnit.MILLISECONDS
    reconnect_period: int = 1_000
    reconnect_period_unit: TimeUnit = TimeUnit.MILLISECONDS
    mqtt_version: MqttVersion = MqttVersion.MQTT_5
    session_expiry_interval: int | None = 0
    session_expiry_interval_unit: TimeUnit | None = TimeUnit.SECONDS
    max_packet_size: int | None = 256
    max_packet_size_unit: DataSizeUnit | None = DataSizeUnit.MEGABYTE
    topic_alias_max: int | None = 0
    receive_max: int | None = 65_535
    request_response_info: bool | None = False
    last_will_msg: LastWillMessage | None = None
    user_properties: tuple[UserProperty, ...] | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "url": self.url,
            "rejectUnauthorized": self.reject_unauthorized,
            "clientCredentialsId": self.client_credentials_id,
            "clientId": self.client_id,
            "username": self.username,
            "passwordRequired": self.password_required,
            "cleanStart": self.clean_start,
            "keepAlive": self.keep_alive,
            "keepAliveUnit": self.keep_alive_unit.value,
            "connectTimeout": self.connect_timeout,
            "connectTimeoutUnit": self.connect_timeout_unit.value,
            "reconnectPeriod": self.reconnect_period,
            "reconnectPeriodUnit": self.reconnect_period_unit.value,
            "mqttVersion": int(self.mqtt_version),
            "sessionExpiryInterval": self.session_expiry_interval,
            "sessionExpiryIntervalUnit": _enum_value(self.session_expiry_interval_unit),
            "maxPacketSize": self.max_packet_size,
            "maxPacketSizeUnit": _enum_value(self.max_packet_size_unit),
            "topicAliasMax": self.topic_alias_max,
            "receiveMax": self.receive_max,
            "requestResponseInfo": self.request_response_info,
        }
        if self.last_will_msg is not None:
            payload["lastWillMsg"] = self.last_will_msg.to_payload()
        if self.user_properties:
            payload["userProperties"] = {
                "props": [{"k": prop.key, "v": prop.value} for prop in self.user_properties]
            }
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ConnectionConfiguration:
        last_will = payload.get("lastWillMsg")
        props = (payload.get("userProperties") or {}).get("props") or ()
        user_properties = tuple(
            UserProperty(key=str(entry["k"]), value=entry.get("v"))
            for entry in props
            if isinstance(entry, Mapping) and entry.get("k")
        )
        return cls(
            url=str(payload.get("url") or ""),
            client_id=str(payload.get("clientId") or ""),
            username=payload.get("username"),
            password_required=bool(payload.get("passwordRequired", False)),
            reject_unauthorized=bool(payload.get("rejectUnauthorized", True)),
            client_credentials_id=payload.get("clientCredentialsId"),
            clean_start=bool(payload.get("cleanStart", True)),
            keep_alive=int(payload.get("keepAlive", 60)),
            keep_alive_unit=TimeUnit(payload.get("keepAliveUnit") or TimeUnit.SECONDS.value),
            connect_timeout=int(payload.get("connectTimeout", 30_000)),
            connect_timeout_unit=TimeUnit(payload.get("connectTimeoutUnit") or TimeUnit.MILLISECONDS.value),
            reconnect_period=int(payload.get("reconnectPeriod", 1_000)),
            reconnect_period_unit=TimeUnit(payload.get("reconnectPeriodUnit") or TimeUnit.MILLISECONDS.value),
            mqtt_version=MqttVersion(int(payload.get("mqttVersion", 5))),
            session_expiry_interval=payload.get("sessionExpiryInterval"),
            session_expiry_interval_unit=_optional_enum(TimeUnit, payload.get("sessionExpiryIntervalUnit")),
            max_packet_size=payload.get("maxPacketSize"),
            max_packet_size_unit=_optional_enum(DataSizeUnit, payload.get("maxPacketSizeUnit")),
            topic_alias_max=payload.get("topicAliasMax"),
            receive_max=payload.get("receiveMax"),
            request_response_info=payload.get("requestResponseInfo"),
            last_will_msg=LastWillMessage.from_payload(last_will) if isinstance(last_will, Mapping) and last_will.get("topic") else None,
            user_properties=user_properties or None,
        )


@dataclass(frozen=True, slots=True)
class ConnectionProfile:
    """Fully assembled, persist-ready connection profile.

    The password itself never lives here; `configuration.password_required`
    only records that one was supplied.
    """

    name: str
    configuration: ConnectionConfiguration
    id: str | None = None
    user_id: str | None = None
    created_time: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "userId": self.user_id,
            "configuration": self.configuration.to_payload(),
        }
        if self.id is not None:
            payload["id"] = self.id
        if self.created_time is not None:
            payload["createdTime"] = self.created_time
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ConnectionProfile:
        return cls(
            name=str(payload["name"]),
            configuration=ConnectionConfiguration.from_payload(payload.get("configuration") or {}),
            id=_optional_str(payload.get("id")),
            user_id=_optional_str(payload.get("userId")),
            created_time=payload.get("createdTime"),
        )


def _enum_value(member: Enum | None) -> Any:
    return member.value if member is not None else None


def _optional_enum(enum_type: type[Enum], value: Any) -> Any:
    return enum_type(value) if value is not None else None


def _optional_str(value: Any) -> str | None:
    # Ids arrive either as plain strings or as {"id": "..."} wrappers.
    if isinstance(value, Mapping):
        value = value.get("id")
    return str(value) if value is not None else None


__all__ = [
    "ConnectionConfiguration",
    "ConnectionProfile",
    "CredentialMode",
    "CredentialReference",
    "DataSizeUnit",
    "FieldState",
    "LastWillMessage",
    "MqttVersion",
    "PayloadType",
    "TimeUnit",
    "TransportType",
    "UserProperty",
]
