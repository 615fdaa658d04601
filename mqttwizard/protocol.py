"""Protocol version gate for MQTT 5 only properties."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace

from .models import ConnectionConfiguration, DataSizeUnit, FieldState, MqttVersion, TimeUnit

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Version5Properties:
    """Properties that only exist for MQTT 5 connections."""

    session_expiry_interval: FieldState = FieldState(0)
    session_expiry_interval_unit: FieldState = FieldState(TimeUnit.SECONDS)
    max_packet_size: FieldState = FieldState(256)
    max_packet_size_unit: FieldState = FieldState(DataSizeUnit.MEGABYTE)
    topic_alias_max: FieldState = FieldState(0)
    receive_max: FieldState = FieldState(65_535)
    request_response_info: FieldState = FieldState(False)

    @classmethod
    def from_configuration(cls, configuration: ConnectionConfiguration) -> Version5Properties:
        defaults = cls()
        values = {}
        for item in fields(cls):
            stored = getattr(configuration, item.name)
            default: FieldState = getattr(defaults, item.name)
            values[item.name] = default.set(stored) if stored is not None else default
        return cls(**values)

    def names(self) -> tuple[str, ...]:
        return tuple(item.name for item in fields(self))

    def values(self) -> dict[str, object]:
        """Raw values, including those of disabled properties."""

        return {name: getattr(self, name).value for name in self.names()}

    @property
    def enabled(self) -> bool:
        return all(getattr(self, name).enabled for name in self.names())


def supports_version5_properties(version: MqttVersion | int) -> bool:
    return int(version) == MqttVersion.MQTT_5


def apply_protocol_version(properties: Version5Properties, version: MqttVersion | int) -> Version5Properties:
    """Enable every MQTT 5 property for version 5, disable all of them otherwise.

    Values are never touched, so toggling away from 5 and back restores the
    last-held values.
    """

    enable = supports_version5_properties(version)
    LOG.debug("Protocol version %s: MQTT 5 properties %s", int(version), "enabled" if enable else "disabled")
    updates = {}
    for name in properties.names():
        state: FieldState = getattr(properties, name)
        updates[name] = state.unlock() if enable else state.lock()
    return replace(properties, **updates)


__all__ = ["Version5Properties", "apply_protocol_version", "supports_version5_properties"]
