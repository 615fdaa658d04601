"""Last-will encoding into the persisted profile representation."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping

from .models import LastWillMessage, PayloadType, TimeUnit


@dataclass(frozen=True, slots=True)
class LastWillInput:
    """Raw last-will values as entered in the wizard."""

    topic: str | None = None
    payload: Any = None
    qos: int = 0
    retain: bool = False
    payload_format_indicator: bool | None = None
    content_type: str | None = None
    msg_expiry_interval: int | None = None
    msg_expiry_interval_unit: TimeUnit | None = None
    will_delay_interval: int | None = None
    will_delay_interval_unit: TimeUnit | None = None
    response_topic: str | None = None
    correlation_data: str | None = None

    @classmethod
    def from_message(cls, message: LastWillMessage) -> LastWillInput:
        """Hydrate editable input from a stored last-will entry."""

        payload: Any = message.payload
        if message.payload_type is PayloadType.JSON and message.payload:
            payload = json.loads(message.payload)
        return cls(
            topic=message.topic,
            payload=payload,
            qos=message.qos,
            retain=message.retain,
            payload_format_indicator=message.payload_format_indicator,
            content_type=message.content_type,
            msg_expiry_interval=message.msg_expiry_interval,
            msg_expiry_interval_unit=message.msg_expiry_interval_unit,
            will_delay_interval=message.will_delay_interval,
            will_delay_interval_unit=message.will_delay_interval_unit,
            response_topic=message.response_topic,
            correlation_data=message.correlation_data,
        )


def is_structured(payload: Any) -> bool:
    return isinstance(payload, (Mapping, list, tuple))


def encode_payload(payload: Any) -> tuple[str | None, PayloadType]:
    """Serialize structured payloads to compact JSON; pass strings through."""

    if is_structured(payload):
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False), PayloadType.JSON
    return payload, PayloadType.STRING


def encode_last_will(raw: LastWillInput | None) -> LastWillMessage | None:
    """Return the wire-ready last will, or None when the topic is empty."""

    if raw is None or not raw.topic:
        return None
    payload, payload_type = encode_payload(raw.payload)
    return LastWillMessage(
        topic=raw.topic,
        qos=raw.qos,
        retain=raw.retain,
        payload=payload,
        payload_type=payload_type,
        payload_format_indicator=raw.payload_format_indicator,
        content_type=raw.content_type,
        msg_expiry_interval=raw.msg_expiry_interval,
        msg_expiry_interval_unit=raw.msg_expiry_interval_unit,
        will_delay_interval=raw.will_delay_interval,
        will_delay_interval_unit=raw.will_delay_interval_unit,
        response_topic=raw.response_topic,
        correlation_data=raw.correlation_data,
    )


__all__ = ["LastWillInput", "encode_last_will", "encode_payload", "is_structured"]
