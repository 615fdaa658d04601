"""Profile assembler: validates a draft and merges it into a connection profile."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any

from .errors import CredentialIssuanceError, PersistenceError, StructuralValidationError
from .identifiers import IdentifierGenerator
from .lastwill import LastWillInput, encode_last_will
from .models import (
    ConnectionConfiguration,
    ConnectionProfile,
    CredentialMode,
    CredentialReference,
    FieldState,
    UserProperty,
)
from .protocol import supports_version5_properties
from .stores import CredentialStore, ProfileStore, UserContext
from .units import FieldFamily, max_value, within_bounds
from .wizard import ProfileDraft, WizardStep

LOG = logging.getLogger(__name__)

MAX_QOS = 2
MAX_TWO_BYTE_INTEGER = 65_535


@dataclass(frozen=True, slots=True)
class AssemblyResult:
    """Assembled profile plus the password, which travels outside the profile."""

    profile: ConnectionProfile
    password: str | None = None


class ProfileAssembler:
    """Turns a completed draft into a persist-ready connection profile."""

    def __init__(
        self,
        credential_store: CredentialStore,
        profile_store: ProfileStore,
        user_context: UserContext,
        *,
        generator: IdentifierGenerator | None = None,
    ) -> None:
        self._credential_store = credential_store
        self._profile_store = profile_store
        self._user_context = user_context
        self._generator = generator or IdentifierGenerator()

    def validate(self, draft: ProfileDraft) -> None:
        """Run the structural checks of every step, raising on the first failure."""

        _validate_connection(draft)
        _validate_advanced(draft)
        _validate_last_will(draft)

    async def assemble(self, draft: ProfileDraft) -> AssemblyResult:
        """Validate, issue AUTO credentials if needed, and merge the draft."""

        self.validate(draft)
        reference = draft.connection.identity.reference
        if draft.credential_mode is CredentialMode.AUTO:
            reference = await self._issue_credentials(draft)
        profile = self._merge(draft, reference)
        password = draft.connection.identity.password.value or None
        return AssemblyResult(profile=profile, password=password)

    async def save(self, draft: ProfileDraft) -> AssemblyResult:
        """Assemble the draft and hand it to the profile store."""

        result = await self.assemble(draft)
        LOG.info("Saving connection profile '%s'", result.profile.name)
        try:
            saved = await self._profile_store.save(result.profile)
        except Exception as exc:
            raise PersistenceError(f"Failed to save connection '{result.profile.name}': {exc}") from exc
        return AssemblyResult(profile=saved, password=result.password)

    async def _issue_credentials(self, draft: ProfileDraft) -> CredentialReference:
        identity = draft.connection.identity
        name = _clean(identity.credentials_name.value)
        client_id = _clean(identity.client_id.value)
        username = _clean(identity.username.value)
        LOG.info("Issuing credentials '%s' for client '%s'", name, client_id)
        try:
            return await self._credential_store.issue(name, client_id, username)
        except Exception as exc:
            LOG.warning("Credential issuance failed for '%s': %s", name, exc)
            raise CredentialIssuanceError(f"Failed to issue credentials '{name}': {exc}") from exc

    def _merge(self, draft: ProfileDraft, reference: CredentialReference | None) -> ConnectionProfile:
        connection = draft.connection
        identity = connection.identity
        advanced = draft.advanced
        properties = advanced.properties
        editing = draft.editing
        client_id = (
            _clean(identity.client_id.value)
            or (editing.configuration.client_id if editing else None)
            or self._generator.client_id()
        )
        configuration = ConnectionConfiguration(
            url=_clean(connection.url.value),
            client_id=client_id,
            username=_clean(identity.username.value),
            password_required=bool(_clean(identity.password.value)),
            reject_unauthorized=bool(connection.reject_unauthorized.value),
            client_credentials_id=reference.id if reference is not None else None,
            clean_start=bool(advanced.clean_start.value),
            keep_alive=advanced.keep_alive.value,
            keep_alive_unit=advanced.keep_alive_unit.value,
            connect_timeout=advanced.connect_timeout.value,
            connect_timeout_unit=advanced.connect_timeout_unit.value,
            reconnect_period=advanced.reconnect_period.value,
            reconnect_period_unit=advanced.reconnect_period_unit.value,
            mqtt_version=advanced.mqtt_version,
            session_expiry_interval=properties.session_expiry_interval.value,
            session_expiry_interval_unit=properties.session_expiry_interval_unit.value,
            max_packet_size=properties.max_packet_size.value,
            max_packet_size_unit=properties.max_packet_size_unit.value,
            topic_alias_max=properties.topic_alias_max.value,
            receive_max=properties.receive_max.value,
            request_response_info=properties.request_response_info.value,
            last_will_msg=encode_last_will(_trim_last_will(draft)),
            user_properties=_user_properties(draft.user_properties.properties),
        )
        if editing is not None:
            return ConnectionProfile(
                name=_clean(connection.name.value),
                configuration=configuration,
                id=editing.id,
                user_id=editing.user_id,
                created_time=editing.created_time,
            )
        return ConnectionProfile(
            name=_clean(connection.name.value),
            configuration=configuration,
            user_id=self._user_context.user_id(),
        )


def _validate_connection(draft: ProfileDraft) -> None:
    step = WizardStep.CONNECTION
    connection = draft.connection
    identity = connection.identity
    _require(step, "name", connection.name)
    _require(step, "url", connection.url)
    if identity.mode is CredentialMode.AUTO:
        _require(step, "credentials_name", identity.credentials_name, force=True)
        _require(step, "client_id", identity.client_id, force=True)
    else:
        _require(step, "client_id", identity.client_id)
        _require(step, "password", identity.password)
    if identity.mode is CredentialMode.EXISTING and identity.reference is None:
        raise StructuralValidationError(step, "credential_reference", "is required")


def _validate_advanced(draft: ProfileDraft) -> None:
    step = WizardStep.ADVANCED
    advanced = draft.advanced
    keep_alive = _require_int(step, "keep_alive", advanced.keep_alive)
    _check_family(step, "keep_alive", FieldFamily.KEEP_ALIVE, keep_alive, advanced.keep_alive_unit.value)
    for name in ("connect_timeout", "reconnect_period"):
        value = _require_int(step, name, getattr(advanced, name))
        if value < 0:
            raise StructuralValidationError(step, name, "must not be negative")
    if not supports_version5_properties(advanced.mqtt_version):
        return
    properties = advanced.properties
    session_expiry = _require_int(step, "session_expiry_interval", properties.session_expiry_interval)
    _check_family(
        step,
        "session_expiry_interval",
        FieldFamily.SESSION_EXPIRY_INTERVAL,
        session_expiry,
        properties.session_expiry_interval_unit.value,
    )
    packet_size = _require_int(step, "max_packet_size", properties.max_packet_size)
    _check_family(
        step,
        "max_packet_size",
        FieldFamily.MAX_PACKET_SIZE,
        packet_size,
        properties.max_packet_size_unit.value,
    )
    topic_alias_max = _require_int(step, "topic_alias_max", properties.topic_alias_max)
    if not 0 <= topic_alias_max <= MAX_TWO_BYTE_INTEGER:
        raise StructuralValidationError(step, "topic_alias_max", f"must be between 0 and {MAX_TWO_BYTE_INTEGER}")
    receive_max = _require_int(step, "receive_max", properties.receive_max)
    if not 1 <= receive_max <= MAX_TWO_BYTE_INTEGER:
        raise StructuralValidationError(step, "receive_max", f"must be between 1 and {MAX_TWO_BYTE_INTEGER}")


def _validate_last_will(draft: ProfileDraft) -> None:
    step = WizardStep.LAST_WILL
    last_will = draft.last_will.last_will
    if last_will is None or not _clean(last_will.topic):
        return
    if not 0 <= last_will.qos <= MAX_QOS:
        raise StructuralValidationError(step, "qos", f"must be between 0 and {MAX_QOS}")
    for name in ("msg_expiry_interval", "will_delay_interval"):
        value = getattr(last_will, name)
        if value is not None and value < 0:
            raise StructuralValidationError(step, name, "must not be negative")


def _require(step: WizardStep, name: str, state: FieldState, *, force: bool = False) -> None:
    """Fail when an enabled (or forced) required field holds no value."""

    if not (force or (state.enabled and state.required)):
        return
    value = state.value
    if value is None or (isinstance(value, str) and not value.strip()):
        raise StructuralValidationError(step, name, "is required")


def _require_int(step: WizardStep, name: str, state: FieldState) -> int:
    _require(step, name, state, force=True)
    value = state.value
    if isinstance(value, bool) or not isinstance(value, int):
        raise StructuralValidationError(step, name, "must be a whole number")
    return value


def _check_family(step: WizardStep, name: str, family: FieldFamily, value: int, unit: Any) -> None:
    if not within_bounds(family, value, unit):
        raise StructuralValidationError(step, name, f"must be between 0 and {max_value(family, unit)}")


def _trim_last_will(draft: ProfileDraft) -> LastWillInput | None:
    last_will = draft.last_will.last_will
    if last_will is None:
        return None
    return replace(
        last_will,
        topic=_clean(last_will.topic),
        payload=_clean(last_will.payload) if isinstance(last_will.payload, str) else last_will.payload,
        content_type=_clean(last_will.content_type),
        response_topic=_clean(last_will.response_topic),
        correlation_data=_clean(last_will.correlation_data),
    )


def _user_properties(entries: tuple[UserProperty, ...]) -> tuple[UserProperty, ...] | None:
    kept = tuple(
        UserProperty(key=key, value=_clean(entry.value))
        for entry in entries
        if (key := _clean(entry.key))
    )
    return kept or None


def _clean(value: Any) -> Any:
    """Trim strings; leave anything else untouched."""

    if isinstance(value, str):
        return value.strip()
    return value


__all__ = ["AssemblyResult", "ProfileAssembler"]
