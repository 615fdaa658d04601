"""Credential mode controller: AUTO, CUSTOM and EXISTING identity handling."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from .identifiers import IdentifierGenerator
from .models import ConnectionProfile, CredentialMode, CredentialReference, FieldState

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IdentityFields:
    """Identity inputs of the connection step plus the active credential mode."""

    mode: CredentialMode
    credentials_name: FieldState
    client_id: FieldState
    username: FieldState
    password: FieldState
    credential_reference: FieldState

    @property
    def password_required(self) -> bool:
        return self.password.required

    @property
    def reference(self) -> CredentialReference | None:
        return self.credential_reference.value


def initial_mode(editing: ConnectionProfile | None) -> CredentialMode:
    """AUTO for new profiles; EXISTING or CUSTOM depending on the edited profile."""

    if editing is None:
        return CredentialMode.AUTO
    if editing.configuration.client_credentials_id is not None:
        return CredentialMode.EXISTING
    return CredentialMode.CUSTOM


def initial_identity(
    generator: IdentifierGenerator,
    editing: ConnectionProfile | None = None,
) -> IdentityFields:
    """Build the identity fields for a fresh or hydrated draft."""

    configuration = editing.configuration if editing else None
    seed = IdentityFields(
        mode=CredentialMode.AUTO,
        credentials_name=FieldState(generator.credentials_name(), enabled=False, required=True),
        client_id=FieldState(
            configuration.client_id if configuration else generator.client_id(),
            enabled=False,
            required=True,
        ),
        username=FieldState(
            configuration.username if configuration else generator.username(),
            enabled=False,
        ),
        password=FieldState(None),
        credential_reference=FieldState(None),
    )
    return select_mode(seed, initial_mode(editing), generator, editing)


def select_mode(
    fields: IdentityFields,
    mode: CredentialMode,
    generator: IdentifierGenerator,
    editing: ConnectionProfile | None = None,
) -> IdentityFields:
    """Apply an explicit user mode selection."""

    LOG.debug("Credential mode %s -> %s", fields.mode.value, mode.value)
    if mode is CredentialMode.AUTO:
        updated = replace(
            fields,
            mode=mode,
            credentials_name=fields.credentials_name.lock(generator.credentials_name()),
            client_id=fields.client_id.lock(generator.client_id()),
            username=fields.username.lock(generator.username()),
            password=fields.password.lock(None),
            credential_reference=FieldState(None, required=False),
        )
    elif mode is CredentialMode.CUSTOM:
        configuration = editing.configuration if editing else None
        client_id = configuration.client_id if configuration and configuration.client_id else generator.client_id()
        username = configuration.username if configuration and configuration.username else None
        updated = replace(
            fields,
            mode=mode,
            client_id=fields.client_id.unlock(client_id),
            username=fields.username.unlock(username),
            password=fields.password.unlock(None),
            credential_reference=FieldState(None, required=False),
        )
    else:
        updated = replace(
            fields,
            mode=mode,
            credentials_name=fields.credentials_name.unlock(),
            client_id=fields.client_id.lock(None),
            username=fields.username.lock(None),
            password=fields.password.unlock(None),
            credential_reference=fields.credential_reference.require(True),
        )
    return _recompute_password_requirement(updated)


def attach_reference(
    fields: IdentityFields,
    reference: CredentialReference | None,
    generator: IdentifierGenerator,
    editing: ConnectionProfile | None = None,
) -> IdentityFields:
    """React to a credential reference being attached or cleared."""

    updated = replace(fields, credential_reference=fields.credential_reference.set(reference))
    if reference is not None:
        configuration = editing.configuration if editing else None
        client_id = reference.client_id or (configuration.client_id if configuration else None) or generator.client_id()
        client_field = updated.client_id.set(client_id)
        client_field = client_field.lock() if reference.client_id else client_field.unlock()
        updated = replace(
            updated,
            client_id=client_field,
            username=updated.username.set(reference.user_name),
            password=updated.password.set(None),
        )
        LOG.debug("Attached credential reference %s", reference.id)
    return _recompute_password_requirement(updated)


def regenerate(fields: IdentityFields, field: str, generator: IdentifierGenerator) -> IdentityFields:
    """Replace one generated identity value with a fresh one."""

    if field == "credentials_name":
        return replace(fields, credentials_name=fields.credentials_name.set(generator.credentials_name()))
    if field == "client_id":
        return replace(fields, client_id=fields.client_id.set(generator.client_id()))
    if field == "username":
        return replace(fields, username=fields.username.set(generator.username()))
    raise ValueError(f"Field '{field}' cannot be regenerated.")


def _recompute_password_requirement(fields: IdentityFields) -> IdentityFields:
    reference = fields.reference
    required = reference is not None and reference.has_password
    if fields.password.required == required:
        return fields
    return replace(fields, password=fields.password.require(required))


__all__ = [
    "IdentityFields",
    "attach_reference",
    "initial_identity",
    "initial_mode",
    "regenerate",
    "select_mode",
]
