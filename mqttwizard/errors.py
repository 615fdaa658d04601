"""Error taxonomy shared by the wizard, assembler and collaborators."""

from __future__ import annotations


class WizardError(RuntimeError):
    """Base error for connection profile synthesis failures."""


class StructuralValidationError(WizardError):
    """Raised when a step holds a missing or out-of-bounds field."""

    def __init__(self, step: int, field: str, reason: str) -> None:
        super().__init__(f"Step {step}: field '{field}' {reason}")
        self.step = step
        self.field = field
        self.reason = reason


class CredentialIssuanceError(WizardError):
    """Raised when the credential store cannot issue AUTO-mode credentials."""


class PersistenceError(WizardError):
    """Raised when the profile store rejects or fails a save."""

    def __init__(self, message: str, *, step: int = 0) -> None:
        super().__init__(message)
        self.step = step


class PolicyFetchError(WizardError):
    """Raised when the password policy cannot be loaded."""


class PasswordChangeBlockedError(WizardError):
    """Raised when a password change is submitted before any policy has loaded."""


class CollaboratorError(WizardError):
    """Raised by HTTP collaborators on transport failures or non-2xx responses."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "CollaboratorError",
    "CredentialIssuanceError",
    "PasswordChangeBlockedError",
    "PersistenceError",
    "PolicyFetchError",
    "StructuralValidationError",
    "WizardError",
]
