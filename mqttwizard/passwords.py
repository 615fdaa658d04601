"""Password strength validation against an administrator-defined policy."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable

from pydantic import BaseModel, ConfigDict, Field

from .errors import PasswordChangeBlockedError, PolicyFetchError

if TYPE_CHECKING:
    from .stores import PasswordPolicySource

LOG = logging.getLogger(__name__)

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d", re.ASCII)
_SPECIAL = re.compile(r"[\W_]", re.ASCII)
_WHITESPACE = re.compile(r"\s", re.ASCII)

MIN_POLICY_LENGTH = 6
MAX_POLICY_MINIMUM_LENGTH = 50


class PasswordPolicy(BaseModel):
    """Password policy as configured by an administrator."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    minimum_length: int | None = Field(default=None, alias="minimumLength")
    maximum_length: int | None = Field(default=None, alias="maximumLength")
    minimum_uppercase_letters: int | None = Field(default=None, alias="minimumUppercaseLetters")
    minimum_lowercase_letters: int | None = Field(default=None, alias="minimumLowercaseLetters")
    minimum_digits: int | None = Field(default=None, alias="minimumDigits")
    minimum_special_characters: int | None = Field(default=None, alias="minimumSpecialCharacters")
    allow_whitespaces: bool = Field(default=False, alias="allowWhitespaces")
    force_user_to_reset_password_if_not_valid: bool = Field(
        default=False, alias="forceUserToResetPasswordIfNotValid"
    )
    password_expiration_period_days: int | None = Field(default=None, alias="passwordExpirationPeriodDays")
    password_reuse_frequency_days: int | None = Field(default=None, alias="passwordReuseFrequencyDays")


class Violation(str, Enum):
    """Rule names reported back to the password form."""

    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    NOT_UPPER_CASE = "notUpperCase"
    NOT_LOWER_CASE = "notLowerCase"
    NOT_NUMERIC = "notNumeric"
    NOT_SPECIAL = "notSpecial"
    HAS_WHITESPACES = "hasWhitespaces"
    SAME_PASSWORD = "samePassword"
    DIFFERENCE_PASSWORD = "differencePassword"
    ALREADY_USED = "alreadyUsed"


@dataclass(frozen=True, slots=True)
class ValidationReport:
    """Outcome of a validation pass.

    An evaluated report with no violations is distinct from NOT_EVALUATED.
    """

    violations: frozenset[Violation] = frozenset()
    evaluated: bool = True

    @property
    def ok(self) -> bool:
        return self.evaluated and not self.violations

    def __contains__(self, item: object) -> bool:
        return item in self.violations

    def merged(self, other: Iterable[Violation]) -> ValidationReport:
        return ValidationReport(self.violations | frozenset(other), evaluated=self.evaluated)


NOT_EVALUATED = ValidationReport(frozenset(), evaluated=False)


def validate_password(password: str, policy: PasswordPolicy) -> ValidationReport:
    """Evaluate every policy rule independently and report all violations."""

    violations: set[Violation] = set()
    if not _has_at_least(_UPPER, password, policy.minimum_uppercase_letters):
        violations.add(Violation.NOT_UPPER_CASE)
    if not _has_at_least(_LOWER, password, policy.minimum_lowercase_letters):
        violations.add(Violation.NOT_LOWER_CASE)
    if not _has_at_least(_DIGIT, password, policy.minimum_digits):
        violations.add(Violation.NOT_NUMERIC)
    if not _has_at_least(_SPECIAL, password, policy.minimum_special_characters):
        violations.add(Violation.NOT_SPECIAL)
    if not policy.allow_whitespaces and _WHITESPACE.search(password):
        violations.add(Violation.HAS_WHITESPACES)
    if (policy.minimum_length or 0) > 0 and len(password) < policy.minimum_length:
        violations.add(Violation.MIN_LENGTH)
    # An empty password always fails, whatever the configured maximum.
    maximum = policy.maximum_length or 0
    if not password or (maximum > 0 and len(password) > maximum):
        violations.add(Violation.MAX_LENGTH)
    return ValidationReport(frozenset(violations))


def differs_from_current(new_password: str, current_password: str) -> ValidationReport:
    if new_password == current_password:
        return ValidationReport(frozenset({Violation.SAME_PASSWORD}))
    return ValidationReport()


def matches_confirmation(confirmation: str, new_password: str) -> ValidationReport:
    if confirmation != new_password:
        return ValidationReport(frozenset({Violation.DIFFERENCE_PASSWORD}))
    return ValidationReport()


def validate_policy_settings(policy: PasswordPolicy) -> dict[str, str]:
    """Check an administrator-edited policy; returns field -> problem."""

    problems: dict[str, str] = {}
    minimum = policy.minimum_length
    if minimum is None:
        problems["minimumLength"] = "required"
    elif not MIN_POLICY_LENGTH <= minimum <= MAX_POLICY_MINIMUM_LENGTH:
        problems["minimumLength"] = f"must be between {MIN_POLICY_LENGTH} and {MAX_POLICY_MINIMUM_LENGTH}"
    maximum = policy.maximum_length
    if maximum is not None:
        if maximum < MIN_POLICY_LENGTH:
            problems["maximumLength"] = f"must be at least {MIN_POLICY_LENGTH}"
        elif minimum is not None and maximum < minimum:
            problems["maximumLength"] = "must not be less than minimumLength"
    non_negative = {
        "minimumUppercaseLetters": policy.minimum_uppercase_letters,
        "minimumLowercaseLetters": policy.minimum_lowercase_letters,
        "minimumDigits": policy.minimum_digits,
        "minimumSpecialCharacters": policy.minimum_special_characters,
        "passwordExpirationPeriodDays": policy.password_expiration_period_days,
        "passwordReuseFrequencyDays": policy.password_reuse_frequency_days,
    }
    for name, value in non_negative.items():
        if value is not None and value < 0:
            problems[name] = "must not be negative"
    return problems


@dataclass(frozen=True, slots=True)
class PasswordChangeReport:
    """Per-field reports for the current/new/confirmation inputs."""

    current_password: ValidationReport
    new_password: ValidationReport
    confirmation: ValidationReport

    @property
    def ok(self) -> bool:
        return all(
            report.ok or (not report.evaluated and not report.violations)
            for report in (self.current_password, self.new_password, self.confirmation)
        )


class PasswordChangeSession:
    """Owns the lazily fetched policy for one password-editing session."""

    def __init__(self, source: PasswordPolicySource) -> None:
        self._source = source
        self._policy: PasswordPolicy | None = None
        self._last_error: PolicyFetchError | None = None

    @property
    def policy(self) -> PasswordPolicy | None:
        return self._policy

    @property
    def policy_loaded(self) -> bool:
        return self._policy is not None

    @property
    def last_error(self) -> PolicyFetchError | None:
        return self._last_error

    async def ensure_policy(self) -> PasswordPolicy | None:
        """Fetch the policy once; failures are retried on the next attempt."""

        if self._policy is not None:
            return self._policy
        try:
            self._policy = await self._load()
        except PolicyFetchError as exc:
            LOG.warning("Password policy unavailable, deferring validation: %s", exc)
            self._last_error = exc
            return None
        self._last_error = None
        return self._policy

    async def reload(self) -> PasswordPolicy | None:
        """Fetch the policy again, keeping the cached one if the fetch fails."""

        previous, self._policy = self._policy, None
        policy = await self.ensure_policy()
        if policy is None:
            self._policy = previous
        return self._policy

    async def check(self, current_password: str, new_password: str, confirmation: str) -> PasswordChangeReport:
        """Validate a password change; policy rules are deferred until a policy loads."""

        policy = await self.ensure_policy()
        if policy is None:
            strength = NOT_EVALUATED
        else:
            strength = validate_password(new_password, policy)
        new_report = strength.merged(differs_from_current(new_password, current_password).violations)
        return PasswordChangeReport(
            current_password=ValidationReport(),
            new_password=new_report,
            confirmation=matches_confirmation(confirmation, new_password),
        )

    async def ensure_submittable(self, current_password: str, new_password: str, confirmation: str) -> PasswordChangeReport:
        """Like `check`, but refuses to proceed while no policy has ever loaded."""

        report = await self.check(current_password, new_password, confirmation)
        if not self.policy_loaded:
            raise PasswordChangeBlockedError("Password policy has not loaded yet.")
        return report

    async def interpret_rejection(self, message: str) -> PasswordChangeReport | None:
        """Map a server-side rejection onto field violations.

        Returns None for messages the form cannot attribute to a field; the
        caller surfaces those as a generic notification.
        """

        if message == "Current password doesn't match!":
            return PasswordChangeReport(
                current_password=ValidationReport(frozenset({Violation.DIFFERENCE_PASSWORD})),
                new_password=ValidationReport(),
                confirmation=ValidationReport(),
            )
        if message.startswith("Password must"):
            LOG.info("Server rejected password against a newer policy; reloading")
            await self.reload()
            return PasswordChangeReport(
                current_password=ValidationReport(),
                new_password=NOT_EVALUATED,
                confirmation=ValidationReport(),
            )
        if message.startswith("Password was already used"):
            return PasswordChangeReport(
                current_password=ValidationReport(),
                new_password=ValidationReport(frozenset({Violation.ALREADY_USED})),
                confirmation=ValidationReport(),
            )
        return None

    async def _load(self) -> PasswordPolicy:
        LOG.debug("Fetching password policy")
        try:
            return await self._source.get()
        except PolicyFetchError:
            raise
        except Exception as exc:
            raise PolicyFetchError(f"Failed to load password policy: {exc}") from exc


def _has_at_least(pattern: re.Pattern[str], value: str, minimum: int | None) -> bool:
    if not minimum or minimum <= 0:
        return True
    return len(pattern.findall(value)) >= minimum


__all__ = [
    "NOT_EVALUATED",
    "PasswordChangeReport",
    "PasswordChangeSession",
    "PasswordPolicy",
    "ValidationReport",
    "Violation",
    "differs_from_current",
    "matches_confirmation",
    "validate_password",
    "validate_policy_settings",
]
