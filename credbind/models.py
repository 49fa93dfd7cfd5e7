"""Core data model for scoped credential bindings.

Example:
    >>> binding = Binding(variable="AUTH", credentials_id="deploy", type="usernameColonPasswordBase64")
    >>> scope = ScopeContext(consumer_id="release-pipeline", run_number=7)
    >>> scope.scope_id
    'release-pipeline#7'
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from credbind.exceptions import DuplicateVariableError

VARIABLE_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Capability(StrEnum):
    """Field sets a credential type exposes."""

    USERNAME_PASSWORD = "username_password"
    SECRET_TEXT = "secret_text"


@dataclass(frozen=True, slots=True)
class CredentialRef:
    """Opaque credential id plus the capabilities the binding accepts."""

    credential_id: str
    capabilities: frozenset[Capability]


class Binding(BaseModel):
    """Declared mapping from a variable name to a credential and a transform.

    Attributes:
        variable: Base environment variable name, unique within a scope.
        credentials_id: Id of the credential in the store.
        type: Binding type identifier registered in the BindingRegistry.
        options: Transform options (e.g. suffix names for multi-variable types).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    variable: str = Field(..., description="Environment variable name")
    credentials_id: str = Field(..., min_length=1, alias="credentialsId")
    type: str = Field(default="usernameColonPasswordBase64", description="Binding type")
    options: dict[str, str] = Field(default_factory=dict)

    @field_validator("variable")
    @classmethod
    def validate_variable(cls, value: str) -> str:
        if not VARIABLE_PATTERN.match(value):
            raise ValueError(f"Invalid environment variable name: {value!r}")
        return value


@dataclass(frozen=True, slots=True)
class UsageRecord:
    """Fact that a credential was consumed by one run of a consumer."""

    credential_id: str
    consumer_id: str
    run_number: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class ScopeContext:
    """One bounded execution (e.g. one build of a job).

    Attributes:
        consumer_id: Stable name of the consumer (job full name).
        run_number: Ordinal of this execution of the consumer.
        workspace: Working directory, for binding types that need one.
        recorded_usage: Usage triples already emitted for this scope instance.
    """

    consumer_id: str
    run_number: int
    workspace: Path | None = None
    recorded_usage: set[tuple[str, str, str]] = field(default_factory=set, repr=False)

    @property
    def scope_id(self) -> str:
        return f"{self.consumer_id}#{self.run_number}"


class ExposedSecret:
    """A value exposed to a scope, held in a wipeable buffer.

    ``str()`` and ``repr()`` never show the value; use ``reveal()``.
    """

    __slots__ = ("_buffer", "_wiped")

    def __init__(self, value: str) -> None:
        self._buffer = bytearray(value.encode("utf-8"))
        self._wiped = False

    def reveal(self) -> str:
        if self._wiped:
            raise ValueError("Secret has been wiped")
        return self._buffer.decode("utf-8")

    @property
    def wiped(self) -> bool:
        return self._wiped

    def wipe(self) -> None:
        """Zero the buffer in place."""
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._buffer = bytearray()
        self._wiped = True

    def __len__(self) -> int:
        return len(self._buffer)

    def __repr__(self) -> str:
        return "ExposedSecret('****')"

    __str__ = __repr__


class ScopeBindingSet:
    """Resolved variables for one scope, plus the strings to mask.

    Created by ``ScopeBinder.bind`` and destroyed with ``wipe()`` when the
    scope exits.
    """

    def __init__(self, scope_id: str) -> None:
        self.scope_id = scope_id
        self._values: dict[str, ExposedSecret] = {}
        # Credential fields the exposed values were derived from
        self._masked: list[ExposedSecret] = []
        self._credential_ids: list[str] = []
        # Usage tracking problems; never fatal to the scope
        self.warnings: list[str] = []

    def add(self, variable: str, value: str) -> None:
        if variable in self._values:
            raise DuplicateVariableError(variable)
        self._values[variable] = ExposedSecret(value)

    def add_mask(self, value: str) -> None:
        """Mask a value in scope output without binding it to a variable."""
        if value:
            self._masked.append(ExposedSecret(value))

    def add_credential(self, credential_id: str) -> None:
        if credential_id not in self._credential_ids:
            self._credential_ids.append(credential_id)

    @property
    def credential_ids(self) -> tuple[str, ...]:
        return tuple(self._credential_ids)

    @property
    def sensitive_variables(self) -> list[str]:
        """Variable names whose values must be treated as secret."""
        return sorted(self._values)

    @property
    def secret_values(self) -> frozenset[str]:
        """Every non-empty raw value that needs masking."""
        secrets = [*self._values.values(), *self._masked]
        return frozenset(secret.reveal() for secret in secrets if not secret.wiped and len(secret))

    def environment(self) -> dict[str, str]:
        return {name: secret.reveal() for name, secret in self._values.items()}

    @property
    def wiped(self) -> bool:
        return not self._values and not self._masked and not self._credential_ids

    def wipe(self) -> None:
        """Zero and drop every bound value. Safe to call more than once."""
        for secret in [*self._values.values(), *self._masked]:
            secret.wipe()
        self._values.clear()
        self._masked.clear()
        self._credential_ids.clear()

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, variable: object) -> bool:
        return variable in self._values

    def __repr__(self) -> str:
        return f"ScopeBindingSet(scope_id={self.scope_id!r}, variables={self.sensitive_variables!r})"
