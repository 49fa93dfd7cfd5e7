"""Credential types returned by credential stores.

Credentials are pydantic models with their secret fields held as
``SecretStr`` so they never leak through ``repr`` or serialization. A
binding never works on these models directly: it asks for a
``ResolvedCredential`` holding only the fields its transform needs, for the
lifetime of one scope.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from credbind.models import Capability

__all__ = [
    "CREDENTIAL_TYPES",
    "MASKED_FIELDS",
    "Capability",
    "Credential",
    "ResolvedCredential",
    "SecretTextCredential",
    "UsernamePasswordCredential",
]


class Credential(BaseModel, ABC):
    """Base credential stored under an id.

    Abstract: stores build one of the subclasses in ``CREDENTIAL_TYPES``.
    """

    model_config = ConfigDict(frozen=True)

    capability: ClassVar[Capability]

    id: str = Field(..., min_length=1, description="Credential id")
    description: str = Field(default="", description="Human-readable description")

    @abstractmethod
    def secret_fields(self) -> dict[str, str | None]:
        """Return the plaintext fields this credential can expose."""

    def materialize(self, required_fields: tuple[str, ...]) -> ResolvedCredential:
        """Copy the requested fields into a scope-owned ResolvedCredential.

        Missing fields are materialized as None; the transform decides
        whether that is fatal.
        """
        available = self.secret_fields()
        return ResolvedCredential(
            credential_id=self.id,
            capability=self.capability,
            fields={name: available.get(name) for name in required_fields},
        )


class UsernamePasswordCredential(Credential):
    """Username with a password."""

    capability: ClassVar[Capability] = Capability.USERNAME_PASSWORD

    username: str | None = Field(default=None)
    password: SecretStr | None = Field(default=None)

    def secret_fields(self) -> dict[str, str | None]:
        return {
            "username": self.username,
            "password": self.password.get_secret_value() if self.password is not None else None,
        }


class SecretTextCredential(Credential):
    """A single opaque secret string (API token, webhook secret...)."""

    capability: ClassVar[Capability] = Capability.SECRET_TEXT

    secret: SecretStr | None = Field(default=None)

    def secret_fields(self) -> dict[str, str | None]:
        return {"secret": self.secret.get_secret_value() if self.secret is not None else None}


CREDENTIAL_TYPES: dict[Capability, type[Credential]] = {
    Capability.USERNAME_PASSWORD: UsernamePasswordCredential,
    Capability.SECRET_TEXT: SecretTextCredential,
}

# Plaintext fields masked in scope output even when only a derived value is exposed
MASKED_FIELDS = frozenset({"password", "secret"})


class ResolvedCredential:
    """Secret fields materialized for one scope.

    Owned by the binder during resolution, never serialized. Call
    ``discard()`` once the transform has run.
    """

    __slots__ = ("credential_id", "capability", "_fields")

    def __init__(
        self,
        credential_id: str,
        capability: Capability,
        fields: dict[str, str | None],
    ) -> None:
        self.credential_id = credential_id
        self.capability = capability
        self._fields = dict(fields)

    def get(self, name: str) -> str | None:
        return self._fields.get(name)

    def has(self, name: str) -> bool:
        return self._fields.get(name) is not None

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(self._fields)

    def masked_values(self) -> list[str]:
        """Non-empty values of the fields listed in MASKED_FIELDS."""
        return [value for name, value in self._fields.items() if name in MASKED_FIELDS and value]

    def discard(self) -> None:
        """Drop every materialized field."""
        self._fields.clear()

    def __repr__(self) -> str:
        return (
            f"ResolvedCredential(credential_id={self.credential_id!r}, "
            f"capability={self.capability.value!r}, fields={list(self._fields)!r})"
        )
