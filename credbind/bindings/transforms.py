"""Credential transforms: resolved credential fields to exposed values.

A transform is any object with a ``required_fields`` tuple and a
``transform(resolved, config)`` method returning an ordered list of
``ExposedValue``. A value with ``suffix=None`` is bound to the binding's
variable itself; a suffixed value is bound to ``f"{variable}_{suffix}"``.

Transforms are pure and deterministic. They never cache across scopes.
"""

from __future__ import annotations

import base64
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import NamedTuple, Protocol

from credbind.credentials.models import ResolvedCredential
from credbind.exceptions import IncompleteCredentialError, TransformFailureError


class ExposedValue(NamedTuple):
    """One value produced by a transform."""

    suffix: str | None
    value: str


@dataclass(frozen=True)
class TransformConfig:
    """Per-binding transform options, taken from ``Binding.options``."""

    options: Mapping[str, str] = field(default_factory=dict)

    def get(self, name: str, default: str) -> str:
        return self.options.get(name, default)


class CredentialTransform(Protocol):
    """Fixed interface every binding type implements."""

    required_fields: tuple[str, ...]

    def transform(self, resolved: ResolvedCredential, config: TransformConfig) -> list[ExposedValue]:
        """Produce the exposed values.

        Raises:
            IncompleteCredentialError: A required field is absent
            TransformFailureError: The fields cannot be encoded
        """
        ...


def require_fields(resolved: ResolvedCredential, fields: tuple[str, ...]) -> dict[str, str]:
    """Return the requested fields, or raise IncompleteCredentialError."""
    missing = [name for name in fields if not resolved.has(name)]
    if missing:
        raise IncompleteCredentialError(
            f"Credential has no {', '.join(missing)}",
            reference=resolved.credential_id,
        )
    return {name: resolved.get(name) or "" for name in fields}


def encode_utf8(text: str, credential_id: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as e:
        # e.object holds the secret, so only report the position
        raise TransformFailureError(
            f"Credential value is not valid UTF-8 text (position {e.start})",
            reference=credential_id,
        ) from None


class UsernameColonPasswordBase64:
    """Standard base64 of ``username:password``, as used in HTTP Basic auth.

    The ``:`` separator is not escaped: ``user`` + ``pa:ss`` and ``user:pa``
    + ``ss`` encode to the same value. Consumers of the encoded value rely on
    this exact format.
    """

    required_fields = ("username", "password")

    def transform(self, resolved: ResolvedCredential, config: TransformConfig) -> list[ExposedValue]:
        fields = require_fields(resolved, self.required_fields)
        raw = encode_utf8(f"{fields['username']}:{fields['password']}", resolved.credential_id)
        return [ExposedValue(None, base64.b64encode(raw).decode("ascii"))]


class UsernameColonPassword:
    """Plain ``username:password``."""

    required_fields = ("username", "password")

    def transform(self, resolved: ResolvedCredential, config: TransformConfig) -> list[ExposedValue]:
        fields = require_fields(resolved, self.required_fields)
        value = f"{fields['username']}:{fields['password']}"
        encode_utf8(value, resolved.credential_id)
        return [ExposedValue(None, value)]


class UsernamePasswordMulti:
    """Username and password as two variables.

    Options:
        username_suffix: Suffix of the username variable (default ``USERNAME``)
        password_suffix: Suffix of the password variable (default ``PASSWORD``)
    """

    required_fields = ("username", "password")

    def transform(self, resolved: ResolvedCredential, config: TransformConfig) -> list[ExposedValue]:
        fields = require_fields(resolved, self.required_fields)
        for name in self.required_fields:
            encode_utf8(fields[name], resolved.credential_id)
        return [
            ExposedValue(config.get("username_suffix", "USERNAME"), fields["username"]),
            ExposedValue(config.get("password_suffix", "PASSWORD"), fields["password"]),
        ]


class SecretText:
    """The secret text itself."""

    required_fields = ("secret",)

    def transform(self, resolved: ResolvedCredential, config: TransformConfig) -> list[ExposedValue]:
        fields = require_fields(resolved, self.required_fields)
        encode_utf8(fields["secret"], resolved.credential_id)
        return [ExposedValue(None, fields["secret"])]
