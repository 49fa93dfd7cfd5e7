"""Binding type registry.

Maps binding type identifiers to their transform, accepted credential
capabilities and workspace requirement. New binding types are added by
registering them here; the ScopeBinder never needs to change.

Example:
    Looking up a binding type::

        from credbind.bindings.registry import get_default_registry

        registry = get_default_registry()
        descriptor = registry.descriptor("usernameColonPasswordBase64")
        print(descriptor.display_name)

    Registering a custom binding type at startup::

        registry = BindingRegistry()
        registry.register(
            "token",
            SecretText(),
            frozenset({Capability.SECRET_TEXT}),
            display_name="Bearer token",
        )
        registry.freeze()
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from credbind.bindings.transforms import (
    CredentialTransform,
    SecretText,
    UsernameColonPassword,
    UsernameColonPasswordBase64,
    UsernamePasswordMulti,
)
from credbind.exceptions import BindingNotFoundError, ConfigurationError
from credbind.models import Capability

if TYPE_CHECKING:
    from collections.abc import Iterator


@dataclass(frozen=True, slots=True)
class BindingDescriptor:
    """Immutable description of a binding type.

    Attributes:
        binding_type: Identifier used in binding declarations.
        display_name: Human-readable name.
        transform: Transform producing the exposed values.
        accepted_capabilities: Credential capabilities this type accepts.
        requires_workspace: Whether the type needs the scope's workspace.
    """

    binding_type: str
    display_name: str
    transform: CredentialTransform
    accepted_capabilities: frozenset[Capability]
    requires_workspace: bool = False

    def accepts(self, capability: Capability) -> bool:
        return capability in self.accepted_capabilities


class BindingRegistry:
    """Table of binding types, populated once at startup and then frozen."""

    def __init__(self) -> None:
        self._descriptors: dict[str, BindingDescriptor] = {}
        self._frozen = False

    def register(
        self,
        binding_type: str,
        transform: CredentialTransform,
        accepted_capabilities: frozenset[Capability],
        *,
        display_name: str | None = None,
        requires_workspace: bool = False,
    ) -> BindingDescriptor:
        """Register a binding type.

        Raises:
            ConfigurationError: If the registry is frozen, the type is already
                registered, or it accepts no capability
        """
        if self._frozen:
            raise ConfigurationError(f"Cannot register '{binding_type}': registry is frozen")
        if binding_type in self._descriptors:
            raise ConfigurationError(f"Binding type already registered: {binding_type}")
        if not accepted_capabilities:
            raise ConfigurationError(f"Binding type '{binding_type}' must accept at least one capability")

        descriptor = BindingDescriptor(
            binding_type=binding_type,
            display_name=display_name or binding_type,
            transform=transform,
            accepted_capabilities=frozenset(accepted_capabilities),
            requires_workspace=requires_workspace,
        )
        self._descriptors[binding_type] = descriptor
        return descriptor

    def freeze(self) -> None:
        """Disallow further registration."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def descriptor(self, binding_type: str) -> BindingDescriptor:
        """Return the descriptor of a binding type.

        Raises:
            BindingNotFoundError: If the type is not registered
        """
        try:
            return self._descriptors[binding_type]
        except KeyError:
            known = ", ".join(sorted(self._descriptors)) or "none"
            raise BindingNotFoundError(
                f"Unknown binding type: {binding_type}",
                suggestion=f"Registered types: {known}",
            ) from None

    def resolve_transform(self, binding_type: str) -> CredentialTransform:
        return self.descriptor(binding_type).transform

    def requires_workspace(self, binding_type: str) -> bool:
        return self.descriptor(binding_type).requires_workspace

    def accepts(self, binding_type: str, capability: Capability) -> bool:
        return self.descriptor(binding_type).accepts(capability)

    def list_descriptors(self) -> list[BindingDescriptor]:
        return [self._descriptors[name] for name in sorted(self._descriptors)]

    def __contains__(self, binding_type: object) -> bool:
        return binding_type in self._descriptors

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._descriptors))

    def __len__(self) -> int:
        return len(self._descriptors)


USERNAME_PASSWORD = frozenset({Capability.USERNAME_PASSWORD})
SECRET_TEXT = frozenset({Capability.SECRET_TEXT})

# binding type -> (transform, accepted capabilities, display name)
BUILTIN_BINDINGS: dict[str, tuple[CredentialTransform, frozenset[Capability], str]] = {
    "usernameColonPasswordBase64": (
        UsernameColonPasswordBase64(),
        USERNAME_PASSWORD,
        "Username and password (base64 of username:password)",
    ),
    "usernameColonPassword": (
        UsernameColonPassword(),
        USERNAME_PASSWORD,
        "Username and password (conjoined)",
    ),
    "usernamePassword": (
        UsernamePasswordMulti(),
        USERNAME_PASSWORD,
        "Username and password (separated)",
    ),
    "string": (SecretText(), SECRET_TEXT, "Secret text"),
}


def create_builtin_registry(freeze: bool = True) -> BindingRegistry:
    """Build a registry holding the built-in binding types."""
    registry = BindingRegistry()
    for binding_type, (transform, accepted, display_name) in BUILTIN_BINDINGS.items():
        registry.register(binding_type, transform, accepted, display_name=display_name)
    if freeze:
        registry.freeze()
    return registry


_default_registry: BindingRegistry | None = None
_default_registry_lock = threading.Lock()


def get_default_registry() -> BindingRegistry:
    """Get the process-wide registry of built-in binding types."""
    global _default_registry
    with _default_registry_lock:
        if _default_registry is None:
            _default_registry = create_builtin_registry()
        return _default_registry
