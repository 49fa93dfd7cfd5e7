"""Binding types: credential transforms and the registry that names them."""

from credbind.bindings.registry import (
    BUILTIN_BINDINGS,
    BindingDescriptor,
    BindingRegistry,
    create_builtin_registry,
    get_default_registry,
)
from credbind.bindings.transforms import (
    CredentialTransform,
    ExposedValue,
    SecretText,
    TransformConfig,
    UsernameColonPassword,
    UsernameColonPasswordBase64,
    UsernamePasswordMulti,
)

__all__ = [
    "BUILTIN_BINDINGS",
    "BindingDescriptor",
    "BindingRegistry",
    "CredentialTransform",
    "ExposedValue",
    "SecretText",
    "TransformConfig",
    "UsernameColonPassword",
    "UsernameColonPasswordBase64",
    "UsernamePasswordMulti",
    "create_builtin_registry",
    "get_default_registry",
]
