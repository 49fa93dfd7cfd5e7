"""credbind: scoped credential binding with secret masking.

Resolve credentials into environment variables for one execution scope,
mask every exposed value in the scope's output, and record which runs used
which credentials.

Example:
    >>> from credbind import Binding, InMemoryCredentialStore, ScopeBinder, ScopeContext
    >>> binder = ScopeBinder(store)
    >>> async with binder.scope(ScopeContext("release", 7), [Binding(variable="AUTH", credentials_id="deploy")]) as bound:
    ...     await run_in_scope(bound, "./release.sh")
"""

from credbind.bindings import BindingRegistry, get_default_registry
from credbind.credentials import (
    Capability,
    EnvironmentCredentialStore,
    InMemoryCredentialStore,
    KeyringCredentialStore,
    SecretTextCredential,
    UsernamePasswordCredential,
)
from credbind.executor import run_in_scope
from credbind.masking import OutputMasker
from credbind.models import Binding, ScopeBindingSet, ScopeContext, UsageRecord
from credbind.scope import BoundScope, ScopeBinder
from credbind.usage import UsageTracker

__version__ = "0.1.0"

__all__ = [
    "Binding",
    "BindingRegistry",
    "BoundScope",
    "Capability",
    "EnvironmentCredentialStore",
    "InMemoryCredentialStore",
    "KeyringCredentialStore",
    "OutputMasker",
    "ScopeBinder",
    "ScopeBindingSet",
    "ScopeContext",
    "SecretTextCredential",
    "UsageRecord",
    "UsageTracker",
    "UsernamePasswordCredential",
    "get_default_registry",
    "run_in_scope",
]
