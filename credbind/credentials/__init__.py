"""Credential types and the stores they are looked up from.

Stores:
    - InMemoryCredentialStore: process memory (tests, embedding applications)
    - EnvironmentCredentialStore: ``CREDBIND_<ID>_*`` environment variables
    - KeyringCredentialStore: OS keyring
"""

from credbind.credentials.models import (
    CREDENTIAL_TYPES,
    MASKED_FIELDS,
    Capability,
    Credential,
    ResolvedCredential,
    SecretTextCredential,
    UsernamePasswordCredential,
)
from credbind.credentials.store import CredentialStore, InMemoryCredentialStore, check_capability
from credbind.credentials.environment_store import EnvironmentCredentialStore
from credbind.credentials.keyring_store import KeyringCredentialStore

__all__ = [
    "CREDENTIAL_TYPES",
    "MASKED_FIELDS",
    "Capability",
    "Credential",
    "CredentialStore",
    "EnvironmentCredentialStore",
    "InMemoryCredentialStore",
    "KeyringCredentialStore",
    "ResolvedCredential",
    "SecretTextCredential",
    "UsernamePasswordCredential",
    "check_capability",
]
