"""Credential store protocol and the in-memory reference store."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Protocol

import structlog

from credbind.credentials.models import Capability, Credential
from credbind.exceptions import (
    AccessDeniedError,
    CapabilityMismatchError,
    CredentialNotFoundError,
)
from credbind.usage.ledger import FingerprintLedger, InMemoryFingerprintLedger

log = structlog.get_logger(__name__)


class CredentialStore(Protocol):
    """Protocol defining the interface of credential stores.

    The binder only ever looks credentials up and reports their use; adding,
    updating and access control policy belong to the store.
    """

    @property
    def name(self) -> str:
        """Store identifier (e.g., 'memory', 'keyring')."""
        ...

    async def lookup(
        self,
        credential_id: str,
        accepted: frozenset[Capability],
        consumer_id: str | None = None,
    ) -> Credential:
        """Look up a credential usable by a binding.

        Args:
            credential_id: Id of the credential
            accepted: Capabilities the binding type accepts
            consumer_id: Consumer asking for the credential, for access checks

        Returns:
            The stored credential

        Raises:
            CredentialNotFoundError: No credential with this id
            AccessDeniedError: The consumer may not use this credential
            CapabilityMismatchError: The credential type is not accepted
        """
        ...

    async def record_fingerprint(self, credential_id: str, consumer_id: str, run_number: int) -> None:
        """Persist that a run of a consumer used the credential.

        Raises:
            UsageTrackingError: If the record cannot be written
        """
        ...


def check_capability(credential: Credential, accepted: frozenset[Capability]) -> Credential:
    """Raise CapabilityMismatchError unless the credential type is accepted."""
    if credential.capability not in accepted:
        expected = ", ".join(sorted(c.value for c in accepted)) or "none"
        raise CapabilityMismatchError(
            f"Credential provides {credential.capability.value}, binding accepts {expected}",
            reference=credential.id,
        )
    return credential


class InMemoryCredentialStore:
    """Credentials held in process memory.

    Example:
        >>> store = InMemoryCredentialStore([
        ...     UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t"),
        ... ])
        >>> credential = await store.lookup("deploy", frozenset({Capability.USERNAME_PASSWORD}))
    """

    def __init__(
        self,
        credentials: Iterable[Credential] = (),
        ledger: FingerprintLedger | None = None,
        access: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            credentials: Initial credentials
            ledger: Where fingerprints go (in-memory ledger by default)
            access: Optional credential id -> allowed consumer ids. Credentials
                not listed are usable by every consumer.
        """
        self._credentials: dict[str, Credential] = {}
        self.ledger: FingerprintLedger = ledger or InMemoryFingerprintLedger()
        self._access = {key: frozenset(consumers) for key, consumers in (access or {}).items()}

        for credential in credentials:
            self.add(credential)

    @property
    def name(self) -> str:
        return "memory"

    def add(self, credential: Credential) -> None:
        self._credentials[credential.id] = credential

    def remove(self, credential_id: str) -> bool:
        return self._credentials.pop(credential_id, None) is not None

    async def lookup(
        self,
        credential_id: str,
        accepted: frozenset[Capability],
        consumer_id: str | None = None,
    ) -> Credential:
        credential = self._credentials.get(credential_id)
        if credential is None:
            raise CredentialNotFoundError(
                "Credential not found",
                reference=credential_id,
                suggestion="Check the credentials id in the binding configuration",
            )

        allowed = self._access.get(credential_id)
        if allowed is not None and consumer_id not in allowed:
            raise AccessDeniedError(
                f"Consumer '{consumer_id}' may not use this credential",
                reference=credential_id,
            )

        return check_capability(credential, accepted)

    async def record_fingerprint(self, credential_id: str, consumer_id: str, run_number: int) -> None:
        await self.ledger.record(credential_id, consumer_id, run_number)
        log.debug("fingerprint_recorded", credential_id=credential_id, consumer_id=consumer_id)
