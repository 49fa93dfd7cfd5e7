"""OS-level keyring credential store.

Platform Support:
- Linux: Secret Service API (GNOME Keyring, KWallet)
- macOS: Keychain
- Windows: Windows Credential Locker

Each credential is stored as a JSON payload under service
``credbind/<credential id>`` and key ``credential``.
"""

import asyncio
import json
from typing import cast

import keyring
import structlog
from keyring.errors import KeyringError, PasswordDeleteError
from pydantic import ValidationError

from credbind.credentials.models import (
    CREDENTIAL_TYPES,
    Capability,
    Credential,
)
from credbind.credentials.store import check_capability
from credbind.exceptions import (
    BackendNotAvailableError,
    CredentialError,
    CredentialNotFoundError,
)
from credbind.usage.ledger import FingerprintLedger, InMemoryFingerprintLedger

log = structlog.get_logger(__name__)

KEYRING_KEY = "credential"


class KeyringCredentialStore:
    """Credential storage using the system keyring.

    Example:
        >>> store = KeyringCredentialStore()
        >>> store.set(UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t"))
        >>> credential = await store.lookup("deploy", frozenset({Capability.USERNAME_PASSWORD}))
        >>> store.delete("deploy")
    """

    def __init__(self, namespace: str = "credbind", ledger: FingerprintLedger | None = None) -> None:
        self.namespace = namespace
        self.ledger: FingerprintLedger = ledger or InMemoryFingerprintLedger()

    @property
    def name(self) -> str:
        return "keyring"

    @property
    def available(self) -> bool:
        """Check if a functional keyring backend is configured.

        Returns False on headless systems without a keyring daemon.
        """
        try:
            backend = keyring.get_keyring()
        except Exception as e:
            log.debug("keyring_unavailable", error=str(e))
            return False
        return "fail" not in type(backend).__module__

    def _service(self, credential_id: str) -> str:
        return f"{self.namespace}/{credential_id}"

    def _require_available(self) -> None:
        if not self.available:
            raise BackendNotAvailableError(
                "Keyring backend is not available",
                suggestion="Use the environment store on headless systems",
            )

    def get(self, credential_id: str) -> Credential | None:
        """Read a credential from the keyring.

        Raises:
            BackendNotAvailableError: If keyring is not available
            CredentialError: If the keyring operation fails or the payload is invalid
        """
        self._require_available()

        try:
            payload = cast(str | None, keyring.get_password(self._service(credential_id), KEYRING_KEY))
        except KeyringError as e:
            raise CredentialError(f"Keyring operation failed: {e}", reference=credential_id) from e

        if payload is None:
            return None

        try:
            data = json.loads(payload)
            credential_type = CREDENTIAL_TYPES[Capability(data.pop("kind"))]
            return credential_type(id=credential_id, **data)
        except (json.JSONDecodeError, KeyError, ValueError, ValidationError) as e:
            # Never include the payload itself in the message
            raise CredentialError(
                f"Invalid credential payload in keyring: {type(e).__name__}",
                reference=credential_id,
            ) from e

    def set(self, credential: Credential) -> None:
        """Store a credential in the keyring.

        Raises:
            BackendNotAvailableError: If keyring is not available
            CredentialError: If the keyring operation fails
        """
        self._require_available()

        data = {"kind": credential.capability.value, "description": credential.description}
        for field_name, value in credential.secret_fields().items():
            if value is not None:
                data[field_name] = value

        try:
            keyring.set_password(self._service(credential.id), KEYRING_KEY, json.dumps(data))
        except KeyringError as e:
            raise CredentialError(f"Failed to store credential: {e}", reference=credential.id) from e

        log.info("credential_stored", store=self.name, credential_id=credential.id)

    def delete(self, credential_id: str) -> bool:
        """Delete a credential. Returns False if it did not exist."""
        self._require_available()

        try:
            keyring.delete_password(self._service(credential_id), KEYRING_KEY)
        except PasswordDeleteError:
            return False
        except KeyringError as e:
            raise CredentialError(f"Failed to delete credential: {e}", reference=credential_id) from e

        log.info("credential_deleted", store=self.name, credential_id=credential_id)
        return True

    async def lookup(
        self,
        credential_id: str,
        accepted: frozenset[Capability],
        consumer_id: str | None = None,
    ) -> Credential:
        credential = await asyncio.to_thread(self.get, credential_id)
        if credential is None:
            raise CredentialNotFoundError(
                "Credential not found in keyring",
                reference=credential_id,
                suggestion=f"Store it with:\n  credbind credentials set {credential_id}",
            )
        return check_capability(credential, accepted)

    async def record_fingerprint(self, credential_id: str, consumer_id: str, run_number: int) -> None:
        await self.ledger.record(credential_id, consumer_id, run_number)
