"""Environment variable credential store for CI/CD and containerized environments."""

import os
import re

import structlog

from credbind.credentials.models import (
    Capability,
    Credential,
    SecretTextCredential,
    UsernamePasswordCredential,
)
from credbind.credentials.store import check_capability
from credbind.exceptions import CredentialNotFoundError
from credbind.usage.ledger import FingerprintLedger, InMemoryFingerprintLedger

log = structlog.get_logger(__name__)


class EnvironmentCredentialStore:
    """Credentials injected as environment variables.

    A credential with id ``deploy-key`` is read from:
    - ``CREDBIND_DEPLOY_KEY_USERNAME`` / ``CREDBIND_DEPLOY_KEY_PASSWORD``
      (username and password)
    - ``CREDBIND_DEPLOY_KEY_SECRET`` (secret text)

    Ids are upper-cased and every character outside ``[A-Za-z0-9]`` becomes
    ``_``, so ids differing only in case or punctuation (``deploy-key``,
    ``deploy_key``, ``Deploy.Key``) read the same variables. Pick ids that
    stay distinct after that normalization.

    Security Considerations:
    - Environment variables are visible to all processes of the user
    - Not persisted across sessions
    - Suitable for temporary/ephemeral environments

    Example:
        >>> os.environ["CREDBIND_DEPLOY_USERNAME"] = "bob"
        >>> os.environ["CREDBIND_DEPLOY_PASSWORD"] = "s3cr3t"
        >>> store = EnvironmentCredentialStore()
        >>> credential = await store.lookup("deploy", frozenset({Capability.USERNAME_PASSWORD}))
    """

    def __init__(self, prefix: str = "CREDBIND_", ledger: FingerprintLedger | None = None) -> None:
        self.prefix = prefix
        self.ledger: FingerprintLedger = ledger or InMemoryFingerprintLedger()

    @property
    def name(self) -> str:
        return "environment"

    def variable_prefix(self, credential_id: str) -> str:
        """Environment variable prefix for a credential id.

        Not injective: ``deploy-key`` and ``deploy_key`` share a prefix.
        """
        normalized = re.sub(r"[^A-Za-z0-9]", "_", credential_id).upper()
        return f"{self.prefix}{normalized}_"

    def _candidates(self, credential_id: str) -> list[Credential]:
        prefix = self.variable_prefix(credential_id)
        username = os.getenv(f"{prefix}USERNAME")
        password = os.getenv(f"{prefix}PASSWORD")
        secret = os.getenv(f"{prefix}SECRET")

        candidates: list[Credential] = []
        if username is not None or password is not None:
            candidates.append(
                UsernamePasswordCredential(id=credential_id, username=username, password=password)
            )
        if secret is not None:
            candidates.append(SecretTextCredential(id=credential_id, secret=secret))
        return candidates

    async def lookup(
        self,
        credential_id: str,
        accepted: frozenset[Capability],
        consumer_id: str | None = None,
    ) -> Credential:
        candidates = self._candidates(credential_id)
        if not candidates:
            prefix = self.variable_prefix(credential_id)
            raise CredentialNotFoundError(
                "Credential not found in environment",
                reference=credential_id,
                suggestion=(
                    f"Set {prefix}USERNAME and {prefix}PASSWORD, or {prefix}SECRET"
                ),
            )

        for candidate in candidates:
            if candidate.capability in accepted:
                log.debug("credential_read_from_environment", credential_id=credential_id)
                return candidate

        return check_capability(candidates[0], accepted)

    async def record_fingerprint(self, credential_id: str, consumer_id: str, run_number: int) -> None:
        await self.ledger.record(credential_id, consumer_id, run_number)
