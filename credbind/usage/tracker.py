"""Per-scope usage tracking.

Usage analytics are best-effort: a store that fails to record a usage never
fails the scope. The failure is logged as a warning and kept on the tracker
so the caller can report it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from credbind.models import ScopeContext, UsageRecord

if TYPE_CHECKING:
    from credbind.credentials.store import CredentialStore

log = structlog.get_logger(__name__)


class UsageTracker:
    """Record credential usage for one scope instance, at most once per triple.

    Idempotence state lives on the ScopeContext, so several binds within the
    same run share it while separate runs of the same consumer do not.
    A triple is claimed before the store write, so concurrent binds of one
    scope record it once; a failed or cancelled write releases it again.

    Example:
        >>> tracker = UsageTracker(store, ScopeContext("release-pipeline", 7))
        >>> await tracker.record_usage("deploy", "release-pipeline")
        UsageRecord(credential_id='deploy', consumer_id='release-pipeline', run_number=7, ...)
        >>> await tracker.record_usage("deploy", "release-pipeline") is None
        True
    """

    def __init__(self, store: CredentialStore, scope: ScopeContext) -> None:
        self.store = store
        self.scope = scope
        self.warnings: list[str] = []

    async def record_usage(self, credential_id: str, consumer_id: str) -> UsageRecord | None:
        """Emit a usage record unless this scope instance already did.

        Returns:
            The emitted record, or None if already recorded or the store failed
        """
        key = (credential_id, consumer_id, self.scope.scope_id)
        if key in self.scope.recorded_usage:
            log.debug("usage_already_recorded", credential_id=credential_id, scope_id=self.scope.scope_id)
            return None

        record = UsageRecord(
            credential_id=credential_id,
            consumer_id=consumer_id,
            run_number=self.scope.run_number,
        )

        # Claimed before the await so a concurrent bind of the same scope skips it
        self.scope.recorded_usage.add(key)
        try:
            await self.store.record_fingerprint(credential_id, consumer_id, self.scope.run_number)
        except Exception as e:
            # Stores are external; any failure leaves the key free for a retry
            self.scope.recorded_usage.discard(key)
            message = f"Could not record usage of credential {credential_id}: {e}"
            self.warnings.append(message)
            log.warning(
                "usage_record_failed",
                credential_id=credential_id,
                consumer_id=consumer_id,
                scope_id=self.scope.scope_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None
        except BaseException:
            self.scope.recorded_usage.discard(key)
            raise

        log.info(
            "usage_recorded",
            credential_id=credential_id,
            consumer_id=consumer_id,
            scope_id=self.scope.scope_id,
        )
        return record
