"""Fingerprint ledgers: persisted usage history per credential.

A fingerprint records, for one credential, which consumers used it and in
which runs. Runs are kept as a range set of half-open ``[start, end)``
intervals, merged when contiguous, so a consumer that used a credential in
runs 3, 4, 5 and 9 is stored as ``[[3, 6], [9, 10]]``.

A credential that was never used has no fingerprint at all.

Ledger File Structure:
    ``JsonFingerprintLedger`` keeps one JSON file per credential::

        {
            "credential_id": "deploy-key",
            "created_at": "2026-01-15T10:30:00+00:00",
            "usages": {
                "release-pipeline": [[3, 6], [9, 10]]
            }
        }

Example:
    >>> ledger = JsonFingerprintLedger(".credbind/fingerprints")
    >>> await ledger.record("deploy-key", "release-pipeline", 3)
    >>> fingerprint = await ledger.get("deploy-key")
    >>> fingerprint.includes("release-pipeline", 3)
    True
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

import aiofiles
import structlog

from credbind.exceptions import UsageTrackingError

log = structlog.get_logger(__name__)


class RangeSet:
    """Sorted, non-overlapping half-open integer ranges."""

    def __init__(self, ranges: list[tuple[int, int]] | None = None) -> None:
        self._ranges = self._merge([(start, end) for start, end in ranges or [] if end > start])

    @staticmethod
    def _merge(ranges: list[tuple[int, int]]) -> list[tuple[int, int]]:
        merged: list[tuple[int, int]] = []
        for start, end in sorted(ranges):
            if merged and merged[-1][1] >= start:
                merged[-1] = (merged[-1][0], max(merged[-1][1], end))
            else:
                merged.append((start, end))
        return merged

    @property
    def ranges(self) -> list[tuple[int, int]]:
        return list(self._ranges)

    def includes(self, number: int) -> bool:
        return any(start <= number < end for start, end in self._ranges)

    def add(self, number: int) -> bool:
        """Add a run number. Returns False if it was already present."""
        if self.includes(number):
            return False
        self._ranges = self._merge(self._ranges + [(number, number + 1)])
        return True

    def __len__(self) -> int:
        return sum(end - start for start, end in self._ranges)

    def __repr__(self) -> str:
        return f"RangeSet({self._ranges!r})"


@dataclass
class Fingerprint:
    """Usage history of one credential."""

    credential_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    usages: dict[str, RangeSet] = field(default_factory=dict)

    @property
    def consumers(self) -> list[str]:
        return sorted(self.usages)

    def add(self, consumer_id: str, run_number: int) -> bool:
        return self.usages.setdefault(consumer_id, RangeSet()).add(run_number)

    def includes(self, consumer_id: str, run_number: int) -> bool:
        ranges = self.usages.get(consumer_id)
        return ranges is not None and ranges.includes(run_number)

    def to_dict(self) -> dict[str, Any]:
        return {
            "credential_id": self.credential_id,
            "created_at": self.created_at.isoformat(),
            "usages": {
                consumer: [list(r) for r in ranges.ranges]
                for consumer, ranges in sorted(self.usages.items())
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Fingerprint:
        return cls(
            credential_id=data["credential_id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            usages={
                consumer: RangeSet([(start, end) for start, end in ranges])
                for consumer, ranges in data.get("usages", {}).items()
            },
        )


class FingerprintLedger(Protocol):
    """Where credential stores persist usage records."""

    async def record(self, credential_id: str, consumer_id: str, run_number: int) -> None:
        """Add one run of a consumer to the credential's fingerprint."""
        ...

    async def get(self, credential_id: str) -> Fingerprint | None:
        """Return the fingerprint, or None if the credential was never used."""
        ...


class InMemoryFingerprintLedger:
    """Process-local ledger, used by tests and the in-memory store."""

    def __init__(self) -> None:
        self._fingerprints: dict[str, Fingerprint] = {}
        self._lock = asyncio.Lock()

    async def record(self, credential_id: str, consumer_id: str, run_number: int) -> None:
        async with self._lock:
            fingerprint = self._fingerprints.setdefault(credential_id, Fingerprint(credential_id))
            fingerprint.add(consumer_id, run_number)

    async def get(self, credential_id: str) -> Fingerprint | None:
        return self._fingerprints.get(credential_id)


class JsonFingerprintLedger:
    """Ledger storing one JSON file per credential with atomic writes.

    Thread Safety:
        Designed for single-threaded asyncio usage. Each credential has its
        own lock so concurrent scopes using different credentials never wait
        on each other.
    """

    def __init__(self, ledger_dir: str | Path) -> None:
        self.ledger_dir = Path(ledger_dir)
        self.ledger_dir.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, asyncio.Lock] = {}
        self._locks_lock = asyncio.Lock()

    async def _get_lock(self, credential_id: str) -> asyncio.Lock:
        async with self._locks_lock:
            if credential_id not in self._locks:
                self._locks[credential_id] = asyncio.Lock()
            return self._locks[credential_id]

    def _path(self, credential_id: str) -> Path:
        # Credential ids are free-form; hash them into a safe file name
        digest = hashlib.sha256(credential_id.encode("utf-8")).hexdigest()[:32]
        return self.ledger_dir / f"{digest}.json"

    async def _load(self, credential_id: str) -> Fingerprint | None:
        path = self._path(credential_id)
        if not path.exists():
            return None

        try:
            async with aiofiles.open(path) as f:
                content = await f.read()
            return Fingerprint.from_dict(json.loads(content))
        except (OSError, json.JSONDecodeError, KeyError, ValueError, TypeError, AttributeError) as e:
            raise UsageTrackingError(f"Corrupted fingerprint for {credential_id}: {e}") from e

    async def _save(self, fingerprint: Fingerprint) -> None:
        path = self._path(fingerprint.credential_id)
        temp_path = path.with_suffix(".tmp")

        try:
            async with aiofiles.open(temp_path, "w") as f:
                await f.write(json.dumps(fingerprint.to_dict(), indent=2))
            temp_path.replace(path)
        except OSError as e:
            raise UsageTrackingError(
                f"Failed to write fingerprint for {fingerprint.credential_id}: {e}"
            ) from e

    async def record(self, credential_id: str, consumer_id: str, run_number: int) -> None:
        lock = await self._get_lock(credential_id)
        async with lock:
            fingerprint = await self._load(credential_id) or Fingerprint(credential_id)
            if fingerprint.add(consumer_id, run_number):
                await self._save(fingerprint)
                log.debug(
                    "fingerprint_updated",
                    credential_id=credential_id,
                    consumer_id=consumer_id,
                    run_number=run_number,
                )

    async def get(self, credential_id: str) -> Fingerprint | None:
        lock = await self._get_lock(credential_id)
        async with lock:
            return await self._load(credential_id)
