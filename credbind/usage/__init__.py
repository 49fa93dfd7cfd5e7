"""Usage tracking: which runs consumed which credentials."""

from credbind.usage.ledger import (
    Fingerprint,
    FingerprintLedger,
    InMemoryFingerprintLedger,
    JsonFingerprintLedger,
    RangeSet,
)
from credbind.usage.tracker import UsageTracker

__all__ = [
    "Fingerprint",
    "FingerprintLedger",
    "InMemoryFingerprintLedger",
    "JsonFingerprintLedger",
    "RangeSet",
    "UsageTracker",
]
