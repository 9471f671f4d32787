"""Discovery and verification cycles plus the periodic driver that runs them."""

from keyscout.pipeline.discovery import (
    DiscoveryCycle,
    DiscoveryOutcome,
    DiscoverySummary,
    resolve_token,
)
from keyscout.pipeline.loop import run_periodic, sleep_or_stop
from keyscout.pipeline.verification import (
    AttemptStep,
    KeyVerdict,
    KeyVerifier,
    PoolMaintainer,
    PoolMode,
    VerificationReport,
    VerificationSummary,
    classify_attempt,
)

__all__ = [
    "AttemptStep",
    "DiscoveryCycle",
    "DiscoveryOutcome",
    "DiscoverySummary",
    "KeyVerdict",
    "KeyVerifier",
    "PoolMaintainer",
    "PoolMode",
    "VerificationReport",
    "VerificationSummary",
    "classify_attempt",
    "resolve_token",
    "run_periodic",
    "sleep_or_stop",
]
