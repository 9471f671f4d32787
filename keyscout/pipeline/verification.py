"""
Key verification and pool maintenance.

``KeyVerifier`` runs one key through its candidate validators and applies the
resulting state transition to the Credential in place. ``PoolMaintainer``
decides each cycle whether to re-check the existing pool (refresh) or to
verify fresh unverified keys until the pool is full again (top-up).

Usage:
    verifier = KeyVerifier(default_registry())
    maintainer = PoolMaintainer(store, verifier, cap=50, batch_size=10)
    summary = await maintainer.run_cycle()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from keyscout.models import POOL_STATUSES, Credential, IssuerType, KeyStatus, utcnow
from keyscout.validators.base import ValidationOutcome, ValidationResult

if TYPE_CHECKING:
    from keyscout.store import KeyStore
    from keyscout.validators.registry import ValidatorRegistry

logger = logging.getLogger(__name__)

# A rejection mentioning any of these means the key authenticated but is out of funds.
QUOTA_MARKERS = ("quota", "credit", "billing")


class AttemptStep(StrEnum):
    CONCLUSIVE_VALID = "conclusive_valid"
    CONCLUSIVE_NO_CREDITS = "conclusive_no_credits"
    INCONCLUSIVE = "inconclusive"
    ABORT_NETWORK = "abort_network"


class KeyVerdict(StrEnum):
    VALID = "valid"
    VALID_NO_CREDITS = "valid_no_credits"
    INVALID = "invalid"
    NETWORK_ERROR = "network_error"
    NO_VALIDATOR = "no_validator"


class PoolMode(StrEnum):
    REFRESH = "refresh"
    TOP_UP = "top_up"


def classify_attempt(result: ValidationResult) -> AttemptStep:
    """Map one validator result to the next step of the state machine."""
    if result.outcome == ValidationOutcome.VALID:
        return AttemptStep.CONCLUSIVE_VALID
    if result.outcome == ValidationOutcome.NETWORK_ERROR:
        return AttemptStep.ABORT_NETWORK
    if result.outcome == ValidationOutcome.HTTP_ERROR:
        detail = result.detail.lower()
        if any(marker in detail for marker in QUOTA_MARKERS):
            return AttemptStep.CONCLUSIVE_NO_CREDITS
    return AttemptStep.INCONCLUSIVE


@dataclass
class VerificationReport:
    verdict: KeyVerdict
    issuer: IssuerType | None = None
    attempts: int = 0


class KeyVerifier:
    """Applies the verification state machine to one credential at a time."""

    def __init__(
        self,
        registry: ValidatorRegistry,
        error_threshold: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.registry = registry
        self.error_threshold = error_threshold
        self.clock = clock

    async def verify_key(self, credential: Credential) -> VerificationReport:
        """Verify ``credential`` and mutate its status, issuer, counters and stamp.

        The caller persists the credential afterwards.
        """
        candidates = self.registry.candidates_for(credential)
        if not candidates:
            credential.status = KeyStatus.ERROR
            credential.last_checked_at = self.clock()
            logger.warning("No validator for key %s (%s)", credential.masked, credential.api_type)
            return VerificationReport(KeyVerdict.NO_VALIDATOR)

        attempts = 0
        for validator in candidates:
            attempts += 1
            try:
                result = await validator.validate(credential.api_key)
            except Exception as e:
                logger.warning(
                    "%s validator raised for key %s: %s", validator.name, credential.masked, e
                )
                result = None
            credential.last_checked_at = self.clock()

            step = classify_attempt(result) if result is not None else AttemptStep.INCONCLUSIVE
            logger.debug("Key %s via %s: %s", credential.masked, validator.name, step)

            if step == AttemptStep.CONCLUSIVE_VALID:
                self._conclude(credential, validator.issuer, KeyStatus.VALID)
                return VerificationReport(KeyVerdict.VALID, validator.issuer, attempts)
            if step == AttemptStep.CONCLUSIVE_NO_CREDITS:
                self._conclude(credential, validator.issuer, KeyStatus.VALID_NO_CREDITS)
                return VerificationReport(KeyVerdict.VALID_NO_CREDITS, validator.issuer, attempts)
            if step == AttemptStep.ABORT_NETWORK:
                credential.error_count += 1
                if credential.error_count >= self.error_threshold:
                    credential.status = KeyStatus.ERROR
                    logger.warning(
                        "Key %s marked error after %d network failures",
                        credential.masked,
                        credential.error_count,
                    )
                return VerificationReport(KeyVerdict.NETWORK_ERROR, validator.issuer, attempts)

        credential.status = KeyStatus.INVALID
        return VerificationReport(KeyVerdict.INVALID, None, attempts)

    @staticmethod
    def _conclude(credential: Credential, issuer: IssuerType, status: KeyStatus) -> None:
        if credential.api_type != issuer:
            logger.info(
                "Reclassified key %s: %s -> %s", credential.masked, credential.api_type, issuer
            )
            credential.api_type = issuer
        credential.status = status
        credential.error_count = 0


@dataclass
class VerificationSummary:
    mode: PoolMode
    cap: int
    pool_before: int = 0
    pool_after: int = 0
    verified: int = 0
    valid: int = 0
    no_credits: int = 0
    invalid: int = 0
    network_errors: int = 0
    no_validator: int = 0
    verdicts: dict[int, KeyVerdict] = field(default_factory=dict)

    @property
    def pool_outcomes(self) -> int:
        return self.valid + self.no_credits

    def record(self, credential_id: int, verdict: KeyVerdict) -> None:
        self.verified += 1
        self.verdicts[credential_id] = verdict
        if verdict == KeyVerdict.VALID:
            self.valid += 1
        elif verdict == KeyVerdict.VALID_NO_CREDITS:
            self.no_credits += 1
        elif verdict == KeyVerdict.INVALID:
            self.invalid += 1
        elif verdict == KeyVerdict.NETWORK_ERROR:
            self.network_errors += 1
        else:
            self.no_validator += 1

    def format(self) -> str:
        return (
            f"Verification [{self.mode}] verified={self.verified} valid={self.valid} "
            f"no_credits={self.no_credits} invalid={self.invalid} "
            f"network_errors={self.network_errors} pool={self.pool_after}/{self.cap}"
        )


class PoolMaintainer:
    """Keeps the pool of working keys at ``cap``."""

    def __init__(
        self,
        store: KeyStore,
        verifier: KeyVerifier,
        *,
        cap: int = 50,
        batch_size: int = 10,
        stop: asyncio.Event | None = None,
        on_progress: Callable[[VerificationSummary], None] | None = None,
    ) -> None:
        self.store = store
        self.verifier = verifier
        self.cap = cap
        self.batch_size = batch_size
        self.stop = stop or asyncio.Event()
        self.on_progress = on_progress

    async def run_cycle(self) -> VerificationSummary:
        count = self.store.count_by_status(POOL_STATUSES)
        if count >= self.cap:
            summary = await self._refresh(count)
        else:
            summary = await self._top_up(count)
        summary.pool_after = self.store.count_by_status(POOL_STATUSES)
        logger.info(summary.format())
        return summary

    async def _refresh(self, count: int) -> VerificationSummary:
        summary = VerificationSummary(PoolMode.REFRESH, self.cap, pool_before=count)
        keys = self.store.keys_by_status(POOL_STATUSES, order="last_checked", limit=self.batch_size)
        logger.debug("Pool full (%d/%d), re-checking %d keys", count, self.cap, len(keys))
        for credential in keys:
            if self.stop.is_set():
                break
            await self._verify(credential, summary)
        return summary

    async def _top_up(self, count: int) -> VerificationSummary:
        summary = VerificationSummary(PoolMode.TOP_UP, self.cap, pool_before=count)
        needed = self.cap - count
        keys = self.store.keys_by_status(
            [KeyStatus.UNVERIFIED],
            order="first_found",
            limit=max(needed * 2, self.batch_size),
        )
        logger.debug("Pool at %d/%d, need %d, %d candidates", count, self.cap, needed, len(keys))
        for credential in keys:
            if self.stop.is_set() or summary.pool_outcomes >= needed:
                break
            await self._verify(credential, summary)
        return summary

    async def _verify(self, credential: Credential, summary: VerificationSummary) -> None:
        report = await self.verifier.verify_key(credential)
        self.store.save_verification(credential)
        summary.record(credential.id, report.verdict)
        if self.on_progress:
            self.on_progress(summary)
