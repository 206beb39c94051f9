"""Retry policy for per-tenant charge generation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from billing.constants import CHARGE_GENERATION_ATTEMPTS
from billing.services.charges import mark_charges_pending_retry

logger = logging.getLogger(__name__)

# Delay before the next attempt, indexed by attempts already made (1-based).
GENERATION_BACKOFF_SCHEDULE = (
    timedelta(hours=1),
    timedelta(hours=6),
    timedelta(hours=24),
)


def generation_backoff_delay(attempts_made: int) -> timedelta:
    """Lookup-table backoff; anything outside the table waits the longest delay."""

    if isinstance(attempts_made, int) and 1 <= attempts_made <= len(GENERATION_BACKOFF_SCHEDULE):
        return GENERATION_BACKOFF_SCHEDULE[attempts_made - 1]
    return GENERATION_BACKOFF_SCHEDULE[-1]


@dataclass(frozen=True)
class GenerationAttempt:
    """What the failure handler knows about a failed generation run."""

    tenant_id: str
    billing_period: Optional[str]
    attempts_made: int
    max_attempts: Optional[int] = None

    @property
    def exhausted(self) -> bool:
        limit = self.max_attempts or CHARGE_GENERATION_ATTEMPTS
        return self.attempts_made >= limit


def handle_generation_failure(attempt: Optional[GenerationAttempt], exc: BaseException) -> bool:
    """
    Record a failed generation attempt and return whether retries are exhausted.

    On exhaustion every PENDING charge of the tenant's period moves to
    PENDING_RETRY. This handler never raises: a failure while marking is
    logged so the original task error stays visible.
    """

    if attempt is None:
        return False

    if not attempt.exhausted:
        logger.warning(
            "Charge generation attempt %s failed for tenant %s (%s): %s",
            attempt.attempts_made,
            attempt.tenant_id,
            attempt.billing_period or "current period",
            exc,
        )
        return False

    logger.error(
        "Charge generation exhausted %s attempts for tenant %s (%s): %s",
        attempt.attempts_made,
        attempt.tenant_id,
        attempt.billing_period or "current period",
        exc,
    )
    try:
        mark_charges_pending_retry(attempt.tenant_id, attempt.billing_period)
    except Exception:
        logger.exception("Failed to mark charges PENDING_RETRY for tenant %s", attempt.tenant_id)
    return True
