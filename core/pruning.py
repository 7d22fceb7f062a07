# core/pruning.py
import datetime
from dataclasses import dataclass
from typing import Optional, Tuple

from .logger import get_logger
from .models import now_utc

logger = get_logger(__name__)

HOUR = 3600


@dataclass(frozen=True)
class RetentionTier:
    """Points aged in [min_age, max_age) keep one sample per bucket_seconds."""
    min_age: datetime.timedelta
    max_age: Optional[datetime.timedelta]
    bucket_seconds: int


# Points younger than the first tier are never pruned. Tiers must stay
# contiguous and non-overlapping.
RETENTION_TIERS: Tuple[RetentionTier, ...] = (
    RetentionTier(datetime.timedelta(days=3), datetime.timedelta(days=7), 1 * HOUR),
    RetentionTier(datetime.timedelta(days=7), datetime.timedelta(days=14), 3 * HOUR),
    RetentionTier(datetime.timedelta(days=14), None, 6 * HOUR),
)


def validate_tiers(tiers: Tuple[RetentionTier, ...]) -> None:
    for prev, cur in zip(tiers, tiers[1:]):
        if prev.max_age != cur.min_age:
            raise ValueError(f"retention tiers not contiguous: {prev} -> {cur}")
    for tier in tiers[:-1]:
        if tier.max_age is None:
            raise ValueError(f"only the last retention tier may be open-ended: {tier}")
    for tier in tiers:
        if tier.max_age is not None and tier.max_age <= tier.min_age:
            raise ValueError(f"empty retention tier: {tier}")


class HistoryPruning:
    """
    Downsamples stored history by age. Within each (item, bucket) group of a
    tier only the earliest point survives, so the result does not depend on
    polling cadence or on backfilled points arriving out of order.
    """

    def __init__(self, storage, tiers: Tuple[RetentionTier, ...] = RETENTION_TIERS):
        validate_tiers(tiers)
        self.storage = storage
        self.tiers = tiers

    def run_pruning(self, now: Optional[datetime.datetime] = None) -> int:
        """Apply every tier relative to `now` (default: current UTC time)."""
        logger.info("Starting history pruning...")
        now = now or now_utc()

        total = 0
        for tier in self.tiers:
            oldest = now - tier.max_age if tier.max_age is not None else None
            deleted = self.storage.delete_superseded_history(
                tier.bucket_seconds,
                newest=now - tier.min_age,
                oldest=oldest,
            )
            logger.info(
                "Pruned %d points aged %s+ to one per %dh.",
                deleted, tier.min_age, tier.bucket_seconds // HOUR,
            )
            total += deleted

        logger.info("History pruning complete (%d points removed).", total)
        return total
