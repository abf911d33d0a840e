"""
Save-with-conflict-resolution.

Records carry a `version`. A repository `save` raises `WriteConflict`
when the stored version moved on since the record was read. We then
re-fetch the latest record, re-apply the pending changes on top of it
and try again, up to `max_attempts` saves in total.
"""

import logging
from typing import Callable, Dict, Any

from errors import WriteConflict
from settings import settings

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


def save_with_conflict_resolution(
    record: Record,
    save: Callable[[Record], Record],
    fetch_latest: Callable[[], Record],
    merge: Callable[[Record], Record],
    max_attempts: int | None = None,
) -> Record:
    """Save `record`; on conflict merge onto the latest copy and retry.

    `merge(latest)` must return `latest` with the caller's changes
    applied. The last `WriteConflict` propagates once attempts run out.
    """

    attempts = max_attempts or settings.save_max_attempts
    attempt = 1
    while True:
        try:
            return save(record)
        except WriteConflict as e:
            if attempt >= attempts:
                logger.error("Giving up after %d attempts: %s", attempt, e)
                raise
            logger.warning("Write conflict (attempt %d/%d): %s", attempt, attempts, e)
            record = merge(fetch_latest())
            attempt += 1
