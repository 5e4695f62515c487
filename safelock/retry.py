"""
Retrying wrapper around OccWriter.update().

A single conflict is an internal, recoverable event. Only running out of
attempts is reported to the caller, and it is reported as a ``False`` return
value rather than an exception.
"""

import logging
import time
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Union

from safelock.conf import get_retry_attempts, get_retry_interval, refresh_on_conflict
from safelock.exceptions import StaleObjectConflict
from safelock.writer import OccWriter

logger = logging.getLogger(__name__)


class RetryState(Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


def safely_update_with_retry(
    writer: OccWriter,
    pk,
    fields: Dict[str, Any],
    attempts: Optional[int] = None,
    interval: Optional[int] = None,
    condition="",
    params: Optional[Sequence[Any]] = None,
    refresh: Optional[bool] = None,
) -> Union[int, bool]:
    """
    Attempt a version-checked update several times.

    Useful when the data being saved should overwrite whatever might have just
    been written by someone else.

    Args:
        writer: The writer bound to the record being saved
        pk: Primary key of the row to update
        fields: Field name to value mapping to write
        attempts: Maximum number of attempts (default: SAFELOCK_RETRY_ATTEMPTS)
        interval: Pause between attempts in microseconds (default: SAFELOCK_RETRY_INTERVAL)
        condition: Extra SQL WHERE fragment (string only)
        params: Values bound to the placeholders in ``condition``
        refresh: Reload the stored version after a conflict (default: SAFELOCK_REFRESH_ON_CONFLICT).
            If the row is gone by then, no further attempt is made

    Returns:
        The number of updated rows, or False if every attempt failed

    Raises:
        UnsupportedConditionKind: If ``condition`` is not a string (never retried)
        ValueError: If ``attempts`` is less than 1
    """
    if attempts is None:
        attempts = get_retry_attempts()
    if interval is None:
        interval = get_retry_interval()
    if refresh is None:
        refresh = refresh_on_conflict()
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")

    model_name = type(writer.record).__name__
    state = RetryState.ATTEMPTING
    attempt = 1
    affected_rows = 0

    # Invariant: 1 <= attempt <= attempts while ATTEMPTING. A vanished row ends the loop early.
    while state is RetryState.ATTEMPTING:
        try:
            affected_rows = writer.update(pk, fields, condition, params).rows_affected
        except StaleObjectConflict:
            affected_rows = 0
            logger.info(
                f"Caught StaleObjectConflict in attempt #{attempt} to safely update {model_name} "
                f"with pk={pk!r}. Will try {attempts - attempt} more times with an interval of "
                f"{interval} microseconds between attempts."
            )

        if affected_rows > 0:
            state = RetryState.SUCCEEDED
        elif attempt >= attempts:
            state = RetryState.EXHAUSTED
        else:
            time.sleep(interval / 1_000_000)
            if refresh and not writer.refresh_version(pk):
                logger.info(f"{model_name} pk={pk!r} no longer exists, not retrying")
                state = RetryState.EXHAUSTED
            else:
                attempt += 1

    if state is RetryState.EXHAUSTED:
        logger.warning(f"Giving up on safely updating {model_name} pk={pk!r} after attempt #{attempt}")
        return False
    return affected_rows
