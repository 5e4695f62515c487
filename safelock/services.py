import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils.translation import gettext as _

from safelock.exceptions import StaleObjectConflict
from safelock.models import KeyValueEntry

logger = logging.getLogger(__name__)


def read_value(key: str) -> KeyValueEntry:
    """
    Fetch an entry, capturing its loaded state for dirtiness checks.

    Raises:
        KeyValueEntry.DoesNotExist: If the key is unknown
    """
    return KeyValueEntry.objects.get(key=key)


def put_value(key: str, value: str, expected_version: Optional[int] = None) -> tuple[KeyValueEntry, bool]:
    """
    Create or update a key with optimistic locking.

    Args:
        key: The key to store
        value: The value to store
        expected_version: Version the caller last saw. When given, the update
            only applies if the stored version still equals it. When omitted,
            the update is retried against the latest stored version.

    Returns:
        Tuple of (entry, created)

    Raises:
        StaleObjectConflict: If the entry changed since ``expected_version``,
            or the retried update never won
    """
    try:
        entry = KeyValueEntry.objects.get(key=key)
    except KeyValueEntry.DoesNotExist:
        if expected_version:
            raise StaleObjectConflict(
                _("Data has been updated by another user so avoiding the update"),
                model=KeyValueEntry.__name__,
                expected_version=expected_version,
            )
        try:
            with transaction.atomic():
                return KeyValueEntry.objects.create(key=key, value=value), True
        except IntegrityError:
            # Created concurrently; fall through to an update of that row.
            entry = KeyValueEntry.objects.get(key=key)

    if expected_version is not None:
        entry.version = expected_version
        entry.safely_update_by_pk(entry.pk, {"value": value})
    elif entry.safely_update_by_pk_with_retry(entry.pk, {"value": value}) is False:
        raise StaleObjectConflict(
            _("Data has been updated by another user so avoiding the update"),
            model=KeyValueEntry.__name__,
            pk=entry.pk,
            expected_version=entry.version,
        )

    entry.value = value
    logger.info(f"Stored {key} at version {entry.version}")
    return entry, False


def delete_value(key: str, expected_version: Optional[int] = None) -> bool:
    """
    Delete a key with optimistic locking.

    Args:
        key: The key to delete
        expected_version: Version the caller last saw (default: the version just read)

    Returns:
        True if deleted, False if the key didn't exist

    Raises:
        StaleObjectConflict: If the entry changed since ``expected_version``
    """
    try:
        entry = KeyValueEntry.objects.get(key=key)
    except KeyValueEntry.DoesNotExist:
        return False

    if expected_version is not None:
        entry.version = expected_version
    entry.safely_delete_by_pk(entry.pk)
    logger.info(f"Deleted {key} at version {entry.version}")
    return True
