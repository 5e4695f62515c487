"""
Condition handling for version-checked writes.

Only flat SQL ``WHERE`` fragments (plain strings) are supported. The version
predicate is appended last. A stale one left over from an earlier write is
stripped wherever it sits, together with the AND that joined it.
"""

import logging
import re

from django.utils.translation import gettext as _

from safelock.exceptions import UnsupportedConditionKind

logger = logging.getLogger(__name__)

CONJUNCTION = "AND"


def validate_condition(condition) -> str:
    """
    Reject anything but a string condition.

    Args:
        condition: The caller supplied condition. ``None`` means no condition.

    Returns:
        The condition as a string ("" when absent)

    Raises:
        UnsupportedConditionKind: If the condition is a Q object, dict, expression, ...
    """
    if condition is None:
        return ""
    if not isinstance(condition, str):
        condition_type = type(condition).__name__
        logger.error(
            f"No support for structured conditions. Only string (where clause) conditions "
            f"are supported, got condition of type {condition_type}"
        )
        raise UnsupportedConditionKind(
            _("Only string based conditions are supported, got condition of type %(type)s.")
            % {"type": condition_type},
            condition_type=condition_type,
        )
    return condition


def strip_locking_condition(condition: str, column: str) -> str:
    """Remove a previously appended ``<column> = N`` predicate and the AND left dangling."""
    if f"{column} = " not in condition:
        return condition
    stripped = re.sub(rf"\b{re.escape(column)} = \d+", "", condition)
    stripped = re.sub(rf"\b{CONJUNCTION}\s+{CONJUNCTION}\b", CONJUNCTION, stripped)
    stripped = re.sub(rf"^\s*{CONJUNCTION}\b", "", stripped)
    stripped = re.sub(rf"\b{CONJUNCTION}\s*$", "", stripped)
    return stripped.strip()


def apply_locking_condition(condition: str, column: str, expected_version: int) -> str:
    """
    Compose ``condition`` with the version check for ``expected_version``.

    Passing back a condition returned by an earlier call is fine: its version
    predicate is replaced, never combined.

    >>> apply_locking_condition("owner_id = %s", "version", 3)
    'owner_id = %s AND version = 3'
    >>> apply_locking_condition("owner_id = %s AND version = 3", "version", 4)
    'owner_id = %s AND version = 4'
    """
    base = strip_locking_condition(condition or "", column)
    predicate = f"{column} = {int(expected_version)}"
    if base:
        return f"{base} {CONJUNCTION} {predicate}"
    return predicate
