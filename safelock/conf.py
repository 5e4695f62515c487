"""
Settings lookups for the safelock app.

Every value is read lazily so tests can use override_settings().
"""

from django.conf import settings

DEFAULT_RETRY_ATTEMPTS = 5
DEFAULT_RETRY_INTERVAL = 500000  # microseconds
DEFAULT_BREADCRUMBS_LENGTH = 20
DEFAULT_CREATOR_CACHE_TIMEOUT = 3600  # seconds


def get_retry_attempts() -> int:
    return getattr(settings, "SAFELOCK_RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS)


def get_retry_interval() -> int:
    """Pause between retry attempts, in microseconds."""
    return getattr(settings, "SAFELOCK_RETRY_INTERVAL", DEFAULT_RETRY_INTERVAL)


def refresh_on_conflict() -> bool:
    """Whether the retry loop reloads the stored version after a conflict."""
    return getattr(settings, "SAFELOCK_REFRESH_ON_CONFLICT", True)


def get_breadcrumbs_length() -> int:
    return getattr(settings, "SAFELOCK_BREADCRUMBS_LENGTH", DEFAULT_BREADCRUMBS_LENGTH)


def get_creator_cache_timeout() -> int:
    return getattr(settings, "SAFELOCK_CREATOR_CACHE_TIMEOUT", DEFAULT_CREATOR_CACHE_TIMEOUT)
