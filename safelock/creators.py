"""
Lookup of the user that created ("owns") a record.

Models that relate to the user table implement CreatorResolvable, usually by
way of CreatorLookupMixin. Caching is added from the outside with
cached_creator_lookup() so that it works with any resolver.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from django.core.cache import cache

from safelock.conf import get_creator_cache_timeout

CACHE_KEY_PREFIX = "creator:"


@runtime_checkable
class CreatorResolvable(Protocol):
    def creator_relation_name(self) -> Optional[str]:
        ...

    def creator_user_id(self, pk) -> Optional[Any]:
        ...


class CreatorLookupMixin:
    """Default CreatorResolvable implementation for models with a user foreign key.

    Subclasses set ``creator_relation`` to the name of that foreign key, or
    leave it as None when the model has no creator.
    """

    creator_relation: Optional[str] = None

    @classmethod
    def creator_relation_name(cls) -> Optional[str]:
        return cls.creator_relation

    @classmethod
    def creator_user_id(cls, pk) -> Optional[Any]:
        relation = cls.creator_relation_name()
        if relation is None:
            return None
        try:
            instance = cls._default_manager.select_related(relation).get(pk=pk)
        except cls.DoesNotExist:
            return None
        user = getattr(instance, relation)
        return user.pk if user is not None else None


class cached_creator_lookup:
    """
    Wrap a CreatorResolvable so ``creator_user_id`` results are cached.

    Args:
        resolver: Any CreatorResolvable (a model class, typically)
        timeout: Cache lifetime in seconds (default: SAFELOCK_CREATOR_CACHE_TIMEOUT)
    """

    def __init__(self, resolver: CreatorResolvable, timeout: Optional[int] = None):
        self.resolver = resolver
        self.timeout = get_creator_cache_timeout() if timeout is None else timeout

    def creator_relation_name(self) -> Optional[str]:
        return self.resolver.creator_relation_name()

    def _cache_key(self, pk) -> str:
        name = getattr(self.resolver, "__name__", type(self.resolver).__name__)
        return f"{CACHE_KEY_PREFIX}{name}:{pk}"

    def creator_user_id(self, pk) -> Optional[Any]:
        cache_key = self._cache_key(pk)
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        user_id = self.resolver.creator_user_id(pk)
        # Misses are not cached so a record created later is picked up.
        if user_id is not None:
            cache.set(cache_key, user_id, self.timeout)
        return user_id

    def invalidate(self, pk) -> None:
        cache.delete(self._cache_key(pk))
