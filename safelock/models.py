from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from safelock.conf import get_breadcrumbs_length
from safelock.creators import CreatorLookupMixin
from safelock.retry import safely_update_with_retry
from safelock.text import trim_for_display
from safelock.writer import OccWriter

# Values a form round-trip turns into each other.
_BLANK_VALUES = (None, "")


def loosely_equal(left: Any, right: Any) -> bool:
    """Compare a stored value with an in-memory one, treating None and "" as equal."""
    if left in _BLANK_VALUES and right in _BLANK_VALUES:
        return True
    if left == right:
        return True
    # Submitted form data is text, stored values are typed.
    if isinstance(left, str) != isinstance(right, str) and None not in (left, right):
        return str(left) == str(right)
    return False


class VersionedRecord(models.Model):
    """
    Base model for rows protected by optimistic locking.

    Subclasses get a ``version`` counter, creation/update timestamps,
    dirtiness checks against the values loaded from the database and the
    ``safely_*`` write methods.
    """

    LOCKING_FIELD = "version"
    CREATED_FIELD = "created_at"
    UPDATED_FIELD = "updated_at"

    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True, null=True)

    breadcrumbs_string_length: Optional[int] = None

    class Meta:
        abstract = True

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        # Deferred fields are not part of what was loaded.
        instance._loaded_snapshot = MappingProxyType(dict(zip(field_names, values)))
        return instance

    @property
    def attributes(self) -> Dict[str, Any]:
        """Current values of the loaded concrete fields, keyed by attname."""
        deferred = self.get_deferred_fields()
        return {
            field.attname: getattr(self, field.attname)
            for field in self._meta.concrete_fields
            if field.attname not in deferred
        }

    @property
    def loaded_snapshot(self) -> Mapping[str, Any]:
        """Field values as loaded from the database (empty for unsaved records)."""
        return getattr(self, "_loaded_snapshot", MappingProxyType({}))

    def is_dirty(self) -> bool:
        """Whether any field changed since the record was loaded."""
        current = self.attributes
        return any(
            not loosely_equal(value, current[name])
            for name, value in self.loaded_snapshot.items()
            if name in current
        )

    def is_attribute_dirty(self, name: str) -> bool:
        """Whether field ``name`` changed since the record was loaded.

        Raises:
            FieldDoesNotExist: If the model has no such field
        """
        attname = self._meta.get_field(name).attname
        snapshot = self.loaded_snapshot
        if attname not in snapshot:
            return False
        return not loosely_equal(snapshot[attname], getattr(self, attname))

    def trim_string_for_breadcrumbs(self, value: str) -> str:
        length = self.breadcrumbs_string_length
        if length is None:
            length = get_breadcrumbs_length()
        return trim_for_display(value, length)

    @classmethod
    def check_exists(cls, pk_value) -> bool:
        """Whether a row with primary key ``pk_value`` exists. Accepts any value."""
        try:
            return cls._default_manager.filter(pk=pk_value).exists()
        except (TypeError, ValueError, ValidationError):
            return False

    def safely_update_by_pk(
        self,
        pk,
        fields: Dict[str, Any],
        condition="",
        params: Optional[Sequence[Any]] = None,
    ) -> int:
        """Version-checked update. Always returns 1, raises StaleObjectConflict otherwise."""
        return OccWriter(self).update(pk, fields, condition, params).rows_affected

    def safely_delete_by_pk(self, pk, condition="", params: Optional[Sequence[Any]] = None) -> int:
        """Version-checked delete. Always returns 1, raises StaleObjectConflict otherwise."""
        return OccWriter(self).delete(pk, condition, params).rows_affected

    def safely_update_by_pk_with_retry(
        self,
        pk,
        fields: Dict[str, Any],
        attempts: Optional[int] = None,
        interval: Optional[int] = None,
        condition="",
        params: Optional[Sequence[Any]] = None,
    ) -> Union[int, bool]:
        """Version-checked update, retried on conflict. Returns False when all attempts failed."""
        return safely_update_with_retry(
            OccWriter(self), pk, fields, attempts=attempts, interval=interval, condition=condition, params=params
        )


class KeyValueEntry(CreatorLookupMixin, VersionedRecord):
    """Represents a persisted key/value pair."""

    key = models.CharField(max_length=255, unique=True)
    value = models.TextField(blank=True)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="kv_entries",
    )

    creator_relation = "owner"

    class Meta:
        ordering = ["key"]

    def __str__(self) -> str:
        return f"{self.key} (v{self.version})"


class KeyValueTag(VersionedRecord):
    """A label attached to an entry; removed together with it."""

    entry = models.ForeignKey(KeyValueEntry, on_delete=models.CASCADE, related_name="tags")
    name = models.CharField(max_length=64)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(fields=["entry", "name"], name="unique_tag_per_entry"),
        ]

    def __str__(self) -> str:
        return self.name
