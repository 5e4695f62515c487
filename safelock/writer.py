"""
Version-checked ("optimistic locking") updates and deletes.

The version predicate is part of the statement's WHERE clause, so the check
and the increment run as one UPDATE. The affected-row count is the only
conflict signal; nothing is read back before writing.
"""

import logging
from typing import Any, Dict, NamedTuple, Optional, Sequence

from django.db import router, transaction
from django.db.models.deletion import Collector
from django.db.models.functions import Now
from django.utils.translation import gettext as _

from safelock.conditions import apply_locking_condition, validate_condition
from safelock.exceptions import StaleObjectConflict

logger = logging.getLogger(__name__)


class WriteOutcome(NamedTuple):
    """Result of a conditional write: rows touched and the condition actually used."""

    rows_affected: int
    condition: str


class OccWriter:
    """Issues version-checked writes on behalf of a single loaded record."""

    def __init__(self, record):
        self.record = record
        self.model = type(record)

    @property
    def locking_field(self) -> str:
        return self.model.LOCKING_FIELD

    @property
    def locking_column(self) -> str:
        return self.model._meta.get_field(self.locking_field).column

    @property
    def current_version(self) -> int:
        return getattr(self.record, self.locking_field)

    def compose_condition(self, condition) -> str:
        """Validate ``condition`` and append the check for the record's current version."""
        condition = validate_condition(condition)
        return apply_locking_condition(condition, self.locking_column, self.current_version)

    def _queryset(self, pk, condition: str, params: Optional[Sequence[Any]]):
        return self.model._default_manager.filter(pk=pk).extra(
            where=[condition], params=list(params or [])
        )

    def update(
        self,
        pk,
        fields: Dict[str, Any],
        condition="",
        params: Optional[Sequence[Any]] = None,
    ) -> WriteOutcome:
        """
        Update the row ``pk`` only if its stored version still matches the record's.

        Args:
            pk: Primary key of the row to update
            fields: Field name to value mapping to write
            condition: Extra SQL WHERE fragment (string only), may use ``%s`` placeholders
            params: Values bound to the placeholders in ``condition``

        Returns:
            WriteOutcome with ``rows_affected`` always 1

        Raises:
            UnsupportedConditionKind: If ``condition`` is not a string
            StaleObjectConflict: If the row was changed (or removed) by someone else
        """
        composed = self.compose_condition(condition)
        expected_version = self.current_version
        new_version = expected_version + 1

        values = dict(fields)
        values[self.locking_field] = new_version
        # QuerySet.update() skips auto_now, so the timestamp is set explicitly.
        values[self.model.UPDATED_FIELD] = Now()

        affected = self._queryset(pk, composed, params).update(**values)
        if affected != 1:
            raise StaleObjectConflict(
                _("Data has been updated by another user so avoiding the update"),
                model=self.model.__name__,
                pk=pk,
                expected_version=expected_version,
            )

        setattr(self.record, self.locking_field, new_version)
        if pk == self.record.pk:
            self.record.refresh_from_db(fields=[self.model.UPDATED_FIELD])
        logger.debug(f"Safely updated {self.model.__name__} pk={pk!r} to version {new_version}")
        return WriteOutcome(affected, composed)

    def delete(self, pk, condition="", params: Optional[Sequence[Any]] = None) -> WriteOutcome:
        """
        Delete the row ``pk`` only if its stored version still matches the record's.

        Raises:
            UnsupportedConditionKind: If ``condition`` is not a string
            StaleObjectConflict: If no row matched
        """
        composed = self.compose_condition(condition)
        expected_version = self.current_version

        db = router.db_for_write(self.model)
        with transaction.atomic(using=db):
            queryset = self._queryset(pk, composed, params)
            if Collector(using=db).can_fast_delete(queryset):
                # Single DELETE carrying the version predicate.
                _total, per_model = queryset.delete()
                affected = per_model.get(self.model._meta.label, 0)
            else:
                # Cascades make Django select first and delete by pk, so the
                # matched row stays locked until the DELETE runs.
                locked = list(queryset.select_for_update().values_list("pk", flat=True))
                affected = len(locked)
                if affected == 1:
                    self.model._default_manager.filter(pk__in=locked).delete()
        if affected != 1:
            raise StaleObjectConflict(
                _("Data has been updated by another user so avoiding deletion"),
                model=self.model.__name__,
                pk=pk,
                expected_version=expected_version,
            )

        logger.debug(f"Safely deleted {self.model.__name__} pk={pk!r} at version {expected_version}")
        return WriteOutcome(affected, composed)

    def refresh_version(self, pk=None) -> bool:
        """
        Reload the stored version of row ``pk`` (default: the record's) into the record.

        Returns:
            False if the row no longer exists; the in-memory version is left unchanged then
        """
        if pk is None:
            pk = self.record.pk
        version = (
            self.model._default_manager.filter(pk=pk)
            .values_list(self.locking_field, flat=True)
            .first()
        )
        if version is None:
            return False
        setattr(self.record, self.locking_field, version)
        return True
