"""Explicit atomic unit handle shared by the finance services.

Services accept an optional ``uow`` so several operations can be composed
into one database transaction. Entering a handle that is already open
creates a savepoint, so a failing inner step rolls back only itself when
the caller catches it, and everything when the caller lets it propagate.
"""

import logging

from django.db import DEFAULT_DB_ALIAS, transaction

logger = logging.getLogger(__name__)


class UnitOfWork:
    def __init__(self, using=DEFAULT_DB_ALIAS):
        self.using = using
        self._stack = []

    def __enter__(self):
        atomic = transaction.atomic(using=self.using)
        atomic.__enter__()
        self._stack.append(atomic)
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        atomic = self._stack.pop()
        return atomic.__exit__(exc_type, exc_value, traceback)

    @property
    def is_open(self):
        return bool(self._stack)

    def lock(self, queryset):
        """Return ``queryset`` with row locks taken in primary-key order."""
        return queryset.select_for_update().order_by('pk')

    def lock_one(self, queryset, **lookup):
        return queryset.select_for_update().get(**lookup)

    def on_commit(self, func):
        transaction.on_commit(func, using=self.using)

    def emit(self, signal, sender, **payload):
        """Send ``signal`` once the outermost transaction commits."""

        def _send():
            for receiver, response in signal.send_robust(sender=sender, **payload):
                if isinstance(response, Exception):
                    logger.error(
                        "Domain event receiver %s failed",
                        getattr(receiver, '__qualname__', receiver),
                        exc_info=response,
                        extra={'payload': payload},
                    )

        self.on_commit(_send)


def unit_of_work(uow=None):
    """Reuse the caller's handle or open a fresh one."""
    return uow if uow is not None else UnitOfWork()
