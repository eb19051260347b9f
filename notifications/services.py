"""Utility functions for dispatching notifications.

This module centralizes notification creation so callers only need to
invoke :func:`dispatch_notification`. Delivery (push, email, sockets) is
handled elsewhere; here a notification is only persisted and logged.
"""

from __future__ import annotations

import logging
from typing import Any

from django.db import transaction

from common.enums import PriorityLevel
from .models import Notification

logger = logging.getLogger(__name__)


def dispatch_notification(
    recipient: Any,
    kind: str,
    message: str,
    priority: str = PriorityLevel.MEDIUM,
    related: Any = None,
    title: str = '',
    scheduled_for=None,
    expires_at=None,
) -> Notification | None:
    """Record a notification for ``recipient``.

    The row is written inside its own savepoint: a failure here is logged
    and swallowed so it never rolls back the operation that triggered it.
    Returns the created notification, or ``None`` when writing failed.
    """
    logger.info(
        "Dispatching %s notification to %s: %s",
        kind, recipient, message,
        extra={'kind': kind, 'priority': priority},
    )
    try:
        with transaction.atomic():
            return Notification.objects.create(
                recipient=recipient,
                kind=kind,
                priority=priority,
                title=title or kind.replace('_', ' ').title(),
                message=message,
                related=related,
                scheduled_for=scheduled_for,
                expires_at=expires_at,
            )
    except Exception:
        logger.exception("Failed to record %s notification for %s", kind, recipient)
        return None
