from __future__ import annotations

import logging
from dataclasses import dataclass

from django.db import transaction

from .models import AuditLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActorContext:
    """Request metadata attached to audit records."""

    label: str = ''
    ip_address: str | None = None
    user_agent: str = ''

    @classmethod
    def system(cls):
        return cls(label='system')


def record_audit(owner, action, resource, resource_id='', details=None, actor=None):
    """Persist an audit record; failures are logged and never propagate."""
    actor = actor or ActorContext(label=getattr(owner, 'username', '') or str(owner))
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                owner=owner,
                action=action,
                resource=resource,
                resource_id=str(resource_id or ''),
                details=details or {},
                ip_address=actor.ip_address,
                user_agent=actor.user_agent[:255],
                actor=actor.label[:150],
            )
    except Exception:
        logger.exception(
            "Failed to write audit record %s for %s #%s", action, resource, resource_id
        )
        return None
