from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

from common.enums import AuditAction
from core.models import BaseModel


class AuditLog(BaseModel):
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='audit_logs',
    )
    action = models.CharField(max_length=40, choices=AuditAction.choices)
    resource = models.CharField(max_length=50)
    resource_id = models.CharField(max_length=64, blank=True)
    details = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=255, blank=True)
    actor = models.CharField(max_length=150, blank=True, help_text="Who performed the action")

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['owner', 'action'], name='audit_owner_action_idx'),
            models.Index(fields=['resource', 'resource_id'], name='audit_resource_idx'),
        ]

    def __str__(self):
        return f"{self.action} {self.resource}#{self.resource_id}"
