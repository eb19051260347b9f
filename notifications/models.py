from django.conf import settings
from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.db import models

from common.enums import NotificationKind, PriorityLevel
from core.models import BaseModel


class Notification(BaseModel):
    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name='notifications',
        on_delete=models.CASCADE,
    )
    kind = models.CharField(max_length=40, choices=NotificationKind.choices)
    priority = models.CharField(max_length=10, choices=PriorityLevel.choices, default=PriorityLevel.MEDIUM)
    title = models.CharField(max_length=255, blank=True)
    message = models.TextField()

    # Generic relation to the entity the notification is about
    content_type = models.ForeignKey(
        ContentType,
        null=True,
        blank=True,
        on_delete=models.CASCADE,
    )
    object_id = models.PositiveBigIntegerField(null=True, blank=True)
    related = GenericForeignKey('content_type', 'object_id')

    scheduled_for = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['recipient', 'is_read'], name='notif_recipient_read_idx'),
            models.Index(fields=['kind'], name='notif_kind_idx'),
            models.Index(fields=['scheduled_for'], name='notif_scheduled_idx'),
        ]

    def __str__(self) -> str:
        return f"[{self.priority}] {self.kind} -> {self.recipient}"
