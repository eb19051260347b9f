from django.contrib import admin

from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('recipient', 'kind', 'priority', 'title', 'is_read', 'scheduled_for', 'created_at')
    list_filter = ('kind', 'priority', 'is_read', 'created_at')
    search_fields = ('title', 'message', 'recipient__username')
