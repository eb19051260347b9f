from django.contrib import admin

from .models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('action', 'resource', 'resource_id', 'owner', 'actor', 'created_at')
    list_filter = ('action', 'resource', 'created_at')
    search_fields = ('resource_id', 'owner__username', 'actor')
    readonly_fields = ('owner', 'action', 'resource', 'resource_id', 'details', 'ip_address', 'user_agent', 'actor')
