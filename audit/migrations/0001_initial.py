import uuid

import django.core.serializers.json
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('action', models.CharField(choices=[('account_create', 'Account Created'), ('account_update', 'Account Updated'), ('account_deactivate', 'Account Deactivated'), ('account_delete', 'Account Deleted'), ('transaction_create', 'Transaction Created'), ('transaction_update', 'Transaction Updated'), ('transaction_delete', 'Transaction Deleted'), ('liability_create', 'Liability Created'), ('liability_update', 'Liability Updated'), ('liability_delete', 'Liability Deleted'), ('liability_payment', 'Liability Payment'), ('bill_create', 'Bill Created'), ('bill_update', 'Bill Updated'), ('bill_delete', 'Bill Deleted'), ('bill_payment', 'Bill Payment'), ('budget_create', 'Budget Created'), ('budget_update', 'Budget Updated'), ('budget_delete', 'Budget Deleted'), ('goal_create', 'Goal Created'), ('goal_update', 'Goal Updated'), ('goal_delete', 'Goal Deleted'), ('recurring_approve', 'Recurring Approved'), ('recurring_skip', 'Recurring Skipped'), ('recurring_cancel', 'Recurring Cancelled'), ('settlement_execute', 'Settlement Executed'), ('settlement_notes', 'Settlement Notes Updated')], max_length=40)),
                ('resource', models.CharField(max_length=50)),
                ('resource_id', models.CharField(blank=True, max_length=64)),
                ('details', models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.CharField(blank=True, max_length=255)),
                ('actor', models.CharField(blank=True, help_text='Who performed the action', max_length=150)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='audit_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['owner', 'action'], name='audit_owner_action_idx'), models.Index(fields=['resource', 'resource_id'], name='audit_resource_idx')],
            },
        ),
    ]
