import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('contenttypes', '0002_remove_content_type_name'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('kind', models.CharField(choices=[('budget_threshold', 'Budget Threshold'), ('budget_exceeded', 'Budget Exceeded'), ('bill_reminder', 'Bill Reminder'), ('bill_paid', 'Bill Paid'), ('liability_payment', 'Liability Payment'), ('goal_milestone', 'Goal Milestone'), ('goal_completed', 'Goal Completed'), ('recurring_approval', 'Recurring Approval'), ('recurring_executed', 'Recurring Executed'), ('settlement_completed', 'Settlement Completed'), ('settlement_reminder', 'Settlement Reminder')], max_length=40)),
                ('priority', models.CharField(choices=[('low', 'Low'), ('medium', 'Medium'), ('high', 'High'), ('urgent', 'Urgent')], default='medium', max_length=10)),
                ('title', models.CharField(blank=True, max_length=255)),
                ('message', models.TextField()),
                ('object_id', models.PositiveBigIntegerField(blank=True, null=True)),
                ('scheduled_for', models.DateTimeField(blank=True, null=True)),
                ('expires_at', models.DateTimeField(blank=True, null=True)),
                ('is_read', models.BooleanField(default=False)),
                ('read_at', models.DateTimeField(blank=True, null=True)),
                ('content_type', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, to='contenttypes.contenttype')),
                ('recipient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['recipient', 'is_read'], name='notif_recipient_read_idx'), models.Index(fields=['kind'], name='notif_kind_idx'), models.Index(fields=['scheduled_for'], name='notif_scheduled_idx')],
            },
        ),
    ]
