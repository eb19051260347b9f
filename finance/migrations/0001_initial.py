import uuid
from decimal import Decimal

import django.core.serializers.json
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import finance.models

ACCOUNT_TYPES = [('cash', 'Cash'), ('bank', 'Bank'), ('savings', 'Savings'), ('investment', 'Investment'), ('loan', 'Loan')]
EXPENSE_CATEGORIES = [
    ('food', 'Food & Dining'), ('groceries', 'Groceries'), ('transport', 'Transportation'),
    ('utilities', 'Utilities'), ('rent', 'Rent & Housing'), ('healthcare', 'Healthcare'),
    ('education', 'Education'), ('entertainment', 'Entertainment'), ('shopping', 'Shopping'),
    ('insurance', 'Insurance'), ('subscriptions', 'Subscriptions'), ('gifts', 'Gifts & Donations'),
    ('debt_payment', 'Debt Payment'), ('other_expense', 'Other Expense'),
]
FREQUENCIES = [('daily', 'Daily'), ('weekly', 'Weekly'), ('monthly', 'Monthly'), ('yearly', 'Yearly')]
POSITIVE_MONEY = [django.core.validators.MinValueValidator(Decimal('0.01'))]
INTERVAL_RANGE = [django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(365)]


def base_fields():
    return [
        ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
        ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
        ('created_at', models.DateTimeField(auto_now_add=True)),
        ('updated_at', models.DateTimeField(auto_now=True)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Account',
            fields=base_fields() + [
                ('name', models.CharField(max_length=100)),
                ('type', models.CharField(choices=ACCOUNT_TYPES, max_length=20)),
                ('balance', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('opening_balance', models.DecimalField(decimal_places=2, default=0, help_text='Balance at the start of the current settlement period', max_digits=14)),
                ('is_active', models.BooleanField(default=True)),
                ('description', models.TextField(blank=True, help_text='Additional account details')),
                ('last_transaction_at', models.DateTimeField(blank=True, null=True)),
                ('last_settlement_date', models.DateTimeField(blank=True, null=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='finance_accounts', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['name'],
                'indexes': [models.Index(fields=['owner', 'is_active'], name='account_owner_active_idx')],
                'constraints': [models.CheckConstraint(condition=models.Q(('balance__gte', 0), ('type', 'loan'), _connector='OR'), name='account_balance_non_negative')],
            },
        ),
        migrations.CreateModel(
            name='Liability',
            fields=base_fields() + [
                ('description', models.CharField(max_length=255)),
                ('creditor', models.CharField(blank=True, max_length=150)),
                ('total_amount', models.DecimalField(decimal_places=2, max_digits=14, validators=POSITIVE_MONEY)),
                ('paid_amount', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('remaining_amount', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('status', models.CharField(choices=[('active', 'Active'), ('partially_paid', 'Partially Paid'), ('fully_paid', 'Fully Paid')], default='active', max_length=20)),
                ('created_date', models.DateTimeField(default=django.utils.timezone.now)),
                ('expected_payment_date', models.DateField(blank=True, null=True)),
                ('settlement_period', models.CharField(db_index=True, max_length=7)),
                ('carried_forward_from', models.CharField(blank=True, max_length=7)),
                ('notes', models.TextField(blank=True)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('account', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='liabilities', to='finance.account')),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='liabilities', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name_plural': 'liabilities',
                'ordering': ['-created_date'],
                'indexes': [
                    models.Index(fields=['owner', 'status'], name='liability_owner_status_idx'),
                    models.Index(fields=['owner', 'settlement_period'], name='liability_owner_period_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('paid_amount__gte', 0)), name='liability_paid_non_negative'),
                    models.CheckConstraint(condition=models.Q(('paid_amount__lte', models.F('total_amount'))), name='liability_paid_within_total'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Transaction',
            fields=base_fields() + [
                ('type', models.CharField(choices=[('income', 'Income'), ('expense', 'Expense'), ('transfer', 'Transfer'), ('liability', 'Liability')], max_length=20)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=14, validators=POSITIVE_MONEY)),
                ('category', models.CharField(blank=True, help_text='Income or expense category, depending on type', max_length=50)),
                ('description', models.CharField(blank=True, max_length=255)),
                ('date', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('notes', models.TextField(blank=True)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('is_liability_payment', models.BooleanField(default=False)),
                ('is_recurring', models.BooleanField(default=False)),
                ('settlement_period', models.CharField(db_index=True, max_length=7)),
                ('is_settled', models.BooleanField(default=False)),
                ('settled_at', models.DateTimeField(blank=True, null=True)),
                ('account', models.ForeignKey(help_text='Source account', on_delete=django.db.models.deletion.PROTECT, related_name='outgoing_transactions', to='finance.account')),
                ('destination_account', models.ForeignKey(blank=True, help_text='Required for transfers', null=True, on_delete=django.db.models.deletion.PROTECT, related_name='incoming_transactions', to='finance.account')),
                ('liability', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='transactions', to='finance.liability')),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ledger_transactions', to=settings.AUTH_USER_MODEL)),
                ('recurring_parent', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='recurring_instances', to='finance.transaction')),
            ],
            options={
                'ordering': ['-date', '-created_at'],
                'indexes': [
                    models.Index(fields=['owner', 'type', 'date'], name='tx_owner_type_date_idx'),
                    models.Index(fields=['owner', 'settlement_period'], name='tx_owner_period_idx'),
                    models.Index(fields=['account', 'date'], name='tx_account_date_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('amount__gt', 0)), name='transaction_amount_positive'),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(('destination_account__isnull', False), ('type', 'transfer')),
                            models.Q(models.Q(('type', 'transfer'), _negated=True), ('destination_account__isnull', True)),
                            _connector='OR',
                        ),
                        name='transaction_destination_only_for_transfers',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='RecurringConfig',
            fields=base_fields() + [
                ('frequency', models.CharField(choices=FREQUENCIES, max_length=10)),
                ('interval', models.PositiveSmallIntegerField(default=1, validators=INTERVAL_RANGE)),
                ('end_date', models.DateTimeField(blank=True, null=True)),
                ('last_executed', models.DateTimeField(blank=True, null=True)),
                ('next_execution', models.DateTimeField(db_index=True)),
                ('requires_approval', models.BooleanField(default=True)),
                ('is_approved', models.BooleanField(default=False)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('executions_count', models.PositiveIntegerField(default=0)),
                ('skipped_count', models.PositiveIntegerField(default=0)),
                ('template', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='recurring_config', to='finance.transaction')),
            ],
            options={
                'ordering': ['next_execution'],
                'constraints': [models.CheckConstraint(condition=models.Q(('interval__gte', 1), ('interval__lte', 365)), name='recurring_interval_range')],
            },
        ),
        migrations.CreateModel(
            name='LiabilityPayment',
            fields=base_fields() + [
                ('amount', models.DecimalField(decimal_places=2, max_digits=14, validators=POSITIVE_MONEY)),
                ('date', models.DateTimeField(default=django.utils.timezone.now)),
                ('notes', models.TextField(blank=True)),
                ('account', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='liability_payments', to='finance.account')),
                ('liability', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='payments', to='finance.liability')),
                ('transaction', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='liability_payment', to='finance.transaction')),
            ],
            options={
                'ordering': ['date', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Bill',
            fields=base_fields() + [
                ('name', models.CharField(max_length=150)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=14, validators=POSITIVE_MONEY)),
                ('category', models.CharField(choices=EXPENSE_CATEGORIES, default='utilities', max_length=50)),
                ('due_date', models.DateField(db_index=True)),
                ('is_recurring', models.BooleanField(default=False)),
                ('frequency', models.CharField(blank=True, choices=FREQUENCIES, max_length=10)),
                ('interval', models.PositiveSmallIntegerField(default=1, validators=INTERVAL_RANGE)),
                ('recurrence_end_date', models.DateField(blank=True, null=True)),
                ('paid_amount', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('status', models.CharField(choices=[('upcoming', 'Upcoming'), ('overdue', 'Overdue'), ('partially_paid', 'Partially Paid'), ('paid', 'Paid')], default='upcoming', max_length=20)),
                ('reminder_days', models.JSONField(blank=True, default=finance.models.default_reminder_days, help_text='Days before the due date to send reminders')),
                ('notes', models.TextField(blank=True)),
                ('default_account', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='bills', to='finance.account')),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='bills', to=settings.AUTH_USER_MODEL)),
                ('previous_bill', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='next_bill', to='finance.bill')),
            ],
            options={
                'ordering': ['due_date'],
                'indexes': [models.Index(fields=['owner', 'status', 'due_date'], name='bill_owner_status_due_idx')],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('paid_amount__gte', 0)), name='bill_paid_non_negative'),
                    models.CheckConstraint(condition=models.Q(('paid_amount__lte', models.F('amount'))), name='bill_paid_within_amount'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BillPayment',
            fields=base_fields() + [
                ('amount', models.DecimalField(decimal_places=2, max_digits=14, validators=POSITIVE_MONEY)),
                ('date', models.DateTimeField(default=django.utils.timezone.now)),
                ('notes', models.TextField(blank=True)),
                ('account', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bill_payments', to='finance.account')),
                ('bill', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='payments', to='finance.bill')),
                ('transaction', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='bill_payment', to='finance.transaction')),
            ],
            options={
                'ordering': ['date', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Budget',
            fields=base_fields() + [
                ('name', models.CharField(max_length=100)),
                ('category', models.CharField(choices=EXPENSE_CATEGORIES, max_length=50)),
                ('period', models.CharField(choices=[('weekly', 'Weekly'), ('monthly', 'Monthly'), ('yearly', 'Yearly')], default='monthly', max_length=20)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=14, validators=POSITIVE_MONEY)),
                ('spent', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('start_date', models.DateField()),
                ('end_date', models.DateField()),
                ('alert_threshold', models.DecimalField(decimal_places=2, default=80, help_text='Alert when spent percentage reaches this threshold', max_digits=5, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('alert_level', models.CharField(choices=[('none', 'None'), ('warning', 'Warning'), ('exceeded', 'Exceeded')], default='none', max_length=10)),
                ('is_active', models.BooleanField(default=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='budgets', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-start_date', 'category'],
                'indexes': [models.Index(fields=['owner', 'category', 'is_active'], name='budget_owner_category_idx')],
                'constraints': [models.CheckConstraint(condition=models.Q(('end_date__gte', models.F('start_date'))), name='budget_window_ordered')],
            },
        ),
        migrations.CreateModel(
            name='Goal',
            fields=base_fields() + [
                ('name', models.CharField(max_length=150)),
                ('description', models.TextField(blank=True)),
                ('type', models.CharField(choices=[('savings', 'Savings'), ('investment', 'Investment'), ('debt_payoff', 'Debt Payoff'), ('expense_reduction', 'Expense Reduction')], max_length=20)),
                ('priority', models.CharField(choices=[('low', 'Low'), ('medium', 'Medium'), ('high', 'High'), ('urgent', 'Urgent')], default='medium', max_length=10)),
                ('target_amount', models.DecimalField(decimal_places=2, max_digits=14, validators=POSITIVE_MONEY)),
                ('current_amount', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('start_date', models.DateTimeField(default=django.utils.timezone.now)),
                ('target_date', models.DateTimeField()),
                ('linked_category', models.CharField(blank=True, choices=EXPENSE_CATEGORIES, max_length=50)),
                ('status', models.CharField(choices=[('active', 'Active'), ('completed', 'Completed'), ('abandoned', 'Abandoned'), ('paused', 'Paused')], default='active', max_length=20)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('progress_percentage', models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ('monthly_target', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('monthly_contribution', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('projected_completion_date', models.DateTimeField(blank=True, null=True)),
                ('is_on_track', models.BooleanField(default=True)),
                ('linked_account', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='goals', to='finance.account')),
                ('linked_liability', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='goals', to='finance.liability')),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='goals', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['target_date'],
                'indexes': [models.Index(fields=['owner', 'status'], name='goal_owner_status_idx')],
                'constraints': [models.CheckConstraint(condition=models.Q(('target_date__gt', models.F('start_date'))), name='goal_target_after_start')],
            },
        ),
        migrations.CreateModel(
            name='GoalMilestone',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('percentage', models.PositiveSmallIntegerField()),
                ('amount', models.DecimalField(decimal_places=2, max_digits=14)),
                ('target_date', models.DateTimeField()),
                ('is_achieved', models.BooleanField(default=False)),
                ('achieved_at', models.DateTimeField(blank=True, null=True)),
                ('goal', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='milestones', to='finance.goal')),
            ],
            options={
                'ordering': ['percentage'],
                'constraints': [models.UniqueConstraint(fields=('goal', 'percentage'), name='unique_goal_milestone_percentage')],
            },
        ),
        migrations.CreateModel(
            name='Settlement',
            fields=base_fields() + [
                ('period', models.CharField(max_length=7)),
                ('period_type', models.CharField(choices=[('monthly', 'Monthly'), ('yearly', 'Yearly')], max_length=10)),
                ('period_start', models.DateTimeField()),
                ('period_end', models.DateTimeField()),
                ('total_income', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('total_expenses', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('total_transfers', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('total_liability_payments', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('net_cash_flow', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('income_by_category', models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ('expenses_by_category', models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ('liability_summary', models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ('total_liability_amount', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('total_liability_paid', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('total_liability_remaining', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('carry_forward_balance', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('is_settled', models.BooleanField(default=True)),
                ('settled_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('settled_by', models.CharField(choices=[('manual', 'Manual'), ('automatic', 'Automatic')], default='manual', max_length=10)),
                ('notes', models.TextField(blank=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='settlements', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-period_start'],
                'constraints': [models.UniqueConstraint(fields=('owner', 'period'), name='unique_settlement_per_owner_period')],
            },
        ),
        migrations.CreateModel(
            name='SettlementAccountSnapshot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('account_name', models.CharField(max_length=100)),
                ('account_type', models.CharField(choices=ACCOUNT_TYPES, max_length=20)),
                ('opening_balance', models.DecimalField(decimal_places=2, max_digits=14)),
                ('closing_balance', models.DecimalField(decimal_places=2, max_digits=14)),
                ('total_inflow', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('total_outflow', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('account', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='settlement_snapshots', to='finance.account')),
                ('settlement', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='account_snapshots', to='finance.settlement')),
            ],
            options={
                'ordering': ['account_name'],
            },
        ),
    ]
