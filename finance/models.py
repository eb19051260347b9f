from datetime import date
from decimal import Decimal

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from common.enums import (
    AccountType, TransactionType, Frequency, RecurringState, LiabilityStatus,
    BillStatus, BudgetPeriod, BudgetAlertLevel, GoalType, GoalStatus,
    PeriodType, SettledBy, PriorityLevel, ExpenseCategory,
)
from common.exceptions import SettledImmutableError
from core.models import BaseModel

ZERO = Decimal('0.00')
MONEY = {'max_digits': 14, 'decimal_places': 2}


def default_reminder_days():
    return list(settings.FINANCE['DEFAULT_BILL_REMINDER_DAYS'])


def _with_derived_fields(kwargs, *derived):
    """Make sure a partial save also writes fields recomputed in ``save``."""
    update_fields = kwargs.get('update_fields')
    if update_fields is not None:
        kwargs['update_fields'] = set(update_fields) | set(derived) | {'updated_at'}
    return kwargs


class Account(BaseModel):
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='finance_accounts')
    name = models.CharField(max_length=100)
    type = models.CharField(max_length=20, choices=AccountType.choices)
    balance = models.DecimalField(**MONEY, default=0)
    opening_balance = models.DecimalField(**MONEY, default=0,
                                          help_text="Balance at the start of the current settlement period")
    is_active = models.BooleanField(default=True)
    description = models.TextField(blank=True, help_text="Additional account details")
    last_transaction_at = models.DateTimeField(null=True, blank=True)
    last_settlement_date = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['owner', 'is_active'], name='account_owner_active_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(balance__gte=0) | Q(type=AccountType.LOAN),
                name='account_balance_non_negative',
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.type})"

    @property
    def allows_negative_balance(self):
        return self.type == AccountType.LOAN


class Transaction(BaseModel):
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='ledger_transactions')
    type = models.CharField(max_length=20, choices=TransactionType.choices)
    amount = models.DecimalField(**MONEY, validators=[MinValueValidator(Decimal('0.01'))])
    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name='outgoing_transactions',
                                help_text="Source account")
    destination_account = models.ForeignKey(
        Account, on_delete=models.PROTECT, null=True, blank=True,
        related_name='incoming_transactions', help_text="Required for transfers",
    )
    category = models.CharField(max_length=50, blank=True,
                                help_text="Income or expense category, depending on type")

    description = models.CharField(max_length=255, blank=True)
    date = models.DateTimeField(default=timezone.now, db_index=True)
    notes = models.TextField(blank=True)
    tags = models.JSONField(default=list, blank=True)

    # Payment linkage
    is_liability_payment = models.BooleanField(default=False)
    liability = models.ForeignKey(
        'finance.Liability', null=True, blank=True, on_delete=models.SET_NULL,
        related_name='transactions',
    )

    # Recurring templates carry a RecurringConfig; materialised copies point back here
    is_recurring = models.BooleanField(default=False)
    recurring_parent = models.ForeignKey(
        'self', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='recurring_instances',
    )

    # Settlement
    settlement_period = models.CharField(max_length=7, db_index=True)
    is_settled = models.BooleanField(default=False)
    settled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-date', '-created_at']
        indexes = [
            models.Index(fields=['owner', 'type', 'date'], name='tx_owner_type_date_idx'),
            models.Index(fields=['owner', 'settlement_period'], name='tx_owner_period_idx'),
            models.Index(fields=['account', 'date'], name='tx_account_date_idx'),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name='transaction_amount_positive'),
            models.CheckConstraint(
                condition=(
                    Q(type=TransactionType.TRANSFER, destination_account__isnull=False)
                    | (~Q(type=TransactionType.TRANSFER) & Q(destination_account__isnull=True))
                ),
                name='transaction_destination_only_for_transfers',
            ),
        ]

    def __str__(self):
        return f"{self.get_type_display()}: {self.amount} - {self.description[:50]}"

    @property
    def is_template(self):
        return self.is_recurring

    @property
    def account_ids(self):
        ids = [self.account_id]
        if self.destination_account_id:
            ids.append(self.destination_account_id)
        return ids


class RecurringConfig(BaseModel):
    template = models.OneToOneField(Transaction, on_delete=models.CASCADE, related_name='recurring_config')
    frequency = models.CharField(max_length=10, choices=Frequency.choices)
    interval = models.PositiveSmallIntegerField(
        default=1, validators=[MinValueValidator(1), MaxValueValidator(365)],
    )
    end_date = models.DateTimeField(null=True, blank=True)
    last_executed = models.DateTimeField(null=True, blank=True)
    next_execution = models.DateTimeField(db_index=True)
    requires_approval = models.BooleanField(default=True)
    is_approved = models.BooleanField(default=False)
    approved_at = models.DateTimeField(null=True, blank=True)
    executions_count = models.PositiveIntegerField(default=0)
    skipped_count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['next_execution']
        constraints = [
            models.CheckConstraint(
                condition=Q(interval__gte=1) & Q(interval__lte=365),
                name='recurring_interval_range',
            ),
        ]

    def __str__(self):
        return f"Every {self.interval} {self.frequency} -> {self.template_id}"

    def is_ended(self, now=None):
        now = now or timezone.now()
        if self.end_date is None:
            return False
        return self.end_date <= now or self.next_execution > self.end_date

    def state(self, now=None):
        now = now or timezone.now()
        if self.is_ended(now):
            return RecurringState.ENDED
        if self.next_execution > now:
            return RecurringState.SCHEDULED
        if self.requires_approval and not self.is_approved:
            return RecurringState.PENDING_APPROVAL
        return RecurringState.DUE


class Liability(BaseModel):
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='liabilities')
    description = models.CharField(max_length=255)
    creditor = models.CharField(max_length=150, blank=True)
    total_amount = models.DecimalField(**MONEY, validators=[MinValueValidator(Decimal('0.01'))])
    paid_amount = models.DecimalField(**MONEY, default=0)
    remaining_amount = models.DecimalField(**MONEY, default=0)
    status = models.CharField(max_length=20, choices=LiabilityStatus.choices, default=LiabilityStatus.ACTIVE)
    account = models.ForeignKey(Account, null=True, blank=True, on_delete=models.SET_NULL,
                                related_name='liabilities')
    created_date = models.DateTimeField(default=timezone.now)
    expected_payment_date = models.DateField(null=True, blank=True)
    settlement_period = models.CharField(max_length=7, db_index=True)
    carried_forward_from = models.CharField(max_length=7, blank=True)
    notes = models.TextField(blank=True)
    tags = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ['-created_date']
        verbose_name_plural = 'liabilities'
        indexes = [
            models.Index(fields=['owner', 'status'], name='liability_owner_status_idx'),
            models.Index(fields=['owner', 'settlement_period'], name='liability_owner_period_idx'),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(paid_amount__gte=0), name='liability_paid_non_negative'),
            models.CheckConstraint(
                condition=Q(paid_amount__lte=F('total_amount')),
                name='liability_paid_within_total',
            ),
        ]

    def __str__(self):
        return f"{self.description} ({self.paid_amount}/{self.total_amount})"

    @staticmethod
    def derive(total_amount, paid_amount):
        """Return ``(remaining_amount, status)`` for the given amounts."""
        remaining = total_amount - paid_amount
        if remaining <= 0:
            return ZERO, LiabilityStatus.FULLY_PAID
        if paid_amount > 0:
            return remaining, LiabilityStatus.PARTIALLY_PAID
        return remaining, LiabilityStatus.ACTIVE

    def refresh_derived(self):
        self.remaining_amount, self.status = self.derive(self.total_amount, self.paid_amount)

    def save(self, *args, **kwargs):
        self.refresh_derived()
        super().save(*args, **_with_derived_fields(kwargs, 'remaining_amount', 'status'))


class LiabilityPayment(BaseModel):
    liability = models.ForeignKey(Liability, on_delete=models.CASCADE, related_name='payments')
    transaction = models.OneToOneField(Transaction, on_delete=models.PROTECT, related_name='liability_payment')
    amount = models.DecimalField(**MONEY, validators=[MinValueValidator(Decimal('0.01'))])
    date = models.DateTimeField(default=timezone.now)
    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name='liability_payments')
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['date', 'id']

    def __str__(self):
        return f"Payment {self.amount} on {self.liability_id}"


def bill_status(amount, paid_amount, due_date: date, today: date) -> str:
    if paid_amount >= amount:
        return BillStatus.PAID
    if paid_amount > 0:
        return BillStatus.PARTIALLY_PAID
    if due_date < today:
        return BillStatus.OVERDUE
    return BillStatus.UPCOMING


class Bill(BaseModel):
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='bills')
    name = models.CharField(max_length=150)
    amount = models.DecimalField(**MONEY, validators=[MinValueValidator(Decimal('0.01'))])
    category = models.CharField(max_length=50, choices=ExpenseCategory.choices, default=ExpenseCategory.UTILITIES)
    due_date = models.DateField(db_index=True)

    # Recurring pattern
    is_recurring = models.BooleanField(default=False)
    frequency = models.CharField(max_length=10, choices=Frequency.choices, blank=True)
    interval = models.PositiveSmallIntegerField(
        default=1, validators=[MinValueValidator(1), MaxValueValidator(365)],
    )
    recurrence_end_date = models.DateField(null=True, blank=True)

    paid_amount = models.DecimalField(**MONEY, default=0)
    status = models.CharField(max_length=20, choices=BillStatus.choices, default=BillStatus.UPCOMING)
    default_account = models.ForeignKey(Account, null=True, blank=True, on_delete=models.SET_NULL,
                                        related_name='bills')
    reminder_days = models.JSONField(default=default_reminder_days, blank=True,
                                     help_text="Days before the due date to send reminders")
    notes = models.TextField(blank=True)
    previous_bill = models.OneToOneField(
        'self', null=True, blank=True, on_delete=models.SET_NULL, related_name='next_bill',
    )

    class Meta:
        ordering = ['due_date']
        indexes = [
            models.Index(fields=['owner', 'status', 'due_date'], name='bill_owner_status_due_idx'),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(paid_amount__gte=0), name='bill_paid_non_negative'),
            models.CheckConstraint(condition=Q(paid_amount__lte=F('amount')), name='bill_paid_within_amount'),
        ]

    def __str__(self):
        return f"{self.name} due {self.due_date}"

    @property
    def outstanding_amount(self):
        return max(self.amount - self.paid_amount, ZERO)

    def compute_status(self, today=None):
        return bill_status(self.amount, self.paid_amount, self.due_date, today or timezone.localdate())

    @property
    def current_status(self):
        return self.compute_status()

    def save(self, *args, **kwargs):
        self.status = self.compute_status()
        super().save(*args, **_with_derived_fields(kwargs, 'status'))


class BillPayment(BaseModel):
    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name='payments')
    transaction = models.OneToOneField(Transaction, on_delete=models.PROTECT, related_name='bill_payment')
    amount = models.DecimalField(**MONEY, validators=[MinValueValidator(Decimal('0.01'))])
    date = models.DateTimeField(default=timezone.now)
    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name='bill_payments')
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['date', 'id']


class Budget(BaseModel):
    """
    Spending limit for one expense category over an inclusive date window
    """
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='budgets')
    name = models.CharField(max_length=100)
    category = models.CharField(max_length=50, choices=ExpenseCategory.choices)
    period = models.CharField(max_length=20, choices=BudgetPeriod.choices, default=BudgetPeriod.MONTHLY)
    amount = models.DecimalField(**MONEY, validators=[MinValueValidator(Decimal('0.01'))])
    spent = models.DecimalField(**MONEY, default=0)
    start_date = models.DateField()
    end_date = models.DateField()
    alert_threshold = models.DecimalField(
        max_digits=5, decimal_places=2, default=80,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text="Alert when spent percentage reaches this threshold",
    )
    alert_level = models.CharField(max_length=10, choices=BudgetAlertLevel.choices, default=BudgetAlertLevel.NONE)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['-start_date', 'category']
        indexes = [
            models.Index(fields=['owner', 'category', 'is_active'], name='budget_owner_category_idx'),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(end_date__gte=F('start_date')), name='budget_window_ordered'),
        ]

    def __str__(self):
        return f"{self.name} - {self.get_category_display()} ({self.get_period_display()})"

    @property
    def remaining_amount(self):
        return max(self.amount - self.spent, ZERO)

    @property
    def spent_percentage(self):
        if self.amount > 0:
            return (self.spent / self.amount) * 100
        return Decimal('0')

    @property
    def is_exceeded(self):
        return self.spent > self.amount

    def alert_level_for(self, percentage):
        if percentage >= 100:
            return BudgetAlertLevel.EXCEEDED
        if percentage >= self.alert_threshold:
            return BudgetAlertLevel.WARNING
        return BudgetAlertLevel.NONE


class Goal(BaseModel):
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='goals')
    name = models.CharField(max_length=150)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=20, choices=GoalType.choices)
    priority = models.CharField(max_length=10, choices=PriorityLevel.choices, default=PriorityLevel.MEDIUM)
    target_amount = models.DecimalField(**MONEY, validators=[MinValueValidator(Decimal('0.01'))])
    current_amount = models.DecimalField(**MONEY, default=0)
    start_date = models.DateTimeField(default=timezone.now)
    target_date = models.DateTimeField()

    linked_account = models.ForeignKey(Account, null=True, blank=True, on_delete=models.SET_NULL,
                                       related_name='goals')
    linked_liability = models.ForeignKey(Liability, null=True, blank=True, on_delete=models.SET_NULL,
                                         related_name='goals')
    linked_category = models.CharField(max_length=50, choices=ExpenseCategory.choices, blank=True)

    status = models.CharField(max_length=20, choices=GoalStatus.choices, default=GoalStatus.ACTIVE)
    completed_at = models.DateTimeField(null=True, blank=True)

    # Progress projection
    progress_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    monthly_target = models.DecimalField(**MONEY, default=0)
    monthly_contribution = models.DecimalField(**MONEY, default=0)
    projected_completion_date = models.DateTimeField(null=True, blank=True)
    is_on_track = models.BooleanField(default=True)

    class Meta:
        ordering = ['target_date']
        indexes = [
            models.Index(fields=['owner', 'status'], name='goal_owner_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(target_date__gt=F('start_date')), name='goal_target_after_start'),
        ]

    def __str__(self):
        return f"{self.name} ({self.progress_percentage}%)"


class GoalMilestone(models.Model):
    goal = models.ForeignKey(Goal, on_delete=models.CASCADE, related_name='milestones')
    percentage = models.PositiveSmallIntegerField()
    amount = models.DecimalField(**MONEY)
    target_date = models.DateTimeField()
    is_achieved = models.BooleanField(default=False)
    achieved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['percentage']
        constraints = [
            models.UniqueConstraint(fields=['goal', 'percentage'], name='unique_goal_milestone_percentage'),
        ]

    def __str__(self):
        return f"{self.goal.name} {self.percentage}%"


class Settlement(BaseModel):
    """Frozen close of one period; only ``notes`` may change after creation."""

    MUTABLE_FIELDS = {'notes', 'updated_at'}

    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='settlements')
    period = models.CharField(max_length=7)
    period_type = models.CharField(max_length=10, choices=PeriodType.choices)
    period_start = models.DateTimeField()
    period_end = models.DateTimeField()

    # Summary
    total_income = models.DecimalField(**MONEY, default=0)
    total_expenses = models.DecimalField(**MONEY, default=0)
    total_transfers = models.DecimalField(**MONEY, default=0)
    total_liability_payments = models.DecimalField(**MONEY, default=0)
    net_cash_flow = models.DecimalField(**MONEY, default=0)
    income_by_category = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    expenses_by_category = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)

    # Liabilities
    liability_summary = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    total_liability_amount = models.DecimalField(**MONEY, default=0)
    total_liability_paid = models.DecimalField(**MONEY, default=0)
    total_liability_remaining = models.DecimalField(**MONEY, default=0)

    carry_forward_balance = models.DecimalField(**MONEY, default=0)
    is_settled = models.BooleanField(default=True)
    settled_at = models.DateTimeField(default=timezone.now)
    settled_by = models.CharField(max_length=10, choices=SettledBy.choices, default=SettledBy.MANUAL)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-period_start']
        constraints = [
            models.UniqueConstraint(fields=['owner', 'period'], name='unique_settlement_per_owner_period'),
        ]

    def __str__(self):
        return f"Settlement {self.period} for {self.owner}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            update_fields = kwargs.get('update_fields')
            if update_fields is None or set(update_fields) - self.MUTABLE_FIELDS:
                raise SettledImmutableError(
                    "Settlements cannot be modified after creation",
                    details={'period': self.period},
                )
        super().save(*args, **kwargs)


class SettlementAccountSnapshot(models.Model):
    settlement = models.ForeignKey(Settlement, on_delete=models.CASCADE, related_name='account_snapshots')
    account = models.ForeignKey(Account, null=True, on_delete=models.SET_NULL, related_name='settlement_snapshots')
    account_name = models.CharField(max_length=100)
    account_type = models.CharField(max_length=20, choices=AccountType.choices)
    opening_balance = models.DecimalField(**MONEY)
    closing_balance = models.DecimalField(**MONEY)
    total_inflow = models.DecimalField(**MONEY, default=0)
    total_outflow = models.DecimalField(**MONEY, default=0)

    class Meta:
        ordering = ['account_name']

    def __str__(self):
        return f"{self.account_name}: {self.opening_balance} -> {self.closing_balance}"
