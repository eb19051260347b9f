import logging
from datetime import date, timedelta
from decimal import Decimal

from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.db.models import Sum
from django.utils import timezone

from common.enums import (
    AuditAction, BudgetAlertLevel, BudgetPeriod, ExpenseCategory, NotificationKind,
    PriorityLevel, TransactionType,
)
from common.exceptions import ValidationError
from core.unit_of_work import unit_of_work
from core.utils import get_owned_object
from audit.services import record_audit
from finance.commands import positive_amount
from finance.models import Budget, Transaction
from notifications.services import dispatch_notification

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('name', 'amount', 'alert_threshold', 'start_date', 'end_date', 'is_active')


def period_end_date(start: date, period) -> date:
    """Last day (inclusive) of a budget window starting on ``start``."""
    if period == BudgetPeriod.WEEKLY:
        return start + timedelta(days=6)
    if period == BudgetPeriod.MONTHLY:
        return start + relativedelta(months=1) - timedelta(days=1)
    if period == BudgetPeriod.YEARLY:
        return start + relativedelta(years=1) - timedelta(days=1)
    raise ValidationError(f"Unsupported budget period '{period}'", details={'period': period})


def _as_date(value):
    if hasattr(value, 'tzinfo') and hasattr(value, 'date'):
        return timezone.localtime(value).date() if timezone.is_aware(value) else value.date()
    return value


def _alert_threshold(value):
    threshold = Decimal(str(value))
    if not 0 < threshold <= 100:
        raise ValidationError(
            "Alert threshold must be above 0 and at most 100",
            details={'alert_threshold': str(threshold)},
        )
    return threshold


def _ensure_no_overlap(owner, category, start_date, end_date, exclude_pk=None):
    overlapping = Budget.objects.filter(
        owner=owner,
        category=category,
        is_active=True,
        start_date__lte=end_date,
        end_date__gte=start_date,
    )
    if exclude_pk is not None:
        overlapping = overlapping.exclude(pk=exclude_pk)
    if overlapping.exists():
        raise ValidationError(
            "An active budget already covers this category for the selected dates",
            details={'category': category},
        )


class BudgetService:
    @staticmethod
    def calculate_spent(owner, category, start_date, end_date):
        """Sum of expenses in the category over the window, excluding debt service."""
        return Transaction.objects.filter(
            owner=owner,
            type=TransactionType.EXPENSE,
            category=category,
            is_recurring=False,
            is_liability_payment=False,
            date__date__gte=start_date,
            date__date__lte=end_date,
        ).aggregate(total=Sum('amount'))['total'] or Decimal('0')

    @staticmethod
    def create_budget(owner, budget_data, actor=None, uow=None):
        category = budget_data.get('category')
        if category not in ExpenseCategory.values:
            raise ValidationError(
                f"'{category}' is not an expense category",
                details={'category': category},
            )
        period = budget_data.get('period', BudgetPeriod.MONTHLY)
        if period not in BudgetPeriod.values:
            raise ValidationError(f"Unsupported budget period '{period}'", details={'period': period})

        amount = positive_amount(budget_data.get('amount'))
        start_date = budget_data.get('start_date') or timezone.localdate()
        end_date = budget_data.get('end_date') or period_end_date(start_date, period)
        if end_date < start_date:
            raise ValidationError("End date must be after start date", details={'end_date': end_date})

        threshold = _alert_threshold(budget_data.get(
            'alert_threshold', settings.FINANCE['DEFAULT_BUDGET_ALERT_THRESHOLD']
        ))
        _ensure_no_overlap(owner, category, start_date, end_date)

        with unit_of_work(uow):
            budget = Budget.objects.create(
                owner=owner,
                name=budget_data.get('name') or ExpenseCategory(category).label,
                category=category,
                period=period,
                amount=amount,
                start_date=start_date,
                end_date=end_date,
                alert_threshold=threshold,
            )
            BudgetService.recalculate_spent(budget)
            record_audit(
                owner, AuditAction.BUDGET_CREATE, 'budget', budget.pk,
                {'category': category, 'amount': amount, 'start_date': start_date, 'end_date': end_date},
                actor,
            )
        return budget

    @staticmethod
    def update_budget(owner, budget_id, budget_data, actor=None, uow=None):
        """Edit a budget and re-derive its spending for the new window.

        The category and period are fixed; moving the dates or reactivating
        the budget is checked against the owner's other active budgets.
        """
        unknown = set(budget_data) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError("These budget fields cannot be edited", details={'fields': sorted(unknown)})

        changes = dict(budget_data)
        if 'name' in changes:
            changes['name'] = (changes['name'] or '').strip()
            if not changes['name']:
                raise ValidationError("Budget name is required", details={'name': ''})
        if 'amount' in changes:
            changes['amount'] = positive_amount(changes['amount'])
        if 'alert_threshold' in changes:
            changes['alert_threshold'] = _alert_threshold(changes['alert_threshold'])

        with unit_of_work(uow) as work:
            budget = get_owned_object(Budget, owner, budget_id, work.lock(Budget.objects.all()))
            start_date = changes.get('start_date', budget.start_date)
            end_date = changes.get('end_date', budget.end_date)
            if end_date < start_date:
                raise ValidationError("End date must be after start date", details={'end_date': end_date})
            is_active = changes.get('is_active', budget.is_active)
            if is_active and {'start_date', 'end_date', 'is_active'} & set(changes):
                _ensure_no_overlap(owner, budget.category, start_date, end_date, exclude_pk=budget.pk)

            for field, value in changes.items():
                setattr(budget, field, value)
            budget.save()
            BudgetService.recalculate_spent(budget)
            record_audit(owner, AuditAction.BUDGET_UPDATE, 'budget', budget.pk, changes, actor)
        return budget

    @staticmethod
    def delete_budget(owner, budget_id, actor=None, uow=None):
        with unit_of_work(uow) as work:
            budget = get_owned_object(Budget, owner, budget_id, work.lock(Budget.objects.all()))
            pk, category = budget.pk, budget.category
            budget.delete()
            record_audit(owner, AuditAction.BUDGET_DELETE, 'budget', pk, {'category': category}, actor)

    @staticmethod
    def get_budget(owner, budget_id):
        return get_owned_object(Budget, owner, budget_id)

    @staticmethod
    def update_budget_spending(owner, category, on_date, amount=None, uow=None):
        """Refresh every active budget for ``category`` whose window contains ``on_date``.

        ``spent`` is re-derived by summation so edits and deletes cannot
        leave it drifting; ``amount`` is the change that triggered the refresh.
        """
        on_date = _as_date(on_date)
        with unit_of_work(uow) as work:
            budgets = work.lock(Budget.objects.filter(
                owner=owner,
                category=category,
                is_active=True,
                start_date__lte=on_date,
                end_date__gte=on_date,
            ))
            updated = [BudgetService.recalculate_spent(budget) for budget in budgets]

        if updated:
            logger.debug(
                "Budgets refreshed",
                extra={'owner_id': owner.pk, 'category': category, 'delta': str(amount), 'count': len(updated)},
            )
        return updated

    @staticmethod
    def recalculate_spent(budget):
        budget.spent = BudgetService.calculate_spent(
            budget.owner, budget.category, budget.start_date, budget.end_date
        )
        BudgetService.evaluate_alert(budget)
        budget.save(update_fields=['spent', 'alert_level', 'updated_at'])
        return budget

    @staticmethod
    def evaluate_alert(budget):
        """Fire an alert once per threshold crossing.

        Entering the warning band emits a medium alert, reaching 100% a high
        one. Falling back below a level re-arms it.
        """
        level = budget.alert_level_for(budget.spent_percentage)
        previous = budget.alert_level
        budget.alert_level = level
        if level == previous or level == BudgetAlertLevel.NONE:
            return None
        if previous == BudgetAlertLevel.EXCEEDED and level == BudgetAlertLevel.WARNING:
            return None

        percentage = budget.spent_percentage.quantize(Decimal('0.1'))
        if level == BudgetAlertLevel.EXCEEDED:
            return dispatch_notification(
                budget.owner,
                NotificationKind.BUDGET_EXCEEDED,
                f"You have exceeded your {budget.name} budget ({percentage}% of {budget.amount} spent)",
                priority=PriorityLevel.HIGH,
                related=budget,
                title='Budget exceeded',
            )
        return dispatch_notification(
            budget.owner,
            NotificationKind.BUDGET_THRESHOLD,
            f"You have used {percentage}% of your {budget.name} budget",
            priority=PriorityLevel.MEDIUM,
            related=budget,
            title='Budget alert',
        )

    @staticmethod
    def get_active_budgets(owner, on=None):
        on = on or timezone.localdate()
        return Budget.objects.filter(owner=owner, is_active=True, start_date__lte=on, end_date__gte=on)

    @staticmethod
    def get_budget_alerts(owner, on=None):
        alerts = []
        for budget in BudgetService.get_active_budgets(owner, on):
            level = budget.alert_level_for(budget.spent_percentage)
            if level == BudgetAlertLevel.NONE:
                continue
            alerts.append({
                'budget_id': budget.pk,
                'name': budget.name,
                'category': budget.category,
                'percentage': budget.spent_percentage,
                'severity': 'high' if level == BudgetAlertLevel.EXCEEDED else 'medium',
                'remaining': budget.remaining_amount,
            })
        return alerts

    @staticmethod
    def get_summary(owner, on=None):
        """Totals across the budgets active on ``on`` (today by default)."""
        budgets = list(BudgetService.get_active_budgets(owner, on))
        budgeted = sum((budget.amount for budget in budgets), Decimal('0'))
        spent = sum((budget.spent for budget in budgets), Decimal('0'))
        return {
            'total_budgeted': budgeted,
            'total_spent': spent,
            'total_remaining': max(budgeted - spent, Decimal('0')),
            'active_budgets': len(budgets),
            'exceeded_budgets': sum(1 for budget in budgets if budget.is_exceeded),
        }
