import logging
from datetime import timedelta
from decimal import Decimal

from django.db.models import Count, Sum
from django.utils import timezone

from common.enums import (
    AuditAction, ExpenseCategory, GoalStatus, GoalType, LiabilityStatus, NotificationKind,
    PriorityLevel, TransactionType,
)
from common.exceptions import NotFoundError, ValidationError
from common.timezone_utils import month_bounds
from core.unit_of_work import unit_of_work
from core.utils import get_owned_object
from audit.services import record_audit
from finance.commands import positive_amount
from finance.models import Account, Goal, GoalMilestone, Liability, Transaction
from notifications.services import dispatch_notification

logger = logging.getLogger(__name__)

MILESTONE_PERCENTAGES = (25, 50, 75, 100)
SECONDS_PER_MONTH = Decimal(30 * 24 * 60 * 60)
CENT = Decimal('0.01')
MAX_PROJECTION_MONTHS = Decimal(1200)
EDITABLE_FIELDS = ('name', 'description', 'priority', 'target_amount', 'target_date', 'status')
SETTABLE_STATUSES = (GoalStatus.ACTIVE, GoalStatus.PAUSED, GoalStatus.ABANDONED)


def _months_between(start, end) -> Decimal:
    return Decimal((end - start).total_seconds()) / SECONDS_PER_MONTH


def milestone_date(start, target, percentage):
    return start + (target - start) * percentage / 100


def compute_progress(goal, now):
    """Derived progress fields for ``goal`` given its ``current_amount``."""
    target = goal.target_amount
    current = goal.current_amount
    percentage = min(Decimal('100'), current / target * 100) if target > 0 else Decimal('0')

    months_left = max(Decimal('1'), _months_between(now, goal.target_date))
    monthly_target = max(target - current, Decimal('0')) / months_left

    months_elapsed = max(Decimal('1'), _months_between(goal.start_date, now))
    monthly_contribution = current / months_elapsed if current > 0 else Decimal('0')

    if monthly_contribution > 0:
        months_to_go = min(max(target - current, Decimal('0')) / monthly_contribution, MAX_PROJECTION_MONTHS)
        projected = now + timedelta(seconds=float(months_to_go * SECONDS_PER_MONTH))
    else:
        projected = goal.target_date

    total_span = (goal.target_date - goal.start_date).total_seconds()
    elapsed = (now - goal.start_date).total_seconds()
    expected = Decimal(min(max(elapsed / total_span, 0), 1) * 100) if total_span > 0 else Decimal('100')

    return {
        'progress_percentage': percentage.quantize(CENT),
        'monthly_target': monthly_target.quantize(CENT),
        'monthly_contribution': monthly_contribution.quantize(CENT),
        'projected_completion_date': projected,
        'is_on_track': percentage >= expected,
    }


def category_spend(owner, category, year, month):
    start, end = month_bounds(year, month)
    return Transaction.objects.filter(
        owner=owner,
        type=TransactionType.EXPENSE,
        category=category,
        is_recurring=False,
        date__gte=start,
        date__lte=end,
    ).aggregate(total=Sum('amount'))['total'] or Decimal('0')


class GoalService:
    @staticmethod
    def _validate_links(owner, goal_type, goal_data):
        if goal_type in (GoalType.SAVINGS, GoalType.INVESTMENT):
            account_id = goal_data.get('linked_account_id')
            if account_id is None:
                raise ValidationError("Savings and investment goals need a linked account",
                                      details={'linked_account': None})
            account = get_owned_object(Account, owner, account_id)
            if not account.is_active:
                raise ValidationError("Linked account is inactive", details={'linked_account': account_id})
        elif goal_type == GoalType.DEBT_PAYOFF:
            liability_id = goal_data.get('linked_liability_id')
            if liability_id is None:
                raise ValidationError("Debt payoff goals need a linked liability",
                                      details={'linked_liability': None})
            liability = get_owned_object(Liability, owner, liability_id)
            if liability.status == LiabilityStatus.FULLY_PAID:
                raise ValidationError("Linked liability is already paid off",
                                      details={'linked_liability': liability_id})
        elif goal_type == GoalType.EXPENSE_REDUCTION:
            category = goal_data.get('linked_category')
            if category not in ExpenseCategory.values:
                raise ValidationError("Expense reduction goals need an expense category",
                                      details={'linked_category': category})

    @staticmethod
    def create_goal(owner, goal_data, actor=None, uow=None, now=None):
        now = now or timezone.now()
        goal_type = goal_data.get('type')
        if goal_type not in GoalType.values:
            raise ValidationError(f"Unsupported goal type '{goal_type}'", details={'type': goal_type})
        name = (goal_data.get('name') or '').strip()
        if not name:
            raise ValidationError("Goal name is required", details={'name': name})

        target_amount = positive_amount(goal_data.get('target_amount'), 'target_amount')
        start_date = goal_data.get('start_date') or now
        target_date = goal_data.get('target_date')
        if target_date is None or target_date <= start_date:
            raise ValidationError(
                "Target date must be after the start date",
                details={'start_date': start_date, 'target_date': target_date},
            )
        GoalService._validate_links(owner, goal_type, goal_data)

        with unit_of_work(uow):
            goal = Goal(
                owner=owner,
                name=name,
                description=goal_data.get('description', ''),
                type=goal_type,
                priority=goal_data.get('priority', PriorityLevel.MEDIUM),
                target_amount=target_amount,
                start_date=start_date,
                target_date=target_date,
                linked_account_id=goal_data.get('linked_account_id'),
                linked_liability_id=goal_data.get('linked_liability_id'),
                linked_category=goal_data.get('linked_category', ''),
            )
            goal.current_amount = GoalService.current_amount_for(goal, now)
            for field, value in compute_progress(goal, now).items():
                setattr(goal, field, value)
            goal.save()

            # Milestones already met at creation are stamped without a notification
            GoalMilestone.objects.bulk_create([
                GoalMilestone(
                    goal=goal,
                    percentage=pct,
                    amount=(target_amount * pct / 100).quantize(CENT),
                    target_date=milestone_date(start_date, target_date, pct),
                    is_achieved=goal.current_amount >= (target_amount * pct / 100),
                    achieved_at=now if goal.current_amount >= (target_amount * pct / 100) else None,
                )
                for pct in MILESTONE_PERCENTAGES
            ])
            record_audit(
                owner, AuditAction.GOAL_CREATE, 'goal', goal.pk,
                {'type': goal_type, 'target_amount': target_amount, 'target_date': target_date},
                actor,
            )
        return goal

    @staticmethod
    def update_goal(owner, goal_id, goal_data, actor=None, uow=None, now=None):
        """Edit a goal and recompute its progress against the new target.

        Milestones already reached keep their stamp; the rest are re-priced
        for the new target amount and date.
        """
        now = now or timezone.now()
        unknown = set(goal_data) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError("These goal fields cannot be edited", details={'fields': sorted(unknown)})

        changes = dict(goal_data)
        if 'name' in changes:
            changes['name'] = (changes['name'] or '').strip()
            if not changes['name']:
                raise ValidationError("Goal name is required", details={'name': ''})
        if 'target_amount' in changes:
            changes['target_amount'] = positive_amount(changes['target_amount'], 'target_amount')
        if 'priority' in changes and changes['priority'] not in PriorityLevel.values:
            raise ValidationError(f"Unsupported priority '{changes['priority']}'",
                                  details={'priority': changes['priority']})
        if 'status' in changes and changes['status'] not in SETTABLE_STATUSES:
            raise ValidationError(
                f"Goal status cannot be set to '{changes['status']}'",
                details={'status': changes['status'], 'allowed': list(SETTABLE_STATUSES)},
            )

        with unit_of_work(uow) as work:
            goal = get_owned_object(Goal, owner, goal_id, work.lock(Goal.objects.all()))
            target_date = changes.get('target_date', goal.target_date)
            if target_date <= goal.start_date:
                raise ValidationError(
                    "Target date must be after the start date",
                    details={'start_date': goal.start_date, 'target_date': target_date},
                )

            for field, value in changes.items():
                setattr(goal, field, value)
            if 'status' in changes:
                goal.completed_at = None
            goal.save()

            if {'target_amount', 'target_date'} & set(changes):
                for milestone in work.lock(goal.milestones.filter(is_achieved=False)):
                    milestone.amount = (goal.target_amount * milestone.percentage / 100).quantize(CENT)
                    milestone.target_date = milestone_date(goal.start_date, goal.target_date, milestone.percentage)
                    milestone.save(update_fields=['amount', 'target_date'])

            goal = GoalService.update_goal_progress(goal.pk, uow=work, now=now)
            record_audit(owner, AuditAction.GOAL_UPDATE, 'goal', goal.pk, changes, actor)
        return goal

    @staticmethod
    def delete_goal(owner, goal_id, actor=None, uow=None):
        with unit_of_work(uow) as work:
            goal = get_owned_object(Goal, owner, goal_id, work.lock(Goal.objects.all()))
            pk, name = goal.pk, goal.name
            goal.delete()
            record_audit(owner, AuditAction.GOAL_DELETE, 'goal', pk, {'name': name}, actor)

    @staticmethod
    def current_amount_for(goal, now):
        if goal.type in (GoalType.SAVINGS, GoalType.INVESTMENT):
            if goal.linked_account_id is None:
                return goal.current_amount
            balance = Account.objects.filter(pk=goal.linked_account_id).values_list('balance', flat=True).first()
            return goal.current_amount if balance is None else max(balance, Decimal('0'))
        if goal.type == GoalType.DEBT_PAYOFF:
            if goal.linked_liability_id is None:
                return goal.current_amount
            paid = Liability.objects.filter(pk=goal.linked_liability_id).values_list('paid_amount', flat=True).first()
            return goal.current_amount if paid is None else paid
        if goal.type == GoalType.EXPENSE_REDUCTION and goal.linked_category:
            local_now = timezone.localtime(now)
            previous = (local_now.replace(day=1) - timedelta(days=1))
            current_spend = category_spend(goal.owner_id, goal.linked_category, local_now.year, local_now.month)
            previous_spend = category_spend(goal.owner_id, goal.linked_category, previous.year, previous.month)
            return max(Decimal('0'), previous_spend - current_spend)
        return goal.current_amount

    @staticmethod
    def update_goal_progress(goal_id, uow=None, now=None):
        """Recompute a goal's amount, projections and milestones.

        Each newly reached milestone is stamped and notified once; reaching
        100% while active completes the goal.
        """
        now = now or timezone.now()
        with unit_of_work(uow) as work:
            try:
                goal = work.lock_one(Goal.objects.all(), pk=goal_id)
            except Goal.DoesNotExist:
                raise NotFoundError("Goal not found", details={'id': goal_id})

            goal.current_amount = GoalService.current_amount_for(goal, now)
            for field, value in compute_progress(goal, now).items():
                setattr(goal, field, value)

            just_completed = False
            if goal.status == GoalStatus.ACTIVE and goal.current_amount >= goal.target_amount:
                goal.status = GoalStatus.COMPLETED
                goal.completed_at = now
                just_completed = True
            goal.save()

            reached = list(work.lock(goal.milestones.filter(is_achieved=False, amount__lte=goal.current_amount)))
            for milestone in reached:
                milestone.is_achieved = True
                milestone.achieved_at = now
                milestone.save(update_fields=['is_achieved', 'achieved_at'])
                dispatch_notification(
                    goal.owner,
                    NotificationKind.GOAL_MILESTONE,
                    f"You've hit {milestone.percentage}% of \"{goal.name}\"",
                    priority=PriorityLevel.MEDIUM,
                    related=goal,
                    title=f"Milestone {milestone.percentage}% Achieved!",
                )

            if just_completed:
                dispatch_notification(
                    goal.owner,
                    NotificationKind.GOAL_COMPLETED,
                    f"You've achieved your goal \"{goal.name}\"!",
                    priority=PriorityLevel.HIGH,
                    related=goal,
                    title=f"Goal Completed: {goal.name}",
                )
        return goal

    @staticmethod
    def _update_many(goals, now=None):
        updated = []
        for goal_id in goals.filter(status=GoalStatus.ACTIVE).values_list('pk', flat=True):
            try:
                updated.append(GoalService.update_goal_progress(goal_id, now=now))
            except Exception:
                logger.exception("Goal progress update failed", extra={'goal_id': goal_id})
        return updated

    @staticmethod
    def update_goals_for_accounts(owner, account_ids, now=None):
        return GoalService._update_many(
            Goal.objects.filter(owner=owner, linked_account_id__in=list(account_ids)), now=now
        )

    @staticmethod
    def update_goals_for_liability(owner, liability_id, now=None):
        return GoalService._update_many(
            Goal.objects.filter(owner=owner, linked_liability_id=liability_id), now=now
        )

    @staticmethod
    def update_goals_for_categories(owner, categories, now=None):
        return GoalService._update_many(
            Goal.objects.filter(
                owner=owner, type=GoalType.EXPENSE_REDUCTION, linked_category__in=list(categories),
            ),
            now=now,
        )

    @staticmethod
    def get_goal(owner, goal_id):
        return get_owned_object(Goal, owner, goal_id)

    @staticmethod
    def get_goals(owner, status=None):
        goals = Goal.objects.filter(owner=owner).prefetch_related('milestones')
        if status:
            goals = goals.filter(status=status)
        return goals

    @staticmethod
    def get_summary(owner):
        goals = Goal.objects.filter(owner=owner)
        active = goals.filter(status=GoalStatus.ACTIVE).aggregate(
            count=Count('id'), target=Sum('target_amount'), current=Sum('current_amount'),
        )
        target = active['target'] or Decimal('0')
        current = active['current'] or Decimal('0')
        return {
            'active_goals': active['count'],
            'completed_goals': goals.filter(status=GoalStatus.COMPLETED).count(),
            'total_target_amount': target,
            'total_current_amount': current,
            'overall_progress': (current / target * 100).quantize(CENT) if target > 0 else Decimal('0'),
        }
