# tests/test_goals.py
from datetime import datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
from django.utils import timezone

from common.enums import (
    ExpenseCategory, GoalStatus, GoalType, IncomeCategory, NotificationKind, TransactionType,
)
from common.exceptions import ValidationError
from finance.commands import PaymentCommand, TransactionDraft
from finance.models import Goal
from finance.services.goal_service import GoalService, compute_progress
from finance.services.ledger_service import LedgerService
from finance.services.liability_service import LiabilityService
from notifications.models import Notification
from tests.factories import GoalFactory

UTC = ZoneInfo("UTC")


def deposit(user, account, amount):
    return LedgerService.create_transaction(user, TransactionDraft(
        type=TransactionType.INCOME, amount=amount, account_id=account.pk, category=IncomeCategory.SALARY,
    ))


def milestone_alerts(user):
    return Notification.objects.filter(recipient=user, kind=NotificationKind.GOAL_MILESTONE).count()


@pytest.fixture
def savings_goal(user, wallet):
    return GoalService.create_goal(user, {
        'name': 'Emergency fund', 'type': GoalType.SAVINGS, 'target_amount': 2000,
        'target_date': timezone.now() + timedelta(days=365), 'linked_account_id': wallet.pk,
    })


def test_goal_starts_from_linked_balance(user, savings_goal):
    assert savings_goal.current_amount == Decimal('1000.00')
    assert savings_goal.progress_percentage == Decimal('50.00')
    achieved = list(savings_goal.milestones.filter(is_achieved=True).values_list('percentage', flat=True))
    assert achieved == [25, 50]
    assert milestone_alerts(user) == 0


def test_milestones_notify_once_and_goal_completes(user, wallet, savings_goal, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        deposit(user, wallet, 500)
    savings_goal.refresh_from_db()
    assert savings_goal.current_amount == Decimal('1500.00')
    assert milestone_alerts(user) == 1

    GoalService.update_goal_progress(savings_goal.pk)
    assert milestone_alerts(user) == 1

    with django_capture_on_commit_callbacks(execute=True):
        deposit(user, wallet, 500)
    savings_goal.refresh_from_db()
    assert savings_goal.status == GoalStatus.COMPLETED
    assert savings_goal.completed_at is not None
    assert milestone_alerts(user) == 2
    completed = Notification.objects.get(recipient=user, kind=NotificationKind.GOAL_COMPLETED)
    assert completed.priority == 'high'


def test_debt_payoff_goal_follows_payments(user, wallet, django_capture_on_commit_callbacks):
    loan = LiabilityService.create_liability(user, {'description': 'Laptop loan', 'total_amount': 800})
    goal = GoalService.create_goal(user, {
        'name': 'Clear laptop loan', 'type': GoalType.DEBT_PAYOFF, 'target_amount': 800,
        'target_date': timezone.now() + timedelta(days=90), 'linked_liability_id': loan.pk,
    })
    assert goal.current_amount == Decimal('0.00')

    with django_capture_on_commit_callbacks(execute=True):
        LiabilityService.make_payment(user, loan.pk, PaymentCommand(amount=400, account_id=wallet.pk))
    goal.refresh_from_db()
    assert goal.current_amount == Decimal('400.00')
    assert goal.progress_percentage == Decimal('50.00')


def test_expense_reduction_compares_with_last_month(user, wallet):
    LedgerService.create_transaction(user, TransactionDraft(
        type=TransactionType.EXPENSE, amount=300, account_id=wallet.pk, category=ExpenseCategory.FOOD,
        date=datetime(2024, 1, 10, tzinfo=UTC),
    ))
    LedgerService.create_transaction(user, TransactionDraft(
        type=TransactionType.EXPENSE, amount=100, account_id=wallet.pk, category=ExpenseCategory.FOOD,
        date=datetime(2024, 2, 5, tzinfo=UTC),
    ))
    now = datetime(2024, 2, 15, tzinfo=UTC)
    goal = GoalService.create_goal(user, {
        'name': 'Eat in more', 'type': GoalType.EXPENSE_REDUCTION, 'target_amount': 500,
        'start_date': datetime(2024, 2, 1, tzinfo=UTC), 'target_date': datetime(2024, 6, 1, tzinfo=UTC),
        'linked_category': ExpenseCategory.FOOD,
    }, now=now)
    assert goal.current_amount == Decimal('200')


def test_links_are_validated(user, wallet):
    target = timezone.now() + timedelta(days=30)
    with pytest.raises(ValidationError):
        GoalService.create_goal(user, {'name': 'No account', 'type': GoalType.SAVINGS,
                                       'target_amount': 100, 'target_date': target})
    with pytest.raises(ValidationError):
        GoalService.create_goal(user, {'name': 'Bad category', 'type': GoalType.EXPENSE_REDUCTION,
                                       'target_amount': 100, 'target_date': target,
                                       'linked_category': IncomeCategory.SALARY})
    with pytest.raises(ValidationError):
        GoalService.create_goal(user, {'name': 'Backwards', 'type': GoalType.SAVINGS, 'target_amount': 100,
                                       'target_date': timezone.now() - timedelta(days=1),
                                       'linked_account_id': wallet.pk})


def test_progress_projection():
    start = datetime(2024, 1, 1, tzinfo=UTC)
    goal = Goal(
        target_amount=Decimal('1200'), current_amount=Decimal('300'),
        start_date=start, target_date=datetime(2025, 1, 1, tzinfo=UTC),
    )
    progress = compute_progress(goal, now=datetime(2024, 4, 1, tzinfo=UTC))
    assert progress['progress_percentage'] == Decimal('25.00')
    assert progress['monthly_contribution'] > 0
    assert progress['projected_completion_date'] > datetime(2024, 4, 1, tzinfo=UTC)
    assert progress['is_on_track'] is True


def test_goal_without_contributions_projects_to_target_date():
    start = datetime(2024, 1, 1, tzinfo=UTC)
    target = datetime(2024, 12, 1, tzinfo=UTC)
    goal = Goal(target_amount=Decimal('500'), current_amount=Decimal('0'), start_date=start, target_date=target)
    progress = compute_progress(goal, now=datetime(2024, 6, 1, tzinfo=UTC))
    assert progress['projected_completion_date'] == target
    assert progress['is_on_track'] is False


class TestEditingGoals:

    def test_lower_target_reprices_open_milestones(self, user, savings_goal):
        goal = GoalService.update_goal(user, savings_goal.pk, {'target_amount': 1200})
        assert goal.progress_percentage == Decimal('83.33')
        assert goal.status == GoalStatus.ACTIVE
        amounts = dict(goal.milestones.values_list('percentage', 'amount'))
        assert amounts[75] == Decimal('900.00')
        assert amounts[100] == Decimal('1200.00')
        assert milestone_alerts(user) == 1

        goal = GoalService.update_goal(user, savings_goal.pk, {'target_amount': 1000})
        assert goal.status == GoalStatus.COMPLETED
        assert goal.completed_at is not None
        assert not goal.milestones.filter(is_achieved=False).exists()

    def test_completion_is_not_settable(self, user, savings_goal):
        with pytest.raises(ValidationError):
            GoalService.update_goal(user, savings_goal.pk, {'status': GoalStatus.COMPLETED})
        with pytest.raises(ValidationError):
            GoalService.update_goal(user, savings_goal.pk, {'type': GoalType.INVESTMENT})

        goal = GoalService.update_goal(user, savings_goal.pk, {'status': GoalStatus.PAUSED})
        assert goal.status == GoalStatus.PAUSED

    def test_target_date_must_follow_start(self, user, savings_goal):
        with pytest.raises(ValidationError):
            GoalService.update_goal(user, savings_goal.pk, {'target_date': savings_goal.start_date})

    def test_delete_goal(self, user, savings_goal):
        GoalService.delete_goal(user, savings_goal.pk)
        assert not Goal.objects.filter(pk=savings_goal.pk).exists()


def test_goal_summary(user, savings_goal):
    GoalFactory(owner=user, status=GoalStatus.COMPLETED, target_amount=500, current_amount=500)

    summary = GoalService.get_summary(user)
    assert summary['active_goals'] == 1
    assert summary['completed_goals'] == 1
    assert summary['total_target_amount'] == Decimal('2000.00')
    assert summary['total_current_amount'] == Decimal('1000.00')
    assert summary['overall_progress'] == Decimal('50.00')
