# tests/test_recurring.py
from datetime import timedelta
from decimal import Decimal

import pytest

from common.enums import ExpenseCategory, Frequency, NotificationKind, RecurringState, TransactionType
from common.exceptions import NotFoundError, ValidationError
from finance.commands import RecurrenceSpec, TransactionDraft
from finance.models import RecurringConfig, Transaction
from finance.services.ledger_service import LedgerService
from finance.services.recurring_service import RecurringService
from notifications.models import Notification
from tests.factories import UserFactory


def make_template(user, account, first_run, amount=50, requires_approval=True, end_date=None,
                  frequency=Frequency.MONTHLY):
    return LedgerService.create_transaction(user, TransactionDraft(
        type=TransactionType.EXPENSE, amount=amount, account_id=account.pk,
        category=ExpenseCategory.SUBSCRIPTIONS, description='Streaming',
        recurrence=RecurrenceSpec(
            frequency=frequency, next_execution=first_run, end_date=end_date,
            requires_approval=requires_approval,
        ),
    ), now=first_run - timedelta(days=1))


def config_of(template):
    return RecurringConfig.objects.get(template=template)


class TestApprovalCycle:

    def test_due_template_waits_for_approval(self, user, wallet, jan_2024):
        template = make_template(user, wallet, jan_2024)
        assert config_of(template).state(jan_2024 - timedelta(hours=1)) == RecurringState.SCHEDULED
        assert config_of(template).state(jan_2024) == RecurringState.PENDING_APPROVAL

        pending = RecurringService.list_pending_approvals(user, now=jan_2024 + timedelta(hours=2))
        assert [c.template_id for c in pending] == [template.pk]

    def test_approve_posts_and_advances(self, user, wallet, jan_2024):
        template = make_template(user, wallet, jan_2024)
        now = jan_2024 + timedelta(hours=2)

        tx = RecurringService.approve(user, template.pk, now=now)
        assert tx.recurring_parent_id == template.pk
        assert tx.is_recurring is False
        assert tx.date == now

        wallet.refresh_from_db()
        assert wallet.balance == Decimal('950.00')

        config = config_of(template)
        assert config.next_execution == jan_2024 + timedelta(days=31)
        assert config.executions_count == 1
        assert config.last_executed == now
        assert config.is_approved is False
        assert config.state(now) == RecurringState.SCHEDULED
        assert Notification.objects.filter(recipient=user, kind=NotificationKind.RECURRING_EXECUTED).exists()

    def test_scheduled_template_cannot_be_approved(self, user, wallet, jan_2024):
        template = make_template(user, wallet, jan_2024)
        with pytest.raises(ValidationError):
            RecurringService.approve(user, template.pk, now=jan_2024 - timedelta(days=3))
        assert not Transaction.objects.filter(recurring_parent=template).exists()

    def test_approve_with_amount_override(self, user, wallet, jan_2024):
        template = make_template(user, wallet, jan_2024)
        tx = RecurringService.approve(user, template.pk, amount=65, now=jan_2024)
        assert tx.amount == Decimal('65.00')

    def test_skip_advances_without_posting(self, user, wallet, jan_2024):
        template = make_template(user, wallet, jan_2024)
        config = RecurringService.skip(user, template.pk, now=jan_2024)
        assert config.next_execution == jan_2024 + timedelta(days=31)
        assert config.skipped_count == 1
        assert not Transaction.objects.filter(recurring_parent=template).exists()
        wallet.refresh_from_db()
        assert wallet.balance == Decimal('1000.00')

    def test_cancel_ends_the_series(self, user, wallet, jan_2024):
        template = make_template(user, wallet, jan_2024)
        config = RecurringService.cancel(user, template.pk, now=jan_2024)
        assert config.state(jan_2024 + timedelta(seconds=1)) == RecurringState.ENDED

        with pytest.raises(ValidationError):
            RecurringService.approve(user, template.pk, now=jan_2024 + timedelta(hours=1))
        with pytest.raises(ValidationError):
            RecurringService.skip(user, template.pk, now=jan_2024 + timedelta(hours=1))
        assert RecurringService.get_recurring_transactions(user, now=jan_2024 + timedelta(hours=1)) == []

    def test_series_ends_after_last_execution(self, user, wallet, jan_2024):
        template = make_template(user, wallet, jan_2024, frequency=Frequency.WEEKLY,
                                 end_date=jan_2024 + timedelta(days=10))
        RecurringService.approve(user, template.pk, now=jan_2024)
        tx = RecurringService.approve(user, template.pk, now=jan_2024 + timedelta(days=7))
        assert tx.amount == Decimal('50.00')
        assert config_of(template).state(jan_2024 + timedelta(days=8)) == RecurringState.ENDED

    def test_templates_are_scoped_to_owner(self, wallet, jan_2024, user):
        template = make_template(user, wallet, jan_2024)
        with pytest.raises(NotFoundError):
            RecurringService.approve(UserFactory(), template.pk, now=jan_2024)


class TestSweeps:

    def test_reminders_for_templates_coming_due(self, user, wallet, jan_2024):
        make_template(user, wallet, jan_2024)
        make_template(user, wallet, jan_2024 + timedelta(days=5))

        sent = RecurringService.send_approval_reminders(now=jan_2024 - timedelta(hours=6))
        assert sent == 1
        reminder = Notification.objects.get(recipient=user, kind=NotificationKind.RECURRING_APPROVAL)
        assert reminder.expires_at == jan_2024 + timedelta(days=1)

    def test_unattended_run_posts_and_isolates_failures(self, user, wallet, jan_2024):
        ok = make_template(user, wallet, jan_2024, requires_approval=False)
        too_big = make_template(user, wallet, jan_2024, amount=5000, requires_approval=False)
        needs_approval = make_template(user, wallet, jan_2024)

        posted = RecurringService.run_unattended(now=jan_2024 + timedelta(hours=1))
        assert [tx.recurring_parent_id for tx in posted] == [ok.pk]

        assert config_of(ok).executions_count == 1
        assert config_of(too_big).executions_count == 0
        assert config_of(needs_approval).executions_count == 0
        wallet.refresh_from_db()
        assert wallet.balance == Decimal('950.00')
