# tests/test_commands.py
from datetime import datetime, timedelta
from io import StringIO
from zoneinfo import ZoneInfo

from django.core.management import call_command
from django.utils import timezone

from common.enums import ExpenseCategory, Frequency, NotificationKind, TransactionType
from finance.commands import RecurrenceSpec, TransactionDraft
from finance.management.commands.send_finance_reminders import Command
from finance.models import Transaction
from finance.services.ledger_service import LedgerService
from notifications.models import Notification
from tests.factories import BillFactory


def test_reminder_command_reports_each_sweep(user, wallet):
    BillFactory(owner=user, due_date=timezone.localdate())
    LedgerService.create_transaction(user, TransactionDraft(
        type=TransactionType.EXPENSE, amount=15, account_id=wallet.pk, category=ExpenseCategory.SUBSCRIPTIONS,
        recurrence=RecurrenceSpec(frequency=Frequency.MONTHLY, next_execution=timezone.now() - timedelta(hours=1),
                                  requires_approval=False),
    ))

    out = StringIO()
    call_command('send_finance_reminders', '--run-recurring', '--skip-settlement', stdout=out)

    output = out.getvalue()
    assert "Finance reminders complete." in output
    assert "- bill_reminders: 1" in output
    assert "- recurring_posted: 1" in output
    assert "settlement_reminders" not in output
    assert Transaction.objects.filter(owner=user, recurring_parent__isnull=False).count() == 1


def test_settlement_reminder_near_month_end(user, wallet):
    sent = Command()._remind_settlements(datetime(2024, 1, 29, 9, 0, tzinfo=ZoneInfo("UTC")))
    assert sent == 1
    reminder = Notification.objects.get(recipient=user, kind=NotificationKind.SETTLEMENT_REMINDER)
    assert '2024-01' in reminder.message


def test_no_settlement_reminder_mid_month(user, wallet):
    assert Command()._remind_settlements(datetime(2024, 1, 10, 9, 0, tzinfo=ZoneInfo("UTC"))) == 0
