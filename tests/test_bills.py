# tests/test_bills.py
from datetime import timedelta
from decimal import Decimal

import pytest
from dateutil.relativedelta import relativedelta
from django.utils import timezone

from common.enums import BillStatus, ExpenseCategory, Frequency, NotificationKind, PriorityLevel
from common.exceptions import OverpaymentError, ValidationError
from finance.commands import BillPaymentCommand
from finance.models import Bill
from finance.services.bill_service import BillService
from notifications.models import Notification
from tests.factories import BillFactory


@pytest.fixture
def today():
    return timezone.localdate()


@pytest.fixture
def power_bill(user, today):
    return BillService.create_bill(user, {
        'name': 'Electricity', 'amount': 120, 'category': ExpenseCategory.UTILITIES,
        'due_date': today + timedelta(days=5),
    })


class TestReminders:

    def test_reminders_are_queued_for_each_offset(self, user, power_bill):
        reminders = Notification.objects.filter(
            recipient=user, kind=NotificationKind.BILL_REMINDER,
        ).order_by('scheduled_for')
        assert reminders.count() == 2
        assert [n.priority for n in reminders] == [PriorityLevel.MEDIUM, PriorityLevel.HIGH]
        assert all(n.scheduled_for is not None for n in reminders)

    def test_past_offsets_are_skipped(self, user, today):
        BillService.create_bill(user, {'name': 'Water', 'amount': 40, 'due_date': today + timedelta(days=2)})
        assert Notification.objects.filter(recipient=user, kind=NotificationKind.BILL_REMINDER).count() == 1

    def test_due_sweep_notifies_today_and_tomorrow(self, user, today):
        BillFactory(owner=user, due_date=today)
        BillFactory(owner=user, due_date=today + timedelta(days=1))
        BillFactory(owner=user, due_date=today + timedelta(days=4))

        assert BillService.send_due_reminders() == 2
        priorities = set(
            Notification.objects.filter(recipient=user, title__startswith='Bill Due').values_list('priority', flat=True)
        )
        assert priorities == {PriorityLevel.HIGH.value, PriorityLevel.MEDIUM.value}


class TestPayment:

    def test_default_payment_is_the_outstanding_amount(self, user, wallet, power_bill):
        bill, tx = BillService.mark_bill_as_paid(user, power_bill.pk, BillPaymentCommand(account_id=wallet.pk))
        assert bill.status == BillStatus.PAID
        assert bill.paid_amount == Decimal('120.00')
        assert tx.amount == Decimal('120.00')
        assert tx.category == ExpenseCategory.UTILITIES
        wallet.refresh_from_db()
        assert wallet.balance == Decimal('880.00')

    def test_partial_payment_then_overpayment(self, user, wallet, power_bill):
        bill, _ = BillService.mark_bill_as_paid(
            user, power_bill.pk, BillPaymentCommand(account_id=wallet.pk, amount=20),
        )
        assert bill.status == BillStatus.PARTIALLY_PAID
        assert bill.outstanding_amount == Decimal('100.00')

        with pytest.raises(OverpaymentError):
            BillService.mark_bill_as_paid(user, bill.pk, BillPaymentCommand(account_id=wallet.pk, amount=101))

    def test_paid_bill_cannot_be_paid_again(self, user, wallet, power_bill):
        BillService.mark_bill_as_paid(user, power_bill.pk, BillPaymentCommand(account_id=wallet.pk))
        with pytest.raises(OverpaymentError):
            BillService.mark_bill_as_paid(user, power_bill.pk, BillPaymentCommand(account_id=wallet.pk))

    def test_recurring_bill_spawns_successor_when_paid(self, user, wallet, today):
        bill = BillService.create_bill(user, {
            'name': 'Internet', 'amount': 60, 'category': ExpenseCategory.SUBSCRIPTIONS,
            'due_date': today, 'is_recurring': True, 'frequency': Frequency.MONTHLY,
        })
        bill, _ = BillService.mark_bill_as_paid(user, bill.pk, BillPaymentCommand(account_id=wallet.pk))

        successor = Bill.objects.get(previous_bill=bill)
        assert successor.due_date == today + relativedelta(months=1)
        assert successor.amount == Decimal('60.00')
        assert successor.status == BillStatus.UPCOMING
        assert successor.paid_amount == Decimal('0.00')

    def test_series_stops_at_recurrence_end(self, user, wallet, today):
        bill = BillService.create_bill(user, {
            'name': 'Gym', 'amount': 30, 'category': ExpenseCategory.SUBSCRIPTIONS,
            'due_date': today, 'is_recurring': True, 'frequency': Frequency.MONTHLY,
            'recurrence_end_date': today + timedelta(days=10),
        })
        BillService.mark_bill_as_paid(user, bill.pk, BillPaymentCommand(account_id=wallet.pk))
        assert not Bill.objects.filter(previous_bill=bill).exists()


class TestEditing:

    def test_paid_bills_are_frozen(self, user, wallet, power_bill):
        BillService.mark_bill_as_paid(user, power_bill.pk, BillPaymentCommand(account_id=wallet.pk))
        with pytest.raises(ValidationError):
            BillService.update_bill(user, power_bill.pk, {'amount': 200})

    def test_bill_with_payments_cannot_be_deleted(self, user, wallet, power_bill):
        BillService.mark_bill_as_paid(user, power_bill.pk, BillPaymentCommand(account_id=wallet.pk, amount=10))
        with pytest.raises(ValidationError):
            BillService.delete_bill(user, power_bill.pk)

    def test_amount_cannot_drop_below_paid(self, user, wallet, power_bill):
        BillService.mark_bill_as_paid(user, power_bill.pk, BillPaymentCommand(account_id=wallet.pk, amount=50))
        with pytest.raises(ValidationError):
            BillService.update_bill(user, power_bill.pk, {'amount': 40})

    def test_unknown_fields_are_rejected(self, user, power_bill):
        with pytest.raises(ValidationError):
            BillService.update_bill(user, power_bill.pk, {'paid_amount': 120})


def test_upcoming_bills_window(user, today):
    soon = BillFactory(owner=user, due_date=today + timedelta(days=3))
    overdue = BillFactory(owner=user, due_date=today - timedelta(days=2))
    BillFactory(owner=user, due_date=today + timedelta(days=20))
    BillFactory(owner=user, due_date=today + timedelta(days=1), paid_amount=Decimal('120.00'))

    upcoming = list(BillService.get_upcoming_bills(user))
    assert upcoming == [overdue, soon]
    assert overdue.status == BillStatus.OVERDUE
    assert list(BillService.get_upcoming_bills(user, days=30))[-1].due_date == today + timedelta(days=20)
