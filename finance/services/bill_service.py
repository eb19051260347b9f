import logging
from datetime import datetime, time, timedelta

from django.conf import settings
from django.db.models import F
from django.utils import timezone

from common.enums import (
    AuditAction, BillStatus, ExpenseCategory, Frequency, NotificationKind,
    PriorityLevel, TransactionType,
)
from common.exceptions import (
    InsufficientBalanceError, OverpaymentError, ValidationError,
)
from core.unit_of_work import unit_of_work
from core.utils import get_owned_object
from audit.services import record_audit
from finance.commands import BillPaymentCommand, TransactionDraft, positive_amount
from finance.models import Account, Bill, BillPayment
from finance.schedules import advance, validate_schedule
from finance.services.ledger_service import LedgerService
from notifications.services import dispatch_notification

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    'name', 'amount', 'category', 'due_date', 'default_account_id', 'reminder_days', 'notes',
    'is_recurring', 'frequency', 'interval', 'recurrence_end_date',
)


def _start_of_day(day):
    return timezone.make_aware(datetime.combine(day, time.min))


def _validate_reminder_days(reminder_days):
    if not isinstance(reminder_days, (list, tuple)) or any(
        not isinstance(days, int) or days < 0 for days in reminder_days
    ):
        raise ValidationError(
            "Reminder days must be a list of non-negative whole numbers",
            details={'reminder_days': reminder_days},
        )
    return sorted(set(reminder_days), reverse=True)


class BillService:
    @staticmethod
    def create_bill(owner, bill_data, actor=None, uow=None, now=None):
        now = now or timezone.now()
        name = (bill_data.get('name') or '').strip()
        if not name:
            raise ValidationError("Bill name is required", details={'name': name})
        amount = positive_amount(bill_data.get('amount'))
        due_date = bill_data.get('due_date')
        if due_date is None:
            raise ValidationError("Due date is required", details={'due_date': None})

        category = bill_data.get('category', ExpenseCategory.UTILITIES)
        if category not in ExpenseCategory.values:
            raise ValidationError(f"'{category}' is not an expense category", details={'category': category})

        is_recurring = bool(bill_data.get('is_recurring'))
        frequency, interval = '', 1
        if is_recurring:
            frequency = bill_data.get('frequency', Frequency.MONTHLY)
            interval = validate_schedule(frequency, bill_data.get('interval', 1))

        default_account_id = bill_data.get('default_account_id')
        if default_account_id is not None:
            account = get_owned_object(Account, owner, default_account_id)
            if not account.is_active:
                raise ValidationError("Default account is inactive", details={'default_account': default_account_id})

        reminder_days = _validate_reminder_days(
            bill_data.get('reminder_days', settings.FINANCE['DEFAULT_BILL_REMINDER_DAYS'])
        )

        with unit_of_work(uow):
            bill = Bill.objects.create(
                owner=owner,
                name=name,
                amount=amount,
                category=category,
                due_date=due_date,
                is_recurring=is_recurring,
                frequency=frequency,
                interval=interval,
                recurrence_end_date=bill_data.get('recurrence_end_date'),
                default_account_id=default_account_id,
                reminder_days=reminder_days,
                notes=bill_data.get('notes', ''),
            )
            BillService.schedule_reminders(bill, now=now)
            record_audit(
                owner, AuditAction.BILL_CREATE, 'bill', bill.pk,
                {'amount': amount, 'due_date': due_date, 'recurring': is_recurring},
                actor,
            )
        return bill

    @staticmethod
    def schedule_reminders(bill, now=None):
        """Queue a reminder for each offset in ``reminder_days`` that is still ahead."""
        now = now or timezone.now()
        scheduled = []
        for days in bill.reminder_days:
            remind_at = _start_of_day(bill.due_date - timedelta(days=days))
            if remind_at <= now:
                continue
            notification = dispatch_notification(
                bill.owner,
                NotificationKind.BILL_REMINDER,
                f"Your {bill.name} of {bill.amount} is due in {days} day{'s' if days != 1 else ''} "
                f"({bill.due_date:%Y-%m-%d})",
                priority=PriorityLevel.HIGH if days <= 1 else PriorityLevel.MEDIUM,
                related=bill,
                title=f"Bill Reminder: {bill.name}",
                scheduled_for=remind_at,
                expires_at=_start_of_day(bill.due_date + timedelta(days=7)),
            )
            if notification is not None:
                scheduled.append(notification)
        return scheduled

    @staticmethod
    def mark_bill_as_paid(owner, bill_id, payment: BillPaymentCommand, actor=None, uow=None, now=None):
        """Pay a bill, in full by default. Returns ``(bill, transaction)``."""
        now = now or timezone.now()

        with unit_of_work(uow) as work:
            bill = get_owned_object(Bill, owner, bill_id, work.lock(Bill.objects.all()))
            outstanding = bill.outstanding_amount
            if outstanding <= 0:
                raise OverpaymentError("Bill is already paid", details={'bill_id': bill.pk})

            amount = payment.amount if payment.amount is not None else outstanding
            if amount > outstanding:
                raise OverpaymentError(
                    f"Amount exceeds outstanding balance of {outstanding}",
                    details={'amount': str(amount), 'outstanding': str(outstanding)},
                )

            account = get_owned_object(Account, owner, payment.account_id, work.lock(Account.objects.all()))
            if not account.is_active:
                raise ValidationError("Account is inactive", details={'account': account.pk})
            if account.balance < amount:
                raise InsufficientBalanceError(
                    f"Insufficient balance in {account.name}",
                    details={'account_id': account.pk, 'balance': str(account.balance), 'amount': str(amount)},
                )

            tx = LedgerService.post(
                owner,
                TransactionDraft(
                    type=TransactionType.EXPENSE,
                    amount=amount,
                    account_id=account.pk,
                    category=bill.category,
                    description=f"Bill payment: {bill.name}",
                    date=now,
                    notes=payment.notes or f"Paid {bill.name}",
                ),
                actor=actor, uow=work, now=now,
            )
            BillPayment.objects.create(
                bill=bill, transaction=tx, amount=amount, date=now, account=account, notes=payment.notes,
            )
            bill.paid_amount += amount
            bill.save(update_fields=['paid_amount'])

            successor = None
            if bill.is_recurring and bill.status == BillStatus.PAID:
                successor = BillService.create_next_bill(bill, now=now)

            record_audit(
                owner, AuditAction.BILL_PAYMENT, 'bill', bill.pk,
                {
                    'amount': amount,
                    'status': bill.status,
                    'transaction_id': tx.pk,
                    'account_ids': [account.pk],
                    'next_bill_id': successor.pk if successor else None,
                },
                actor,
            )
            dispatch_notification(
                owner,
                NotificationKind.BILL_PAID,
                f"Paid {amount} for {bill.name}",
                priority=PriorityLevel.LOW,
                related=bill,
                title='Bill payment recorded',
            )

        logger.info("Bill payment applied", extra={'owner_id': owner.pk, 'bill_id': bill.pk, 'amount': str(amount)})
        return bill, tx

    @staticmethod
    def next_due_date(bill):
        if not bill.is_recurring or not bill.frequency:
            return None
        next_due = advance(bill.due_date, bill.frequency, bill.interval)
        if bill.recurrence_end_date and next_due > bill.recurrence_end_date:
            return None
        return next_due

    @staticmethod
    def create_next_bill(bill, now=None):
        """Spawn the successor of a paid recurring bill, or ``None`` once the series ends."""
        next_due = BillService.next_due_date(bill)
        if next_due is None:
            logger.info("Recurring bill series ended", extra={'bill_id': bill.pk})
            return None

        successor = Bill.objects.create(
            owner=bill.owner,
            name=bill.name,
            amount=bill.amount,
            category=bill.category,
            due_date=next_due,
            is_recurring=True,
            frequency=bill.frequency,
            interval=bill.interval,
            recurrence_end_date=bill.recurrence_end_date,
            default_account_id=bill.default_account_id,
            reminder_days=list(bill.reminder_days),
            notes=bill.notes,
            previous_bill=bill,
        )
        BillService.schedule_reminders(successor, now=now)
        return successor

    @staticmethod
    def update_bill(owner, bill_id, bill_data, actor=None, uow=None):
        unknown = set(bill_data) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError("These bill fields cannot be edited", details={'fields': sorted(unknown)})

        with unit_of_work(uow) as work:
            bill = get_owned_object(Bill, owner, bill_id, work.lock(Bill.objects.all()))
            if bill.compute_status() == BillStatus.PAID:
                raise ValidationError("Paid bills cannot be edited", details={'bill_id': bill.pk})

            changes = dict(bill_data)
            if 'amount' in changes:
                changes['amount'] = positive_amount(changes['amount'])
                if changes['amount'] < bill.paid_amount:
                    raise ValidationError(
                        "Amount cannot be lower than what has already been paid",
                        details={'paid_amount': str(bill.paid_amount)},
                    )
            if 'category' in changes and changes['category'] not in ExpenseCategory.values:
                raise ValidationError(
                    f"'{changes['category']}' is not an expense category",
                    details={'category': changes['category']},
                )
            if 'reminder_days' in changes:
                changes['reminder_days'] = _validate_reminder_days(changes['reminder_days'])
            if changes.get('default_account_id') is not None:
                get_owned_object(Account, owner, changes['default_account_id'])

            for field, value in changes.items():
                setattr(bill, field, value)
            if bill.is_recurring:
                bill.interval = validate_schedule(bill.frequency or Frequency.MONTHLY, bill.interval)
                bill.frequency = bill.frequency or Frequency.MONTHLY
            bill.save()
            record_audit(owner, AuditAction.BILL_UPDATE, 'bill', bill.pk, changes, actor)
        return bill

    @staticmethod
    def delete_bill(owner, bill_id, actor=None, uow=None):
        with unit_of_work(uow) as work:
            bill = get_owned_object(Bill, owner, bill_id, work.lock(Bill.objects.all()))
            if bill.payments.exists():
                raise ValidationError(
                    "Bills with payment history cannot be deleted",
                    details={'bill_id': bill.pk},
                )
            pk = bill.pk
            bill.delete()
            record_audit(owner, AuditAction.BILL_DELETE, 'bill', pk, {}, actor)

    @staticmethod
    def get_bill(owner, bill_id):
        return get_owned_object(Bill, owner, bill_id)

    @staticmethod
    def get_upcoming_bills(owner, days=None, today=None):
        """Unpaid bills due within ``days`` (overdue ones included), soonest first."""
        today = today or timezone.localdate()
        days = settings.FINANCE['UPCOMING_BILL_WINDOW_DAYS'] if days is None else days
        return Bill.objects.filter(
            owner=owner,
            paid_amount__lt=F('amount'),
            due_date__lte=today + timedelta(days=days),
        ).select_related('default_account').order_by('due_date')

    @staticmethod
    def send_due_reminders(now=None):
        """Sweep: notify owners of unpaid bills due today or tomorrow. Returns the count sent."""
        now = now or timezone.now()
        today = timezone.localdate(now)
        bills = Bill.objects.filter(
            paid_amount__lt=F('amount'),
            due_date__gte=today,
            due_date__lte=today + timedelta(days=1),
        ).select_related('owner')

        sent = 0
        for bill in bills:
            due_today = bill.due_date == today
            notification = dispatch_notification(
                bill.owner,
                NotificationKind.BILL_REMINDER,
                f"Your {bill.name} of {bill.outstanding_amount} is due {'today' if due_today else 'tomorrow'}",
                priority=PriorityLevel.HIGH if due_today else PriorityLevel.MEDIUM,
                related=bill,
                title=f"Bill Due: {bill.name}",
            )
            if notification is not None:
                sent += 1
        logger.info("Bill reminders sent", extra={'count': sent})
        return sent
