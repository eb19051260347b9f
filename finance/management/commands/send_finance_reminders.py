from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.utils import timezone

from common.enums import NotificationKind, PriorityLevel
from finance.models import Account
from finance.services.bill_service import BillService
from finance.services.recurring_service import RecurringService
from finance.services.settlement_service import SettlementService
from notifications.services import dispatch_notification


class Command(BaseCommand):
    help = (
        "Send bill due reminders, recurring approval reminders and month-end settlement "
        "reminders. Meant to be run daily from cron."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            '--run-recurring',
            action='store_true',
            help="Also post due recurring transactions that do not need approval.",
        )
        parser.add_argument(
            '--skip-settlement',
            action='store_true',
            help="Do not check whether owners should settle the current month.",
        )

    def handle(self, *args, **options):
        now = timezone.now()
        summaries = {
            'bill_reminders': BillService.send_due_reminders(now=now),
            'recurring_reminders': RecurringService.send_approval_reminders(now=now),
        }
        if options['run_recurring']:
            summaries['recurring_posted'] = len(RecurringService.run_unattended(now=now))
        if not options['skip_settlement']:
            summaries['settlement_reminders'] = self._remind_settlements(now)

        self.stdout.write(self.style.SUCCESS("Finance reminders complete."))
        for key, value in summaries.items():
            self.stdout.write(f"- {key}: {value}")

    def _remind_settlements(self, now):
        sent = 0
        owners = get_user_model().objects.filter(
            pk__in=Account.objects.filter(is_active=True).values('owner_id')
        )
        for owner in owners:
            status = SettlementService.check_settlement_needed(owner, now=now)
            if not status['needed']:
                continue
            notification = dispatch_notification(
                owner,
                NotificationKind.SETTLEMENT_REMINDER,
                f"{status['days_left']} day(s) left in {status['period']}. Settle the month to lock its records.",
                priority=PriorityLevel.MEDIUM,
                title=f"Settle {status['period']}",
            )
            if notification is not None:
                sent += 1
        return sent
