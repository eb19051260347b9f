"""Recurring transaction templates and their approval cycle.

A template is a Transaction flagged ``is_recurring`` with a RecurringConfig.
It never moves money itself; each approved cycle posts a fresh transaction
through the ledger and moves ``next_execution`` forward by one step.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from common.enums import AuditAction, NotificationKind, PriorityLevel, RecurringState
from common.exceptions import LedgerError, NotFoundError, ValidationError
from core.unit_of_work import unit_of_work
from audit.services import ActorContext, record_audit
from finance.commands import TransactionDraft
from finance.models import RecurringConfig, Transaction
from finance.schedules import advance
from finance.services.ledger_service import LedgerService
from notifications.services import dispatch_notification

logger = logging.getLogger(__name__)


def _lock_template(work, owner, template_id):
    try:
        return work.lock_one(
            RecurringConfig.objects.filter(template__owner=owner, template__is_recurring=True),
            template_id=template_id,
        )
    except RecurringConfig.DoesNotExist:
        raise NotFoundError("Recurring transaction not found", details={'id': template_id})


def _advance(config):
    config.next_execution = advance(config.next_execution, config.frequency, config.interval)
    config.is_approved = False


class RecurringService:
    @staticmethod
    def get_recurring_transactions(owner, include_ended=False, now=None):
        now = now or timezone.now()
        configs = RecurringConfig.objects.filter(template__owner=owner).select_related('template')
        if include_ended:
            return list(configs)
        return [config for config in configs if config.state(now) != RecurringState.ENDED]

    @staticmethod
    def list_pending_approvals(owner, now=None):
        """Templates whose next run has arrived and that wait for the owner's approval."""
        now = now or timezone.now()
        configs = RecurringConfig.objects.filter(
            template__owner=owner,
            requires_approval=True,
            is_approved=False,
            next_execution__lte=now,
        ).select_related('template')
        return [config for config in configs if config.state(now) == RecurringState.PENDING_APPROVAL]

    @staticmethod
    def _materialize(owner, config, amount, actor, work, now):
        template = config.template
        tx = LedgerService.post(
            owner,
            TransactionDraft(
                type=template.type,
                amount=amount if amount is not None else template.amount,
                account_id=template.account_id,
                category=template.category,
                description=template.description,
                date=now,
                notes="Auto-created from recurring transaction",
                tags=list(template.tags),
                recurring_parent_id=template.pk,
            ),
            actor=actor, uow=work, now=now,
        )
        config.last_executed = now
        config.executions_count += 1
        _advance(config)
        config.save(update_fields=[
            'last_executed', 'executions_count', 'next_execution', 'is_approved', 'approved_at', 'updated_at',
        ])
        return tx

    @staticmethod
    def approve(owner, template_id, amount=None, actor=None, uow=None, now=None):
        """Post this cycle's transaction and schedule the next one."""
        now = now or timezone.now()
        with unit_of_work(uow) as work:
            config = _lock_template(work, owner, template_id)
            state = config.state(now)
            if state not in (RecurringState.PENDING_APPROVAL, RecurringState.DUE):
                raise ValidationError(
                    f"Recurring transaction is {state} and cannot be approved",
                    details={'id': template_id, 'state': state},
                )
            config.is_approved = True
            config.approved_at = now
            tx = RecurringService._materialize(owner, config, amount, actor, work, now)
            record_audit(
                owner, AuditAction.RECURRING_APPROVE, 'transaction', template_id,
                {'transaction_id': tx.pk, 'amount': tx.amount, 'next_execution': config.next_execution},
                actor,
            )
            dispatch_notification(
                owner,
                NotificationKind.RECURRING_EXECUTED,
                f"Your recurring {tx.type} of {tx.amount} has been created",
                priority=PriorityLevel.LOW,
                related=tx,
                title='Recurring Transaction Created',
            )
        return tx

    @staticmethod
    def skip(owner, template_id, actor=None, uow=None, now=None):
        """Move past this cycle without posting anything."""
        now = now or timezone.now()
        with unit_of_work(uow) as work:
            config = _lock_template(work, owner, template_id)
            state = config.state(now)
            if state == RecurringState.ENDED:
                raise ValidationError("Recurring transaction has ended", details={'id': template_id})
            skipped = config.next_execution
            config.skipped_count += 1
            _advance(config)
            config.save(update_fields=['next_execution', 'is_approved', 'skipped_count', 'updated_at'])
            record_audit(
                owner, AuditAction.RECURRING_SKIP, 'transaction', template_id,
                {'skipped_execution': skipped, 'next_execution': config.next_execution},
                actor,
            )
        return config

    @staticmethod
    def cancel(owner, template_id, actor=None, uow=None, now=None):
        now = now or timezone.now()
        with unit_of_work(uow) as work:
            config = _lock_template(work, owner, template_id)
            config.end_date = now
            config.is_approved = False
            config.save(update_fields=['end_date', 'is_approved', 'updated_at'])
            record_audit(owner, AuditAction.RECURRING_CANCEL, 'transaction', template_id, {'end_date': now}, actor)
        return config

    @staticmethod
    def send_approval_reminders(now=None, lookahead=None):
        """Sweep: remind owners of templates coming due within the lookahead window.

        Never approves anything. Returns the number of reminders sent.
        """
        now = now or timezone.now()
        if lookahead is None:
            lookahead = timedelta(hours=settings.FINANCE['RECURRING_REMINDER_LOOKAHEAD_HOURS'])
        configs = RecurringConfig.objects.filter(
            requires_approval=True,
            next_execution__gte=now,
            next_execution__lte=now + lookahead,
        ).select_related('template', 'template__owner')

        sent = 0
        for config in configs:
            if config.is_ended(now):
                continue
            template = config.template
            notification = dispatch_notification(
                template.owner,
                NotificationKind.RECURRING_APPROVAL,
                f"Your recurring {template.type} '{template.description or template.category}' of "
                f"{template.amount} is due {config.next_execution:%Y-%m-%d}. Approve or skip it.",
                priority=PriorityLevel.MEDIUM,
                related=template,
                title='Recurring transaction needs approval',
                expires_at=config.next_execution + timedelta(days=1),
            )
            if notification is not None:
                sent += 1
        logger.info("Recurring approval reminders sent", extra={'count': sent})
        return sent

    @staticmethod
    def run_unattended(now=None):
        """Post every due template that does not require approval.

        Each template runs in its own unit of work so one failure (for
        example an empty account) leaves the others unaffected.
        """
        now = now or timezone.now()
        due = RecurringConfig.objects.filter(
            requires_approval=False,
            next_execution__lte=now,
        ).select_related('template', 'template__owner')

        posted = []
        for config in due:
            if config.state(now) != RecurringState.DUE:
                continue
            owner = config.template.owner
            try:
                with unit_of_work() as work:
                    locked = _lock_template(work, owner, config.template_id)
                    tx = RecurringService._materialize(owner, locked, None, ActorContext.system(), work, now)
                    record_audit(
                        owner, AuditAction.RECURRING_APPROVE, 'transaction', config.template_id,
                        {'transaction_id': tx.pk, 'amount': tx.amount, 'unattended': True},
                        ActorContext.system(),
                    )
                posted.append(tx)
            except LedgerError as exc:
                logger.warning(
                    "Unattended recurring run failed: %s", exc.message,
                    extra={'template_id': config.template_id, 'code': exc.code},
                )
        return posted

    @staticmethod
    def get_template(owner, template_id):
        try:
            return Transaction.objects.select_related('recurring_config').get(
                pk=template_id, owner=owner, is_recurring=True,
            )
        except Transaction.DoesNotExist:
            raise NotFoundError("Recurring transaction not found", details={'id': template_id})
