"""Period close: snapshot the ledger, lock the period and roll balances forward."""

import logging
from collections import defaultdict
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError
from django.utils import timezone

from common.enums import (
    AuditAction, LiabilityStatus, NotificationKind, PriorityLevel, SettledBy, TransactionType,
)
from common.exceptions import DuplicateSettlementError, NotFoundError
from common.timezone_utils import days_left_in_month
from core.unit_of_work import unit_of_work
from audit.services import record_audit
from finance.models import Account, Liability, Settlement, SettlementAccountSnapshot, Transaction
from finance.periods import SettlementPeriod
from notifications.services import dispatch_notification

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


def summarize_transactions(transactions):
    """Totals and per-category breakdowns for a period's transactions.

    Liability payments are debt service, so they are totalled apart from
    discretionary expenses.
    """
    summary = {
        'total_income': ZERO,
        'total_expenses': ZERO,
        'total_transfers': ZERO,
        'total_liability_payments': ZERO,
    }
    income_by_category = defaultdict(lambda: ZERO)
    expenses_by_category = defaultdict(lambda: ZERO)

    for tx in transactions:
        if tx.type == TransactionType.INCOME:
            summary['total_income'] += tx.amount
            income_by_category[tx.category or 'uncategorized'] += tx.amount
        elif tx.type == TransactionType.EXPENSE:
            if tx.is_liability_payment:
                summary['total_liability_payments'] += tx.amount
            else:
                summary['total_expenses'] += tx.amount
                expenses_by_category[tx.category or 'uncategorized'] += tx.amount
        elif tx.type == TransactionType.TRANSFER:
            summary['total_transfers'] += tx.amount

    summary['net_cash_flow'] = summary['total_income'] - summary['total_expenses']
    summary['income_by_category'] = {k: str(v) for k, v in sorted(income_by_category.items())}
    summary['expenses_by_category'] = {k: str(v) for k, v in sorted(expenses_by_category.items())}
    return summary


def account_flows(account, transactions):
    """Inflow and outflow of ``account`` across the period's transactions."""
    inflow = outflow = ZERO
    for tx in transactions:
        if tx.account_id == account.pk:
            if tx.type in (TransactionType.INCOME, TransactionType.LIABILITY):
                inflow += tx.amount
            elif tx.type in (TransactionType.EXPENSE, TransactionType.TRANSFER):
                outflow += tx.amount
        elif tx.type == TransactionType.TRANSFER and tx.destination_account_id == account.pk:
            inflow += tx.amount
    return inflow, outflow


def _liability_row(liability):
    return {
        'id': liability.pk,
        'description': liability.description,
        'creditor': liability.creditor,
        'total_amount': str(liability.total_amount),
        'paid_amount': str(liability.paid_amount),
        'remaining_amount': str(liability.remaining_amount),
        'status': liability.status,
        'settlement_period': liability.settlement_period,
        'carried_forward_from': liability.carried_forward_from,
    }


def summarize_liabilities(owner, period, start, end):
    labels = period.monthly_labels()
    tagged = Liability.objects.filter(owner=owner, settlement_period__in=labels)

    opening = tagged.exclude(carried_forward_from='')
    new = tagged.filter(carried_forward_from='', created_date__gte=start, created_date__lte=end)
    paid = tagged.filter(
        status=LiabilityStatus.FULLY_PAID,
        payments__date__gte=start,
        payments__date__lte=end,
    ).distinct()
    carry_forward = list(tagged.filter(
        status__in=[LiabilityStatus.ACTIVE, LiabilityStatus.PARTIALLY_PAID]
    ).order_by('pk'))

    return {
        'opening': [_liability_row(liability) for liability in opening],
        'new': [_liability_row(liability) for liability in new],
        'paid': [_liability_row(liability) for liability in paid],
        'carry_forward': [_liability_row(liability) for liability in carry_forward],
        'total_liability_amount': sum((l.total_amount for l in carry_forward), ZERO),
        'total_liability_paid': sum((l.paid_amount for l in carry_forward), ZERO),
        'total_liability_remaining': sum((l.remaining_amount for l in carry_forward), ZERO),
    }, carry_forward


class SettlementService:
    @staticmethod
    def perform_settlement(owner, period_label, settled_by=SettledBy.MANUAL, notes='', actor=None, uow=None,
                           now=None):
        """Close ``period_label`` for ``owner``.

        Creates the Settlement with its account snapshots, locks every
        in-period transaction, rolls opening balances forward and moves
        unpaid liabilities into the next period. A period can be settled
        exactly once; a second attempt raises DuplicateSettlementError.
        """
        now = now or timezone.now()
        period = SettlementPeriod.parse(period_label)
        start, end = period.bounds()

        if Settlement.objects.filter(owner=owner, period=period.label).exists():
            raise DuplicateSettlementError(
                f"Period {period.label} has already been settled",
                details={'period': period.label},
            )

        try:
            with unit_of_work(uow) as work:
                accounts = list(work.lock(Account.objects.filter(owner=owner)))
                transactions = list(
                    Transaction.objects.filter(owner=owner, is_recurring=False, date__gte=start, date__lte=end)
                    .order_by('date', 'pk')
                )

                summary = summarize_transactions(transactions)
                liability_summary, carry_forward = summarize_liabilities(owner, period, start, end)

                snapshots = []
                for account in accounts:
                    inflow, outflow = account_flows(account, transactions)
                    snapshots.append(SettlementAccountSnapshot(
                        account=account,
                        account_name=account.name,
                        account_type=account.type,
                        opening_balance=account.opening_balance,
                        closing_balance=account.balance,
                        total_inflow=inflow,
                        total_outflow=outflow,
                    ))
                carry_forward_balance = sum((s.closing_balance for s in snapshots), ZERO)

                totals = {k: liability_summary.pop(k) for k in (
                    'total_liability_amount', 'total_liability_paid', 'total_liability_remaining',
                )}
                settlement = Settlement.objects.create(
                    owner=owner,
                    period=period.label,
                    period_type=period.period_type,
                    period_start=start,
                    period_end=end,
                    liability_summary=liability_summary,
                    carry_forward_balance=carry_forward_balance,
                    settled_at=now,
                    settled_by=settled_by,
                    notes=notes,
                    **summary,
                    **totals,
                )
                for snapshot in snapshots:
                    snapshot.settlement = settlement
                SettlementAccountSnapshot.objects.bulk_create(snapshots)

                locked = Transaction.objects.filter(
                    pk__in=[tx.pk for tx in transactions], is_settled=False,
                ).update(is_settled=True, settled_at=now, settlement_period=period.label)

                for account in accounts:
                    account.opening_balance = account.balance
                    account.last_settlement_date = now
                    account.save(update_fields=['opening_balance', 'last_settlement_date', 'updated_at'])

                next_label = period.carry_forward_label()
                for liability in carry_forward:
                    liability.settlement_period = next_label
                    liability.carried_forward_from = period.label
                    liability.save(update_fields=['settlement_period', 'carried_forward_from'])

                record_audit(
                    owner, AuditAction.SETTLEMENT_EXECUTE, 'settlement', settlement.pk,
                    {
                        'period': period.label,
                        'transactions_locked': locked,
                        'carry_forward_balance': carry_forward_balance,
                        'liabilities_carried': [liability.pk for liability in carry_forward],
                    },
                    actor,
                )
                dispatch_notification(
                    owner,
                    NotificationKind.SETTLEMENT_COMPLETED,
                    f"Settlement for {period.label} completed. Carry-forward balance: {carry_forward_balance}",
                    priority=PriorityLevel.MEDIUM,
                    related=settlement,
                    title=f"Period {period.label} settled",
                )
        except IntegrityError:
            if Settlement.objects.filter(owner=owner, period=period.label).exists():
                raise DuplicateSettlementError(
                    f"Period {period.label} has already been settled",
                    details={'period': period.label},
                )
            raise

        logger.info(
            "Settlement completed",
            extra={'owner_id': owner.pk, 'period': period.label, 'transactions_locked': locked},
        )
        return settlement

    @staticmethod
    def check_settlement_needed(owner, now=None):
        """Advisory only: flag the current month when it is unsettled and nearly over."""
        now = timezone.localtime(now or timezone.now())
        current = SettlementPeriod.current(now)
        days_left = days_left_in_month(now)
        already_settled = Settlement.objects.filter(owner=owner, period=current.label).exists()
        return {
            'period': current.label,
            'days_left': days_left,
            'is_settled': already_settled,
            'needed': not already_settled and days_left <= settings.FINANCE['SETTLEMENT_REMINDER_DAYS'],
        }

    @staticmethod
    def get_settlements(owner, period_type=None):
        settlements = Settlement.objects.filter(owner=owner).prefetch_related('account_snapshots')
        if period_type:
            settlements = settlements.filter(period_type=period_type)
        return settlements

    @staticmethod
    def get_settlement_by_period(owner, period_label):
        period = SettlementPeriod.parse(period_label)
        try:
            return Settlement.objects.prefetch_related('account_snapshots').get(owner=owner, period=period.label)
        except Settlement.DoesNotExist:
            raise NotFoundError("Settlement not found", details={'period': period.label})

    @staticmethod
    def update_notes(owner, period_label, notes, actor=None, uow=None):
        """The only change a settlement accepts after creation."""
        with unit_of_work(uow):
            settlement = SettlementService.get_settlement_by_period(owner, period_label)
            settlement.notes = notes
            settlement.save(update_fields=['notes', 'updated_at'])
            record_audit(
                owner, AuditAction.SETTLEMENT_NOTES, 'settlement', settlement.pk, {'period': settlement.period},
                actor,
            )
        return settlement
