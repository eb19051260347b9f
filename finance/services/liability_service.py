import logging
from decimal import Decimal

from django.db.models import Count, Sum
from django.utils import timezone

from common.enums import (
    AuditAction, ExpenseCategory, LiabilityStatus, NotificationKind, PriorityLevel,
    TransactionType,
)
from common.exceptions import (
    InsufficientBalanceError, OverpaymentError, ValidationError,
)
from core.unit_of_work import unit_of_work
from core.utils import get_owned_object
from audit.services import record_audit
from finance.commands import PaymentCommand, TransactionDraft, positive_amount
from finance.models import Account, Liability, LiabilityPayment
from finance.periods import monthly_label
from finance.services.ledger_service import LedgerService
from finance.signals import liability_paid
from notifications.services import dispatch_notification

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('description', 'creditor', 'notes', 'tags', 'expected_payment_date', 'total_amount')


class LiabilityService:
    @staticmethod
    def create_liability(owner, liability_data, actor=None, uow=None, now=None):
        now = now or timezone.now()
        description = (liability_data.get('description') or '').strip()
        if not description:
            raise ValidationError("Description is required", details={'description': description})
        total = positive_amount(liability_data.get('total_amount'), 'total_amount')

        account_id = liability_data.get('account_id')
        if account_id is not None:
            account = get_owned_object(Account, owner, account_id)
            if not account.is_active:
                raise ValidationError("Account is inactive", details={'account': account_id})

        receive_proceeds = bool(liability_data.get('receive_proceeds'))
        if receive_proceeds and account_id is None:
            raise ValidationError("An account is required to receive the proceeds", details={'account': None})

        with unit_of_work(uow) as work:
            liability = Liability.objects.create(
                owner=owner,
                description=description,
                creditor=liability_data.get('creditor', ''),
                total_amount=total,
                account_id=account_id,
                created_date=now,
                expected_payment_date=liability_data.get('expected_payment_date'),
                settlement_period=monthly_label(now),
                notes=liability_data.get('notes', ''),
                tags=list(liability_data.get('tags') or []),
            )
            if receive_proceeds:
                LedgerService.post(owner, TransactionDraft(
                    type=TransactionType.LIABILITY,
                    amount=total,
                    account_id=account_id,
                    description=f"Proceeds: {description}",
                    date=now,
                    liability_id=liability.pk,
                ), actor=actor, uow=work, now=now)
            record_audit(
                owner, AuditAction.LIABILITY_CREATE, 'liability', liability.pk,
                {'total_amount': total, 'settlement_period': liability.settlement_period},
                actor,
            )

        logger.info("Liability created", extra={'owner_id': owner.pk, 'liability_id': liability.pk})
        return liability

    @staticmethod
    def make_payment(owner, liability_id, payment: PaymentCommand, actor=None, uow=None, now=None):
        """Pay part or all of a liability from one of the owner's accounts.

        Returns ``(liability, transaction)``. The liability row is locked and
        re-read so two concurrent payments cannot both pass the remaining
        amount check.
        """
        now = now or timezone.now()
        amount = payment.amount

        with unit_of_work(uow) as work:
            liability = get_owned_object(Liability, owner, liability_id, work.lock(Liability.objects.all()))
            if liability.status == LiabilityStatus.FULLY_PAID:
                raise OverpaymentError(
                    "Liability is already fully paid",
                    details={'liability_id': liability.pk},
                )
            if amount > liability.remaining_amount:
                raise OverpaymentError(
                    f"Amount exceeds remaining balance of {liability.remaining_amount}",
                    details={'amount': str(amount), 'remaining_amount': str(liability.remaining_amount)},
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
                    category=ExpenseCategory.DEBT_PAYMENT,
                    description=f"Payment: {liability.description}",
                    date=now,
                    notes=payment.notes or (f"Paid to {liability.creditor}" if liability.creditor else ''),
                    is_liability_payment=True,
                    liability_id=liability.pk,
                ),
                actor=actor, uow=work, now=now,
            )
            LiabilityPayment.objects.create(
                liability=liability,
                transaction=tx,
                amount=amount,
                date=now,
                account=account,
                notes=payment.notes,
            )
            liability.paid_amount += amount
            liability.save(update_fields=['paid_amount'])

            record_audit(
                owner, AuditAction.LIABILITY_PAYMENT, 'liability', liability.pk,
                {
                    'amount': amount,
                    'transaction_id': tx.pk,
                    'account_ids': [account.pk],
                    'remaining_amount': liability.remaining_amount,
                    'status': liability.status,
                },
                actor,
            )
            dispatch_notification(
                owner,
                NotificationKind.LIABILITY_PAYMENT,
                f"Paid {amount} towards {liability.description}. Remaining: {liability.remaining_amount}",
                priority=PriorityLevel.LOW,
                related=liability,
                title='Liability payment recorded',
            )
            work.emit(liability_paid, sender=Liability, owner=owner, liability_id=liability.pk, amount=amount)

        logger.info(
            "Liability payment applied",
            extra={'owner_id': owner.pk, 'liability_id': liability.pk, 'amount': str(amount)},
        )
        return liability, tx

    @staticmethod
    def update_liability(owner, liability_id, liability_data, actor=None, uow=None):
        unknown = set(liability_data) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError("These liability fields cannot be edited", details={'fields': sorted(unknown)})

        with unit_of_work(uow) as work:
            liability = get_owned_object(Liability, owner, liability_id, work.lock(Liability.objects.all()))
            if 'total_amount' in liability_data:
                total = positive_amount(liability_data['total_amount'], 'total_amount')
                if total < liability.paid_amount:
                    raise ValidationError(
                        "The total of a liability cannot drop below what has been paid",
                        details={'total_amount': str(total), 'paid_amount': str(liability.paid_amount)},
                    )
                liability_data = {**liability_data, 'total_amount': total}

            for field, value in liability_data.items():
                setattr(liability, field, value)
            liability.save()
            record_audit(owner, AuditAction.LIABILITY_UPDATE, 'liability', liability.pk, dict(liability_data), actor)
        return liability

    @staticmethod
    def delete_liability(owner, liability_id, actor=None, uow=None):
        with unit_of_work(uow) as work:
            liability = get_owned_object(Liability, owner, liability_id, work.lock(Liability.objects.all()))
            if liability.paid_amount > 0 or liability.payments.exists():
                raise ValidationError(
                    "Liabilities with payments cannot be deleted",
                    details={'liability_id': liability.pk, 'paid_amount': str(liability.paid_amount)},
                )
            pk = liability.pk
            liability.delete()
            record_audit(owner, AuditAction.LIABILITY_DELETE, 'liability', pk, {}, actor)

    @staticmethod
    def get_liability(owner, liability_id):
        return get_owned_object(Liability, owner, liability_id)

    @staticmethod
    def get_liabilities(owner, status=None, settlement_period=None):
        liabilities = Liability.objects.filter(owner=owner)
        if status:
            liabilities = liabilities.filter(status=status)
        if settlement_period:
            liabilities = liabilities.filter(settlement_period=settlement_period)
        return liabilities

    @staticmethod
    def get_summary(owner):
        liabilities = Liability.objects.filter(owner=owner)
        totals = liabilities.aggregate(
            total=Sum('total_amount'),
            paid=Sum('paid_amount'),
            remaining=Sum('remaining_amount'),
        )
        by_status = {
            row['status']: row['count']
            for row in liabilities.order_by().values('status').annotate(count=Count('id'))
        }
        return {
            'total_amount': totals['total'] or Decimal('0'),
            'paid_amount': totals['paid'] or Decimal('0'),
            'remaining_amount': totals['remaining'] or Decimal('0'),
            'count': sum(by_status.values()),
            'active': by_status.get(LiabilityStatus.ACTIVE.value, 0),
            'partially_paid': by_status.get(LiabilityStatus.PARTIALLY_PAID.value, 0),
            'fully_paid': by_status.get(LiabilityStatus.FULLY_PAID.value, 0),
        }
