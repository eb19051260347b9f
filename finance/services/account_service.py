import logging
from decimal import Decimal

from django.db.models import Q

from common.enums import AccountType, AuditAction
from common.exceptions import ValidationError
from core.unit_of_work import unit_of_work
from core.utils import get_owned_object
from audit.services import record_audit
from finance.commands import to_amount
from finance.models import Account, Transaction

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('name', 'description')
LIQUID_TYPES = (AccountType.CASH, AccountType.BANK, AccountType.SAVINGS)


class AccountService:
    """Account store: balances are only ever moved by the ledger and settlement."""

    @staticmethod
    def create_account(owner, account_data, actor=None, uow=None):
        name = (account_data.get('name') or '').strip()
        if not name:
            raise ValidationError("Account name is required", details={'name': name})

        account_type = account_data.get('type')
        if account_type not in AccountType.values:
            raise ValidationError(
                f"Unsupported account type '{account_type}'",
                details={'type': account_type, 'allowed': list(AccountType.values)},
            )

        opening = to_amount(account_data.get('opening_balance', 0), 'opening_balance')
        if opening < 0 and account_type != AccountType.LOAN:
            raise ValidationError(
                "Opening balance cannot be negative",
                details={'opening_balance': str(opening)},
            )

        with unit_of_work(uow):
            account = Account.objects.create(
                owner=owner,
                name=name,
                type=account_type,
                balance=opening,
                opening_balance=opening,
                description=account_data.get('description', ''),
            )
            record_audit(
                owner, AuditAction.ACCOUNT_CREATE, 'account', account.pk,
                {'type': account_type, 'opening_balance': opening}, actor,
            )

        logger.info("Account created", extra={'owner_id': owner.pk, 'account_id': account.pk})
        return account

    @staticmethod
    def update_account(owner, account_id, account_data, actor=None, uow=None):
        unknown = set(account_data) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                "Only the name and description of an account can be edited",
                details={'fields': sorted(unknown)},
            )

        with unit_of_work(uow) as work:
            account = get_owned_object(Account, owner, account_id, work.lock(Account.objects.all()))
            for field, value in account_data.items():
                setattr(account, field, value)
            account.save(update_fields=[*account_data.keys(), 'updated_at'])
            record_audit(owner, AuditAction.ACCOUNT_UPDATE, 'account', account.pk, dict(account_data), actor)
        return account

    @staticmethod
    def deactivate_account(owner, account_id, actor=None, uow=None):
        with unit_of_work(uow) as work:
            account = get_owned_object(Account, owner, account_id, work.lock(Account.objects.all()))
            account.is_active = False
            account.save(update_fields=['is_active', 'updated_at'])
            record_audit(
                owner, AuditAction.ACCOUNT_DEACTIVATE, 'account', account.pk,
                {'balance': account.balance}, actor,
            )
        return account

    @staticmethod
    def delete_account(owner, account_id, actor=None, uow=None):
        """Delete an account, or deactivate it when transactions still reference it.

        Returns ``True`` when the row was removed and ``False`` when it was
        only deactivated.
        """
        with unit_of_work(uow) as work:
            account = get_owned_object(Account, owner, account_id, work.lock(Account.objects.all()))
            referenced = Transaction.objects.filter(
                Q(account=account) | Q(destination_account=account)
            ).count()
            if referenced:
                account.is_active = False
                account.save(update_fields=['is_active', 'updated_at'])
                record_audit(
                    owner, AuditAction.ACCOUNT_DEACTIVATE, 'account', account.pk,
                    {'balance': account.balance, 'transactions': referenced}, actor,
                )
                logger.warning(
                    "Account deactivated instead of deleted",
                    extra={'owner_id': owner.pk, 'account_id': account.pk, 'transactions': referenced},
                )
                return False

            pk = account.pk
            account.delete()
            record_audit(owner, AuditAction.ACCOUNT_DELETE, 'account', pk, {'name': account.name}, actor)
        logger.info("Account deleted", extra={'owner_id': owner.pk, 'account_id': pk})
        return True

    @staticmethod
    def get_account(owner, account_id):
        return get_owned_object(Account, owner, account_id)

    @staticmethod
    def get_accounts(owner, include_inactive=False):
        accounts = Account.objects.filter(owner=owner)
        if not include_inactive:
            accounts = accounts.filter(is_active=True)
        return accounts

    @staticmethod
    def get_summary(owner):
        """Balances of the active accounts, grouped the way the dashboard shows them."""
        by_type = {account_type: Decimal('0') for account_type in AccountType.values}
        total = liquid = investments = loans = Decimal('0')
        for account in AccountService.get_accounts(owner):
            by_type[account.type] += account.balance
            if account.type == AccountType.LOAN:
                loans += abs(account.balance)
                continue
            total += account.balance
            if account.type in LIQUID_TYPES:
                liquid += account.balance
            elif account.type == AccountType.INVESTMENT:
                investments += account.balance
        return {
            'total': total,
            'by_type': by_type,
            'liquid_assets': liquid,
            'investments': investments,
            'loans': loans,
        }
