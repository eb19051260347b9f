"""Ledger engine: transactions and the account balances they move.

Every write locks the accounts it touches, applies the signed balance
effect of the transaction and stores the transaction row inside one unit
of work. Updates never compute a raw delta; the old effect is reversed
with the old amount and the new effect applied with the new amount.
"""

import logging
from decimal import Decimal

from django.db.models import Q
from django.utils import timezone

from common.enums import (
    AuditAction, ExpenseCategory, IncomeCategory, TransactionType,
)
from common.exceptions import (
    InsufficientBalanceError, NotFoundError, SettledImmutableError, ValidationError,
)
from core.unit_of_work import unit_of_work
from core.utils import get_owned_object
from audit.services import record_audit
from finance.commands import TransactionDraft, TransactionPatch
from finance.models import Account, BillPayment, LiabilityPayment, RecurringConfig, Settlement, Transaction
from finance.periods import monthly_label
from finance.schedules import validate_schedule
from finance.services.budget_service import BudgetService
from finance.signals import transaction_posted

logger = logging.getLogger(__name__)

NON_RECURRING_TYPES = (TransactionType.TRANSFER, TransactionType.LIABILITY)


def ledger_effects(tx_type, amount, account_id, destination_account_id=None):
    """Signed balance changes, keyed by account id, for one transaction."""
    if tx_type in (TransactionType.INCOME, TransactionType.LIABILITY):
        return {account_id: amount}
    if tx_type == TransactionType.EXPENSE:
        return {account_id: -amount}
    if tx_type == TransactionType.TRANSFER:
        return {account_id: -amount, destination_account_id: amount}
    raise ValidationError(f"Unsupported transaction type '{tx_type}'", details={'type': tx_type})


def reversed_effects(effects):
    return {account_id: -delta for account_id, delta in effects.items()}


def effects_of(tx):
    return ledger_effects(tx.type, tx.amount, tx.account_id, tx.destination_account_id)


def validate_category(tx_type, category):
    if tx_type == TransactionType.INCOME:
        if not category:
            raise ValidationError("Category is required for income", details={'category': category})
        if category not in IncomeCategory.values:
            raise ValidationError(
                f"'{category}' is not an income category",
                details={'category': category, 'allowed': list(IncomeCategory.values)},
            )
    elif tx_type == TransactionType.EXPENSE:
        if not category:
            raise ValidationError("Category is required for expenses", details={'category': category})
        if category not in ExpenseCategory.values:
            raise ValidationError(
                f"'{category}' is not an expense category",
                details={'category': category, 'allowed': list(ExpenseCategory.values)},
            )


def _active_account(owner, account_id, role='account'):
    if account_id is None:
        raise ValidationError(f"{role.replace('_', ' ').capitalize()} is required", details={role: None})
    account = get_owned_object(Account, owner, account_id)
    if not account.is_active:
        raise ValidationError("Account is inactive", details={role: account_id})
    return account


def _validate_accounts(owner, tx_type, account_id, destination_account_id):
    _active_account(owner, account_id)
    if tx_type == TransactionType.TRANSFER:
        _active_account(owner, destination_account_id, 'destination_account')
        if destination_account_id == account_id:
            raise ValidationError(
                "Transfer source and destination must be different accounts",
                details={'account': account_id, 'destination_account': destination_account_id},
            )
    elif destination_account_id is not None:
        raise ValidationError(
            "Only transfers can have a destination account",
            details={'destination_account': destination_account_id},
        )


def _ensure_period_open(owner, moment):
    """Refuse dates that fall inside a month, or year, that has been settled."""
    label = monthly_label(moment)
    closed = (
        Settlement.objects.filter(owner=owner, period__in=(label, label[:4]))
        .values_list('period', flat=True)
        .first()
    )
    if closed is not None:
        raise SettledImmutableError(
            f"Period {closed} has been settled and no longer accepts transactions",
            details={'settlement_period': closed, 'period': label},
        )


def _apply(locked_accounts, effects):
    for account_id, delta in effects.items():
        locked_accounts[account_id].balance += delta


def _lock_accounts(work, owner, account_ids):
    ids = sorted(set(account_ids))
    accounts = {a.pk: a for a in work.lock(Account.objects.filter(owner=owner, pk__in=ids))}
    missing = [pk for pk in ids if pk not in accounts]
    if missing:
        raise NotFoundError("Account not found", details={'account_ids': missing})
    return accounts


def _store_balances(locked_accounts, now):
    for account in locked_accounts.values():
        if account.balance < 0 and not account.allows_negative_balance:
            raise InsufficientBalanceError(
                f"Insufficient balance in {account.name}",
                details={'account_id': account.pk, 'shortfall': str(-account.balance)},
            )
    for account in locked_accounts.values():
        account.last_transaction_at = now
        account.save(update_fields=['balance', 'last_transaction_at', 'updated_at'])


def _is_payment_record(tx):
    return (
        tx.is_liability_payment
        or LiabilityPayment.objects.filter(transaction=tx).exists()
        or BillPayment.objects.filter(transaction=tx).exists()
    )


def _touched_categories(*transactions):
    return sorted({
        (tx.category, tx.date) for tx in transactions
        if tx.type == TransactionType.EXPENSE and not tx.is_liability_payment and tx.category
    }, key=lambda pair: (pair[0], pair[1]))


class LedgerService:
    @staticmethod
    def create_transaction(owner, draft: TransactionDraft, actor=None, uow=None, now=None):
        """Record a new transaction and apply its balance effect atomically.

        Liability payments are rejected here; they are posted by
        ``LiabilityService.make_payment`` so the payment record and the
        liability totals move together.
        """
        if draft.is_liability_payment or draft.liability_id is not None:
            raise ValidationError(
                "Liability payments must be made through the liability payment flow",
                details={'liability': draft.liability_id},
            )
        return LedgerService.post(owner, draft, actor=actor, uow=uow, now=now)

    @staticmethod
    def post(owner, draft: TransactionDraft, actor=None, uow=None, now=None):
        now = now or timezone.now()
        if draft.type not in TransactionType.values:
            raise ValidationError(f"Unsupported transaction type '{draft.type}'", details={'type': draft.type})
        _validate_accounts(owner, draft.type, draft.account_id, draft.destination_account_id)
        validate_category(draft.type, draft.category)

        recurrence = draft.recurrence
        if recurrence is not None:
            if draft.type in NON_RECURRING_TYPES:
                raise ValidationError(
                    "Transfers and liabilities cannot be recurring",
                    details={'type': draft.type},
                )
            recurrence.interval = validate_schedule(recurrence.frequency, recurrence.interval)

        tx_date = draft.date or now
        if recurrence is not None:
            first_run = recurrence.next_execution or tx_date
            if recurrence.end_date is not None and recurrence.end_date <= first_run:
                raise ValidationError(
                    "Recurring end date must be after the first execution",
                    details={'end_date': recurrence.end_date, 'next_execution': first_run},
                )
        else:
            _ensure_period_open(owner, tx_date)

        with unit_of_work(uow) as work:
            if recurrence is None:
                effects = ledger_effects(draft.type, draft.amount, draft.account_id, draft.destination_account_id)
                accounts = _lock_accounts(work, owner, effects.keys())
                _apply(accounts, effects)
                _store_balances(accounts, now)

            tx = Transaction.objects.create(
                owner=owner,
                type=draft.type,
                amount=draft.amount,
                account_id=draft.account_id,
                destination_account_id=draft.destination_account_id,
                category=draft.category or '',
                description=draft.description,
                date=tx_date,
                notes=draft.notes,
                tags=list(draft.tags or []),
                is_liability_payment=draft.is_liability_payment,
                liability_id=draft.liability_id,
                is_recurring=recurrence is not None,
                recurring_parent_id=draft.recurring_parent_id,
                settlement_period=monthly_label(tx_date),
            )

            if recurrence is not None:
                RecurringConfig.objects.create(
                    template=tx,
                    frequency=recurrence.frequency,
                    interval=recurrence.interval,
                    end_date=recurrence.end_date,
                    next_execution=first_run,
                    requires_approval=recurrence.requires_approval,
                )
            else:
                for category, on_date in _touched_categories(tx):
                    BudgetService.update_budget_spending(owner, category, on_date, amount=tx.amount, uow=work)

            record_audit(
                owner, AuditAction.TRANSACTION_CREATE, 'transaction', tx.pk,
                {
                    'type': tx.type,
                    'amount_before': None,
                    'amount_after': tx.amount,
                    'account_ids': tx.account_ids,
                    'recurring': tx.is_recurring,
                },
                actor,
            )
            if not tx.is_recurring:
                work.emit(
                    transaction_posted, sender=Transaction,
                    owner=owner, account_ids=tx.account_ids, categories=[tx.category] if tx.category else [],
                )

        logger.info(
            "Transaction recorded",
            extra={'owner_id': owner.pk, 'transaction_id': tx.pk, 'type': tx.type, 'amount': str(tx.amount)},
        )
        return tx

    @staticmethod
    def update_transaction(owner, transaction_id, patch: TransactionPatch, actor=None, uow=None, now=None):
        now = now or timezone.now()
        changes = patch.changes()

        with unit_of_work(uow) as work:
            tx = get_owned_object(Transaction, owner, transaction_id, work.lock(Transaction.objects.all()))
            if tx.is_settled:
                raise SettledImmutableError(
                    "Settled transactions cannot be modified",
                    details={'transaction_id': tx.pk, 'settlement_period': tx.settlement_period},
                )

            moves_money = any(
                key in changes and changes[key] != getattr(tx, key)
                for key in ('amount', 'account_id', 'destination_account_id')
            )
            if moves_money and _is_payment_record(tx):
                raise ValidationError(
                    "Payments recorded against a liability or bill cannot change amount or account",
                    details={'transaction_id': tx.pk},
                )

            before = Transaction(
                type=tx.type, amount=tx.amount, account_id=tx.account_id,
                destination_account_id=tx.destination_account_id, category=tx.category,
                date=tx.date, is_liability_payment=tx.is_liability_payment,
            )

            for key, value in changes.items():
                setattr(tx, key, value)

            # Existing rows may point at accounts deactivated since; only re-targeting is checked
            if 'account_id' in changes or 'destination_account_id' in changes:
                _validate_accounts(owner, tx.type, tx.account_id, tx.destination_account_id)
            if 'category' in changes:
                validate_category(tx.type, tx.category)
            if 'date' in changes and not tx.is_recurring:
                _ensure_period_open(owner, tx.date)

            if moves_money and not tx.is_recurring:
                old_effects = effects_of(before)
                new_effects = effects_of(tx)
                accounts = _lock_accounts(work, owner, [*old_effects.keys(), *new_effects.keys()])
                _apply(accounts, reversed_effects(old_effects))
                _apply(accounts, new_effects)
                _store_balances(accounts, now)

            if 'date' in changes:
                tx.settlement_period = monthly_label(tx.date)
            tx.save()

            if not tx.is_recurring:
                for category, on_date in _touched_categories(before, tx):
                    BudgetService.update_budget_spending(owner, category, on_date, amount=tx.amount, uow=work)

            record_audit(
                owner, AuditAction.TRANSACTION_UPDATE, 'transaction', tx.pk,
                {
                    'amount_before': before.amount,
                    'amount_after': tx.amount,
                    'account_ids': sorted(set(before.account_ids) | set(tx.account_ids)),
                    'changed': sorted(changes),
                },
                actor,
            )
            if not tx.is_recurring:
                work.emit(
                    transaction_posted, sender=Transaction,
                    owner=owner,
                    account_ids=sorted(set(before.account_ids) | set(tx.account_ids)),
                    categories=sorted({c for c in (before.category, tx.category) if c}),
                )
        return tx

    @staticmethod
    def delete_transaction(owner, transaction_id, actor=None, uow=None, now=None):
        now = now or timezone.now()

        with unit_of_work(uow) as work:
            tx = get_owned_object(Transaction, owner, transaction_id, work.lock(Transaction.objects.all()))
            if tx.is_settled:
                raise SettledImmutableError(
                    "Settled transactions cannot be deleted",
                    details={'transaction_id': tx.pk, 'settlement_period': tx.settlement_period},
                )
            if _is_payment_record(tx):
                raise ValidationError(
                    "Payments recorded against a liability or bill cannot be deleted",
                    details={'transaction_id': tx.pk},
                )

            tx_id, account_ids, touched = tx.pk, tx.account_ids, _touched_categories(tx)
            if not tx.is_recurring:
                accounts = _lock_accounts(work, owner, account_ids)
                _apply(accounts, reversed_effects(effects_of(tx)))
                _store_balances(accounts, now)

            amount, was_template, category = tx.amount, tx.is_recurring, tx.category
            tx.delete()

            for cat, on_date in touched:
                BudgetService.update_budget_spending(owner, cat, on_date, amount=-amount, uow=work)

            record_audit(
                owner, AuditAction.TRANSACTION_DELETE, 'transaction', tx_id,
                {'amount_before': amount, 'amount_after': None, 'account_ids': account_ids},
                actor,
            )
            if not was_template:
                work.emit(
                    transaction_posted, sender=Transaction,
                    owner=owner, account_ids=account_ids, categories=[category] if category else [],
                )

    @staticmethod
    def get_transaction(owner, transaction_id):
        return get_owned_object(Transaction, owner, transaction_id)

    @staticmethod
    def list_transactions(owner, tx_type=None, account_id=None, start=None, end=None,
                          is_settled=None, include_templates=False):
        transactions = Transaction.objects.filter(owner=owner).select_related('account', 'destination_account')
        if not include_templates:
            transactions = transactions.filter(is_recurring=False)
        if tx_type:
            transactions = transactions.filter(type=tx_type)
        if account_id is not None:
            transactions = transactions.filter(Q(account_id=account_id) | Q(destination_account_id=account_id))
        if start is not None:
            transactions = transactions.filter(date__gte=start)
        if end is not None:
            transactions = transactions.filter(date__lte=end)
        if is_settled is not None:
            transactions = transactions.filter(is_settled=is_settled)
        return transactions.order_by('-date', '-created_at')


def account_balance_from_ledger(account) -> Decimal:
    """Opening balance plus the effect of every unsettled transaction on ``account``."""
    movements = Transaction.objects.filter(
        Q(account=account) | Q(destination_account=account),
        is_recurring=False,
        is_settled=False,
    )
    total = account.opening_balance
    for tx in movements:
        total += effects_of(tx).get(account.pk, Decimal("0"))
    return total
