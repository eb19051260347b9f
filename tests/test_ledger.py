# tests/test_ledger.py
from decimal import Decimal

import pytest

from audit.models import AuditLog
from common.enums import AccountType, AuditAction, ExpenseCategory, IncomeCategory, TransactionType
from common.exceptions import (
    InsufficientBalanceError, NotFoundError, SettledImmutableError, ValidationError,
)
from finance.commands import RecurrenceSpec, TransactionDraft, TransactionPatch
from finance.models import Transaction
from finance.services.account_service import AccountService
from finance.services.ledger_service import LedgerService, account_balance_from_ledger
from tests.factories import AccountFactory, UserFactory


def expense(account, amount, category=ExpenseCategory.FOOD, **kwargs):
    return TransactionDraft(type=TransactionType.EXPENSE, amount=amount, account_id=account.pk,
                            category=category, **kwargs)


def income(account, amount, category=IncomeCategory.SALARY, **kwargs):
    return TransactionDraft(type=TransactionType.INCOME, amount=amount, account_id=account.pk,
                            category=category, **kwargs)


class TestPosting:

    def test_expenses_and_income_move_the_balance(self, user, wallet):
        LedgerService.create_transaction(user, expense(wallet, 300))
        wallet.refresh_from_db()
        assert wallet.balance == Decimal('700.00')

        LedgerService.create_transaction(user, expense(wallet, 200))
        wallet.refresh_from_db()
        assert wallet.balance == Decimal('500.00')

        LedgerService.create_transaction(user, income(wallet, 500))
        wallet.refresh_from_db()
        assert wallet.balance == Decimal('1000.00')
        assert account_balance_from_ledger(wallet) == wallet.balance

    def test_transaction_is_tagged_with_its_month(self, user, wallet, jan_2024):
        tx = LedgerService.create_transaction(user, expense(wallet, 10, date=jan_2024))
        assert tx.settlement_period == '2024-01'
        assert tx.is_settled is False

    def test_transfer_moves_money_between_accounts(self, user, wallet):
        savings = AccountFactory(owner=user, type=AccountType.SAVINGS)
        LedgerService.create_transaction(user, TransactionDraft(
            type=TransactionType.TRANSFER, amount=250, account_id=wallet.pk,
            destination_account_id=savings.pk,
        ))
        wallet.refresh_from_db()
        savings.refresh_from_db()
        assert wallet.balance == Decimal('750.00')
        assert savings.balance == Decimal('250.00')

    def test_transfer_to_same_account_is_rejected(self, user, wallet):
        with pytest.raises(ValidationError):
            LedgerService.create_transaction(user, TransactionDraft(
                type=TransactionType.TRANSFER, amount=10, account_id=wallet.pk,
                destination_account_id=wallet.pk,
            ))

    def test_destination_only_allowed_on_transfers(self, user, wallet):
        other = AccountFactory(owner=user)
        with pytest.raises(ValidationError):
            LedgerService.create_transaction(user, expense(wallet, 10, destination_account_id=other.pk))

    def test_category_must_match_type(self, user, wallet):
        with pytest.raises(ValidationError):
            LedgerService.create_transaction(user, income(wallet, 10, category=ExpenseCategory.FOOD))
        with pytest.raises(ValidationError):
            LedgerService.create_transaction(user, expense(wallet, 10, category=''))

    def test_non_positive_amount_is_rejected(self, wallet):
        with pytest.raises(ValidationError):
            expense(wallet, 0)
        with pytest.raises(ValidationError):
            expense(wallet, '-5')

    def test_insufficient_balance_leaves_nothing_behind(self, user, wallet):
        with pytest.raises(InsufficientBalanceError):
            LedgerService.create_transaction(user, expense(wallet, 1500))
        wallet.refresh_from_db()
        assert wallet.balance == Decimal('1000.00')
        assert not Transaction.objects.filter(owner=user).exists()

    def test_loan_accounts_may_go_negative(self, user):
        loan = AccountFactory(owner=user, type=AccountType.LOAN)
        LedgerService.create_transaction(user, expense(loan, 400))
        loan.refresh_from_db()
        assert loan.balance == Decimal('-400.00')

    def test_other_owners_accounts_are_not_found(self, wallet):
        stranger = UserFactory()
        with pytest.raises(NotFoundError):
            LedgerService.create_transaction(stranger, expense(wallet, 10))

    def test_inactive_account_is_rejected(self, user, wallet):
        wallet.is_active = False
        wallet.save()
        with pytest.raises(ValidationError):
            LedgerService.create_transaction(user, expense(wallet, 10))

    def test_liability_payments_need_the_payment_flow(self, user, wallet):
        draft = expense(wallet, 10, category=ExpenseCategory.DEBT_PAYMENT, is_liability_payment=True)
        with pytest.raises(ValidationError):
            LedgerService.create_transaction(user, draft)

    def test_recurring_template_does_not_move_money(self, user, wallet, jan_2024):
        tx = LedgerService.create_transaction(user, expense(
            wallet, 50, category=ExpenseCategory.SUBSCRIPTIONS,
            recurrence=RecurrenceSpec(frequency='monthly', next_execution=jan_2024),
        ))
        wallet.refresh_from_db()
        assert wallet.balance == Decimal('1000.00')
        assert tx.is_recurring
        assert tx.recurring_config.next_execution == jan_2024

    def test_transfers_cannot_recur(self, user, wallet):
        other = AccountFactory(owner=user)
        with pytest.raises(ValidationError):
            LedgerService.create_transaction(user, TransactionDraft(
                type=TransactionType.TRANSFER, amount=10, account_id=wallet.pk,
                destination_account_id=other.pk, recurrence=RecurrenceSpec(frequency='weekly'),
            ))

    def test_creation_is_audited(self, user, wallet):
        tx = LedgerService.create_transaction(user, expense(wallet, 30))
        log = AuditLog.objects.get(action=AuditAction.TRANSACTION_CREATE, resource_id=str(tx.pk))
        assert log.owner == user
        assert log.details['amount_after'] == '30.00'


class TestEditing:

    def test_update_reverses_old_effect_before_applying_new(self, user, wallet):
        tx = LedgerService.create_transaction(user, expense(wallet, 300))
        LedgerService.update_transaction(user, tx.pk, TransactionPatch(amount=100))
        wallet.refresh_from_db()
        assert wallet.balance == Decimal('900.00')
        assert account_balance_from_ledger(wallet) == wallet.balance

    def test_update_can_move_transaction_to_another_account(self, user, wallet):
        other = AccountFactory(owner=user, balance=500)
        tx = LedgerService.create_transaction(user, expense(wallet, 200))
        LedgerService.update_transaction(user, tx.pk, TransactionPatch(account_id=other.pk))
        wallet.refresh_from_db()
        other.refresh_from_db()
        assert wallet.balance == Decimal('1000.00')
        assert other.balance == Decimal('300.00')

    def test_update_that_would_overdraw_is_rolled_back(self, user, wallet):
        tx = LedgerService.create_transaction(user, expense(wallet, 100))
        with pytest.raises(InsufficientBalanceError):
            LedgerService.update_transaction(user, tx.pk, TransactionPatch(amount=5000))
        wallet.refresh_from_db()
        tx.refresh_from_db()
        assert wallet.balance == Decimal('900.00')
        assert tx.amount == Decimal('100.00')

    def test_date_change_retags_the_period(self, user, wallet, jan_2024):
        tx = LedgerService.create_transaction(user, expense(wallet, 10))
        tx = LedgerService.update_transaction(user, tx.pk, TransactionPatch(date=jan_2024))
        assert tx.settlement_period == '2024-01'

    def test_transfer_amount_change_moves_both_sides(self, user, wallet):
        savings = AccountFactory(owner=user, type=AccountType.SAVINGS)
        tx = LedgerService.create_transaction(user, TransactionDraft(
            type=TransactionType.TRANSFER, amount=250, account_id=wallet.pk, destination_account_id=savings.pk,
        ))
        LedgerService.update_transaction(user, tx.pk, TransactionPatch(amount=400))

        wallet.refresh_from_db()
        savings.refresh_from_db()
        assert wallet.balance == Decimal('600.00')
        assert savings.balance == Decimal('400.00')
        assert account_balance_from_ledger(wallet) == wallet.balance
        assert account_balance_from_ledger(savings) == savings.balance

    def test_raise_then_delete_returns_to_the_start(self, user, wallet):
        tx = LedgerService.create_transaction(user, expense(wallet, 300))
        wallet.refresh_from_db()
        assert wallet.balance == Decimal('700.00')

        LedgerService.update_transaction(user, tx.pk, TransactionPatch(amount=500))
        wallet.refresh_from_db()
        assert wallet.balance == Decimal('500.00')

        LedgerService.delete_transaction(user, tx.pk)
        wallet.refresh_from_db()
        assert wallet.balance == Decimal('1000.00')

    def test_notes_stay_editable_after_account_is_deactivated(self, user, wallet):
        tx = LedgerService.create_transaction(user, expense(wallet, 40))
        AccountService.deactivate_account(user, wallet.pk)

        tx = LedgerService.update_transaction(user, tx.pk, TransactionPatch(notes='receipt lost'))
        assert tx.notes == 'receipt lost'

        other = AccountFactory(owner=user, balance=100, is_active=False)
        with pytest.raises(ValidationError):
            LedgerService.update_transaction(user, tx.pk, TransactionPatch(account_id=other.pk))

    def test_delete_restores_the_balance(self, user, wallet):
        tx = LedgerService.create_transaction(user, expense(wallet, 300))
        LedgerService.delete_transaction(user, tx.pk)
        wallet.refresh_from_db()
        assert wallet.balance == Decimal('1000.00')
        assert not Transaction.objects.filter(pk=tx.pk).exists()

    def test_settled_transactions_are_locked(self, user, wallet):
        tx = LedgerService.create_transaction(user, expense(wallet, 50))
        Transaction.objects.filter(pk=tx.pk).update(is_settled=True)

        with pytest.raises(SettledImmutableError):
            LedgerService.update_transaction(user, tx.pk, TransactionPatch(amount=10))
        with pytest.raises(SettledImmutableError):
            LedgerService.delete_transaction(user, tx.pk)

        wallet.refresh_from_db()
        assert wallet.balance == Decimal('950.00')

    def test_list_filters_by_account_on_either_side(self, user, wallet):
        savings = AccountFactory(owner=user)
        LedgerService.create_transaction(user, expense(wallet, 10))
        LedgerService.create_transaction(user, TransactionDraft(
            type=TransactionType.TRANSFER, amount=20, account_id=wallet.pk, destination_account_id=savings.pk,
        ))
        assert LedgerService.list_transactions(user, account_id=savings.pk).count() == 1
        assert LedgerService.list_transactions(user, account_id=wallet.pk).count() == 2
        assert LedgerService.list_transactions(user, tx_type=TransactionType.EXPENSE).count() == 1
